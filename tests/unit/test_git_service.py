"""Unit tests for GitService with a mocked GitRunner."""

import os
from unittest.mock import Mock

import pytest

from git_sandbox.errors import (
    ErrorCategory,
    ErrorCode,
    GitCommandError,
    InvalidOptionsError,
    SandboxViolationError,
)
from git_sandbox.git_service import (
    GitService,
    _parse_branches,
    _parse_log,
    _parse_name_status,
    _parse_remotes,
    _parse_status,
)
from git_sandbox.git_subprocess import GitCommandResult, GitRunner
from git_sandbox.models import (
    BranchOptions,
    CommitOptions,
    MergeOptions,
    PullOptions,
    PushOptions,
    ResetMode,
    TagOptions,
)


def _ok(stdout="", stderr=""):
    return GitCommandResult(args=[], exit_code=0, stdout=stdout, stderr=stderr)


@pytest.fixture
def repo_dir(sandbox_root):
    path = os.path.join(sandbox_root, "repo")
    os.makedirs(path)
    return path


@pytest.fixture
def mock_runner():
    runner = Mock(spec=GitRunner)
    runner.run.return_value = _ok()
    return runner


@pytest.fixture
def service(repo_dir, sandbox, mock_runner):
    return GitService(repo_dir, sandbox=sandbox, runner=mock_runner)


def _args(mock_runner, call=-1):
    return mock_runner.run.call_args_list[call][0][0]


class TestConstruction:
    def test_repo_outside_sandbox_rejected(self, sandbox, mock_runner):
        with pytest.raises(SandboxViolationError) as exc_info:
            GitService("/etc", sandbox=sandbox, runner=mock_runner)
        assert exc_info.value.record.context.parameter == "repoPath"
        mock_runner.run.assert_not_called()

    def test_placeholder_resolved(self, sandbox, registry, repo_dir, mock_runner):
        registry.set(repo_dir)
        assert GitService(".", sandbox=sandbox, runner=mock_runner).repo_path == repo_dir

    def test_commands_run_in_repo(self, service, mock_runner, repo_dir):
        service.get_status()
        assert mock_runner.run.call_args.kwargs["cwd"] == repo_dir


class TestRejectionsNeverDispatch:
    """Rejected requests raise before any git command runs."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.stage_files(["../other/secret"]),
            lambda s: s.unstage_files("/etc/passwd"),
            lambda s: s.get_blame("../../etc/passwd"),
            lambda s: s.get_file_at_ref("../x"),
            lambda s: s.list_files_at_ref("../"),
            lambda s: s.get_log(file="../x"),
            lambda s: s.get_diff("HEAD~1", file_path="../x"),
            lambda s: s.get_unstaged_diff("../x"),
            lambda s: s.get_staged_diff("../x"),
        ],
    )
    def test_path_escape(self, service, mock_runner, call):
        with pytest.raises(SandboxViolationError):
            call(service)
        mock_runner.run.assert_not_called()

    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.checkout("--orphan"),
            lambda s: s.delete_branch("-rf"),
            lambda s: s.create_branch(BranchOptions(name="--force")),
            lambda s: s.fetch("--upload-pack=evil"),
            lambda s: s.push(PushOptions(remote="--receive-pack=evil")),
            lambda s: s.show_commit("--output=/tmp/x"),
            lambda s: s.create_tag(TagOptions(name="-d")),
            lambda s: s.cherry_pick(["--abort"]),
            lambda s: s.clone_repo("--upload-pack=evil"),
            lambda s: s.init_repo(initial_branch="-x"),
        ],
    )
    def test_option_like_arguments(self, service, mock_runner, call):
        with pytest.raises(InvalidOptionsError) as exc_info:
            call(service)
        assert exc_info.value.code == ErrorCode.INVALID_OPTIONS
        mock_runner.run.assert_not_called()

    def test_merge_conflicting_flags(self, service, mock_runner):
        # Bypass model validation to reach the facade check
        options = MergeOptions.model_construct(branch="feature", ff_only=True, no_ff=True)
        with pytest.raises(InvalidOptionsError) as exc_info:
            service.merge(options)
        assert exc_info.value.category == ErrorCategory.VALIDATION
        mock_runner.run.assert_not_called()

    def test_bad_reset_mode(self, service, mock_runner):
        with pytest.raises(InvalidOptionsError) as exc_info:
            service.reset("HEAD", "keep")
        record = exc_info.value.record
        assert record.code == ErrorCode.INVALID_RESET_MODE
        assert record.context.allowed == ["hard", "soft", "mixed"]
        mock_runner.run.assert_not_called()

    def test_interactive_rebase(self, service, mock_runner):
        with pytest.raises(InvalidOptionsError):
            service.rebase("main", interactive=True)
        mock_runner.run.assert_not_called()

    def test_clone_local_source_outside_sandbox(self, service, mock_runner):
        with pytest.raises(SandboxViolationError):
            service.clone_repo("file:///etc/repo")
        with pytest.raises(SandboxViolationError):
            service.clone_repo("/etc/repo")
        with pytest.raises(SandboxViolationError):
            service.clone_repo("../../../etc/repo")
        mock_runner.run.assert_not_called()

    @pytest.mark.parametrize(
        "call",
        [
            lambda s: s.add_remote("leak", "/etc/repo"),
            lambda s: s.fetch("/etc/repo"),
            lambda s: s.pull(PullOptions(remote="file:///etc/repo")),
            lambda s: s.push(PushOptions(remote="../../../etc/repo")),
        ],
    )
    def test_local_remote_outside_sandbox(self, service, mock_runner, call):
        with pytest.raises(SandboxViolationError):
            call(service)
        mock_runner.run.assert_not_called()

    def test_remote_helper_syntax(self, service, mock_runner):
        with pytest.raises(InvalidOptionsError):
            service.add_remote("x", "ext::sh -c id")
        mock_runner.run.assert_not_called()

    def test_clone_bad_depth(self, service, mock_runner):
        with pytest.raises(InvalidOptionsError):
            service.clone_repo("https://example.com/r.git", depth=0)
        mock_runner.run.assert_not_called()


class TestFailureClassification:
    def test_git_failure_becomes_result(self, service, mock_runner):
        mock_runner.run.side_effect = GitCommandError(
            "CONFLICT (content): Merge conflict in a.txt",
            command="merge",
            args=["merge", "feature"],
            exit_code=1,
            stderr="CONFLICT (content): Merge conflict in a.txt",
        )
        result = service.merge(MergeOptions(branch="feature"))
        assert result.success is False
        assert result.error.category == ErrorCategory.GIT
        assert "CONFLICT" in result.error.message

    def test_unexpected_exception_becomes_result(self, service, mock_runner):
        mock_runner.run.side_effect = RuntimeError("kaboom")
        result = service.list_tags()
        assert result.success is False
        assert result.error.category == ErrorCategory.UNKNOWN


class TestCommands:
    def test_stage_all(self, service, mock_runner):
        assert service.stage_files(".").success
        assert _args(mock_runner) == ["add", "--", "."]

    def test_stage_list(self, service, mock_runner, repo_dir):
        service.stage_files(["src/a.py", os.path.join(repo_dir, "b.txt")])
        assert _args(mock_runner) == ["add", "--", "src/a.py", "b.txt"]

    def test_stage_empty_list(self, service, mock_runner):
        assert service.stage_files([]).data == "No files to stage"
        mock_runner.run.assert_not_called()

    def test_unstage(self, service, mock_runner):
        service.unstage_files("a.txt")
        assert _args(mock_runner) == ["reset", "-q", "--", "a.txt"]

    def test_commit_returns_hash(self, service, mock_runner):
        mock_runner.run.side_effect = [_ok("[main abc123] msg\n"), _ok("abc123def\n")]
        result = service.commit(CommitOptions(message="msg", allow_empty=True))
        assert result.data == "abc123def"
        assert _args(mock_runner, 0) == ["commit", "-m", "msg", "--allow-empty"]
        assert _args(mock_runner, 1) == ["rev-parse", "HEAD"]

    def test_commit_author(self, service, mock_runner):
        service.commit(CommitOptions(message="m", author={"name": "A", "email": "a@x"}))
        assert "--author=A <a@x>" in _args(mock_runner, 0)

    @pytest.mark.parametrize("mode", ["hard", ResetMode.SOFT, "mixed"])
    def test_reset(self, service, mock_runner, mode):
        service.reset("HEAD~1", mode)
        assert _args(mock_runner) == ["reset", f"--{ResetMode(mode).value}", "HEAD~1"]

    def test_clean_flags(self, service, mock_runner):
        service.clean(directories=True, include_ignored=True)
        assert _args(mock_runner) == ["clean", "-f", "-d", "-x"]

    def test_create_branch_and_checkout(self, service, mock_runner):
        result = service.create_branch(BranchOptions(name="feat", start_point="main", checkout=True))
        assert result.data == "Branch 'feat' created successfully"
        assert _args(mock_runner, 0) == ["branch", "feat", "main"]
        assert _args(mock_runner, 1) == ["checkout", "feat"]

    def test_checkout_create(self, service, mock_runner):
        service.checkout("feat", create_branch=True)
        assert _args(mock_runner) == ["checkout", "-b", "feat"]

    def test_delete_branch_force(self, service, mock_runner):
        service.delete_branch("feat", force=True)
        assert _args(mock_runner) == ["branch", "-D", "feat"]

    def test_merge_flags(self, service, mock_runner):
        service.merge(MergeOptions(branch="feat", message="m", no_ff=True))
        assert _args(mock_runner) == ["merge", "-m", "m", "--no-ff", "feat"]

    def test_cherry_pick_empty(self, service, mock_runner):
        result = service.cherry_pick([])
        assert result.data == "No commits specified for cherry-pick"
        mock_runner.run.assert_not_called()

    def test_push_defaults(self, service, mock_runner):
        service.push()
        assert _args(mock_runner) == ["push", "origin", "HEAD"]

    def test_push_force_upstream(self, service, mock_runner):
        service.push(PushOptions(remote="up", branch="main", force=True, set_upstream=True))
        assert _args(mock_runner) == ["push", "--force", "--set-upstream", "up", "main"]

    def test_annotated_tag(self, service, mock_runner):
        service.create_tag(TagOptions(name="v1", message="release", ref="abc"))
        assert _args(mock_runner) == ["tag", "-a", "-m", "release", "v1", "abc"]

    def test_list_tags(self, service, mock_runner):
        mock_runner.run.return_value = _ok("v1\nv2\n\n")
        assert service.list_tags().data == ["v1", "v2"]

    def test_pop_stash_default(self, service, mock_runner):
        service.pop_stash()
        assert _args(mock_runner) == ["stash", "pop", "stash@{0}"]

    def test_log_default_count(self, repo_dir, sandbox, mock_runner):
        GitService(repo_dir, sandbox=sandbox, runner=mock_runner, max_log_count=7).get_log()
        assert "--max-count=7" in _args(mock_runner)

    def test_log_file(self, service, mock_runner):
        service.get_log(max_count=3, file="src/a.py")
        args = _args(mock_runner)
        assert "--max-count=3" in args
        assert args[-2:] == ["--", "src/a.py"]

    def test_diff_head_omitted(self, service, mock_runner):
        service.get_diff("main")
        assert _args(mock_runner) == ["diff", "--name-status", "main"]

    def test_diff_two_refs(self, service, mock_runner):
        service.get_diff("main", "feat", file_path="a.txt")
        assert _args(mock_runner) == ["diff", "--name-status", "main", "feat", "--", "a.txt"]

    def test_file_at_ref(self, service, mock_runner):
        mock_runner.run.return_value = _ok("content")
        assert service.get_file_at_ref("./src/a.py", "v1").data == "content"
        assert _args(mock_runner) == ["show", "v1:src/a.py"]

    def test_list_files_root(self, service, mock_runner):
        mock_runner.run.return_value = _ok("README.md\nsrc\n")
        assert service.list_files_at_ref().data == ["README.md", "src"]
        assert _args(mock_runner) == ["ls-tree", "--name-only", "HEAD"]

    def test_list_files_subdir(self, service, mock_runner):
        service.list_files_at_ref("src/", "main")
        assert _args(mock_runner) == ["ls-tree", "--name-only", "main:src"]

    def test_unstaged_diff_with_untracked(self, service, mock_runner):
        mock_runner.run.side_effect = [
            _ok("diff --git a/a b/a\n"),
            _ok("## main\0?? new.txt\0?? docs/x.md\0"),
        ]
        diff = service.get_unstaged_diff().data
        assert diff.startswith("diff --git")
        assert "# Untracked files:\n# - new.txt\n# - docs/x.md\n" in diff

    def test_unstaged_diff_scoped_untracked(self, service, mock_runner):
        mock_runner.run.side_effect = [_ok(""), _ok("## main\0?? new.txt\0?? docs/x.md\0")]
        diff = service.get_unstaged_diff("docs").data
        assert diff == "# Untracked files:\n# - docs/x.md\n"

    def test_unstaged_diff_without_untracked(self, service, mock_runner):
        mock_runner.run.return_value = _ok("")
        assert service.get_unstaged_diff(show_untracked=False).data == ""
        assert mock_runner.run.call_count == 1


class TestRepositoryLifecycle:
    def test_is_git_repository(self, service, repo_dir):
        assert service.is_git_repository() is False
        os.makedirs(os.path.join(repo_dir, ".git"))
        assert service.is_git_repository() is True

    def test_is_bare_repository(self, service, repo_dir):
        for name in ("HEAD", "config"):
            open(os.path.join(repo_dir, name), "w").close()
        for name in ("objects", "refs"):
            os.makedirs(os.path.join(repo_dir, name))
        assert service.is_git_repository() is True

    def test_is_git_repository_outside_sandbox(self, service):
        assert service.is_git_repository("/etc") is False

    def test_init_creates_dir_and_bootstrap(self, sandbox, sandbox_root, mock_runner):
        target = os.path.join(sandbox_root, "new")
        service = GitService(target, sandbox=sandbox, runner=mock_runner)
        assert service.init_repo(initial_branch="trunk").success
        assert os.path.isfile(os.path.join(target, "README.md"))
        assert _args(mock_runner, 0) == ["init", "--initial-branch=trunk"]
        assert _args(mock_runner, 1) == ["add", "--", "README.md"]
        assert _args(mock_runner, 2)[:2] == ["commit", "--allow-empty"]

    def test_init_bare_skips_bootstrap(self, service, mock_runner, repo_dir):
        service.init_repo(bare=True)
        assert mock_runner.run.call_count == 1
        assert "--bare" in _args(mock_runner)
        assert not os.path.exists(os.path.join(repo_dir, "README.md"))

    def test_bootstrap_failure_still_succeeds(self, service, mock_runner):
        mock_runner.run.side_effect = [
            _ok("Initialized empty Git repository\n"),
            _ok(),
            GitCommandError("commit failed", command="commit"),
        ]
        result = service.init_repo()
        assert result.success is True
        assert "Initialized" in result.data

    def test_clone_args(self, service, mock_runner, repo_dir):
        service.clone_repo("https://example.com/r.git", branch="dev", depth=1)
        assert _args(mock_runner) == [
            "clone", "--branch", "dev", "--depth", "1", "--", "https://example.com/r.git", repo_dir,
        ]


class TestParsers:
    def test_status(self):
        output = "\0".join(
            [
                "## main...origin/main [ahead 2, behind 1]",
                "M  staged.txt",
                " M modified.txt",
                "A  added.txt",
                " D gone.txt",
                "UU conflict.txt",
                "R  new.txt",
                "old.txt",
                "?? untracked.txt",
                "",
            ]
        )
        status = _parse_status(output)
        assert status.current == "main"
        assert status.tracking == "origin/main"
        assert (status.ahead, status.behind) == (2, 1)
        assert status.staged == ["staged.txt", "added.txt", "new.txt"]
        assert status.modified == ["staged.txt", "modified.txt"]
        assert status.created == ["added.txt"]
        assert status.deleted == ["gone.txt"]
        assert status.conflicted == ["conflict.txt"]
        assert status.renamed == ["new.txt"]
        assert status.not_added == ["untracked.txt"]
        renamed = [f for f in status.files if f.path == "new.txt"][0]
        assert renamed.original_path == "old.txt"
        assert status.is_clean is False

    def test_status_unborn_branch(self):
        status = _parse_status("## No commits yet on main\0")
        assert status.current == "main"
        assert status.is_clean is True

    def test_status_detached(self):
        status = _parse_status("## HEAD (no branch)\0")
        assert status.detached is True
        assert status.current is None

    def test_branches(self):
        output = (
            "*\0refs/heads/main\0main\0abc\0Initial commit\n"
            " \0refs/heads/feat\0feat\0def\0WIP\n"
            " \0refs/remotes/origin/main\0origin/main\0abc\0Initial commit\n"
        )
        summary = _parse_branches(output)
        assert summary.current == "main"
        assert summary.detached is False
        assert summary.all == ["main", "feat", "remotes/origin/main"]
        assert summary.branches[1].label == "WIP"

    def test_branches_detached(self):
        output = "*\0\0(HEAD detached at abc)\0abc\0msg\n \0refs/heads/main\0main\0abc\0msg\n"
        summary = _parse_branches(output)
        assert summary.detached is True
        assert summary.current is None

    def test_remotes(self):
        output = (
            "origin\thttps://example.com/a.git (fetch)\n"
            "origin\tssh://example.com/a.git (push)\n"
            "up\t/data/up (fetch)\n"
        )
        remotes = _parse_remotes(output)
        assert [r.name for r in remotes] == ["origin", "up"]
        assert remotes[0].fetch_url == "https://example.com/a.git"
        assert remotes[0].push_url == "ssh://example.com/a.git"
        assert remotes[1].push_url is None

    def test_log(self):
        record = "\x1f".join(["h1", "h", "Ann", "a@x", "2026-01-01 10:00:00 +0000", "fix: a"])
        entries = _parse_log(record + "\x1e\n" + record.replace("h1", "h2") + "\x1e\n")
        assert [e.hash for e in entries] == ["h1", "h2"]
        assert entries[0].subject == "fix: a"
        assert entries[0].author_email == "a@x"

    def test_name_status(self):
        output = "A\tnew.txt\nM\tmod.txt\nD\tgone.txt\nR100\told.txt\trenamed.txt\nT\tlink\n"
        entries = _parse_name_status(output)
        assert [(e.path, e.status) for e in entries] == [
            ("new.txt", "added"),
            ("mod.txt", "modified"),
            ("gone.txt", "deleted"),
            ("renamed.txt", "renamed"),
            ("link", "T"),
        ]
        assert entries[3].old_path == "old.txt"
