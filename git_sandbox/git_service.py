"""Sandboxed git operation facade.

:class:`GitService` binds to one repository directory (validated against the
sandbox root at construction) and exposes one method per supported
operation.  Every method:

1. validates secondary path arguments against the *repository* root,
2. runs the needed git command(s) sequentially through :class:`GitRunner`,
3. returns an :class:`OperationResult`.

Git and filesystem failures are classified into the failure branch of the
result.  :class:`RejectedRequestError` (sandbox rejections, conflicting
options) is raised before any command runs and propagates unchanged.

There is no per-repository locking: two concurrent writers against the same
repository rely on git's own index/ref locks.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Callable, List, Optional, Sequence, TypeVar, Union

from git_sandbox.errors import (
    ErrorCategory,
    ErrorCode,
    ErrorRecord,
    GitCommandError,
    InvalidOptionsError,
    OptionsContext,
    RejectedRequestError,
    SandboxViolationError,
)
from git_sandbox.git_subprocess import GitCommandResult, GitRunner
from git_sandbox.models import (
    BranchInfo,
    BranchOptions,
    BranchSummary,
    CommitOptions,
    DiffEntry,
    FileStatus,
    LogEntry,
    MergeOptions,
    PullOptions,
    PushOptions,
    RemoteInfo,
    RepositoryStatus,
    ResetMode,
    StashOptions,
    TagOptions,
)
from git_sandbox.path_sandbox import ALL_PATHS_MARKERS, PathSandbox
from git_sandbox.results import OperationResult, classify_exception, failure, success

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_LOG_COUNT = 50
DEFAULT_STASH = "stash@{0}"

# Files that together mark a bare repository
_BARE_REPO_MARKERS = ("HEAD", "config", "objects", "refs")

_DIFF_STATUS = {
    "A": "added",
    "M": "modified",
    "D": "deleted",
    "R": "renamed",
    "C": "copied",
}

_CONFLICT_CODES = frozenset({"DD", "AU", "UD", "UA", "DU", "AA", "UU"})

# Field and record separators for machine-readable log output
_FS = "\x1f"
_RS = "\x1e"
_LOG_FORMAT = _FS.join(["%H", "%h", "%an", "%ae", "%ai", "%s"]) + _RS

_TRACKING_RE = re.compile(
    r"^(?P<local>.+?)(?:\.\.\.(?P<remote>\S+))?(?: \[(?P<track>[^\]]+)\])?$"
)

_URL_SCHEME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")


def _options_error(
    message: str,
    options: dict,
    *,
    code: str = ErrorCode.INVALID_OPTIONS,
    allowed: Optional[List[str]] = None,
) -> InvalidOptionsError:
    logger.warning("Rejected options (%s): %s", code, options)
    return InvalidOptionsError(
        ErrorRecord(
            message=message,
            code=code,
            category=ErrorCategory.VALIDATION,
            context=OptionsContext(options=options, allowed=allowed),
        )
    )


def _reject_option_like(value: Optional[str], param_name: str) -> None:
    """Refuse ref/name arguments that git would parse as a flag."""
    if value and value.startswith("-"):
        raise _options_error(
            f"Parameter '{param_name}' must not start with '-': {value!r}",
            {param_name: value},
        )


def _is_scp_style(value: str) -> bool:
    """``host:path`` form: a colon appears before any slash."""
    colon = value.find(":")
    if colon <= 0:
        return False
    slash = value.find("/")
    return slash == -1 or colon < slash


def _output(result: GitCommandResult, fallback: str) -> str:
    text = result.stdout.strip() or result.stderr.strip()
    return text or fallback


class GitService:
    """Git operations bound to one sandboxed repository directory.

    Args:
        repo_path: Absolute repository path, or the placeholder ``"."`` when a
            global working directory is set.
        sandbox: Path policy; construction fails if *repo_path* lies outside
            its root.
        runner: Command runner (defaults to a plain :class:`GitRunner`).
        max_log_count: Default number of log entries.

    Raises:
        SandboxViolationError: If *repo_path* is outside the sandbox root.
    """

    def __init__(
        self,
        repo_path: str,
        *,
        sandbox: PathSandbox,
        runner: Optional[GitRunner] = None,
        max_log_count: int = DEFAULT_MAX_LOG_COUNT,
    ):
        self._sandbox = sandbox
        self.repo_path = sandbox.validate_against_root(repo_path, param_name="repoPath")
        self._runner = runner if runner is not None else GitRunner()
        self._max_log_count = max_log_count

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _git(self, *args: str) -> GitCommandResult:
        return self._runner.run(list(args), cwd=self.repo_path)

    def _relative(self, path: str, param_name: str) -> str:
        return self._sandbox.validate_relative(path, self.repo_path, param_name)

    def _pathspec(self, files: Union[str, Sequence[str]], param_name: str) -> List[str]:
        if isinstance(files, str):
            files = [files]
        validated = []
        for item in files:
            checked = self._relative(item, param_name)
            validated.append("." if checked in ALL_PATHS_MARKERS else checked)
        return validated

    def _execute(self, message: str, action: Callable[[], T]) -> OperationResult[T]:
        """Run *action*, classifying anything but a rejection into a failure."""
        try:
            return success(action())
        except RejectedRequestError:
            raise
        except Exception as exc:
            return failure(classify_exception(exc, message))

    def _ensure_repo_dir(self) -> None:
        os.makedirs(self.repo_path, exist_ok=True)

    def _check_local_source(self, value: Optional[str], param_name: str) -> None:
        """Confine a clone source, remote URL or remote argument that names a local path.

        Git reads a value as a local path unless it has a ``scheme://`` or is
        scp-style (a colon before the first slash).  Relative paths resolve
        against the repository directory, which is where git runs.
        """
        if not value:
            return
        if value.startswith("file://"):
            value = value[len("file://"):]
        elif "::" in value:
            raise _options_error(
                f"Parameter '{param_name}' uses remote-helper syntax, which is not supported: {value!r}",
                {param_name: value},
            )
        elif _URL_SCHEME_RE.match(value) or _is_scp_style(value):
            return
        self._sandbox.validate_against_root(
            os.path.join(self.repo_path, value), param_name=param_name
        )

    # ------------------------------------------------------------------
    # Repository lifecycle
    # ------------------------------------------------------------------

    def is_git_repository(self, path: Optional[str] = None) -> bool:
        """Pre-flight check: does *path* (default: the bound repo) hold a repository?

        A sandbox violation returns ``False`` instead of raising.  ``False``
        is not proof that the path is safe for anything else.
        """
        if path is None:
            target = self.repo_path
        else:
            try:
                target = self._sandbox.validate_against_root(path, param_name="path")
            except SandboxViolationError:
                logger.warning("Repository check attempted outside sandbox: %s", path)
                return False

        if os.path.exists(os.path.join(target, ".git")):
            return True
        return all(os.path.exists(os.path.join(target, name)) for name in _BARE_REPO_MARKERS)

    def init_repo(self, bare: bool = False, initial_branch: str = "main") -> OperationResult[str]:
        """Create the directory if needed and initialize a repository.

        Non-bare repositories get a bootstrap commit containing a README.
        A failed bootstrap commit is logged and does not fail the operation.
        """
        _reject_option_like(initial_branch, "initialBranch")

        def action() -> str:
            self._ensure_repo_dir()
            args = ["init", f"--initial-branch={initial_branch}"]
            if bare:
                args.append("--bare")
            result = self._git(*args)
            if not bare:
                self._bootstrap_commit(initial_branch)
            return _output(result, f"Initialized repository in {self.repo_path}")

        return self._execute("Failed to initialize repository", action)

    def _bootstrap_commit(self, initial_branch: str) -> None:
        readme = os.path.join(self.repo_path, "README.md")
        try:
            with open(readme, "w") as f:
                f.write(f"# Git Repository\n\nInitialized with branch '{initial_branch}'.")
            self._git("add", "--", "README.md")
            self._git("commit", "--allow-empty", "-m", "Initial commit")
        except (GitCommandError, OSError) as exc:
            logger.error(
                "Failed to create initial commit in %s: %s",
                self.repo_path,
                exc,
                exc_info=True,
            )

    def clone_repo(
        self,
        url: str,
        branch: Optional[str] = None,
        depth: Optional[int] = None,
    ) -> OperationResult[str]:
        """Clone *url* into the bound directory.

        Local sources (paths or ``file://`` URLs) must also lie inside the
        sandbox root.
        """
        _reject_option_like(url, "url")
        _reject_option_like(branch, "branch")
        self._check_local_source(url, "url")
        if depth is not None and depth <= 0:
            raise _options_error(f"depth must be positive, got {depth}", {"depth": depth})

        def action() -> str:
            self._ensure_repo_dir()
            args = ["clone"]
            if branch:
                args += ["--branch", branch]
            if depth:
                args += ["--depth", str(depth)]
            args += ["--", url, self.repo_path]
            return _output(self._git(*args), f"Cloned {url} into {self.repo_path}")

        return self._execute(f"Failed to clone repository from {url}", action)

    def get_status(self) -> OperationResult[RepositoryStatus]:
        return self._execute(
            "Failed to get repository status",
            lambda: _parse_status(self._git("status", "--porcelain=v1", "-b", "-z").stdout),
        )

    # ------------------------------------------------------------------
    # Working tree and commits
    # ------------------------------------------------------------------

    def stage_files(self, files: Union[str, Sequence[str]] = ".") -> OperationResult[str]:
        """Stage *files*; ``"."`` (or ``""``) stages everything."""
        if not isinstance(files, str) and len(files) == 0:
            return success("No files to stage")
        paths = self._pathspec(files, "files")
        return self._execute(
            "Failed to stage files",
            lambda: _output(self._git("add", "--", *paths), f"Staged: {', '.join(paths)}"),
        )

    def unstage_files(self, files: Union[str, Sequence[str]] = ".") -> OperationResult[str]:
        """Unstage *files*; ``"."`` (or ``""``) unstages everything."""
        if not isinstance(files, str) and len(files) == 0:
            return success("No files to unstage")
        paths = self._pathspec(files, "files")
        return self._execute(
            "Failed to unstage files",
            lambda: _output(self._git("reset", "-q", "--", *paths), f"Unstaged: {', '.join(paths)}"),
        )

    def commit(self, options: CommitOptions) -> OperationResult[str]:
        """Create a commit and return its hash."""

        def action() -> str:
            args = ["commit", "-m", options.message]
            if options.allow_empty:
                args.append("--allow-empty")
            if options.amend:
                args.append("--amend")
            if options.author:
                args.append(f"--author={options.author.as_git_arg()}")
            self._git(*args)
            return self._git("rev-parse", "HEAD").stdout.strip()

        return self._execute("Failed to create commit", action)

    def reset(
        self,
        ref: str = "HEAD",
        mode: Union[ResetMode, str] = ResetMode.MIXED,
    ) -> OperationResult[str]:
        """Reset the current branch to *ref* with one of the three modes."""
        try:
            mode = ResetMode(mode)
        except ValueError:
            raise _options_error(
                f"Invalid reset mode {mode!r}",
                {"mode": str(mode)},
                code=ErrorCode.INVALID_RESET_MODE,
                allowed=[m.value for m in ResetMode],
            ) from None
        _reject_option_like(ref, "ref")
        return self._execute(
            f"Failed to reset to '{ref}'",
            lambda: _output(self._git("reset", f"--{mode.value}", ref), f"Reset to {ref} ({mode.value})"),
        )

    def clean(self, directories: bool = False, include_ignored: bool = False) -> OperationResult[str]:
        """Remove untracked files (always forced)."""
        args = ["clean", "-f"]
        if directories:
            args.append("-d")
        if include_ignored:
            args.append("-x")
        return self._execute(
            "Failed to clean working directory",
            lambda: _output(self._git(*args), "Nothing to clean"),
        )

    # ------------------------------------------------------------------
    # Branches
    # ------------------------------------------------------------------

    def create_branch(self, options: BranchOptions) -> OperationResult[str]:
        _reject_option_like(options.name, "name")
        _reject_option_like(options.start_point, "startPoint")

        def action() -> str:
            args = ["branch", options.name]
            if options.start_point:
                args.append(options.start_point)
            self._git(*args)
            if options.checkout:
                self._git("checkout", options.name)
            return f"Branch '{options.name}' created successfully"

        return self._execute(f"Failed to create branch '{options.name}'", action)

    def list_branches(self, all: bool = False) -> OperationResult[BranchSummary]:
        args = [
            "branch",
            "--no-color",
            "--format=%(HEAD)%00%(refname)%00%(refname:short)%00%(objectname)%00%(contents:subject)",
        ]
        if all:
            args.append("-a")
        return self._execute(
            "Failed to list branches",
            lambda: _parse_branches(self._git(*args).stdout),
        )

    def checkout(self, target: str, create_branch: bool = False) -> OperationResult[str]:
        _reject_option_like(target, "target")
        args = ["checkout"] + (["-b"] if create_branch else []) + [target]
        return self._execute(
            f"Failed to checkout '{target}'",
            lambda: _output(self._git(*args), f"Switched to '{target}'"),
        )

    def delete_branch(self, name: str, force: bool = False) -> OperationResult[str]:
        _reject_option_like(name, "name")
        return self._execute(
            f"Failed to delete branch '{name}'",
            lambda: _output(
                self._git("branch", "-D" if force else "-d", name),
                f"Deleted branch {name}",
            ),
        )

    def merge(self, options: MergeOptions) -> OperationResult[str]:
        """Merge ``options.branch`` into the current branch.

        Raises:
            InvalidOptionsError: If both ``ff_only`` and ``no_ff`` are set.
        """
        if options.ff_only and options.no_ff:
            raise _options_error(
                "Options 'ff_only' and 'no_ff' are mutually exclusive",
                {"ff_only": True, "no_ff": True},
            )
        _reject_option_like(options.branch, "branch")
        args = ["merge"]
        if options.message:
            args += ["-m", options.message]
        if options.ff_only:
            args.append("--ff-only")
        if options.no_ff:
            args.append("--no-ff")
        args.append(options.branch)
        return self._execute(
            f"Failed to merge branch '{options.branch}'",
            lambda: _output(self._git(*args), f"Merged {options.branch}"),
        )

    def rebase(self, branch: str, interactive: bool = False) -> OperationResult[str]:
        if interactive:
            raise _options_error(
                "Interactive rebase is not supported: no editor is available",
                {"interactive": True},
            )
        _reject_option_like(branch, "branch")
        return self._execute(
            f"Failed to rebase onto '{branch}'",
            lambda: _output(self._git("rebase", branch), f"Rebased onto {branch}"),
        )

    def cherry_pick(self, commits: Sequence[str]) -> OperationResult[str]:
        if not commits:
            return success("No commits specified for cherry-pick")
        for commit in commits:
            _reject_option_like(commit, "commits")
        return self._execute(
            "Failed to cherry-pick commits",
            lambda: _output(self._git("cherry-pick", *commits), "Cherry-pick complete"),
        )

    # ------------------------------------------------------------------
    # Remotes
    # ------------------------------------------------------------------

    def add_remote(self, name: str, url: str) -> OperationResult[str]:
        _reject_option_like(name, "name")
        _reject_option_like(url, "url")
        self._check_local_source(url, "url")
        return self._execute(
            f"Failed to add remote '{name}'",
            lambda: _output(self._git("remote", "add", name, url), f"Remote '{name}' added"),
        )

    def list_remotes(self) -> OperationResult[List[RemoteInfo]]:
        return self._execute(
            "Failed to list remotes",
            lambda: _parse_remotes(self._git("remote", "-v").stdout),
        )

    def fetch(self, remote: str = "origin", branch: Optional[str] = None) -> OperationResult[str]:
        _reject_option_like(remote, "remote")
        _reject_option_like(branch, "branch")
        self._check_local_source(remote, "remote")
        args = ["fetch", remote] + ([branch] if branch else [])
        return self._execute(
            f"Failed to fetch from remote '{remote}'",
            lambda: _output(self._git(*args), f"Fetched from {remote}"),
        )

    def pull(self, options: Optional[PullOptions] = None) -> OperationResult[str]:
        options = options or PullOptions()
        _reject_option_like(options.remote, "remote")
        _reject_option_like(options.branch, "branch")
        self._check_local_source(options.remote, "remote")
        args = ["pull"]
        if options.rebase:
            args.append("--rebase")
        if options.remote:
            args.append(options.remote)
            if options.branch:
                args.append(options.branch)
        return self._execute(
            "Failed to pull changes",
            lambda: _output(self._git(*args), "Pull complete"),
        )

    def push(self, options: Optional[PushOptions] = None) -> OperationResult[str]:
        options = options or PushOptions()
        _reject_option_like(options.remote, "remote")
        _reject_option_like(options.branch, "branch")
        self._check_local_source(options.remote, "remote")
        args = ["push"]
        if options.force:
            args.append("--force")
        if options.set_upstream:
            args.append("--set-upstream")
        args += [options.remote, options.branch]
        return self._execute(
            "Failed to push changes",
            lambda: _output(self._git(*args), "Push complete"),
        )

    # ------------------------------------------------------------------
    # Tags and stashes
    # ------------------------------------------------------------------

    def create_tag(self, options: TagOptions) -> OperationResult[str]:
        _reject_option_like(options.name, "name")
        _reject_option_like(options.ref, "ref")
        args = ["tag"]
        if options.message:
            args += ["-a", "-m", options.message]
        args.append(options.name)
        if options.ref:
            args.append(options.ref)
        return self._execute(
            f"Failed to create tag '{options.name}'",
            lambda: _output(self._git(*args), f"Tag '{options.name}' created"),
        )

    def list_tags(self) -> OperationResult[List[str]]:
        return self._execute(
            "Failed to list tags",
            lambda: [line for line in self._git("tag", "--list").stdout.splitlines() if line.strip()],
        )

    def create_stash(self, options: Optional[StashOptions] = None) -> OperationResult[str]:
        options = options or StashOptions()
        args = ["stash", "push"]
        if options.include_untracked:
            args.append("--include-untracked")
        if options.message:
            args += ["-m", options.message]
        return self._execute(
            "Failed to create stash",
            lambda: _output(self._git(*args), "Stash created"),
        )

    def list_stashes(self) -> OperationResult[str]:
        return self._execute(
            "Failed to list stashes",
            lambda: self._git("stash", "list").stdout,
        )

    def apply_stash(self, stash_id: str = DEFAULT_STASH) -> OperationResult[str]:
        _reject_option_like(stash_id, "stashId")
        return self._execute(
            f"Failed to apply stash '{stash_id}'",
            lambda: _output(self._git("stash", "apply", stash_id), f"Applied {stash_id}"),
        )

    def pop_stash(self, stash_id: str = DEFAULT_STASH) -> OperationResult[str]:
        _reject_option_like(stash_id, "stashId")
        return self._execute(
            f"Failed to pop stash '{stash_id}'",
            lambda: _output(self._git("stash", "pop", stash_id), f"Popped {stash_id}"),
        )

    # ------------------------------------------------------------------
    # History and inspection
    # ------------------------------------------------------------------

    def get_log(
        self,
        max_count: Optional[int] = None,
        file: Optional[str] = None,
    ) -> OperationResult[List[LogEntry]]:
        validated = self._relative(file, "file") if file else None
        args = [
            "log",
            f"--max-count={max_count or self._max_log_count}",
            f"--format={_LOG_FORMAT}",
        ]
        if validated:
            args += ["--", validated]
        return self._execute(
            "Failed to get commit history",
            lambda: _parse_log(self._git(*args).stdout),
        )

    def get_blame(self, file_path: str) -> OperationResult[str]:
        validated = self._relative(file_path, "filePath")
        return self._execute(
            f"Failed to get blame for file '{file_path}'",
            lambda: self._git("blame", "--", validated).stdout,
        )

    def show_commit(self, ref: str) -> OperationResult[str]:
        _reject_option_like(ref, "commitHash")
        return self._execute(
            f"Failed to show commit '{ref}'",
            lambda: self._git("show", ref).stdout,
        )

    def get_diff(
        self,
        from_ref: str,
        to_ref: str = "HEAD",
        file_path: Optional[str] = None,
    ) -> OperationResult[List[DiffEntry]]:
        _reject_option_like(from_ref, "fromRef")
        _reject_option_like(to_ref, "toRef")
        validated = self._relative(file_path, "filePath") if file_path else None
        args = ["diff", "--name-status", from_ref]
        if to_ref != "HEAD":
            args.append(to_ref)
        if validated:
            args += ["--", validated]
        return self._execute(
            "Failed to get diff",
            lambda: _parse_name_status(self._git(*args).stdout),
        )

    def get_unstaged_diff(
        self,
        file_path: Optional[str] = None,
        show_untracked: bool = True,
    ) -> OperationResult[str]:
        """Working-tree diff, optionally followed by an untracked-files section."""
        validated = self._relative(file_path, "filePath") if file_path else None

        def action() -> str:
            args = ["diff"]
            if validated:
                args += ["--", validated]
            diff = self._git(*args).stdout
            if show_untracked:
                diff = self._append_untracked(diff, validated)
            return diff

        return self._execute("Failed to get unstaged diff", action)

    def _append_untracked(self, diff: str, scope: Optional[str]) -> str:
        try:
            status = _parse_status(self._git("status", "--porcelain=v1", "-b", "-z").stdout)
        except GitCommandError as exc:
            logger.warning("Could not list untracked files: %s", exc)
            return diff
        untracked = status.not_added
        if scope and scope not in ALL_PATHS_MARKERS:
            untracked = [f for f in untracked if f == scope or f.startswith(scope.rstrip("/") + "/")]
        if not untracked:
            return diff
        if diff.strip():
            diff += "\n\n"
        diff += "# Untracked files:\n"
        for name in untracked:
            diff += f"# - {name}\n"
        return diff

    def get_staged_diff(self, file_path: Optional[str] = None) -> OperationResult[str]:
        validated = self._relative(file_path, "filePath") if file_path else None
        args = ["diff", "--cached"]
        if validated:
            args += ["--", validated]
        return self._execute(
            "Failed to get staged diff",
            lambda: self._git(*args).stdout,
        )

    def get_file_at_ref(self, file_path: str, ref: str = "HEAD") -> OperationResult[str]:
        validated = self._relative(file_path, "filePath")
        _reject_option_like(ref, "ref")
        return self._execute(
            f"Failed to get file '{file_path}' at ref '{ref}'",
            lambda: self._git("show", f"{ref}:{validated}").stdout,
        )

    def list_files_at_ref(self, dir_path: str = ".", ref: str = "HEAD") -> OperationResult[List[str]]:
        """Immediate children of *dir_path* at *ref* (never recursive).

        Names are relative to *dir_path*: listing ``a`` in a tree holding
        ``a/b/c.txt`` yields ``["b"]``.
        """
        validated = self._relative(dir_path, "dirPath")
        _reject_option_like(ref, "ref")
        treeish = ref if validated in ALL_PATHS_MARKERS else f"{ref}:{validated}"
        return self._execute(
            f"Failed to list files in directory '{dir_path}' at ref '{ref}'",
            lambda: [
                line for line in self._git("ls-tree", "--name-only", treeish).stdout.splitlines()
                if line.strip()
            ],
        )


# ---------------------------------------------------------------------------
# Output parsers
# ---------------------------------------------------------------------------


def _parse_status(output: str) -> RepositoryStatus:
    """Parse ``git status --porcelain=v1 -b -z`` output."""
    status = RepositoryStatus()
    entries = output.split("\0")
    i = 0
    while i < len(entries):
        entry = entries[i]
        i += 1
        if not entry:
            continue
        if entry.startswith("## "):
            _apply_branch_header(status, entry[3:])
            continue

        code, path = entry[:2], entry[3:]
        original = None
        if code[0] in "RC" or code[1] in "RC":
            original = entries[i] if i < len(entries) else None
            i += 1

        index, worktree = code[0], code[1]
        status.files.append(
            FileStatus(path=path, index=index, working_dir=worktree, original_path=original)
        )

        if code == "??":
            status.not_added.append(path)
            continue
        if code in _CONFLICT_CODES:
            status.conflicted.append(path)
            continue
        if index not in " ?":
            status.staged.append(path)
        if index == "A":
            status.created.append(path)
        if "D" in code:
            status.deleted.append(path)
        if "M" in code:
            status.modified.append(path)
        if index == "R":
            status.renamed.append(path)
    return status


def _apply_branch_header(status: RepositoryStatus, header: str) -> None:
    for prefix in ("No commits yet on ", "Initial commit on "):
        if header.startswith(prefix):
            status.current = header[len(prefix):]
            return
    if header.startswith("HEAD (no branch)"):
        status.detached = True
        return
    match = _TRACKING_RE.match(header)
    if not match:
        return
    status.current = match.group("local")
    status.tracking = match.group("remote")
    track = match.group("track") or ""
    ahead = re.search(r"ahead (\d+)", track)
    behind = re.search(r"behind (\d+)", track)
    status.ahead = int(ahead.group(1)) if ahead else 0
    status.behind = int(behind.group(1)) if behind else 0


def _parse_branches(output: str) -> BranchSummary:
    summary = BranchSummary()
    for line in output.splitlines():
        if not line.strip():
            continue
        head, refname, short, commit, subject = (line.split("\0") + [""] * 5)[:5]
        is_current = head == "*"
        if refname.startswith("refs/remotes/"):
            name = "remotes/" + refname[len("refs/remotes/"):]
        elif refname.startswith("refs/heads/"):
            name = refname[len("refs/heads/"):]
        else:
            # "(HEAD detached at ...)"
            name = short
            if is_current:
                summary.detached = True
        summary.branches.append(
            BranchInfo(name=name, commit=commit, label=subject, current=is_current)
        )
        if is_current and not summary.detached:
            summary.current = name
    return summary


def _parse_remotes(output: str) -> List[RemoteInfo]:
    remotes: dict[str, RemoteInfo] = {}
    for line in output.splitlines():
        parts = line.split()
        if len(parts) < 2:
            continue
        name, url = parts[0], parts[1]
        kind = parts[2] if len(parts) > 2 else "(fetch)"
        remote = remotes.setdefault(name, RemoteInfo(name=name))
        if kind == "(push)":
            remote.push_url = url
        else:
            remote.fetch_url = url
    return list(remotes.values())


def _parse_log(output: str) -> List[LogEntry]:
    entries = []
    for record in output.split(_RS):
        record = record.strip("\n")
        if not record:
            continue
        fields = record.split(_FS)
        if len(fields) < 6:
            continue
        entries.append(
            LogEntry(
                hash=fields[0],
                abbrev_hash=fields[1],
                author_name=fields[2],
                author_email=fields[3],
                date=fields[4],
                subject=_FS.join(fields[5:]),
            )
        )
    return entries


def _parse_name_status(output: str) -> List[DiffEntry]:
    entries = []
    for line in output.splitlines():
        if not line.strip():
            continue
        code, *paths = line.split("\t")
        status = _DIFF_STATUS.get(code[:1], code)
        if code[:1] in ("R", "C") and len(paths) >= 2:
            entries.append(DiffEntry(path=paths[1], status=status, old_path=paths[0]))
        else:
            entries.append(DiffEntry(path="\t".join(paths), status=status))
    return entries
