"""Unit tests for PathSandbox normalization and containment."""

import os

import pytest

from git_sandbox.errors import ErrorCategory, ErrorCode, PathContext, SandboxViolationError
from git_sandbox.path_sandbox import PathSandbox
from git_sandbox.settings import GlobalWorkingDirectoryRegistry


class TestIsWithin:
    """Lexical, segment-aware containment."""

    @pytest.mark.parametrize(
        "candidate,root",
        [
            ("/data/repoA", "/data/repoA"),
            ("/data/repoA/file", "/data/repoA"),
            ("/data/repoA/a/b/c", "/data/repoA/"),
            ("/data/repoA/x/../y", "/data/repoA"),
            ("/", "/"),
            ("/anything", "/"),
        ],
    )
    def test_within(self, candidate, root):
        assert PathSandbox.is_within(candidate, root) is True

    @pytest.mark.parametrize(
        "candidate,root",
        [
            ("/data/repoAA/file", "/data/repoA"),
            ("/data/repository", "/data/repo"),
            ("/data", "/data/repoA"),
            ("/data/repoA/../repoB", "/data/repoA"),
            ("/data/repoA/../../etc", "/data/repoA"),
            ("relative/path", "/data"),
            ("", "/data"),
            ("/data/x", ""),
        ],
    )
    def test_not_within(self, candidate, root):
        assert PathSandbox.is_within(candidate, root) is False


class TestNormalize:
    def test_collapses_segments(self):
        sandbox = PathSandbox("/data")
        assert sandbox.normalize("/data/a/./b/../c//d") == "/data/a/c/d"

    def test_placeholder_resolves_to_registry(self):
        sandbox = PathSandbox("/data", GlobalWorkingDirectoryRegistry("/data/repo"))
        assert sandbox.normalize(".") == "/data/repo"

    def test_placeholder_unset_stays_relative(self):
        assert PathSandbox("/data").normalize(".") == "."

    def test_does_not_touch_filesystem(self):
        assert PathSandbox("/data").normalize("/does/not/exist/..") == "/does/not"


class TestConstruction:
    @pytest.mark.parametrize("root", ["", "relative"])
    def test_root_must_be_absolute(self, root):
        with pytest.raises(ValueError):
            PathSandbox(root)

    def test_root_normalized(self):
        assert PathSandbox("/data/./x/../sandbox/").root == "/data/sandbox"


class TestValidateAgainstRoot:
    def test_accepts_nested_path(self, sandbox, sandbox_root):
        path = os.path.join(sandbox_root, "repo")
        assert sandbox.validate_against_root(path) == path

    def test_accepts_root_itself(self, sandbox, sandbox_root):
        assert sandbox.validate_against_root(sandbox_root) == sandbox_root

    def test_outside_root(self, sandbox, sandbox_root):
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_against_root("/etc", param_name="repoPath")
        record = exc_info.value.record
        assert record.category == ErrorCategory.VALIDATION
        assert record.code == ErrorCode.PATH_OUTSIDE_BASEDIR
        assert isinstance(record.context, PathContext)
        assert record.context.parameter == "repoPath"
        assert record.context.requested_path == "/etc"
        assert record.context.resolved_path == "/etc"
        assert record.context.root == sandbox_root

    def test_dotdot_escape(self, sandbox, sandbox_root):
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_against_root(os.path.join(sandbox_root, "..", "other"))
        assert exc_info.value.code == ErrorCode.PATH_OUTSIDE_BASEDIR

    def test_sibling_prefix(self, sandbox, sandbox_root):
        with pytest.raises(SandboxViolationError):
            sandbox.validate_against_root(sandbox_root + "AA/file")

    @pytest.mark.parametrize("bad", ["", "/data/\x00evil"])
    def test_invalid_input(self, sandbox, bad):
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_against_root(bad)
        assert exc_info.value.code == ErrorCode.PATH_INVALID

    def test_relative_rejected(self, sandbox):
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_against_root("repo/sub")
        assert exc_info.value.code == ErrorCode.PATH_INVALID

    def test_placeholder_without_working_dir(self, sandbox):
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_against_root(".")
        assert exc_info.value.code == ErrorCode.WORKING_DIRECTORY_NOT_SET

    def test_placeholder_with_working_dir(self, sandbox, sandbox_root, registry):
        target = os.path.join(sandbox_root, "repo")
        registry.set(target)
        assert sandbox.validate_against_root(".") == target

    def test_placeholder_pointing_outside(self, sandbox, registry):
        registry.set("/etc")
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_against_root(".")
        assert exc_info.value.code == ErrorCode.PATH_OUTSIDE_BASEDIR

    def test_explicit_root(self, sandbox, sandbox_root):
        repo = os.path.join(sandbox_root, "repo")
        with pytest.raises(SandboxViolationError):
            sandbox.validate_against_root(os.path.join(sandbox_root, "other"), root=repo)

    def test_symlink_escape(self, sandbox, sandbox_root, tmp_path):
        outside = tmp_path / "outside"
        outside.mkdir()
        link = os.path.join(sandbox_root, "link")
        os.symlink(str(outside), link)
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_against_root(link)
        assert exc_info.value.code == ErrorCode.SYMLINK_ESCAPE

    def test_symlink_inside_allowed(self, sandbox, sandbox_root):
        target = os.path.join(sandbox_root, "target")
        os.makedirs(target)
        link = os.path.join(sandbox_root, "link")
        os.symlink(target, link)
        assert sandbox.validate_against_root(link) == link


class TestValidateRelative:
    @pytest.fixture
    def repo(self, sandbox_root):
        path = os.path.join(sandbox_root, "repo")
        os.makedirs(path)
        return path

    @pytest.mark.parametrize("marker", [".", ""])
    def test_all_markers_bypass(self, sandbox, repo, marker):
        assert sandbox.validate_relative(marker, repo, "files") == marker

    @pytest.mark.parametrize(
        "rel,expected",
        [
            ("src/main.py", "src/main.py"),
            ("src/../docs/a.md", "docs/a.md"),
            ("./a.txt", "a.txt"),
            ("a//b/", "a/b"),
        ],
    )
    def test_normalizes(self, sandbox, repo, rel, expected):
        assert sandbox.validate_relative(rel, repo, "filePath") == expected

    def test_absolute_inside_repo_made_relative(self, sandbox, repo):
        assert sandbox.validate_relative(os.path.join(repo, "a.txt"), repo, "filePath") == "a.txt"

    def test_escape_to_sibling_repo(self, sandbox, repo):
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_relative("../siblingRepo/secret", repo, "filePath")
        record = exc_info.value.record
        assert record.category == ErrorCategory.VALIDATION
        assert record.code == ErrorCode.PATH_TRAVERSAL_ATTEMPT
        assert record.context.parameter == "filePath"
        assert record.context.root == repo

    def test_absolute_outside_repo(self, sandbox, repo):
        with pytest.raises(SandboxViolationError):
            sandbox.validate_relative("/etc/passwd", repo, "filePath")

    def test_nul_byte(self, sandbox, repo):
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_relative("a\x00b", repo, "filePath")
        assert exc_info.value.code == ErrorCode.PATH_INVALID

    def test_symlink_out_of_repo(self, sandbox, sandbox_root, repo):
        other = os.path.join(sandbox_root, "other")
        os.makedirs(other)
        os.symlink(other, os.path.join(repo, "link"))
        with pytest.raises(SandboxViolationError) as exc_info:
            sandbox.validate_relative("link/secret", repo, "filePath")
        assert exc_info.value.code == ErrorCode.SYMLINK_ESCAPE
