"""
Top-level pytest conftest.py -- shared fixtures.

Provides:
    git_available - session-scoped check for the git binary
    requires_git  - skip the test when git is missing
    sandbox_root  - temporary directory used as the sandbox root
    local_repo    - deterministic git repo inside the sandbox root
    registry      - fresh global working directory registry
    sandbox       - PathSandbox over sandbox_root
    runner        - GitRunner with a fixed test identity
    tool_context  - ToolContext wired to the fixtures above
"""

import os
import shutil
import subprocess

import pytest

from git_sandbox.config import ServerConfig
from git_sandbox.git_subprocess import GitRunner
from git_sandbox.path_sandbox import PathSandbox
from git_sandbox.settings import GlobalWorkingDirectoryRegistry
from git_sandbox.tools import ToolContext

TEST_AUTHOR_NAME = "Test User"
TEST_AUTHOR_EMAIL = "test@example.com"


@pytest.fixture(scope="session")
def git_available():
    """Return True if the ``git`` command is on PATH."""
    return shutil.which("git") is not None


@pytest.fixture
def requires_git(git_available):
    """Skip the test when git is not installed."""
    if not git_available:
        pytest.skip("git is not available")


@pytest.fixture
def sandbox_root(tmp_path):
    """Sandbox root directory (symlinks resolved so realpath checks agree)."""
    root = tmp_path / "sandbox"
    root.mkdir()
    return os.path.realpath(str(root))


@pytest.fixture
def local_repo(sandbox_root, requires_git):
    """Create a deterministic git repo inside the sandbox root.

    The repo has ``main`` as its default branch, a single ``README.md``,
    and one initial commit.  Yields the absolute path to the repo root.
    """
    repo = os.path.join(sandbox_root, "repo")
    os.makedirs(repo)

    env = {
        **os.environ,
        "GIT_AUTHOR_NAME": TEST_AUTHOR_NAME,
        "GIT_AUTHOR_EMAIL": TEST_AUTHOR_EMAIL,
        "GIT_COMMITTER_NAME": TEST_AUTHOR_NAME,
        "GIT_COMMITTER_EMAIL": TEST_AUTHOR_EMAIL,
    }
    run_opts = {"cwd": repo, "env": env, "capture_output": True, "text": True}

    subprocess.run(["git", "init", "-b", "main"], check=True, **run_opts)
    with open(os.path.join(repo, "README.md"), "w") as f:
        f.write("# Test Repository\n")
    subprocess.run(["git", "add", "README.md"], check=True, **run_opts)
    subprocess.run(
        ["git", "commit", "-m", "Initial commit"], check=True, **run_opts
    )

    yield repo


@pytest.fixture
def registry():
    return GlobalWorkingDirectoryRegistry()


@pytest.fixture
def sandbox(sandbox_root, registry):
    return PathSandbox(sandbox_root, registry)


@pytest.fixture
def runner():
    return GitRunner(author_name=TEST_AUTHOR_NAME, author_email=TEST_AUTHOR_EMAIL)


@pytest.fixture
def tool_context(sandbox_root, sandbox, runner):
    config = ServerConfig(
        base_dir=sandbox_root,
        author_name=TEST_AUTHOR_NAME,
        author_email=TEST_AUTHOR_EMAIL,
    )
    return ToolContext(config=config, sandbox=sandbox, runner=runner)
