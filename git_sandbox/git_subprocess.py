"""Environment sanitization and subprocess execution for git commands.

The facade never shells out directly; every invocation goes through
:class:`GitRunner`, which:

- starts git from a minimal, allowlisted environment (no ``GIT_*`` or
  ``SSH_*`` variables leak from the server process),
- disables hooks and the fs-monitor unless configured otherwise,
- pins the commit identity with ``-c user.name=… -c user.email=…`` when one
  is known, and
- raises :class:`GitCommandError` for non-zero exits so the facade can
  classify the failure.

Commands run sequentially and synchronously.  No timeout is applied unless
the administrator configures one; there is no cancellation.
"""

from __future__ import annotations

import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from git_sandbox.errors import ErrorCode, GitCommandError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Environment Sanitization
# ---------------------------------------------------------------------------

# Minimal allowed env vars for git execution
ENV_ALLOWED: frozenset = frozenset({
    "PATH",
    "HOME",
    "USER",
    "LANG",
    "LC_ALL",
    "LC_CTYPE",
    "TERM",
    "TMPDIR",
    "TZ",
})

# Max bytes of stderr included in log lines
LOG_OUTPUT_TRUNCATE = 1024


def build_clean_env(extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Build a sanitized environment for git subprocess execution.

    Starts from an empty env and only copies allowed variables.
    All GIT_* and SSH_* vars are excluded.  Git is forced into
    non-interactive mode so a credential prompt cannot hang a request.
    """
    clean: Dict[str, str] = {}

    for key in ENV_ALLOWED:
        val = os.environ.get(key)
        if val is not None:
            clean[key] = val

    # Ensure PATH is always set
    if "PATH" not in clean:
        clean["PATH"] = "/usr/local/bin:/usr/bin:/bin"

    clean["GIT_TERMINAL_PROMPT"] = "0"
    clean["GIT_EDITOR"] = "true"
    clean["GIT_PAGER"] = "cat"

    if extra:
        clean.update(extra)
    return clean


# ---------------------------------------------------------------------------
# Git Config Helpers
# ---------------------------------------------------------------------------


def _git_config_get(
    git_binary: str,
    env: Dict[str, str],
    key: str,
) -> Optional[str]:
    """Read a single global git config value (best-effort)."""
    try:
        result = subprocess.run(
            [git_binary, "config", "--global", "--get", key],
            capture_output=True,
            env=env,
        )
    except OSError:
        return None
    if result.returncode != 0:
        return None
    return result.stdout.decode("utf-8", errors="replace").strip() or None


def read_global_identity(git_binary: str = "git") -> tuple[Optional[str], Optional[str]]:
    """Return ``(user.name, user.email)`` from the global git config."""
    env = build_clean_env()
    name = _git_config_get(git_binary, env, "user.name")
    email = _git_config_get(git_binary, env, "user.email")
    if not (name and email):
        logger.info("Global git identity not configured; using git defaults")
    return name, email


# ---------------------------------------------------------------------------
# Git Execution
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class GitCommandResult:
    """Completed git invocation."""

    args: List[str]
    exit_code: int
    stdout: str
    stderr: str


class GitRunner:
    """Runs git commands in a working directory.

    Args:
        git_binary: Git executable.
        timeout: Optional per-command timeout in seconds (``None`` = none).
        disable_hooks: Inject ``core.hooksPath=/dev/null`` and
            ``core.fsmonitor=false`` before every command.
        author_name / author_email: Identity pinned via ``-c user.*``.
    """

    def __init__(
        self,
        git_binary: str = "git",
        *,
        timeout: Optional[float] = None,
        disable_hooks: bool = True,
        author_name: Optional[str] = None,
        author_email: Optional[str] = None,
    ):
        self.git_binary = git_binary
        self.timeout = timeout
        self.disable_hooks = disable_hooks
        self.author_name = author_name
        self.author_email = author_email

    def _base_command(self) -> List[str]:
        cmd = [self.git_binary]
        if self.disable_hooks:
            cmd += ["-c", "core.hooksPath=/dev/null", "-c", "core.fsmonitor=false"]
        if self.author_name:
            cmd += ["-c", f"user.name={self.author_name}"]
        if self.author_email:
            cmd += ["-c", f"user.email={self.author_email}"]
        return cmd

    def run(
        self,
        args: Sequence[str],
        cwd: str,
        *,
        check: bool = True,
    ) -> GitCommandResult:
        """Run ``git <args>`` in *cwd*.

        Raises:
            GitCommandError: If git is missing, times out, or (with
                ``check=True``) exits non-zero.
        """
        args = list(args)
        cmd = self._base_command() + args
        logger.debug("git %s (cwd=%s)", " ".join(args), cwd)

        try:
            completed = subprocess.run(
                cmd,
                cwd=cwd,
                capture_output=True,
                timeout=self.timeout,
                env=build_clean_env(),
            )
        except FileNotFoundError as exc:
            if not os.path.isdir(cwd):
                # Missing working directory, not a missing binary
                raise
            raise GitCommandError(
                f"Git executable not found: {self.git_binary} ({exc.strerror})",
                command=_command_name(args),
                args=args,
                code=ErrorCode.GIT_NOT_FOUND,
            ) from exc
        except subprocess.TimeoutExpired as exc:
            raise GitCommandError(
                f"git {_command_name(args)} timed out after {self.timeout}s",
                command=_command_name(args),
                args=args,
                code=ErrorCode.GIT_TIMEOUT,
            ) from exc

        stdout = completed.stdout.decode("utf-8", errors="replace")
        stderr = completed.stderr.decode("utf-8", errors="replace")
        result = GitCommandResult(
            args=args,
            exit_code=completed.returncode,
            stdout=stdout,
            stderr=stderr,
        )

        if check and completed.returncode != 0:
            logger.info(
                "git %s exited %d: %s",
                _command_name(args),
                completed.returncode,
                stderr[:LOG_OUTPUT_TRUNCATE].strip(),
            )
            message = stderr.strip() or stdout.strip() or (
                f"git {_command_name(args)} exited with code {completed.returncode}"
            )
            raise GitCommandError(
                message,
                command=_command_name(args),
                args=args,
                exit_code=completed.returncode,
                stdout=stdout,
                stderr=stderr,
            )

        return result


def _command_name(args: Sequence[str]) -> str:
    for arg in args:
        if not arg.startswith("-"):
            return arg
    return "git"
