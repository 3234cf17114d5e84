"""Error taxonomy and exception hierarchy for git-sandbox.

Every failure the sandbox reports is described by an :class:`ErrorRecord`:
a message, a machine-readable code, a category, a severity, a timestamp and
a typed context payload.  ``category`` together with ``code`` is enough to
tell a path-traversal rejection apart from a git failure.

Exceptions come in two flavours:

* :class:`RejectedRequestError` and its subclasses carry a finished
  ``ErrorRecord``.  They are raised at the point of rejection (before git
  runs) and must propagate unchanged to the adapter boundary.
* :class:`GitCommandError` describes a git invocation that ran and failed.
  The facade catches it and converts it into a failure result.

This module is a base-layer module: it must NOT import from any
other ``git_sandbox`` submodule.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


# ---------------------------------------------------------------------------
# Categories, severities, codes
# ---------------------------------------------------------------------------


class ErrorCategory(str, Enum):
    """System area a failure belongs to."""

    VALIDATION = "VALIDATION"  # bad input or sandbox rejection, caller-fixable
    GIT = "GIT"  # git ran and reported a failure
    PROTOCOL = "PROTOCOL"  # malformed request shape
    SYSTEM = "SYSTEM"  # filesystem / environment problem
    UNKNOWN = "UNKNOWN"


class ErrorSeverity(IntEnum):
    """How critical a failure is. Ordered, so severities compare."""

    DEBUG = 0
    INFO = 1
    WARN = 2
    ERROR = 3
    FATAL = 4


class ErrorCode:
    """Machine-readable error codes."""

    PATH_OUTSIDE_BASEDIR = "PATH_OUTSIDE_BASEDIR"
    PATH_TRAVERSAL_ATTEMPT = "PATH_TRAVERSAL_ATTEMPT"
    PATH_INVALID = "PATH_INVALID"
    WORKING_DIRECTORY_NOT_SET = "WORKING_DIRECTORY_NOT_SET"
    SYMLINK_ESCAPE = "SYMLINK_ESCAPE"
    INVALID_OPTIONS = "INVALID_OPTIONS"
    INVALID_RESET_MODE = "INVALID_RESET_MODE"
    NOT_A_REPOSITORY = "NOT_A_REPOSITORY"

    GIT_ERROR = "GIT_ERROR"
    GIT_NOT_FOUND = "GIT_NOT_FOUND"
    GIT_TIMEOUT = "GIT_TIMEOUT"
    FILESYSTEM_ERROR = "FILESYSTEM_ERROR"

    UNKNOWN_TOOL = "UNKNOWN_TOOL"
    INVALID_PARAMS = "INVALID_PARAMS"
    INVALID_RESOURCE_URI = "INVALID_RESOURCE_URI"

    UNEXPECTED_ERROR = "UNEXPECTED_ERROR"


# ---------------------------------------------------------------------------
# Typed context payloads
# ---------------------------------------------------------------------------


class _Context(BaseModel):
    model_config = ConfigDict(frozen=True)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(exclude={"kind"}, exclude_none=True)


class EmptyContext(_Context):
    kind: Literal["empty"] = "empty"


class PathContext(_Context):
    """Context for a path rejected by the sandbox."""

    kind: Literal["path"] = "path"
    requested_path: str
    resolved_path: Optional[str] = None
    root: Optional[str] = None
    parameter: Optional[str] = None


class GitCommandContext(_Context):
    """Context for a git invocation that failed."""

    kind: Literal["git"] = "git"
    command: Optional[str] = None
    args: list[str] = Field(default_factory=list)
    exit_code: Optional[int] = None
    stderr: Optional[str] = None


class OptionsContext(_Context):
    """Context for mutually exclusive or out-of-range options."""

    kind: Literal["options"] = "options"
    options: dict[str, Any] = Field(default_factory=dict)
    allowed: Optional[list[str]] = None


class SystemContext(_Context):
    """Context for filesystem / environment failures."""

    kind: Literal["system"] = "system"
    path: Optional[str] = None
    errno: Optional[int] = None


class ExceptionContext(_Context):
    """Context for unexpected exceptions."""

    kind: Literal["exception"] = "exception"
    exception_type: str
    details: dict[str, Any] = Field(default_factory=dict)


ErrorContext = Annotated[
    Union[
        EmptyContext,
        PathContext,
        GitCommandContext,
        OptionsContext,
        SystemContext,
        ExceptionContext,
    ],
    Field(discriminator="kind"),
]


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class ErrorRecord(BaseModel):
    """Structured, categorized description of a failure."""

    model_config = ConfigDict(frozen=True)

    message: str
    code: str
    category: ErrorCategory
    severity: ErrorSeverity = ErrorSeverity.ERROR
    timestamp: str = Field(default_factory=_utc_now)
    context: ErrorContext = Field(default_factory=EmptyContext)
    stack: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Render the wire form with a flat context map."""
        data: dict[str, Any] = {
            "message": self.message,
            "code": self.code,
            "category": self.category.value,
            "severity": self.severity.name,
            "timestamp": self.timestamp,
            "context": self.context.to_dict(),
        }
        if self.stack:
            data["stack"] = self.stack
        return data


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class GitSandboxError(Exception):
    """Base exception for all git-sandbox errors."""


class ConfigurationError(GitSandboxError):
    """Missing or invalid configuration; the process must not start."""


class RejectedRequestError(GitSandboxError):
    """A request rejected before any git command ran.

    Carries a finished :class:`ErrorRecord`.  Callers must not re-wrap it or
    alter its category or severity.
    """

    def __init__(self, record: ErrorRecord):
        super().__init__(record.message)
        self.record = record

    def __reduce__(self):
        return (type(self), (self.record,))

    @property
    def code(self) -> str:
        return self.record.code

    @property
    def category(self) -> ErrorCategory:
        return self.record.category


class SandboxViolationError(RejectedRequestError):
    """A path escaped the sandbox root or the bound repository."""


class InvalidOptionsError(RejectedRequestError):
    """Mutually exclusive or out-of-enumeration options."""


class ProtocolError(RejectedRequestError):
    """Malformed request: unknown tool, bad parameters or resource URI."""


class GitCommandError(GitSandboxError):
    """A git invocation that ran and exited non-zero (or could not run)."""

    def __init__(
        self,
        message: str,
        *,
        command: str = "git",
        args: Optional[list[str]] = None,
        exit_code: Optional[int] = None,
        stdout: str = "",
        stderr: str = "",
        code: Optional[str] = None,
    ):
        super().__init__(message)
        self.command = command
        self.args_list = list(args or [])
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        self.code = code

    def __reduce__(self):
        return (
            _rebuild_git_command_error,
            (
                str(self),
                self.command,
                self.args_list,
                self.exit_code,
                self.stdout,
                self.stderr,
                self.code,
            ),
        )


def _rebuild_git_command_error(message, command, args, exit_code, stdout, stderr, code):
    return GitCommandError(
        message,
        command=command,
        args=args,
        exit_code=exit_code,
        stdout=stdout,
        stderr=stderr,
        code=code,
    )
