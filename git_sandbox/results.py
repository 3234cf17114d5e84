"""Success/failure envelope and the shared error classifier.

Every facade operation returns an :class:`OperationResult`.  The invariant
(exactly one of ``data`` / ``error`` populated, matching ``success``) is
enforced by the model validator, so an envelope built by hand cannot break it.
"""

from __future__ import annotations

import logging
import traceback
from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, model_validator

from git_sandbox.errors import (
    EmptyContext,
    ErrorCategory,
    ErrorCode,
    ErrorContext,
    ErrorRecord,
    ErrorSeverity,
    ExceptionContext,
    GitCommandContext,
    GitCommandError,
    ProtocolError,
    SystemContext,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Max characters of stderr kept in an error context.
STDERR_CONTEXT_LIMIT = 4096


class OperationResult(BaseModel, Generic[T]):
    """Tagged union: ``success`` with ``data`` or failure with ``error``."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    success: bool
    data: Optional[T] = None
    error: Optional[ErrorRecord] = None

    @model_validator(mode="after")
    def _exactly_one_branch(self) -> "OperationResult[T]":
        if self.success:
            if self.error is not None:
                raise ValueError("successful result must not carry an error")
            if self.data is None:
                raise ValueError("successful result must carry data")
        if not self.success:
            if self.error is None:
                raise ValueError("failed result must carry an error")
            if self.data is not None:
                raise ValueError("failed result must not carry data")
        return self

    def unwrap(self) -> T:
        """Return ``data`` or raise ``ValueError`` describing the error."""
        if not self.success:
            if self.error is None:
                raise ValueError("failed result carries no error")
            raise ValueError(f"{self.error.code}: {self.error.message}")
        return self.data  # type: ignore[return-value]

    def to_dict(self) -> dict[str, Any]:
        if self.success:
            data = self.data
            if isinstance(data, BaseModel):
                data = data.model_dump(mode="json")
            elif isinstance(data, list):
                data = [
                    item.model_dump(mode="json") if isinstance(item, BaseModel) else item
                    for item in data
                ]
            return {"success": True, "data": data}
        if self.error is None:
            raise ValueError("failed result carries no error")
        return {"success": False, "error": self.error.to_dict()}


def success(data: T) -> OperationResult[T]:
    return OperationResult(success=True, data=data)


def failure(error: ErrorRecord) -> OperationResult[Any]:
    return OperationResult(success=False, error=error)


def create_error(
    message: str,
    code: str,
    category: ErrorCategory,
    severity: ErrorSeverity = ErrorSeverity.ERROR,
    context: Optional[ErrorContext] = None,
    stack: Optional[str] = None,
) -> ErrorRecord:
    """Build an :class:`ErrorRecord` stamped with the current time."""
    return ErrorRecord(
        message=message,
        code=code,
        category=category,
        severity=severity,
        context=context if context is not None else EmptyContext(),
        stack=stack,
    )


def classify_exception(exc: BaseException, default_message: str) -> ErrorRecord:
    """Convert an arbitrary failure into one :class:`ErrorRecord`.

    * ``GitCommandError`` (git reported a structured failure) -> category GIT,
      the tool's own code when present, command/args/stderr in context.
    * ``OSError`` -> category SYSTEM with the offending path and errno.
    * Anything else -> category UNKNOWN, code ``UNEXPECTED_ERROR``, with stack.
    """
    if isinstance(exc, GitCommandError):
        stderr = exc.stderr or None
        if stderr and len(stderr) > STDERR_CONTEXT_LIMIT:
            stderr = stderr[:STDERR_CONTEXT_LIMIT]
        return create_error(
            str(exc) or default_message,
            exc.code or ErrorCode.GIT_ERROR,
            ErrorCategory.SYSTEM if exc.code == ErrorCode.GIT_NOT_FOUND else ErrorCategory.GIT,
            context=GitCommandContext(
                command=exc.command,
                args=exc.args_list,
                exit_code=exc.exit_code,
                stderr=stderr,
            ),
        )

    if isinstance(exc, OSError):
        return create_error(
            f"{default_message}: {exc.strerror or exc}",
            ErrorCode.FILESYSTEM_ERROR,
            ErrorCategory.SYSTEM,
            context=SystemContext(
                path=str(exc.filename) if exc.filename is not None else None,
                errno=exc.errno,
            ),
        )

    logger.error("%s: unexpected %s", default_message, type(exc).__name__, exc_info=exc)
    stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return create_error(
        str(exc) or default_message,
        ErrorCode.UNEXPECTED_ERROR,
        ErrorCategory.UNKNOWN,
        context=ExceptionContext(exception_type=type(exc).__name__),
        stack=stack,
    )


def protocol_error(
    message: str,
    code: str,
    context: Optional[ErrorContext] = None,
) -> ProtocolError:
    """Build a :class:`ProtocolError` for a request the adapter cannot parse."""
    return ProtocolError(
        create_error(message, code, ErrorCategory.PROTOCOL, context=context)
    )
