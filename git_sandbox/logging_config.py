"""Logging for the git sandbox server.

Every record emitted while a tool call or resource read is in flight carries
the HTTP request id and the tool name, so a rejected path or a failing git
command can be traced back to the agent request that caused it. Correlation
fields live in contextvars, which keeps them separate per worker thread of
the threaded werkzeug server.
"""

import json
import logging
import sys
import time
import uuid
from contextvars import ContextVar
from typing import Any, Optional

_request_id: ContextVar[Optional[str]] = ContextVar("request_id", default=None)
_tool: ContextVar[Optional[str]] = ContextVar("tool", default=None)
_extra_context: ContextVar[dict] = ContextVar("extra_context", default={})

# LogRecord attributes that are not caller-supplied extras
_STANDARD_ATTRS = frozenset({
    "name", "msg", "args", "created", "filename", "funcName",
    "levelname", "levelno", "lineno", "module", "msecs",
    "pathname", "process", "processName", "relativeCreated",
    "stack_info", "exc_info", "exc_text", "thread", "threadName",
    "message", "taskName",
})


def set_context(
    request_id: Optional[str] = None,
    tool: Optional[str] = None,
    **extra: Any,
) -> None:
    """Merge correlation fields into the current context."""
    if request_id is not None:
        _request_id.set(request_id)
    if tool is not None:
        _tool.set(tool)
    if extra:
        _extra_context.set({**_extra_context.get(), **extra})


def get_context() -> dict[str, Any]:
    context: dict[str, Any] = {}
    if _request_id.get():
        context["request_id"] = _request_id.get()
    if _tool.get():
        context["tool"] = _tool.get()
    context.update(_extra_context.get())
    return context


def clear_context() -> None:
    _request_id.set(None)
    _tool.set(None)
    _extra_context.set({})


def _timestamp(record: logging.LogRecord) -> str:
    stamp = time.strftime("%Y-%m-%dT%H:%M:%S", time.gmtime(record.created))
    return f"{stamp}.{int(record.msecs * 1000):06d}Z"


class _ContextFormatter(logging.Formatter):
    def __init__(self, include_timestamp: bool = True, include_location: bool = True):
        super().__init__()
        self.include_timestamp = include_timestamp
        self.include_location = include_location


class JSONFormatter(_ContextFormatter):
    """One JSON object per line.

    Keys: ``timestamp``, ``level``, ``logger``, ``message``, the correlation
    fields, ``location`` and any ``extra=`` passed to the logging call
    (``event``, ``status_code``, ``duration_ms`` from the HTTP layer).
    """

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {}
        if self.include_timestamp:
            entry["timestamp"] = _timestamp(record)
        entry.update(
            level=record.levelname,
            logger=record.name,
            message=record.getMessage(),
        )
        entry.update(get_context())
        if self.include_location:
            entry["location"] = f"{record.filename}:{record.lineno}:{record.funcName}"
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        entry.update(
            (key, value)
            for key, value in record.__dict__.items()
            if key not in _STANDARD_ATTRS and not key.startswith("_")
        )
        return json.dumps(entry, default=str)


class TextFormatter(_ContextFormatter):
    """``<time> LEVEL [logger] [request_id/tool] message`` for terminals."""

    def __init__(self, include_timestamp: bool = True, include_location: bool = False):
        super().__init__(include_timestamp, include_location)

    def format(self, record: logging.LogRecord) -> str:
        parts = [_timestamp(record)] if self.include_timestamp else []
        parts += [record.levelname, f"[{record.name}]"]

        context = get_context()
        ids = [context[key] for key in ("request_id", "tool") if key in context]
        if ids:
            parts.append(f"[{'/'.join(ids)}]")
        parts.append(record.getMessage())
        if self.include_location:
            parts.append(f"({record.filename}:{record.lineno})")

        line = " ".join(parts)
        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)
        return line


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    include_timestamp: bool = True,
    include_location: bool = True,
) -> None:
    """Replace the root logger's handlers with one stderr handler.

    ``format_type`` is ``"json"`` or ``"text"``; ``level`` is a level name
    in any case, falling back to INFO when unknown.
    """
    formatter_cls = JSONFormatter if format_type.lower() == "json" else TextFormatter
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        formatter_cls(include_timestamp=include_timestamp, include_location=include_location)
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(handler)


class LogContext:
    """Scope correlation fields to a tool call or resource read.

    The fields in force before ``__enter__`` are restored on exit, so a
    tool name set for one call never bleeds into the next request handled
    by the same thread.
    """

    def __init__(
        self,
        request_id: Optional[str] = None,
        tool: Optional[str] = None,
        **extra: Any,
    ):
        self.request_id = request_id
        self.tool = tool
        self.extra = extra
        self._saved: tuple[Optional[str], Optional[str], dict] = (None, None, {})

    def __enter__(self) -> "LogContext":
        self._saved = (_request_id.get(), _tool.get(), _extra_context.get())
        set_context(request_id=self.request_id, tool=self.tool, **self.extra)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        request_id, tool, extra = self._saved
        _request_id.set(request_id)
        _tool.set(tool)
        _extra_context.set(extra)


def generate_request_id() -> str:
    return str(uuid.uuid4())


def flask_request_middleware(app) -> None:
    """Log each HTTP request and tag it with a request id.

    A client-supplied ``X-Request-ID`` is reused, otherwise one is generated.
    The id is echoed back in the response header.
    """
    from flask import g, request

    logger = logging.getLogger("git_sandbox.http")

    @app.before_request
    def before_request():
        g.request_id = request.headers.get("X-Request-ID") or generate_request_id()
        set_context(request_id=g.request_id, method=request.method, path=request.path)
        logger.info(f"{request.method} {request.path}", extra={"event": "request_start"})
        g.request_start_time = time.time()

    @app.after_request
    def after_request(response):
        started = g.get("request_start_time")
        duration_ms = (time.time() - started) * 1000 if started is not None else None
        logger.info(
            f"{request.method} {request.path} -> {response.status_code}",
            extra={
                "event": "request_complete",
                "status_code": response.status_code,
                "duration_ms": duration_ms,
            },
        )
        if "request_id" in g:
            response.headers["X-Request-ID"] = g.request_id
        return response

    @app.teardown_request
    def teardown_request(exception=None):
        clear_context()
        if exception:
            logger.error(f"Request failed with exception: {exception}", exc_info=True)
