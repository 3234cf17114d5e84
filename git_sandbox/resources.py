"""Read-only resource adapter.

Resources are addressed by URIs of the form::

    git://repo/{repoPath}/{kind}[/{argument...}][?query]

where ``repoPath`` is URL-encoded into a single segment (``%2Fdata%2Frepo``).
Supported kinds: ``info``, ``branches``, ``remotes``, ``tags``,
``file/{filePath}?ref=``, ``ls/{dirPath}?ref=``, ``diff/{fromRef}/{toRef}?path=``,
``diff-unstaged?path=``, ``diff-staged?path=``, ``log?maxCount=&file=``,
``blame/{filePath}`` and ``show/{commitHash}``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import parse_qs, unquote, urlsplit

from git_sandbox.errors import ErrorCode, PathContext
from git_sandbox.git_service import GitService
from git_sandbox.logging_config import LogContext
from git_sandbox.results import OperationResult, protocol_error
from git_sandbox.tools import ToolContext, not_a_repository

logger = logging.getLogger(__name__)

SCHEME = "git"
HOST = "repo"


@dataclass(frozen=True)
class ResourceRequest:
    repo_path: str
    kind: str
    segments: List[str] = field(default_factory=list)
    """Remaining decoded path segments after the kind."""

    query: Dict[str, str] = field(default_factory=dict)

    @property
    def argument(self) -> Optional[str]:
        """Remaining segments joined back into one repository-relative path."""
        return "/".join(self.segments) if self.segments else None


def _invalid(uri: str, reason: str):
    return protocol_error(
        f"Invalid resource URI '{uri}': {reason}",
        ErrorCode.INVALID_RESOURCE_URI,
        context=PathContext(requested_path=uri),
    )


def parse_resource_uri(uri: str) -> ResourceRequest:
    """Split a resource URI into repository path, kind, arguments and query.

    Raises:
        ProtocolError: If the URI does not follow the ``git://repo/`` layout.
    """
    parts = urlsplit(uri)
    if parts.scheme != SCHEME or parts.netloc != HOST:
        raise _invalid(uri, f"expected {SCHEME}://{HOST}/...")

    # Split before decoding so an encoded repository path stays one segment
    raw_segments = [s for s in parts.path.split("/") if s]
    if len(raw_segments) < 2:
        raise _invalid(uri, "missing repository path or resource kind")

    repo_path = unquote(raw_segments[0])
    kind = raw_segments[1]
    segments = [unquote(s) for s in raw_segments[2:]]
    query = {k: v[-1] for k, v in parse_qs(parts.query).items()}

    if kind not in _HANDLERS:
        raise _invalid(uri, f"unknown resource kind '{kind}'")
    return ResourceRequest(repo_path=repo_path, kind=kind, segments=segments, query=query)


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def _require_argument(request: ResourceRequest, uri: str, what: str) -> str:
    if not request.argument:
        raise _invalid(uri, f"missing {what}")
    return request.argument


def _info(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.get_status()


def _branches(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.list_branches(all=request.query.get("all", "").lower() == "true")


def _remotes(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.list_remotes()


def _tags(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.list_tags()


def _file(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    file_path = _require_argument(request, uri, "file path")
    return service.get_file_at_ref(file_path, request.query.get("ref") or "HEAD")


def _ls(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.list_files_at_ref(request.argument or ".", request.query.get("ref") or "HEAD")


def _diff(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    if len(request.segments) != 2:
        raise _invalid(uri, "diff expects diff/{fromRef}/{toRef}")
    from_ref, to_ref = request.segments
    return service.get_diff(from_ref, to_ref, request.query.get("path") or None)


def _diff_unstaged(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.get_unstaged_diff(request.query.get("path") or None)


def _diff_staged(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.get_staged_diff(request.query.get("path") or None)


def _log(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    raw = request.query.get("maxCount")
    max_count = None
    if raw:
        try:
            max_count = int(raw)
        except ValueError:
            raise _invalid(uri, f"maxCount must be an integer, got {raw!r}") from None
        if max_count <= 0:
            raise _invalid(uri, f"maxCount must be positive, got {max_count}")
    return service.get_log(max_count, request.query.get("file") or None)


def _blame(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.get_blame(_require_argument(request, uri, "file path"))


def _show(service: GitService, request: ResourceRequest, uri: str) -> OperationResult[Any]:
    return service.show_commit(_require_argument(request, uri, "commit hash"))


_HANDLERS: Dict[str, Callable[[GitService, ResourceRequest, str], OperationResult[Any]]] = {
    "info": _info,
    "branches": _branches,
    "remotes": _remotes,
    "tags": _tags,
    "file": _file,
    "ls": _ls,
    "diff": _diff,
    "diff-unstaged": _diff_unstaged,
    "diff-staged": _diff_staged,
    "log": _log,
    "blame": _blame,
    "show": _show,
}


def resource_kinds() -> List[str]:
    return sorted(_HANDLERS)


def read_resource(uri: str, context: ToolContext) -> OperationResult[Any]:
    """Resolve *uri* and run the matching read-only facade operation.

    Raises:
        ProtocolError: Malformed URI.
        RejectedRequestError: Sandbox rejections from the facade.
    """
    request = parse_resource_uri(uri)
    with LogContext(resource=request.kind):
        service = context.service(request.repo_path)
        if not service.is_git_repository():
            return not_a_repository(service.repo_path)
        return _HANDLERS[request.kind](service, request, uri)
