"""Path confinement for every caller-supplied path.

All path validation funnels through :class:`PathSandbox` so every operation
enforces the same policy:

- Caller paths are normalised lexically (``.``/``..`` resolved, separators
  collapsed) before any comparison; the filesystem is not consulted.
- Containment is segment-aware: root ``/data/repoA`` does not contain
  ``/data/repoAA/file``.
- Existing symlinks are followed as a second check, so a link inside the root
  cannot point outside it.
- Anything ambiguous (empty string, NUL bytes, relative paths, unset
  placeholder) is a rejection.

Rejections raise :class:`SandboxViolationError` immediately; they are never
turned into ordinary failure results.
"""

from __future__ import annotations

import logging
import os
from pathlib import PurePath
from typing import Optional

from git_sandbox.errors import (
    ErrorCategory,
    ErrorCode,
    ErrorRecord,
    ErrorSeverity,
    PathContext,
    SandboxViolationError,
)
from git_sandbox.settings import PLACEHOLDER_PATH, GlobalWorkingDirectoryRegistry

logger = logging.getLogger(__name__)

# Marker values that designate "everything" rather than a filesystem path.
ALL_PATHS_MARKERS = frozenset({PLACEHOLDER_PATH, ""})


def _violation(
    message: str,
    code: str,
    *,
    requested: str,
    resolved: Optional[str],
    root: Optional[str],
    parameter: Optional[str],
) -> SandboxViolationError:
    logger.warning(
        "Sandbox rejection (%s) for %s: requested=%r resolved=%r root=%r",
        code,
        parameter or "path",
        requested,
        resolved,
        root,
    )
    record = ErrorRecord(
        message=message,
        code=code,
        category=ErrorCategory.VALIDATION,
        severity=ErrorSeverity.ERROR,
        context=PathContext(
            requested_path=requested,
            resolved_path=resolved,
            root=root,
            parameter=parameter,
        ),
    )
    return SandboxViolationError(record)


def _has_nul(path: str) -> bool:
    return "\x00" in path


class PathSandbox:
    """Decides whether a path may be used for any filesystem or git operation.

    Args:
        root: The sandbox root.  Normalised once; immutable afterwards.
        registry: Global working directory used to resolve the placeholder.
    """

    def __init__(
        self,
        root: str,
        registry: Optional[GlobalWorkingDirectoryRegistry] = None,
    ):
        if not root or not os.path.isabs(root):
            raise ValueError(f"Sandbox root must be a non-empty absolute path: {root!r}")
        self._root = os.path.normpath(root)
        self._registry = registry if registry is not None else GlobalWorkingDirectoryRegistry()

    @property
    def root(self) -> str:
        return self._root

    @property
    def registry(self) -> GlobalWorkingDirectoryRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Lexical primitives
    # ------------------------------------------------------------------

    def normalize(self, input_path: str) -> str:
        """Resolve the placeholder, then normalise lexically.

        Does not touch the filesystem.  A relative input stays relative; the
        validators reject it.
        """
        pinned = self._registry.resolve(input_path)
        if pinned is not None:
            return os.path.normpath(pinned)
        return os.path.normpath(input_path)

    @staticmethod
    def is_within(candidate: str, root: str) -> bool:
        """True iff *candidate* equals *root* or is nested under it.

        Purely lexical and segment-aware.  Both paths are normalised first so
        unresolved ``..`` segments cannot fool the comparison; relative paths
        are never within anything.
        """
        if not candidate or not root:
            return False
        if not (os.path.isabs(candidate) and os.path.isabs(root)):
            return False
        candidate_parts = PurePath(os.path.normpath(candidate)).parts
        root_parts = PurePath(os.path.normpath(root)).parts
        if len(candidate_parts) < len(root_parts):
            return False
        return candidate_parts[: len(root_parts)] == root_parts

    @classmethod
    def _real_is_within(cls, candidate: str, root: str) -> bool:
        try:
            real_candidate = os.path.realpath(candidate)
            real_root = os.path.realpath(root)
        except (OSError, ValueError):
            return False
        return cls.is_within(real_candidate, real_root)

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    def validate_against_root(
        self,
        path: str,
        root: Optional[str] = None,
        param_name: str = "path",
    ) -> str:
        """Normalise *path* and confirm it lies within *root*.

        Args:
            path: Caller-supplied absolute path, or the placeholder.
            root: Directory to confine to (defaults to the sandbox root).
            param_name: Parameter name reported in the error context.

        Returns:
            The normalised absolute path.

        Raises:
            SandboxViolationError: On any rejection.
        """
        root = os.path.normpath(root) if root else self._root

        if not isinstance(path, str) or not path or _has_nul(path):
            raise _violation(
                f"Invalid path in parameter '{param_name}': {path!r}",
                ErrorCode.PATH_INVALID,
                requested=str(path),
                resolved=None,
                root=root,
                parameter=param_name,
            )

        if path == PLACEHOLDER_PATH and self._registry.get() is None:
            raise _violation(
                f"Path '{path}' in parameter '{param_name}' refers to the global "
                "working directory, but none is set. Call git_set_working_dir "
                "or pass an absolute path.",
                ErrorCode.WORKING_DIRECTORY_NOT_SET,
                requested=path,
                resolved=None,
                root=root,
                parameter=param_name,
            )

        normalized = self.normalize(path)

        if not os.path.isabs(normalized):
            raise _violation(
                f"Path '{path}' in parameter '{param_name}' must be absolute.",
                ErrorCode.PATH_INVALID,
                requested=path,
                resolved=normalized,
                root=root,
                parameter=param_name,
            )

        if not self.is_within(normalized, root):
            raise _violation(
                f"Access denied: Path '{path}' in parameter '{param_name}' "
                f"(resolved to '{normalized}') is outside the allowed base "
                f"directory '{root}'.",
                ErrorCode.PATH_OUTSIDE_BASEDIR,
                requested=path,
                resolved=normalized,
                root=root,
                parameter=param_name,
            )

        if not self._real_is_within(normalized, root):
            raise _violation(
                f"Access denied: Path '{path}' in parameter '{param_name}' "
                f"resolves through a symbolic link outside '{root}'.",
                ErrorCode.SYMLINK_ESCAPE,
                requested=path,
                resolved=normalized,
                root=root,
                parameter=param_name,
            )

        return normalized

    def validate_relative(
        self,
        relative_path: str,
        repo_root: str,
        param_name: str,
    ) -> str:
        """Confirm a repository-relative path stays inside *repo_root*.

        ``"."`` and ``""`` designate the whole repository and are returned
        unchanged.  Absolute paths are accepted when they lie inside the
        repository and are converted to repository-relative form.

        Returns:
            The normalised path relative to *repo_root*, with ``/`` separators.

        Raises:
            SandboxViolationError: If the path escapes the repository.
        """
        if relative_path in ALL_PATHS_MARKERS:
            return relative_path

        if not isinstance(relative_path, str) or _has_nul(relative_path):
            raise _violation(
                f"Invalid path in parameter '{param_name}': {relative_path!r}",
                ErrorCode.PATH_INVALID,
                requested=str(relative_path),
                resolved=None,
                root=repo_root,
                parameter=param_name,
            )

        resolved = os.path.normpath(os.path.join(repo_root, os.path.normpath(relative_path)))

        if not self.is_within(resolved, repo_root):
            raise _violation(
                f"Access denied: Path '{relative_path}' in parameter "
                f"'{param_name}' (resolved to '{resolved}') attempts to "
                f"traverse outside the repository root '{repo_root}'.",
                ErrorCode.PATH_TRAVERSAL_ATTEMPT,
                requested=relative_path,
                resolved=resolved,
                root=repo_root,
                parameter=param_name,
            )

        if not self._real_is_within(resolved, repo_root):
            raise _violation(
                f"Access denied: Path '{relative_path}' in parameter "
                f"'{param_name}' resolves through a symbolic link outside the "
                f"repository root '{repo_root}'.",
                ErrorCode.SYMLINK_ESCAPE,
                requested=relative_path,
                resolved=resolved,
                root=repo_root,
                parameter=param_name,
            )

        relative = os.path.relpath(resolved, repo_root)
        return PurePath(relative).as_posix()
