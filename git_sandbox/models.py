"""Typed options and result payloads for GitService operations.

Option models carry already-typed parameters into the facade; data models are
what successful ``OperationResult`` values contain.  All are Pydantic V2
models and validate on construction.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, computed_field, model_validator


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


class ResetMode(str, Enum):
    """The three supported ``git reset`` modes."""

    HARD = "hard"
    SOFT = "soft"
    MIXED = "mixed"


class Author(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(min_length=1)

    def as_git_arg(self) -> str:
        return f"{self.name} <{self.email}>"


class CommitOptions(BaseModel):
    """Options for ``git commit``."""

    message: str = Field(min_length=1)
    """Commit message (required)."""

    author: Optional[Author] = None
    """Override the commit author."""

    allow_empty: bool = False
    """Allow a commit with no changes."""

    amend: bool = False
    """Amend the previous commit."""


class BranchOptions(BaseModel):
    """Options for creating a branch."""

    name: str = Field(min_length=1)
    start_point: Optional[str] = None
    """Commit or branch to start from (defaults to HEAD)."""

    checkout: bool = False
    """Switch to the new branch after creating it."""


class MergeOptions(BaseModel):
    """Options for ``git merge``.

    ``ff_only`` and ``no_ff`` are mutually exclusive.
    """

    branch: str = Field(min_length=1)
    """Branch to merge into the current branch."""

    message: Optional[str] = None
    """Custom merge commit message."""

    ff_only: bool = False
    """Refuse to merge unless fast-forward is possible."""

    no_ff: bool = False
    """Always create a merge commit."""

    @model_validator(mode="after")
    def _exclusive_ff_flags(self) -> "MergeOptions":
        if self.ff_only and self.no_ff:
            raise ValueError("ff_only and no_ff are mutually exclusive")
        return self


class PullOptions(BaseModel):
    remote: Optional[str] = None
    branch: Optional[str] = None
    rebase: bool = False


class PushOptions(BaseModel):
    remote: str = "origin"
    branch: str = "HEAD"
    force: bool = False
    set_upstream: bool = False


class TagOptions(BaseModel):
    """Options for ``git tag``; annotated when ``message`` is given."""

    name: str = Field(min_length=1)
    message: Optional[str] = None
    ref: Optional[str] = None
    """Commit to tag (defaults to HEAD)."""


class StashOptions(BaseModel):
    message: Optional[str] = None
    include_untracked: bool = False


# ---------------------------------------------------------------------------
# Result payloads
# ---------------------------------------------------------------------------


class LogEntry(BaseModel):
    """One commit from ``git log``."""

    hash: str
    abbrev_hash: str
    author_name: str
    author_email: str
    date: str
    """Author date, ISO-8601-like (``%ai``)."""

    subject: str


class DiffEntry(BaseModel):
    """One changed path between two refs."""

    path: str
    status: str
    """One of added, modified, deleted, renamed, copied, or the raw code."""

    old_path: Optional[str] = None
    """Source path for renames and copies."""


class FileStatus(BaseModel):
    path: str
    index: str
    """Index (staged) status code from porcelain output."""

    working_dir: str
    """Worktree status code from porcelain output."""

    original_path: Optional[str] = None


class RepositoryStatus(BaseModel):
    """Parsed ``git status --porcelain=v1 -b``."""

    current: Optional[str] = None
    """Current branch (None when detached or unborn without a name)."""

    tracking: Optional[str] = None
    ahead: int = 0
    behind: int = 0
    detached: bool = False
    files: list[FileStatus] = Field(default_factory=list)
    conflicted: list[str] = Field(default_factory=list)
    staged: list[str] = Field(default_factory=list)
    modified: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)
    created: list[str] = Field(default_factory=list)
    renamed: list[str] = Field(default_factory=list)
    not_added: list[str] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def is_clean(self) -> bool:
        return not self.files


class BranchInfo(BaseModel):
    name: str
    commit: str
    label: str
    current: bool = False


class BranchSummary(BaseModel):
    current: Optional[str] = None
    detached: bool = False
    branches: list[BranchInfo] = Field(default_factory=list)

    @property
    def all(self) -> list[str]:
        return [b.name for b in self.branches]


class RemoteInfo(BaseModel):
    name: str
    fetch_url: Optional[str] = None
    push_url: Optional[str] = None
