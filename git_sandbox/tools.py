"""Tool adapter: named operations with typed parameters.

Each tool is a pydantic params model plus a handler that calls exactly one
:class:`GitService` operation.  The registry does the adapter's share of the
work (parameter parsing, range checks, the is-this-a-repository pre-flight);
all path policy stays in the facade and the sandbox.

Raises :class:`ProtocolError` for unknown tools and malformed parameters;
sandbox rejections propagate from the facade unchanged.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Annotated, Any, Callable, Dict, List, Mapping, Optional, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PositiveInt,
    StringConstraints,
    ValidationError,
    model_validator,
)
from pydantic.alias_generators import to_camel

from git_sandbox.config import ServerConfig
from git_sandbox.errors import (
    ErrorCategory,
    ErrorCode,
    ExceptionContext,
    PathContext,
)
from git_sandbox.git_service import DEFAULT_STASH, GitService
from git_sandbox.git_subprocess import GitRunner, read_global_identity
from git_sandbox.logging_config import LogContext
from git_sandbox.models import (
    Author,
    BranchOptions,
    CommitOptions,
    MergeOptions,
    PullOptions,
    PushOptions,
    ResetMode,
    StashOptions,
    TagOptions,
)
from git_sandbox.path_sandbox import PathSandbox
from git_sandbox.results import (
    OperationResult,
    create_error,
    failure,
    protocol_error,
    success,
)
from git_sandbox.settings import PLACEHOLDER_PATH, GlobalWorkingDirectoryRegistry

logger = logging.getLogger(__name__)

# Branch, tag, remote and ref names: non-empty, no whitespace
RefName = Annotated[str, StringConstraints(min_length=1, pattern=r"^\S+$")]
NonEmpty = Annotated[str, StringConstraints(min_length=1)]


# ---------------------------------------------------------------------------
# Context
# ---------------------------------------------------------------------------


@dataclass
class ToolContext:
    """Process-wide collaborators shared by every tool call."""

    config: ServerConfig
    sandbox: PathSandbox
    runner: GitRunner

    @classmethod
    def from_config(
        cls,
        config: ServerConfig,
        registry: Optional[GlobalWorkingDirectoryRegistry] = None,
    ) -> "ToolContext":
        author_name, author_email = config.author_name, config.author_email
        if not (author_name and author_email):
            global_name, global_email = read_global_identity(config.git_binary)
            author_name = author_name or global_name
            author_email = author_email or global_email
        runner = GitRunner(
            config.git_binary,
            timeout=config.command_timeout,
            disable_hooks=config.disable_hooks,
            author_name=author_name,
            author_email=author_email,
        )
        return cls(
            config=config,
            sandbox=PathSandbox(config.base_dir, registry),
            runner=runner,
        )

    @property
    def registry(self) -> GlobalWorkingDirectoryRegistry:
        return self.sandbox.registry

    def service(self, repo_path: str) -> GitService:
        return GitService(
            repo_path,
            sandbox=self.sandbox,
            runner=self.runner,
            max_log_count=self.config.max_log_count,
        )


def not_a_repository(path: str) -> OperationResult[Any]:
    return failure(
        create_error(
            f"Path is not a git repository: {path}",
            ErrorCode.NOT_A_REPOSITORY,
            ErrorCategory.VALIDATION,
            context=PathContext(requested_path=path),
        )
    )


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Tool:
    name: str
    description: str
    params: type
    handler: Callable[..., OperationResult[Any]]
    requires_repo: bool = True


@dataclass
class ToolRegistry:
    """Name -> tool mapping with a single dispatch entry point."""

    tools: Dict[str, Tool] = field(default_factory=dict)

    def register(
        self,
        name: str,
        description: str,
        params: type,
        *,
        requires_repo: bool = True,
    ) -> Callable[[Callable[..., OperationResult[Any]]], Callable[..., OperationResult[Any]]]:
        def decorator(fn):
            self.tools[name] = Tool(name, description, params, fn, requires_repo)
            return fn

        return decorator

    def names(self) -> List[str]:
        return sorted(self.tools)

    def describe(self) -> List[Dict[str, Any]]:
        return [
            {
                "name": tool.name,
                "description": tool.description,
                "input_schema": tool.params.model_json_schema(by_alias=True),
            }
            for tool in sorted(self.tools.values(), key=lambda t: t.name)
        ]

    def call(
        self,
        name: str,
        raw_params: Optional[Mapping[str, Any]],
        context: ToolContext,
    ) -> OperationResult[Any]:
        """Parse *raw_params*, pre-flight the repository and run the tool.

        Raises:
            ProtocolError: Unknown tool or invalid parameters.
            RejectedRequestError: Sandbox or option rejections from the facade.
        """
        tool = self.tools.get(name)
        if tool is None:
            raise protocol_error(f"Unknown tool: {name}", ErrorCode.UNKNOWN_TOOL)

        if raw_params is not None and not isinstance(raw_params, Mapping):
            raise protocol_error(
                f"Parameters for {name} must be an object",
                ErrorCode.INVALID_PARAMS,
            )
        try:
            params = tool.params.model_validate(dict(raw_params or {}))
        except ValidationError as exc:
            raise protocol_error(
                f"Invalid parameters for {name}: {exc.error_count()} error(s)",
                ErrorCode.INVALID_PARAMS,
                context=ExceptionContext(
                    exception_type="ValidationError",
                    details={"errors": json.loads(exc.json(include_url=False))},
                ),
            ) from None

        with LogContext(tool=name):
            if not tool.requires_repo:
                return tool.handler(context, params)
            service = context.service(params.path)
            if not service.is_git_repository():
                return not_a_repository(service.repo_path)
            return tool.handler(service, params)


registry = ToolRegistry()


# ---------------------------------------------------------------------------
# Parameter models
# ---------------------------------------------------------------------------


class ToolParams(BaseModel):
    """Base for tool parameters; accepts snake_case or camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="forbid",
    )


class RepoParams(ToolParams):
    path: NonEmpty = PLACEHOLDER_PATH
    """Repository path (absolute, or "." for the global working directory)."""


class SetWorkingDirParams(ToolParams):
    path: NonEmpty
    validate_git_repo: bool = True


class ClearWorkingDirParams(ToolParams):
    pass


class InitParams(RepoParams):
    bare: bool = False
    initial_branch: RefName = "main"


class CloneParams(RepoParams):
    url: NonEmpty
    branch: Optional[RefName] = None
    depth: Optional[PositiveInt] = None


class FilesParams(RepoParams):
    files: Union[str, List[NonEmpty]] = PLACEHOLDER_PATH


class CommitParams(RepoParams):
    message: NonEmpty
    author: Optional[Author] = None
    allow_empty: bool = False
    amend: bool = False


class DiffUnstagedParams(RepoParams):
    file: Optional[NonEmpty] = None
    show_untracked: bool = True


class DiffStagedParams(RepoParams):
    file: Optional[NonEmpty] = None


class BranchListParams(RepoParams):
    all: bool = False


class BranchCreateParams(RepoParams):
    name: RefName
    start_point: Optional[RefName] = None
    checkout: bool = False


class CheckoutParams(RepoParams):
    target: RefName
    create_branch: bool = False


class BranchDeleteParams(RepoParams):
    name: RefName
    force: bool = False


class MergeParams(RepoParams):
    branch: RefName
    message: Optional[str] = None
    ff_only: bool = False
    no_ff: bool = False

    @model_validator(mode="after")
    def _exclusive_ff_flags(self) -> "MergeParams":
        if self.ff_only and self.no_ff:
            raise ValueError("ffOnly and noFf are mutually exclusive")
        return self


class RemoteAddParams(RepoParams):
    name: RefName
    url: NonEmpty


class FetchParams(RepoParams):
    remote: RefName = "origin"
    branch: Optional[RefName] = None


class PullParams(RepoParams):
    remote: Optional[RefName] = None
    branch: Optional[RefName] = None
    rebase: bool = False


class PushParams(RepoParams):
    remote: RefName = "origin"
    branch: RefName = "HEAD"
    force: bool = False
    set_upstream: bool = False


class TagCreateParams(RepoParams):
    name: RefName
    message: Optional[str] = None
    ref: Optional[RefName] = None


class StashCreateParams(RepoParams):
    message: Optional[str] = None
    include_untracked: bool = False


class StashRefParams(RepoParams):
    stash_id: RefName = DEFAULT_STASH


class CherryPickParams(RepoParams):
    commits: List[RefName] = Field(default_factory=list)


class RebaseParams(RepoParams):
    branch: RefName
    interactive: bool = False


class LogParams(RepoParams):
    max_count: Optional[PositiveInt] = None
    file: Optional[NonEmpty] = None


class ShowParams(RepoParams):
    commit_hash: RefName


class ResetCommitParams(RepoParams):
    ref: RefName = "HEAD"
    mode: ResetMode = ResetMode.MIXED


class CleanParams(RepoParams):
    directories: bool = False
    include_ignored: bool = False


# ---------------------------------------------------------------------------
# Working directory tools
# ---------------------------------------------------------------------------


@registry.register(
    "git_set_working_dir",
    "Pin the global working directory used when a tool is given path '.'",
    SetWorkingDirParams,
    requires_repo=False,
)
def set_working_dir(ctx: ToolContext, params: SetWorkingDirParams) -> OperationResult[Any]:
    validated = ctx.sandbox.validate_against_root(params.path, param_name="path")
    if not os.path.isdir(validated):
        return failure(
            create_error(
                f"Directory does not exist: {validated}",
                ErrorCode.PATH_INVALID,
                ErrorCategory.VALIDATION,
                context=PathContext(requested_path=params.path, resolved_path=validated),
            )
        )
    if params.validate_git_repo and not ctx.service(validated).is_git_repository():
        return not_a_repository(validated)
    ctx.registry.set(validated)
    return success({"path": validated, "message": f"Working directory set to: {validated}"})


@registry.register(
    "git_clear_working_dir",
    "Clear the global working directory",
    ClearWorkingDirParams,
    requires_repo=False,
)
def clear_working_dir(ctx: ToolContext, params: ClearWorkingDirParams) -> OperationResult[Any]:
    previous = ctx.registry.clear()
    if previous is None:
        return success({"path": None, "message": "Global working directory was not set"})
    return success({"path": None, "message": f"Working directory cleared (was: {previous})"})


# ---------------------------------------------------------------------------
# Repository tools
# ---------------------------------------------------------------------------


@registry.register("git_init", "Initialize a new repository", InitParams, requires_repo=False)
def init(ctx: ToolContext, params: InitParams) -> OperationResult[Any]:
    return ctx.service(params.path).init_repo(params.bare, params.initial_branch)


@registry.register("git_clone", "Clone a repository", CloneParams, requires_repo=False)
def clone(ctx: ToolContext, params: CloneParams) -> OperationResult[Any]:
    return ctx.service(params.path).clone_repo(params.url, params.branch, params.depth)


@registry.register("git_status", "Show working tree status", RepoParams)
def status(service: GitService, params: RepoParams) -> OperationResult[Any]:
    return service.get_status()


@registry.register("git_add", "Stage files ('.' stages everything)", FilesParams)
def add(service: GitService, params: FilesParams) -> OperationResult[Any]:
    return service.stage_files(params.files)


@registry.register("git_reset", "Unstage files ('.' unstages everything)", FilesParams)
def unstage(service: GitService, params: FilesParams) -> OperationResult[Any]:
    return service.unstage_files(params.files)


@registry.register("git_commit", "Commit staged changes", CommitParams)
def commit(service: GitService, params: CommitParams) -> OperationResult[Any]:
    return service.commit(
        CommitOptions(
            message=params.message,
            author=params.author,
            allow_empty=params.allow_empty,
            amend=params.amend,
        )
    )


@registry.register("git_diff_unstaged", "Show unstaged changes", DiffUnstagedParams)
def diff_unstaged(service: GitService, params: DiffUnstagedParams) -> OperationResult[Any]:
    return service.get_unstaged_diff(params.file, params.show_untracked)


@registry.register("git_diff_staged", "Show staged changes", DiffStagedParams)
def diff_staged(service: GitService, params: DiffStagedParams) -> OperationResult[Any]:
    return service.get_staged_diff(params.file)


# ---------------------------------------------------------------------------
# Branch tools
# ---------------------------------------------------------------------------


@registry.register("git_branch_list", "List branches", BranchListParams)
def branch_list(service: GitService, params: BranchListParams) -> OperationResult[Any]:
    return service.list_branches(params.all)


@registry.register("git_branch_create", "Create a branch", BranchCreateParams)
def branch_create(service: GitService, params: BranchCreateParams) -> OperationResult[Any]:
    return service.create_branch(
        BranchOptions(name=params.name, start_point=params.start_point, checkout=params.checkout)
    )


@registry.register("git_checkout", "Switch branches or check out a ref", CheckoutParams)
def checkout(service: GitService, params: CheckoutParams) -> OperationResult[Any]:
    return service.checkout(params.target, params.create_branch)


@registry.register("git_branch_delete", "Delete a branch", BranchDeleteParams)
def branch_delete(service: GitService, params: BranchDeleteParams) -> OperationResult[Any]:
    return service.delete_branch(params.name, params.force)


@registry.register("git_merge", "Merge a branch into the current branch", MergeParams)
def merge(service: GitService, params: MergeParams) -> OperationResult[Any]:
    return service.merge(
        MergeOptions(
            branch=params.branch,
            message=params.message,
            ff_only=params.ff_only,
            no_ff=params.no_ff,
        )
    )


# ---------------------------------------------------------------------------
# Remote tools
# ---------------------------------------------------------------------------


@registry.register("git_remote_add", "Add a remote", RemoteAddParams)
def remote_add(service: GitService, params: RemoteAddParams) -> OperationResult[Any]:
    return service.add_remote(params.name, params.url)


@registry.register("git_remote_list", "List remotes", RepoParams)
def remote_list(service: GitService, params: RepoParams) -> OperationResult[Any]:
    return service.list_remotes()


@registry.register("git_fetch", "Fetch from a remote", FetchParams)
def fetch(service: GitService, params: FetchParams) -> OperationResult[Any]:
    return service.fetch(params.remote, params.branch)


@registry.register("git_pull", "Pull from a remote", PullParams)
def pull(service: GitService, params: PullParams) -> OperationResult[Any]:
    return service.pull(PullOptions(remote=params.remote, branch=params.branch, rebase=params.rebase))


@registry.register("git_push", "Push to a remote", PushParams)
def push(service: GitService, params: PushParams) -> OperationResult[Any]:
    return service.push(
        PushOptions(
            remote=params.remote,
            branch=params.branch,
            force=params.force,
            set_upstream=params.set_upstream,
        )
    )


# ---------------------------------------------------------------------------
# Tags, stashes, history
# ---------------------------------------------------------------------------


@registry.register("git_tag_create", "Create a tag (annotated when a message is given)", TagCreateParams)
def tag_create(service: GitService, params: TagCreateParams) -> OperationResult[Any]:
    return service.create_tag(TagOptions(name=params.name, message=params.message, ref=params.ref))


@registry.register("git_tag_list", "List tags", RepoParams)
def tag_list(service: GitService, params: RepoParams) -> OperationResult[Any]:
    return service.list_tags()


@registry.register("git_stash_create", "Stash working tree changes", StashCreateParams)
def stash_create(service: GitService, params: StashCreateParams) -> OperationResult[Any]:
    return service.create_stash(
        StashOptions(message=params.message, include_untracked=params.include_untracked)
    )


@registry.register("git_stash_list", "List stashes", RepoParams)
def stash_list(service: GitService, params: RepoParams) -> OperationResult[Any]:
    return service.list_stashes()


@registry.register("git_stash_apply", "Apply a stash", StashRefParams)
def stash_apply(service: GitService, params: StashRefParams) -> OperationResult[Any]:
    return service.apply_stash(params.stash_id)


@registry.register("git_stash_pop", "Apply and drop a stash", StashRefParams)
def stash_pop(service: GitService, params: StashRefParams) -> OperationResult[Any]:
    return service.pop_stash(params.stash_id)


@registry.register("git_cherry_pick", "Cherry-pick commits", CherryPickParams)
def cherry_pick(service: GitService, params: CherryPickParams) -> OperationResult[Any]:
    return service.cherry_pick(params.commits)


@registry.register("git_rebase", "Rebase the current branch", RebaseParams)
def rebase(service: GitService, params: RebaseParams) -> OperationResult[Any]:
    return service.rebase(params.branch, params.interactive)


@registry.register("git_log", "Show commit history", LogParams)
def log(service: GitService, params: LogParams) -> OperationResult[Any]:
    return service.get_log(params.max_count, params.file)


@registry.register("git_show", "Show a commit", ShowParams)
def show(service: GitService, params: ShowParams) -> OperationResult[Any]:
    return service.show_commit(params.commit_hash)


@registry.register(
    "git_reset_commit", "Reset the current branch to a ref (hard, soft or mixed)", ResetCommitParams
)
def reset_commit(service: GitService, params: ResetCommitParams) -> OperationResult[Any]:
    return service.reset(params.ref, params.mode)


@registry.register("git_clean", "Remove untracked files", CleanParams)
def clean(service: GitService, params: CleanParams) -> OperationResult[Any]:
    return service.clean(params.directories, params.include_ignored)
