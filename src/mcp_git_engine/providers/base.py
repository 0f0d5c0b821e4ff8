"""Provider facade shared by every backing engine.

A provider exposes one coroutine per git verb with the uniform signature
``(options, context) -> result`` plus a frozen :class:`Capabilities` record
and a ``health_check``. Verbs outside the minimal set are gated on their
capability flag before anything is spawned.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from pydantic import BaseModel

from ..configuration import EngineConfig
from ..error_handling import UnsupportedCapabilityError, ValidationError
from ..git.context import OperationContext
from ..git import models

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Capabilities:
    """What a provider can do. Fixed for the provider's lifetime."""

    init: bool = True
    clone: bool = True
    commit: bool = True
    branch: bool = True
    merge: bool = True
    rebase: bool = True
    remote: bool = True
    fetch: bool = True
    push: bool = True
    pull: bool = True
    tag: bool = True
    stash: bool = True
    worktree: bool = True
    blame: bool = True
    reflog: bool = True
    sign_commits: bool = True
    ssh_auth: bool = True
    http_auth: bool = True
    max_repo_size_mb: int = 10000

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# Every provider must serve these; no capability check is made for them.
MINIMAL_OPERATIONS = frozenset(
    {"status", "add", "commit", "log", "show", "diff", "checkout", "reset", "clean"}
)

# Capability flag consulted for each gated operation
CAPABILITY_FOR_OPERATION: Dict[str, str] = {
    "init": "init",
    "clone": "clone",
    "branch": "branch",
    "merge": "merge",
    "rebase": "rebase",
    "cherry-pick": "merge",
    "remote": "remote",
    "fetch": "fetch",
    "push": "push",
    "pull": "pull",
    "tag": "tag",
    "stash": "stash",
    "worktree": "worktree",
    "blame": "blame",
    "reflog": "reflog",
}


class BaseGitProvider(ABC):
    """Abstract git provider.

    Subclasses set ``name``, ``version`` and ``capabilities`` and implement
    :meth:`health_check` and :meth:`_perform`. Public verb methods route
    through :meth:`execute`, which applies capability gating and logging.
    """

    name: str = "base"
    version: str = "0.0.0"
    capabilities: Capabilities = Capabilities()

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config or EngineConfig()

    @abstractmethod
    async def health_check(self, context: OperationContext) -> bool:
        """Return True when the backing engine is usable. Never mutates a repository."""

    @abstractmethod
    async def _perform(
        self, operation: str, options: BaseModel, context: OperationContext
    ) -> BaseModel:
        """Run ``operation`` on the backing engine."""

    def check_capability(self, operation: str) -> None:
        """Raise :class:`UnsupportedCapabilityError` if ``operation`` is gated off."""
        if operation in MINIMAL_OPERATIONS:
            return
        flag = CAPABILITY_FOR_OPERATION.get(operation)
        if flag is None:
            raise ValidationError(f"Unknown git operation: {operation}", operation=operation)
        if not getattr(self.capabilities, flag):
            raise UnsupportedCapabilityError(
                f"Git operation '{operation}' is not supported by provider '{self.name}'",
                operation=operation,
            )

    def unsupported(self, operation: str, detail: str = "") -> UnsupportedCapabilityError:
        message = f"Git operation '{operation}' is not supported by provider '{self.name}'"
        if detail:
            message = f"{message}: {detail}"
        return UnsupportedCapabilityError(message, operation=operation)

    def log_operation_start(
        self, operation: str, context: OperationContext, options: Optional[BaseModel] = None
    ) -> None:
        extra = context.log_extra(operation, provider=self.name)
        if options is not None:
            logger.debug(
                f"Starting git {operation} with {options.model_dump(exclude_defaults=True)}",
                extra=extra,
            )
        else:
            logger.debug(f"Starting git {operation}", extra=extra)

    def log_operation_success(self, operation: str, context: OperationContext) -> None:
        logger.info(
            f"Git {operation} completed successfully",
            extra=context.log_extra(operation, provider=self.name),
        )

    async def execute(
        self, operation: str, options: BaseModel, context: OperationContext
    ) -> BaseModel:
        self.check_capability(operation)
        self.log_operation_start(operation, context, options)
        result = await self._perform(operation, options, context)
        self.log_operation_success(operation, context)
        return result

    # One method per verb

    async def init(self, options: models.GitInit, context: OperationContext) -> models.GitInitResult:
        return await self.execute("init", options, context)

    async def clone(self, options: models.GitClone, context: OperationContext) -> models.GitCloneResult:
        return await self.execute("clone", options, context)

    async def clean(self, options: models.GitClean, context: OperationContext) -> models.GitCleanResult:
        return await self.execute("clean", options, context)

    async def status(self, options: models.GitStatus, context: OperationContext) -> models.GitStatusResult:
        return await self.execute("status", options, context)

    async def add(self, options: models.GitAdd, context: OperationContext) -> models.GitAddResult:
        return await self.execute("add", options, context)

    async def commit(self, options: models.GitCommit, context: OperationContext) -> models.GitCommitResult:
        return await self.execute("commit", options, context)

    async def log(self, options: models.GitLog, context: OperationContext) -> models.GitLogResult:
        return await self.execute("log", options, context)

    async def show(self, options: models.GitShow, context: OperationContext) -> models.GitShowResult:
        return await self.execute("show", options, context)

    async def diff(self, options: models.GitDiff, context: OperationContext) -> models.GitDiffResult:
        return await self.execute("diff", options, context)

    async def branch(self, options: models.GitBranch, context: OperationContext) -> models.GitBranchResult:
        return await self.execute("branch", options, context)

    async def checkout(
        self, options: models.GitCheckout, context: OperationContext
    ) -> models.GitCheckoutResult:
        return await self.execute("checkout", options, context)

    async def merge(self, options: models.GitMerge, context: OperationContext) -> models.GitMergeResult:
        return await self.execute("merge", options, context)

    async def rebase(self, options: models.GitRebase, context: OperationContext) -> models.GitRebaseResult:
        return await self.execute("rebase", options, context)

    async def cherry_pick(
        self, options: models.GitCherryPick, context: OperationContext
    ) -> models.GitCherryPickResult:
        return await self.execute("cherry-pick", options, context)

    async def remote(self, options: models.GitRemote, context: OperationContext) -> models.GitRemoteResult:
        return await self.execute("remote", options, context)

    async def fetch(self, options: models.GitFetch, context: OperationContext) -> models.GitFetchResult:
        return await self.execute("fetch", options, context)

    async def push(self, options: models.GitPush, context: OperationContext) -> models.GitPushResult:
        return await self.execute("push", options, context)

    async def pull(self, options: models.GitPull, context: OperationContext) -> models.GitPullResult:
        return await self.execute("pull", options, context)

    async def tag(self, options: models.GitTag, context: OperationContext) -> models.GitTagResult:
        return await self.execute("tag", options, context)

    async def stash(self, options: models.GitStash, context: OperationContext) -> models.GitStashResult:
        return await self.execute("stash", options, context)

    async def worktree(
        self, options: models.GitWorktree, context: OperationContext
    ) -> models.GitWorktreeResult:
        return await self.execute("worktree", options, context)

    async def reset(self, options: models.GitReset, context: OperationContext) -> models.GitResetResult:
        return await self.execute("reset", options, context)

    async def blame(self, options: models.GitBlame, context: OperationContext) -> models.GitBlameResult:
        return await self.execute("blame", options, context)

    async def reflog(self, options: models.GitReflog, context: OperationContext) -> models.GitReflogResult:
        return await self.execute("reflog", options, context)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r}, version={self.version!r})"
