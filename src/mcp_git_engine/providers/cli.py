"""Provider backed by the native ``git`` executable."""

import logging
import os
import tempfile
from typing import Awaitable, Callable, Dict

from pydantic import BaseModel

from ..constants import GitOperationDefaults, ProviderLimits
from ..error_handling import GitOperationError, ValidationError
from ..git import operations
from ..git.context import OperationContext
from .base import BaseGitProvider, Capabilities

logger = logging.getLogger(__name__)

OperationFunc = Callable[..., Awaitable[BaseModel]]

OPERATIONS: Dict[str, OperationFunc] = {
    "init": operations.git_init,
    "clone": operations.git_clone,
    "clean": operations.git_clean,
    "status": operations.git_status,
    "add": operations.git_add,
    "commit": operations.git_commit,
    "log": operations.git_log,
    "show": operations.git_show,
    "diff": operations.git_diff,
    "branch": operations.git_branch,
    "checkout": operations.git_checkout,
    "merge": operations.git_merge,
    "rebase": operations.git_rebase,
    "cherry-pick": operations.git_cherry_pick,
    "remote": operations.git_remote,
    "fetch": operations.git_fetch,
    "push": operations.git_push,
    "pull": operations.git_pull,
    "tag": operations.git_tag,
    "stash": operations.git_stash,
    "worktree": operations.git_worktree,
    "reset": operations.git_reset,
    "blame": operations.git_blame,
    "reflog": operations.git_reflog,
}


class CliGitProvider(BaseGitProvider):
    """Full-featured provider that drives the git binary through the process adapter."""

    name = "cli"
    version = "1.0.0"
    capabilities = Capabilities(max_repo_size_mb=ProviderLimits.CLI_MAX_REPO_SIZE_MB)

    async def health_check(self, context: OperationContext) -> bool:
        # `git version` reads nothing from cwd; any existing directory will do
        cwd = context.working_directory
        if not cwd or not os.path.isdir(cwd):
            cwd = tempfile.gettempdir()
        version_context = OperationContext(
            working_directory=cwd,
            tenant_id=context.tenant_id,
            trace=context.trace,
            cancellation=context.cancellation,
            timeout_ms=(
                GitOperationDefaults.HEALTH_CHECK_TIMEOUT_MS
                if context.timeout_ms is None
                else context.timeout_ms
            ),
        )
        try:
            version = await operations.git_version(version_context, self.config)
        except GitOperationError as e:
            logger.warning(
                f"Git health check failed: {e.message}",
                extra=context.log_extra("health_check", provider=self.name),
            )
            return False
        return version.startswith("git version")

    async def _perform(
        self, operation: str, options: BaseModel, context: OperationContext
    ) -> BaseModel:
        func = OPERATIONS.get(operation)
        if func is None:
            raise ValidationError(f"Unknown git operation: {operation}", operation=operation)
        return await func(options, context, config=self.config)
