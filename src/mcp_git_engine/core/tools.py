"""Tool registry and routing for the MCP Git engine"""

import json
import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Type

from mcp.types import TextContent, Tool
from pydantic import BaseModel
from pydantic import ValidationError as ModelValidationError

from ..error_handling import (
    GitOperationError,
    InternalError,
    ValidationError,
    log_operation_error,
)
from ..git import models
from ..git.context import CancellationToken, OperationContext
from ..providers import BaseGitProvider
from ..session import SessionDirectoryStore

logger = logging.getLogger(__name__)


class GitTools(str, Enum):
    """Enumeration of all available Git tools"""

    INIT = "git_init"
    CLONE = "git_clone"
    CLEAN = "git_clean"
    STATUS = "git_status"
    ADD = "git_add"
    COMMIT = "git_commit"
    LOG = "git_log"
    SHOW = "git_show"
    DIFF = "git_diff"
    BRANCH = "git_branch"
    CHECKOUT = "git_checkout"
    MERGE = "git_merge"
    REBASE = "git_rebase"
    CHERRY_PICK = "git_cherry_pick"
    REMOTE = "git_remote"
    FETCH = "git_fetch"
    PUSH = "git_push"
    PULL = "git_pull"
    TAG = "git_tag"
    STASH = "git_stash"
    WORKTREE = "git_worktree"
    RESET = "git_reset"
    BLAME = "git_blame"
    REFLOG = "git_reflog"

    # Session tools
    SET_WORKING_DIR = "git_set_working_dir"
    CLEAR_WORKING_DIR = "git_clear_working_dir"
    HEALTH_CHECK = "git_health_check"


class ToolCategory(str, Enum):
    """Tool categories for organization and routing"""

    GIT = "git"
    SESSION = "session"


class GitSetWorkingDir(BaseModel):
    path: str
    validate_git_repo: bool = True
    initialize_if_not_present: bool = False


class GitClearWorkingDir(BaseModel):
    pass


class GitHealthCheck(BaseModel):
    pass


REPO_PATH_PROPERTY = {
    "type": "string",
    "description": "Repository path. Defaults to the session working directory.",
}


@dataclass
class ToolDefinition:
    """Complete tool definition with metadata.

    ``handler`` names the provider method for git tools and the router method
    for session tools.
    """

    name: str
    category: ToolCategory
    description: str
    schema: Type[BaseModel]
    handler: str
    requires_repo: bool = True


_GIT_TOOLS = [
    (GitTools.INIT, "Initialize a new Git repository", models.GitInit, "init", False),
    (GitTools.CLONE, "Clone a repository into a local directory", models.GitClone, "clone", False),
    (GitTools.CLEAN, "Remove untracked files from the working tree", models.GitClean, "clean", True),
    (GitTools.STATUS, "Show the working tree status", models.GitStatus, "status", True),
    (GitTools.ADD, "Add file contents to the staging area", models.GitAdd, "add", True),
    (GitTools.COMMIT, "Record changes to the repository", models.GitCommit, "commit", True),
    (GitTools.LOG, "Show the commit logs", models.GitLog, "log", True),
    (GitTools.SHOW, "Show a commit, tree, blob or tag", models.GitShow, "show", True),
    (GitTools.DIFF, "Show changes between commits, the index and the working tree", models.GitDiff, "diff", True),
    (GitTools.BRANCH, "List, create, delete or rename branches", models.GitBranch, "branch", True),
    (GitTools.CHECKOUT, "Switch branches or restore working tree files", models.GitCheckout, "checkout", True),
    (GitTools.MERGE, "Merge a branch into the current branch", models.GitMerge, "merge", True),
    (GitTools.REBASE, "Reapply commits on top of another base", models.GitRebase, "rebase", True),
    (GitTools.CHERRY_PICK, "Apply the changes introduced by existing commits", models.GitCherryPick, "cherry_pick", True),
    (GitTools.REMOTE, "Manage tracked remote repositories", models.GitRemote, "remote", True),
    (GitTools.FETCH, "Download objects and refs from a remote", models.GitFetch, "fetch", True),
    (GitTools.PUSH, "Update remote refs with local commits", models.GitPush, "push", True),
    (GitTools.PULL, "Fetch from and integrate with a remote branch", models.GitPull, "pull", True),
    (GitTools.TAG, "List, create or delete tags", models.GitTag, "tag", True),
    (GitTools.STASH, "Stash changes in a dirty working directory", models.GitStash, "stash", True),
    (GitTools.WORKTREE, "Manage multiple working trees", models.GitWorktree, "worktree", True),
    (GitTools.RESET, "Reset HEAD, the index or the working tree", models.GitReset, "reset", True),
    (GitTools.BLAME, "Show who last modified each line of a file", models.GitBlame, "blame", True),
    (GitTools.REFLOG, "Show the reference log", models.GitReflog, "reflog", True),
]

# Option fields naming filesystem locations rather than pathspecs inside the
# work tree. They are resolved against the working directory and confined to
# the base directory like repo_path.
_LOCATION_FIELDS: Dict[Type[BaseModel], Tuple[str, ...]] = {
    models.GitInit: ("path",),
    models.GitClone: ("local_path",),
    models.GitWorktree: ("path", "new_path"),
}

_SESSION_TOOLS = [
    (GitTools.SET_WORKING_DIR, "Set the session working directory for later git calls",
     GitSetWorkingDir, "set_working_dir"),
    (GitTools.CLEAR_WORKING_DIR, "Clear the session working directory",
     GitClearWorkingDir, "clear_working_dir"),
    (GitTools.HEALTH_CHECK, "Report provider health and capabilities",
     GitHealthCheck, "health_check"),
]


class ToolRegistry:
    """Central registry for all MCP Git engine tools"""

    def __init__(self):
        self.tools: Dict[str, ToolDefinition] = {}
        self._initialized = False

    def register(self, tool_def: ToolDefinition):
        """Register a tool in the registry"""
        self.tools[tool_def.name] = tool_def
        logger.debug(f"Registered tool: {tool_def.name} ({tool_def.category.value})")

    def get_tool(self, name: str) -> Optional[ToolDefinition]:
        return self.tools.get(name)

    def list_tools(self) -> List[Tool]:
        """Get all tools as MCP Tool objects"""
        tools = []
        for tool_def in self.tools.values():
            schema = tool_def.schema.model_json_schema()
            if tool_def.category == ToolCategory.GIT:
                schema.setdefault("properties", {})["repo_path"] = dict(REPO_PATH_PROPERTY)
            tools.append(
                Tool(name=tool_def.name, description=tool_def.description, inputSchema=schema)
            )
        return tools

    def get_tools_by_category(self, category: ToolCategory) -> List[ToolDefinition]:
        return [t for t in self.tools.values() if t.category == category]

    def initialize_default_tools(self):
        """Initialize registry with the default git and session tools"""
        if self._initialized:
            return

        for name, description, schema, handler, requires_repo in _GIT_TOOLS:
            self.register(
                ToolDefinition(
                    name=name.value,
                    category=ToolCategory.GIT,
                    description=description,
                    schema=schema,
                    handler=handler,
                    requires_repo=requires_repo,
                )
            )
        for name, description, schema, handler in _SESSION_TOOLS:
            self.register(
                ToolDefinition(
                    name=name.value,
                    category=ToolCategory.SESSION,
                    description=description,
                    schema=schema,
                    handler=handler,
                    requires_repo=False,
                )
            )

        self._initialized = True
        logger.info(f"Initialized tool registry with {len(self.tools)} tools")


def _render(payload: Any) -> List[TextContent]:
    if isinstance(payload, BaseModel):
        text = payload.model_dump_json(indent=2)
    else:
        text = json.dumps(payload, indent=2, default=str)
    return [TextContent(type="text", text=text)]


class GitToolRouter:
    """Router for dispatching tool calls to the active provider"""

    def __init__(
        self,
        registry: ToolRegistry,
        provider: BaseGitProvider,
        sessions: SessionDirectoryStore,
    ):
        self.registry = registry
        self.provider = provider
        self.sessions = sessions

    def _context(
        self,
        tool_def: ToolDefinition,
        repo_path: Optional[str],
        session_id: Optional[str],
        trace: Dict[str, Any],
        cancellation: Optional[CancellationToken],
    ) -> OperationContext:
        if tool_def.requires_repo or repo_path or self.sessions.get(session_id):
            working_directory = self.sessions.require(session_id, repo_path)
        else:
            working_directory = self.sessions.resolve(os.getcwd())
        return OperationContext(
            working_directory=working_directory,
            tenant_id=session_id,
            trace=trace,
            cancellation=cancellation,
        )

    def _resolve_locations(self, options: BaseModel, context: OperationContext) -> BaseModel:
        updates = {}
        for field in _LOCATION_FIELDS.get(type(options), ()):
            value = getattr(options, field)
            if value:
                updates[field] = self.sessions.resolve(
                    os.path.join(context.working_directory, value)
                )
        return options.model_copy(update=updates) if updates else options

    async def route_tool_call(
        self,
        name: str,
        arguments: Optional[Dict[str, Any]],
        session_id: Optional[str] = None,
        trace: Optional[Dict[str, Any]] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> List[TextContent]:
        """Route a tool call and render its result or error as JSON text.

        Never raises for operation failures; they come back as an error payload.
        """
        arguments = dict(arguments or {})
        trace = dict(trace or {})
        tool_def = self.registry.get_tool(name)
        if tool_def is None:
            return _render(
                ValidationError(f"Unknown tool: {name}", operation=name).to_dict()
            )

        try:
            if tool_def.category == ToolCategory.SESSION:
                options = tool_def.schema.model_validate(arguments)
                handler = getattr(self, tool_def.handler)
                return _render(await handler(options, session_id, trace))

            repo_path = arguments.pop("repo_path", None)
            options = tool_def.schema.model_validate(arguments)
            context = self._context(tool_def, repo_path, session_id, trace, cancellation)
            options = self._resolve_locations(options, context)
            result = await getattr(self.provider, tool_def.handler)(options, context)
            return _render(result)
        except GitOperationError as e:
            log_operation_error(e, name, provider=self.provider.name)
            return _render(e.to_dict())
        except ModelValidationError as e:
            error = ValidationError(f"Invalid arguments for {name}: {e}", operation=name, trace=trace)
            log_operation_error(error, name)
            return _render(error.to_dict())
        except Exception as e:
            logger.error(f"Tool call failed for {name}: {e}", exc_info=True)
            return _render(
                InternalError(f"Tool execution failed: {e}", operation=name, trace=trace).to_dict()
            )

    async def set_working_dir(
        self, options: GitSetWorkingDir, session_id: Optional[str], trace: Dict[str, Any]
    ) -> Dict[str, Any]:
        resolved = self.sessions.resolve(options.path)
        context = OperationContext(working_directory=resolved, tenant_id=session_id, trace=trace)
        initialized = False
        if options.initialize_if_not_present and not os.path.exists(os.path.join(resolved, ".git")):
            await self.provider.init(models.GitInit(), context)
            initialized = True
        elif options.validate_git_repo:
            # Raises NotFoundError when the directory is not inside a repository
            await self.provider.status(models.GitStatus(include_untracked=False), context)

        self.sessions.set(session_id, resolved)
        return {"success": True, "path": resolved, "initialized": initialized}

    async def clear_working_dir(
        self, options: GitClearWorkingDir, session_id: Optional[str], trace: Dict[str, Any]
    ) -> Dict[str, Any]:
        previous = self.sessions.clear(session_id)
        return {"success": True, "previous_path": previous}

    async def health_check(
        self, options: GitHealthCheck, session_id: Optional[str], trace: Dict[str, Any]
    ) -> Dict[str, Any]:
        context = OperationContext(
            working_directory=self.sessions.get(session_id) or os.getcwd(),
            tenant_id=session_id,
            trace=trace,
        )
        healthy = await self.provider.health_check(context)
        return {
            "provider": self.provider.name,
            "version": self.provider.version,
            "healthy": healthy,
            "capabilities": self.provider.capabilities.to_dict(),
        }
