import logging
import os
import time
from pathlib import Path
from typing import Optional

from mcp.server import Server
from mcp.server.stdio import stdio_server
from mcp.types import TextContent, Tool

from .configuration import EngineConfig
from .core.tools import GitToolRouter, ToolRegistry
from .providers import get_provider
from .session import SessionDirectoryStore

logger = logging.getLogger(__name__)


def build_router(
    config: EngineConfig,
    repository: Optional[Path] = None,
    provider_kind: Optional[str] = None,
) -> GitToolRouter:
    """Wire registry, provider and session store together."""
    registry = ToolRegistry()
    registry.initialize_default_tools()

    provider = get_provider(provider_kind, config)
    sessions = SessionDirectoryStore(config.base_directory)
    if repository is not None:
        sessions.set(None, repository)
        logger.info(f"Using repository at {repository}")

    logger.info(f"Using {provider.name} provider ({provider.version})")
    return GitToolRouter(registry, provider, sessions)


async def serve(
    repository: Optional[Path] = None,
    config: Optional[EngineConfig] = None,
    provider_kind: Optional[str] = None,
) -> None:
    config = config or EngineConfig()
    router = build_router(config, repository, provider_kind)
    server = Server("mcp-git-engine")

    @server.list_tools()
    async def list_tools() -> list[Tool]:
        return router.registry.list_tools()

    @server.call_tool()
    async def call_tool(name: str, arguments: dict) -> list[TextContent]:
        request_id = os.urandom(4).hex()
        start_time = time.time()
        logger.info(f"[{request_id}] Tool call: {name}", extra={"request_id": request_id})

        content = await router.route_tool_call(
            name, arguments, trace={"request_id": request_id}
        )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            f"[{request_id}] Tool '{name}' finished",
            extra={"request_id": request_id, "operation": name, "duration_ms": round(duration_ms, 1)},
        )
        return content

    options = server.create_initialization_options()
    try:
        async with stdio_server() as (read_stream, write_stream):
            logger.info("STDIO server connected")
            # raise_exceptions=False keeps one bad request from stopping the server
            await server.run(read_stream, write_stream, options, raise_exceptions=False)
    except KeyboardInterrupt:
        logger.info("Server interrupted by user")
        raise
    except Exception as e:
        logger.error(f"Server error: {e}", exc_info=True)
