import asyncio
import logging
from pathlib import Path

import click

from .configuration import load_config
from .logging_config import configure_logging
from .server import serve

__version__ = "1.0.0"


@click.command()
@click.option("--repository", "-r", type=Path, help="Initial working directory (git repository path)")
@click.option(
    "--provider",
    type=click.Choice(["auto", "cli", "embedded"]),
    default=None,
    help="Git provider; overrides GIT_ENGINE_PROVIDER",
)
@click.option("-v", "--verbose", count=True)
@click.option(
    "--env-file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Load environment variables from this .env file",
)
def main(repository: Path | None, provider: str | None, verbose: int, env_file: Path | None) -> None:
    """MCP Git Engine - git operations for MCP clients"""
    if env_file is None and repository is not None and (repository / ".env").exists():
        env_file = repository / ".env"
    config = load_config(env_file)
    if provider:
        config = config.model_copy(update={"provider": provider})

    log_level = config.log_level
    if verbose == 1:
        log_level = "INFO"
    elif verbose >= 2:
        log_level = "DEBUG"
    configure_logging(log_level)
    logging.getLogger(__name__).info(f"Starting mcp-git-engine {__version__}")

    asyncio.run(serve(repository, config=config))


if __name__ == "__main__":
    main()
