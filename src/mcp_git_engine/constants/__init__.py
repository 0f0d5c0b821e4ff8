"""Constants module for the MCP Git engine.

Constants are organized into logical groups, each a plain class of ``Final``
attributes:

    ```python
    class CategoryDefaults:
        \"\"\"Default values for category operations.\"\"\"
        SOME_VALUE: Final[int] = 100
    ```

Usage examples:
    >>> from mcp_git_engine.constants import GitOperationDefaults
    >>> GitOperationDefaults.TIMEOUT_MS
    60000

See also:
    - configuration: Runtime configuration that may override these defaults
"""

from typing import Final, FrozenSet


class GitOutputDelimiters:
    """Control characters used to delimit machine-readable git output.

    They cannot appear in commit subjects, author names or ref names, so they
    never collide with field content.
    """

    FIELD: Final[str] = "\x1f"
    RECORD: Final[str] = "\x1e"


class GitOperationDefaults:
    """Default values for git operations."""

    TIMEOUT_MS: Final[int] = 60000
    HEALTH_CHECK_TIMEOUT_MS: Final[int] = 10000
    TERMINATE_GRACE_SECONDS: Final[float] = 2.0
    DEFAULT_REMOTE: Final[str] = "origin"
    GIT_BINARY: Final[str] = "git"


class GitEnvironmentDefaults:
    """Environment variables forced on every git subprocess."""

    TERMINAL_PROMPT: Final[str] = "0"
    LOCALE: Final[str] = "C.UTF-8"


class ProviderLimits:
    """Repository size ceilings advertised by each provider, in megabytes."""

    CLI_MAX_REPO_SIZE_MB: Final[int] = 10000
    EMBEDDED_MAX_REPO_SIZE_MB: Final[int] = 500


# Long option names the argument builder emits or callers commonly pass, matched
# without any attached =value. Anything outside this set is logged, or rejected
# when strict flag checking is on.
SAFE_GIT_OPTIONS: Final[FrozenSet[str]] = frozenset(
    {
        # Common
        "--version",
        "--help",
        "--all",
        "--force",
        "--quiet",
        "--verbose",
        "-v",
        "-f",
        "-q",
        # Status
        "--porcelain",
        "-b",
        "--untracked-files",
        "--ignore-submodules",
        "--short",
        "--branch",
        # Branch
        "--list",
        "--remote",
        "--no-abbrev",
        "-m",
        "-d",
        "-D",
        # Log
        "--pretty",
        "--oneline",
        "--graph",
        "--decorate",
        "--format",
        "--max-count",
        "--since",
        "--until",
        "--author",
        "--grep",
        "--sort",
        # Add
        "--update",
        "-u",
        "-A",
        # Commit
        "--amend",
        "--no-verify",
        "--allow-empty",
        "--message",
        "--no-gpg-sign",
        # Diff
        "--stat",
        "--cached",
        "--staged",
        "--unified",
        "--name-only",
        "--no-color",
        # Misc
        "--bare",
        "--initial-branch",
        "--depth",
        "--strategy",
        "--onto",
        "--tags",
        "--prune",
        "--no-ff",
        "--ff-only",
        "--squash",
        "--abort",
        "--continue",
        "--skip",
        "--no-edit",
        "--no-commit",
        "--signoff",
        "--rebase",
        "--no-rebase",
        "--rebase-merges",
        "--keep-index",
        "--include-untracked",
        "--set-upstream",
        "--force-with-lease",
        "--dry-run",
        "--delete",
        "--detach",
        "--push",
        "--mirror",
        "--recurse-submodules",
        "--is-inside-work-tree",
        "--verify",
        "--count",
        "--soft",
        "--mixed",
        "--hard",
        "--merge",
        "--keep",
        "--annotate",
        "--sign",
    }
)


__all__ = [
    "GitOutputDelimiters",
    "GitOperationDefaults",
    "GitEnvironmentDefaults",
    "ProviderLimits",
    "SAFE_GIT_OPTIONS",
]
