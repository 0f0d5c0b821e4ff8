"""Subprocess environment for git invocations."""

import os
from typing import Dict, Mapping, Optional

from ..constants import GitEnvironmentDefaults


def build_git_env(
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Build the environment passed to every git subprocess.

    The host environment is inherited so git (and its helpers) can be found
    on PATH. Terminal prompting is disabled and the locale forced to UTF-8 so
    messages are stable English text the error mapper can match. Caller
    overrides are applied last.

    Args:
        overrides: Variables that win over everything else
        base: Environment to start from, ``os.environ`` when omitted

    Returns:
        A new dict; neither input is mutated
    """
    env = dict(os.environ if base is None else base)
    env["GIT_TERMINAL_PROMPT"] = GitEnvironmentDefaults.TERMINAL_PROMPT
    env["LANG"] = GitEnvironmentDefaults.LOCALE
    env["LC_ALL"] = GitEnvironmentDefaults.LOCALE
    if overrides:
        env.update(overrides)
    return env
