"""
readme-runner - Walk a README section by section and run its code fences

Presents a markdown document interactively and executes bash/sh/verify
fences in persistent shells, so later snippets see earlier snippets' state.
"""

from .lib import (
    Parser,
    RunnerRegistry,
    Orchestrator,
    markdown_run,
    toc_print,
    LOG,
    state_connectToLogger,
    __version__,
)

__all__ = [
    "Parser",
    "RunnerRegistry",
    "Orchestrator",
    "markdown_run",
    "toc_print",
    "LOG",
    "state_connectToLogger",
    "__version__",
]
