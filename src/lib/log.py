"""
Diagnostic logging for readme-runner (loguru)

LOG() writes to stderr when the verbosity of the ProgramState connected
to the current context is high enough. Nothing here ever touches the
output sink, so the transcript of a run holds only document text, runner
output and annotations.

Usage:
    from readmerunner.lib.log import LOG, state_connectToLogger

    state_connectToLogger(state)          # once, in main()
    LOG("Parsed 12 sections", level=2)     # anywhere below it
"""

import sys
from contextvars import ContextVar
from typing import Any, Dict, Optional

from loguru import logger

_program_state: ContextVar[Optional[Any]] = ContextVar("readmerunner_state", default=None)

# LOG level -> loguru severity
LEVEL_NAMES: Dict[int, str] = {1: "INFO", 2: "DEBUG", 3: "TRACE"}

logger_format = (
    "<dim>{time:HH:mm:ss.SSS}</dim> "
    "<level>{level: <5}</level> "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan> "
    "<level>{message}</level>"
)

logger.remove()
logger.add(sys.stderr, format=logger_format, level="TRACE")


def state_connectToLogger(state: Any) -> None:
    """
    Make a ProgramState's verbosity govern LOG() in this context.

    The parser, runners and orchestrator never receive the state; they
    only call LOG().
    """
    _program_state.set(state)


def verbosity_get() -> int:
    """Verbosity of the connected state, 0 when none is connected"""
    state = _program_state.get()
    return getattr(state, "verbosity", 0) if state is not None else 0


def LOG(message: str, level: int = 1, **kwargs: Any) -> None:
    """
    Log a diagnostic if the connected verbosity is at least `level`.

    Args:
        message: Text to log
        level: 1=normal, 2=verbose, 3=debug
        **kwargs: Extra loguru formatting arguments
    """
    if verbosity_get() < level:
        return
    severity = LEVEL_NAMES.get(level, "TRACE")
    logger.opt(depth=1).log(severity, message, **kwargs)
