"""
readme-runner - Walk a README section by section and run its code fences

Library layer: section parser, directive parsers, persistent shell
runners and the interactive orchestrator.
"""

__version__ = "0.3.0"

from .parser import Parser, sections_parse, anchor_normalize, heading_extract
from .directives import tags_parse, prompt_parse, prompt_process
from .runner import CodeRunner, StreamingRunner, VerifyRunner, RunnerRegistry
from .orchestrator import Orchestrator, markdown_run, toc_print
from .errors import (
    ReadmeRunnerError,
    FormatError,
    ValidationError,
    ProtocolError,
    ProcessError,
    RunnerTimeoutError,
)
from .log import LOG, state_connectToLogger

__all__ = [
    "Parser",
    "sections_parse",
    "anchor_normalize",
    "heading_extract",
    "tags_parse",
    "prompt_parse",
    "prompt_process",
    "CodeRunner",
    "StreamingRunner",
    "VerifyRunner",
    "RunnerRegistry",
    "Orchestrator",
    "markdown_run",
    "toc_print",
    "ReadmeRunnerError",
    "FormatError",
    "ValidationError",
    "ProtocolError",
    "ProcessError",
    "RunnerTimeoutError",
    "LOG",
    "state_connectToLogger",
    "__version__",
]
