"""
Models package for readme-runner

Contains data structures and type definitions for parsing and running documents.
"""

from .state import ProgramState, pipeline
from .directives import Prompt, TAGS_PREFIX, PROMPT_PREFIX, ALWAYS_TAG
from .parser import Section, SectionKind, CODE_FENCE
from .orchestrator import CodeState, Outcome

__all__ = [
    "ProgramState",
    "pipeline",
    "Prompt",
    "TAGS_PREFIX",
    "PROMPT_PREFIX",
    "ALWAYS_TAG",
    "Section",
    "SectionKind",
    "CODE_FENCE",
    "CodeState",
    "Outcome",
]
