"""
Parser-specific data models

Type-safe structures for the sections produced by the markdown parser.
"""

from enum import Enum
from dataclasses import dataclass, field
from typing import Tuple


CODE_FENCE = "```"


class SectionKind(Enum):
    """
    Kind of a document section

    Every section has exactly one kind.
    """
    HEADER = "header"    # "# Heading" line plus the plain text that follows it
    TEXT = "text"        # plain lines between boundaries
    CODE = "code"        # ```lang ... ``` fence, delimiters included
    PROMPT = "prompt"    # a single [prompt]:# directive line


@dataclass(frozen=True)
class Section:
    """
    One contiguous, typed chunk of a markdown document

    Sections are created once by the parser's segmentation pass and never
    mutated afterwards; filtering and the orchestrator only read them.

    Attributes:
        kind: SectionKind of this chunk
        lines: Raw lines belonging to the chunk, verbatim. For CODE the first
               and last lines are the fence delimiters.
        tags: Tags in effect for the chunk, in declaration order

    Example:
        For source "```bash\\necho hi\\n```" under "[tags]:# (setup)":
        Section(
            kind=SectionKind.CODE,
            lines=("```bash", "echo hi", "```"),
            tags=("setup",)
        )
    """
    kind: SectionKind
    lines: Tuple[str, ...] = field(default_factory=tuple)
    tags: Tuple[str, ...] = field(default_factory=tuple)

    @property
    def text(self) -> str:
        """Lines joined with newlines, exactly as they appeared in the source"""
        return "\n".join(self.lines)

    @property
    def language(self) -> str:
        """
        Language tag of a code fence (empty when absent or not a CODE section)

        Example:
            "```bash" -> "bash", "```" -> ""
        """
        if self.kind is not SectionKind.CODE or not self.lines:
            return ""
        info = self.lines[0].strip()[len(CODE_FENCE):].strip()
        return info.split()[0] if info else ""

    @property
    def body(self) -> str:
        """Snippet text between the fence delimiters"""
        if self.kind is not SectionKind.CODE:
            return ""
        return "\n".join(self.lines[1:-1])
