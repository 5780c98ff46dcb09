"""
Section parser for readme-runner markdown

Transforms raw markdown into an ordered sequence of typed sections.

The parser operates in two passes:
1. Segmentation: split the document into HEADER / TEXT / CODE / PROMPT
   sections, attaching tags declared by [tags]:# directives
2. Filtering: drop sections before the requested start anchor and
   sections whose tags do not intersect the requested tags

Key features:
- Tag directives are consumed, never rendered
- Tags reset at every header; they do not leak across headers
- Sections tagged 'always' survive every filter
- Code fences are kept verbatim, delimiters included

Example:
    >>> sections = Parser("# Title\\n```bash\\necho hi\\n```\\n").parse()
    >>> [s.kind.value for s in sections]
    ['header', 'code']
"""

import re
from typing import List, Optional, Sequence, Tuple, Union

from ..models.parser import Section, SectionKind, CODE_FENCE
from ..models.directives import TAGS_PREFIX, PROMPT_PREFIX
from .directives import tags_parse, always_check, tags_match
from .errors import FormatError
from .log import LOG


def lines_split(document: Union[str, bytes]) -> List[str]:
    """
    Split a document into lines the way a line scanner would

    Bytes are decoded as UTF-8 with undecodable bytes replaced by U+FFFD.
    Splits on newline only, drops one trailing carriage return per line,
    and yields no final empty line for a trailing newline.
    """
    if isinstance(document, bytes):
        document = document.decode("utf-8", errors="replace")
    if not document:
        return []

    lines = document.split("\n")
    if lines[-1] == "":
        lines.pop()
    return [line[:-1] if line.endswith("\r") else line for line in lines]


def heading_extract(line: str) -> Tuple[str, int]:
    """
    Extract heading text and level from a header line

    Example:
        >>> heading_extract("### Sub section ")
        ('Sub section', 3)
    """
    stripped = line.strip()
    text = stripped.lstrip("#")
    level = len(stripped) - len(text)
    return text.strip(), level


def anchor_normalize(heading: str) -> str:
    """
    Convert heading text into a markdown anchor

    Lowercases, drops everything except letters, digits, spaces and hyphens,
    then turns spaces into hyphens and collapses hyphen runs. Idempotent.

    Example:
        >>> anchor_normalize("Step 2: Install  (Linux)")
        'step-2-install-linux'
    """
    kept = "".join(
        ch for ch in heading.lower()
        if ch.isalpha() or ch.isdecimal() or ch in " -"
    )
    return re.sub(r"-+", "-", kept.replace(" ", "-"))


class Parser:
    """
    Parser for readme-runner markdown documents

    Handles:
    - Header, text, code fence and prompt directive segmentation
    - [tags]:# accumulation and reset at headers
    - Start anchor and tag filtering
    """

    def __init__(self, source: Union[str, bytes], debug: bool = False):
        """
        Initialize parser with source text

        Args:
            source: Raw markdown (bytes are decoded as UTF-8)
            debug: Enable debug output for parser operations

        Attributes:
            lines: Source split into lines
            sections: Segmented sections (filled by segments_build)
        """
        self.lines = lines_split(source)
        self.debug = debug
        self.sections: List[Section] = []

        # Segmentation state
        self._kind = SectionKind.TEXT
        self._current: List[str] = []
        self._tags: List[str] = []
        self._pending: List[str] = []

    def section_open(self, kind: SectionKind, tags: Sequence[str]) -> None:
        """Start a fresh current section"""
        self._kind = kind
        self._current = []
        self._tags = list(tags)

    def section_flush(self) -> None:
        """Emit the current section if it holds any lines"""
        if self._current:
            self.sections.append(
                Section(kind=self._kind, lines=tuple(self._current), tags=tuple(self._tags))
            )
        self.section_open(SectionKind.TEXT, self._pending)

    def segments_build(self) -> List[Section]:
        """
        Pass 1: split the source into an ordered, unfiltered section list

        Returns:
            Every section of the document in source order
        """
        self.sections = []
        self._pending = []
        self.section_open(SectionKind.TEXT, [])
        in_code = False

        for number, line in enumerate(self.lines, start=1):
            trimmed = line.strip()

            if trimmed.startswith(TAGS_PREFIX):
                try:
                    self._pending = self._pending + tags_parse(trimmed)
                except FormatError as e:
                    LOG(f"Line {number}: ignoring {e}", level=1)
                    continue
                # A tag line also labels the section being built
                self._tags = list(self._pending)
                continue

            if in_code:
                self._current.append(line)
                if trimmed.startswith(CODE_FENCE):
                    in_code = False
                    self.section_flush()
                continue

            if trimmed.startswith(CODE_FENCE):
                self.section_flush()
                self.section_open(SectionKind.CODE, self._pending)
                self._current.append(line)
                in_code = True
                continue

            if trimmed.startswith("#"):
                self.section_flush()
                self.section_open(SectionKind.HEADER, self._pending)
                self._current.append(line)
                self._pending = []
                continue

            if trimmed.startswith(PROMPT_PREFIX):
                self.section_flush()
                self.sections.append(
                    Section(kind=SectionKind.PROMPT, lines=(line,), tags=tuple(self._pending))
                )
                continue

            self._current.append(line)

        if in_code:
            LOG("Unterminated code fence at end of document", level=2)
        self.section_flush()

        if self.debug:
            for section in self.sections:
                LOG(f"{section.kind.value:<6} tags={list(section.tags)} lines={len(section.lines)}", level=3)
        return self.sections

    def sections_filter(
        self,
        sections: Sequence[Section],
        start_anchor: str = "",
        requested_tags: Optional[Sequence[str]] = None,
    ) -> List[Section]:
        """
        Pass 2: apply start anchor and tag filtering

        Args:
            sections: Segmented sections in source order
            start_anchor: Anchor of the header to start from ("" = from the top)
            requested_tags: Tags to run (empty = all)

        Returns:
            Filtered subsequence. Empty when a start anchor was requested
            but no header matched it.
        """
        start = anchor_normalize(start_anchor) if start_anchor else ""
        wanted = [tag for tag in (requested_tags or []) if tag]
        started = not start
        filtered: List[Section] = []

        for section in sections:
            if not started and section.kind is SectionKind.HEADER:
                heading, _ = heading_extract(section.lines[0])
                if anchor_normalize(heading) == start:
                    started = True
                    LOG(f"Start anchor '{start}' matched '{heading}'", level=2)

            if always_check(section.tags):
                filtered.append(section)
                continue

            if started and tags_match(section.tags, wanted):
                filtered.append(section)

        if not started:
            LOG(f"Start anchor '{start}' matched no heading", level=1)
            return []
        return filtered

    def parse(
        self,
        start_anchor: str = "",
        requested_tags: Optional[Sequence[str]] = None,
    ) -> List[Section]:
        """
        Segment and filter the source in one call

        Returns:
            The execution sequence of sections
        """
        segments = self.segments_build()
        filtered = self.sections_filter(segments, start_anchor, requested_tags)
        LOG(f"Parsed {len(segments)} sections, {len(filtered)} selected", level=2)
        return filtered


def sections_parse(
    document: Union[str, bytes],
    start_anchor: str = "",
    requested_tags: Optional[Sequence[str]] = None,
) -> List[Section]:
    """Parse a document into its filtered execution sequence"""
    return Parser(document).parse(start_anchor, requested_tags)
