"""
Orchestrator for interactive markdown runs

Walks the filtered section sequence, printing each section to an output
sink and asking the operator (through an injected prompt function) what
to do at headers, code fences and prompt directives.

Also renders the table of contents from the unfiltered section list.
"""

from typing import Callable, List, MutableMapping, Optional, Sequence, TextIO, Union

from pygments import highlight
from pygments.formatters import TerminalFormatter
from pygments.lexers import get_lexer_by_name, TextLexer
from pygments.lexer import Lexer
from pygments.util import ClassNotFound

from ..config import appsettings, AppSettings
from ..models.parser import Section, SectionKind
from ..models.orchestrator import CodeState, Outcome
from .directives import prompt_process
from .errors import FormatError, ReadmeRunnerError, ValidationError
from .parser import Parser, heading_extract, anchor_normalize, sections_parse
from .runner import CodeRunner, RunnerRegistry
from .log import LOG


PromptFunc = Callable[[str], str]

PROMPT_RUN = "\n> Run code? (r=run, s=skip, x=exit) [default s]: "
PROMPT_RERUN = "\n> Continue? (r=rerun, s=continue, x=exit) [default s]: "
PROMPT_NO_RUNNER = (
    "\n> No runner for this language or missing code fence language. "
    "Press Enter to continue: "
)
PROMPT_NEXT_HEADER = "\n> Press Enter to continue to [{heading}] (or type 'exit'): "

NO_OUTPUT = "(no output)\n"

# Fence languages highlighted with a different Pygments lexer
LEXER_ALIASES = {"verify": "bash", "shell": "bash"}


def choice_normalize(response: str) -> str:
    return response.strip().lower()


class Orchestrator:
    """
    Drives one interactive run over a filtered section sequence

    Responsibilities:
    - Print headers, text and code fences to the sink
    - Offer run/skip/exit for code fences and dispatch to runners
    - Resolve prompt directives into the shared environment
    - Stop immediately when the operator types exit
    """

    def __init__(
        self,
        sections: Sequence[Section],
        sink: TextIO,
        prompt_fn: PromptFunc,
        registry: RunnerRegistry,
        settings: AppSettings = appsettings,
    ) -> None:
        """
        Initialize orchestrator

        Args:
            sections: Filtered sections to present, in order
            sink: Destination for all rendered text
            prompt_fn: Function that shows a message and returns the operator's response
            registry: Runner registry; its env is the environment prompts write to
            settings: Application settings
        """
        self.sections = list(sections)
        self.sink = sink
        self.prompt_fn = prompt_fn
        self.registry = registry
        self.settings = settings
        self.env: MutableMapping[str, str] = registry.env
        self.runs = 0

    def write(self, text: str) -> None:
        self.sink.write(text)

    def run(self) -> bool:
        """
        Present every section in order

        Returns:
            True if the document was walked to the end, False if the
            operator exited early

        Raises:
            ProcessError, ProtocolError: If a runner's shell becomes unusable
        """
        LOG(f"Running {len(self.sections)} sections", level=2)
        for index, section in enumerate(self.sections):
            outcome = self.section_process(index, section)
            if outcome is Outcome.EXIT:
                LOG(f"Operator exited at section {index + 1}", level=2)
                return False

        self.write(f"\n{self.settings.completion_banner}\n")
        return True

    def section_process(self, index: int, section: Section) -> Outcome:
        """Dispatch one section by kind"""
        if section.kind is SectionKind.HEADER:
            return self.header_process(index, section)
        if section.kind is SectionKind.CODE:
            return self.code_process(section)
        if section.kind is SectionKind.PROMPT:
            return self.prompt_resolve(section)
        self.write(section.text + "\n")
        return Outcome.CONTINUE

    def header_process(self, index: int, section: Section) -> Outcome:
        """
        Print a header; pause before an immediately following header

        Typing 'exit' (any case) at the pause ends the run.
        """
        self.write(section.text + "\n")
        if index + 1 >= len(self.sections):
            return Outcome.CONTINUE

        following = self.sections[index + 1]
        if following.kind is not SectionKind.HEADER:
            return Outcome.CONTINUE

        heading, _ = heading_extract(following.lines[0])
        response = self.prompt_fn(PROMPT_NEXT_HEADER.format(heading=heading))
        if choice_normalize(response) == "exit":
            return Outcome.EXIT
        self.write("\n")
        return Outcome.CONTINUE

    def code_render(self, section: Section) -> str:
        """Code fence as printed, highlighted when enabled"""
        if not self.settings.highlight_code or len(section.lines) <= 2:
            return section.text

        language = section.language.lower()
        lexer: Lexer
        try:
            lexer = get_lexer_by_name(LEXER_ALIASES.get(language, language))
        except ClassNotFound:
            lexer = TextLexer()
        body = highlight(section.body, lexer, TerminalFormatter()).rstrip("\n")
        return f"{section.lines[0]}\n{body}\n{section.lines[-1]}"

    def code_process(self, section: Section) -> Outcome:
        """
        Print a code fence and run the run/rerun/skip/exit interaction

        States:
            AWAIT_CHOICE: ask run/skip/exit; unrecognised input asks again
            RUN: execute the snippet and print its output
            RAN: ask rerun/continue/exit; unrecognised input reruns
            DONE: interaction finished with the recorded outcome

        Raises:
            ProcessError, ProtocolError: Propagated from the runner after
            being reported to the sink
        """
        self.write(self.code_render(section) + "\n")
        if len(section.lines) <= 2:
            return Outcome.CONTINUE

        runner = self.registry.get(section.language) if section.language else None
        if runner is None:
            self.prompt_fn(PROMPT_NO_RUNNER)
            return Outcome.CONTINUE

        state = CodeState.AWAIT_CHOICE
        outcome = Outcome.CONTINUE
        while state is not CodeState.DONE:
            if state is CodeState.AWAIT_CHOICE:
                choice = choice_normalize(self.prompt_fn(PROMPT_RUN))
                if choice == "r":
                    state = CodeState.RUN
                elif choice == "x":
                    outcome, state = Outcome.EXIT, CodeState.DONE
                elif choice in ("s", ""):
                    state = CodeState.DONE
            elif state is CodeState.RUN:
                self.snippet_run(runner, section)
                state = CodeState.RAN
            elif state is CodeState.RAN:
                choice = choice_normalize(self.prompt_fn(PROMPT_RERUN))
                if choice == "x":
                    outcome, state = Outcome.EXIT, CodeState.DONE
                elif choice in ("s", ""):
                    state = CodeState.DONE
                else:
                    state = CodeState.RUN
        return outcome

    def snippet_run(self, runner: CodeRunner, section: Section) -> None:
        """Execute a fence body and print its output annotation"""
        self.runs += 1
        LOG(f"Running {section.language} snippet ({len(section.lines) - 2} lines)", level=2)
        try:
            output = runner.run(section.body)
        except ReadmeRunnerError as e:
            self.write(f"\n> Error: {e}\n")
            raise
        self.write(f"\n> Output: {output or NO_OUTPUT}")

    def prompt_resolve(self, section: Section) -> Outcome:
        """
        Resolve a prompt section into the shared environment

        Invalid responses (ValidationError) are reported and asked again.
        A malformed directive (FormatError) is reported once and the section
        skipped rather than re-prompted: the line is never shown to the
        operator, so asking again would loop forever on the same error.
        """
        while True:
            try:
                resolved = prompt_process(self.prompt_fn, section.lines)
            except ValidationError as e:
                self.write(f"{e}\n")
                continue
            except FormatError as e:
                self.write(f"{e}\n")
                LOG(f"Skipping malformed prompt: {section.text}", level=1)
                return Outcome.CONTINUE
            break

        self.write("\n")
        for name, value in resolved.items():
            self.env[name] = value
            LOG(f"Set {name} in run environment", level=2)
        return Outcome.CONTINUE


def markdown_run(
    document: Union[str, bytes],
    start_anchor: str,
    tags: Optional[Sequence[str]],
    sink: TextIO,
    prompt_fn: PromptFunc,
    registry: Optional[RunnerRegistry] = None,
    settings: AppSettings = appsettings,
) -> bool:
    """
    Parse a document and walk it interactively

    Args:
        document: Raw markdown
        start_anchor: Anchor of the header to start from ("" = from the top)
        tags: Tags to run (empty/None = all)
        sink: Destination for rendered text
        prompt_fn: Operator input function
        registry: Runner registry to use; when omitted a private one is
                  created over a copy of the process environment and closed
                  before returning
        settings: Application settings

    Returns:
        True if the run completed, False if the operator exited
    """
    sections = sections_parse(document, start_anchor, tags)
    if registry is not None:
        return Orchestrator(sections, sink, prompt_fn, registry, settings).run()

    with RunnerRegistry(settings=settings) as owned:
        return Orchestrator(sections, sink, prompt_fn, owned, settings).run()


def toc_lines(document: Union[str, bytes]) -> List[str]:
    """
    Table of contents entries for every header, unfiltered

    Example:
        "## Section One" -> "  - Section One (section-one)"
    """
    entries = []
    for section in Parser(document).segments_build():
        if section.kind is not SectionKind.HEADER:
            continue
        heading, level = heading_extract(section.lines[0])
        indent = "  " * max(level - 1, 0)
        entries.append(f"{indent}- {heading} ({anchor_normalize(heading)})")
    return entries


def toc_print(sink: TextIO, document: Union[str, bytes]) -> int:
    """
    Write the table of contents to the sink

    Returns:
        Number of entries written
    """
    entries = toc_lines(document)
    for entry in entries:
        sink.write(entry + "\n")
    return len(entries)
