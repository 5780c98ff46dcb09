"""
Run state carried through the CLI pipeline

ProgramState is filled in stage by stage; pipeline() threads one state
through an ordered list of stages.
"""

import dataclasses
from argparse import Namespace
from dataclasses import dataclass, field
from functools import reduce
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Type, TypeVar


PS = TypeVar("PS", bound="ProgramState")

Stage = Callable[["ProgramState"], "ProgramState"]


@dataclass
class ProgramState:
    """
    State bus for one readme-runner invocation.

    Stages never mutate the state they receive; each returns a copy with
    its own fields filled in:
        - options: inputdir, outputdir, verbosity, inputFile, start, tags, toc, logFile
        - env_check: inputSourceFile, transcriptFile, envOK
        - source_read: markdownSource
        - document_run / contents_print: runResult
        - results_report: nothing (reports only)

    Attributes:
        inputdir: Directory holding the markdown document
        outputdir: Directory receiving the transcript log
        verbosity: Diagnostic level for LOG() (0 silent .. 3 debug)
        inputFile: Document name relative to inputdir
        start: Anchor of the heading to start from ("" = top)
        tags: Comma-separated tags to run ("" = all)
        toc: List headings instead of walking the document
        logFile: Transcript name relative to outputdir
        envOK: Paths were checked successfully
        inputSourceFile: Absolute path of the document
        transcriptFile: Absolute path of the transcript log
        markdownSource: Document bytes as read from disk
        runResult: Summary of the walk or the toc listing
    """

    inputdir: Optional[Path] = field(default=None)
    outputdir: Optional[Path] = field(default=None)
    verbosity: int = field(default=1)
    inputFile: str = field(default="README.md")
    start: str = field(default="")
    tags: str = field(default="")
    toc: bool = field(default=False)
    logFile: str = field(default="")

    envOK: bool = field(default=False)
    inputSourceFile: Path = field(default=Path("/"))
    transcriptFile: Path = field(default=Path("/"))
    markdownSource: bytes = field(default=b"")
    runResult: Optional[Dict[str, Any]] = field(default=None)

    @classmethod
    def state_createFromNamespace(
        cls: Type[PS], options: Namespace, inputdir: Path, outputdir: Path
    ) -> PS:
        """
        Build the initial state from parsed CLI options.

        Options with no matching field (e.g. the plugin's own flags) are
        dropped.
        """
        known = {f.name for f in dataclasses.fields(cls)}
        values = {name: value for name, value in vars(options).items() if name in known}
        values.update(inputdir=inputdir, outputdir=outputdir)
        return cls(**values)

    def tags_list(self) -> List[str]:
        """
        Split the comma-separated tags option

        Example:
            "setup, linux" -> ["setup", "linux"]; "" -> []
        """
        tags = [tag.strip() for tag in self.tags.split(",")]
        if tags == [""]:
            return []
        return tags

    def copy(self: PS) -> PS:
        return dataclasses.replace(self)


def pipeline(initial_state: ProgramState, *stages: Stage) -> ProgramState:
    """
    Run stages in order, feeding each the state returned by the last.

    pipeline(s, env_check, source_read) == source_read(env_check(s))
    """
    return reduce(lambda state, stage: stage(state), stages, initial_state)
