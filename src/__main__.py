#!/usr/bin/env python3
"""
readme-runner - Walk a README section by section and run its code fences

Presents a markdown document one section at a time. Code fences tagged
bash, sh/shell or verify can be run, rerun or skipped; they execute in
persistent shells so a later snippet sees the working directory and
variables left by an earlier one. [prompt]:# directives ask the operator
for values that are exported to every following snippet.

As with other ChRIS plugins, the program takes an input directory (holding
the markdown) and an output directory (receiving the transcript log).

Directives (hidden when the markdown is rendered):
    [tags]:# (setup linux)                         label following sections
    [prompt]:# (name "Your name?" [alice bob] bob) ask and export $name

Usage:
    readme-runner inputdir/ outputdir/ --inputFile README.md

Examples:
    # Walk the whole document
    readme-runner . logs/ --inputFile README.md

    # Start at "## Install" and only run sections tagged linux
    readme-runner . logs/ --inputFile README.md --start install --tags linux

    # Print the table of contents with anchors
    readme-runner . logs/ --inputFile README.md --toc
"""

import sys
from pathlib import Path
from argparse import ArgumentParser, Namespace, ArgumentDefaultsHelpFormatter
from typing import List, TextIO

from chris_plugin import chris_plugin
from .config import appsettings
from .lib import (
    RunnerRegistry,
    ReadmeRunnerError,
    markdown_run,
    toc_print,
    __version__,
    LOG,
    state_connectToLogger,
)
from .models import ProgramState, pipeline


DISPLAY_TITLE = r"""
                     _
  _ __ ___  __ _  __| |_ __ ___   ___      _ __ _   _ _ __  _ __   ___ _ __
 | '__/ _ \/ _` |/ _` | '_ ` _ \ / _ \____| '__| | | | '_ \| '_ \ / _ \ '__|
 | | |  __/ (_| | (_| | | | | | |  __/____| |  | |_| | | | | | | |  __/ |
 |_|  \___|\__,_|\__,_|_| |_| |_|\___|    |_|   \__,_|_| |_|_| |_|\___|_|

  Interactive markdown runner
"""

# Define CLI arguments
parser = ArgumentParser(
    description="readme-runner - walk a markdown document and run its code fences",
    formatter_class=ArgumentDefaultsHelpFormatter,
)

parser.add_argument(
    "--inputFile", default="README.md", type=str, help="Markdown file to run (relative to inputdir)"
)

parser.add_argument(
    "--start", default="", type=str, help="Anchor of the heading to start from (see --toc)"
)

parser.add_argument(
    "--tags", default="", type=str, help="Comma-separated tags to run; empty runs everything"
)

parser.add_argument(
    "--toc", action="store_true", default=False, help="Print the table of contents and exit"
)

parser.add_argument(
    "--logFile",
    default=appsettings.log_file,
    type=str,
    help="Transcript file (relative to outputdir), appended to on every run",
)

parser.add_argument(
    "-v",
    "--verbosity",
    action="count",
    default=0,
    help="Increase diagnostic verbosity on stderr (can be repeated: -v, -vv, -vvv)",
)

parser.add_argument("-V", "--version", action="version", version=f"%(prog)s {__version__}")


class TranscriptWriter:
    """Sink that writes everything to several streams (terminal and log file)"""

    def __init__(self, *streams: TextIO) -> None:
        self.streams: List[TextIO] = list(streams)

    def write(self, text: str) -> int:
        for stream in self.streams:
            stream.write(text)
            stream.flush()
        return len(text)

    def flush(self) -> None:
        for stream in self.streams:
            stream.flush()


def prompt_interactive(message: str) -> str:
    """
    Show a prompt on the terminal and read one response line.

    Prompts go to stdout only; they are not part of the transcript.

    Raises:
        EOFError: When stdin is exhausted
    """
    sys.stdout.write(message)
    sys.stdout.flush()
    line = sys.stdin.readline()
    if not line:
        raise EOFError("input closed")
    return line.strip()


def env_check(inputstate: ProgramState) -> ProgramState:
    """
    Validate environment and resolve file paths.

    Returns:
        ProgramState with added fields:
            - inputSourceFile: Resolved path to the markdown file
            - transcriptFile: Path of the transcript log in outputdir
            - envOK: True if environment is valid

    Exits:
        1 if the markdown file is not found
    """
    state = inputstate.copy()

    if state.verbosity >= 2:
        LOG(DISPLAY_TITLE, level=2)

    LOG("Checking environment...", level=2)

    assert state.inputdir is not None and state.outputdir is not None
    input_file = state.inputdir / state.inputFile
    if not input_file.is_file():
        print(f"Error: Input file not found: {input_file}", file=sys.stderr)
        state.envOK = False
        sys.exit(1)

    state.inputSourceFile = input_file
    LOG(f"Input file: {input_file}", level=2)

    state.outputdir.mkdir(parents=True, exist_ok=True)
    state.transcriptFile = state.outputdir / (state.logFile or appsettings.log_file)
    LOG(f"Transcript: {state.transcriptFile}", level=2)

    state.envOK = True
    return state


def source_read(inputstate: ProgramState) -> ProgramState:
    """
    Read the markdown file.

    Returns:
        ProgramState with added field:
            - markdownSource: raw bytes of the document

    Exits:
        1 if the file cannot be read
    """
    state = inputstate.copy()

    try:
        state.markdownSource = state.inputSourceFile.read_bytes()
        LOG(f"Read {len(state.markdownSource)} bytes from {state.inputSourceFile.name}", level=2)
    except OSError as e:
        print(f"Error reading file: {e}", file=sys.stderr)
        sys.exit(1)
    return state


def transcript_open(state: ProgramState) -> TextIO:
    """Open the transcript log for appending, exiting on failure"""
    try:
        return state.transcriptFile.open("a", encoding="utf-8")
    except OSError as e:
        print(f"Error opening log file: {e}", file=sys.stderr)
        sys.exit(1)


def contents_print(inputstate: ProgramState) -> ProgramState:
    """
    Print the table of contents to the terminal and transcript.

    Returns:
        ProgramState with added field:
            - runResult: {"status": True, "entries": <heading count>}
    """
    state = inputstate.copy()

    with transcript_open(state) as log:
        entries = toc_print(TranscriptWriter(sys.stdout, log), state.markdownSource)
    state.runResult = {"status": True, "entries": entries}
    return state


def document_run(inputstate: ProgramState) -> ProgramState:
    """
    Walk the document interactively.

    Runners share one environment seeded from this process; prompt
    responses are added to it. All shells are closed when the walk ends.

    Returns:
        ProgramState with added field:
            - runResult: {"status": True, "completed": bool}

    Exits:
        1 if a shell fails (spawn, transport or protocol error)
    """
    state = inputstate.copy()

    with transcript_open(state) as log:
        sink = TranscriptWriter(sys.stdout, log)
        try:
            with RunnerRegistry() as registry:
                completed = markdown_run(
                    state.markdownSource,
                    state.start,
                    state.tags_list(),
                    sink,
                    prompt_interactive,
                    registry=registry,
                )
        except EOFError:
            LOG("Input closed, stopping", level=1)
            completed = False
        except ReadmeRunnerError as e:
            print(f"Error running markdown: {e}", file=sys.stderr)
            sys.exit(1)

    state.runResult = {"status": True, "completed": completed}
    return state


def results_report(inputstate: ProgramState) -> ProgramState:
    """
    Report the outcome of the run (terminal pipeline stage).

    Exits:
        1 if runResult is missing
    """
    state: ProgramState = inputstate.copy()
    if not state.runResult:
        print("Error: Run failed", file=sys.stderr)
        sys.exit(1)

    if "entries" in state.runResult:
        LOG(f"{state.runResult['entries']} headings listed", level=1)
    elif state.runResult["completed"]:
        LOG("Document completed", level=1)
    else:
        LOG("Run stopped before the end of the document", level=1)
    LOG(f"Transcript appended to {state.transcriptFile}", level=1)
    return state


@chris_plugin(
    parser=parser,
    title="readme-runner - Interactive markdown runner",
    category="Utility",
    min_memory_limit="100Mi",
    min_cpu_limit="500m",
)
def main(options: Namespace, inputdir: Path, outputdir: Path):
    """
    Main entry point - walk a markdown document interactively.

    Orchestrates the pipeline:
        1. env_check: Validate paths, locate the transcript
        2. source_read: Read the markdown bytes
        3. contents_print (--toc) or document_run
        4. results_report: Summarise on stderr

    Args:
        options: CLI arguments from argparse
        inputdir: Directory containing the markdown file
        outputdir: Directory where the transcript is written

    Note:
        This function is wrapped by @chris_plugin which handles CLI
        argument parsing and invokes this function with parsed values.
    """

    state: ProgramState = ProgramState.state_createFromNamespace(
        options=options, inputdir=inputdir, outputdir=outputdir
    )

    # Connect state to logger for entire pipeline
    state_connectToLogger(state)

    action = contents_print if state.toc else document_run
    pipeline(state, env_check, source_read, action, results_report)


if __name__ == "__main__":
    main()  # type: ignore  # @chris_plugin decorator transforms signature
