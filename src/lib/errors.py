"""
Exception taxonomy for readme-runner

FormatError and ValidationError are operator-recoverable and are reported
inline by the orchestrator. ProtocolError and ProcessError mean the shared
shell can no longer be trusted and halt the run.

A verify snippet exiting non-zero is not an error: the runner returns a
"Failure" verdict string instead.
"""

from typing import Optional


class ReadmeRunnerError(Exception):
    """Base class for all readme-runner errors"""
    pass


class FormatError(ReadmeRunnerError):
    """Raised when a [tags]:# or [prompt]:# line does not match its grammar"""
    pass


class ValidationError(ReadmeRunnerError):
    """Raised when a prompt response is not one of the declared options"""
    pass


class ProtocolError(ReadmeRunnerError):
    """Raised when an expected marker or status line from the shell is missing or malformed"""
    pass


class ProcessError(ReadmeRunnerError):
    """Raised when the persistent shell cannot be spawned, written to or read from"""
    pass


class RunnerTimeoutError(ProcessError):
    """
    Raised when a snippet does not finish within the configured timeout

    Attributes:
        output: Whatever the snippet printed before the deadline
    """

    def __init__(self, message: str, output: Optional[str] = None) -> None:
        super().__init__(message)
        self.output = output or ""
