"""
Persistent shell runners

Every supported fence language is served by one long-lived interpreter
process. Snippets are written to its stdin followed by a marker echo;
output is read back line by line until the marker appears. Shell state
(working directory, variables, functions) therefore carries over from one
snippet to the next.

    ```bash          ->  StreamingRunner("bash")
    ```sh / ```shell ->  StreamingRunner("sh")
    ```verify        ->  VerifyRunner("bash"), returns a Success/Failure verdict

Runners live in a RunnerRegistry which creates at most one runner per
language family, on first lookup, and closes them all at the end of a run.
"""

import os
import queue
import re
import shlex
import subprocess
import threading
import time
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, MutableMapping, Optional

from ..config import appsettings, AppSettings
from .errors import ProcessError, ProtocolError, RunnerTimeoutError
from .log import LOG


ENV_NAME_RE = re.compile(r'^[A-Za-z_][A-Za-z0-9_]*$')

# Function and variable names used by the verify wrapper
VERIFY_FUNCTION = "__readmerunner_snippet"
VERIFY_STATUS = "__readmerunner_status"
VERIFY_ALIASES = "__readmerunner_aliases"


def line_decode(raw: bytes) -> str:
    """
    Decode one raw output line without its terminator

    Only "\\n" or "\\r\\n" end a line; a lone "\\r" (progress bars) stays in
    the text. Bytes that are not UTF-8 become U+FFFD instead of failing.
    """
    if raw.endswith(b"\r\n"):
        raw = raw[:-2]
    elif raw.endswith(b"\n"):
        raw = raw[:-1]
    return raw.decode("utf-8", errors="replace")


class CodeRunner(ABC):
    """
    Capability to execute snippet text and return its captured output
    """

    @abstractmethod
    def run(self, code: str) -> str:
        """Execute a snippet and return its output"""

    @abstractmethod
    def close(self) -> None:
        """Release the underlying interpreter"""


class StreamingRunner(CodeRunner):
    """
    Runs snippets through one persistent interpreter process

    stderr is merged into stdout so failures show up in captured output.
    Snippets run strictly one at a time, in submission order.
    """

    def __init__(
        self,
        command: str,
        env: Optional[MutableMapping[str, str]] = None,
        timeout: Optional[float] = None,
        settings: AppSettings = appsettings,
    ) -> None:
        """
        Initialize runner (the process is spawned on start() or first run())

        Args:
            command: Interpreter to spawn (e.g., "bash")
            env: Shared environment mapping; variables added to it after the
                 spawn are exported into the shell before the next snippet
            timeout: Seconds to wait for a snippet's marker (None waits forever)
            settings: Application settings (marker prefixes)
        """
        self.command = command
        self.env = env if env is not None else dict(os.environ)
        self.timeout = timeout
        self.settings = settings
        self.marker = settings.marker_make(settings.end_marker)

        self.process: Optional[subprocess.Popen] = None
        self.lines: "queue.Queue[Optional[str]]" = queue.Queue()
        self.exported: Dict[str, str] = {}
        self._deadline: Optional[float] = None

    @property
    def alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def start(self) -> None:
        """
        Spawn the interpreter with piped stdin/stdout

        Raises:
            ProcessError: If the interpreter cannot be started
        """
        if self.process is not None:
            return

        self.exported = dict(self.env)
        try:
            self.process = subprocess.Popen(
                shlex.split(self.command),
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                env=self.exported,
            )
        except OSError as e:
            raise ProcessError(f"failed to start '{self.command}': {e}") from e

        pump = threading.Thread(target=self._pump, name=f"pump-{self.command}", daemon=True)
        pump.start()
        LOG(f"Spawned {self.command} (pid {self.process.pid})", level=2)

    def _pump(self) -> None:
        """Move interpreter output lines onto the queue; None marks EOF"""
        assert self.process is not None and self.process.stdout is not None
        try:
            for raw in iter(self.process.stdout.readline, b""):
                self.lines.put(line_decode(raw))
        except (OSError, ValueError) as e:
            LOG(f"Output pump for {self.command} stopped: {e}", level=2)
        finally:
            self.lines.put(None)

    def env_sync(self) -> str:
        """
        Build export statements for shared environment changes

        Returns:
            Newline-terminated export lines for variables that changed since
            the shell last saw them (empty string when nothing changed)
        """
        statements = []
        for name, value in self.env.items():
            if self.exported.get(name) == value:
                continue
            if not ENV_NAME_RE.match(name):
                LOG(f"Not exporting '{name}': not a valid shell variable name", level=1)
                continue
            statements.append(f"export {name}={shlex.quote(value)}\n")
            self.exported[name] = value
        return "".join(statements)

    def request_write(self, text: str) -> None:
        """
        Write a request to the interpreter's stdin

        Raises:
            ProcessError: If the pipe is closed or the write fails
        """
        self.start()
        assert self.process is not None and self.process.stdin is not None
        try:
            self.process.stdin.write(text.encode("utf-8"))
            self.process.stdin.flush()
        except (OSError, ValueError) as e:
            raise ProcessError(f"failed to write to '{self.command}': {e}") from e

    def line_read(self, captured: List[str]) -> str:
        """
        Read the next output line, honouring the run deadline

        Args:
            captured: Output read so far (attached to a timeout error)

        Raises:
            RunnerTimeoutError: If the deadline passes first
            ProcessError: If the interpreter closed its output
        """
        remaining = None
        if self._deadline is not None:
            remaining = max(0.0, self._deadline - time.monotonic())
        try:
            line = self.lines.get(timeout=remaining)
        except queue.Empty:
            partial = "".join(f"{item}\n" for item in captured)
            self.process_kill()
            raise RunnerTimeoutError(
                f"'{self.command}' produced no marker within {self.timeout}s", output=partial
            )
        if line is None:
            code = self.process.poll() if self.process else None
            raise ProcessError(f"'{self.command}' exited unexpectedly (status {code})")
        return line

    def output_read(self) -> List[str]:
        """
        Read output lines up to, not including, the end marker

        Output printed without a trailing newline shares its line with the
        marker; that prefix is kept as the last output line.
        """
        captured: List[str] = []
        while True:
            line = self.line_read(captured)
            if line == self.marker:
                return captured
            if line.endswith(self.marker):
                captured.append(line[: -len(self.marker)])
                return captured
            captured.append(line)

    def request_build(self, code: str) -> str:
        """Snippet text followed by the end-marker echo"""
        return f"{self.env_sync()}{code}\necho {self.marker}\n"

    def run(self, code: str) -> str:
        """
        Execute a snippet in the persistent interpreter

        Args:
            code: Snippet body

        Returns:
            Everything the snippet printed (stdout and stderr), one
            newline-terminated line per output line

        Raises:
            ProcessError: On spawn/write/read failure (RunnerTimeoutError on timeout)
        """
        self._deadline = time.monotonic() + self.timeout if self.timeout else None
        self.request_write(self.request_build(code))
        captured = self.output_read()
        LOG(f"{self.command}: captured {len(captured)} lines", level=3)
        return "".join(f"{line}\n" for line in captured)

    def process_kill(self) -> None:
        """Forcefully stop the interpreter; its state can no longer be trusted"""
        if self.alive:
            assert self.process is not None
            self.process.kill()
            self.process.wait()
            LOG(f"Killed {self.command} (pid {self.process.pid})", level=2)

    def close(self) -> None:
        """
        Close stdin and wait for the interpreter to exit

        Raises:
            ProcessError: If the pipe cannot be closed
        """
        if self.process is None:
            return
        try:
            if self.process.stdin and not self.process.stdin.closed:
                self.process.stdin.close()
        except OSError as e:
            raise ProcessError(f"failed to close '{self.command}': {e}") from e

        try:
            status = self.process.wait(timeout=5)
        except subprocess.TimeoutExpired:
            LOG(f"{self.command} did not exit after stdin closed, killing", level=1)
            self.process_kill()
            status = self.process.returncode
        LOG(f"Closed {self.command} (status {status})", level=2)


class VerifyRunner(StreamingRunner):
    """
    Runs a snippet as a check and reports Success or Failure

    The snippet body is wrapped in a shell function in which 'exit' is
    redefined as 'return', so a snippet calling exit reports its status
    instead of killing the shared shell.
    """

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.exit_marker = self.settings.marker_make(self.settings.exit_marker)

    def request_build(self, code: str) -> str:
        # The alias turns 'exit' written in the snippet into 'return' while
        # the wrapper is parsed; the function catches exit in called helpers.
        return (
            f"{self.env_sync()}"
            f"{VERIFY_ALIASES}=$(shopt -p expand_aliases)\n"
            f"exit() {{ return \"$@\"; }}\n"
            f"shopt -s expand_aliases\n"
            f"alias exit=return\n"
            f"{VERIFY_FUNCTION}() {{\n"
            f"{code}\n"
            f"}}\n"
            f"unalias exit\n"
            f"eval \"${VERIFY_ALIASES}\"\n"
            f"{VERIFY_FUNCTION}\n"
            f"{VERIFY_STATUS}=$?\n"
            f"unset -f exit {VERIFY_FUNCTION}\n"
            f"echo {self.marker}\n"
            f"echo {self.exit_marker} ${VERIFY_STATUS}\n"
        )

    def status_read(self) -> int:
        """
        Read and parse the "<exit-marker> <status>" line

        Raises:
            ProtocolError: If the line is missing or malformed
        """
        try:
            line = self.line_read([])
        except ProcessError as e:
            if isinstance(e, RunnerTimeoutError):
                raise
            raise ProtocolError(f"missing exit status line: {e}") from e

        parts = line.split()
        if len(parts) != 2 or parts[0] != self.exit_marker:
            raise ProtocolError(f"failed to parse exit code, got: {line}")
        try:
            return int(parts[1])
        except ValueError as e:
            raise ProtocolError(f"invalid exit code: {parts[1]}") from e

    def run(self, code: str) -> str:
        """
        Execute a verify snippet

        Returns:
            Captured output followed by a "Success" verdict for status 0 or a
            "Failure [command exited with status N]" verdict otherwise

        Raises:
            ProcessError: On transport failure
            ProtocolError: If the status line is malformed
        """
        self._deadline = time.monotonic() + self.timeout if self.timeout else None
        self.request_write(self.request_build(code))
        captured = self.output_read()
        status = self.status_read()
        LOG(f"verify snippet exited with status {status}", level=2)
        output = "".join(f"{line}\n" for line in captured)
        return output + self.settings.verdict_format(status)


RunnerFactory = Callable[[MutableMapping[str, str], AppSettings], CodeRunner]


def _bash_make(env: MutableMapping[str, str], settings: AppSettings) -> CodeRunner:
    return StreamingRunner(settings.bash_command, env=env, timeout=settings.run_timeout, settings=settings)


def _sh_make(env: MutableMapping[str, str], settings: AppSettings) -> CodeRunner:
    return StreamingRunner(settings.sh_command, env=env, timeout=settings.run_timeout, settings=settings)


def _verify_make(env: MutableMapping[str, str], settings: AppSettings) -> CodeRunner:
    return VerifyRunner(settings.verify_command, env=env, timeout=settings.run_timeout, settings=settings)


class RunnerRegistry:
    """
    Registry of persistent runners keyed by language family

    Maps fence languages to families and lazily creates one runner per
    family. Unknown or empty languages have no runner.

    Usage:
        with RunnerRegistry(env) as registry:
            runner = registry.get("bash")
            if runner:
                print(runner.run("echo hello"))
    """

    FAMILIES: Dict[str, str] = {
        "bash": "bash",
        "sh": "sh",
        "shell": "sh",
        "verify": "verify",
    }

    FACTORIES: Dict[str, RunnerFactory] = {
        "bash": _bash_make,
        "sh": _sh_make,
        "verify": _verify_make,
    }

    def __init__(
        self,
        env: Optional[MutableMapping[str, str]] = None,
        settings: AppSettings = appsettings,
    ) -> None:
        """
        Args:
            env: Shared environment for every runner; defaults to a copy of
                 the current process environment
            settings: Application settings
        """
        self.env: MutableMapping[str, str] = env if env is not None else dict(os.environ)
        self.settings = settings
        self.runners: Dict[str, CodeRunner] = {}
        self._lock = threading.Lock()

    def family_resolve(self, language: str) -> Optional[str]:
        """Map a fence language to its runner family"""
        return self.FAMILIES.get(language.strip().lower())

    def get(self, language: str) -> Optional[CodeRunner]:
        """
        Get the runner for a fence language, starting it on first use

        Returns:
            CodeRunner, or None if the language is unsupported or its
            interpreter failed to start
        """
        family = self.family_resolve(language)
        if family is None:
            LOG(f"No runner for language '{language}'", level=2)
            return None

        with self._lock:
            runner = self.runners.get(family)
            if runner is None:
                runner = self.FACTORIES[family](self.env, self.settings)
                try:
                    if isinstance(runner, StreamingRunner):
                        runner.start()
                except ProcessError as e:
                    LOG(f"Error starting {family} runner: {e}", level=1)
                    return None
                self.runners[family] = runner
            return runner

    def close(self) -> None:
        """
        Close every runner that was started

        Raises:
            ProcessError: First close failure, after attempting all runners
        """
        failure: Optional[ProcessError] = None
        for family, runner in self.runners.items():
            try:
                runner.close()
            except ProcessError as e:
                LOG(f"Error closing {family} runner: {e}", level=1)
                failure = failure or e
        self.runners.clear()
        if failure is not None:
            raise failure

    def __enter__(self) -> "RunnerRegistry":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
