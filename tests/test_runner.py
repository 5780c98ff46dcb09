"""
Persistent shell runner tests

Tests marker framing, state persistence across snippets, the verify
exit-status protocol, timeouts, environment export and the registry.
"""

import os

import pytest

from readmerunner.config import AppSettings
from readmerunner.lib.errors import ProcessError, ProtocolError, RunnerTimeoutError
from readmerunner.lib.runner import StreamingRunner, VerifyRunner, RunnerRegistry, line_decode

from conftest import requires_bash, requires_sh


PLAIN = AppSettings(color_output=False)


@pytest.fixture
def bash():
    runner = StreamingRunner("bash")
    yield runner
    runner.close()


@pytest.fixture
def verify():
    runner = VerifyRunner("bash", settings=PLAIN)
    yield runner
    runner.close()


@requires_bash
class TestStreamingRunner:
    """Test the marker-framed persistent shell"""

    def test_echo(self, bash):
        """Output stops exactly at the marker line"""
        assert bash.run("echo hello") == "hello\n"

    def test_no_output(self, bash):
        """A silent snippet returns the empty string"""
        assert bash.run("true") == ""

    def test_sequential_separation(self, bash):
        """Back-to-back snippets never see each other's output"""
        assert bash.run("echo A") == "A\n"
        assert bash.run("echo B") == "B\n"

    def test_multiline_output(self, bash):
        assert bash.run("echo one\necho two") == "one\ntwo\n"

    def test_state_persists(self, bash):
        """Variables and functions survive between snippets"""
        bash.run("GREETING=hi\ngreet() { echo \"$GREETING $1\"; }")
        assert bash.run("greet there") == "hi there\n"

    def test_working_directory_persists(self, bash, tmp_path):
        bash.run(f"cd '{tmp_path}'")
        bash.run("echo data > marker.txt")
        assert (tmp_path / "marker.txt").read_text() == "data\n"

    def test_stderr_merged(self, bash):
        """Errors appear in captured output"""
        assert bash.run("echo oops >&2") == "oops\n"

    def test_missing_trailing_newline(self, bash):
        """Output sharing a line with the marker is kept"""
        assert bash.run("printf abc") == "abc\n"
        assert bash.run("echo next") == "next\n"

    def test_non_utf8_output(self, bash):
        """Undecodable bytes are replaced and the shell stays usable"""
        assert bash.run("printf 'caf\\xe9\\n'") == "caf\ufffd\n"
        assert bash.alive
        assert bash.run("echo next") == "next\n"

    def test_lone_carriage_return_kept(self, bash):
        """Only newline ends an output line"""
        assert bash.run("printf 'a\\rb\\n'") == "a\rb\n"
        assert bash.run("printf 'crlf\\r\\n'") == "crlf\n"

    def test_failing_command_keeps_shell(self, bash):
        """A failing command is just output"""
        output = bash.run("ls /definitely/not/here")
        assert "/definitely/not/here" in output
        assert bash.run("echo still") == "still\n"

    def test_exit_kills_shell(self, bash):
        """A plain 'exit' ends the shared shell and surfaces as a process error"""
        with pytest.raises(ProcessError):
            bash.run("exit 0")

    def test_timeout(self):
        """A hung snippet raises a distinguishable error with partial output"""
        runner = StreamingRunner("bash", timeout=0.5)
        try:
            with pytest.raises(RunnerTimeoutError) as info:
                runner.run("echo partial\nsleep 10")
            assert info.value.output == "partial\n"
            assert not runner.alive
        finally:
            runner.close()

    def test_env_exported_after_spawn(self):
        """Variables added to the shared env reach a running shell"""
        env = dict(os.environ)
        runner = StreamingRunner("bash", env=env)
        try:
            assert runner.run('echo "[$CHOICE]"') == "[]\n"
            env["CHOICE"] = "it's here"
            assert runner.run('echo "[$CHOICE]"') == "[it's here]\n"
        finally:
            runner.close()

    def test_env_invalid_name_skipped(self):
        """Names the shell cannot export are not sent"""
        env = dict(os.environ)
        runner = StreamingRunner("bash", env=env)
        try:
            runner.start()
            env["1bad"] = "x"
            assert runner.env_sync() == ""
        finally:
            runner.close()

    def test_spawn_failure(self):
        """A missing interpreter is a process error"""
        runner = StreamingRunner("/nonexistent/interpreter")
        with pytest.raises(ProcessError):
            runner.run("echo hi")

    def test_close_is_idempotent(self):
        runner = StreamingRunner("bash")
        runner.run("true")
        runner.close()
        runner.close()
        assert not runner.alive


@requires_sh
class TestShRunner:
    """Test the POSIX sh family"""

    def test_echo(self):
        runner = StreamingRunner("sh")
        try:
            assert runner.run("echo hello") == "hello\n"
            runner.run("X=1")
            assert runner.run("echo $X") == "1\n"
        finally:
            runner.close()


@requires_bash
class TestVerifyRunner:
    """Test exit-status recovery without killing the shared shell"""

    SUCCESS = "Success\n"

    @staticmethod
    def failure(status):
        return f"Failure [command exited with status {status}]\n"

    def test_explicit_success(self, verify):
        assert verify.run("exit 0") == self.SUCCESS

    def test_inferred_success(self, verify):
        """Output is kept ahead of the verdict"""
        assert verify.run("echo hello") == "hello\n" + self.SUCCESS

    def test_exit_error(self, verify):
        assert verify.run("exit 1") == self.failure(1)

    def test_return_error(self, verify):
        assert verify.run("return 1") == self.failure(1)

    def test_unknown_command(self, verify):
        """Command not found is status 127"""
        result = verify.run("unknown-command")
        assert result.endswith(self.failure(127))

    def test_exit_does_not_kill_shell(self, verify):
        """The shell survives exit and keeps its state"""
        verify.run("VALUE=kept\nexit 3")
        assert verify.run('echo "$VALUE"') == "kept\n" + self.SUCCESS
        assert verify.alive

    def test_exit_override_removed(self, verify):
        """The wrapper leaves no exit function or alias behind"""
        verify.run("exit 2")
        verify.request_write(f"type -t exit\necho {verify.marker}\n")
        assert verify.output_read() == ["builtin"]

    def test_exit_stops_snippet(self, verify):
        """exit leaves the snippet at once, like in a script"""
        result = verify.run("false || exit 4\necho unreachable")
        assert result == self.failure(4)

    def test_exit_in_helper_function(self, verify):
        """exit called from a helper reports its status instead of ending the shell"""
        result = verify.run("check() { exit 5; }\ncheck")
        assert result == self.failure(5)
        assert verify.run("echo alive") == "alive\n" + self.SUCCESS

    def test_colored_verdict(self):
        runner = VerifyRunner("bash", settings=AppSettings(color_output=True))
        try:
            assert runner.run("true") == "\x1b[32mSuccess\x1b[0m\n"
            assert runner.run("false") == "\x1b[31mFailure [command exited with status 1]\x1b[0m\n"
        finally:
            runner.close()

    def test_malformed_status_line(self, verify):
        """A status line that is not '<marker> <int>' is a protocol error"""
        with pytest.raises(ProtocolError):
            verify.run(f"echo {verify.marker}\necho garbage")


class TestRunnerRegistry:
    """Test language family lookup and lazy singletons"""

    @requires_bash
    def test_singleton_per_family(self):
        with RunnerRegistry() as registry:
            assert registry.get("bash") is registry.get("bash")
            assert registry.get("bash") is registry.get("BASH")

    @requires_sh
    def test_sh_and_shell_share_runner(self):
        with RunnerRegistry() as registry:
            runner = registry.get("sh")
            assert runner is not None
            assert registry.get("shell") is runner

    @requires_bash
    def test_verify_is_distinct(self):
        with RunnerRegistry() as registry:
            verify = registry.get("verify")
            assert isinstance(verify, VerifyRunner)
            assert verify is not registry.get("bash")

    @pytest.mark.parametrize("language", ["python", "go", "", "  "])
    def test_unsupported_language(self, language):
        """Unknown or empty languages have no runner"""
        with RunnerRegistry() as registry:
            assert registry.get(language) is None
            assert registry.runners == {}

    def test_spawn_failure_yields_none(self):
        """An interpreter that cannot start means no runner"""
        settings = AppSettings(bash_command="/nonexistent/interpreter")
        with RunnerRegistry(settings=settings) as registry:
            assert registry.get("bash") is None

    @requires_bash
    def test_shared_environment(self):
        """Every runner reads the registry's environment"""
        env = dict(os.environ, SEEDED="yes")
        with RunnerRegistry(env=env) as registry:
            assert registry.get("bash").run("echo $SEEDED") == "yes\n"
            env["LATER"] = "also"
            assert registry.get("bash").run("echo $LATER") == "also\n"

    @requires_bash
    def test_close_releases_runners(self):
        registry = RunnerRegistry()
        runner = registry.get("bash")
        registry.close()
        assert registry.runners == {}
        assert not runner.alive


class TestLineDecode:
    """Test decoding of raw interpreter output lines"""

    @pytest.mark.parametrize(
        "raw, text",
        [
            (b"plain\n", "plain"),
            (b"dos\r\n", "dos"),
            (b"10%\r50%\r100%\n", "10%\r50%\r100%"),
            (b"no newline", "no newline"),
            (b"caf\xe9\n", "caf\ufffd"),
            (b"\xff\xfe\n", "\ufffd\ufffd"),
        ],
    )
    def test_line_decode(self, raw, text):
        assert line_decode(raw) == text
