"""
Tests for the runner protocol, the mock runner, and the shell runner.
"""

import os
from pathlib import Path

import pytest

from envforge.adapters.base import command_text
from envforge.adapters.mock import MockCommandRunner
from envforge.adapters.shell.command import ShellCommandRunner
from envforge.core.models.result import EXIT_NOT_FOUND, CommandResult

# ── Protocol Tests ───────────────────────────────────────────────────


class TestCommandText:
    def test_string_passthrough(self):
        assert command_text("echo hi | wc -c") == "echo hi | wc -c"

    def test_argv_joined(self):
        assert command_text(["dpkg-query", "-W", "zsh"]) == "dpkg-query -W zsh"


class TestCommandResult:
    def test_success_is_ok_and_launched(self):
        r = CommandResult.success("true")
        assert r.ok
        assert r.launched

    def test_failure_is_launched_but_not_ok(self):
        r = CommandResult.failure("false", exit_code=2, stderr="boom")
        assert not r.ok
        assert r.launched
        assert r.exit_code == 2

    def test_not_found(self):
        r = CommandResult.not_found("nosuchtool --version")
        assert r.exit_code == EXIT_NOT_FOUND
        assert not r.launched
        assert "nosuchtool" in r.error

    def test_timeout(self):
        r = CommandResult.timeout("sleep 10", 1.5)
        assert r.timed_out
        assert r.exit_code is None
        assert not r.ok
        assert not r.launched
        assert "1.5" in r.error

    def test_output_combines_streams(self):
        r = CommandResult(command="x", exit_code=1, stdout="out", stderr="err")
        assert r.output == "out\nerr"


# ── Mock Runner Tests ───────────────────────────────────────────────


class TestMockCommandRunner:
    def test_default_success(self):
        mock = MockCommandRunner(runner_name="test-mock")
        result = mock.run("anything")
        assert result.ok
        assert mock.call_count == 1
        assert mock.name == "test-mock"

    def test_custom_response(self):
        mock = MockCommandRunner()
        mock.set_response("which zsh", CommandResult.success("which zsh", stdout="/bin/zsh"))
        assert mock.run("which zsh").stdout == "/bin/zsh"

    def test_callable_response(self):
        mock = MockCommandRunner()
        calls = []

        def respond(cmd: str) -> CommandResult:
            calls.append(cmd)
            return CommandResult.failure(cmd, exit_code=len(calls))

        mock.set_response("probe", respond)
        assert mock.run("probe").exit_code == 1
        assert mock.run("probe").exit_code == 2

    def test_set_failure(self):
        mock = MockCommandRunner()
        mock.set_failure("apt-get install -y zsh", exit_code=100, stderr="E: broken")
        result = mock.run("apt-get install -y zsh")
        assert not result.ok
        assert result.exit_code == 100
        assert "E: broken" in result.stderr

    def test_set_timeout_and_not_found(self):
        mock = MockCommandRunner()
        mock.set_timeout("slow")
        mock.set_not_found("missing")
        assert mock.run("slow").timed_out
        assert mock.run("missing").exit_code == EXIT_NOT_FOUND

    def test_handler_fallback(self):
        mock = MockCommandRunner(handler=lambda cmd: CommandResult.failure(cmd, exit_code=3))
        assert mock.run("whatever").exit_code == 3

    def test_argv_matches_by_text(self):
        mock = MockCommandRunner()
        mock.set_failure("rpm -q zsh")
        assert not mock.run(["rpm", "-q", "zsh"]).ok

    def test_call_log_and_kwargs(self):
        mock = MockCommandRunner()
        mock.run("a", timeout=5, env={"X": "1"})
        mock.run(["b", "c"])
        assert mock.call_log == ["a", "b c"]
        assert mock.call_kwargs[0]["timeout"] == 5
        assert mock.call_kwargs[0]["env"] == {"X": "1"}

    def test_reset(self):
        mock = MockCommandRunner()
        mock.set_failure("x")
        mock.run("x")
        mock.reset()
        assert mock.call_count == 0
        assert mock.run("x").ok


# ── Shell Runner Tests ──────────────────────────────────────────────


class TestShellCommandRunner:
    def test_name(self):
        assert ShellCommandRunner().name == "shell"

    def test_echo(self, tmp_path: Path):
        result = ShellCommandRunner().run("echo hello world", cwd=str(tmp_path))
        assert result.ok
        assert result.stdout == "hello world"

    def test_failure_captures_stderr(self):
        result = ShellCommandRunner().run("echo nope >&2; exit 3")
        assert not result.ok
        assert result.launched
        assert result.exit_code == 3
        assert "nope" in result.stderr

    def test_pipes_and_substitution(self):
        result = ShellCommandRunner().run('echo "$(printf abc)" | tr a-z A-Z')
        assert result.stdout == "ABC"

    def test_env_overrides_and_expansion(self):
        result = ShellCommandRunner().run(
            'echo "$GREETING"', env={"NAME": "forge", "GREETING": "hi $NAME"},
        )
        assert result.stdout == "hi forge"

    def test_missing_binary_in_shell_is_127(self):
        result = ShellCommandRunner().run("definitely-not-a-real-binary-xyz")
        assert result.exit_code == EXIT_NOT_FOUND
        assert not result.ok

    def test_missing_binary_argv_never_raises(self):
        result = ShellCommandRunner().run(["definitely-not-a-real-binary-xyz", "--x"])
        assert result.exit_code == EXIT_NOT_FOUND
        assert result.error
        assert not result.launched

    def test_timeout(self):
        result = ShellCommandRunner().run("sleep 5", timeout=0.2)
        assert result.timed_out
        assert not result.launched

    def test_default_timeout(self):
        result = ShellCommandRunner(default_timeout=0.2).run("sleep 5")
        assert result.timed_out


@pytest.mark.skipif(os.name != "posix", reason="POSIX signals")
class TestShellInterruptIsolation:
    """Ctrl-C reaches the whole foreground group; children must ride it out."""

    def test_child_ignores_sigint(self):
        result = ShellCommandRunner().run("kill -INT $$; echo survived")
        assert result.ok
        assert result.stdout == "survived"

    def test_grandchild_ignores_sigint(self):
        result = ShellCommandRunner().run("sh -c 'kill -INT $$; echo inner'")
        assert result.ok
        assert result.stdout == "inner"

    def test_isolation_can_be_disabled(self):
        result = ShellCommandRunner(isolate_interrupts=False).run("kill -INT $$; echo survived")
        assert not result.ok
        assert "survived" not in result.stdout
