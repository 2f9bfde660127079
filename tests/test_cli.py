"""
Tests for the CLI — run modes, output formats and exit codes.

These run real shell commands against files under tmp_path.
"""

import json
import os
import signal
import subprocess
import sys
import time
from pathlib import Path

import click
import pytest
from click.testing import CliRunner

from envforge.core.engine.confirm import ClickConfirmer
from envforge.core.persistence.run_log import read_events
from envforge.main import _split_only, cli


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    path = tmp_path / "machine"
    path.mkdir()
    return path


def _file_task(workdir: Path, name: str, *deps: str, **extra) -> dict:
    target = workdir / name
    task = {
        "name": name,
        "probe": {"kind": "file", "path": str(target)},
        "apply": [f"touch {target}"],
        "depends_on": list(deps),
    }
    task.update(extra)
    return task


@pytest.fixture
def simple_catalog(write_catalog, workdir: Path) -> Path:
    return write_catalog({
        "name": "test-machine",
        "tasks": [
            _file_task(workdir, "base"),
            _file_task(workdir, "app", "base"),
            _file_task(workdir, "extra"),
        ],
    })


def _invoke(*args: str):
    return CliRunner().invoke(cli, list(args))


class TestCLIGlobal:
    def test_help(self):
        result = _invoke("--help")
        assert result.exit_code == 0
        assert "--dry-run" in result.output
        assert "--only" in result.output

    def test_version(self):
        result = _invoke("--version")
        assert result.exit_code == 0
        assert "0.1.0" in result.output

    def test_split_only(self):
        assert _split_only(("a,b", " c ", "d,,")) == ["a", "b", "c", "d"]


class TestRun:
    def test_converges(self, simple_catalog, workdir, tmp_path):
        log = tmp_path / "run.ndjson"
        result = _invoke("--config", str(simple_catalog), "--log-path", str(log))
        assert result.exit_code == 0, result.output
        assert (workdir / "base").is_file()
        assert (workdir / "app").is_file()
        assert "applied" in result.output
        assert "Result: ok" in result.output
        assert log.is_file()

    def test_second_run_skips(self, simple_catalog, tmp_path):
        log = tmp_path / "run.ndjson"
        _invoke("--config", str(simple_catalog), "--log-path", str(log))
        result = _invoke("--config", str(simple_catalog), "--log-path", str(log), "--json")
        assert result.exit_code == 0
        data = json.loads(result.output)
        assert data["report"]["counts"]["skipped"] == 3
        assert data["report"]["counts"]["applied"] == 0

    def test_dry_run_changes_nothing(self, simple_catalog, workdir, tmp_path):
        result = _invoke(
            "--config", str(simple_catalog), "--log-path", str(tmp_path / "run.ndjson"), "--dry-run",
        )
        assert result.exit_code == 0
        assert "planned" in result.output
        assert "[dry-run]" in result.output
        assert not (workdir / "base").exists()

    def test_only_includes_dependencies(self, simple_catalog, workdir, tmp_path):
        result = _invoke(
            "--config", str(simple_catalog), "--log-path", str(tmp_path / "run.ndjson"),
            "--only", "app", "--json",
        )
        assert result.exit_code == 0
        names = [t["name"] for t in json.loads(result.output)["report"]["tasks"]]
        assert names == ["base", "app"]
        assert not (workdir / "extra").exists()

    def test_json_output(self, simple_catalog, tmp_path):
        log = tmp_path / "run.ndjson"
        result = _invoke("--config", str(simple_catalog), "--log-path", str(log), "--json")
        data = json.loads(result.output)
        assert data["exit_code"] == 0
        assert data["run_log"] == str(log)
        assert data["catalog"] == str(simple_catalog)
        assert data["report"]["status"] == "ok"


class TestExitCodes:
    def test_fatal_failure_aborts(self, write_catalog, workdir, tmp_path):
        catalog = write_catalog({"tasks": [
            _file_task(workdir, "broken", apply=["echo 'E: Unable to locate package' >&2; exit 100"]),
            _file_task(workdir, "after"),
        ]})
        result = _invoke("--config", str(catalog), "--log-path", str(tmp_path / "run.ndjson"))
        assert result.exit_code == 2
        assert "Unable to locate package" in result.output
        assert not (workdir / "after").exists()

    def test_degraded_failure(self, write_catalog, workdir, tmp_path):
        catalog = write_catalog({"tasks": [
            _file_task(workdir, "broken", apply=["exit 1"], failure_policy="degraded"),
            _file_task(workdir, "after"),
        ]})
        result = _invoke("--config", str(catalog), "--log-path", str(tmp_path / "run.ndjson"))
        assert result.exit_code == 1
        assert (workdir / "after").is_file()
        assert "Result: degraded" in result.output

    def test_continue_on_error(self, write_catalog, workdir, tmp_path):
        catalog = write_catalog({"tasks": [
            _file_task(workdir, "broken", apply=["exit 1"]),
            _file_task(workdir, "after"),
        ]})
        result = _invoke(
            "--config", str(catalog), "--log-path", str(tmp_path / "run.ndjson"), "--continue-on-error",
        )
        assert result.exit_code == 1
        assert (workdir / "after").is_file()

    def test_invalid_catalog(self, write_catalog, tmp_path):
        catalog = write_catalog({"tasks": [{"name": "x", "probe": {"kind": "nope"}}]})
        result = _invoke("--config", str(catalog), "--log-path", str(tmp_path / "run.ndjson"))
        assert result.exit_code == 3
        assert "Invalid task 'x'" in result.output
        assert not (tmp_path / "run.ndjson").exists()

    def test_cycle_is_config_error(self, write_catalog, workdir, tmp_path):
        catalog = write_catalog({"tasks": [
            _file_task(workdir, "a", "b"),
            _file_task(workdir, "b", "a"),
        ]})
        result = _invoke("--config", str(catalog), "--log-path", str(tmp_path / "run.ndjson"), "--json")
        assert result.exit_code == 3
        assert "cycle" in json.loads(result.output)["error"]
        assert not (workdir / "a").exists()

    def test_unknown_only_task(self, simple_catalog, tmp_path):
        result = _invoke(
            "--config", str(simple_catalog), "--log-path", str(tmp_path / "run.ndjson"), "--only", "nope",
        )
        assert result.exit_code == 3
        assert "Unknown task: 'nope'" in result.output

    def test_unwritable_log_path(self, simple_catalog, workdir, tmp_path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        result = _invoke("--config", str(simple_catalog), "--log-path", str(blocker / "run.ndjson"))
        assert result.exit_code == 3
        assert "Cannot open run log" in result.output
        assert not (workdir / "base").exists()


class TestConfirmation:
    def _catalog(self, write_catalog, workdir):
        return write_catalog({"tasks": [
            _file_task(workdir, "shell", confirm="Change your login shell?"),
        ]})

    def test_non_interactive_declines(self, write_catalog, workdir, tmp_path):
        catalog = self._catalog(write_catalog, workdir)
        result = _invoke("--config", str(catalog), "--log-path", str(tmp_path / "run.ndjson"))
        assert result.exit_code == 2
        assert "confirmation declined" in result.output
        assert not (workdir / "shell").exists()

    def test_yes_accepts(self, write_catalog, workdir, tmp_path):
        catalog = self._catalog(write_catalog, workdir)
        result = _invoke("--config", str(catalog), "--log-path", str(tmp_path / "run.ndjson"), "--yes")
        assert result.exit_code == 0
        assert (workdir / "shell").is_file()

    def test_closed_stdin_declines(self, monkeypatch):
        def no_answer(*args, **kwargs):
            raise click.Abort()

        monkeypatch.setattr(click, "confirm", no_answer)
        assert ClickConfirmer(default=True).confirm("shell", "Change?") is False


class TestList:
    def test_list_order(self, simple_catalog):
        result = _invoke("--config", str(simple_catalog), "--list")
        assert result.exit_code == 0
        assert "test-machine" in result.output
        assert result.output.index("base") < result.output.index("app")
        assert "after: base" in result.output

    def test_list_json(self, simple_catalog, workdir):
        result = _invoke("--config", str(simple_catalog), "--list", "--json")
        data = json.loads(result.output)
        assert [t["name"] for t in data["tasks"]] == ["base", "app", "extra"]
        assert data["tasks"][1]["depends_on"] == ["base"]
        assert not (workdir / "base").exists()

    def test_list_invalid(self, tmp_path):
        result = _invoke("--config", str(tmp_path / "missing.yml"), "--list")
        assert result.exit_code == 3


# ── Ctrl-C ──────────────────────────────────────────────────────


@pytest.mark.skipif(os.name != "posix", reason="POSIX signals")
class TestInterrupt:
    """Deliver SIGINT to the CLI's process group, as a terminal does."""

    def _start(self, write_catalog, workdir: Path, tmp_path: Path, project_root: Path):
        started, done = workdir / "started", workdir / "done"
        catalog = write_catalog({"tasks": [
            {
                "name": "slow",
                "probe": {"kind": "file", "path": str(done)},
                "apply": [f"touch {started} && sleep 2 && touch {done}"],
            },
            _file_task(workdir, "next"),
        ]})
        log_path = tmp_path / "run.ndjson"
        proc = subprocess.Popen(
            [sys.executable, "-m", "envforge.main", "--config", str(catalog), "--log-path", str(log_path)],
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            start_new_session=True,
            env={**os.environ, "PYTHONPATH": str(project_root)},
        )
        deadline = time.monotonic() + 15
        while not started.exists():
            if proc.poll() is not None or time.monotonic() > deadline:
                proc.kill()
                out, err = proc.communicate()
                pytest.fail(f"apply never started:\n{out}\n{err}")
            time.sleep(0.05)
        return proc, log_path

    def test_first_interrupt_finishes_current_task(self, write_catalog, workdir, tmp_path, project_root):
        proc, log_path = self._start(write_catalog, workdir, tmp_path, project_root)
        os.killpg(proc.pid, signal.SIGINT)
        out, err = proc.communicate(timeout=30)

        assert proc.returncode == 2, err
        assert (workdir / "done").is_file()
        assert not (workdir / "next").exists()
        assert "finishing the current task" in err
        assert "cancelled" in out

        outcomes = {e.task: e.outcome for e in read_events(log_path) if e.terminal}
        assert outcomes == {"slow": "applied", "next": "blocked"}

    def test_second_interrupt_aborts_immediately(self, write_catalog, workdir, tmp_path, project_root):
        proc, _ = self._start(write_catalog, workdir, tmp_path, project_root)
        os.killpg(proc.pid, signal.SIGINT)
        time.sleep(0.3)
        os.killpg(proc.pid, signal.SIGINT)
        out, err = proc.communicate(timeout=30)

        assert proc.returncode == 2, err
        assert "Aborted" in err
        # Outlive the killed apply's sleep: its last step must never run
        time.sleep(2.5)
        assert not (workdir / "done").exists()
        assert not (workdir / "next").exists()
