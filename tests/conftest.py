"""
Shared test fixtures and configuration.
"""

import logging
from pathlib import Path

import pytest
import yaml

from envforge.adapters.mock import MockCommandRunner
from envforge.core.models.platform import PlatformInfo


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    """Keep tests away from the user's catalog, run log and log settings."""
    for var in (
        "ENVFORGE_CATALOG",
        "ENVFORGE_RUN_LOG",
        "ENVFORGE_LOG_LEVEL",
        "ENVFORGE_LOG_FILE",
        "ENVFORGE_LOG_FILE_LEVEL",
    ):
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("XDG_STATE_HOME", str(tmp_path / "xdg-state"))


@pytest.fixture(autouse=True)
def _restore_root_logger():
    """setup_logging replaces root handlers; put them back after each test."""
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def runner() -> MockCommandRunner:
    """A mock runner where every command succeeds."""
    return MockCommandRunner()


@pytest.fixture
def linux_apt() -> PlatformInfo:
    return PlatformInfo(
        system="Linux",
        machine="x86_64",
        distro="ubuntu",
        package_manager="apt",
        shell="bash",
    )


@pytest.fixture
def macos() -> PlatformInfo:
    return PlatformInfo(
        system="Darwin",
        machine="arm64",
        distro="macos",
        package_manager="brew",
        shell="zsh",
    )


@pytest.fixture
def write_catalog(tmp_path: Path):
    """Write a catalog dict as YAML and return its path."""

    def _write(data: dict, name: str = "envforge.yml") -> Path:
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
        return path

    return _write
