"""
Tests for platform detection.
"""

from pathlib import Path

import pytest

from envforge.core.services import platform as platform_mod
from envforge.core.services.platform import (
    detect_platform,
    normalized_arch,
    read_os_release,
)


@pytest.fixture
def os_release(tmp_path: Path) -> Path:
    path = tmp_path / "os-release"
    path.write_text(
        '# comment\n'
        'NAME="Ubuntu"\n'
        'VERSION_ID="24.04"\n'
        'ID=ubuntu\n'
        'ID_LIKE=debian\n'
        '\n'
        'garbage line\n'
    )
    return path


class TestOsRelease:
    def test_parse(self, os_release):
        values = read_os_release(os_release)
        assert values["ID"] == "ubuntu"
        assert values["NAME"] == "Ubuntu"
        assert values["VERSION_ID"] == "24.04"
        assert "garbage line" not in values

    def test_missing(self, tmp_path):
        assert read_os_release(tmp_path / "nope") == {}


class TestArch:
    @pytest.mark.parametrize("machine,expected", [
        ("x86_64", "amd64"),
        ("aarch64", "arm64"),
        ("arm64", "arm64"),
        ("AMD64", "amd64"),
        ("riscv64", "riscv64"),
    ])
    def test_normalized(self, machine, expected):
        assert normalized_arch(machine) == expected


class TestPackageManager:
    def _which(self, available: set[str]):
        return lambda name: f"/usr/bin/{name}" if name in available else None

    def test_apt_preferred_over_linuxbrew(self, monkeypatch):
        monkeypatch.setattr(platform_mod.shutil, "which", self._which({"apt-get", "brew"}))
        assert platform_mod._detect_package_manager("Linux") == "apt"

    def test_dnf(self, monkeypatch):
        monkeypatch.setattr(platform_mod.shutil, "which", self._which({"dnf", "yum"}))
        assert platform_mod._detect_package_manager("Linux") == "dnf"

    def test_none(self, monkeypatch):
        monkeypatch.setattr(platform_mod.shutil, "which", self._which(set()))
        assert platform_mod._detect_package_manager("Linux") is None

    def test_macos_uses_brew_only(self, monkeypatch):
        monkeypatch.setattr(platform_mod.shutil, "which", self._which({"apt-get", "brew"}))
        assert platform_mod._detect_package_manager("Darwin") == "brew"
        monkeypatch.setattr(platform_mod.shutil, "which", self._which({"apt-get"}))
        assert platform_mod._detect_package_manager("Darwin") is None


class TestDetectPlatform:
    def test_linux(self, monkeypatch, os_release):
        monkeypatch.setattr(platform_mod.platform, "system", lambda: "Linux")
        monkeypatch.setattr(platform_mod.platform, "machine", lambda: "x86_64")
        monkeypatch.setattr(platform_mod.shutil, "which", lambda n: "/usr/bin/apt-get" if n == "apt-get" else None)
        monkeypatch.setenv("SHELL", "/usr/bin/zsh")

        # the default os-release path is bound when the module loads
        monkeypatch.setattr(platform_mod, "read_os_release", lambda: read_os_release(os_release))
        info = detect_platform()
        assert info.system == "Linux"
        assert info.distro == "ubuntu"
        assert info.package_manager == "apt"
        assert info.shell == "zsh"

    def test_macos(self, monkeypatch):
        monkeypatch.setattr(platform_mod.platform, "system", lambda: "Darwin")
        monkeypatch.setattr(platform_mod.shutil, "which", lambda n: "/opt/homebrew/bin/brew" if n == "brew" else None)
        monkeypatch.delenv("SHELL", raising=False)
        info = detect_platform()
        assert info.distro == "macos"
        assert info.package_manager == "brew"
        assert info.shell is None

    def test_wsl(self, monkeypatch, tmp_path):
        version = tmp_path / "version"
        version.write_text("Linux version 5.15.0-microsoft-standard-WSL2")
        monkeypatch.setattr(platform_mod, "PROC_VERSION", version)
        assert platform_mod._detect_wsl()

    def test_not_wsl(self, monkeypatch, tmp_path):
        monkeypatch.setattr(platform_mod, "PROC_VERSION", tmp_path / "missing")
        assert not platform_mod._detect_wsl()
