"""
Platform detection — identify the machine being provisioned.

Read-only and quick: a handful of stat/which calls and one small
file read. Nothing here runs a subprocess.
"""

from __future__ import annotations

import logging
import os
import platform
import shutil
from pathlib import Path

from envforge.core.models.platform import PlatformInfo

logger = logging.getLogger(__name__)

# Probed in order; the first one found wins. brew is last so that
# Linuxbrew does not shadow the system package manager.
PACKAGE_MANAGERS: list[tuple[str, str]] = [
    ("apt-get", "apt"),
    ("dnf", "dnf"),
    ("yum", "yum"),
    ("zypper", "zypper"),
    ("apk", "apk"),
    ("pacman", "pacman"),
    ("brew", "brew"),
]

OS_RELEASE = Path("/etc/os-release")
PROC_VERSION = Path("/proc/version")

_ARCH_MAP = {"x86_64": "amd64", "aarch64": "arm64", "armv7l": "armhf"}


def detect_platform() -> PlatformInfo:
    """Detect system, distro, package manager and login shell."""
    system = platform.system()
    info = PlatformInfo(
        system=system,
        release=platform.release(),
        machine=platform.machine(),
        distro=_detect_distro(system),
        package_manager=_detect_package_manager(system),
        shell=_detect_shell(),
        wsl=_detect_wsl(),
    )
    logger.debug("Detected platform: %s", info.to_dict())
    return info


def normalized_arch(machine: str | None = None) -> str:
    """Architecture name as used in download URLs (amd64, arm64)."""
    machine = (machine or platform.machine()).lower()
    return _ARCH_MAP.get(machine, machine)


def _detect_distro(system: str) -> str:
    if system == "Darwin":
        return "macos"
    if system != "Linux":
        return system.lower()
    return read_os_release().get("ID", "linux")


def read_os_release(path: Path = OS_RELEASE) -> dict[str, str]:
    """Parse /etc/os-release into a dict. Missing file → empty dict."""
    values: dict[str, str] = {}
    try:
        with path.open(encoding="utf-8") as f:
            for line in f:
                line = line.strip()
                if not line or line.startswith("#") or "=" not in line:
                    continue
                key, _, value = line.partition("=")
                values[key] = value.strip().strip('"')
    except OSError as e:
        logger.debug("Cannot read %s: %s", path, e)
    return values


def _detect_package_manager(system: str) -> str | None:
    if system == "Darwin":
        return "brew" if shutil.which("brew") else None
    for binary, manager in PACKAGE_MANAGERS:
        if shutil.which(binary):
            return manager
    return None


def _detect_shell() -> str | None:
    shell = os.environ.get("SHELL")
    return os.path.basename(shell) if shell else None


def _detect_wsl() -> bool:
    try:
        version_str = PROC_VERSION.read_text(encoding="utf-8").lower()
    except OSError:
        return False
    return "microsoft" in version_str or "wsl" in version_str
