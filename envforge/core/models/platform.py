"""
Platform model — identity of the machine being provisioned.

Used to select which catalog entries apply (apt vs. brew variants of
the same task) and as the default package manager for package probes.
"""

from __future__ import annotations

from pydantic import BaseModel


class PlatformInfo(BaseModel):
    """Snapshot of the running target."""

    system: str = ""                   # platform.system(): Linux, Darwin
    release: str = ""
    machine: str = ""                  # x86_64, arm64
    distro: str = ""                   # os-release ID (ubuntu, fedora) or "macos"
    package_manager: str | None = None # apt, dnf, yum, zypper, apk, pacman, brew
    shell: str | None = None           # basename of $SHELL
    wsl: bool = False

    def to_dict(self) -> dict:
        return self.model_dump(mode="json")
