"""
Probe models — read-only checks of "is this already in place?".

Every task carries one probe. Probes are tagged by ``kind`` so the
catalog can declare them in YAML:

    probe: {kind: binary, name: docker}
    probe: {kind: directory, path: ~/.oh-my-zsh}
    probe: {kind: file_contains, path: ~/.zshrc, text: "export NVM_DIR"}
    probe: {kind: package, package: zsh}
    probe: {kind: command, command: "git config --global user.email"}
    probe: {kind: all, probes: [...]}

Contract of ``check()``:
    - never mutates the machine,
    - an absent target is ``unsatisfied``, not an error,
    - a check that cannot itself be carried out (query binary missing,
      OS error, timeout) is ``indeterminate``; nothing is raised.
"""

from __future__ import annotations

import logging
import re
import shutil
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Annotated, Literal, Union

from pydantic import BaseModel, Field

from envforge.core.environment import build_env, expand_path

if TYPE_CHECKING:
    from envforge.adapters.base import CommandRunner

logger = logging.getLogger(__name__)

# Probe queries should be quick; a hung package database is indeterminate.
DEFAULT_PROBE_TIMEOUT = 30.0


class ProbeStatus(StrEnum):
    """Result of a probe."""

    SATISFIED = "satisfied"
    UNSATISFIED = "unsatisfied"
    INDETERMINATE = "indeterminate"


@dataclass
class ProbeContext:
    """What a probe may use to look at the machine."""

    runner: CommandRunner
    env: dict[str, str] = field(default_factory=dict)
    package_manager: str | None = None


# ── Package manager queries ─────────────────────────────────────
#
# manager → (argv prefix, stdout marker). The package name is appended.
# A marker of None means "exit status 0 is enough".

PACKAGE_QUERIES: dict[str, tuple[list[str], str | None]] = {
    "apt":        (["dpkg-query", "-W", "-f=${Status}"], "install ok installed"),
    "dnf":        (["rpm", "-q"], None),
    "yum":        (["rpm", "-q"], None),
    "zypper":     (["rpm", "-q"], None),
    "apk":        (["apk", "info", "-e"], None),
    "pacman":     (["pacman", "-Q"], None),
    "brew":       (["brew", "ls", "--versions"], None),
    "brew-cask":  (["brew", "ls", "--cask", "--versions"], None),
    "flatpak":    (["flatpak", "info"], None),
    "snap":       (["snap", "list"], None),
}


class BinaryProbe(BaseModel):
    """Satisfied when an executable is on PATH (task env PATH included)."""

    kind: Literal["binary"] = "binary"
    name: str

    def check(self, ctx: ProbeContext) -> ProbeStatus:
        path = build_env(ctx.env).get("PATH")
        if shutil.which(self.name, path=path):
            return ProbeStatus.SATISFIED
        return ProbeStatus.UNSATISFIED

    def describe(self) -> str:
        return f"binary '{self.name}' on PATH"


class DirectoryProbe(BaseModel):
    """Satisfied when a directory exists."""

    kind: Literal["directory"] = "directory"
    path: str

    def check(self, ctx: ProbeContext) -> ProbeStatus:
        try:
            exists = expand_path(self.path, ctx.env).is_dir()
        except OSError as e:
            logger.warning("Cannot stat %s: %s", self.path, e)
            return ProbeStatus.INDETERMINATE
        return ProbeStatus.SATISFIED if exists else ProbeStatus.UNSATISFIED

    def describe(self) -> str:
        return f"directory {self.path}"


class FileProbe(BaseModel):
    """Satisfied when a regular file exists."""

    kind: Literal["file"] = "file"
    path: str

    def check(self, ctx: ProbeContext) -> ProbeStatus:
        try:
            exists = expand_path(self.path, ctx.env).is_file()
        except OSError as e:
            logger.warning("Cannot stat %s: %s", self.path, e)
            return ProbeStatus.INDETERMINATE
        return ProbeStatus.SATISFIED if exists else ProbeStatus.UNSATISFIED

    def describe(self) -> str:
        return f"file {self.path}"


class FileContainsProbe(BaseModel):
    """Satisfied when a file contains a string (or matches a regex)."""

    kind: Literal["file_contains"] = "file_contains"
    path: str
    text: str
    regex: bool = False

    def check(self, ctx: ProbeContext) -> ProbeStatus:
        target = expand_path(self.path, ctx.env)
        if not target.is_file():
            return ProbeStatus.UNSATISFIED
        try:
            content = target.read_text(encoding="utf-8", errors="replace")
        except OSError as e:
            logger.warning("Cannot read %s: %s", target, e)
            return ProbeStatus.INDETERMINATE

        if self.regex:
            found = re.search(self.text, content, re.MULTILINE) is not None
        else:
            found = self.text in content
        return ProbeStatus.SATISFIED if found else ProbeStatus.UNSATISFIED

    def describe(self) -> str:
        return f"{self.path} contains {self.text!r}"


class PackageProbe(BaseModel):
    """Satisfied when the package manager reports the package installed.

    ``manager`` defaults to the package manager detected on the target.
    """

    kind: Literal["package"] = "package"
    package: str
    manager: str | None = None
    timeout: float = DEFAULT_PROBE_TIMEOUT

    def check(self, ctx: ProbeContext) -> ProbeStatus:
        manager = self.manager or ctx.package_manager
        if not manager or manager not in PACKAGE_QUERIES:
            logger.warning(
                "No package query for manager=%s (checking %s)", manager, self.package,
            )
            return ProbeStatus.INDETERMINATE

        prefix, marker = PACKAGE_QUERIES[manager]
        result = ctx.runner.run([*prefix, self.package], timeout=self.timeout, env=ctx.env)

        if not result.launched:
            # Checker binary missing, timed out, or could not start
            logger.warning(
                "Package query failed for %s with pm=%s: %s",
                self.package, manager, result.error,
            )
            return ProbeStatus.INDETERMINATE

        if result.exit_code != 0:
            return ProbeStatus.UNSATISFIED
        if marker is not None and marker not in result.stdout:
            return ProbeStatus.UNSATISFIED
        return ProbeStatus.SATISFIED

    def describe(self) -> str:
        return f"package '{self.package}' ({self.manager or 'system'})"


class CommandProbe(BaseModel):
    """Satisfied when a check command exits 0.

    With ``output_contains`` the combined output must also contain
    the given text.
    """

    kind: Literal["command"] = "command"
    command: str
    output_contains: str | None = None
    timeout: float = DEFAULT_PROBE_TIMEOUT

    def check(self, ctx: ProbeContext) -> ProbeStatus:
        result = ctx.runner.run(self.command, timeout=self.timeout, env=ctx.env)
        if not result.launched:
            logger.warning("Check command failed to run: %s (%s)", self.command, result.error)
            return ProbeStatus.INDETERMINATE
        if result.exit_code != 0:
            return ProbeStatus.UNSATISFIED
        if self.output_contains is not None and self.output_contains not in result.output:
            return ProbeStatus.UNSATISFIED
        return ProbeStatus.SATISFIED

    def describe(self) -> str:
        return f"`{self.command}` succeeds"


class AllProbe(BaseModel):
    """Satisfied only when every child probe is satisfied."""

    kind: Literal["all"] = "all"
    probes: list[Probe] = Field(min_length=1)

    def check(self, ctx: ProbeContext) -> ProbeStatus:
        indeterminate = False
        for probe in self.probes:
            status = probe.check(ctx)
            if status is ProbeStatus.UNSATISFIED:
                return ProbeStatus.UNSATISFIED
            if status is ProbeStatus.INDETERMINATE:
                indeterminate = True
        return ProbeStatus.INDETERMINATE if indeterminate else ProbeStatus.SATISFIED

    def describe(self) -> str:
        return " and ".join(p.describe() for p in self.probes)


Probe = Annotated[
    Union[
        BinaryProbe,
        DirectoryProbe,
        FileProbe,
        FileContainsProbe,
        PackageProbe,
        CommandProbe,
        AllProbe,
    ],
    Field(discriminator="kind"),
]

AllProbe.model_rebuild()
