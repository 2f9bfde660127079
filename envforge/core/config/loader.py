"""
Catalog loader — reads a catalog YAML file into validated tasks.

The catalog is the only configuration envforge needs:

    version: 1
    name: workstation
    vars:
      node_version: lts/*
    env:
      DEBIAN_FRONTEND: noninteractive
    defaults:
      failure_policy: fatal
      timeout: 900
    tasks:
      - name: zsh
        probe: {kind: binary, name: zsh}
        apply: ["sudo apt-get install -y zsh"]
        when: {package_manager: apt}

Loading is pure: it reads one file and validates it. Nothing is probed
or executed, so every error here is a ConfigurationError raised before
any side effect.

Lookup order for the catalog file:
    --config flag  >  ENVFORGE_CATALOG  >  ./envforge.yml (searched upward)
    >  the packaged default catalog
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from envforge.core.data import default_catalog_path
from envforge.core.errors import InvalidCatalog
from envforge.core.models.platform import PlatformInfo
from envforge.core.models.task import FailurePolicy, Task
from envforge.core.services.platform import normalized_arch

logger = logging.getLogger(__name__)

# Project-local catalog filename
CATALOG_FILE = "envforge.yml"
ENV_CATALOG = "ENVFORGE_CATALOG"


class CatalogDefaults(BaseModel):
    """Values applied to every task that does not set them."""

    failure_policy: FailurePolicy = FailurePolicy.FATAL
    timeout: float | None = Field(default=None, gt=0)
    retries: int = Field(default=0, ge=0)
    retry_delay: float = Field(default=2.0, ge=0)


class Catalog(BaseModel):
    """A validated catalog: every task of every platform variant."""

    version: int = 1
    name: str = "envforge"
    vars: dict[str, str] = Field(default_factory=dict)
    env: dict[str, str] = Field(default_factory=dict)
    defaults: CatalogDefaults = Field(default_factory=CatalogDefaults)
    tasks: list[Task] = Field(default_factory=list)

    def tasks_for(self, platform: PlatformInfo) -> list[Task]:
        """Tasks whose ``when`` matches ``platform``, in declaration order."""
        selected = [t for t in self.tasks if t.applies_to(platform)]
        logger.debug(
            "%d of %d task(s) apply to %s/%s",
            len(selected),
            len(self.tasks),
            platform.system or "?",
            platform.package_manager or "?",
        )
        return selected


# ── File discovery ──────────────────────────────────────────────


def find_catalog_file(start_dir: Path | None = None) -> Path | None:
    """Search for envforge.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to envforge.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CATALOG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def resolve_catalog_path(explicit: Path | None = None) -> Path:
    """Pick the catalog file to load, following the lookup order."""
    if explicit is not None:
        return explicit
    from_env = os.environ.get(ENV_CATALOG)
    if from_env:
        return Path(from_env).expanduser()
    found = find_catalog_file()
    if found is not None:
        return found
    return default_catalog_path()


# ── Templates ───────────────────────────────────────────────────


def template_vars(platform: PlatformInfo | None = None) -> dict[str, str]:
    """Built-in ``{placeholders}`` available to every catalog.

    - ``{user}`` — current username
    - ``{home}`` — home directory
    - ``{arch}`` — machine architecture (``amd64``, ``arm64``)
    - ``{distro}`` — distro ID (``ubuntu``, ``fedora``, ``macos``)
    - ``{system}`` — ``linux`` or ``darwin``
    - ``{nproc}`` — CPU core count
    """
    platform = platform or PlatformInfo()
    return {
        "user": os.getenv("USER", os.getenv("LOGNAME", "unknown")),
        "home": str(Path.home()),
        "arch": normalized_arch(platform.machine or None),
        "distro": platform.distro or "unknown",
        "system": (platform.system or "unknown").lower(),
        "nproc": str(os.cpu_count() or 1),
    }


def render_template(template: str, variables: dict[str, str]) -> str:
    """Substitute ``{var}`` placeholders.

    Simple string replacement: unknown ``{names}`` and shell syntax such
    as ``${VAR}`` or awk's ``{print $1}`` are left alone.
    """
    result = template
    for key, value in variables.items():
        result = result.replace(f"{{{key}}}", str(value))
    return result


def _render(value: Any, variables: dict[str, str]) -> Any:
    """Render every string inside a YAML value."""
    if isinstance(value, str):
        return render_template(value, variables)
    if isinstance(value, list):
        return [_render(v, variables) for v in value]
    if isinstance(value, dict):
        return {k: _render(v, variables) for k, v in value.items()}
    return value


# ── Loading ─────────────────────────────────────────────────────


def load_catalog(path: Path, platform: PlatformInfo | None = None) -> Catalog:
    """Load and validate a catalog file.

    Args:
        path: Catalog YAML file.
        platform: Target used for the ``{arch}``/``{distro}`` placeholders.

    Returns:
        Validated Catalog with defaults and catalog env applied to each task.

    Raises:
        InvalidCatalog: If the file is missing, unreadable or invalid.
    """
    if not path.is_file():
        raise InvalidCatalog(f"Catalog file not found: {path}")

    logger.debug("Loading catalog from %s", path)

    try:
        raw = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InvalidCatalog(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise InvalidCatalog(f"Invalid YAML in {path}: {e}") from e

    catalog = parse_catalog(data, platform=platform, source=str(path))
    logger.info("Loaded catalog '%s' with %d task(s)", catalog.name, len(catalog.tasks))
    return catalog


def parse_catalog(
    data: Any,
    platform: PlatformInfo | None = None,
    source: str = "<catalog>",
) -> Catalog:
    """Validate already-parsed catalog data.

    Raises:
        InvalidCatalog: On any schema violation.
    """
    if not isinstance(data, dict):
        raise InvalidCatalog(
            f"Expected a YAML mapping in {source}, got {type(data).__name__}"
        )

    raw_tasks = data.get("tasks") or []
    if not isinstance(raw_tasks, list):
        raise InvalidCatalog(f"'tasks' must be a list in {source}")
    for key in ("vars", "env"):
        if not isinstance(data.get(key) or {}, dict):
            raise InvalidCatalog(f"'{key}' must be a mapping in {source}")

    try:
        defaults = CatalogDefaults.model_validate(data.get("defaults") or {})
    except ValidationError as e:
        raise InvalidCatalog(f"Invalid defaults in {source}: {e}") from e

    # Builtins first, then catalog vars (which may themselves use builtins)
    variables = template_vars(platform)
    for key, value in (data.get("vars") or {}).items():
        variables[str(key)] = render_template(str(value), variables)

    catalog_env = {
        str(k): render_template(str(v), variables)
        for k, v in (data.get("env") or {}).items()
    }

    tasks = [
        _prepare_task(entry, defaults, catalog_env, variables, index, source)
        for index, entry in enumerate(raw_tasks)
    ]

    try:
        return Catalog.model_validate({
            "version": data.get("version", 1),
            "name": data.get("name", "envforge"),
            "vars": variables,
            "env": catalog_env,
            "defaults": defaults,
            "tasks": tasks,
        })
    except ValidationError as e:
        raise InvalidCatalog(f"Invalid catalog {source}: {e}") from e


def _prepare_task(
    entry: Any,
    defaults: CatalogDefaults,
    catalog_env: dict[str, str],
    variables: dict[str, str],
    index: int,
    source: str,
) -> Task:
    if not isinstance(entry, dict):
        raise InvalidCatalog(f"Task #{index + 1} in {source} is not a mapping")

    entry = _render(entry, variables)
    entry.setdefault("failure_policy", defaults.failure_policy)
    entry.setdefault("timeout", defaults.timeout)
    entry.setdefault("retries", defaults.retries)
    entry.setdefault("retry_delay", defaults.retry_delay)
    entry["env"] = {**catalog_env, **{str(k): str(v) for k, v in (entry.get("env") or {}).items()}}
    if isinstance(entry.get("apply"), str):
        entry["apply"] = [entry["apply"]]

    try:
        return Task.model_validate(entry)
    except ValidationError as e:
        label = entry.get("name") or f"#{index + 1}"
        raise InvalidCatalog(f"Invalid task '{label}' in {source}: {e}") from e

