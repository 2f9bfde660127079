"""
Packaged data — the default catalog shipped with envforge.

Used when no catalog is given with ``--config``, ``ENVFORGE_CATALOG``
or an ``envforge.yml`` in the working tree.
"""

from __future__ import annotations

from pathlib import Path

_DATA_DIR = Path(__file__).parent

DEFAULT_CATALOG_FILE = "catalog.yml"


def default_catalog_path() -> Path:
    """Path of the packaged default catalog."""
    return _DATA_DIR / DEFAULT_CATALOG_FILE
