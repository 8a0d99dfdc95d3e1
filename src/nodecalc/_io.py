"""Loading and saving network snapshots as JSON or TOML."""

import json
import logging
import tomllib
from pathlib import Path
from typing import Any

import tomli_w

from ._models import Snapshot

logger = logging.getLogger(__name__)

_JSON_SUFFIXES = frozenset({".json"})
_TOML_SUFFIXES = frozenset({".toml"})


def _format_for(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in _JSON_SUFFIXES:
        return "json"
    if suffix in _TOML_SUFFIXES:
        return "toml"
    msg = f"Unsupported snapshot format '{path.suffix}' (expected .json or .toml)"
    raise ValueError(msg)


def snapshot_to_dict(snapshot: Snapshot) -> dict[str, Any]:
    """Serialize a snapshot with the camelCase keys of saved setups.

    Absent positions are left out since TOML has no null.
    """
    return snapshot.model_dump(by_alias=True, exclude_none=True)


def load_snapshot(path: Path) -> Snapshot:
    """Load a snapshot from a ``.json`` or ``.toml`` file.

    Raises:
        ValueError: If the suffix is not supported.
        pydantic.ValidationError: If the content is not a valid snapshot.

    """
    fmt = _format_for(path)
    if fmt == "json":
        with path.open(encoding="utf-8") as f:
            data = json.load(f)
    else:
        with path.open("rb") as f:
            data = tomllib.load(f)

    snapshot = Snapshot.model_validate(data)
    logger.debug("Loaded snapshot from %s: %d nodes", path, len(snapshot.nodes))
    return snapshot


def save_snapshot(snapshot: Snapshot, path: Path) -> None:
    """Write a snapshot to a ``.json`` or ``.toml`` file, creating parent directories.

    Raises:
        ValueError: If the suffix is not supported.

    """
    fmt = _format_for(path)
    data = snapshot_to_dict(snapshot)
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "json":
        with path.open("w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.write("\n")
    else:
        with path.open("wb") as f:
            tomli_w.dump(data, f)
    logger.debug("Saved snapshot to %s", path)
