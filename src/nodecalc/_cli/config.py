"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, cast

from pydantic import ValidationError

from nodecalc._models import Settings


class ConfigError(Exception):
    """Error in nodecalc configuration."""


@dataclass(slots=True, frozen=True)
class NodecalcConfig:
    """Configuration loaded from the ``[tool.nodecalc]`` table of pyproject.toml.

    All relative paths are resolved from the project root (directory containing pyproject.toml).

    Attributes:
        snapshot: Default snapshot file for commands that take one.
        output: Default output file for evaluated snapshots.
        settings: Overrides applied on top of the snapshot's own settings,
            keyed by field name or camelCase alias.
        project_root: Directory holding the pyproject.toml.

    """

    snapshot: Path | None = None
    output: Path | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    project_root: Path | None = None


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def _parse_path(section: dict[str, object], key: str, project_root: Path) -> Path | None:
    if key not in section:
        return None
    value = section[key]
    if not isinstance(value, str):
        msg = f"Invalid [tool.nodecalc].{key}: expected string path"
        raise ConfigError(msg)
    path = Path(value)
    if not path.is_absolute():
        path = project_root / path
    return path


def _parse_settings(value: object) -> dict[str, Any]:
    if not isinstance(value, dict):
        msg = "Invalid [tool.nodecalc].settings: expected a table"
        raise ConfigError(msg)
    overrides = cast("dict[str, Any]", value)
    try:
        Settings.model_validate(overrides)
    except ValidationError as e:
        msg = f"Invalid [tool.nodecalc].settings: {e}"
        raise ConfigError(msg) from e

    known = set(Settings.model_fields) | {info.alias for info in Settings.model_fields.values() if info.alias}
    unknown = sorted(set(overrides) - known)
    if unknown:
        msg = f"Invalid [tool.nodecalc].settings: unknown keys {', '.join(unknown)}"
        raise ConfigError(msg)
    return dict(overrides)


def load_config(pyproject_path: Path) -> NodecalcConfig:
    """Load and validate [tool.nodecalc] config from pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed NodecalcConfig

    Raises:
        ConfigError: If the configuration is invalid

    """
    project_root = pyproject_path.parent

    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    section = data.get("tool", {}).get("nodecalc", {})
    if not section:
        return NodecalcConfig(project_root=project_root)

    settings = _parse_settings(section["settings"]) if "settings" in section else {}

    return NodecalcConfig(
        snapshot=_parse_path(section, "snapshot", project_root),
        output=_parse_path(section, "output", project_root),
        settings=settings,
        project_root=project_root,
    )


def get_config() -> NodecalcConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        NodecalcConfig (may be empty if no pyproject.toml or no [tool.nodecalc] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return NodecalcConfig()
    return load_config(pyproject_path)
