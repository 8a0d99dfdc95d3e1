"""Data model for node networks: nodes, connections, settings and snapshots."""

import re
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

_WHITESPACE = re.compile(r"\s")


def sanitize_name(name: str) -> str:
    """Turn a display name into the identifier used to reference it in formulas.

    Example:
        >>> sanitize_name("Clock 1")
        'Clock_1'

    """
    return _WHITESPACE.sub("_", name)


class _Record(BaseModel):
    """Base for records serialized with the camelCase keys of saved setups."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _coerce_id(value: Any) -> Any:
    # Older setups stored numeric ids.
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


class Position(_Record):
    """Canvas position of a node. Carried through persistence, never evaluated."""

    x: float = 0.0
    y: float = 0.0


class NodeInput(_Record):
    """A named input slot of a node."""

    value: float = 0.0
    is_connected: bool = False


class Node(_Record):
    """A unit holding a formula, its inputs and its last computed output.

    Attributes:
        id: Stable unique identifier.
        name: Display name; its sanitized form references the node in formulas.
        formula: Expression evaluated against the node's scope. May be empty.
        inputs: Input slots by name.
        use_mod2: Whether the output is normalized into ``[0, modBase)``.
        q: Last computed output.
        error: Last evaluation error, empty on success.
        position: Canvas position, if the node came from the editor.

    """

    id: str
    name: str = ""
    formula: str = ""
    inputs: dict[str, NodeInput] = Field(default_factory=dict)
    use_mod2: bool = True
    q: float = 0.0
    error: str = ""
    position: Position | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> Any:
        return _coerce_id(value)

    @field_validator("error", mode="before")
    @classmethod
    def _validate_error(cls, value: Any) -> Any:
        return "" if value is None else value

    def model_post_init(self, context: Any, /) -> None:
        if not self.name:
            self.name = f"Node {self.id}"

    @property
    def sanitized_name(self) -> str:
        return sanitize_name(self.name)


class Connection(_Record):
    """Binds the output of ``source_id`` to the input ``input_name`` of ``target_id``."""

    source_id: str
    target_id: str
    input_name: str

    @field_validator("source_id", "target_id", mode="before")
    @classmethod
    def _validate_ids(cls, value: Any) -> Any:
        return _coerce_id(value)

    @property
    def slot(self) -> tuple[str, str]:
        """The ``(target_id, input_name)`` pair this connection occupies."""
        return (self.target_id, self.input_name)


class Settings(_Record):
    """Process-wide evaluation settings."""

    mod_base: int = Field(default=2, ge=2)
    max_eval_depth: int = Field(default=100, ge=1)
    delay: float = Field(default=100.0, ge=0)
    """Quiet period in milliseconds before a change triggers a pass."""
    initial_q: float = 0.0


class Snapshot(_Record):
    """Plain structural state of a network, as saved and loaded by persistence."""

    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)
    settings: Settings = Field(default_factory=Settings)
    next_node_id: int = 1
