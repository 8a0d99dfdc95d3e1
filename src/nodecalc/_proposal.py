"""Intake of node batches proposed by the generation helper.

The helper asks a language model for a network and hands back its answer:
a fenced JSON block holding ``nodes`` and ``connections`` arrays. This module
only parses and validates such a batch; calling the model is not its job.
"""

import json
import logging
import re
from collections.abc import Collection
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from ._errors import ProposalError
from ._models import Connection, Node

logger = logging.getLogger(__name__)

_JSON_FENCE = re.compile(r"```json\s*([\s\S]*?)\s*```")


class Proposal(BaseModel):
    """A batch of nodes and connections waiting to be admitted into a network."""

    nodes: list[Node] = Field(default_factory=list)
    connections: list[Connection] = Field(default_factory=list)


def parse_proposal(text: str) -> Proposal:
    """Parse a generated answer into a proposal.

    The first fenced ``json`` block is used; without one, the whole text is
    parsed as JSON. Nodes without a name are named after their id. Extra keys
    such as ``type`` or ``operation`` are ignored.

    Args:
        text: The raw answer.

    Returns:
        The validated proposal.

    Raises:
        ProposalError: If the JSON is malformed, the arrays are missing, a
            node has no id or an ``inputs`` map is not well formed.

    """
    match = _JSON_FENCE.search(text)
    payload = match.group(1) if match else text.strip()
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        msg = f"Failed to parse proposal JSON: {e}"
        raise ProposalError(msg) from e

    if not isinstance(data, dict) or not isinstance(data.get("nodes"), list) or not isinstance(data.get("connections"), list):
        msg = "Proposal must contain 'nodes' and 'connections' arrays."
        raise ProposalError(msg)

    nodes: list[dict[str, Any]] = []
    for index, raw in enumerate(data["nodes"]):
        if not isinstance(raw, dict) or not raw.get("id"):
            msg = f"Node at index {index} is missing 'id'"
            raise ProposalError(msg)
        nodes.append({"name": str(raw["id"]), **raw})

    try:
        proposal = Proposal.model_validate({"nodes": nodes, "connections": data["connections"]})
    except ValidationError as e:
        msg = f"Invalid proposal: {e}"
        raise ProposalError(msg) from e

    logger.debug("Parsed proposal with %d nodes and %d connections", len(proposal.nodes), len(proposal.connections))
    return proposal


def validate_proposal(proposal: Proposal, existing_ids: Collection[str]) -> None:
    """Check that a proposal can be admitted next to the existing nodes.

    Raises:
        ProposalError: If a node id repeats within the batch or collides with
            an existing node, or a connection is dangling.

    """
    seen: set[str] = set()
    for node in proposal.nodes:
        if node.id in seen:
            msg = f"Duplicate node id in proposal: {node.id}"
            raise ProposalError(msg)
        if node.id in existing_ids:
            msg = f"Node id already exists: {node.id}"
            raise ProposalError(msg)
        seen.add(node.id)

    known = seen | set(existing_ids)
    for conn in proposal.connections:
        missing = [node_id for node_id in (conn.source_id, conn.target_id) if node_id not in known]
        if missing:
            msg = f"Connection into {conn.target_id}.{conn.input_name} references unknown node: {missing[0]}"
            raise ProposalError(msg)
