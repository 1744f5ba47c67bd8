"""Graph router: picks the outgoing connector for a finished node."""

from __future__ import annotations

from typing import Iterable

from blockflow.compiler.blocks import MULTI_WAY_TYPES
from blockflow.compiler.ir import (
    DEFAULT_CASE_LABEL,
    DEFAULT_LABEL,
    NO_LABEL,
    YES_LABEL,
    Edge,
    Node,
    NodeKind,
    normalize_label,
)
from blockflow.handlers.base import Outcome

EdgeIndex = dict[tuple[str, str], str]


def build_edge_index(edges: Iterable[Edge]) -> EdgeIndex:
    """Map ``(source, label)`` to the target node id.

    The graph is validated before this runs, so each key is unique.
    """
    return {(edge.source, normalize_label(edge.label)): edge.target for edge in edges}


def routing_label(node: Node, outcome: Outcome) -> str:
    if node.type in MULTI_WAY_TYPES:
        hint = outcome.routing_hint
        if isinstance(hint, str) and hint:
            return hint
        return DEFAULT_CASE_LABEL
    if node.kind == NodeKind.CONDITION:
        return YES_LABEL if outcome.routing_hint is True else NO_LABEL
    return DEFAULT_LABEL


def next_node(node: Node, outcome: Outcome, edge_index: EdgeIndex) -> str | None:
    """Target of the edge matching the outcome, or None to end the run here."""
    label = normalize_label(routing_label(node, outcome))
    return edge_index.get((node.node_id, label))
