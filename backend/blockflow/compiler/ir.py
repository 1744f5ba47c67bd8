"""Internal Representation (IR) dataclasses: output of graph loading."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeKind(str, Enum):
    TRIGGER = "trigger"
    CONDITION = "condition"
    ACTION = "action"


DEFAULT_LABEL = "next"
YES_LABEL = "yes"
NO_LABEL = "no"
DEFAULT_CASE_LABEL = "default"

# Canvas handles sometimes carry true/false instead of yes/no.
_LABEL_ALIASES = {"true": YES_LABEL, "false": NO_LABEL}


def normalize_label(label: str) -> str:
    """Connector label as the router compares it."""
    label = label.strip().lower()
    return _LABEL_ALIASES.get(label, label)


# ── Node ────────────────────────────────────────────────────────


@dataclass
class Node:
    node_id: str
    kind: NodeKind
    type: str
    config: dict[str, Any] = field(default_factory=dict)  # raw, may embed {{templates}}
    label: str | None = None  # display name from the canvas
    options: Any = None  # typed block config, set by the binder
    position: int = 0  # declaration order

    @property
    def continue_on_error(self) -> bool:
        return bool(getattr(self.options, "continue_on_error", False))


# ── Edge ────────────────────────────────────────────────────────


@dataclass(frozen=True)
class Edge:
    source: str
    target: str
    label: str = DEFAULT_LABEL
    edge_id: str | None = None


# ── Graph ───────────────────────────────────────────────────────


@dataclass
class Graph:
    nodes: list[Node] = field(default_factory=list)
    edges: list[Edge] = field(default_factory=list)
    workflow_id: str | None = None
    name: str = ""

    def node_map(self) -> dict[str, Node]:
        return {node.node_id: node for node in self.nodes}

    def get_node(self, node_id: str) -> Node | None:
        for node in self.nodes:
            if node.node_id == node_id:
                return node
        return None

    @property
    def triggers(self) -> list[Node]:
        return [n for n in self.nodes if n.kind == NodeKind.TRIGGER]

    def trigger_types(self) -> set[str]:
        return {n.type for n in self.triggers}
