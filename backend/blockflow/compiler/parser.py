"""Graph parser: converts a raw workflow document (dict) into IR dataclasses.

Two node shapes are accepted:

* canonical  ``{"id", "kind", "type", "config"}``
* canvas     ``{"id", "data": {"category": "Triggers", "label": "onSubmit", ...config}}``

Edge connector label is ``label`` or ``sourceHandle``, defaulting to ``next``.
"""

from __future__ import annotations

from typing import Any

from blockflow.compiler.blocks import kind_of
from blockflow.compiler.ir import DEFAULT_LABEL, Edge, Graph, Node, NodeKind

_CATEGORY_KINDS = {
    "triggers": NodeKind.TRIGGER,
    "trigger": NodeKind.TRIGGER,
    "conditions": NodeKind.CONDITION,
    "condition": NodeKind.CONDITION,
    "actions": NodeKind.ACTION,
    "action": NodeKind.ACTION,
}

# Canvas bookkeeping keys that are not block configuration
_CANVAS_KEYS = frozenset({"category", "label", "type", "blockType", "description", "icon", "color"})


class GraphParseError(Exception):
    pass


def parse_graph(data: dict[str, Any]) -> Graph:
    """Parse a raw ``{"nodes": [...], "edges": [...]}`` document into a Graph."""
    if not isinstance(data, dict):
        raise GraphParseError("Workflow graph must be an object with 'nodes' and 'edges'")
    raw_nodes = data.get("nodes")
    if not isinstance(raw_nodes, list):
        raise GraphParseError("Workflow graph requires a 'nodes' list")
    raw_edges = data.get("edges") or []
    if not isinstance(raw_edges, list):
        raise GraphParseError("'edges' must be a list")

    nodes = [_parse_node(raw, index) for index, raw in enumerate(raw_nodes)]
    edges = [_parse_edge(raw) for raw in raw_edges]
    return Graph(
        nodes=nodes,
        edges=edges,
        workflow_id=data.get("workflow_id") or data.get("workflowId") or data.get("id"),
        name=data.get("name", ""),
    )


def _parse_node(raw: dict[str, Any], index: int) -> Node:
    if not isinstance(raw, dict):
        raise GraphParseError(f"Node #{index} must be an object")
    node_id = raw.get("id") or raw.get("node_id")
    if not node_id:
        raise GraphParseError(f"Node #{index} is missing 'id'")

    if "data" in raw and isinstance(raw["data"], dict):
        blob = raw["data"]
        block_type = blob.get("blockType") or blob.get("type") or blob.get("label") or ""
        config = {k: v for k, v in blob.items() if k not in _CANVAS_KEYS}
        if isinstance(blob.get("config"), dict):
            config.update(config.pop("config"))
        kind = _parse_kind(blob.get("category"), block_type)
        label = blob.get("label")
    else:
        block_type = raw.get("type") or ""
        config = dict(raw.get("config") or {})
        kind = _parse_kind(raw.get("kind"), block_type)
        label = raw.get("label")

    return Node(
        node_id=str(node_id),
        kind=kind,
        type=str(block_type),
        config=config,
        label=label,
        position=index,
    )


def _parse_kind(declared: Any, block_type: str) -> NodeKind:
    if declared:
        kind = _CATEGORY_KINDS.get(str(declared).strip().lower())
        if kind is None:
            raise GraphParseError(f"Unknown node category '{declared}'")
        return kind
    inferred = kind_of(block_type)
    if inferred is None:
        raise GraphParseError(f"Cannot infer node kind for block type '{block_type}'")
    return inferred


def _parse_edge(raw: dict[str, Any]) -> Edge:
    if not isinstance(raw, dict) or not raw.get("source") or not raw.get("target"):
        raise GraphParseError(f"Edge requires 'source' and 'target': {raw!r}")
    label = raw.get("label") or raw.get("sourceHandle") or DEFAULT_LABEL
    return Edge(
        source=str(raw["source"]),
        target=str(raw["target"]),
        label=str(label),
        edge_id=raw.get("id"),
    )
