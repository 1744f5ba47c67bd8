"""Static graph validator: checks IR integrity before a run may start."""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError as PydanticValidationError

from blockflow.compiler.blocks import BLOCK_TYPES, parse_block_config
from blockflow.compiler.ir import Graph, normalize_label


class ValidationError(Exception):
    def __init__(self, errors: list[str]):
        self.errors = errors
        super().__init__(f"Workflow validation failed: {errors}")


def validate_graph(graph: Graph, known_types: set[str] | None = None) -> list[str]:
    """Return a list of error strings. Empty list means valid.

    *known_types* restricts block types to those a handler registry can
    execute; defaults to the full block catalogue.
    """
    errors: list[str] = []
    known = known_types if known_types is not None else set(BLOCK_TYPES)

    if not graph.nodes:
        errors.append("Workflow has no nodes")
        return errors

    node_ids: set[str] = set()
    for node in graph.nodes:
        if node.node_id in node_ids:
            errors.append(f"Duplicate node id '{node.node_id}'")
        node_ids.add(node.node_id)

    if not graph.triggers:
        errors.append("Workflow has no trigger node")

    for node in graph.nodes:
        if node.type not in known:
            errors.append(f"Node '{node.node_id}': unknown block type '{node.type}'")
            continue
        expected_kind = BLOCK_TYPES[node.type][0] if node.type in BLOCK_TYPES else node.kind
        if node.kind != expected_kind:
            errors.append(
                f"Node '{node.node_id}': block type '{node.type}' is a "
                f"{expected_kind.value}, declared as {node.kind.value}"
            )
        errors.extend(_config_errors(node.node_id, node.type, node.config))

    # Edges: dangling ends and ambiguous connectors
    seen: dict[tuple[str, str], str] = {}
    for edge in graph.edges:
        if edge.source not in node_ids:
            errors.append(f"Edge source '{edge.source}' does not exist")
        if edge.target not in node_ids:
            errors.append(f"Edge target '{edge.target}' does not exist (from '{edge.source}')")
        key = (edge.source, normalize_label(edge.label))
        if key in seen and seen[key] != edge.target:
            errors.append(
                f"Duplicate connector '{edge.label}' on node '{edge.source}' "
                f"(targets '{seen[key]}' and '{edge.target}')"
            )
        elif key in seen:
            errors.append(f"Duplicate edge '{edge.source}' --{edge.label}--> '{edge.target}'")
        seen.setdefault(key, edge.target)

    return errors


def _config_errors(node_id: str, block_type: str, config: dict[str, Any]) -> list[str]:
    if block_type not in BLOCK_TYPES:
        return []
    try:
        parse_block_config(block_type, config)
    except PydanticValidationError as exc:
        return [
            f"Node '{node_id}' ({block_type}): {_loc(err['loc'])}{err['msg']}"
            for err in exc.errors()
        ]
    return []


def _loc(loc: tuple) -> str:
    path = ".".join(str(part) for part in loc)
    return f"{path}: " if path else ""

