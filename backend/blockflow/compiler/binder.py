"""Binder: attaches typed block configuration to every node of a validated graph."""

from __future__ import annotations

from blockflow.compiler.blocks import parse_block_config
from blockflow.compiler.ir import Graph


def bind_configs(graph: Graph) -> Graph:
    """Set ``node.options`` from the raw config.  Call only after validation."""
    for node in graph.nodes:
        node.options = parse_block_config(node.type, node.config)
    return graph
