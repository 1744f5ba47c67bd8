"""Graph loading pipeline: parse -> validate -> bind."""

from __future__ import annotations

import logging
from typing import Any

from blockflow.compiler.binder import bind_configs
from blockflow.compiler.ir import Graph
from blockflow.compiler.parser import GraphParseError, parse_graph
from blockflow.compiler.validator import ValidationError, validate_graph

logger = logging.getLogger("blockflow.compiler")


def load_graph(data: dict[str, Any], known_types: set[str] | None = None) -> Graph:
    """Build an executable Graph or raise ``ValidationError`` listing every problem."""
    try:
        graph = parse_graph(data)
    except GraphParseError as exc:
        raise ValidationError([str(exc)]) from exc

    errors = validate_graph(graph, known_types)
    if errors:
        logger.info("Rejected workflow %s: %d error(s)", graph.workflow_id, len(errors))
        raise ValidationError(errors)
    return bind_configs(graph)
