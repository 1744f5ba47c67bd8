"""Tests for the graph parser: raw document to IR."""

from __future__ import annotations

import pytest

from blockflow.compiler.ir import DEFAULT_LABEL, NodeKind
from blockflow.compiler.parser import GraphParseError, parse_graph


class TestCanonicalShape:
    def test_nodes_and_edges(self, lead_capture_graph):
        graph = parse_graph(lead_capture_graph)
        assert graph.workflow_id == "lead_capture"
        assert [n.node_id for n in graph.nodes] == ["submit", "has_email", "save_lead", "warn"]
        assert graph.get_node("has_email").kind == NodeKind.CONDITION
        assert graph.get_node("save_lead").config["tableName"] == "leads"
        assert [e.label for e in graph.edges] == ["next", "yes", "no"]

    def test_declaration_order_is_kept(self, lead_capture_graph):
        graph = parse_graph(lead_capture_graph)
        assert [n.position for n in graph.nodes] == [0, 1, 2, 3]

    def test_kind_inferred_from_type(self, webhook_graph):
        graph = parse_graph(webhook_graph)
        assert graph.get_node("hook").kind == NodeKind.TRIGGER
        assert graph.get_node("is_paid").kind == NodeKind.CONDITION
        assert graph.get_node("store_order").kind == NodeKind.ACTION

    def test_edge_label_defaults_to_next(self, webhook_graph):
        graph = parse_graph(webhook_graph)
        assert graph.edges[0].label == DEFAULT_LABEL


class TestCanvasShape:
    def test_category_and_label(self, canvas_graph):
        graph = parse_graph(canvas_graph)
        node = graph.get_node("n2")
        assert node.kind == NodeKind.CONDITION
        assert node.type == "isFilled"
        assert node.config == {"selectedElementIds": ["email"]}

    def test_nested_config_is_flattened(self, canvas_graph):
        graph = parse_graph(canvas_graph)
        assert graph.get_node("n3").config == {"message": "Thanks {{formData.email}}"}

    def test_source_handle_is_the_label(self, canvas_graph):
        graph = parse_graph(canvas_graph)
        assert graph.edges[1].label == "true"
        assert graph.edges[1].edge_id == "e2"


class TestParseErrors:
    def test_not_a_dict(self):
        with pytest.raises(GraphParseError):
            parse_graph(["nodes"])

    def test_missing_nodes(self):
        with pytest.raises(GraphParseError, match="'nodes'"):
            parse_graph({"edges": []})

    def test_node_without_id(self):
        with pytest.raises(GraphParseError, match="missing 'id'"):
            parse_graph({"nodes": [{"type": "onSubmit"}]})

    def test_unknown_category(self):
        with pytest.raises(GraphParseError, match="Unknown node category"):
            parse_graph({"nodes": [{"id": "x", "data": {"category": "Widgets", "label": "onSubmit"}}]})

    def test_uninferable_kind(self):
        with pytest.raises(GraphParseError, match="Cannot infer"):
            parse_graph({"nodes": [{"id": "x", "type": "teleport"}]})

    def test_edge_without_target(self):
        with pytest.raises(GraphParseError, match="source' and 'target'"):
            parse_graph({"nodes": [{"id": "a", "type": "onSubmit"}], "edges": [{"source": "a"}]})
