"""End-to-end runs through the wired runtime with in-memory stores."""

from __future__ import annotations

import pytest

from blockflow.compiler.loader import load_graph


class TestLeadCapture:
    @pytest.mark.asyncio
    async def test_filled_form_creates_lead(self, runtime, lead_capture_graph):
        result = await runtime.execute(
            load_graph(lead_capture_graph), {"formData": {"email": "a@b.com"}}, "t1", "u1", "onSubmit"
        )
        assert result.status == "completed"
        assert result.termination == "end_of_path"
        assert result.executed_node_ids == ["submit", "has_email", "save_lead"]
        assert result.context["recordId"] == 1
        assert result.context["isFilledResult"]["allFilled"] is True
        assert runtime.records.inner.rows("t1", "leads")[0]["email"] == "a@b.com"
        assert runtime.recorder.runs[result.run_id]["actorId"] == "u1"

    @pytest.mark.asyncio
    async def test_empty_form_shows_toast(self, runtime, lead_capture_graph):
        result = await runtime.execute(load_graph(lead_capture_graph), {"formData": {}}, "t1")
        assert result.executed_node_ids == ["submit", "has_email", "warn"]
        assert result.context["toast"]["message"] == "Please enter your email"
        assert "recordId" not in result.context
        assert runtime.records.inner.rows("t1", "leads") == []

    @pytest.mark.asyncio
    async def test_failed_write_stops_run(self, runtime, lead_capture_graph):
        lead_capture_graph["nodes"][2]["config"]["insertData"] = {}
        result = await runtime.execute(load_graph(lead_capture_graph), {"formData": {"email": "a@b.com"}}, "t1")
        assert result.executed_node_ids == ["submit", "has_email", "save_lead"]
        assert result.status == "failed"
        assert result.termination == "action_failed"
        assert result.error == "No data provided for insert"
        assert runtime.recorder.runs[result.run_id]["status"] == "failed"


class TestCanvasGraph:
    @pytest.mark.asyncio
    async def test_true_handle_routes_yes(self, runtime, canvas_graph):
        result = await runtime.execute(load_graph(canvas_graph), {"formData": {"email": "a@b.com"}}, "t1")
        assert result.executed_node_ids == ["n1", "n2", "n3"]
        assert result.context["toast"]["message"] == "Thanks a@b.com"

    @pytest.mark.asyncio
    async def test_no_connector_ends_path(self, runtime, canvas_graph):
        result = await runtime.execute(load_graph(canvas_graph), {"formData": {}}, "t1")
        assert result.executed_node_ids == ["n1", "n2"]
        assert result.status == "completed"
        assert result.termination == "end_of_path"


class TestWebhookToRecord:
    @pytest.mark.asyncio
    async def test_paid_order_is_stored_and_triggers_follow_up(self, runtime, webhook_graph):
        runtime.graphs.add("t1", {
            "workflowId": "order_created",
            "nodes": [
                {"id": "created", "type": "onRecordCreate", "config": {"tableName": "orders"}},
                {
                    "id": "flag",
                    "type": "db.update",
                    "config": {
                        "tableName": "orders",
                        "updateData": {"status": "fulfilled"},
                        "whereConditions": [{"field": "orderId", "value": "{{orderId}}"}],
                    },
                },
            ],
            "edges": [{"source": "created", "target": "flag"}],
        })
        stored = runtime.graphs.add("t1", webhook_graph)

        result = await runtime.run_workflow(
            stored, {"webhookPayload": {"orderId": "A1", "status": "paid"}}, "t1", None, "onWebhook"
        )

        assert result.executed_node_ids == ["hook", "is_paid", "store_order"]
        rows = runtime.records.inner.rows("t1", "orders")
        assert rows[0]["status"] == "fulfilled"
        assert len(runtime.recorder.runs) == 2
