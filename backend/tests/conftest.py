"""Shared fixtures for backend tests."""

from __future__ import annotations

import pytest

from blockflow.handlers.registry import BlockServices
from blockflow.runtime.container import build_runtime
from blockflow.services.access_service import StaticAccessLookup
from blockflow.services.graph_repository import InMemoryGraphRepository
from blockflow.services.record_store import InMemoryRecordStore
from blockflow.services.run_service import InMemoryRunRecorder


# ── Graph fixtures ──────────────────────────────────────────────


@pytest.fixture
def lead_capture_graph() -> dict:
    """Submit -> isFilled(email) -> yes: db.create / no: toast."""
    return {
        "workflowId": "lead_capture",
        "name": "Lead capture",
        "nodes": [
            {"id": "submit", "kind": "trigger", "type": "onSubmit", "config": {}},
            {
                "id": "has_email",
                "kind": "condition",
                "type": "isFilled",
                "config": {"selectedElementIds": "email"},
            },
            {
                "id": "save_lead",
                "kind": "action",
                "type": "db.create",
                "config": {"tableName": "leads", "insertData": {"email": "{{formData.email}}"}},
            },
            {
                "id": "warn",
                "kind": "action",
                "type": "notify.toast",
                "config": {"message": "Please enter your email", "variant": "destructive"},
            },
        ],
        "edges": [
            {"source": "submit", "target": "has_email", "label": "next"},
            {"source": "has_email", "target": "save_lead", "label": "yes"},
            {"source": "has_email", "target": "warn", "label": "no"},
        ],
    }


@pytest.fixture
def canvas_graph() -> dict:
    """The same flow in the canvas editor's node shape."""
    return {
        "id": "canvas_flow",
        "nodes": [
            {"id": "n1", "data": {"category": "Triggers", "label": "onSubmit"}},
            {
                "id": "n2",
                "data": {
                    "category": "Conditions",
                    "label": "isFilled",
                    "selectedElementIds": ["email"],
                },
            },
            {
                "id": "n3",
                "data": {
                    "category": "Actions",
                    "label": "notify.toast",
                    "config": {"message": "Thanks {{formData.email}}"},
                },
            },
        ],
        "edges": [
            {"id": "e1", "source": "n1", "target": "n2"},
            {"id": "e2", "source": "n2", "target": "n3", "sourceHandle": "true"},
        ],
    }


@pytest.fixture
def webhook_graph() -> dict:
    return {
        "workflowId": "order_hook",
        "nodes": [
            {"id": "hook", "type": "onWebhook", "config": {}},
            {
                "id": "is_paid",
                "type": "expr",
                "config": {"expression": "{{status}} == 'paid'"},
            },
            {
                "id": "store_order",
                "type": "db.create",
                "config": {
                    "tableName": "orders",
                    "insertData": {"orderId": "{{orderId}}", "status": "{{status}}"},
                },
            },
        ],
        "edges": [
            {"source": "hook", "target": "is_paid"},
            {"source": "is_paid", "target": "store_order", "label": "yes"},
        ],
    }


# ── Runtime fixtures ────────────────────────────────────────────


@pytest.fixture
def access() -> StaticAccessLookup:
    return StaticAccessLookup({
        "u1": {"id": "u1", "role": "admin", "email": "ada@example.com", "pages": ["dashboard"]},
        "u2": {"id": "u2", "role": "viewer", "email": "bob@example.com", "pages": []},
    })


@pytest.fixture
def runtime(access):
    """Runtime wired to in-memory stores; nothing touches the database."""
    return build_runtime(
        graphs=InMemoryGraphRepository(),
        records=InMemoryRecordStore(),
        recorder=InMemoryRunRecorder(),
        services=BlockServices(access=access),
    )
