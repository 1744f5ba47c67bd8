"""Pydantic models for the inbound webhook endpoint."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from blockflow.schemas.runs import TraceEntry


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class GraphResult(_CamelModel):
    workflow_id: str
    run_id: str
    status: str
    termination: str | None = None
    trace: list[TraceEntry] = []


class WebhookAccepted(_CamelModel):
    accepted: bool
    graphs_executed: int
    per_graph_results: list[GraphResult]
    received_at: str
