"""Inbound webhook adapter: authenticate, build the context, fan out.

Authentication happens before anything else: a request that fails the
shared-secret or signature check never produces a context, a run or a trace.
"""

from __future__ import annotations

import hashlib
import hmac
import logging
from typing import Any, Awaitable, Callable, Mapping

from blockflow.handlers.base import utcnow_iso
from blockflow.services.graph_repository import GraphRepository, StoredWorkflow
from blockflow.utils.redaction import redact_sensitive_data

logger = logging.getLogger("blockflow.webhooks")

SIGNATURE_HEADERS = ("x-hub-signature-256", "x-signature-256")


class WebhookAuthError(Exception):
    def __init__(self, status_code: int, detail: str):
        self.status_code = status_code
        self.detail = detail
        super().__init__(detail)


class NoWebhookWorkflowsError(LookupError):
    pass


def _presented_secret(headers: Mapping[str, str]) -> str | None:
    secret = headers.get("x-webhook-secret")
    if secret:
        return secret
    auth = headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip() or None
    return None


def compute_signature(secret: str, body: bytes) -> str:
    return hmac.new(secret.encode(), body, hashlib.sha256).hexdigest()


def verify_request(
    headers: Mapping[str, str],
    body: bytes,
    shared_secret: str | None,
    hmac_secret: str | None,
) -> None:
    """Raise ``WebhookAuthError`` unless every configured check passes.

    *headers* must be case-insensitive (Starlette ``Headers``) or lower-cased.
    """
    if shared_secret:
        presented = _presented_secret(headers)
        if not presented:
            raise WebhookAuthError(401, "Missing webhook secret")
        if not hmac.compare_digest(presented.encode(), shared_secret.encode()):
            raise WebhookAuthError(403, "Invalid webhook secret")

    if hmac_secret:
        signature = next((headers.get(h) for h in SIGNATURE_HEADERS if headers.get(h)), None)
        if not signature:
            raise WebhookAuthError(401, "Missing webhook signature")
        if signature.startswith("sha256="):
            signature = signature[len("sha256="):]
        expected = compute_signature(hmac_secret, body)
        if not hmac.compare_digest(signature.strip().lower(), expected):
            raise WebhookAuthError(403, "Invalid webhook signature")


def build_webhook_context(payload: Any, headers: Mapping[str, str], received_at: str) -> dict[str, Any]:
    """Payload fields flattened to the top level, plus the raw payload and headers."""
    context: dict[str, Any] = dict(payload) if isinstance(payload, dict) else {}
    context.update({
        "webhookPayload": payload,
        "webhookHeaders": redact_sensitive_data({k.lower(): v for k, v in headers.items()}),
        "webhookReceivedAt": received_at,
    })
    return context


WorkflowRunner = Callable[[StoredWorkflow, dict[str, Any], str, Any, str], Awaitable[Any]]


async def dispatch(
    tenant_id: str,
    payload: Any,
    headers: Mapping[str, str],
    graphs: GraphRepository,
    runner: WorkflowRunner,
) -> dict[str, Any]:
    """Run every webhook-started workflow of the tenant, one after another."""
    workflows = await graphs.list_by_trigger("onWebhook", tenant_id)
    if not workflows:
        raise NoWebhookWorkflowsError(tenant_id)

    received_at = utcnow_iso()
    context = build_webhook_context(payload, headers, received_at)
    per_graph = []
    for workflow in workflows:
        result = await runner(workflow, dict(context), tenant_id, None, "onWebhook")
        per_graph.append({
            "workflowId": workflow.workflow_id,
            "runId": result.run_id,
            "status": result.status,
            "termination": result.termination,
            "trace": result.trace,
        })
    logger.info("Webhook for tenant %s ran %d workflow(s)", tenant_id, len(per_graph))
    return {
        "accepted": True,
        "graphsExecuted": len(per_graph),
        "perGraphResults": per_graph,
        "receivedAt": received_at,
    }
