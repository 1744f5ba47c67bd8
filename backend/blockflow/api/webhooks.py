"""Inbound webhook endpoint."""

from __future__ import annotations

import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Request

from blockflow.api.deps import get_runtime
from blockflow.config import settings
from blockflow.runtime.container import Runtime
from blockflow.schemas.webhooks import WebhookAccepted
from blockflow.services import webhook_service

logger = logging.getLogger("blockflow.api.webhooks")

router = APIRouter()


@router.post("/{tenant_id}", response_model=WebhookAccepted)
async def receive_webhook(tenant_id: str, request: Request, runtime: Runtime = Depends(get_runtime)):
    body = await request.body()
    try:
        webhook_service.verify_request(
            request.headers, body, settings.WEBHOOK_SECRET, settings.WEBHOOK_HMAC_SECRET
        )
    except webhook_service.WebhookAuthError as exc:
        logger.warning("Rejected webhook for tenant %s: %s", tenant_id, exc.detail)
        raise HTTPException(status_code=exc.status_code, detail=exc.detail)

    if body.strip():
        try:
            payload = json.loads(body)
        except ValueError:
            raise HTTPException(status_code=400, detail="Webhook body must be valid JSON")
    else:
        payload = {}

    try:
        return await webhook_service.dispatch(
            tenant_id, payload, request.headers, runtime.graphs, runtime.run_workflow
        )
    except webhook_service.NoWebhookWorkflowsError:
        raise HTTPException(status_code=404, detail="No webhook workflows found")
