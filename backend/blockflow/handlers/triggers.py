"""Trigger blocks: check the inbound event and seed the context.

A trigger whose filter does not match returns a not-triggered Outcome
instead of raising; as the start node that ends the run before any
side effect happens.
"""

from __future__ import annotations

import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

from blockflow.compiler.blocks import (
    ClickConfig,
    DropConfig,
    LoginConfig,
    PageLoadConfig,
    RecordCreateConfig,
    RecordUpdateConfig,
    ScheduleConfig,
    SubmitConfig,
    WebhookConfig,
)
from blockflow.config import settings
from blockflow.handlers.base import BlockHandler, Outcome, utcnow_iso
from blockflow.templating.engine import resolve, resolve_path

logger = logging.getLogger("blockflow.handlers.triggers")


class PageLoadHandler(BlockHandler):
    block_type = "onPageLoad"

    async def run(self, config: PageLoadConfig, context, tenant_id, actor_id) -> Outcome:
        page_id = context.get("pageId")
        target = resolve(config.target_page_id, context)
        if target and page_id and str(target) != str(page_id):
            return Outcome.not_triggered(f"Page '{page_id}' does not match '{target}'")
        return Outcome(
            success=True,
            triggered=True,
            message="Page load processed",
            context_patch={
                "pageLoadProcessed": True,
                "pageId": page_id or target,
                "pageLoadedAt": utcnow_iso(),
            },
        )


class ClickHandler(BlockHandler):
    block_type = "onClick"

    async def run(self, config: ClickConfig, context, tenant_id, actor_id) -> Outcome:
        clicked = context.get("clickedElementId") or context.get("elementId")
        target = resolve(config.target_element_id, context)
        if target and clicked and str(target) != str(clicked):
            return Outcome.not_triggered(f"Element '{clicked}' does not match '{target}'")
        return Outcome(
            success=True,
            triggered=True,
            message="Click processed",
            context_patch={
                "clickProcessed": True,
                "clickedElementId": clicked or target,
                "clickedAt": utcnow_iso(),
            },
        )


class SubmitHandler(BlockHandler):
    """An empty form still triggers; emptiness is for a condition to judge."""

    block_type = "onSubmit"

    async def run(self, config: SubmitConfig, context, tenant_id, actor_id) -> Outcome:
        form_group = context.get("formGroupId")
        if config.selected_form_group and form_group and config.selected_form_group != form_group:
            return Outcome.not_triggered(
                f"Form group '{form_group}' does not match '{config.selected_form_group}'"
            )
        form_data = context.get("formData")
        if not isinstance(form_data, dict):
            form_data = {}
        patch: dict[str, Any] = dict(form_data)
        patch.update({
            "formData": form_data,
            "formSubmission": {
                "formGroupId": config.selected_form_group or form_group,
                "formData": form_data,
                "triggerElement": context.get("triggerElement"),
                "submittedAt": utcnow_iso(),
            },
        })
        return Outcome(
            success=True,
            triggered=True,
            message=f"Form submitted with {len(form_data)} field(s)",
            context_patch=patch,
        )


# ── File drop ───────────────────────────────────────────────────

_DANGEROUS_EXTENSIONS = frozenset({".exe", ".bat", ".cmd", ".scr", ".pif", ".com", ".vbs", ".js", ".jar"})
_MAX_NAME_LENGTH = 255


def validate_dropped_file(file: dict[str, Any], config: DropConfig, file_count: int) -> dict[str, Any]:
    errors: list[str] = []
    name = str(file.get("name") or "")
    mime = str(file.get("type") or "")
    size = file.get("size") or 0

    if config.accepted_types:
        accepted = False
        for pattern in config.accepted_types:
            if pattern.endswith("/*"):
                accepted = mime.startswith(pattern[:-1])
            elif pattern.startswith("."):
                accepted = name.lower().endswith(pattern.lower())
            else:
                accepted = mime == pattern
            if accepted:
                break
        if not accepted:
            errors.append(
                f"Invalid file type: {mime or 'unknown'}. Accepted types: {', '.join(config.accepted_types)}"
            )

    if config.max_file_size and size > config.max_file_size:
        errors.append(
            f"File too large: {size / (1024 * 1024):.1f}MB "
            f"(max: {config.max_file_size / (1024 * 1024):.1f}MB)"
        )
    if not config.allow_multiple and file_count > 1:
        errors.append("Multiple files not allowed")
    if ".." in name or "/" in name or "\\" in name:
        errors.append("Invalid filename: contains path traversal characters")
    if len(name) > _MAX_NAME_LENGTH:
        errors.append(f"Filename too long (max {_MAX_NAME_LENGTH} characters)")
    if size <= 0:
        errors.append("File is empty")
    extension = os.path.splitext(name)[1].lower()
    if extension in _DANGEROUS_EXTENSIONS:
        errors.append(f"File extension {extension} is not allowed for security reasons")

    return {"fileName": name, "valid": not errors, "errors": errors}


class DropHandler(BlockHandler):
    block_type = "onDrop"

    async def run(self, config: DropConfig, context, tenant_id, actor_id) -> Outcome:
        drop = context.get("dropData") or {}
        files = drop.get("files") or []
        if not files:
            return Outcome.not_triggered("No files provided in drop event")

        validation_results = []
        accepted_files = []
        for file in files:
            result = validate_dropped_file(file, config, len(files))
            validation_results.append(result)
            if result["valid"]:
                accepted_files.append({
                    k: file.get(k) for k in ("name", "size", "type", "url", "data", "content") if k in file
                })

        success_count = len(accepted_files)
        drop_result = {
            "files": accepted_files,
            "validationResults": validation_results,
            "position": drop.get("position"),
            "elementId": drop.get("elementId"),
            "processedAt": utcnow_iso(),
            "successCount": success_count,
            "totalCount": len(files),
        }
        message = f"Processed {success_count}/{len(files)} files successfully"
        if not success_count:
            return Outcome.not_triggered(message, context_patch={"dropResult": drop_result})
        return Outcome(success=True, triggered=True, message=message, context_patch={"dropResult": drop_result})


# ── Schedule ────────────────────────────────────────────────────

_UNIT_MS = {
    "seconds": 1000,
    "minutes": 60 * 1000,
    "hours": 60 * 60 * 1000,
    "days": 24 * 60 * 60 * 1000,
    "weeks": 7 * 24 * 60 * 60 * 1000,
}


def interval_ms(value: float, unit: str) -> int:
    """Convert (value, unit) to milliseconds; unknown units count as minutes."""
    return int(value * _UNIT_MS.get((unit or "").lower(), _UNIT_MS["minutes"]))


def schedule_delay_ms(config: ScheduleConfig) -> int:
    if config.schedule_type == "cron":
        # Cron expressions are not evaluated; fixed placeholder delay.
        return settings.CRON_PLACEHOLDER_DELAY_SECONDS * 1000
    return interval_ms(config.schedule_value, config.schedule_unit)


class ScheduleHandler(BlockHandler):
    """Computes the next fire time and returns at once; the scheduled
    adapter owns the timer."""

    block_type = "onSchedule"

    async def run(self, config: ScheduleConfig, context, tenant_id, actor_id) -> Outcome:
        if not config.enabled:
            return Outcome.not_triggered("Schedule is disabled")
        delay = schedule_delay_ms(config)
        next_time = datetime.now(timezone.utc) + timedelta(milliseconds=delay)
        result = {
            "scheduled": True,
            "scheduleType": config.schedule_type,
            "delayMs": delay,
            "cronExpression": config.cron_expression,
            "firedAt": context.get("scheduledAt") or utcnow_iso(),
            "nextExecutionTime": next_time.isoformat(),
        }
        return Outcome(
            success=True,
            triggered=True,
            message=f"Next execution at {result['nextExecutionTime']}",
            context_patch={"scheduleResult": result},
        )


# ── Record change ───────────────────────────────────────────────


def _event_table(context: dict[str, Any]) -> str | None:
    return context.get("triggerTableName") or context.get("tableName")


class RecordCreateHandler(BlockHandler):
    block_type = "onRecordCreate"

    async def run(self, config: RecordCreateConfig, context, tenant_id, actor_id) -> Outcome:
        if not config.enabled:
            return Outcome.not_triggered("Trigger is disabled")
        table = _event_table(context)
        if table and table != config.table_name:
            return Outcome.not_triggered(
                f"Record created in '{table}', trigger watches '{config.table_name}'"
            )
        record = context.get("createdRecord") or context.get("record") or {}
        patch: dict[str, Any] = dict(record) if isinstance(record, dict) else {}
        patch.update({
            "record": record,
            "createdRecord": record,
            "recordData": record,
            "recordCreateResult": {
                "tableName": config.table_name,
                "recordId": record.get("id") if isinstance(record, dict) else None,
                "triggeredAt": utcnow_iso(),
            },
        })
        return Outcome(
            success=True,
            triggered=True,
            message=f"Record created in {config.table_name}",
            context_patch=patch,
        )


class RecordUpdateHandler(BlockHandler):
    block_type = "onRecordUpdate"

    async def run(self, config: RecordUpdateConfig, context, tenant_id, actor_id) -> Outcome:
        if not config.enabled:
            return Outcome.not_triggered("Trigger is disabled")
        table = _event_table(context)
        if table and table != config.table_name:
            return Outcome.not_triggered(
                f"Record updated in '{table}', trigger watches '{config.table_name}'"
            )
        record = context.get("updatedRecord") or context.get("record") or {}
        previous = context.get("previousRecord") or {}
        changed = list(context.get("changedColumns") or [])
        if not changed and isinstance(record, dict) and isinstance(previous, dict) and previous:
            changed = [k for k, v in record.items() if previous.get(k) != v]
        if config.watch_columns and not set(config.watch_columns) & set(changed):
            return Outcome.not_triggered(
                f"None of the watched columns changed ({', '.join(config.watch_columns)})"
            )
        return Outcome(
            success=True,
            triggered=True,
            message=f"Record updated in {config.table_name}",
            context_patch={
                "record": record,
                "updatedRecord": record,
                "previousRecord": previous,
                "changedColumns": changed,
                "recordUpdateResult": {
                    "tableName": config.table_name,
                    "recordId": record.get("id") if isinstance(record, dict) else None,
                    "changedColumns": changed,
                    "triggeredAt": utcnow_iso(),
                },
            },
        )


# ── Login ───────────────────────────────────────────────────────

_FAILED_FLAGS = ("loginSuccess", "loginSucceeded", "authSuccess")
_FAILED_STATUS_KEYS = ("loginStatus", "status", "authStatus")
_FAILED_STATUSES = frozenset({"failed", "error", "unauthorized"})

_USER_PATHS = (
    "user",
    "session.user",
    "authUser",
    "loginUser",
    "loginResponse.user",
    "authResponse.user",
    "httpResponse.data.user",
)
_TOKEN_PATHS = (
    "token",
    "session.token",
    "authToken",
    "accessToken",
    "loginResponse.token",
    "authResponse.token",
    "httpResponse.data.token",
    "headers.authorization",
    "request.headers.authorization",
)


def strip_bearer(value: Any) -> str | None:
    if not isinstance(value, str) or not value.strip():
        return None
    token = value.strip()
    if token.lower().startswith("bearer "):
        token = token[7:].strip()
    return token or None


def find_token(context: dict[str, Any], paths: tuple[str, ...] = _TOKEN_PATHS) -> str | None:
    for path in paths:
        token = strip_bearer(resolve_path(path, context))
        if token:
            return token
    return None


def _login_failed(context: dict[str, Any]) -> bool:
    if any(context.get(flag) is False for flag in _FAILED_FLAGS):
        return True
    return any(
        str(context.get(key, "")).lower() in _FAILED_STATUSES
        for key in _FAILED_STATUS_KEYS
    )


def _find_user(context: dict[str, Any]) -> dict[str, Any] | None:
    for path in _USER_PATHS:
        candidate = resolve_path(path, context)
        if isinstance(candidate, dict) and candidate:
            return candidate
    return None


class LoginHandler(BlockHandler):
    block_type = "onLogin"

    async def run(self, config: LoginConfig, context, tenant_id, actor_id) -> Outcome:
        if _login_failed(context):
            return Outcome.not_triggered("Login was reported as failed")

        user = _find_user(context)
        if user is None:
            return Outcome.not_triggered("No user data found for login event")
        user_id = user.get("id") or user.get("userId")
        email = user.get("email") or user.get("userEmail") or user.get("username")
        if not user_id or not email:
            return Outcome.not_triggered("Login user requires both an id and an email")

        roles = user.get("roles") or ([user["role"]] if user.get("role") else [])
        name = user.get("name") or user.get("fullName") or str(email).split("@")[0]
        login_at = utcnow_iso()
        token = find_token(context) if config.store_token else None

        existing = context.get("session") if isinstance(context.get("session"), dict) else {}
        session: dict[str, Any] = dict(existing)
        session.update({
            "userId": user_id,
            "email": email,
            "name": name,
            "roles": roles,
            "loginTimestamp": login_at,
        })
        if token:
            session["token"] = token
        if config.capture_metadata:
            session["metadata"] = {
                "ipAddress": context.get("ipAddress") or resolve_path("request.ip", context),
                "userAgent": context.get("userAgent") or resolve_path("request.headers.user-agent", context),
                "loginMethod": context.get("loginMethod", "password"),
            }
        if config.capture_user_data:
            session["user"] = user

        patch: dict[str, Any] = {
            "session": session,
            "loginProcessed": True,
            "loginResult": {"userId": user_id, "email": email, "loggedInAt": login_at},
        }
        if config.capture_user_data:
            patch["user"] = {**user, "id": user_id, "email": email, "name": name, "roles": roles}
        return Outcome(
            success=True,
            triggered=True,
            message=f"User {email} logged in",
            context_patch=patch,
        )


# ── Webhook ─────────────────────────────────────────────────────


class WebhookHandler(BlockHandler):
    block_type = "onWebhook"

    async def run(self, config: WebhookConfig, context, tenant_id, actor_id) -> Outcome:
        payload = context.get("webhookPayload")
        if payload is None:
            payload = context.get("payload", context.get("data"))
        if payload is None:
            return Outcome.not_triggered("No webhook payload in context")

        if config.match_path:
            actual = resolve_path(config.match_path, payload if isinstance(payload, dict) else {})
            if config.match_value is not None and str(actual) != str(config.match_value):
                return Outcome.not_triggered(
                    f"Payload field '{config.match_path}' is {actual!r}, expected {config.match_value!r}"
                )
            if config.match_value is None and actual is None:
                return Outcome.not_triggered(f"Payload field '{config.match_path}' is missing")

        patch: dict[str, Any] = dict(payload) if isinstance(payload, dict) else {}
        patch.update({
            "webhookPayload": payload,
            "webhookHeaders": context.get("webhookHeaders") or {},
            "webhookReceivedAt": context.get("webhookReceivedAt") or utcnow_iso(),
        })
        return Outcome(success=True, triggered=True, message="Webhook received", context_patch=patch)
