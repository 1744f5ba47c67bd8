"""Tests for trigger blocks."""

from __future__ import annotations

import pytest

from blockflow.compiler.blocks import DropConfig, ScheduleConfig, parse_block_config
from blockflow.handlers.triggers import (
    ClickHandler,
    DropHandler,
    LoginHandler,
    PageLoadHandler,
    RecordCreateHandler,
    RecordUpdateHandler,
    ScheduleHandler,
    SubmitHandler,
    WebhookHandler,
    find_token,
    interval_ms,
    schedule_delay_ms,
    strip_bearer,
    validate_dropped_file,
)


async def _run(handler, block_type: str, config: dict, context: dict):
    return await handler.execute(parse_block_config(block_type, config), context, "t1", None)


class TestPageAndClick:
    @pytest.mark.asyncio
    async def test_page_load_matches_target(self):
        outcome = await _run(PageLoadHandler(), "onPageLoad", {"targetPageId": "home"}, {"pageId": "home"})
        assert outcome.triggered is True
        assert outcome.context_patch["pageId"] == "home"

    @pytest.mark.asyncio
    async def test_page_load_other_page(self):
        outcome = await _run(PageLoadHandler(), "onPageLoad", {"targetPageId": "home"}, {"pageId": "about"})
        assert outcome.triggered is False
        assert outcome.success is False

    @pytest.mark.asyncio
    async def test_click_without_filter_always_fires(self):
        outcome = await _run(ClickHandler(), "onClick", {}, {"clickedElementId": "any"})
        assert outcome.success is True
        assert outcome.context_patch["clickedElementId"] == "any"

    @pytest.mark.asyncio
    async def test_click_on_other_element(self):
        outcome = await _run(ClickHandler(), "onClick", {"targetElementId": "save"}, {"elementId": "cancel"})
        assert outcome.triggered is False


class TestSubmit:
    @pytest.mark.asyncio
    async def test_form_fields_are_spread(self):
        outcome = await _run(SubmitHandler(), "onSubmit", {}, {"formData": {"email": "a@b.com"}})
        patch = outcome.context_patch
        assert patch["email"] == "a@b.com"
        assert patch["formData"] == {"email": "a@b.com"}
        assert patch["formSubmission"]["formData"] == {"email": "a@b.com"}

    @pytest.mark.asyncio
    async def test_empty_form_still_triggers(self):
        outcome = await _run(SubmitHandler(), "onSubmit", {}, {"formData": {}})
        assert outcome.triggered is True
        assert outcome.context_patch["formData"] == {}

    @pytest.mark.asyncio
    async def test_other_form_group(self):
        outcome = await _run(
            SubmitHandler(), "onSubmit", {"selectedFormGroup": "signup"},
            {"formGroupId": "contact", "formData": {}},
        )
        assert outcome.triggered is False


class TestDrop:
    def test_file_checks(self):
        config = DropConfig(acceptedTypes="image/*,.pdf", maxFileSize=1024)
        ok = validate_dropped_file({"name": "a.png", "type": "image/png", "size": 10}, config, 1)
        assert ok["valid"] is True
        too_big = validate_dropped_file({"name": "a.pdf", "type": "application/pdf", "size": 4096}, config, 1)
        assert too_big["errors"][0].startswith("File too large")
        wrong = validate_dropped_file({"name": "a.txt", "type": "text/plain", "size": 10}, config, 1)
        assert wrong["errors"][0].startswith("Invalid file type")

    def test_dangerous_names(self):
        errors = validate_dropped_file({"name": "../run.exe", "type": "", "size": 1}, DropConfig(), 1)["errors"]
        assert any("path traversal" in e for e in errors)
        assert any(".exe" in e for e in errors)

    @pytest.mark.asyncio
    async def test_partial_acceptance(self):
        drop = {"files": [
            {"name": "a.png", "type": "image/png", "size": 10},
            {"name": "b.png", "type": "image/png", "size": 0},
        ], "elementId": "zone"}
        outcome = await _run(DropHandler(), "onDrop", {"acceptedTypes": ["image/*"]}, {"dropData": drop})
        result = outcome.context_patch["dropResult"]
        assert outcome.triggered is True
        assert result["successCount"] == 1
        assert result["totalCount"] == 2
        assert [f["name"] for f in result["files"]] == ["a.png"]

    @pytest.mark.asyncio
    async def test_no_valid_files(self):
        drop = {"files": [{"name": "a.exe", "type": "application/x", "size": 10}]}
        outcome = await _run(DropHandler(), "onDrop", {}, {"dropData": drop})
        assert outcome.triggered is False
        assert outcome.context_patch["dropResult"]["successCount"] == 0

    @pytest.mark.asyncio
    async def test_empty_drop(self):
        outcome = await _run(DropHandler(), "onDrop", {}, {"dropData": {"files": []}})
        assert outcome.triggered is False


class TestSchedule:
    def test_interval_units(self):
        assert interval_ms(2, "hours") == 7_200_000
        assert interval_ms(30, "seconds") == 30_000
        assert interval_ms(1, "fortnights") == 60_000

    def test_cron_uses_placeholder_delay(self, monkeypatch):
        from blockflow.config import settings

        monkeypatch.setattr(settings, "CRON_PLACEHOLDER_DELAY_SECONDS", 90)
        config = ScheduleConfig(scheduleType="cron", cronExpression="0 9 * * *")
        assert schedule_delay_ms(config) == 90_000

    @pytest.mark.asyncio
    async def test_handler_returns_immediately(self):
        outcome = await _run(
            ScheduleHandler(), "onSchedule", {"scheduleValue": 5, "scheduleUnit": "minutes"},
            {"scheduledAt": "2024-01-01T00:00:00+00:00"},
        )
        result = outcome.context_patch["scheduleResult"]
        assert outcome.triggered is True
        assert result["delayMs"] == 300_000
        assert result["firedAt"] == "2024-01-01T00:00:00+00:00"

    @pytest.mark.asyncio
    async def test_disabled_schedule(self):
        outcome = await _run(ScheduleHandler(), "onSchedule", {"enabled": False}, {})
        assert outcome.triggered is False


class TestRecordTriggers:
    @pytest.mark.asyncio
    async def test_create_on_watched_table(self):
        outcome = await _run(
            RecordCreateHandler(), "onRecordCreate", {"tableName": "leads"},
            {"triggerTableName": "leads", "createdRecord": {"id": 7, "email": "a@b.com"}},
        )
        assert outcome.triggered is True
        assert outcome.context_patch["email"] == "a@b.com"
        assert outcome.context_patch["recordCreateResult"]["recordId"] == 7

    @pytest.mark.asyncio
    async def test_create_on_other_table(self):
        outcome = await _run(
            RecordCreateHandler(), "onRecordCreate", {"tableName": "leads"},
            {"triggerTableName": "orders", "createdRecord": {"id": 1}},
        )
        assert outcome.triggered is False

    @pytest.mark.asyncio
    async def test_update_derives_changed_columns(self):
        outcome = await _run(
            RecordUpdateHandler(), "onRecordUpdate", {"tableName": "leads", "watchColumns": "status"},
            {
                "triggerTableName": "leads",
                "updatedRecord": {"id": 1, "status": "won", "note": "x"},
                "previousRecord": {"id": 1, "status": "open", "note": "x"},
            },
        )
        assert outcome.triggered is True
        assert outcome.context_patch["changedColumns"] == ["status"]

    @pytest.mark.asyncio
    async def test_update_ignores_unwatched_columns(self):
        outcome = await _run(
            RecordUpdateHandler(), "onRecordUpdate", {"tableName": "leads", "watchColumns": ["status"]},
            {"triggerTableName": "leads", "updatedRecord": {"id": 1}, "changedColumns": ["note"]},
        )
        assert outcome.triggered is False


class TestLogin:
    @pytest.mark.asyncio
    async def test_session_is_built(self):
        outcome = await _run(
            LoginHandler(), "onLogin", {"captureMetadata": True},
            {
                "loginResponse": {"user": {"id": 9, "email": "ada@example.com", "role": "admin"}, "token": "Bearer abc"},
                "userAgent": "pytest",
            },
        )
        session = outcome.context_patch["session"]
        assert outcome.triggered is True
        assert session["userId"] == 9
        assert session["roles"] == ["admin"]
        assert session["token"] == "abc"
        assert session["metadata"]["userAgent"] == "pytest"
        assert outcome.context_patch["user"]["name"] == "ada"

    @pytest.mark.asyncio
    async def test_failed_login(self):
        outcome = await _run(
            LoginHandler(), "onLogin", {},
            {"loginStatus": "failed", "user": {"id": 1, "email": "a@b.com"}},
        )
        assert outcome.triggered is False

    @pytest.mark.asyncio
    async def test_user_needs_id_and_email(self):
        outcome = await _run(LoginHandler(), "onLogin", {}, {"user": {"id": 1}})
        assert outcome.triggered is False

    def test_token_helpers(self):
        assert strip_bearer("Bearer xyz") == "xyz"
        assert strip_bearer("  ") is None
        assert find_token({"headers": {"authorization": "Bearer t0k"}}) == "t0k"
        assert find_token({}) is None


class TestWebhook:
    @pytest.mark.asyncio
    async def test_payload_is_spread(self):
        outcome = await _run(
            WebhookHandler(), "onWebhook", {}, {"webhookPayload": {"orderId": "A1", "status": "paid"}}
        )
        assert outcome.triggered is True
        assert outcome.context_patch["orderId"] == "A1"

    @pytest.mark.asyncio
    async def test_match_filter(self):
        config = {"matchPath": "event", "matchValue": "order.paid"}
        hit = await _run(WebhookHandler(), "onWebhook", config, {"webhookPayload": {"event": "order.paid"}})
        miss = await _run(WebhookHandler(), "onWebhook", config, {"webhookPayload": {"event": "order.refunded"}})
        assert hit.triggered is True
        assert miss.triggered is False

    @pytest.mark.asyncio
    async def test_no_payload(self):
        outcome = await _run(WebhookHandler(), "onWebhook", {}, {})
        assert outcome.triggered is False
