"""Tests for auth.verify and the UI directive actions."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import jwt
import pytest

from blockflow.compiler.blocks import parse_block_config
from blockflow.config import settings
from blockflow.handlers.auth import AuthVerifyHandler
from blockflow.handlers.ui import GoBackHandler, OpenModalHandler, RedirectHandler, ToastHandler
from blockflow.services.access_service import StaticAccessLookup


async def _run(handler, block_type: str, config: dict, context: dict | None = None):
    return await handler.execute(parse_block_config(block_type, config), context or {}, "t1", None)


def _token(claims: dict, expires_in: int = 3600) -> str:
    now = datetime.now(timezone.utc)
    payload = {"iat": now, "exp": now + timedelta(seconds=expires_in), **claims}
    return jwt.encode(payload, settings.AUTH_SECRET_KEY, algorithm=settings.AUTH_ALGORITHM)


@pytest.fixture
def users() -> StaticAccessLookup:
    lookup = StaticAccessLookup()
    lookup.add_user("u1", email="ada@example.com", role="admin", verified=True)
    lookup.add_user("u2", email="bob@example.com", roles=["viewer"], verified=True)
    lookup.add_user("u3", email="new@example.com", verified=False)
    return lookup


# ── auth.verify ─────────────────────────────────────────────────


class TestAuthVerify:
    @pytest.mark.asyncio
    async def test_valid_token_from_session(self, users):
        token = _token({"sub": "u1"})
        outcome = await _run(
            AuthVerifyHandler(users), "auth.verify", {"requiredRole": "admin"}, {"session": {"token": token}}
        )
        patch = outcome.context_patch
        assert outcome.success is True
        assert patch["isAuthenticated"] is True
        assert patch["isAuthorized"] is True
        assert patch["user"]["email"] == "ada@example.com"
        assert patch["session"]["userId"] == "u1"
        assert patch["auth"]["isAuthorized"] is True

    @pytest.mark.asyncio
    async def test_bearer_header(self, users):
        token = _token({"id": "u2"})
        outcome = await _run(
            AuthVerifyHandler(users), "auth.verify", {}, {"headers": {"authorization": f"Bearer {token}"}}
        )
        assert outcome.success is True
        assert outcome.context_patch["user"]["roles"] == ["viewer"]

    @pytest.mark.asyncio
    async def test_missing_role(self, users):
        outcome = await _run(
            AuthVerifyHandler(users), "auth.verify", {"requiredRoles": "admin,editor"}, {"token": _token({"sub": "u2"})}
        )
        assert outcome.success is False
        assert outcome.context_patch["isAuthenticated"] is True
        assert outcome.context_patch["authVerifyResult"]["failureReason"] == "INSUFFICIENT_PERMISSIONS"

    @pytest.mark.parametrize("context, reason", [
        ({}, "NO_TOKEN"),
        ({"token": "not-a-jwt"}, "INVALID_TOKEN"),
        ({"token": jwt.encode({"sub": "u1"}, "some-other-signing-key-of-enough-length", algorithm="HS256")}, "INVALID_TOKEN"),
    ])
    @pytest.mark.asyncio
    async def test_rejected_tokens(self, users, context, reason):
        outcome = await _run(AuthVerifyHandler(users), "auth.verify", {}, context)
        assert outcome.success is False
        assert outcome.context_patch["authVerifyResult"]["failureReason"] == reason

    @pytest.mark.asyncio
    async def test_expired_token(self, users):
        outcome = await _run(AuthVerifyHandler(users), "auth.verify", {}, {"token": _token({"sub": "u1"}, -60)})
        assert outcome.context_patch["authVerifyResult"]["failureReason"] == "TOKEN_EXPIRED"

    @pytest.mark.asyncio
    async def test_expiry_check_can_be_disabled(self, users):
        outcome = await _run(
            AuthVerifyHandler(users), "auth.verify", {"validateExpiration": False}, {"token": _token({"sub": "u1"}, -60)}
        )
        assert outcome.success is True

    @pytest.mark.asyncio
    async def test_revoked_token(self, users):
        token = _token({"sub": "u1"})
        users.revoke(token)
        outcome = await _run(AuthVerifyHandler(users), "auth.verify", {}, {"token": token})
        assert outcome.context_patch["authVerifyResult"]["failureReason"] == "TOKEN_REVOKED"

    @pytest.mark.asyncio
    async def test_unknown_and_unverified_users(self, users):
        unknown = await _run(AuthVerifyHandler(users), "auth.verify", {}, {"token": _token({"sub": "ghost"})})
        assert unknown.context_patch["authVerifyResult"]["failureReason"] == "USER_NOT_FOUND"
        unverified = await _run(AuthVerifyHandler(users), "auth.verify", {}, {"token": _token({"sub": "u3"})})
        result = unverified.context_patch["authVerifyResult"]
        assert result["failureReason"] == "ACCOUNT_NOT_VERIFIED"
        assert result["isAuthenticated"] is True

    @pytest.mark.asyncio
    async def test_token_from_config_template(self, users):
        token = _token({"sub": "u1"})
        outcome = await _run(
            AuthVerifyHandler(users), "auth.verify", {"token": "Bearer {{loginToken}}"}, {"loginToken": token}
        )
        assert outcome.success is True


# ── UI directives ───────────────────────────────────────────────


class TestUiActions:
    @pytest.mark.asyncio
    async def test_toast(self):
        outcome = await _run(
            ToastHandler(), "notify.toast",
            {"message": "Saved {{formData.name}}", "title": "Done", "variant": "success", "duration": 120000},
            {"formData": {"name": "Ada"}},
        )
        toast = outcome.context_patch["toast"]
        assert toast["message"] == "Saved Ada"
        assert toast["title"] == "Done"
        assert toast["duration"] == 30000

    @pytest.mark.asyncio
    async def test_toast_short_duration_is_raised(self):
        outcome = await _run(ToastHandler(), "notify.toast", {"message": "hi", "duration": 10})
        assert outcome.context_patch["toast"]["duration"] == 1000

    @pytest.mark.asyncio
    async def test_toast_empty_after_substitution(self):
        outcome = await _run(ToastHandler(), "notify.toast", {"message": "{{missing}}"})
        assert outcome.success is False

    @pytest.mark.asyncio
    async def test_modal(self):
        outcome = await _run(
            OpenModalHandler(), "ui.openModal",
            {"modalId": "confirm", "modalTitle": "Hello {{user.name}}", "modalData": {"id": "{{recordId}}"}},
            {"user": {"name": "Ada"}, "recordId": 4},
        )
        modal = outcome.context_patch["openModalResult"]
        assert modal["title"] == "Hello Ada"
        assert modal["data"] == {"id": "4"}
        assert modal["size"] == "medium"

    @pytest.mark.asyncio
    async def test_redirect_to_page(self):
        outcome = await _run(RedirectHandler(), "page.redirect", {"targetPageId": "thanks"})
        assert outcome.context_patch["redirectType"] == "page"
        assert outcome.context_patch["redirectTarget"] == "thanks"

    @pytest.mark.asyncio
    async def test_redirect_to_url(self):
        outcome = await _run(
            RedirectHandler(), "page.redirect", {"url": "https://example.com/{{slug}}", "openInNewTab": True},
            {"slug": "done"},
        )
        assert outcome.context_patch["redirect"]["target"] == "https://example.com/done"
        assert outcome.context_patch["redirect"]["openInNewTab"] is True

    @pytest.mark.asyncio
    async def test_go_back(self):
        outcome = await _run(GoBackHandler(), "page.goBack", {})
        assert outcome.context_patch == {"goBackProcessed": True}
