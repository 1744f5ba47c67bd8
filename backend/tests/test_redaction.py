"""Tests for the redaction helpers used on traces and stored contexts."""

from __future__ import annotations

import re

import pytest

from blockflow.utils.redaction import (
    MASK_PLACEHOLDER,
    REDACTION_PLACEHOLDER,
    _is_sensitive_key,
    mask_value,
    redact_sensitive_data,
)


class TestIsSensitiveKey:
    @pytest.mark.parametrize("key", [
        "password", "PASSWORD", "user_password",
        "token", "access_token", "resetToken",
        "api_key", "api-key", "apikey",
        "client_secret", "credentials", "Authorization",
        "x-hub-signature-256", "private_key", "cookie",
    ])
    def test_sensitive_keys_detected(self, key):
        assert _is_sensitive_key(key) is True

    @pytest.mark.parametrize("key", ["name", "email", "status", "formData", "recordId", "message"])
    def test_plain_keys_pass(self, key):
        assert _is_sensitive_key(key) is False


class TestRedactSensitiveData:
    def test_nested_session_token(self):
        data = {"session": {"userId": 7, "token": "abc"}, "formData": {"email": "a@b.com"}}
        redacted = redact_sensitive_data(data)
        assert redacted["session"]["token"] == REDACTION_PLACEHOLDER
        assert redacted["session"]["userId"] == 7
        assert redacted["formData"]["email"] == "a@b.com"

    def test_input_is_not_mutated(self):
        data = {"password": "hunter2"}
        redact_sensitive_data(data)
        assert data["password"] == "hunter2"

    def test_lists_and_tuples(self):
        data = [{"apiKey": "k"}, ({"name": "x"},)]
        redacted = redact_sensitive_data(data)
        assert redacted[0]["apiKey"] == REDACTION_PLACEHOLDER
        assert redacted[1] == ({"name": "x"},)

    def test_extra_patterns(self):
        redacted = redact_sensitive_data({"ssn": "123"}, extra_patterns=[re.compile(r"^ssn$", re.IGNORECASE)])
        assert redacted["ssn"] == REDACTION_PLACEHOLDER

    def test_depth_limit_returns_data_as_is(self):
        deep = {"a": {"b": {"password": "x"}}}
        assert redact_sensitive_data(deep, max_depth=2)["a"]["b"]["password"] == "x"


class TestMaskValue:
    def test_present_values_are_hidden(self):
        assert mask_value("a@b.com") == MASK_PLACEHOLDER
        assert mask_value(0) == MASK_PLACEHOLDER

    def test_empty_values_stay_empty(self):
        assert mask_value("") == ""
        assert mask_value(None) is None
