"""Actions that call out of the engine: http.request, email.send, ai.summarize."""

from __future__ import annotations

import base64
import json
import logging
import re
from typing import Any

from blockflow.compiler.blocks import EmailSendConfig, HttpRequestConfig, SummarizeConfig
from blockflow.connectors.email_client import EmailConnector
from blockflow.connectors.http_client import HttpConnector, HttpRequestError
from blockflow.connectors.summary_client import SummaryClient
from blockflow.handlers.base import BlockHandler, Outcome, utcnow_iso
from blockflow.templating.engine import resolve, stringify

logger = logging.getLogger("blockflow.handlers.integrations")

_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})
EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")


# ── http.request ────────────────────────────────────────────────


def build_auth_headers(config: HttpRequestConfig, context: dict[str, Any]) -> dict[str, str]:
    auth = config.auth_config
    if config.auth_type == "bearer" and auth.token:
        return {"Authorization": f"Bearer {resolve(auth.token, context)}"}
    if config.auth_type == "api-key" and auth.api_key:
        return {auth.api_key_header or "X-API-Key": resolve(auth.api_key, context)}
    if config.auth_type == "basic" and auth.username:
        raw = f"{resolve(auth.username, context)}:{resolve(auth.password or '', context)}"
        return {"Authorization": "Basic " + base64.b64encode(raw.encode()).decode()}
    return {}


def build_body(config: HttpRequestConfig, context: dict[str, Any]) -> dict[str, Any]:
    """Keyword arguments for the connector's body parameters."""
    if config.method not in _BODY_METHODS or config.body_type == "none" or config.body is None:
        return {}
    body = resolve(config.body, context)
    if config.body_type == "json":
        if isinstance(body, str):
            try:
                body = json.loads(body) if body.strip() else None
            except json.JSONDecodeError:
                raise HttpRequestError("UNKNOWN_ERROR", "Invalid JSON in request body") from None
        return {"json_body": body}
    if config.body_type == "form":
        if isinstance(body, str):
            body = json.loads(body) if body.strip().startswith("{") else {}
        return {"form": body}
    return {"content": stringify(body)}


class HttpRequestHandler(BlockHandler):
    block_type = "http.request"

    def __init__(self, connector: HttpConnector) -> None:
        self._http = connector

    async def run(self, config: HttpRequestConfig, context, tenant_id, actor_id) -> Outcome:
        url = stringify(resolve(config.url, context)).strip()
        if not url:
            raise ValueError("URL is required for HTTP request")

        headers = {}
        for entry in config.headers:
            key = stringify(resolve(entry.key, context)).strip()
            value = stringify(resolve(entry.value, context))
            if key and value:
                headers[key] = value
        headers.update(build_auth_headers(config, context))
        if config.body_type == "raw" and not any(k.lower() == "content-type" for k in headers):
            headers["Content-Type"] = "text/plain"

        try:
            response = await self._http.request(
                config.method,
                url,
                headers=headers,
                timeout_ms=config.timeout,
                follow_redirects=config.follow_redirects,
                verify=config.validate_ssl,
                **build_body(config, context),
            )
        except HttpRequestError as exc:
            logger.warning("HTTP request to %s failed: %s (%s)", url, exc, exc.error_type)
            return Outcome.failed(
                str(exc),
                context_patch={
                    config.save_response_to: {
                        "success": False,
                        "error": exc.error_type,
                        "errorMessage": str(exc),
                        "timing": {"requestSentAt": utcnow_iso(), "failed": True},
                    },
                },
            )

        status = response["statusCode"]
        return Outcome(
            success=response["success"],
            message=f"{config.method} {url} -> {status}",
            error=None if response["success"] else f"HTTP {status} {response['statusText']}",
            context_patch={config.save_response_to: response},
        )


# ── email.send ──────────────────────────────────────────────────


def parse_recipients(value: Any) -> list[str]:
    """Split a comma/semicolon list and reject malformed addresses."""
    if isinstance(value, (list, tuple)):
        items = [stringify(v) for v in value]
    else:
        items = re.split(r"[,;]", stringify(value))
    recipients = [item.strip() for item in items if item.strip()]
    invalid = [r for r in recipients if not EMAIL_RE.match(r)]
    if invalid:
        raise ValueError(f"Invalid email address(es): {', '.join(invalid)}")
    return recipients


class EmailSendHandler(BlockHandler):
    block_type = "email.send"

    def __init__(self, connector: EmailConnector) -> None:
        self._email = connector

    async def run(self, config: EmailSendConfig, context, tenant_id, actor_id) -> Outcome:
        to = parse_recipients(resolve(config.email_to, context))
        if not to:
            raise ValueError("At least one recipient is required")
        cc = parse_recipients(resolve(config.email_cc, context)) if config.email_cc else []
        bcc = parse_recipients(resolve(config.email_bcc, context)) if config.email_bcc else []
        subject = stringify(resolve(config.email_subject, context))
        body = stringify(resolve(config.email_body, context))
        sender = stringify(resolve(config.email_from, context)) if config.email_from else None

        message = self._email.build_message(
            to, subject, body, sender=sender, cc=cc, bcc=bcc, html=config.email_body_type == "html"
        )
        sent = await self._email.send(message)
        return Outcome(
            success=True,
            message=f"Email sent to {', '.join(to)}",
            context_patch={
                "emailSendResult": {
                    "success": True,
                    "messageId": sent["messageId"],
                    "to": to,
                    "subject": subject,
                    "sentAt": utcnow_iso(),
                },
            },
        )


# ── ai.summarize ────────────────────────────────────────────────


def find_file(context: dict[str, Any], file_variable: str) -> dict[str, Any] | None:
    """Look up file data by variable name, then the first dropped file, then by element id."""
    candidate = context.get(file_variable)
    if isinstance(candidate, dict):
        return candidate
    drop = context.get("dropResult")
    if isinstance(drop, dict) and drop.get("files"):
        return drop["files"][0]
    for value in context.values():
        if isinstance(value, dict) and file_variable in (value.get("elementId"), value.get("id")):
            return value
    return None


class SummarizeHandler(BlockHandler):
    block_type = "ai.summarize"

    def __init__(self, client: SummaryClient, http: HttpConnector) -> None:
        self._client = client
        self._http = http

    async def _file_text(self, file: dict[str, Any]) -> str:
        for key in ("text", "content"):
            if isinstance(file.get(key), str) and file[key].strip():
                return file[key]
        if file.get("url"):
            response = await self._http.request("GET", str(file["url"]))
            if not response["success"]:
                raise ValueError(f"Could not fetch file: HTTP {response['statusCode']}")
            return stringify(response["data"])
        raise ValueError("File has no text content or URL to summarise")

    async def run(self, config: SummarizeConfig, context, tenant_id, actor_id) -> Outcome:
        if not config.file_variable:
            raise ValueError("File upload element is required for AI summarization")
        file = find_file(context, config.file_variable)
        if file is None:
            raise ValueError(
                f'File data not found for element "{config.file_variable}". '
                "Make sure a file is uploaded first."
            )

        text = await self._file_text(file)
        result = await self._client.summarize(
            text,
            api_key=resolve(config.api_key, context) if config.api_key else None,
            instructions=resolve(config.prompt, context) if config.prompt else None,
            max_words=config.max_length,
        )
        summary = result["text"]
        return Outcome(
            success=True,
            message=f"Summarised {len(text)} characters into {len(summary)}",
            context_patch={
                config.output_variable: summary,
                "aiSummaryMetadata": {
                    "originalLength": len(text),
                    "summaryLength": len(summary),
                    "compressionRatio": round(1 - len(summary) / len(text), 4),
                    "fileName": file.get("name") or file.get("filename") or file.get("originalName"),
                    "fileSize": file.get("size"),
                    "chunks": result.get("chunks", 1),
                    "model": result.get("model"),
                },
            },
        )
