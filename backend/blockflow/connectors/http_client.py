"""Outbound HTTP connector for the http.request block.

Wraps ``httpx.AsyncClient`` with a private-network / sensitive-port block
and maps transport failures onto the error types surfaced to workflows.
"""

from __future__ import annotations

import ipaddress
import logging
import time
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlsplit

import httpx

from blockflow.config import settings

logger = logging.getLogger("blockflow.connectors.http")

MAX_RESPONSE_BYTES = 10 * 1024 * 1024

_BLOCKED_HOSTS = frozenset({
    "localhost",
    "127.0.0.1",
    "0.0.0.0",
    "::1",
    "169.254.169.254",  # cloud metadata
    "metadata.google.internal",
})
_BLOCKED_PORTS = frozenset({22, 23, 25, 3306, 5432, 6379, 27017})


class HttpRequestError(Exception):
    """error_type: TIMEOUT | DNS_ERROR | CONNECTION_REFUSED | HTTP_ERROR | BLOCKED | UNKNOWN_ERROR"""

    def __init__(self, error_type: str, message: str):
        self.error_type = error_type
        super().__init__(message)


def check_url_allowed(url: str, allow_private: bool | None = None) -> None:
    """Raise ``HttpRequestError('BLOCKED')`` for internal targets."""
    allow_private = settings.HTTP_ALLOW_PRIVATE_NETWORKS if allow_private is None else allow_private
    parts = urlsplit(url)
    if parts.scheme not in ("http", "https") or not parts.hostname:
        raise HttpRequestError("BLOCKED", "Invalid URL format")
    if allow_private:
        return

    host = parts.hostname.lower()
    if host in _BLOCKED_HOSTS:
        raise HttpRequestError("BLOCKED", "Access to localhost/internal IPs is not allowed")
    try:
        ip = ipaddress.ip_address(host)
    except ValueError:
        ip = None
    if ip is not None and (ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_unspecified):
        raise HttpRequestError("BLOCKED", "Access to private IP ranges is not allowed")
    try:
        port = parts.port
    except ValueError:
        raise HttpRequestError("BLOCKED", "Invalid URL port") from None
    if port in _BLOCKED_PORTS:
        raise HttpRequestError("BLOCKED", f"Access to port {port} is not allowed")


async def _guard_request(request: httpx.Request) -> None:
    # Runs for every hop, so redirects into internal networks are refused too.
    check_url_allowed(str(request.url))


def _decode_body(response: httpx.Response) -> Any:
    if "json" in response.headers.get("content-type", ""):
        try:
            return response.json()
        except ValueError:
            pass
    return response.text


class HttpConnector:
    """One request per call; ``transport`` lets tests plug in ``httpx.MockTransport``."""

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str] | None = None,
        json_body: Any = None,
        content: str | bytes | None = None,
        form: dict[str, Any] | None = None,
        timeout_ms: int | None = None,
        follow_redirects: bool = True,
        verify: bool = True,
    ) -> dict[str, Any]:
        check_url_allowed(url)
        timeout = (timeout_ms or settings.HTTP_DEFAULT_TIMEOUT_MS) / 1000.0
        sent_at = datetime.now(timezone.utc)
        started = time.monotonic()
        logger.info("HTTP %s %s", method, url)

        kwargs: dict[str, Any] = {"headers": headers or {}}
        if json_body is not None:
            kwargs["json"] = json_body
        elif form is not None:
            kwargs["data"] = form
        elif content is not None:
            kwargs["content"] = content

        try:
            async with httpx.AsyncClient(
                timeout=timeout,
                follow_redirects=follow_redirects,
                max_redirects=5,
                verify=verify,
                transport=self._transport,
                event_hooks={"request": [_guard_request]},
            ) as client:
                response = await client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise HttpRequestError("TIMEOUT", "Request timed out") from exc
        except httpx.ConnectError as exc:
            text = str(exc).lower()
            if "name or service" in text or "nodename" in text or "getaddrinfo" in text:
                raise HttpRequestError("DNS_ERROR", "Could not resolve hostname") from exc
            raise HttpRequestError("CONNECTION_REFUSED", "Connection refused by server") from exc
        except httpx.HTTPError as exc:
            raise HttpRequestError("UNKNOWN_ERROR", str(exc) or exc.__class__.__name__) from exc

        if len(response.content) > MAX_RESPONSE_BYTES:
            raise HttpRequestError("HTTP_ERROR", "Response exceeds 10MB limit")

        duration_ms = int((time.monotonic() - started) * 1000)
        return {
            "success": 200 <= response.status_code < 300,
            "statusCode": response.status_code,
            "statusText": response.reason_phrase,
            "headers": dict(response.headers),
            "data": _decode_body(response),
            "timing": {
                "requestSentAt": sent_at.isoformat(),
                "responseReceivedAt": datetime.now(timezone.utc).isoformat(),
                "duration": duration_ms,
            },
        }
