"""Text summarisation connector (OpenAI-compatible chat completions API).

Circuit breaker: after ``_CIRCUIT_THRESHOLD`` consecutive failures the client
short-circuits with ``SummaryCallError`` until ``_CIRCUIT_RESET_SECONDS`` have
elapsed.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

import httpx

from blockflow.config import settings

logger = logging.getLogger("blockflow.connectors.summary")

CHUNK_OVERLAP_CHARS = 500

_SYSTEM_PROMPT = (
    "You are an expert in document analysis and summarization. "
    "Provide a clear, concise and accurate summary of the document. "
    "Focus on key points, main arguments and important conclusions."
)

# ── Circuit breaker state (process-scoped) ──────────────────────
_consecutive_failures: int = 0
_circuit_open_at: datetime | None = None
_CIRCUIT_THRESHOLD: int = 5
_CIRCUIT_RESET_SECONDS: int = 300


class SummaryCallError(Exception):
    pass


def _check_circuit() -> None:
    global _circuit_open_at
    if _circuit_open_at is None:
        return
    elapsed = (datetime.now(timezone.utc) - _circuit_open_at).total_seconds()
    if elapsed < _CIRCUIT_RESET_SECONDS:
        raise SummaryCallError(
            f"Summary circuit breaker open (failed {_CIRCUIT_THRESHOLD}x "
            f"consecutively; resets in {_CIRCUIT_RESET_SECONDS - int(elapsed)}s)"
        )
    _circuit_open_at = None


def _record_success() -> None:
    global _consecutive_failures, _circuit_open_at
    _consecutive_failures = 0
    _circuit_open_at = None


def _record_failure() -> None:
    global _consecutive_failures, _circuit_open_at
    _consecutive_failures += 1
    if _consecutive_failures >= _CIRCUIT_THRESHOLD:
        _circuit_open_at = datetime.now(timezone.utc)
        logger.warning("Summary circuit breaker OPENED after %d consecutive failures", _consecutive_failures)


def reset_circuit_breaker() -> None:
    """Reset breaker state (tests)."""
    global _consecutive_failures, _circuit_open_at
    _consecutive_failures = 0
    _circuit_open_at = None


def split_into_chunks(text: str, chunk_size: int, overlap: int = CHUNK_OVERLAP_CHARS) -> list[str]:
    if len(text) <= chunk_size:
        return [text]
    step = max(chunk_size - overlap, 1)
    return [text[i:i + chunk_size] for i in range(0, len(text), step) if text[i:i + chunk_size].strip()]


class SummaryClient:
    """Summarises text; long documents are summarised per chunk, then combined."""

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        model: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = (base_url or settings.SUMMARY_BASE_URL).rstrip("/")
        self.api_key = api_key or settings.SUMMARY_API_KEY
        self.model = model or settings.SUMMARY_MODEL
        self.timeout = settings.SUMMARY_TIMEOUT_SECONDS
        self._transport = transport

    async def _complete(self, prompt: str, api_key: str) -> dict[str, Any]:
        _check_circuit()
        headers = {"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"}
        body = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": _SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            "temperature": 0.3,
        }
        url = f"{self.base_url}/chat/completions"
        logger.info("Summary call: model=%s url=%s", self.model, url)
        try:
            async with httpx.AsyncClient(
                timeout=self.timeout, headers=headers, transport=self._transport
            ) as client:
                resp = await client.post(url, json=body)
                resp.raise_for_status()
                data = resp.json()
        except httpx.HTTPStatusError as exc:
            _record_failure()
            if exc.response.status_code == 401:
                raise SummaryCallError("Invalid summary API key") from exc
            if exc.response.status_code == 429:
                raise SummaryCallError("Rate limit exceeded. Please try again later.") from exc
            raise SummaryCallError(f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            _record_failure()
            raise SummaryCallError(str(exc) or exc.__class__.__name__) from exc

        choices = data.get("choices") or []
        text = (choices[0].get("message") or {}).get("content", "") if choices else ""
        if not text:
            _record_failure()
            raise SummaryCallError("Empty response from summary endpoint")
        _record_success()
        return {"text": text, "usage": data.get("usage") or {}, "model": data.get("model", self.model)}

    async def summarize(
        self,
        text: str,
        api_key: str | None = None,
        instructions: str | None = None,
        max_words: int | None = None,
    ) -> dict[str, Any]:
        key = api_key or self.api_key
        if not key:
            raise SummaryCallError("Summary API key is not configured")
        if not text or not text.strip():
            raise SummaryCallError("No text content to summarise")

        guidance = instructions or "Summarise the following document."
        if max_words:
            guidance += f" Keep the summary under {max_words} words."

        chunks = split_into_chunks(text, settings.SUMMARY_MAX_INPUT_CHARS)
        if len(chunks) == 1:
            result = await self._complete(f"{guidance}\n\n{text}", key)
            return {**result, "chunks": 1}

        partials = []
        for index, chunk in enumerate(chunks, start=1):
            part = await self._complete(
                f"Summarise part {index} of {len(chunks)} of a longer document.\n\n{chunk}", key
            )
            partials.append(part["text"])
        combined = "\n\n".join(partials)
        result = await self._complete(
            f"{guidance} The text below is a set of partial summaries of one document; "
            f"combine them into a single coherent summary.\n\n{combined}",
            key,
        )
        return {**result, "chunks": len(chunks)}
