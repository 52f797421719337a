"""
Gemini text-generation adapter.
Wraps the generateContent REST endpoint behind a single async ``generate``
call. Every transport, status or payload problem is raised as ``LLMError`` so
callers can retry and then fall back to neutral defaults.
"""

from __future__ import annotations

import logging
from collections import deque
from typing import Any, Deque, Dict, List

import httpx

from .config import get_settings

logger = logging.getLogger(__name__)

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/models"


class LLMError(RuntimeError):
    """Raised when the generative model call fails or is not configured."""


class GeminiAdapter:
    """Async client for Gemini ``generateContent``."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        temperature: float = 0.3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.gemini_api_key
        self._model = model or settings.gemini_model
        self._timeout = timeout or settings.llm_timeout
        self._temperature = temperature
        self._transport = transport
        self._calls: Deque[Dict[str, Any]] = deque(maxlen=200)

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    @property
    def logs(self) -> List[Dict[str, Any]]:
        return list(self._calls)

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        if not self._api_key:
            raise LLMError("GEMINI_API_KEY not configured")
        url = f"{GEMINI_BASE_URL}/{self._model}:generateContent"
        payload = {
            "contents": [{"parts": [{"text": f"{system_prompt}\n\n{user_prompt}"}]}],
            "generationConfig": {"temperature": self._temperature},
        }
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, params={"key": self._api_key}, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            # The request URL carries the key; report the status only.
            self._log_call("error", status=exc.response.status_code)
            raise LLMError(f"Gemini API error: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            self._log_call("error", reason=type(exc).__name__)
            raise LLMError(f"Gemini request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            self._log_call("error", reason="invalid-json")
            raise LLMError("Gemini returned a non-JSON body") from exc

        text = self._extract_text(data)
        if not text:
            self._log_call("empty")
            raise LLMError("Gemini returned no text")
        self._log_call("ok", prompt=user_prompt[:200], output_len=len(text))
        return text

    @staticmethod
    def _extract_text(data: Any) -> str:
        if not isinstance(data, dict):
            return ""
        candidates = data.get("candidates") or []
        if not candidates:
            return ""
        parts = (candidates[0].get("content") or {}).get("parts") or []
        return "".join(part.get("text", "") for part in parts if isinstance(part, dict)).strip()

    def _log_call(self, event: str, **payload: Any) -> None:
        entry = {"event": event, "model": self._model, **payload}
        self._calls.append(entry)
        logger.debug("Gemini call: %s", entry)
