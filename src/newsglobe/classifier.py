from __future__ import annotations

import logging
from typing import Any

import httpx

from .config import get_settings
from .models import ClassifierJudgment

logger = logging.getLogger(__name__)

HF_INFERENCE_URL = "https://api-inference.huggingface.co/models"
MAX_INPUT_CHARS = 512


class ClassifierError(RuntimeError):
    """Raised when the real/fake classifier cannot produce a label."""


class FakeNewsClassifier:
    """Binary real/fake text classifier served by the Hugging Face inference API."""

    def __init__(
        self,
        *,
        api_key: str | None = None,
        model: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        settings = get_settings()
        self._api_key = api_key if api_key is not None else settings.hf_api_key
        self._model = model or settings.classifier_model
        self._timeout = timeout or settings.http_timeout
        self._transport = transport

    @property
    def configured(self) -> bool:
        return bool(self._api_key)

    async def classify(self, text: str) -> ClassifierJudgment:
        if not self._api_key:
            raise ClassifierError("HF_API_KEY not configured")
        url = f"{HF_INFERENCE_URL}/{self._model}"
        headers = {"Authorization": f"Bearer {self._api_key}"}
        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.post(url, headers=headers, json={"inputs": text[:MAX_INPUT_CHARS]})
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPStatusError as exc:
            raise ClassifierError(f"Classifier error: {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            raise ClassifierError(f"Classifier request failed: {type(exc).__name__}") from exc
        except ValueError as exc:
            raise ClassifierError("Classifier returned a non-JSON body") from exc
        return self._winning_label(payload)

    @staticmethod
    def _winning_label(payload: Any) -> ClassifierJudgment:
        # The API answers [[{label, score}, ...]] for a single input; some
        # deployments drop the outer list.
        scores = payload[0] if isinstance(payload, list) and payload and isinstance(payload[0], list) else payload
        if not isinstance(scores, list):
            raise ClassifierError(f"Unexpected classifier payload: {type(payload).__name__}")
        best: dict | None = None
        for entry in scores:
            if not isinstance(entry, dict) or "label" not in entry:
                continue
            try:
                score = float(entry.get("score", 0.0))
            except (TypeError, ValueError):
                continue
            if best is None or score > best["score"]:
                best = {"label": str(entry["label"]), "score": score}
        if best is None:
            raise ClassifierError("Classifier returned no labels")
        return ClassifierJudgment(label=best["label"], confidence=max(0.0, min(1.0, best["score"])))
