from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List

import httpx

from .config import get_settings
from .models import UNKNOWN, AnalyzedArticle, EnsembleResult, RawArticle
from .parsing import coerce_analysis
from .sources import describe_error, parse_datetime

logger = logging.getLogger(__name__)


class NewsApiError(RuntimeError):
    """Backend call failed (transport error or non-2xx status)."""


def normalize_article(item: Dict[str, Any], index: int = 0) -> AnalyzedArticle:
    """Build an AnalyzedArticle from a loosely-shaped backend row, filling UI defaults."""
    url = item.get("url") or item.get("sourceUrl") or ""
    description = item.get("description") or item.get("summary") or ""
    raw = RawArticle(
        title=item.get("title") or item.get("headline") or "",
        description=description,
        content=item.get("content") or item.get("fullText") or description,
        url=url,
        image_url=item.get("imageUrl") or item.get("image") or "",
        published_at=parse_datetime(item.get("publishedAt") or item.get("timestamp")) or datetime.now(timezone.utc),
        source=item.get("source") if isinstance(item.get("source"), str) and item.get("source") else UNKNOWN,
    )
    article_id = item.get("id") or f"article-{index}-{int(datetime.now(timezone.utc).timestamp() * 1000)}"
    return AnalyzedArticle.build(str(article_id), raw, coerce_analysis(item, raw))


class NewsApiClient:
    """httpx client for the fetch-news and analyze-article endpoints."""

    def __init__(
        self,
        base_url: str,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._timeout = timeout or get_settings().http_timeout
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
            headers["apikey"] = self._api_key
        return headers

    async def _post(self, path: str, body: Dict[str, Any]) -> Dict[str, Any]:
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                response = await client.post(path, json=body, headers=self._headers())
                response.raise_for_status()
                return response.json()
        except (httpx.HTTPError, ValueError) as exc:
            raise NewsApiError(f"{path} failed: {describe_error(exc)}") from exc

    async def fetch_news(
        self, query: str | None = None, max: int = 25, force_refresh: bool = False
    ) -> List[AnalyzedArticle]:
        data = await self._post("/fetch-news", {"query": query or None, "max": max, "forceRefresh": force_refresh})
        items = data.get("articles") or []
        logger.info(
            "Received %d articles (source: %s, cached: %s)", len(items), data.get("source"), data.get("cached")
        )
        return [normalize_article(item, index) for index, item in enumerate(items) if isinstance(item, dict)]

    async def analyze_credibility(self, article: RawArticle) -> EnsembleResult:
        data = await self._post(
            "/analyze-article",
            {
                "kind": "credibility",
                "title": article.title,
                "description": article.description,
                "content": article.content,
            },
        )
        return EnsembleResult.model_validate(data)
