from __future__ import annotations

import html
import logging
import re
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any
from urllib.parse import urlparse

import feedparser
import httpx
import tldextract

from .config import get_settings
from .models import CATEGORIES, UNKNOWN, RawArticle

logger = logging.getLogger(__name__)

GNEWS_BASE_URL = "https://gnews.io/api/v4"
NEWSDATA_URL = "https://newsdata.io/api/1/news"
GOOGLE_NEWS_RSS_URL = "https://news.google.com/rss"

GNEWS_CATEGORY_MAP = {
    "Technology": "technology",
    "Science": "science",
    "Health": "health",
    "Business": "business",
    "Entertainment": "entertainment",
    "Sports": "sports",
    "Politics": "nation",
    "Environment": "world",
}

_TAG_RE = re.compile(r"<[^>]+>")
_PAYWALL_MARKERS = ("ONLY AVAILABLE IN PAID PLANS", "ONLY AVAILABLE IN PROFESSIONAL")


def describe_error(exc: BaseException) -> str:
    """Short error description that never echoes request URLs (they carry API keys)."""
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    return type(exc).__name__ if isinstance(exc, httpx.HTTPError) else str(exc)


def source_from_url(url: str) -> str:
    parsed = tldextract.extract(url)
    if parsed.domain and parsed.suffix:
        return f"{parsed.domain}.{parsed.suffix}".lower()
    return urlparse(url).netloc or UNKNOWN


def parse_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def parse_rfc_datetime(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def strip_html(value: str | None) -> str:
    if not value:
        return ""
    return " ".join(html.unescape(_TAG_RE.sub(" ", value)).split())


def split_hint(hint: str | None) -> tuple[str | None, str | None]:
    """Split a free-form hint into (category, country code)."""
    if not hint or hint == "All":
        return None, None
    if hint in CATEGORIES:
        return hint, None
    if len(hint) == 2 and hint.isalpha():
        return None, hint.lower()
    return None, None


class ProviderAdapter(ABC):
    """Best-effort fetcher for one upstream news provider.

    ``fetch`` never raises: transport, status and payload problems are logged
    and produce an empty list so one failing provider cannot block the rest.
    """

    name: str = "provider"

    def __init__(self, *, timeout: float | None = None, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._timeout = timeout or get_settings().http_timeout
        self._transport = transport

    async def fetch(self, query: str | None = None, hint: str | None = None, limit: int = 10) -> list[RawArticle]:
        limit = max(1, limit)
        try:
            articles = await self._fetch(query, hint, limit)
        except Exception as exc:  # noqa: BLE001 - providers are isolated
            logger.warning("%s fetch failed: %s", self.name, describe_error(exc))
            return []
        logger.info("%s returned %d articles", self.name, len(articles))
        return articles[:limit]

    @abstractmethod
    async def _fetch(self, query: str | None, hint: str | None, limit: int) -> list[RawArticle]:
        """Provider-specific request and normalisation."""

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self._timeout, transport=self._transport, follow_redirects=True)


class GNewsAdapter(ProviderAdapter):
    """GNews headline search API (``/search`` with a query, ``/top-headlines`` without)."""

    name = "gnews"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        language: str = "en",
        country: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self._api_key = api_key if api_key is not None else get_settings().gnews_api_key
        self._language = language
        self._country = country

    async def _fetch(self, query: str | None, hint: str | None, limit: int) -> list[RawArticle]:
        if not self._api_key:
            return []
        category, country = split_hint(hint)
        params: dict[str, Any] = {"lang": self._language, "max": limit, "apikey": self._api_key}
        if query:
            endpoint = f"{GNEWS_BASE_URL}/search"
            params["q"] = query
        else:
            endpoint = f"{GNEWS_BASE_URL}/top-headlines"
            if category:
                params["category"] = GNEWS_CATEGORY_MAP.get(category, "general")
        if country or self._country:
            params["country"] = country or self._country

        async with self._client() as client:
            response = await client.get(endpoint, params=params)
            response.raise_for_status()
            payload = response.json()
        return [self._normalize(item) for item in payload.get("articles", []) if item.get("url")]

    @staticmethod
    def _normalize(item: dict[str, Any]) -> RawArticle:
        source = item.get("source") or {}
        description = item.get("description") or ""
        return RawArticle(
            title=item.get("title") or "",
            description=description,
            content=item.get("content") or description,
            url=item["url"],
            image_url=item.get("image") or "",
            published_at=parse_datetime(item.get("publishedAt")),
            source=source.get("name") or source_from_url(item["url"]),
        )


class NewsDataAdapter(ProviderAdapter):
    """newsdata.io ``/api/1/news`` aggregation API."""

    name = "newsdata"

    def __init__(
        self,
        *,
        api_key: str | None = None,
        language: str = "en",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self._api_key = api_key if api_key is not None else get_settings().newsdata_api_key
        self._language = language

    async def _fetch(self, query: str | None, hint: str | None, limit: int) -> list[RawArticle]:
        if not self._api_key:
            return []
        category, country = split_hint(hint)
        params: dict[str, Any] = {"apikey": self._api_key, "language": self._language, "size": min(limit, 10)}
        if query:
            params["q"] = query
        if category:
            params["category"] = category.lower()
        if country:
            params["country"] = country

        async with self._client() as client:
            response = await client.get(NEWSDATA_URL, params=params)
            response.raise_for_status()
            payload = response.json()
        if payload.get("status") not in (None, "success"):
            raise ValueError(f"newsdata status {payload.get('status')}")
        return [self._normalize(item) for item in payload.get("results") or [] if item.get("link")]

    @staticmethod
    def _normalize(item: dict[str, Any]) -> RawArticle:
        description = item.get("description") or ""
        content = item.get("content") or ""
        if any(marker in content for marker in _PAYWALL_MARKERS):
            content = ""
        return RawArticle(
            title=item.get("title") or "",
            description=description,
            content=content or description,
            url=item["link"],
            image_url=item.get("image_url") or "",
            # pubDate is "YYYY-MM-DD HH:MM:SS" in UTC
            published_at=parse_datetime(item.get("pubDate")),
            source=item.get("source_name") or item.get("source_id") or source_from_url(item["link"]),
        )


class GoogleNewsRSSAdapter(ProviderAdapter):
    """Google News RSS feed; needs no key, used as the fallback provider."""

    name = "google-rss"

    def __init__(
        self,
        *,
        language: str = "en-US",
        region: str = "US",
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(timeout=timeout, transport=transport)
        self._language = language
        self._region = region

    async def _fetch(self, query: str | None, hint: str | None, limit: int) -> list[RawArticle]:
        params = {"hl": self._language, "gl": self._region, "ceid": f"{self._region}:{self._language.split('-')[0]}"}
        url = GOOGLE_NEWS_RSS_URL
        if query:
            url = f"{GOOGLE_NEWS_RSS_URL}/search"
            params["q"] = query

        async with self._client() as client:
            response = await client.get(url, params=params)
            response.raise_for_status()
            feed = feedparser.parse(response.content)

        if getattr(feed, "bozo", False):
            logger.debug("Feed 'bozo' flagged for google-rss: %s", getattr(feed, "bozo_exception", None))

        articles: list[RawArticle] = []
        for entry in getattr(feed, "entries", [])[:limit]:
            link = entry.get("link")
            if not link:
                continue
            articles.append(self._normalize(entry, link))
        return articles

    @staticmethod
    def _normalize(entry: Any, link: str) -> RawArticle:
        title = entry.get("title") or ""
        source_info = entry.get("source") or {}
        source = source_info.get("title") if isinstance(source_info, dict) else None
        # Google appends " - Publisher" to every headline
        if source and title.endswith(f" - {source}"):
            title = title[: -len(f" - {source}")]
        summary = strip_html(entry.get("summary"))
        return RawArticle(
            title=title,
            description=summary,
            content=summary,
            url=link,
            published_at=parse_rfc_datetime(entry.get("published") or entry.get("updated")),
            source=source or source_from_url(link),
        )
