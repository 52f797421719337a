"""
In-process mirror of the news cache for UI consumers.

Category filtering and searching terms already present in the loaded set
never touch the network; only a forced reload, an expired entry or a search
for an unseen term calls the backend.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Literal, Optional, Protocol

from .cache import Clock, content_hash, utcnow
from .config import get_settings
from .models import AnalyzedArticle

logger = logging.getLogger(__name__)

ALL_KEY = "__all__"

MirrorStatus = Literal["fresh", "cached", "unchanged", "stale", "empty"]

_EVERY_SCOPE = object()


class NewsBackend(Protocol):
    async def fetch_news(
        self, query: str | None = None, max: int = 25, force_refresh: bool = False
    ) -> List[AnalyzedArticle]: ...


@dataclass
class MirrorEntry:
    articles: List[AnalyzedArticle]
    timestamp: datetime
    category: Optional[str]
    content_hash: str


@dataclass
class MirrorSnapshot:
    articles: List[AnalyzedArticle] = field(default_factory=list)
    status: MirrorStatus = "empty"


class MirrorCache:
    def __init__(self, ttl: timedelta | None = None, clock: Clock | None = None) -> None:
        self.ttl = ttl or timedelta(minutes=get_settings().client_cache_ttl_minutes)
        self._clock = clock or utcnow
        self._entries: Dict[str, MirrorEntry] = {}

    @staticmethod
    def _key(category: str | None) -> str:
        return category or ALL_KEY

    def get(self, category: str | None = None) -> List[AnalyzedArticle] | None:
        key = self._key(category)
        entry = self._entries.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp > self.ttl:
            del self._entries[key]
            return None
        return entry.articles

    def set(self, category: str | None, articles: List[AnalyzedArticle], hash_value: str) -> None:
        self._entries[self._key(category)] = MirrorEntry(
            articles=list(articles),
            timestamp=self._clock(),
            category=category,
            content_hash=hash_value,
        )

    def get_entry(self, category: str | None = None) -> MirrorEntry | None:
        return self._entries.get(self._key(category))

    def clear(self, category=_EVERY_SCOPE) -> None:
        """Clear one scope (``None`` is the all-news scope) or, with no argument, everything."""
        if category is _EVERY_SCOPE:
            self._entries.clear()
        else:
            self._entries.pop(self._key(category), None)

    def age(self, category: str | None = None) -> timedelta | None:
        entry = self._entries.get(self._key(category))
        return None if entry is None else self._clock() - entry.timestamp


class NewsMirror:
    def __init__(self, backend: NewsBackend, cache: MirrorCache | None = None, *, max_articles: int = 25) -> None:
        self._backend = backend
        self.cache = cache or MirrorCache()
        self._max_articles = max_articles
        self.articles: List[AnalyzedArticle] = []

    async def load(self, force: bool = False) -> MirrorSnapshot:
        if not force:
            cached = self.cache.get(None)
            if cached:
                return self._show(cached, "cached")

        try:
            data = await self._backend.fetch_news(None, self._max_articles, force)
        except Exception as exc:  # noqa: BLE001 - backend failure is served from cache
            logger.warning("News load failed: %s", exc)
            return self._serve_stale()
        if not data:
            return self._serve_stale()

        new_hash = content_hash(article.title for article in data)
        entry = self.cache.get_entry(None)
        if entry is not None and entry.content_hash == new_hash:
            logger.info("News unchanged since %s", entry.timestamp.isoformat())
            return self._show(entry.articles, "unchanged")

        self.cache.set(None, data, new_hash)
        return self._show(data, "fresh")

    async def refresh(self) -> MirrorSnapshot:
        self.cache.clear(None)
        return await self.load(force=True)

    def filter_by_category(self, category: str | None) -> List[AnalyzedArticle]:
        if not category or category == "All":
            return list(self.articles)
        return [article for article in self.articles if article.category == category]

    def find_local(self, query: str) -> List[AnalyzedArticle]:
        term = query.strip().lower()
        if not term:
            return []
        return [
            article
            for article in self.articles
            if term in article.location.city.lower()
            or term in article.location.country.lower()
            or term in article.title.lower()
        ]

    async def search(self, query: str) -> List[AnalyzedArticle]:
        """Local matches when any exist; otherwise fetch and merge new headlines."""
        if not query.strip():
            return []
        local = self.find_local(query)
        if local:
            return local

        try:
            data = await self._backend.fetch_news(query, self._max_articles, False)
        except Exception as exc:  # noqa: BLE001
            logger.warning("Search for %r failed: %s", query, exc)
            return []
        known = {article.title for article in self.articles}
        self.articles = self.articles + [article for article in data if article.title not in known]
        return data

    def _serve_stale(self) -> MirrorSnapshot:
        entry = self.cache.get_entry(None)
        if entry is not None and entry.articles:
            return self._show(entry.articles, "stale")
        return MirrorSnapshot([], "empty")

    def _show(self, articles: List[AnalyzedArticle], status: MirrorStatus) -> MirrorSnapshot:
        self.articles = list(articles)
        return MirrorSnapshot(list(articles), status)
