"""
Staleness-aware cache of analysed article sets.

Each scope ("all", "category:<name>", "query:<terms>") points at the latest
snapshot. Writes never touch a live snapshot: a new snapshot is stored under
a fresh key and the scope pointer is flipped afterwards, so readers see
either the old entry or the new one, never a half-written one. The replaced
snapshot is deleted once the pointer has moved.

The content hash covers sorted headlines only. A story whose body or score
changes under an unchanged headline is reported as unchanged.
"""

from __future__ import annotations

import hashlib
import logging
import uuid
from collections.abc import Callable, Iterable, Sequence
from datetime import datetime, timedelta, timezone

from .models import AnalyzedArticle, CacheEntry, FetchLogRecord
from .storage import StorageManager

logger = logging.getLogger(__name__)

SCOPE_ALL = "all"
FETCH_LOG_KEY = "news:fetch-log"

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def scope_key(query: str | None = None, category: str | None = None) -> str:
    if query and query.strip():
        return "query:" + " ".join(query.lower().split())
    if category:
        return f"category:{category}"
    return SCOPE_ALL


def content_hash(titles: Iterable[str]) -> str:
    joined = "|".join(sorted(titles))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]


class NewsCache:
    def __init__(
        self,
        storage: StorageManager,
        *,
        ttl: timedelta = timedelta(hours=12),
        retention_factor: int = 4,
        clock: Clock | None = None,
    ) -> None:
        self._storage = storage
        self.ttl = ttl
        # Snapshots outlive the freshness window so a failed refresh can
        # still fall back to the last good entry.
        self._retention = int(ttl.total_seconds() * max(1, retention_factor))
        self._clock = clock or utcnow
        self._known_scopes: set[str] = {SCOPE_ALL}

    @staticmethod
    def _latest_key(scope: str) -> str:
        return f"news:{scope}:latest"

    @staticmethod
    def _snapshot_key(snapshot_id: str) -> str:
        return f"news:snapshot:{snapshot_id}"

    def is_fresh(self, entry: CacheEntry, now: datetime | None = None) -> bool:
        age = (now or self._clock()) - entry.fetched_at
        return age <= self.ttl

    async def get_entry(self, scope: str) -> CacheEntry | None:
        """Latest entry for ``scope`` regardless of age."""
        try:
            snapshot_id = await self._storage.get(self._latest_key(scope))
            if not snapshot_id:
                return None
            data = await self._storage.get(self._snapshot_key(snapshot_id))
            if not data:
                return None
            return CacheEntry.model_validate(data)
        except Exception as exc:  # noqa: BLE001 - persistence errors are cache misses
            logger.warning("Cache read failed for scope %s: %s", scope, exc)
            return None

    async def get_fresh_entry(self, scope: str) -> CacheEntry | None:
        entry = await self.get_entry(scope)
        if entry is None:
            return None
        if not self.is_fresh(entry):
            logger.info("Cache entry for %s is stale (fetched %s)", scope, entry.fetched_at.isoformat())
            return None
        return entry

    async def get_cached(self, scope: str) -> list[AnalyzedArticle] | None:
        entry = await self.get_fresh_entry(scope)
        return entry.articles if entry else None

    async def set(self, scope: str, articles: Sequence[AnalyzedArticle], hash_value: str) -> CacheEntry:
        entry = CacheEntry(
            scope=scope,
            articles=list(articles),
            fetched_at=self._clock(),
            content_hash=hash_value,
        )
        snapshot_id = uuid.uuid4().hex
        try:
            previous_id = await self._storage.get(self._latest_key(scope))
            await self._storage.set(
                self._snapshot_key(snapshot_id),
                entry.model_dump(mode="json", by_alias=True),
                ttl=self._retention,
            )
            for article in entry.articles:
                await self._storage.set(
                    f"article:{article.id}",
                    article.model_dump(mode="json", by_alias=True),
                    ttl=self._retention,
                )
            await self._storage.set(self._latest_key(scope), snapshot_id)
            if previous_id and previous_id != snapshot_id:
                await self._storage.delete(self._snapshot_key(previous_id))
            self._known_scopes.add(scope)
            await self._storage.append(
                FETCH_LOG_KEY,
                FetchLogRecord(
                    scope=scope, fetched_at=entry.fetched_at, count=len(entry.articles)
                ).model_dump(mode="json", by_alias=True),
            )
        except Exception as exc:  # noqa: BLE001 - a failed write leaves the old pointer in place
            logger.error("Cache write failed for scope %s: %s", scope, exc)
        else:
            logger.info("Cached %d articles for scope %s", len(entry.articles), scope)
        return entry

    async def invalidate(self, scope: str) -> None:
        try:
            await self._storage.delete(self._latest_key(scope))
        except Exception as exc:  # noqa: BLE001
            logger.warning("Cache invalidate failed for scope %s: %s", scope, exc)

    async def clear(self, scope: str | None = None) -> None:
        """Drop the pointer for one scope, or for every scope this cache has written."""
        scopes = [scope] if scope is not None else sorted(self._known_scopes)
        for name in scopes:
            await self.invalidate(name)

    async def get_article(self, article_id: str) -> AnalyzedArticle | None:
        try:
            data = await self._storage.get(f"article:{article_id}")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Article lookup failed for %s: %s", article_id, exc)
            return None
        return AnalyzedArticle.model_validate(data) if data else None

    async def fetch_log(self, scope: str | None = None) -> list[FetchLogRecord]:
        try:
            records = [FetchLogRecord.model_validate(item) for item in await self._storage.get_list(FETCH_LOG_KEY)]
        except Exception as exc:  # noqa: BLE001
            logger.warning("Fetch log read failed: %s", exc)
            return []
        if scope is not None:
            records = [record for record in records if record.scope == scope]
        return records

    async def hours_since_last_fetch(self, scope: str | None = None) -> float | None:
        records = await self.fetch_log(scope)
        if not records:
            return None
        last = max(record.fetched_at for record in records)
        return (self._clock() - last).total_seconds() / 3600
