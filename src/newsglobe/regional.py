"""
Per-state news digest.

One headline per state, refreshed at most once per digest window. Search
groups are queried against GNews a few at a time with a short pause between
rounds to stay under the provider's rate limit. The finished digest is stored
whole under a fresh key before the pointer is moved.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta

from data_loader import RegionalConfig

from .cache import Clock, utcnow
from .models import RawArticle, StateNews, WireModel
from .sources import GNewsAdapter, ProviderAdapter
from .storage import StorageManager

logger = logging.getLogger(__name__)

DIGEST_POINTER_KEY = "digest:states:latest"
MIN_DIGEST_ENTRIES = 10
GROUPS_PER_ROUND = 5
ROUND_PAUSE_SECONDS = 0.2
ARTICLES_PER_GROUP = 3


class StateDigest(WireModel):
    entries: list[StateNews]
    fetched_at: datetime


class RegionalDigestBuilder:
    def __init__(
        self,
        storage: StorageManager,
        regional: RegionalConfig,
        gnews: GNewsAdapter | None = None,
        *,
        ttl: timedelta = timedelta(hours=24),
        clock: Clock | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._storage = storage
        self._regional = regional
        self._gnews = gnews or GNewsAdapter(country=regional.country)
        self.ttl = ttl
        self._clock = clock or utcnow
        self._sleep = sleep

    async def load(self) -> StateDigest | None:
        """Stored digest regardless of age."""
        try:
            snapshot_key = await self._storage.get(DIGEST_POINTER_KEY)
            data = await self._storage.get(snapshot_key) if snapshot_key else None
            return StateDigest.model_validate(data) if data else None
        except Exception as exc:  # noqa: BLE001 - treated as no digest
            logger.warning("State digest read failed: %s", exc)
            return None

    def is_usable(self, digest: StateDigest | None) -> bool:
        if digest is None or len(digest.entries) <= MIN_DIGEST_ENTRIES:
            return False
        return self._clock() - digest.fetched_at <= self.ttl

    async def current(self) -> StateDigest | None:
        digest = await self.load()
        return digest if self.is_usable(digest) else None

    async def build(self, force: bool = False) -> tuple[list[StateNews], bool]:
        """Return ``(entries, cached)``, rebuilding the digest when needed."""
        if not force:
            digest = await self.current()
            if digest is not None:
                logger.info("Serving cached state digest (%d states)", len(digest.entries))
                return digest.entries, True

        entries = await self._collect()
        if entries:
            await self._store(entries)
        else:
            logger.warning("State digest refresh produced no entries")
        return entries, False

    async def _collect(self) -> list[StateNews]:
        groups = self._regional.groups
        by_state: dict[str, StateNews] = {}
        for start in range(0, len(groups), GROUPS_PER_ROUND):
            batch = groups[start : start + GROUPS_PER_ROUND]
            results = await asyncio.gather(
                *(self._gnews.fetch(group.query, limit=ARTICLES_PER_GROUP) for group in batch),
                return_exceptions=True,
            )
            for group, result in zip(batch, results):
                if isinstance(result, BaseException):
                    logger.warning("State group '%s' failed: %s", group.query, result)
                    continue
                for article in result:
                    state = self._regional.match_state(f"{article.title} {article.description}")
                    state = state or group.primary_state
                    # first article per state wins
                    if state not in by_state:
                        by_state[state] = self._to_state_news(state, article)
            if start + GROUPS_PER_ROUND < len(groups):
                await self._sleep(ROUND_PAUSE_SECONDS)
        logger.info("Collected state digest for %d states", len(by_state))
        return list(by_state.values())

    def _to_state_news(self, state: str, article: RawArticle) -> StateNews:
        return StateNews(
            state=state,
            title=article.title,
            description=article.description,
            url=article.url,
            image_url=article.image_url,
            source=article.source,
            published_at=article.published_at or self._clock(),
        )

    async def _store(self, entries: list[StateNews]) -> None:
        digest = StateDigest(entries=entries, fetched_at=self._clock())
        snapshot_key = f"digest:states:{uuid.uuid4().hex}"
        retention = int(self.ttl.total_seconds() * 2)
        try:
            await self._storage.set(snapshot_key, digest.model_dump(mode="json", by_alias=True), ttl=retention)
            await self._storage.set(DIGEST_POINTER_KEY, snapshot_key, ttl=retention)
        except Exception as exc:  # noqa: BLE001
            logger.error("Could not store state digest: %s", exc)


class RegionalDigestAdapter(ProviderAdapter):
    """Serves the stored state digest as articles tagged with their region."""

    name = "regional"

    def __init__(self, builder: RegionalDigestBuilder, *, timeout: float | None = None) -> None:
        super().__init__(timeout=timeout)
        self._builder = builder

    async def _fetch(self, query: str | None, hint: str | None, limit: int) -> list[RawArticle]:
        digest = await self._builder.current()
        if digest is None:
            return []
        entries = digest.entries
        if hint:
            entries = [entry for entry in entries if entry.state.lower() == hint.lower()]
        if query:
            terms = query.lower().split()
            entries = [
                entry
                for entry in entries
                if all(term in f"{entry.state} {entry.title} {entry.description}".lower() for term in terms)
            ]
        return [
            RawArticle(
                title=entry.title,
                description=entry.description,
                content=entry.description,
                url=entry.url,
                image_url=entry.image_url,
                published_at=entry.published_at,
                source=entry.source,
                region=entry.state,
            )
            for entry in entries
            if entry.url
        ]
