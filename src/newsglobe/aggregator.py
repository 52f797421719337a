from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

from .models import RawArticle
from .sources import ProviderAdapter

logger = logging.getLogger(__name__)

NO_SOURCE = "none"


def canonical_url(url: str) -> str:
    """Dedup key: lowercase scheme/host, no fragment, no utm_* params, no trailing slash."""
    parts = urlsplit(url.strip())
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith("utm_")
    ]
    return urlunsplit(
        (parts.scheme.lower(), parts.netloc.lower(), parts.path.rstrip("/"), urlencode(query), "")
    )


@dataclass
class AggregationResult:
    articles: list[RawArticle]
    source_label: str = NO_SOURCE
    per_provider_counts: dict[str, int] = field(default_factory=dict)


class NewsAggregator:
    """Fan out to every provider, then merge in priority order with first-seen dedup.

    The first provider is the primary. When it comes back empty the fallback
    provider (if any) gets exactly one call before the aggregator gives up.
    """

    def __init__(self, providers: Sequence[ProviderAdapter], fallback: ProviderAdapter | None = None) -> None:
        if not providers:
            raise ValueError("NewsAggregator needs at least one provider")
        self._providers = list(providers)
        self._fallback = fallback

    @property
    def primary(self) -> ProviderAdapter:
        return self._providers[0]

    async def gather(self, query: str | None = None, limit: int = 25, hint: str | None = None) -> AggregationResult:
        results = await asyncio.gather(
            *(provider.fetch(query, hint, limit) for provider in self._providers),
            return_exceptions=True,
        )
        batches: list[tuple[str, list[RawArticle]]] = []
        for provider, result in zip(self._providers, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning("Provider %s raised: %s", provider.name, result)
                result = []
            batches.append((provider.name, result))

        if not batches[0][1] and self._fallback is not None:
            logger.info("Primary provider %s returned nothing; calling %s", self.primary.name, self._fallback.name)
            batches.append((self._fallback.name, await self._fallback.fetch(query, hint, limit)))

        merged: list[tuple[str, RawArticle]] = []
        seen: set[str] = set()
        for name, items in batches:
            for article in items:
                if not article.url:
                    continue
                key = canonical_url(article.url)
                if key in seen:
                    continue
                seen.add(key)
                merged.append((name, article))
        merged = merged[:limit]

        contributors = list(dict.fromkeys(name for name, _ in merged))
        counts = {name: len(items) for name, items in batches}
        label = "+".join(contributors) if contributors else NO_SOURCE
        logger.info("Aggregated %d articles from %s (raw counts %s)", len(merged), label, counts)
        return AggregationResult(
            articles=[article for _, article in merged],
            source_label=label,
            per_provider_counts=counts,
        )
