"""
Endpoint orchestration: aggregation -> analysis -> cache, plus on-demand analysis.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Union

from .aggregator import NO_SOURCE, NewsAggregator
from .batch_analyzer import BatchAnalysisClient
from .cache import NewsCache, content_hash, scope_key
from .ensemble import CredibilityEnsemble
from .llm_adapter import GeminiAdapter
from .models import (
    AnalyzedArticle,
    AnalyzeRequest,
    CredibilityRequest,
    EnsembleResult,
    FetchNewsRequest,
    FetchNewsResponse,
    FullAnalysisRequest,
    FullAnalysisResponse,
    RawArticle,
    StateNewsResponse,
    SummaryRequest,
    SummaryResponse,
)
from .parsing import parse_summary
from .regional import RegionalDigestBuilder
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

CACHE_SOURCE = "cache"

SUMMARY_PROMPT = """You are a news summarization AI. Return JSON with:
- summary: 2-sentence summary
- entities: array of {text: string, type: "person"|"place"|"organization"}

Return ONLY valid JSON, no markdown."""

AnalyzeResult = Union[EnsembleResult, FullAnalysisResponse, SummaryResponse]


def clamp_max(requested: int | None, ceiling: int) -> int:
    if requested is None or requested <= 0:
        return ceiling
    return min(requested, ceiling)


def _respond(
    articles: list[AnalyzedArticle],
    source: str,
    *,
    cached: bool = False,
    unchanged: bool = False,
    stale: bool = False,
) -> FetchNewsResponse:
    return FetchNewsResponse(
        total_articles=len(articles),
        articles=articles,
        source=source,
        cached=cached,
        unchanged=unchanged,
        stale=stale,
    )


class NewsService:
    def __init__(
        self,
        aggregator: NewsAggregator,
        analyzer: BatchAnalysisClient,
        cache: NewsCache,
        *,
        max_articles: int = 25,
        pipeline_timeout: float = 55.0,
    ) -> None:
        self._aggregator = aggregator
        self._analyzer = analyzer
        self.cache = cache
        self._max_articles = max_articles
        self._pipeline_timeout = pipeline_timeout

    async def fetch_news(self, request: FetchNewsRequest) -> FetchNewsResponse:
        limit = clamp_max(request.max, self._max_articles)
        scope = scope_key(request.query, request.category)

        if not request.force_refresh:
            entry = await self.cache.get_fresh_entry(scope)
            if entry is not None:
                logger.info("Serving %d cached articles for %s", len(entry.articles), scope)
                return _respond(entry.articles[:limit], CACHE_SOURCE, cached=True)

        try:
            return await self._refresh(scope, request.query, request.category, limit)
        except Exception as exc:  # noqa: BLE001 - total failure falls back to cache or empty
            logger.error("Refresh for %s failed: %s", scope, exc, exc_info=True)
        return await self._fallback(scope, limit)

    async def _refresh(self, scope: str, query: str | None, category: str | None, limit: int) -> FetchNewsResponse:
        previous = await self.cache.get_entry(scope)
        result = await self._aggregator.gather(query, limit, hint=category)
        if not result.articles:
            logger.warning("No provider returned articles for %s", scope)
            return await self._fallback(scope, limit)

        hash_value = content_hash(article.title for article in result.articles)
        if previous is not None and previous.content_hash == hash_value:
            # Same headlines: keep the previous objects and ids, refresh only the timestamp.
            logger.info("Upstream unchanged for %s; keeping %d cached articles", scope, len(previous.articles))
            entry = await self.cache.set(scope, previous.articles, hash_value)
            return _respond(entry.articles, result.source_label, unchanged=True)

        try:
            analyzed = await asyncio.wait_for(
                self._analyzer.analyze(result.articles), timeout=self._pipeline_timeout
            )
        except asyncio.TimeoutError:
            logger.error(
                "Analysis for %s exceeded %.0fs deadline; using default analysis for %d articles",
                scope,
                self._pipeline_timeout,
                len(result.articles),
            )
            analyzed = self._analyzer.default_articles(result.articles)
        entry = await self.cache.set(scope, analyzed, hash_value)
        return _respond(entry.articles, result.source_label)

    async def _fallback(self, scope: str, limit: int) -> FetchNewsResponse:
        entry = await self.cache.get_entry(scope)
        if entry is not None and entry.articles:
            logger.warning("Serving stale cache for %s (fetched %s)", scope, entry.fetched_at.isoformat())
            return _respond(entry.articles[:limit], CACHE_SOURCE, cached=True, stale=True)
        return _respond([], NO_SOURCE)

    async def get_article(self, article_id: str) -> AnalyzedArticle | None:
        return await self.cache.get_article(article_id)


class AnalysisService:
    def __init__(
        self,
        llm: GeminiAdapter,
        ensemble: CredibilityEnsemble,
        analyzer: BatchAnalysisClient,
        retry: RetryPolicy | None = None,
    ) -> None:
        self._llm = llm
        self._ensemble = ensemble
        self._analyzer = analyzer
        self._retry = retry or RetryPolicy()

    async def analyze(self, request: AnalyzeRequest) -> AnalyzeResult:
        match request:
            case CredibilityRequest():
                return await self._ensemble.evaluate(request.title, request.description, request.content)
            case FullAnalysisRequest():
                raws = [
                    RawArticle(title=item.title, description=item.description, content=item.content, url="")
                    for item in request.articles
                ]
                return FullAnalysisResponse(results=await self._analyzer.analyze_records(raws))
            case SummaryRequest():
                return await self.summarize(request)
            case _:
                raise TypeError(f"Unsupported analysis request: {type(request).__name__}")

    async def summarize(self, request: SummaryRequest) -> SummaryResponse:
        fallback = SummaryResponse(summary=request.description or request.title)
        if not self._llm.configured:
            return fallback
        user_prompt = f"Summarize:\nTitle: {request.title}\nContent: {request.text}"

        async def _ask() -> SummaryResponse:
            return parse_summary(await self._llm.generate(SUMMARY_PROMPT, user_prompt))

        try:
            return await self._retry.run(_ask, label="summary")
        except Exception as exc:  # noqa: BLE001
            logger.warning("Summary fell back to description: %s", exc)
            return fallback


class StateNewsService:
    def __init__(self, builder: RegionalDigestBuilder) -> None:
        self._builder = builder

    async def fetch_state_news(self, force_refresh: bool = False) -> StateNewsResponse:
        entries, cached = await self._builder.build(force=force_refresh)
        return StateNewsResponse(state_news=entries, cached=cached, count=len(entries))
