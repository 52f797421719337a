"""
Batch analysis of raw articles through the generative model.

Articles are sent in bounded batches; each batch prompt tags every article
with its index and asks for a JSON array of exactly that many analyses. The
response is correlated with the input by position only, so the output list
always has the same length and order as the input: a batch that cannot be
parsed after the last retry degrades to neutral defaults instead of being
dropped.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Callable, Sequence

from .config import get_settings
from .llm_adapter import GeminiAdapter
from .models import CATEGORIES, AnalyzedArticle, ArticleAnalysis, RawArticle
from .parsing import parse_analysis_array
from .retry import RetryPolicy

logger = logging.getLogger(__name__)

MAX_CONTENT_CHARS = 1500

BATCH_PROMPT = """You are a news analysis AI. You will receive multiple articles, each tagged [Article i]. For EACH article, return analysis in a JSON array.
Each element must have:
- sentiment: "positive", "negative", or "neutral"
- sentimentScore: number 0-1
- credibilityScore: number 0-100
- aiSummary: a 2-sentence summary
- entities: array of {{text: string, type: "person"|"place"|"organization"}}
- category: one of {categories}
- location: {{city: string, district: string, state: string, country: string, continent: string, lat: number, lng: number}}

Return ONLY a valid JSON array with exactly {count} elements, one per article, in the same order as the [Article i] tags. No markdown."""


def chunked(items: Sequence[RawArticle], size: int) -> list[list[RawArticle]]:
    if size < 1:
        raise ValueError("batch size must be positive")
    return [list(items[i : i + size]) for i in range(0, len(items), size)]


def build_batch_prompt(articles: Sequence[RawArticle]) -> tuple[str, str]:
    categories = ", ".join(f'"{name}"' for name in CATEGORIES)
    system_prompt = BATCH_PROMPT.format(categories=categories, count=len(articles))
    blocks = []
    for index, article in enumerate(articles):
        body = (article.content or article.description or article.title)[:MAX_CONTENT_CHARS]
        blocks.append(
            f"[Article {index}]\nTitle: {article.title}\n"
            f"Description: {article.description}\nContent: {body}"
        )
    user_prompt = f"Analyze these {len(articles)} articles:\n\n" + "\n\n---\n\n".join(blocks)
    return system_prompt, user_prompt


class BatchAnalysisClient:
    def __init__(
        self,
        llm: GeminiAdapter,
        *,
        batch_size: int | None = None,
        retry: RetryPolicy | None = None,
        max_concurrent_batches: int | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        settings = get_settings()
        self._llm = llm
        self._batch_size = batch_size or settings.batch_size
        self._retry = retry or RetryPolicy.from_settings(settings)
        self._semaphore = asyncio.Semaphore(max(1, max_concurrent_batches or settings.max_concurrent_batches))
        self._id_factory = id_factory or (lambda: str(uuid.uuid4()))

    async def analyze(self, articles: Sequence[RawArticle]) -> list[AnalyzedArticle]:
        records = await self.analyze_records(articles)
        if len(records) != len(articles):
            # analyze_records guarantees this; guard the zip regardless.
            raise RuntimeError(f"analysis count {len(records)} != article count {len(articles)}")
        return [
            AnalyzedArticle.build(self._id_factory(), article, record)
            for article, record in zip(articles, records)
        ]

    def default_articles(self, articles: Sequence[RawArticle]) -> list[AnalyzedArticle]:
        """Articles with default analysis, for when the model cannot answer in time."""
        return [
            AnalyzedArticle.build(self._id_factory(), article, ArticleAnalysis.default(article))
            for article in articles
        ]

    async def analyze_records(self, articles: Sequence[RawArticle]) -> list[ArticleAnalysis]:
        if not articles:
            return []
        batches = chunked(articles, self._batch_size)
        logger.info("Analyzing %d articles in %d batch(es)", len(articles), len(batches))
        results = await asyncio.gather(
            *(self._analyze_batch(index, batch) for index, batch in enumerate(batches))
        )
        return [record for batch_records in results for record in batch_records]

    async def _analyze_batch(self, index: int, batch: list[RawArticle]) -> list[ArticleAnalysis]:
        if not self._llm.configured:
            logger.warning("Generative model not configured; batch %d uses default analysis", index)
            return [ArticleAnalysis.default(article) for article in batch]

        system_prompt, user_prompt = build_batch_prompt(batch)

        async def _attempt() -> list[ArticleAnalysis]:
            raw = await self._llm.generate(system_prompt, user_prompt)
            return parse_analysis_array(raw, batch)

        async with self._semaphore:
            try:
                return await self._retry.run(_attempt, label=f"analysis batch {index}")
            except Exception as exc:  # noqa: BLE001 - degrade to defaults, never drop articles
                logger.warning(
                    "Batch %d (%d articles) fell back to default analysis: %s",
                    index,
                    len(batch),
                    exc,
                )
                return [ArticleAnalysis.default(article) for article in batch]
