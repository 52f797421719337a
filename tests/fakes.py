"""
Test doubles shared across the suite.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, List, Optional

from newsglobe.aggregator import AggregationResult
from newsglobe.llm_adapter import LLMError
from newsglobe.models import ClassifierJudgment, RawArticle
from newsglobe.retry import RetryPolicy
from newsglobe.sources import ProviderAdapter


class FakeClock:
    def __init__(self, start: Optional[datetime] = None):
        self.now = start or datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


async def no_sleep(_seconds: float) -> None:
    return None


def fast_retry(attempts: int = 3) -> RetryPolicy:
    return RetryPolicy(max_attempts=attempts, base_delay=0.0, jitter=0.0, sleep=no_sleep)


def raw(i: int, **overrides) -> RawArticle:
    fields = {
        "title": f"Headline {i}",
        "description": f"Description {i}",
        "content": f"Content {i}",
        "url": f"https://example.com/news/{i}",
        "source": "Example",
    }
    fields.update(overrides)
    return RawArticle(**fields)


def prompt_titles(user_prompt: str) -> List[str]:
    return [line[len("Title: "):] for line in user_prompt.splitlines() if line.startswith("Title: ")]


def echo_batch(system_prompt: str, user_prompt: str) -> str:
    """Answer a batch prompt with one analysis per article, echoing its title."""
    return json.dumps(
        [
            {
                "sentiment": "positive",
                "sentimentScore": 0.9,
                "credibilityScore": 88,
                "category": "Science",
                "aiSummary": f"summary of {title}",
                "entities": [{"text": "Paris", "type": "place"}],
                "location": {"city": "Paris", "country": "France", "continent": "Europe", "lat": 48.85, "lng": 2.35},
            }
            for title in prompt_titles(user_prompt)
        ]
    )


class FakeLLM:
    """Scripted stand-in for GeminiAdapter.

    ``responses`` are consumed in order; ``responder`` answers every call
    once they run out. Items may be strings, exceptions or callables.
    ``delay`` makes every call sleep first, like a slow model.
    """

    def __init__(
        self,
        responses=None,
        responder: Optional[Callable[[str, str], Any]] = None,
        configured: bool = True,
        delay: float = 0.0,
    ):
        self.responses = list(responses or [])
        self.responder = responder
        self.configured = configured
        self.delay = delay
        self.calls: List[tuple] = []

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.responses:
            item = self.responses.pop(0)
        elif self.responder is not None:
            item = self.responder
        else:
            raise LLMError("no scripted response")
        if callable(item) and not isinstance(item, BaseException):
            item = item(system_prompt, user_prompt)
        if isinstance(item, BaseException):
            raise item
        return item


class FakeClassifier:
    def __init__(self, result: Any = None, configured: bool = True):
        self.result = result if result is not None else ClassifierJudgment(label="REAL", confidence=0.9)
        self.configured = configured
        self.texts: List[str] = []

    async def classify(self, text: str) -> ClassifierJudgment:
        self.texts.append(text)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


class StaticProvider(ProviderAdapter):
    def __init__(self, name: str, articles=None, error: Optional[Exception] = None):
        super().__init__(timeout=1.0)
        self.name = name
        self.articles = list(articles or [])
        self.error = error
        self.calls: List[tuple] = []

    async def _fetch(self, query, hint, limit):
        self.calls.append((query, hint, limit))
        if self.error is not None:
            raise self.error
        return list(self.articles)


class FakeAggregator:
    def __init__(self, articles=None, label: str = "gnews", error: Optional[Exception] = None):
        self.articles = list(articles or [])
        self.label = label
        self.error = error
        self.calls: List[tuple] = []

    async def gather(self, query=None, limit=25, hint=None) -> AggregationResult:
        self.calls.append((query, limit, hint))
        if self.error is not None:
            raise self.error
        articles = self.articles[:limit]
        return AggregationResult(
            articles=articles,
            source_label=self.label if articles else "none",
            per_provider_counts={self.label: len(articles)},
        )


class FakeGNews:
    """GNews stand-in for the regional digest, answering per query."""

    def __init__(self, by_query=None, failing=()):
        self.by_query = by_query or {}
        self.failing = set(failing)
        self.calls: List[tuple] = []

    async def fetch(self, query=None, hint=None, limit=10):
        self.calls.append((query, limit))
        if query in self.failing:
            raise RuntimeError("rate limited")
        return list(self.by_query.get(query, []))
