import pytest

from fakes import StaticProvider, raw
from newsglobe.aggregator import NewsAggregator, canonical_url


class ExplodingProvider(StaticProvider):
    """Raises out of fetch itself, bypassing the adapter's own guard."""

    async def fetch(self, query=None, hint=None, limit=10):
        raise RuntimeError("adapter bug")


def test_canonical_url():
    assert canonical_url("HTTPS://Example.COM/a/?utm_source=x&id=3#top") == "https://example.com/a?id=3"
    assert canonical_url("https://example.com/a/") == canonical_url("https://example.com/a")


@pytest.mark.asyncio
async def test_dedup_keeps_first_seen_in_priority_order():
    primary = StaticProvider("gnews", [raw(1), raw(2)])
    secondary = StaticProvider(
        "newsdata",
        [raw(2, title="Same story, other wording", url="https://EXAMPLE.com/news/2/?utm_medium=rss"), raw(3)],
    )
    result = await NewsAggregator([primary, secondary]).gather(None, limit=10)

    assert [a.title for a in result.articles] == ["Headline 1", "Headline 2", "Headline 3"]
    assert result.source_label == "gnews+newsdata"
    assert result.per_provider_counts == {"gnews": 2, "newsdata": 2}


@pytest.mark.asyncio
async def test_failing_provider_does_not_block_others():
    broken = StaticProvider("newsdata", error=ValueError("bad payload"))
    exploding = ExplodingProvider("regional")
    result = await NewsAggregator([StaticProvider("gnews", [raw(1)]), broken, exploding]).gather("q", limit=5)

    assert [a.title for a in result.articles] == ["Headline 1"]
    assert result.per_provider_counts["newsdata"] == 0
    assert result.per_provider_counts["regional"] == 0
    assert result.source_label == "gnews"


@pytest.mark.asyncio
async def test_empty_primary_triggers_single_fallback_call():
    fallback = StaticProvider("google-rss", [raw(7)])
    aggregator = NewsAggregator([StaticProvider("gnews", []), StaticProvider("newsdata", [raw(8)])], fallback=fallback)
    result = await aggregator.gather("floods", limit=5, hint="Environment")

    assert fallback.calls == [("floods", "Environment", 5)]
    assert [a.title for a in result.articles] == ["Headline 8", "Headline 7"]
    assert result.source_label == "newsdata+google-rss"


@pytest.mark.asyncio
async def test_fallback_not_called_when_primary_has_items():
    fallback = StaticProvider("google-rss", [raw(7)])
    await NewsAggregator([StaticProvider("gnews", [raw(1)])], fallback=fallback).gather(None, limit=5)
    assert fallback.calls == []


@pytest.mark.asyncio
async def test_everything_empty():
    fallback = StaticProvider("google-rss", error=ConnectionError("offline"))
    result = await NewsAggregator([StaticProvider("gnews", [])], fallback=fallback).gather(None, limit=5)

    assert result.articles == []
    assert result.source_label == "none"
    assert len(fallback.calls) == 1


@pytest.mark.asyncio
async def test_truncates_after_dedup_and_drops_missing_urls():
    primary = StaticProvider("gnews", [raw(1), raw(2, url="")])
    secondary = StaticProvider("newsdata", [raw(1), raw(3), raw(4)])
    result = await NewsAggregator([primary, secondary]).gather(None, limit=2)

    # each provider is asked for at most `limit` items
    assert secondary.calls == [(None, None, 2)]
    assert [a.title for a in result.articles] == ["Headline 1", "Headline 3"]


def test_requires_a_provider():
    with pytest.raises(ValueError):
        NewsAggregator([])
