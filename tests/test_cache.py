from datetime import timedelta

import pytest

from fakes import raw
from newsglobe.cache import NewsCache, content_hash, scope_key
from newsglobe.models import AnalyzedArticle, ArticleAnalysis
from newsglobe.storage import StorageManager


def analyzed(i):
    return AnalyzedArticle.build(f"id-{i}", raw(i), ArticleAnalysis(credibility_score=80))


class BrokenStorage(StorageManager):
    async def get(self, key):
        raise ConnectionError("storage down")

    async def set(self, key, value, ttl=None):
        raise ConnectionError("storage down")


def test_scope_key():
    assert scope_key() == "all"
    assert scope_key("  Climate   CHANGE ") == "query:climate change"
    assert scope_key(None, "Sports") == "category:Sports"
    assert scope_key("floods", "Sports") == "query:floods"


def test_content_hash_ignores_order():
    assert content_hash(["b", "a"]) == content_hash(["a", "b"])
    assert content_hash(["a", "b"]) != content_hash(["a", "c"])
    assert len(content_hash([])) == 16


@pytest.mark.asyncio
async def test_entry_servable_until_window_ends(storage, clock):
    cache = NewsCache(storage, ttl=timedelta(hours=12), clock=clock)
    await cache.set("all", [analyzed(1)], "h1")

    clock.advance(hours=12, seconds=-1)
    cached = await cache.get_cached("all")
    assert [a.id for a in cached] == ["id-1"]

    clock.advance(seconds=2)
    assert await cache.get_cached("all") is None
    # the raw entry stays readable for hash checks and stale fallback
    entry = await cache.get_entry("all")
    assert entry.content_hash == "h1"


@pytest.mark.asyncio
async def test_set_replaces_whole_entry(storage, clock):
    cache = NewsCache(storage, clock=clock)
    await cache.set("all", [analyzed(1), analyzed(2)], "h1")
    await cache.set("all", [analyzed(3)], "h2")

    entry = await cache.get_entry("all")
    assert [a.id for a in entry.articles] == ["id-3"]
    assert entry.content_hash == "h2"


@pytest.mark.asyncio
async def test_scopes_are_independent(storage, clock):
    cache = NewsCache(storage, clock=clock)
    await cache.set("all", [analyzed(1)], "h1")

    assert await cache.get_cached("query:floods") is None
    assert await cache.get_cached("all") is not None


@pytest.mark.asyncio
async def test_article_rows_and_fetch_log(storage, clock):
    cache = NewsCache(storage, clock=clock)
    assert await cache.hours_since_last_fetch() is None

    await cache.set("all", [analyzed(1), analyzed(2)], "h1")
    clock.advance(hours=3)

    article = await cache.get_article("id-2")
    assert article.title == "Headline 2"
    assert article.credibility_score == 80
    assert await cache.get_article("missing") is None

    log = await cache.fetch_log("all")
    assert [record.count for record in log] == [2]
    assert await cache.hours_since_last_fetch("all") == pytest.approx(3.0)


@pytest.mark.asyncio
async def test_clear(storage, clock):
    cache = NewsCache(storage, clock=clock)
    await cache.set("all", [analyzed(1)], "h1")
    await cache.set("query:floods", [analyzed(2)], "h2")

    await cache.clear("all")
    assert await cache.get_entry("all") is None
    assert await cache.get_entry("query:floods") is not None

    await cache.clear()
    assert await cache.get_entry("query:floods") is None


@pytest.mark.asyncio
async def test_storage_errors_are_cache_misses(clock):
    cache = NewsCache(BrokenStorage(), clock=clock)

    entry = await cache.set("all", [analyzed(1)], "h1")
    assert entry.articles[0].id == "id-1"
    assert await cache.get_cached("all") is None
    assert await cache.get_article("id-1") is None


@pytest.mark.asyncio
async def test_repeated_refreshes_keep_one_snapshot_per_scope(storage, clock):
    cache = NewsCache(storage, clock=clock)
    for i in range(50):
        await cache.set("all", [analyzed(i)], f"h{i}")
    await cache.set("query:floods", [analyzed(99)], "q")

    snapshots = [key for key in storage.memory_storage if key.startswith("news:snapshot:")]
    assert len(snapshots) == 2
    entry = await cache.get_entry("all")
    assert [a.id for a in entry.articles] == ["id-49"]
