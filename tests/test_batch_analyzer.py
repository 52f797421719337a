import json

import pytest

from fakes import FakeLLM, echo_batch, fast_retry, prompt_titles, raw
from newsglobe.batch_analyzer import (
    MAX_CONTENT_CHARS,
    BatchAnalysisClient,
    build_batch_prompt,
    chunked,
)


def make_client(llm, **kwargs):
    kwargs.setdefault("retry", fast_retry())
    kwargs.setdefault("batch_size", 25)
    kwargs.setdefault("max_concurrent_batches", 2)
    return BatchAnalysisClient(llm, **kwargs)


def test_chunking():
    batches = chunked([raw(i) for i in range(30)], 25)
    assert [len(b) for b in batches] == [25, 5]
    with pytest.raises(ValueError):
        chunked([], 0)


def test_prompt_tags_every_article_and_truncates_content():
    articles = [raw(0, content="x" * 5000), raw(1)]
    system_prompt, user_prompt = build_batch_prompt(articles)

    assert "[Article 0]" in user_prompt and "[Article 1]" in user_prompt
    assert "exactly 2 elements" in system_prompt
    assert "x" * MAX_CONTENT_CHARS in user_prompt
    assert "x" * (MAX_CONTENT_CHARS + 1) not in user_prompt


@pytest.mark.asyncio
async def test_order_preserved_across_batches():
    articles = [raw(i) for i in range(30)]
    llm = FakeLLM(responder=echo_batch)
    analyzed = await make_client(llm).analyze(articles)

    assert len(llm.calls) == 2
    assert sorted(len(prompt_titles(call[1])) for call in llm.calls) == [5, 25]
    assert [a.title for a in analyzed] == [a.title for a in articles]
    assert [a.ai_summary for a in analyzed] == [f"summary of Headline {i}" for i in range(30)]
    assert len({a.id for a in analyzed}) == 30
    assert analyzed[0].category == "Science"
    assert analyzed[0].location.city == "Paris"


@pytest.mark.asyncio
async def test_failed_batch_degrades_to_defaults_after_three_attempts():
    articles = [raw(i) for i in range(3)]
    llm = FakeLLM(responder=lambda *_: "I cannot help with that")
    analyzed = await make_client(llm).analyze(articles)

    assert len(llm.calls) == 3
    assert len(analyzed) == 3
    for article, source in zip(analyzed, articles):
        assert article.credibility_score == 70
        assert article.sentiment == "neutral"
        assert article.sentiment_score == 0.5
        assert article.category == "Technology"
        assert article.entities == []
        assert article.location.city == "Unknown"
        assert article.ai_summary == source.description


@pytest.mark.asyncio
async def test_length_mismatch_is_retried():
    articles = [raw(i) for i in range(3)]
    llm = FakeLLM([json.dumps([{}, {}])], responder=echo_batch)
    analyzed = await make_client(llm).analyze(articles)

    assert len(llm.calls) == 2
    assert [a.ai_summary for a in analyzed] == [f"summary of Headline {i}" for i in range(3)]


@pytest.mark.asyncio
async def test_one_failing_batch_does_not_affect_the_other():
    articles = [raw(i) for i in range(4)]

    def responder(system_prompt, user_prompt):
        if "Headline 0" in user_prompt:
            return "garbage"
        return echo_batch(system_prompt, user_prompt)

    analyzed = await make_client(FakeLLM(responder=responder), batch_size=2).analyze(articles)

    assert [a.credibility_score for a in analyzed] == [70, 70, 88, 88]


@pytest.mark.asyncio
async def test_unconfigured_model_returns_defaults_without_calls():
    llm = FakeLLM(configured=False)
    records = await make_client(llm).analyze_records([raw(1)])

    assert llm.calls == []
    assert records[0].credibility_score == 70


@pytest.mark.asyncio
async def test_region_fills_unknown_state():
    llm = FakeLLM(responder=lambda *_: json.dumps([{"location": {"city": "Kochi"}}]))
    analyzed = await make_client(llm).analyze([raw(1, region="Kerala")])

    assert analyzed[0].location.city == "Kochi"
    assert analyzed[0].location.state == "Kerala"


@pytest.mark.asyncio
async def test_empty_input():
    llm = FakeLLM()
    assert await make_client(llm).analyze([]) == []
    assert llm.calls == []


@pytest.mark.asyncio
async def test_custom_id_factory():
    ids = iter(["a", "b"])
    client = make_client(FakeLLM(configured=False), id_factory=lambda: next(ids))
    analyzed = await client.analyze([raw(1), raw(2)])
    assert [a.id for a in analyzed] == ["a", "b"]
