"""
API endpoint tests
"""

import json
from datetime import timedelta

import pytest
from fastapi.testclient import TestClient

from data_loader import RegionalConfig, SearchGroup
from fakes import FakeAggregator, FakeClassifier, FakeGNews, FakeLLM, echo_batch, fast_retry, raw
from newsglobe.batch_analyzer import BatchAnalysisClient
from newsglobe.cache import NewsCache
from newsglobe.ensemble import CredibilityEnsemble
from newsglobe.regional import RegionalDigestBuilder
from newsglobe.service import AnalysisService, NewsService, StateNewsService

SERVICE_NAMES = ("storage", "news_service", "analysis_service", "state_news_service")


@pytest.fixture
def services(storage, clock):
    """Services wired with fakes; the app lifespan leaves pre-set ones alone."""
    llm = FakeLLM(responder=echo_batch)
    analyzer = BatchAnalysisClient(llm, retry=fast_retry())
    regional = RegionalConfig(
        country="in",
        groups=[SearchGroup("Kerala news", ("Kerala",)), SearchGroup("Goa news", ("Goa",))],
        keywords={"Kerala": ["kerala", "kochi"], "Goa": ["goa", "panaji"]},
    )
    gnews = FakeGNews(
        {
            "Kerala news": [raw(1, title="Kochi metro extended", url="https://example.com/kochi")],
            "Goa news": [raw(2, title="Panaji festival opens", url="https://example.com/panaji")],
        }
    )
    aggregator = FakeAggregator([raw(i) for i in range(30)])
    return {
        "llm": llm,
        "aggregator": aggregator,
        "storage": storage,
        "news_service": NewsService(aggregator, analyzer, NewsCache(storage, clock=clock)),
        "analysis_service": AnalysisService(
            llm,
            CredibilityEnsemble(llm, FakeClassifier(), retry=fast_retry()),
            analyzer,
            retry=fast_retry(),
        ),
        "state_news_service": StateNewsService(
            RegionalDigestBuilder(storage, regional, gnews, ttl=timedelta(hours=24), clock=clock)
        ),
    }


@pytest.fixture
def client(services):
    """Create test client"""
    import main

    for name in SERVICE_NAMES:
        setattr(main.app.state, name, services[name])
    with TestClient(main.app) as test_client:
        yield test_client
    for name in SERVICE_NAMES:
        delattr(main.app.state, name)


def test_root_endpoint(client):
    """Test root endpoint"""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["service"] == "NewsGlobe API"
    assert data["storage"] == "memory"


def test_health_endpoint(client):
    """Test health endpoint"""
    response = client.get("/health")
    assert response.status_code == 200
    data = response.json()
    assert data["status"] == "healthy"
    assert data["hours_since_last_fetch"] is None
    assert "metrics" in data


def test_fetch_news_clamps_and_caches(client, services):
    response = client.post("/fetch-news", json={"max": 100})
    assert response.status_code == 200
    data = response.json()
    assert data["totalArticles"] == 25
    assert data["cached"] is False
    first = data["articles"][0]
    assert first["aiSummary"] == "summary of Headline 0"
    assert first["credibilityScore"] == 88
    assert "imageUrl" in first and "publishedAt" in first

    again = client.post("/fetch-news").json()
    assert again["cached"] is True
    assert again["source"] == "cache"
    assert len(services["aggregator"].calls) == 1


def test_fetch_news_force_refresh_flag(client, services):
    client.post("/fetch-news")
    data = client.post("/fetch-news", json={"forceRefresh": True}).json()

    assert data["unchanged"] is True
    assert len(services["aggregator"].calls) == 2


def test_fetch_news_total_failure_is_empty_200(client, services):
    services["aggregator"].error = RuntimeError("providers down")
    response = client.post("/fetch-news", json={"query": "floods"})

    assert response.status_code == 200
    data = response.json()
    assert data["totalArticles"] == 0
    assert data["source"] == "none"


def test_article_lookup(client):
    article = client.post("/fetch-news", json={"max": 2}).json()["articles"][1]

    response = client.get(f"/articles/{article['id']}")
    assert response.status_code == 200
    assert response.json()["title"] == article["title"]

    assert client.get("/articles/does-not-exist").status_code == 404


def test_analyze_credibility(client, services):
    services["llm"].responses.append(json.dumps({"credibilityScore": 80, "verdict": "credible"}))
    response = client.post("/analyze-article", json={"kind": "credibility", "title": "T", "content": "C"})

    assert response.status_code == 200
    data = response.json()
    assert data["credibilityScore"] == 84
    assert data["verdict"] == "credible"
    assert data["bertLabel"] == "REAL"
    assert data["models"]["generative"]["score"] == 80


def test_analyze_full_analysis_with_legacy_type_field(client):
    response = client.post(
        "/analyze-article",
        json={"type": "full-analysis", "articles": [{"title": "First"}, {"title": "Second"}]},
    )
    assert response.status_code == 200
    results = response.json()["results"]
    assert [r["aiSummary"] for r in results] == ["summary of First", "summary of Second"]


def test_analyze_lone_article_body(client):
    response = client.post("/analyze-article", json={"kind": "full-analysis", "title": "Solo", "description": "d"})
    assert response.status_code == 200
    assert [r["aiSummary"] for r in response.json()["results"]] == ["summary of Solo"]


def test_analyze_summary(client, services):
    services["llm"].responses.append('{"summary": "Two lines.", "entities": []}')
    response = client.post("/analyze-article", json={"title": "T", "description": "D"})

    assert response.status_code == 200
    assert response.json() == {"summary": "Two lines.", "entities": []}


def test_analyze_unknown_kind_is_rejected(client):
    response = client.post("/analyze-article", json={"kind": "translate", "title": "T"})
    assert response.status_code == 422


def test_fetch_state_news(client):
    response = client.post("/fetch-state-news")
    assert response.status_code == 200
    data = response.json()
    assert data["count"] == 2
    assert data["cached"] is False
    assert {entry["state"] for entry in data["stateNews"]} == {"Kerala", "Goa"}

    forced = client.post("/fetch-state-news", json={"forceRefresh": True}).json()
    assert forced["cached"] is False
