from __future__ import annotations

import json
import math
import re
from collections.abc import Sequence
from typing import Any

from .models import (
    CATEGORIES,
    DEFAULT_CREDIBILITY,
    ENTITY_TYPES,
    SENTIMENTS,
    UNKNOWN,
    ArticleAnalysis,
    GenerativeJudgment,
    GeoLocation,
    NamedEntity,
    RawArticle,
    SummaryResponse,
)

_FENCE_RE = re.compile(r"```(?:json)?\s*", re.IGNORECASE)
_JSON_RE = re.compile(r"[\[{][\s\S]*[\]}]")
_VERDICTS = {"credible", "suspicious", "likely_fake"}
_CATEGORY_LOOKUP = {name.lower(): name for name in CATEGORIES}


class AnalysisParseError(ValueError):
    """Raised when an AI response cannot be turned into the expected JSON shape."""


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def strip_code_fences(raw: str) -> str:
    return _FENCE_RE.sub("", raw).replace("```", "").strip()


def parse_json_payload(raw: str | None) -> Any:
    """Parse JSON out of a model response, tolerating fences and chatter."""
    if not raw or not raw.strip():
        raise AnalysisParseError("Empty AI response")
    cleaned = strip_code_fences(raw)
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError:
        match = _JSON_RE.search(cleaned)
        if not match:
            raise AnalysisParseError("No JSON found in AI response")
        try:
            return json.loads(match.group(0))
        except json.JSONDecodeError as exc:
            raise AnalysisParseError(f"Invalid JSON in AI response: {exc}") from exc


def parse_analysis_array(raw: str | None, articles: Sequence[RawArticle]) -> list[ArticleAnalysis]:
    """Parse a batch response into one record per input article, in order.

    The array length must equal ``len(articles)``: elements are correlated
    with inputs by position only, so any mismatch fails the whole batch.
    """
    payload = parse_json_payload(raw)
    if isinstance(payload, dict):
        payload = payload.get("results") or payload.get("articles")
    if not isinstance(payload, list):
        raise AnalysisParseError("Expected a JSON array of analyses")
    if len(payload) != len(articles):
        raise AnalysisParseError(
            f"Expected {len(articles)} analyses, got {len(payload)}"
        )
    return [coerce_analysis(item, article) for item, article in zip(payload, articles)]


def coerce_analysis(item: Any, article: RawArticle | None = None) -> ArticleAnalysis:
    if not isinstance(item, dict):
        return ArticleAnalysis.default(article)
    fallback = ArticleAnalysis.default(article)

    sentiment = str(_pick(item, "sentiment") or "").strip().lower()
    category_raw = str(_pick(item, "category") or "").strip().lower()
    summary = _pick(item, "aiSummary", "ai_summary", "summary")

    return ArticleAnalysis(
        sentiment=sentiment if sentiment in SENTIMENTS else "neutral",
        sentiment_score=_clamp(_pick(item, "sentimentScore", "sentiment_score"), 0.0, 1.0, 0.5),
        credibility_score=round_half_up(
            _clamp(
                _pick(item, "credibilityScore", "credibility_score"),
                0.0,
                100.0,
                float(DEFAULT_CREDIBILITY),
            )
        ),
        category=_CATEGORY_LOOKUP.get(category_raw, fallback.category),
        ai_summary=summary.strip() if isinstance(summary, str) and summary.strip() else fallback.ai_summary,
        entities=coerce_entities(_pick(item, "entities")),
        location=coerce_location(_pick(item, "location")),
    )


def coerce_entities(value: Any) -> list[NamedEntity]:
    entities: list[NamedEntity] = []
    if not isinstance(value, list):
        return entities
    for entry in value:
        if not isinstance(entry, dict):
            continue
        text = entry.get("text")
        kind = str(entry.get("type") or "").strip().lower()
        if isinstance(text, str) and text.strip() and kind in ENTITY_TYPES:
            entities.append(NamedEntity(text=text.strip(), type=kind))
    return entities


def coerce_location(value: Any) -> GeoLocation:
    if not isinstance(value, dict):
        return GeoLocation()
    fields = {}
    for key in ("city", "district", "state", "country", "continent"):
        text = value.get(key)
        fields[key] = text.strip() if isinstance(text, str) and text.strip() else UNKNOWN
    fields["lat"] = _clamp(value.get("lat"), -90.0, 90.0, 0.0)
    fields["lng"] = _clamp(value.get("lng", value.get("lon")), -180.0, 180.0, 0.0)
    return GeoLocation(**fields)


def parse_credibility_judgment(raw: str | None) -> GenerativeJudgment:
    payload = parse_json_payload(raw)
    if not isinstance(payload, dict):
        raise AnalysisParseError("Expected a JSON object for credibility judgment")
    verdict = str(payload.get("verdict") or "").strip().lower()
    flags = payload.get("redFlags", payload.get("red_flags")) or []
    explanation = payload.get("explanation")
    return GenerativeJudgment(
        score=round_half_up(
            _clamp(
                _pick(payload, "credibilityScore", "credibility_score", "score"),
                0.0,
                100.0,
                float(DEFAULT_CREDIBILITY),
            )
        ),
        verdict=verdict if verdict in _VERDICTS else "unknown",
        explanation=explanation.strip() if isinstance(explanation, str) else "",
        red_flags=[str(flag) for flag in flags if flag] if isinstance(flags, list) else [],
    )


def parse_summary(raw: str | None) -> SummaryResponse:
    payload = parse_json_payload(raw)
    if not isinstance(payload, dict):
        raise AnalysisParseError("Expected a JSON object for summary")
    summary = payload.get("summary")
    return SummaryResponse(
        summary=summary.strip() if isinstance(summary, str) else "",
        entities=coerce_entities(payload.get("entities")),
    )


def _pick(item: dict, *keys: str) -> Any:
    for key in keys:
        if key in item and item[key] is not None:
            return item[key]
    return None


def _clamp(value: Any, low: float, high: float, default: float) -> float:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    if number != number:  # NaN
        return default
    return max(low, min(high, number))
