from datetime import datetime
from typing import Annotated, Any, Literal, Union, get_args

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Discriminator,
    Field,
    Tag,
    model_validator,
)
from pydantic.alias_generators import to_camel

Sentiment = Literal["positive", "negative", "neutral"]
Category = Literal[
    "Politics",
    "Technology",
    "Sports",
    "Health",
    "Science",
    "Business",
    "Entertainment",
    "Environment",
]
EntityType = Literal["person", "place", "organization"]
Verdict = Literal["credible", "suspicious", "likely_fake"]

CATEGORIES: tuple[str, ...] = get_args(Category)
SENTIMENTS: tuple[str, ...] = get_args(Sentiment)
ENTITY_TYPES: tuple[str, ...] = get_args(EntityType)

DEFAULT_CREDIBILITY = 70
DEFAULT_CATEGORY: Category = "Technology"
UNKNOWN = "Unknown"


class WireModel(BaseModel):
    """Base model: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class RawArticle(WireModel):
    title: str = ""
    description: str = ""
    content: str = ""
    url: str
    image_url: str = ""
    published_at: datetime | None = None
    source: str = UNKNOWN
    region: str | None = None

    @property
    def text(self) -> str:
        return self.content or self.description or self.title


class NamedEntity(WireModel):
    text: str
    type: EntityType


class GeoLocation(WireModel):
    city: str = UNKNOWN
    district: str = UNKNOWN
    state: str = UNKNOWN
    country: str = UNKNOWN
    continent: str = UNKNOWN
    lat: float = 0.0
    lng: float = 0.0


class ArticleAnalysis(WireModel):
    sentiment: Sentiment = "neutral"
    sentiment_score: float = Field(0.5, ge=0.0, le=1.0)
    credibility_score: int = Field(DEFAULT_CREDIBILITY, ge=0, le=100)
    category: Category = DEFAULT_CATEGORY
    ai_summary: str = ""
    entities: list[NamedEntity] = Field(default_factory=list)
    location: GeoLocation = Field(default_factory=GeoLocation)

    @classmethod
    def default(cls, raw: RawArticle | None = None) -> "ArticleAnalysis":
        """Neutral record used when the model output is missing or unusable."""
        summary = (raw.description or raw.title) if raw else ""
        return cls(ai_summary=summary)


class AnalyzedArticle(RawArticle):
    model_config = ConfigDict(frozen=True)

    id: str
    sentiment: Sentiment = "neutral"
    sentiment_score: float = Field(0.5, ge=0.0, le=1.0)
    credibility_score: int = Field(DEFAULT_CREDIBILITY, ge=0, le=100)
    category: Category = DEFAULT_CATEGORY
    ai_summary: str = ""
    entities: list[NamedEntity] = Field(default_factory=list)
    location: GeoLocation = Field(default_factory=GeoLocation)

    @classmethod
    def build(cls, article_id: str, raw: RawArticle, analysis: ArticleAnalysis) -> "AnalyzedArticle":
        location = analysis.location
        if raw.region and location.state == UNKNOWN:
            location = location.model_copy(update={"state": raw.region})
        return cls(
            id=article_id,
            **raw.model_dump(),
            **analysis.model_dump(exclude={"location"}),
            location=location,
        )


class GenerativeJudgment(WireModel):
    score: int = Field(DEFAULT_CREDIBILITY, ge=0, le=100)
    verdict: str = "unknown"
    explanation: str = Field("", exclude=True)
    red_flags: list[str] = Field(default_factory=list, exclude=True)


class ClassifierJudgment(WireModel):
    label: str = "unknown"
    confidence: float = Field(0.5, ge=0.0, le=1.0)


class EnsembleModels(WireModel):
    generative: GenerativeJudgment
    classifier: ClassifierJudgment


class EnsembleResult(WireModel):
    credibility_score: int = Field(..., ge=0, le=100)
    verdict: Verdict
    explanation: str
    red_flags: list[str] = Field(default_factory=list)
    bert_confidence: float
    bert_label: str
    models: EnsembleModels


class CacheEntry(WireModel):
    scope: str
    articles: list[AnalyzedArticle]
    fetched_at: datetime
    content_hash: str


class FetchLogRecord(WireModel):
    scope: str
    fetched_at: datetime
    count: int


class StateNews(WireModel):
    state: str
    title: str = ""
    description: str = ""
    url: str = ""
    image_url: str = ""
    source: str = UNKNOWN
    published_at: datetime | None = None


# Request / response payloads ------------------------------------------------


class FetchNewsRequest(WireModel):
    query: str | None = None
    category: Category | None = None
    max: int | None = None
    force_refresh: bool = False


class FetchNewsResponse(WireModel):
    total_articles: int
    articles: list[AnalyzedArticle]
    source: str
    cached: bool = False
    unchanged: bool = False
    stale: bool = False


class ArticleText(WireModel):
    title: str = ""
    description: str = ""
    content: str = ""

    @property
    def text(self) -> str:
        return self.content or self.description or self.title


class CredibilityRequest(ArticleText):
    kind: Literal["credibility"] = Field(
        "credibility", validation_alias=AliasChoices("kind", "type")
    )


class SummaryRequest(ArticleText):
    kind: Literal["summary"] = Field("summary", validation_alias=AliasChoices("kind", "type"))


class FullAnalysisRequest(WireModel):
    kind: Literal["full-analysis"] = Field(
        "full-analysis", validation_alias=AliasChoices("kind", "type")
    )
    articles: list[ArticleText] = Field(default_factory=list)

    @model_validator(mode="before")
    @classmethod
    def _single_article_body(cls, data: Any) -> Any:
        # A lone {title, description, content} body is a batch of one.
        if isinstance(data, dict) and "articles" not in data and data.get("title"):
            fields = {key: data.get(key, "") for key in ("title", "description", "content")}
            return {**data, "articles": [fields]}
        return data


def _analyze_kind(value: Any) -> str | None:
    if isinstance(value, dict):
        kind = value.get("kind") or value.get("type")
        if kind:
            return kind
        return "full-analysis" if isinstance(value.get("articles"), list) else "summary"
    return getattr(value, "kind", None)


AnalyzeRequest = Annotated[
    Union[
        Annotated[CredibilityRequest, Tag("credibility")],
        Annotated[FullAnalysisRequest, Tag("full-analysis")],
        Annotated[SummaryRequest, Tag("summary")],
    ],
    Discriminator(_analyze_kind),
]


class FullAnalysisResponse(WireModel):
    results: list[ArticleAnalysis]


class SummaryResponse(WireModel):
    summary: str = ""
    entities: list[NamedEntity] = Field(default_factory=list)


class StateNewsRequest(WireModel):
    force_refresh: bool = False


class StateNewsResponse(WireModel):
    state_news: list[StateNews]
    cached: bool
    count: int
