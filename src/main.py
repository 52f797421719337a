"""
NewsGlobe API - news aggregation, AI enrichment and credibility checks
Serves analysed articles for the globe UI and on-demand article analysis
"""

from fastapi import Body, FastAPI, HTTPException, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import TypeAdapter, ValidationError
from typing import Optional, Dict, Any
from datetime import datetime, timedelta, timezone
from contextlib import asynccontextmanager
import logging
import time
import os

from dotenv import load_dotenv
from data_loader import load_regional_config
from newsglobe.aggregator import NewsAggregator
from newsglobe.batch_analyzer import BatchAnalysisClient
from newsglobe.cache import NewsCache
from newsglobe.classifier import FakeNewsClassifier
from newsglobe.config import Settings, get_settings
from newsglobe.ensemble import CredibilityEnsemble
from newsglobe.llm_adapter import GeminiAdapter
from newsglobe.models import (
    AnalyzedArticle,
    AnalyzeRequest,
    FetchNewsRequest,
    FetchNewsResponse,
    StateNewsRequest,
    StateNewsResponse,
)
from newsglobe.regional import RegionalDigestAdapter, RegionalDigestBuilder
from newsglobe.retry import RetryPolicy
from newsglobe.service import AnalysisService, NewsService, StateNewsService
from newsglobe.sources import GNewsAdapter, GoogleNewsRSSAdapter, NewsDataAdapter
from newsglobe.storage import StorageManager


# Logging configuration
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    handlers=[
        logging.StreamHandler(),
        logging.FileHandler('logs/newsglobe.log') if os.path.exists('logs') else logging.NullHandler()
    ]
)

logger = logging.getLogger(__name__)

# Load environment variables early so Settings picks them up
load_dotenv()

VERSION = "1.0.0"
TITLE = "NewsGlobe API"
DESCRIPTION = "News aggregation with AI analysis and credibility scoring"

ANALYZE_REQUEST = TypeAdapter(AnalyzeRequest)


# Metrics tracker
class Metrics:
    """Track service metrics"""

    def __init__(self):
        self.total_requests = 0
        self.successful_requests = 0
        self.failed_requests = 0
        self.total_processing_time = 0.0
        self.by_endpoint: Dict[str, int] = {}
        self.start_time = time.time()

    def record_request(self, endpoint: str, success: bool, processing_time: float):
        """Record request outcome"""
        self.total_requests += 1
        self.by_endpoint[endpoint] = self.by_endpoint.get(endpoint, 0) + 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1
        self.total_processing_time += processing_time

    def get_stats(self) -> Dict[str, Any]:
        """Get current metrics"""
        uptime = time.time() - self.start_time
        avg_time = self.total_processing_time / self.total_requests if self.total_requests > 0 else 0

        return {
            "total_requests": self.total_requests,
            "successful_requests": self.successful_requests,
            "failed_requests": self.failed_requests,
            "success_rate": f"{(self.successful_requests / self.total_requests * 100):.1f}%" if self.total_requests > 0 else "N/A",
            "average_processing_time": f"{avg_time:.2f}s",
            "requests_by_endpoint": dict(self.by_endpoint),
            "uptime_seconds": int(uptime)
        }


metrics = Metrics()


def build_services(settings: Settings, storage: StorageManager) -> Dict[str, Any]:
    """Wire providers, models and caches from settings."""
    retry = RetryPolicy.from_settings(settings)
    llm = GeminiAdapter()
    regional = load_regional_config(settings.data_dir)
    digest = RegionalDigestBuilder(
        storage,
        regional,
        GNewsAdapter(country=regional.country),
        ttl=timedelta(hours=settings.digest_ttl_hours),
    )
    aggregator = NewsAggregator(
        [GNewsAdapter(), NewsDataAdapter(), RegionalDigestAdapter(digest)],
        fallback=GoogleNewsRSSAdapter(),
    )
    analyzer = BatchAnalysisClient(llm, retry=retry)
    cache = NewsCache(storage, ttl=timedelta(hours=settings.cache_ttl_hours))
    ensemble = CredibilityEnsemble(llm, FakeNewsClassifier(), retry=retry)
    return {
        "news_service": NewsService(
            aggregator,
            analyzer,
            cache,
            max_articles=settings.max_articles,
            pipeline_timeout=settings.pipeline_timeout,
        ),
        "analysis_service": AnalysisService(llm, ensemble, analyzer, retry=retry),
        "state_news_service": StateNewsService(digest),
    }


# Application lifespan
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events"""
    settings = get_settings()
    logger.info("=" * 60)
    logger.info(f"Starting {TITLE} v{VERSION}")
    logger.info("=" * 60)

    storage = getattr(app.state, "storage", None)
    if storage is None:
        storage = StorageManager(settings.redis_url)
        app.state.storage = storage
    await storage.connect()

    # Services pre-set on app.state (tests) are left in place
    if getattr(app.state, "news_service", None) is None:
        for name, service in build_services(settings, storage).items():
            setattr(app.state, name, service)

    logger.info(f"Storage backend: {storage.backend}")
    logger.info(f"Generative model configured: {bool(settings.gemini_api_key)}")
    logger.info(f"Classifier configured: {bool(settings.hf_api_key)}")
    logger.info("Service ready")

    yield

    logger.info("Shutting down...")
    await storage.close()
    logger.info("Shutdown complete")


# FastAPI application
app = FastAPI(
    title=TITLE,
    version=VERSION,
    description=DESCRIPTION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_cors_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Global exception handler"""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error": "Internal server error",
            "detail": str(exc) if get_settings().debug else "An error occurred"
        }
    )


# API endpoints
@app.get("/")
async def root(request: Request):
    """Root endpoint with service information"""
    return {
        "service": TITLE,
        "version": VERSION,
        "status": "operational",
        "endpoints": {
            "fetch_news": "POST /fetch-news",
            "analyze_article": "POST /analyze-article",
            "fetch_state_news": "POST /fetch-state-news",
            "article": "GET /articles/{article_id}",
            "health": "GET /health"
        },
        "storage": request.app.state.storage.backend
    }


@app.get("/health")
async def health_check(request: Request):
    """Detailed health check"""
    storage: StorageManager = request.app.state.storage
    storage_healthy = await storage.ping()
    hours = await request.app.state.news_service.cache.hours_since_last_fetch()

    return {
        "status": "healthy" if storage_healthy else "degraded",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "components": {
            "api": "healthy",
            "storage": storage.backend if storage_healthy else "unhealthy",
        },
        "hours_since_last_fetch": round(hours, 2) if hours is not None else None,
        "metrics": metrics.get_stats()
    }


@app.post("/fetch-news", response_model=FetchNewsResponse)
async def fetch_news(request: Request, request_body: Optional[FetchNewsRequest] = None):
    """Analysed articles for a scope, served from cache while fresh"""
    start = time.time()
    success = False
    try:
        result = await request.app.state.news_service.fetch_news(request_body or FetchNewsRequest())
        success = result.total_articles > 0
        return result
    finally:
        metrics.record_request("fetch-news", success, time.time() - start)


@app.post("/analyze-article")
async def analyze_article(request: Request, payload: Dict[str, Any] = Body(...)):
    """Credibility ensemble, batch analysis or summary, by request kind"""
    try:
        analysis_request = ANALYZE_REQUEST.validate_python(payload)
    except ValidationError as exc:
        raise HTTPException(
            status_code=422,
            detail=exc.errors(include_url=False, include_context=False),
        )

    start = time.time()
    success = False
    try:
        result = await request.app.state.analysis_service.analyze(analysis_request)
        success = True
        return result.model_dump(mode="json", by_alias=True)
    finally:
        metrics.record_request("analyze-article", success, time.time() - start)


@app.post("/fetch-state-news", response_model=StateNewsResponse)
async def fetch_state_news(request: Request, request_body: Optional[StateNewsRequest] = None):
    """One headline per state, refreshed at most once per digest window"""
    start = time.time()
    success = False
    try:
        body = request_body or StateNewsRequest()
        result = await request.app.state.state_news_service.fetch_state_news(body.force_refresh)
        success = True
        return result
    finally:
        metrics.record_request("fetch-state-news", success, time.time() - start)


@app.get("/articles/{article_id}", response_model=AnalyzedArticle)
async def get_article(request: Request, article_id: str):
    """Cached analysed article by id"""
    article = await request.app.state.news_service.get_article(article_id)
    if article is None:
        raise HTTPException(status_code=404, detail="Article not found")
    return article


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
        log_level="info"
    )
