"""Process-wide service instances wired from settings.

Each getter builds its object once and reuses it. FastAPI routes depend on these
getters, so tests can swap in fakes through ``app.dependency_overrides``.
"""
from typing import Optional

from widget_rag.config import settings
from widget_rag.db import SessionLocal
from widget_rag.embedding import get_embedding_client
from widget_rag.generation import ChatOrchestrator, OpenAIChatProvider
from widget_rag.ingestion.pipeline import IngestionPipeline
from widget_rag.ingestion.web import RequestsFetcher, scrape_webpage
from widget_rag.locks import make_scan_guard
from widget_rag.retrieval import RetrievalService
from widget_rag.scheduler import RetrainScheduler

_pipeline: Optional[IngestionPipeline] = None
_retrieval: Optional[RetrievalService] = None
_orchestrator: Optional[ChatOrchestrator] = None
_scheduler: Optional[RetrainScheduler] = None
_fetcher: Optional[RequestsFetcher] = None


def get_fetcher() -> RequestsFetcher:
    global _fetcher
    if _fetcher is None:
        _fetcher = RequestsFetcher()
    return _fetcher


def get_pipeline() -> IngestionPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = IngestionPipeline(
            SessionLocal,
            get_embedding_client(),
            chunk_size=settings.CHUNK_SIZE,
            chunk_overlap=settings.CHUNK_OVERLAP,
        )
    return _pipeline


def get_retrieval() -> RetrievalService:
    global _retrieval
    if _retrieval is None:
        _retrieval = RetrievalService(
            SessionLocal, get_embedding_client(), min_similarity=settings.RETRIEVAL_MIN_SIMILARITY
        )
    return _retrieval


def get_orchestrator() -> ChatOrchestrator:
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ChatOrchestrator(get_retrieval(), OpenAIChatProvider(), top_k=settings.TOP_K)
    return _orchestrator


def get_scheduler() -> RetrainScheduler:
    global _scheduler
    if _scheduler is None:
        fetcher = get_fetcher()
        _scheduler = RetrainScheduler(
            SessionLocal,
            get_pipeline(),
            scraper=lambda url: scrape_webpage(url, fetcher),
            guard=make_scan_guard(),
            page_delay=settings.RETRAIN_PAGE_DELAY_SECONDS,
            interval=settings.RETRAIN_INTERVAL_SECONDS,
            initial_delay=settings.RETRAIN_INITIAL_DELAY_SECONDS,
        )
    return _scheduler
