"""FastAPI application entrypoint and routes.

Exposes health, ingestion, chat and manual retrain endpoints, initializes the
database schema at startup and runs the retrain scheduler in the background.
Authentication, billing and presentation live outside this service.
"""
import logging
import os
import shutil
import tempfile

from fastapi import Depends, FastAPI, File, HTTPException, Request, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from widget_rag.config import settings
from widget_rag.db import get_db, init_db
from widget_rag.errors import DependencyError, InputError
from widget_rag.generation import ChatOrchestrator
from widget_rag.ingestion.files import extract_text_from_file, validate_upload
from widget_rag.ingestion.ingest_url import ingest_website, ingest_youtube
from widget_rag.ingestion.pipeline import IngestionPipeline, IngestRequest, IngestResult
from widget_rag.ingestion.web import RequestsFetcher
from widget_rag.models import Bot
from widget_rag.obs import configure_logging
from widget_rag.schemas import (
    BotRetrainSummary,
    ChatRequest,
    ChatResponse,
    IngestResponse,
    RetrainResponse,
    TextDocumentRequest,
    WebsiteIngestResponse,
    WebsiteRequest,
    YoutubeRequest,
)
from widget_rag.scope import scope_for
from widget_rag.services import get_fetcher, get_orchestrator, get_pipeline, get_scheduler

logger = logging.getLogger(__name__)

app = FastAPI(title="Widget RAG API", version="0.1.0")

# The widget is embedded on customer sites
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_credentials=True,
    allow_headers=["*"],
)


@app.on_event("startup")
def on_startup() -> None:
    """Initialize logging, database schema and indexes, and the retrain scheduler."""
    configure_logging()
    status = init_db()
    logger.info("Database ready (vector index: %s)", status)
    if settings.RETRAIN_ENABLED:
        get_scheduler().start()


@app.on_event("shutdown")
def on_shutdown() -> None:
    if settings.RETRAIN_ENABLED:
        get_scheduler().stop()


@app.exception_handler(InputError)
async def input_error_handler(request: Request, exc: InputError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


@app.exception_handler(DependencyError)
async def dependency_error_handler(request: Request, exc: DependencyError) -> JSONResponse:
    content = {"detail": str(exc), "retryable": exc.retryable}
    category = getattr(exc, "category", None)
    if category:
        content["category"] = category
    return JSONResponse(status_code=502, content=content)


def _get_bot(db: Session, bot_id: int) -> Bot:
    bot = db.get(Bot, bot_id)
    if bot is None:
        raise HTTPException(status_code=404, detail="Bot not found")
    return bot


def _to_response(result: IngestResult) -> IngestResponse:
    return IngestResponse(
        document_id=result.document_id,
        chunks_stored=result.chunks_stored,
        chunks_embedded=result.chunks_embedded,
        degraded=result.degraded,
    )


@app.get("/health")
def health():
    """Liveness probe endpoint.

    Returns:
        dict: {"status": "ok"} when the service is running.
    """
    return {"status": "ok"}


@app.post("/bots/{bot_id}/documents", response_model=IngestResponse)
def ingest_text(
    bot_id: int,
    req: TextDocumentRequest,
    db: Session = Depends(get_db),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse:
    bot = _get_bot(db, bot_id)
    result = pipeline.ingest(
        IngestRequest(
            tenant_id=bot.tenant_id,
            bot_id=bot.id,
            title=req.title,
            content_type="text",
            content=req.content,
            metadata=req.metadata,
        )
    )
    return _to_response(result)


@app.post("/bots/{bot_id}/documents/website", response_model=WebsiteIngestResponse)
def ingest_website_route(
    bot_id: int,
    req: WebsiteRequest,
    db: Session = Depends(get_db),
    pipeline: IngestionPipeline = Depends(get_pipeline),
    fetcher: RequestsFetcher = Depends(get_fetcher),
) -> WebsiteIngestResponse:
    """Scrape a page (or crawl its site) and ingest each kept page as a website document."""
    bot = _get_bot(db, bot_id)
    results = ingest_website(pipeline, fetcher, bot.tenant_id, bot.id, req.url, req.crawl, req.max_pages)
    return WebsiteIngestResponse(pages=[_to_response(r) for r in results])


@app.post("/bots/{bot_id}/documents/youtube", response_model=IngestResponse)
def ingest_youtube_route(
    bot_id: int,
    req: YoutubeRequest,
    db: Session = Depends(get_db),
    pipeline: IngestionPipeline = Depends(get_pipeline),
    fetcher: RequestsFetcher = Depends(get_fetcher),
) -> IngestResponse:
    bot = _get_bot(db, bot_id)
    return _to_response(ingest_youtube(pipeline, fetcher, bot.tenant_id, bot.id, req.url))


@app.post("/bots/{bot_id}/documents/file", response_model=IngestResponse)
def ingest_file(
    bot_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    pipeline: IngestionPipeline = Depends(get_pipeline),
) -> IngestResponse:
    """Extract text from an uploaded PDF, Word, TXT or CSV file and ingest it."""
    bot = _get_bot(db, bot_id)
    # Size the spooled upload without reading it into memory
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    validate_upload(file.content_type or "", size)

    suffix = os.path.splitext(file.filename or "")[1]
    fd, path = tempfile.mkstemp(suffix=suffix)
    try:
        with os.fdopen(fd, "wb") as out:
            shutil.copyfileobj(file.file, out)
        text = extract_text_from_file(path, file.content_type or "")
    finally:
        os.unlink(path)
    result = pipeline.ingest(
        IngestRequest(
            tenant_id=bot.tenant_id,
            bot_id=bot.id,
            title=file.filename or "Uploaded file",
            content_type="file",
            content=text,
            metadata={"filename": file.filename, "mimetype": file.content_type},
        )
    )
    return _to_response(result)


@app.delete("/documents/{document_id}")
def delete_document(document_id: int, pipeline: IngestionPipeline = Depends(get_pipeline)):
    if not pipeline.delete_document(document_id):
        raise HTTPException(status_code=404, detail="Document not found")
    return {"deleted": document_id}


@app.post("/bots/{bot_id}/chat", response_model=ChatResponse)
def chat(
    bot_id: int,
    req: ChatRequest,
    db: Session = Depends(get_db),
    orchestrator: ChatOrchestrator = Depends(get_orchestrator),
) -> ChatResponse:
    """Answer a visitor message using the bot's knowledge base."""
    bot = _get_bot(db, bot_id)
    reply = orchestrator.answer(
        scope_for(bot.tenant_id, bot.id),
        req.message,
        history=[m.model_dump() for m in req.history],
        instructions=bot.instructions,
    )
    return ChatResponse(
        answer=reply.answer,
        context_found=reply.context_found,
        retrieval_degraded=reply.retrieval_error is not None,
    )


@app.post("/admin/retrain", response_model=RetrainResponse)
def run_retrain(scheduler=Depends(get_scheduler)) -> RetrainResponse:
    """Run one retrain scan for the current slot now."""
    report = scheduler.run_scheduled_retrain()
    if report is None:
        return RetrainResponse(skipped=True)
    return RetrainResponse(
        slot=report.slot,
        bots=[
            BotRetrainSummary(
                bot_id=b.bot_id,
                status=b.status,
                pages_total=b.pages_total,
                pages_updated=b.pages_updated,
                errors=b.errors,
            )
            for b in report.bots
        ],
    )
