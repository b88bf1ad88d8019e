"""Pydantic request/response schemas for the API.

Defines the public contracts used by the FastAPI endpoints:
- TextDocumentRequest / WebsiteRequest / YoutubeRequest: ingestion inputs.
- IngestResponse / WebsiteIngestResponse: stored and embedded chunk counts.
- ChatRequest / ChatResponse: chat widget exchange.
- RetrainResponse: summary of a manually triggered retrain scan.
"""
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field


class TextDocumentRequest(BaseModel):
    title: str = Field(default="Untitled", max_length=500)
    content: str = Field(..., description="Raw document text")
    metadata: Dict[str, Any] = Field(default_factory=dict)


class WebsiteRequest(BaseModel):
    """Scrape one page, or crawl the site starting from it when ``crawl`` is set."""
    url: str = Field(..., min_length=1)
    crawl: bool = False
    max_pages: Optional[int] = Field(default=None, ge=1, le=50)


class YoutubeRequest(BaseModel):
    url: str = Field(..., min_length=1, description="YouTube URL or bare video id")


class IngestResponse(BaseModel):
    """Result of storing one document.

    Attributes:
        document_id: Id of the stored document.
        chunks_stored: Chunks written.
        chunks_embedded: Chunks written with a vector; lower than chunks_stored when degraded.
        degraded: True when some chunks have no vector.
    """
    document_id: int
    chunks_stored: int
    chunks_embedded: int
    degraded: bool = False


class WebsiteIngestResponse(BaseModel):
    pages: List[IngestResponse]


class ChatMessage(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatRequest(BaseModel):
    message: str = Field(..., min_length=1, description="Visitor message")
    history: List[ChatMessage] = Field(default_factory=list)


class ChatResponse(BaseModel):
    """Assistant reply.

    Attributes:
        answer: Assistant text.
        context_found: Whether the knowledge base had relevant content.
        retrieval_degraded: True when retrieval failed rather than found nothing.
    """
    answer: str
    context_found: bool
    retrieval_degraded: bool = False


class BotRetrainSummary(BaseModel):
    bot_id: int
    status: str
    pages_total: int
    pages_updated: int
    errors: List[str] = Field(default_factory=list)


class RetrainResponse(BaseModel):
    skipped: bool = False
    slot: Optional[str] = None
    bots: List[BotRetrainSummary] = Field(default_factory=list)
