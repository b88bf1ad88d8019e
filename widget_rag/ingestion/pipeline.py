"""Ingestion pipeline: raw content to stored, queryable chunks.

Orchestrates the chunker, embedding client and vector store:
1) persist the Document row and commit, so a document id exists even if later
   steps fail (a crash leaves a harmless document with zero or partial chunks,
   never a chunk without its document);
2) chunk the content;
3) embed chunks sub-batch by sub-batch; a failed sub-batch is logged and its
   chunks are stored without vectors instead of aborting the ingestion;
4) insert every chunk with the document metadata plus chunkIndex/totalChunks.

Concurrent ingestion into the same document is not supported; documents are only
replaced wholesale (delete + ingest).
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select
from sqlalchemy.orm import sessionmaker

from widget_rag.chunking import chunk_text
from widget_rag.db import session_scope
from widget_rag.embedding import EmbeddingClient, Vector
from widget_rag.errors import DependencyError, InputError
from widget_rag.models import CONTENT_TYPES, Document
from widget_rag.obs import span
from widget_rag.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class IngestRequest:
    """Content to ingest for a tenant, optionally scoped to one bot."""
    tenant_id: int
    content: str
    content_type: str = "text"
    title: Optional[str] = None
    bot_id: Optional[int] = None
    source_url: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class IngestResult:
    """Outcome of an ingestion.

    Attributes:
        document_id: Id of the persisted Document.
        chunks_stored: Chunks written, with or without a vector.
        chunks_embedded: Chunks written with a vector (searchable by similarity).
    """
    document_id: int
    chunks_stored: int
    chunks_embedded: int

    @property
    def degraded(self) -> bool:
        return self.chunks_embedded < self.chunks_stored


class IngestionPipeline:
    """Turns raw content blobs into Documents and embedded Chunks.

    Args:
        session_factory: SQLAlchemy sessionmaker; each step opens its own session.
        embedding_client: Client used to embed chunks.
        chunk_size: Target maximum chunk length in characters.
        chunk_overlap: Overlap between consecutive chunks in characters.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        embedding_client: EmbeddingClient,
        chunk_size: int = 500,
        chunk_overlap: int = 0,
    ):
        self.session_factory = session_factory
        self.embedding_client = embedding_client
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def _validate(self, req: IngestRequest) -> None:
        if req.tenant_id is None:
            raise InputError("tenant_id is required")
        if req.content_type not in CONTENT_TYPES:
            raise InputError(f"content_type must be one of {CONTENT_TYPES}, got {req.content_type!r}")
        if req.content is None or not isinstance(req.content, str):
            raise InputError("content must be a string")

    def _embed_chunks(self, chunks: List[str]) -> List[Optional[Vector]]:
        """Embed chunks per sub-batch; failed sub-batches yield None vectors."""
        vectors: List[Optional[Vector]] = []
        for offset, batch in self.embedding_client.sub_batches(chunks):
            try:
                vectors.extend(self.embedding_client.embed_batch(batch))
            except DependencyError as exc:
                logger.warning(
                    "Embedding failed for chunks %d-%d (%s); storing them without vectors",
                    offset, offset + len(batch) - 1, exc,
                )
                vectors.extend([None] * len(batch))
        return vectors

    def ingest(self, req: IngestRequest) -> IngestResult:
        """Persist a document and its chunks.

        Raises:
            InputError: If the request is invalid. Nothing is written.
        """
        self._validate(req)
        metadata = dict(req.metadata or {})

        with span("ingest", {"content_type": req.content_type, "chars": len(req.content)}):
            with session_scope(self.session_factory) as db:
                doc = Document(
                    tenant_id=req.tenant_id,
                    bot_id=req.bot_id,
                    title=(req.title or "Untitled")[:500],
                    content_type=req.content_type,
                    source_url=req.source_url,
                    content=req.content,
                    meta=metadata,
                )
                db.add(doc)
                db.flush()
                document_id = doc.id

            chunks = chunk_text(req.content, self.chunk_size, self.chunk_overlap)
            if not chunks:
                logger.info("Stored document %s with 0 chunks (empty content)", document_id)
                return IngestResult(document_id=document_id, chunks_stored=0, chunks_embedded=0)

            vectors = self._embed_chunks(chunks)
            total = len(chunks)
            with session_scope(self.session_factory) as db:
                store = VectorStore(db)
                for i, (content, vec) in enumerate(zip(chunks, vectors)):
                    store.insert(
                        tenant_id=req.tenant_id,
                        bot_id=req.bot_id,
                        document_id=document_id,
                        chunk_text=content,
                        vector=vec,
                        metadata={**metadata, "chunkIndex": i, "totalChunks": total},
                    )

        embedded = sum(1 for v in vectors if v is not None)
        if embedded < total:
            logger.warning("Stored document %s with %d chunks, only %d embedded", document_id, total, embedded)
        else:
            logger.info("Stored document %s with %d chunks", document_id, total)
        return IngestResult(document_id=document_id, chunks_stored=total, chunks_embedded=embedded)

    def delete_document(self, document_id: int) -> bool:
        """Delete a document and its chunks. Returns False if it did not exist."""
        with session_scope(self.session_factory) as db:
            VectorStore(db).delete_by_document(document_id)
            result = db.execute(delete(Document).where(Document.id == document_id))
            return bool(result.rowcount)

    def delete_bot_content(self, bot_id: int) -> int:
        """Delete every document and chunk owned by a bot. Returns documents removed."""
        with session_scope(self.session_factory) as db:
            VectorStore(db).delete_by_bot(bot_id)
            result = db.execute(delete(Document).where(Document.bot_id == bot_id))
            return result.rowcount or 0

    def get_document(self, document_id: int) -> Optional[Document]:
        with session_scope(self.session_factory) as db:
            doc = db.execute(select(Document).where(Document.id == document_id)).scalar_one_or_none()
            if doc is not None:
                db.expunge(doc)
            return doc
