"""Retrieval service: scoped similarity search for a user query.

Embeds the query, asks the vector store for the top-k chunks inside the scope with
cosine similarity above a relevance threshold, and returns their texts most
relevant first.

Retrieval never blocks answering: dependency failures degrade to an empty result.
``search`` additionally reports the failure on an explicit error channel so callers
can tell "nothing relevant" apart from "embedding provider down". There is no
fallback to recent chunks when nothing clears the threshold.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from widget_rag.db import session_scope
from widget_rag.embedding import EmbeddingClient
from widget_rag.errors import DependencyError, Unavailable
from widget_rag.obs import span
from widget_rag.scope import Scope
from widget_rag.vector_store import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_MIN_SIMILARITY = 0.25


@dataclass
class RetrievalResult:
    """Chunks retrieved for a query.

    Attributes:
        chunks: Chunk texts in descending similarity order.
        similarities: Similarity of each chunk, aligned with ``chunks``.
        error: The dependency failure that emptied the result, if any.
    """
    chunks: List[str] = field(default_factory=list)
    similarities: List[float] = field(default_factory=list)
    error: Optional[DependencyError] = None

    @property
    def failed(self) -> bool:
        return self.error is not None


class RetrievalService:
    """Scoped top-k retrieval with a relevance cutoff.

    Args:
        session_factory: SQLAlchemy sessionmaker for read sessions.
        embedding_client: Client used to embed queries.
        min_similarity: Chunks at or below this cosine similarity are treated as noise.
    """

    def __init__(
        self,
        session_factory: sessionmaker,
        embedding_client: EmbeddingClient,
        min_similarity: float = DEFAULT_MIN_SIMILARITY,
    ):
        self.session_factory = session_factory
        self.embedding_client = embedding_client
        self.min_similarity = min_similarity

    def search(self, scope: Scope, query: str, k: int = 5) -> RetrievalResult:
        """Retrieve chunks for ``query`` inside ``scope``, reporting failures explicitly."""
        if not query or not query.strip() or k <= 0:
            return RetrievalResult()

        with span("retrieve", {"k": k}):
            try:
                qvec = self.embedding_client.embed(query)
            except DependencyError as exc:
                logger.warning("Query embedding failed, returning no context: %s", exc)
                return RetrievalResult(error=exc)

            try:
                with session_scope(self.session_factory) as db:
                    hits = VectorStore(db).query(scope, qvec, k, self.min_similarity)
            except SQLAlchemyError as exc:
                logger.exception("Vector query failed for %r", scope)
                return RetrievalResult(error=Unavailable(f"vector store query failed: {exc}", provider="database", cause=exc))

        logger.debug("Retrieved %d chunks for %r (best=%.3f)", len(hits), scope, hits[0][1] if hits else 0.0)
        return RetrievalResult(chunks=[t for t, _ in hits], similarities=[s for _, s in hits])

    def retrieve(self, scope: Scope, query: str, k: int = 5) -> List[str]:
        """Return chunk texts most relevant first; empty on no match or on failure."""
        return self.search(scope, query, k).chunks
