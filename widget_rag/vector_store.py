"""Scoped vector store over the embeddings table.

Every read takes a Scope (ByBot or ByTenant), so there is no way to query across
tenants. Similarity is cosine similarity (1 - pgvector cosine distance).

On PostgreSQL queries are pushed down to pgvector and use the ANN index when one
exists, falling back to a sequential scan otherwise. On other engines (SQLite in
local development and tests) an exact scan is computed in process with numpy.
Each PostgreSQL query first widens the ANN scan for its transaction (see
widget_rag.db.configure_ann_search) so filtered queries still fill k.
"""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
from sqlalchemy import and_, delete, func, select
from sqlalchemy.orm import Session

from widget_rag.db import configure_ann_search
from widget_rag.models import Chunk
from widget_rag.obs import span
from widget_rag.scope import ByBot, ByTenant, Scope

logger = logging.getLogger(__name__)


def _scope_clause(scope: Scope):
    """SQL filter restricting chunks to exactly one bot or one tenant's legacy rows."""
    if isinstance(scope, ByBot):
        return Chunk.bot_id == scope.bot_id
    if isinstance(scope, ByTenant):
        return and_(Chunk.tenant_id == scope.tenant_id, Chunk.bot_id.is_(None))
    raise TypeError(f"unsupported scope: {scope!r}")


def cosine_similarity(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity of two vectors; 0.0 when either has zero norm."""
    denom = float(np.linalg.norm(a) * np.linalg.norm(b))
    if denom <= 1e-12:
        return 0.0
    return float(np.dot(a, b) / denom)


class VectorStore:
    """Insert, query and delete chunk rows through a SQLAlchemy session.

    The store flushes but never commits; transaction boundaries belong to the caller.
    """

    def __init__(self, session: Session):
        self.session = session

    def insert(
        self,
        tenant_id: int,
        bot_id: Optional[int],
        document_id: int,
        chunk_text: str,
        vector: Optional[Sequence[float]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Store a chunk and return its id. A missing vector keeps it out of similarity queries."""
        row = Chunk(
            tenant_id=tenant_id,
            bot_id=bot_id,
            document_id=document_id,
            chunk_text=chunk_text,
            embedding=list(vector) if vector is not None else None,
            meta=dict(metadata or {}),
        )
        self.session.add(row)
        self.session.flush()
        return row.id

    def query(
        self,
        scope: Scope,
        query_vector: Sequence[float],
        k: int,
        min_similarity: float,
    ) -> List[Tuple[str, float]]:
        """Return up to ``k`` (chunk_text, similarity) pairs above ``min_similarity``.

        Results are ordered by descending similarity; ties keep insertion order.
        Rows without an embedding never match.
        """
        if k <= 0:
            return []
        where = _scope_clause(scope)
        with span("vector_store.query", {"k": k, "min_similarity": min_similarity}):
            if self.session.get_bind().dialect.name == "postgresql":
                return self._query_pgvector(where, query_vector, k, min_similarity)
            return self._query_exact(where, query_vector, k, min_similarity)

    def _query_pgvector(self, where, query_vector, k, min_similarity) -> List[Tuple[str, float]]:
        configure_ann_search(self.session)
        distance = Chunk.embedding.cosine_distance(list(query_vector))
        stmt = (
            select(Chunk.id, Chunk.chunk_text, distance.label("distance"))
            .where(where, Chunk.embedding.isnot(None), distance < 1.0 - min_similarity)
            .order_by(distance, Chunk.id)
            .limit(k)
        )
        # Iterative scans return rows in relaxed order
        rows = sorted(self.session.execute(stmt).all(), key=lambda r: (float(r.distance), r.id))
        return [(r.chunk_text, 1.0 - float(r.distance)) for r in rows]

    def _query_exact(self, where, query_vector, k, min_similarity) -> List[Tuple[str, float]]:
        q = np.asarray(query_vector, dtype=np.float32)
        stmt = (
            select(Chunk.id, Chunk.chunk_text, Chunk.embedding)
            .where(where, Chunk.embedding.isnot(None))
            .order_by(Chunk.id)
        )
        scored: List[Tuple[float, int, str]] = []
        for r in self.session.execute(stmt):
            sim = cosine_similarity(q, np.asarray(r.embedding, dtype=np.float32))
            if sim > min_similarity:
                scored.append((sim, r.id, r.chunk_text))
        scored.sort(key=lambda x: (-x[0], x[1]))
        return [(text, sim) for sim, _, text in scored[:k]]

    def count(self, scope: Scope, with_vectors: Optional[bool] = None) -> int:
        """Count chunks in scope, optionally only those with (or without) vectors."""
        stmt = select(func.count(Chunk.id)).where(_scope_clause(scope))
        if with_vectors is True:
            stmt = stmt.where(Chunk.embedding.isnot(None))
        elif with_vectors is False:
            stmt = stmt.where(Chunk.embedding.is_(None))
        return int(self.session.execute(stmt).scalar() or 0)

    def delete_by_document(self, document_id: int) -> int:
        result = self.session.execute(delete(Chunk).where(Chunk.document_id == document_id))
        return result.rowcount or 0

    def delete_by_bot(self, bot_id: int) -> int:
        result = self.session.execute(delete(Chunk).where(Chunk.bot_id == bot_id))
        logger.info("Deleted %d chunks for bot %s", result.rowcount or 0, bot_id)
        return result.rowcount or 0
