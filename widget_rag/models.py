"""Database ORM models.

Defines persistent entities used by the content pipeline:
- Tenant: a customer account owning bots.
- Bot: a chat widget with its retrain policy (frequency, time slot, last run).
- Document: a unit of ingested content with its immutable raw text.
- Chunk: a slice of a document's text with an optional pgvector embedding.

Foreign keys cascade on delete at the database level. The pipeline still deletes
chunks before their document explicitly so behaviour does not depend on the
engine enforcing foreign keys.
"""

from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, Column, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from widget_rag.config import settings
from widget_rag.db import Base
from widget_rag.utils import utcnow

# JSONB on PostgreSQL, plain JSON elsewhere
JSONType = JSON().with_variant(JSONB(), "postgresql")

CONTENT_TYPES = ("text", "file", "website", "youtube")
RETRAIN_FREQUENCIES = ("none", "daily", "weekly", "monthly")


class Tenant(Base):
    __tablename__ = "tenants"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False)
    created_at = Column(DateTime, default=utcnow, nullable=False)


class Bot(Base):
    """A tenant's chat widget and its retrain policy.

    ``retrain_time`` is an ``HH:00`` UTC slot; ``last_retrained_at`` is set by the
    scheduler whenever a scheduled run is attempted.
    """
    __tablename__ = "bots"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(255), nullable=False)
    instructions = Column(Text, nullable=True)

    retrain_frequency = Column(String(20), nullable=False, default="none")
    retrain_time = Column(String(10), nullable=False, default="03:00")
    last_retrained_at = Column(DateTime, nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_bots_tenant", "tenant_id"),
        Index("idx_bots_retrain_slot", "retrain_time"),
    )


class Document(Base):
    """Ingested content. ``content`` is never edited in place; retrain replaces the row."""
    __tablename__ = "documents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    bot_id = Column(Integer, ForeignKey("bots.id", ondelete="CASCADE"), nullable=True)  # null: legacy tenant-wide

    title = Column(String(500), nullable=True)
    content_type = Column(String(50), nullable=False)
    source_url = Column(Text, nullable=True)
    content = Column(Text, nullable=False, default="")
    meta = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    last_retrained_at = Column(DateTime, nullable=True)

    __table_args__ = (
        Index("idx_documents_tenant", "tenant_id"),
        Index("idx_documents_bot", "bot_id"),
    )


class Chunk(Base):
    """Vector-embedded document chunk used for retrieval.

    Each row carries its scope (tenant_id, bot_id), its parent document, the chunk
    text, per-chunk metadata (chunkIndex, totalChunks and inherited document
    metadata) and an embedding. The embedding is null when generation failed; such
    rows are kept but never returned by similarity queries.

    Notes:
        The embedding dimension is derived from settings.EMBEDDING_DIM and should
        match the embedding model configured in widget_rag.config.Settings.
    """
    __tablename__ = "embeddings"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tenant_id = Column(Integer, ForeignKey("tenants.id", ondelete="CASCADE"), nullable=False)
    bot_id = Column(Integer, ForeignKey("bots.id", ondelete="CASCADE"), nullable=True)
    document_id = Column(Integer, ForeignKey("documents.id", ondelete="CASCADE"), nullable=False)

    chunk_text = Column(Text, nullable=False)
    embedding = Column(Vector(dim=settings.EMBEDDING_DIM), nullable=True)
    meta = Column("metadata", JSONType, nullable=False, default=dict)

    created_at = Column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("idx_embeddings_tenant", "tenant_id"),
        Index("idx_embeddings_bot", "bot_id"),
        Index("idx_embeddings_document", "document_id"),
    )
