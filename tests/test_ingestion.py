"""
Tests for the ingestion pipeline.
"""

import pytest
from sqlalchemy import select

from conftest import FakeEmbeddingProvider, vec
from widget_rag.embedding import EmbeddingClient
from widget_rag.errors import InputError
from widget_rag.ingestion.pipeline import IngestionPipeline, IngestRequest
from widget_rag.models import Chunk, Document
from widget_rag.scope import ByBot, ByTenant
from widget_rag.vector_store import VectorStore

FACTS = " ".join(f"Fact {i} is here." for i in range(100))


def _chunks(session_factory, document_id):
    with session_factory() as db:
        return db.execute(
            select(Chunk).where(Chunk.document_id == document_id).order_by(Chunk.id)
        ).scalars().all()


class TestIngest:
    def test_stores_document_and_embedded_chunks(self, pipeline, session_factory, tenant_bots):
        result = pipeline.ingest(
            IngestRequest(
                tenant_id=tenant_bots["tenant_a"],
                bot_id=tenant_bots["bot_a1"],
                title="Opening hours",
                content="We open at nine. We close at six. " * 10,
                metadata={"source": "manual"},
            )
        )

        assert result.chunks_stored > 1
        assert result.chunks_embedded == result.chunks_stored
        assert result.degraded is False

        doc = pipeline.get_document(result.document_id)
        assert doc.title == "Opening hours"
        assert doc.bot_id == tenant_bots["bot_a1"]
        assert doc.meta == {"source": "manual"}

    def test_chunk_metadata_carries_index_and_total(self, pipeline, session_factory, tenant_bots):
        result = pipeline.ingest(
            IngestRequest(
                tenant_id=tenant_bots["tenant_a"],
                bot_id=tenant_bots["bot_a1"],
                content=FACTS,
                metadata={"source": "manual"},
            )
        )
        rows = _chunks(session_factory, result.document_id)
        assert len(rows) == result.chunks_stored
        for i, row in enumerate(rows):
            assert row.meta == {"source": "manual", "chunkIndex": i, "totalChunks": result.chunks_stored}
            assert row.tenant_id == tenant_bots["tenant_a"]
            assert row.bot_id == tenant_bots["bot_a1"]

    def test_legacy_content_without_bot(self, pipeline, session_factory, tenant_bots):
        result = pipeline.ingest(IngestRequest(tenant_id=tenant_bots["tenant_a"], content="Legacy fact."))
        with session_factory() as db:
            store = VectorStore(db)
            assert store.count(ByTenant(tenant_bots["tenant_a"])) == result.chunks_stored == 1
            assert store.count(ByBot(tenant_bots["bot_a1"])) == 0

    def test_failed_sub_batch_is_stored_without_vectors(self, session_factory, tenant_bots):
        provider = FakeEmbeddingProvider(fail_calls={2})
        pipeline = IngestionPipeline(session_factory, EmbeddingClient(provider, batch_size=20), chunk_size=20)

        result = pipeline.ingest(
            IngestRequest(tenant_id=tenant_bots["tenant_a"], bot_id=tenant_bots["bot_a1"], content=FACTS)
        )

        assert result.chunks_stored == 100
        assert result.chunks_embedded == 80
        assert result.degraded is True
        with session_factory() as db:
            store = VectorStore(db)
            scope = ByBot(tenant_bots["bot_a1"])
            assert store.count(scope) == 100
            assert store.count(scope, with_vectors=True) == 80
            hits = store.query(scope, vec(1.0), k=100, min_similarity=-1)
            assert len(hits) == 80
        rows = _chunks(session_factory, result.document_id)
        assert all(r.embedding is None for r in rows[20:40])
        assert all(r.embedding is not None for r in rows[:20] + rows[40:])
        assert {t for t, _ in hits} == {r.chunk_text for r in rows if r.embedding is not None}

    def test_empty_content_stores_document_with_no_chunks(self, pipeline, provider, session_factory, tenant_bots):
        result = pipeline.ingest(IngestRequest(tenant_id=tenant_bots["tenant_a"], content="   \n "))
        assert result.chunks_stored == 0
        assert result.chunks_embedded == 0
        assert provider.calls == []
        assert pipeline.get_document(result.document_id) is not None

    def test_invalid_content_type_writes_nothing(self, pipeline, session_factory, tenant_bots):
        with pytest.raises(InputError):
            pipeline.ingest(IngestRequest(tenant_id=tenant_bots["tenant_a"], content="x", content_type="pdf"))
        with session_factory() as db:
            assert db.execute(select(Document)).scalars().all() == []

    def test_missing_tenant_is_rejected(self, pipeline):
        with pytest.raises(InputError):
            pipeline.ingest(IngestRequest(tenant_id=None, content="x"))


class TestDelete:
    def test_delete_document_removes_chunks(self, pipeline, session_factory, tenant_bots):
        result = pipeline.ingest(
            IngestRequest(tenant_id=tenant_bots["tenant_a"], bot_id=tenant_bots["bot_a1"], content=FACTS)
        )
        assert pipeline.delete_document(result.document_id) is True
        assert pipeline.get_document(result.document_id) is None
        assert _chunks(session_factory, result.document_id) == []

    def test_delete_missing_document(self, pipeline):
        assert pipeline.delete_document(999) is False

    def test_delete_bot_content_keeps_other_bots(self, pipeline, session_factory, tenant_bots):
        tenant = tenant_bots["tenant_a"]
        pipeline.ingest(IngestRequest(tenant_id=tenant, bot_id=tenant_bots["bot_a1"], content="One. Two."))
        pipeline.ingest(IngestRequest(tenant_id=tenant, bot_id=tenant_bots["bot_a1"], content="Three."))
        kept = pipeline.ingest(IngestRequest(tenant_id=tenant, bot_id=tenant_bots["bot_a2"], content="Four."))

        assert pipeline.delete_bot_content(tenant_bots["bot_a1"]) == 2
        with session_factory() as db:
            store = VectorStore(db)
            assert store.count(ByBot(tenant_bots["bot_a1"])) == 0
            assert store.count(ByBot(tenant_bots["bot_a2"])) == kept.chunks_stored
