"""
Pytest configuration and shared fixtures for widget_rag tests.

This module provides common fixtures used across all test files:
- An in-memory SQLite engine with the schema created
- Deterministic fake embedding and LLM providers
- Seeded tenants and bots
"""

import os
import sys

import pytest

# Environment setup before any imports
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["OPENAI_API_KEY"] = "sk-test-mock-key-for-unit-tests-only"
os.environ["RETRAIN_ENABLED"] = "false"
os.environ["LOG_LEVEL"] = "WARNING"

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from widget_rag.config import settings  # noqa: E402
from widget_rag.db import init_db  # noqa: E402
from widget_rag.embedding import EmbeddingClient  # noqa: E402
from widget_rag.errors import Unavailable  # noqa: E402
from widget_rag.ingestion.pipeline import IngestionPipeline  # noqa: E402
from widget_rag.models import Bot, Tenant  # noqa: E402


def vec(*values):
    """A full-dimension embedding whose leading components are ``values``."""
    out = [0.0] * settings.EMBEDDING_DIM
    for i, v in enumerate(values):
        out[i] = float(v)
    return out


class FakeEmbeddingProvider:
    """Returns vectors from a lookup table, else a default vector.

    ``fail_calls`` holds 1-based call numbers that raise Unavailable.
    """

    def __init__(self, table=None, default=None, fail_calls=()):
        self.table = dict(table or {})
        self.default = default or vec(1.0)
        self.fail_calls = set(fail_calls)
        self.calls = []

    def embed(self, texts):
        self.calls.append(list(texts))
        if len(self.calls) in self.fail_calls:
            raise Unavailable("embedding service down", provider="fake")
        return [self.table.get(t, self.default) for t in texts]


class FakeLLM:
    def __init__(self, answer="Here is what I found."):
        self.answer = answer
        self.calls = []

    def complete(self, system_prompt, messages):
        self.calls.append((system_prompt, list(messages)))
        return self.answer


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        future=True,
    )
    init_db(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, future=True)


@pytest.fixture
def provider():
    return FakeEmbeddingProvider()


@pytest.fixture
def embedding_client(provider):
    return EmbeddingClient(provider, batch_size=20)


@pytest.fixture
def pipeline(session_factory, embedding_client):
    return IngestionPipeline(session_factory, embedding_client, chunk_size=200, chunk_overlap=0)


@pytest.fixture
def tenant_bots(session_factory):
    """Two tenants; tenant A owns bots 1 and 2, tenant B owns bot 3."""
    with session_factory() as db:
        a = Tenant(name="Acme")
        b = Tenant(name="Globex")
        db.add_all([a, b])
        db.flush()
        bots = [
            Bot(tenant_id=a.id, name="Acme support"),
            Bot(tenant_id=a.id, name="Acme sales"),
            Bot(tenant_id=b.id, name="Globex help"),
        ]
        db.add_all(bots)
        db.commit()
        return {
            "tenant_a": a.id,
            "tenant_b": b.id,
            "bot_a1": bots[0].id,
            "bot_a2": bots[1].id,
            "bot_b": bots[2].id,
        }
