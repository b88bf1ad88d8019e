"""Database setup and session utilities for SQLAlchemy.

This module centralizes engine/session initialization, metadata base, and helpers:
- init_db: Ensures the pgvector extension exists, creates required tables, and
  attempts to build the vector similarity index over embeddings.embedding.
- ensure_vector_index: IVFFlat when enough rows exist, else HNSW, else deferred.
  A missing index only means exhaustive scans; queries never depend on it.
- configure_ann_search: per-transaction ANN breadth for scoped queries. Tenant and
  bot filters run after the index scan, so the pgvector defaults (ivfflat.probes=1,
  hnsw.ef_search=40) can starve a small bot of results on a shared table. Queries
  raise them to settings.VECTOR_IVFFLAT_PROBES and VECTOR_HNSW_EF_SEARCH with
  SET LOCAL, and on pgvector 0.8+ enable iterative_scan = relaxed_order so the scan
  keeps going until enough rows pass the filter (VECTOR_ITERATIVE_SCAN).
- session_scope: Context-managed transactional scope for imperative workflows.
- get_db: FastAPI dependency to yield a per-request SQLAlchemy Session.

Configuration is read from widget_rag.config.settings.DATABASE_URL.
"""
import logging
from contextlib import contextmanager
from typing import Dict, Generator, List, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Engine
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import declarative_base, sessionmaker

from widget_rag.config import settings

logger = logging.getLogger(__name__)

# SQLAlchemy setup
engine = create_engine(settings.DATABASE_URL, pool_pre_ping=True, future=True)
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine, future=True)
Base = declarative_base()

IVFFLAT_INDEX = "idx_embeddings_vector"
HNSW_INDEX = "idx_embeddings_vector_hnsw"


def init_db(bind: Optional[Engine] = None) -> str:
    """Initialize database extensions, tables, and vector indexes.

    Idempotent and safe to run multiple times.

    Args:
        bind: Engine to initialize; defaults to the module engine.

    Returns:
        str: The vector index status reported by ensure_vector_index.
    """
    bind = bind or engine
    if bind.dialect.name == "postgresql":
        with bind.connect() as conn:
            conn.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
            conn.commit()

    # Import models after Base is defined
    from widget_rag import models  # noqa: F401

    Base.metadata.create_all(bind=bind)
    return ensure_vector_index(bind)


def _index_exists(conn, name: str) -> bool:
    row = conn.execute(text("SELECT 1 FROM pg_indexes WHERE indexname = :name"), {"name": name}).first()
    return row is not None


def ensure_vector_index(bind: Optional[Engine] = None, lists: Optional[int] = None) -> str:
    """Create an approximate-nearest-neighbour index over chunk embeddings if possible.

    IVFFlat clusters existing rows, so it is only attempted once at least ``lists``
    embedded rows exist. Otherwise HNSW is tried. If neither can be built the index
    is deferred to a later call.

    Args:
        bind: Engine to use; defaults to the module engine.
        lists: IVFFlat list count; defaults to settings.VECTOR_INDEX_LISTS.

    Returns:
        str: One of "ivfflat", "hnsw", "deferred", or "unsupported" (non-PostgreSQL).
    """
    bind = bind or engine
    if bind.dialect.name != "postgresql":
        return "unsupported"
    lists = lists or settings.VECTOR_INDEX_LISTS

    with bind.connect() as conn:
        if _index_exists(conn, IVFFLAT_INDEX):
            return "ivfflat"
        if _index_exists(conn, HNSW_INDEX):
            return "hnsw"
        rows = conn.execute(text("SELECT count(*) FROM embeddings WHERE embedding IS NOT NULL")).scalar() or 0

    if rows >= lists:
        try:
            with bind.begin() as conn:
                conn.execute(
                    text(
                        f"CREATE INDEX IF NOT EXISTS {IVFFLAT_INDEX} ON embeddings "
                        f"USING ivfflat (embedding vector_cosine_ops) WITH (lists = {int(lists)})"
                    )
                )
            logger.info("Created IVFFlat vector index (lists=%d, rows=%d)", lists, rows)
            return "ivfflat"
        except DBAPIError as exc:
            logger.warning("IVFFlat index creation failed, trying HNSW: %s", exc)
    else:
        logger.info("IVFFlat index skipped (need %d embedded rows, have %d), trying HNSW", lists, rows)

    try:
        with bind.begin() as conn:
            conn.execute(
                text(f"CREATE INDEX IF NOT EXISTS {HNSW_INDEX} ON embeddings USING hnsw (embedding vector_cosine_ops)")
            )
        logger.info("Created HNSW vector index")
        return "hnsw"
    except DBAPIError as exc:
        logger.warning("Vector index deferred, queries use exhaustive scan: %s", exc)
        return "deferred"


# Extension version per database URL; it only changes with ALTER EXTENSION
_extension_versions: Dict[str, Optional[str]] = {}


def _version_tuple(version: Optional[str]) -> Tuple[int, ...]:
    parts = []
    for piece in (version or "").split("."):
        if not piece.isdigit():
            break
        parts.append(int(piece))
    return tuple(parts)


def ann_search_statements(
    extension_version: Optional[str],
    probes: Optional[int] = None,
    ef_search: Optional[int] = None,
    iterative: Optional[bool] = None,
) -> List[str]:
    """SET LOCAL statements that widen ANN scans for filtered queries.

    Args:
        extension_version: Installed pgvector version, e.g. "0.8.0"; None if unknown.
        probes: IVFFlat lists scanned; defaults to settings.VECTOR_IVFFLAT_PROBES.
        ef_search: HNSW candidate list size; defaults to settings.VECTOR_HNSW_EF_SEARCH.
        iterative: Enable iterative index scans where supported; defaults to
            settings.VECTOR_ITERATIVE_SCAN.

    Returns:
        List[str]: Statements to run inside the query's transaction.
    """
    probes = int(probes or settings.VECTOR_IVFFLAT_PROBES)
    ef_search = int(ef_search or settings.VECTOR_HNSW_EF_SEARCH)
    iterative = settings.VECTOR_ITERATIVE_SCAN if iterative is None else iterative

    # SET does not accept bind parameters
    statements = [
        f"SET LOCAL ivfflat.probes = {probes}",
        f"SET LOCAL hnsw.ef_search = {ef_search}",
    ]
    if iterative and _version_tuple(extension_version) >= (0, 8):
        statements += [
            "SET LOCAL ivfflat.iterative_scan = relaxed_order",
            "SET LOCAL hnsw.iterative_scan = relaxed_order",
        ]
    return statements


def vector_extension_version(session) -> Optional[str]:
    """Installed pgvector version for the session's database, cached per URL."""
    key = str(session.get_bind().url)
    if key not in _extension_versions:
        _extension_versions[key] = session.execute(
            text("SELECT extversion FROM pg_extension WHERE extname = 'vector'")
        ).scalar()
    return _extension_versions[key]


def configure_ann_search(session) -> None:
    """Apply ann_search_statements to the session's current transaction (PostgreSQL only)."""
    for statement in ann_search_statements(vector_extension_version(session)):
        session.execute(text(statement))


@contextmanager
def session_scope(factory: Optional[sessionmaker] = None):
    """Provide a transactional scope around a series of operations.

    Yields:
        Session: A SQLAlchemy session bound to the configured engine.

    Notes:
        - Commits on successful exit.
        - Rolls back and re-raises on exception.
        - Always closes the session at the end.
    """
    session = (factory or SessionLocal)()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_db() -> Generator:
    """FastAPI dependency that yields a SQLAlchemy Session.

    Yields:
        Session: A session tied to the current request lifecycle.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
