"""Embedding client wrapping an injectable embedding provider.

Provides:
- EmbeddingProvider: the interface any embedding backend implements.
- OpenAIEmbeddingProvider: default provider using OpenAI's embeddings API, with SDK
  errors classified into the DependencyError taxonomy.
- EmbeddingClient: preprocessing, sub-batching and result validation.
- get_embedding_client: cached default client built from settings.

The client performs no retries; callers decide on retry/backoff or degradation.
"""
from typing import Iterator, List, Optional, Protocol, Sequence, Tuple

import openai
from openai import OpenAI

from widget_rag.config import settings
from widget_rag.errors import (
    AuthFailed,
    DependencyError,
    EmptyInputError,
    RateLimited,
    Unavailable,
    Unknown,
)
from widget_rag.obs import span

Vector = List[float]


class EmbeddingProvider(Protocol):
    def embed(self, texts: Sequence[str]) -> List[Vector]:
        ...


def classify_openai_error(exc: Exception) -> DependencyError:
    """Map an OpenAI SDK exception onto the DependencyError taxonomy."""
    if isinstance(exc, openai.RateLimitError):
        return RateLimited(f"OpenAI rate limit: {exc}", provider="openai", cause=exc)
    if isinstance(exc, (openai.AuthenticationError, openai.PermissionDeniedError)):
        return AuthFailed(f"OpenAI rejected credentials: {exc}", provider="openai", cause=exc)
    # APITimeoutError subclasses APIConnectionError
    if isinstance(exc, (openai.APIConnectionError, openai.InternalServerError)):
        return Unavailable(f"OpenAI unavailable: {exc}", provider="openai", cause=exc)
    return Unknown(f"OpenAI request failed: {exc}", provider="openai", cause=exc)


class OpenAIEmbeddingProvider:
    """Embeddings via the OpenAI API.

    The SDK's built-in retries are disabled so that failures surface to the caller
    immediately with a typed error.
    """

    def __init__(self, client: Optional[OpenAI] = None, model: Optional[str] = None):
        self._client = client or OpenAI(
            api_key=settings.OPENAI_API_KEY,
            timeout=settings.OPENAI_TIMEOUT_SECONDS,
            max_retries=0,
        )
        self.model = model or settings.OPENAI_EMBEDDING_MODEL

    def embed(self, texts: Sequence[str]) -> List[Vector]:
        try:
            resp = self._client.embeddings.create(model=self.model, input=list(texts))
        except openai.OpenAIError as exc:
            raise classify_openai_error(exc) from exc
        return [d.embedding for d in resp.data]


def preprocess(text: str) -> str:
    """Collapse newlines to spaces and trim."""
    return text.replace("\r\n", " ").replace("\n", " ").replace("\r", " ").strip()


class EmbeddingClient:
    """Batching front-end over an EmbeddingProvider.

    Args:
        provider: Backend that turns texts into vectors.
        batch_size: Maximum number of texts per provider request.
    """

    def __init__(self, provider: EmbeddingProvider, batch_size: int = 100):
        if batch_size <= 0:
            raise ValueError("batch_size must be positive")
        self.provider = provider
        self.batch_size = batch_size

    def sub_batches(self, texts: Sequence[str]) -> Iterator[Tuple[int, Sequence[str]]]:
        """Yield ``(offset, slice)`` pairs of at most ``batch_size`` texts."""
        for start in range(0, len(texts), self.batch_size):
            yield start, texts[start:start + self.batch_size]

    def embed_batch(self, texts: Sequence[str]) -> List[Vector]:
        """Embed texts, returning one vector per input in the same order.

        Args:
            texts: Input strings; each is preprocessed before sending.

        Returns:
            List[Vector]: Vectors aligned with ``texts``.

        Raises:
            EmptyInputError: If any text is empty after preprocessing. No request is made.
            DependencyError: If any provider request fails; the whole call fails.
        """
        if not texts:
            return []
        cleaned = [preprocess(t) for t in texts]
        empty = [i for i, t in enumerate(cleaned) if not t]
        if empty:
            raise EmptyInputError(f"cannot embed empty text at positions {empty}")

        vectors: List[Vector] = []
        for start, batch in self.sub_batches(cleaned):
            with span("embedding.batch", {"size": len(batch), "offset": start}):
                result = self.provider.embed(batch)
            if len(result) != len(batch):
                raise Unknown(
                    f"provider returned {len(result)} vectors for {len(batch)} texts",
                    provider="embedding",
                )
            vectors.extend(list(v) for v in result)
        return vectors

    def embed(self, text: str) -> Vector:
        """Embed a single text; see ``embed_batch`` for error semantics."""
        return self.embed_batch([text])[0]


_client: Optional[EmbeddingClient] = None


def get_embedding_client() -> EmbeddingClient:
    """Return a cached EmbeddingClient backed by OpenAI.

    Returns:
        EmbeddingClient: A singleton-like client reused across calls.
    """
    global _client
    if _client is None:
        _client = EmbeddingClient(OpenAIEmbeddingProvider(), batch_size=settings.EMBEDDING_BATCH_SIZE)
    return _client
