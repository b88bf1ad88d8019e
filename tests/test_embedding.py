"""
Tests for the embedding client and OpenAI error classification.
"""

import httpx
import openai
import pytest

from conftest import FakeEmbeddingProvider, vec
from widget_rag.embedding import EmbeddingClient, classify_openai_error, preprocess
from widget_rag.errors import (
    AuthFailed,
    EmptyInputError,
    RateLimited,
    Unavailable,
    Unknown,
)

_REQUEST = httpx.Request("POST", "https://api.openai.com/v1/embeddings")


def _status_error(cls, status):
    return cls("boom", response=httpx.Response(status, request=_REQUEST), body=None)


class TestPreprocess:
    def test_newlines_become_spaces(self):
        assert preprocess("line one\nline two\r\nthree") == "line one line two three"

    def test_trims(self):
        assert preprocess("  padded \n") == "padded"


class TestEmbedBatch:
    def test_one_vector_per_input_in_order(self):
        provider = FakeEmbeddingProvider(table={"a": vec(1.0), "b": vec(0.0, 1.0)})
        client = EmbeddingClient(provider, batch_size=10)
        out = client.embed_batch(["a", "b", "a"])
        assert out == [vec(1.0), vec(0.0, 1.0), vec(1.0)]

    def test_texts_are_preprocessed_before_sending(self):
        provider = FakeEmbeddingProvider()
        EmbeddingClient(provider).embed_batch(["hello\nworld  "])
        assert provider.calls == [["hello world"]]

    def test_splits_into_sub_batches(self):
        provider = FakeEmbeddingProvider()
        client = EmbeddingClient(provider, batch_size=3)
        out = client.embed_batch([f"t{i}" for i in range(7)])
        assert len(out) == 7
        assert [len(c) for c in provider.calls] == [3, 3, 1]

    def test_empty_list_makes_no_request(self):
        provider = FakeEmbeddingProvider()
        assert EmbeddingClient(provider).embed_batch([]) == []
        assert provider.calls == []

    def test_empty_text_is_rejected_before_any_request(self):
        provider = FakeEmbeddingProvider()
        with pytest.raises(EmptyInputError) as exc_info:
            EmbeddingClient(provider).embed_batch(["fine", " \n ", "also fine"])
        assert "[1]" in str(exc_info.value)
        assert provider.calls == []

    def test_sub_batch_failure_fails_the_whole_call(self):
        provider = FakeEmbeddingProvider(fail_calls={2})
        client = EmbeddingClient(provider, batch_size=2)
        with pytest.raises(Unavailable) as exc_info:
            client.embed_batch(["a", "b", "c", "d"])
        assert exc_info.value.retryable is True

    def test_length_mismatch_is_unknown(self):
        class ShortProvider:
            def embed(self, texts):
                return [vec(1.0)]

        with pytest.raises(Unknown):
            EmbeddingClient(ShortProvider()).embed_batch(["a", "b"])

    def test_single_embed(self):
        provider = FakeEmbeddingProvider(table={"q": vec(0.5, 0.5)})
        assert EmbeddingClient(provider).embed("q") == vec(0.5, 0.5)

    def test_batch_size_must_be_positive(self):
        with pytest.raises(ValueError):
            EmbeddingClient(FakeEmbeddingProvider(), batch_size=0)


class TestClassifyOpenAIError:
    def test_rate_limit(self):
        err = classify_openai_error(_status_error(openai.RateLimitError, 429))
        assert isinstance(err, RateLimited)
        assert err.retryable is True
        assert err.provider == "openai"

    def test_authentication(self):
        err = classify_openai_error(_status_error(openai.AuthenticationError, 401))
        assert isinstance(err, AuthFailed)
        assert err.retryable is False

    def test_server_error(self):
        err = classify_openai_error(_status_error(openai.InternalServerError, 500))
        assert isinstance(err, Unavailable)

    def test_connection_error(self):
        err = classify_openai_error(openai.APIConnectionError(request=_REQUEST))
        assert isinstance(err, Unavailable)

    def test_bad_request_is_unknown(self):
        err = classify_openai_error(_status_error(openai.BadRequestError, 400))
        assert isinstance(err, Unknown)
        assert err.retryable is False
