"""
Unit tests for registry_resolver.embeddings.provider module.
"""

from unittest.mock import Mock

import httpx
import openai
import pytest

from registry_resolver.cache import AppCache
from registry_resolver.embeddings import openai_client
from registry_resolver.embeddings import provider as provider_module
from registry_resolver.embeddings.provider import CachedEmbeddingProvider, OpenAIEmbeddingProvider
from registry_resolver.exceptions import ProviderError
from tests.conftest import FakeEmbeddingProvider


class WordEncoding:
    def encode(self, text):
        return text.split()

    def decode(self, tokens):
        return " ".join(tokens)


@pytest.fixture(autouse=True)
def word_encoding(monkeypatch):
    monkeypatch.setattr(openai_client, "_encoding", lambda model: WordEncoding())


def mock_client(*vectors):
    client = Mock()
    response = Mock()
    response.data = [Mock(embedding=list(v)) for v in vectors]
    client.embeddings.create.return_value = response
    return client


class TestOpenAIEmbeddingProvider:
    """Tests for OpenAIEmbeddingProvider."""

    def test_embed(self):
        client = mock_client([0.1, 0.2, 0.3])
        provider = OpenAIEmbeddingProvider(client=client, model="test-model", dimension=3)

        assert provider.embed("acme widgets") == [0.1, 0.2, 0.3]
        assert provider.model == "test-model"

    def test_timeout_capped_by_default(self):
        client = mock_client([0.1, 0.2, 0.3])
        provider = OpenAIEmbeddingProvider(client=client, dimension=3, timeout_seconds=4.0)

        provider.embed("acme", timeout=30.0)
        assert client.embeddings.create.call_args[1]["timeout"] == 4.0

        provider.embed("acme", timeout=1.5)
        assert client.embeddings.create.call_args[1]["timeout"] == 1.5

    def test_wrong_dimension(self):
        provider = OpenAIEmbeddingProvider(client=mock_client([0.1, 0.2]), dimension=3)
        with pytest.raises(ProviderError):
            provider.embed("acme")

    def test_empty_text(self):
        provider = OpenAIEmbeddingProvider(client=mock_client([0.1]), dimension=1)
        with pytest.raises(ProviderError):
            provider.embed("  ")

    def test_api_timeout(self):
        client = Mock()
        client.embeddings.create.side_effect = openai.APITimeoutError(
            request=httpx.Request("POST", "https://api.openai.com/v1/embeddings")
        )
        provider = OpenAIEmbeddingProvider(client=client, dimension=3)

        with pytest.raises(ProviderError, match="timed out"):
            provider.embed("acme")

    def test_api_error(self):
        client = Mock()
        client.embeddings.create.side_effect = openai.OpenAIError("invalid api key")
        provider = OpenAIEmbeddingProvider(client=client, dimension=3)

        with pytest.raises(ProviderError):
            provider.embed("acme")

    def test_missing_api_key(self, monkeypatch):
        def missing_key(timeout=None):
            raise ValueError("OPENAI_API_KEY not set in .env file")

        monkeypatch.setattr(provider_module, "get_openai_client", missing_key)
        provider = OpenAIEmbeddingProvider(dimension=3)

        with pytest.raises(ProviderError, match="OPENAI_API_KEY"):
            provider.embed("acme")

    def test_empty_response_data(self):
        client = mock_client()
        provider = OpenAIEmbeddingProvider(client=client, dimension=3)

        with pytest.raises(ProviderError, match="Malformed"):
            provider.embed("acme")

    def test_embed_batch_drops_invalid_vectors(self):
        client = mock_client([0.1, 0.2], [0.1])
        provider = OpenAIEmbeddingProvider(client=client, dimension=2)

        assert provider.embed_batch(["alpha", "beta"]) == [[0.1, 0.2], None]


class TestCachedEmbeddingProvider:
    """Tests for the query embedding cache."""

    @pytest.fixture
    def app_cache(self, tmp_path):
        cache = AppCache(tmp_path / "cache")
        yield cache
        cache.close()

    def test_repeated_text_embedded_once(self, app_cache):
        inner = FakeEmbeddingProvider()
        provider = CachedEmbeddingProvider(inner, app_cache)

        first = provider.embed("acme widgets | orders@acmewidgets.com")
        second = provider.embed("acme widgets | orders@acmewidgets.com")

        assert first == second
        assert len(inner.calls) == 1
        assert app_cache.count(CachedEmbeddingProvider.NAMESPACE) == 1

    def test_different_text_embedded_again(self, app_cache):
        inner = FakeEmbeddingProvider()
        provider = CachedEmbeddingProvider(inner, app_cache)

        provider.embed("acme widgets")
        provider.embed("blue ridge apparel")

        assert len(inner.calls) == 2

    def test_failure_not_cached(self, app_cache):
        inner = FakeEmbeddingProvider(fail=True)
        provider = CachedEmbeddingProvider(inner, app_cache)

        with pytest.raises(ProviderError):
            provider.embed("acme")
        assert app_cache.count(CachedEmbeddingProvider.NAMESPACE) == 0

    def test_model_is_delegated(self, app_cache):
        assert CachedEmbeddingProvider(FakeEmbeddingProvider(), app_cache).model == "fake-trigram"
