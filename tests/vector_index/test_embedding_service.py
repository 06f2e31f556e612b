import pytest
from unittest.mock import AsyncMock, Mock, patch

from vector_index.embedding_service import (
    CohereEmbeddingProvider,
    OpenAIEmbeddingProvider,
    get_embedding_provider,
)
from vector_index.utils import Config, ConfigurationError, EmbeddingError


def _openai_response(texts, reverse=False):
    items = [Mock(index=i, embedding=[float(len(text)), float(i)]) for i, text in enumerate(texts)]
    if reverse:
        items.reverse()
    return Mock(data=items)


def _mock_openai_client(reverse=False):
    client = Mock()
    client.embeddings.create = AsyncMock(
        side_effect=lambda model, input: _openai_response(input if isinstance(input, list) else [input], reverse)
    )
    return client


@pytest.mark.asyncio
async def test_openai_embed_batch_preserves_order():
    """Test that results follow input order even when the API reorders items."""
    provider = OpenAIEmbeddingProvider(model="text-embedding-3-small", client=_mock_openai_client(reverse=True))

    vectors = await provider.embed_batch(["a", "bb", "ccc"])

    assert vectors == [[1.0, 0.0], [2.0, 1.0], [3.0, 2.0]]


@pytest.mark.asyncio
async def test_openai_embed_batch_splits_large_input():
    """Test that inputs above max_batch_size are sent as several requests."""
    client = _mock_openai_client()
    provider = OpenAIEmbeddingProvider(client=client)
    provider.max_batch_size = 2

    texts = ["one", "three", "seven", "eleven", "fifteen"]
    vectors = await provider.embed_batch(texts)

    assert client.embeddings.create.call_count == 3
    sent = [call.kwargs['input'] for call in client.embeddings.create.call_args_list]
    assert sent == [["one", "three"], ["seven", "eleven"], ["fifteen"]]
    assert [v[0] for v in vectors] == [float(len(t)) for t in texts]


@pytest.mark.asyncio
async def test_embed_batch_empty_input_makes_no_request():
    """Test that an empty input list returns without calling the API."""
    client = _mock_openai_client()
    provider = OpenAIEmbeddingProvider(client=client)

    assert await provider.embed_batch([]) == []
    client.embeddings.create.assert_not_called()


@pytest.mark.asyncio
async def test_openai_embed_uses_model():
    """Test single-text embedding sends the configured model."""
    client = _mock_openai_client()
    provider = OpenAIEmbeddingProvider(model="text-embedding-3-large", client=client)

    vector = await provider.embed("hello")

    assert vector == [5.0, 0.0]
    assert client.embeddings.create.call_args.kwargs['model'] == "text-embedding-3-large"


@pytest.mark.asyncio
async def test_embed_matches_embed_batch(embeddings):
    """Test that embed(T) equals embed_batch([T])[0]."""
    text = "Vector search finds similar passages."

    single = await embeddings.embed(text)
    batch = await embeddings.embed_batch([text, "another text"])

    assert single == batch[0]


@pytest.mark.asyncio
async def test_openai_failure_raises_embedding_error():
    """Test that API failures surface as EmbeddingError."""
    client = Mock()
    client.embeddings.create = AsyncMock(side_effect=Exception("rate limited"))
    provider = OpenAIEmbeddingProvider(client=client)

    with pytest.raises(EmbeddingError, match="rate limited"):
        await provider.embed_batch(["text"])

    with pytest.raises(EmbeddingError):
        await provider.embed("text")


@pytest.mark.asyncio
async def test_count_mismatch_raises_embedding_error():
    """Test that a short response is rejected instead of misaligning vectors."""
    client = Mock()
    client.embeddings.create = AsyncMock(return_value=Mock(data=[Mock(index=0, embedding=[0.1])]))
    provider = OpenAIEmbeddingProvider(client=client)

    with pytest.raises(EmbeddingError):
        await provider.embed_batch(["first", "second"])


@pytest.mark.asyncio
async def test_missing_api_key_raises_configuration_error():
    """Test that a provider without credentials raises ConfigurationError."""
    with patch.object(Config, 'OPENAI_API_KEY', ''):
        provider = OpenAIEmbeddingProvider(api_key="")

        with pytest.raises(ConfigurationError):
            await provider.embed("text")


@pytest.mark.asyncio
async def test_cohere_embed_batch():
    """Test Cohere embedding requests carry model and input type."""
    client = Mock()
    client.embed = AsyncMock(return_value=Mock(embeddings=[[0.1, 0.2], [0.3, 0.4]]))
    provider = CohereEmbeddingProvider(model="embed-english-v3.0", client=client)

    vectors = await provider.embed_batch(["first", "second"])

    assert vectors == [[0.1, 0.2], [0.3, 0.4]]
    kwargs = client.embed.call_args.kwargs
    assert kwargs['texts'] == ["first", "second"]
    assert kwargs['model'] == "embed-english-v3.0"
    assert kwargs['input_type'] == "search_document"


def test_get_embedding_provider():
    """Test resolving providers from the registry."""
    client = Mock()

    provider = get_embedding_provider("openai", client=client)
    assert isinstance(provider, OpenAIEmbeddingProvider)
    assert provider.client is client

    assert isinstance(get_embedding_provider("Cohere", client=client), CohereEmbeddingProvider)

    with pytest.raises(ConfigurationError):
        get_embedding_provider("unknown")
