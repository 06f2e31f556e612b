"""
Embedding providers for the vector index
Every provider turns text into fixed-length vectors; callers depend only on EmbeddingProvider.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Type

import cohere
from openai import AsyncOpenAI

from .utils import Config, ConfigurationError, EmbeddingError, chunk_array

logger = logging.getLogger(__name__)


class EmbeddingProvider(ABC):
    """Interface for embedding backends."""

    # Largest number of inputs the provider accepts in one request
    max_batch_size: int = 2048

    async def embed(self, text: str) -> List[float]:
        """
        Generate the embedding for a single text.

        Args:
            text: The text to embed

        Returns:
            Embedding vector as a list of floats
        """
        vectors = await self.embed_batch([text])
        return vectors[0]

    async def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for many texts, preserving input order.

        Inputs larger than max_batch_size are sent as several requests and the
        results are concatenated in the original order.

        Args:
            texts: Texts to embed

        Returns:
            One vector per input text; result[i] belongs to texts[i]

        Raises:
            EmbeddingError: If any request fails; no partial results are returned
        """
        if not texts:
            return []

        results: List[List[float]] = []
        try:
            for batch in chunk_array(texts, self.max_batch_size):
                vectors = await self._embed_request(batch)
                if len(vectors) != len(batch):
                    raise EmbeddingError(
                        f"Provider returned {len(vectors)} embeddings for {len(batch)} inputs"
                    )
                results.extend(vectors)
        except EmbeddingError:
            raise
        except Exception as e:
            logger.error(f"Failed to generate batch embeddings: {str(e)}")
            raise EmbeddingError(f"Failed to generate batch embeddings: {str(e)}") from e

        logger.debug(f"Generated embeddings for {len(texts)} texts")
        return results

    @abstractmethod
    async def _embed_request(self, texts: List[str]) -> List[List[float]]:
        """Issue one provider request for at most max_batch_size texts."""
        raise NotImplementedError


class OpenAIEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by the OpenAI embeddings API."""

    max_batch_size = 2048

    def __init__(self, model: str = None, api_key: str = None, timeout: float = None,
                 client: Optional[AsyncOpenAI] = None):
        self.model = model or Config.OPENAI_EMBEDDING_MODEL
        self._api_key = api_key or Config.OPENAI_API_KEY
        self._timeout = timeout if timeout is not None else Config.EMBEDDING_TIMEOUT
        self._client = client

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("OPENAI_API_KEY is required for the openai embedding provider")
            self._client = AsyncOpenAI(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def embed(self, text: str) -> List[float]:
        try:
            response = await self.client.embeddings.create(model=self.model, input=text)
            return list(response.data[0].embedding)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error generating embeddings: {str(e)}")
            raise EmbeddingError(f"Failed to generate embeddings: {str(e)}") from e

    async def _embed_request(self, texts: List[str]) -> List[List[float]]:
        response = await self.client.embeddings.create(model=self.model, input=texts)
        # Items carry their input position
        items = sorted(response.data, key=lambda item: item.index)
        return [list(item.embedding) for item in items]


class CohereEmbeddingProvider(EmbeddingProvider):
    """Embedding provider backed by the Cohere embed API."""

    max_batch_size = 96

    def __init__(self, model: str = None, api_key: str = None, timeout: float = None,
                 input_type: str = "search_document", client: Optional[cohere.AsyncClient] = None):
        self.model = model or Config.COHERE_MODEL
        self.input_type = input_type
        self._api_key = api_key or Config.COHERE_API_KEY
        self._timeout = timeout if timeout is not None else Config.EMBEDDING_TIMEOUT
        self._client = client

    @property
    def client(self) -> cohere.AsyncClient:
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("COHERE_API_KEY is required for the cohere embedding provider")
            self._client = cohere.AsyncClient(api_key=self._api_key, timeout=self._timeout)
        return self._client

    async def _embed_request(self, texts: List[str]) -> List[List[float]]:
        response = await self.client.embed(
            texts=texts,
            model=self.model,
            input_type=self.input_type
        )
        return [list(embedding) for embedding in response.embeddings]


EMBEDDING_PROVIDERS: Dict[str, Type[EmbeddingProvider]] = {
    "openai": OpenAIEmbeddingProvider,
    "cohere": CohereEmbeddingProvider,
}


def get_embedding_provider(provider_name: str = None, **kwargs) -> EmbeddingProvider:
    """
    Resolve an embedding provider by name.

    Args:
        provider_name: Registry key; defaults to Config.EMBEDDING_PROVIDER
        **kwargs: Passed to the provider constructor

    Returns:
        A new EmbeddingProvider instance

    Raises:
        ConfigurationError: If the provider name is not registered
    """
    name = (provider_name or Config.EMBEDDING_PROVIDER).lower()
    provider_cls = EMBEDDING_PROVIDERS.get(name)
    if provider_cls is None:
        raise ConfigurationError(f"Embedding provider {name} not supported")
    return provider_cls(**kwargs)
