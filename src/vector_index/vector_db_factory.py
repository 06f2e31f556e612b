"""
Registry of vector index backends and the shared default client
"""

import asyncio
import logging
from typing import Dict, Optional, Type

from .embedding_service import EmbeddingProvider
from .models import VectorDbConfig
from .pinecone_service import PineconeVectorDb
from .qdrant_service import QdrantVectorDb
from .utils import Config, ConfigurationError
from .vector_db import VectorDbService

logger = logging.getLogger(__name__)

VECTOR_DB_PROVIDERS: Dict[str, Type[VectorDbService]] = {
    "pinecone": PineconeVectorDb,
    "qdrant": QdrantVectorDb,
}

_default_vector_db: Optional[VectorDbService] = None
_default_lock: Optional[asyncio.Lock] = None
_default_lock_loop: Optional[asyncio.AbstractEventLoop] = None


def _get_default_lock() -> asyncio.Lock:
    """Return the first-initialization lock for the running event loop."""
    global _default_lock, _default_lock_loop
    loop = asyncio.get_running_loop()
    # A lock that waited under one loop cannot be awaited from another
    if _default_lock is None or _default_lock_loop is not loop:
        _default_lock = asyncio.Lock()
        _default_lock_loop = loop
    return _default_lock


def create_vector_db(provider: str = None, config: Optional[VectorDbConfig] = None,
                     embeddings: Optional[EmbeddingProvider] = None, **kwargs) -> VectorDbService:
    """
    Create a vector index client for the named provider.

    Args:
        provider: Registry key; defaults to Config.VECTOR_DB_PROVIDER
        config: Client configuration; defaults to VectorDbConfig.from_env()
        embeddings: Embedding provider; defaults to Config.EMBEDDING_PROVIDER
        **kwargs: Backend-specific constructor arguments (client, api_key, ...)

    Returns:
        An uninitialized VectorDbService

    Raises:
        ConfigurationError: If the provider is not registered
    """
    name = (provider or Config.VECTOR_DB_PROVIDER).lower()
    provider_cls = VECTOR_DB_PROVIDERS.get(name)
    if provider_cls is None:
        raise ConfigurationError(f"Vector database provider {name} not supported")
    return provider_cls(config=config, embeddings=embeddings, **kwargs)


async def get_vector_db(config: Optional[VectorDbConfig] = None) -> VectorDbService:
    """
    Return the process-wide default client, creating and initializing it on first use.

    Concurrent first callers wait on one initialization. The config argument only
    applies to the call that creates the client.
    """
    global _default_vector_db
    if _default_vector_db is not None:
        return _default_vector_db

    async with _get_default_lock():
        if _default_vector_db is None:
            vector_db = create_vector_db(Config.VECTOR_DB_PROVIDER, config)
            await vector_db.initialize()
            _default_vector_db = vector_db
            logger.info(f"Default vector database initialized ({vector_db.provider_name})")
    return _default_vector_db


def set_vector_db(vector_db: Optional[VectorDbService]) -> None:
    """Install an explicitly constructed client as the default."""
    global _default_vector_db
    _default_vector_db = vector_db


def reset_vector_db() -> None:
    """Forget the default client so the next get_vector_db() builds a new one."""
    global _default_vector_db, _default_lock, _default_lock_loop
    _default_vector_db = None
    _default_lock = None
    _default_lock_loop = None
