import asyncio

import pytest
from unittest.mock import Mock, patch

from vector_index import vector_db_factory
from vector_index.pinecone_service import PineconeVectorDb
from vector_index.qdrant_service import QdrantVectorDb
from vector_index.utils import ConfigurationError
from vector_index.vector_db_factory import create_vector_db, get_vector_db, reset_vector_db, set_vector_db


def test_create_vector_db_resolves_providers(db_config, embeddings):
    """Test that registered providers are constructed with the given config."""
    pinecone_db = create_vector_db("pinecone", db_config, embeddings, client=Mock())
    qdrant_db = create_vector_db("QDRANT", db_config, embeddings, client=Mock())

    assert isinstance(pinecone_db, PineconeVectorDb)
    assert isinstance(qdrant_db, QdrantVectorDb)
    assert pinecone_db.config is db_config
    assert pinecone_db.embeddings is embeddings


def test_create_vector_db_unknown_provider(db_config, embeddings):
    """Test that an unregistered provider raises ConfigurationError."""
    with pytest.raises(ConfigurationError):
        create_vector_db("milvus", db_config, embeddings)


@pytest.mark.asyncio
async def test_get_vector_db_initializes_once(make_vector_db):
    """Test that concurrent first callers receive one shared, initialized client."""
    created = []

    def build(provider, config):
        db = make_vector_db()
        created.append(db)
        return db

    with patch.object(vector_db_factory, 'create_vector_db', side_effect=build):
        clients = await asyncio.gather(*(get_vector_db() for _ in range(4)))

    assert len(created) == 1
    assert all(client is created[0] for client in clients)
    assert created[0].is_ready
    assert created[0].create_calls == 1


@pytest.mark.asyncio
async def test_set_and_reset_vector_db(vector_db):
    """Test installing and forgetting the default client."""
    set_vector_db(vector_db)
    assert await get_vector_db() is vector_db

    reset_vector_db()
    with patch.object(vector_db_factory, 'create_vector_db', return_value=vector_db) as mock_create:
        assert await get_vector_db() is vector_db
        mock_create.assert_called_once()


def test_get_vector_db_across_event_loops(make_vector_db):
    """Test that the default client lock works under a fresh event loop after a reset."""
    created = []

    def build(provider, config):
        db = make_vector_db()
        created.append(db)
        return db

    async def contend():
        return await asyncio.gather(*(get_vector_db() for _ in range(3)))

    with patch.object(vector_db_factory, 'create_vector_db', side_effect=build):
        first = asyncio.run(contend())
        set_vector_db(None)
        second = asyncio.run(contend())

    assert len(created) == 2
    assert all(client is created[0] for client in first)
    assert all(client is created[1] for client in second)
