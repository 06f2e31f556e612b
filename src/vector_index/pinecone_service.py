"""
Pinecone backend for the vector index client
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from pinecone import Pinecone, ServerlessSpec

from .embedding_service import EmbeddingProvider
from .models import IndexRecord, QueryResult, VectorDbConfig, VectorDbFilter
from .utils import Config, ConfigurationError
from .vector_db import VectorDbService

logger = logging.getLogger(__name__)


def to_pinecone_filter(filter: VectorDbFilter) -> Optional[Dict[str, Any]]:
    """
    Translate an equality filter into Pinecone's metadata filter language.

    Args:
        filter: Validated equality filter

    Returns:
        Filter using $eq / $in operators, or None when empty
    """
    if not filter:
        return None
    return {
        key: {'$in': value} if isinstance(value, list) else {'$eq': value}
        for key, value in filter.items()
    }


def _get(obj: Any, name: str, default: Any = None) -> Any:
    """Read a field from an SDK model or a plain dict."""
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


class PineconeVectorDb(VectorDbService):
    """Vector index client backed by a Pinecone serverless index."""

    provider_name = "pinecone"

    def __init__(self, config: Optional[VectorDbConfig] = None,
                 embeddings: Optional[EmbeddingProvider] = None,
                 client: Optional[Pinecone] = None, api_key: str = None):
        super().__init__(config, embeddings)
        self._api_key = api_key or Config.PINECONE_API_KEY
        self._client = client
        self._index = None

    @property
    def client(self) -> Pinecone:
        if self._client is None:
            if not self._api_key:
                raise ConfigurationError("PINECONE_API_KEY is required for the pinecone provider")
            self._client = Pinecone(api_key=self._api_key)
        return self._client

    @property
    def index(self):
        if self._index is None:
            self._index = self.client.Index(self.config.index_name)
        return self._index

    async def _index_exists(self) -> bool:
        indexes = await self._bounded(asyncio.to_thread(self.client.list_indexes))
        return self.config.index_name in indexes.names()

    async def _create_index(self) -> None:
        await self._bounded(asyncio.to_thread(
            self.client.create_index,
            name=self.config.index_name,
            dimension=self.config.dimensions,
            metric=self.config.metric,
            spec=ServerlessSpec(cloud=self.config.cloud, region=self.config.region),
        ))

    async def _is_index_ready(self) -> bool:
        description = await self._bounded(
            asyncio.to_thread(self.client.describe_index, self.config.index_name)
        )
        status = _get(description, 'status') or {}
        return bool(_get(status, 'ready')) or _get(status, 'state') == "Ready"

    async def _write_records(self, records: List[IndexRecord]) -> None:
        await self._bounded(asyncio.to_thread(
            self.index.upsert,
            vectors=[record.to_dict() for record in records],
            namespace=self.config.namespace,
        ))

    async def _query_index(self, vector: List[float], top_k: int,
                           filter: VectorDbFilter) -> List[QueryResult]:
        response = await self._bounded(asyncio.to_thread(
            self.index.query,
            vector=vector,
            top_k=top_k,
            filter=to_pinecone_filter(filter),
            include_metadata=True,
            namespace=self.config.namespace,
        ))
        results = []
        for match in _get(response, 'matches') or []:
            metadata = dict(_get(match, 'metadata') or {})
            results.append(QueryResult(
                id=str(_get(match, 'id')),
                chunk=str(metadata.get('chunk', '')),
                metadata=metadata,
                score=_get(match, 'score'),
            ))
        return results

    async def _delete_matching(self, filter: VectorDbFilter) -> None:
        await self._bounded(asyncio.to_thread(
            self.index.delete,
            filter=to_pinecone_filter(filter),
            namespace=self.config.namespace,
        ))

    async def _fetch_records(self, ids: List[str]) -> List[IndexRecord]:
        response = await self._bounded(
            asyncio.to_thread(self.index.fetch, ids=ids, namespace=self.config.namespace)
        )
        vectors = _get(response, 'vectors') or {}
        return [
            IndexRecord(
                id=str(record_id),
                values=list(_get(vector, 'values') or []),
                metadata=dict(_get(vector, 'metadata') or {}),
            )
            for record_id, vector in vectors.items()
        ]
