import math
import uuid
import logging
from typing import Any, Dict, List, Optional
from qdrant_client import AsyncQdrantClient
from qdrant_client.http import models
from qdrant_client.http.models import CollectionStatus, Distance, Filter, VectorParams

from .embedding_service import EmbeddingProvider
from .models import IndexRecord, QueryResult, VectorDbConfig, VectorDbFilter
from .utils import Config, ConfigurationError
from .vector_db import VectorDbService

logger = logging.getLogger(__name__)

# Payload key holding the namespace; Qdrant has no native namespaces
NAMESPACE_PAYLOAD_KEY = "index_namespace"

_DISTANCES = {
    "cosine": Distance.COSINE,
    "dotproduct": Distance.DOT,
    "euclidean": Distance.EUCLID,
}


def to_point_id(record_id: str) -> str:
    """Render an MD5 hex record id as the UUID string Qdrant accepts as a point id."""
    try:
        return str(uuid.UUID(hex=record_id))
    except ValueError:
        return str(uuid.uuid5(uuid.NAMESPACE_URL, record_id))


def build_qdrant_filter(filter: VectorDbFilter, namespace: str) -> Filter:
    """
    Build a Qdrant filter from equality constraints, always scoped to the namespace.

    Args:
        filter: Validated equality filter; list values mean "any of"
        namespace: Namespace every match must belong to

    Returns:
        Qdrant Filter with one must-condition per key
    """
    conditions = [
        models.FieldCondition(
            key=NAMESPACE_PAYLOAD_KEY,
            match=models.MatchValue(value=namespace)
        )
    ]
    for key, value in filter.items():
        if isinstance(value, list):
            match = models.MatchAny(any=value)
        else:
            match = models.MatchValue(value=value)
        conditions.append(models.FieldCondition(key=key, match=match))

    return Filter(must=conditions)


def _strip_namespace(payload: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    metadata = dict(payload or {})
    metadata.pop(NAMESPACE_PAYLOAD_KEY, None)
    return metadata


class QdrantVectorDb(VectorDbService):
    """Vector index client backed by a Qdrant collection."""

    provider_name = "qdrant"

    def __init__(self, config: Optional[VectorDbConfig] = None,
                 embeddings: Optional[EmbeddingProvider] = None,
                 client: Optional[AsyncQdrantClient] = None,
                 url: str = None, api_key: str = None):
        super().__init__(config, embeddings)
        if self.config.metric not in _DISTANCES:
            raise ConfigurationError(f"Unsupported metric for qdrant: {self.config.metric}")
        self._url = url or Config.QDRANT_URL
        self._api_key = api_key or Config.QDRANT_API_KEY or None
        self._client = client

    @property
    def client(self) -> AsyncQdrantClient:
        if self._client is None:
            if not self._url:
                raise ConfigurationError("QDRANT_URL is required for the qdrant provider")
            self._client = AsyncQdrantClient(
                url=self._url,
                api_key=self._api_key,
                timeout=math.ceil(self.config.index_timeout)
            )
        return self._client

    async def _index_exists(self) -> bool:
        return await self._bounded(self.client.collection_exists(self.config.index_name))

    async def _create_index(self) -> None:
        await self._bounded(self.client.create_collection(
            collection_name=self.config.index_name,
            vectors_config=VectorParams(
                size=self.config.dimensions,
                distance=_DISTANCES[self.config.metric]
            )
        ))
        logger.info(f"Successfully created Qdrant collection '{self.config.index_name}' "
                    f"with {self.config.dimensions} dimensions")

    async def _is_index_ready(self) -> bool:
        info = await self._bounded(self.client.get_collection(self.config.index_name))
        return info.status in (CollectionStatus.GREEN, CollectionStatus.YELLOW)

    async def _write_records(self, records: List[IndexRecord]) -> None:
        points = [
            models.PointStruct(
                id=to_point_id(record.id),
                vector=record.values,
                payload={**record.metadata, NAMESPACE_PAYLOAD_KEY: self.config.namespace}
            )
            for record in records
        ]
        await self._bounded(self.client.upsert(
            collection_name=self.config.index_name,
            points=points,
            wait=True
        ))

    async def _query_index(self, vector: List[float], top_k: int,
                           filter: VectorDbFilter) -> List[QueryResult]:
        response = await self._bounded(self.client.query_points(
            collection_name=self.config.index_name,
            query=vector,
            limit=top_k,
            query_filter=build_qdrant_filter(filter, self.config.namespace),
            with_payload=True,  # Include payload (metadata) in results
            with_vectors=False  # Don't include vectors in response for efficiency
        ))

        results = []
        for point in response.points:
            metadata = _strip_namespace(point.payload)
            results.append(QueryResult(
                id=str(metadata.get('hash') or point.id),
                chunk=str(metadata.get('chunk', '')),
                metadata=metadata,
                score=point.score,
            ))
        return results

    async def _delete_matching(self, filter: VectorDbFilter) -> None:
        await self._bounded(self.client.delete(
            collection_name=self.config.index_name,
            points_selector=models.FilterSelector(
                filter=build_qdrant_filter(filter, self.config.namespace)
            ),
            wait=True
        ))

    async def _fetch_records(self, ids: List[str]) -> List[IndexRecord]:
        points = await self._bounded(self.client.retrieve(
            collection_name=self.config.index_name,
            ids=[to_point_id(record_id) for record_id in ids],
            with_payload=True,
            with_vectors=True
        ))

        records = []
        for point in points:
            if (point.payload or {}).get(NAMESPACE_PAYLOAD_KEY) != self.config.namespace:
                continue
            metadata = _strip_namespace(point.payload)
            records.append(IndexRecord(
                id=str(metadata.get('hash') or point.id),
                values=list(point.vector or []),
                metadata=metadata,
            ))
        return records
