import asyncio
import math
from typing import Dict, List

import pytest

from vector_index.embedding_service import EmbeddingProvider
from vector_index.models import IndexRecord, QueryResult, VectorDbConfig
from vector_index.vector_db import VectorDbService
from vector_index.vector_db_factory import reset_vector_db

FAKE_DIMENSIONS = 16


def fake_vector(text: str) -> List[float]:
    """Normalised character-count vector; identical texts get identical vectors."""
    counts = [0.0] * FAKE_DIMENSIONS
    for char in text.lower():
        counts[ord(char) % FAKE_DIMENSIONS] += 1.0
    norm = math.sqrt(sum(c * c for c in counts))
    return [c / norm for c in counts] if norm else counts


def cosine(a: List[float], b: List[float]) -> float:
    norm = math.sqrt(sum(x * x for x in a)) * math.sqrt(sum(y * y for y in b))
    if not norm:
        return 0.0
    return sum(x * y for x, y in zip(a, b)) / norm


def matches_filter(metadata: Dict, filter: Dict) -> bool:
    for key, value in filter.items():
        if isinstance(value, list):
            if metadata.get(key) not in value:
                return False
        elif metadata.get(key) != value:
            return False
    return True


class FakeEmbeddingProvider(EmbeddingProvider):
    """Deterministic embedder that records every request it serves."""

    max_batch_size = 2048
    dimensions = FAKE_DIMENSIONS

    def __init__(self):
        self.requests: List[List[str]] = []

    async def _embed_request(self, texts):
        self.requests.append(list(texts))
        return [fake_vector(text) for text in texts]


class InMemoryVectorDb(VectorDbService):
    """Vector index backend holding records in process memory."""

    provider_name = "memory"

    def __init__(self, config=None, embeddings=None, exists=False, ready_after=0, fail_write=None):
        super().__init__(config, embeddings)
        self.exists = exists
        self.ready_after = ready_after
        self.fail_write = fail_write
        self.create_calls = 0
        self.ready_checks = 0
        self.write_batches: List[List[str]] = []
        self.namespaces: Dict[str, Dict[str, IndexRecord]] = {}

    @property
    def records(self) -> Dict[str, IndexRecord]:
        return self.namespaces.setdefault(self.config.namespace, {})

    async def _index_exists(self):
        await asyncio.sleep(0)
        return self.exists

    async def _create_index(self):
        self.create_calls += 1
        await asyncio.sleep(0)
        self.exists = True

    async def _is_index_ready(self):
        self.ready_checks += 1
        return self.ready_checks > self.ready_after

    async def _write_records(self, records):
        ids = [record.id for record in records]
        self.write_batches.append(ids)
        if self.fail_write is not None and self.fail_write(ids):
            raise RuntimeError("write rejected")
        for record in records:
            self.records[record.id] = record

    async def _query_index(self, vector, top_k, filter):
        scored = [
            QueryResult(
                id=record.id,
                chunk=record.metadata.get('chunk', ''),
                metadata=dict(record.metadata),
                score=cosine(vector, record.values),
            )
            for record in self.records.values()
            if matches_filter(record.metadata, filter)
        ]
        scored.sort(key=lambda result: result.score, reverse=True)
        return scored[:top_k]

    async def _delete_matching(self, filter):
        for record_id in [r.id for r in self.records.values() if matches_filter(r.metadata, filter)]:
            del self.records[record_id]

    async def _fetch_records(self, ids):
        return [self.records[record_id] for record_id in ids if record_id in self.records]


@pytest.fixture
def embeddings():
    return FakeEmbeddingProvider()


@pytest.fixture
def db_config():
    return VectorDbConfig(
        index_name="test-index",
        namespace="test",
        dimensions=FAKE_DIMENSIONS,
        chunk_size=500,
        chunk_overlap=20,
        upsert_batch_size=2,
        max_concurrent_upserts=2,
        top_k=5,
        min_score=0.5,
        ready_poll_interval=0.01,
        ready_timeout=0.05,
    )


@pytest.fixture
def make_vector_db(db_config, embeddings):
    """Build in-memory backends sharing the test config and embedder."""
    def build(exists=False, ready_after=0, fail_write=None, config=None):
        return InMemoryVectorDb(
            config=config or db_config,
            embeddings=embeddings,
            exists=exists,
            ready_after=ready_after,
            fail_write=fail_write,
        )
    return build


@pytest.fixture
def vector_db(make_vector_db):
    return make_vector_db(exists=True)


@pytest.fixture(autouse=True)
def clean_default_vector_db():
    reset_vector_db()
    yield
    reset_vector_db()
