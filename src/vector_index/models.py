"""
Data models for the vector indexing and retrieval layer
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from .utils import Config, ConfigurationError

# Metadata attached to a stored record; values are str, number, bool or list of str
Metadata = Dict[str, Any]

# Equality constraints; a list value matches any of its members
VectorDbFilter = Dict[str, Any]


class IndexState(str, Enum):
    """Lifecycle of the remote index as seen by the client."""

    ABSENT = "absent"
    CREATING = "creating"
    READY = "ready"


@dataclass
class Chunk:
    """A bounded slice of a source text, produced for embedding and storage."""

    content: str
    metadata: Metadata = field(default_factory=dict)

    @property
    def hash(self) -> str:
        return self.metadata.get('hash', '')


@dataclass
class IndexRecord:
    """A record written to the index, keyed by its content hash."""

    id: str
    values: List[float]
    metadata: Metadata

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "values": self.values, "metadata": self.metadata}


@dataclass
class QueryResult:
    """Represents a single match returned by a similarity query."""

    id: str
    chunk: str
    metadata: Metadata
    score: float


@dataclass
class VectorDbResponse:
    """Uniform result envelope returned by mutating operations."""

    success: bool
    data: Optional[Dict[str, Any]] = None
    error: Optional[BaseException] = None

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


@dataclass
class TextEntry:
    """One text to index together with the metadata stored on each of its chunks."""

    text: str
    additional_metadata: Metadata = field(default_factory=dict)

    @classmethod
    def coerce(cls, entry: Union["TextEntry", Tuple[str, Metadata], Dict[str, Any]]) -> "TextEntry":
        if isinstance(entry, TextEntry):
            return entry
        if isinstance(entry, tuple) and len(entry) == 2:
            return cls(text=entry[0], additional_metadata=dict(entry[1] or {}))
        if isinstance(entry, dict) and 'text' in entry:
            metadata = entry.get('additional_metadata', entry.get('additionalMetadata')) or {}
            return cls(text=entry['text'], additional_metadata=dict(metadata))
        raise TypeError(f"Cannot build a TextEntry from {type(entry).__name__}")


@dataclass
class VectorDbConfig:
    """Settings for a vector index client. Defaults come from Config."""

    index_name: str = Config.PINECONE_INDEX
    namespace: str = Config.VECTOR_NAMESPACE
    dimensions: int = Config.EMBEDDING_DIMENSIONS
    chunk_size: int = Config.CHUNK_SIZE
    chunk_overlap: int = Config.CHUNK_OVERLAP
    upsert_batch_size: int = Config.UPSERT_BATCH_SIZE
    max_concurrent_upserts: int = Config.MAX_CONCURRENT_UPSERTS
    top_k: int = Config.TOP_K
    min_score: float = Config.MIN_SCORE
    ready_poll_interval: float = Config.INDEX_READY_POLL_INTERVAL
    ready_timeout: float = Config.INDEX_READY_TIMEOUT
    # Upper bound for a single request to the index service
    index_timeout: float = Config.INDEX_TIMEOUT
    metric: str = "cosine"
    cloud: str = Config.PINECONE_CLOUD
    region: str = Config.PINECONE_REGION

    @classmethod
    def from_env(cls, **overrides: Any) -> "VectorDbConfig":
        """Build a config from the current Config values, applying keyword overrides."""
        values = dict(
            index_name=Config.PINECONE_INDEX,
            namespace=Config.VECTOR_NAMESPACE,
            dimensions=Config.EMBEDDING_DIMENSIONS,
            chunk_size=Config.CHUNK_SIZE,
            chunk_overlap=Config.CHUNK_OVERLAP,
            upsert_batch_size=Config.UPSERT_BATCH_SIZE,
            max_concurrent_upserts=Config.MAX_CONCURRENT_UPSERTS,
            top_k=Config.TOP_K,
            min_score=Config.MIN_SCORE,
            ready_poll_interval=Config.INDEX_READY_POLL_INTERVAL,
            ready_timeout=Config.INDEX_READY_TIMEOUT,
            index_timeout=Config.INDEX_TIMEOUT,
            cloud=Config.PINECONE_CLOUD,
            region=Config.PINECONE_REGION,
        )
        values.update(overrides)
        return cls(**values)

    def validate(self) -> None:
        if not self.index_name:
            raise ConfigurationError("index_name must be set")
        if not self.namespace:
            raise ConfigurationError("namespace must be set")
        if self.dimensions <= 0:
            raise ConfigurationError(f"dimensions must be positive, got {self.dimensions}")
        if self.chunk_size <= 0 or not 0 <= self.chunk_overlap < self.chunk_size:
            raise ConfigurationError(
                f"chunk_overlap must be in [0, chunk_size), got chunk_size={self.chunk_size}, "
                f"chunk_overlap={self.chunk_overlap}"
            )
        if self.upsert_batch_size <= 0 or self.max_concurrent_upserts <= 0:
            raise ConfigurationError("upsert_batch_size and max_concurrent_upserts must be positive")
        if self.top_k <= 0:
            raise ConfigurationError(f"top_k must be positive, got {self.top_k}")
        if self.ready_poll_interval <= 0 or self.ready_timeout <= 0 or self.index_timeout <= 0:
            raise ConfigurationError("ready_poll_interval, ready_timeout and index_timeout must be positive")


@dataclass
class BatchProcessingResult:
    """Aggregate outcome of a batch processing run."""

    success: bool
    total_records: int
    batch_results: List[VectorDbResponse] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)
