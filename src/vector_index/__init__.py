"""
Vector indexing and retrieval layer
Chunks text, embeds it and stores it in a vector index for similarity search.
"""

from .batch_processor import (
    BatchProcessingConfig,
    FileContent,
    VectorDbBatchProcessor,
    batch_process_files,
    batch_process_texts,
)
from .embedding_service import EmbeddingProvider, get_embedding_provider
from .models import (
    BatchProcessingResult,
    Chunk,
    IndexRecord,
    QueryResult,
    TextEntry,
    VectorDbConfig,
    VectorDbResponse,
)
from .upsert_strategies import BoundedConcurrencyUpsert, FullyParallelUpsert, UpsertStrategy
from .utils import (
    ChunkingError,
    ConfigurationError,
    EmbeddingError,
    FilterError,
    IndexNotReadyError,
    PartialUpsertError,
    VectorDbError,
    VectorIndexError,
)
from .vector_db import VectorDbService
from .vector_db_factory import create_vector_db, get_vector_db, reset_vector_db, set_vector_db

__all__ = [
    "BatchProcessingConfig",
    "BatchProcessingResult",
    "BoundedConcurrencyUpsert",
    "Chunk",
    "ChunkingError",
    "ConfigurationError",
    "EmbeddingError",
    "EmbeddingProvider",
    "FileContent",
    "FilterError",
    "FullyParallelUpsert",
    "IndexNotReadyError",
    "IndexRecord",
    "PartialUpsertError",
    "QueryResult",
    "TextEntry",
    "UpsertStrategy",
    "VectorDbBatchProcessor",
    "VectorDbConfig",
    "VectorDbError",
    "VectorDbResponse",
    "VectorDbService",
    "VectorIndexError",
    "batch_process_files",
    "batch_process_texts",
    "create_vector_db",
    "get_embedding_provider",
    "get_vector_db",
    "reset_vector_db",
    "set_vector_db",
]
