import logging
from typing import Dict, Iterable, List, Tuple

from .chunker import split_document
from .embedding_service import EmbeddingProvider
from .models import Chunk, IndexRecord, Metadata, TextEntry
from .upsert_strategies import RecordWriter, UpsertOutcome, UpsertStrategy
from .utils import Config, EmbeddingError, MAX_METADATA_TEXT_BYTES, truncate_string_by_bytes

logger = logging.getLogger(__name__)

# Metadata key whose value salts chunk hashes, scoping ids to their owner
HASH_SALT_KEY = "agentId"


def build_record_metadata(chunk: Chunk, additional_metadata: Metadata) -> Metadata:
    """
    Build the metadata stored with a record.

    Args:
        chunk: The chunk being stored
        additional_metadata: Caller metadata (owner ids, source type, timestamps)

    Returns:
        {"chunk", "hash"} merged with the caller metadata, None values dropped
    """
    metadata: Metadata = {
        'chunk': truncate_string_by_bytes(chunk.content, MAX_METADATA_TEXT_BYTES),
        'hash': chunk.hash,
    }
    metadata.update({k: v for k, v in additional_metadata.items() if v is not None})
    return metadata


class BatchUpsertOrchestrator:
    """Chunks many texts, embeds them in one call and writes them with a strategy."""

    def __init__(self, embeddings: EmbeddingProvider, chunk_size: int = Config.CHUNK_SIZE,
                 chunk_overlap: int = Config.CHUNK_OVERLAP, dimensions: int = None):
        self.embeddings = embeddings
        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap
        self.dimensions = dimensions

    def prepare_chunks(self, entries: Iterable[TextEntry]) -> List[Tuple[Chunk, Metadata]]:
        """
        Chunk every entry and flatten the result.

        Chunks with the same hash collapse into one, keeping the position of the
        first occurrence and the metadata of the last, as an overwrite would.

        Args:
            entries: Texts with their metadata

        Returns:
            (chunk, originating metadata) pairs in input order
        """
        prepared: Dict[str, Tuple[Chunk, Metadata]] = {}
        for entry in entries:
            metadata = entry.additional_metadata or {}
            salt = str(metadata.get(HASH_SALT_KEY) or "")
            for chunk in split_document(entry.text, self.chunk_size, self.chunk_overlap, salt=salt):
                prepared[chunk.hash] = (chunk, metadata)
        return list(prepared.values())

    async def build_records(self, entries: Iterable[TextEntry]) -> List[IndexRecord]:
        """
        Turn entries into index records.

        Args:
            entries: Texts with their metadata

        Returns:
            One IndexRecord per distinct chunk

        Raises:
            ChunkingError: If the chunking parameters are invalid
            EmbeddingError: If embedding fails; nothing can be written without vectors
        """
        entries = list(entries)

        # Step 1 and 2: chunk each text and flatten, keeping a back-reference to its metadata
        prepared = self.prepare_chunks(entries)
        if not prepared:
            return []
        logger.info(f"Prepared {len(prepared)} document chunks from {len(entries)} texts")

        # Step 3: one batch embedding call for all chunks
        embeddings = await self.embeddings.embed_batch([chunk.content for chunk, _ in prepared])
        if len(embeddings) != len(prepared):
            raise EmbeddingError(f"Expected {len(prepared)} embeddings, got {len(embeddings)}")
        if self.dimensions is not None:
            for vector in embeddings:
                if len(vector) != self.dimensions:
                    raise EmbeddingError(
                        f"Embedding dimension {len(vector)} does not match index dimension {self.dimensions}"
                    )

        # Step 4: pair each vector with its chunk hash and metadata
        return [
            IndexRecord(id=chunk.hash, values=vector, metadata=build_record_metadata(chunk, metadata))
            for (chunk, metadata), vector in zip(prepared, embeddings)
        ]

    async def run(self, entries: Iterable[TextEntry], writer: RecordWriter,
                  strategy: UpsertStrategy) -> Tuple[List[IndexRecord], UpsertOutcome]:
        """
        Build records for entries and write them with the given strategy.

        Args:
            entries: Texts with their metadata
            writer: Coroutine function writing one batch to the index
            strategy: The write strategy

        Returns:
            Tuple of (records, outcome)
        """
        records = await self.build_records(entries)

        # Step 5: write via the selected strategy
        outcome = await strategy.execute(records, writer)
        return records, outcome
