"""
High-level batch processing for vector index writes
Accepts heterogeneous items, groups them into batches and runs the batches with bounded concurrency.
"""

import asyncio
import logging
import os
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .models import BatchProcessingResult, Metadata, TextEntry, VectorDbResponse
from .utils import ConfigurationError, chunk_array
from .vector_db import VectorDbService
from .vector_db_factory import get_vector_db

logger = logging.getLogger(__name__)

ProcessableItem = Union[str, Mapping[str, Any], Any]


def default_text_content(item: ProcessableItem, index: int) -> str:
    """Use the item itself when it is a string, else its `text` field or attribute."""
    if isinstance(item, str):
        return item
    if isinstance(item, Mapping):
        text = item.get('text')
    else:
        text = getattr(item, 'text', None)
    return text if text else str(item)


def default_metadata(item: ProcessableItem, index: int) -> Metadata:
    return {
        'timestamp': datetime.now(timezone.utc).isoformat(),
        'itemIndex': index,
    }


@dataclass
class BatchProcessingConfig:
    """Configuration for batch processing."""

    # Number of items sent to one batch_upsert call
    batch_size: int = 50
    # Selects FullyParallelUpsert inside each batch; leave off when near rate limits
    use_parallel_upsert: bool = False
    max_concurrent_batches: int = 3
    get_metadata: Callable[[ProcessableItem, int], Metadata] = default_metadata
    get_text_content: Callable[[ProcessableItem, int], str] = default_text_content

    def __post_init__(self):
        if self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {self.batch_size}")
        if self.max_concurrent_batches <= 0:
            raise ConfigurationError(
                f"max_concurrent_batches must be positive, got {self.max_concurrent_batches}"
            )

    @classmethod
    def coerce(cls, config: Union["BatchProcessingConfig", Mapping[str, Any], None]) -> "BatchProcessingConfig":
        if config is None:
            return cls()
        if isinstance(config, BatchProcessingConfig):
            return config
        return cls(**dict(config))


@dataclass
class FileContent:
    """In-memory file content with an optional name."""

    content: str
    filename: Optional[str] = None


FileInput = Union[FileContent, Mapping[str, Any], str, os.PathLike, Any]


class VectorDbBatchProcessor:
    """High-performance batch processor for vector database writes."""

    def __init__(self, config: Union[BatchProcessingConfig, Mapping[str, Any], None] = None,
                 vector_db: Optional[VectorDbService] = None):
        self.config = BatchProcessingConfig.coerce(config)
        self._vector_db = vector_db

    async def _get_vector_db(self) -> VectorDbService:
        if self._vector_db is None:
            self._vector_db = await get_vector_db()
        return self._vector_db

    def _build_entries(self, batch: Sequence[ProcessableItem], batch_index: int,
                       base_metadata: Metadata) -> List[TextEntry]:
        entries = []
        for item_index, item in enumerate(batch):
            metadata = {
                **base_metadata,
                **(self.config.get_metadata(item, item_index) or {}),
                'batchIndex': batch_index,
            }
            entries.append(TextEntry(self.config.get_text_content(item, item_index), metadata))
        return entries

    async def process_texts(self, items: Sequence[ProcessableItem],
                            base_metadata: Optional[Metadata] = None) -> BatchProcessingResult:
        """
        Process items with batching and bounded concurrency across batches.

        Args:
            items: Strings, mappings with `text`, or objects with a `text` attribute
            base_metadata: Metadata applied to every item

        Returns:
            BatchProcessingResult; errors from every failed batch are collected
        """
        base_metadata = dict(base_metadata or {})
        vector_db = await self._get_vector_db()
        batches = chunk_array(list(items), self.config.batch_size)
        errors: List[BaseException] = []
        semaphore = asyncio.Semaphore(self.config.max_concurrent_batches)

        logger.info(f"Starting batch processing of {len(items)} texts "
                    f"(batch_size={self.config.batch_size}, parallel={self.config.use_parallel_upsert})")

        async def process_batch(batch_index: int, batch: Sequence[ProcessableItem]) -> VectorDbResponse:
            async with semaphore:
                logger.info(f"Processing batch {batch_index + 1}/{len(batches)} ({len(batch)} items)...")
                try:
                    entries = self._build_entries(batch, batch_index, base_metadata)
                    result = await vector_db.batch_upsert(
                        entries,
                        use_parallel=self.config.use_parallel_upsert
                    )
                except Exception as e:
                    logger.error(f"Batch {batch_index + 1} failed: {str(e)}")
                    errors.append(e)
                    return VectorDbResponse(success=False, error=e)

                if not result.success:
                    logger.error(f"Batch {batch_index + 1} failed: {result.error_message}")
                    errors.append(result.error)
                else:
                    logger.info(f"Batch {batch_index + 1} completed: "
                                f"{(result.data or {}).get('recordCount', 0)} records")
                return result

        batch_results = list(await asyncio.gather(
            *(process_batch(i, batch) for i, batch in enumerate(batches))
        ))

        # Partially failed batches still report the records they wrote
        total_records = sum((result.data or {}).get('recordCount', 0) for result in batch_results)
        successful_batches = sum(1 for result in batch_results if result.success)

        logger.info(f"Batch processing completed: {len(items)} texts, {total_records} records, "
                    f"{successful_batches}/{len(batches)} batches succeeded, {len(errors)} errors")

        return BatchProcessingResult(
            success=not errors,
            total_records=total_records,
            batch_results=batch_results,
            errors=errors,
        )

    async def process_files(self, files: Sequence[FileInput],
                            base_metadata: Optional[Metadata] = None) -> BatchProcessingResult:
        """
        Process file contents, tagging each record with its filename.

        Args:
            files: FileContent objects, {"content", "filename"} mappings, filesystem
                paths, or file-like objects with read()
            base_metadata: Metadata applied to every file

        Returns:
            BatchProcessingResult; unreadable files are reported in errors
        """
        base_metadata = dict(base_metadata or {})
        logger.info(f"Preparing to process {len(files)} files...")

        read_results = await asyncio.gather(
            *(read_file(file, index) for index, file in enumerate(files)),
            return_exceptions=True
        )

        file_items: List[Dict[str, Any]] = []
        read_errors: List[BaseException] = []
        for index, result in enumerate(read_results):
            if isinstance(result, Exception):
                logger.error(f"Error processing file {index}: {str(result)}")
                read_errors.append(result)
            elif isinstance(result, BaseException):
                raise result
            else:
                file_items.append(result)

        file_config = replace(
            self.config,
            get_metadata=lambda item, index: {
                'filename': item['filename'],
                'originalFileIndex': item['originalIndex'],
                'itemIndex': index,
            },
            get_text_content=lambda item, index: item['content'],
        )
        file_processor = VectorDbBatchProcessor(file_config, vector_db=self._vector_db)
        result = await file_processor.process_texts(file_items, base_metadata)

        if read_errors:
            result.errors = read_errors + result.errors
            result.success = False
        return result


async def read_file(file: FileInput, index: int) -> Dict[str, Any]:
    """
    Extract text content and a filename from a file-like input.

    Args:
        file: The file input
        index: Position of the file in the caller's list

    Returns:
        {"content", "filename", "originalIndex"}
    """
    if isinstance(file, FileContent):
        content, filename = file.content, file.filename
    elif isinstance(file, Mapping):
        content, filename = file['content'], file.get('filename')
    elif isinstance(file, (str, os.PathLike)):
        path = Path(file)
        content = await asyncio.to_thread(path.read_text, encoding='utf-8')
        filename = path.name
    elif hasattr(file, 'read'):
        data = await asyncio.to_thread(file.read)
        content = data.decode('utf-8') if isinstance(data, bytes) else data
        name = getattr(file, 'name', None)
        filename = os.path.basename(name) if isinstance(name, str) else None
    else:
        raise TypeError(f"Unsupported file input: {type(file).__name__}")

    return {
        'content': content,
        'filename': filename or f"file_{index}",
        'originalIndex': index,
    }


async def batch_process_texts(items: Sequence[ProcessableItem], base_metadata: Optional[Metadata] = None,
                              config: Union[BatchProcessingConfig, Mapping[str, Any], None] = None,
                              vector_db: Optional[VectorDbService] = None) -> BatchProcessingResult:
    """Convenience function to create a batch processor and process texts."""
    processor = VectorDbBatchProcessor(config, vector_db=vector_db)
    return await processor.process_texts(items, base_metadata)


async def batch_process_files(files: Sequence[FileInput], base_metadata: Optional[Metadata] = None,
                              config: Union[BatchProcessingConfig, Mapping[str, Any], None] = None,
                              vector_db: Optional[VectorDbService] = None) -> BatchProcessingResult:
    """Convenience function to create a batch processor and process files."""
    processor = VectorDbBatchProcessor(config, vector_db=vector_db)
    return await processor.process_files(files, base_metadata)
