"""
Write strategies for sending index records to the vector index in batches
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Awaitable, Callable, List, Optional

from .models import IndexRecord
from .utils import Config, ConfigurationError, chunk_array

logger = logging.getLogger(__name__)

# Writes one batch of records to the index
RecordWriter = Callable[[List[IndexRecord]], Awaitable[None]]


@dataclass
class UpsertOutcome:
    """Result of writing a set of records with a strategy."""

    records_written: int = 0
    batches_total: int = 0
    failed_batches: List[int] = field(default_factory=list)
    written_ids: List[str] = field(default_factory=list)
    failed_ids: List[str] = field(default_factory=list)
    errors: List[BaseException] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.failed_batches


class UpsertStrategy(ABC):
    """Splits records into upsert-sized batches and writes them."""

    name = "base"

    def __init__(self, batch_size: int = Config.UPSERT_BATCH_SIZE):
        if batch_size <= 0:
            raise ConfigurationError(f"batch_size must be positive, got {batch_size}")
        self.batch_size = batch_size

    async def execute(self, records: List[IndexRecord], writer: RecordWriter) -> UpsertOutcome:
        """
        Write all records, tolerating failures of individual batches.

        Args:
            records: Records to write
            writer: Coroutine function writing a single batch

        Returns:
            UpsertOutcome describing written records and failed batches
        """
        batches = chunk_array(records, self.batch_size)
        outcome = UpsertOutcome(batches_total=len(batches))
        if not batches:
            return outcome

        logger.info(f"Upserting {len(records)} records in {len(batches)} batches ({self.name})")
        results = await self._dispatch(batches, writer)

        for index, (batch, error) in enumerate(zip(batches, results)):
            ids = [record.id for record in batch]
            if error is None:
                outcome.records_written += len(batch)
                outcome.written_ids.extend(ids)
            else:
                outcome.failed_batches.append(index)
                outcome.failed_ids.extend(ids)
                outcome.errors.append(error)

        if outcome.failed_batches:
            logger.warning(f"{len(outcome.failed_batches)}/{len(batches)} upsert batches failed")
        return outcome

    async def _write_batch(self, index: int, batch: List[IndexRecord],
                           writer: RecordWriter) -> Optional[BaseException]:
        try:
            await writer(batch)
            return None
        except Exception as e:
            logger.error(f"Error upserting batch {index}: {str(e)}")
            return e

    @abstractmethod
    async def _dispatch(self, batches: List[List[IndexRecord]],
                        writer: RecordWriter) -> List[Optional[BaseException]]:
        """Write every batch; return one error (or None) per batch, in batch order."""
        raise NotImplementedError


class BoundedConcurrencyUpsert(UpsertStrategy):
    """Writes batches with at most max_concurrency requests in flight."""

    name = "bounded-concurrency"

    def __init__(self, batch_size: int = Config.UPSERT_BATCH_SIZE,
                 max_concurrency: int = Config.MAX_CONCURRENT_UPSERTS):
        super().__init__(batch_size)
        if max_concurrency <= 0:
            raise ConfigurationError(f"max_concurrency must be positive, got {max_concurrency}")
        self.max_concurrency = max_concurrency

    async def _dispatch(self, batches, writer):
        semaphore = asyncio.Semaphore(self.max_concurrency)

        async def write(index: int, batch: List[IndexRecord]) -> Optional[BaseException]:
            async with semaphore:
                return await self._write_batch(index, batch, writer)

        return await asyncio.gather(*(write(i, batch) for i, batch in enumerate(batches)))


class FullyParallelUpsert(UpsertStrategy):
    """Writes every batch at once. Only for callers with rate-limit headroom."""

    name = "fully-parallel"

    async def _dispatch(self, batches, writer):
        return await asyncio.gather(
            *(self._write_batch(i, batch, writer) for i, batch in enumerate(batches))
        )
