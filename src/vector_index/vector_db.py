"""
Vector index client
Public operations are implemented once here; backends implement the index primitives.

Tenant isolation relies on the caller: every query and delete runs inside the
configured namespace and is narrowed by the caller-supplied filter.
"""

import asyncio
import logging
import math
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Dict, Iterable, List, Mapping, Optional, Sequence, TypeVar, Union

from .batch_upsert import BatchUpsertOrchestrator
from .embedding_service import EmbeddingProvider, get_embedding_provider
from .models import (
    IndexRecord,
    IndexState,
    Metadata,
    QueryResult,
    TextEntry,
    VectorDbConfig,
    VectorDbFilter,
    VectorDbResponse,
)
from .upsert_strategies import BoundedConcurrencyUpsert, FullyParallelUpsert, UpsertStrategy
from .utils import (
    ConfigurationError,
    FilterError,
    IndexNotReadyError,
    PartialUpsertError,
    VectorDbError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SCALAR_TYPES = (str, int, float, bool)


def validate_filter(filter: Any, allow_empty: bool = True) -> VectorDbFilter:
    """
    Check that a filter is a flat mapping of equality constraints.

    Args:
        filter: Mapping of metadata key to a scalar, or to a list of scalars meaning "any of"
        allow_empty: Whether an empty mapping is acceptable

    Returns:
        A copy of the filter with list values normalised to lists

    Raises:
        FilterError: If the filter is malformed
    """
    if filter is None:
        filter = {}
    if not isinstance(filter, Mapping):
        raise FilterError(f"Filter must be a mapping, got {type(filter).__name__}")
    if not filter and not allow_empty:
        raise FilterError("Filter must not be empty")

    normalised: VectorDbFilter = {}
    for key, value in filter.items():
        if not isinstance(key, str) or not key:
            raise FilterError(f"Filter keys must be non-empty strings, got {key!r}")
        if isinstance(value, _SCALAR_TYPES):
            normalised[key] = value
        elif isinstance(value, (list, tuple, set, frozenset)):
            values = list(value)
            if not values or not all(isinstance(v, _SCALAR_TYPES) for v in values):
                raise FilterError(f"Filter value for {key!r} must be a non-empty list of scalars")
            normalised[key] = values
        else:
            raise FilterError(f"Unsupported filter value for {key!r}: {type(value).__name__}")
    return normalised


class VectorDbService(ABC):
    """Client for an approximate nearest neighbour index."""

    provider_name = "base"

    def __init__(self, config: Optional[VectorDbConfig] = None,
                 embeddings: Optional[EmbeddingProvider] = None):
        self.config = config or VectorDbConfig.from_env()
        self.config.validate()
        self.embeddings = embeddings or get_embedding_provider()
        self.state = IndexState.ABSENT
        self._init_lock = asyncio.Lock()
        self.orchestrator = BatchUpsertOrchestrator(
            self.embeddings,
            chunk_size=self.config.chunk_size,
            chunk_overlap=self.config.chunk_overlap,
            dimensions=self.config.dimensions,
        )

    # --- Index primitives implemented by each backend ---

    @abstractmethod
    async def _index_exists(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def _create_index(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _is_index_ready(self) -> bool:
        raise NotImplementedError

    @abstractmethod
    async def _write_records(self, records: List[IndexRecord]) -> None:
        """Write one batch of records to the configured namespace."""
        raise NotImplementedError

    @abstractmethod
    async def _query_index(self, vector: List[float], top_k: int,
                           filter: VectorDbFilter) -> List[QueryResult]:
        """Return raw matches in the index's ranking order."""
        raise NotImplementedError

    @abstractmethod
    async def _delete_matching(self, filter: VectorDbFilter) -> None:
        raise NotImplementedError

    @abstractmethod
    async def _fetch_records(self, ids: List[str]) -> List[IndexRecord]:
        raise NotImplementedError

    async def _bounded(self, awaitable: Awaitable[T]) -> T:
        """
        Await one request to the index service, giving up after config.index_timeout seconds.

        Raises:
            VectorDbError: If the request does not complete in time
        """
        try:
            return await asyncio.wait_for(awaitable, timeout=self.config.index_timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"{self.provider_name} request timed out after {self.config.index_timeout}s")
            raise VectorDbError(
                f"{self.provider_name} request timed out after {self.config.index_timeout}s"
            ) from e

    # --- Lifecycle ---

    @property
    def is_ready(self) -> bool:
        return self.state is IndexState.READY

    async def initialize(self) -> None:
        """
        Make sure the index exists and is ready.

        Creates the index when absent, then polls until it reports ready.
        Concurrent callers share one initialization; at most one create call is made.

        Raises:
            ConfigurationError: If backend credentials are missing
            IndexNotReadyError: If the index is not ready within config.ready_timeout
            VectorDbError: If the existence check or creation fails
        """
        if self.is_ready:
            return

        async with self._init_lock:
            if self.is_ready:
                return

            try:
                if not await self._index_exists():
                    logger.info(f"Creating index '{self.config.index_name}' "
                                f"(dimension={self.config.dimensions}, metric={self.config.metric})")
                    self.state = IndexState.CREATING
                    await self._create_index()
                else:
                    self.state = IndexState.CREATING
            except (ConfigurationError, VectorDbError):
                self.state = IndexState.ABSENT
                raise
            except Exception as e:
                self.state = IndexState.ABSENT
                logger.error(f"Error initializing {self.provider_name}: {str(e)}")
                raise VectorDbError(f"Failed to initialize {self.provider_name}: {str(e)}") from e

            await self._wait_until_ready()

    def _max_ready_attempts(self) -> int:
        return max(1, math.ceil(self.config.ready_timeout / self.config.ready_poll_interval))

    async def _wait_until_ready(self) -> None:
        max_attempts = self._max_ready_attempts()
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.config.ready_timeout

        for attempt in range(1, max_attempts + 1):
            try:
                ready = await self._is_index_ready()
            except Exception as e:
                logger.error(f"Error checking index status: {str(e)}")
                raise VectorDbError(f"Failed to check index status: {str(e)}") from e

            if ready:
                self.state = IndexState.READY
                logger.info(f"Index '{self.config.index_name}' is ready")
                return

            if attempt == max_attempts or loop.time() >= deadline:
                break
            logger.info(f"Waiting for index '{self.config.index_name}' to be ready "
                        f"(attempt {attempt}/{max_attempts})...")
            await asyncio.sleep(self.config.ready_poll_interval)

        raise IndexNotReadyError(
            f"Index '{self.config.index_name}' not ready after {self.config.ready_timeout}s"
        )

    # --- Query ---

    async def query(self, filter: VectorDbFilter, text: str, top_k: Optional[int] = None) -> List[QueryResult]:
        """
        Find chunks similar to text.

        Args:
            filter: Equality constraints scoping the search (e.g. {"botId": ...})
            text: The text to find similar chunks for
            top_k: Number of neighbours to request; defaults to config.top_k

        Returns:
            Matches scoring above config.min_score, in descending score order

        Raises:
            FilterError: If the filter is malformed
            VectorDbError: If embedding or the index query fails
        """
        scoped_filter = validate_filter(filter)
        top_k = top_k or self.config.top_k
        await self.initialize()

        try:
            vector = await self.embeddings.embed(text)
            matches = await self._query_index(vector, top_k, scoped_filter)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error querying {self.provider_name}: {str(e)}")
            raise VectorDbError(f"Failed to query {self.provider_name}: {str(e)}") from e

        results = [m for m in matches if m.score is not None and m.score > self.config.min_score]
        logger.debug(f"Query returned {len(matches)} matches, {len(results)} above min_score")
        return results

    # --- Writes ---

    async def upsert(self, additional_metadata: Metadata, text: str) -> VectorDbResponse:
        """
        Chunk, embed and store a single text.

        Args:
            additional_metadata: Metadata stored with every chunk
            text: The text to embed and store

        Returns:
            VectorDbResponse with recordCount, namespace and ids
        """
        response = await self.batch_upsert([TextEntry(text, dict(additional_metadata or {}))])
        if response.data is not None:
            response.data.pop('textCount', None)
        return response

    async def batch_upsert(self, entries: Iterable[Union[TextEntry, tuple, dict]],
                           strategy: Optional[UpsertStrategy] = None,
                           use_parallel: bool = False) -> VectorDbResponse:
        """
        High-throughput upsert for many texts.

        All chunks are embedded in a single batch call, then written with the
        strategy. Failed write batches do not stop the others.

        Args:
            entries: TextEntry objects, (text, metadata) tuples or {"text", "additional_metadata"} dicts
            strategy: Write strategy; defaults to BoundedConcurrencyUpsert
            use_parallel: Shortcut selecting FullyParallelUpsert when no strategy is given

        Returns:
            VectorDbResponse; success only if every batch was written
        """
        try:
            text_entries = [TextEntry.coerce(entry) for entry in entries]
            strategy = strategy or self.create_strategy(use_parallel)
            await self.initialize()

            logger.info(f"Starting batch upsert for {len(text_entries)} texts "
                        f"using {strategy.name} strategy")
            _, outcome = await self.orchestrator.run(text_entries, self._write_records, strategy)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error in batch upsert to {self.provider_name}: {str(e)}")
            return VectorDbResponse(success=False, error=e)

        data: Dict[str, Any] = {
            'recordCount': outcome.records_written,
            'namespace': self.config.namespace,
            'textCount': len(text_entries),
            'failedBatches': len(outcome.failed_batches),
            'ids': outcome.written_ids,
            'failedIds': outcome.failed_ids,
        }
        if outcome.success:
            return VectorDbResponse(success=True, data=data)

        error = PartialUpsertError(
            f"{len(outcome.failed_batches)} of {outcome.batches_total} upsert batches failed",
            errors=outcome.errors,
            failed_batches=outcome.failed_batches,
        )
        return VectorDbResponse(success=False, data=data, error=error)

    def create_strategy(self, use_parallel: bool = False) -> UpsertStrategy:
        """Build the write strategy matching this client's config."""
        if use_parallel:
            return FullyParallelUpsert(batch_size=self.config.upsert_batch_size)
        return BoundedConcurrencyUpsert(
            batch_size=self.config.upsert_batch_size,
            max_concurrency=self.config.max_concurrent_upserts,
        )

    # --- Deletes and fetch ---

    async def delete_by_filter(self, filter: VectorDbFilter) -> VectorDbResponse:
        """
        Delete every record in the namespace matching filter.

        Raises:
            FilterError: If the filter is malformed or empty
            ConfigurationError: If backend credentials are missing
        """
        scoped_filter = validate_filter(filter, allow_empty=False)
        try:
            await self.initialize()
            await self._delete_matching(scoped_filter)
            logger.info(f"Deleted records matching {scoped_filter} from namespace '{self.config.namespace}'")
            return VectorDbResponse(success=True)
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error deleting records from {self.provider_name}: {str(e)}")
            return VectorDbResponse(success=False, error=e)

    async def delete_by_account_ids(self, account_ids: Sequence[str]) -> VectorDbResponse:
        """Delete every record whose accountId is one of account_ids."""
        if not account_ids:
            return VectorDbResponse(success=True)
        return await self.delete_by_filter({'accountId': list(account_ids)})

    async def fetch_records_by_ids(self, ids: Sequence[str]) -> VectorDbResponse:
        """
        Fetch records directly by id, bypassing similarity search.

        Returns:
            VectorDbResponse with data {"records": [{"id", "values", "metadata"}, ...]}

        Raises:
            ConfigurationError: If backend credentials are missing
        """
        try:
            await self.initialize()
            records = await self._fetch_records(list(ids)) if ids else []
            return VectorDbResponse(success=True, data={'records': [r.to_dict() for r in records]})
        except ConfigurationError:
            raise
        except Exception as e:
            logger.error(f"Error fetching records by IDs: {str(e)}")
            return VectorDbResponse(success=False, error=e)
