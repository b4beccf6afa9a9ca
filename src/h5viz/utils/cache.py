"""
Dataset Cache Module

Fronts the dataset store with:
- Single-flight fetches (one store read per distinct key in flight)
- LRU eviction bounded by a byte budget
- Slice reads on a ThreadPoolExecutor, safe to call from any thread
- Hit, miss and eviction counters for the session log
"""

import enum
import threading
import logging
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Optional
from concurrent.futures import ThreadPoolExecutor, Future
from time import monotonic

from h5viz.errors import CacheOverBudget, FetchCancelled
from h5viz.utils.metadata import format_data_size

logger = logging.getLogger(__name__)


# =============================================================================
# Data Structures
# =============================================================================

@dataclass
class CacheEntry:
    """
    A cached slice.

    Attributes
    ----------
    key : hashable
        (path, window) selection the data was read for
    data : Any
        Slice payload (an xarray.DataArray)
    nbytes : int
        Size of the payload in bytes
    last_access : float
        Monotonic timestamp of the last hit
    """
    key: Hashable
    data: Any
    nbytes: int
    last_access: float


class FetchStatus(enum.Enum):
    PENDING = "pending"
    READY = "ready"
    ERROR = "error"


@dataclass
class CacheLookup:
    """
    Result of DatasetCache.get_or_fetch().

    READY carries `data`, PENDING carries the shared `future`, ERROR carries
    `error`.
    """
    status: FetchStatus
    data: Any = None
    error: Optional[BaseException] = None
    future: Optional[Future] = None


@dataclass
class CacheMetrics:
    """
    Counters of slice cache activity.

    Attributes
    ----------
    hits : int
        Lookups served from a cached slice
    misses : int
        Fetches submitted to the store
    deduplicated : int
        Lookups attached to a fetch already in flight
    evictions : int
        Slices dropped to stay under the byte budget
    failures : int
        Fetches that raised
    total_load_time : float
        Seconds spent inside the store reading slices
    """
    hits: int = 0
    misses: int = 0
    deduplicated: int = 0
    evictions: int = 0
    failures: int = 0
    total_load_time: float = 0.0

    @property
    def hit_rate(self) -> float:
        """Share of lookups answered without a store read."""
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0

    @property
    def average_load_time(self) -> float:
        """Mean store read time per submitted fetch (seconds)."""
        return self.total_load_time / self.misses if self.misses else 0.0

    def __str__(self) -> str:
        return (
            f"  slices served from cache: {self.hit_rate:.1%} "
            f"({self.hits} of {self.hits + self.misses} lookups)\n"
            f"  store reads: {self.misses}, joined in flight: {self.deduplicated}, "
            f"failed: {self.failures}\n"
            f"  evicted: {self.evictions}, mean read: {self.average_load_time:.3f}s"
        )


def payload_nbytes(data: Any) -> int:
    """Byte size of a payload (DataArray / ndarray), 0 when unknown."""
    return int(getattr(data, 'nbytes', 0) or 0)


# =============================================================================
# Dataset Cache
# =============================================================================

class DatasetCache:
    """
    Memory-bounded, deduplicating cache of dataset slices.

    Thread Safety
    -------------
    The entry table, byte total, LRU order and in-flight table are guarded
    by one lock. The loader itself runs outside the lock on the executor, so
    fetches for distinct keys overlap freely.

    Parameters
    ----------
    loader : callable
        Function reading one slice: loader(key) -> data
    max_bytes : int
        Byte budget for cached payloads
    max_workers : int, optional
        Number of fetch worker threads (default: 2)
    """

    def __init__(
        self,
        loader: Callable[[Hashable], Any],
        max_bytes: int,
        max_workers: int = 2
    ):
        self.loader = loader
        self.max_bytes = max_bytes

        # LRU order: oldest first
        self._entries: "OrderedDict[Hashable, CacheEntry]" = OrderedDict()
        self._inflight: Dict[Hashable, Future] = {}
        self._total_bytes = 0
        self._closed = False

        # Thread safety
        self._lock = threading.Lock()

        self.executor = ThreadPoolExecutor(
            max_workers=max_workers,
            thread_name_prefix="h5viz_fetch"
        )

        self.metrics = CacheMetrics()

        logger.info(
            f"DatasetCache initialized: budget={format_data_size(max_bytes)}, "
            f"workers={max_workers}"
        )

    # -------------------------------------------------------------------------
    # Lookup
    # -------------------------------------------------------------------------

    def get_or_fetch(self, key: Hashable) -> CacheLookup:
        """
        Return cached data for `key`, or the fetch that will produce it.

        If an identical fetch is already in flight the caller is attached to
        it; otherwise exactly one new fetch is submitted.

        Parameters
        ----------
        key : hashable
            Selection to load

        Returns
        -------
        CacheLookup
            READY with data, PENDING with the shared future, or ERROR when the
            cache has been shut down
        """
        with self._lock:
            if self._closed:
                return CacheLookup(FetchStatus.ERROR, error=FetchCancelled("cache is shut down"))

            entry = self._entries.get(key)
            if entry is not None:
                entry.last_access = monotonic()
                self._entries.move_to_end(key)
                self.metrics.hits += 1
                logger.debug(f"Cache HIT: {key}")
                return CacheLookup(FetchStatus.READY, data=entry.data)

            future = self._inflight.get(key)
            if future is not None:
                self.metrics.deduplicated += 1
                logger.debug(f"Cache JOIN: {key}")
                return CacheLookup(FetchStatus.PENDING, future=future)

            self.metrics.misses += 1
            future = self.executor.submit(self._fetch_worker, key)
            self._inflight[key] = future
            logger.debug(f"Cache MISS: {key}")
            return CacheLookup(FetchStatus.PENDING, future=future)

    def get(self, key: Hashable) -> Optional[Any]:
        """Cached data for `key` without fetching, refreshing its LRU slot."""
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            entry.last_access = monotonic()
            self._entries.move_to_end(key)
            return entry.data

    def invalidate(self, key: Hashable) -> bool:
        """Drop the cached entry for `key`; in-flight fetches are not affected."""
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return False
            self._total_bytes -= entry.nbytes
            logger.debug(f"Cache INVALIDATE: {key}")
            return True

    def contains(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._entries

    def is_inflight(self, key: Hashable) -> bool:
        with self._lock:
            return key in self._inflight

    @property
    def total_bytes(self) -> int:
        with self._lock:
            return self._total_bytes

    def size(self) -> int:
        """Number of cached entries."""
        with self._lock:
            return len(self._entries)

    # -------------------------------------------------------------------------
    # Eviction
    # -------------------------------------------------------------------------

    def evict_as_needed(self, incoming: int = 0) -> int:
        """
        Evict least-recently-used entries until `incoming` more bytes fit.

        Entries whose key has an in-flight fetch are never evicted.

        Parameters
        ----------
        incoming : int, optional
            Bytes about to be inserted

        Returns
        -------
        int
            Number of evicted entries
        """
        with self._lock:
            return self._evict_locked(incoming)

    def _evict_locked(self, incoming: int) -> int:
        evicted = 0
        for key in list(self._entries):
            if self._total_bytes + incoming <= self.max_bytes:
                break
            if key in self._inflight:
                continue
            entry = self._entries.pop(key)
            self._total_bytes -= entry.nbytes
            self.metrics.evictions += 1
            evicted += 1
            logger.debug(f"Cache EVICT: {key} ({format_data_size(entry.nbytes)})")
        return evicted

    def _store_locked(self, key: Hashable, data: Any) -> None:
        nbytes = payload_nbytes(data)
        if nbytes > self.max_bytes:
            raise CacheOverBudget(
                f"{key} needs {format_data_size(nbytes)}, "
                f"budget is {format_data_size(self.max_bytes)}"
            )

        old = self._entries.pop(key, None)
        if old is not None:
            self._total_bytes -= old.nbytes

        self._evict_locked(nbytes)
        if self._total_bytes + nbytes > self.max_bytes:
            raise CacheOverBudget(f"{key} does not fit next to pinned entries")

        self._entries[key] = CacheEntry(key, data, nbytes, monotonic())
        self._total_bytes += nbytes
        logger.debug(
            f"Cache PUT: {key} (total: {format_data_size(self._total_bytes)}"
            f"/{format_data_size(self.max_bytes)})"
        )

    # -------------------------------------------------------------------------
    # Fetch Worker
    # -------------------------------------------------------------------------

    def _fetch_worker(self, key: Hashable) -> Any:
        """
        Load `key` on a worker thread and publish the result.

        The entry is stored before the key leaves the in-flight table, so
        waiters always find either the future or the cached entry.
        """
        try:
            if self._closed:
                raise FetchCancelled(f"fetch of {key} cancelled")

            start_time = monotonic()
            data = self.loader(key)
            elapsed = monotonic() - start_time

            with self._lock:
                self.metrics.total_load_time += elapsed
                if not self._closed:
                    try:
                        self._store_locked(key, data)
                    except CacheOverBudget as e:
                        logger.debug(f"Not caching: {e}")

            logger.info(f"Fetch SUCCESS: {key} ({elapsed:.3f}s)")
            return data

        except Exception as e:
            with self._lock:
                self.metrics.failures += 1
            logger.error(f"Fetch FAILED: {key} - {e}")
            raise

        finally:
            with self._lock:
                self._inflight.pop(key, None)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def get_metrics(self) -> CacheMetrics:
        """Get current cache metrics."""
        return self.metrics

    def clear(self) -> None:
        """Drop every cached entry."""
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
            logger.info("Cache cleared")

    def shutdown(self, wait: bool = False) -> None:
        """
        Stop accepting fetches and abandon queued ones.

        Fetches already running finish in the background; their results are
        not cached.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            pending = list(self._inflight.values())

        logger.info("Shutting down cache executor...")
        for future in pending:
            future.cancel()
        self.executor.shutdown(wait=wait, cancel_futures=True)
        self.clear()
        logger.info("DatasetCache shutdown complete")

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.shutdown(wait=True)
