"""Region-keyed TTL cache of catalog events."""
import atexit
import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from catalog.models import KNOWN_REGIONS, EventRecord

logger = logging.getLogger(__name__)

Fetcher = Callable[[int], List[EventRecord]]


@dataclass(frozen=True)
class CacheEntry:
    """Events of one region and the time they were fetched."""
    events: Tuple[EventRecord, ...]
    fetched_at: float


class RegionCacheStore:
    """Process-lifetime cache of event listings keyed by region."""

    DEFAULT_TTL_SECONDS = 15 * 60

    def __init__(
        self,
        fetcher: Fetcher,
        known_regions: Iterable[int] = KNOWN_REGIONS,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Initialize an empty cache.

        Args:
            fetcher: Callable returning the events of a region, raising on failure
            known_regions: Regions loaded by preload_all
            ttl_seconds: Maximum age of a fresh entry (default: 15 minutes)
            clock: Monotonic time source
        """
        self.fetcher = fetcher
        self.known_regions = tuple(known_regions)
        self.ttl_seconds = ttl_seconds
        self.clock = clock

        self._entries: Dict[int, CacheEntry] = {}
        self._inflight: Dict[int, threading.Event] = {}
        self._lock = threading.Lock()
        self._refresher: Optional['BackgroundRefresher'] = None

    def get_or_fetch(self, region: int) -> List[EventRecord]:
        """
        Return the events of a region, fetching first when missing or stale.

        A failed fetch is cached as an empty list so the upstream is not
        retried until the entry expires.

        Args:
            region: DMA id

        Returns:
            List of EventRecord objects
        """
        entry = self._load(region, keep_previous_on_failure=False, wait_for_fresh=True)
        return list(entry.events)

    def preload_all(self) -> None:
        """Fetch every known region that is missing or stale, concurrently."""
        stale = [region for region in self.known_regions if not self.is_fresh(region)]
        if not stale:
            return

        logger.info(f"Preloading {len(stale)} region(s): {stale}")

        with ThreadPoolExecutor(max_workers=len(stale)) as executor:
            futures = {
                executor.submit(
                    self._load, region,
                    keep_previous_on_failure=True, wait_for_fresh=False
                ): region
                for region in stale
            }

            for future in as_completed(futures):
                region = futures[future]
                try:
                    future.result()
                except Exception as e:
                    # One region failing must not abort the others
                    logger.error(
                        f"Error preloading region {region}: {e}",
                        extra={'region': region, 'error_type': type(e).__name__},
                        exc_info=True
                    )

    def refresh_in_background(self) -> None:
        """Schedule preload_all without waiting for it."""
        with self._lock:
            if self._refresher is None:
                self._refresher = BackgroundRefresher(self.preload_all)
            refresher = self._refresher
        refresher.request()

    def stop_background_refresh(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            refresher = self._refresher
            self._refresher = None
        if refresher is not None:
            refresher.stop(timeout)

    def is_fresh(self, region: int) -> bool:
        with self._lock:
            return self._is_fresh(self._entries.get(region))

    def snapshot(self) -> Dict[int, CacheEntry]:
        """Return a consistent copy of all cache entries."""
        with self._lock:
            return dict(self._entries)

    def _is_fresh(self, entry: Optional[CacheEntry]) -> bool:
        if entry is None:
            return False
        return self.clock() - entry.fetched_at <= self.ttl_seconds

    def _load(
        self,
        region: int,
        keep_previous_on_failure: bool,
        wait_for_fresh: bool
    ) -> CacheEntry:
        """
        Fetch a region unless fresh, with at most one fetch in flight per region.

        Args:
            region: DMA id
            keep_previous_on_failure: Leave an existing entry untouched when the
                fetch fails instead of replacing it with an empty one
            wait_for_fresh: After waiting on another caller's fetch, fetch again
                if the entry is still not fresh

        Returns:
            The cache entry for the region after the load
        """
        while True:
            with self._lock:
                entry = self._entries.get(region)
                if self._is_fresh(entry):
                    return entry

                inflight = self._inflight.get(region)
                if inflight is None:
                    inflight = threading.Event()
                    self._inflight[region] = inflight
                    is_fetcher = True
                else:
                    is_fetcher = False

            if is_fetcher:
                break

            inflight.wait()

            if not wait_for_fresh:
                with self._lock:
                    entry = self._entries.get(region)
                if entry is not None:
                    return entry

        try:
            events = self._fetch(region)
            with self._lock:
                entry = self._entries.get(region)
                if events is not None:
                    entry = CacheEntry(tuple(events), self.clock())
                elif entry is None or not keep_previous_on_failure:
                    entry = CacheEntry((), self.clock())
                self._entries[region] = entry
            return entry
        finally:
            with self._lock:
                marker = self._inflight.pop(region, None)
            if marker:
                marker.set()

    def _fetch(self, region: int) -> Optional[List[EventRecord]]:
        """Call the fetcher, logging failures. Returns None when it failed."""
        try:
            events = list(self.fetcher(region))
        except Exception as e:
            logger.error(
                f"Error fetching events for region {region}: {e}",
                extra={'region': region, 'error_type': type(e).__name__}
            )
            return None

        logger.info(f"Cached {len(events)} events for region {region}")
        return events


class BackgroundRefresher:
    """Worker thread running a refresh job off the caller's thread."""

    def __init__(self, job: Callable[[], None], max_pending: int = 1):
        """
        Initialize the worker; the thread starts on the first request.

        Args:
            job: Callable run once per accepted request
            max_pending: Size of the request queue
        """
        self.job = job
        self._requests: queue.Queue = queue.Queue(maxsize=max_pending)
        self._shutdown = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def request(self) -> bool:
        """
        Ask for a refresh run.

        Returns:
            True if the request was queued, False if dropped
        """
        if self._shutdown.is_set():
            return False

        self._ensure_started()
        try:
            self._requests.put_nowait(None)
        except queue.Full:
            logger.debug("Background refresh already pending; request dropped")
            return False
        return True

    def stop(self, timeout: Optional[float] = None) -> None:
        """Signal shutdown and wait for the worker to exit."""
        self._shutdown.set()
        atexit.unregister(self.stop)
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)

    def wait_idle(self) -> None:
        """Block until every queued request has been processed."""
        self._requests.join()

    def _ensure_started(self) -> None:
        with self._start_lock:
            if self._thread is not None:
                return
            self._thread = threading.Thread(
                target=self._run, name='region-cache-refresh', daemon=True
            )
            self._thread.start()
            atexit.register(self.stop, 5)

    def _run(self) -> None:
        while not self._shutdown.is_set():
            try:
                self._requests.get(timeout=0.5)
            except queue.Empty:
                continue

            try:
                if not self._shutdown.is_set():
                    self.job()
            except Exception:
                logger.exception("Background cache refresh failed")
            finally:
                self._requests.task_done()


class Aggregator:
    """Read facade merging regions and keeping the cache warm."""

    def __init__(self, store: RegionCacheStore):
        self.store = store

    def all_events(self) -> List[EventRecord]:
        """
        Return the events of every cached region, concatenated.

        Events cached under more than one region appear once per region.
        """
        self.store.preload_all()
        events: List[EventRecord] = []
        for entry in self.store.snapshot().values():
            events.extend(entry.events)
        return events

    def events(self, region: Optional[int] = None) -> List[EventRecord]:
        """
        Return the events of one region, or of all regions when omitted.

        A region-scoped read also schedules a background refresh of the
        other known regions.
        """
        if region is None:
            return self.all_events()

        events = self.store.get_or_fetch(region)
        self.store.refresh_in_background()
        return events
