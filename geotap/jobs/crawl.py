"""Crawl orchestrator: sectors x queries through a bounded worker pool."""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, List, Optional, Sequence

from shapely.geometry import Point
from shapely.prepared import prep

from geotap.core.atomic import AtomicCounter, AtomicFloat
from geotap.core.config import ConfigError
from geotap.core.db import StorageError, Store
from geotap.etl.parser import parse_map_response
from geotap.jobs.progress import ProgressReporter
from geotap.models import Business, SearchParams, Sector
from geotap.vendors.google_maps import MapsSearchClient, RateLimitError, SearchError
from geotap.vendors.pb import PAGE_SIZE

logger = logging.getLogger(__name__)

DEFAULT_BLOCK_THRESHOLD = 50
DEFAULT_GRACE_PERIOD = 5.0

DELAY_STEP_UP = 0.5
DELAY_STEP_DOWN = 0.1
DELAY_CEILING = 5.0


class CrawlOutcome(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    BLOCKED = "blocked"


@dataclass
class Stats:
    """Live session counters; safe to read from any thread while a crawl runs."""

    sectors_total: int = 0
    sectors_done: AtomicCounter = field(default_factory=AtomicCounter)
    businesses_found: AtomicCounter = field(default_factory=AtomicCounter)
    businesses_stored: AtomicCounter = field(default_factory=AtomicCounter)
    errors: AtomicCounter = field(default_factory=AtomicCounter)
    rate_limits: AtomicCounter = field(default_factory=AtomicCounter)
    outcome: CrawlOutcome = CrawlOutcome.RUNNING

    def snapshot(self) -> Dict[str, object]:
        return {
            "sectors_total": self.sectors_total,
            "sectors_done": self.sectors_done.load(),
            "businesses_found": self.businesses_found.load(),
            "businesses_stored": self.businesses_stored.load(),
            "errors": self.errors.load(),
            "rate_limits": self.rate_limits.load(),
            "outcome": self.outcome.value,
        }


@dataclass(frozen=True)
class Job:
    sector: Sector
    query: str


class CrawlInterrupted(RuntimeError):
    """A crawl stopped before every job ran; ``stats`` holds what was done."""

    def __init__(self, message: str, stats: Stats):
        super().__init__(message)
        self.stats = stats


class CrawlCancelled(CrawlInterrupted):
    """The caller cancelled the session. Stored rows are kept."""


class PersistentBlockError(CrawlInterrupted):
    """The backend kept rate limiting until the session was considered blocked."""


class AdaptiveDelay:
    """Session-wide pause applied before every request.

    Each rate limit raises it by ``step_up`` up to ``ceiling``; each success
    lowers it by ``step_down`` down to zero.
    """

    def __init__(self, step_up: float = DELAY_STEP_UP, step_down: float = DELAY_STEP_DOWN, ceiling: float = DELAY_CEILING):
        self.step_up = step_up
        self.step_down = step_down
        self.ceiling = ceiling
        self._value = AtomicFloat(0.0)

    @property
    def current(self) -> float:
        return self._value.load()

    def record(self, rate_limited: bool) -> float:
        if rate_limited:
            return self._value.update(lambda v: min(self.ceiling, v + self.step_up))
        return self._value.update(lambda v: max(0.0, v - self.step_down))


@dataclass
class RunOptions:
    # Receives each batch after filtering, before it is stored.
    on_businesses: Optional[Callable[[List[Business]], None]] = None
    suppress_progress: bool = False
    stats: Optional[Stats] = None
    geo_filter: Optional[object] = None  # shapely (Multi)Polygon
    cancel_event: Optional[threading.Event] = None
    client: Optional[MapsSearchClient] = None
    delay: Optional[AdaptiveDelay] = None
    block_threshold: int = DEFAULT_BLOCK_THRESHOLD
    grace_period: float = DEFAULT_GRACE_PERIOD
    progress_interval: float = 2.0
    log_interval: float = 10.0


def build_jobs(sectors: Sequence[Sector], queries: Sequence[str]) -> List[Job]:
    return [Job(sector=sector, query=query) for query in queries for sector in sectors]


def filter_by_rating(businesses: List[Business], min_rating: float, max_rating: float) -> List[Business]:
    """Keep businesses inside the rating range; a zero bound means unset."""
    filtered = []
    for business in businesses:
        if min_rating > 0 and business.rating < min_rating:
            continue
        if max_rating > 0 and business.rating > max_rating:
            continue
        filtered.append(business)
    return filtered


def filter_by_geo(businesses: List[Business], polygon) -> List[Business]:
    """Drop businesses without coordinates or outside ``polygon`` (shapely, lng/lat)."""
    return [
        b for b in businesses
        if not (b.lat == 0 and b.lng == 0) and polygon.contains(Point(b.lng, b.lat))
    ]


class _Crawl:
    """State shared by every worker of one ``run`` call."""

    def __init__(self, params: SearchParams, store: Store, session_log: logging.Logger, options: RunOptions, stats: Stats):
        self.params = params
        self.store = store
        self.log = session_log
        self.options = options
        self.stats = stats
        self.cancel = options.cancel_event or threading.Event()
        self.client = options.client or MapsSearchClient(
            lang=params.lang, proxy_url=params.proxy_url, zoom=params.zoom, cancel_event=self.cancel
        )
        self.delay = options.delay or AdaptiveDelay()
        self.consecutive_rate_limits = AtomicCounter()
        self.geo_filter = prep(options.geo_filter) if options.geo_filter is not None else None
        self.debug_dir = Path(params.db_path).parent if params.db_path else Path.cwd()
        # Set once run() has given up on in-flight jobs; nothing is delivered or stored after that.
        self.closed = False
        self._commit_lock = threading.Lock()

    @property
    def blocked(self) -> bool:
        # The client counts each throttled HTTP response, including its own retries.
        streak = max(self.consecutive_rate_limits.load(), self.client.consecutive_rate_limits)
        return streak > self.options.block_threshold

    def close(self) -> None:
        with self._commit_lock:
            self.closed = True

    def record_outcome(self, rate_limited: bool) -> None:
        if rate_limited:
            self.consecutive_rate_limits.add(1)
        else:
            self.consecutive_rate_limits.store(0)
        self.delay.record(rate_limited)

    def process(self, job: Job) -> None:
        try:
            self._process_job(job)
        except Exception as exc:  # noqa: BLE001
            self.stats.errors.add(1)
            self.log.exception("ERROR sector=%d,%d err=%s", job.sector.row, job.sector.col, exc)
        finally:
            self.stats.sectors_done.add(1)

    def _process_job(self, job: Job) -> None:
        sector = job.sector
        max_pages = max(self.params.max_pages, 1)

        for page in range(max_pages):
            if self.cancel.is_set():
                return
            pause = self.delay.current
            if pause > 0 and self.cancel.wait(pause):
                return

            try:
                body = self.client.search_map(sector, job.query, page * PAGE_SIZE)
            except RateLimitError as exc:
                self.stats.rate_limits.add(1)
                self.record_outcome(rate_limited=True)
                self.log.warning("RATE_LIMIT sector=%d,%d status=%d query=%r", sector.row, sector.col, exc.status_code, job.query)
                self.stats.errors.add(1)
                return
            except SearchError as exc:
                self.log.error("ERROR sector=%d,%d page=%d err=%s", sector.row, sector.col, page, exc)
                self.stats.errors.add(1)
                return

            if self.closed:
                return
            self.record_outcome(rate_limited=False)

            if self.params.debug:
                self._dump(sector, page, body)

            businesses, has_more = parse_map_response(body, job.query)
            self.stats.businesses_found.add(len(businesses))

            if self.params.min_rating > 0 or self.params.max_rating > 0:
                businesses = filter_by_rating(businesses, self.params.min_rating, self.params.max_rating)
            if self.geo_filter is not None:
                businesses = filter_by_geo(businesses, self.geo_filter)

            if businesses and not self._commit(sector, businesses):
                return

            if not has_more:
                break

    def _commit(self, sector: Sector, businesses: List[Business]) -> bool:
        """Hand a filtered batch to the callback and the store; False once closed."""
        with self._commit_lock:
            if self.closed:
                return False
            if self.options.on_businesses is not None:
                try:
                    self.options.on_businesses(businesses)
                except Exception as exc:  # noqa: BLE001
                    self.log.exception("CALLBACK_ERROR sector=%d,%d err=%s", sector.row, sector.col, exc)
            try:
                inserted = self.store.insert_batch(businesses)
            except StorageError as exc:
                self.stats.errors.add(1)
                self.log.error("STORE_ERROR sector=%d,%d err=%s", sector.row, sector.col, exc)
            else:
                self.stats.businesses_stored.add(inserted)
        return True

    def _dump(self, sector: Sector, page: int, body: bytes) -> None:
        path = self.debug_dir / f"debug_sector_{sector.row}_{sector.col}_page_{page}.json"
        try:
            path.write_bytes(body)
        except OSError as exc:
            logger.warning("Could not write debug dump %s: %s", path, exc)


def _claim_slot(slots: threading.BoundedSemaphore, cancel: threading.Event) -> bool:
    """Block until a worker slot frees up; False if cancelled while waiting."""
    while not slots.acquire(timeout=0.2):
        if cancel.is_set():
            return False
    return True


def run(
    sectors: Sequence[Sector],
    params: SearchParams,
    store: Store,
    session_log: Optional[logging.Logger] = None,
    options: Optional[RunOptions] = None,
) -> Stats:
    """Crawl every (sector, query) pair and store what passes the filters.

    Returns the final ``Stats`` on normal completion. Raises ``CrawlCancelled``
    when ``options.cancel_event`` is set, and ``PersistentBlockError`` when
    more than ``options.block_threshold`` consecutive rate limits were seen;
    both carry the stats gathered so far.
    """
    options = options or RunOptions()
    session_log = session_log or logger

    if params.concurrency < 1:
        raise ConfigError("concurrency must be at least 1")
    jobs = build_jobs(sectors, params.queries)
    if not jobs:
        raise ConfigError("no jobs to run: need at least one sector and one query")

    stats = options.stats or Stats()
    stats.sectors_total = len(jobs)
    stats.outcome = CrawlOutcome.RUNNING

    crawl = _Crawl(params, store, session_log, options, stats)
    slots = threading.BoundedSemaphore(params.concurrency)
    executor = ThreadPoolExecutor(max_workers=params.concurrency, thread_name_prefix="geotap-worker")
    reporter = ProgressReporter(
        stats,
        session_log,
        suppress_stderr=options.suppress_progress,
        tick=options.progress_interval,
        log_interval=options.log_interval,
    )

    def _work(job: Job) -> None:
        try:
            crawl.process(job)
        finally:
            slots.release()

    outcome = CrawlOutcome.COMPLETED
    futures: List[Future] = []
    reporter.start()
    try:
        for job in jobs:
            claimed = _claim_slot(slots, crawl.cancel)
            if not claimed or crawl.cancel.is_set():
                if claimed:
                    slots.release()
                outcome = CrawlOutcome.CANCELLED
                break
            if crawl.blocked:
                slots.release()
                outcome = CrawlOutcome.BLOCKED
                break
            futures.append(executor.submit(_work, job))
    finally:
        if outcome is CrawlOutcome.COMPLETED and crawl.cancel.is_set():
            outcome = CrawlOutcome.CANCELLED
        if outcome is CrawlOutcome.CANCELLED:
            session_log.warning("CANCELLED: stopping dispatch after %d jobs", len(futures))
            wait(futures, timeout=options.grace_period)
            crawl.close()
            executor.shutdown(wait=False, cancel_futures=True)
        else:
            if outcome is CrawlOutcome.BLOCKED:
                session_log.error(
                    "ABORT: persistent rate limiting (%d+ consecutive), stopping", options.block_threshold
                )
            executor.shutdown(wait=True)
        reporter.stop()

    stats.outcome = outcome
    session_log.info(
        "DONE found=%d stored=%d errors=%d rate_limits=%d outcome=%s",
        stats.businesses_found.load(),
        stats.businesses_stored.load(),
        stats.errors.load(),
        stats.rate_limits.load(),
        outcome.value,
    )

    if outcome is CrawlOutcome.CANCELLED:
        raise CrawlCancelled("crawl cancelled", stats)
    if outcome is CrawlOutcome.BLOCKED:
        raise PersistentBlockError(
            "persistent rate limiting detected; try again later or reduce concurrency/zoom", stats
        )
    return stats
