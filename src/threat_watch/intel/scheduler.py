# Intel Module - RefreshScheduler
#
# Drives periodic aggregation cycles for one consumer and owns that
# consumer's retained working set:
#
#   unseen part of new batch + retained  ->  deduplicate  ->  first N
#
# New records are prepended, so the retained set is newest first.  A
# record whose identity key is already retained is dropped from the new
# batch: the earliest-seen occurrence keeps its place.
# Cycles are single-flight: a tick that arrives while a cycle is still
# running is skipped, never run concurrently.
#
# Ticks come from an APScheduler interval job (start/stop), or from
# poll() against an injected clock, or from tick() directly.

import logging
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from .aggregator import AggregationReport, ThreatAggregator
from .dedup import deduplicate, identity_key
from .index import ThreatIndexer
from .models import ConfigurationError, Threat

logger = logging.getLogger(__name__)


def coerce_capacity(name: str, capacity: Any) -> int:
    """Validate a retention cap: a whole number >= 0 (``50.0`` becomes 50)."""
    if isinstance(capacity, bool) or not isinstance(capacity, (int, float)):
        raise ConfigurationError(f"Consumer {name!r}: capacity must be an integer")
    if isinstance(capacity, float):
        if not capacity.is_integer():
            raise ConfigurationError(f"Consumer {name!r}: capacity must be an integer")
        capacity = int(capacity)
    if capacity < 0:
        raise ConfigurationError(f"Consumer {name!r}: capacity must be >= 0")
    return capacity


class BatchSubscriber(Protocol):
    """Downstream consumer of each published working set."""

    def on_batch(self, threats: Sequence[Threat]) -> None: ...


class RefreshScheduler:
    """Periodic refresh of a capped, deduplicated working set.

    Usage::

        feed = RefreshScheduler(aggregator, capacity=50, interval_seconds=30,
                                name="feed")
        feed.subscribe(dashboard)
        feed.start()        # APScheduler interval job
        ...
        feed.stop()

    Args:
        aggregator: Coordinator that produces each cycle's batch.
        capacity: Maximum retained threats (N >= 0).
        interval_seconds: Seconds between ticks (> 0).
        name: Consumer name, used in logs and job ids.
        clock: Monotonic time source used by ``poll()``.
        enricher: Optional object with ``enrich(threats) -> threats``
            applied to each new batch before merging.
    """

    def __init__(
        self,
        aggregator: ThreatAggregator,
        capacity: int,
        interval_seconds: float,
        name: str = "default",
        clock: Callable[[], float] = time.monotonic,
        enricher: Optional[Any] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        capacity = coerce_capacity(name, capacity)
        if isinstance(interval_seconds, bool) or not isinstance(interval_seconds, (int, float)):
            raise ConfigurationError(f"Consumer {name!r}: interval must be a number")
        if interval_seconds <= 0:
            raise ConfigurationError(f"Consumer {name!r}: interval must be > 0")

        self.name = name
        self._aggregator = aggregator
        self._capacity = capacity
        self._interval = float(interval_seconds)
        self._clock = clock
        self._enricher = enricher
        self._audit_logger = audit_logger

        self._subscribers: List[BatchSubscriber] = []
        self._indexers: List[ThreatIndexer] = []

        self._cycle_lock = threading.Lock()   # single-flight
        self._state_lock = threading.Lock()   # guards the fields below
        self._retained: List[Threat] = []
        self._last_report: Optional[AggregationReport] = None
        self._last_tick: Optional[float] = None
        self._cycles_completed = 0
        self._ticks_skipped = 0

        self._scheduler: Optional[BackgroundScheduler] = None

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    def subscribe(self, subscriber: BatchSubscriber) -> None:
        """Deliver ``on_batch(threats)`` after every completed cycle."""
        self._subscribers.append(subscriber)

    def add_indexer(self, indexer: ThreatIndexer) -> None:
        """Call ``index(threat)`` for every published threat."""
        self._indexers.append(indexer)

    @property
    def audit(self) -> AuditLogger:
        return self._audit_logger or get_audit_logger()

    # ------------------------------------------------------------------
    # Ticks
    # ------------------------------------------------------------------

    def tick(self) -> Optional[List[Threat]]:
        """Run one cycle unless one is already in flight.

        Returns the published working set, or None when skipped.
        """
        if not self._cycle_lock.acquire(blocking=False):
            with self._state_lock:
                self._ticks_skipped += 1
            logger.info("Refresh %s skipped: previous cycle still running", self.name)
            self.audit.log_event(
                EventType.CYCLE_SKIPPED,
                EventSeverity.INFO,
                f"Refresh {self.name} skipped, cycle in flight",
                details={"consumer": self.name},
            )
            return None
        try:
            return self._run_cycle()
        finally:
            self._cycle_lock.release()

    def poll(self) -> Optional[List[Threat]]:
        """Tick if at least one interval has elapsed on the injected clock."""
        now = self._clock()
        with self._state_lock:
            due = self._last_tick is None or now - self._last_tick >= self._interval
            if due:
                self._last_tick = now
        if not due:
            return None
        return self.tick()

    @property
    def in_flight(self) -> bool:
        return self._cycle_lock.locked()

    def _run_cycle(self) -> List[Threat]:
        report = self._aggregator.run()

        # Only the active cycle mutates _retained, so it is stable until the merge.
        with self._state_lock:
            known = {identity_key(t) for t in self._retained}
        fresh = [t for t in report.threats if identity_key(t) not in known]
        if self._enricher is not None:
            fresh = self._enricher.enrich(fresh)

        with self._state_lock:
            merged = deduplicate(fresh + self._retained)[: self._capacity]
            self._retained = merged
            self._last_report = report
            self._cycles_completed += 1

        self._publish(merged)

        logger.info(
            "Refresh %s: %d new, %d retained (cap %d), %d feeds failed",
            self.name, len(fresh), len(merged), self._capacity, report.feeds_failed,
        )
        self.audit.log_event(
            EventType.CYCLE_COMPLETED,
            EventSeverity.WARNING if report.total_outage else EventSeverity.INFO,
            f"Refresh {self.name} completed",
            details={
                "consumer": self.name,
                "new": len(fresh),
                "retained": len(merged),
                "failed_sources": report.failed_sources,
                "total_outage": report.total_outage,
                "duration_ms": round(report.duration_ms, 1),
            },
        )
        return list(merged)

    def _publish(self, threats: List[Threat]) -> None:
        for subscriber in list(self._subscribers):
            try:
                subscriber.on_batch(list(threats))
            except Exception as exc:
                logger.warning("Subscriber of %s failed: %s", self.name, exc)

        for indexer in list(self._indexers):
            for threat in threats:
                try:
                    indexer.index(threat)
                except Exception as exc:
                    logger.warning("Indexer failed on %s: %s", threat.id, exc)

    # ------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------

    def start(self, run_immediately: bool = True) -> None:
        """Start the background interval job."""
        if self._scheduler is not None:
            return  # already running

        self._scheduler = BackgroundScheduler(daemon=True)
        self._scheduler.add_job(
            self._scheduled_tick,
            trigger=IntervalTrigger(seconds=self._interval),
            id=f"refresh_{self.name}",
            name=f"Threat refresh ({self.name})",
            max_instances=1,
            coalesce=True,
            next_run_time=datetime.now(timezone.utc) if run_immediately else None,
            replace_existing=True,
        )
        self._scheduler.start()
        logger.info(
            "RefreshScheduler %s started: every %ss, cap %d",
            self.name, self._interval, self._capacity,
        )

    def stop(self) -> None:
        """Stop the background interval job."""
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("RefreshScheduler %s stopped", self.name)

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _scheduled_tick(self) -> None:
        """Job body: one tick, never letting an error kill the job."""
        try:
            self.tick()
        except Exception as exc:
            logger.exception("Refresh %s cycle failed", self.name)
            self.audit.log_event(
                EventType.CYCLE_FAILED,
                EventSeverity.CRITICAL,
                f"Refresh {self.name} failed",
                details={"consumer": self.name, "error": str(exc)},
            )

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def interval_seconds(self) -> float:
        return self._interval

    @property
    def retained(self) -> List[Threat]:
        """Current working set, newest first."""
        with self._state_lock:
            return list(self._retained)

    @property
    def last_report(self) -> Optional[AggregationReport]:
        with self._state_lock:
            return self._last_report

    def stats(self) -> Dict[str, Any]:
        with self._state_lock:
            return {
                "name": self.name,
                "running": self.is_running,
                "capacity": self._capacity,
                "interval_seconds": self._interval,
                "retained": len(self._retained),
                "cycles_completed": self._cycles_completed,
                "ticks_skipped": self._ticks_skipped,
                "last_report": self._last_report.to_dict() if self._last_report else None,
            }
