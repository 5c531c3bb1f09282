# Intel Module - ThreatAggregator Coordinator
#
# Runs one aggregation cycle across every registered feed adapter:
#   - Fans out one task per adapter on a ThreadPoolExecutor
#   - Settle-all join, bounded by an optional cycle ceiling
#   - Concatenates successful batches in registration order
#   - Deduplicates the new batch (first seen wins)
#   - Reports failed sources; signals a total outage without raising
#
# Retention and publishing belong to RefreshScheduler; this class only
# produces the per-cycle batch and its report.

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..core.audit_log import AuditLogger, EventSeverity, EventType, get_audit_logger
from .dedup import deduplicate
from .fetcher import FeedFetcher
from .models import ConfigurationError, FetchResult, Threat, TransportError, utc_now

logger = logging.getLogger(__name__)

DEADLINE_EXCEEDED = "cycle deadline exceeded"


@dataclass(frozen=True)
class TotalOutageSignal:
    """Informational notice that every adapter failed in one cycle."""

    failed_sources: List[str]
    occurred_at: str = field(default_factory=utc_now)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "failed_sources": list(self.failed_sources),
            "occurred_at": self.occurred_at,
        }


class AggregationReport:
    """Summary of one aggregation cycle, plus its deduplicated batch."""

    def __init__(self):
        self.started = utc_now()
        self.finished: Optional[str] = None
        self.duration_ms: float = 0.0
        self.fetch_results: List[FetchResult] = []
        self.threats: List[Threat] = []
        self.total_fetched: int = 0
        self.total_after_dedup: int = 0

    @property
    def failed_sources(self) -> List[str]:
        return [r.source for r in self.fetch_results if not r.success]

    @property
    def feeds_succeeded(self) -> int:
        return sum(1 for r in self.fetch_results if r.success)

    @property
    def feeds_failed(self) -> int:
        return sum(1 for r in self.fetch_results if not r.success)

    @property
    def total_outage(self) -> bool:
        return bool(self.fetch_results) and self.feeds_succeeded == 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "started": self.started,
            "finished": self.finished,
            "duration_ms": round(self.duration_ms, 1),
            "feeds_succeeded": self.feeds_succeeded,
            "feeds_failed": self.feeds_failed,
            "failed_sources": self.failed_sources,
            "total_outage": self.total_outage,
            "total_fetched": self.total_fetched,
            "total_after_dedup": self.total_after_dedup,
            "fetch_results": [r.to_dict() for r in self.fetch_results],
        }


class ThreatAggregator:
    """Fan-out/fan-in coordinator over feed adapters.

    Usage::

        agg = ThreatAggregator(max_workers=8, cycle_timeout=60)
        agg.register(AbuseIPDBFetcher())
        agg.register(URLhausFetcher())
        report = agg.run()
        report.threats          # deduplicated batch for this cycle
        report.failed_sources   # names of adapters that failed
    """

    def __init__(
        self,
        max_workers: Optional[int] = None,
        cycle_timeout: Optional[float] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._max_workers = max_workers
        self._cycle_timeout = cycle_timeout
        self._audit_logger = audit_logger

        self._fetchers: List[FeedFetcher] = []
        self._outage_listeners: List[Callable[[TotalOutageSignal], None]] = []
        self._lock = threading.RLock()
        self._last_report: Optional[AggregationReport] = None

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, fetcher: FeedFetcher) -> None:
        """Register a feed adapter."""
        with self._lock:
            if any(f.name == fetcher.name for f in self._fetchers):
                raise ConfigurationError(f"Adapter {fetcher.name!r} already registered")
            self._fetchers.append(fetcher)

    @property
    def adapter_count(self) -> int:
        with self._lock:
            return len(self._fetchers)

    @property
    def adapters(self) -> List[FeedFetcher]:
        with self._lock:
            return list(self._fetchers)

    def add_outage_listener(self, callback: Callable[[TotalOutageSignal], None]) -> None:
        """Call ``callback`` with a TotalOutageSignal when every adapter fails."""
        self._outage_listeners.append(callback)

    @property
    def audit(self) -> AuditLogger:
        return self._audit_logger or get_audit_logger()

    # ------------------------------------------------------------------
    # Core aggregation
    # ------------------------------------------------------------------

    def run(self) -> AggregationReport:
        """Execute one aggregation cycle.

        1. Run all adapters in parallel (thread pool)
        2. Wait for every adapter, or until the cycle ceiling
        3. Concatenate successes in registration order
        4. Deduplicate the new batch

        Raises:
            ConfigurationError: no adapters are registered.
        """
        fetchers = self.adapters
        if not fetchers:
            raise ConfigurationError("No feed adapters registered")

        report = AggregationReport()
        start = time.monotonic()

        report.fetch_results = self._fetch_all(fetchers)

        batch: List[Threat] = []
        for fr in report.fetch_results:
            batch.extend(fr.records)
        report.total_fetched = len(batch)

        report.threats = deduplicate(batch)
        report.total_after_dedup = len(report.threats)

        report.duration_ms = (time.monotonic() - start) * 1000
        report.finished = utc_now()
        self._finalize(report)
        return report

    def _fetch_all(self, fetchers: List[FeedFetcher]) -> List[FetchResult]:
        """Run every adapter and return one result per adapter, in order.

        Adapters still running when the cycle ceiling passes are reported
        as failed; their threads are abandoned, not joined.
        """
        workers = self._max_workers or len(fetchers)
        pool = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="feed")
        try:
            futures = [pool.submit(self._run_single_fetcher, f) for f in fetchers]
            wait(futures, timeout=self._cycle_timeout)
        finally:
            pool.shutdown(wait=False, cancel_futures=True)

        results: List[FetchResult] = []
        for fetcher, future in zip(fetchers, futures):
            if future.done() and not future.cancelled():
                results.append(future.result())  # never raises
                continue
            logger.warning(
                "Feed %s did not finish within %ss, dropped from this cycle",
                fetcher.name, self._cycle_timeout,
            )
            fetcher.record_error()
            results.append(FetchResult(
                source=fetcher.name,
                error=TransportError(fetcher.name, DEADLINE_EXCEEDED),
                duration_ms=(self._cycle_timeout or 0) * 1000,
            ))
        return results

    def _run_single_fetcher(self, fetcher: FeedFetcher) -> FetchResult:
        """Run one adapter, catching anything its own boundary missed."""
        start = time.monotonic()
        try:
            return fetcher.fetch()
        except Exception as exc:
            logger.exception("Feed %s raised past its boundary", fetcher.name)
            return FetchResult(
                source=fetcher.name,
                error=TransportError(fetcher.name, f"{type(exc).__name__}: {exc}"),
                duration_ms=(time.monotonic() - start) * 1000,
            )

    # ------------------------------------------------------------------
    # Logging & signals
    # ------------------------------------------------------------------

    def _finalize(self, report: AggregationReport) -> None:
        self._last_report = report

        for fr in report.fetch_results:
            if fr.success:
                continue
            self.audit.log_event(
                EventType.FEED_FAILED,
                EventSeverity.WARNING,
                f"Feed {fr.source} failed",
                details=fr.error.to_dict(),
            )

        logger.info(
            "Aggregation complete: %d fetched, %d after dedup, %d/%d feeds ok in %.0fms",
            report.total_fetched,
            report.total_after_dedup,
            report.feeds_succeeded,
            len(report.fetch_results),
            report.duration_ms,
        )

        if report.total_outage:
            self._signal_outage(TotalOutageSignal(failed_sources=report.failed_sources))

    def _signal_outage(self, signal: TotalOutageSignal) -> None:
        logger.error(
            "All %d feeds failed, serving previously retained threats",
            len(signal.failed_sources),
        )
        self.audit.log_event(
            EventType.TOTAL_OUTAGE,
            EventSeverity.CRITICAL,
            "Every feed failed in this cycle",
            details=signal.to_dict(),
        )
        for callback in list(self._outage_listeners):
            try:
                callback(signal)
            except Exception as exc:
                logger.warning("Outage listener failed: %s", exc)

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def get_last_report(self) -> Optional[Dict[str, Any]]:
        """Return the most recent aggregation report as a dict."""
        if self._last_report is None:
            return None
        return self._last_report.to_dict()

    def stats(self) -> Dict[str, Any]:
        """Return coordinator status summary."""
        fetchers = self.adapters
        return {
            "adapter_count": len(fetchers),
            "adapters": [f.name for f in fetchers],
            "adapter_stats": [f.get_stats() for f in fetchers],
            "max_workers": self._max_workers,
            "cycle_timeout": self._cycle_timeout,
            "last_report": self.get_last_report(),
        }
