# Core - Pipeline Audit Log
#
# Append-only, structured record of what the aggregation pipeline did:
# cycles completed or skipped, feeds that failed, total outages, and
# process start/stop.  One JSON object per line, one file per day.
#
# Module loggers (logging.getLogger(__name__)) remain the place for
# operational chatter; this log is the durable event trail.

import logging
import threading
from collections import deque
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional
from uuid import uuid4

import structlog

AUDIT_LOGGER_NAME = "threat_watch.audit"
DEFAULT_LOG_DIR = Path("./audit_logs")
RECENT_EVENTS = 500


class EventType(str, Enum):
    """Types of pipeline events that are audited."""

    CYCLE_COMPLETED = "cycle.completed"
    CYCLE_SKIPPED = "cycle.skipped"
    CYCLE_FAILED = "cycle.failed"
    FEED_FAILED = "feed.failed"
    TOTAL_OUTAGE = "feed.total_outage"

    SYSTEM_START = "system.start"
    SYSTEM_STOP = "system.stop"


class EventSeverity(str, Enum):
    """Severity of an audited pipeline event."""

    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class AuditLogger:
    """Append-only JSON-lines audit logger built on structlog.

    Features:
    - Structured JSON records with event id and ISO timestamp
    - Daily log files under ``log_dir``
    - Small in-memory ring of recent events for status endpoints
    """

    def __init__(self, log_dir: Optional[Path] = None):
        """
        Args:
            log_dir: Directory for audit logs (default: ./audit_logs)
        """
        self.log_dir = Path(log_dir) if log_dir else DEFAULT_LOG_DIR
        self.log_dir.mkdir(parents=True, exist_ok=True)

        self._lock = threading.Lock()
        self._recent: Deque[Dict[str, Any]] = deque(maxlen=RECENT_EVENTS)

        structlog.configure(
            processors=[
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(),
            ],
            wrapper_class=structlog.stdlib.BoundLogger,
            context_class=dict,
            logger_factory=structlog.stdlib.LoggerFactory(),
            cache_logger_on_first_use=True,
        )

        self._setup_file_handler()
        self.logger = structlog.get_logger(AUDIT_LOGGER_NAME)

    def _setup_file_handler(self) -> None:
        """Point the dedicated audit logger at today's file."""
        today = datetime.now().strftime("%Y-%m-%d")
        self.log_file = self.log_dir / f"audit_{today}.log"

        file_handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(message)s"))  # structlog renders

        std_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for handler in list(std_logger.handlers):
            std_logger.removeHandler(handler)
            handler.close()
        std_logger.addHandler(file_handler)
        std_logger.setLevel(logging.INFO)
        std_logger.propagate = False

    def log_event(
        self,
        event_type: EventType,
        severity: EventSeverity,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> str:
        """Append one pipeline event.  Returns its event id."""
        event_id = str(uuid4())
        event_data = {
            "event_id": event_id,
            "event_type": event_type.value,
            "severity": severity.value,
            "message": message,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "details": details or {},
        }

        with self._lock:
            self._recent.append(event_data)
        self.logger.info("pipeline_event", **event_data)
        return event_id

    def query_events(
        self,
        event_types: Optional[List[EventType]] = None,
        severity: Optional[EventSeverity] = None,
        limit: int = 100,
    ) -> List[Dict[str, Any]]:
        """Most recent in-memory events, newest first, optionally filtered."""
        wanted = {t.value for t in event_types} if event_types else None
        results: List[Dict[str, Any]] = []
        with self._lock:
            events = list(self._recent)
        for event in reversed(events):
            if wanted is not None and event["event_type"] not in wanted:
                continue
            if severity is not None and event["severity"] != severity.value:
                continue
            results.append(event)
            if len(results) >= limit:
                break
        return results

    def close(self) -> None:
        std_logger = logging.getLogger(AUDIT_LOGGER_NAME)
        for handler in list(std_logger.handlers):
            std_logger.removeHandler(handler)
            handler.close()


# Global logger instance
_audit_logger: Optional[AuditLogger] = None


def get_audit_logger() -> AuditLogger:
    """Get global audit logger (singleton pattern)."""
    global _audit_logger
    if _audit_logger is None:
        _audit_logger = AuditLogger()
    return _audit_logger


def configure_audit_logger(log_dir: Optional[Path]) -> AuditLogger:
    """Replace the global audit logger with one writing to ``log_dir``."""
    global _audit_logger
    if _audit_logger is not None:
        _audit_logger.close()
    _audit_logger = AuditLogger(log_dir=log_dir)
    return _audit_logger
