# Intel Module - Threat Data Models
#
# Defines the canonical record every feed adapter normalizes into:
#   Threat     - one normalized indicator-of-compromise record
#   Indicator  - an atomic observable (ip, url, hash, domain, ...)
#   Location   - geo hint attached to a Threat
#   FeedSource - descriptor for one external source
#
# Plus the explicit result/error types that flow out of an adapter call.
# Threats are frozen: once an adapter has normalized a record it is never
# mutated again (enrichment produces a replaced copy).

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .severity import Severity, SeverityTable


class ThreatStatus(str, Enum):
    """Lifecycle status reported alongside a Threat."""

    ACTIVE = "active"
    RESOLVED = "resolved"
    INVESTIGATING = "investigating"


class TransportKind(str, Enum):
    """How a source delivers its payload."""

    JSON_API = "json"
    LINE_TEXT = "text"
    CSV = "csv"
    AUTH_POST = "post"


UNKNOWN_REGION = "Unknown"


def utc_now() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def parse_timestamp(value: Any, default: Optional[str] = None) -> str:
    """Normalize a vendor timestamp to ISO 8601 UTC.

    Accepts ISO 8601 (``Z`` suffix allowed), ``YYYY-MM-DD HH:MM:SS`` with an
    optional trailing ``UTC``, and epoch seconds.  Anything else yields
    ``default`` (or the current time).
    """
    fallback = default or utc_now()
    if value is None or value == "":
        return fallback

    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value), tz=timezone.utc).isoformat()
        except (OverflowError, OSError, ValueError):
            return fallback

    text = str(value).strip()
    if text.isdigit():
        return parse_timestamp(int(text), default=fallback)
    if text.endswith(" UTC"):
        text = text[:-4]
    text = text.replace("Z", "+00:00")

    try:
        dt = datetime.fromisoformat(text)
    except ValueError:
        try:
            dt = datetime.strptime(text, "%Y-%m-%d %H:%M:%S")
        except ValueError:
            return fallback

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat()


def normalize_tags(tags: Iterable[Any]) -> Tuple[str, ...]:
    """Lower-case, strip, and de-duplicate tags, dropping empty values.

    The first occurrence order is kept so output is deterministic.
    """
    seen = set()
    result: List[str] = []
    for tag in tags or ():
        if tag is None:
            continue
        text = str(tag).strip().lower()
        if not text or text in seen:
            continue
        seen.add(text)
        result.append(text)
    return tuple(result)


# ---------------------------------------------------------------------------
# Data Models
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Indicator:
    """An atomic observable attached to a Threat."""

    type: str  # ip, url, hash, domain, filename, ...
    value: str

    def to_dict(self) -> Dict[str, str]:
        return {"type": self.type, "value": self.value}


@dataclass(frozen=True)
class Location:
    """Geo hint for a Threat; ``Unknown`` with 0/0 when not available."""

    lat: float = 0.0
    lng: float = 0.0
    region: str = UNKNOWN_REGION

    @classmethod
    def unknown(cls) -> "Location":
        return cls()

    @property
    def is_unknown(self) -> bool:
        return self.region == UNKNOWN_REGION

    def to_dict(self) -> Dict[str, Any]:
        return {"lat": self.lat, "lng": self.lng, "region": self.region}


@dataclass(frozen=True)
class Threat:
    """Canonical threat record produced by every feed adapter.

    ``id`` is ``<source-prefix>-<natural-key>``.  ``indicators`` keeps the
    source's ordering because the dedup identity key depends on it.
    """

    id: str
    title: str
    description: str
    severity: Severity
    type: str
    source: str
    timestamp: str
    created_at: str
    updated_at: str
    location: Location = field(default_factory=Location)
    indicators: Tuple[Indicator, ...] = ()
    tags: Tuple[str, ...] = ()
    status: ThreatStatus = ThreatStatus.ACTIVE

    def __post_init__(self):
        if not isinstance(self.severity, Severity):
            raise TypeError(
                f"Threat {self.id!r} severity must be a canonical Severity, "
                f"got {self.severity!r}"
            )

    @classmethod
    def create(
        cls,
        *,
        id: str,
        title: str,
        description: str,
        severity: Severity,
        type: str,
        source: str,
        timestamp: Any = None,
        created_at: Any = None,
        updated_at: Any = None,
        location: Optional[Location] = None,
        indicators: Iterable[Tuple[str, Any]] = (),
        tags: Iterable[Any] = (),
        status: ThreatStatus = ThreatStatus.ACTIVE,
        fetched_at: Optional[str] = None,
    ) -> "Threat":
        """Build a Threat from loosely-typed adapter values.

        Timestamps missing from the source default to ``fetched_at``;
        ``created_at``/``updated_at`` default to ``timestamp``.  Indicator
        pairs with an empty value are dropped.
        """
        now = fetched_at or utc_now()
        ts = parse_timestamp(timestamp, default=now)
        created = parse_timestamp(created_at, default=ts)
        updated = parse_timestamp(updated_at, default=created)

        inds = tuple(
            Indicator(type=str(t), value=str(v).strip())
            for t, v in indicators
            if v is not None and str(v).strip()
        )

        return cls(
            id=id,
            title=title or "",
            description=description or "",
            severity=severity,
            type=type or "unknown",
            source=source,
            timestamp=ts,
            created_at=created,
            updated_at=updated,
            location=location or Location.unknown(),
            indicators=inds,
            tags=normalize_tags(tags),
            status=status,
        )

    @property
    def dedup_key(self) -> str:
        """Identity key: type plus indicator values in order, no source."""
        return f"{self.type}-{','.join(i.value for i in self.indicators)}"

    def first_indicator(self, ind_type: str) -> Optional[Indicator]:
        for ind in self.indicators:
            if ind.type == ind_type:
                return ind
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "severity": self.severity.value,
            "type": self.type,
            "source": self.source,
            "timestamp": self.timestamp,
            "location": self.location.to_dict(),
            "indicators": [i.to_dict() for i in self.indicators],
            "tags": list(self.tags),
            "status": self.status.value,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }


@dataclass(frozen=True)
class FeedSource:
    """Descriptor for one external source."""

    name: str
    endpoints: Tuple[str, ...]
    transport: TransportKind
    severity_table: SeverityTable
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "endpoints": list(self.endpoints),
            "transport": self.transport.value,
            "severity_table": repr(self.severity_table),
            "description": self.description,
        }


# ---------------------------------------------------------------------------
# Errors & results
# ---------------------------------------------------------------------------


class IngestError(Exception):
    """Recoverable failure scoped to a single adapter call."""

    kind = "ingest"

    def __init__(self, source: str, cause: Any):
        self.source = source
        self.cause = cause
        super().__init__(f"{source}: {cause}")

    def to_dict(self) -> Dict[str, str]:
        return {"source": self.source, "kind": self.kind, "cause": str(self.cause)}


class TransportError(IngestError):
    """Network failure, timeout, or non-2xx response."""

    kind = "transport"


class ParseError(IngestError):
    """Malformed or unexpectedly shaped payload."""

    kind = "parse"


class ConfigurationError(Exception):
    """Startup-time misconfiguration (e.g. no sources registered)."""


@dataclass
class FetchResult:
    """Outcome of a single adapter call: records plus optional failure."""

    source: str
    records: List[Threat] = field(default_factory=list)
    error: Optional[IngestError] = None
    duration_ms: float = 0.0

    @property
    def success(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "success": self.success,
            "records_count": len(self.records),
            "error": self.error.to_dict() if self.error else None,
            "duration_ms": round(self.duration_ms, 1),
        }
