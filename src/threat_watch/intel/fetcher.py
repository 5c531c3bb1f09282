# Intel Module - Abstract Feed Adapter
#
# Defines the FeedFetcher abstract base class that every concrete source
# integration (AbuseIPDB, OTX, ThreatFox, blocklists, MISP, ...) implements.
#
# Contract: ``fetch()`` never raises.  Transport and parse failures are
# caught at this boundary and returned as a FetchResult carrying an
# IngestError and zero records.  There is no retry inside a cycle; the
# next refresh cycle is the retry.

import logging
import threading
import time
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import httpx

from .models import (
    FeedSource,
    FetchResult,
    IngestError,
    ParseError,
    Threat,
    TransportError,
    TransportKind,
    utc_now,
)
from .severity import SeverityTable

logger = logging.getLogger(__name__)

USER_AGENT = "ThreatWatch/0.1"
REQUEST_TIMEOUT_SEC = 15.0

# Exceptions that mean "the payload was not what we expected".
PARSE_EXCEPTIONS = (ValueError, KeyError, TypeError, AttributeError, IndexError)


class FeedFetcher(ABC):
    """Abstract base class for feed adapters.

    Concrete adapters set their defaults in ``__init__``, accept
    credentials and endpoint overrides via ``configure()``, and implement
    ``_fetch_records()`` which may raise freely; ``fetch()`` turns any
    transport or parse failure into an empty, error-tagged result.

    Lifecycle:
        1. ``configure()`` -- API key, base URL, timeout, limits
        2. ``fetch()`` -- pull and normalize, returns ``FetchResult``
    """

    transport: TransportKind = TransportKind.JSON_API
    severity_table: SeverityTable

    def __init__(self, name: str, base_url: str = ""):
        self.name = name
        self._base_url = base_url
        self._api_key: Optional[str] = None
        self._timeout: float = REQUEST_TIMEOUT_SEC

        self._stats_lock = threading.Lock()
        self._last_fetch: Optional[str] = None
        self._fetch_count: int = 0
        self._error_count: int = 0
        self._skipped_count: int = 0

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def configure(self, **kwargs) -> None:
        """Configure the adapter.

        Keyword Args:
            api_key: Per-source credential (API key or bearer token).
            base_url: Override the default endpoint.
            timeout: Per-request timeout in seconds.
        """
        if "api_key" in kwargs:
            self._api_key = kwargs["api_key"] or None
        if kwargs.get("base_url"):
            self._base_url = kwargs["base_url"].rstrip("/")
        if kwargs.get("timeout"):
            self._timeout = float(kwargs["timeout"])

    @property
    def requires_api_key(self) -> bool:
        return False

    @property
    def endpoints(self) -> List[str]:
        return [self._base_url]

    @property
    def source(self) -> FeedSource:
        """Descriptor for this adapter's source."""
        return FeedSource(
            name=self.name,
            endpoints=tuple(self.endpoints),
            transport=self.transport,
            severity_table=self.severity_table,
            description=(self.__doc__ or "").strip().splitlines()[0] if self.__doc__ else "",
        )

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def fetch(self) -> FetchResult:
        """Fetch and normalize one batch.  Never raises."""
        result = FetchResult(source=self.name)
        start = time.monotonic()
        fetched_at = utc_now()
        try:
            result.records = self._fetch_records(fetched_at)
        except IngestError as exc:
            result.error = exc
        except httpx.HTTPError as exc:
            result.error = TransportError(self.name, _describe(exc))
        except PARSE_EXCEPTIONS as exc:
            result.error = ParseError(self.name, _describe(exc))
        result.duration_ms = (time.monotonic() - start) * 1000

        if result.error is not None:
            self.record_error()
            logger.warning(
                "Feed %s failed (%s): %s",
                self.name, result.error.kind, result.error.cause,
            )
        else:
            self.record_fetch(len(result.records))
            logger.debug(
                "Feed %s returned %d records in %.0fms",
                self.name, len(result.records), result.duration_ms,
            )
        return result

    @abstractmethod
    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        """Pull the source and return normalized Threats.

        ``fetched_at`` is the ISO timestamp to use where the source
        carries no time of its own.
        """

    def _normalize_each(self, entries: Any, normalize) -> List[Threat]:
        """Apply ``normalize`` to each raw entry, skipping bad ones.

        An entry is skipped when ``normalize`` returns None or raises one
        of the parse exceptions; the rest of the batch is kept.

        Raises:
            ParseError: ``entries`` is not a list, or every entry raised.
        """
        if entries is None:
            return []
        if not isinstance(entries, (list, tuple)):
            raise ParseError(self.name, f"expected a list, got {type(entries).__name__}")

        records: List[Threat] = []
        skipped = 0
        first_error: Optional[Exception] = None
        failed = 0
        for entry in entries:
            try:
                threat = normalize(entry)
            except PARSE_EXCEPTIONS as exc:
                if first_error is None:
                    first_error = exc
                    logger.warning("Feed %s skipped entry: %s", self.name, _describe(exc))
                else:
                    logger.debug("Feed %s skipped entry: %s", self.name, exc)
                failed += 1
                threat = None
            if threat is None:
                skipped += 1
                continue
            records.append(threat)

        if entries and failed == len(entries):
            raise ParseError(
                self.name,
                f"all {failed} entries unparseable, first: {_describe(first_error)}",
            )
        if skipped:
            self.record_skipped(skipped)
            logger.info("Feed %s skipped %d unparseable entries", self.name, skipped)
        return records

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _build_headers(self) -> Dict[str, str]:
        """Default headers; adapters add their credential header."""
        return {
            "Accept": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _request(
        self,
        method: str,
        url: str,
        params: Optional[Dict[str, Any]] = None,
        json_body: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        auth: Optional[Any] = None,
    ) -> httpx.Response:
        """Single-attempt HTTP request.  Non-2xx raises HTTPStatusError."""
        resp = httpx.request(
            method,
            url,
            headers=headers if headers is not None else self._build_headers(),
            params=params,
            json=json_body,
            data=data,
            auth=auth,
            timeout=self._timeout,
            follow_redirects=True,
        )
        resp.raise_for_status()
        return resp

    def _get_json(self, url: str, **kwargs) -> Any:
        return self._request("GET", url, **kwargs).json()

    def _post_json(self, url: str, **kwargs) -> Any:
        return self._request("POST", url, **kwargs).json()

    def _get_text(self, url: str, **kwargs) -> str:
        headers = self._build_headers()
        headers["Accept"] = "text/plain, text/csv, */*"
        return self._request("GET", url, headers=headers, **kwargs).text

    # ------------------------------------------------------------------
    # Stats
    # ------------------------------------------------------------------

    def record_fetch(self, count: int) -> None:
        """Record a successful fetch for stats tracking."""
        with self._stats_lock:
            self._last_fetch = datetime.now(timezone.utc).isoformat()
            self._fetch_count += count

    def record_error(self) -> None:
        """Record a fetch error for stats tracking."""
        with self._stats_lock:
            self._error_count += 1

    def record_skipped(self, count: int = 1) -> None:
        """Record entries dropped because they could not be parsed."""
        with self._stats_lock:
            self._skipped_count += count

    def get_stats(self) -> Dict[str, object]:
        """Return adapter statistics."""
        with self._stats_lock:
            return {
                "name": self.name,
                "last_fetch": self._last_fetch,
                "total_fetched": self._fetch_count,
                "total_errors": self._error_count,
                "total_skipped": self._skipped_count,
            }


def _describe(exc: Exception) -> str:
    if isinstance(exc, httpx.HTTPStatusError):
        return f"HTTP {exc.response.status_code}"
    if isinstance(exc, httpx.TimeoutException):
        return f"timeout ({type(exc).__name__})"
    text = str(exc)
    return f"{type(exc).__name__}: {text}" if text else type(exc).__name__


def as_list(value: Any) -> List[Any]:
    """Coerce a vendor field that may be missing, scalar or list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    return [value]
