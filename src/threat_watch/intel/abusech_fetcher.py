# Intel Module - abuse.ch Feed Adapters
#
# Concrete adapters for the abuse.ch JSON APIs:
#   - URLhaus: malicious URL tracking (fixed High severity)
#   - ThreatFox: IOC sharing platform (confidence_level -> severity)
#   - MalwareBazaar: recent malware samples (fixed Critical severity)
#
# abuse.ch issues a free Auth-Key; it is sent when configured.  The
# plain-text abuse.ch blocklists (Feodo Tracker, SSLBL) live in
# blocklist_fetcher.py with the other line-list feeds.

import logging
from typing import Any, Dict, List, Optional

from .fetcher import FeedFetcher, as_list
from .models import Location, Threat, TransportKind, UNKNOWN_REGION
from .severity import FixedSeverity, Severity, THREATFOX_SEVERITY

logger = logging.getLogger(__name__)

# API endpoints
URLHAUS_API_URL = "https://urlhaus-api.abuse.ch/v1"
THREATFOX_API_URL = "https://threatfox-api.abuse.ch/api/v1"
MALWAREBAZAAR_API_URL = "https://mb-api.abuse.ch/api/v1"

DEFAULT_URLHAUS_LIMIT = 1000
DEFAULT_THREATFOX_DAYS = 1


class _AbuseChFetcher(FeedFetcher):
    """Shared Auth-Key handling for abuse.ch APIs."""

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        if self._api_key:
            headers["Auth-Key"] = self._api_key
        return headers


# ----------------------------------------------------------------------
# URLhaus
# ----------------------------------------------------------------------


class URLhausFetcher(_AbuseChFetcher):
    """URLhaus recently added malware distribution URLs."""

    severity_table = FixedSeverity(Severity.HIGH)

    def __init__(self):
        super().__init__("urlhaus", URLHAUS_API_URL)
        self._limit: int = DEFAULT_URLHAUS_LIMIT

    def configure(self, **kwargs) -> None:
        """Keyword Args: api_key, base_url, timeout, limit (default 1000)."""
        super().configure(**kwargs)
        self._limit = int(kwargs.get("limit", self._limit))

    @property
    def endpoints(self) -> List[str]:
        return [f"{self._base_url}/urls/recent/limit/{self._limit}/"]

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        data = self._get_json(self.endpoints[0])
        if data.get("query_status") == "no_results":
            return []
        return self._normalize_each(
            data["urls"], lambda entry: self._to_threat(entry, fetched_at)
        )

    def _to_threat(self, entry: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        url = (entry.get("url") or "").strip()
        entry_id = entry.get("id")
        if not url or entry_id is None:
            return None

        threat = entry.get("threat") or "malware_download"
        return Threat.create(
            id=f"urlhaus-{entry_id}",
            title=f"Malicious URL - {url}",
            description=f"Malware URL: {url} (Type: {threat})",
            severity=self.severity_table(),
            type="malware-url",
            source="URLhaus",
            timestamp=entry.get("date_added"),
            indicators=[("url", url)],
            tags=["malware", "urlhaus", threat] + as_list(entry.get("tags")),
            fetched_at=fetched_at,
        )


# ----------------------------------------------------------------------
# ThreatFox
# ----------------------------------------------------------------------


class ThreatFoxFetcher(_AbuseChFetcher):
    """ThreatFox recent IOCs (authenticated JSON POST)."""

    transport = TransportKind.AUTH_POST
    severity_table = THREATFOX_SEVERITY

    def __init__(self):
        super().__init__("threatfox", THREATFOX_API_URL)
        self._days: int = DEFAULT_THREATFOX_DAYS

    def configure(self, **kwargs) -> None:
        """Keyword Args: api_key, base_url, timeout, days (1-7, default 1)."""
        super().configure(**kwargs)
        self._days = max(1, min(int(kwargs.get("days", self._days)), 7))

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def endpoints(self) -> List[str]:
        return [f"{self._base_url}/"]

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        data = self._post_json(
            self.endpoints[0],
            json_body={"query": "get_iocs", "days": self._days},
        )

        query_status = data.get("query_status", "")
        if query_status == "no_result":
            return []
        if query_status != "ok":
            raise ValueError(f"ThreatFox query_status={query_status!r}")

        return self._normalize_each(
            data["data"], lambda entry: self._to_threat(entry, fetched_at)
        )

    def _to_threat(self, entry: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        value = (entry.get("ioc") or "").strip()
        entry_id = entry.get("id")
        if not value or entry_id is None:
            return None

        ioc_type = entry.get("ioc_type") or "unknown"
        threat_type = entry.get("threat_type") or "unknown"
        malware = entry.get("malware_printable") or entry.get("malware")

        return Threat.create(
            id=f"threatfox-{entry_id}",
            title=f"{ioc_type} - {value}",
            description=entry.get("threat_type_desc") or "Malicious indicator detected",
            severity=self.severity_table(entry.get("confidence_level")),
            type=threat_type,
            source="ThreatFox",
            timestamp=entry.get("first_seen"),
            created_at=entry.get("first_seen"),
            updated_at=entry.get("last_seen"),
            location=Location(region=entry.get("reporter_country") or UNKNOWN_REGION),
            indicators=[(ioc_type, value)],
            tags=[malware, threat_type] + as_list(entry.get("tags")),
            fetched_at=fetched_at,
        )


# ----------------------------------------------------------------------
# MalwareBazaar
# ----------------------------------------------------------------------


class MalwareBazaarFetcher(_AbuseChFetcher):
    """MalwareBazaar most recent malware samples."""

    transport = TransportKind.AUTH_POST
    severity_table = FixedSeverity(Severity.CRITICAL)

    def __init__(self):
        super().__init__("malwarebazaar", MALWAREBAZAAR_API_URL)

    @property
    def endpoints(self) -> List[str]:
        return [f"{self._base_url}/"]

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        data = self._post_json(
            self.endpoints[0],
            data={"query": "get_recent", "selector": "time"},
        )
        if data.get("query_status") == "no_results":
            return []
        return self._normalize_each(
            data["data"], lambda item: self._to_threat(item, fetched_at)
        )

    def _to_threat(self, item: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        sha256 = (item.get("sha256_hash") or "").strip()
        if not sha256:
            return None

        file_name = item.get("file_name")
        file_type = item.get("file_type") or "unknown"
        signature = item.get("signature")

        return Threat.create(
            id=f"malwarebazaar-{sha256}",
            title=f"Malware - {file_name or sha256}",
            description=f"Malware sample: {signature or 'Unknown'} (Type: {file_type})",
            severity=self.severity_table(),
            type="malware",
            source="MalwareBazaar",
            timestamp=item.get("first_seen"),
            created_at=item.get("first_seen"),
            updated_at=item.get("last_seen"),
            indicators=[("hash", sha256), ("filename", file_name)],
            tags=["malware", file_type, signature] + as_list(item.get("tags")),
            fetched_at=fetched_at,
        )
