# Intel Module - MISP Feed Adapter
#
# Reads the event index of a MISP instance.  Each event becomes one
# Threat; its attributes become indicators in MISP's order.  Severity
# comes from ``threat_level_id`` via MISP_SEVERITY, which keeps MISP's
# own encoding where 4 is the most severe level.

import logging
from typing import Any, Dict, List, Optional

from .fetcher import FeedFetcher
from .models import ParseError, Threat
from .severity import MISP_SEVERITY

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 100


class MISPFetcher(FeedFetcher):
    """MISP instance event index.

    Usage::

        fetcher = MISPFetcher()
        fetcher.configure(base_url="https://misp.example.org", api_key="...")
        result = fetcher.fetch()
    """

    severity_table = MISP_SEVERITY

    def __init__(self):
        super().__init__("misp", "")
        self._limit: int = DEFAULT_LIMIT

    def configure(self, **kwargs) -> None:
        """Keyword Args: api_key, base_url (required), timeout, limit."""
        super().configure(**kwargs)
        self._limit = int(kwargs.get("limit", self._limit))

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def endpoints(self) -> List[str]:
        return [f"{self._base_url}/events/index/limit:{self._limit}"]

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["Content-Type"] = "application/json"
        if self._api_key:
            headers["Authorization"] = self._api_key
        return headers

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        if not self._base_url:
            raise ValueError("MISP base_url is not configured")
        events = self._get_json(self.endpoints[0])
        if not isinstance(events, list):
            raise ParseError(
                self.name, f"expected an event list, got {type(events).__name__}"
            )
        # Some MISP versions wrap each event as {"Event": {...}}
        events = [e.get("Event", e) if isinstance(e, dict) else e for e in events]
        return self._normalize_each(
            events, lambda event: self._to_threat(event, fetched_at)
        )

    def _to_threat(self, event: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        uuid = event.get("uuid")
        if not uuid:
            return None

        indicators = [
            (attr.get("type", ""), attr.get("value"))
            for attr in event.get("Attribute") or []
        ]
        tags = [tag.get("name") for tag in event.get("Tag") or [] if isinstance(tag, dict)]

        return Threat.create(
            id=f"misp-{uuid}",
            title=event.get("info", ""),
            description=event.get("description", ""),
            severity=self.severity_table(event.get("threat_level_id")),
            type=event.get("type") or "unknown",
            source="MISP",
            timestamp=event.get("timestamp"),
            created_at=event.get("date"),
            updated_at=event.get("timestamp"),
            indicators=indicators,
            tags=tags,
            fetched_at=fetched_at,
        )
