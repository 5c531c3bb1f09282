# Intel Module - AlienVault OTX Feed Adapter
#
# Fetches subscribed pulses (threat reports) from AlienVault Open Threat
# Exchange.  Each pulse becomes one Threat whose indicators are the pulse
# indicators in the order OTX lists them.  Severity comes from the pulse
# TLP colour via OTX_TLP_SEVERITY.
#
# Supports:
#   - API key authentication (X-OTX-API-KEY)
#   - Pagination (OTX uses a next-page URL)

import logging
import re
from typing import Any, Dict, List, Optional

from .fetcher import FeedFetcher, as_list
from .models import ParseError, Threat
from .severity import OTX_TLP_SEVERITY

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://otx.alienvault.com"
PULSES_PATH = "/api/v1/pulses/subscribed"
DEFAULT_MAX_PAGES = 5


class OTXFetcher(FeedFetcher):
    """AlienVault OTX subscribed pulses.

    Usage::

        fetcher = OTXFetcher()
        fetcher.configure(api_key="your-otx-api-key")
        result = fetcher.fetch()
    """

    severity_table = OTX_TLP_SEVERITY

    def __init__(self):
        super().__init__("alienvault-otx", DEFAULT_BASE_URL)
        self._max_pages: int = DEFAULT_MAX_PAGES

    def configure(self, **kwargs) -> None:
        """Configure the OTX adapter.

        Keyword Args:
            api_key: OTX API key.
            base_url: Override the default OTX API base URL.
            max_pages: Maximum number of pages to fetch (default 5).
        """
        super().configure(**kwargs)
        self._max_pages = int(kwargs.get("max_pages", self._max_pages))

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def endpoints(self) -> List[str]:
        return [f"{self._base_url}{PULSES_PATH}"]

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        if self._api_key:
            headers["X-OTX-API-KEY"] = self._api_key
        return headers

    # ------------------------------------------------------------------
    # Pulse fetching with pagination
    # ------------------------------------------------------------------

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        pulses = self._fetch_pulses()
        return self._normalize_each(
            pulses, lambda pulse: self._to_threat(pulse, fetched_at)
        )

    def _fetch_pulses(self) -> List[Dict[str, Any]]:
        """Fetch the pulse list, following ``next`` links."""
        pulses: List[Dict[str, Any]] = []
        path: Optional[str] = PULSES_PATH
        page = 0

        while path and page < self._max_pages:
            data = self._get_json(f"{self._base_url}{path}")
            results = data["results"]
            if not isinstance(results, list):
                raise ParseError(
                    self.name, f"expected a pulse list, got {type(results).__name__}"
                )
            pulses.extend(results)

            next_url = data.get("next")
            path = self._extract_path(next_url) if next_url else None
            page += 1

        return pulses

    def _extract_path(self, url: str) -> str:
        """Extract the path+query from a full OTX URL."""
        # e.g. "https://otx.alienvault.com/api/v1/pulses/subscribed?page=2"
        # -> "/api/v1/pulses/subscribed?page=2"
        if url.startswith(self._base_url):
            return url[len(self._base_url):]
        match = re.match(r"https?://[^/]+(/.*)$", url)
        return match.group(1) if match else url

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _to_threat(self, pulse: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        pulse_id = pulse.get("id")
        if not pulse_id:
            return None

        tlp = pulse.get("TLP") or pulse.get("tlp")
        indicators = [
            (ind.get("type", ""), ind.get("indicator"))
            for ind in pulse.get("indicators") or []
        ]

        return Threat.create(
            id=f"alienvault-{pulse_id}",
            title=pulse.get("name", ""),
            description=pulse.get("description", ""),
            severity=self.severity_table(tlp),
            type="pulse",
            source="AlienVault OTX",
            timestamp=pulse.get("created"),
            created_at=pulse.get("created"),
            updated_at=pulse.get("modified"),
            indicators=indicators,
            tags=as_list(pulse.get("tags")) + [tlp],
            fetched_at=fetched_at,
        )
