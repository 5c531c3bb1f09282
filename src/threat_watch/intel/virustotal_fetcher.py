# Intel Module - VirusTotal Feed Adapter
#
# Pulls recent file detection reports.  Severity is derived from the
# number of engines flagging the file (``positives``) via
# VIRUSTOTAL_SEVERITY.  The API key travels as the ``apikey`` query param.

import logging
from typing import Any, Dict, List, Optional

from .fetcher import FeedFetcher
from .models import Threat
from .severity import VIRUSTOTAL_SEVERITY

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://www.virustotal.com/vtapi/v2"


class VirusTotalFetcher(FeedFetcher):
    """VirusTotal latest file detections."""

    severity_table = VIRUSTOTAL_SEVERITY

    def __init__(self):
        super().__init__("virustotal", DEFAULT_BASE_URL)

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def endpoints(self) -> List[str]:
        return [f"{self._base_url}/file/reports"]

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        payload = self._get_json(
            self.endpoints[0],
            params={"apikey": self._api_key or "", "allinfo": "true"},
        )
        return self._normalize_each(
            payload["data"], lambda item: self._to_threat(item, fetched_at)
        )

    def _to_threat(self, item: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        sha256 = (item.get("sha256") or "").strip()
        if not sha256:
            return None

        positives = item.get("positives", 0)
        total = item.get("total", 0)

        return Threat.create(
            id=f"virustotal-{sha256}",
            title=f"Malware Detection - {item.get('name') or sha256}",
            description=f"Detected by {positives} out of {total} engines",
            severity=self.severity_table(positives),
            type="malware",
            source="VirusTotal",
            timestamp=item.get("scan_date"),
            indicators=[("hash-sha256", sha256), ("hash-md5", item.get("md5"))],
            tags=["malware", "virustotal"],
            fetched_at=fetched_at,
        )
