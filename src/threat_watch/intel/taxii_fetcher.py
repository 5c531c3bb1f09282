# Intel Module - TAXII 2.x Feed Adapter
#
# Reads STIX objects from one TAXII collection.  Keeps:
#   - threat-actor / intrusion-set objects (no atomic indicator)
#   - indicator objects, whose STIX pattern is mined for simple
#     ``[object:path = 'value']`` comparisons
# Everything else in the envelope is ignored.  Severity comes from the
# STIX ``confidence`` via CONFIDENCE_SEVERITY.

import logging
import re
from typing import Any, Dict, List, Optional, Tuple

import httpx

from .fetcher import FeedFetcher
from .models import Threat
from .severity import CONFIDENCE_SEVERITY

logger = logging.getLogger(__name__)

TAXII_MEDIA_TYPE = "application/taxii+json;version=2.1"
DEFAULT_MAX_PAGES = 5

ACTOR_TYPES = ("threat-actor", "intrusion-set")

# STIX cyber-observable path -> indicator type
_STIX_OBSERVABLE_MAP: Dict[str, str] = {
    "ipv4-addr": "ip",
    "ipv6-addr": "ip",
    "domain-name": "domain",
    "url": "url",
    "email-addr": "email",
    "file": "hash",
}

_PATTERN_RE = re.compile(r"([a-z0-9-]+):([A-Za-z0-9_.'\-]+)\s*=\s*'((?:[^'\\]|\\.)*)'")


def parse_stix_pattern(pattern: str) -> List[Tuple[str, str]]:
    """Extract ``(type, value)`` pairs from a STIX pattern, in order.

    Only equality comparisons on known observable types are returned;
    ``file:name`` becomes a ``filename`` indicator, other ``file`` paths
    (hashes) become ``hash``.
    """
    pairs: List[Tuple[str, str]] = []
    for obj_type, path, value in _PATTERN_RE.findall(pattern or ""):
        ind_type = _STIX_OBSERVABLE_MAP.get(obj_type)
        if ind_type is None:
            continue
        if obj_type == "file" and path == "name":
            ind_type = "filename"
        pairs.append((ind_type, value.replace("\\'", "'")))
    return pairs


class TAXIIFetcher(FeedFetcher):
    """TAXII 2.x collection objects.

    Usage::

        fetcher = TAXIIFetcher()
        fetcher.configure(
            base_url="https://taxii.example.org",
            api_root="api1",
            collection="91a7b528-80eb-42ed-a74d-c6fbd5a26116",
            username="user", password="secret",
        )
    """

    severity_table = CONFIDENCE_SEVERITY

    def __init__(self):
        super().__init__("taxii", "")
        self._api_root: str = ""
        self._collection: str = ""
        self._username: Optional[str] = None
        self._password: Optional[str] = None
        self._max_pages: int = DEFAULT_MAX_PAGES

    def configure(self, **kwargs) -> None:
        """Configure the TAXII adapter.

        Keyword Args:
            base_url: TAXII server URL (required).
            api_root: API root path segment (required).
            collection: Collection id (required).
            username / password: Optional HTTP Basic credentials.
            api_key: Optional bearer token (used when no username is set).
            max_pages: Maximum envelopes to follow (default 5).
        """
        super().configure(**kwargs)
        self._api_root = str(kwargs.get("api_root", self._api_root)).strip("/")
        self._collection = str(kwargs.get("collection", self._collection))
        self._username = kwargs.get("username", self._username)
        self._password = kwargs.get("password", self._password)
        self._max_pages = int(kwargs.get("max_pages", self._max_pages))

    @property
    def endpoints(self) -> List[str]:
        return [
            f"{self._base_url}/{self._api_root}/collections/{self._collection}/objects/"
        ]

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["Accept"] = TAXII_MEDIA_TYPE
        if self._api_key and not self._username:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        if not (self._base_url and self._api_root and self._collection):
            raise ValueError("TAXII base_url, api_root and collection are required")

        auth = None
        if self._username:
            auth = httpx.BasicAuth(self._username, self._password or "")

        objects: List[Dict[str, Any]] = []
        params: Dict[str, Any] = {}
        for _ in range(self._max_pages):
            envelope = self._get_json(self.endpoints[0], params=params or None, auth=auth)
            objects.extend(envelope.get("objects") or [])
            next_token = envelope.get("next")
            if not envelope.get("more") or not next_token:
                break
            params = {"next": next_token}

        wanted = [
            obj for obj in objects
            if isinstance(obj, dict) and obj.get("type") in ACTOR_TYPES + ("indicator",)
        ]
        return self._normalize_each(wanted, lambda obj: self._to_threat(obj, fetched_at))

    def _to_threat(self, obj: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        stix_id = obj.get("id")
        if not stix_id:
            return None

        obj_type = obj["type"]
        indicators: List[Tuple[str, str]] = []
        if obj_type == "indicator":
            indicators = parse_stix_pattern(obj.get("pattern", ""))
            if not indicators:
                return None

        return Threat.create(
            id=f"taxii-{stix_id}",
            title=obj.get("name") or (indicators[0][1] if indicators else stix_id),
            description=obj.get("description", ""),
            severity=self.severity_table(obj.get("confidence")),
            type=obj_type,
            source="TAXII",
            timestamp=obj.get("created"),
            created_at=obj.get("created"),
            updated_at=obj.get("modified"),
            indicators=indicators,
            tags=obj.get("labels") or [],
            fetched_at=fetched_at,
        )
