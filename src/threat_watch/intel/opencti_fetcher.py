# Intel Module - OpenCTI Feed Adapter
#
# Queries an OpenCTI platform's GraphQL endpoint for threats (threat
# actors, intrusion sets, campaigns).  These carry no atomic observable,
# so the resulting Threats have an empty indicator list.  Severity comes
# from ``confidence`` via CONFIDENCE_SEVERITY.

import logging
from typing import Any, Dict, List, Optional

from .fetcher import FeedFetcher
from .models import Threat, TransportKind
from .severity import CONFIDENCE_SEVERITY

logger = logging.getLogger(__name__)

DEFAULT_FIRST = 50

THREATS_QUERY = """
query Threats($first: Int) {
  threats(first: $first) {
    edges {
      node {
        id
        name
        description
        created_at
        updated_at
        confidence
        threat_actor_types
        objectLabel {
          edges {
            node {
              value
            }
          }
        }
      }
    }
  }
}
"""


class OpenCTIFetcher(FeedFetcher):
    """OpenCTI threats via GraphQL (bearer token)."""

    transport = TransportKind.AUTH_POST
    severity_table = CONFIDENCE_SEVERITY

    def __init__(self):
        super().__init__("opencti", "")
        self._first: int = DEFAULT_FIRST

    def configure(self, **kwargs) -> None:
        """Keyword Args: api_key (bearer token), base_url (required), first."""
        super().configure(**kwargs)
        self._first = int(kwargs.get("first", self._first))

    @property
    def requires_api_key(self) -> bool:
        return True

    @property
    def endpoints(self) -> List[str]:
        return [f"{self._base_url}/graphql"]

    def _build_headers(self) -> Dict[str, str]:
        headers = super()._build_headers()
        headers["Content-Type"] = "application/json"
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    def _fetch_records(self, fetched_at: str) -> List[Threat]:
        if not self._base_url:
            raise ValueError("OpenCTI base_url is not configured")
        payload = self._post_json(
            self.endpoints[0],
            json_body={"query": THREATS_QUERY, "variables": {"first": self._first}},
        )
        if payload.get("errors"):
            raise ValueError(f"GraphQL errors: {payload['errors'][0].get('message')}")

        edges = payload["data"]["threats"]["edges"]
        return self._normalize_each(
            [edge["node"] for edge in edges],
            lambda node: self._to_threat(node, fetched_at),
        )

    def _to_threat(self, node: Dict[str, Any], fetched_at: str) -> Optional[Threat]:
        node_id = node.get("id")
        if not node_id:
            return None

        actor_types = node.get("threat_actor_types") or []
        labels = (node.get("objectLabel") or {}).get("edges") or []

        return Threat.create(
            id=f"opencti-{node_id}",
            title=node.get("name", ""),
            description=node.get("description", ""),
            severity=self.severity_table(node.get("confidence")),
            type=actor_types[0] if actor_types else "unknown",
            source="OpenCTI",
            timestamp=node.get("created_at"),
            created_at=node.get("created_at"),
            updated_at=node.get("updated_at"),
            tags=[edge["node"]["value"] for edge in labels],
            fetched_at=fetched_at,
        )
