"""
Tests for the OpenCTI GraphQL adapter.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from threat_watch.intel.opencti_fetcher import THREATS_QUERY, OpenCTIFetcher
from threat_watch.intel.severity import Severity


@pytest.fixture
def fetcher():
    f = OpenCTIFetcher()
    f.configure(base_url="https://cti.example.org", api_key="token-1", first=20)
    return f


def _node(node_id="ta-1", confidence=80, actor_types=("crime-syndicate",), labels=("ransomware",)):
    return {
        "id": node_id,
        "name": "FIN-Example",
        "description": "Financially motivated actor",
        "created_at": "2024-04-01T00:00:00.000Z",
        "updated_at": "2024-05-01T00:00:00.000Z",
        "confidence": confidence,
        "threat_actor_types": list(actor_types),
        "objectLabel": {"edges": [{"node": {"value": v}} for v in labels]},
    }


def _graphql(nodes):
    return {"data": {"threats": {"edges": [{"node": n} for n in nodes]}}}


def _mock_response(json_data=None):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = 200
    resp.json.return_value = json_data
    resp.raise_for_status = MagicMock()
    return resp


class TestOpenCTI:
    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_graphql_request(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(_graphql([]))
        fetcher.fetch()
        args, kwargs = mock_req.call_args
        assert args == ("POST", "https://cti.example.org/graphql")
        assert kwargs["json"] == {"query": THREATS_QUERY, "variables": {"first": 20}}
        assert kwargs["headers"]["Authorization"] == "Bearer token-1"

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_parse(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(_graphql([_node()]))
        threat = fetcher.fetch().records[0]
        assert threat.id == "opencti-ta-1"
        assert threat.type == "crime-syndicate"
        assert threat.severity is Severity.HIGH
        assert threat.indicators == ()
        assert threat.tags == ("ransomware",)
        assert threat.updated_at == "2024-05-01T00:00:00+00:00"

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_missing_actor_type(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(_graphql([_node(actor_types=())]))
        assert fetcher.fetch().records[0].type == "unknown"

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_graphql_errors(self, mock_req, fetcher):
        mock_req.return_value = _mock_response({"errors": [{"message": "Unauthorized"}]})
        result = fetcher.fetch()
        assert result.error.kind == "parse"
        assert "Unauthorized" in result.error.cause
