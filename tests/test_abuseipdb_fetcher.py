"""
Tests for the AbuseIPDB blacklist adapter.

All HTTP calls are mocked; no external network access required.
"""

from unittest.mock import MagicMock, patch

import httpx
import pytest

from threat_watch.intel.abuseipdb_fetcher import DEFAULT_BASE_URL, AbuseIPDBFetcher
from threat_watch.intel.severity import Severity


@pytest.fixture
def fetcher():
    f = AbuseIPDBFetcher()
    f.configure(api_key="abuse-key")
    return f


def _entry(ip="1.2.3.4", score=95, country="RU", **extra):
    entry = {
        "ipAddress": ip,
        "abuseConfidenceScore": score,
        "countryCode": country,
        "lastReportedAt": "2024-06-01T10:00:00+00:00",
        "totalReports": 12,
    }
    entry.update(extra)
    return entry


def _mock_response(status_code=200, json_data=None):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.json.return_value = json_data
    resp.raise_for_status = MagicMock()
    if status_code >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            message=f"HTTP {status_code}", request=MagicMock(), response=resp,
        )
    return resp


class TestAbuseIPDBConfiguration:
    def test_name_and_key_requirement(self):
        f = AbuseIPDBFetcher()
        assert f.name == "abuseipdb"
        assert f.requires_api_key is True

    def test_endpoint(self):
        assert AbuseIPDBFetcher().endpoints == [f"{DEFAULT_BASE_URL}/blacklist"]

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_key_header_and_params(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(json_data={"data": []})
        fetcher.fetch()
        kwargs = mock_req.call_args.kwargs
        assert kwargs["headers"]["Key"] == "abuse-key"
        assert kwargs["params"] == {"confidenceMinimum": 90, "limit": 1000}

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_custom_limits(self, mock_req):
        f = AbuseIPDBFetcher()
        f.configure(api_key="k", confidence_minimum=75, limit=10)
        mock_req.return_value = _mock_response(json_data={"data": []})
        f.fetch()
        assert mock_req.call_args.kwargs["params"] == {"confidenceMinimum": 75, "limit": 10}


class TestAbuseIPDBParsing:
    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_threat_shape(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(json_data={"data": [_entry()]})
        result = fetcher.fetch()

        assert result.success
        threat = result.records[0]
        assert threat.id == "abuseipdb-1.2.3.4"
        assert threat.type == "malicious-ip"
        assert threat.source == "AbuseIPDB"
        assert threat.location.region == "RU"
        assert [(i.type, i.value) for i in threat.indicators] == [("ip", "1.2.3.4")]
        assert threat.tags == ("abuse", "malicious-ip", "ru")
        assert threat.timestamp == "2024-06-01T10:00:00+00:00"
        assert "12 times" in threat.description

    @pytest.mark.parametrize("score, expected", [
        (95, Severity.CRITICAL),
        (85, Severity.HIGH),
        (60, Severity.MEDIUM),
    ])
    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_severity_mapping(self, mock_req, score, expected, fetcher):
        mock_req.return_value = _mock_response(json_data={"data": [_entry(score=score)]})
        assert fetcher.fetch().records[0].severity is expected

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_missing_country(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(json_data={"data": [_entry(country=None)]})
        threat = fetcher.fetch().records[0]
        assert threat.location.region == "Unknown"
        assert threat.tags == ("abuse", "malicious-ip")

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_coordinates_when_present(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(
            json_data={"data": [_entry(latitude=55.75, longitude=37.62)]}
        )
        loc = fetcher.fetch().records[0].location
        assert (loc.lat, loc.lng) == (55.75, 37.62)

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_entry_without_ip_skipped(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(
            json_data={"data": [_entry(ip=""), _entry(ip="5.6.7.8")]}
        )
        result = fetcher.fetch()
        assert [t.id for t in result.records] == ["abuseipdb-5.6.7.8"]

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_missing_data_key_is_parse_error(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(json_data={"errors": [{"detail": "bad key"}]})
        result = fetcher.fetch()
        assert result.records == []
        assert result.error.kind == "parse"

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_unauthorized_is_transport_error(self, mock_req, fetcher):
        mock_req.return_value = _mock_response(status_code=401)
        result = fetcher.fetch()
        assert result.error.kind == "transport"
        assert result.error.cause == "HTTP 401"
