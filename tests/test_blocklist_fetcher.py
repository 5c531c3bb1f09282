"""
Tests for the line-list blocklist adapters (plain text and CSV).
"""

import base64
from unittest.mock import MagicMock, patch

import httpx
import pytest

from threat_watch.intel.blocklist_fetcher import LINE_LIST_FEEDS, BlocklistFetcher
from threat_watch.intel.models import TransportKind
from threat_watch.intel.severity import Severity


def _mock_text(text="", status_code=200):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = status_code
    resp.text = text
    resp.raise_for_status = MagicMock()
    if status_code >= 400:
        resp.raise_for_status.side_effect = httpx.HTTPStatusError(
            message=f"HTTP {status_code}", request=MagicMock(), response=resp,
        )
    return resp


def _fetcher(name):
    return BlocklistFetcher(LINE_LIST_FEEDS[name])


class TestFeedTable:
    @pytest.mark.parametrize("name, severity, threat_type", [
        ("blocklist_de", Severity.MEDIUM, "malicious-ip"),
        ("emerging_threats", Severity.HIGH, "compromised-ip"),
        ("openphish", Severity.HIGH, "phishing"),
        ("feodo", Severity.CRITICAL, "c2-server"),
        ("greensnow", Severity.HIGH, "malicious-ip"),
        ("cinsscore", Severity.MEDIUM, "malicious-ip"),
        ("sslbl", Severity.HIGH, "ssl-blacklist"),
        ("tor_exit_nodes", Severity.LOW, "anonymity"),
    ])
    def test_fixed_severity_per_feed(self, name, severity, threat_type):
        feed = LINE_LIST_FEEDS[name]
        assert feed.severity is severity
        assert feed.threat_type == threat_type

    def test_keyless(self):
        assert all(not _fetcher(n).requires_api_key for n in LINE_LIST_FEEDS)

    def test_transport(self):
        assert _fetcher("sslbl").transport is TransportKind.CSV
        assert _fetcher("feodo").transport is TransportKind.LINE_TEXT


class TestPlainTextLists:
    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_comments_blanks_and_trailing_text(self, mock_req):
        mock_req.return_value = _mock_text(
            "# Feodo Tracker botnet C2 IP blocklist\n"
            "#\n"
            "\n"
            "192.0.2.10\n"
            "192.0.2.11   # last seen today\n"
            "   \n"
        )
        result = _fetcher("feodo").fetch()
        assert result.success
        assert [t.id for t in result.records] == ["feodo-192.0.2.10", "feodo-192.0.2.11"]

        threat = result.records[0]
        assert threat.severity is Severity.CRITICAL
        assert threat.type == "c2-server"
        assert threat.source == "Feodo Tracker"
        assert threat.title == "Botnet C2 - 192.0.2.10"
        assert [(i.type, i.value) for i in threat.indicators] == [("ip", "192.0.2.10")]
        assert threat.tags == ("botnet", "c2", "feodo")

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_malformed_lines_skipped(self, mock_req):
        mock_req.return_value = _mock_text("198.51.100.1\nnot-an-ip\n999.1.1.1\n2001:db8::1\n")
        fetcher = _fetcher("blocklist_de")
        result = fetcher.fetch()
        assert [i.value for t in result.records for i in t.indicators] == [
            "198.51.100.1", "2001:db8::1",
        ]
        assert fetcher.get_stats()["total_skipped"] == 2

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_duplicate_lines_collapsed(self, mock_req):
        mock_req.return_value = _mock_text("203.0.113.5\n203.0.113.5\n")
        assert len(_fetcher("greensnow").fetch().records) == 1

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_text_accept_header(self, mock_req):
        mock_req.return_value = _mock_text("")
        _fetcher("tor_exit_nodes").fetch()
        assert "text/plain" in mock_req.call_args.kwargs["headers"]["Accept"]

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_http_error(self, mock_req):
        mock_req.return_value = _mock_text(status_code=404)
        result = _fetcher("cinsscore").fetch()
        assert result.records == []
        assert result.error.kind == "transport"


class TestOpenPhish:
    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_url_entries(self, mock_req):
        url = "https://login.example-bank.test/verify?id=1"
        mock_req.return_value = _mock_text(f"{url}\nnot a url\nftp://files.example/x\n")
        result = _fetcher("openphish").fetch()

        assert len(result.records) == 1
        threat = result.records[0]
        expected_id = base64.urlsafe_b64encode(url.encode()).decode()
        assert threat.id == f"openphish-{expected_id}"
        assert threat.title == "Phishing URL - login.example-bank.test"
        assert [(i.type, i.value) for i in threat.indicators] == [("url", url)]


class TestSSLBLCsv:
    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_csv_columns(self, mock_req):
        mock_req.return_value = _mock_text(
            "################################\n"
            "# Firstseen,DstIP,DstPort\n"
            "2024-06-01 10:00:00,192.0.2.50,443\n"
            "2024-06-01 11:00:00,bogus,443\n"
            "short-row\n"
        )
        fetcher = _fetcher("sslbl")
        result = fetcher.fetch()

        assert [t.id for t in result.records] == ["sslbl-192.0.2.50"]
        threat = result.records[0]
        assert threat.timestamp == "2024-06-01T10:00:00+00:00"
        assert threat.severity is Severity.HIGH
        assert fetcher.get_stats()["total_skipped"] == 2
