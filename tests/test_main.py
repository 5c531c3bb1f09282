"""
Tests for the command-line entry point and pipeline wiring.
"""

import json
from unittest.mock import MagicMock, patch

import httpx
import pytest

from threat_watch.__main__ import build_pipeline, main
from threat_watch.config import Settings
from threat_watch.intel.enrichment import GeoEnricher


def _mock_text(text):
    resp = MagicMock(spec=httpx.Response)
    resp.status_code = 200
    resp.text = text
    resp.raise_for_status = MagicMock()
    return resp


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "watch.json"
    path.write_text(json.dumps({
        "sources": [{"name": "feodo"}],
        "consumers": [
            {"name": "feed", "capacity": 1, "interval_seconds": 30},
            {"name": "map", "capacity": 10, "interval_seconds": 300},
        ],
        "aggregator": {"audit_log_dir": str(tmp_path / "audit")},
    }))
    return str(path)


class TestBuildPipeline:
    def test_one_scheduler_per_consumer(self):
        settings = Settings.from_dict({"sources": [{"name": "urlhaus"}]})
        schedulers = build_pipeline(settings)
        assert [s.name for s in schedulers] == ["feed", "map"]
        assert [s.capacity for s in schedulers] == [50, 100]
        assert schedulers[0]._aggregator is schedulers[1]._aggregator
        assert schedulers[0]._enricher is None

    def test_enrichment_enabled(self):
        settings = Settings.from_dict({
            "sources": [{"name": "urlhaus"}],
            "enrichment": {"enabled": True, "max_lookups": 5, "max_cache": 64},
        })
        [feed, _] = build_pipeline(settings)
        assert isinstance(feed._enricher, GeoEnricher)
        assert feed._enricher._max_cache == 64


class TestMain:
    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_once(self, mock_req, config_file, capsys):
        mock_req.return_value = _mock_text("192.0.2.10\n192.0.2.11\n")
        assert main(["--once", "--config", config_file]) == 0

        output = json.loads(capsys.readouterr().out)
        assert [t["id"] for t in output["feed"]["threats"]] == ["feodo-192.0.2.10"]
        assert len(output["map"]["threats"]) == 2
        assert output["map"]["report"]["feeds_succeeded"] == 1

    @patch("threat_watch.intel.fetcher.httpx.request")
    def test_once_total_outage(self, mock_req, config_file, capsys):
        mock_req.side_effect = httpx.ConnectError("refused")
        assert main(["--once", "--config", config_file]) == 0

        output = json.loads(capsys.readouterr().out)
        assert output["feed"]["threats"] == []
        assert output["feed"]["report"]["total_outage"] is True
        assert output["feed"]["report"]["failed_sources"] == ["feodo"]

    def test_configuration_error(self, tmp_path, monkeypatch):
        monkeypatch.delenv("THREAT_WATCH_VIRUSTOTAL_API_KEY", raising=False)
        path = tmp_path / "bad.json"
        path.write_text(json.dumps({"sources": [{"name": "virustotal"}]}))
        assert main(["--once", "--config", str(path)]) == 2

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert "Threat Watch v" in capsys.readouterr().out
