"""
Tests for the canonical Threat model and adapter result types.
"""

import dataclasses

import pytest

from threat_watch.intel.models import (
    FetchResult,
    Indicator,
    Location,
    ParseError,
    Threat,
    ThreatStatus,
    TransportError,
    normalize_tags,
    parse_timestamp,
)
from threat_watch.intel.severity import Severity

FETCHED_AT = "2024-06-01T12:00:00+00:00"


def _threat(**overrides):
    fields = dict(
        id="test-1",
        title="Test",
        description="",
        severity=Severity.HIGH,
        type="malicious-ip",
        source="Test",
        indicators=[("ip", "1.2.3.4")],
        fetched_at=FETCHED_AT,
    )
    fields.update(overrides)
    return Threat.create(**fields)


class TestParseTimestamp:
    def test_iso_with_z(self):
        assert parse_timestamp("2024-05-01T10:00:00Z") == "2024-05-01T10:00:00+00:00"

    def test_naive_iso_assumed_utc(self):
        assert parse_timestamp("2024-05-01T10:00:00") == "2024-05-01T10:00:00+00:00"

    def test_offset_converted_to_utc(self):
        assert parse_timestamp("2024-05-01T12:00:00+02:00") == "2024-05-01T10:00:00+00:00"

    def test_space_separated_with_utc_suffix(self):
        assert parse_timestamp("2024-05-01 10:00:00 UTC") == "2024-05-01T10:00:00+00:00"

    def test_epoch_seconds(self):
        assert parse_timestamp(0) == "1970-01-01T00:00:00+00:00"
        assert parse_timestamp("86400") == "1970-01-02T00:00:00+00:00"

    def test_garbage_falls_back(self):
        assert parse_timestamp("yesterday", default=FETCHED_AT) == FETCHED_AT

    def test_missing_falls_back(self):
        assert parse_timestamp(None, default=FETCHED_AT) == FETCHED_AT
        assert parse_timestamp("", default=FETCHED_AT) == FETCHED_AT


class TestNormalizeTags:
    def test_lowercases_and_dedupes(self):
        assert normalize_tags(["Botnet", "botnet", " C2 ", "", None]) == ("botnet", "c2")

    def test_keeps_first_seen_order(self):
        assert normalize_tags(["b", "a", "B"]) == ("b", "a")

    def test_none(self):
        assert normalize_tags(None) == ()


class TestThreatCreate:
    def test_defaults_from_fetch_time(self):
        t = _threat()
        assert t.timestamp == FETCHED_AT
        assert t.created_at == FETCHED_AT
        assert t.updated_at == FETCHED_AT

    def test_created_defaults_to_timestamp(self):
        t = _threat(timestamp="2024-01-01T00:00:00Z")
        assert t.created_at == "2024-01-01T00:00:00+00:00"
        assert t.updated_at == "2024-01-01T00:00:00+00:00"

    def test_empty_indicator_values_dropped(self):
        t = _threat(indicators=[("hash", "abc"), ("filename", None), ("url", "  ")])
        assert t.indicators == (Indicator("hash", "abc"),)

    def test_indicator_order_preserved(self):
        t = _threat(indicators=[("hash", "b"), ("hash", "a")])
        assert [i.value for i in t.indicators] == ["b", "a"]

    def test_unknown_location_default(self):
        t = _threat()
        assert t.location == Location(0.0, 0.0, "Unknown")
        assert t.location.is_unknown

    def test_tags_normalized(self):
        t = _threat(tags=["Abuse", "abuse", None])
        assert t.tags == ("abuse",)

    def test_missing_type_becomes_unknown(self):
        assert _threat(type="").type == "unknown"

    def test_raw_severity_rejected(self):
        with pytest.raises(TypeError):
            _threat(severity="High")
        with pytest.raises(TypeError):
            _threat(severity=95)

    def test_frozen(self):
        t = _threat()
        with pytest.raises(dataclasses.FrozenInstanceError):
            t.title = "changed"

    def test_status_default_active(self):
        assert _threat().status is ThreatStatus.ACTIVE


class TestThreatKeyAndDict:
    def test_dedup_key_type_and_values(self):
        t = _threat(type="malware", indicators=[("hash", "aa"), ("filename", "x.exe")])
        assert t.dedup_key == "malware-aa,x.exe"

    def test_dedup_key_excludes_source(self):
        assert _threat(source="A").dedup_key == _threat(source="B").dedup_key

    def test_dedup_key_without_indicators(self):
        assert _threat(type="threat-actor", indicators=[]).dedup_key == "threat-actor-"

    def test_first_indicator(self):
        t = _threat(indicators=[("hash", "aa"), ("ip", "5.6.7.8"), ("ip", "9.9.9.9")])
        assert t.first_indicator("ip") == Indicator("ip", "5.6.7.8")
        assert t.first_indicator("url") is None

    def test_to_dict_shape(self):
        d = _threat(tags=["x"]).to_dict()
        assert d["severity"] == "High"
        assert d["status"] == "active"
        assert d["location"] == {"lat": 0.0, "lng": 0.0, "region": "Unknown"}
        assert d["indicators"] == [{"type": "ip", "value": "1.2.3.4"}]
        assert d["tags"] == ["x"]


class TestFetchResult:
    def test_success(self):
        r = FetchResult(source="s", records=[_threat()])
        assert r.success
        assert r.to_dict()["records_count"] == 1
        assert r.to_dict()["error"] is None

    def test_failure_carries_error(self):
        r = FetchResult(source="s", error=TransportError("s", "HTTP 503"))
        assert not r.success
        assert r.to_dict()["error"] == {"source": "s", "kind": "transport", "cause": "HTTP 503"}

    def test_error_kinds(self):
        assert TransportError("s", "x").kind == "transport"
        assert ParseError("s", "x").kind == "parse"
        assert str(ParseError("s", "bad json")) == "s: bad json"
