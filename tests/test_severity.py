"""
Tests for severity normalization tables.

Covers: canonical ordering, per-source mapping tables including the
documented boundary values, and non-numeric / unknown inputs.
"""

import pytest

from threat_watch.intel.severity import (
    ABUSEIPDB_SEVERITY,
    CONFIDENCE_SEVERITY,
    MISP_SEVERITY,
    OTX_TLP_SEVERITY,
    THREATFOX_SEVERITY,
    VIRUSTOTAL_SEVERITY,
    FixedSeverity,
    LookupTable,
    Severity,
    SeverityTable,
    ThresholdTable,
)


class TestSeverityOrdering:
    def test_total_order(self):
        assert Severity.CRITICAL > Severity.HIGH > Severity.MEDIUM > Severity.LOW

    def test_sorted_by_rank(self):
        shuffled = [Severity.MEDIUM, Severity.CRITICAL, Severity.LOW, Severity.HIGH]
        assert sorted(shuffled, reverse=True) == [
            Severity.CRITICAL, Severity.HIGH, Severity.MEDIUM, Severity.LOW,
        ]

    def test_values_are_display_names(self):
        assert [s.value for s in Severity] == ["Critical", "High", "Medium", "Low"]

    def test_parse_case_insensitive(self):
        assert Severity.parse("critical") is Severity.CRITICAL
        assert Severity.parse(" High ") is Severity.HIGH

    def test_parse_unknown_raises(self):
        with pytest.raises(ValueError):
            Severity.parse("severe")

    def test_compare_with_non_severity(self):
        with pytest.raises(TypeError):
            Severity.HIGH < 3


class TestAbuseIPDBTable:
    @pytest.mark.parametrize("score, expected", [
        (95, Severity.CRITICAL),
        (91, Severity.CRITICAL),
        (90, Severity.HIGH),
        (85, Severity.HIGH),
        (80, Severity.MEDIUM),
        (60, Severity.MEDIUM),
        (0, Severity.MEDIUM),
    ])
    def test_mapping(self, score, expected):
        assert ABUSEIPDB_SEVERITY(score) is expected

    def test_missing_score(self):
        assert ABUSEIPDB_SEVERITY(None) is Severity.MEDIUM


class TestOTXTable:
    @pytest.mark.parametrize("tlp, expected", [
        ("RED", Severity.CRITICAL),
        ("red", Severity.CRITICAL),
        ("AMBER", Severity.HIGH),
        ("green", Severity.MEDIUM),
        ("WHITE", Severity.LOW),
        (None, Severity.LOW),
    ])
    def test_mapping(self, tlp, expected):
        assert OTX_TLP_SEVERITY(tlp) is expected


class TestThreatFoxTable:
    @pytest.mark.parametrize("confidence, expected", [
        (95, Severity.CRITICAL),
        (90, Severity.CRITICAL),
        (75, Severity.HIGH),
        (70, Severity.HIGH),
        (55, Severity.MEDIUM),
        (50, Severity.MEDIUM),
        (10, Severity.LOW),
        ("75", Severity.HIGH),
        ("n/a", Severity.LOW),
    ])
    def test_mapping(self, confidence, expected):
        assert THREATFOX_SEVERITY(confidence) is expected

    def test_opencti_taxii_share_thresholds(self):
        for value in (95, 75, 55, 10):
            assert CONFIDENCE_SEVERITY(value) is THREATFOX_SEVERITY(value)


class TestVirusTotalTable:
    @pytest.mark.parametrize("positives, expected", [
        (45, Severity.CRITICAL),
        (21, Severity.CRITICAL),
        (20, Severity.HIGH),
        (11, Severity.HIGH),
        (10, Severity.MEDIUM),
        (0, Severity.MEDIUM),
    ])
    def test_mapping(self, positives, expected):
        assert VIRUSTOTAL_SEVERITY(positives) is expected


class TestMISPTable:
    @pytest.mark.parametrize("level, expected", [
        (4, Severity.CRITICAL),
        (1, Severity.HIGH),
        (2, Severity.MEDIUM),
        (3, Severity.LOW),
        ("4", Severity.CRITICAL),
        ("1", Severity.HIGH),
    ])
    def test_mapping(self, level, expected):
        assert MISP_SEVERITY(level) is expected

    def test_unknown_level_defaults_to_medium(self):
        assert MISP_SEVERITY(9) is Severity.MEDIUM
        assert MISP_SEVERITY("bogus") is Severity.MEDIUM
        assert MISP_SEVERITY(None) is Severity.MEDIUM


class TestTableTypes:
    def test_fixed_ignores_input(self):
        table = FixedSeverity(Severity.HIGH)
        assert table() is Severity.HIGH
        assert table("anything") is Severity.HIGH

    def test_base_table_is_abstract(self):
        with pytest.raises(TypeError):
            SeverityTable()

    def test_every_table_callable_without_value(self):
        for table in (FixedSeverity(Severity.LOW), ABUSEIPDB_SEVERITY, MISP_SEVERITY):
            assert isinstance(table(), Severity)

    def test_threshold_repr(self):
        table = ThresholdTable([(10, Severity.HIGH)], default=Severity.LOW, strict=True)
        assert repr(table) == "ThresholdTable(>10->High, else->Low)"

    def test_lookup_without_normalize(self):
        table = LookupTable({"x": Severity.CRITICAL}, default=Severity.LOW)
        assert table("x") is Severity.CRITICAL
        assert table("X") is Severity.LOW

    def test_every_table_yields_canonical_values(self):
        tables = [
            ABUSEIPDB_SEVERITY, OTX_TLP_SEVERITY, THREATFOX_SEVERITY,
            VIRUSTOTAL_SEVERITY, MISP_SEVERITY, CONFIDENCE_SEVERITY,
        ]
        inputs = [None, "", "RED", -5, 0, 1, 4, 50, 99, 1000, "abc", 3.7]
        for table in tables:
            for value in inputs:
                assert isinstance(table(value), Severity)
