# Intel Module - Severity Normalization
#
# Every vendor reports "how bad" on its own scale: a 0-100 confidence, a
# TLP colour, an engine-positives count, MISP's 1-4 threat level, or
# nothing at all (blocklists).  Each source owns one explicit table that
# maps its native scale onto the four canonical levels below.  Tables are
# applied inside the adapter while normalizing, never as a later pass over
# mixed records.

from abc import ABC, abstractmethod
from enum import Enum
from typing import Any, Dict, Hashable, Optional, Sequence, Tuple


class Severity(str, Enum):
    """Canonical severity, ordered Critical > High > Medium > Low."""

    CRITICAL = "Critical"
    HIGH = "High"
    MEDIUM = "Medium"
    LOW = "Low"

    @property
    def rank(self) -> int:
        return _RANK[self]

    def __lt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, Severity):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def parse(cls, value: str) -> "Severity":
        """Case-insensitive lookup by name (``"high"`` -> HIGH)."""
        for sev in cls:
            if sev.value.lower() == str(value).strip().lower():
                return sev
        raise ValueError(f"Unknown severity: {value!r}")


_RANK: Dict[Severity, int] = {
    Severity.LOW: 0,
    Severity.MEDIUM: 1,
    Severity.HIGH: 2,
    Severity.CRITICAL: 3,
}


class SeverityTable(ABC):
    """Maps one source's native value onto a canonical Severity.

    Tables are callable: ``table(value)`` is ``table.map(value)``.  Fixed
    tables ignore the value, so ``table()`` is allowed.
    """

    def __call__(self, value: Any = None) -> Severity:
        return self.map(value)

    @abstractmethod
    def map(self, value: Any = None) -> Severity:
        """Return the canonical Severity for ``value``."""


class ThresholdTable(SeverityTable):
    """Numeric scale mapped by descending thresholds.

    ``thresholds`` is a sequence of ``(bound, severity)`` pairs checked in
    order; the first bound the value reaches wins.  ``strict=True`` means
    the value must exceed the bound (``>``), otherwise ``>=`` is used.
    Non-numeric values map to ``default``.
    """

    def __init__(
        self,
        thresholds: Sequence[Tuple[float, Severity]],
        default: Severity,
        strict: bool = False,
    ):
        self.thresholds = tuple(thresholds)
        self.default = default
        self.strict = strict

    def map(self, value: Any) -> Severity:
        try:
            number = float(value)
        except (TypeError, ValueError):
            return self.default
        for bound, severity in self.thresholds:
            if number > bound if self.strict else number >= bound:
                return severity
        return self.default

    def __repr__(self) -> str:
        op = ">" if self.strict else ">="
        parts = [f"{op}{b:g}->{s.value}" for b, s in self.thresholds]
        parts.append(f"else->{self.default.value}")
        return f"ThresholdTable({', '.join(parts)})"


class LookupTable(SeverityTable):
    """Enumerated scale mapped by exact key.

    ``normalize`` is applied to the incoming value before lookup (e.g.
    upper-casing TLP colours or coercing MISP levels to int).
    """

    def __init__(
        self,
        mapping: Dict[Hashable, Severity],
        default: Severity,
        normalize=None,
    ):
        self.mapping = dict(mapping)
        self.default = default
        self._normalize = normalize

    def map(self, value: Any) -> Severity:
        key = value
        if self._normalize is not None:
            try:
                key = self._normalize(value)
            except (TypeError, ValueError, AttributeError):
                return self.default
        return self.mapping.get(key, self.default)

    def __repr__(self) -> str:
        parts = [f"{k}->{s.value}" for k, s in self.mapping.items()]
        parts.append(f"else->{self.default.value}")
        return f"LookupTable({', '.join(parts)})"


class FixedSeverity(SeverityTable):
    """Binary-presence feeds: every listed entry gets the same severity."""

    def __init__(self, severity: Severity):
        self.severity = severity

    def map(self, value: Any = None) -> Severity:
        return self.severity

    def __repr__(self) -> str:
        return f"FixedSeverity({self.severity.value})"


def _upper(value: Any) -> Optional[str]:
    return str(value).strip().upper() if value is not None else None


# ---------------------------------------------------------------------------
# Per-source tables
# ---------------------------------------------------------------------------

# AbuseIPDB abuseConfidenceScore 0-100
ABUSEIPDB_SEVERITY = ThresholdTable(
    [(90, Severity.CRITICAL), (80, Severity.HIGH)],
    default=Severity.MEDIUM,
    strict=True,
)

# AlienVault OTX pulse TLP colour
OTX_TLP_SEVERITY = LookupTable(
    {"RED": Severity.CRITICAL, "AMBER": Severity.HIGH, "GREEN": Severity.MEDIUM},
    default=Severity.LOW,
    normalize=_upper,
)

# ThreatFox confidence_level 0-100
THREATFOX_SEVERITY = ThresholdTable(
    [(90, Severity.CRITICAL), (70, Severity.HIGH), (50, Severity.MEDIUM)],
    default=Severity.LOW,
)

# VirusTotal engine positives count
VIRUSTOTAL_SEVERITY = ThresholdTable(
    [(20, Severity.CRITICAL), (10, Severity.HIGH)],
    default=Severity.MEDIUM,
    strict=True,
)

# MISP threat_level_id; the source encodes 4 as most severe.
MISP_SEVERITY = LookupTable(
    {1: Severity.HIGH, 2: Severity.MEDIUM, 3: Severity.LOW, 4: Severity.CRITICAL},
    default=Severity.MEDIUM,
    normalize=int,
)

# OpenCTI / TAXII confidence 0-100
CONFIDENCE_SEVERITY = ThresholdTable(
    [(90, Severity.CRITICAL), (70, Severity.HIGH), (50, Severity.MEDIUM)],
    default=Severity.LOW,
)
