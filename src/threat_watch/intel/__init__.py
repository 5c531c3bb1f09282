# Intel Module - Threat Feed Aggregation
#
# Feed adapters, severity normalization, deduplication, the aggregation
# coordinator, per-consumer refresh scheduling and geo enrichment.

from .severity import Severity
from .models import (
    ConfigurationError,
    FeedSource,
    FetchResult,
    Indicator,
    IngestError,
    Location,
    ParseError,
    Threat,
    ThreatStatus,
    TransportError,
    TransportKind,
)
from .fetcher import FeedFetcher
from .dedup import deduplicate, identity_key
from .aggregator import AggregationReport, ThreatAggregator, TotalOutageSignal
from .scheduler import RefreshScheduler
from .enrichment import GeoEnricher, GeoLocation, random_display_point
from .index import MemoryIndex, ThreatIndexer
from .registry import build_adapters, build_aggregator, create_adapter

__all__ = [
    # Data models
    "Severity",
    "Threat",
    "ThreatStatus",
    "Indicator",
    "Location",
    "FeedSource",
    "TransportKind",
    # Results & errors
    "FetchResult",
    "IngestError",
    "TransportError",
    "ParseError",
    "ConfigurationError",
    # Pipeline
    "FeedFetcher",
    "deduplicate",
    "identity_key",
    "ThreatAggregator",
    "AggregationReport",
    "TotalOutageSignal",
    "RefreshScheduler",
    "GeoEnricher",
    "GeoLocation",
    "random_display_point",
    "ThreatIndexer",
    "MemoryIndex",
    # Registry
    "create_adapter",
    "build_adapters",
    "build_aggregator",
]
