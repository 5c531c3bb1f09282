# Threat Watch - Configuration
#
# One explicit, validated structure per configuration axis:
#   sources      - which feeds are enabled, credentials, endpoint overrides
#   consumers    - per-consumer retention cap and refresh interval
#   aggregator   - worker pool size, cycle ceiling, audit log location
#   enrichment   - optional geo lookup toggle and limits
#
# Settings come from a JSON file (--config or THREAT_WATCH_CONFIG) or,
# without one, from defaults.  Credentials may be supplied (or
# overridden) through THREAT_WATCH_<SOURCE>_API_KEY and endpoints through
# THREAT_WATCH_<SOURCE>_URL; a .env file is loaded first.

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

from dotenv import load_dotenv

from .intel.models import ConfigurationError
from .intel.registry import ENDPOINT_SOURCES, available_sources, requires_api_key
from .intel.scheduler import coerce_capacity

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "THREAT_WATCH_CONFIG"
ENV_PREFIX = "THREAT_WATCH_"


def env_name(source: str, suffix: str) -> str:
    """``alienvault-otx`` + ``API_KEY`` -> ``THREAT_WATCH_ALIENVAULT_OTX_API_KEY``."""
    return f"{ENV_PREFIX}{source.upper().replace('-', '_')}_{suffix}"


@dataclass
class SourceConfig:
    """One feed source."""

    name: str
    enabled: bool = True
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: Optional[float] = None
    options: Dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.name not in available_sources():
            raise ConfigurationError(f"Unknown source {self.name!r}")
        if self.timeout is not None and self.timeout <= 0:
            raise ConfigurationError(f"Source {self.name!r}: timeout must be > 0")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "enabled": self.enabled,
            "has_api_key": bool(self.api_key),
            "base_url": self.base_url,
            "timeout": self.timeout,
            "options": dict(self.options),
        }


@dataclass
class ConsumerConfig:
    """Retention cap and refresh interval for one consumer view."""

    name: str
    capacity: int
    interval_seconds: float

    def __post_init__(self):
        if not self.name:
            raise ConfigurationError("Consumer name must not be empty")
        self.capacity = coerce_capacity(self.name, self.capacity)
        if isinstance(self.interval_seconds, bool) or not isinstance(
            self.interval_seconds, (int, float)
        ):
            raise ConfigurationError(f"Consumer {self.name!r}: interval_seconds must be a number")
        if self.interval_seconds <= 0:
            raise ConfigurationError(f"Consumer {self.name!r}: interval_seconds must be > 0")


@dataclass
class AggregatorConfig:
    max_workers: int = 8
    cycle_timeout_seconds: Optional[float] = 60.0
    audit_log_dir: str = "./audit_logs"

    def __post_init__(self):
        if self.max_workers < 1:
            raise ConfigurationError("aggregator.max_workers must be >= 1")
        if self.cycle_timeout_seconds is not None and self.cycle_timeout_seconds <= 0:
            raise ConfigurationError("aggregator.cycle_timeout_seconds must be > 0")


@dataclass
class EnrichmentConfig:
    enabled: bool = False
    base_url: str = "https://ipapi.co"
    timeout_seconds: float = 3.0
    max_lookups: int = 20
    budget_seconds: float = 10.0
    max_cache: int = 1024

    def __post_init__(self):
        if self.timeout_seconds <= 0 or self.budget_seconds <= 0:
            raise ConfigurationError("enrichment timeouts must be > 0")
        if self.max_lookups < 0:
            raise ConfigurationError("enrichment.max_lookups must be >= 0")
        if self.max_cache < 1:
            raise ConfigurationError("enrichment.max_cache must be >= 1")


DEFAULT_CONSUMERS = (
    ("feed", 50, 30.0),
    ("map", 100, 300.0),
)


@dataclass
class Settings:
    """Validated top-level configuration."""

    sources: List[SourceConfig]
    consumers: List[ConsumerConfig] = field(
        default_factory=lambda: [ConsumerConfig(*c) for c in DEFAULT_CONSUMERS]
    )
    aggregator: AggregatorConfig = field(default_factory=AggregatorConfig)
    enrichment: EnrichmentConfig = field(default_factory=EnrichmentConfig)

    def __post_init__(self):
        names = [s.name for s in self.sources]
        dupes = {n for n in names if names.count(n) > 1}
        if dupes:
            raise ConfigurationError(f"Duplicate sources: {sorted(dupes)}")

        consumer_names = [c.name for c in self.consumers]
        dupes = {n for n in consumer_names if consumer_names.count(n) > 1}
        if dupes:
            raise ConfigurationError(f"Duplicate consumers: {sorted(dupes)}")
        if not self.consumers:
            raise ConfigurationError("At least one consumer is required")

        if not self.enabled_sources:
            raise ConfigurationError("No sources enabled")

    @property
    def enabled_sources(self) -> List[SourceConfig]:
        return [s for s in self.sources if s.enabled]

    def consumer(self, name: str) -> ConsumerConfig:
        for consumer in self.consumers:
            if consumer.name == name:
                return consumer
        raise KeyError(name)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Settings":
        """Build from the JSON shape; unknown keys raise ConfigurationError."""
        try:
            sources = [SourceConfig(**s) for s in data.get("sources", [])]
            kwargs: Dict[str, Any] = {"sources": sources}
            if "consumers" in data:
                kwargs["consumers"] = [ConsumerConfig(**c) for c in data["consumers"]]
            if "aggregator" in data:
                kwargs["aggregator"] = AggregatorConfig(**data["aggregator"])
            if "enrichment" in data:
                kwargs["enrichment"] = EnrichmentConfig(**data["enrichment"])
        except TypeError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sources": [s.to_dict() for s in self.sources],
            "consumers": [
                {"name": c.name, "capacity": c.capacity, "interval_seconds": c.interval_seconds}
                for c in self.consumers
            ],
            "aggregator": {
                "max_workers": self.aggregator.max_workers,
                "cycle_timeout_seconds": self.aggregator.cycle_timeout_seconds,
                "audit_log_dir": self.aggregator.audit_log_dir,
            },
            "enrichment": {
                "enabled": self.enrichment.enabled,
                "base_url": self.enrichment.base_url,
                "timeout_seconds": self.enrichment.timeout_seconds,
                "max_lookups": self.enrichment.max_lookups,
                "budget_seconds": self.enrichment.budget_seconds,
                "max_cache": self.enrichment.max_cache,
            },
        }


def default_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Every keyless source, plus keyed sources that have a credential.

    Self-hosted sources (MISP, OpenCTI, TAXII) additionally need
    THREAT_WATCH_<SOURCE>_URL.
    """
    env = os.environ if environ is None else environ
    sources: List[SourceConfig] = []
    for name in available_sources():
        api_key = env.get(env_name(name, "API_KEY")) or None
        base_url = env.get(env_name(name, "URL")) or None
        enabled = bool(api_key) or not requires_api_key(name)
        if name in ENDPOINT_SOURCES and not base_url:
            enabled = False
        sources.append(SourceConfig(
            name=name, enabled=enabled, api_key=api_key, base_url=base_url,
        ))
    return Settings(sources=sources)


def apply_env_overrides(
    data: Dict[str, Any], environ: Optional[Mapping[str, str]] = None
) -> Dict[str, Any]:
    """Fill ``api_key``/``base_url`` of file sources from the environment."""
    env = os.environ if environ is None else environ
    for source in data.get("sources", []):
        name = source.get("name", "")
        api_key = env.get(env_name(name, "API_KEY"))
        if api_key:
            source["api_key"] = api_key
        base_url = env.get(env_name(name, "URL"))
        if base_url and not source.get("base_url"):
            source["base_url"] = base_url
    return data


def load_settings(
    path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None
) -> Settings:
    """Load settings from ``path``, THREAT_WATCH_CONFIG, or the defaults.

    Raises:
        ConfigurationError: the file is unreadable, malformed, or invalid.
    """
    if environ is None:
        load_dotenv()
        environ = os.environ

    path = path or environ.get(CONFIG_ENV_VAR)
    if not path:
        logger.info("No config file given, using default settings")
        return default_settings(environ)

    try:
        with open(Path(path), "r", encoding="utf-8") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as exc:
        raise ConfigurationError(f"Cannot read config {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigurationError(f"Config {path} must be a JSON object")

    logger.info("Loaded configuration from %s", path)
    return Settings.from_dict(apply_env_overrides(data, environ))
