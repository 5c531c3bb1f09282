# Intel Module - Adapter Registry
#
# Maps configuration source names to adapter factories and builds the
# configured, ready-to-register adapters for a ThreatAggregator.

import logging
from typing import Callable, Dict, List

from .abusech_fetcher import MalwareBazaarFetcher, ThreatFoxFetcher, URLhausFetcher
from .abuseipdb_fetcher import AbuseIPDBFetcher
from .aggregator import ThreatAggregator
from .blocklist_fetcher import LINE_LIST_FEEDS, BlocklistFetcher, LineListFeed
from .fetcher import FeedFetcher
from .misp_fetcher import MISPFetcher
from .models import ConfigurationError
from .opencti_fetcher import OpenCTIFetcher
from .otx_fetcher import OTXFetcher
from .taxii_fetcher import TAXIIFetcher
from .virustotal_fetcher import VirusTotalFetcher

logger = logging.getLogger(__name__)


def _line_list(feed: LineListFeed) -> Callable[[], FeedFetcher]:
    return lambda: BlocklistFetcher(feed)


SOURCE_FACTORIES: Dict[str, Callable[[], FeedFetcher]] = {
    "abuseipdb": AbuseIPDBFetcher,
    "alienvault-otx": OTXFetcher,
    "urlhaus": URLhausFetcher,
    "threatfox": ThreatFoxFetcher,
    "malwarebazaar": MalwareBazaarFetcher,
    "virustotal": VirusTotalFetcher,
    "misp": MISPFetcher,
    "opencti": OpenCTIFetcher,
    "taxii": TAXIIFetcher,
    **{name: _line_list(feed) for name, feed in LINE_LIST_FEEDS.items()},
}

# Self-hosted platforms: no public default endpoint.
ENDPOINT_SOURCES = frozenset({"misp", "opencti", "taxii"})


def available_sources() -> List[str]:
    return list(SOURCE_FACTORIES)


def create_adapter(name: str) -> FeedFetcher:
    """Instantiate the unconfigured adapter for ``name``."""
    try:
        factory = SOURCE_FACTORIES[name]
    except KeyError:
        raise ConfigurationError(f"Unknown source {name!r}") from None
    return factory()


def requires_api_key(name: str) -> bool:
    return create_adapter(name).requires_api_key


def build_adapters(settings) -> List[FeedFetcher]:
    """Configured adapters for every enabled source in ``settings``.

    Raises:
        ConfigurationError: a keyed source is enabled without a key, or a
            self-hosted source is enabled without a base URL.
    """
    adapters: List[FeedFetcher] = []
    for source in settings.sources:
        if not source.enabled:
            continue
        adapter = create_adapter(source.name)
        if adapter.requires_api_key and not source.api_key:
            raise ConfigurationError(f"Source {source.name!r} requires an api_key")
        if source.name in ENDPOINT_SOURCES and not source.base_url:
            raise ConfigurationError(f"Source {source.name!r} requires a base_url")

        adapter.configure(
            api_key=source.api_key,
            base_url=source.base_url,
            timeout=source.timeout,
            **source.options,
        )
        adapters.append(adapter)

    logger.info("Built %d feed adapters: %s", len(adapters), [a.name for a in adapters])
    return adapters


def build_aggregator(settings) -> ThreatAggregator:
    """A ThreatAggregator with every enabled source registered."""
    aggregator = ThreatAggregator(
        max_workers=settings.aggregator.max_workers,
        cycle_timeout=settings.aggregator.cycle_timeout_seconds,
    )
    for adapter in build_adapters(settings):
        aggregator.register(adapter)
    return aggregator
