# Main Entry Point
#
# Builds the pipeline from configuration and either runs one refresh
# cycle per consumer (--once), or keeps the consumers refreshing in the
# background, optionally serving the read-only API (--serve).

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List

from . import __version__
from .config import Settings, load_settings
from .core import EventSeverity, EventType, configure_audit_logger, get_audit_logger
from .intel.enrichment import GeoEnricher
from .intel.index import MemoryIndex
from .intel.models import ConfigurationError
from .intel.registry import build_aggregator
from .intel.scheduler import RefreshScheduler

logger = logging.getLogger("threat_watch")


def build_pipeline(settings: Settings) -> List[RefreshScheduler]:
    """One RefreshScheduler per consumer, sharing a coordinator and index."""
    aggregator = build_aggregator(settings)

    enricher = None
    if settings.enrichment.enabled:
        enricher = GeoEnricher(
            base_url=settings.enrichment.base_url,
            timeout=settings.enrichment.timeout_seconds,
            max_lookups=settings.enrichment.max_lookups,
            budget_seconds=settings.enrichment.budget_seconds,
            max_cache=settings.enrichment.max_cache,
        )

    index = MemoryIndex()
    schedulers = []
    for consumer in settings.consumers:
        scheduler = RefreshScheduler(
            aggregator,
            capacity=consumer.capacity,
            interval_seconds=consumer.interval_seconds,
            name=consumer.name,
            enricher=enricher,
        )
        scheduler.add_indexer(index)
        schedulers.append(scheduler)
    return schedulers


def run_once(schedulers: List[RefreshScheduler]) -> int:
    """Run a single cycle per consumer and print the results as JSON."""
    output = {}
    for scheduler in schedulers:
        threats = scheduler.tick() or []
        output[scheduler.name] = {
            "report": scheduler.last_report.to_dict() if scheduler.last_report else None,
            "threats": [t.to_dict() for t in threats],
        }
    json.dump(output, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


def main(argv=None):
    """Main entry point for Threat Watch."""
    parser = argparse.ArgumentParser(
        prog="threat-watch",
        description="Threat Watch - aggregate threat-intel feeds into deduplicated working sets",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="JSON configuration file (default: $THREAT_WATCH_CONFIG or built-in defaults)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run one refresh cycle per consumer, print JSON and exit",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Serve the read-only API while refreshing in the background",
    )
    parser.add_argument("--host", default="127.0.0.1", help="API host (default: 127.0.0.1)")
    parser.add_argument("--port", type=int, default=8000, help="API port (default: 8000)")
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Console log level (default: INFO)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"Threat Watch v{__version__}",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        settings = load_settings(args.config)
        configure_audit_logger(Path(settings.aggregator.audit_log_dir))
        schedulers = build_pipeline(settings)
    except ConfigurationError as e:
        logger.error("Configuration error: %s", e)
        return 2

    if args.once:
        return run_once(schedulers)

    audit = get_audit_logger()
    audit.log_event(
        event_type=EventType.SYSTEM_START,
        severity=EventSeverity.INFO,
        message="Threat Watch starting",
        details={
            "version": __version__,
            "mode": "serve" if args.serve else "daemon",
            "consumers": [s.name for s in schedulers],
            "sources": [s.name for s in settings.enabled_sources],
        },
    )

    for scheduler in schedulers:
        scheduler.start()

    exit_code = 0
    try:
        if args.serve:
            from .api import services, start_api_server

            for scheduler in schedulers:
                services.register(scheduler)
            start_api_server(host=args.host, port=args.port)
        else:
            while True:
                time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Shutdown signal received")
    except Exception as e:
        logger.exception("Threat Watch crashed")
        audit.log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.CRITICAL,
            message=f"Threat Watch crashed: {e}",
        )
        exit_code = 1
    finally:
        for scheduler in schedulers:
            scheduler.stop()

    if exit_code == 0:
        audit.log_event(
            event_type=EventType.SYSTEM_STOP,
            severity=EventSeverity.INFO,
            message="Threat Watch stopped",
        )
    return exit_code


if __name__ == "__main__":
    sys.exit(main())
