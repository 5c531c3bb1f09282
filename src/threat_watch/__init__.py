# Threat Watch - Main Package
#
# Aggregates indicators of compromise from many threat-intel feeds into
# capped, deduplicated working sets refreshed on a schedule.

__version__ = "0.1.0"
__author__ = "Threat Watch Team"
__description__ = "Threat-intel feed aggregation pipeline"

from .core import EventSeverity, EventType, get_audit_logger

__all__ = [
    "__version__",
    "EventType",
    "EventSeverity",
    "get_audit_logger",
]
