# API - Read-only REST surface
#
# FastAPI app exposing each consumer's retained working set and the
# last aggregation report.

from .main import app, start_api_server
from .threat_routes import ThreatServices, services

__all__ = [
    "app",
    "start_api_server",
    "ThreatServices",
    "services",
]
