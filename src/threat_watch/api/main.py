# API - FastAPI Application
#
# Read-only REST surface over the running consumers.  The aggregation
# pipeline runs in background schedulers owned by the CLI; this module
# only serves what they have published.

import logging

import uvicorn
from fastapi import FastAPI

from .. import __version__
from .threat_routes import router as threat_router
from .threat_routes import services

logger = logging.getLogger(__name__)

app = FastAPI(
    title="Threat Watch API",
    description="Aggregated, deduplicated indicators of compromise",
    version=__version__,
)

app.include_router(threat_router)


@app.get("/api/health")
async def health():
    return {
        "status": "ok",
        "version": __version__,
        "consumers": sorted(services.schedulers),
    }


def start_api_server(host: str = "127.0.0.1", port: int = 8000):
    """
    Start FastAPI server.

    Args:
        host: Host to bind to (default: localhost only)
        port: Port to listen on
    """
    uvicorn.run(app, host=host, port=port, log_level="info")
