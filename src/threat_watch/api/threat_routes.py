# API - Threat Routes
#
# Read-only views over each consumer's retained working set and the
# last aggregation report.  The routes read from the ``services``
# holder, which the CLI (or a test) fills in.

import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, HTTPException, Query
from pydantic import BaseModel, Field

from ..intel.scheduler import RefreshScheduler
from ..intel.severity import Severity

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/threats", tags=["threats"])


class ThreatServices:
    """Holds the running consumers for the API layer.

    Routes call into this object rather than importing module-level
    singletons, so tests can register their own schedulers.
    """

    def __init__(self):
        self.schedulers: Dict[str, RefreshScheduler] = {}

    def register(self, scheduler: RefreshScheduler) -> None:
        self.schedulers[scheduler.name] = scheduler

    def get(self, name: str) -> Optional[RefreshScheduler]:
        return self.schedulers.get(name)

    def clear(self) -> None:
        self.schedulers.clear()


services = ThreatServices()


# ── Pydantic Response Models ─────────────────────────────────────────


class LocationModel(BaseModel):
    lat: float = 0.0
    lng: float = 0.0
    region: str = "Unknown"


class IndicatorModel(BaseModel):
    type: str
    value: str


class ThreatModel(BaseModel):
    id: str
    title: str
    description: str = ""
    severity: str
    type: str
    source: str
    timestamp: str
    location: LocationModel
    indicators: List[IndicatorModel] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    status: str = "active"
    created_at: str
    updated_at: str


class ThreatListResponse(BaseModel):
    consumer: str
    capacity: int
    total: int
    threats: List[ThreatModel]


class ConsumerModel(BaseModel):
    name: str
    capacity: int
    interval_seconds: float
    retained: int
    running: bool = False
    cycles_completed: int = 0
    ticks_skipped: int = 0


# ── Helpers ──────────────────────────────────────────────────────────


def _scheduler_or_404(consumer: str) -> RefreshScheduler:
    scheduler = services.get(consumer)
    if scheduler is None:
        raise HTTPException(status_code=404, detail=f"Unknown consumer: {consumer}")
    return scheduler


# ── Routes ───────────────────────────────────────────────────────────


@router.get("", response_model=List[ConsumerModel])
async def list_consumers():
    """Configured consumers and the size of their working sets."""
    return [
        ConsumerModel(**{k: v for k, v in s.stats().items() if k in ConsumerModel.model_fields})
        for s in services.schedulers.values()
    ]


@router.get("/{consumer}", response_model=ThreatListResponse)
async def get_threats(
    consumer: str,
    severity: Optional[str] = Query(None, description="Critical, High, Medium or Low"),
    limit: Optional[int] = Query(None, ge=1, le=1000),
):
    """The consumer's retained threats, newest first."""
    scheduler = _scheduler_or_404(consumer)

    threats = scheduler.retained
    if severity is not None:
        try:
            wanted = Severity.parse(severity)
        except ValueError:
            raise HTTPException(status_code=400, detail=f"Invalid severity: {severity}")
        threats = [t for t in threats if t.severity == wanted]

    total = len(threats)
    if limit is not None:
        threats = threats[:limit]

    return {
        "consumer": scheduler.name,
        "capacity": scheduler.capacity,
        "total": total,
        "threats": [t.to_dict() for t in threats],
    }


@router.get("/{consumer}/report")
async def get_last_report(consumer: str) -> Dict[str, Any]:
    """The last aggregation report seen by this consumer."""
    scheduler = _scheduler_or_404(consumer)
    report = scheduler.last_report
    if report is None:
        raise HTTPException(status_code=404, detail="No cycle has completed yet")
    return report.to_dict()
