"""
Cluster Health API

Read-only observation endpoints for the dashboard.

Endpoints:
- GET /health: Cluster health state and resync progress
- GET /capacity: Raw vs consumed vSAN datastore capacity
- GET /events: Event log, newest first
"""

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from vsanlab.api.deps import get_plane
from vsanlab.logic import ControlPlane

router = APIRouter(tags=["health"])


class HealthSummary(BaseModel):
    """Cluster-wide vSAN health"""
    state: str  # 'Healthy', 'Warning', 'Critical', 'Resyncing'
    resync_progress: int  # 0-100
    active_failures: int
    last_change: str | None = None


class CapacitySummary(BaseModel):
    raw_capacity_gb: int
    consumed_gb: int
    free_gb: int
    raw_capacity_tb: float
    consumed_tb: float
    usage_percent: float


@router.get("/health", response_model=HealthSummary)
def get_health(plane: ControlPlane = Depends(get_plane)):
    return plane.health_snapshot()


@router.get("/capacity", response_model=CapacitySummary)
def get_capacity(plane: ControlPlane = Depends(get_plane)):
    return plane.capacity()


@router.get("/events")
def get_events(limit: int = Query(default=100, ge=1, le=1000), plane: ControlPlane = Depends(get_plane)):
    return plane.recent_events(limit)
