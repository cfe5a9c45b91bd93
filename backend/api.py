"""
Lampo API Endpoints
"""

import os
import sys
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger
from pydantic import BaseModel, Field

# Add core to Python path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "core"))

from lampo.exceptions import ValidationError, WriteOperationError
from lampo.views import DashboardViews

VERSION = "0.1.0"

router = APIRouter()

# Page model builder (set by app.py during startup)
views: Optional[DashboardViews] = None


def get_views() -> DashboardViews:
    if views is None:
        raise HTTPException(status_code=503, detail="Dashboard not initialized")
    return views


class DeviceRegistrationBody(BaseModel):
    """Request body for registering a device."""
    device_id: str
    name: str
    latitude: float
    longitude: float
    insulation_level: str
    floor_area: float
    volume: float
    heat_pump_type: str
    rated_power: float
    cop_rating: float = 3.5
    comfort_min_temp: float = 18.0
    comfort_max_temp: float = 24.0
    vpp_enabled: bool = False


class DemandResponseBody(BaseModel):
    """Request body for triggering a demand response event."""
    duration_minutes: int = 15
    severity: str = "normal"
    affected_areas: Optional[list[str]] = None


class ScheduleSlot(BaseModel):
    hour: int
    mode: str


class ComfortRiskBody(BaseModel):
    """Request body for a comfort risk analysis."""
    device_id: str
    proposed_schedule: list[ScheduleSlot] = Field(default_factory=list)


def _validation_failed(e: ValidationError) -> HTTPException:
    logger.info(f"Rejected input: {e.errors}")
    return HTTPException(status_code=422, detail={"message": "Validation failed", "errors": e.errors})


def _write_failed(e: WriteOperationError) -> HTTPException:
    # Backend client errors (e.g. duplicate device) keep their status; the rest is a bad gateway
    status = e.status_code if e.status_code and 400 <= e.status_code < 500 else 502
    return HTTPException(status_code=status, detail=str(e))


@router.get("/api/health")
async def health_check(dashboard: DashboardViews = Depends(get_views)):
    """Health check endpoint."""
    return {
        "status": "healthy",
        "app": "Lampo",
        "version": VERSION,
        "backend_url": dashboard.settings.api_base_url,
    }


@router.get("/api/status")
async def get_status(dashboard: DashboardViews = Depends(get_views)):
    """Loading state of every page built so far."""
    return {"pages": dashboard.status()}


@router.get("/api/dashboard")
async def get_dashboard(dashboard: DashboardViews = Depends(get_views)):
    """Fleet overview, current price and forecast chart."""
    return await dashboard.dashboard()


@router.get("/api/devices")
async def get_devices(dashboard: DashboardViews = Depends(get_views)):
    """All registered devices with their current action."""
    return await dashboard.device_list()


@router.post("/api/devices/register", status_code=201)
async def register_device(body: DeviceRegistrationBody, dashboard: DashboardViews = Depends(get_views)):
    """Register a device. Failures are returned to the caller, never defaulted."""
    try:
        device = await dashboard.register_device(body.model_dump())
    except ValidationError as e:
        raise _validation_failed(e) from e
    except WriteOperationError as e:
        raise _write_failed(e) from e

    logger.info(f"Device {device.device_id} registered")
    return device.to_dict()


@router.get("/api/devices/{device_id}")
async def get_device_detail(
    device_id: str,
    target_date: Optional[date] = Query(None, alias="date"),
    dashboard: DashboardViews = Depends(get_views),
):
    """Device properties, current action and the normalized daily plan."""
    return await dashboard.device_detail(device_id, target_date)


@router.get("/api/forecasts")
async def get_forecasts(dashboard: DashboardViews = Depends(get_views)):
    """Price / wind forecast with summary, table and recommendations."""
    return await dashboard.forecasts()


@router.post("/api/grid/demand-response")
async def trigger_demand_response(body: DemandResponseBody, dashboard: DashboardViews = Depends(get_views)):
    """Trigger a grid balancing event. Failures are returned to the caller."""
    try:
        event = await dashboard.trigger_demand_response(body.model_dump(exclude_none=True))
    except ValidationError as e:
        raise _validation_failed(e) from e
    except WriteOperationError as e:
        raise _write_failed(e) from e

    return event.to_dict()


@router.post("/api/analytics/comfort-risk")
async def analyze_comfort_risk(body: ComfortRiskBody, dashboard: DashboardViews = Depends(get_views)):
    """Comfort risk of a proposed schedule ('unknown' if the backend is down)."""
    schedule = [slot.model_dump() for slot in body.proposed_schedule]
    try:
        return await dashboard.comfort_risk(body.device_id, schedule)
    except ValidationError as e:
        raise _validation_failed(e) from e
