from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

import pytest

from lampo.exceptions import BackendConnectionError
from lampo.models import (
    ComfortRisk,
    CurrentAction,
    DailyPlan,
    Device,
    DemandResponseEvent,
    ForecastSample,
    HourlyAction,
)

START = datetime(2024, 1, 15, 0, 0, tzinfo=timezone.utc)


def device_payload(**overrides: Any) -> dict:
    payload = {
        "device_id": "HP-001",
        "name": "Living Room",
        "latitude": 60.1699,
        "longitude": 24.9384,
        "insulation_level": "good",
        "floor_area": 45,
        "volume": 120,
        "heat_pump_type": "air_source",
        "rated_power": 8,
        "cop_rating": 3.5,
        "comfort_min_temp": 18,
        "comfort_max_temp": 24,
        "vpp_enabled": True,
    }
    payload.update(overrides)
    return payload


def make_device(**overrides: Any) -> Device:
    return Device.from_dict(device_payload(**overrides))


def make_series(prices: list[float], winds: Optional[list[float]] = None) -> tuple[ForecastSample, ...]:
    winds = winds or [50.0] * len(prices)
    return tuple(
        ForecastSample(START + timedelta(hours=i), float(p), float(w))
        for i, (p, w) in enumerate(zip(prices, winds))
    )


def make_action(device_id: str = "HP-001", mode: str = "heating", current_temp: float = 19.5) -> CurrentAction:
    return CurrentAction(
        device_id=device_id,
        mode=mode,
        target_temp=21.0,
        current_temp=current_temp,
        reason="Low electricity price window",
        next_change="14:00",
    )


class FakeClient:
    """Synchronous stand-in for ApiClient.

    Set an attribute to an Exception instance to make that call fail.
    """

    def __init__(self):
        self.devices: Any = [make_device(), make_device(device_id="HP-002", name="Office", vpp_enabled=False)]
        self.forecast: Any = make_series([50, 30, 30, 45])
        self.actions: dict[str, Any] = {}
        self.plan: Any = None
        self.comfort: Any = ComfortRisk("low", (), ("Pre-heat before 17:00",))
        self.register_result: Any = None
        self.dr_result: Any = None
        self.calls: list[tuple] = []

    @staticmethod
    def _answer(value):
        if isinstance(value, Exception):
            raise value
        return value

    def list_devices(self):
        self.calls.append(("list_devices",))
        return self._answer(self.devices)

    def get_device(self, device_id):
        self.calls.append(("get_device", device_id))
        devices = self._answer(self.devices)
        for device in devices:
            if device.device_id == device_id:
                return device
        raise BackendConnectionError("unknown device")

    def get_current_action(self, device_id):
        self.calls.append(("get_current_action", device_id))
        return self._answer(self.actions.get(device_id, make_action(device_id)))

    def get_daily_plan(self, device_id, target_date=None):
        self.calls.append(("get_daily_plan", device_id, target_date))
        if self.plan is None:
            return DailyPlan(
                device_id=device_id,
                hourly_actions=tuple(HourlyAction(h, "eco", 20.0, "Comfort") for h in range(24)),
            )
        return self._answer(self.plan)

    def get_price_carbon_forecast(self):
        self.calls.append(("get_price_carbon_forecast",))
        return self._answer(self.forecast)

    def analyze_comfort_risk(self, device_id, proposed_schedule):
        self.calls.append(("analyze_comfort_risk", device_id, proposed_schedule))
        return self._answer(self.comfort)

    def register_device(self, registration):
        self.calls.append(("register_device", registration))
        if self.register_result is None:
            return make_device(device_id=registration.device_id, id=7)
        return self._answer(self.register_result)

    def trigger_demand_response(self, request):
        self.calls.append(("trigger_demand_response", request))
        if self.dr_result is None:
            return DemandResponseEvent(
                event_id="DR-1",
                severity=request.severity,
                duration_minutes=request.duration_minutes,
                participants=12,
                estimated_reduction_kw=42.5,
            )
        return self._answer(self.dr_result)


@pytest.fixture
def fake_client() -> FakeClient:
    return FakeClient()
