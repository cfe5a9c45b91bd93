"""
Placeholder datasets shown when the backend cannot be read.

Values are fixed so repeated fallbacks render identically.
"""

from dataclasses import replace

from .models import CurrentAction, DailyPlan, Device, HeatPumpType, InsulationLevel

PLACEHOLDER_DEVICE = Device(
    device_id="HP-001",
    name="Living Room",
    latitude=60.1699,
    longitude=24.9384,
    insulation_level=InsulationLevel.GOOD,
    floor_area=45.0,
    volume=120.0,
    heat_pump_type=HeatPumpType.AIR_SOURCE,
    rated_power=8.0,
    cop_rating=3.5,
    comfort_min_temp=18.0,
    comfort_max_temp=24.0,
    vpp_enabled=True,
)


def placeholder_device(device_id: str) -> Device:
    """Placeholder device carrying the requested id."""
    return replace(PLACEHOLDER_DEVICE, device_id=device_id)


def placeholder_action(device_id: str, last_known: dict[str, CurrentAction] | None = None) -> CurrentAction:
    """Last known action for the device, else the neutral unknown state."""
    if last_known and device_id in last_known:
        return last_known[device_id]
    return CurrentAction.unknown(device_id)


def placeholder_plan(device_id: str) -> DailyPlan:
    """Empty plan; the reshaper renders it as 24 idle gaps."""
    return DailyPlan.empty(device_id)
