"""
Lampo Data Models

Value objects exchanged with the optimization backend.
Wire payloads use snake_case keys; camelCase keys are accepted as well.
"""

import math
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Optional

from .exceptions import ValidationError
from .settings import _camel_to_snake

# Supported region (Finland)
LATITUDE_RANGE = (59.0, 71.0)
LONGITUDE_RANGE = (19.0, 32.0)
COP_RANGE = (2.0, 5.0)

# Registration form limits
DEVICE_ID_MAX_LENGTH = 50
NAME_MAX_LENGTH = 100
MAX_FLOOR_AREA = 500.0
MAX_VOLUME = 1500.0
MAX_RATED_POWER = 50.0
COMFORT_MIN_RANGE = (15.0, 20.0)
COMFORT_MAX_RANGE = (20.0, 26.0)

# Demand response limits
DR_DURATION_RANGE = (5, 60)


class InsulationLevel(str, Enum):
    POOR = "poor"
    AVERAGE = "average"
    GOOD = "good"
    EXCELLENT = "excellent"


class HeatPumpType(str, Enum):
    AIR_SOURCE = "air_source"
    GROUND_SOURCE = "ground_source"
    WATER_SOURCE = "water_source"
    HYBRID = "hybrid"


class Severity(str, Enum):
    NORMAL = "normal"
    HIGH = "high"
    CRITICAL = "critical"


def _snake_keys(data: dict) -> dict:
    return {_camel_to_snake(k): v for k, v in data.items()}


def parse_timestamp(value: Any) -> datetime:
    """Parse an ISO timestamp; naive values are taken as UTC."""
    if isinstance(value, datetime):
        ts = value
    else:
        ts = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def _parse_date(value: Any) -> date:
    """Parse a plan date; full timestamps are reduced to their date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value)
    if "T" in text or " " in text.strip():
        return parse_timestamp(text).date()
    return date.fromisoformat(text)


def _optional_float(value: Any) -> Optional[float]:
    return None if value is None else float(value)


def _number(data: dict, key: str, errors: dict[str, str]) -> Optional[float]:
    """Read a finite number from a form payload, recording an error if invalid."""
    value = data.get(key)
    if value is None or value == "":
        errors[key] = "Required"
        return None
    if isinstance(value, bool):
        errors[key] = "Must be a number"
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        errors[key] = "Must be a number"
        return None
    if not math.isfinite(number):
        errors[key] = "Must be a finite number"
        return None
    return number


def _check_range(
    errors: dict[str, str], key: str, value: Optional[float], low: float, high: float, message: str
) -> None:
    if value is not None and key not in errors and not (low <= value <= high):
        errors[key] = message


def device_field_errors(data: dict, form_limits: bool = True) -> dict[str, str]:
    """Validate device fields and return {field: message} for every problem.

    Args:
        data: Device fields in snake_case
        form_limits: Also apply the stricter registration form bounds

    Returns:
        Empty dict when the fields are valid
    """
    errors: dict[str, str] = {}

    device_id = str(data.get("device_id") or "").strip()
    if not device_id:
        errors["device_id"] = "Device ID is required"
    elif form_limits and len(device_id) > DEVICE_ID_MAX_LENGTH:
        errors["device_id"] = f"Device ID must be at most {DEVICE_ID_MAX_LENGTH} characters"

    name = str(data.get("name") or "").strip()
    if not name:
        errors["name"] = "Name is required"
    elif form_limits and len(name) > NAME_MAX_LENGTH:
        errors["name"] = f"Name must be at most {NAME_MAX_LENGTH} characters"

    latitude = _number(data, "latitude", errors)
    _check_range(errors, "latitude", latitude, *LATITUDE_RANGE,
                 "Latitude must be in Finland range (59-71)")
    longitude = _number(data, "longitude", errors)
    _check_range(errors, "longitude", longitude, *LONGITUDE_RANGE,
                 "Longitude must be in Finland range (19-32)")

    try:
        InsulationLevel(data.get("insulation_level"))
    except ValueError:
        allowed = ", ".join(level.value for level in InsulationLevel)
        errors["insulation_level"] = f"Must be one of: {allowed}"

    try:
        HeatPumpType(data.get("heat_pump_type"))
    except ValueError:
        allowed = ", ".join(t.value for t in HeatPumpType)
        errors["heat_pump_type"] = f"Must be one of: {allowed}"

    for key, upper, label in (
        ("floor_area", MAX_FLOOR_AREA, "Floor area must be 1-500 m²"),
        ("volume", MAX_VOLUME, "Volume must be 1-1500 m³"),
        ("rated_power", MAX_RATED_POWER, "Rated power must be 1-50 kW"),
    ):
        value = _number(data, key, errors)
        if value is None or key in errors:
            continue
        if value <= 0:
            errors[key] = "Must be greater than 0"
        elif form_limits:
            _check_range(errors, key, value, 1.0, upper, label)

    cop = _number(data, "cop_rating", errors)
    _check_range(errors, "cop_rating", cop, *COP_RANGE, "COP rating must be 2.0-5.0")

    comfort_min = _number(data, "comfort_min_temp", errors)
    comfort_max = _number(data, "comfort_max_temp", errors)
    if form_limits:
        _check_range(errors, "comfort_min_temp", comfort_min, *COMFORT_MIN_RANGE,
                     "Minimum comfort temperature must be 15-20°C")
        _check_range(errors, "comfort_max_temp", comfort_max, *COMFORT_MAX_RANGE,
                     "Maximum comfort temperature must be 20-26°C")
    if (
        comfort_min is not None
        and comfort_max is not None
        and "comfort_max_temp" not in errors
        and comfort_max <= comfort_min
    ):
        errors["comfort_max_temp"] = "Max temperature must be greater than min temperature"

    if not isinstance(data.get("vpp_enabled", False), bool):
        errors["vpp_enabled"] = "Must be true or false"

    return errors


@dataclass(frozen=True)
class DeviceRegistration:
    """Device fields submitted for registration (no backend-assigned id)."""

    device_id: str
    name: str
    latitude: float
    longitude: float
    insulation_level: InsulationLevel
    floor_area: float
    volume: float
    heat_pump_type: HeatPumpType
    rated_power: float
    cop_rating: float = 3.5
    comfort_min_temp: float = 18.0
    comfort_max_temp: float = 24.0
    vpp_enabled: bool = False

    @classmethod
    def from_dict(cls, data: dict) -> "DeviceRegistration":
        """Validate form input and build a registration.

        Raises:
            ValidationError: With one message per invalid field
        """
        converted = _snake_keys(data)
        converted.setdefault("cop_rating", 3.5)
        converted.setdefault("comfort_min_temp", 18.0)
        converted.setdefault("comfort_max_temp", 24.0)
        converted.setdefault("vpp_enabled", False)

        errors = device_field_errors(converted, form_limits=True)
        if errors:
            raise ValidationError(errors)

        return cls(
            device_id=str(converted["device_id"]).strip(),
            name=str(converted["name"]).strip(),
            latitude=float(converted["latitude"]),
            longitude=float(converted["longitude"]),
            insulation_level=InsulationLevel(converted["insulation_level"]),
            floor_area=float(converted["floor_area"]),
            volume=float(converted["volume"]),
            heat_pump_type=HeatPumpType(converted["heat_pump_type"]),
            rated_power=float(converted["rated_power"]),
            cop_rating=float(converted["cop_rating"]),
            comfort_min_temp=float(converted["comfort_min_temp"]),
            comfort_max_temp=float(converted["comfort_max_temp"]),
            vpp_enabled=converted["vpp_enabled"],
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["insulation_level"] = self.insulation_level.value
        data["heat_pump_type"] = self.heat_pump_type.value
        return data


@dataclass(frozen=True)
class Device:
    """A registered heat pump."""

    device_id: str
    name: str
    latitude: float
    longitude: float
    insulation_level: InsulationLevel
    floor_area: float
    volume: float
    heat_pump_type: HeatPumpType
    rated_power: float
    cop_rating: float
    comfort_min_temp: float
    comfort_max_temp: float
    vpp_enabled: bool = False
    id: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: dict) -> "Device":
        """Create from a backend payload.

        Raises:
            ValueError: If the payload breaks a device invariant
        """
        converted = _snake_keys(data)
        errors = device_field_errors(converted, form_limits=False)
        if errors:
            raise ValueError(f"Invalid device payload: {errors}")

        created_at = converted.get("created_at")
        updated_at = converted.get("updated_at")
        return cls(
            device_id=str(converted["device_id"]),
            name=str(converted["name"]),
            latitude=float(converted["latitude"]),
            longitude=float(converted["longitude"]),
            insulation_level=InsulationLevel(converted["insulation_level"]),
            floor_area=float(converted["floor_area"]),
            volume=float(converted["volume"]),
            heat_pump_type=HeatPumpType(converted["heat_pump_type"]),
            rated_power=float(converted["rated_power"]),
            cop_rating=float(converted["cop_rating"]),
            comfort_min_temp=float(converted["comfort_min_temp"]),
            comfort_max_temp=float(converted["comfort_max_temp"]),
            vpp_enabled=bool(converted.get("vpp_enabled", False)),
            id=converted.get("id"),
            created_at=parse_timestamp(created_at) if created_at else None,
            updated_at=parse_timestamp(updated_at) if updated_at else None,
        )

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["insulation_level"] = self.insulation_level.value
        data["heat_pump_type"] = self.heat_pump_type.value
        data["created_at"] = self.created_at.isoformat() if self.created_at else None
        data["updated_at"] = self.updated_at.isoformat() if self.updated_at else None
        return data


@dataclass(frozen=True)
class ForecastSample:
    """One hour of the price / wind forecast."""

    timestamp: datetime
    price_eur_mwh: float
    wind_percentage: float

    @classmethod
    def from_dict(cls, data: dict) -> "ForecastSample":
        converted = _snake_keys(data)
        price = float(converted["price_eur_mwh"])
        wind = float(converted["wind_percentage"])
        if not (math.isfinite(price) and math.isfinite(wind)):
            raise ValueError(f"Forecast values must be finite: price={price}, wind={wind}")
        return cls(
            timestamp=parse_timestamp(converted["timestamp"]),
            price_eur_mwh=price,
            wind_percentage=wind,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "price_eur_mwh": self.price_eur_mwh,
            "wind_percentage": self.wind_percentage,
        }


def parse_forecast(payload: Any) -> tuple[ForecastSample, ...]:
    """Parse a forecast response.

    Accepts {"forecast": [...]} or a bare list.

    Raises:
        ValueError: If timestamps are not strictly increasing
    """
    if isinstance(payload, dict):
        payload = payload.get("forecast", [])
    if not isinstance(payload, list):
        raise ValueError(f"Forecast payload must be a list, got {type(payload).__name__}")

    samples = tuple(ForecastSample.from_dict(entry) for entry in payload)
    for prev, curr in zip(samples, samples[1:]):
        if curr.timestamp <= prev.timestamp:
            raise ValueError(
                f"Forecast timestamps not strictly increasing at {curr.timestamp.isoformat()}"
            )
    return samples


@dataclass(frozen=True)
class HourlyAction:
    """Operating instruction for one hour of a daily plan."""

    hour: int
    mode: str
    target_temp: Optional[float]
    reason: str = ""
    price: Optional[float] = None
    carbon: Optional[float] = None
    is_gap: bool = False  # Synthesized for an hour the plan did not cover

    @classmethod
    def from_dict(cls, data: dict) -> "HourlyAction":
        converted = _snake_keys(data)
        hour = converted["hour"]
        if isinstance(hour, bool) or int(hour) != hour:
            raise ValueError(f"Hour must be an integer: {hour!r}")
        return cls(
            hour=int(hour),
            mode=str(converted.get("mode") or "idle"),
            target_temp=_optional_float(converted.get("target_temp")),
            reason=str(converted.get("reason") or ""),
            price=_optional_float(converted.get("price")),
            carbon=_optional_float(converted.get("carbon")),
        )

    @classmethod
    def gap(cls, hour: int) -> "HourlyAction":
        """Idle placeholder for an hour with no planned action."""
        return cls(hour=hour, mode="idle", target_temp=None, reason="", is_gap=True)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DailyPlan:
    """Per-device plan for one day."""

    device_id: str
    date: Optional[date] = None
    hourly_actions: tuple[HourlyAction, ...] = ()
    estimated_cost: Optional[float] = None
    estimated_carbon: Optional[float] = None

    @classmethod
    def from_dict(cls, data: dict) -> "DailyPlan":
        converted = _snake_keys(data)
        plan_date = converted.get("date")
        return cls(
            device_id=str(converted["device_id"]),
            date=_parse_date(plan_date) if plan_date else None,
            hourly_actions=tuple(
                HourlyAction.from_dict(a) for a in converted.get("hourly_actions") or []
            ),
            estimated_cost=_optional_float(converted.get("estimated_cost")),
            estimated_carbon=_optional_float(converted.get("estimated_carbon")),
        )

    @classmethod
    def empty(cls, device_id: str) -> "DailyPlan":
        return cls(device_id=device_id)


@dataclass(frozen=True)
class CurrentAction:
    """What a device is doing right now."""

    device_id: str
    mode: str
    target_temp: Optional[float]
    current_temp: Optional[float]
    reason: str = ""
    next_change: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict) -> "CurrentAction":
        converted = _snake_keys(data)
        return cls(
            device_id=str(converted["device_id"]),
            mode=str(converted.get("mode") or "unknown"),
            target_temp=_optional_float(converted.get("target_temp")),
            current_temp=_optional_float(converted.get("current_temp")),
            reason=str(converted.get("reason") or ""),
            next_change=converted.get("next_change"),
        )

    @classmethod
    def unknown(cls, device_id: str) -> "CurrentAction":
        """Neutral state shown when the backend cannot tell."""
        return cls(
            device_id=device_id,
            mode="unknown",
            target_temp=None,
            current_temp=None,
            reason="Current action unavailable",
        )

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class DemandResponseRequest:
    """Parameters for a grid balancing event."""

    duration_minutes: int
    severity: Severity
    affected_areas: tuple[str, ...] = ("FI",)

    @classmethod
    def from_dict(cls, data: dict, default_areas: tuple[str, ...] = ("FI",)) -> "DemandResponseRequest":
        """Validate trigger input.

        Raises:
            ValidationError: With one message per invalid field
        """
        converted = _snake_keys(data)
        errors: dict[str, str] = {}

        duration = converted.get("duration_minutes")
        low, high = DR_DURATION_RANGE
        if (
            isinstance(duration, bool)
            or not isinstance(duration, (int, float))
            or not math.isfinite(duration)
            or int(duration) != duration
        ):
            errors["duration_minutes"] = "Duration must be a whole number of minutes"
        elif not (low <= duration <= high):
            errors["duration_minutes"] = f"Duration must be {low}-{high} minutes"

        try:
            severity = Severity(converted.get("severity", Severity.NORMAL.value))
        except ValueError:
            allowed = ", ".join(s.value for s in Severity)
            errors["severity"] = f"Must be one of: {allowed}"
            severity = None

        areas = converted.get("affected_areas") or list(default_areas)
        if isinstance(areas, str) or not all(isinstance(a, str) and a.strip() for a in areas):
            errors["affected_areas"] = "Must be a list of area codes"

        if errors:
            raise ValidationError(errors)

        return cls(
            duration_minutes=int(duration),
            severity=severity,
            affected_areas=tuple(a.strip().upper() for a in areas),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "duration_minutes": self.duration_minutes,
            "severity": self.severity.value,
            "affected_areas": list(self.affected_areas),
        }


@dataclass(frozen=True)
class DemandResponseEvent:
    """Record of a triggered demand response event."""

    event_id: str
    severity: Severity
    duration_minutes: int
    participants: int
    estimated_reduction_kw: float
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_response(cls, data: dict, request: DemandResponseRequest) -> "DemandResponseEvent":
        """Build the event from the backend answer and the request that caused it."""
        converted = _snake_keys(data)
        participants = int(converted["participants"])
        if participants < 0:
            raise ValueError(f"Participant count cannot be negative: {participants}")
        return cls(
            event_id=str(converted["event_id"]),
            severity=request.severity,
            duration_minutes=request.duration_minutes,
            participants=participants,
            estimated_reduction_kw=float(converted["estimated_reduction_kw"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "event_id": self.event_id,
            "severity": self.severity.value,
            "duration_minutes": self.duration_minutes,
            "participants": self.participants,
            "estimated_reduction_kw": self.estimated_reduction_kw,
            "created_at": self.created_at.isoformat(),
        }


@dataclass(frozen=True)
class ComfortRisk:
    """Comfort risk analysis for a proposed schedule."""

    risk_level: str
    risk_hours: tuple[int, ...] = ()
    recommendations: tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: dict) -> "ComfortRisk":
        converted = _snake_keys(data)
        return cls(
            risk_level=str(converted["risk_level"]),
            risk_hours=tuple(int(h) for h in converted.get("risk_hours") or []),
            recommendations=tuple(str(r) for r in converted.get("recommendations") or []),
        )

    @classmethod
    def unknown(cls) -> "ComfortRisk":
        return cls(risk_level="unknown")

    def to_dict(self) -> dict[str, Any]:
        return {
            "risk_level": self.risk_level,
            "risk_hours": list(self.risk_hours),
            "recommendations": list(self.recommendations),
        }
