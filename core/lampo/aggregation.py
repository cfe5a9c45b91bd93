"""
Forecast and Fleet Aggregation

Summary statistics over a price/wind forecast and a device collection:
- Price and wind extremes (ties resolve to the first occurrence)
- Averages that are 0 for an empty series
- Cheapest contiguous window for heating
- Per-row labels for the forecast table

All functions are pure; empty input yields NO_DATA or 0, never an exception.
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import Callable, Iterable, Mapping, Optional, Sequence, Union

import numpy as np

from .models import CurrentAction, Device, ForecastSample


SAVINGS_FACTOR = 1.5  # Rough MWh shifted per heating window


class NoData:
    """Result of a statistic over an empty series. Falsy."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NO_DATA"


NO_DATA = NoData()


@dataclass(frozen=True)
class Extremes:
    """Minimum and maximum of a series and where they first occur."""

    min: float
    max: float
    min_index: int
    max_index: int


@dataclass(frozen=True)
class Window:
    """Inclusive index range into a forecast series."""

    start_index: int
    end_index: int

    @property
    def hours(self) -> int:
        return self.end_index - self.start_index + 1


def hour_label(sample: ForecastSample) -> str:
    return f"{sample.timestamp.hour:02d}:00"


def _extremes(values: Sequence[float]) -> Union[Extremes, NoData]:
    if len(values) == 0:
        return NO_DATA
    arr = np.asarray(values, dtype=float)
    # argmin/argmax return the first occurrence on ties
    min_index = int(np.argmin(arr))
    max_index = int(np.argmax(arr))
    return Extremes(
        min=float(arr[min_index]),
        max=float(arr[max_index]),
        min_index=min_index,
        max_index=max_index,
    )


def price_extremes(series: Sequence[ForecastSample]) -> Union[Extremes, NoData]:
    """Cheapest and most expensive samples (first occurrence wins)."""
    return _extremes([s.price_eur_mwh for s in series])


def wind_extremes(series: Sequence[ForecastSample]) -> Union[Extremes, NoData]:
    """Least and most windy samples (first occurrence wins)."""
    return _extremes([s.wind_percentage for s in series])


def average(series: Sequence, selector: Callable[[object], float]) -> float:
    """Arithmetic mean of `selector(item)`; 0.0 for an empty series."""
    if len(series) == 0:
        return 0.0
    return float(np.mean([selector(item) for item in series]))


def participation_count(devices: Iterable[Device]) -> int:
    """Number of devices taking part in grid balancing."""
    return sum(1 for d in devices if d.vpp_enabled)


def best_window(series: Sequence[ForecastSample], window_hours: int) -> Union[Window, NoData]:
    """Window of `window_hours` samples starting at the cheapest sample.

    The window does not wrap; it is clamped at the end of the series.
    """
    if window_hours < 1:
        raise ValueError(f"window_hours must be at least 1, got {window_hours}")

    extremes = price_extremes(series)
    if not extremes:
        return NO_DATA

    start = extremes.min_index
    end = min(start + window_hours, len(series)) - 1
    return Window(start_index=start, end_index=end)


@dataclass(frozen=True)
class ForecastSummary:
    """Headline numbers for the forecast page."""

    sample_count: int
    current_price: float
    current_wind: float
    average_price: float
    average_wind: float
    prices: Union[Extremes, NoData]
    winds: Union[Extremes, NoData]
    heating_window: Union[Window, NoData]
    estimated_saving: float
    series: tuple[ForecastSample, ...] = ()

    def to_dict(self) -> dict:
        data = {
            "sample_count": self.sample_count,
            "current_price": round(self.current_price, 2),
            "current_wind": round(self.current_wind, 1),
            "average_price": round(self.average_price, 2),
            "average_wind": round(self.average_wind, 1),
            "min_price": None,
            "max_price": None,
            "best_price_hour": None,
            "peak_price_hour": None,
            "max_wind": None,
            "greenest_hour": None,
            "heating_window": None,
            "estimated_saving": round(self.estimated_saving, 2),
        }
        if self.prices:
            data["min_price"] = self.prices.min
            data["max_price"] = self.prices.max
            data["best_price_hour"] = hour_label(self.series[self.prices.min_index])
            data["peak_price_hour"] = hour_label(self.series[self.prices.max_index])
        if self.winds:
            data["max_wind"] = self.winds.max
            data["greenest_hour"] = hour_label(self.series[self.winds.max_index])
        if self.heating_window:
            start = self.series[self.heating_window.start_index]
            end = self.series[self.heating_window.end_index]
            data["heating_window"] = {
                "start_index": self.heating_window.start_index,
                "end_index": self.heating_window.end_index,
                "start": hour_label(start),
                "end": f"{(end.timestamp + timedelta(hours=1)).hour:02d}:00",
                "hours": self.heating_window.hours,
            }
        return data


def forecast_summary(series: Sequence[ForecastSample], window_hours: int = 3) -> ForecastSummary:
    """Compute everything the forecast and dashboard pages display."""
    series = tuple(series)
    prices = price_extremes(series)
    saving = (prices.max - prices.min) * SAVINGS_FACTOR if prices else 0.0

    return ForecastSummary(
        sample_count=len(series),
        current_price=series[0].price_eur_mwh if series else 0.0,
        current_wind=series[0].wind_percentage if series else 0.0,
        average_price=average(series, lambda s: s.price_eur_mwh),
        average_wind=average(series, lambda s: s.wind_percentage),
        prices=prices,
        winds=wind_extremes(series),
        heating_window=best_window(series, window_hours),
        estimated_saving=saving,
        series=series,
    )


def annotate_forecast(
    series: Sequence[ForecastSample],
    limit: Optional[int] = 12,
    high_wind_threshold: float = 70.0,
) -> list[dict]:
    """Rows for the hourly forecast table.

    Labels: "lowest" / "peak" mark the first sample holding the price
    extreme, so a tied value is labelled once. "green" marks wind above
    the threshold.
    """
    prices = price_extremes(series)
    rows = []
    for index, sample in enumerate(list(series)[:limit]):
        labels = []
        if prices and index == prices.min_index:
            labels.append("lowest")
        if prices and index == prices.max_index:
            labels.append("peak")
        if sample.wind_percentage > high_wind_threshold:
            labels.append("green")
        rows.append({
            "hour": hour_label(sample),
            "timestamp": sample.timestamp.isoformat(),
            "price_eur_mwh": round(sample.price_eur_mwh, 2),
            "wind_percentage": round(sample.wind_percentage),
            "labels": labels,
        })
    return rows


def forecast_chart_rows(series: Sequence[ForecastSample]) -> list[dict]:
    """Time-labelled price/wind points for the area chart."""
    return [
        {
            "time": s.timestamp.strftime("%H:%M"),
            "price": s.price_eur_mwh,
            "wind": s.wind_percentage,
        }
        for s in series
    ]


def fleet_summary(devices: Sequence[Device], actions: Mapping[str, CurrentAction]) -> dict:
    """Device counts and average indoor temperature across the fleet.

    Average temperature only covers devices with a known reading; it is None
    when there are none.
    """
    temps = [
        actions[d.device_id].current_temp
        for d in devices
        if d.device_id in actions and actions[d.device_id].current_temp is not None
    ]
    return {
        "total_devices": len(devices),
        "vpp_active": participation_count(devices),
        "average_temperature": round(float(np.mean(temps)), 1) if temps else None,
        "devices_reporting": len(temps),
    }
