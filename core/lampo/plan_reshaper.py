"""
Daily Plan Reshaping

Turns the backend's hourly actions (possibly incomplete, unordered or with
duplicate hours) into a fixed 24-slot day for charting.
"""

import logging
from collections import Counter
from enum import Enum
from typing import Iterable, Optional

from .models import HourlyAction

logger = logging.getLogger(__name__)

HOURS_PER_DAY = 24


class ModeCategory(str, Enum):
    HEATING = "heating"
    COOLING = "cooling"
    ECO = "eco"
    BOOST = "boost"
    IDLE = "idle"  # Also covers modes we do not know yet


MODE_COLORS = {
    ModeCategory.HEATING: "hsl(38, 92%, 50%)",
    ModeCategory.COOLING: "hsl(199, 89%, 48%)",
    ModeCategory.ECO: "hsl(142, 71%, 45%)",
    ModeCategory.BOOST: "hsl(0, 72%, 51%)",
    ModeCategory.IDLE: "hsl(217, 33%, 35%)",
}


def classify_mode(mode: Optional[str]) -> ModeCategory:
    """Map a mode string to its display category.

    Case-insensitive. Unrecognized modes are IDLE since the planner may add
    new ones.
    """
    if not mode:
        return ModeCategory.IDLE
    try:
        return ModeCategory(mode.strip().lower())
    except ValueError:
        return ModeCategory.IDLE


def normalize_plan(actions: Iterable[HourlyAction]) -> tuple[HourlyAction, ...]:
    """Return exactly 24 actions ordered by hour.

    - Duplicate hours: the last one in input order wins
    - Missing hours: idle gap with no price/carbon context
    - Hours outside 0-23 are dropped
    """
    by_hour: dict[int, HourlyAction] = {}
    for action in actions:
        if not 0 <= action.hour < HOURS_PER_DAY:
            logger.debug(f"Dropping action for out-of-range hour {action.hour}")
            continue
        by_hour[action.hour] = action

    gaps = HOURS_PER_DAY - len(by_hour)
    if gaps:
        logger.debug(f"Plan has {gaps} hour(s) without an action")

    return tuple(by_hour.get(hour) or HourlyAction.gap(hour) for hour in range(HOURS_PER_DAY))


def plan_chart_rows(actions: Iterable[HourlyAction]) -> list[dict]:
    """Normalized plan as bar-chart rows colored by mode."""
    rows = []
    for action in normalize_plan(actions):
        category = classify_mode(action.mode)
        rows.append({
            "hour": action.hour,
            "hour_label": f"{action.hour:02d}:00",
            "temp": round(action.target_temp, 1) if action.target_temp is not None else None,
            "mode": action.mode,
            "category": category.value,
            "color": MODE_COLORS[category],
            "reason": action.reason,
            "price": action.price,
            "carbon": action.carbon,
            "is_gap": action.is_gap,
        })
    return rows


def mode_counts(actions: Iterable[HourlyAction]) -> dict[str, int]:
    """Hours per category over the normalized day (all categories present)."""
    counts = Counter(classify_mode(a.mode) for a in normalize_plan(actions))
    return {category.value: counts.get(category, 0) for category in ModeCategory}
