"""
Dashboard Page Models

Builds the data behind each dashboard page:
- Reads go through fetch_or_default and never fail the page
- Writes (registration, demand response) raise WriteOperationError
- Each page model carries a `sources` map telling live data from fallbacks
"""

import asyncio
import logging
from datetime import date
from functools import partial
from typing import Any, Awaitable, Callable, Optional

from .aggregation import (
    annotate_forecast,
    fleet_summary,
    forecast_chart_rows,
    forecast_summary,
)
from .api_client import ApiClient
from .exceptions import BackendError, BackendTimeoutError, ValidationError, WriteOperationError
from .fallback import FetchResult, fetch_many, fetch_or_default
from .models import (
    ComfortRisk,
    CurrentAction,
    Device,
    DeviceRegistration,
    DemandResponseEvent,
    DemandResponseRequest,
)
from .placeholders import placeholder_action, placeholder_device, placeholder_plan
from .plan_reshaper import HOURS_PER_DAY, classify_mode, mode_counts, plan_chart_rows
from .settings import DashboardSettings
from .view_state import ViewLoader, state_to_dict

logger = logging.getLogger(__name__)

# device_id -> last live CurrentAction
ActionCache = dict[str, CurrentAction]


def device_status(action: CurrentAction) -> str:
    """Display category of a device's current mode, or "unknown"."""
    if action.mode == "unknown":
        return "unknown"
    return classify_mode(action.mode).value


class DashboardViews:
    """Composes backend reads and derived analytics into page models."""

    def __init__(self, client: ApiClient, settings: Optional[DashboardSettings] = None):
        self.client = client
        self.settings = settings or DashboardSettings()
        self.loaders: dict[str, ViewLoader] = {}
        # Per page: last live current action per device, used when a refresh fails
        self._last_actions: dict[str, ActionCache] = {}

    # Loading lifecycle

    def loader(self, name: str) -> ViewLoader:
        if name not in self.loaders:
            self.loaders[name] = ViewLoader(name)
        return self.loaders[name]

    def teardown(self, name: str) -> None:
        """Drop in-flight results for a page (e.g. user navigated away)."""
        if name in self.loaders:
            self.loaders[name].teardown()

    def status(self) -> dict[str, dict]:
        return {name: state_to_dict(loader.state) for name, loader in self.loaders.items()}

    async def _render(
        self, name: str, build: Callable[[], Awaitable[tuple[dict, Optional[ActionCache]]]]
    ) -> dict:
        """Run a page build under the page's generation guard.

        `build` returns the page and, optionally, the page's next last-known
        actions. Loader state and cache change only if the load is still current.
        """
        loader = self.loader(name)
        generation = loader.begin()
        try:
            page, actions = await build()
        except Exception as e:
            loader.fail(generation, str(e))
            raise
        if not loader.resolve(generation, page):
            logger.debug(f"Page '{name}' superseded by a newer load")
        elif actions is not None:
            self._last_actions[name] = actions
        return page

    async def _read(self, request, fallback, label: str) -> FetchResult:
        return await fetch_or_default(request, fallback, timeout=self.settings.fetch_timeout, label=label)

    async def _current_actions(
        self, page: str, devices_result: FetchResult
    ) -> tuple[dict[str, FetchResult], Optional[ActionCache]]:
        """Fetch current actions for a device list.

        Returns the results and the page's next action cache, restricted to
        the devices of a live list read (None keeps the cache as is).
        """
        known = self._last_actions.get(page, {})
        devices: list[Device] = devices_result.value
        requests = {
            d.device_id: (
                partial(self.client.get_current_action, d.device_id),
                placeholder_action(d.device_id, known),
            )
            for d in devices
        }
        results = await fetch_many(requests, timeout=self.settings.fetch_timeout)
        if devices_result.is_fallback:
            return results, None

        cache = {
            device_id: result.value
            for device_id, result in results.items()
            if not result.is_fallback or device_id in known
        }
        return results, cache

    @staticmethod
    def _device_card(device: Device, action: CurrentAction) -> dict[str, Any]:
        return {
            **device.to_dict(),
            "current_action": action.to_dict(),
            "status": device_status(action),
        }

    # Read pages

    async def dashboard(self) -> dict:
        return await self._render("dashboard", self._build_dashboard)

    async def _build_dashboard(self) -> tuple[dict, Optional[ActionCache]]:
        devices_result, forecast_result = await asyncio.gather(
            self._read(self.client.list_devices, [], "devices"),
            self._read(self.client.get_price_carbon_forecast, (), "forecast"),
        )
        devices = devices_result.value
        action_results, cache = await self._current_actions("dashboard", devices_result)
        actions = {device_id: r.value for device_id, r in action_results.items()}

        summary = forecast_summary(forecast_result.value, self.settings.best_window_hours)

        page = {
            "fleet": fleet_summary(devices, actions),
            "current_price": round(summary.current_price, 2),
            "current_carbon": round(summary.current_wind),
            "low_price": summary.prices.min if summary.prices else None,
            "high_price": summary.prices.max if summary.prices else None,
            "devices": [self._device_card(d, actions[d.device_id]) for d in devices],
            "forecast_chart": forecast_chart_rows(forecast_result.value),
            "sources": {
                "devices": devices_result.describe(),
                "forecast": forecast_result.describe(),
                "current_actions": {k: r.describe() for k, r in action_results.items()},
            },
        }
        return page, cache

    async def device_list(self) -> dict:
        return await self._render("devices", self._build_device_list)

    async def _build_device_list(self) -> tuple[dict, Optional[ActionCache]]:
        devices_result = await self._read(self.client.list_devices, [], "devices")
        devices = devices_result.value
        action_results, cache = await self._current_actions("devices", devices_result)

        page = {
            "count": len(devices),
            "devices": [self._device_card(d, action_results[d.device_id].value) for d in devices],
            "sources": {
                "devices": devices_result.describe(),
                "current_actions": {k: r.describe() for k, r in action_results.items()},
            },
        }
        return page, cache

    async def device_detail(self, device_id: str, target_date: Optional[date] = None) -> dict:
        return await self._render("device", partial(self._build_device_detail, device_id, target_date))

    async def _build_device_detail(
        self, device_id: str, target_date: Optional[date]
    ) -> tuple[dict, Optional[ActionCache]]:
        known = self._last_actions.get("device", {})
        device_result, action_result, plan_result = await asyncio.gather(
            self._read(partial(self.client.get_device, device_id), placeholder_device(device_id), "device"),
            self._read(
                partial(self.client.get_current_action, device_id),
                placeholder_action(device_id, known),
                "current_action",
            ),
            self._read(
                partial(self.client.get_daily_plan, device_id, target_date),
                placeholder_plan(device_id),
                "daily_plan",
            ),
        )
        # Only a device the backend confirmed is remembered
        cache: Optional[ActionCache] = None
        if not device_result.is_fallback:
            if not action_result.is_fallback or device_id in known:
                cache = {device_id: action_result.value}
            else:
                cache = {}

        plan = plan_result.value
        chart = plan_chart_rows(plan.hourly_actions)

        page = {
            "device": device_result.value.to_dict(),
            "current_action": action_result.value.to_dict(),
            "status": device_status(action_result.value),
            "plan": {
                "date": plan.date.isoformat() if plan.date else None,
                "estimated_cost": plan.estimated_cost,
                "estimated_carbon": plan.estimated_carbon,
                "hours": chart,
                "gap_hours": sum(1 for row in chart if row["is_gap"]),
                "mode_counts": mode_counts(plan.hourly_actions),
            },
            "sources": {
                "device": device_result.describe(),
                "current_action": action_result.describe(),
                "plan": plan_result.describe(),
            },
        }
        return page, cache

    async def forecasts(self) -> dict:
        return await self._render("forecasts", self._build_forecasts)

    async def _build_forecasts(self) -> tuple[dict, None]:
        result = await self._read(self.client.get_price_carbon_forecast, (), "forecast")
        series = result.value
        summary = forecast_summary(series, self.settings.best_window_hours)
        headline = summary.to_dict()

        recommendations = {}
        if summary.prices:
            recommendations = {
                "best_for_heating": {
                    "window": headline["heating_window"],
                    "estimated_saving": headline["estimated_saving"],
                },
                "peak_to_avoid": {
                    "hour": headline["peak_price_hour"],
                    "price": headline["max_price"],
                },
                "greenest": {
                    "hour": headline["greenest_hour"],
                    "wind_percentage": headline["max_wind"],
                },
            }

        page = {
            "last_updated": series[0].timestamp.isoformat() if series else None,
            "has_data": bool(series),
            "summary": headline,
            "chart": forecast_chart_rows(series),
            "table": annotate_forecast(
                series,
                limit=self.settings.forecast_table_rows,
                high_wind_threshold=self.settings.high_wind_threshold,
            ),
            "recommendations": recommendations,
            "sources": {"forecast": result.describe()},
        }
        return page, None

    async def comfort_risk(self, device_id: str, proposed_schedule: list[dict]) -> dict:
        """Comfort risk of a proposed schedule; 'unknown' if the backend fails.

        Raises:
            ValidationError: If the schedule is malformed
        """
        errors = {}
        for i, slot in enumerate(proposed_schedule):
            hour = slot.get("hour") if isinstance(slot, dict) else None
            if isinstance(hour, bool) or not isinstance(hour, int) or not 0 <= hour < HOURS_PER_DAY:
                errors[f"proposed_schedule[{i}].hour"] = "Hour must be 0-23"
            if not isinstance(slot, dict) or not str(slot.get("mode") or "").strip():
                errors[f"proposed_schedule[{i}].mode"] = "Mode is required"
        if errors:
            raise ValidationError(errors)

        result = await self._read(
            partial(self.client.analyze_comfort_risk, device_id, proposed_schedule),
            ComfortRisk.unknown(),
            "comfort_risk",
        )
        return {**result.value.to_dict(), "sources": {"comfort_risk": result.describe()}}

    # Writes

    async def _write(self, operation: str, call: Callable[[], Any]) -> Any:
        try:
            return await asyncio.wait_for(asyncio.to_thread(call), self.settings.fetch_timeout)
        except asyncio.TimeoutError as e:
            raise WriteOperationError(
                operation, BackendTimeoutError(f"No answer within {self.settings.fetch_timeout}s")
            ) from e
        except BackendError as e:
            logger.error(f"{operation} failed: {e}")
            raise WriteOperationError(operation, e) from e

    async def register_device(self, payload: dict) -> Device:
        """Validate and register a device.

        Raises:
            ValidationError: Field-level problems, nothing sent
            WriteOperationError: Backend rejected or unreachable
        """
        registration = DeviceRegistration.from_dict(payload)
        device = await self._write("Device registration", partial(self.client.register_device, registration))
        self.teardown("devices")
        self.teardown("dashboard")
        return device

    async def trigger_demand_response(self, payload: dict) -> DemandResponseEvent:
        """Validate and trigger a demand response event.

        Raises:
            ValidationError: Field-level problems, nothing sent
            WriteOperationError: Backend rejected or unreachable; no event exists
        """
        request = DemandResponseRequest.from_dict(payload, default_areas=self.settings.default_areas)
        return await self._write(
            "Demand response trigger", partial(self.client.trigger_demand_response, request)
        )
