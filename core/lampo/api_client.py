"""
Optimization Backend API Client for Lampo

Thin REST client for devices, plans, forecasts and grid events.
Every failure is raised as a BackendError subclass; callers decide whether
to fall back (reads) or surface it (writes).
"""

import logging
from datetime import date
from typing import Any, Optional

import requests

from .exceptions import (
    BackendConnectionError,
    BackendResponseError,
    BackendTimeoutError,
    MalformedResponseError,
    NotFoundError,
)
from .models import (
    ComfortRisk,
    CurrentAction,
    DailyPlan,
    Device,
    DeviceRegistration,
    DemandResponseEvent,
    DemandResponseRequest,
    ForecastSample,
    parse_forecast,
)

logger = logging.getLogger(__name__)


class ApiClient:
    """Simple optimization backend REST API client."""

    def __init__(self, base_url: str, timeout: float = 5, session: Optional[requests.Session] = None):
        """Initialize API client.

        Args:
            base_url: Backend URL (e.g., "http://localhost:8000")
            timeout: Per-request timeout in seconds
            session: Optional pre-built session (tests)
        """
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.session.headers.update({"Content-Type": "application/json"})
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings) -> "ApiClient":
        return cls(settings.api_base_url, timeout=settings.request_timeout)

    def close(self) -> None:
        self.session.close()

    def _request(self, method: str, endpoint: str, payload: Optional[dict] = None) -> Any:
        """Send a request and return the decoded JSON body.

        Raises:
            NotFoundError: On 404
            BackendResponseError: On any other non-2xx status
            BackendTimeoutError: If the request times out
            BackendConnectionError: If the backend cannot be reached
            MalformedResponseError: If the body is not JSON
        """
        url = f"{self.base_url}{endpoint}"
        try:
            logger.debug(f"{method} {url} payload={payload}")
            response = self.session.request(method, url, json=payload, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            status = e.response.status_code
            detail = self._error_detail(e.response)
            if status == 404:
                raise NotFoundError(f"Not found: {endpoint}", status_code=status, detail=detail) from e
            raise BackendResponseError(detail, status_code=status, detail=detail) from e
        except requests.exceptions.Timeout as e:
            raise BackendTimeoutError(f"Backend request timed out: {method} {endpoint}") from e
        except requests.exceptions.RequestException as e:
            raise BackendConnectionError(f"Backend API request failed: {e}") from e

        try:
            return response.json()
        except ValueError as e:
            raise MalformedResponseError(
                f"Invalid JSON from {endpoint}", status_code=response.status_code
            ) from e

    @staticmethod
    def _error_detail(response: requests.Response) -> str:
        """Extract FastAPI-style {"detail": ...} or fall back to the status."""
        try:
            body = response.json()
        except ValueError:
            return f"HTTP {response.status_code}"
        detail = body.get("detail") if isinstance(body, dict) else None
        return str(detail) if detail else f"HTTP {response.status_code}"

    @staticmethod
    def _parse(endpoint: str, parser, body):
        try:
            return parser(body)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise MalformedResponseError(f"Unexpected response shape from {endpoint}: {e}") from e

    # Devices

    def list_devices(self) -> list[Device]:
        """List registered devices. Entries that fail validation are skipped."""
        body = self._request("GET", "/devices")
        if not isinstance(body, list):
            raise MalformedResponseError(f"Unexpected response shape from /devices: {type(body).__name__}")

        devices = []
        for entry in body:
            try:
                devices.append(Device.from_dict(entry))
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                device_id = entry.get("device_id") if isinstance(entry, dict) else None
                logger.warning(f"Skipping invalid device {device_id or '?'} from /devices: {e}")
        return devices

    def get_device(self, device_id: str) -> Device:
        endpoint = f"/devices/{device_id}"
        return self._parse(endpoint, Device.from_dict, self._request("GET", endpoint))

    def register_device(self, registration: DeviceRegistration) -> Device:
        """Register a new device.

        Raises:
            BackendError: If the backend rejects the registration
        """
        body = self._request("POST", "/devices/register", registration.to_dict())
        device = self._parse("/devices/register", Device.from_dict, body)
        logger.info(f"Registered device {device.device_id} (id={device.id})")
        return device

    # Strategy

    def get_current_action(self, device_id: str) -> CurrentAction:
        endpoint = f"/strategy/current-action/{device_id}"
        return self._parse(endpoint, CurrentAction.from_dict, self._request("GET", endpoint))

    def get_daily_plan(self, device_id: str, target_date: Optional[date] = None) -> DailyPlan:
        payload: dict[str, Any] = {"device_id": device_id}
        if target_date is not None:
            payload["target_date"] = target_date.isoformat()
        body = self._request("POST", "/strategy/daily-plan", payload)
        return self._parse("/strategy/daily-plan", DailyPlan.from_dict, body)

    # Analytics

    def analyze_comfort_risk(self, device_id: str, proposed_schedule: list[dict]) -> ComfortRisk:
        payload = {"device_id": device_id, "proposed_schedule": proposed_schedule}
        body = self._request("POST", "/analytics/comfort-risk", payload)
        return self._parse("/analytics/comfort-risk", ComfortRisk.from_dict, body)

    # Grid

    def trigger_demand_response(self, request: DemandResponseRequest) -> DemandResponseEvent:
        """Trigger a grid balancing event.

        Raises:
            BackendError: If the backend rejects or cannot be reached
        """
        body = self._request("POST", "/grid/demand-response", request.to_dict())
        event = self._parse(
            "/grid/demand-response",
            lambda b: DemandResponseEvent.from_response(b, request),
            body,
        )
        logger.info(
            f"Demand response {event.event_id} ({request.severity.value}, "
            f"{request.duration_minutes} min): {event.participants} participants, "
            f"~{event.estimated_reduction_kw:.1f} kW"
        )
        return event

    # Forecasts

    def get_price_carbon_forecast(self) -> tuple[ForecastSample, ...]:
        body = self._request("GET", "/forecasts/price-carbon")
        return self._parse("/forecasts/price-carbon", parse_forecast, body)
