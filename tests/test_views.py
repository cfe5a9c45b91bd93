from __future__ import annotations

import asyncio
import threading

import pytest

from lampo.exceptions import (
    BackendConnectionError,
    BackendResponseError,
    MalformedResponseError,
    ValidationError,
    WriteOperationError,
)
from lampo.models import DailyPlan, HourlyAction
from lampo.settings import DashboardSettings
from lampo.views import DashboardViews

from conftest import FakeClient, device_payload, make_action


def make_views(client) -> DashboardViews:
    return DashboardViews(client, DashboardSettings(fetch_timeout=2))


@pytest.mark.asyncio
async def test_dashboard_live(fake_client):
    fake_client.actions = {"HP-001": make_action("HP-001", "heating", 20.0), "HP-002": make_action("HP-002", "eco", 22.0)}
    views = make_views(fake_client)

    page = await views.dashboard()

    assert page["fleet"] == {"total_devices": 2, "vpp_active": 1, "average_temperature": 21.0, "devices_reporting": 2}
    assert page["current_price"] == 50.0
    assert page["low_price"] == 30.0
    assert page["high_price"] == 50.0
    assert [d["status"] for d in page["devices"]] == ["heating", "eco"]
    assert page["sources"]["devices"] == {"source": "live"}
    assert views.status()["dashboard"]["state"] == "Loaded"


@pytest.mark.asyncio
async def test_dashboard_survives_total_backend_outage(fake_client):
    fake_client.devices = BackendConnectionError("refused")
    fake_client.forecast = BackendConnectionError("refused")
    views = make_views(fake_client)

    page = await views.dashboard()

    assert page["devices"] == []
    assert page["fleet"]["total_devices"] == 0
    assert page["current_price"] == 0.0
    assert page["low_price"] is None
    assert page["forecast_chart"] == []
    assert page["sources"]["devices"]["reason"] == "network"
    assert page["sources"]["current_actions"] == {}


@pytest.mark.asyncio
async def test_failed_device_list_does_not_affect_demand_response(fake_client):
    fake_client.devices = BackendResponseError("HTTP 500", status_code=500)
    views = make_views(fake_client)

    page = await views.device_list()
    event = await views.trigger_demand_response({"duration_minutes": 15, "severity": "critical"})

    assert page["count"] == 0
    assert event.event_id == "DR-1"
    assert event.severity.value == "critical"


@pytest.mark.asyncio
async def test_one_failing_action_lookup_does_not_fail_the_batch(fake_client):
    fake_client.actions = {"HP-002": BackendConnectionError("timeout")}
    views = make_views(fake_client)

    page = await views.device_list()

    by_id = {d["device_id"]: d for d in page["devices"]}
    assert by_id["HP-001"]["status"] == "heating"
    assert by_id["HP-002"]["status"] == "unknown"
    assert page["sources"]["current_actions"]["HP-002"]["source"] == "fallback"
    assert page["sources"]["current_actions"]["HP-001"] == {"source": "live"}


@pytest.mark.asyncio
async def test_failed_action_falls_back_to_last_known(fake_client):
    views = make_views(fake_client)
    await views.device_list()

    fake_client.actions = {"HP-001": BackendConnectionError("down")}
    page = await views.device_list()

    card = next(d for d in page["devices"] if d["device_id"] == "HP-001")
    assert card["current_action"]["mode"] == "heating"
    assert page["sources"]["current_actions"]["HP-001"]["source"] == "fallback"


@pytest.mark.asyncio
async def test_device_detail_live_plan(fake_client):
    fake_client.plan = DailyPlan(
        device_id="HP-001",
        hourly_actions=(HourlyAction(5, "heating", 21.0, "Low price"), HourlyAction(5, "boost", 23.0, "Peak ahead")),
    )
    views = make_views(fake_client)

    page = await views.device_detail("HP-001")

    hours = page["plan"]["hours"]
    assert len(hours) == 24
    assert hours[5]["mode"] == "boost"
    assert page["plan"]["gap_hours"] == 23
    assert page["plan"]["mode_counts"]["boost"] == 1
    assert page["device"]["name"] == "Living Room"
    assert page["status"] == "heating"


@pytest.mark.asyncio
async def test_device_detail_all_fallbacks(fake_client):
    fake_client.devices = BackendConnectionError("down")
    fake_client.actions = {"HP-777": BackendConnectionError("down")}
    fake_client.plan = MalformedResponseError("bad plan")
    views = make_views(fake_client)

    page = await views.device_detail("HP-777")

    assert page["device"]["device_id"] == "HP-777"
    assert page["current_action"]["mode"] == "unknown"
    assert page["status"] == "unknown"
    assert page["plan"]["gap_hours"] == 24
    assert page["sources"]["plan"]["reason"] == "malformed"


@pytest.mark.asyncio
async def test_forecast_page(fake_client):
    views = make_views(fake_client)

    page = await views.forecasts()

    assert page["has_data"] is True
    assert page["summary"]["best_price_hour"] == "01:00"
    assert page["recommendations"]["peak_to_avoid"] == {"hour": "00:00", "price": 50.0}
    assert page["recommendations"]["best_for_heating"]["window"]["start"] == "01:00"
    assert len(page["table"]) == 4


@pytest.mark.asyncio
async def test_forecast_page_empty(fake_client):
    fake_client.forecast = BackendConnectionError("down")
    views = make_views(fake_client)

    page = await views.forecasts()

    assert page["has_data"] is False
    assert page["last_updated"] is None
    assert page["summary"]["average_price"] == 0.0
    assert page["recommendations"] == {}
    assert page["table"] == []


@pytest.mark.asyncio
async def test_register_device_validation_blocks_submission(fake_client):
    views = make_views(fake_client)

    with pytest.raises(ValidationError) as exc_info:
        await views.register_device(device_payload(longitude=40))

    assert "longitude" in exc_info.value.errors
    assert not any(call[0] == "register_device" for call in fake_client.calls)


@pytest.mark.asyncio
async def test_register_device_success(fake_client):
    views = make_views(fake_client)

    device = await views.register_device(device_payload(device_id="HP-NEW"))

    assert device.device_id == "HP-NEW"
    assert device.id == 7


@pytest.mark.asyncio
async def test_register_device_backend_failure_propagates(fake_client):
    fake_client.register_result = BackendResponseError("Device already exists", status_code=409)
    views = make_views(fake_client)

    with pytest.raises(WriteOperationError) as exc_info:
        await views.register_device(device_payload())

    assert exc_info.value.status_code == 409
    assert "already exists" in str(exc_info.value)


@pytest.mark.asyncio
async def test_demand_response_against_failing_backend(fake_client):
    fake_client.dr_result = BackendConnectionError("refused")
    views = make_views(fake_client)

    with pytest.raises(WriteOperationError) as exc_info:
        await views.trigger_demand_response({"duration_minutes": 15, "severity": "critical"})

    assert isinstance(exc_info.value.cause, BackendConnectionError)


@pytest.mark.asyncio
async def test_demand_response_validation(fake_client):
    views = make_views(fake_client)

    with pytest.raises(ValidationError):
        await views.trigger_demand_response({"duration_minutes": 90, "severity": "normal"})

    assert fake_client.calls == []


@pytest.mark.asyncio
async def test_comfort_risk_falls_back_to_unknown(fake_client):
    fake_client.comfort = BackendConnectionError("down")
    views = make_views(fake_client)

    result = await views.comfort_risk("HP-001", [{"hour": 6, "mode": "idle"}])

    assert result["risk_level"] == "unknown"
    assert result["sources"]["comfort_risk"]["source"] == "fallback"


@pytest.mark.asyncio
async def test_comfort_risk_rejects_bad_schedule(fake_client):
    views = make_views(fake_client)

    with pytest.raises(ValidationError) as exc_info:
        await views.comfort_risk("HP-001", [{"hour": 25, "mode": "idle"}, {"hour": 3, "mode": ""}])

    assert set(exc_info.value.errors) == {"proposed_schedule[0].hour", "proposed_schedule[1].mode"}


class GatedClient(FakeClient):
    """FakeClient whose device list read blocks until released."""

    def __init__(self):
        super().__init__()
        self.entered = threading.Event()
        self.release = threading.Event()

    def list_devices(self):
        self.entered.set()
        self.release.wait(2)
        return super().list_devices()


async def _start_blocked_device_list(views: DashboardViews, client: GatedClient) -> asyncio.Task:
    task = asyncio.create_task(views.device_list())
    assert await asyncio.to_thread(client.entered.wait, 2)
    return task


@pytest.mark.asyncio
async def test_torn_down_device_list_leaves_no_state_behind():
    client = GatedClient()
    views = make_views(client)

    task = await _start_blocked_device_list(views, client)
    views.teardown("devices")
    client.release.set()
    await task

    assert views.status()["devices"] == {"state": "NotLoaded"}

    client.actions = {"HP-001": BackendConnectionError("down")}
    page = await views.device_list()

    card = next(d for d in page["devices"] if d["device_id"] == "HP-001")
    assert card["status"] == "unknown"


@pytest.mark.asyncio
async def test_registration_discards_in_flight_device_list():
    client = GatedClient()
    views = make_views(client)

    task = await _start_blocked_device_list(views, client)
    await views.register_device(device_payload(device_id="HP-NEW"))
    client.release.set()
    await task

    assert views.status()["devices"] == {"state": "NotLoaded"}


@pytest.mark.asyncio
async def test_superseded_device_list_does_not_overwrite_newer_load():
    client = GatedClient()
    views = make_views(client)

    stale = await _start_blocked_device_list(views, client)
    client.release.set()
    client.actions = {"HP-001": make_action("HP-001", "boost", 23.0)}
    fresh = await views.device_list()
    await stale

    assert views.loader("devices").data is fresh
    assert views.status()["devices"]["generation"] == 2


@pytest.mark.asyncio
async def test_device_detail_state_stays_bounded(fake_client):
    views = make_views(fake_client)

    for i in range(50):
        await views.device_detail(f"ghost-{i}")

    assert set(views.status()) == {"device"}


@pytest.mark.asyncio
async def test_unknown_device_actions_are_not_remembered(fake_client):
    views = make_views(fake_client)
    await views.device_detail("ghost-1")

    fake_client.actions = {"ghost-1": BackendConnectionError("down")}
    page = await views.device_detail("ghost-1")

    assert page["sources"]["device"]["source"] == "fallback"
    assert page["current_action"]["mode"] == "unknown"


@pytest.mark.asyncio
async def test_device_detail_falls_back_to_last_known_action(fake_client):
    views = make_views(fake_client)
    await views.device_detail("HP-001")

    fake_client.actions = {"HP-001": BackendConnectionError("down")}
    page = await views.device_detail("HP-001")

    assert page["current_action"]["mode"] == "heating"
    assert page["sources"]["current_action"]["source"] == "fallback"


@pytest.mark.asyncio
async def test_last_known_actions_are_kept_per_page(fake_client):
    views = make_views(fake_client)
    await views.device_list()

    fake_client.actions = {"HP-001": BackendConnectionError("down")}
    page = await views.dashboard()

    card = next(d for d in page["devices"] if d["device_id"] == "HP-001")
    assert card["status"] == "unknown"
