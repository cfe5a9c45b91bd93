from __future__ import annotations

import asyncio

import pytest

from lampo.view_state import Failed, Loaded, Loading, NotLoaded, ViewLoader, state_to_dict


def test_initial_state():
    loader = ViewLoader("forecasts")

    assert loader.state == NotLoaded()
    assert loader.data is None
    assert state_to_dict(loader.state) == {"state": "NotLoaded"}


def test_resolve_current_generation():
    loader = ViewLoader()
    generation = loader.begin()

    assert loader.state == Loading(generation)
    assert loader.resolve(generation, {"ok": True}) is True
    assert loader.state == Loaded(generation, {"ok": True})
    assert loader.data == {"ok": True}


def test_stale_result_is_discarded():
    loader = ViewLoader()
    old = loader.begin()
    new = loader.begin()

    assert loader.resolve(old, "old data") is False
    assert loader.state == Loading(new)
    assert loader.resolve(new, "new data") is True
    assert loader.data == "new data"


def test_stale_failure_is_discarded():
    loader = ViewLoader()
    old = loader.begin()
    new = loader.begin()
    loader.resolve(new, "fresh")

    assert loader.fail(old, "timeout") is False
    assert loader.state == Loaded(new, "fresh")


def test_teardown_drops_in_flight_results():
    loader = ViewLoader()
    generation = loader.begin()
    loader.teardown()

    assert loader.resolve(generation, "late") is False
    assert loader.state == NotLoaded()


def test_teardown_returns_to_last_settled_state():
    loader = ViewLoader()
    first = loader.begin()
    loader.resolve(first, "shown")
    second = loader.begin()
    loader.teardown()

    assert loader.state == Loaded(first, "shown")
    assert loader.fail(second, "late") is False
    assert state_to_dict(loader.state)["state"] == "Loaded"


def test_failure_state():
    loader = ViewLoader()
    generation = loader.begin()
    loader.fail(generation, "boom")

    assert loader.state == Failed(generation, "boom")
    assert state_to_dict(loader.state) == {"state": "Failed", "generation": generation, "reason": "boom"}


@pytest.mark.asyncio
async def test_load_cycle():
    loader = ViewLoader()

    async def _fetch():
        return [1, 2]

    state = await loader.load(_fetch)

    assert state == Loaded(1, [1, 2])


@pytest.mark.asyncio
async def test_load_failure_becomes_failed():
    loader = ViewLoader()

    async def _fetch():
        raise RuntimeError("bad")

    state = await loader.load(_fetch)

    assert state == Failed(1, "bad")


@pytest.mark.asyncio
async def test_overlapping_loads_keep_latest():
    loader = ViewLoader()
    release_slow = asyncio.Event()

    async def _slow():
        await release_slow.wait()
        return "slow"

    async def _fast():
        return "fast"

    slow_task = asyncio.create_task(loader.load(_slow))
    await asyncio.sleep(0)
    await loader.load(_fast)
    release_slow.set()
    await slow_task

    assert loader.data == "fast"
    assert loader.generation == 2
