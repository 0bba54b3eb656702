"""Tests for the versioned persistence backends."""

import hashlib
import json

import pytest

from ecosim.persistence import (
    InMemoryPersistence,
    JsonPersistence,
    build_persistence,
)


@pytest.mark.asyncio
async def test_in_memory_persistence_versions(make_model):
    persistence = InMemoryPersistence()
    await persistence.initialize()
    state = make_model().snapshot()

    assert await persistence.save(state, None)
    assert not await persistence.save(state, None)

    stored = await persistence.load(state.id)
    assert stored.version == 1
    assert stored.state == state

    updated = state.model_copy(update={"tick": 1})
    assert await persistence.save(updated, 1)
    assert not await persistence.save(updated, 1)
    assert (await persistence.load(state.id)).version == 2

    assert await persistence.load("missing") is None
    await persistence.close()


@pytest.mark.asyncio
async def test_in_memory_loads_are_independent_copies(make_model):
    persistence = InMemoryPersistence()
    state = make_model().snapshot()
    await persistence.save(state, None)

    first = await persistence.load(state.id)
    first.state.populations["p1"].population = 1

    second = await persistence.load(state.id)
    assert second.state.populations["p1"].population == 100
    assert second.state.model_dump_json() == state.model_dump_json()


@pytest.mark.asyncio
async def test_json_persistence_round_trip(tmp_path, make_model):
    persistence = JsonPersistence(tmp_path / "sims")
    await persistence.initialize()
    state = make_model(simulation_id="reef-1").snapshot()

    assert await persistence.save(state, None)
    stored = await persistence.load("reef-1")
    assert stored.version == 1
    assert stored.state == state

    on_disk = json.loads((tmp_path / "sims" / "reef-1.json").read_text("utf-8"))
    assert on_disk["version"] == 1
    assert on_disk["state"]["owner_user_id"] == "user-1"

    assert not await persistence.save(state, 7)
    assert await persistence.save(state, 1)
    assert (await persistence.load("reef-1")).version == 2
    assert not list((tmp_path / "sims").glob("*.tmp"))


@pytest.mark.asyncio
async def test_json_persistence_sanitises_ids(tmp_path, make_model):
    persistence = JsonPersistence(tmp_path)
    await persistence.initialize()
    state = make_model(simulation_id="../escape").snapshot()

    await persistence.save(state, None)

    digest = hashlib.sha256(b"../escape").hexdigest()[:16]
    assert (tmp_path / f"___escape.{digest}.json").exists()
    assert list(tmp_path.iterdir()) == [tmp_path / f"___escape.{digest}.json"]
    assert (await persistence.load("../escape")).state.id == "../escape"


@pytest.mark.asyncio
async def test_json_persistence_keeps_similar_ids_apart(tmp_path, make_model):
    persistence = JsonPersistence(tmp_path)
    await persistence.initialize()

    assert await persistence.save(make_model(simulation_id="a_b").snapshot(), None)
    assert await persistence.save(make_model(simulation_id="a.b").snapshot(), None)

    assert (tmp_path / "a_b.json").exists()
    assert (await persistence.load("a_b")).state.id == "a_b"
    assert (await persistence.load("a.b")).state.id == "a.b"
    assert await persistence.list_for_owner("user-1") == ["a.b", "a_b"]


@pytest.mark.asyncio
async def test_json_persistence_ignores_files_holding_another_id(tmp_path, make_model):
    persistence = JsonPersistence(tmp_path)
    await persistence.initialize()
    await persistence.save(make_model(simulation_id="sim-1").snapshot(), None)
    (tmp_path / "sim-1.json").rename(tmp_path / "sim-2.json")

    assert await persistence.load("sim-2") is None
    assert not await persistence.save(make_model(simulation_id="sim-2").snapshot(), None)


@pytest.mark.asyncio
@pytest.mark.parametrize("backend", ["memory", "json"])
async def test_list_for_owner(backend, tmp_path, make_model, context):
    persistence = InMemoryPersistence() if backend == "memory" else JsonPersistence(tmp_path)
    await persistence.initialize()

    other = context.model_copy(update={"user_id": "user-2"})
    await persistence.save(make_model(simulation_id="b").snapshot(), None)
    await persistence.save(make_model(simulation_id="a").snapshot(), None)
    await persistence.save(make_model(simulation_id="c", ctx=other).snapshot(), None)

    assert await persistence.list_for_owner("user-1") == ["a", "b"]
    assert await persistence.list_for_owner("user-2") == ["c"]
    assert await persistence.list_for_owner("nobody") == []


def test_build_persistence_selects_backend():
    assert isinstance(build_persistence("memory"), InMemoryPersistence)
    assert isinstance(build_persistence("JSON"), JsonPersistence)
    with pytest.raises(ValueError):
        build_persistence("redis")
