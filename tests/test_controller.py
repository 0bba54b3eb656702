"""End-to-end lifecycle tests through SimulationLifecycleController."""

from datetime import datetime, timezone

import pytest

from ecosim.controller import STALE_VERSION_MESSAGE, SimulationLifecycleController
from ecosim.errors import ConflictError, InternalError, NotFoundError, ValidationError
from ecosim.persistence import InMemoryPersistence
from ecosim.schemas import (
    Environment,
    SimulationConfig,
    SimulationExecutionContext,
    SimulationResult,
    SimulationStatus,
)
from ecosim.validation import (
    RULE_CONSUMER_RATIO,
    RULE_CONSUMER_REPRODUCTION,
    RULE_DEEP_WATER_LIGHT,
    RULE_IMMUTABLE_IDENTITY,
    RULE_RANGE,
    RULE_TIME_LIMIT,
)

USER = "user-1"


class RacingPersistence(InMemoryPersistence):
    """Lets another writer bump the version just before the next update lands."""

    def __init__(self):
        super().__init__()
        self.race_next_update = False

    async def save(self, state, expected_version):
        if self.race_next_update and expected_version is not None:
            self.race_next_update = False
            version, payload = self.records[state.id]
            self.records[state.id] = (version + 1, payload)
        return await super().save(state, expected_version)


class BrokenPersistence(InMemoryPersistence):
    async def load(self, simulation_id):
        raise OSError("disk unplugged")


async def start(controller, context, roster, environment):
    outcome = await controller.initialize(context, roster, environment)
    assert outcome.is_ok, outcome
    return outcome.value


# Scenario A -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_initialize_creates_setup_state(controller, context, reef_roster, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)

    assert state.id == "sim-1"
    assert state.status == SimulationStatus.SETUP
    assert state.owner_user_id == USER
    assert 0 <= state.stability_score <= 100
    assert state.stability_score > 0
    assert len(state.interactions) == 10
    assert set(state.populations) == {"p1", "p2", "p3", "c1", "c2"}
    assert state.time_remaining == state.time_limit == 100


@pytest.mark.asyncio
async def test_initialize_accepts_raw_camel_case_payloads(controller):
    outcome = await controller.initialize(
        {"userId": USER, "timeLimit": 60, "config": {"tickSeconds": 5}},
        [
            {"id": "kelp", "name": "Kelp", "type": "PRODUCER", "energyRequirement": 10, "reproductionRate": 1},
            {"id": "algae", "name": "Algae", "type": "PRODUCER", "energyRequirement": 35, "reproductionRate": 2},
            {"id": "urchin", "name": "Urchin", "type": "CONSUMER", "energyRequirement": 30, "reproductionRate": 1},
        ],
        {"temperature": 22, "depth": 20, "salinity": 34, "lightLevel": 85},
    )

    assert outcome.is_ok
    assert outcome.value.config.tick_seconds == 5


# Scenario B -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_initialize_rejects_negative_depth(controller, context, reef_roster, persistence):
    outcome = await controller.initialize(
        context,
        reef_roster,
        Environment(temperature=50, depth=-100, salinity=35, light_level=80),
    )

    assert isinstance(outcome.error, ValidationError)
    assert outcome.error.field == "environment.depth"
    assert outcome.error.rule == RULE_RANGE
    assert persistence.records == {}


# Scenario C -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_initialize_rejects_consumer_heavy_roster(controller, context, make_species, optimal_environment):
    roster = [make_species("p1", "PRODUCER", 10)] + [
        make_species(f"c{i}", "CONSUMER", 40) for i in range(3)
    ]

    outcome = await controller.initialize(context, roster, optimal_environment)

    assert isinstance(outcome.error, ValidationError)
    assert outcome.error.rule == RULE_CONSUMER_RATIO


@pytest.mark.asyncio
async def test_initialize_names_the_bad_species(controller, context, reef_roster, make_species, optimal_environment):
    roster = reef_roster[:3] + [make_species("c1", "CONSUMER", 40, 3.0), reef_roster[4]]

    outcome = await controller.initialize(context, roster, optimal_environment)

    assert outcome.error.rule == RULE_CONSUMER_REPRODUCTION
    assert outcome.error.field == "species[3].reproduction_rate"


@pytest.mark.asyncio
async def test_initialize_rejects_bad_time_limit(controller, reef_roster, optimal_environment):
    ctx = SimulationExecutionContext(user_id=USER, time_limit=0)

    outcome = await controller.initialize(ctx, reef_roster, optimal_environment)

    assert outcome.error.rule == RULE_TIME_LIMIT


# Scenario D -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_run_completes_when_time_runs_out(controller, reef_roster, optimal_environment):
    ctx = SimulationExecutionContext(
        user_id=USER, time_limit=100, config=SimulationConfig(tick_seconds=10)
    )
    state = await start(controller, ctx, reef_roster, optimal_environment)

    statuses = []
    for _ in range(10):
        outcome = await controller.step(state.id, user_id=USER)
        assert outcome.is_ok
        statuses.append(outcome.value.status)

    assert statuses[:9] == [SimulationStatus.RUNNING] * 9
    assert statuses[9] == SimulationStatus.COMPLETED

    final = outcome.value
    assert final.time_remaining == 0
    assert final.tick == 10
    assert isinstance(final.result, SimulationResult)
    assert 0 <= final.result.score <= 100
    assert len(final.stability_history) == 10

    completed = await controller.complete(state.id, user_id=USER)
    assert isinstance(completed.error, ConflictError)
    assert completed.error.current_status == "COMPLETED"

    stepped = await controller.step(state.id, user_id=USER)
    assert isinstance(stepped.error, ConflictError)

    result = await controller.get_result(state.id, USER)
    assert result.value == final.result


# Scenario E -----------------------------------------------------------------


@pytest.mark.asyncio
async def test_complete_mid_run(controller, context, reef_roster, optimal_environment):
    fixed = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)
    controller.clock = lambda: fixed
    state = await start(controller, context, reef_roster, optimal_environment)
    await controller.step(state.id, user_id=USER)
    running = (await controller.step(state.id, user_id=USER)).value
    assert running.status == SimulationStatus.RUNNING
    assert running.time_remaining > 0

    outcome = await controller.complete(state.id, user_id=USER)

    assert outcome.is_ok
    result = outcome.value
    assert result.simulation_id == state.id
    assert result.completed_at == fixed
    for value in (result.score, result.ecosystem_stability, result.species_balance):
        assert 0 <= value <= 100
    assert result.feedback

    after = (await controller.get_state(state.id, USER)).value
    assert after.status == SimulationStatus.COMPLETED
    assert after.result == result
    assert after.tick == 2

    stepped = await controller.step(state.id, user_id=USER)
    assert isinstance(stepped.error, ConflictError)
    assert stepped.error.attempted_operation == "step"


@pytest.mark.asyncio
async def test_complete_from_setup(controller, context, reef_roster, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)

    outcome = await controller.complete(state.id)

    assert outcome.is_ok
    assert outcome.value.ecosystem_stability == state.stability_score


# Reads ----------------------------------------------------------------------


@pytest.mark.asyncio
async def test_get_state_is_idempotent(controller, context, reef_roster, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)
    await controller.step(state.id, user_id=USER)

    first = await controller.get_state(state.id, USER)
    second = await controller.get_state(state.id, USER)

    assert first.value.model_dump_json() == second.value.model_dump_json()


@pytest.mark.asyncio
async def test_unknown_and_foreign_ids_are_not_found(controller, context, reef_roster, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)

    assert (await controller.get_state("nope", USER)).error == NotFoundError(id="nope")
    assert isinstance((await controller.get_state(state.id, "intruder")).error, NotFoundError)
    assert isinstance((await controller.step(state.id, user_id="intruder")).error, NotFoundError)
    assert isinstance(
        (await controller.update_species(state.id, reef_roster, user_id="intruder")).error,
        NotFoundError,
    )
    assert isinstance((await controller.step("nope")).error, NotFoundError)


@pytest.mark.asyncio
async def test_result_not_available_before_completion(controller, context, reef_roster, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)
    assert isinstance((await controller.get_result(state.id, USER)).error, NotFoundError)


@pytest.mark.asyncio
async def test_list_simulations(controller, context, reef_roster, optimal_environment):
    first = await start(controller, context, reef_roster, optimal_environment)
    second = await start(controller, context, reef_roster, optimal_environment)

    listed = await controller.list_simulations(USER)

    assert listed.value == sorted([first.id, second.id])


# Updates --------------------------------------------------------------------


@pytest.mark.asyncio
async def test_update_species_rederives_interactions(controller, context, reef_roster, make_species, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)
    await controller.step(state.id, user_id=USER)
    before = (await controller.get_state(state.id, USER)).value

    roster = reef_roster + [make_species("p4", "PRODUCER", 45)]
    outcome = await controller.update_species(state.id, roster, user_id=USER)

    assert outcome.is_ok
    updated = outcome.value
    assert len(updated.interactions) == 15
    assert updated.populations["p4"].population == 100
    assert updated.populations["p1"] == before.populations["p1"]
    assert updated.tick == before.tick
    assert updated.status == SimulationStatus.RUNNING


@pytest.mark.asyncio
async def test_update_species_can_tune_traits_but_not_identity(controller, context, reef_roster, make_species, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)

    tuned = reef_roster[:4] + [make_species("c2", "CONSUMER", 55, 2.0)]
    assert (await controller.update_species(state.id, tuned)).is_ok

    retyped = reef_roster[:4] + [make_species("c2", "PRODUCER", 20)]
    outcome = await controller.update_species(state.id, retyped)
    assert outcome.error.rule == RULE_IMMUTABLE_IDENTITY


@pytest.mark.asyncio
async def test_rejected_update_changes_nothing(controller, context, reef_roster, make_species, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)
    before = (await controller.get_state(state.id, USER)).value.model_dump_json()

    crowded = reef_roster + [make_species(f"c{i}", "CONSUMER", 30) for i in range(3, 8)]
    species_outcome = await controller.update_species(state.id, crowded, user_id=USER)
    environment_outcome = await controller.update_environment(
        state.id,
        {"temperature": 15, "depth": 150, "salinity": 35, "lightLevel": 70},
        user_id=USER,
    )

    assert species_outcome.error.rule == RULE_CONSUMER_RATIO
    assert environment_outcome.error.rule == RULE_DEEP_WATER_LIGHT
    after = (await controller.get_state(state.id, USER)).value.model_dump_json()
    assert after == before


@pytest.mark.asyncio
async def test_harsher_environment_lowers_stability(controller, context, reef_roster, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)

    outcome = await controller.update_environment(
        state.id, Environment(temperature=45, depth=180, salinity=20, light_level=10)
    )

    assert outcome.is_ok
    assert outcome.value.stability_score < state.stability_score


@pytest.mark.asyncio
async def test_updates_rejected_after_completion(controller, context, reef_roster, optimal_environment):
    state = await start(controller, context, reef_roster, optimal_environment)
    await controller.complete(state.id)

    species_outcome = await controller.update_species(state.id, reef_roster)
    environment_outcome = await controller.update_environment(state.id, optimal_environment)

    for outcome, operation in (
        (species_outcome, "update_species"),
        (environment_outcome, "update_environment"),
    ):
        assert isinstance(outcome.error, ConflictError)
        assert outcome.error.attempted_operation == operation


# Concurrency and failures ---------------------------------------------------


@pytest.mark.asyncio
async def test_stale_version_is_a_conflict(context, reef_roster, optimal_environment):
    persistence = RacingPersistence()
    controller = SimulationLifecycleController(persistence=persistence)
    state = await start(controller, context, reef_roster, optimal_environment)

    persistence.race_next_update = True
    outcome = await controller.step(state.id)

    assert isinstance(outcome.error, ConflictError)
    assert outcome.error.message == STALE_VERSION_MESSAGE
    stored = await persistence.load(state.id)
    assert stored.state.tick == 0

    retried = await controller.step(state.id)
    assert retried.is_ok and retried.value.tick == 1


@pytest.mark.asyncio
async def test_storage_failures_are_opaque(context, reef_roster, optimal_environment, capsys):
    controller = SimulationLifecycleController(persistence=BrokenPersistence())

    outcome = await controller.get_state("sim-1", USER)

    assert isinstance(outcome.error, InternalError)
    assert str(outcome.error) == "Internal simulation error"
    assert "disk unplugged" in capsys.readouterr().out


@pytest.mark.asyncio
async def test_async_context_manager(context, reef_roster, optimal_environment):
    async with SimulationLifecycleController() as controller:
        state = await start(controller, context, reef_roster, optimal_environment)
        assert (await controller.get_state(state.id, USER)).is_ok
