"""Schema shape tests: aliases, defaults and immutability."""

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from ecosim.config import Config
from ecosim.schemas import (
    EcosystemState,
    Environment,
    SimulationConfig,
    SimulationResult,
    SimulationStatus,
    Species,
    SpeciesType,
)


def test_species_accepts_camel_case_payload():
    species = Species.model_validate(
        {
            "id": "kelp",
            "name": "Giant Kelp",
            "type": "PRODUCER",
            "energyRequirement": 12,
            "reproductionRate": 1.5,
        }
    )

    assert species.type is SpeciesType.PRODUCER
    assert species.energy_requirement == 12
    assert species.reproduction_rate == 1.5


def test_environment_accepts_snake_and_camel_case():
    camel = Environment.model_validate(
        {"temperature": 20, "depth": 50, "salinity": 35, "lightLevel": 70}
    )
    snake = Environment(temperature=20, depth=50, salinity=35, light_level=70)
    assert camel == snake


def test_unknown_species_type_is_rejected():
    with pytest.raises(ValidationError):
        Species(id="x", name="X", type="DECOMPOSER", energy_requirement=1, reproduction_rate=1)


def test_status_terminal_flags():
    assert SimulationStatus.COMPLETED.is_terminal
    assert SimulationStatus.FAILED.is_terminal
    assert not SimulationStatus.SETUP.is_terminal
    assert not SimulationStatus.RUNNING.is_terminal


def test_simulation_config_defaults_follow_config():
    config = SimulationConfig()
    assert config.min_species == Config.MIN_SPECIES
    assert config.max_species == Config.MAX_SPECIES
    assert config.tick_seconds == Config.TICK_DURATION_SECONDS
    assert config.target_consumer_ratio == 0.5


def test_simulation_result_is_frozen():
    result = SimulationResult(
        simulation_id="sim-1",
        score=70.0,
        ecosystem_stability=65.0,
        species_balance=80.0,
        feedback=["ok"],
        completed_at=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )
    with pytest.raises(ValidationError):
        result.score = 10.0


def test_state_json_round_trip_is_stable(make_model):
    state = make_model().snapshot()
    payload = state.model_dump_json()

    restored = EcosystemState.model_validate_json(payload)

    assert restored == state
    assert restored.model_dump_json() == payload
