"""Shared fixtures: a reference reef roster, environments and a controller."""

from __future__ import annotations

import itertools

import pytest

from ecosim.controller import SimulationLifecycleController
from ecosim.model import EcosystemModel
from ecosim.persistence import InMemoryPersistence
from ecosim.schemas import (
    Environment,
    SimulationConfig,
    SimulationExecutionContext,
    Species,
    SpeciesType,
)


@pytest.fixture(autouse=True)
def plain_logs(monkeypatch):
    monkeypatch.setenv("ECOSIM_NO_COLOR", "1")
    monkeypatch.setenv("LOG_LEVEL", "INFO")


@pytest.fixture
def make_species():
    def _make(species_id, kind, energy_requirement, reproduction_rate=1.0, name=None):
        return Species(
            id=species_id,
            name=name or species_id.title(),
            type=SpeciesType(kind),
            energy_requirement=energy_requirement,
            reproduction_rate=reproduction_rate,
        )

    return _make


@pytest.fixture
def reef_roster(make_species):
    """3 producers (10, 20, 30) and 2 consumers (40, 50)."""
    return [
        make_species("p1", "PRODUCER", 10),
        make_species("p2", "PRODUCER", 20),
        make_species("p3", "PRODUCER", 30),
        make_species("c1", "CONSUMER", 40),
        make_species("c2", "CONSUMER", 50),
    ]


@pytest.fixture
def optimal_environment():
    return Environment(temperature=20, depth=100, salinity=35, light_level=80)


@pytest.fixture
def stressed_environment():
    # Outside the validity ranges on purpose; only used for direct scoring.
    return Environment(temperature=35, depth=800, salinity=45, light_level=20)


@pytest.fixture
def context():
    return SimulationExecutionContext(
        user_id="user-1",
        time_limit=100,
        config=SimulationConfig(tick_seconds=10),
    )


@pytest.fixture
def make_model(context, reef_roster, optimal_environment):
    def _make(species=None, environment=None, simulation_id="sim-1", ctx=None):
        return EcosystemModel.create(
            simulation_id,
            ctx or context,
            species if species is not None else reef_roster,
            environment or optimal_environment,
        )

    return _make


@pytest.fixture
def persistence():
    return InMemoryPersistence()


@pytest.fixture
def controller(persistence):
    counter = itertools.count(1)
    return SimulationLifecycleController(
        persistence=persistence,
        id_factory=lambda: f"sim-{next(counter)}",
    )
