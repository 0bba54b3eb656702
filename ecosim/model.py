"""
EcosystemModel: the working copy of one simulation snapshot.

The controller and time-step engine never edit a loaded EcosystemState in
place. They wrap it in an EcosystemModel (which deep-copies it), apply the
narrow mutators below, and take a snapshot() to persist. A failed operation
simply discards the model, so no partial change can leak.
"""

from __future__ import annotations

from collections import defaultdict
from typing import Dict, Iterable, List, Optional

from .interactions import SpeciesDelta, derive_interactions
from .schemas import (
    EcosystemState,
    Environment,
    PopulationState,
    SimulationExecutionContext,
    SimulationResult,
    SimulationStatus,
    Species,
    SpeciesType,
)

INITIAL_POPULATION = 100.0
INITIAL_ENERGY = 50.0
MAX_POPULATION = 1000.0
MAX_ENERGY = 100.0
EXTINCTION_THRESHOLD = 1.0


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class EcosystemModel:
    """Mutable wrapper around a private copy of an EcosystemState."""

    def __init__(self, state: EcosystemState):
        self._state = state.model_copy(deep=True)

    @classmethod
    def create(
        cls,
        simulation_id: str,
        context: SimulationExecutionContext,
        species: List[Species],
        environment: Environment,
    ) -> "EcosystemModel":
        """Build a fresh SETUP model with derived interactions and seeded populations."""
        state = EcosystemState(
            id=simulation_id,
            owner_user_id=context.user_id,
            environment=environment.model_copy(),
            time_limit=context.time_limit,
            time_remaining=context.time_limit,
            status=SimulationStatus.SETUP,
            config=context.config.model_copy(),
        )
        model = cls(state)
        model.replace_species(species)
        return model

    # Read accessors ---------------------------------------------------------

    @property
    def state(self) -> EcosystemState:
        """The working state. Callers outside this module should only read it."""
        return self._state

    @property
    def status(self) -> SimulationStatus:
        return self._state.status

    def snapshot(self) -> EcosystemState:
        """Deep copy suitable for persisting or returning to a caller."""
        return self._state.model_copy(deep=True)

    def species_by_id(self) -> Dict[str, Species]:
        return {s.id: s for s in self._state.species}

    def ordered_species(self) -> List[Species]:
        """Roster in species-id order (the deterministic iteration order)."""
        return sorted(self._state.species, key=lambda s: s.id)

    def producers(self) -> List[Species]:
        return [s for s in self.ordered_species() if s.type == SpeciesType.PRODUCER]

    def consumers(self) -> List[Species]:
        return [s for s in self.ordered_species() if s.type == SpeciesType.CONSUMER]

    def population_of(self, species_id: str) -> PopulationState:
        return self._state.populations[species_id]

    def living_species(self) -> List[Species]:
        return [s for s in self.ordered_species() if not self.population_of(s.id).is_extinct]

    def living_producer_count(self) -> int:
        return sum(1 for s in self.living_species() if s.type == SpeciesType.PRODUCER)

    # Narrow mutators --------------------------------------------------------

    def replace_species(self, species: Iterable[Species]) -> None:
        """Swap the roster and recompute everything derived from it.

        Interactions are re-derived; populations are kept for species that
        stay, seeded for new ones and dropped for removed ones.
        """
        roster = [s.model_copy() for s in species]
        previous = self._state.populations

        populations: Dict[str, PopulationState] = {}
        for item in sorted(roster, key=lambda s: s.id):
            existing = previous.get(item.id)
            populations[item.id] = (
                existing.model_copy()
                if existing is not None
                else PopulationState(
                    species_id=item.id,
                    population=INITIAL_POPULATION,
                    energy=INITIAL_ENERGY,
                )
            )

        self._state.species = roster
        self._state.interactions = derive_interactions(roster)
        self._state.populations = populations

    def replace_environment(self, environment: Environment) -> None:
        self._state.environment = environment.model_copy()

    def apply_deltas(self, deltas: Iterable[SpeciesDelta]) -> List[str]:
        """Apply a whole tick's deltas at once.

        Deltas are summed per species first, then applied and clamped, so no
        delta observes another delta from the same tick. Returns the ids of
        species that went extinct during this application.
        """
        energy: Dict[str, float] = defaultdict(float)
        population: Dict[str, float] = defaultdict(float)
        for delta in deltas:
            energy[delta.species_id] += delta.energy
            population[delta.species_id] += delta.population

        newly_extinct: List[str] = []
        for species_id in sorted(self._state.populations):
            record = self._state.populations[species_id]
            if record.is_extinct:
                continue

            new_population = _clamp(record.population + population[species_id], 0.0, MAX_POPULATION)
            new_energy = _clamp(record.energy + energy[species_id], 0.0, MAX_ENERGY)
            if new_population < EXTINCTION_THRESHOLD:
                new_population = 0.0
                newly_extinct.append(species_id)

            self._state.populations[species_id] = PopulationState(
                species_id=species_id,
                population=round(new_population, 6),
                energy=round(new_energy, 6),
            )

        return newly_extinct

    def advance_clock(self, seconds: float) -> None:
        """Consume one tick of simulated time; never drops below zero."""
        self._state.tick += 1
        self._state.time_remaining = max(0.0, self._state.time_remaining - seconds)

    def record_stability(self, score: float) -> None:
        """Archive the current score in the history and adopt the new one."""
        self._state.stability_history.append(self._state.stability_score)
        self._state.stability_score = score

    def set_stability(self, score: float) -> None:
        """Replace the current score without archiving (used for edits in SETUP/RUNNING)."""
        self._state.stability_score = score

    def set_status(self, status: SimulationStatus) -> None:
        self._state.status = status

    def set_advisories(self, advisories: Iterable[str]) -> None:
        self._state.advisories = list(advisories)

    def mark_failed(self, reason: str) -> None:
        self._state.status = SimulationStatus.FAILED
        self._state.failure_reason = reason

    def attach_result(self, result: Optional[SimulationResult]) -> None:
        self._state.result = result
