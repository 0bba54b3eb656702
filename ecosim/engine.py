"""
TimeStepEngine: advances an ecosystem by exactly one tick.

State machine:
    SETUP --step--> RUNNING --(time exhausted | producers extinct)--> COMPLETED
                       \\--(consistency violation)--> FAILED

A tick runs in a fixed order so identical inputs always give identical
outputs:
1. Baseline deltas for every living species (species-id order), then every
   interaction's delta (declaration order), all read from the pre-tick
   snapshot.
2. All deltas applied at once (EcosystemModel.apply_deltas).
3. Clock advanced by tick_seconds, clamped at zero.
4. Consistency and aggregate checks; termination detection; re-scoring.

A pre-step validation failure is returned as Err without advancing the
clock, so the caller can fix the state and retry the same tick.
"""

from __future__ import annotations

from typing import List, Optional

from .errors import ConflictError
from .interactions import (
    InteractionResolver,
    SpeciesDelta,
    TickContext,
    environmental_suitability,
    scale_delta,
)
from .logging_utils import log_deterministic, log_error, log_info
from .model import EcosystemModel
from .result import Err, Ok, Result
from .schemas import EcosystemState, SimulationStatus, SpeciesType
from .scoring import StabilityScorer
from .validation import check_consistency, validate_ecosystem_state

# Baseline per-tick dynamics
PRODUCER_ENERGY_GAIN = 12.0
UPKEEP_RATE = 0.1
STRESS_PENALTY = 4.0
GROWTH_RATE = 0.03

PRODUCER_COLLAPSE_ADVISORY = "All producer species went extinct; the run ended early"
TIME_EXHAUSTED_ADVISORY = "Time limit reached"


class TimeStepEngine:
    """Deterministic one-tick advance for an EcosystemState."""

    def __init__(
        self,
        resolver: Optional[InteractionResolver] = None,
        scorer: Optional[StabilityScorer] = None,
    ):
        self.resolver = resolver or InteractionResolver()
        self.scorer = scorer or StabilityScorer()

    def build_context(self, model: EcosystemModel) -> TickContext:
        environment = model.state.environment
        species = model.species_by_id()
        return TickContext(
            species=species,
            populations={k: v.model_copy() for k, v in model.state.populations.items()},
            suitability={
                species_id: environmental_suitability(item, environment)
                for species_id, item in species.items()
            },
        )

    def baseline_deltas(self, model: EcosystemModel, ctx: TickContext) -> List[SpeciesDelta]:
        """Photosynthesis, upkeep, environmental stress and energy-driven growth."""
        deltas: List[SpeciesDelta] = []
        for species in model.living_species():
            record = ctx.populations[species.id]
            f = ctx.suitability[species.id]

            energy = 0.0
            if species.type == SpeciesType.PRODUCER:
                energy += scale_delta(PRODUCER_ENERGY_GAIN, f)
            energy += scale_delta(-species.energy_requirement * UPKEEP_RATE, f)
            energy -= STRESS_PENALTY * (1.0 - f)

            # Well-fed species grow, starving species shrink.
            surplus = (record.energy - 50.0) / 50.0
            growth = record.population * species.reproduction_rate * GROWTH_RATE * surplus

            deltas.append(
                SpeciesDelta(
                    species_id=species.id,
                    energy=energy,
                    population=scale_delta(growth, f),
                )
            )
        return deltas

    def interaction_deltas(self, model: EcosystemModel, ctx: TickContext) -> List[SpeciesDelta]:
        deltas: List[SpeciesDelta] = []
        for interaction in model.state.interactions:
            deltas.extend(self.resolver.resolve(interaction, ctx))
        return deltas

    def step(self, state: EcosystemState) -> Result[EcosystemState]:
        """Advance `state` by one tick and return the new snapshot.

        Returns:
            Ok(new_state) on success, including runs that just COMPLETED or
            FAILED; Err(ConflictError) when the run is terminal or out of
            time; Err(ValidationError) when the pre-step state breaks an
            aggregate rule (the clock is not advanced).
        """
        if state.status.is_terminal:
            return Err(
                ConflictError(
                    current_status=state.status.value,
                    attempted_operation="step",
                    message="Simulation has already finished",
                )
            )
        if state.time_remaining <= 0:
            return Err(
                ConflictError(
                    current_status=state.status.value,
                    attempted_operation="step",
                    message="No simulation time remaining",
                )
            )

        precheck = validate_ecosystem_state(state)
        if not precheck.is_ok:
            return precheck

        model = EcosystemModel(state)

        corruption = check_consistency(model.state)
        if not corruption.is_ok:
            return Ok(self._fail(model, f"Inconsistent state before tick: {corruption.error}"))

        if model.status == SimulationStatus.SETUP:
            model.set_status(SimulationStatus.RUNNING)
            log_info(f"Simulation {state.id} started")

        ctx = self.build_context(model)
        deltas = self.baseline_deltas(model, ctx) + self.interaction_deltas(model, ctx)
        extinct = model.apply_deltas(deltas)
        model.advance_clock(model.state.config.tick_seconds)

        log_deterministic(
            f"[Tick {model.state.tick}] {len(deltas)} deltas applied, "
            f"{model.state.time_remaining:g}s remaining"
        )

        corruption = check_consistency(model.state)
        if not corruption.is_ok:
            return Ok(self._fail(model, f"Inconsistent state after tick: {corruption.error}"))

        postcheck = validate_ecosystem_state(model.state)
        if not postcheck.is_ok:
            return Ok(self._fail(model, f"Aggregate rule broken during tick: {postcheck.error}"))

        advisories = list(postcheck.value)
        if extinct:
            names = {s.id: s.name for s in model.state.species}
            advisories.append(
                "Extinct this tick: " + ", ".join(names.get(i, i) for i in extinct)
            )

        model.record_stability(self.scorer.stability_score(model.state))

        if model.living_producer_count() == 0:
            advisories.append(PRODUCER_COLLAPSE_ADVISORY)
            model.set_status(SimulationStatus.COMPLETED)
        elif model.state.time_remaining <= 0:
            advisories.append(TIME_EXHAUSTED_ADVISORY)
            model.set_status(SimulationStatus.COMPLETED)

        model.set_advisories(advisories)
        return Ok(model.snapshot())

    def _fail(self, model: EcosystemModel, reason: str) -> EcosystemState:
        log_error(f"Simulation {model.state.id} FAILED: {reason}")
        model.mark_failed(reason)
        return model.snapshot()
