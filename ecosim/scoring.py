"""
StabilityScorer: bounded metrics derived from an EcosystemState snapshot.

Everything here is a pure function of the snapshot. All outputs are clamped
to [0, 100] and rounded to 4 decimals so persisted values are stable.

Metrics:
- species_balance: closeness of the consumer:producer biomass ratio to the
  configured target (0.5, i.e. producer:consumer 2:1). Ratios between 0 and
  the 2:1 consumer ceiling map linearly onto 100..0 around the target.
- environmental_suitability: mean suitability of the environment for every
  species in the roster (extinct or not, so it depends on the roster and the
  environment only).
- survival_rate: share of the roster still alive.
- stability_score: weighted blend of the three above. With roster and
  populations fixed it moves only with suitability, so a harsher
  environment can never score higher than a milder one.
- ecosystem_stability: mean of every earlier snapshot's stability score
  (stability_history) plus the current one.
"""

from __future__ import annotations

from typing import Optional

from .interactions import environmental_suitability
from .schemas import (
    EcosystemState,
    InteractionType,
    SimulationMetrics,
    SpeciesType,
)
from .validation import MAX_CONSUMERS_PER_PRODUCER

DEFAULT_BALANCE_WEIGHT = 0.35
DEFAULT_SUITABILITY_WEIGHT = 0.45
DEFAULT_SURVIVAL_WEIGHT = 0.20

# Final result score blend
RESULT_STABILITY_WEIGHT = 0.3
RESULT_RUN_STABILITY_WEIGHT = 0.5
RESULT_BALANCE_WEIGHT = 0.2


def clamp_score(value: float) -> float:
    """Clamp to [0, 100] and round for stable serialisation."""
    return round(max(0.0, min(100.0, value)), 4)


class StabilityScorer:
    """Computes stability metrics. Weights are injected, never global."""

    def __init__(
        self,
        balance_weight: float = DEFAULT_BALANCE_WEIGHT,
        suitability_weight: float = DEFAULT_SUITABILITY_WEIGHT,
        survival_weight: float = DEFAULT_SURVIVAL_WEIGHT,
    ):
        weights = (balance_weight, suitability_weight, survival_weight)
        if any(w < 0 for w in weights) or sum(weights) <= 0:
            raise ValueError("Scorer weights must be non-negative and not all zero")
        total = sum(weights)
        self.balance_weight = balance_weight / total
        self.suitability_weight = suitability_weight / total
        self.survival_weight = survival_weight / total

    # Components -------------------------------------------------------------

    def species_balance(self, state: EcosystemState) -> float:
        producer_biomass = 0.0
        consumer_biomass = 0.0
        for species in state.species:
            record = state.populations.get(species.id)
            population = record.population if record is not None else 0.0
            if species.type == SpeciesType.PRODUCER:
                producer_biomass += population
            else:
                consumer_biomass += population

        if producer_biomass <= 0:
            return 0.0

        target = state.config.target_consumer_ratio
        ratio = consumer_biomass / producer_biomass
        span = max(target, MAX_CONSUMERS_PER_PRODUCER - target)
        return clamp_score(100.0 * (1.0 - abs(ratio - target) / span))

    def environmental_suitability(self, state: EcosystemState) -> float:
        """Mean roster suitability in [0, 1]."""
        if not state.species:
            return 0.0
        total = sum(environmental_suitability(s, state.environment) for s in state.species)
        return total / len(state.species)

    def survival_rate(self, state: EcosystemState) -> float:
        """Fraction of the roster still alive, in [0, 1]."""
        if not state.species:
            return 0.0
        alive = sum(
            1
            for s in state.species
            if s.id in state.populations and not state.populations[s.id].is_extinct
        )
        return alive / len(state.species)

    def stability_score(self, state: EcosystemState) -> float:
        blended = (
            self.balance_weight * self.species_balance(state) / 100.0
            + self.suitability_weight * self.environmental_suitability(state)
            + self.survival_weight * self.survival_rate(state)
        )
        return clamp_score(100.0 * blended)

    def ecosystem_stability(self, state: EcosystemState, current: Optional[float] = None) -> float:
        current = self.stability_score(state) if current is None else current
        samples = [*state.stability_history, current]
        return clamp_score(sum(samples) / len(samples))

    # Secondary metrics used by feedback ------------------------------------

    def species_diversity(self, state: EcosystemState) -> float:
        """100 when producers and consumers are evenly split, 0 when one is missing."""
        total = len(state.species)
        if total == 0:
            return 0.0
        producers = sum(1 for s in state.species if s.type == SpeciesType.PRODUCER)
        consumers = total - producers
        return clamp_score(400.0 * producers * consumers / (total * total))

    def trophic_efficiency(self, state: EcosystemState) -> float:
        """Mean predation strength as a percentage."""
        strengths = [
            i.strength for i in state.interactions if i.interaction_type == InteractionType.PREDATION
        ]
        if not strengths:
            return 0.0
        return clamp_score(100.0 * sum(strengths) / len(strengths))

    # Aggregates -------------------------------------------------------------

    def evaluate(self, state: EcosystemState) -> SimulationMetrics:
        suitability = self.environmental_suitability(state)
        stability = self.stability_score(state)
        return SimulationMetrics(
            stability_score=stability,
            ecosystem_stability=self.ecosystem_stability(state, stability),
            species_balance=self.species_balance(state),
            environmental_suitability=clamp_score(100.0 * suitability),
            survival_rate=clamp_score(100.0 * self.survival_rate(state)),
            species_diversity=self.species_diversity(state),
            trophic_efficiency=self.trophic_efficiency(state),
            environmental_stress=clamp_score(100.0 * (1.0 - suitability)),
        )

    def final_score(self, metrics: SimulationMetrics) -> float:
        """Overall performance score reported in SimulationResult."""
        return clamp_score(
            RESULT_RUN_STABILITY_WEIGHT * metrics.ecosystem_stability
            + RESULT_STABILITY_WEIGHT * metrics.stability_score
            + RESULT_BALANCE_WEIGHT * metrics.species_balance
        )
