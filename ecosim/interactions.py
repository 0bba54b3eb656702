"""
Species interactions: derivation, environmental suitability and per-tick
resolution.

Three pieces live here:

1. derive_interactions() builds the interaction set from a roster. It is a
   pure function of the roster (same roster -> same interactions, same
   order), which keeps scoring reproducible.
2. environmental_suitability() maps an environment onto a [0, 1] factor for
   one species. Each parameter scores 1 inside the species' tolerance band
   and falls linearly to 0 as it moves away, so degrading any parameter can
   only lower the factor.
3. InteractionResolver turns one interaction into SpeciesDelta records for a
   single tick, reading only the pre-tick snapshot (TickContext). Predation
   scales with how much prey sits above PREY_REFUGE, so a depleted prey
   species stops feeding its predators instead of being eaten out. Positive
   deltas are shrunk by the affected species' suitability, negative deltas
   amplified by (2 - suitability): harsh water makes gains smaller and
   losses larger.

Handlers are looked up in an explicit map passed to the resolver, so a
controller can be built with different interaction rules without touching
module state.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Sequence

from .schemas import (
    Environment,
    InteractionType,
    PopulationState,
    Species,
    SpeciesInteraction,
    SpeciesType,
)

# Derivation
NICHE_SEPARATION = 20.0  # energy-requirement gap at which producers stop competing

# Resolution
PREDATION_TRANSFER_SCALE = 0.35
PREY_PRESSURE = 4.0
PREDATOR_GROWTH = 2.0
SYMBIOSIS_BOOST = 1.5
COMPETITION_COST = 3.0
REFERENCE_POPULATION = 100.0
PREY_REFUGE = 10.0  # individuals predators cannot reach


# ============================================================================
# Environmental suitability
# ============================================================================


@dataclass(frozen=True, slots=True)
class ToleranceBand:
    """Range a species is comfortable in, with a linear falloff outside it."""

    low: float
    high: float
    falloff: float

    def score(self, value: float, *, narrowing: float = 1.0) -> float:
        if self.low <= value <= self.high:
            return 1.0
        distance = self.low - value if value < self.low else value - self.high
        span = self.falloff * narrowing
        return max(0.0, 1.0 - distance / span)


# Producers photosynthesise: they want light and shallow water.
# Consumers tolerate depth and dimmer water but prefer it cooler.
TOLERANCE_BANDS: Dict[SpeciesType, Dict[str, ToleranceBand]] = {
    SpeciesType.PRODUCER: {
        "temperature": ToleranceBand(18.0, 28.0, 20.0),
        "depth": ToleranceBand(0.0, 100.0, 150.0),
        "salinity": ToleranceBand(30.0, 38.0, 15.0),
        "light_level": ToleranceBand(60.0, 100.0, 60.0),
    },
    SpeciesType.CONSUMER: {
        "temperature": ToleranceBand(12.0, 26.0, 20.0),
        "depth": ToleranceBand(0.0, 150.0, 150.0),
        "salinity": ToleranceBand(28.0, 38.0, 15.0),
        "light_level": ToleranceBand(20.0, 100.0, 40.0),
    },
}


def environmental_suitability(species: Species, environment: Environment) -> float:
    """Return the [0, 1] suitability of `environment` for `species`.

    Species with a high energy requirement are less forgiving: their falloff
    span shrinks by up to half at energy_requirement == 100.
    """
    narrowing = max(0.5, 1.0 - max(species.energy_requirement, 0.0) / 200.0)
    bands = TOLERANCE_BANDS[species.type]
    scores = [
        band.score(getattr(environment, name), narrowing=narrowing)
        for name, band in bands.items()
    ]
    return round(sum(scores) / len(scores), 6)


def scale_delta(value: float, suitability: float) -> float:
    """Shrink gains and amplify losses according to suitability."""
    if value > 0:
        return value * suitability
    return value * (2.0 - suitability)


# ============================================================================
# Derivation
# ============================================================================


def _similarity_strength(a: Species, b: Species) -> float:
    gap = min(abs(a.energy_requirement - b.energy_requirement), 100.0)
    return round(0.3 + 0.5 * (1.0 - gap / 100.0), 4)


def derive_interactions(species: Sequence[Species]) -> List[SpeciesInteraction]:
    """Build the interaction set for a roster.

    Pairs are visited once, in species-id order:
    - consumer + producer -> PREDATION (consumer is the source)
    - two consumers -> COMPETITION
    - two producers -> SYMBIOSIS when their energy requirements differ by
      at least NICHE_SEPARATION, otherwise COMPETITION
    """
    ordered = sorted(species, key=lambda s: s.id)
    interactions: List[SpeciesInteraction] = []

    for i, first in enumerate(ordered):
        for second in ordered[i + 1:]:
            if first.type != second.type:
                predator, prey = (first, second) if first.type == SpeciesType.CONSUMER else (second, first)
                strength = round(min(1.0, 0.4 + predator.energy_requirement / 200.0), 4)
                interactions.append(
                    SpeciesInteraction(
                        source_species=predator.id,
                        target_species=prey.id,
                        interaction_type=InteractionType.PREDATION,
                        strength=strength,
                    )
                )
                continue

            gap = abs(first.energy_requirement - second.energy_requirement)
            if first.type == SpeciesType.PRODUCER and gap >= NICHE_SEPARATION:
                interactions.append(
                    SpeciesInteraction(
                        source_species=first.id,
                        target_species=second.id,
                        interaction_type=InteractionType.SYMBIOSIS,
                        strength=round(min(1.0, 0.3 + gap / 200.0), 4),
                    )
                )
            else:
                interactions.append(
                    SpeciesInteraction(
                        source_species=first.id,
                        target_species=second.id,
                        interaction_type=InteractionType.COMPETITION,
                        strength=_similarity_strength(first, second),
                    )
                )

    return interactions


# ============================================================================
# Resolution
# ============================================================================


@dataclass(frozen=True, slots=True)
class SpeciesDelta:
    """Change to one species' population and energy for a single tick."""

    species_id: str
    energy: float = 0.0
    population: float = 0.0


@dataclass(frozen=True, slots=True)
class TickContext:
    """Read-only view of the pre-tick snapshot shared by every resolver call."""

    species: Mapping[str, Species]
    populations: Mapping[str, PopulationState]
    suitability: Mapping[str, float]

    def is_alive(self, species_id: str) -> bool:
        record = self.populations.get(species_id)
        return record is not None and not record.is_extinct


InteractionHandler = Callable[[SpeciesInteraction, TickContext], List[SpeciesDelta]]


def prey_availability(prey_state: PopulationState) -> float:
    """Share of a prey population predators can reach, in [0, 1]."""
    reachable = (prey_state.population - PREY_REFUGE) / REFERENCE_POPULATION
    return max(0.0, min(1.0, reachable))


def resolve_predation(interaction: SpeciesInteraction, ctx: TickContext) -> List[SpeciesDelta]:
    """Energy flows prey -> predator; prey loses population, predator grows.

    Every term scales with prey_availability(), so predators starve back
    before they can hunt a prey species below the refuge.
    """
    predator = ctx.species[interaction.source_species]
    prey = ctx.species[interaction.target_species]
    predator_state = ctx.populations[predator.id]
    prey_state = ctx.populations[prey.id]
    reach = prey_availability(prey_state)

    available = min(prey.energy_requirement, prey_state.energy)
    transfer = interaction.strength * available * PREDATION_TRANSFER_SCALE * reach
    pressure = (
        interaction.strength * PREY_PRESSURE * (predator_state.population / REFERENCE_POPULATION) * reach
    )
    growth = interaction.strength * PREDATOR_GROWTH * predator.reproduction_rate * reach

    f_predator = ctx.suitability[predator.id]
    f_prey = ctx.suitability[prey.id]
    return [
        SpeciesDelta(
            species_id=predator.id,
            energy=scale_delta(transfer, f_predator),
            population=scale_delta(growth, f_predator),
        ),
        SpeciesDelta(
            species_id=prey.id,
            energy=scale_delta(-transfer, f_prey),
            population=scale_delta(-pressure, f_prey),
        ),
    ]


def resolve_symbiosis(interaction: SpeciesInteraction, ctx: TickContext) -> List[SpeciesDelta]:
    """Both partners reproduce faster, proportionally to |strength|."""
    deltas = []
    for species_id in (interaction.source_species, interaction.target_species):
        species = ctx.species[species_id]
        boost = abs(interaction.strength) * SYMBIOSIS_BOOST * species.reproduction_rate
        deltas.append(
            SpeciesDelta(species_id=species_id, population=scale_delta(boost, ctx.suitability[species_id]))
        )
    return deltas


def resolve_competition(interaction: SpeciesInteraction, ctx: TickContext) -> List[SpeciesDelta]:
    """Both competitors lose available energy, proportionally to strength."""
    cost = -interaction.strength * COMPETITION_COST
    return [
        SpeciesDelta(species_id=species_id, energy=scale_delta(cost, ctx.suitability[species_id]))
        for species_id in (interaction.source_species, interaction.target_species)
    ]


def default_handlers() -> Dict[InteractionType, InteractionHandler]:
    """Fresh handler map for the three built-in interaction types."""
    return {
        InteractionType.PREDATION: resolve_predation,
        InteractionType.SYMBIOSIS: resolve_symbiosis,
        InteractionType.COMPETITION: resolve_competition,
    }


class InteractionResolver:
    """Dispatches each interaction to the handler registered for its type."""

    def __init__(self, handlers: Optional[Mapping[InteractionType, InteractionHandler]] = None):
        self.handlers: Dict[InteractionType, InteractionHandler] = (
            dict(handlers) if handlers is not None else default_handlers()
        )

    def resolve(self, interaction: SpeciesInteraction, ctx: TickContext) -> List[SpeciesDelta]:
        """Return this tick's deltas for one interaction.

        Interactions touching an extinct species contribute nothing.

        Raises:
            LookupError: If no handler is registered for the interaction type
        """
        if not (ctx.is_alive(interaction.source_species) and ctx.is_alive(interaction.target_species)):
            return []

        handler = self.handlers.get(interaction.interaction_type)
        if handler is None:
            raise LookupError(
                f"No interaction handler registered for {interaction.interaction_type.value}"
            )
        return handler(interaction, ctx)
