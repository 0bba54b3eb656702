"""
Validation layer: pure rule checks for species, environment, interactions
and whole-state invariants.

Every check returns Ok(...) or Err(ValidationError) naming the offending
field, the rule and the value. Nothing here performs I/O or mutates its
inputs, so the controller can run every check before committing anything.

Canonical bounds:
- Species energy_requirement 0-100 (PRODUCER <= 50), reproduction_rate
  0.1-5.0 (CONSUMER <= 2.5)
- Environment temperature -10..50 °C, depth 0..200 m, salinity 0..50 ppt,
  light_level 0..100 %. Below LIGHT_CUTOFF_DEPTH light must stay <= 50 %.
- Interactions: strength in [-1, 1], no self-interaction, PREDATION > 0,
  |SYMBIOSIS| >= 0.3
"""

from __future__ import annotations

import math
from typing import Any, Iterable, List, Sequence, Type, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from .errors import ValidationError
from .result import Err, Ok, Result
from .schemas import (
    EcosystemState,
    Environment,
    InteractionType,
    SimulationConfig,
    SimulationExecutionContext,
    SimulationStatus,
    Species,
    SpeciesInteraction,
    SpeciesType,
)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Species bounds
ENERGY_REQUIREMENT_RANGE = (0.0, 100.0)
REPRODUCTION_RATE_RANGE = (0.1, 5.0)
PRODUCER_MAX_ENERGY_REQUIREMENT = 50.0
CONSUMER_MAX_REPRODUCTION_RATE = 2.5

# Environment bounds
ENVIRONMENT_RANGES = {
    "temperature": (-10.0, 50.0),
    "depth": (0.0, 200.0),
    "salinity": (0.0, 50.0),
    "light_level": (0.0, 100.0),
}
LIGHT_CUTOFF_DEPTH = 100.0
DEEP_WATER_MAX_LIGHT = 50.0
HEAT_STRESS_TEMPERATURE = 40.0
HEAT_STRESS_SALINITY = 40.0

# Interaction bounds
STRENGTH_RANGE = (-1.0, 1.0)
SYMBIOSIS_MIN_STRENGTH = 0.3

# Ecosystem composition
MAX_CONSUMERS_PER_PRODUCER = 2
CRITICAL_TIME_REMAINING = 10.0

# Rule identifiers reported in ValidationError.rule
RULE_FINITE = "finite"
RULE_RANGE = "range"
RULE_PRODUCER_ENERGY = "producer_energy_limit"
RULE_CONSUMER_REPRODUCTION = "consumer_reproduction_limit"
RULE_DEEP_WATER_LIGHT = "deep_water_light"
RULE_HEAT_SALINITY = "heat_salinity_combination"
RULE_SELF_INTERACTION = "self_interaction"
RULE_PREDATION_STRENGTH = "predation_strength"
RULE_SYMBIOSIS_STRENGTH = "symbiosis_strength"
RULE_PRODUCER_MINIMUM = "producer_minimum"
RULE_CONSUMER_RATIO = "consumer_producer_ratio"
RULE_DUPLICATE_ID = "duplicate_id"
RULE_SPECIES_COUNT = "species_count"
RULE_TIME_LIMIT = "time_limit"
RULE_IMMUTABLE_IDENTITY = "immutable_identity"
RULE_UNKNOWN_SPECIES = "unknown_species"
RULE_CONFIG = "config"

CRITICAL_TIME_ADVISORY = "Critical time remaining: fewer than 10 seconds left in the run"


def _fail(field: str, rule: str, value: Any, message: str) -> Err:
    return Err(ValidationError(field=field, rule=rule, value=value, message=message))


def _check_range(field: str, value: float, bounds: tuple[float, float]) -> Result[float]:
    if not math.isfinite(value):
        return _fail(field, RULE_FINITE, value, "Value must be a finite number")
    low, high = bounds
    if value < low or value > high:
        return _fail(field, RULE_RANGE, value, f"Value must be between {low:g} and {high:g}")
    return Ok(value)


# ============================================================================
# Boundary parsing
# ============================================================================


def parse_model(model: Type[ModelT], payload: Any, field: str) -> Result[ModelT]:
    """Coerce a raw payload into `model`, mapping schema errors to ValidationError.

    Already-constructed instances pass through untouched. Only the first
    pydantic issue is reported so the caller gets one actionable field.
    """
    if isinstance(payload, model):
        return Ok(payload)
    try:
        return Ok(model.model_validate(payload))
    except PydanticValidationError as exc:
        errors = exc.errors(include_url=False)
        first = errors[0] if errors else {}
        loc = ".".join(str(part) for part in first.get("loc", []))
        return _fail(
            f"{field}.{loc}" if loc else field,
            first.get("type", "schema"),
            first.get("input"),
            first.get("msg", "Payload does not match the expected schema"),
        )


def parse_species_list(payload: Iterable[Any]) -> Result[List[Species]]:
    """Parse each roster entry, naming the index of the first bad entry."""
    if payload is None or isinstance(payload, (str, bytes, dict)):
        return _fail("species", "type", payload, "Species must be a list")
    parsed: List[Species] = []
    for index, item in enumerate(payload):
        outcome = parse_model(Species, item, f"species[{index}]")
        if not outcome.is_ok:
            return outcome
        parsed.append(outcome.value)
    return Ok(parsed)


# ============================================================================
# Fragment checks
# ============================================================================


def validate_species(species: Species, *, prefix: str = "species") -> Result[Species]:
    """Check trait ranges and the type-specific caps."""
    for name, bounds in (
        ("energy_requirement", ENERGY_REQUIREMENT_RANGE),
        ("reproduction_rate", REPRODUCTION_RATE_RANGE),
    ):
        outcome = _check_range(f"{prefix}.{name}", getattr(species, name), bounds)
        if not outcome.is_ok:
            return outcome

    if (
        species.type == SpeciesType.PRODUCER
        and species.energy_requirement > PRODUCER_MAX_ENERGY_REQUIREMENT
    ):
        return _fail(
            f"{prefix}.energy_requirement",
            RULE_PRODUCER_ENERGY,
            species.energy_requirement,
            "Producers cannot have an energy requirement greater than 50",
        )

    if (
        species.type == SpeciesType.CONSUMER
        and species.reproduction_rate > CONSUMER_MAX_REPRODUCTION_RATE
    ):
        return _fail(
            f"{prefix}.reproduction_rate",
            RULE_CONSUMER_REPRODUCTION,
            species.reproduction_rate,
            "Consumers cannot have a reproduction rate greater than 2.5",
        )

    return Ok(species)


def validate_environment(environment: Environment) -> Result[Environment]:
    """Check parameter ranges, then the cross-field constraints."""
    for name, bounds in ENVIRONMENT_RANGES.items():
        outcome = _check_range(f"environment.{name}", getattr(environment, name), bounds)
        if not outcome.is_ok:
            return outcome

    if environment.depth > LIGHT_CUTOFF_DEPTH and environment.light_level > DEEP_WATER_MAX_LIGHT:
        return _fail(
            "environment.light_level",
            RULE_DEEP_WATER_LIGHT,
            environment.light_level,
            "Light levels must be at most 50% at depths greater than 100m",
        )

    if (
        environment.temperature > HEAT_STRESS_TEMPERATURE
        and environment.salinity > HEAT_STRESS_SALINITY
    ):
        return _fail(
            "environment.salinity",
            RULE_HEAT_SALINITY,
            environment.salinity,
            "High temperature and high salinity combination exceeds safe limits",
        )

    return Ok(environment)


def validate_interaction(interaction: SpeciesInteraction) -> Result[SpeciesInteraction]:
    """Check identity, strength range and the type-specific strength rules."""
    if interaction.source_species == interaction.target_species:
        return _fail(
            "interaction.target_species",
            RULE_SELF_INTERACTION,
            interaction.target_species,
            "Self-interaction is not allowed",
        )

    outcome = _check_range("interaction.strength", interaction.strength, STRENGTH_RANGE)
    if not outcome.is_ok:
        return outcome

    if interaction.interaction_type == InteractionType.PREDATION and interaction.strength <= 0:
        return _fail(
            "interaction.strength",
            RULE_PREDATION_STRENGTH,
            interaction.strength,
            "Predation interaction strength must be positive",
        )

    if (
        interaction.interaction_type == InteractionType.SYMBIOSIS
        and abs(interaction.strength) < SYMBIOSIS_MIN_STRENGTH
    ):
        return _fail(
            "interaction.strength",
            RULE_SYMBIOSIS_STRENGTH,
            interaction.strength,
            "Symbiotic interactions must have |strength| >= 0.3",
        )

    return Ok(interaction)


def validate_context(context: SimulationExecutionContext) -> Result[SimulationExecutionContext]:
    """Check the time budget and that the config bounds are coherent."""
    if not math.isfinite(context.time_limit) or context.time_limit <= 0:
        return _fail(
            "context.time_limit", RULE_TIME_LIMIT, context.time_limit,
            "Time limit must be a positive number of seconds",
        )

    config = context.config
    if config.min_species < 1 or config.max_species < config.min_species:
        return _fail(
            "context.config.max_species", RULE_CONFIG, config.max_species,
            "max_species must be >= min_species >= 1",
        )
    if config.tick_seconds <= 0:
        return _fail(
            "context.config.tick_seconds", RULE_CONFIG, config.tick_seconds,
            "tick_seconds must be positive",
        )
    if not 0 < config.target_consumer_ratio <= MAX_CONSUMERS_PER_PRODUCER:
        return _fail(
            "context.config.target_consumer_ratio", RULE_CONFIG, config.target_consumer_ratio,
            "target_consumer_ratio must be in (0, 2]",
        )
    threshold = config.min_acceptable_stability
    if not math.isfinite(threshold) or not 0 <= threshold <= 100:
        return _fail(
            "context.config.min_acceptable_stability", RULE_CONFIG, threshold,
            "min_acceptable_stability must be in [0, 100]",
        )
    return Ok(context)


# ============================================================================
# Composition checks
# ============================================================================


def _check_composition(species: Sequence[Species]) -> Result[None]:
    producers = sum(1 for s in species if s.type == SpeciesType.PRODUCER)
    consumers = len(species) - producers

    if producers == 0:
        return _fail(
            "species", RULE_PRODUCER_MINIMUM, producers,
            "Ecosystem must contain at least one producer species",
        )

    if consumers > producers * MAX_CONSUMERS_PER_PRODUCER:
        return _fail(
            "species", RULE_CONSUMER_RATIO, {"producers": producers, "consumers": consumers},
            "Consumer count cannot exceed twice the producer count",
        )

    return Ok(None)


def validate_roster(species: Sequence[Species], config: SimulationConfig) -> Result[List[Species]]:
    """Whole-roster check: composition, unique ids, count bounds, each species."""
    outcome = _check_composition(species)
    if not outcome.is_ok:
        return outcome

    seen: set[str] = set()
    for index, item in enumerate(species):
        if item.id in seen:
            return _fail(
                f"species[{index}].id", RULE_DUPLICATE_ID, item.id,
                "Species ids must be unique",
            )
        seen.add(item.id)

    if not config.min_species <= len(species) <= config.max_species:
        return _fail(
            "species", RULE_SPECIES_COUNT, len(species),
            f"Species count must be between {config.min_species} and {config.max_species}",
        )

    for index, item in enumerate(species):
        outcome = validate_species(item, prefix=f"species[{index}]")
        if not outcome.is_ok:
            return outcome

    return Ok(list(species))


def validate_identity_unchanged(
    current: Sequence[Species], proposed: Sequence[Species]
) -> Result[None]:
    """Species that keep their id must keep their name and type."""
    existing = {s.id: s for s in current}
    for index, item in enumerate(proposed):
        before = existing.get(item.id)
        if before is None:
            continue
        if before.type != item.type or before.name != item.name:
            return _fail(
                f"species[{index}].type" if before.type != item.type else f"species[{index}].name",
                RULE_IMMUTABLE_IDENTITY,
                item.id,
                "A species' name and type cannot change once it is part of a simulation",
            )
    return Ok(None)


def validate_ecosystem_state(state: EcosystemState) -> Result[List[str]]:
    """Aggregate invariants. Returns advisories (non-fatal) on success."""
    outcome = _check_composition(state.species)
    if not outcome.is_ok:
        return outcome

    advisories: List[str] = []
    if state.time_remaining < CRITICAL_TIME_REMAINING and state.status == SimulationStatus.RUNNING:
        advisories.append(CRITICAL_TIME_ADVISORY)
    return Ok(advisories)


def check_consistency(state: EcosystemState) -> Result[None]:
    """Detect corruption that no normal rule explains.

    The time-step engine treats a failure here as unrecoverable.
    """
    known = {s.id for s in state.species}

    for species_id, record in state.populations.items():
        if species_id not in known or record.species_id != species_id:
            return _fail(
                f"populations.{species_id}", RULE_UNKNOWN_SPECIES, species_id,
                "Population record does not match any species in the roster",
            )
        for name in ("population", "energy"):
            value = getattr(record, name)
            if not math.isfinite(value) or value < 0:
                return _fail(
                    f"populations.{species_id}.{name}", RULE_FINITE, value,
                    "Population quantities must be finite and non-negative",
                )

    missing = known - set(state.populations)
    if missing:
        first = sorted(missing)[0]
        return _fail(
            f"populations.{first}", RULE_UNKNOWN_SPECIES, first,
            "Species has no population record",
        )

    for index, interaction in enumerate(state.interactions):
        for endpoint in (interaction.source_species, interaction.target_species):
            if endpoint not in known:
                return _fail(
                    f"interactions[{index}]", RULE_UNKNOWN_SPECIES, endpoint,
                    "Interaction references a species outside the roster",
                )

    for name in ("time_remaining", "stability_score"):
        value = getattr(state, name)
        if not math.isfinite(value) or value < 0:
            return _fail(name, RULE_FINITE, value, "Value must be finite and non-negative")

    return Ok(None)
