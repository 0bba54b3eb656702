"""
Pydantic schemas for the Ecosim simulation engine.

All data structures exchanged across the engine boundary are defined here.

Design Philosophy:
- Schemas describe SHAPE (types, enums, required fields). Domain RANGES and
  cross-field rules live in ecosim.validation so that every violation is
  reported as a typed ValidationError naming field and rule.
- Field names are snake_case; camelCase aliases (energyRequirement,
  lightLevel, ...) are accepted on input so API payloads parse directly.
- Every record is JSON-serialisable so all persistence backends can store
  snapshots verbatim.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .config import Config


class SpeciesType(str, Enum):
    """Trophic role of a species."""

    PRODUCER = "PRODUCER"
    CONSUMER = "CONSUMER"


class InteractionType(str, Enum):
    """Kind of relationship between two species."""

    PREDATION = "PREDATION"
    SYMBIOSIS = "SYMBIOSIS"
    COMPETITION = "COMPETITION"


class SimulationStatus(str, Enum):
    """Lifecycle states. COMPLETED and FAILED are terminal."""

    SETUP = "SETUP"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"

    @property
    def is_terminal(self) -> bool:
        return self in (SimulationStatus.COMPLETED, SimulationStatus.FAILED)


class EcosimModel(BaseModel):
    """Base model: snake_case fields, camelCase aliases accepted on input."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ============================================================================
# Roster & Environment
# ============================================================================


class Species(EcosimModel):
    """A species chosen by the player.

    Identity (id, name, type) is fixed for the lifetime of a simulation.
    The numeric traits can be tuned through a validated species update.
    """

    id: str = Field(..., min_length=1, description="Unique species identifier")
    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    type: SpeciesType = Field(..., description="PRODUCER or CONSUMER")
    # Energy the species needs per tick (0-100). Producers are capped at 50.
    energy_requirement: float = Field(..., description="Energy requirement (0-100)")
    # Relative reproductive capacity (0.1-5.0). Consumers are capped at 2.5.
    reproduction_rate: float = Field(..., description="Reproduction rate (0.1-5.0)")


class Environment(EcosimModel):
    """Environmental parameters shared by every species in the simulation."""

    temperature: float = Field(..., description="Water temperature (°C)")
    depth: float = Field(..., description="Depth (m)")
    salinity: float = Field(..., description="Salinity (ppt)")
    light_level: float = Field(..., description="Light availability (%)")


class SpeciesInteraction(EcosimModel):
    """Directed relationship between two species.

    For PREDATION the source is the predator and the target the prey.
    SYMBIOSIS and COMPETITION affect both parties equally.
    """

    source_species: str = Field(..., description="Source species id")
    target_species: str = Field(..., description="Target species id")
    interaction_type: InteractionType = Field(..., description="Interaction kind")
    strength: float = Field(..., description="Strength in [-1, 1]")


class PopulationState(EcosimModel):
    """Dynamic per-species quantities advanced by the time-step engine."""

    species_id: str = Field(..., description="Species this record belongs to")
    population: float = Field(..., description="Population size (0 means extinct)")
    energy: float = Field(..., description="Stored energy (0-100)")

    @property
    def is_extinct(self) -> bool:
        return self.population <= 0


# ============================================================================
# Execution context
# ============================================================================


class SimulationConfig(EcosimModel):
    """Per-simulation bounds supplied by the caller at initialisation."""

    min_species: int = Field(default_factory=lambda: Config.MIN_SPECIES)
    max_species: int = Field(default_factory=lambda: Config.MAX_SPECIES)
    # Stability below this threshold is called out in completion feedback
    min_acceptable_stability: float = Field(
        default_factory=lambda: Config.MIN_ACCEPTABLE_STABILITY
    )
    tick_seconds: int = Field(default_factory=lambda: Config.TICK_DURATION_SECONDS)
    # Consumer biomass per unit of producer biomass considered ideal (producer:consumer 2:1)
    target_consumer_ratio: float = Field(0.5)


class SimulationExecutionContext(EcosimModel):
    """Caller identity and time budget for a new simulation (input only)."""

    user_id: str = Field(..., min_length=1, description="Pre-authorised caller id")
    time_limit: float = Field(
        default_factory=lambda: float(Config.DEFAULT_TIME_LIMIT_SECONDS),
        description="Simulation-domain seconds available",
    )
    config: SimulationConfig = Field(default_factory=SimulationConfig)


# ============================================================================
# Results & metrics
# ============================================================================


class SimulationMetrics(EcosimModel):
    """Scorer output for one snapshot. Every value is within [0, 100]."""

    stability_score: float
    ecosystem_stability: float
    species_balance: float
    environmental_suitability: float
    survival_rate: float
    species_diversity: float
    trophic_efficiency: float
    environmental_stress: float


class SimulationResult(EcosimModel):
    """Final outcome of a simulation. Immutable once produced."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    simulation_id: str
    score: float = Field(..., description="Overall performance score (0-100)")
    ecosystem_stability: float = Field(..., description="Stability over the run (0-100)")
    species_balance: float = Field(..., description="Producer/consumer balance (0-100)")
    feedback: List[str] = Field(default_factory=list, description="Ordered feedback")
    completed_at: datetime


# ============================================================================
# Aggregate state
# ============================================================================


class EcosystemState(EcosimModel):
    """Complete snapshot of one simulation.

    Snapshots are replaced, never edited in place by callers: the engine and
    controller work on a copy (see ecosim.model.EcosystemModel) and persist
    the new snapshot under optimistic concurrency.
    """

    id: str = Field(..., description="Simulation id")
    owner_user_id: str = Field(..., description="User that owns this simulation")
    # Roster order is the caller's order; deterministic iteration uses id order.
    species: List[Species] = Field(default_factory=list)
    environment: Environment
    interactions: List[SpeciesInteraction] = Field(default_factory=list)
    populations: Dict[str, PopulationState] = Field(default_factory=dict)
    stability_score: float = Field(0.0, description="Current stability (0-100)")
    # Scores of earlier snapshots (one per tick); feeds ecosystem_stability.
    stability_history: List[float] = Field(default_factory=list)
    time_limit: float = Field(..., description="Initial time budget (seconds)")
    time_remaining: float = Field(..., description="Remaining time budget (seconds)")
    tick: int = Field(0, ge=0, description="Ticks advanced so far")
    status: SimulationStatus = Field(SimulationStatus.SETUP)
    config: SimulationConfig = Field(default_factory=SimulationConfig)
    advisories: List[str] = Field(default_factory=list, description="Non-fatal notes")
    failure_reason: Optional[str] = Field(None, description="Why the run FAILED")
    result: Optional[SimulationResult] = Field(None, description="Set once COMPLETED")


class StoredSimulation(BaseModel):
    """Persisted record: full state plus an opaque optimistic-concurrency version."""

    state: EcosystemState
    version: int = Field(..., ge=1)
