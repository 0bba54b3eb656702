"""
Ecosim - deterministic marine ecosystem simulation engine.

Players pick species and environmental parameters, step the ecosystem
through timed ticks and receive a bounded stability score with feedback.

No transport layer and no global state: persistence, scoring and feedback
strategies are injected into SimulationLifecycleController.
"""

__version__ = "0.1.0"

# Main entry point
from .controller import SimulationLifecycleController, create_controller

# Results and errors
from .result import Ok, Err, Result
from .errors import (
    ValidationError,
    ConflictError,
    NotFoundError,
    InternalError,
    EngineError,
    ResultUnwrapError,
)

# Core components
from .engine import TimeStepEngine
from .model import EcosystemModel
from .interactions import InteractionResolver, derive_interactions, environmental_suitability
from .scoring import StabilityScorer
from .feedback import FeedbackStrategy, RuleBasedFeedback, LLMFeedback
from .persistence import (
    PersistenceStrategy,
    InMemoryPersistence,
    JsonPersistence,
    PostgresPersistence,
    build_persistence,
)

# Core schemas
from .schemas import (
    Species,
    SpeciesType,
    Environment,
    SpeciesInteraction,
    InteractionType,
    PopulationState,
    SimulationStatus,
    SimulationConfig,
    SimulationExecutionContext,
    SimulationMetrics,
    SimulationResult,
    EcosystemState,
    StoredSimulation,
)

# Scenario and preset helpers
from .presets import ENVIRONMENT_PRESETS, EnvironmentPreset, get_preset
from .scenario import Scenario, ScenarioLoader, load_scenario

__all__ = [
    # Main class
    "SimulationLifecycleController",
    "create_controller",
    # Results and errors
    "Ok",
    "Err",
    "Result",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "InternalError",
    "EngineError",
    "ResultUnwrapError",
    # Core components
    "TimeStepEngine",
    "EcosystemModel",
    "InteractionResolver",
    "derive_interactions",
    "environmental_suitability",
    "StabilityScorer",
    "FeedbackStrategy",
    "RuleBasedFeedback",
    "LLMFeedback",
    "PersistenceStrategy",
    "InMemoryPersistence",
    "JsonPersistence",
    "PostgresPersistence",
    "build_persistence",
    # Schemas
    "Species",
    "SpeciesType",
    "Environment",
    "SpeciesInteraction",
    "InteractionType",
    "PopulationState",
    "SimulationStatus",
    "SimulationConfig",
    "SimulationExecutionContext",
    "SimulationMetrics",
    "SimulationResult",
    "EcosystemState",
    "StoredSimulation",
    # Scenario helpers
    "ENVIRONMENT_PRESETS",
    "EnvironmentPreset",
    "get_preset",
    "Scenario",
    "ScenarioLoader",
    "load_scenario",
]
