"""
SimulationLifecycleController: the public engine boundary.

Fully decoupled from transport and storage technology. All dependencies
(persistence, engine, scorer, feedback strategy) are injected; defaults are
built per controller, never shared through module state.

Every public operation:
1. Loads the versioned snapshot (the only awaits besides the final save)
2. Checks ownership and the lifecycle state
3. Validates the complete resulting state before anything is written
4. Saves with a compare-and-set on the loaded version

and returns a Result: Ok(value) on success, Err(ValidationError |
ConflictError | NotFoundError | InternalError) otherwise. A failed operation
never writes. Unexpected exceptions (storage I/O, broken invariants) are
logged and reported as an opaque InternalError.
"""

from __future__ import annotations

import dataclasses
import functools
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional
from uuid import uuid4

from .config import Config
from .engine import TimeStepEngine
from .errors import ConflictError, InternalError, NotFoundError
from .feedback import FeedbackStrategy, LLMFeedback, RuleBasedFeedback
from .logging_utils import log_error, log_info, log_success
from .model import EcosystemModel
from .persistence import InMemoryPersistence, PersistenceStrategy, build_persistence
from .result import Err, Ok, Result
from .schemas import (
    EcosystemState,
    Environment,
    SimulationExecutionContext,
    SimulationResult,
    SimulationStatus,
    StoredSimulation,
)
from .scoring import StabilityScorer
from .validation import (
    check_consistency,
    parse_model,
    parse_species_list,
    validate_context,
    validate_ecosystem_state,
    validate_environment,
    validate_identity_unchanged,
    validate_interaction,
    validate_roster,
)

STALE_VERSION_MESSAGE = "Simulation was modified by another request; re-fetch and retry"


def _engine_boundary(operation: str):
    """Turn unexpected exceptions raised by `operation` into Err(InternalError)."""

    def decorator(func):
        @functools.wraps(func)
        async def wrapper(self, *args, **kwargs):
            try:
                return await func(self, *args, **kwargs)
            except Exception as exc:
                log_error(f"[{operation}] Unexpected failure: {type(exc).__name__}: {exc}")
                return Err(InternalError(cause=exc))

        return wrapper

    return decorator


class SimulationLifecycleController:
    """
    Lifecycle operations for ecosystem simulations.

    Usage:
        async with SimulationLifecycleController() as controller:
            created = await controller.initialize(context, species, environment)
            state = created.unwrap()
            stepped = await controller.step(state.id, user_id=state.owner_user_id)
    """

    def __init__(
        self,
        persistence: Optional[PersistenceStrategy] = None,
        engine: Optional[TimeStepEngine] = None,
        scorer: Optional[StabilityScorer] = None,
        feedback: Optional[FeedbackStrategy] = None,
        id_factory: Optional[Callable[[], str]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """Initialize the controller with all dependencies injected.

        Args:
            persistence: Versioned storage (defaults to InMemoryPersistence)
            engine: Time-step engine (defaults to one sharing `scorer`)
            scorer: Stability scorer used for state scores and results
            feedback: Completion feedback strategy (defaults to RuleBasedFeedback)
            id_factory: Produces new simulation ids (defaults to uuid4)
            clock: Produces completion timestamps (defaults to UTC now)
        """
        self.persistence = persistence or InMemoryPersistence()
        self.scorer = scorer or StabilityScorer()
        self.engine = engine or TimeStepEngine(scorer=self.scorer)
        self.feedback = feedback or RuleBasedFeedback()
        self.id_factory = id_factory or (lambda: str(uuid4()))
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # Lifecycle ----------------------------------------------------------------

    async def open(self) -> None:
        await self.persistence.initialize()

    async def close(self) -> None:
        await self.persistence.close()

    async def __aenter__(self) -> "SimulationLifecycleController":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Public operations --------------------------------------------------------

    @_engine_boundary("initialize")
    async def initialize(
        self,
        context: SimulationExecutionContext | dict,
        species: Iterable[Any],
        environment: Environment | dict,
    ) -> Result[EcosystemState]:
        """Validate the inputs and create a new simulation in SETUP.

        Raw dicts (camelCase or snake_case keys) are accepted for every
        argument and parsed at the boundary.
        """
        parsed_context = parse_model(SimulationExecutionContext, context, "context")
        if not parsed_context.is_ok:
            return parsed_context
        checked_context = validate_context(parsed_context.value)
        if not checked_context.is_ok:
            return checked_context
        ctx = checked_context.value

        parsed_species = parse_species_list(species)
        if not parsed_species.is_ok:
            return parsed_species
        roster = validate_roster(parsed_species.value, ctx.config)
        if not roster.is_ok:
            return roster

        parsed_environment = parse_model(Environment, environment, "environment")
        if not parsed_environment.is_ok:
            return parsed_environment
        checked_environment = validate_environment(parsed_environment.value)
        if not checked_environment.is_ok:
            return checked_environment

        model = EcosystemModel.create(
            self.id_factory(), ctx, roster.value, checked_environment.value
        )
        checked = self._check_derived_state(model)
        if not checked.is_ok:
            return checked

        model.set_stability(self.scorer.stability_score(model.state))
        model.set_advisories(checked.value)

        state = model.snapshot()
        if not await self.persistence.save(state, None):
            return Err(
                ConflictError(
                    current_status=state.status.value,
                    attempted_operation="initialize",
                    message=f"Simulation id '{state.id}' already exists",
                )
            )

        log_success(
            f"Simulation {state.id} created for {state.owner_user_id}: "
            f"{len(state.species)} species, {len(state.interactions)} interactions, "
            f"stability {state.stability_score:.1f}"
        )
        return Ok(state)

    @_engine_boundary("update_species")
    async def update_species(
        self,
        simulation_id: str,
        species: Iterable[Any],
        *,
        user_id: Optional[str] = None,
    ) -> Result[EcosystemState]:
        """Replace the roster, re-deriving interactions and re-validating everything."""
        loaded = await self._load_mutable(simulation_id, user_id, "update_species")
        if not loaded.is_ok:
            return loaded
        stored = loaded.value

        parsed = parse_species_list(species)
        if not parsed.is_ok:
            return parsed
        roster = validate_roster(parsed.value, stored.state.config)
        if not roster.is_ok:
            return roster
        identity = validate_identity_unchanged(stored.state.species, roster.value)
        if not identity.is_ok:
            return identity

        model = EcosystemModel(stored.state)
        model.replace_species(roster.value)
        return await self._commit_edit(model, stored, "update_species")

    @_engine_boundary("update_environment")
    async def update_environment(
        self,
        simulation_id: str,
        environment: Environment | dict,
        *,
        user_id: Optional[str] = None,
    ) -> Result[EcosystemState]:
        """Replace the environment wholesale and re-validate the resulting state."""
        loaded = await self._load_mutable(simulation_id, user_id, "update_environment")
        if not loaded.is_ok:
            return loaded
        stored = loaded.value

        parsed = parse_model(Environment, environment, "environment")
        if not parsed.is_ok:
            return parsed
        checked = validate_environment(parsed.value)
        if not checked.is_ok:
            return checked

        model = EcosystemModel(stored.state)
        model.replace_environment(checked.value)
        return await self._commit_edit(model, stored, "update_environment")

    @_engine_boundary("step")
    async def step(
        self, simulation_id: str, *, user_id: Optional[str] = None
    ) -> Result[EcosystemState]:
        """Advance one tick. A run that ends on this tick carries its result."""
        loaded = await self._load_mutable(simulation_id, user_id, "step")
        if not loaded.is_ok:
            return loaded
        stored = loaded.value

        outcome = self.engine.step(stored.state)
        if not outcome.is_ok:
            return outcome
        state = outcome.value

        if state.status == SimulationStatus.COMPLETED:
            model = EcosystemModel(state)
            model.attach_result(await self._build_result(state))
            state = model.snapshot()

        saved = await self._save(state, stored, "step")
        if not saved.is_ok:
            return saved

        if state.status == SimulationStatus.COMPLETED:
            log_success(
                f"Simulation {state.id} completed at tick {state.tick} "
                f"(score {state.result.score:.1f})"
            )
        elif state.status == SimulationStatus.FAILED:
            log_error(f"Simulation {state.id} failed at tick {state.tick}: {state.failure_reason}")
        return Ok(state)

    @_engine_boundary("complete")
    async def complete(
        self, simulation_id: str, *, user_id: Optional[str] = None
    ) -> Result[SimulationResult]:
        """End the run early and return its final result."""
        loaded = await self._load_mutable(simulation_id, user_id, "complete")
        if not loaded.is_ok:
            return loaded
        stored = loaded.value

        model = EcosystemModel(stored.state)
        model.set_status(SimulationStatus.COMPLETED)
        result = await self._build_result(model.state)
        model.attach_result(result)

        saved = await self._save(model.snapshot(), stored, "complete")
        if not saved.is_ok:
            return saved

        log_success(f"Simulation {simulation_id} completed by caller (score {result.score:.1f})")
        return Ok(result)

    @_engine_boundary("get_state")
    async def get_state(self, simulation_id: str, user_id: str) -> Result[EcosystemState]:
        """Read-only snapshot."""
        loaded = await self._load_owned(simulation_id, user_id)
        if not loaded.is_ok:
            return loaded
        return Ok(loaded.value.state)

    @_engine_boundary("get_result")
    async def get_result(self, simulation_id: str, user_id: str) -> Result[SimulationResult]:
        """Final result of a completed run; NOT_FOUND until one exists."""
        loaded = await self._load_owned(simulation_id, user_id)
        if not loaded.is_ok:
            return loaded
        result = loaded.value.state.result
        if result is None:
            return Err(NotFoundError(id=simulation_id))
        return Ok(result)

    @_engine_boundary("list_simulations")
    async def list_simulations(self, user_id: str) -> Result[List[str]]:
        """Ids of every simulation owned by `user_id`."""
        return Ok(await self.persistence.list_for_owner(user_id))

    # Internals ----------------------------------------------------------------

    async def _load_owned(
        self, simulation_id: str, user_id: Optional[str]
    ) -> Result[StoredSimulation]:
        stored = await self.persistence.load(simulation_id)
        # Someone else's simulation is indistinguishable from a missing one.
        if stored is None or (user_id is not None and stored.state.owner_user_id != user_id):
            return Err(NotFoundError(id=simulation_id))
        return Ok(stored)

    async def _load_mutable(
        self, simulation_id: str, user_id: Optional[str], operation: str
    ) -> Result[StoredSimulation]:
        loaded = await self._load_owned(simulation_id, user_id)
        if not loaded.is_ok:
            return loaded
        status = loaded.value.state.status
        if status.is_terminal:
            return Err(
                ConflictError(
                    current_status=status.value,
                    attempted_operation=operation,
                    message="Simulation has already finished",
                )
            )
        return loaded

    def _check_derived_state(self, model: EcosystemModel) -> Result[List[str]]:
        """Validate derived interactions, aggregate rules and internal consistency."""
        for index, interaction in enumerate(model.state.interactions):
            outcome = validate_interaction(interaction)
            if not outcome.is_ok:
                error = outcome.error
                field = error.field.split(".", 1)[-1]
                return Err(dataclasses.replace(error, field=f"interactions[{index}].{field}"))

        aggregate = validate_ecosystem_state(model.state)
        if not aggregate.is_ok:
            return aggregate

        consistency = check_consistency(model.state)
        if not consistency.is_ok:
            return consistency
        return aggregate

    async def _commit_edit(
        self, model: EcosystemModel, stored: StoredSimulation, operation: str
    ) -> Result[EcosystemState]:
        checked = self._check_derived_state(model)
        if not checked.is_ok:
            return checked

        model.set_stability(self.scorer.stability_score(model.state))
        model.set_advisories(checked.value)

        state = model.snapshot()
        saved = await self._save(state, stored, operation)
        if not saved.is_ok:
            return saved

        log_info(f"[{operation}] Simulation {state.id} updated, stability {state.stability_score:.1f}")
        return Ok(state)

    async def _save(
        self, state: EcosystemState, stored: StoredSimulation, operation: str
    ) -> Result[EcosystemState]:
        if await self.persistence.save(state, stored.version):
            return Ok(state)
        log_info(f"[{operation}] Version conflict on simulation {state.id}")
        return Err(
            ConflictError(
                current_status=stored.state.status.value,
                attempted_operation=operation,
                message=STALE_VERSION_MESSAGE,
            )
        )

    async def _build_result(self, state: EcosystemState) -> SimulationResult:
        metrics = self.scorer.evaluate(state)
        feedback = await self.feedback.generate(state, metrics)
        return SimulationResult(
            simulation_id=state.id,
            score=self.scorer.final_score(metrics),
            ecosystem_stability=metrics.ecosystem_stability,
            species_balance=metrics.species_balance,
            feedback=feedback,
            completed_at=self.clock(),
        )


def build_feedback() -> FeedbackStrategy:
    """LLM feedback when FEEDBACK_LLM_PROVIDER/MODEL are set, rule-based otherwise."""
    if Config.FEEDBACK_LLM_PROVIDER and Config.FEEDBACK_LLM_MODEL:
        return LLMFeedback(Config.FEEDBACK_LLM_PROVIDER, Config.FEEDBACK_LLM_MODEL)
    return RuleBasedFeedback()


def create_controller() -> SimulationLifecycleController:
    """Build a controller wired from environment configuration.

    Raises:
        ValueError: If the configuration is inconsistent
    """
    Config.validate()
    return SimulationLifecycleController(
        persistence=build_persistence(),
        feedback=build_feedback(),
    )
