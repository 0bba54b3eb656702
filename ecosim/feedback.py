"""
FeedbackStrategy interface for completion feedback.

When a simulation completes the controller asks the injected strategy for
an ordered list of human-readable messages that go into SimulationResult.

Two implementations:
1. RuleBasedFeedback - deterministic threshold messages, the stability trend
   and critical interactions (default, no I/O)
2. LLMFeedback - rule-based messages followed by an LLM-written coaching
   narrative. Provider failures are logged and the rule-based messages are
   kept, so completion never depends on an external service.
"""

from __future__ import annotations

import json
from abc import ABC, abstractmethod
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field

from .llm_utils import call_llm_with_retries
from .logging_utils import log_error, log_llm
from .schemas import EcosystemState, SimulationMetrics, SpeciesInteraction, SpeciesType

LOW_DIVERSITY = 50.0
LOW_TROPHIC_EFFICIENCY = 60.0
HIGH_ENVIRONMENTAL_STRESS = 70.0
LOW_SPECIES_BALANCE = 50.0

# Stability change between the last two samples that counts as a trend (0-100 scale)
TREND_THRESHOLD = 10.0
# Interactions outside this strength window are called out to the player
CRITICAL_STRONG_INTERACTION = 0.7
CRITICAL_WEAK_INTERACTION = 0.3


class StabilityTrend(str, Enum):
    IMPROVING = "IMPROVING"
    DECLINING = "DECLINING"
    STABLE = "STABLE"


TREND_MESSAGES = {
    StabilityTrend.IMPROVING: "Stability was improving when the run ended.",
    StabilityTrend.DECLINING: "Stability was declining when the run ended.",
    StabilityTrend.STABLE: "Stability held steady over the final tick.",
}


def stability_trend(state: EcosystemState) -> StabilityTrend:
    """Compare the last two stability samples (history plus the current score)."""
    samples = [*state.stability_history, state.stability_score]
    if len(samples) < 2:
        return StabilityTrend.STABLE
    delta = samples[-1] - samples[-2]
    if delta > TREND_THRESHOLD:
        return StabilityTrend.IMPROVING
    if delta < -TREND_THRESHOLD:
        return StabilityTrend.DECLINING
    return StabilityTrend.STABLE


def critical_interactions(state: EcosystemState) -> List[SpeciesInteraction]:
    """Interactions strong enough to dominate the web or too weak to matter."""
    return [
        i
        for i in state.interactions
        if abs(i.strength) > CRITICAL_STRONG_INTERACTION
        or abs(i.strength) < CRITICAL_WEAK_INTERACTION
    ]


def producers_collapsed(state: EcosystemState) -> bool:
    """True when no producer species has a living population."""
    return not any(
        s.type == SpeciesType.PRODUCER
        and s.id in state.populations
        and not state.populations[s.id].is_extinct
        for s in state.species
    )


class FeedbackStrategy(ABC):
    """Produces ordered feedback strings for a finished simulation."""

    @abstractmethod
    async def generate(self, state: EcosystemState, metrics: SimulationMetrics) -> List[str]:
        """
        Build feedback for a completed run.

        Args:
            state: Final ecosystem snapshot
            metrics: Scorer output for that snapshot

        Returns:
            Ordered list of feedback messages
        """
        pass


class RuleBasedFeedback(FeedbackStrategy):
    """Deterministic feedback derived from metric thresholds."""

    async def generate(self, state: EcosystemState, metrics: SimulationMetrics) -> List[str]:
        feedback: List[str] = []
        names = {s.id: s.name for s in state.species}
        extinct = [
            s.name
            for s in sorted(state.species, key=lambda s: s.id)
            if s.id in state.populations and state.populations[s.id].is_extinct
        ]

        # A collapsed food web is never reported as stable, whatever the average says.
        threshold = state.config.min_acceptable_stability
        if producers_collapsed(state):
            feedback.append(
                "The food web collapsed: every producer species went extinct "
                f"(average stability {metrics.ecosystem_stability:.1f}/100)."
            )
        elif metrics.ecosystem_stability < threshold:
            feedback.append(
                f"Average stability {metrics.ecosystem_stability:.1f}/100 is below the "
                f"acceptable threshold of {threshold:.0f}."
            )
        elif extinct:
            feedback.append(
                f"Average stability {metrics.ecosystem_stability:.1f}/100 met the threshold, "
                "but not every species survived."
            )
        else:
            feedback.append(
                f"Ecosystem stayed stable over the run "
                f"(average stability {metrics.ecosystem_stability:.1f}/100)."
            )

        feedback.append(TREND_MESSAGES[stability_trend(state)])

        if metrics.species_diversity < LOW_DIVERSITY:
            feedback.append("Consider increasing species diversity for better ecosystem stability.")
        if metrics.trophic_efficiency < LOW_TROPHIC_EFFICIENCY:
            feedback.append("Energy transfer between species could be more efficient.")
        if metrics.environmental_stress > HIGH_ENVIRONMENTAL_STRESS:
            feedback.append("High environmental stress is affecting ecosystem stability.")

        if metrics.species_balance < LOW_SPECIES_BALANCE:
            producers = sum(
                state.populations[s.id].population
                for s in state.species
                if s.type == SpeciesType.PRODUCER and s.id in state.populations
            )
            consumers = sum(
                state.populations[s.id].population
                for s in state.species
                if s.type == SpeciesType.CONSUMER and s.id in state.populations
            )
            if consumers > producers * state.config.target_consumer_ratio:
                feedback.append("Consumers outweigh what the producers can support; add producers or fewer predators.")
            else:
                feedback.append("Producers dominate the food web; there is room for more consumers.")

        critical = critical_interactions(state)
        if critical:
            listed = ", ".join(
                f"{names.get(i.source_species, i.source_species)} -> "
                f"{names.get(i.target_species, i.target_species)} "
                f"({i.interaction_type.value.lower()} {i.strength:.2f})"
                for i in critical
            )
            feedback.append(f"Critical interactions to watch: {listed}.")

        if extinct:
            feedback.append(f"Species lost during the run: {', '.join(extinct)}.")

        if state.time_remaining > 0:
            feedback.append(f"Run ended with {state.time_remaining:g}s of simulation time unused.")

        return feedback


class FeedbackReport(BaseModel):
    """Structured LLM response."""

    feedback: List[str] = Field(..., min_length=1, max_length=6)


DEFAULT_FEEDBACK_PROMPT = """
You are coaching a candidate who just played a timed ecosystem-management
exercise from a consulting-firm assessment. Write 2-4 short, specific
suggestions about ecosystem balance, species interactions and environmental
adaptation. Output JSON matching the FeedbackReport schema.
"""


class LLMFeedback(FeedbackStrategy):
    """Rule-based feedback followed by an LLM coaching narrative."""

    def __init__(
        self,
        llm_provider: str,
        llm_model: str,
        base: Optional[FeedbackStrategy] = None,
        system_prompt: str = DEFAULT_FEEDBACK_PROMPT,
    ):
        self.llm_provider = llm_provider
        self.llm_model = llm_model
        self.base = base or RuleBasedFeedback()
        self.system_prompt = system_prompt

    def build_prompt(self, state: EcosystemState, metrics: SimulationMetrics) -> str:
        roster = [
            {
                "name": s.name,
                "type": s.type.value,
                "energy_requirement": s.energy_requirement,
                "reproduction_rate": s.reproduction_rate,
                "population": state.populations[s.id].population if s.id in state.populations else 0,
            }
            for s in sorted(state.species, key=lambda s: s.id)
        ]
        critical = [i.model_dump(mode="json") for i in critical_interactions(state)]
        return f"""
Simulation results after {state.tick} ticks:

Metrics:
{metrics.model_dump_json(indent=2)}

Environment:
{state.environment.model_dump_json(indent=2)}

Species:
{json.dumps(roster, indent=2)}

Stability trend: {stability_trend(state).value}

Critical interactions:
{json.dumps(critical, indent=2)}
"""

    async def generate(self, state: EcosystemState, metrics: SimulationMetrics) -> List[str]:
        feedback = await self.base.generate(state, metrics)

        log_llm(f"[Feedback] Requesting narrative for simulation {state.id}")
        try:
            report = await call_llm_with_retries(
                system_prompt=self.system_prompt,
                user_prompt=self.build_prompt(state, metrics),
                llm_provider=self.llm_provider,
                llm_model=self.llm_model,
                response_model=FeedbackReport,
            )
        except Exception as exc:
            log_error(f"[Feedback] LLM narrative unavailable, keeping rule-based feedback: {exc}")
            return feedback

        return feedback + [line.strip() for line in report.feedback if line.strip()]
