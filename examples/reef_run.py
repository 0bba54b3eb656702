"""
Example: play a reef scenario end to end
========================================

WHAT THIS SHOWS:
- Loading a JSON scenario with ScenarioLoader
- Initializing, tuning and stepping a simulation through the controller
- Branching on Ok / Err results instead of catching exceptions
- Reading the final SimulationResult and its feedback

RUN:
    python examples/reef_run.py
    LOG_LEVEL=DEBUG python examples/reef_run.py   # show per-tick engine lines
"""

import asyncio

from ecosim import (
    Environment,
    ScenarioLoader,
    SimulationLifecycleController,
    SimulationStatus,
)
from ecosim.logging_utils import Color, colored

USER_ID = "candidate-42"


async def main() -> None:
    scenario = ScenarioLoader().load("balanced_reef")
    print(colored(f"Scenario: {scenario.name}", Color.CYAN, bold=True))
    print(scenario.description)

    async with SimulationLifecycleController() as controller:
        created = await controller.initialize(
            scenario.context(USER_ID), scenario.species, scenario.environment
        )
        if not created.is_ok:
            print(colored(f"Could not start: {created.error}", Color.RED))
            return
        state = created.value

        # Cool the water a little before the first tick.
        tuned = await controller.update_environment(
            state.id,
            Environment(temperature=24.0, depth=15, salinity=35.0, light_level=90),
            user_id=USER_ID,
        )
        if tuned.is_ok:
            state = tuned.value

        while state.status in (SimulationStatus.SETUP, SimulationStatus.RUNNING):
            stepped = await controller.step(state.id, user_id=USER_ID)
            if not stepped.is_ok:
                print(colored(f"Step rejected: {stepped.error}", Color.RED))
                break
            state = stepped.value
            print(
                f"tick {state.tick:>3}  stability {state.stability_score:6.2f}  "
                f"time left {state.time_remaining:5.0f}s"
            )
            for advisory in state.advisories:
                print(colored(f"      {advisory}", Color.YELLOW))

        result = await controller.get_result(state.id, USER_ID)
        if result.is_ok:
            final = result.value
            print(colored(f"\nFinal score: {final.score:.1f}", Color.GREEN, bold=True))
            print(f"Ecosystem stability: {final.ecosystem_stability:.1f}")
            print(f"Species balance: {final.species_balance:.1f}")
            for line in final.feedback:
                print(f"  - {line}")


if __name__ == "__main__":
    asyncio.run(main())
