"""
Scenario loading for JSON-defined simulation starts.

A scenario bundles everything initialize() needs: the execution-context
settings, a species roster and either an explicit environment or the key of
an environment preset. The loader only checks shape; domain rules are left to
the controller so a scenario file gets exactly the same validation as an API
request.

Scenario file structure:
```json
{
  "name": "Balanced Reef",
  "description": "...",
  "time_limit": 300,
  "config": {"tick_seconds": 10},
  "species": [
    {"id": "kelp", "name": "Giant Kelp", "type": "PRODUCER",
     "energyRequirement": 10, "reproductionRate": 1.2}
  ],
  "preset": "shallow_reef"
}
```

Usage:
    loader = ScenarioLoader()
    scenario = loader.load("balanced_reef")
    result = await controller.initialize(
        scenario.context("candidate-42"), scenario.species, scenario.environment
    )
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .config import Config
from .presets import get_preset
from .schemas import Environment, SimulationConfig, SimulationExecutionContext


class Scenario(BaseModel):
    """A parsed scenario, ready to hand to SimulationLifecycleController.initialize."""

    name: str
    description: str
    time_limit: float = Field(default_factory=lambda: float(Config.DEFAULT_TIME_LIMIT_SECONDS))
    config: SimulationConfig = Field(default_factory=SimulationConfig)
    # Raw entries; the controller parses and validates them.
    species: List[Dict[str, Any]]
    environment: Environment
    preset: Optional[str] = None

    def context(self, user_id: str) -> SimulationExecutionContext:
        """Execution context for `user_id` using this scenario's budget and config."""
        return SimulationExecutionContext(
            user_id=user_id,
            time_limit=self.time_limit,
            config=self.config.model_copy(),
        )


class ScenarioLoader:
    """Load scenarios from JSON files.

    Directory structure:
    - Default: Config.SCENARIOS_DIR ({PROJECT_ROOT}/examples/scenarios/)
    - Override via constructor: ScenarioLoader(Path("/custom/scenarios"))
    - Scenario files: {scenario_name}.json; files starting with "_" are hidden
    """

    def __init__(self, scenarios_dir: Optional[Path] = None):
        self.scenarios_dir = scenarios_dir or Config.SCENARIOS_DIR

    def load(self, scenario_name: str) -> Scenario:
        """Load a scenario by name.

        Raises:
            FileNotFoundError: If the scenario file doesn't exist
            ValueError: If required fields are missing or the preset is unknown
            json.JSONDecodeError: If the file contains invalid JSON
        """
        scenario_path = self.scenarios_dir / f"{scenario_name}.json"

        if not scenario_path.exists():
            raise FileNotFoundError(
                f"Scenario '{scenario_name}' not found at {scenario_path}"
            )

        data = json.loads(scenario_path.read_text())
        return self.parse(data)

    def parse(self, data: Dict[str, Any]) -> Scenario:
        """Build a Scenario from already-decoded JSON data."""
        self._validate_scenario(data)

        payload = dict(data)
        preset_key = payload.get("preset")
        if preset_key is not None and "environment" not in payload:
            try:
                payload["environment"] = get_preset(preset_key).environment.model_copy()
            except KeyError as exc:
                raise ValueError(str(exc.args[0])) from None

        return Scenario.model_validate(payload)

    def _validate_scenario(self, data: Dict[str, Any]) -> None:
        required = ["name", "description", "species"]
        missing = [field for field in required if field not in data]

        if missing:
            raise ValueError(f"Scenario missing required fields: {missing}")

        if not isinstance(data["species"], list) or not data["species"]:
            raise ValueError("Scenario must list at least one species")

        if "environment" not in data and "preset" not in data:
            raise ValueError("Scenario needs either an 'environment' block or a 'preset' key")

    def list_scenarios(self) -> List[str]:
        """List all available scenario names (without .json extension)."""
        if not self.scenarios_dir.exists():
            return []

        return sorted(
            f.stem for f in self.scenarios_dir.glob("*.json")
            if not f.name.startswith("_")
        )

    def get_scenario_info(self, scenario_name: str) -> Dict[str, Any]:
        """Get scenario metadata without building models."""
        scenario_path = self.scenarios_dir / f"{scenario_name}.json"
        data = json.loads(scenario_path.read_text())

        return {
            "name": data.get("name", scenario_name),
            "description": data.get("description", "No description"),
            "num_species": len(data.get("species", [])),
            "preset": data.get("preset"),
        }


def load_scenario(scenario_name: str) -> Scenario:
    """Convenience function to load a scenario from the default directory."""
    return ScenarioLoader().load(scenario_name)
