"""
Named starting environments offered to players, ordered by difficulty.

Values come from the exercise's seed data, adjusted to fit the canonical
validity ranges (depth 0-200 m, light <= 50 % below 100 m). The deep-ocean
preset becomes a twilight shelf at 180 m; the hydrothermal vent preset is
not offered because no in-range version of it keeps its character.
"""

from typing import Dict, List

from pydantic import BaseModel, Field

from .schemas import Environment


class EnvironmentPreset(BaseModel):
    """A named environment with a difficulty label."""

    key: str
    name: str
    description: str
    difficulty: str = Field(..., pattern="^(beginner|intermediate|advanced|expert)$")
    environment: Environment


ENVIRONMENT_PRESETS: Dict[str, EnvironmentPreset] = {
    preset.key: preset
    for preset in (
        EnvironmentPreset(
            key="shallow_reef",
            name="Shallow Reef",
            description="Warm, sunlit coral reef. Forgiving for producers.",
            difficulty="beginner",
            environment=Environment(temperature=28.5, depth=15, salinity=35.0, light_level=90),
        ),
        EnvironmentPreset(
            key="twilight_shelf",
            name="Twilight Shelf",
            description="Cold, dim continental shelf edge where little light reaches the bottom.",
            difficulty="intermediate",
            environment=Environment(temperature=4.0, depth=180, salinity=34.5, light_level=10),
        ),
        EnvironmentPreset(
            key="coastal_waters",
            name="Coastal Waters",
            description="Variable coastal conditions with brackish salinity.",
            difficulty="advanced",
            environment=Environment(temperature=22.0, depth=45, salinity=30.0, light_level=60),
        ),
        EnvironmentPreset(
            key="polar_waters",
            name="Polar Waters",
            description="Freezing water at the deepest allowed depth with seasonal light.",
            difficulty="expert",
            environment=Environment(temperature=-1.8, depth=200, salinity=34.5, light_level=30),
        ),
    )
}


def get_preset(key: str) -> EnvironmentPreset:
    """Look up a preset by key.

    Raises:
        KeyError: If no preset has that key (message lists the valid keys)
    """
    try:
        return ENVIRONMENT_PRESETS[key]
    except KeyError:
        raise KeyError(
            f"Unknown environment preset '{key}'. Available: {', '.join(list_presets())}"
        ) from None


def list_presets() -> List[str]:
    return list(ENVIRONMENT_PRESETS)
