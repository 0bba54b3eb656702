"""
Ecosim Configuration

Loads configuration from environment variables with sensible defaults.
"""

import os
from pathlib import Path
from dotenv import load_dotenv

# Load .env file if it exists
load_dotenv()


class Config:
    """Application configuration loaded from environment variables."""

    # Persistence backend: "memory", "json" or "postgres"
    PERSISTENCE_BACKEND: str = os.getenv("ECOSIM_PERSISTENCE", "memory")
    DATA_DIR: Path = Path(os.getenv("ECOSIM_DATA_DIR", "simulation_data"))

    # Database Configuration
    DATABASE_URL: str = os.getenv("DATABASE_URL", "postgresql://localhost/ecosim")

    # Simulation Configuration
    # Time limits are simulation-domain seconds, consumed only by step() calls.
    DEFAULT_TIME_LIMIT_SECONDS: int = int(os.getenv("DEFAULT_TIME_LIMIT_SECONDS", "600"))
    TICK_DURATION_SECONDS: int = int(os.getenv("TICK_DURATION_SECONDS", "10"))
    MIN_SPECIES: int = int(os.getenv("MIN_SPECIES", "3"))
    MAX_SPECIES: int = int(os.getenv("MAX_SPECIES", "10"))
    MIN_ACCEPTABLE_STABILITY: float = float(os.getenv("MIN_ACCEPTABLE_STABILITY", "60"))

    # Optional LLM narrative for completion feedback
    FEEDBACK_LLM_PROVIDER: str | None = os.getenv("FEEDBACK_LLM_PROVIDER")
    FEEDBACK_LLM_MODEL: str | None = os.getenv("FEEDBACK_LLM_MODEL")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Project Paths
    PROJECT_ROOT: Path = Path(__file__).parent.parent
    SCENARIOS_DIR: Path = PROJECT_ROOT / "examples" / "scenarios"

    @classmethod
    def validate(cls) -> None:
        """Validate configuration and raise errors if values are inconsistent."""
        if cls.PERSISTENCE_BACKEND not in ("memory", "json", "postgres"):
            raise ValueError(
                f"Unknown ECOSIM_PERSISTENCE '{cls.PERSISTENCE_BACKEND}'. "
                "Use one of: memory, json, postgres."
            )

        if cls.TICK_DURATION_SECONDS <= 0:
            raise ValueError("TICK_DURATION_SECONDS must be a positive integer")

        if cls.MIN_SPECIES < 1 or cls.MAX_SPECIES < cls.MIN_SPECIES:
            raise ValueError(
                f"Species bounds are inconsistent: MIN_SPECIES={cls.MIN_SPECIES}, "
                f"MAX_SPECIES={cls.MAX_SPECIES}"
            )

        # Provider and model only make sense together
        if bool(cls.FEEDBACK_LLM_PROVIDER) != bool(cls.FEEDBACK_LLM_MODEL):
            raise ValueError(
                "FEEDBACK_LLM_PROVIDER and FEEDBACK_LLM_MODEL must be set together "
                "to enable LLM feedback."
            )

    @classmethod
    def display(cls) -> str:
        """Return a formatted string showing current configuration."""
        lines = [
            "Ecosim Configuration:",
            f"  Persistence: {cls.PERSISTENCE_BACKEND}",
            f"  Database: {cls.DATABASE_URL}",
            f"  Default Time Limit: {cls.DEFAULT_TIME_LIMIT_SECONDS}s",
            f"  Tick Duration: {cls.TICK_DURATION_SECONDS}s",
            f"  Species Bounds: {cls.MIN_SPECIES}-{cls.MAX_SPECIES}",
            f"  Feedback LLM: {cls.FEEDBACK_LLM_PROVIDER or 'disabled'}",
        ]
        return "\n".join(lines)
