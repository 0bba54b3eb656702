"""Logging utilities for Ecosim simulations.

Provides color-coded console output to distinguish deterministic engine work
(ticks, scoring) from LLM calls, errors and lifecycle milestones.

Verbosity follows the LOG_LEVEL environment variable:
- DEBUG: everything, including per-tick deterministic lines
- INFO (default): info, success, LLM and error lines
- WARNING / ERROR: errors only
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    # Colors for operation types
    BLUE = "\033[94m"      # Deterministic operations (ticks, scoring)
    YELLOW = "\033[93m"    # LLM calls (feedback narrative)
    RED = "\033[91m"       # Errors and retries
    GREEN = "\033[92m"     # Success/completion
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


_LEVELS = {"DEBUG": 10, "INFO": 20, "WARNING": 30, "ERROR": 40}


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if ECOSIM_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("ECOSIM_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def _enabled(level: str) -> bool:
    """Return True when messages at `level` pass the LOG_LEVEL threshold."""
    configured = os.getenv("LOG_LEVEL", "INFO").upper()
    threshold = _LEVELS.get(configured, _LEVELS["INFO"])
    return _LEVELS[level] >= threshold


def log_deterministic(message: str) -> None:
    """Log a deterministic operation (blue)."""
    if _enabled("DEBUG"):
        print(colored(f"{LOG_TAG_DETERMINISTIC} {message}", Color.BLUE))


def log_llm(message: str) -> None:
    """Log an LLM operation (yellow)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_LLM} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error or retry (red)."""
    if _enabled("ERROR"):
        print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    if _enabled("INFO"):
        print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))


# Markers for operation types (color-blind accessible)
LOG_TAG_DETERMINISTIC = "[•]"  # Deterministic operation
LOG_TAG_LLM = "[AI]"           # LLM call
LOG_TAG_ERROR = "[!]"          # Error/retry
LOG_TAG_SUCCESS = "[✓]"        # Success
LOG_TAG_INFO = "[i]"           # Information
