"""
config_loader.py
-----------------
Singleton config loader. Reads config.yaml once and caches it.
All modules access configuration through this, never hardcoded values.
"""

import os
import yaml
from typing import Any, Dict


_CONFIG_CACHE: Dict[str, Any] = {}


def load_config(config_path: str | None = None) -> Dict[str, Any]:
    """
    Load and cache the YAML configuration file.

    Args:
        config_path: Path to config.yaml. Defaults to config/ relative to this file.

    Returns:
        Full config dictionary.
    """
    global _CONFIG_CACHE

    if _CONFIG_CACHE:
        return _CONFIG_CACHE

    if config_path is None:
        config_path = os.path.join(os.path.dirname(__file__), "config.yaml")

    if not os.path.exists(config_path):
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    with open(config_path, "r", encoding="utf-8") as f:
        _CONFIG_CACHE = yaml.safe_load(f)

    return _CONFIG_CACHE


def get_subscription_detection_config() -> Dict[str, Any]:
    """Returns the subscription_detection block."""
    return load_config()["subscription_detection"]


def get_vendor_catalogue() -> list[Dict[str, Any]]:
    """Returns the ordered vendor catalogue list."""
    return load_config()["vendor_catalogue"]


def get_lifecycle_config() -> Dict[str, Any]:
    """Returns the lifecycle block (cadence tolerances and intervals)."""
    return load_config()["lifecycle"]


def get_recurrence_config() -> Dict[str, Any]:
    """Returns the recurrence tagging block."""
    return load_config()["recurrence"]


def get_active_tolerance_days(cadence: str) -> int:
    """
    Returns the activity tolerance in days for a cadence.

    Raises:
        KeyError: If the cadence has no configured tolerance.
    """
    tolerances = get_lifecycle_config()["active_tolerance_days"]
    if cadence not in tolerances:
        raise KeyError(
            f"No activity tolerance for cadence '{cadence}'. "
            f"Available: {list(tolerances.keys())}"
        )
    return tolerances[cadence]


def reset_config() -> None:
    """Clears cached config. Useful for testing."""
    global _CONFIG_CACHE
    _CONFIG_CACHE = {}
