"""
Configuration helpers for the scanner CLI.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

KNOWN_KEYS = {
    "host",
    "ports",
    "timeout",
    "concurrency",
    "verbose",
    "skip_liveness",
    "identify",
    "intel",
    "output_json",
    "save_report",
}


class ConfigLoadError(RuntimeError):
    """Raised when a configuration file cannot be loaded."""


def load_config(path: str) -> Dict[str, Any]:
    config_path = Path(path)
    if not config_path.exists():
        raise ConfigLoadError(f"Config file not found: {path}")

    try:
        data = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ConfigLoadError(f"Failed to parse config JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise ConfigLoadError("Config file must contain a JSON object.")
    unknown = sorted(set(data) - KNOWN_KEYS)
    if unknown:
        raise ConfigLoadError(f"Unknown config key(s): {', '.join(unknown)}")
    return data
