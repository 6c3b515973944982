"""JSON config file loading utilities."""

import json
from pathlib import Path
from typing import Any

from heatskin.core.config import SolverConfig
from heatskin.core.errors import InvalidConfigError


def load_json(path: Path) -> Any:
    """Load and return parsed JSON from a file."""
    with open(path) as f:
        return json.load(f)


def load_solver_config(path: Path) -> SolverConfig:
    """Load solver options from a JSON object file."""
    data = load_json(path)
    if not isinstance(data, dict):
        raise InvalidConfigError(f"Solver config {path} must contain a JSON object")
    return SolverConfig.from_dict(data)
