"""Solver options: the seven tunables handed over by the host."""

import math
from dataclasses import dataclass, fields
from typing import Any, Mapping

from heatskin.constants import MIN_GRID_NUM, MIN_SAMPLE_NUM, OPTION_NAMES, REFERENCE_OPTIONS
from heatskin.core.errors import InvalidConfigError


# Host (camelCase) option name -> dataclass field name
_FIELD_FOR_OPTION = {
    "maxGridNum": "max_grid_num",
    "maxDiffuseLoop": "max_diffuse_loop",
    "maxSampleNum": "max_sample_num",
    "maxInfluence": "max_influence",
    "maxFallOff": "max_fall_off",
    "sharpness": "sharpness",
    "detectSolidify": "detect_solidify",
}

_INT_FIELDS = ("max_grid_num", "max_diffuse_loop", "max_sample_num", "max_influence")
_FLOAT_FIELDS = ("max_fall_off", "sharpness")


@dataclass(frozen=True)
class SolverConfig:
    """Validated solver options.

    max_grid_num: per-axis voxel count cap (longest bounding-box axis)
    max_diffuse_loop: diffusion iteration cap
    max_sample_num: points sampled along each bone for seeding
    max_influence: bones kept per vertex (record width)
    max_fall_off: relative heat below which a candidate bone is dropped (0..1)
    sharpness: weight concentration exponent (1 = linear blending)
    detect_solidify: constrain diffusion to the mesh's solid interior
    """
    max_grid_num: int
    max_diffuse_loop: int
    max_sample_num: int
    max_influence: int
    max_fall_off: float
    sharpness: float
    detect_solidify: bool

    def __post_init__(self):
        for name in _INT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidConfigError(f"Option {name} must be an integer, got {value!r}")
        for name in _FLOAT_FIELDS:
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise InvalidConfigError(f"Option {name} must be a number, got {value!r}")
            if not math.isfinite(value):
                raise InvalidConfigError(f"Option {name} must be finite, got {value!r}")
        if not isinstance(self.detect_solidify, bool):
            raise InvalidConfigError(
                f"Option detect_solidify must be a boolean, got {self.detect_solidify!r}"
            )

        if self.max_grid_num < MIN_GRID_NUM:
            raise InvalidConfigError(f"max_grid_num must be >= {MIN_GRID_NUM}, got {self.max_grid_num}")
        if self.max_diffuse_loop < 0:
            raise InvalidConfigError(f"max_diffuse_loop must be >= 0, got {self.max_diffuse_loop}")
        if self.max_sample_num < MIN_SAMPLE_NUM:
            raise InvalidConfigError(
                f"max_sample_num must be >= {MIN_SAMPLE_NUM}, got {self.max_sample_num}"
            )
        if self.max_influence < 1:
            raise InvalidConfigError(f"max_influence must be >= 1, got {self.max_influence}")
        if not 0.0 <= self.max_fall_off <= 1.0:
            raise InvalidConfigError(f"max_fall_off must be in [0, 1], got {self.max_fall_off}")
        if self.sharpness < 0.0:
            raise InvalidConfigError(f"sharpness must be >= 0, got {self.sharpness}")

    @classmethod
    def from_dict(cls, options: Mapping[str, Any]) -> "SolverConfig":
        """Build from host options (camelCase as in OPTION_NAMES, or snake_case).

        All seven options are required; unknown keys are rejected.
        """
        field_names = {f.name for f in fields(cls)}
        values: dict[str, Any] = {}
        for key, value in options.items():
            name = _FIELD_FOR_OPTION.get(key, key)
            if name not in field_names:
                raise InvalidConfigError(f"Unknown solver option: {key!r}")
            if name in values:
                raise InvalidConfigError(f"Solver option given twice: {key!r}")
            values[name] = _coerce(name, value)

        missing = [opt for opt in OPTION_NAMES if _FIELD_FOR_OPTION[opt] not in values]
        if missing:
            raise InvalidConfigError(f"Missing solver options: {', '.join(missing)}")
        return cls(**values)

    @classmethod
    def reference(cls) -> "SolverConfig":
        """Options of the reference tapered-cylinder demo."""
        return cls.from_dict(REFERENCE_OPTIONS)

    def to_dict(self) -> dict[str, Any]:
        """Host-facing (camelCase) option mapping."""
        return {opt: getattr(self, _FIELD_FOR_OPTION[opt]) for opt in OPTION_NAMES}


def _coerce(name: str, value: Any) -> Any:
    """Accept integral floats for integer options (JSON/JS numbers)."""
    if name in _INT_FIELDS and isinstance(value, float) and value.is_integer():
        return int(value)
    if name in _FLOAT_FIELDS and isinstance(value, int) and not isinstance(value, bool):
        return float(value)
    # numpy scalars from array-backed hosts
    if hasattr(value, "item") and not isinstance(value, (bool, int, float)):
        return _coerce(name, value.item())
    return value
