"""
Processing Configuration for Lap Telemetry Analysis

This module holds the tunable thresholds used by the normalizers, the signal
conditioner and the lap segmenter, and loads overrides from TOML files.
"""

import tomllib
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

_PROJECT_FILENAME = "pyproject.toml"
_SECTION = "laptrace"


@dataclass(frozen=True)
class ProcessingConfig:
    """
    Thresholds shared by the parsing and analysis pipeline.

    Attributes:
        max_plausible_speed_mps: Teleportation ceiling. A fix implying a speed
            above this versus the last accepted fix is dropped, as is any fix
            reporting a speed at or above it.
        min_crossing_interval_ms: Minimum time between two accepted crossings
            of the same course line.
        gforce_window: Moving-average width applied to derived g-forces.
        glitch_speed_threshold: Speeds below this count as a dropout.
        glitch_max_samples: Longest dropout run repaired by interpolation.
        sector_tolerance_ms: Allowed mismatch between s1+s2+s3 and lap time.
    """

    max_plausible_speed_mps: float = 100.0
    min_crossing_interval_ms: float = 10000.0
    gforce_window: int = 5
    glitch_speed_threshold: float = 1.0
    glitch_max_samples: int = 3
    sector_tolerance_ms: float = 1.0

    def with_overrides(self, overrides: Mapping[str, Any]) -> "ProcessingConfig":
        """
        Return a copy of this config with the given keys replaced.

        Raises:
            ValueError: If a key is not a known configuration field.
        """
        known = {f.name for f in fields(self)}
        unknown = sorted(set(overrides) - known)
        if unknown:
            raise ValueError(f"Unknown laptrace config keys: {', '.join(unknown)}")

        coerced = {}
        for key, value in overrides.items():
            default = getattr(self, key)
            coerced[key] = int(value) if isinstance(default, int) else float(value)
        return replace(self, **coerced)


DEFAULT_CONFIG = ProcessingConfig()


def _load_toml(path: Path) -> Dict[str, Any]:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def load_config(path: Path) -> ProcessingConfig:
    """
    Load processing thresholds from a TOML file.

    Reads the ``[tool.laptrace]`` table when ``path`` is a ``pyproject.toml``
    (or a directory containing one), otherwise a top-level ``[laptrace]``
    table. Missing files or tables yield the defaults.

    Args:
        path: TOML file or project directory.

    Returns:
        ProcessingConfig with any overrides applied.

    Raises:
        ValueError: If the table contains unknown keys.
    """
    path = Path(path).expanduser()
    if path.is_dir():
        path = path / _PROJECT_FILENAME
    if not path.exists():
        return DEFAULT_CONFIG

    payload = _load_toml(path)
    if path.name == _PROJECT_FILENAME:
        section = payload.get("tool", {}).get(_SECTION)
    else:
        section = payload.get(_SECTION)

    if not isinstance(section, Mapping):
        return DEFAULT_CONFIG
    return DEFAULT_CONFIG.with_overrides(section)


def resolve_config(config: Optional[ProcessingConfig]) -> ProcessingConfig:
    """Return ``config`` or the defaults when it is None."""
    return DEFAULT_CONFIG if config is None else config
