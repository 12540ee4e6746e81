"""TOML config loader: built-in defaults + defaults.toml + per-file overrides."""

import copy
import tomllib
from dataclasses import dataclass
from pathlib import Path

import tomli_w

from .constants import DEFAULT_MAX_TOTAL_STEPS, DEFAULT_STEP_DURATION, DEFAULT_TOTAL_STEPS

DEFAULTS_PATH = Path(__file__).parent.parent.parent.parent / "config" / "defaults.toml"

BUILTIN_DEFAULTS: dict = {
    "task": {
        "total_steps": DEFAULT_TOTAL_STEPS,
        "step_duration": DEFAULT_STEP_DURATION,
        "max_total_steps": DEFAULT_MAX_TOTAL_STEPS,
    },
    "server": {
        "host": "127.0.0.1",
        "port": 8000,
    },
    "client": {
        "base_url": "http://127.0.0.1:8000",
        "stop_timeout": 5.0,
    },
    "logging": {
        "level": "INFO",
    },
}


@dataclass(frozen=True)
class TaskSettings:
    """Validated per-task executor settings."""
    total_steps: int
    step_duration: float
    max_total_steps: int


def load_defaults() -> dict:
    """Load the global defaults.toml, merged over the built-in defaults."""
    config = copy.deepcopy(BUILTIN_DEFAULTS)
    if DEFAULTS_PATH.exists():
        with open(DEFAULTS_PATH, "rb") as f:
            _deep_merge(config, tomllib.load(f))
    return config


def save_defaults(config: dict) -> None:
    """Write the global defaults.toml."""
    DEFAULTS_PATH.parent.mkdir(parents=True, exist_ok=True)
    with open(DEFAULTS_PATH, "wb") as f:
        tomli_w.dump(config, f)


def load_config(path: Path | None) -> dict:
    """Load a TOML override file merged over defaults. Missing file = defaults."""
    config = load_defaults()
    if path is not None and path.exists():
        with open(path, "rb") as f:
            overrides = tomllib.load(f)
        _deep_merge(config, overrides)
    return config


def task_settings(config: dict, total_steps: int | None = None) -> TaskSettings:
    """Build TaskSettings from a config dict, raising ValueError on bad values.

    ``total_steps`` overrides the configured step count (e.g. from a request).
    """
    task = config.get("task", {})
    max_total = task.get("max_total_steps", DEFAULT_MAX_TOTAL_STEPS)
    steps = total_steps if total_steps is not None else task.get("total_steps", DEFAULT_TOTAL_STEPS)
    duration = task.get("step_duration", DEFAULT_STEP_DURATION)

    if not isinstance(max_total, int) or max_total < 1:
        raise ValueError(f"task.max_total_steps must be a positive integer, got {max_total!r}")
    if not isinstance(steps, int) or isinstance(steps, bool) or not 1 <= steps <= max_total:
        raise ValueError(f"task.total_steps must be between 1 and {max_total}, got {steps!r}")
    if not isinstance(duration, (int, float)) or duration < 0:
        raise ValueError(f"task.step_duration must be >= 0, got {duration!r}")

    return TaskSettings(
        total_steps=steps,
        step_duration=float(duration),
        max_total_steps=max_total,
    )


def _deep_merge(base: dict, override: dict) -> None:
    """Merge override into base in-place, recursing into dicts."""
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
