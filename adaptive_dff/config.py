"""Processing defaults loaded from the project configuration file."""

from __future__ import annotations

import json
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any

from .deltaf import FILTER_METHODS
from .parameters import USE_DEFAULT, TauSpec, validate_tau_spec

CONFIG_SECTION = "adaptive_dff"


@dataclass(frozen=True)
class ProcessingDefaults:
    """Default pipeline settings, overridable per call."""

    tau: TauSpec = USE_DEFAULT
    method: str = "cpu"
    gpu_memory_gb: float = 8.0


@lru_cache(maxsize=None)
def _load_config(config_path: str | Path = "config.json") -> dict[str, Any]:
    """Load and cache the project configuration file."""
    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Config file not found at {config_file}")

    with config_file.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_processing_defaults(config_path: str | Path = "config.json") -> ProcessingDefaults:
    """
    Read the ``adaptive_dff`` section of the configuration file.

    Parameters
    ----------
    config_path : str | Path, optional
        Path to the configuration file (default: ``config.json``).

    Returns
    -------
    ProcessingDefaults
        Settings from the file, falling back to built-in defaults for missing keys.
    """
    config = _load_config(config_path)
    section = config.get(CONFIG_SECTION, {})
    if not isinstance(section, dict):
        raise ValueError(f"'{CONFIG_SECTION}' section of {config_path} must be a JSON object")

    builtin = ProcessingDefaults()

    tau = section.get("tau", builtin.tau)
    if isinstance(tau, list):
        tau = tuple(tau)
    validate_tau_spec(tau)

    method = section.get("method", builtin.method)
    if method not in FILTER_METHODS:
        raise ValueError(
            f"Unknown method {method!r} in {config_path}; expected one of {FILTER_METHODS}"
        )

    gpu_memory_gb = float(section.get("gpu_memory_gb", builtin.gpu_memory_gb))

    return ProcessingDefaults(tau=tau, method=method, gpu_memory_gb=gpu_memory_gb)
