"""Adaptive ΔF/F processing package."""

from .baseline import local_minimum_baseline
from .config import ProcessingDefaults, load_processing_defaults
from .deltaf import (
    causal_exponential_filter_cpu,
    causal_exponential_filter_gpu,
    compute_raw_dff,
    exponential_weights,
    noise_filter,
)
from .errors import (
    AdaptiveDFFError,
    InvalidParameterError,
    InvalidSamplingPeriodError,
    InvalidShapeError,
    InvalidTauSpecError,
    ZeroBaselineError,
)
from .parameters import (
    ResolvedTaus,
    WindowSizes,
    compute_window_sizes,
    resolve_parameters,
    resolve_taus,
)
from .pipeline import adaptive_dff, three_stage_adaptive_pipeline
from .smoothing import smooth_traces

__all__ = [
    "adaptive_dff",
    "three_stage_adaptive_pipeline",
    "resolve_taus",
    "compute_window_sizes",
    "resolve_parameters",
    "ResolvedTaus",
    "WindowSizes",
    "smooth_traces",
    "local_minimum_baseline",
    "compute_raw_dff",
    "exponential_weights",
    "noise_filter",
    "causal_exponential_filter_cpu",
    "causal_exponential_filter_gpu",
    "ProcessingDefaults",
    "load_processing_defaults",
    "AdaptiveDFFError",
    "InvalidShapeError",
    "InvalidSamplingPeriodError",
    "InvalidTauSpecError",
    "InvalidParameterError",
    "ZeroBaselineError",
]
