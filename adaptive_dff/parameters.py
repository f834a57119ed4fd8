"""Time-constant resolution and input validation for the adaptive ΔF/F pipeline."""

from __future__ import annotations

import math
import numbers
from dataclasses import dataclass
from typing import Sequence, Tuple, Union

import numpy as np

from .errors import (
    InvalidParameterError,
    InvalidSamplingPeriodError,
    InvalidShapeError,
    InvalidTauSpecError,
)

TauSpec = Union[int, float, Sequence[float], np.ndarray]

DEFAULT_TAU1_FACTOR = 22.5
DEFAULT_TAU2_FACTOR = 90.0
DEFAULT_TAU0_FACTOR = 6.0

USE_DEFAULT = -1
DISABLE_FILTER = 0


@dataclass(frozen=True)
class ResolvedTaus:
    """Concrete time constants in seconds (smoothing, baseline, noise filter)."""

    tau1: float
    tau2: float
    tau0: float

    @property
    def noise_filter_enabled(self) -> bool:
        return self.tau0 > 0


@dataclass(frozen=True)
class WindowSizes:
    """Window sizes in samples derived from the time constants."""

    half_window: int
    baseline_window: int


def round_half_away(value: float) -> int:
    """Round to the nearest integer, ties away from zero."""
    magnitude = abs(value)
    whole = math.floor(magnitude)
    if magnitude - whole >= 0.5:
        whole += 1
    return int(math.copysign(whole, value))


def _is_real_scalar(value) -> bool:
    if isinstance(value, (bool, np.bool_)):
        return False
    return isinstance(value, numbers.Real)


def validate_image_series(raw_data) -> np.ndarray:
    """
    Check that the image series is a 4-D real-valued array with a time axis.

    Parameters
    ----------
    raw_data : array_like
        Calcium imaging series (dim1, dim2, dim3, time).

    Returns
    -------
    np.ndarray
        The input as an ndarray (no copy when already an array).
    """
    try:
        array = np.asarray(raw_data)
    except (TypeError, ValueError) as exc:
        raise InvalidShapeError(f"Image series could not be converted to an array: {exc}") from exc

    if array.ndim != 4:
        raise InvalidShapeError(
            f"Image series must have 4 axes (dim1, dim2, dim3, time), got shape {array.shape}"
        )
    if array.dtype == np.bool_ or not (
        np.issubdtype(array.dtype, np.integer) or np.issubdtype(array.dtype, np.floating)
    ):
        raise InvalidShapeError(f"Image series must be numeric, got dtype {array.dtype}")
    if array.shape[-1] < 1:
        raise InvalidShapeError("Image series must contain at least one time point")
    return array


def validate_sampling_period(sampling_period) -> float:
    """Return the sampling period as a float, rejecting non-positive values."""
    if isinstance(sampling_period, np.ndarray) and sampling_period.ndim == 0:
        sampling_period = sampling_period.item()
    if not _is_real_scalar(sampling_period):
        raise InvalidSamplingPeriodError(
            f"Sampling period must be a numeric scalar, got {sampling_period!r}"
        )
    value = float(sampling_period)
    if not math.isfinite(value) or value <= 0:
        raise InvalidSamplingPeriodError(
            f"Sampling period must be positive and finite, got {sampling_period!r}"
        )
    return value


def validate_tau_spec(tau: TauSpec) -> Union[float, Tuple[float, float, float]]:
    """
    Normalize a tau argument to either a scalar sentinel or a 3-tuple.

    Accepted forms are the scalar -1 (all defaults), the scalar 0 (defaults
    without noise filtering) and a sequence ``(tau1, tau2, tau0)`` whose
    entries are each >= 0 or exactly -1. A one-element sequence holding -1 or
    0 counts as the scalar form.
    """
    if isinstance(tau, (str, bytes)):
        raise InvalidTauSpecError(f"tau must be numeric, got {tau!r}")

    if isinstance(tau, np.ndarray) and tau.ndim == 0:
        tau = tau.item()

    if _is_real_scalar(tau):
        value = float(tau)
        if value not in (USE_DEFAULT, DISABLE_FILTER):
            raise InvalidTauSpecError(
                f"Scalar tau must be -1 (defaults) or 0 (no noise filter), got {tau!r}"
            )
        return value

    try:
        values = list(tau)
    except TypeError as exc:
        raise InvalidTauSpecError(f"tau must be a scalar or a 3-element sequence, got {tau!r}") from exc

    if not all(_is_real_scalar(item) for item in values):
        raise InvalidTauSpecError(f"tau entries must be real numbers, got {tau!r}")

    if len(values) == 1:
        return validate_tau_spec(values[0])

    if len(values) != 3:
        raise InvalidTauSpecError(
            f"tau sequence must have 3 entries (tau1, tau2, tau0), got {len(values)}"
        )

    floats = tuple(float(item) for item in values)
    for name, value in zip(("tau1", "tau2", "tau0"), floats):
        if not (value == USE_DEFAULT or value >= 0) or math.isinf(value):
            raise InvalidTauSpecError(f"{name} must be >= 0 or -1, got {value!r}")
    return floats


def resolve_taus(sampling_period: float, tau: TauSpec = USE_DEFAULT) -> ResolvedTaus:
    """
    Substitute defaults for sentinel entries of a tau argument.

    Defaults follow Jia et al. (2011): tau1 = 22.5*sp, tau2 = 90*sp, tau0 = 6*sp.
    """
    sp = validate_sampling_period(sampling_period)
    spec = validate_tau_spec(tau)

    defaults = (
        DEFAULT_TAU1_FACTOR * sp,
        DEFAULT_TAU2_FACTOR * sp,
        DEFAULT_TAU0_FACTOR * sp,
    )

    if spec == USE_DEFAULT:
        return ResolvedTaus(*defaults)
    if spec == DISABLE_FILTER:
        return ResolvedTaus(defaults[0], defaults[1], 0.0)

    resolved = [
        default if value == USE_DEFAULT else value
        for value, default in zip(spec, defaults)
    ]
    return ResolvedTaus(*resolved)


def compute_window_sizes(taus: ResolvedTaus, sampling_period: float) -> WindowSizes:
    """Convert tau1 and tau2 into sample counts, rejecting jointly degenerate windows."""
    sp = validate_sampling_period(sampling_period)
    half_window = round_half_away(0.5 * (taus.tau1 - sp) / sp)
    baseline_window = round_half_away(taus.tau2 / sp)

    if half_window < 0 and baseline_window < 2:
        raise InvalidParameterError(
            "Some tau coefficients are too small: "
            f"tau1={taus.tau1:g}s gives half window {half_window}, "
            f"tau2={taus.tau2:g}s gives baseline window {baseline_window}"
        )
    return WindowSizes(half_window=half_window, baseline_window=baseline_window)


def resolve_parameters(
    sampling_period: float,
    tau: TauSpec = USE_DEFAULT,
) -> Tuple[ResolvedTaus, WindowSizes]:
    """Resolve a tau argument into concrete time constants and window sizes."""
    taus = resolve_taus(sampling_period, tau)
    windows = compute_window_sizes(taus, sampling_period)
    return taus, windows
