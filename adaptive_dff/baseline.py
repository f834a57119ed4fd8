"""Local-minimum baseline estimation."""

import numpy as np
from scipy import ndimage


def effective_baseline_window(baseline_window, n_timepoints):
    """Clamp the baseline window to the range [1, n_timepoints]."""
    return int(min(max(baseline_window, 1), n_timepoints))


def local_minimum_baseline(smoothed, baseline_window, verbose=False):
    """
    Baseline as the minimum of the smoothed trace over a trailing window.

    For time points ``i >= w`` the baseline is the minimum over samples
    ``[i - w + 1, i]``. Earlier time points reuse the first complete minimum.
    NaN samples are skipped, as in a NaN-ignoring minimum; a window with no
    other samples gives NaN.

    Parameters
    ----------
    smoothed : np.ndarray
        Smoothed fluorescence series (dim1, dim2, dim3, time).
    baseline_window : int
        Trailing window length in samples. Clamped to the series length.
    verbose : bool
        Print a short summary of the baseline step.

    Returns
    -------
    np.ndarray
        Baseline series with the same shape as ``smoothed``.
    """
    data = np.asarray(smoothed, dtype=np.float64)
    n_timepoints = data.shape[-1]
    window = effective_baseline_window(baseline_window, n_timepoints)

    if verbose:
        print(f"Computing local-minimum baseline (window={window} samples)")
        if window != baseline_window:
            print(
                f"  Requested window {baseline_window} clamped to series length "
                f"range [1, {n_timepoints}]"
            )

    if window == 1:
        return data.copy()

    nan_mask = np.isnan(data)
    baseline = _trailing_minimum(np.where(nan_mask, np.inf, data), window)
    if np.any(nan_mask):
        all_nan = _trailing_minimum(nan_mask.astype(np.uint8), window).astype(bool)
        baseline[all_nan] = np.nan

    baseline[..., : window - 1] = baseline[..., window - 1 : window]
    return baseline


def _trailing_minimum(values, window):
    """Minimum over ``[i - window + 1, i]`` along the last axis."""
    # positive origin shifts the window left so it ends at the current sample
    return ndimage.minimum_filter1d(
        values,
        size=window,
        axis=-1,
        mode="nearest",
        origin=(window - 1) // 2,
    )
