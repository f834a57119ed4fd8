"""Temporal smoothing stage of the adaptive ΔF/F pipeline."""

import numpy as np


def smoothing_windows(n_timepoints, half_window):
    """
    Compute the averaging window for every time point.

    Windows are symmetric around the time point and truncated at the series
    boundaries. Indices are 1-based and inclusive.

    Parameters
    ----------
    n_timepoints : int
        Length of the time axis.
    half_window : int
        Number of samples on each side of the center sample. Values
        larger than the series are clamped to its length.

    Returns
    -------
    tuple[np.ndarray, np.ndarray, np.ndarray]
        Window start, window stop, and a boolean mask of time points that are
        averaged. Unmatched time points keep their raw value.
    """
    # any half window >= n_timepoints leaves every time point unmatched
    half_window = min(int(half_window), n_timepoints)
    index = np.arange(1, n_timepoints + 1)
    low = index - half_window
    high = index + half_window

    inner = (low > 0) & (high < n_timepoints)
    head = (low <= 0) & (high < n_timepoints)
    tail = (high >= n_timepoints) & (low > 0)

    start = np.where(head, 1, low)
    stop = np.where(tail, n_timepoints, high)
    matched = (inner | head | tail) & (start <= stop)
    return start, stop, matched


def smooth_traces(raw_data, half_window, verbose=False):
    """
    Moving-average smoothing along the time (last) axis.

    Parameters
    ----------
    raw_data : np.ndarray
        Raw fluorescence series (dim1, dim2, dim3, time).
    half_window : int
        Half width of the averaging window in samples, excluding the center.
        Negative values produce empty windows, i.e. no smoothing.
    verbose : bool
        Print a short summary of the smoothing step.

    Returns
    -------
    np.ndarray
        Smoothed series in float64 with the same shape as ``raw_data``.
    """
    data = np.asarray(raw_data, dtype=np.float64)
    n_timepoints = data.shape[-1]
    start, stop, matched = smoothing_windows(n_timepoints, half_window)

    smoothed = np.empty_like(data)
    passthrough = ~matched
    smoothed[..., passthrough] = data[..., passthrough]

    if np.any(matched):
        start_m = start[matched]
        stop_m = stop[matched]
        counts = (stop_m - start_m + 1).astype(np.float64)

        finite = np.isfinite(data)
        sums = _window_totals(np.where(finite, data, 0.0), start_m, stop_m)
        n_nan = _window_totals(np.isnan(data), start_m, stop_m)
        n_pos = _window_totals(data == np.inf, start_m, stop_m)
        n_neg = _window_totals(data == -np.inf, start_m, stop_m)

        # non-finite samples only affect the windows that contain them
        means = sums / counts
        means[n_neg > 0] = -np.inf
        means[n_pos > 0] = np.inf
        means[(n_nan > 0) | ((n_pos > 0) & (n_neg > 0))] = np.nan
        smoothed[..., matched] = means

    if verbose:
        n_matched = int(np.count_nonzero(matched))
        print(
            f"Smoothed {n_matched}/{n_timepoints} time points "
            f"(window length {2 * min(half_window, n_timepoints) + 1 if half_window >= 0 else 0})"
        )
        if n_matched < n_timepoints:
            print(f"  {n_timepoints - n_matched} time points kept their raw values")

    return smoothed


def _window_totals(values, start, stop):
    """Sum ``values`` over 1-based inclusive windows along the last axis."""
    dtype = np.int64 if values.dtype == np.bool_ else np.float64
    # cumulative[..., k] holds the sum of the first k samples
    cumulative = np.zeros(values.shape[:-1] + (values.shape[-1] + 1,), dtype=dtype)
    np.cumsum(values, axis=-1, dtype=dtype, out=cumulative[..., 1:])
    return cumulative[..., stop] - cumulative[..., start - 1]
