"""ΔF/F computation and causal exponential noise filtering."""

import numpy as np
from tqdm import tqdm

from .errors import InvalidParameterError, ZeroBaselineError


FILTER_METHODS = ("cpu", "gpu")


def compute_raw_dff(raw_data, baseline, strict=False):
    """
    Relative fluorescence change against the baseline.

    Parameters
    ----------
    raw_data : np.ndarray
        Raw (unsmoothed) fluorescence series.
    baseline : np.ndarray
        Baseline series of the same shape.
    strict : bool
        Raise ``ZeroBaselineError`` instead of producing non-finite values
        where the baseline is zero or non-finite.

    Returns
    -------
    np.ndarray
        Unfiltered ΔF/F. Zero baselines yield inf/nan in the affected cells.
    """
    raw = np.asarray(raw_data, dtype=np.float64)
    baseline = np.asarray(baseline, dtype=np.float64)

    if strict:
        bad = (baseline == 0) | ~np.isfinite(baseline)
        n_bad = int(np.count_nonzero(bad))
        if n_bad:
            raise ZeroBaselineError(
                f"Baseline is zero or non-finite in {n_bad:,} of {baseline.size:,} cells"
            )

    with np.errstate(divide="ignore", invalid="ignore"):
        return (raw - baseline) / baseline


def exponential_weights(n_samples, sampling_period, tau0):
    """
    Normalized causal filter weights for lags 0..n_samples-1.

    Lag 0 is the current sample. The unnormalized weight of a lag of ``tau0``
    seconds is e^-1. This is the explicit weight vector that the recursive
    CPU and GPU filters apply at time point ``n_samples``; use it to inspect
    or check the filter kernel.
    """
    lags = sampling_period * np.arange(n_samples, dtype=np.float64)
    weights = np.exp(-lags / tau0)
    return weights / weights.sum()


def causal_exponential_filter_cpu(raw_dff, sampling_period, tau0, verbose=False):
    """
    Causal, renormalized exponential moving average along the time axis.

    Output at time i is the weighted mean of samples 1..i with weights
    exp(-sp*k/tau0) for lag k, renormalized by the partial weight sum. The
    weighted sums are accumulated recursively, one time point at a time.

    Parameters
    ----------
    raw_dff : np.ndarray
        Unfiltered ΔF/F (dim1, dim2, dim3, time).
    sampling_period : float
        Seconds per sample.
    tau0 : float
        Filter time constant in seconds (> 0).
    verbose : bool
        Show a progress bar over time points.

    Returns
    -------
    np.ndarray
        Filtered ΔF/F with the same shape as ``raw_dff``.
    """
    data = np.asarray(raw_dff, dtype=np.float64)
    n_timepoints = data.shape[-1]
    decay = np.exp(-sampling_period / tau0)

    filtered = np.empty_like(data)
    weighted_sum = np.zeros(data.shape[:-1], dtype=np.float64)
    weight_total = 0.0

    for t in tqdm(range(n_timepoints), desc="Noise filtering", disable=not verbose):
        weighted_sum = data[..., t] + decay * weighted_sum
        weight_total = 1.0 + decay * weight_total
        filtered[..., t] = weighted_sum / weight_total

    return filtered


def causal_exponential_filter_gpu(
    raw_dff, sampling_period, tau0, gpu_memory_gb=8.0, verbose=False
):
    """
    GPU version of ``causal_exponential_filter_cpu`` using Taichi.

    Each voxel trace is filtered by its own GPU thread. Voxels are processed in
    chunks sized to fit the requested memory budget. Computation is float32.

    Parameters
    ----------
    raw_dff : np.ndarray
        Unfiltered ΔF/F (dim1, dim2, dim3, time).
    sampling_period : float
        Seconds per sample.
    tau0 : float
        Filter time constant in seconds (> 0).
    gpu_memory_gb : float
        GPU memory limit.
    verbose : bool
        Print chunking information.

    Returns
    -------
    np.ndarray
        Filtered ΔF/F with the same shape as ``raw_dff`` (float64).
    """
    try:
        import taichi as ti
    except ImportError as exc:  # pragma: no cover - import failure
        raise RuntimeError("Taichi is required for GPU noise filtering.") from exc

    data = np.asarray(raw_dff, dtype=np.float64)
    original_shape = data.shape
    n_timepoints = original_shape[-1]
    traces = data.reshape(-1, n_timepoints).T  # (timepoints, voxels)
    n_voxels = traces.shape[1]
    decay = float(np.exp(-sampling_period / tau0))

    if n_voxels == 0:
        return data.copy()

    try:
        ti.init(arch=ti.gpu, device_memory_GB=gpu_memory_gb)
        if verbose:
            print(f"Taichi initialized with {gpu_memory_gb:.1f} GB memory")

        memory_per_voxel = n_timepoints * 4 * 2  # input and output arrays (float32)
        usable_memory = gpu_memory_gb * 0.8 * 1024**3  # Use 80% of GPU memory
        max_voxels_per_chunk = max(1, int(usable_memory / memory_per_voxel))

        filtered = np.empty_like(traces)

        n_chunks = (n_voxels + max_voxels_per_chunk - 1) // max_voxels_per_chunk
        chunk_size = (n_voxels + n_chunks - 1) // n_chunks

        if verbose:
            print(f"  Filtering {n_voxels:,} voxels in {n_chunks} chunk(s) of ~{chunk_size:,}")

        for chunk_idx in range(n_chunks):
            start_idx = chunk_idx * chunk_size
            end_idx = min(start_idx + chunk_size, n_voxels)

            if verbose and n_chunks > 1:
                print(
                    f"  Processing chunk {chunk_idx + 1}/{n_chunks}: "
                    f"voxels {start_idx}-{end_idx - 1}"
                )

            filtered[:, start_idx:end_idx] = _filter_gpu_chunk(
                ti, traces[:, start_idx:end_idx], decay
            )

            if chunk_idx < n_chunks - 1:
                ti.reset()
                ti.init(arch=ti.gpu, device_memory_GB=gpu_memory_gb)

        return filtered.T.reshape(original_shape)

    except Exception as exc:  # pragma: no cover - failure path
        print(f"GPU noise filtering failed: {exc}")
        raise

    finally:
        ti.reset()


def _filter_gpu_chunk(ti, traces, decay):
    """Filter a (timepoints, voxels) chunk with one Taichi thread per voxel."""
    n_timepoints, n_voxels = traces.shape

    data_ti = ti.field(dtype=ti.f32, shape=(n_timepoints, n_voxels))
    result_ti = ti.field(dtype=ti.f32, shape=(n_timepoints, n_voxels))
    data_ti.from_numpy(np.ascontiguousarray(traces, dtype=np.float32))

    @ti.kernel
    def filter_traces():
        for voxel_idx in range(n_voxels):
            weighted_sum = 0.0
            weight_total = 0.0
            for t in range(n_timepoints):
                weighted_sum = data_ti[t, voxel_idx] + decay * weighted_sum
                weight_total = 1.0 + decay * weight_total
                result_ti[t, voxel_idx] = weighted_sum / weight_total

    filter_traces()
    ti.sync()

    result = result_ti.to_numpy().astype(np.float64)
    del data_ti, result_ti
    return result


def noise_filter(
    raw_dff,
    sampling_period,
    tau0,
    method="cpu",
    gpu_memory_gb=8.0,
    verbose=False,
):
    """
    Apply the causal exponential noise filter, or bypass it when ``tau0 == 0``.

    Parameters
    ----------
    raw_dff : np.ndarray
        Unfiltered ΔF/F.
    sampling_period : float
        Seconds per sample.
    tau0 : float
        Filter time constant in seconds. 0 disables filtering.
    method : str
        'cpu' or 'gpu'.
    gpu_memory_gb : float
        GPU memory limit for the 'gpu' method.
    verbose : bool
        Print progress information.

    Returns
    -------
    np.ndarray
        Filtered ΔF/F (the input array itself when bypassed).
    """
    if method not in FILTER_METHODS:
        raise ValueError(f"Unknown noise filter method {method!r}; expected one of {FILTER_METHODS}")
    if tau0 < 0:
        raise InvalidParameterError(f"tau0 must be >= 0, got {tau0!r}")

    if tau0 == 0:
        if verbose:
            print("Noise filtering skipped (tau0=0), using raw ΔF/F")
        return raw_dff

    if verbose:
        print(f"Noise filtering with {method.upper()} (tau0={tau0:g}s, sp={sampling_period:g}s)")

    if method == "gpu":
        return causal_exponential_filter_gpu(
            raw_dff,
            sampling_period,
            tau0,
            gpu_memory_gb=gpu_memory_gb,
            verbose=verbose,
        )
    return causal_exponential_filter_cpu(raw_dff, sampling_period, tau0, verbose=verbose)
