import json

import numpy as np
import pytest

from adaptive_dff import (
    InvalidParameterError,
    InvalidSamplingPeriodError,
    InvalidShapeError,
    InvalidTauSpecError,
    ZeroBaselineError,
    adaptive_dff,
    compute_raw_dff,
    local_minimum_baseline,
    noise_filter,
    smooth_traces,
    three_stage_adaptive_pipeline,
)


def _reference_adaptive_dff(raw, sp, tau1, tau2, tau0):
    """Straightforward loop implementation of the three stages."""
    n = raw.shape[-1]
    h = int(np.floor(0.5 * (tau1 - sp) / sp + 0.5))
    w = int(np.floor(tau2 / sp + 0.5))

    smoothed = raw.astype(float).copy()
    for i in range(1, n + 1):
        if i - h > 0 and i + h < n:
            smoothed[..., i - 1] = raw[..., i - h - 1 : i + h].mean(axis=-1)
        elif i - h <= 0 and i + h < n:
            smoothed[..., i - 1] = raw[..., : i + h].mean(axis=-1)
        elif i + h >= n and i - h > 0:
            smoothed[..., i - 1] = raw[..., i - h - 1 :].mean(axis=-1)

    baseline = smoothed.copy()
    for i in range(w, n + 1):
        baseline[..., i - 1] = smoothed[..., i - w : i].min(axis=-1)
    baseline[..., : w - 1] = baseline[..., w - 1 : w]

    raw_dff = (raw - baseline) / baseline
    if tau0 == 0:
        return raw_dff

    filtered = np.empty_like(raw_dff)
    for i in range(1, n + 1):
        weights = np.exp(-sp * np.arange(i)[::-1] / tau0)
        filtered[..., i - 1] = np.sum(raw_dff[..., :i] * weights / weights.sum(), axis=-1)
    return filtered


def test_matches_reference_implementation():
    rng = np.random.default_rng(42)
    raw = rng.uniform(80, 120, size=(2, 3, 2, 30))
    result = adaptive_dff(raw, 1.0, (7.0, 8.0, 3.0))
    expected = _reference_adaptive_dff(raw, 1.0, 7.0, 8.0, 3.0)
    np.testing.assert_allclose(result, expected, rtol=1e-9, atol=1e-12)


def test_default_parameters_match_reference():
    rng = np.random.default_rng(0)
    raw = rng.uniform(50, 60, size=(1, 2, 2, 200))
    sp = 0.1
    result = adaptive_dff(raw, sp)
    expected = _reference_adaptive_dff(raw, sp, 22.5 * sp, 90 * sp, 6 * sp)
    np.testing.assert_allclose(result, expected, rtol=1e-9, atol=1e-12)


@pytest.mark.parametrize("shape", [(1, 1, 1, 1), (2, 3, 4, 50), (5, 1, 2, 120)])
def test_output_shape_matches_input(shape):
    raw = np.random.default_rng(2).uniform(100, 200, size=shape)
    assert adaptive_dff(raw, 0.1).shape == shape


def test_short_series_with_default_windows():
    raw = np.array([100, 110, 90, 105, 95], dtype=float).reshape(1, 1, 1, 5)
    result = adaptive_dff(raw, 1, [-1, -1, 0])
    expected = (raw - 90.0) / 90.0
    np.testing.assert_allclose(result, expected)


def test_disabled_noise_filter_returns_raw_dff():
    rng = np.random.default_rng(4)
    raw = rng.uniform(100, 150, size=(2, 2, 1, 60))
    _, pipeline_baseline, _ = three_stage_adaptive_pipeline(raw, 0.2, 0, verbose=False)

    smoothed = smooth_traces(raw, 11)
    baseline = local_minimum_baseline(smoothed, 90)
    np.testing.assert_array_equal(pipeline_baseline, baseline)
    np.testing.assert_array_equal(adaptive_dff(raw, 0.2, 0), compute_raw_dff(raw, baseline))


def test_single_time_point_with_filter():
    raw = np.array([3.0, 4.0, 5.0, 6.0]).reshape(2, 2, 1, 1)
    result = adaptive_dff(raw, 1.0, (1.0, 2.0, 1.0))
    np.testing.assert_array_equal(result, np.zeros_like(raw))


def test_zero_baseline_gives_non_finite_values():
    raw = np.ones((1, 2, 1, 10))
    raw[0, 0] = 0.0
    result = adaptive_dff(raw, 1.0, (3.0, 4.0, 2.0))
    assert np.isnan(result[0, 0]).all()
    assert np.isfinite(result[0, 1]).all()


def test_strict_mode_raises_on_zero_baseline():
    raw = np.ones((1, 2, 1, 10))
    raw[0, 0] = 0.0
    with pytest.raises(ZeroBaselineError):
        adaptive_dff(raw, 1.0, (3.0, 4.0, 2.0), strict=True)


def test_integer_input():
    raw = np.random.default_rng(6).integers(100, 1000, size=(2, 2, 2, 40)).astype(np.uint16)
    result = adaptive_dff(raw, 0.5)
    assert result.dtype == np.float64
    assert np.isfinite(result).all()


@pytest.mark.parametrize(
    "raw, sp, tau, error",
    [
        (np.ones((4, 4, 10)), 0.1, -1, InvalidShapeError),
        (np.ones((1, 1, 1, 10)), 0.0, -1, InvalidSamplingPeriodError),
        (np.ones((1, 1, 1, 10)), 0.1, (1.0, 2.0), InvalidTauSpecError),
        (np.ones((1, 1, 1, 10)), 1.0, (0.0, 1.0, 0.0), InvalidParameterError),
    ],
)
def test_invalid_inputs_rejected(raw, sp, tau, error):
    with pytest.raises(error):
        adaptive_dff(raw, sp, tau)


def test_unknown_method_rejected_before_processing():
    with pytest.raises(ValueError, match="Unknown noise filter method"):
        adaptive_dff(np.ones((1, 1, 1, 5)), 0.1, method="quantum")


def test_pipeline_statistics(capsys):
    rng = np.random.default_rng(9)
    raw = rng.uniform(100, 120, size=(2, 2, 2, 100))
    result, baseline, stats = three_stage_adaptive_pipeline(raw, 0.5, (-1, 10.0, -1))

    assert baseline.shape == raw.shape
    assert stats["original_shape"] == raw.shape
    assert stats["parameters"]["tau1"] == pytest.approx(11.25)
    assert stats["parameters"]["tau0"] == pytest.approx(3.0)
    assert stats["parameters"]["half_window"] == 11
    assert stats["parameters"]["baseline_window"] == 20
    assert stats["parameters"]["effective_baseline_window"] == 20
    assert stats["parameters"]["noise_filtering"] is True
    assert set(stats["processing_time"]) == {"stage1", "stage2", "stage3", "total"}
    assert stats["data_quality"]["total_values"] == result.size
    assert stats["data_quality"]["nan_count"] == 0

    out = capsys.readouterr().out
    assert "ADAPTIVE ΔF/F PROCESSING PIPELINE" in out
    assert "FINAL RESULTS" in out


def test_quiet_entry_point_prints_nothing(capsys):
    adaptive_dff(np.ones((1, 1, 1, 20)) * 5.0, 0.1)
    captured = capsys.readouterr()
    assert captured.out == ""


def test_config_file_supplies_defaults(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"adaptive_dff": {"tau": [-1, -1, 0], "method": "cpu"}}))
    raw = np.random.default_rng(10).uniform(100, 110, size=(1, 1, 2, 30))

    result, _, stats = three_stage_adaptive_pipeline(
        raw, 1.0, config_path=config_path, verbose=False
    )
    assert stats["parameters"]["tau0"] == 0.0
    assert stats["parameters"]["noise_filtering"] is False
    np.testing.assert_array_equal(result, adaptive_dff(raw, 1.0, 0))


def test_explicit_tau_overrides_config(tmp_path):
    config_path = tmp_path / "config.json"
    config_path.write_text(json.dumps({"adaptive_dff": {"tau": 0}}))
    raw = np.random.default_rng(12).uniform(100, 110, size=(1, 1, 1, 30))

    _, _, stats = three_stage_adaptive_pipeline(
        raw, 1.0, -1, config_path=config_path, verbose=False
    )
    assert stats["parameters"]["tau0"] == pytest.approx(6.0)


def test_huge_smoothing_time_constant_passes_raw_through():
    rng = np.random.default_rng(8)
    raw = rng.uniform(100, 150, size=(1, 2, 1, 30))
    result = adaptive_dff(raw, 1.0, (1e20, 5.0, 1.0))
    baseline = local_minimum_baseline(raw, 5)
    expected = noise_filter(compute_raw_dff(raw, baseline), 1.0, 1.0)
    assert result.shape == raw.shape
    np.testing.assert_allclose(result, expected, rtol=1e-12)
