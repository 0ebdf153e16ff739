#!/usr/bin/env python3
"""
Test the boundary detection algorithms on synthetic pixel bands.
"""

import numpy as np
import pytest

from ring_detect.core.errors import DegenerateInput
from ring_detect.core.types import SampleBuffer
from ring_detect.detection import (
    ClassificationSettings,
    DerivativeSettings,
    available_algorithms,
    detect_boundaries,
    enforce_min_gap,
    get_algorithm,
    median_blur,
    reduce_channel,
)
from ring_detect.detection.classification import annual_skip


def _step_band(h=50, w=120, at=42, dark=20, light=200):
    """Dark columns before ``at``, light from ``at`` on."""
    band = np.full((h, w, 3), dark, dtype=np.uint8)
    band[:, at:] = light
    return band


def _stripes(h=40, w=120, edges=(30, 60, 90), start_light=True):
    """Alternating light/dark columns switching at ``edges``."""
    band = np.empty((h, w, 3), dtype=np.uint8)
    light = start_light
    bounds = [0, *edges, w]
    for a, b in zip(bounds, bounds[1:]):
        band[:, a:b] = 200 if light else 20
        light = not light
    return band


def test_preprocessing():
    """Channel reduction and edge-clamped median blur."""
    print("=" * 60)
    print("Test 1: Preprocessing")
    print("=" * 60)

    pixels = np.zeros((2, 2, 3), dtype=np.uint8)
    pixels[..., 0], pixels[..., 1], pixels[..., 2] = 30, 60, 90
    assert np.allclose(reduce_channel(pixels, "intensity"), 60.0)
    assert np.allclose(reduce_channel(pixels, "g"), 60.0)
    assert np.allclose(reduce_channel(pixels, "b"), 90.0)

    rng = np.random.default_rng(0)
    values = rng.integers(0, 255, size=(9, 13)).astype(np.float64)
    blurred = median_blur(values, 1)
    padded = np.pad(values, 1, mode="edge")
    for i in range(9):
        for j in range(13):
            assert blurred[i, j] == np.median(padded[i:i + 3, j:j + 3])
    np.testing.assert_array_equal(median_blur(values, 0), values)

    # Isolated speckle disappears
    speckled = np.full((7, 7), 10.0)
    speckled[3, 3] = 250.0
    assert np.all(median_blur(speckled, 1) == 10.0)
    print("✓ Preprocessing test passed!")


def test_classification_step():
    """A single dark-to-light step is found at its column."""
    print("\n" + "=" * 60)
    print("Test 2: Classification Step")
    print("=" * 60)

    boundaries = detect_boundaries(_step_band(), "classification", {"boundary_brightness": 50})
    print(f"Boundaries: {boundaries}")
    assert boundaries == [42]

    buffer = SampleBuffer(pixels=_step_band(), zoom=0)
    assert detect_boundaries(buffer, "pc", ClassificationSettings(boundary_brightness=50)) == [42]

    # Light to dark only is not an annual boundary
    reverse = _step_band()[:, ::-1]
    assert detect_boundaries(reverse, "classification", {"boundary_brightness": 50}) == []
    print("✓ Classification step test passed!")


def test_classification_sub_annual():
    """Sub-annual mode reports every alternating flip."""
    print("\n" + "=" * 60)
    print("Test 3: Sub-annual Boundaries")
    print("=" * 60)

    band = _stripes()
    annual = detect_boundaries(band, "classification")
    sub_annual = detect_boundaries(band, "classification", {"sub_annual": True})
    print(f"Annual: {annual}, sub-annual: {sub_annual}")

    assert annual == [60], "Only the dark-to-light flip is annual"
    assert sub_annual == [30, 60, 90]

    # The flip at 25 is too close; the expected direction stays rising, so 40 is skipped too
    close = _stripes(w=60, edges=(20, 25, 40))
    assert detect_boundaries(close, "classification", {"sub_annual": True, "blur_radius": 0}) == [20]

    assert annual_skip(0) == 50
    assert annual_skip(2) == 25
    assert annual_skip(200) == 1
    print("✓ Sub-annual test passed!")


def test_derivative_step():
    """Smoothed derivatives locate the step; flat bands give nothing."""
    print("\n" + "=" * 60)
    print("Test 4: Derivative Step")
    print("=" * 60)

    boundaries = detect_boundaries(_step_band(), "derivative", {"color_channel": "g"})
    print(f"Boundaries: {boundaries}")
    assert boundaries == [42]
    assert detect_boundaries(_step_band(), "ed", DerivativeSettings(color_channel="g", alpha=0.5)) == [42]

    flat = np.full((30, 80, 3), 128, dtype=np.uint8)
    assert detect_boundaries(flat, "derivative") == []

    with pytest.raises(DegenerateInput):
        detect_boundaries(flat, "derivative", {"alpha": 0})
    print("✓ Derivative step test passed!")


def test_threshold_trace():
    """Transition curves that span the band are traced to the middle row."""
    print("\n" + "=" * 60)
    print("Test 5: Threshold Trace")
    print("=" * 60)

    boundaries = detect_boundaries(_step_band(), "threshold")
    print(f"Boundaries: {boundaries}")
    assert boundaries == [42]

    # A blob that doesn't span the band is ignored
    band = np.full((50, 120, 3), 200, dtype=np.uint8)
    band[10:30, 50:60] = 20
    assert detect_boundaries(band, "threshold") == []
    print("✓ Threshold trace test passed!")


def test_min_gap_for_every_algorithm():
    """Every result is strictly increasing with gaps above min_gap."""
    print("\n" + "=" * 60)
    print("Test 6: Minimum Gap")
    print("=" * 60)

    rng = np.random.default_rng(11)
    noise = rng.integers(0, 256, size=(30, 400, 3), dtype=np.uint8)
    for name in available_algorithms():
        for settings in ({"blur_radius": 0}, {"blur_radius": 0, "min_gap": 25}):
            if name == "classification":
                settings = dict(settings, sub_annual=True)
            boundaries = detect_boundaries(noise, name, settings)
            gaps = np.diff(boundaries)
            min_gap = settings.get("min_gap", 10)
            print(f"  {name} {settings}: {len(boundaries)} boundaries")
            assert np.all(gaps > min_gap), f"{name} violated min_gap: {boundaries}"

    assert enforce_min_gap([5, 12, 30, 31, 60], 10) == [5, 30, 60]
    assert enforce_min_gap([40, 10, 20], 9) == [10, 20, 40]
    print("✓ Minimum gap test passed!")


def test_settings_validation():
    """Unknown algorithms and out-of-range settings are rejected."""
    print("\n" + "=" * 60)
    print("Test 7: Settings Validation")
    print("=" * 60)

    assert set(available_algorithms()) == {"classification", "derivative", "threshold"}
    assert get_algorithm("PC").algorithm.value == "classification"
    with pytest.raises(DegenerateInput):
        get_algorithm("watershed")
    with pytest.raises(DegenerateInput):
        detect_boundaries(_step_band(), "classification", {"col_percentile": 1.5})
    with pytest.raises(DegenerateInput):
        detect_boundaries(_step_band(), "classification", {"color_channel": "alpha"})
    with pytest.raises(DegenerateInput):
        detect_boundaries(_step_band(), "classification", DerivativeSettings())
    with pytest.raises(DegenerateInput):
        detect_boundaries(np.zeros((0, 10, 3), dtype=np.uint8), "classification")

    # Keys used by other algorithms are ignored
    assert detect_boundaries(_step_band(), "threshold", {"alpha": 0.9, "global_threshold": 80}) == [42]

    # Keys no algorithm knows are typos, not silent defaults
    with pytest.raises(DegenerateInput, match="colpercentile"):
        detect_boundaries(_step_band(), "classification", {"colpercentile": 0.5})
    with pytest.raises(DegenerateInput, match="col_percentile"):
        detect_boundaries(_step_band(), "derivative", {"colpercentile": 0.5})
    print("✓ Settings validation test passed!")


if __name__ == "__main__":
    print("Testing Boundary Detection")
    print("=" * 60)

    try:
        test_preprocessing()
        test_classification_step()
        test_classification_sub_annual()
        test_derivative_step()
        test_threshold_trace()
        test_min_gap_for_every_algorithm()
        test_settings_validation()

        print("\n" + "=" * 60)
        print("✅ All tests passed!")
        print("=" * 60)

    except AssertionError as e:
        print(f"\n❌ Test failed: {e}")
        raise
