#!/usr/bin/env python3
"""
Test oriented region sampling against an in-process viewer.
"""

import asyncio
from collections import Counter

import numpy as np

from ring_detect.core.types import Config, Failure, FilterPass, SampleBuffer
from ring_detect.filters.pipeline import ConvolutionPipeline
from ring_detect.tiles.pyramid import TilePyramid
from ring_detect.tiles.sampler import OrientedRegionSampler
from ring_detect.tiles.source import CallableLayer, PyramidLayer, TileTextureSource
from ring_detect.tiles.viewer import PyramidViewer

H, W = 600, 1500


def _image(seed=0):
    rng = np.random.default_rng(seed)
    return rng.integers(0, 256, size=(H, W, 3), dtype=np.uint8)


def _viewer(image, layers=None, viewport=(1024, 768)):
    pyramid = TilePyramid(image)
    source = TileTextureSource(layers) if layers else None
    pipeline = ConvolutionPipeline(tile_size=pyramid.tile_size, device="cpu")
    return PyramidViewer(pyramid, source=source, pipeline=pipeline, viewport=viewport)


def _sample(viewer, config, x0, y0, x1, y1, band_height=50, **kwargs):
    async def run():
        sampler = OrientedRegionSampler(viewer, config)
        return await sampler.sample_region(
            viewer.image_to_latlng(x0, y0), viewer.image_to_latlng(x1, y1), band_height, **kwargs
        )

    return asyncio.run(run())


def test_horizontal_band_matches_image():
    """A horizontal line samples exactly the image rows around it."""
    print("=" * 60)
    print("Test 1: Horizontal Band")
    print("=" * 60)

    image = _image()
    viewer = _viewer(image)
    result = _sample(viewer, Config(), 100, 300, 1300, 300, css_adjustments="")

    assert isinstance(result, SampleBuffer), f"Sampling failed: {result}"
    print(f"Buffer shape: {result.pixels.shape}, sub-areas: {result.sub_area_widths}")
    assert result.shape == (50, 1200)
    assert result.pixels.dtype == np.uint8
    np.testing.assert_array_equal(result.pixels, image[275:325, 100:1300])

    assert viewer.requests, "Missing tiles should be requested by recentering"
    print(f"View recentered {len(viewer.requests)} times")
    print("✓ Horizontal band test passed!")


def test_anchor_order_does_not_matter():
    """Swapping anchors gives the same band."""
    print("\n" + "=" * 60)
    print("Test 2: Anchor Order")
    print("=" * 60)

    image = _image(1)
    forward = _sample(_viewer(image), Config(), 200, 100, 900, 100)
    backward = _sample(_viewer(image), Config(), 900, 100, 200, 100)
    np.testing.assert_array_equal(forward.pixels, backward.pixels)
    print("✓ Anchor order test passed!")


def test_subdivision_preserves_pixels():
    """Forcing sub-areas leaves width and pixels unchanged."""
    print("\n" + "=" * 60)
    print("Test 3: Sub-area Subdivision")
    print("=" * 60)

    image = _image(2)
    whole = _sample(_viewer(image), Config(), 100, 300, 1300, 300)
    split = _sample(_viewer(image), Config(max_canvas_dimension=1000), 100, 300, 1300, 300)

    assert isinstance(split, SampleBuffer), f"Sampling failed: {split}"
    print(f"Sub-area widths: {split.sub_area_widths}")
    assert len(split.sub_area_widths) == 3, "1200px + 500px margin needs three sub-areas under 1000px"
    assert sum(split.sub_area_widths) == whole.width == 1200
    np.testing.assert_array_equal(split.pixels, whole.pixels)
    print("✓ Subdivision test passed!")


def test_rotated_band_shape():
    """A sloped line gives (band_height, floor(length)) pixels."""
    print("\n" + "=" * 60)
    print("Test 4: Rotated Band")
    print("=" * 60)

    image = np.zeros((H, W, 3), dtype=np.uint8)
    image[:, 700:] = 255
    result = _sample(_viewer(image), Config(), 100, 100, 1300, 500, band_height=40)

    assert isinstance(result, SampleBuffer), f"Sampling failed: {result}"
    expected_width = int(np.floor(np.hypot(1200, 400)))
    print(f"Buffer shape: {result.shape}, expected width {expected_width}")
    assert result.shape == (40, expected_width)

    # The band starts on black and ends on white
    assert result.pixels[20, :50].max() == 0
    assert result.pixels[20, -50:].min() == 255

    # Sub-areas keep the width; only seam pixels may round differently
    split = _sample(_viewer(image), Config(max_canvas_dimension=1000), 100, 100, 1300, 500, band_height=40)
    assert len(split.sub_area_widths) == 3
    assert split.shape == result.shape
    mismatch = np.mean(np.any(split.pixels != result.pixels, axis=2))
    print(f"Subdivided mismatch: {mismatch:.5f}")
    assert mismatch < 0.01
    print("✓ Rotated band test passed!")


def test_filters_are_baked_in():
    """Convolution passes and CSS adjustments both reach the capture."""
    print("\n" + "=" * 60)
    print("Test 5: Baked-in Adjustments")
    print("=" * 60)

    image = _image(3)
    viewer = _viewer(image)
    inverted = _sample(viewer, Config(), 100, 300, 600, 300, css_adjustments="invert(100%)")
    np.testing.assert_array_equal(inverted.pixels, 255 - image[275:325, 100:600])

    viewer.css = "invert(100%)"
    from_viewer = _sample(viewer, Config(), 100, 300, 600, 300)
    np.testing.assert_array_equal(from_viewer.pixels, inverted.pixels)

    embossed_viewer = _viewer(image)
    embossed_viewer.set_filter_passes([FilterPass("emboss", 0.5)])
    embossed = _sample(embossed_viewer, Config(), 100, 300, 600, 300)
    assert embossed.shape == (50, 500)
    assert not np.array_equal(embossed.pixels, image[275:325, 100:600])
    print("✓ Baked-in adjustment test passed!")


def test_degenerate_inputs():
    """Identical anchors or a non-positive band height fail without sampling."""
    print("\n" + "=" * 60)
    print("Test 6: Degenerate Inputs")
    print("=" * 60)

    viewer = _viewer(_image())
    same = _sample(viewer, Config(), 400, 300, 400, 300)
    assert isinstance(same, Failure) and same.kind == "degenerate_input", same

    flat = _sample(viewer, Config(), 100, 300, 400, 300, band_height=0)
    assert isinstance(flat, Failure) and flat.kind == "degenerate_input", flat
    assert not flat, "Failures are falsy"
    assert viewer.requests == [], "Nothing should be requested for rejected input"
    print("✓ Degenerate input test passed!")


def test_capture_area_too_large():
    """An area that can't be split small enough is reported, not sampled."""
    print("\n" + "=" * 60)
    print("Test 7: Capture Area Too Large")
    print("=" * 60)

    config = Config(max_canvas_dimension=600, max_subdivisions=1)
    result = _sample(_viewer(_image()), config, 100, 300, 1300, 300)
    print(f"Result: {result}")
    assert isinstance(result, Failure) and result.kind == "capture_area_too_large"

    tall = _sample(_viewer(_image()), Config(max_canvas_dimension=600), 100, 300, 300, 300, band_height=200)
    assert isinstance(tall, Failure) and tall.kind == "capture_area_too_large"
    print("✓ Capture area test passed!")


def test_tile_error_and_timeout():
    """A failing layer or a stalled one ends the session as resource_unavailable."""
    print("\n" + "=" * 60)
    print("Test 8: Tile Errors and Timeouts")
    print("=" * 60)

    image = _image()

    def broken(coord):
        raise OSError("404 Not Found")

    failing = _viewer(image, layers=[CallableLayer(broken)])
    result = _sample(failing, Config(), 100, 300, 600, 300)
    print(f"Failing layer: {result}")
    assert isinstance(result, Failure) and result.kind == "resource_unavailable"

    async def stalled(coord):
        await asyncio.sleep(3600)

    slow = _viewer(image, layers=[CallableLayer(stalled)])
    result = _sample(slow, Config(tile_load_timeout=0.05), 100, 300, 600, 300)
    print(f"Stalled layer: {result}")
    assert isinstance(result, Failure) and result.kind == "resource_unavailable"
    assert "Timed out" in result.message
    print("✓ Tile error and timeout test passed!")


def test_new_session_cancels_old():
    """Starting a session cancels the one still waiting for tiles."""
    print("\n" + "=" * 60)
    print("Test 9: Session Cancellation")
    print("=" * 60)

    image = _image(4)
    viewer = _viewer(image, layers=[PyramidLayer(TilePyramid(image))])

    async def run():
        sampler = OrientedRegionSampler(viewer, Config())
        a = viewer.image_to_latlng(100, 300)
        b = viewer.image_to_latlng(1300, 300)
        first = asyncio.ensure_future(sampler.sample_region(a, b, 50))
        await asyncio.sleep(0)
        second = await sampler.sample_region(a, b, 50)
        return await first, second, sampler.epoch

    first, second, epoch = asyncio.run(run())
    print(f"First: {first}, second: {type(second).__name__}, epoch: {epoch}")
    assert isinstance(first, Failure) and first.kind == "session_cancelled"
    assert isinstance(second, SampleBuffer)
    np.testing.assert_array_equal(second.pixels, image[275:325, 100:1300])
    assert epoch == 2
    print("✓ Session cancellation test passed!")


def test_resume_and_single_composite():
    """A one-tile viewport forces a wait per tile; each scan resumes where it stopped."""
    print("\n" + "=" * 60)
    print("Test 10: Resume Position and Single Composite")
    print("=" * 60)

    image = _image(6)
    viewer = _viewer(image, viewport=(256, 256))
    waits, entries, composites = [], [], Counter()

    async def run():
        sampler = OrientedRegionSampler(viewer, Config(max_canvas_dimension=1000))
        scan, wait_for, composite = sampler._scan, sampler._wait_for, sampler._composite

        def record_scan(state):
            entries.append((state.sub_index, state.line_index, state.step))
            scan(state)

        def record_wait(state, coord):
            waits.append((state.sub_index, state.line_index, state.step))
            wait_for(state, coord)

        def record_composite(state, coord, offset):
            composites[(state.sub_index, coord)] += 1
            composite(state, coord, offset)

        sampler._scan, sampler._wait_for, sampler._composite = record_scan, record_wait, record_composite
        return await sampler.sample_region(
            viewer.image_to_latlng(100, 300), viewer.image_to_latlng(1300, 300), 50, css_adjustments=""
        )

    result = asyncio.run(run())
    assert isinstance(result, SampleBuffer), f"Sampling failed: {result}"
    print(f"Sub-areas: {result.sub_area_widths}, waits: {len(waits)}, composites: {len(composites)}")

    assert len(result.sub_area_widths) == 3
    assert len(waits) >= 6, "Every tile on the row starts out missing"
    assert any(step > 0 for _, _, step in waits), "Some waits happen mid-line"

    # First entry starts the walk; every later one resumes the step that waited
    assert entries[0] == (0, 0, 0)
    assert entries[1:] == waits

    assert set(composites.values()) == {1}, f"Tiles composited twice: {composites}"
    assert {sub for sub, _ in composites} == {0, 1, 2}
    np.testing.assert_array_equal(result.pixels, image[275:325, 100:1300])
    print("✓ Resume and composite test passed!")


if __name__ == "__main__":
    print("Testing Oriented Region Sampler")
    print("=" * 60)

    try:
        test_horizontal_band_matches_image()
        test_anchor_order_does_not_matter()
        test_subdivision_preserves_pixels()
        test_rotated_band_shape()
        test_filters_are_baked_in()
        test_degenerate_inputs()
        test_capture_area_too_large()
        test_tile_error_and_timeout()
        test_new_session_cancels_old()
        test_resume_and_single_composite()

        print("\n" + "=" * 60)
        print("✅ All tests passed!")
        print("=" * 60)

    except AssertionError as e:
        print(f"\n❌ Test failed: {e}")
        raise
