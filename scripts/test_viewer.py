#!/usr/bin/env python3
"""
Test the in-process pyramid viewer.
"""

import asyncio

import numpy as np

from ring_detect.core.types import FilterPass, LatLng, TileCoordinate
from ring_detect.filters.pipeline import ConvolutionPipeline
from ring_detect.tiles.pyramid import TilePyramid
from ring_detect.tiles.viewer import PyramidViewer


def _viewer(pipeline=None):
    rng = np.random.default_rng(5)
    image = rng.integers(0, 256, size=(300, 700, 3), dtype=np.uint8)
    pyramid = TilePyramid(image)
    viewer = PyramidViewer(pyramid, pipeline=pipeline or ConvolutionPipeline(device="cpu"))
    return viewer, image


def test_residency_and_loading():
    """Tiles inside the image load on demand; tiles outside are resident and empty."""
    print("=" * 60)
    print("Test 1: Residency and Loading")
    print("=" * 60)

    viewer, image = _viewer()
    zoom = viewer.max_zoom
    inside, outside = TileCoordinate(1, 0, zoom), TileCoordinate(-1, 0, zoom)
    loaded, errors = [], []
    viewer.on_tile_load(loaded.append)
    viewer.on_tile_error(lambda coord, exc: errors.append(coord))

    assert not viewer.is_tile_resident(inside)
    assert viewer.is_tile_resident(outside)
    assert viewer.tile_pixels(outside) is None

    asyncio.run(viewer.load_tiles([inside, outside]))
    assert loaded == [inside] and errors == []
    assert viewer.is_tile_resident(inside)
    np.testing.assert_array_equal(viewer.tile_pixels(inside)[:, :, :3], image[0:256, 256:512])

    color = viewer.get_color(viewer.image_to_latlng(300, 10), zoom)
    assert color == tuple(int(v) for v in image[10, 300]) + (255,)

    viewer.evict(inside)
    assert not viewer.is_tile_resident(inside)
    print("✓ Residency test passed!")


def test_request_view_center():
    """Recentering loads every visible tile of the image."""
    print("\n" + "=" * 60)
    print("Test 2: Request View Center")
    print("=" * 60)

    viewer, _ = _viewer()
    zoom = viewer.max_zoom

    async def run():
        viewer.request_view_center(viewer.image_to_latlng(350, 150), zoom)
        await asyncio.gather(*viewer._loading.values())

    asyncio.run(run())
    nx, ny = viewer.pyramid.tile_grid(zoom)
    resident = [TileCoordinate(x, y, zoom) for x in range(nx) for y in range(ny)]
    print(f"Grid {nx}x{ny}, requests: {viewer.requests}")
    assert all(viewer.is_tile_resident(c) for c in resident)
    assert viewer.current_zoom == zoom
    assert viewer.center == viewer.image_to_latlng(350, 150)
    print("✓ Request view center test passed!")


def test_settings_change_re_renders():
    """Changing filter passes re-renders resident tiles in place."""
    print("\n" + "=" * 60)
    print("Test 3: Re-render on Filter Change")
    print("=" * 60)

    viewer, image = _viewer()
    coord = TileCoordinate(0, 0, viewer.max_zoom)
    asyncio.run(viewer.load_tiles([coord]))
    before = viewer.tile_pixels(coord).copy()

    viewer.set_filter_passes([FilterPass("emboss", 0.6)])
    after = viewer.tile_pixels(coord)
    assert not np.array_equal(before, after), "Resident tile should be re-rendered"

    viewer.set_filter_passes([FilterPass("emboss", 0.0)])
    np.testing.assert_array_equal(viewer.tile_pixels(coord), before)
    print("✓ Re-render test passed!")


def test_disabled_pipeline_falls_back():
    """A pipeline with a broken program shows the raw tile."""
    print("\n" + "=" * 60)
    print("Test 4: Disabled Pipeline")
    print("=" * 60)

    broken = ConvolutionPipeline(device="cpu", fragment_shader="def nothing_here(")
    assert broken.gl_error is not None
    viewer, image = _viewer(broken)
    coord = TileCoordinate(0, 0, viewer.max_zoom)
    asyncio.run(viewer.load_tiles([coord]))
    np.testing.assert_array_equal(viewer.tile_pixels(coord)[:, :, :3], image[:256, :256])

    south_west, north_east = viewer.tile_bounds(coord)
    assert south_west == LatLng(-256 / 2 ** viewer.max_zoom, 0.0)
    assert north_east == LatLng(-0.0, 256 / 2 ** viewer.max_zoom)
    print("✓ Disabled pipeline test passed!")


if __name__ == "__main__":
    print("Testing Pyramid Viewer")
    print("=" * 60)

    try:
        test_residency_and_loading()
        test_request_view_center()
        test_settings_change_re_renders()
        test_disabled_pipeline_falls_back()

        print("\n" + "=" * 60)
        print("✅ All tests passed!")
        print("=" * 60)

    except AssertionError as e:
        print(f"\n❌ Test failed: {e}")
        raise
