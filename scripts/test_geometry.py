#!/usr/bin/env python3
"""
Test measurement-line geometry: anchors, detection rectangle, sub-areas.
"""

import math

import pytest

from ring_detect.core.errors import DegenerateInput
from ring_detect.core.types import LatLng, PixelPoint
from ring_detect.tiles.geometry import (
    SimpleCRS,
    detection_geometry,
    normalize_anchors,
    plan_sub_areas,
    project_segment,
    scan_offsets,
    unit_vector,
)

CRS = SimpleCRS()


def test_anchor_order():
    """Anchors are ordered west to east whatever the click order."""
    print("=" * 60)
    print("Test 1: Anchor Ordering")
    print("=" * 60)

    west, east = LatLng(-10.0, 5.0), LatLng(-12.0, 40.0)
    assert normalize_anchors(west, east) == (west, east)
    assert normalize_anchors(east, west) == (west, east)

    # Same longitude falls back to latitude
    south, north = LatLng(-20.0, 5.0), LatLng(-3.0, 5.0)
    assert normalize_anchors(north, south) == (south, north)
    print("✓ Anchor ordering test passed!")


def test_horizontal_geometry():
    """A west-east line gives angle 0 and a rectangle band_height tall."""
    print("\n" + "=" * 60)
    print("Test 2: Horizontal Detection Geometry")
    print("=" * 60)

    start = CRS.unproject(PixelPoint(100, 200), 2)
    end = CRS.unproject(PixelPoint(400, 200), 2)
    geometry = detection_geometry(CRS, start, end, 50, 2)
    corners = [CRS.project(c, 2) for c in geometry.corners]
    print(f"Angle: {geometry.angle}, corners: {corners}")

    assert geometry.angle == 0.0
    assert corners[0] == PixelPoint(100, 225), "start-bottom"
    assert corners[1] == PixelPoint(100, 175), "start-top"
    assert corners[2] == PixelPoint(400, 175), "end-top"
    assert corners[3] == PixelPoint(400, 225), "end-bottom"
    print("✓ Horizontal geometry test passed!")


def test_sloped_and_vertical_geometry():
    """The angle is atan(dy/dx) negated; vertical lines use +-pi/2."""
    print("\n" + "=" * 60)
    print("Test 3: Sloped and Vertical Geometry")
    print("=" * 60)

    start = CRS.unproject(PixelPoint(0, 0), 0)
    sloped = detection_geometry(CRS, start, CRS.unproject(PixelPoint(100, 100), 0), 20, 0)
    assert sloped.angle == pytest.approx(-math.pi / 4)

    down = detection_geometry(CRS, start, CRS.unproject(PixelPoint(0, 80), 0), 20, 0)
    assert down.angle == pytest.approx(-math.pi / 2)

    corners = [CRS.project(c, 0) for c in down.corners]
    widths = {round(abs(c.x), 6) for c in corners}
    assert widths == {10.0}, f"Vertical band should be 20px wide, got corners {corners}"

    with pytest.raises(DegenerateInput):
        detection_geometry(CRS, start, start, 20, 0)
    with pytest.raises(DegenerateInput):
        detection_geometry(CRS, start, CRS.unproject(PixelPoint(10, 0), 0), 0, 0)
    print("✓ Sloped and vertical geometry test passed!")


def test_unit_vector():
    """One pixel along the segment, expressed as (dlat, dlng)."""
    print("\n" + "=" * 60)
    print("Test 4: Unit Vector")
    print("=" * 60)

    start = CRS.unproject(PixelPoint(0, 0), 3)
    end = CRS.unproject(PixelPoint(300, 400), 3)
    unit = unit_vector(CRS, start, end, 3)
    print(f"Unit vector: {unit}")

    # 1px at zoom 3 is 1/8 map unit; direction (0.6, 0.8), y down -> lat decreases
    assert unit.lng == pytest.approx(0.6 / 8)
    assert unit.lat == pytest.approx(-0.8 / 8)

    segment = project_segment(CRS, start, end, 3)
    assert segment.width == 500
    print("✓ Unit vector test passed!")


def test_sub_area_plan():
    """Sub-area widths always add up to the segment width."""
    print("\n" + "=" * 60)
    print("Test 5: Sub-area Plan")
    print("=" * 60)

    for width in (1, 7, 100, 1201, 40000):
        for subdivisions in (1, 2, 3, 7, 64):
            plan = plan_sub_areas(width, subdivisions)
            assert sum(w for _, w in plan) == width, f"{width} / {subdivisions}: {plan}"
            offsets = [o for o, _ in plan]
            assert offsets == sorted(offsets)
            for (offset, part), (next_offset, _) in zip(plan, plan[1:]):
                assert offset + part == next_offset, "Sub-areas must be contiguous"

    assert plan_sub_areas(10, 3) == [(0, 3), (3, 3), (6, 4)]
    with pytest.raises(DegenerateInput):
        plan_sub_areas(0, 2)
    print("✓ Sub-area plan test passed!")


def test_scan_offsets():
    """Center, top and bottom lines always; interior lines for tall bands."""
    print("\n" + "=" * 60)
    print("Test 6: Scan Lines")
    print("=" * 60)

    assert scan_offsets(50, 256) == [0.0, -25.0, 25.0]

    tall = scan_offsets(1000, 256)
    print(f"Tall band lines: {sorted(tall)}")
    assert tall[:3] == [0.0, -500.0, 500.0]
    spacing = max(b - a for a, b in zip(sorted(tall), sorted(tall)[1:]))
    assert spacing <= 128, f"Lines must be at most half a tile apart, got {spacing}"
    print("✓ Scan line test passed!")


if __name__ == "__main__":
    print("Testing Geometry")
    print("=" * 60)

    try:
        test_anchor_order()
        test_horizontal_geometry()
        test_sloped_and_vertical_geometry()
        test_unit_vector()
        test_sub_area_plan()
        test_scan_offsets()

        print("\n" + "=" * 60)
        print("✅ All tests passed!")
        print("=" * 60)

    except AssertionError as e:
        print(f"\n❌ Test failed: {e}")
        raise
