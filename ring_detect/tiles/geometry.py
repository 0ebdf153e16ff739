"""
Geometry helpers for measurement lines.

Pixel-space math for the oriented sampling rectangle: anchor ordering,
detection corners and angle, the per-pixel unit vector in map units and the
split of a long segment into sub-areas.
"""

import math
from dataclasses import dataclass
from typing import List, Protocol, Tuple

import numpy as np

from ..core.errors import DegenerateInput
from ..core.types import DetectionGeometry, LatLng, PixelPoint


class Projection(Protocol):
    def project(self, latlng: LatLng, zoom: int) -> PixelPoint: ...

    def unproject(self, point: PixelPoint, zoom: int) -> LatLng: ...


def simple_project(latlng: LatLng, zoom: int) -> PixelPoint:
    """Simple (flat) CRS: one map unit is one pixel at zoom 0, y grows southwards."""
    scale = 2.0 ** zoom
    return PixelPoint(latlng.lng * scale, -latlng.lat * scale)


def simple_unproject(point: PixelPoint, zoom: int) -> LatLng:
    scale = 2.0 ** zoom
    return LatLng(-point.y / scale, point.x / scale)


class SimpleCRS:
    """Projection object over the simple CRS functions."""

    def project(self, latlng: LatLng, zoom: int) -> PixelPoint:
        return simple_project(latlng, zoom)

    def unproject(self, point: PixelPoint, zoom: int) -> LatLng:
        return simple_unproject(point, zoom)


def floor_point(point: PixelPoint) -> PixelPoint:
    return PixelPoint(math.floor(point.x), math.floor(point.y))


def normalize_anchors(first: LatLng, second: LatLng) -> Tuple[LatLng, LatLng]:
    """Order anchors west to east so results don't depend on click order."""
    first, second = LatLng(*first), LatLng(*second)
    if (second.lng, second.lat) < (first.lng, first.lat):
        return second, first
    return first, second


@dataclass(frozen=True)
class Segment:
    """A measurement line projected to pixel space at one zoom."""

    start: PixelPoint
    end: PixelPoint
    zoom: int

    @property
    def delta(self) -> Tuple[float, float]:
        return self.end.x - self.start.x, self.end.y - self.start.y

    @property
    def length(self) -> float:
        dx, dy = self.delta
        return math.hypot(dx, dy)

    @property
    def width(self) -> int:
        """Number of whole pixels sampled along the segment."""
        return int(math.floor(self.length))

    @property
    def direction(self) -> Tuple[float, float]:
        """Unit vector from start to end (pixel space)."""
        length = self.length
        if length == 0:
            raise DegenerateInput("Segment has zero length")
        dx, dy = self.delta
        return dx / length, dy / length

    @property
    def normal(self) -> Tuple[float, float]:
        """Unit vector perpendicular to the segment, pointing to the bottom of the band."""
        ux, uy = self.direction
        return -uy, ux

    @property
    def angle(self) -> float:
        """atan2 of the segment direction, radians."""
        dx, dy = self.delta
        return math.atan2(dy, dx)

    def point_at(self, t: float, offset: float = 0.0) -> PixelPoint:
        """Point ``t`` pixels along the segment and ``offset`` pixels along the normal."""
        ux, uy = self.direction
        nx, ny = self.normal
        return PixelPoint(self.start.x + t * ux + offset * nx, self.start.y + t * uy + offset * ny)

    def rotation(self) -> np.ndarray:
        """2x2 matrix rotating the segment direction onto +x."""
        ux, uy = self.direction
        return np.array([[ux, uy], [-uy, ux]], dtype=np.float64)


def project_segment(host: Projection, start: LatLng, end: LatLng, zoom: int) -> Segment:
    """Project both anchors to (floored) pixel space at ``zoom``."""
    return Segment(
        start=floor_point(host.project(LatLng(*start), zoom)),
        end=floor_point(host.project(LatLng(*end), zoom)),
        zoom=zoom,
    )


def detection_geometry(
    host: Projection, start: LatLng, end: LatLng, band_height: float, zoom: int
) -> DetectionGeometry:
    """
    Corners of the oriented sampling rectangle plus its rotation angle.

    Corners run start-bottom, start-top, end-top, end-bottom. The angle is
    atan(dy/dx) (+-pi/2 for vertical segments) negated, so that rotating by it
    brings the segment back to horizontal.
    """
    if band_height <= 0:
        raise DegenerateInput(f"Band height must be positive, got {band_height}")
    segment = project_segment(host, start, end, zoom)
    dx, dy = segment.delta
    if dx == 0 and dy == 0:
        raise DegenerateInput("Anchors project to the same pixel")

    if dx == 0:
        angle = math.pi / 2 if dy > 0 else -math.pi / 2
    else:
        angle = math.atan(dy / dx)

    # Normal in the rectangle's own (unsigned) orientation
    half = band_height / 2.0
    nx, ny = -math.sin(angle), math.cos(angle)
    corners = []
    for anchor, sign in ((segment.start, 1), (segment.start, -1), (segment.end, -1), (segment.end, 1)):
        corner = PixelPoint(anchor.x + sign * half * nx, anchor.y + sign * half * ny)
        corners.append(host.unproject(corner, zoom))

    return DetectionGeometry(corners=tuple(corners), angle=-angle)


def unit_vector(host: Projection, start: LatLng, end: LatLng, zoom: int) -> LatLng:
    """
    Map-space displacement of one pixel along the segment (start -> end).

    Returned as a LatLng holding (dlat, dlng).
    """
    segment = project_segment(host, start, end, zoom)
    origin = host.unproject(segment.start, zoom)
    ux, uy = segment.direction
    step = host.unproject(PixelPoint(segment.start.x + ux, segment.start.y + uy), zoom)
    return LatLng(step.lat - origin.lat, step.lng - origin.lng)


def plan_sub_areas(width: int, subdivisions: int) -> List[Tuple[int, int]]:
    """
    Split ``width`` columns into ``subdivisions`` (offset, width) parts.

    Parts are equal except the last, which takes the remainder, so the
    widths always sum to ``width``.
    """
    if width <= 0:
        raise DegenerateInput(f"Cannot split a segment of width {width}")
    if subdivisions < 1:
        raise ValueError("subdivisions must be at least 1")
    subdivisions = min(subdivisions, width)
    base = width // subdivisions
    parts = []
    for index in range(subdivisions):
        part = base if index < subdivisions - 1 else width - base * (subdivisions - 1)
        parts.append((index * base, part))
    return parts


def scan_offsets(band_height: float, tile_size: int) -> List[float]:
    """
    Normal offsets of the lines walked for tile residency.

    Always the center, top and bottom lines, in that order, followed by
    interior lines when the band is tall enough that a tile could fall
    between them.
    """
    half = band_height / 2.0
    offsets = [0.0, -half, half]
    spacing = tile_size / 2.0
    if band_height > spacing:
        count = int(math.ceil(band_height / spacing))
        for value in np.linspace(-half, half, count + 1)[1:-1]:
            if all(abs(value - existing) > 1e-9 for existing in offsets):
                offsets.append(float(value))
    return offsets
