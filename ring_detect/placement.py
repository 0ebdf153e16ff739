"""
Placement of detected boundaries back onto the image.

Boundary offsets are columns of the sampled band, counted from the
westmost anchor. They map to map coordinates along the per-pixel unit
vector and, on commit, become measurement points in the host's point store.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, Tuple, Union

from .core.errors import DegenerateInput
from .core.types import Direction, LatLng
from .tiles.geometry import Projection, SimpleCRS, normalize_anchors, unit_vector

logger = logging.getLogger(__name__)


class PointStore(Protocol):
    """Host data store receiving committed measurement points."""

    def new_point(self, start: bool, latlng: LatLng) -> None: ...


@dataclass
class RecordingStore:
    """Point store that keeps committed points in memory."""

    points: List[Tuple[bool, LatLng]] = field(default_factory=list)

    def new_point(self, start: bool, latlng: LatLng) -> None:
        self.points.append((start, latlng))

    @property
    def latlngs(self) -> List[LatLng]:
        return [latlng for _, latlng in self.points]


def _check_offsets(offsets: Sequence[float]) -> List[float]:
    values = []
    for offset in offsets:
        value = float(offset)
        if not math.isfinite(value):
            raise DegenerateInput(f"Boundary offset must be finite, got {offset}")
        values.append(value)
    return values


def to_coordinates(offsets: Sequence[float], base_anchor: LatLng, unit: LatLng) -> List[LatLng]:
    """coord[i] = base_anchor + offsets[i] * unit (unit holds dlat, dlng per pixel)."""
    base = LatLng(*base_anchor)
    return [
        LatLng(base.lat + offset * unit.lat, base.lng + offset * unit.lng)
        for offset in _check_offsets(offsets)
    ]


def map_to_coordinates(
    offsets: Sequence[float],
    anchor1: LatLng,
    anchor2: LatLng,
    direction: Union[Direction, str] = Direction.FORWARD,
    zoom: int = 0,
    projection: Optional[Projection] = None,
) -> List[LatLng]:
    """
    Map boundary offsets to coordinates.

    Offsets are measured from the westmost anchor towards the other one, so
    the result doesn't depend on click order. With a backward direction
    preference the offsets are reversed first, so the first point is the
    one furthest along the segment.

    Raises:
        DegenerateInput: If the anchors coincide at ``zoom`` or an offset is not finite
    """
    projection = projection or SimpleCRS()
    start, end = normalize_anchors(anchor1, anchor2)
    unit = unit_vector(projection, start, end, zoom)

    ordered = list(offsets)
    if Direction(direction) == Direction.BACKWARD:
        ordered = ordered[::-1]
    return to_coordinates(ordered, start, unit)


def commit_points(
    store: PointStore,
    offsets: Sequence[float],
    anchor1: LatLng,
    anchor2: LatLng,
    direction: Union[Direction, str] = Direction.FORWARD,
    zoom: int = 0,
    projection: Optional[Projection] = None,
    include_anchors: bool = False,
) -> List[LatLng]:
    """
    Insert mapped boundaries into the host point store.

    The first inserted point is flagged as a start point. With
    ``include_anchors`` the two anchors bracket the boundaries (in the same
    direction-corrected order).

    Returns:
        The committed coordinates, in insertion order
    """
    points = map_to_coordinates(offsets, anchor1, anchor2, direction, zoom, projection)
    if include_anchors:
        start, end = normalize_anchors(anchor1, anchor2)
        if Direction(direction) == Direction.BACKWARD:
            start, end = end, start
        points = [start] + points + [end]

    for index, latlng in enumerate(points):
        store.new_point(index == 0, latlng)
    logger.info(f"Committed {len(points)} measurement points ({Direction(direction).value})")
    return points
