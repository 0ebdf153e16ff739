"""
Core types and data structures for ring detection.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, NamedTuple, Optional, Sequence, Tuple

import numpy as np

from ..constants import (
    DEFAULT_BAND_HEIGHT,
    DEFAULT_BLUR_RADIUS,
    FRAMEBUFFER_POOL_SIZE,
    MAX_CANVAS_AREA,
    MAX_CANVAS_DIMENSION,
    MAX_SUBDIVISIONS,
    MAX_TEXTURE_LAYERS,
    MIN_GAP,
    SAMPLING_MARGIN,
    TILE_LOAD_TIMEOUT,
    TILE_SIZE,
)
from .errors import ERRORS_BY_KIND, DegenerateInput, RingDetectError


class LatLng(NamedTuple):
    """Geographic (map) coordinate. With a simple CRS, lng grows east, lat north."""

    lat: float
    lng: float


class PixelPoint(NamedTuple):
    """Point in pixel space at some zoom level (y grows downwards)."""

    x: float
    y: float


class Direction(str, Enum):
    """Host measurement direction preference."""

    FORWARD = "forward"
    BACKWARD = "backward"


@dataclass(frozen=True)
class TileCoordinate:
    """Integer (x, y, z) address of a pyramid tile."""

    x: int
    y: int
    z: int

    @property
    def is_valid(self) -> bool:
        """The root tile is (0, 0, 0); every other tile needs x, y >= 0 and z > 0."""
        if (self.x, self.y, self.z) == (0, 0, 0):
            return True
        return self.x >= 0 and self.y >= 0 and self.z > 0

    @property
    def key(self) -> str:
        return f"{self.x}:{self.y}:{self.z}"

    @classmethod
    def containing(cls, point: PixelPoint, zoom: int, tile_size: int = TILE_SIZE) -> "TileCoordinate":
        """Tile that contains a pixel-space point at the given zoom."""
        return cls(int(np.floor(point.x / tile_size)), int(np.floor(point.y / tile_size)), zoom)


@dataclass(frozen=True)
class FilterPass:
    """One convolution pass: kernel name plus blend strength in [0, 1]."""

    name: str
    strength: float = 1.0

    def __post_init__(self):
        if not (0.0 <= float(self.strength) <= 1.0):
            raise DegenerateInput(f"Filter strength must be within [0, 1], got {self.strength}")

    @property
    def enabled(self) -> bool:
        return float(self.strength) != 0.0


@dataclass(frozen=True)
class DetectionGeometry:
    """Oriented sampling rectangle: four corners in lat/lng plus rotation angle (radians)."""

    corners: Tuple[LatLng, LatLng, LatLng, LatLng]
    angle: float


@dataclass
class SampleBuffer:
    """
    Pixel matrix sampled along a measurement line.

    ``pixels`` is (band_height, segment_length, 3) uint8 RGB, assembled
    column-wise from one or more sub-area captures.
    """

    pixels: np.ndarray
    zoom: int
    sub_area_widths: List[int] = field(default_factory=list)

    @property
    def height(self) -> int:
        return int(self.pixels.shape[0])

    @property
    def width(self) -> int:
        return int(self.pixels.shape[1])

    @property
    def shape(self) -> Tuple[int, int]:
        """Get buffer shape (H, W)."""
        return self.height, self.width

    @classmethod
    def concatenate(cls, captures: Sequence[np.ndarray], zoom: int) -> "SampleBuffer":
        """Join sub-area captures (each H x w_i x 3) left to right."""
        if len(captures) == 0:
            raise DegenerateInput("No sub-area captures to concatenate")
        heights = {c.shape[0] for c in captures}
        if len(heights) != 1:
            raise DegenerateInput(f"Sub-area captures disagree on height: {sorted(heights)}")
        pixels = np.concatenate([c[..., :3] for c in captures], axis=1)
        return cls(pixels=pixels, zoom=zoom, sub_area_widths=[int(c.shape[1]) for c in captures])


@dataclass(frozen=True)
class Failure:
    """Returned (not raised) by region sampling when no buffer can be produced."""

    kind: str
    message: str = ""

    @classmethod
    def from_error(cls, error: RingDetectError) -> "Failure":
        return cls(kind=error.kind, message=str(error))

    def raise_for_failure(self) -> None:
        """Re-raise as the matching exception type."""
        raise ERRORS_BY_KIND.get(self.kind, RingDetectError)(self.message)

    def __bool__(self) -> bool:
        return False


@dataclass
class DetectionResult:
    """
    Results from one detection session.
    """
    boundaries: List[int]
    coordinates: List[LatLng]
    buffer: SampleBuffer
    geometry: DetectionGeometry
    algorithm: str
    zoom: int
    processing_stats: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_boundaries(self) -> int:
        return len(self.boundaries)

    @property
    def success(self) -> bool:
        """Check if detection produced any boundaries."""
        return len(self.boundaries) > 0


@dataclass
class Config:
    """
    Centralized configuration for ring detection.
    """
    # Tile pyramid / viewer
    tile_size: int = TILE_SIZE
    max_texture_layers: int = MAX_TEXTURE_LAYERS
    zoom: Optional[int] = None  # None = viewer's max native zoom

    # Convolution pipeline
    framebuffer_pool_size: int = FRAMEBUFFER_POOL_SIZE
    device: str = "auto"  # "auto", "cpu", "cuda" or "mps"

    # Sampling
    band_height: int = DEFAULT_BAND_HEIGHT
    sampling_margin: int = SAMPLING_MARGIN
    max_canvas_dimension: int = MAX_CANVAS_DIMENSION
    max_canvas_area: int = MAX_CANVAS_AREA
    max_subdivisions: int = MAX_SUBDIVISIONS
    tile_load_timeout: float = TILE_LOAD_TIMEOUT
    css_adjustments: str = ""

    # Detection
    algorithm: str = "classification"  # "classification", "derivative" or "threshold"
    color_channel: str = "intensity"
    blur_radius: int = DEFAULT_BLUR_RADIUS
    min_gap: int = MIN_GAP
    sub_annual: bool = False

    # Placement
    direction: Direction = Direction.FORWARD
    include_anchors: bool = False

    verbose: bool = False

    def validate(self) -> None:
        """Validate configuration parameters."""
        if self.tile_size < 16 or self.tile_size > 4096:
            raise ValueError("tile_size must be between 16 and 4096")
        if not (1 <= self.max_texture_layers <= MAX_TEXTURE_LAYERS):
            raise ValueError(f"max_texture_layers must be between 1 and {MAX_TEXTURE_LAYERS}")
        if self.zoom is not None and self.zoom < 0:
            raise ValueError("zoom must be non-negative")
        if self.framebuffer_pool_size < 2:
            raise ValueError("framebuffer_pool_size must be at least 2")
        if self.device not in ("auto", "cpu", "cuda", "mps"):
            raise ValueError("device must be 'auto', 'cpu', 'cuda' or 'mps'")
        if self.band_height <= 0:
            raise ValueError("band_height must be positive")
        if self.sampling_margin < 0:
            raise ValueError("sampling_margin must be non-negative")
        if self.max_canvas_dimension <= self.sampling_margin:
            raise ValueError("max_canvas_dimension must exceed sampling_margin")
        if self.max_subdivisions < 1:
            raise ValueError("max_subdivisions must be at least 1")
        if self.tile_load_timeout <= 0:
            raise ValueError("tile_load_timeout must be positive")
        if self.algorithm not in ("classification", "derivative", "threshold", "pc", "ed"):
            raise ValueError("algorithm must be 'classification', 'derivative' or 'threshold'")
        if self.color_channel not in ("intensity", "r", "g", "b"):
            raise ValueError("color_channel must be 'intensity', 'r', 'g' or 'b'")
        if self.blur_radius < 0:
            raise ValueError("blur_radius must be non-negative")
        if self.min_gap < 0:
            raise ValueError("min_gap must be non-negative")
        self.direction = Direction(self.direction)
