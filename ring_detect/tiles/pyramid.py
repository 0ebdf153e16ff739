"""
Tile Pyramid Module for Large Core Images

Builds a multi-resolution grid of fixed-size tiles from one full-resolution
scan, the same (x, y, z) layout a slippy-map viewer requests.
"""

import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union

import cv2
import numpy as np
from PIL import Image

from ..constants import TILE_SIZE
from ..core.types import TileCoordinate

logger = logging.getLogger(__name__)


@dataclass
class PyramidConfig:
    """Configuration for pyramid construction."""

    tile_size: int = TILE_SIZE  # Tile dimension (square)
    max_zoom: Optional[int] = None  # None = native zoom (1 image px per map px)
    pad_mode: str = "constant"  # "constant" (transparent) or "edge"


@dataclass
class PyramidTile:
    """A single tile cut from one pyramid level."""

    tile_array: np.ndarray  # (S, S, 4) RGBA tile
    coord: TileCoordinate
    x_start: int  # Start x coordinate in level pixels
    y_start: int  # Start y coordinate in level pixels
    x_end: int  # End x coordinate in level pixels
    y_end: int  # End y coordinate in level pixels

    @property
    def shape(self) -> Tuple[int, int]:
        """Get tile shape (H, W)."""
        return self.tile_array.shape[:2]


def native_zoom(height: int, width: int, tile_size: int = TILE_SIZE) -> int:
    """Zoom level at which the image is shown 1:1, given that zoom 0 fits in one tile."""
    longest = max(height, width, 1)
    return max(0, int(math.ceil(math.log2(longest / tile_size))))


def load_image(path: Union[str, Path]) -> np.ndarray:
    """Load an image file as an RGBA uint8 array."""
    with Image.open(path) as img:
        return np.asarray(img.convert("RGBA")).copy()


class TilePyramid:
    """
    Serves tiles of a full-resolution image at every zoom level.

    Usage:
        pyramid = TilePyramid(image_np, PyramidConfig(tile_size=256))
        tile = pyramid.tile(TileCoordinate(3, 1, pyramid.max_zoom))
        info = pyramid.get_grid_info(pyramid.max_zoom)
    """

    def __init__(self, image_np: np.ndarray, config: Optional[PyramidConfig] = None):
        """
        Initialize TilePyramid.

        Args:
            image_np: Full image array (H, W, 3) or (H, W, 4), uint8
            config: Pyramid configuration
        """
        self.config = config or PyramidConfig()
        self.tile_size = self.config.tile_size
        self.image = _as_rgba(image_np)

        h, w = self.image.shape[:2]
        native = native_zoom(h, w, self.tile_size)
        self.max_zoom = native if self.config.max_zoom is None else self.config.max_zoom
        if self.max_zoom > native:
            raise ValueError(f"max_zoom {self.max_zoom} exceeds native zoom {native}")
        self.min_zoom = 0
        self._native = native
        self._levels: Dict[int, np.ndarray] = {}

        logger.debug(f"Pyramid for {w}x{h} image: zoom {self.min_zoom}..{self.max_zoom}")

    @classmethod
    def from_file(cls, path: Union[str, Path], config: Optional[PyramidConfig] = None) -> "TilePyramid":
        return cls(load_image(path), config)

    def level(self, zoom: int) -> np.ndarray:
        """Full image resampled for one zoom level (cached)."""
        if not (self.min_zoom <= zoom <= self.max_zoom):
            raise ValueError(f"Zoom {zoom} outside pyramid range {self.min_zoom}..{self.max_zoom}")
        if zoom not in self._levels:
            scale = 2.0 ** (zoom - self._native)
            if scale == 1.0:
                self._levels[zoom] = self.image
            else:
                h, w = self.image.shape[:2]
                size = (max(1, int(math.ceil(w * scale))), max(1, int(math.ceil(h * scale))))
                self._levels[zoom] = cv2.resize(self.image, size, interpolation=cv2.INTER_AREA)
        return self._levels[zoom]

    def level_shape(self, zoom: int) -> Tuple[int, int]:
        return self.level(zoom).shape[:2]

    def tile_grid(self, zoom: int) -> Tuple[int, int]:
        """Number of tiles (nx, ny) covering a level."""
        h, w = self.level_shape(zoom)
        return len(self._calculate_tile_positions(w)), len(self._calculate_tile_positions(h))

    def contains(self, coord: TileCoordinate) -> bool:
        """True when the tile overlaps the image at its zoom."""
        if not coord.is_valid or not (self.min_zoom <= coord.z <= self.max_zoom):
            return False
        nx, ny = self.tile_grid(coord.z)
        return coord.x < nx and coord.y < ny

    def tile(self, coord: TileCoordinate) -> np.ndarray:
        """
        Cut one tile.

        Raises:
            KeyError: If the tile lies outside the pyramid
        """
        if not self.contains(coord):
            raise KeyError(f"Tile {coord.key} is outside the pyramid")
        level = self.level(coord.z)
        h, w = level.shape[:2]
        x_start, y_start = coord.x * self.tile_size, coord.y * self.tile_size
        tile = level[y_start:min(y_start + self.tile_size, h), x_start:min(x_start + self.tile_size, w)]

        # Pad if tile is smaller than tile_size (right/bottom edge)
        if tile.shape[0] < self.tile_size or tile.shape[1] < self.tile_size:
            tile = self._pad_tile(tile, self.tile_size)
        return np.ascontiguousarray(tile)

    def extract_tiles(self, zoom: int) -> List[PyramidTile]:
        """
        Extract every tile of one level in row-major order.

        Args:
            zoom: Pyramid level

        Returns:
            List of PyramidTile objects with tile data and coordinates
        """
        h, w = self.level_shape(zoom)
        tiles = []
        for row, y_start in enumerate(self._calculate_tile_positions(h)):
            for col, x_start in enumerate(self._calculate_tile_positions(w)):
                coord = TileCoordinate(col, row, zoom)
                tiles.append(
                    PyramidTile(
                        tile_array=self.tile(coord),
                        coord=coord,
                        x_start=x_start,
                        y_start=y_start,
                        x_end=min(x_start + self.tile_size, w),
                        y_end=min(y_start + self.tile_size, h),
                    )
                )
        return tiles

    def _calculate_tile_positions(self, dim_size: int) -> List[int]:
        """Starting positions of non-overlapping tiles along one dimension."""
        return list(range(0, max(dim_size, 1), self.tile_size))

    def _pad_tile(self, tile: np.ndarray, target_size: int) -> np.ndarray:
        """
        Pad tile to target size (for edge tiles).

        Args:
            tile: Tile array (H, W, 4)
            target_size: Target dimension

        Returns:
            Padded tile (target_size, target_size, 4)
        """
        h, w = tile.shape[:2]
        pad = ((0, target_size - h), (0, target_size - w), (0, 0))
        if self.config.pad_mode == "edge":
            return np.pad(tile, pad, mode="edge")
        # Transparent outside the image
        return np.pad(tile, pad, mode="constant", constant_values=0)

    def get_grid_info(self, zoom: int) -> dict:
        """
        Get information about the tile grid for one level.

        Returns:
            Dictionary with grid information
        """
        nx, ny = self.tile_grid(zoom)
        h, w = self.level_shape(zoom)
        return {
            "zoom": zoom,
            "n_tiles": nx * ny,
            "n_tiles_x": nx,
            "n_tiles_y": ny,
            "level_height": h,
            "level_width": w,
            "tile_size": self.tile_size,
        }


def _as_rgba(image_np: np.ndarray) -> np.ndarray:
    image_np = np.asarray(image_np)
    if image_np.dtype != np.uint8:
        raise ValueError(f"Expected a uint8 image, got {image_np.dtype}")
    if image_np.ndim == 2:
        return cv2.cvtColor(image_np, cv2.COLOR_GRAY2RGBA)
    if image_np.shape[2] == 3:
        return cv2.cvtColor(image_np, cv2.COLOR_RGB2RGBA)
    if image_np.shape[2] == 4:
        return image_np
    raise ValueError(f"Unsupported image shape {image_np.shape}")
