"""
Viewer host for region sampling.

``ViewerHost`` is the surface the sampler needs from a map viewer: zoom
range, projection, tile residency and load/error notification, and a way to
force tiles in by recentering the view. ``PyramidViewer`` implements it in
process over a tile pyramid, loading tiles through the texture source and
the convolution pipeline exactly as a browser viewer would.
"""

import asyncio
import logging
import math
from typing import Callable, Dict, List, Optional, Protocol, Sequence, Tuple

import numpy as np

from ..constants import TILE_SIZE
from ..core.types import FilterPass, LatLng, PixelPoint, TileCoordinate
from ..filters.pipeline import ConvolutionPipeline
from .geometry import simple_project, simple_unproject
from .pyramid import TilePyramid
from .source import PyramidLayer, TileTextureSource

logger = logging.getLogger(__name__)

TileLoadCallback = Callable[[TileCoordinate], None]
TileErrorCallback = Callable[[TileCoordinate, Exception], None]


class ViewerHost(Protocol):
    """Everything the region sampler consumes from the host viewer."""

    tile_size: int
    min_zoom: int
    max_zoom: int
    current_zoom: int

    def project(self, latlng: LatLng, zoom: int) -> PixelPoint: ...

    def unproject(self, point: PixelPoint, zoom: int) -> LatLng: ...

    def is_tile_resident(self, coord: TileCoordinate) -> bool: ...

    def tile_pixels(self, coord: TileCoordinate) -> Optional[np.ndarray]: ...

    def on_tile_load(self, callback: TileLoadCallback) -> None: ...

    def on_tile_error(self, callback: TileErrorCallback) -> None: ...

    def request_view_center(self, latlng: LatLng, zoom: int) -> None: ...

    def css_adjustments(self) -> str: ...


class PyramidViewer:
    """
    In-process viewer over a tile pyramid.

    Tiles outside the image are treated as resident and empty. Tiles inside
    the image become resident once every layer has been fetched and the tile
    has been rendered through the convolution pipeline.

    Usage:
        viewer = PyramidViewer(TilePyramid.from_file("core.png"))
        viewer.set_filter_passes([FilterPass("emboss", 0.15)])
        viewer.request_view_center(LatLng(-10, 40), viewer.max_zoom)
    """

    def __init__(
        self,
        pyramid: TilePyramid,
        source: Optional[TileTextureSource] = None,
        pipeline: Optional[ConvolutionPipeline] = None,
        viewport: Tuple[int, int] = (1024, 768),
        css: str = "",
    ):
        self.pyramid = pyramid
        self.tile_size = pyramid.tile_size
        self.min_zoom = pyramid.min_zoom
        self.max_zoom = pyramid.max_zoom
        self.current_zoom = pyramid.max_zoom
        self.center: Optional[LatLng] = None
        self.viewport = viewport
        self.css = css

        self.source = source or TileTextureSource([PyramidLayer(pyramid)])
        self.pipeline = pipeline or ConvolutionPipeline(tile_size=self.tile_size)
        self.pipeline.on_render(self._store_rendered)

        self._tiles: Dict[TileCoordinate, np.ndarray] = {}
        self._loading: Dict[TileCoordinate, asyncio.Task] = {}
        self._load_callbacks: List[TileLoadCallback] = []
        self._error_callbacks: List[TileErrorCallback] = []
        self.requests: List[Tuple[LatLng, int]] = []

    # --------------------------------------------------------------- projection

    def project(self, latlng: LatLng, zoom: int) -> PixelPoint:
        return simple_project(latlng, zoom)

    def unproject(self, point: PixelPoint, zoom: int) -> LatLng:
        return simple_unproject(point, zoom)

    def tile_bounds(self, coord: TileCoordinate) -> Tuple[LatLng, LatLng]:
        """(south_west, north_east) of a tile."""
        size = self.tile_size
        south_west = self.unproject(PixelPoint(coord.x * size, (coord.y + 1) * size), coord.z)
        north_east = self.unproject(PixelPoint((coord.x + 1) * size, coord.y * size), coord.z)
        return south_west, north_east

    def image_to_latlng(self, x: float, y: float) -> LatLng:
        """Full-resolution image pixel -> map coordinate."""
        return self.unproject(PixelPoint(x, y), self.max_zoom)

    # ---------------------------------------------------------------- residency

    def is_tile_resident(self, coord: TileCoordinate) -> bool:
        if not self.pyramid.contains(coord):
            return True
        return coord in self._tiles

    def tile_pixels(self, coord: TileCoordinate) -> Optional[np.ndarray]:
        """Rendered RGBA pixels of a resident tile; None when nothing is drawn there."""
        return self._tiles.get(coord)

    def on_tile_load(self, callback: TileLoadCallback) -> None:
        self._load_callbacks.append(callback)

    def on_tile_error(self, callback: TileErrorCallback) -> None:
        self._error_callbacks.append(callback)

    def css_adjustments(self) -> str:
        return self.css

    def evict(self, coord: Optional[TileCoordinate] = None) -> None:
        """Drop one resident tile (or all of them)."""
        coords = [coord] if coord is not None else list(self._tiles)
        for c in coords:
            self._tiles.pop(c, None)
            self.pipeline.forget(c)

    # ------------------------------------------------------------------ loading

    def request_view_center(self, latlng: LatLng, zoom: int) -> None:
        """
        Recenter the view and start loading every visible tile.

        Must be called from within a running event loop; completion is
        reported through the tile load/error callbacks.
        """
        zoom = int(min(max(zoom, self.min_zoom), self.max_zoom))
        self.center = LatLng(*latlng)
        self.current_zoom = zoom
        self.requests.append((self.center, zoom))

        loop = asyncio.get_running_loop()
        for coord in self.visible_tiles(self.center, zoom):
            if coord in self._tiles or coord in self._loading:
                continue
            if not self.pyramid.contains(coord):
                continue
            self._loading[coord] = loop.create_task(self._load(coord))

    def visible_tiles(self, center: LatLng, zoom: int) -> List[TileCoordinate]:
        """Tiles intersecting the viewport centred on ``center``."""
        middle = self.project(center, zoom)
        half_w, half_h = self.viewport[0] / 2.0, self.viewport[1] / 2.0
        size = self.tile_size
        x0, x1 = math.floor((middle.x - half_w) / size), math.floor((middle.x + half_w - 1) / size)
        y0, y1 = math.floor((middle.y - half_h) / size), math.floor((middle.y + half_h - 1) / size)
        return [
            TileCoordinate(x, y, zoom)
            for y in range(y0, y1 + 1)
            for x in range(x0, x1 + 1)
        ]

    async def load_tiles(self, coords: Sequence[TileCoordinate]) -> None:
        """Load tiles directly and wait for them (tiles outside the image are skipped)."""
        await asyncio.gather(*(self._load(c) for c in coords if self.pyramid.contains(c)))

    async def _load(self, coord: TileCoordinate) -> None:
        try:
            textures = await self.source.fetch(coord)
            pixels = self.pipeline.render(coord, textures, self.tile_bounds(coord))
            if pixels is None:
                logger.warning(f"Pipeline disabled ({self.pipeline.gl_error}); showing raw tile {coord.key}")
                pixels = _as_rgba(textures[0], self.tile_size)
            self.pipeline.remember(coord, textures)
            self._tiles[coord] = pixels
        except Exception as exc:
            logger.debug(f"Tile {coord.key} failed to load: {exc}")
            for callback in list(self._error_callbacks):
                callback(coord, exc)
            return
        finally:
            self._loading.pop(coord, None)

        for callback in list(self._load_callbacks):
            callback(coord)

    # ---------------------------------------------------------------- rendering

    def set_filter_passes(self, passes: Sequence[FilterPass]) -> None:
        """Replace the enhancement passes; resident tiles are re-rendered."""
        self.pipeline.set_passes(passes)

    def _store_rendered(self, coord: TileCoordinate, pixels: np.ndarray) -> None:
        if coord in self._tiles:
            self._tiles[coord] = pixels

    def get_color(self, latlng: LatLng, zoom: Optional[int] = None) -> Optional[Tuple[int, int, int, int]]:
        """RGBA of the rendered pixel under a map coordinate, or None if not resident."""
        zoom = self.current_zoom if zoom is None else zoom
        point = self.project(LatLng(*latlng), zoom)
        coord = TileCoordinate.containing(point, zoom, self.tile_size)
        pixels = self._tiles.get(coord)
        if pixels is None:
            return None
        px = int(math.floor(point.x)) - coord.x * self.tile_size
        py = int(math.floor(point.y)) - coord.y * self.tile_size
        return tuple(int(v) for v in pixels[py, px])


def _as_rgba(texture, tile_size: int = TILE_SIZE) -> np.ndarray:
    array = np.asarray(texture, dtype=np.uint8)
    if array.ndim == 2:
        array = np.repeat(array[..., None], 3, axis=2)
    if array.shape[2] == 3:
        array = np.concatenate([array, np.full(array.shape[:2] + (1,), 255, np.uint8)], axis=2)
    out = np.zeros((tile_size, tile_size, 4), dtype=np.uint8)
    h, w = min(array.shape[0], tile_size), min(array.shape[1], tile_size)
    out[:h, :w] = array[:h, :w]
    return out
