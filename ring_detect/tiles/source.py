"""
Tile texture source.

Resolves the pixel content of up to eight raster layers for one tile
coordinate. Each layer is fetched independently; the combined fetch
completes once every layer has resolved and fails as soon as one layer
fails. There is no retry at this level.
"""

import asyncio
import inspect
import io
import logging
from pathlib import Path
from typing import Awaitable, Callable, List, Optional, Sequence, Union

import numpy as np
import requests
from PIL import Image

from ..constants import MAX_TEXTURE_LAYERS
from ..core.errors import ResourceUnavailable
from ..core.types import TileCoordinate
from .pyramid import TilePyramid

logger = logging.getLogger(__name__)

LayerFetcher = Callable[[TileCoordinate], Union[np.ndarray, Awaitable[np.ndarray]]]


def _decode(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as img:
        return np.asarray(img.convert("RGBA")).copy()


class TileLayer:
    """One raster layer. Subclasses implement ``fetch``."""

    name = "layer"

    async def fetch(self, coord: TileCoordinate) -> np.ndarray:
        raise NotImplementedError


class PyramidLayer(TileLayer):
    """Tiles cut from an in-memory pyramid."""

    name = "pyramid"

    def __init__(self, pyramid: TilePyramid):
        self.pyramid = pyramid

    async def fetch(self, coord: TileCoordinate) -> np.ndarray:
        try:
            return self.pyramid.tile(coord)
        except KeyError as exc:
            raise ResourceUnavailable(str(exc)) from None


class TemplateLayer(TileLayer):
    """
    Tiles addressed by a "{z}/{x}/{y}" template.

    http(s) templates are fetched with ``requests`` in a worker thread; any
    other template is treated as a local file path.
    """

    name = "template"

    def __init__(self, template: str, session: Optional[requests.Session] = None, timeout: float = 30.0):
        self.template = template
        self.timeout = timeout
        self.session = session
        self.is_remote = template.startswith(("http://", "https://"))
        if self.is_remote and self.session is None:
            self.session = requests.Session()

    def resolve(self, coord: TileCoordinate) -> str:
        return self.template.format(x=coord.x, y=coord.y, z=coord.z)

    async def fetch(self, coord: TileCoordinate) -> np.ndarray:
        location = self.resolve(coord)
        if self.is_remote:
            data = await asyncio.to_thread(self._download, location)
        else:
            path = Path(location)
            if not path.exists():
                raise ResourceUnavailable(f"Tile file not found: {path}")
            data = await asyncio.to_thread(path.read_bytes)
        try:
            return _decode(data)
        except (OSError, ValueError) as exc:
            raise ResourceUnavailable(f"Could not decode tile {location}: {exc}") from exc

    def _download(self, url: str) -> bytes:
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.RequestException as exc:
            raise ResourceUnavailable(f"Tile request failed for {url}: {exc}") from exc
        return resp.content


class CallableLayer(TileLayer):
    """Tiles derived by a user function (sync or async)."""

    name = "callable"

    def __init__(self, fetcher: LayerFetcher):
        self.fetcher = fetcher

    async def fetch(self, coord: TileCoordinate) -> np.ndarray:
        result = self.fetcher(coord)
        if inspect.isawaitable(result):
            result = await result
        if result is None:
            raise ResourceUnavailable(f"No data for tile {coord.key}")
        return np.asarray(result)


class TileTextureSource:
    """
    Fetches every configured layer for a tile concurrently.

    Usage:
        source = TileTextureSource([PyramidLayer(pyramid)])
        textures = await source.fetch(TileCoordinate(0, 0, 0))
    """

    def __init__(self, layers: Sequence[Union[TileLayer, TilePyramid, str, LayerFetcher]]):
        if not layers:
            raise ValueError("At least one tile layer is required")
        if len(layers) > MAX_TEXTURE_LAYERS:
            raise ValueError(f"At most {MAX_TEXTURE_LAYERS} tile layers are supported, got {len(layers)}")
        self.layers: List[TileLayer] = [_as_layer(layer) for layer in layers]

    async def fetch(self, coord: TileCoordinate) -> List[np.ndarray]:
        """
        Resolve all layers for one tile.

        Raises:
            ResourceUnavailable: If any layer fails; the other fetches are cancelled
        """
        tasks = [asyncio.ensure_future(layer.fetch(coord)) for layer in self.layers]
        try:
            return list(await asyncio.gather(*tasks))
        except ResourceUnavailable:
            logger.debug(f"Layer fetch failed for tile {coord.key}")
            raise
        except Exception as exc:
            raise ResourceUnavailable(f"Tile {coord.key} could not be fetched: {exc}") from exc
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()


def _as_layer(layer) -> TileLayer:
    if isinstance(layer, TileLayer):
        return layer
    if isinstance(layer, TilePyramid):
        return PyramidLayer(layer)
    if isinstance(layer, str):
        return TemplateLayer(layer)
    if callable(layer):
        return CallableLayer(layer)
    raise TypeError(f"Unsupported tile layer: {layer!r}")
