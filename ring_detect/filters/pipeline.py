"""
Convolution pipeline for tile enhancement.

Runs zero or more 3x3 convolution passes over a tile, ping-ponging through a
small pool of off-screen targets, then one identity pass onto the visible
surface. The per-pixel blend stage is a TorchScript "fragment program" that
can be swapped at runtime; compile failures disable the pipeline instead of
raising into the host.
"""

import logging
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import torch
import torch.nn.functional as F
from PIL import Image

from ..constants import (
    FRAMEBUFFER_POOL_SIZE,
    IDENTITY_KERNEL,
    MAX_TEXTURE_LAYERS,
    MAX_UNIFORM_COMPONENTS,
    STRENGTH_UNIFORM,
    TILE_SIZE,
)
from ..core.errors import ConfigurationError
from ..core.types import FilterPass, LatLng, TileCoordinate
from .kernels import kernel, weight

logger = logging.getLogger(__name__)

UniformValue = Union[float, int, Sequence[float]]
TextureLike = Union[np.ndarray, Image.Image]

# Blend the convolved texel into the source texel by the pass strength.
DEFAULT_FRAGMENT_SHADER = """
def fragment(texel: Tensor, filtered: Tensor, layers: List[Tensor], strength: float, uniforms: Dict[str, Tensor]) -> Tensor:
    return texel + (filtered - texel) * strength
"""


def select_device(preference: str = "auto") -> torch.device:
    """Pick best available device (CUDA > MPS > CPU) unless one is forced."""
    if preference != "auto":
        return torch.device(preference)
    if torch.cuda.is_available():
        return torch.device("cuda")
    if hasattr(torch.backends, "mps") and torch.backends.mps.is_available():
        return torch.device("mps")
    return torch.device("cpu")


def is_valid_tile(coord: TileCoordinate) -> bool:
    """Root tile (0, 0, 0) or any tile with x, y >= 0 and z > 0."""
    return coord.is_valid


def uniform_sizes(uniforms: Dict[str, UniformValue]) -> Dict[str, int]:
    """
    Component count for each uniform declaration (0 means a bare float).

    Raises:
        ValueError: For arrays longer than 4 or values that are not numeric
    """
    sizes = {}
    for name, default in uniforms.items():
        if isinstance(default, bool):
            raise ValueError(f"Default value for uniform '{name}' must be a number or array of numbers")
        if isinstance(default, (int, float)):
            sizes[name] = 0
        elif isinstance(default, (list, tuple)):
            if len(default) > MAX_UNIFORM_COMPONENTS:
                raise ValueError(f"Max size for uniform value is {MAX_UNIFORM_COMPONENTS} elements")
            if not all(isinstance(v, (int, float)) for v in default):
                raise ValueError(f"Uniform '{name}' must only contain numbers")
            sizes[name] = len(default)
        else:
            raise ValueError(
                "Default value for uniforms must be either number or array of numbers"
            )
    return sizes


class ConvolutionPipeline:
    """
    Multi-pass convolution renderer for pyramid tiles.

    Usage:
        pipeline = ConvolutionPipeline(tile_size=256)
        pipeline.set_passes([FilterPass("emboss", 0.15), FilterPass("unsharpen", 0.2)])
        pixels = pipeline.render(TileCoordinate(3, 1, 4), [tile_rgba])
    """

    def __init__(
        self,
        tile_size: int = TILE_SIZE,
        pool_size: int = FRAMEBUFFER_POOL_SIZE,
        max_layers: int = MAX_TEXTURE_LAYERS,
        device: str = "auto",
        fragment_shader: str = DEFAULT_FRAGMENT_SHADER,
        uniforms: Optional[Dict[str, UniformValue]] = None,
        projection: Optional[Callable[[LatLng], Tuple[float, float]]] = None,
    ):
        """
        Args:
            tile_size: Edge length of a (square) tile in pixels
            pool_size: Number of off-screen targets to ping-pong through
            max_layers: Maximum number of source textures per tile (<= 8)
            device: "auto", "cpu", "cuda" or "mps"
            fragment_shader: TorchScript source defining ``fragment``
            uniforms: User uniform declarations (name -> default value)
            projection: LatLng -> CRS coordinates; defaults to the simple CRS (lng, lat)
        """
        if pool_size < 2:
            raise ValueError("pool_size must be at least 2")
        self.tile_size = tile_size
        self.pool_size = pool_size
        self.max_layers = min(max_layers, MAX_TEXTURE_LAYERS)
        self.device = select_device(device)
        self.projection = projection or (lambda ll: (ll.lng, ll.lat))

        self.passes: List[FilterPass] = []
        self._pool = [
            torch.zeros((4, tile_size, tile_size), dtype=torch.float32, device=self.device)
            for _ in range(pool_size)
        ]
        self._surface = torch.zeros((4, tile_size, tile_size), dtype=torch.float32, device=self.device)

        self._fragment = None
        self._gl_error: Optional[str] = None
        self._uniform_sizes: Dict[str, int] = {}
        self._uniforms: Dict[str, torch.Tensor] = {}

        # Textures kept per tile so settings changes can re-render
        self._fetched_textures: Dict[TileCoordinate, List[TextureLike]] = {}
        self._render_listeners: List[Callable[[TileCoordinate, np.ndarray], None]] = []

        self.configure(fragment_shader, uniforms or {})

    # ------------------------------------------------------------------ program

    @property
    def gl_error(self) -> Optional[str]:
        """Compile/link error of the current program, or None."""
        return self._gl_error

    @property
    def enabled(self) -> bool:
        return self._fragment is not None and self._gl_error is None

    def configure(self, fragment_shader: str, uniforms: Dict[str, UniformValue]) -> bool:
        """
        (Re)compile the fragment program and declare user uniforms.

        Returns:
            True on success. On failure the error string is kept in ``gl_error``
            and the pipeline stays disabled until reconfigured.

        Raises:
            ValueError: For malformed uniform declarations
        """
        self._uniform_sizes = uniform_sizes(uniforms)
        self._uniforms = {}
        for name, value in uniforms.items():
            self.set_uniform(name, value)

        self._fragment = None
        self._gl_error = None
        try:
            self._fragment = self._compile(fragment_shader)
        except ConfigurationError as exc:
            self._gl_error = str(exc)
            logger.error(f"Fragment program rejected: {self._gl_error}")
            return False
        logger.debug("Fragment program compiled")
        return True

    def _compile(self, source: str):
        try:
            unit = torch.jit.CompilationUnit(source)
        except Exception as exc:
            raise ConfigurationError(f"compile error: {exc}") from exc
        fragment = unit.find_function("fragment")
        if fragment is None:
            raise ConfigurationError("link error: program does not define 'fragment'")
        return fragment

    def set_uniform(self, name: str, value: UniformValue) -> None:
        """Set the value of a declared uniform."""
        if name not in self._uniform_sizes:
            raise KeyError(f"Uniform '{name}' was not declared")
        size = self._uniform_sizes[name]
        values = [float(value)] if size == 0 else [float(v) for v in value]
        if size and len(values) != size:
            raise ValueError(f"Uniform '{name}' expects {size} components, got {len(values)}")
        tensor = torch.tensor(values, dtype=torch.float32, device=self.device)
        self._uniforms[name] = tensor[0] if size == 0 else tensor

    # ------------------------------------------------------------------- passes

    def set_passes(self, passes: Sequence[FilterPass]) -> Dict[TileCoordinate, np.ndarray]:
        """
        Replace the active filter passes and re-render every resident tile.

        Returns:
            Mapping of tile -> freshly rendered pixels
        """
        for filter_pass in passes:
            kernel(filter_pass.name)  # unknown names fail fast
        self.passes = list(passes)
        return self.re_render()

    def remember(self, tile: TileCoordinate, textures: Sequence[TextureLike]) -> None:
        """Keep a tile's textures so it is re-rendered on settings changes."""
        self._fetched_textures[tile] = list(textures)

    def forget(self, tile: TileCoordinate) -> None:
        self._fetched_textures.pop(tile, None)

    def on_render(self, listener: Callable[[TileCoordinate, np.ndarray], None]) -> None:
        """Register a callback that receives every re-rendered tile."""
        self._render_listeners.append(listener)

    def re_render(self) -> Dict[TileCoordinate, np.ndarray]:
        """Run the pipeline again over all remembered tiles."""
        rendered = {}
        if not self.enabled:
            return rendered
        for tile, textures in list(self._fetched_textures.items()):
            pixels = self.render(tile, textures)
            if pixels is None:
                continue
            rendered[tile] = pixels
            for listener in self._render_listeners:
                listener(tile, pixels)
        return rendered

    # ------------------------------------------------------------------- render

    def render(
        self,
        tile: TileCoordinate,
        textures: Sequence[TextureLike],
        bounds: Optional[Tuple[LatLng, LatLng]] = None,
    ) -> Optional[np.ndarray]:
        """
        Render one tile's enhanced pixels.

        Args:
            tile: Tile being rendered
            textures: Up to ``max_layers`` RGB/RGBA images; layer 0 is convolved
            bounds: (south_west, north_east) of the tile, uploaded as uniforms

        Returns:
            (tile_size, tile_size, 4) uint8 RGBA, or None if the pipeline is disabled
        """
        if not self.enabled:
            return None

        layers = [self._upload(t) for t in list(textures)[: self.max_layers]]
        source = layers[0] if layers else torch.zeros_like(self._surface)
        uniforms = self._frame_uniforms(tile, bounds)

        target_index = 0
        for filter_pass in self.passes:
            if not filter_pass.enabled:
                continue
            target = self._pool[target_index % self.pool_size]
            uniforms[STRENGTH_UNIFORM] = torch.tensor(
                float(filter_pass.strength), dtype=torch.float32, device=self.device
            )
            target.copy_(self._draw(source, kernel(filter_pass.name), float(filter_pass.strength), layers, uniforms))
            source = target
            target_index += 1

        uniforms[STRENGTH_UNIFORM] = torch.tensor(1.0, dtype=torch.float32, device=self.device)
        final = self._draw(source, kernel(IDENTITY_KERNEL), 1.0, layers, uniforms)
        # The visible surface is stored bottom-up, like a GL drawing buffer.
        self._surface = torch.flip(final, dims=[1])
        return self.read_surface()

    def read_surface(self) -> np.ndarray:
        """Top-down RGBA uint8 copy of the visible surface."""
        upright = torch.flip(self._surface, dims=[1])
        pixels = torch.round(upright * 255.0).to(torch.uint8)
        return pixels.permute(1, 2, 0).cpu().numpy()

    def _frame_uniforms(
        self, tile: TileCoordinate, bounds: Optional[Tuple[LatLng, LatLng]]
    ) -> Dict[str, torch.Tensor]:
        uniforms = dict(self._uniforms)
        uniforms["uTileCoords"] = torch.tensor(
            [tile.x, tile.y, tile.z], dtype=torch.float32, device=self.device
        )
        if bounds is not None:
            south_west, north_east = bounds
            min_crs = self.projection(south_west)
            max_crs = self.projection(north_east)
            uniforms["uLatLngBounds"] = torch.tensor(
                [south_west.lng, south_west.lat, north_east.lng, north_east.lat],
                dtype=torch.float32, device=self.device,
            )
            uniforms["uCRSBounds"] = torch.tensor(
                [min_crs[0], min_crs[1], max_crs[0], max_crs[1]],
                dtype=torch.float32, device=self.device,
            )
        return uniforms

    def _draw(
        self,
        source: torch.Tensor,
        matrix: np.ndarray,
        strength: float,
        layers: List[torch.Tensor],
        uniforms: Dict[str, torch.Tensor],
    ) -> torch.Tensor:
        """One pass: convolve RGB, run the fragment stage, quantize to 8 bits."""
        rgb = source[:3].unsqueeze(0)
        padded = F.pad(rgb, (1, 1, 1, 1), mode="replicate")
        weights = torch.as_tensor(np.array(matrix), dtype=torch.float32, device=self.device)
        weights = weights.view(1, 1, 3, 3).repeat(3, 1, 1, 1)
        convolved = F.conv2d(padded, weights, groups=3)[0] / weight(matrix)
        filtered = torch.cat([convolved, source[3:4]], dim=0)

        out = self._fragment(source, filtered, layers, strength, uniforms)
        out = torch.clamp(out, 0.0, 1.0)
        return torch.round(out * 255.0) / 255.0

    def _upload(self, texture: TextureLike) -> torch.Tensor:
        """Convert an image to a (4, S, S) float texture, padding small images transparently."""
        if isinstance(texture, Image.Image):
            array = np.asarray(texture.convert("RGBA"))
        else:
            array = np.asarray(texture)
            if array.ndim == 2:
                array = np.repeat(array[..., None], 3, axis=2)
            if array.shape[2] == 3:
                alpha = np.full(array.shape[:2] + (1,), 255, dtype=np.uint8)
                array = np.concatenate([array.astype(np.uint8), alpha], axis=2)
        array = array[: self.tile_size, : self.tile_size].astype(np.uint8)

        h, w = array.shape[:2]
        if h < self.tile_size or w < self.tile_size:
            canvas = np.zeros((self.tile_size, self.tile_size, 4), dtype=np.uint8)
            canvas[:h, :w] = array
            array = canvas

        tensor = torch.from_numpy(np.ascontiguousarray(array)).to(self.device)
        return tensor.permute(2, 0, 1).to(torch.float32) / 255.0
