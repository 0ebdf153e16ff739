"""
Oriented region sampler.

Produces the pixel band under a measurement line by compositing rendered
tiles onto a canvas under a rotation that makes the band axis-aligned.
Tiles that are not resident are pulled in by recentering the viewer; the
walk then suspends and resumes, from the exact step it stopped at, when the
viewer reports the tile loaded.

The walk is an explicit state machine: everything needed to resume lives in
``ScanState``, and the sampler re-enters ``_scan`` from tile-load events.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple, Union

import cv2
import numpy as np

from ..core.errors import (
    CaptureAreaTooLarge,
    DegenerateInput,
    ResourceUnavailable,
    SessionCancelled,
)
from ..core.types import Config, Failure, LatLng, PixelPoint, SampleBuffer, TileCoordinate
from ..filters.css import apply_css_filters, parse_css_filters
from .geometry import Segment, normalize_anchors, plan_sub_areas, project_segment, scan_offsets
from .viewer import ViewerHost

logger = logging.getLogger(__name__)

SampleResult = Union[SampleBuffer, Failure]


@dataclass
class ScanState:
    """Resumable state of one sampling session."""

    epoch: int
    segment: Segment
    band_height: int
    css: str
    plan: List[Tuple[int, int]]  # (offset, width) per sub-area
    lines: List[float]  # normal offsets walked for residency
    future: asyncio.Future

    sub_index: int = 0
    line_index: int = 0
    step: int = 0
    placed: Set[TileCoordinate] = field(default_factory=set)
    canvas: Optional[np.ndarray] = None
    captures: List[np.ndarray] = field(default_factory=list)

    waited: bool = False  # a wait happened during the current pass
    waiting_for: Optional[TileCoordinate] = None
    timer: Optional[asyncio.TimerHandle] = None

    @property
    def done(self) -> bool:
        return self.future.done()

    @property
    def zoom(self) -> int:
        return self.segment.zoom


class OrientedRegionSampler:
    """
    Samples a band of pixels along a line segment from a tiled viewer.

    Usage:
        sampler = OrientedRegionSampler(viewer, Config(band_height=50))
        result = await sampler.sample_region(anchor1, anchor2, 50)
        if not result:
            result.raise_for_failure()
    """

    def __init__(self, host: ViewerHost, config: Optional[Config] = None):
        self.host = host
        self.config = config or Config()
        self.config.validate()
        self._epoch = 0
        self._active: Optional[ScanState] = None
        host.on_tile_load(self._on_tile_load)
        host.on_tile_error(self._on_tile_error)

    @property
    def epoch(self) -> int:
        """Generation counter, bumped by every ``sample_region`` call."""
        return self._epoch

    @property
    def margin(self) -> int:
        return self.config.sampling_margin

    async def sample_region(
        self,
        anchor1: LatLng,
        anchor2: LatLng,
        band_height: int,
        zoom: Optional[int] = None,
        css_adjustments: Optional[str] = None,
    ) -> SampleResult:
        """
        Sample the band between two anchors.

        Args:
            anchor1, anchor2: Endpoints in map coordinates (either order)
            band_height: Band height in pixels at ``zoom``
            zoom: Sampling zoom; defaults to the viewer's max zoom
            css_adjustments: Cosmetic filters baked into the capture; None uses
                the viewer's current adjustments, "" neutralizes them

        Returns:
            SampleBuffer of shape (band_height, floor(length), 3), or a Failure
        """
        self._epoch += 1
        if self._active is not None and not self._active.done:
            logger.info(f"Session {self._active.epoch} superseded by session {self._epoch}")
            self._finish(self._active, Failure.from_error(SessionCancelled("Superseded by a newer session")))

        future = asyncio.get_running_loop().create_future()
        try:
            state = self._prepare(anchor1, anchor2, band_height, zoom, css_adjustments, future)
        except (DegenerateInput, CaptureAreaTooLarge) as exc:
            logger.debug(f"Sampling rejected: {exc}")
            return Failure.from_error(exc)

        self._active = state
        self._scan(state)
        return await future

    # -------------------------------------------------------------- preparation

    def _prepare(self, anchor1, anchor2, band_height, zoom, css, future) -> ScanState:
        host = self.host
        zoom = host.max_zoom if zoom is None else int(zoom)
        if not (host.min_zoom <= zoom <= host.max_zoom):
            raise DegenerateInput(f"Zoom {zoom} outside viewer range {host.min_zoom}..{host.max_zoom}")
        if band_height is None or band_height <= 0 or int(band_height) <= 0:
            raise DegenerateInput(f"Band height must be positive, got {band_height}")
        band_height = int(band_height)

        css = host.css_adjustments() if css is None else css
        parse_css_filters(css)

        start, end = normalize_anchors(anchor1, anchor2)
        segment = project_segment(host, start, end, zoom)
        if segment.width == 0:
            raise DegenerateInput("Anchors are less than one pixel apart at the sampling zoom")

        plan = self._choose_subdivisions(segment.width, band_height)
        if len(plan) > 1:
            logger.debug(f"Sampling {segment.width}px in {len(plan)} sub-areas")

        return ScanState(
            epoch=self._epoch,
            segment=segment,
            band_height=band_height,
            css=css,
            plan=plan,
            lines=scan_offsets(band_height, host.tile_size),
            future=future,
        )

    def _choose_subdivisions(self, width: int, band_height: int) -> List[Tuple[int, int]]:
        """Smallest sub-area split whose canvases fit the surface limits."""
        error = None
        for subdivisions in range(1, self.config.max_subdivisions + 1):
            plan = plan_sub_areas(width, subdivisions)
            widest = max(part for _, part in plan)
            try:
                self._check_canvas(widest, band_height)
            except CaptureAreaTooLarge as exc:
                error = exc
                logger.debug(f"{subdivisions} sub-area(s) too large: {exc}")
                if len(plan) < subdivisions:
                    break
                continue
            return plan
        raise CaptureAreaTooLarge(
            f"Sampling area {width}x{band_height}px does not fit even after "
            f"{self.config.max_subdivisions} subdivisions ({error})"
        )

    def _check_canvas(self, width: int, height: int) -> Tuple[int, int]:
        canvas_w, canvas_h = width + self.margin, height + self.margin
        limit = self.config.max_canvas_dimension
        if canvas_w > limit or canvas_h > limit:
            raise CaptureAreaTooLarge(f"canvas {canvas_w}x{canvas_h} exceeds {limit}px per side")
        if canvas_w * canvas_h > self.config.max_canvas_area:
            raise CaptureAreaTooLarge(
                f"canvas {canvas_w}x{canvas_h} exceeds {self.config.max_canvas_area}px area"
            )
        return canvas_w, canvas_h

    def _allocate_canvas(self, width: int, height: int) -> np.ndarray:
        canvas_w, canvas_h = self._check_canvas(width, height)
        try:
            return np.zeros((canvas_h, canvas_w, 4), dtype=np.uint8)
        except MemoryError as exc:
            raise CaptureAreaTooLarge(f"could not allocate {canvas_w}x{canvas_h} canvas") from exc

    # --------------------------------------------------------------------- scan

    def _scan(self, state: ScanState) -> None:
        """Advance the walk until it completes or has to wait for a tile."""
        if state.done:
            return
        if state.epoch != self._epoch:
            logger.info(f"Dropping stale resumption of session {state.epoch}")
            self._finish(state, Failure.from_error(SessionCancelled("Session was superseded")))
            return

        host = self.host
        tile_size = host.tile_size
        while state.sub_index < len(state.plan):
            offset, width = state.plan[state.sub_index]
            if state.canvas is None:
                try:
                    state.canvas = self._allocate_canvas(width, state.band_height)
                except CaptureAreaTooLarge as exc:
                    self._finish(state, Failure.from_error(exc))
                    return

            while state.line_index < len(state.lines):
                normal_offset = state.lines[state.line_index]
                while state.step <= width:
                    point = state.segment.point_at(offset + state.step, normal_offset)
                    coord = TileCoordinate.containing(point, state.zoom, tile_size)
                    if not host.is_tile_resident(coord):
                        self._wait_for(state, coord)
                        return
                    if coord not in state.placed:
                        self._composite(state, coord, offset)
                        state.placed.add(coord)
                    state.step += 1
                state.line_index += 1
                state.step = 0

            if state.waited:
                # Walk again until a whole pass sees every tile resident
                state.waited = False
                state.line_index = 0
                continue

            state.captures.append(self._extract(state, width))
            state.sub_index += 1
            state.line_index = 0
            state.step = 0
            state.placed = set()
            state.canvas = None

        self._finish(state, SampleBuffer.concatenate(state.captures, state.zoom))

    def _wait_for(self, state: ScanState, coord: TileCoordinate) -> None:
        state.waited = True
        state.waiting_for = coord
        loop = state.future.get_loop()
        state.timer = loop.call_later(self.config.tile_load_timeout, self._on_timeout, state, coord)
        logger.debug(
            f"Waiting for tile {coord.key} (sub-area {state.sub_index}, "
            f"line {state.line_index}, step {state.step})"
        )
        size = self.host.tile_size
        center = PixelPoint((coord.x + 0.5) * size, (coord.y + 0.5) * size)
        self.host.request_view_center(self.host.unproject(center, state.zoom), state.zoom)

    def _composite(self, state: ScanState, coord: TileCoordinate, offset: int) -> None:
        """Draw one rendered tile onto the sub-area canvas under the band rotation."""
        pixels = self.host.tile_pixels(coord)
        if pixels is None:
            return
        size = self.host.tile_size
        # Fractional on sloped lines; nearest-neighbour rounding can differ
        # from a single capture by a pixel along sub-area seams.
        origin = state.segment.point_at(offset)
        pad = self.margin // 2
        rotation = state.segment.rotation()
        tile_origin = np.array([coord.x * size - origin.x, coord.y * size - origin.y])
        translation = rotation @ tile_origin + np.array([pad, pad + state.band_height / 2.0])
        matrix = np.hstack([rotation, translation[:, None]])

        canvas = state.canvas
        cv2.warpAffine(
            np.ascontiguousarray(pixels, dtype=np.uint8),
            matrix,
            (canvas.shape[1], canvas.shape[0]),
            dst=canvas,
            flags=cv2.INTER_NEAREST,
            borderMode=cv2.BORDER_TRANSPARENT,
        )

    def _extract(self, state: ScanState, width: int) -> np.ndarray:
        pad = self.margin // 2
        region = state.canvas[pad:pad + state.band_height, pad:pad + width].copy()
        if state.css:
            region = apply_css_filters(region, state.css)
        return region[..., :3]

    # ------------------------------------------------------------------- events

    def _on_tile_load(self, coord: TileCoordinate) -> None:
        state = self._active
        if state is None or state.done or state.waiting_for != coord:
            return
        self._cancel_timer(state)
        state.waiting_for = None
        state.future.get_loop().call_soon(self._scan, state)

    def _on_tile_error(self, coord: TileCoordinate, error: Exception) -> None:
        state = self._active
        if state is None or state.done or state.waiting_for != coord:
            return
        self._finish(state, Failure.from_error(ResourceUnavailable(f"Tile {coord.key} failed to load: {error}")))

    def _on_timeout(self, state: ScanState, coord: TileCoordinate) -> None:
        if state.done or state.waiting_for != coord:
            return
        logger.warning(f"Tile {coord.key} did not load within {self.config.tile_load_timeout}s")
        self._finish(
            state,
            Failure.from_error(ResourceUnavailable(f"Timed out waiting for tile {coord.key}")),
        )

    def _cancel_timer(self, state: ScanState) -> None:
        if state.timer is not None:
            state.timer.cancel()
            state.timer = None

    def _finish(self, state: ScanState, result: SampleResult) -> None:
        self._cancel_timer(state)
        state.waiting_for = None
        state.canvas = None
        if not state.future.done():
            state.future.set_result(result)
        if self._active is state:
            self._active = None
