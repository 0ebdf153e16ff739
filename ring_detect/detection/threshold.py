"""
Global-threshold edge tracing.

Pixels are split dark/bright by one global threshold. Pixels where the class
changes along a row or a column form transition curves; curves that run
from the top of the band to the bottom are traced with a shortest path and
the column where each crosses the middle row is reported.
"""

from collections import deque
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import cv2
import numpy as np

from ..constants import DEFAULT_GLOBAL_THRESHOLD
from .base import Algorithm, AlgorithmSettings, BoundaryAlgorithm, enforce_min_gap, register
from .preprocessing import preprocess

Pixel = Tuple[int, int]

_NEIGHBOURS = [(dy, dx) for dy in (-1, 0, 1) for dx in (-1, 0, 1) if (dy, dx) != (0, 0)]


@dataclass
class ThresholdSettings(AlgorithmSettings):
    global_threshold: float = DEFAULT_GLOBAL_THRESHOLD


def transition_mask(values: np.ndarray, threshold: float) -> np.ndarray:
    """Pixels whose dark/bright class differs from their left or upper neighbour."""
    dark = values <= threshold
    mask = np.zeros(values.shape, dtype=bool)
    mask[:, 1:] |= dark[:, 1:] != dark[:, :-1]
    mask[1:, :] |= dark[1:, :] != dark[:-1, :]
    return mask


def trace_edge(component: np.ndarray) -> Optional[List[Pixel]]:
    """
    Shortest 8-connected path through ``component`` from its top rows to its
    bottom rows, or None when it doesn't span the band.
    """
    h = component.shape[0]
    rows, cols = np.nonzero(component)
    sources = [(int(r), int(c)) for r, c in zip(rows, cols) if r < 2]
    if not sources or not np.any(rows > h - 2):
        return None

    start = min(sources)
    parents: Dict[Pixel, Optional[Pixel]] = {start: None}
    queue = deque([start])
    end = None
    while queue:
        node = queue.popleft()
        if node[0] > h - 2:
            end = node
            break
        for dy, dx in _NEIGHBOURS:
            nxt = (node[0] + dy, node[1] + dx)
            if nxt in parents:
                continue
            if 0 <= nxt[0] < h and 0 <= nxt[1] < component.shape[1] and component[nxt]:
                parents[nxt] = node
                queue.append(nxt)

    if end is None:
        return None
    path = []
    node = end
    while node is not None:
        path.append(node)
        node = parents[node]
    return path[::-1]


@register
class ThresholdAlgorithm(BoundaryAlgorithm):
    algorithm = Algorithm.THRESHOLD
    settings_class = ThresholdSettings

    def _detect(self, pixels: np.ndarray, settings: ThresholdSettings) -> List[int]:
        values = preprocess(pixels, settings.color_channel, settings.blur_radius)
        mask = transition_mask(values, settings.global_threshold)
        h = values.shape[0]
        middle = h // 2

        count, labels, stats, _ = cv2.connectedComponentsWithStats(mask.astype(np.uint8), connectivity=8)
        crossings = []
        for label in range(1, count):
            top = stats[label, cv2.CC_STAT_TOP]
            bottom = top + stats[label, cv2.CC_STAT_HEIGHT] - 1
            if top >= 2 or bottom <= h - 2:
                continue
            path = trace_edge(labels == label)
            if path is None:
                continue
            columns = [c for r, c in path if r == middle]
            if columns:
                crossings.append(min(columns))
        return enforce_min_gap(crossings, settings.min_gap)
