"""
Kernel library for the convolution pipeline.

A fixed catalog of named 3x3 convolution kernels plus the weight rule used
to normalize a convolution result.
"""

from types import MappingProxyType
from typing import Dict, List, Sequence

import numpy as np

_KERNELS: Dict[str, List[float]] = {
    "normal": [
        0, 0, 0,
        0, 1, 0,
        0, 0, 0,
    ],
    "gaussianBlur": [
        0.045, 0.122, 0.045,
        0.122, 0.332, 0.122,
        0.045, 0.122, 0.045,
    ],
    "gaussianBlur2": [
        1, 2, 1,
        2, 4, 2,
        1, 2, 1,
    ],
    "gaussianBlur3": [
        0, 1, 0,
        1, 1, 1,
        0, 1, 0,
    ],
    "unsharpen": [
        -1, -1, -1,
        -1, 9, -1,
        -1, -1, -1,
    ],
    "sharpness": [
        0, -1, 0,
        -1, 5, -1,
        0, -1, 0,
    ],
    "sharpen": [
        -1, -1, -1,
        -1, 16, -1,
        -1, -1, -1,
    ],
    "edgeDetect": [
        -0.125, -0.125, -0.125,
        -0.125, 1, -0.125,
        -0.125, -0.125, -0.125,
    ],
    "edgeDetect2": [
        -1, -1, -1,
        -1, 8, -1,
        -1, -1, -1,
    ],
    "edgeDetect3": [
        -5, 0, 0,
        0, 0, 0,
        0, 0, 5,
    ],
    "edgeDetect4": [
        -1, -1, -1,
        0, 0, 0,
        1, 1, 1,
    ],
    "edgeDetect5": [
        -1, -1, -1,
        2, 2, 2,
        -1, -1, -1,
    ],
    "edgeDetect6": [
        -5, -5, -5,
        -5, 39, -5,
        -5, -5, -5,
    ],
    "sobelHorizontal": [
        1, 2, 1,
        0, 0, 0,
        -1, -2, -1,
    ],
    "sobelVertical": [
        1, 0, -1,
        2, 0, -2,
        1, 0, -1,
    ],
    "previtHorizontal": [
        1, 1, 1,
        0, 0, 0,
        -1, -1, -1,
    ],
    "previtVertical": [
        1, 0, -1,
        1, 0, -1,
        1, 0, -1,
    ],
    "boxBlur": [
        0.111, 0.111, 0.111,
        0.111, 0.111, 0.111,
        0.111, 0.111, 0.111,
    ],
    "triangleBlur": [
        0.0625, 0.125, 0.0625,
        0.125, 0.25, 0.125,
        0.0625, 0.125, 0.0625,
    ],
    "emboss": [
        -2, -1, 0,
        -1, 1, 1,
        0, 1, 2,
    ],
}

KERNELS = MappingProxyType(
    {name: np.array(values, dtype=np.float32).reshape(3, 3) for name, values in _KERNELS.items()}
)
for _matrix in KERNELS.values():
    _matrix.setflags(write=False)


def kernel_names() -> List[str]:
    """Names of every kernel in the library, in catalog order."""
    return list(KERNELS.keys())


def kernel(name: str) -> np.ndarray:
    """
    Look up a kernel by name.

    Args:
        name: Kernel name, e.g. "emboss" or "sobelVertical"

    Returns:
        Read-only (3, 3) float32 matrix

    Raises:
        KeyError: If the name is not in the library
    """
    try:
        return KERNELS[name]
    except KeyError:
        available = ", ".join(KERNELS.keys())
        raise KeyError(f"Unknown kernel '{name}'. Available kernels: {available}") from None


def weight(matrix: Sequence) -> float:
    """Normalization weight: the sum of entries, clamped to a minimum of 1."""
    total = float(np.sum(np.asarray(matrix, dtype=np.float64)))
    return max(1.0, total)
