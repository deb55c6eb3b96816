"""Fetch the 3-sample lines and 3^d stencils around a candidate pixel.

No bounds checking is done here: callers only pass positions that are at
least one sample away from every image border.
"""

from typing import Tuple

import numpy as np


def sample_lines(image: np.ndarray, position: Tuple[int, ...]) -> np.ndarray:
    """
    Samples at offsets -1, 0, +1 along each axis through ``position``.

    Returns
    -------
    np.ndarray
        Shape (ndim, 3), float64. Row ``ii`` is the line along axis ``ii``.
    """
    lines = np.empty((image.ndim, 3), dtype=np.float64)
    for axis, p in enumerate(position):
        index = list(position)
        index[axis] = slice(p - 1, p + 2)
        lines[axis] = image[tuple(index)]
    return lines


def sample_stencil(image: np.ndarray, position: Tuple[int, ...]) -> np.ndarray:
    """
    The full 3x3 (2D) or 3x3x3 (3D) neighborhood, flattened with axis 0
    varying fastest, as expected by the joint quadratic fits.
    """
    window = tuple(slice(p - 1, p + 2) for p in position)
    return np.ascontiguousarray(image[window].ravel(order="F"), dtype=np.float64)
