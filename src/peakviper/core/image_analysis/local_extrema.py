"""
Regional extrema detection and region measurement with ``scipy.ndimage``.

A regional maximum is a connected plateau of equal-valued samples whose
neighbors (full connectivity) are all strictly lower; regional minima are
defined the same way on the negated image. Each extremum region gets a label,
numbered in C scan order, and ``measure_regions`` reports, per label, the
geometric centroid, the number of samples and the mean image value.
"""

from __future__ import annotations

import itertools
from collections import namedtuple

import numpy as np
from scipy import ndimage

RegionMeasurement = namedtuple("RegionMeasurement", ["label", "center", "size", "mean"])


def _full_connectivity(ndim: int) -> np.ndarray:
    return ndimage.generate_binary_structure(ndim, ndim)


def _touches_lower_plateau(data: np.ndarray, candidates: np.ndarray) -> np.ndarray:
    """
    Flag candidate samples with an equal-valued neighbor that is not a
    candidate itself. Such a neighbor has a higher neighbor of its own, so the
    plateau it shares with the candidate is not a regional extremum.
    """
    padded = np.pad(data, 1, mode="constant", constant_values=np.nan)
    padded_cand = np.pad(candidates, 1, mode="constant", constant_values=True)
    touches = np.zeros(data.shape, dtype=bool)
    for offset in itertools.product((-1, 0, 1), repeat=data.ndim):
        if not any(offset):
            continue
        shifted = tuple(slice(1 + o, n + 1 + o) for o, n in zip(offset, data.shape))
        touches |= (padded[shifted] == data) & ~padded_cand[shifted]
    return touches & candidates


def local_extrema_labels(image: np.ndarray, minima: bool = False) -> np.ndarray:
    """
    Label the regional maxima (or minima) of ``image``.

    Parameters
    ----------
    image : np.ndarray
        Real-valued image of any dimensionality. NaN samples are never extrema.
    minima : bool
        Detect regional minima instead of maxima.

    Returns
    -------
    np.ndarray
        Integer label image, 0 for background.
    """
    data = np.asarray(image, dtype=np.float64)
    if minima:
        data = -data
    valid = ~np.isnan(data)
    data = np.where(valid, data, -np.inf)

    structure = _full_connectivity(data.ndim)
    local_max = ndimage.maximum_filter(
        data, footprint=structure, mode="constant", cval=-np.inf
    )
    candidates = (data == local_max) & valid

    labels, n = ndimage.label(candidates, structure=structure)
    if n == 0:
        return labels

    rejected = np.unique(labels[_touches_lower_plateau(data, candidates)])
    if rejected.size:
        labels[np.isin(labels, rejected)] = 0
        labels, n = ndimage.label(labels > 0, structure=structure)
    return labels


def apply_mask(labels: np.ndarray, mask: np.ndarray) -> np.ndarray:
    """Zero out labels where ``mask`` is False. ``mask`` must broadcast to ``labels``."""
    out = labels.copy()
    out[~np.broadcast_to(np.asarray(mask, dtype=bool), labels.shape)] = 0
    return out


def clear_border(labels: np.ndarray) -> np.ndarray:
    """Zero out the one-sample border along every axis."""
    out = labels.copy()
    for axis in range(out.ndim):
        index = [slice(None)] * out.ndim
        index[axis] = 0
        out[tuple(index)] = 0
        index[axis] = -1
        out[tuple(index)] = 0
    return out


def measure_regions(labels: np.ndarray, image: np.ndarray) -> RegionMeasurement:
    """
    Centroid, size and mean value of every labeled region, sorted by label.

    The centroid is the unweighted mean coordinate of the region's samples,
    in array index order.
    """
    index = np.unique(labels)
    index = index[index > 0]
    ndim = labels.ndim
    if index.size == 0:
        return RegionMeasurement(
            label=index,
            center=np.empty((0, ndim)),
            size=np.empty(0, dtype=np.int64),
            mean=np.empty(0),
        )
    ones = np.ones(labels.shape)
    center = np.asarray(ndimage.center_of_mass(ones, labels, index), dtype=float).reshape(-1, ndim)
    size = np.asarray(ndimage.sum_labels(ones, labels, index)).astype(np.int64)
    mean = np.asarray(ndimage.mean(np.asarray(image, dtype=np.float64), labels, index), dtype=float)
    return RegionMeasurement(label=index, center=center, size=size, mean=mean)
