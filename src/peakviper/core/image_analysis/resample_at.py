"""
Interpolate scalar or vector images at real-valued coordinates.

Interpolation uses ``scipy.ndimage.map_coordinates`` with B-splines of order
0 ("nearest"), 1 ("linear") or 3 ("cubic"), and ``mode="nearest"`` outside of
the image. Spline coefficients are computed once per image so that repeated
sampling (mean shift) does not re-filter the whole image.
"""

from __future__ import annotations

from typing import List, Union

import numpy as np
import xarray as xr
from numpy.typing import ArrayLike
from scipy import ndimage

from peakviper.utils.check_image import (
    ArrayOrDA,
    VECTOR_DIM,
    check_scalar_image,
    check_vector_image,
)
from peakviper.utils.check_params import check_params

_SPLINE_ORDER = {"nearest": 0, "linear": 1, "cubic": 3}


def _interpolation_order(interpolation: str) -> int:
    params = {"interpolation": interpolation}
    if not check_params(
        params, "interpolation", [str], acceptable_data=list(_SPLINE_ORDER)
    ):
        raise ValueError(
            f"Unknown interpolation {interpolation!r}; use one of {list(_SPLINE_ORDER)}."
        )
    return _SPLINE_ORDER[params["interpolation"]]


def _spline_coefficients(data: np.ndarray, order: int) -> np.ndarray:
    data = np.asarray(data, dtype=np.float64)
    if order > 1:
        return ndimage.spline_filter(data, order=order, mode="nearest")
    return data


def _prepare_components(field: np.ndarray, order: int) -> List[np.ndarray]:
    """Spline coefficients of each vector component (last axis) of ``field``."""
    return [_spline_coefficients(field[..., ii], order) for ii in range(field.shape[-1])]


def _sample(coefficients: np.ndarray, points: np.ndarray, order: int) -> np.ndarray:
    # points: (n, ndim) -> map_coordinates wants (ndim, n)
    return ndimage.map_coordinates(
        coefficients, points.T, order=order, mode="nearest", prefilter=False
    )


def resample_at(
    image: ArrayOrDA,
    coordinates: ArrayLike,
    interpolation: str = "linear",
    vector_axis: bool = False,
) -> Union[float, np.ndarray]:
    """
    Sample ``image`` at real-valued ``coordinates``.

    Parameters
    ----------
    image : numpy.ndarray, dask.array.Array or xarray.DataArray
        Scalar image, or vector image with components on the last axis
        (``vector_axis=True``) or on a DataArray dimension named ``"vector"``.
    coordinates : array-like
        One point, shape (ndim,), or many points, shape (n, ndim), in array
        index order.
    interpolation : str
        "nearest", "linear" or "cubic".
    vector_axis : bool
        Treat the last axis of a NumPy/Dask image as the vector axis.

    Returns
    -------
    float or numpy.ndarray
        Scalar image: a float for one point, shape (n,) for many.
        Vector image: shape (nvec,) for one point, (n, nvec) for many.
    """
    order = _interpolation_order(interpolation)
    is_vector = vector_axis or (isinstance(image, xr.DataArray) and VECTOR_DIM in image.dims)
    data = check_vector_image(image, "image") if is_vector else check_scalar_image(image)
    ndim = data.ndim - 1 if is_vector else data.ndim

    points = np.asarray(coordinates, dtype=np.float64)
    single = points.ndim == 1
    points = np.atleast_2d(points)
    if points.ndim != 2 or points.shape[1] != ndim:
        raise ValueError(
            f"coordinates must have shape ({ndim},) or (n, {ndim}), got {np.shape(coordinates)}."
        )

    if is_vector:
        out = np.stack(
            [_sample(c, points, order) for c in _prepare_components(data, order)],
            axis=-1,
        )
    else:
        out = _sample(_spline_coefficients(data, order), points, order)
    if single:
        return float(out[0]) if not is_vector else out[0]
    return out
