"""Input conversion and validation shared by the image-analysis functions.

All public functions accept ``numpy.ndarray``, ``dask.array.Array`` or
``xarray.DataArray`` images. They are converted here, once, to a NumPy array;
Dask-backed data is computed. Vector images (displacement fields) carry the
vector components on their last axis, or on the dimension named
``VECTOR_DIM`` for DataArrays.
"""

from __future__ import annotations

from typing import Any, Sequence, Tuple, Union

import dask.array as da
import numpy as np
import xarray as xr

ArrayOrDA = Union[np.ndarray, da.Array, xr.DataArray]

VECTOR_DIM = "vector"


def _ensure_ndarray(data: Any, name: str = "image") -> np.ndarray:
    if data is None:
        raise ValueError(f"{name} is not populated.")
    if isinstance(data, xr.DataArray):
        data = data.data
    if isinstance(data, da.Array):
        data = data.compute()
    return np.asarray(data)


def _check_real_dtype(dtype: np.dtype, name: str) -> None:
    # bool is an integer subtype for NumPy but not a real sample type here
    if np.issubdtype(dtype, np.bool_) or not (
        np.issubdtype(dtype, np.integer) or np.issubdtype(dtype, np.floating)
    ):
        raise TypeError(f"{name} must have a real (integer or floating) data type, got {dtype}.")


def check_scalar_image(image: ArrayOrDA, name: str = "image") -> np.ndarray:
    """
    Validate a scalar image and return it as a NumPy array.

    Raises
    ------
    ValueError
        If the image is not populated, has no dimensions, or is a vector image.
    TypeError
        If the samples are not real-valued.
    """
    if isinstance(image, xr.DataArray) and VECTOR_DIM in image.dims:
        raise ValueError(f"{name} must be scalar, found a '{VECTOR_DIM}' dimension.")
    arr = _ensure_ndarray(image, name)
    if arr.ndim == 0:
        raise ValueError(f"{name} must have at least one dimension.")
    if arr.size == 0:
        raise ValueError(f"{name} is not populated.")
    _check_real_dtype(arr.dtype, name)
    return arr


def check_vector_image(field: ArrayOrDA, name: str = "field") -> np.ndarray:
    """
    Validate a vector image and return it with the vector components on the last axis.

    The number of vector components must equal the number of spatial dimensions.
    """
    if isinstance(field, xr.DataArray) and VECTOR_DIM in field.dims:
        field = field.transpose(*(d for d in field.dims if d != VECTOR_DIM), VECTOR_DIM)
    arr = _ensure_ndarray(field, name)
    if arr.ndim < 2 or arr.size == 0:
        raise ValueError(
            f"{name} must be a populated vector image with shape (*spatial, ndim)."
        )
    n_spatial = arr.ndim - 1
    if arr.shape[-1] != n_spatial:
        raise ValueError(
            f"{name} has {arr.shape[-1]} vector components but {n_spatial} spatial dimensions."
        )
    _check_real_dtype(arr.dtype, name)
    return arr


def check_position(position: Sequence[Any], shape: Tuple[int, ...], name: str = "position") -> Tuple[int, ...]:
    """
    Validate an integer coordinate against an image shape.

    Raises
    ------
    ValueError
        Wrong length or non-integer entries.
    IndexError
        Coordinate outside of the image.
    """
    position = np.asarray(position)
    if position.ndim != 1 or position.size != len(shape):
        raise ValueError(
            f"{name} must have {len(shape)} elements, got {tuple(np.atleast_1d(position))}."
        )
    if not np.issubdtype(position.dtype, np.integer):
        if not (np.issubdtype(position.dtype, np.floating) and np.all(position == np.round(position))):
            raise ValueError(f"{name} must contain integer coordinates, got {tuple(position)}.")
        position = position.astype(np.int64)
    out = tuple(int(p) for p in position)
    for ii, (p, size) in enumerate(zip(out, shape)):
        if p < 0 or p >= size:
            raise IndexError(
                f"{name} {out} is out of image bounds along axis {ii} (size {size})."
            )
    return out


def check_mask(mask: Any, shape: Tuple[int, ...], name: str = "mask") -> np.ndarray:
    """Return ``mask`` as a boolean array broadcast to ``shape``."""
    arr = _ensure_ndarray(mask, name)
    if arr.size == 0:
        raise ValueError(f"{name} is not populated.")
    try:
        return np.broadcast_to(arr.astype(bool), shape)
    except ValueError as e:
        raise ValueError(
            f"{name} with shape {arr.shape} cannot be broadcast to image shape {shape}."
        ) from e
