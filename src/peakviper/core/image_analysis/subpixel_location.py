"""Sub-pixel location of local maxima and minima.

Public API
----------
- ``subpixel_location(image, position, polarity, method)``: refine one candidate.
- ``subpixel_locations(image, positions, polarity, method)``: refine many candidates.
- ``subpixel_maxima(image, mask, method)`` / ``subpixel_minima(image, mask, method)``:
  detect regional extrema and refine each of them.
- ``find_nonzero(image, mask)``: candidate coordinates from a binary/label image.
- ``locations_to_dataset(results, image)``: tabulate results as an ``xarray.Dataset``.

Methods
-------
- ``"linear"``: center of gravity of the 3 samples along each axis.
- ``"parabolic separable"`` / ``"gaussian separable"``: 1D parabola (of the
  samples or of their logarithm) along each axis. The value is the most extreme
  of the per-axis interpolated values, not a value resampled at the refined
  location.
- ``"parabolic"`` / ``"gaussian"``: joint quadratic fit over the 3x3 or 3x3x3
  neighborhood (2D and 3D images only). On 1D images these are the same as the
  separable methods.
- ``"integer"``: no refinement.

Candidates on the image border are never refined: their integer coordinates
and sample value are returned. The returned value is never less extreme than
the sample value at the candidate.

Coordinates are in array index order (axis 0 first).
"""

from __future__ import annotations

import re
from collections import namedtuple
from enum import Enum
from typing import Any, List, Optional, Sequence, Tuple, Union

import numpy as np
import toolviper.utils.logger as logger
import xarray as xr

from peakviper.core.image_analysis._stencil import sample_lines, sample_stencil
from peakviper.core.image_analysis.local_extrema import (
    apply_mask,
    clear_border,
    local_extrema_labels,
    measure_regions,
)
from peakviper.fitting.quadratic_fit import fit_joint, fit_linear, fit_separable
from peakviper.utils.check_image import (
    ArrayOrDA,
    _ensure_ndarray,
    check_mask,
    check_position,
    check_scalar_image,
)
from peakviper.utils.check_params import check_params

LocationResult = namedtuple("LocationResult", ["coordinates", "value"])


class Polarity(Enum):
    MAXIMUM = "maximum"
    MINIMUM = "minimum"


class Method(Enum):
    LINEAR = "linear"
    PARABOLIC_SEPARABLE = "parabolic separable"
    GAUSSIAN_SEPARABLE = "gaussian separable"
    PARABOLIC = "parabolic"
    GAUSSIAN = "gaussian"
    INTEGER = "integer"


_METHOD_NAMES = {
    "linear": Method.LINEAR,
    "parabolic separable": Method.PARABOLIC_SEPARABLE,
    "gaussian separable": Method.GAUSSIAN_SEPARABLE,
    "parabolic": Method.PARABOLIC,
    "parabolic nonseparable": Method.PARABOLIC,
    "gaussian": Method.GAUSSIAN,
    "gaussian nonseparable": Method.GAUSSIAN,
    "integer": Method.INTEGER,
}

_POLARITY_NAMES = {"maximum": Polarity.MAXIMUM, "minimum": Polarity.MINIMUM}

_JOINT_METHODS = (Method.PARABOLIC, Method.GAUSSIAN)

MethodLike = Union[str, Method]
PolarityLike = Union[str, Polarity]


# ---------- option parsing ----------


def _normalize_name(name: Any) -> Any:
    if isinstance(name, str):
        return re.sub(r"[\s_\-]+", " ", name.strip().lower())
    return name


def _resolve_method(method: MethodLike, ndim: int) -> Method:
    if not isinstance(method, Method):
        params = {"method": _normalize_name(method)}
        if not check_params(params, "method", [str], acceptable_data=list(_METHOD_NAMES)):
            raise ValueError(
                f"Unknown method {method!r}; use one of {list(_METHOD_NAMES)}."
            )
        method = _METHOD_NAMES[params["method"]]

    # joint and separable fits are the same thing along a single axis
    if ndim == 1:
        if method is Method.PARABOLIC:
            method = Method.PARABOLIC_SEPARABLE
        elif method is Method.GAUSSIAN:
            method = Method.GAUSSIAN_SEPARABLE

    if method in _JOINT_METHODS and ndim not in (2, 3):
        raise ValueError(
            f"Method {method.value!r} is only available for 2D and 3D images, got {ndim}D."
        )
    return method


def _resolve_polarity(polarity: PolarityLike) -> Polarity:
    if isinstance(polarity, Polarity):
        return polarity
    params = {"polarity": _normalize_name(polarity)}
    if not check_params(params, "polarity", [str], acceptable_data=list(_POLARITY_NAMES)):
        raise ValueError(f"Unknown polarity {polarity!r}; use 'maximum' or 'minimum'.")
    return _POLARITY_NAMES[params["polarity"]]


def _on_border(position: Tuple[int, ...], shape: Tuple[int, ...]) -> bool:
    return any(p < 1 or p >= n - 1 for p, n in zip(position, shape))


def _unrefined(data: np.ndarray, position: Tuple[int, ...]) -> LocationResult:
    return LocationResult(tuple(float(p) for p in position), float(data[position]))


# ---------- per-candidate refinement ----------


def _locate(
    data: np.ndarray,
    position: Tuple[int, ...],
    method: Method,
    polarity: Polarity,
) -> LocationResult:
    """
    Refine one candidate that is not on the image border.

    Minima are refined as maxima of the negated samples.
    """
    raw = float(data[position])
    coords = np.asarray(position, dtype=np.float64)
    sign = -1.0 if polarity is Polarity.MINIMUM else 1.0

    if method is Method.INTEGER:
        value = raw
    elif method is Method.LINEAR:
        # interpolation can only lower the peak, keep the sample value
        coords += fit_linear(sign * sample_lines(data, position))
        value = raw
    elif method in (Method.PARABOLIC_SEPARABLE, Method.GAUSSIAN_SEPARABLE):
        offsets, value = fit_separable(
            sign * sample_lines(data, position),
            gaussian=method is Method.GAUSSIAN_SEPARABLE,
        )
        coords += offsets
        value = sign * value
    elif method in _JOINT_METHODS:
        offsets, value = fit_joint(
            sign * sample_stencil(data, position),
            gaussian=method is Method.GAUSSIAN,
        )
        if offsets is None:
            logger.debug(
                f"{method.value} fit rejected at {position}, keeping the integer location"
            )
            value = raw
        else:
            coords += offsets
            value = sign * max(sign * raw, value)
    else:
        raise ValueError(f"Unsupported method {method!r}.")

    return LocationResult(tuple(float(c) for c in coords), float(value))


# ---------- public API ----------


def subpixel_location(
    image: ArrayOrDA,
    position: Sequence[int],
    polarity: PolarityLike = "maximum",
    method: MethodLike = "parabolic separable",
) -> LocationResult:
    """
    Estimate the sub-pixel location and value of the extremum at ``position``.

    Parameters
    ----------
    image : numpy.ndarray, dask.array.Array or xarray.DataArray
        Real-valued scalar image with at least one dimension.
    position : sequence of int
        Integer coordinates of the candidate (usually a local extremum),
        array index order.
    polarity : str or Polarity
        "maximum" or "minimum".
    method : str or Method
        One of "linear", "parabolic separable", "gaussian separable",
        "parabolic", "gaussian", "integer".

    Returns
    -------
    LocationResult
        ``coordinates`` (tuple of float) and ``value`` (float). Candidates on
        the image border, and candidates whose joint fit is rejected, keep
        their integer coordinates and sample value.

    Raises
    ------
    ValueError
        Empty or 0D image, wrong ``position`` length, unknown method or
        polarity, joint method on an image that is not 2D or 3D.
    TypeError
        Image samples are not real numbers.
    IndexError
        ``position`` is outside of the image.
    """
    data = check_scalar_image(image)
    method = _resolve_method(method, data.ndim)
    polarity = _resolve_polarity(polarity)
    position = check_position(position, data.shape)
    if _on_border(position, data.shape):
        return _unrefined(data, position)
    return _locate(data, position, method, polarity)


def subpixel_locations(
    image: ArrayOrDA,
    positions: Sequence[Sequence[int]],
    polarity: PolarityLike = "maximum",
    method: MethodLike = "parabolic separable",
) -> List[LocationResult]:
    """
    ``subpixel_location`` for a list of candidates.

    The image and options are validated once. Results are in the order of
    ``positions``; each candidate is handled independently.
    """
    data = check_scalar_image(image)
    method = _resolve_method(method, data.ndim)
    polarity = _resolve_polarity(polarity)
    results = []
    for position in positions:
        position = check_position(position, data.shape)
        if _on_border(position, data.shape):
            results.append(_unrefined(data, position))
        else:
            results.append(_locate(data, position, method, polarity))
    return results


def subpixel_extrema(
    image: ArrayOrDA,
    mask: Optional[Any] = None,
    method: MethodLike = "parabolic separable",
    polarity: PolarityLike = "maximum",
) -> List[LocationResult]:
    """
    Find the regional extrema of ``image`` and refine their locations.

    Regional extrema are detected with full connectivity, restricted to
    ``mask`` (which may broadcast against the image), and those touching the
    image border are discarded. A plateau (an extremum region with more than
    one sample) is reported at its centroid with its mean value, as is every
    extremum when ``method`` is "integer". Single-sample extrema are refined
    with ``method``.

    Results are ordered by region label, i.e. by the C-order scan position of
    the first sample of each region.
    """
    if isinstance(image, xr.DataArray) and isinstance(mask, xr.DataArray):
        mask = mask.broadcast_like(image).transpose(*image.dims)
    data = check_scalar_image(image)
    method = _resolve_method(method, data.ndim)
    polarity = _resolve_polarity(polarity)

    labels = local_extrema_labels(data, minima=polarity is Polarity.MINIMUM)
    if mask is not None:
        labels = apply_mask(labels, check_mask(mask, data.shape))
    labels = clear_border(labels)
    regions = measure_regions(labels, data)

    results = []
    n_plateaus = 0
    for center, size, mean in zip(regions.center, regions.size, regions.mean):
        if method is Method.INTEGER or size > 1:
            n_plateaus += size > 1
            results.append(LocationResult(tuple(float(c) for c in center), float(mean)))
        else:
            position = tuple(int(round(c)) for c in center)
            results.append(_locate(data, position, method, polarity))

    logger.info(
        f"Found {len(results)} local {polarity.value} locations "
        f"({n_plateaus} plateaus), method {method.value!r}"
    )
    return results


def subpixel_maxima(
    image: ArrayOrDA,
    mask: Optional[Any] = None,
    method: MethodLike = "parabolic separable",
) -> List[LocationResult]:
    """Sub-pixel locations of the local maxima of ``image``; see ``subpixel_extrema``."""
    return subpixel_extrema(image, mask=mask, method=method, polarity=Polarity.MAXIMUM)


def subpixel_minima(
    image: ArrayOrDA,
    mask: Optional[Any] = None,
    method: MethodLike = "parabolic separable",
) -> List[LocationResult]:
    """Sub-pixel locations of the local minima of ``image``; see ``subpixel_extrema``."""
    return subpixel_extrema(image, mask=mask, method=method, polarity=Polarity.MINIMUM)


def find_nonzero(image: ArrayOrDA, mask: Optional[Any] = None) -> List[Tuple[int, ...]]:
    """
    Coordinates of all non-zero samples of ``image`` in C order.

    Parameters
    ----------
    image
        Scalar image of any numeric or boolean type.
    mask
        Optional boolean mask, broadcastable to the image; samples outside of
        it are ignored.
    """
    data = _ensure_ndarray(image)
    if data.ndim == 0 or data.size == 0:
        raise ValueError("image must be a populated array with at least one dimension.")
    if np.iscomplexobj(data):
        raise TypeError("image must be real-valued.")
    nonzero = data != 0
    if mask is not None:
        nonzero &= check_mask(mask, data.shape)
    return [tuple(int(i) for i in index) for index in np.argwhere(nonzero)]


def locations_to_dataset(
    results: Sequence[LocationResult],
    image: Optional[xr.DataArray] = None,
    dims: Optional[Sequence[str]] = None,
) -> xr.Dataset:
    """
    Tabulate location results.

    Parameters
    ----------
    results
        Output of one of the ``subpixel_*`` functions.
    image
        The DataArray the results were computed on. Its dimension names are
        used, and world coordinates are added by interpolating its 1D
        coordinates at the refined locations (best-effort).
    dims
        Dimension names, if ``image`` is not given. Defaults to ``dim_0``,
        ``dim_1``, ...

    Returns
    -------
    xarray.Dataset
        ``coordinates(extremum, dim)``, ``value(extremum)`` and, when
        available, ``world(extremum, dim)``.
    """
    if image is not None:
        dims = list(image.dims)
    elif dims is None:
        ndim = len(results[0].coordinates) if len(results) else 0
        dims = [f"dim_{i}" for i in range(ndim)]
    dims = list(dims)

    # explicit row count: reshape cannot infer -1 for an empty 0-column array
    coords = np.array([r.coordinates for r in results], dtype=float).reshape(
        len(results), len(dims)
    )
    values = np.array([r.value for r in results], dtype=float)

    ds = xr.Dataset(
        data_vars=dict(
            coordinates=(("extremum", "dim"), coords),
            value=(("extremum",), values),
        ),
        coords={"extremum": np.arange(len(values)), "dim": dims},
    )

    if image is not None:
        world = np.full_like(coords, np.nan)
        for ii, d in enumerate(dims):
            if d not in image.coords:
                continue
            c = np.asarray(image.coords[d])
            if c.ndim == 1 and np.issubdtype(c.dtype, np.number) and np.all(np.isfinite(c)):
                # linear interpolation assumes monotonic 1D coordinates
                world[:, ii] = np.interp(coords[:, ii], np.arange(c.size), c)
        if np.any(np.isfinite(world)):
            ds["world"] = (("extremum", "dim"), world)
    return ds
