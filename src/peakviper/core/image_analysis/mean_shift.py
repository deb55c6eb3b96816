from __future__ import annotations

from typing import Optional, Sequence, Tuple, Union

import numpy as np
import toolviper.utils.logger as logger
from scipy import ndimage

from peakviper.core.image_analysis.resample_at import (
    _interpolation_order,
    _prepare_components,
    _sample,
)
from peakviper.utils.check_image import ArrayOrDA, check_scalar_image, check_vector_image


def mean_shift(
    field: ArrayOrDA,
    start: Sequence[float],
    epsilon: float = 1e-3,
    interpolation: str = "cubic",
    max_iterations: Optional[int] = None,
) -> Tuple[float, ...]:
    """
    Follow a mean-shift vector field from ``start`` to its fixed point.

    At every step the field is interpolated at the current position and the
    resulting vector is added to the position. Iteration stops as soon as the
    squared length of a step is at most ``epsilon**2``.

    Parameters
    ----------
    field : numpy.ndarray, dask.array.Array or xarray.DataArray
        Vector image, components on the last axis (or on the ``"vector"``
        dimension of a DataArray); one component per spatial dimension.
        See ``mean_shift_vector``.
    start : sequence of float
        Starting coordinate, array index order.
    epsilon : float
        Convergence threshold on the step length. Must be positive.
    interpolation : str
        "nearest", "linear" or "cubic".
    max_iterations : int, optional
        By default there is no limit, and a field without a fixed point near
        the path never returns. If given, a ``RuntimeError`` is raised when
        the limit is reached before convergence.

    Returns
    -------
    tuple of float
        The converged coordinate.
    """
    data = check_vector_image(field, "field")
    ndim = data.ndim - 1
    point = np.asarray(start, dtype=np.float64)
    if point.shape != (ndim,):
        raise ValueError(f"start must have {ndim} elements, got {np.shape(start)}.")
    if not epsilon > 0:
        raise ValueError(f"epsilon must be positive, got {epsilon}.")
    if max_iterations is not None and max_iterations < 1:
        raise ValueError(f"max_iterations must be at least 1, got {max_iterations}.")
    order = _interpolation_order(interpolation)

    coefficients = _prepare_components(data, order)
    epsilon2 = epsilon * epsilon
    iterations = 0
    while True:
        shift = np.array([_sample(c, point[None, :], order)[0] for c in coefficients])
        point = point + shift
        iterations += 1
        if float(shift @ shift) <= epsilon2:
            break
        if max_iterations is not None and iterations >= max_iterations:
            raise RuntimeError(
                f"mean_shift did not converge in {max_iterations} iterations "
                f"(last step {np.sqrt(shift @ shift):.3g}, position {tuple(point)})."
            )

    logger.debug(f"mean_shift converged in {iterations} iterations at {tuple(point)}")
    return tuple(float(p) for p in point)


def mean_shift_vector(image: ArrayOrDA, sigma: Union[float, Sequence[float]] = 2.0) -> np.ndarray:
    """
    Mean-shift vector field of a scalar image for a Gaussian kernel.

    m(p) = sigma**2 * grad(g * f)(p) / (g * f)(p)

    which points from ``p`` to the Gaussian-weighted centroid of the image
    around ``p``.

    Returns
    -------
    numpy.ndarray
        Shape ``image.shape + (ndim,)``. Zero where the smoothed image is zero.
    """
    data = check_scalar_image(image).astype(np.float64)
    ndim = data.ndim
    sigma = np.broadcast_to(np.asarray(sigma, dtype=np.float64), (ndim,))
    if np.any(sigma <= 0):
        raise ValueError(f"sigma must be positive, got {tuple(sigma)}.")

    smoothed = ndimage.gaussian_filter(data, sigma, mode="nearest")
    components = []
    for axis in range(ndim):
        deriv_order = [0] * ndim
        deriv_order[axis] = 1
        gradient = ndimage.gaussian_filter(data, sigma, order=deriv_order, mode="nearest")
        components.append(
            np.divide(
                sigma[axis] ** 2 * gradient,
                smoothed,
                out=np.zeros_like(smoothed),
                where=smoothed != 0,
            )
        )
    return np.stack(components, axis=-1)
