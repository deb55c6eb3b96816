import numpy as np
import pytest
import xarray as xr

from peakviper.core.image_analysis.mean_shift import mean_shift, mean_shift_vector


def make_blob(center=(20.3, 15.7), sigma=3.0, shape=(40, 40)):
    yy, xx = np.meshgrid(np.arange(shape[0]), np.arange(shape[1]), indexing="ij")
    return np.exp(-((yy - center[0]) ** 2 + (xx - center[1]) ** 2) / (2 * sigma**2))


def test_zero_field_returns_start():
    field = np.zeros((10, 10, 2))
    assert mean_shift(field, (3.2, 4.7)) == pytest.approx((3.2, 4.7))


def test_constant_field_hits_iteration_cap():
    field = np.ones((10, 10, 2))
    with pytest.raises(RuntimeError):
        mean_shift(field, (3.0, 3.0), max_iterations=5)


def test_converges_to_blob_center():
    field = mean_shift_vector(make_blob(), sigma=2.0)
    assert field.shape == (40, 40, 2)
    end = mean_shift(field, (18.0, 17.0), epsilon=1e-4)
    assert end == pytest.approx((20.3, 15.7), abs=0.05)


@pytest.mark.parametrize("interpolation", ["linear", "cubic"])
def test_converges_with_interpolation(interpolation):
    field = mean_shift_vector(make_blob(), sigma=2.0)
    end = mean_shift(field, (22.0, 14.0), interpolation=interpolation, max_iterations=1000)
    assert end == pytest.approx((20.3, 15.7), abs=0.1)


def test_vector_dimension_dataarray():
    field = mean_shift_vector(make_blob(), sigma=2.0)
    # vector components first, moved to the end by name
    da_field = xr.DataArray(np.moveaxis(field, -1, 0), dims=["vector", "y", "x"])
    assert mean_shift(da_field, (18.0, 17.0)) == pytest.approx(mean_shift(field, (18.0, 17.0)))


def test_mean_shift_vector_points_to_center():
    field = mean_shift_vector(make_blob(), sigma=2.0)
    # below and left of the center both components are positive
    assert field[17, 12, 0] > 0 and field[17, 12, 1] > 0
    assert field[23, 19, 0] < 0 and field[23, 19, 1] < 0


def test_mean_shift_vector_zero_image():
    assert np.all(mean_shift_vector(np.zeros((5, 5))) == 0)


@pytest.mark.parametrize(
    "kwargs",
    [
        dict(start=(1.0,)),
        dict(start=(1.0, 1.0), epsilon=0.0),
        dict(start=(1.0, 1.0), epsilon=-1.0),
        dict(start=(1.0, 1.0), max_iterations=0),
        dict(start=(1.0, 1.0), interpolation="quintic"),
    ],
)
def test_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        mean_shift(np.zeros((5, 5, 2)), **kwargs)


def test_invalid_field():
    # 3 components for a 2D field
    with pytest.raises(ValueError):
        mean_shift(np.zeros((5, 5, 3)), (1.0, 1.0))
    with pytest.raises(TypeError):
        mean_shift(np.zeros((5, 5, 2), dtype=complex), (1.0, 1.0))
    with pytest.raises(ValueError):
        mean_shift_vector(np.ones((5, 5)), sigma=0.0)


def test_fixed_point_is_stable():
    field = mean_shift_vector(make_blob(), sigma=2.0)
    end = mean_shift(field, (18.0, 17.0), epsilon=1e-4)
    # restarting at the result converges on the first step
    again = mean_shift(field, end, epsilon=1e-3, max_iterations=1)
    assert again == pytest.approx(end, abs=1e-3)
