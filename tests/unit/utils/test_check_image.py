import dask.array as da
import numpy as np
import pytest
import xarray as xr

from peakviper.utils.check_image import (
    check_mask,
    check_position,
    check_scalar_image,
    check_vector_image,
)


class TestScalarImage:
    def test_numpy_passthrough(self):
        img = np.ones((3, 4))
        assert check_scalar_image(img) is img

    def test_dask_and_dataarray(self):
        img = np.arange(12.0).reshape(3, 4)
        out = check_scalar_image(xr.DataArray(da.from_array(img, chunks=2), dims=["y", "x"]))
        assert isinstance(out, np.ndarray)
        np.testing.assert_array_equal(out, img)

    @pytest.mark.parametrize("img", [None, np.array(2.0), np.zeros((2, 0))])
    def test_unpopulated(self, img):
        with pytest.raises(ValueError):
            check_scalar_image(img)

    @pytest.mark.parametrize("dtype", [complex, bool, object])
    def test_dtype(self, dtype):
        with pytest.raises(TypeError):
            check_scalar_image(np.zeros((2, 2), dtype=dtype))


class TestVectorImage:
    def test_vector_dim_moved_last(self):
        field = xr.DataArray(np.zeros((2, 4, 5)), dims=["vector", "y", "x"])
        assert check_vector_image(field).shape == (4, 5, 2)

    def test_component_count(self):
        with pytest.raises(ValueError):
            check_vector_image(np.zeros((4, 5, 3)))
        with pytest.raises(ValueError):
            check_vector_image(np.zeros(4))


class TestPosition:
    def test_valid(self):
        assert check_position([1, 2], (3, 4)) == (1, 2)
        assert check_position(np.array([1.0, 2.0]), (3, 4)) == (1, 2)

    def test_non_integer(self):
        with pytest.raises(ValueError):
            check_position([1.5, 2], (3, 4))

    def test_length(self):
        with pytest.raises(ValueError):
            check_position([1], (3, 4))

    def test_bounds(self):
        with pytest.raises(IndexError):
            check_position([3, 0], (3, 4))


def test_check_mask_broadcasts():
    mask = check_mask(np.array([1, 0, 1]), (2, 3))
    assert mask.shape == (2, 3)
    assert mask.dtype == bool
    with pytest.raises(ValueError):
        check_mask(np.ones(4), (2, 3))
