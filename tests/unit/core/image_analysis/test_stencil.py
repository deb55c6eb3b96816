import numpy as np

from peakviper.core.image_analysis._stencil import sample_lines, sample_stencil


def test_sample_lines():
    img = np.arange(20).reshape(4, 5)
    lines = sample_lines(img, (1, 2))
    assert lines.dtype == np.float64
    assert lines.tolist() == [[2.0, 7.0, 12.0], [6.0, 7.0, 8.0]]


def test_sample_stencil_axis0_fastest():
    img = np.arange(20).reshape(4, 5)
    stencil = sample_stencil(img, (1, 2))
    assert stencil.tolist() == [1.0, 6.0, 11.0, 2.0, 7.0, 12.0, 3.0, 8.0, 13.0]
    assert stencil.flags["C_CONTIGUOUS"]


def test_sample_stencil_3d():
    img = np.arange(27.0).reshape(3, 3, 3)
    stencil = sample_stencil(img, (1, 1, 1))
    assert stencil.size == 27
    # second sample steps along axis 0
    assert stencil[1] - stencil[0] == 9.0
    assert stencil[13] == img[1, 1, 1]
