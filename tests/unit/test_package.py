import numpy as np

import peakviper


def test_version_string():
    assert isinstance(peakviper.__version__, str)


def test_lazy_api():
    img = np.zeros((5, 5))
    img[2, 2] = 1.0
    res = peakviper.subpixel_location(img, (2, 2), method=peakviper.Method.INTEGER)
    assert isinstance(res, peakviper.LocationResult)
    assert res.coordinates == (2.0, 2.0)
    assert "subpixel_maxima" in dir(peakviper)


def test_lazy_namespaces():
    assert peakviper.fitting.__name__ == "peakviper.fitting"
    assert peakviper.core.__name__ == "peakviper.core"
