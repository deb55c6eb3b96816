import numpy as np
import pytest

from peakviper.core.image_analysis.local_extrema import (
    apply_mask,
    clear_border,
    local_extrema_labels,
    measure_regions,
)


def test_single_maximum():
    img = np.array([0.0, 1.0, 3.0, 1.0, 0.0])
    labels = local_extrema_labels(img)
    assert labels.tolist() == [0, 0, 1, 0, 0]


def test_plateau_maximum():
    img = np.array([0.0, 2.0, 2.0, 0.0])
    assert local_extrema_labels(img).tolist() == [0, 1, 1, 0]


def test_plateau_leaking_to_higher_value_is_rejected():
    img = np.array([0.0, 2.0, 2.0, 3.0, 0.0])
    labels = local_extrema_labels(img)
    assert labels.tolist() == [0, 0, 0, 1, 0]


def test_minima():
    img = np.array([[3.0, 3.0, 3.0], [3.0, 1.0, 3.0], [3.0, 3.0, 0.0]])
    labels = local_extrema_labels(img, minima=True)
    assert np.argwhere(labels).tolist() == [[2, 2]]


def test_full_connectivity_merges_diagonal_plateau():
    img = np.zeros((4, 4))
    img[1, 1] = img[2, 2] = 1.0
    labels = local_extrema_labels(img)
    assert labels.max() == 1
    assert labels[1, 1] == labels[2, 2] == 1


def test_labels_in_scan_order():
    img = np.zeros((5, 5))
    img[3, 1] = 2.0
    img[1, 3] = 1.0
    labels = local_extrema_labels(img)
    assert labels[1, 3] == 1
    assert labels[3, 1] == 2


def test_nan_is_never_an_extremum():
    img = np.array([0.0, np.nan, 0.5, 1.0, 0.0])
    labels = local_extrema_labels(img)
    assert labels[1] == 0
    assert labels[3] > 0


def test_apply_mask_and_clear_border():
    labels = np.arange(1, 17).reshape(4, 4)
    cleared = clear_border(labels)
    assert cleared.tolist() == [[0, 0, 0, 0], [0, 6, 7, 0], [0, 10, 11, 0], [0, 0, 0, 0]]
    masked = apply_mask(cleared, np.array([True, False, True, True]))
    assert masked[1, 1] == 0 and masked[1, 2] == 7
    # input untouched
    assert labels[0, 0] == 1


def test_measure_regions():
    labels = np.zeros((5, 5), dtype=int)
    labels[1:3, 1:3] = 1
    labels[3, 3] = 2
    img = np.arange(25, dtype=float).reshape(5, 5)
    regions = measure_regions(labels, img)
    assert regions.label.tolist() == [1, 2]
    assert regions.center.tolist() == [[1.5, 1.5], [3.0, 3.0]]
    assert regions.size.tolist() == [4, 1]
    assert regions.mean == pytest.approx([(6 + 7 + 11 + 12) / 4, 18.0])


def test_measure_regions_empty():
    regions = measure_regions(np.zeros((3, 3), dtype=int), np.ones((3, 3)))
    assert regions.center.shape == (0, 2)
    assert regions.size.size == 0
