import numpy as np
import pytest

from autoslam.bfnn import bfnn_cloud, bfnn_cloud_mt, bfnn_cloud_mt_k, bfnn_point, bfnn_point_k

SQUARE = [[0, 0, 0], [1, 0, 0], [0, 1, 0], [1, 1, 0]]


@pytest.fixture
def clouds():
    rng = np.random.default_rng(7)
    return rng.uniform(-3, 3, (120, 3)), rng.uniform(-3, 3, (40, 3))


def test_bfnn_point_nearest():
    assert bfnn_point(SQUARE, (0.9, 0.1, 0.0)) == 1


def test_bfnn_point_tie_takes_first():
    assert bfnn_point(SQUARE, (0.5, 0.0, 0.0)) == 0


def test_bfnn_point_empty_raises():
    with pytest.raises(ValueError):
        bfnn_point([], (0, 0, 0))


def test_bfnn_point_k_order():
    assert bfnn_point_k(SQUARE, (0.9, 0.9, 0.0), 4) == [3, 1, 2, 0]
    assert bfnn_point_k(SQUARE, (0.9, 0.9, 0.0), 1) == [3]


def test_bfnn_point_k_too_large():
    with pytest.raises(ValueError):
        bfnn_point_k(SQUARE, (0, 0, 0), 5)


def test_bfnn_cloud_single_and_multi_agree(clouds):
    first, second = clouds
    serial = bfnn_cloud(first, second)
    parallel = bfnn_cloud_mt(first, second)
    assert serial == parallel
    assert [q for _, q in serial] == list(range(len(second)))


def test_bfnn_cloud_is_nearest(clouds):
    first, second = clouds
    for t, q in bfnn_cloud(first, second):
        d = np.linalg.norm(first - second[q], axis=1)
        assert d[t] == pytest.approx(d.min())


def test_bfnn_cloud_mt_k(clouds):
    first, second = clouds
    matches = bfnn_cloud_mt_k(first, second, 3)
    assert len(matches) == 3 * len(second)
    nearest = bfnn_cloud(first, second)
    for i, (t, q) in enumerate(nearest):
        assert matches[3 * i] == (t, q)
        assert all(pair[1] == q for pair in matches[3 * i: 3 * i + 3])