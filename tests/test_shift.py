import numpy as np
import pytest

from pymshift.balls import Balls
from pymshift.data import DataMatrix
from pymshift.kernels import epanechnikov, gaussian
from pymshift.shift import assign_cluster, cluster, mode, mode_merge
from pymshift.spatial import Spatial

############################
#  Fixtures and Utilities  #
############################


@pytest.fixture
def symmetric():
    """A cross of points centred on (1, 2): the density has its mode there."""
    offsets = np.array([[0, 0], [0.5, 0], [-0.5, 0], [0, 0.5], [0, -0.5]])
    spatial = Spatial(DataMatrix(offsets + [1.0, 2.0]))
    return spatial, gaussian.config(2)


@pytest.fixture
def blobs():
    """Two unit variance blobs of 50 points, at (0, 0) and (10, 10)."""
    rng = np.random.default_rng(0)
    x1 = rng.normal(0, 1, size=(50, 2))
    x2 = rng.normal(10, 1, size=(50, 2))
    # a bandwidth of 2 in original units
    spatial = Spatial(DataMatrix(np.vstack([x1, x2]), scale=0.5))
    return spatial, gaussian.config(2)


def _cluster_blobs(spatial, config):
    balls = Balls(spatial.dims)
    labels = cluster(
        spatial,
        gaussian,
        config,
        balls,
        quality=1.0,
        epsilon=1e-4,
        iter_cap=1000,
        ident_dist=1.0,
        merge_range=1.0,
        check_step=4,
    )
    return balls, labels


############################
#  Tests for mode          #
############################


def test_mode_converges_to_centre(symmetric):
    spatial, config = symmetric
    fv = np.array([1.3, 2.4])
    steps = mode(spatial, gaussian, config, fv, epsilon=1e-6)
    assert 1 <= steps < 1024
    np.testing.assert_allclose(fv, [1.0, 2.0], atol=1e-4)


def test_mode_is_idempotent(symmetric):
    spatial, config = symmetric
    fv = np.array([0.2, 2.9])
    mode(spatial, gaussian, config, fv, epsilon=1e-5)
    again = fv.copy()
    steps = mode(spatial, gaussian, config, again, epsilon=1e-5)
    assert steps == 1
    assert np.linalg.norm(again - fv) < 1e-5


def test_mode_respects_iter_cap(symmetric):
    spatial, config = symmetric
    fv = np.array([3.0, 3.0])
    temp = np.empty(2)
    assert mode(spatial, gaussian, config, fv, temp, epsilon=1e-12, iter_cap=1) == 1
    assert not np.allclose(fv, [3.0, 3.0])


def test_mode_without_neighbours_stays_put(symmetric):
    spatial, _ = symmetric
    fv = np.array([50.0, 50.0])
    assert mode(spatial, epanechnikov, epanechnikov.config(2), fv) == 1
    np.testing.assert_array_equal(fv, [50.0, 50.0])


def test_mode_uses_ignore_column_as_weight():
    data = np.array([[0.0, 1.0], [1.0, 3.0]])
    spatial = Spatial(DataMatrix(data, scale=0.1, ignore=1))
    fv = np.array([0.0, -7.0])
    mode(spatial, gaussian, gaussian.config(1), fv, epsilon=1e-8)
    np.testing.assert_allclose(fv[0], 0.075, atol=2e-3)
    assert fv[1] == -7.0


def test_mode_validation(symmetric):
    spatial, config = symmetric
    with pytest.raises(ValueError):
        mode(spatial, gaussian, config, np.zeros(3))
    with pytest.raises(ValueError):
        mode(spatial, gaussian, config, np.zeros(2, dtype=int))
    with pytest.raises(ValueError):
        mode(spatial, gaussian, config, np.zeros(2), np.zeros(3))
    with pytest.raises(ValueError):
        mode(spatial, gaussian, config, np.zeros(2), np.zeros(2, dtype=int))
    with pytest.raises(ValueError):
        mode(spatial, gaussian, config, np.zeros(2), epsilon=0.0)
    with pytest.raises(ValueError):
        mode(spatial, gaussian, config, np.zeros(2), iter_cap=0)


############################
#  Tests for mode_merge    #
############################


def test_mode_merge_creates_then_reuses(symmetric):
    spatial, config = symmetric
    balls = Balls(2)
    fv = np.array([1.3, 2.4])
    assert mode_merge(spatial, gaussian, config, balls, fv, epsilon=1e-6) == 0
    assert len(balls) == 1
    np.testing.assert_allclose(balls.centers[0], [1.0, 2.0], atol=1e-4)
    assert balls.radii[0] == 0.5

    fv = np.array([1.3, 2.4])
    assert mode_merge(spatial, gaussian, config, balls, fv, epsilon=1e-6) == 0
    assert len(balls) == 1


def test_mode_merge_is_deterministic(symmetric):
    spatial, config = symmetric
    centers = []
    for _ in range(2):
        balls = Balls(2)
        fv = np.array([0.4, 1.1])
        assert mode_merge(spatial, gaussian, config, balls, fv) == 0
        centers.append(balls.centers[0].copy())
    np.testing.assert_array_equal(centers[0], centers[1])


def test_mode_merge_exits_early_into_existing_ball(symmetric):
    spatial, config = symmetric
    balls = Balls(2)
    balls.insert(np.array([1.0, 2.0]), 0.1)
    fv = np.array([2.5, 3.5])
    index = mode_merge(
        spatial, gaussian, config, balls, fv, epsilon=1e-12, merge_range=1.0, check_step=1
    )
    assert index == 0
    assert len(balls) == 1
    # it stopped as soon as it was within range, long before converging
    assert np.linalg.norm(fv - [1.0, 2.0]) > 1e-6


def test_mode_merge_ident_dist_sets_radius(symmetric):
    spatial, config = symmetric
    balls = Balls(2)
    mode_merge(spatial, gaussian, config, balls, np.array([1.0, 2.0]), ident_dist=0.25)
    assert balls.radii[0] == 0.25


def test_mode_merge_validation(symmetric):
    spatial, config = symmetric
    with pytest.raises(ValueError):
        mode_merge(spatial, gaussian, config, Balls(3), np.zeros(2))
    with pytest.raises(ValueError):
        mode_merge(spatial, gaussian, config, Balls(2), np.zeros(2), check_step=0)


############################
#  Tests for cluster       #
############################


def test_cluster_two_blobs(blobs):
    spatial, config = blobs
    balls, labels = _cluster_blobs(spatial, config)
    assert labels.shape == (100,)
    assert len(balls) == 2
    assert np.all(labels[:50] == labels[0])
    assert np.all(labels[50:] == labels[50])
    assert labels[0] != labels[50]

    centers = balls.centers / 0.5
    np.testing.assert_allclose(centers[labels[0]], [0.0, 0.0], atol=0.7)
    np.testing.assert_allclose(centers[labels[50]], [10.0, 10.0], atol=0.7)


@pytest.mark.parametrize("seed", [0, 1, 2, 3, 4])
def test_cluster_two_blobs_unscaled(seed):
    rng = np.random.default_rng(seed)
    x = np.vstack([rng.normal(0, 1, size=(50, 2)), rng.normal(10, 1, size=(50, 2))])
    spatial = Spatial(DataMatrix(x, scale=1.0))
    balls, labels = _cluster_blobs(spatial, gaussian.config(2))
    assert len(balls) == 2
    assert np.all(labels[:50] == labels[0])
    assert np.all(labels[50:] == labels[50])
    assert labels[0] != labels[50]
    np.testing.assert_allclose(balls.centers[labels[0]], [0.0, 0.0], atol=1.0)
    np.testing.assert_allclose(balls.centers[labels[50]], [10.0, 10.0], atol=1.0)


def test_cluster_is_deterministic(blobs):
    spatial, config = blobs
    balls_a, labels_a = _cluster_blobs(spatial, config)
    balls_b, labels_b = _cluster_blobs(spatial, config)
    np.testing.assert_array_equal(labels_a, labels_b)
    np.testing.assert_array_equal(balls_a.centers, balls_b.centers)


def test_cluster_at_most_one_ball_per_exemplar():
    data = np.array([[0.0], [10.0], [20.0], [30.0]])
    spatial = Spatial(DataMatrix(data))
    balls = Balls(1)
    out = np.full(4, -1)
    result = cluster(spatial, epanechnikov, epanechnikov.config(1), balls, out)
    assert result is out
    np.testing.assert_array_equal(out, [0, 1, 2, 3])
    assert len(balls) <= spatial.n


def test_cluster_validation(blobs):
    spatial, config = blobs
    with pytest.raises(ValueError):
        cluster(spatial, gaussian, config, Balls(2), np.empty(3, dtype=int))
    with pytest.raises(ValueError):
        cluster(spatial, gaussian, config, Balls(2), ident_dist=-1.0)


############################
#  Tests for assign_cluster#
############################


def test_assign_cluster(blobs):
    spatial, config = blobs
    balls, labels = _cluster_blobs(spatial, config)
    count = len(balls)

    near_first = np.array([0.8, -0.6]) * 0.5
    near_second = np.array([9.0, 11.0]) * 0.5
    far = np.array([100.0, -100.0]) * 0.5
    kwargs = dict(quality=1.0, epsilon=1e-4)
    assert assign_cluster(spatial, gaussian, config, balls, near_first, **kwargs) == labels[0]
    assert assign_cluster(spatial, gaussian, config, balls, near_second, **kwargs) == labels[50]
    assert assign_cluster(spatial, gaussian, config, balls, far, **kwargs) == -1
    assert len(balls) == count


def test_assign_cluster_uses_ball_radius(symmetric):
    spatial, config = symmetric
    balls = Balls(2)
    balls.insert(np.array([1.0, 2.0]), 1e-6)
    balls.insert(np.array([1.0, 2.0]), 1.0)
    fv = np.array([1.2, 2.1])
    # only the second ball is large enough to hold the converged point
    assert assign_cluster(spatial, gaussian, config, balls, fv, epsilon=1e-3) == 1
