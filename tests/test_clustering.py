import numpy as np
import pandas as pd
import pytest

from pymshift.clustering import MeanShift
from pymshift.kernels import epanechnikov

############################
#  Fixtures and Utilities  #
############################


@pytest.fixture
def sample_data():
    """Two well separated 2-D Gaussian blobs of 50 points each."""
    rng = np.random.default_rng(42)
    x1 = rng.normal(0, 1, size=(50, 2))
    x2 = rng.normal(10, 1, size=(50, 2))
    return np.vstack([x1, x2])


@pytest.fixture
def ms_instance():
    return MeanShift(bandwidth=2.0, quality=1.0, merge_range=1.0, ident_dist=1.0)


@pytest.fixture
def fitted(ms_instance, sample_data):
    return ms_instance.fit(sample_data)


############################
#  Tests for MeanShift     #
############################


def test_initialization(ms_instance):
    assert ms_instance.kernel.name == "gaussian"
    assert ms_instance.bandwidth == 2.0
    assert ms_instance.labels_ is None


@pytest.mark.parametrize(
    "kwargs",
    [
        {"kernel": "cosine"},
        {"quality": 1.5},
        {"epsilon": 0.0},
        {"iter_cap": 0},
        {"check_step": 0},
        {"merge_range": -1.0},
        {"bandwidth": "normal"},
    ],
)
def test_invalid_parameters(kwargs):
    with pytest.raises(ValueError):
        MeanShift(**kwargs)


def test_fit_finds_two_modes(fitted):
    assert fitted.n_clusters_ == 2
    labels = fitted.labels_
    assert labels.shape == (100,)
    assert np.all(labels[:50] == labels[0])
    assert np.all(labels[50:] == labels[50])
    assert labels[0] != labels[50]
    np.testing.assert_allclose(fitted.modes_[labels[0]], [0.0, 0.0], atol=0.7)
    np.testing.assert_allclose(fitted.modes_[labels[50]], [10.0, 10.0], atol=0.7)
    assert fitted.weight_ == 100.0


def test_fit_verbose(ms_instance, sample_data, capsys):
    ms_instance.fit(sample_data, verbose=25)
    out = capsys.readouterr().out
    assert "Found 2 modes from 100 exemplars." in out
    assert out.count("\n") >= 5


def test_fit_warns_for_tiny_bandwidth():
    x = np.array([[0.0, 0.0], [5.0, 5.0], [10.0, 0.0]])
    with pytest.warns(RuntimeWarning):
        MeanShift(bandwidth=0.01).fit(x)


def test_predict(fitted):
    labels = fitted.predict(np.array([[0.5, -0.5], [9.0, 10.5], [300.0, -300.0]]))
    assert labels.dtype == np.int64
    np.testing.assert_array_equal(labels, [fitted.labels_[0], fitted.labels_[50], -1])


def test_predict_density(fitted):
    density = fitted.predict_density(np.array([[0.0, 0.0], [5.0, 5.0], [10.0, 10.0]]))
    assert np.all(density >= 0)
    assert density[0] > density[1]
    assert density[2] > density[1]
    assert np.isfinite(fitted.score(np.array([[0.0, 0.0], [10.0, 10.0]])))
    assert fitted.score_samples(np.array([[1e4, 1e4]]))[0] == -np.inf


def test_sample_is_reproducible(fitted):
    a = fitted.sample(20)
    b = fitted.sample(20)
    np.testing.assert_array_equal(a, b)
    assert a.shape == (20, 2)
    # a later window continues the same sequence
    np.testing.assert_array_equal(fitted.sample(5, start=15), a[15:])


def test_converge(fitted):
    modes = fitted.converge(np.array([[1.0, 1.0], [11.0, 9.0]]))
    np.testing.assert_allclose(modes[0], fitted.modes_[fitted.labels_[0]], atol=0.05)
    np.testing.assert_allclose(modes[1], fitted.modes_[fitted.labels_[50]], atol=0.05)


def test_project():
    x = np.linspace(-10, 10, 201)
    data = np.column_stack([x, 0.2 * (-1.0) ** np.arange(x.size)])
    ms = MeanShift(bandwidth=2.0).set_data(data)
    projected = ms.project(np.array([[0.0, 1.0], [3.0, -1.0]]), degrees=1)
    np.testing.assert_allclose(projected[:, 1], 0.0, atol=0.1)

    with pytest.raises(ValueError):
        MeanShift(kernel=epanechnikov, bandwidth=2.0).set_data(data).project(data[:2], 1)


def test_diagnostics(fitted, sample_data):
    assert np.isfinite(fitted.loo_nll())
    assert np.isfinite(fitted.entropy())
    assert fitted.loo_nll(sample_clamp=30) == fitted.loo_nll(sample_clamp=30)
    assert abs(fitted.kl_divergence(fitted)) < 1e-12

    other = MeanShift(bandwidth=2.0).fit(sample_data + 3.0)
    assert fitted.kl_divergence(other, limit=1e-3) > 0
    with pytest.raises(ValueError):
        fitted.kl_divergence(MeanShift(bandwidth=1.0).fit(sample_data))


def test_loo_nll_selects_bandwidth(sample_data):
    good = MeanShift(bandwidth=1.0).set_data(sample_data).loo_nll()
    bad = MeanShift(bandwidth=1e-3).set_data(sample_data).loo_nll()
    assert good < bad


def test_set_bandwidth(fitted):
    before = fitted.norm_
    fitted.set_bandwidth(4.0)
    np.testing.assert_allclose(fitted.norm_, before / 4.0)
    assert fitted.labels_ is None
    with pytest.raises(ValueError):
        fitted.predict(np.zeros((1, 2)))


def test_bandwidth_rules(sample_data):
    # the two rules coincide in two dimensions
    sample_data = sample_data[:, :1]
    for rule in ("silverman", "scott"):
        ms = MeanShift(bandwidth=rule).set_data(sample_data)
        assert np.all(ms.dm.scale > 0)
    silverman = MeanShift(bandwidth="silverman").set_data(sample_data).dm.scale
    scott = MeanShift(bandwidth="scott").set_data(sample_data).dm.scale
    assert not np.allclose(silverman, scott)


def test_weights_from_dataframe_column(sample_data):
    df = pd.DataFrame(sample_data, columns=["a", "b"])
    df["w"] = 1.0
    df.loc[:49, "w"] = 2.0
    ms = MeanShift(bandwidth=2.0, merge_range=1.0, ignore="w").fit(df)
    assert ms.weight_ == 150.0
    summary = ms.summary()
    assert list(summary.columns) == ["a", "b", "size", "weight"]
    assert summary.index.name == "mode"
    assert summary["size"].sum() == 100
    np.testing.assert_allclose(summary["weight"].sum(), 150.0)


def test_summary(fitted):
    summary = fitted.summary()
    assert isinstance(summary, pd.DataFrame)
    assert list(summary.columns) == ["x0", "x1", "size", "weight"]
    np.testing.assert_array_equal(summary["size"].to_numpy(), [50, 50])


def test_not_fitted():
    ms = MeanShift()
    with pytest.raises(ValueError):
        ms.predict(np.zeros((1, 2)))
    with pytest.raises(ValueError):
        ms.predict_density(np.zeros((1, 2)))
    with pytest.raises(ValueError):
        ms.summary()
    with pytest.raises(ValueError):
        ms.sample(3)
