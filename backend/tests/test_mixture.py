import numpy as np
import pytest

from timbre.core.clustering import KMeansInitializer
from timbre.core.mixture import (
    CovarianceSingularity, EMRefiner, MixtureModel, Refined, TimbreDistribution, correct_points,
)


@pytest.fixture
def two_blobs():
    rng = np.random.default_rng(7)
    a = rng.normal([0.0, 0.0], 0.5, size=(150, 2))
    b = rng.normal([6.0, 6.0], 0.5, size=(150, 2))
    return np.vstack([a, b])


def _model(k=2, d=2):
    return MixtureModel(
        weights=np.full(k, 1.0 / k),
        means=np.arange(k * d, dtype=float).reshape(k, d),
        covariances=np.tile(np.eye(d), (k, 1, 1)),
    )


def test_model_shapes_are_validated():
    with pytest.raises(ValueError):
        MixtureModel(weights=[0.5, 0.5], means=np.zeros((3, 2)), covariances=np.zeros((2, 2, 2)))
    with pytest.raises(ValueError):
        MixtureModel(weights=[1.0], means=np.zeros((1, 2)), covariances=np.zeros((1, 3, 3)))


def test_model_arrays_are_read_only_copies():
    means = np.zeros((1, 2))
    model = MixtureModel(weights=[1.0], means=means, covariances=np.eye(2)[None])
    means[0, 0] = 99.0
    assert model.means[0, 0] == 0.0
    with pytest.raises(ValueError):
        model.weights[0] = 0.3


def test_distribution_is_immutable_and_tagged():
    td = TimbreDistribution(_model(3, 4))
    assert td.n_components == 3 and td.dimension == 4
    assert td.ATTRIBUTE_TYPE == "timbre_distribution"
    with pytest.raises(AttributeError):
        td.foo = 1
    with pytest.raises(TypeError):
        TimbreDistribution({"weights": [1.0]})


def test_to_dict_is_json_shaped():
    data = TimbreDistribution(_model(2, 3)).to_dict()
    assert data["type"] == "timbre_distribution"
    assert data["n_components"] == 2 and data["dimension"] == 3
    assert len(data["covariances"][0]) == 3
    restored = TimbreDistribution.from_dict(data)
    np.testing.assert_allclose(restored.model.means, _model(2, 3).means)


def test_em_fits_two_blobs(two_blobs):
    seed = KMeansInitializer(random_state=0).initialize(two_blobs, 2)
    outcome = EMRefiner(random_state=0).refine(seed, two_blobs)

    assert isinstance(outcome, Refined)
    model = outcome.model
    assert model.n_components == 2
    assert model.weights.sum() == pytest.approx(1.0)
    np.testing.assert_allclose(sorted(model.weights), [0.5, 0.5], atol=0.02)
    centers = model.means[np.argsort(model.means[:, 0])]
    np.testing.assert_allclose(centers, [[0.0, 0.0], [6.0, 6.0]], atol=0.2)
    assert np.all(np.linalg.eigvalsh(model.covariances)[:, 0] > 0)


def test_em_reports_singular_seed():
    t = np.linspace(0.0, 1.0, 50)
    pts = np.column_stack([t, 3.0 * t])
    seed = MixtureModel(weights=[1.0], means=pts.mean(axis=0)[None], covariances=np.cov(pts.T, bias=True)[None])

    outcome = EMRefiner(random_state=1).refine(seed, pts)

    assert isinstance(outcome, CovarianceSingularity)
    assert outcome.component == 0
    assert outcome.corrected_points.shape == pts.shape
    assert not np.array_equal(outcome.corrected_points, pts)


def test_em_reports_empty_component():
    pts = np.random.default_rng(0).normal(size=(40, 2))
    seed = MixtureModel(weights=[1.0, 0.0], means=np.zeros((2, 2)), covariances=np.tile(np.eye(2), (2, 1, 1)))
    outcome = EMRefiner().refine(seed, pts)
    assert isinstance(outcome, CovarianceSingularity)
    assert outcome.component == 1


def test_em_rejects_dimension_mismatch():
    with pytest.raises(ValueError):
        EMRefiner().refine(_model(2, 2), np.zeros((10, 3)))


def test_correct_points_removes_duplicates_in_order():
    pts = np.array([[1.0, 1.0], [2.0, 0.0], [1.0, 1.0], [3.0, 5.0], [2.0, 0.0]])
    fixed = correct_points(pts, np.random.default_rng(0))
    assert fixed.shape == (3, 2)
    np.testing.assert_allclose(fixed, [[1.0, 1.0], [2.0, 0.0], [3.0, 5.0]], atol=0.05)


def test_kmeans_seed_matches_cluster_statistics(two_blobs):
    seed = KMeansInitializer(random_state=0).initialize(two_blobs, 2)
    assert seed.n_components == 2
    assert seed.weights.sum() == pytest.approx(1.0)
    assert seed.covariances.shape == (2, 2, 2)


def test_kmeans_needs_enough_points():
    with pytest.raises(ValueError):
        KMeansInitializer(random_state=0).initialize(np.zeros((2, 3)), 3)


def test_em_accepts_dimensions_on_very_different_scales():
    pts = np.random.default_rng(3).normal(size=(400, 6))
    pts[:, 2] *= 1e-7
    seed = KMeansInitializer(random_state=0).initialize(pts, 3)

    outcome = EMRefiner(random_state=0).refine(seed, pts)

    assert isinstance(outcome, Refined)
    assert outcome.model.n_components == 3
    assert outcome.iterations >= 1
