import numpy as np
import pytest

from covadapt import CMAESOptions, EvaluatedPoint, Parameters, PosDefCovError, Sampler, State, Weights
from covadapt.state import active_weight
from covadapt.utils.benchmark_functions import ellipsoid


@pytest.fixture(params=[Weights.POSITIVE, Weights.NEGATIVE, Weights.UNIFORM])
def parameters(request: pytest.FixtureRequest) -> Parameters:
    """Iterate over parameters with all weight distributions in four dimensions."""
    return Parameters.from_options(CMAESOptions(dimensions=4, population_size=10, weights=request.param))


def run_generations(state: State, parameters: Parameters, generations: int, seed: int = 0) -> None:
    """Sample, rank, and update for a number of generations on the ellipsoid function."""
    sampler = Sampler(ellipsoid, np.random.default_rng(seed))
    for _ in range(generations):
        points = sorted(sampler.sample(state, parameters.lambd), key=lambda p: p.value)
        state.update(sampler.function_evals, parameters, points)


def test_update_invariants(parameters: Parameters) -> None:
    """Test that the covariance matrix stays symmetric and the step size positive across updates."""
    state = State(np.ones(4), 0.5)
    for generation in range(1, 51):
        run_generations(state, parameters, 1, seed=generation)
        assert state.generation == generation
        assert not state.cov.is_dirty
        np.testing.assert_array_equal(state.cov.cov, state.cov.cov.T)
        assert np.isfinite(state.sigma) and state.sigma > 0
        assert np.all(np.isfinite(state.mean))
        assert np.all(state.cov.sqrt_eigenvalues > 0)


def test_update_improves(parameters: Parameters) -> None:
    """Test that the distribution moves towards the optimum of the ellipsoid function."""
    state = State(np.ones(4), 0.5)
    run_generations(state, parameters, 300)
    assert ellipsoid(state.mean) < 1e-4


def test_mean_update() -> None:
    """Test that the mean moves by the weighted sum of the selected directions."""
    parameters = Parameters.from_options(CMAESOptions(dimensions=2, population_size=6, weights=Weights.NEGATIVE))
    state = State(np.zeros(2), 0.5)
    rng = np.random.default_rng(3)
    zs = rng.standard_normal((6, 2))
    points = [EvaluatedPoint(state.sigma * z, z, float(i)) for i, z in enumerate(zs)]

    state.update(6, parameters, points)
    expected = 0.5 * parameters.positive_weights @ zs[: parameters.mu]
    np.testing.assert_allclose(state.mean, expected)


def test_no_commit_on_decomposition_failure() -> None:
    """Test that nothing is committed if the current covariance matrix cannot be decomposed."""
    parameters = Parameters.from_options(CMAESOptions(dimensions=2, population_size=6))
    state = State(np.ones(2), 0.5)
    state.cov.set_cov(np.array([[1.0, 2.0], [2.0, 1.0]]))
    points = [EvaluatedPoint(np.ones(2), np.zeros(2), float(i)) for i in range(6)]

    with pytest.raises(PosDefCovError):
        state.update(6, parameters, points)
    np.testing.assert_array_equal(state.mean, np.ones(2))
    assert state.sigma == 0.5
    assert state.generation == 0
    np.testing.assert_array_equal(state.path_c, np.zeros(2))
    np.testing.assert_array_equal(state.path_sigma, np.zeros(2))


def test_active_weight() -> None:
    """Test the rescaling of negative weights by the whitened norm of the direction."""
    inverse_sqrt = np.eye(2)
    z = np.array([2.0, 0.0])
    assert active_weight(0.3, z, inverse_sqrt) == 0.3
    assert active_weight(0.0, z, inverse_sqrt) == 0.0
    assert np.isclose(active_weight(-0.2, z, inverse_sqrt), -0.2 * 2 / 4)

    inverse_sqrt = np.diag([0.5, 1.0])
    assert np.isclose(active_weight(-0.2, z, inverse_sqrt), -0.2 * 2 / 1)
    # Pure: repeated calls give the same result and leave the inputs unchanged.
    assert active_weight(-0.2, z, inverse_sqrt) == active_weight(-0.2, z, inverse_sqrt)
    np.testing.assert_array_equal(z, np.array([2.0, 0.0]))


def test_no_commit_on_invalid_new_covariance() -> None:
    """Test that a generation producing a non-finite covariance matrix leaves the state untouched."""
    parameters = Parameters.from_options(CMAESOptions(dimensions=2, population_size=6))
    state = State(np.ones(2), 0.5)
    points = [EvaluatedPoint(np.full(2, 1e200), np.full(2, 1e200), float(i)) for i in range(6)]

    with np.errstate(over="ignore", invalid="ignore"), pytest.raises(PosDefCovError):
        state.update(6, parameters, points)
    np.testing.assert_array_equal(state.mean, np.ones(2))
    assert state.sigma == 0.5
    assert state.generation == 0
    np.testing.assert_array_equal(state.cov.cov, np.eye(2))
    assert not state.cov.is_dirty
    np.testing.assert_array_equal(state.path_c, np.zeros(2))
    np.testing.assert_array_equal(state.path_sigma, np.zeros(2))
