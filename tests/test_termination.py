import time
from collections import deque
from typing import Deque, List, Optional

import numpy as np
import pytest

from covadapt import CMAESOptions, EvaluatedPoint, Parameters, State, TerminationCheck, TerminationReason

DIM = 2


def get_parameters(
    initial_sigma: float = 0.5,
    max_function_evals: Optional[int] = None,
    max_generations: Optional[int] = None,
    max_time: Optional[float] = None,
    tol_fun_hist: float = 1e-12,
) -> Parameters:
    """Create parameters with the default tolerances in two dimensions."""
    return Parameters.from_options(
        CMAESOptions(
            dimensions=DIM,
            population_size=6,
            initial_step_size=initial_sigma,
            tol_fun_rel=1e-12,
            tol_fun_hist=tol_fun_hist,
            max_function_evals=max_function_evals,
            max_generations=max_generations,
            max_time=max_time,
        )
    )


def get_dummy_generation(function_value: float) -> List[EvaluatedPoint]:
    """Create a generation of identical points with the given function value."""
    return [EvaluatedPoint(np.zeros(DIM), np.zeros(DIM), function_value) for _ in range(100)]


def get_check(
    parameters: Parameters,
    state: State,
    best_function_value_history: Optional[Deque[float]] = None,
    median_function_value_history: Optional[Deque[float]] = None,
    first_median_value: Optional[float] = None,
    best_median_value: Optional[float] = None,
    individuals: Optional[List[EvaluatedPoint]] = None,
    current_function_evals: int = 0,
    time_created: Optional[float] = None,
) -> TerminationCheck:
    """Assemble the inputs of a termination check, defaulting to a fresh run."""
    best_function_value_history = best_function_value_history if best_function_value_history is not None else deque()
    return TerminationCheck(
        current_function_evals=current_function_evals,
        time_created=time_created if time_created is not None else time.monotonic(),
        parameters=parameters,
        state=state,
        best_function_value_history=best_function_value_history,
        median_function_value_history=median_function_value_history
        if median_function_value_history is not None
        else deque(),
        max_history_size=parameters.max_history_size,
        first_median_value=first_median_value,
        best_median_value=best_median_value,
        individuals=individuals
        if individuals is not None
        else get_dummy_generation(best_function_value_history[0] if best_function_value_history else 1.0),
    )


def history_with_front(front: float, rest: float = 1.0, length: int = 100) -> Deque[float]:
    """Create a history of ``length`` values of ``rest`` with ``front`` as the most recent entry."""
    history = deque([rest] * length)
    history.appendleft(front)
    return history


def test_fresh_state_does_not_terminate() -> None:
    """Test that a fresh run satisfies no termination criterion."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), parameters.initial_sigma)
    assert get_check(parameters, state).check_termination_criteria() == set()


def test_check_is_pure() -> None:
    """Test that checking neither modifies its inputs nor depends on being called repeatedly."""
    parameters = get_parameters(tol_fun_hist=0.05)
    state = State(np.ones(DIM), 0.5)
    history = history_with_front(1.01)
    check = get_check(parameters, state, best_function_value_history=history, individuals=get_dummy_generation(1.0))

    first = check.check_termination_criteria()
    second = check.check_termination_criteria()
    assert first == second == {TerminationReason.TOL_FUN_HIST}
    assert list(history) == list(history_with_front(1.01))
    np.testing.assert_array_equal(state.mean, np.ones(DIM))
    assert state.sigma == 0.5
    assert state.generation == 0


def test_tol_fun() -> None:
    """Test that a flat history and a flat generation trigger the absolute function tolerance."""
    parameters = get_parameters(tol_fun_hist=0.0)
    state = State(np.zeros(DIM), parameters.initial_sigma)
    check = get_check(parameters, state, best_function_value_history=history_with_front(1.0 + 1e-13))
    assert check.check_termination_criteria() == {TerminationReason.TOL_FUN}


def test_tol_fun_rel() -> None:
    """Test the function tolerance relative to the overall improvement of the median."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), parameters.initial_sigma)
    check = get_check(
        parameters,
        state,
        best_function_value_history=history_with_front(1.01),
        first_median_value=1e12,
        best_median_value=1.0,
    )
    assert check.check_termination_criteria() == {TerminationReason.TOL_FUN_REL}


def test_tol_fun_hist() -> None:
    """Test the tolerance on the range of recent best function values."""
    parameters = get_parameters(tol_fun_hist=0.05)
    state = State(np.zeros(DIM), parameters.initial_sigma)
    check = get_check(
        parameters, state, best_function_value_history=history_with_front(1.01), individuals=get_dummy_generation(1.0)
    )
    assert check.check_termination_criteria() == {TerminationReason.TOL_FUN_HIST}


def test_short_history_ignored() -> None:
    """Test that the function tolerances need a full window of history."""
    parameters = get_parameters(tol_fun_hist=1.0)
    state = State(np.zeros(DIM), parameters.initial_sigma)
    window = 10 + int(np.ceil(30 * DIM / parameters.lambd))
    check = get_check(parameters, state, best_function_value_history=deque([1.0] * (window - 1)))
    assert check.check_termination_criteria() == set()
    check.best_function_value_history.appendleft(1.0)
    assert check.check_termination_criteria() == {TerminationReason.TOL_FUN, TerminationReason.TOL_FUN_HIST}


def test_tol_x() -> None:
    """Test that a tiny step size triggers the tolerance on the standard deviations."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), 1e-13)
    assert get_check(parameters, state).check_termination_criteria() == {TerminationReason.TOL_X}


def test_tol_x_needs_small_path() -> None:
    """Test that the tolerance on the standard deviations also requires a short evolution path."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), 1e-13)
    state.path_c = np.array([10.0, 0.0])
    assert get_check(parameters, state).check_termination_criteria() == set()


def test_tol_x_up() -> None:
    """Test that a large growth of the step size triggers the upper tolerance."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), 1e8)
    assert get_check(parameters, state).check_termination_criteria() == {TerminationReason.TOL_X_UP}


def test_no_effect_axis() -> None:
    """Test that a principal axis too small to move the mean is detected when it is checked."""
    parameters = get_parameters()
    state = State(np.full(DIM, 100.0), 1e-10)

    eigenvectors = np.array([[3.0, 2.0], [-2.0, 3.0]])
    eigenvectors /= np.linalg.norm(eigenvectors, axis=1, keepdims=True)
    sqrt_eigenvalues = np.array([1e-1, 1e-6])
    # Eigenvectors as rows here.
    cov = eigenvectors.T @ np.diag(sqrt_eigenvalues**2) @ eigenvectors
    state.cov.set_cov(cov, decompose=True)

    terminated = False
    for generation in range(DIM):
        state.generation = generation
        reasons = get_check(parameters, state).check_termination_criteria()
        if reasons:
            assert reasons == {TerminationReason.NO_EFFECT_AXIS}
            terminated = True
    assert terminated


def test_no_effect_coord() -> None:
    """Test that a coordinate axis too small to move the mean is detected."""
    parameters = get_parameters()
    state = State(np.full(DIM, 100.0), 0.5)
    state.cov.set_cov(np.diag([1e-8, 1e-20]), decompose=True)
    for generation in range(DIM):
        state.generation = generation
        assert get_check(parameters, state).check_termination_criteria() == {TerminationReason.NO_EFFECT_COORD}


def test_tol_condition_cov() -> None:
    """Test that an ill-conditioned covariance matrix triggers the condition tolerance."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), 0.5)
    state.cov.set_cov(np.diag([0.99, 1e14]), decompose=True)
    assert get_check(parameters, state).check_termination_criteria() == {TerminationReason.TOL_CONDITION_COV}


def test_large_standard_deviations_allowed() -> None:
    """Test that large but well-conditioned standard deviations do not trigger termination."""
    parameters = get_parameters(initial_sigma=1e3)
    state = State(np.zeros(DIM), 1e4)
    state.cov.set_cov(np.diag([0.01, 1e4]), decompose=True)
    assert get_check(parameters, state).check_termination_criteria() == set()


def test_stagnation() -> None:
    """Test that best and median values without improvement over the full history trigger stagnation."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), parameters.initial_sigma)
    # Most recent first: the values are getting worse over time.
    history = deque()
    for i in range(parameters.max_history_size):
        history.appendleft(float(i // 10 + 1))
    check = get_check(
        parameters,
        state,
        best_function_value_history=history,
        median_function_value_history=deque(history),
        individuals=get_dummy_generation(1.0),
    )
    assert check.check_termination_criteria() == {TerminationReason.STAGNATION}


def test_no_stagnation_when_improving() -> None:
    """Test that improving median values prevent stagnation."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), parameters.initial_sigma)
    history = deque()
    for i in range(parameters.max_history_size):
        history.appendleft(float(i // 10 + 1))
    improving = deque(reversed(history))
    check = get_check(
        parameters,
        state,
        best_function_value_history=history,
        median_function_value_history=improving,
        individuals=get_dummy_generation(1.0),
    )
    assert check.check_termination_criteria() == set()


def test_max_function_evals() -> None:
    """Test the limit on function evaluations."""
    parameters = get_parameters(max_function_evals=100)
    state = State(np.zeros(DIM), parameters.initial_sigma)
    assert get_check(parameters, state, current_function_evals=99).check_termination_criteria() == set()
    assert get_check(parameters, state, current_function_evals=100).check_termination_criteria() == {
        TerminationReason.MAX_FUNCTION_EVALS
    }


def test_max_generations() -> None:
    """Test the limit on generations."""
    parameters = get_parameters(max_generations=100)
    state = State(np.zeros(DIM), parameters.initial_sigma)
    state.generation = 100
    assert get_check(parameters, state).check_termination_criteria() == {TerminationReason.MAX_GENERATIONS}


def test_max_time() -> None:
    """Test the limit on run time."""
    parameters = get_parameters(max_time=4.0)
    state = State(np.zeros(DIM), parameters.initial_sigma)
    check = get_check(parameters, state, time_created=time.monotonic() - 5.0)
    assert check.check_termination_criteria() == {TerminationReason.MAX_TIME}


@pytest.mark.parametrize("value", [1e-12, 1e-16, -3.0])
def test_fun_target(value: float) -> None:
    """Test that reaching the target value terminates the run."""
    parameters = get_parameters()
    state = State(np.zeros(DIM), parameters.initial_sigma)
    check = get_check(parameters, state, individuals=get_dummy_generation(value))
    assert check.check_termination_criteria() == {TerminationReason.FUN_TARGET}


def test_reason_names() -> None:
    """Test the display names of the termination reasons."""
    assert str(TerminationReason.TOL_FUN) == "TolFun"
    assert str(TerminationReason.POS_DEF_COV) == "PosDefCov"
    assert str(TerminationReason.NO_EFFECT_AXIS) == "NoEffectAxis"
