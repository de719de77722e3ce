"""Termination criteria of a CMA-ES run."""

import math
import sys
import time
from dataclasses import dataclass
from enum import Enum
from itertools import islice
from typing import Deque, Iterable, Optional, Sequence, Set

import numpy as np

from .parameters import Parameters
from .sampling import EvaluatedPoint
from .state import State


class TerminationReason(Enum):
    """
    A reason for a run to stop.

    Most reasons guard against numerical instability, ``TOL_*`` reasons depend on problem-specific tolerances, and
    ``MAX_*`` reasons bound the run.
    """

    # The maximum number of objective function evaluations has been reached.
    MAX_FUNCTION_EVALS = "MaxFunctionEvals"
    # The maximum number of generations has been reached.
    MAX_GENERATIONS = "MaxGenerations"
    # The run has taken longer than the time limit.
    MAX_TIME = "MaxTime"
    # The target objective function value has been reached.
    FUN_TARGET = "FunTarget"
    # The ranges of recent best function values and of the current generation lie below ``tol_fun``.
    TOL_FUN = "TolFun"
    # Like ``TOL_FUN``, relative to the overall improvement of the median function value.
    TOL_FUN_REL = "TolFunRel"
    # The range of recent best function values lies below ``tol_fun_hist``.
    TOL_FUN_HIST = "TolFunHist"
    # The standard deviation is smaller than ``tol_x`` in every coordinate and the mean has stopped moving.
    TOL_X = "TolX"
    # The best and median function values have not improved over many generations.
    STAGNATION = "Stagnation"
    # The largest standard deviation grew by more than ``tol_x_up`` relative to the initial step size.
    TOL_X_UP = "TolXUp"
    # A principal axis of the distribution is too small to change the mean.
    NO_EFFECT_AXIS = "NoEffectAxis"
    # A coordinate axis of the distribution is too small to change the mean.
    NO_EFFECT_COORD = "NoEffectCoord"
    # The condition number of the covariance matrix is too large or not a normal float.
    TOL_CONDITION_COV = "TolConditionCov"
    # The objective function returned a non-finite value.
    INVALID_FUNCTION_VALUE = "InvalidFunctionValue"
    # The covariance matrix is not positive definite.
    POS_DEF_COV = "PosDefCov"

    def __str__(self) -> str:
        """Return the reason's name."""
        return self.value


def _value_range(values: Iterable[float]) -> float:
    """Return max - min of the values."""
    values = list(values)
    return max(values) - min(values)


def _is_normal(value: float) -> bool:
    """Check for a finite, non-zero, non-subnormal float."""
    return math.isfinite(value) and abs(value) >= sys.float_info.min


@dataclass
class TerminationCheck:
    """
    Inputs of the termination check.

    Attributes
    ----------
    current_function_evals : int
        The number of function evaluations so far.
    time_created : float
        The ``time.monotonic()`` timestamp at which the run started.
    parameters : Parameters
        The strategy parameters, including the termination thresholds.
    state : State
        The current search state.
    best_function_value_history : Deque[float]
        The best function value of each past generation, most recent first.
    median_function_value_history : Deque[float]
        The median function value of each past generation, most recent first.
    max_history_size : int
        The number of generations considered by the stagnation criterion.
    first_median_value : float, optional
        The median function value of the first generation.
    best_median_value : float, optional
        The best median function value of any generation.
    individuals : Sequence[EvaluatedPoint]
        The current generation.

    Methods
    -------
    check_termination_criteria()
        Return the set of satisfied termination criteria.
    """

    current_function_evals: int
    time_created: float
    parameters: Parameters
    state: State
    best_function_value_history: Deque[float]
    median_function_value_history: Deque[float]
    max_history_size: int
    first_median_value: Optional[float]
    best_median_value: Optional[float]
    individuals: Sequence[EvaluatedPoint]

    def check_termination_criteria(self) -> Set[TerminationReason]:
        """
        Check all termination criteria. Neither the inputs nor the state are modified.

        Returns
        -------
        Set[TerminationReason]
            The satisfied criteria. Empty if the run can continue.

        Raises
        ------
        PosDefCovError
            If the covariance matrix has not been decomposed yet and cannot be decomposed.
        """
        result = set()
        termination = self.parameters.termination
        dim = self.parameters.dim
        lambd = self.parameters.lambd

        state = self.state
        mean = state.mean
        cov = state.cov.cov
        decomposition = state.cov.decomposition()
        sigma = state.sigma

        if termination.max_function_evals is not None and self.current_function_evals >= termination.max_function_evals:
            result.add(TerminationReason.MAX_FUNCTION_EVALS)

        if termination.max_generations is not None and state.generation >= termination.max_generations:
            result.add(TerminationReason.MAX_GENERATIONS)

        if termination.max_time is not None and time.monotonic() - self.time_created >= termination.max_time:
            result.add(TerminationReason.MAX_TIME)

        if any(ind.value <= termination.fun_target for ind in self.individuals):
            result.add(TerminationReason.FUN_TARGET)

        # TolFun, TolFunRel, and TolFunHist look at the same window of recent best values.
        past_generations_a = 10 + int(math.ceil(30 * dim / lambd))
        if len(self.best_function_value_history) >= past_generations_a:
            range_history = _value_range(islice(self.best_function_value_history, past_generations_a))
            range_current = _value_range(ind.value for ind in self.individuals)

            if range_history < termination.tol_fun and range_current < termination.tol_fun:
                result.add(TerminationReason.TOL_FUN)

            if self.first_median_value is not None and self.best_median_value is not None:
                tol_fun_rel_range = termination.tol_fun_rel * abs(self.first_median_value - self.best_median_value)
                if range_history < tol_fun_rel_range and range_current < tol_fun_rel_range:
                    result.add(TerminationReason.TOL_FUN_REL)

            if range_history < termination.tol_fun_hist:
                result.add(TerminationReason.TOL_FUN_HIST)

        if np.all(np.abs(sigma * np.sqrt(np.diag(cov))) < termination.tol_x) and np.all(
            np.abs(sigma * state.path_c) < termination.tol_x
        ):
            result.add(TerminationReason.TOL_X)

        condition = (decomposition.sqrt_eigenvalues[-1] / decomposition.sqrt_eigenvalues[0]) ** 2
        if not _is_normal(condition) or condition > termination.tol_condition_cov:
            result.add(TerminationReason.TOL_CONDITION_COV)

        # Cycle through the principal axes, one per generation.
        index_to_check = state.generation % dim
        no_effect_axis_check = (
            0.1 * sigma * decomposition.sqrt_eigenvalues[index_to_check] * decomposition.eigenvectors[:, index_to_check]
        )
        # Exact comparison: the perturbation has to vanish in floating-point arithmetic.
        if np.array_equal(mean, mean + no_effect_axis_check):
            result.add(TerminationReason.NO_EFFECT_AXIS)

        if np.any(mean == mean + 0.2 * sigma * np.diag(cov)):
            result.add(TerminationReason.NO_EFFECT_COORD)

        if self._stagnated():
            result.add(TerminationReason.STAGNATION)

        max_standard_deviation = sigma * decomposition.sqrt_eigenvalues[-1]
        if max_standard_deviation / self.parameters.initial_sigma > termination.tol_x_up:
            result.add(TerminationReason.TOL_X_UP)

        return result

    def _stagnated(self) -> bool:
        """Check whether neither the best nor the median function values improved over the full history."""
        past_generations_b = self.max_history_size
        if (
            len(self.best_function_value_history) < past_generations_b
            or len(self.median_function_value_history) < past_generations_b
        ):
            return False

        subrange_length = max(1, int(past_generations_b * 0.3))

        def did_values_improve(values: Deque[float]) -> bool:
            window = list(islice(values, past_generations_b))
            most_recent = window[:subrange_length]
            least_recent = window[past_generations_b - subrange_length :]
            return bool(np.median(most_recent) < np.median(least_recent))

        return not did_values_improve(self.best_function_value_history) and not did_values_improve(
            self.median_function_value_history
        )
