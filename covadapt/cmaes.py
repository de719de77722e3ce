"""The CMA-ES generation driver."""

import logging
import time
from collections import deque
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import Any, Callable, Deque, FrozenSet, List, Optional, Sequence, Union

import numpy as np

from .matrix import PosDefCovError
from .options import CMAESOptions, Mode
from .parameters import Parameters
from .sampling import EvaluatedPoint, InvalidFunctionValueError, Sampler
from .state import State
from .termination import TerminationCheck, TerminationReason

log = logging.getLogger(__name__)  # Get logger instance.

# Number of generations always reported when progress logging is enabled.
_ALWAYS_PRINTED_GENERATIONS = 3


@dataclass(frozen=True, eq=False)
class Individual:
    """
    A point together with its objective function value, as reported to the caller.

    Attributes
    ----------
    point : numpy.ndarray
        The point in the search space.
    value : float
        The objective function value, with the sign of the original objective.
    """

    point: np.ndarray
    value: float

    def __repr__(self) -> str:
        """Return a compact representation."""
        return f"Individual(value={self.value:.6e}, point={np.array2string(self.point, precision=6)})"


@dataclass(frozen=True)
class GenerationResult:
    """
    Outcome of one generation.

    Attributes
    ----------
    individuals : List[Individual]
        The generation's individuals, best first. Empty if the objective function returned a non-finite value.
    current_best : Individual, optional
        The best individual of this generation.
    overall_best : Individual, optional
        The best individual found so far.
    reasons : FrozenSet[TerminationReason]
        The satisfied termination criteria. Empty if the run can continue.
    """

    individuals: List[Individual]
    current_best: Optional[Individual]
    overall_best: Optional[Individual]
    reasons: FrozenSet[TerminationReason]

    @property
    def terminated(self) -> bool:
        """Whether any termination criterion is satisfied."""
        return len(self.reasons) > 0


@dataclass(frozen=True)
class TerminationData:
    """
    Final result of a run.

    Attributes
    ----------
    current_best : Individual, optional
        The best individual of the last generation.
    overall_best : Individual, optional
        The best individual of the whole run.
    final_mean : numpy.ndarray
        The mean of the search distribution when the run stopped.
    reasons : FrozenSet[TerminationReason]
        The termination criteria that stopped the run.
    """

    current_best: Optional[Individual]
    overall_best: Optional[Individual]
    final_mean: np.ndarray
    reasons: FrozenSet[TerminationReason]


class _Negated:
    """Negated objective function used for maximization."""

    def __init__(self, objective: Callable[[np.ndarray], float]) -> None:
        self.objective = objective

    def __call__(self, x: np.ndarray) -> float:
        return -self.objective(x)


class CMAES:
    """
    Covariance matrix adaptation evolution strategy.

    Owns the search state, the strategy parameters, and the function value histories, and advances the search one
    generation per call of ``next_generation``.

    Attributes
    ----------
    parameters : Parameters
        The strategy parameters.
    state : State
        The search distribution. Only modified by ``next_generation``.
    sampler : Sampler
        Samples and evaluates the points of each generation.
    best_function_value_history : Deque[float]
        The best function value of each past generation, most recent first.
    median_function_value_history : Deque[float]
        The median function value of each past generation, most recent first.
    first_median_value : float, optional
        The median function value of the first generation.
    best_median_value : float, optional
        The best median function value of any generation.

    Methods
    -------
    next_generation()
        Advance the search by one generation.
    run()
        Advance the search until a termination criterion is met.
    print_info()
        Log a progress line.
    """

    def __init__(
        self,
        objective: Callable[[np.ndarray], float],
        options: CMAESOptions,
        executor: Optional[Executor] = None,
    ) -> None:
        """
        Validate the options and set up a new run.

        Parameters
        ----------
        objective : Callable[[numpy.ndarray], float]
            The objective function.
        options : CMAESOptions
            The run's options.
        executor : concurrent.futures.Executor, optional
            The executor used to evaluate the points of a generation concurrently. Default is sequential evaluation.

        Raises
        ------
        InvalidOptionsError
            If the options are invalid. No state is created in this case.
        """
        self.parameters = Parameters.from_options(options)
        self.mode = options.mode
        self._sign = -1.0 if self.mode == Mode.MAXIMIZE else 1.0
        if self.mode == Mode.MAXIMIZE:
            objective = _Negated(objective)

        self.state = State(options.initial_mean, options.initial_step_size)
        self.sampler = Sampler(objective, np.random.default_rng(seed=options.seed), executor=executor)
        self.print_gap_evals = options.print_gap_evals

        self.best_function_value_history: Deque[float] = deque(maxlen=self.parameters.max_history_size)
        self.median_function_value_history: Deque[float] = deque(maxlen=self.parameters.max_history_size)
        self.first_median_value: Optional[float] = None
        self.best_median_value: Optional[float] = None

        self._current_best: Optional[Individual] = None
        self._overall_best: Optional[Individual] = None
        self._last_print_evals = 0
        self._printed_header = False
        self.time_created = time.monotonic()
        log.info(
            f"Starting CMA-ES in {self.parameters.dim} dimensions with population size {self.parameters.lambd} "
            f"({self.parameters.weights_policy.value} weights), initial step size {self.parameters.initial_sigma}."
        )

    def next_generation(self) -> GenerationResult:
        """
        Sample, evaluate, and rank one generation, update the search distribution, and check for termination.

        Returns
        -------
        GenerationResult
            The ranked individuals, the best individuals, and the satisfied termination criteria.
        """
        try:
            points = self.sampler.sample(self.state, self.parameters.lambd)
        except InvalidFunctionValueError as e:
            log.warning(f"Generation {self.generation}: {e}")
            return self._failed(TerminationReason.INVALID_FUNCTION_VALUE)
        except PosDefCovError as e:
            log.warning(f"Generation {self.generation}: {e}")
            return self._failed(TerminationReason.POS_DEF_COV)

        # Stable sort, ascending function value is better.
        points = sorted(points, key=lambda p: p.value)
        individuals = [self._to_individual(p) for p in points]
        self._current_best = individuals[0]
        if self._overall_best is None or points[0].value < self._sign * self._overall_best.value:
            self._overall_best = individuals[0]

        try:
            self.state.update(self.sampler.function_evals, self.parameters, points)
        except PosDefCovError as e:
            log.warning(f"Generation {self.generation}: {e}")
            return self._failed(TerminationReason.POS_DEF_COV, individuals)

        self._update_histories(points)
        reasons = frozenset(
            TerminationCheck(
                current_function_evals=self.sampler.function_evals,
                time_created=self.time_created,
                parameters=self.parameters,
                state=self.state,
                best_function_value_history=self.best_function_value_history,
                median_function_value_history=self.median_function_value_history,
                max_history_size=self.parameters.max_history_size,
                first_median_value=self.first_median_value,
                best_median_value=self.best_median_value,
                individuals=points,
            ).check_termination_criteria()
        )

        if self.print_gap_evals is not None and (
            self.generation <= _ALWAYS_PRINTED_GENERATIONS
            or self.function_evals - self._last_print_evals >= self.print_gap_evals
            or reasons
        ):
            self.print_info()
        if reasons:
            log.info(f"Generation {self.generation}: terminating with {sorted(str(r) for r in reasons)}.")

        return GenerationResult(individuals, self._current_best, self._overall_best, reasons)

    def run(self) -> TerminationData:
        """
        Run generations until a termination criterion is met.

        Returns
        -------
        TerminationData
            The best individuals, the final mean, and the termination reasons.
        """
        while True:
            result = self.next_generation()
            if result.terminated:
                return TerminationData(
                    current_best=result.current_best,
                    overall_best=result.overall_best,
                    final_mean=self.mean,
                    reasons=result.reasons,
                )

    def _failed(self, reason: TerminationReason, individuals: Sequence[Individual] = ()) -> GenerationResult:
        """Report a generation that could not be completed."""
        return GenerationResult(list(individuals), self._current_best, self._overall_best, frozenset({reason}))

    def _to_individual(self, point: EvaluatedPoint) -> Individual:
        """Convert an internal evaluated point to an individual with the caller's sign convention."""
        return Individual(point.point, self._sign * point.value)

    def _update_histories(self, points: Sequence[EvaluatedPoint]) -> None:
        """Fold the generation's best and median function values into the histories."""
        median = float(np.median([p.value for p in points]))
        self.best_function_value_history.appendleft(points[0].value)
        self.median_function_value_history.appendleft(median)
        if self.first_median_value is None:
            self.first_median_value = median
        if self.best_median_value is None or median < self.best_median_value:
            self.best_median_value = median

    def print_info(self) -> None:
        """Log a line with the generation, evaluations, function values, axis ratio, and standard deviations."""
        if not self._printed_header:
            log.info(
                f"{'Gen #':>7} {'f evals':>9} {'Best f value':>13} {'Median':>13} "
                f"{'Axis ratio':>11} {'Sigma':>10} {'Min std':>10} {'Max std':>10}"
            )
            self._printed_header = True
        std = self.standard_deviations
        best = self.best_function_value
        median = self.median_function_value
        log.info(
            f"{self.generation:>7} {self.function_evals:>9} "
            f"{best if best is not None else float('nan'):>13.6e} "
            f"{median if median is not None else float('nan'):>13.6e} "
            f"{self.axis_ratio:>11.3e} {self.sigma:>10.3e} {std.min():>10.3e} {std.max():>10.3e}"
        )
        self._last_print_evals = self.function_evals

    # Read-only diagnostics.

    @property
    def mean(self) -> np.ndarray:
        """A copy of the current mean of the search distribution."""
        return self.state.mean.copy()

    @property
    def sigma(self) -> float:
        """The current step size."""
        return self.state.sigma

    @property
    def axis_ratio(self) -> float:
        """The ratio of the largest to the smallest principal standard deviation."""
        return self.state.axis_ratio

    @property
    def standard_deviations(self) -> np.ndarray:
        """The standard deviation in each coordinate, ``sigma * sqrt(diag(C))``."""
        return self.state.sigma * np.sqrt(np.diag(self.state.cov.cov))

    @property
    def best_function_value(self) -> Optional[float]:
        """The best function value of the latest generation."""
        if not self.best_function_value_history:
            return None
        return self._sign * self.best_function_value_history[0]

    @property
    def median_function_value(self) -> Optional[float]:
        """The median function value of the latest generation."""
        if not self.median_function_value_history:
            return None
        return self._sign * self.median_function_value_history[0]

    @property
    def generation(self) -> int:
        """The number of completed generations."""
        return self.state.generation

    @property
    def function_evals(self) -> int:
        """The number of objective function evaluations so far."""
        return self.sampler.function_evals

    @property
    def current_best(self) -> Optional[Individual]:
        """The best individual of the latest generation."""
        return self._current_best

    @property
    def overall_best(self) -> Optional[Individual]:
        """The best individual found so far."""
        return self._overall_best

    @property
    def elapsed(self) -> float:
        """The seconds since the run was created."""
        return time.monotonic() - self.time_created


def fmin(
    objective: Callable[[np.ndarray], float],
    initial_mean: Union[Sequence[float], np.ndarray],
    initial_step_size: float,
    **options: Any,
) -> TerminationData:
    """
    Minimize a function with CMA-ES using default options.

    Parameters
    ----------
    objective : Callable[[numpy.ndarray], float]
        The function to minimize.
    initial_mean : Sequence[float] | numpy.ndarray
        The starting point. Its length determines the dimension.
    initial_step_size : float
        The initial step size.
    **options
        Further fields of ``CMAESOptions``.

    Returns
    -------
    TerminationData
        The result of the run.
    """
    initial_mean = np.asarray(initial_mean, dtype=float).ravel()
    cmaes_options = CMAESOptions(
        dimensions=len(initial_mean), initial_mean=initial_mean, initial_step_size=initial_step_size, **options
    )
    return cmaes_options.build(objective).run()


def fmax(
    objective: Callable[[np.ndarray], float],
    initial_mean: Union[Sequence[float], np.ndarray],
    initial_step_size: float,
    **options: Any,
) -> TerminationData:
    """
    Maximize a function with CMA-ES using default options.

    No target value is used unless ``fun_target`` is given.

    Parameters
    ----------
    objective : Callable[[numpy.ndarray], float]
        The function to maximize.
    initial_mean : Sequence[float] | numpy.ndarray
        The starting point. Its length determines the dimension.
    initial_step_size : float
        The initial step size.
    **options
        Further fields of ``CMAESOptions``.

    Returns
    -------
    TerminationData
        The result of the run.
    """
    options.setdefault("fun_target", None)
    return fmin(objective, initial_mean, initial_step_size, mode=Mode.MAXIMIZE, **options)
