"""Construction options for a CMA-ES run."""

import math
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Sequence, Union

import numpy as np

if TYPE_CHECKING:
    from .cmaes import CMAES


class Weights(Enum):
    """
    The distribution of recombination weights over the ranked population.

    ``POSITIVE`` assigns decreasing weights to the selected half of the population and zero to the rest.
    ``NEGATIVE`` additionally assigns negative weights to the non-selected individuals (active CMA-ES).
    ``UNIFORM`` assigns equal weights to the selected individuals and zero to the rest.
    """

    POSITIVE = "positive"
    NEGATIVE = "negative"
    UNIFORM = "uniform"


class Mode(Enum):
    """Whether the objective function is minimized or maximized."""

    MINIMIZE = "minimize"
    MAXIMIZE = "maximize"


class InvalidOptionsReason(Enum):
    """The specific reason why a set of options was rejected."""

    DIMENSIONS = "The number of dimensions must be at least one."
    MEAN_DIMENSION_MISMATCH = "The length of the initial mean does not match the number of dimensions."
    POPULATION_SIZE = "The population size must be at least four."
    INITIAL_STEP_SIZE = "The initial step size must be positive and finite."
    CM = "The mean learning rate must lie in (0, 1]."


class InvalidOptionsError(ValueError):
    """
    Raised when CMA-ES options fail validation.

    Attributes
    ----------
    reason : InvalidOptionsReason
        The specific reason for rejecting the options.
    """

    def __init__(self, reason: InvalidOptionsReason) -> None:
        """
        Initialize the error with the reason for the rejection.

        Parameters
        ----------
        reason : InvalidOptionsReason
            The specific reason for rejecting the options.
        """
        super().__init__(reason.value)
        self.reason = reason


@dataclass
class CMAESOptions:
    """
    Settings of a CMA-ES run, validated once before any search state is created.

    Attributes
    ----------
    dimensions : int
        The number of dimensions of the search space, ``N``.
    initial_mean : numpy.ndarray, optional
        The initial mean of the search distribution, i.e., a first guess at the solution. Default is the origin.
    initial_step_size : float
        The initial step size ``sigma0``, i.e., a first guess at how far the solution is from the initial mean.
        Default is 0.5.
    population_size : int, optional
        The number of points sampled per generation, ``lambda``. Default is ``4 + floor(3 * ln(N))``.
    weights : Weights
        The recombination weight distribution. Default is ``Weights.NEGATIVE``.
    cm : float
        The learning rate for the mean. Can be set lower than 1 for noisy functions. Default is 1.0.
    mode : Mode
        Whether to minimize or maximize the objective function. Default is ``Mode.MINIMIZE``.
    fun_target : float, optional
        The objective function value to reach. ``None`` disables the target. Default is 1e-12.
    tol_fun : float
        The absolute tolerance on the range of recent function values. Default is 1e-12.
    tol_fun_rel : float
        The tolerance on the range of recent function values relative to the overall improvement of the median
        function value. Default is 0.0, i.e., disabled.
    tol_fun_hist : float
        The tolerance on the range of recent best function values. Default is 1e-12.
    tol_x : float, optional
        The tolerance on the standard deviation in every coordinate. Default is ``1e-12 * initial_step_size``.
    tol_x_up : float
        The maximum factor by which the largest standard deviation may grow relative to the initial step size.
        Default is 1e8.
    tol_condition_cov : float
        The maximum condition number of the covariance matrix. Default is 1e14.
    max_function_evals : int, optional
        The maximum number of objective function evaluations.
    max_generations : int, optional
        The maximum number of generations.
    max_time : float, optional
        The maximum wall-clock run time in seconds, polled once per generation.
    max_history_size : int, optional
        The length of the best and median function value histories. Default is ``120 + ceil(30 * N / lambda)``.
    seed : int, optional
        The seed for the random number generator. A random seed is used if not set.
    print_gap_evals : int, optional
        The minimum number of function evaluations between two progress log lines. Default is None, i.e., no
        progress logging.
    """

    dimensions: int
    initial_mean: Optional[Union[Sequence[float], np.ndarray]] = None
    initial_step_size: float = 0.5
    population_size: Optional[int] = None
    weights: Weights = Weights.NEGATIVE
    cm: float = 1.0
    mode: Mode = Mode.MINIMIZE
    fun_target: Optional[float] = 1e-12
    tol_fun: float = 1e-12
    tol_fun_rel: float = 0.0
    tol_fun_hist: float = 1e-12
    tol_x: Optional[float] = None
    tol_x_up: float = 1e8
    tol_condition_cov: float = 1e14
    max_function_evals: Optional[int] = None
    max_generations: Optional[int] = None
    max_time: Optional[float] = None
    max_history_size: Optional[int] = None
    seed: Optional[int] = None
    print_gap_evals: Optional[int] = None

    def __post_init__(self) -> None:
        """Fill in the dimension-dependent defaults."""
        if self.initial_mean is None:
            self.initial_mean = np.zeros(max(self.dimensions, 0))
        else:
            self.initial_mean = np.asarray(self.initial_mean, dtype=float).ravel()
        if self.population_size is None and self.dimensions >= 1:
            self.population_size = default_population_size(self.dimensions)

    def validate(self) -> None:
        """
        Check the options for consistency.

        Raises
        ------
        InvalidOptionsError
            If the options are invalid. The first failing check determines the reason.
        """
        if self.dimensions < 1:
            raise InvalidOptionsError(InvalidOptionsReason.DIMENSIONS)
        if len(self.initial_mean) != self.dimensions:
            raise InvalidOptionsError(InvalidOptionsReason.MEAN_DIMENSION_MISMATCH)
        if self.population_size is None or self.population_size < 4:
            raise InvalidOptionsError(InvalidOptionsReason.POPULATION_SIZE)
        if not (math.isfinite(self.initial_step_size) and self.initial_step_size > 0):
            raise InvalidOptionsError(InvalidOptionsReason.INITIAL_STEP_SIZE)
        if not 0 < self.cm <= 1:
            raise InvalidOptionsError(InvalidOptionsReason.CM)

    def build(self, objective: Callable[[np.ndarray], float], executor: Optional[Executor] = None) -> "CMAES":
        """
        Validate the options and create a CMA-ES instance.

        Parameters
        ----------
        objective : Callable[[numpy.ndarray], float]
            The objective function.
        executor : concurrent.futures.Executor, optional
            The executor to evaluate the points of a generation with. Default is sequential evaluation.

        Returns
        -------
        CMAES
            The ready-to-run optimizer.

        Raises
        ------
        InvalidOptionsError
            If the options are invalid.
        """
        from .cmaes import CMAES

        return CMAES(objective, self, executor=executor)


def default_population_size(dimensions: int) -> int:
    """Return the default population size ``4 + floor(3 * ln(N))``."""
    return 4 + int(np.floor(3 * np.log(dimensions)))
