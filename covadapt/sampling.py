"""Sampling and evaluation of one generation of candidate points."""

import logging
import math
from concurrent.futures import Executor
from dataclasses import dataclass
from typing import TYPE_CHECKING, Callable, List, Optional

import numpy as np

if TYPE_CHECKING:
    from .state import State

log = logging.getLogger(__name__)


class InvalidFunctionValueError(ArithmeticError):
    """Raised when the objective function returns a non-finite value."""


@dataclass(frozen=True, eq=False)
class EvaluatedPoint:
    """
    A sampled candidate point together with its objective function value.

    Attributes
    ----------
    point : numpy.ndarray
        The candidate point ``x = mean + sigma * z``.
    z : numpy.ndarray
        The direction from the mean before scaling by the step size, a sample of N(0, C).
    value : float
        The objective function value of ``point``.
    """

    point: np.ndarray
    z: np.ndarray
    value: float


class Sampler:
    """
    Draw points from the search distribution and evaluate them.

    Attributes
    ----------
    objective : Callable[[numpy.ndarray], float]
        The objective function.
    rng : numpy.random.Generator
        The random number generator.
    executor : concurrent.futures.Executor, optional
        If given, the points of a generation are evaluated through ``executor.map``.
    function_evals : int
        The number of objective function evaluations performed so far.
    """

    def __init__(
        self,
        objective: Callable[[np.ndarray], float],
        rng: np.random.Generator,
        executor: Optional[Executor] = None,
    ) -> None:
        """
        Initialize the sampler.

        Parameters
        ----------
        objective : Callable[[numpy.ndarray], float]
            The objective function mapping a point to a scalar.
        rng : numpy.random.Generator
            The random number generator.
        executor : concurrent.futures.Executor, optional
            The executor used to evaluate the points of a generation concurrently. Default is sequential evaluation.
        """
        self.objective = objective
        self.rng = rng
        self.executor = executor
        self.function_evals = 0

    def sample(self, state: "State", population_size: int) -> List[EvaluatedPoint]:
        """
        Sample and evaluate one generation of points.

        Parameters
        ----------
        state : State
            The current search state. Only read.
        population_size : int
            The number of points to sample.

        Returns
        -------
        List[EvaluatedPoint]
            The evaluated points in sampling order.

        Raises
        ------
        InvalidFunctionValueError
            If the objective function returned a non-finite value for any point.
        PosDefCovError
            If the covariance matrix cannot be decomposed.
        """
        decomposition = state.cov.decomposition()
        # Freeze the distribution for this generation.
        mean = state.mean.copy()
        sigma = state.sigma

        random_vectors = self.rng.standard_normal((population_size, state.dim))
        # Rows are samples of N(0, C): z = B * D * z0
        zs = (random_vectors * decomposition.sqrt_eigenvalues) @ decomposition.eigenvectors.T
        points = mean + sigma * zs
        zs.flags.writeable = False
        points.flags.writeable = False

        values = self._evaluate(list(points))
        self.function_evals += population_size

        invalid = [i for i, value in enumerate(values) if not math.isfinite(value)]
        if invalid:
            log.warning(f"Objective function returned non-finite values {[values[i] for i in invalid]}.")
            raise InvalidFunctionValueError(f"Objective function returned non-finite value at {points[invalid[0]]}.")

        return [EvaluatedPoint(point, z, value) for point, z, value in zip(points, zs, values)]

    def _evaluate(self, points: List[np.ndarray]) -> List[float]:
        """Evaluate each point exactly once."""
        if self.executor is not None:
            return [float(value) for value in self.executor.map(self.objective, points)]
        return [float(self.objective(point)) for point in points]
