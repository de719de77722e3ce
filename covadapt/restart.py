"""Restart strategies running several CMA-ES instances with varying population sizes."""

import logging
import math
import random
import time
from concurrent.futures import Executor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Optional, Tuple

import numpy as np

from .cmaes import Individual
from .options import CMAESOptions, InvalidOptionsError, InvalidOptionsReason, Mode, default_population_size
from .termination import TerminationReason

log = logging.getLogger(__name__)


class RestartStrategy(Enum):
    """
    How the settings of consecutive runs are chosen.

    ``LOCAL`` restarts with the default population size and step size from a new random initial mean.
    ``IPOP`` doubles the population size for every restart.
    ``BIPOP`` alternates between a regime of doubling large populations and a regime of small populations with
    randomly reduced step sizes, spending roughly the same number of function evaluations in each.
    """

    LOCAL = "local"
    IPOP = "ipop"
    BIPOP = "bipop"


@dataclass
class RestartOptions:
    """
    Settings of a restarted CMA-ES optimization.

    At least one of ``max_function_evals``, ``max_time``, and ``max_runs`` must be set.

    Attributes
    ----------
    dimensions : int
        The number of dimensions of the search space.
    search_range : Tuple[float, float]
        The interval in every coordinate from which initial means are drawn uniformly.
    strategy : RestartStrategy
        The restart strategy. Default is ``RestartStrategy.BIPOP``.
    max_function_evals : int, optional
        The total number of function evaluations over all runs.
    max_time : float, optional
        The total run time in seconds over all runs.
    max_runs : int, optional
        The maximum number of runs.
    fun_target : float, optional
        The objective function value that ends the optimization once reached. Default is 1e-12.
    mode : Mode
        Whether to minimize or maximize. Default is ``Mode.MINIMIZE``.
    seed : int, optional
        The seed for choosing initial means, run settings, and the seeds of the individual runs.
    initial_step_size : float, optional
        The default initial step size of a run. Default is ``0.2 * (high - low)`` of the search range.
    run_options : Dict[str, Any]
        Further ``CMAESOptions`` fields passed to every run, e.g., tolerances.
    """

    dimensions: int
    search_range: Tuple[float, float]
    strategy: RestartStrategy = RestartStrategy.BIPOP
    max_function_evals: Optional[int] = None
    max_time: Optional[float] = None
    max_runs: Optional[int] = None
    fun_target: Optional[float] = 1e-12
    mode: Mode = Mode.MINIMIZE
    seed: Optional[int] = None
    initial_step_size: Optional[float] = None
    run_options: Dict[str, Any] = field(default_factory=dict)

    def validate(self) -> None:
        """
        Check the options for consistency.

        Raises
        ------
        InvalidOptionsError
            If the number of dimensions or the initial step size is invalid.
        ValueError
            If the search range is empty or the optimization is unbounded.
        """
        if self.dimensions < 1:
            raise InvalidOptionsError(InvalidOptionsReason.DIMENSIONS)
        low, high = self.search_range
        if not low < high:
            raise ValueError(f"Search range ({low}, {high}) is empty.")
        if self.initial_step_size is not None and not self.initial_step_size > 0:
            raise InvalidOptionsError(InvalidOptionsReason.INITIAL_STEP_SIZE)
        if self.max_function_evals is None and self.max_time is None and self.max_runs is None:
            raise ValueError("At least one of max_function_evals, max_time, and max_runs has to be set.")


@dataclass(frozen=True)
class RestartResults:
    """
    Result of a restarted optimization.

    Attributes
    ----------
    best : Individual, optional
        The best individual over all runs.
    function_evals : int
        The total number of function evaluations.
    runs : int
        The number of runs performed.
    reasons : List[FrozenSet[TerminationReason]]
        The termination reasons of each run.
    """

    best: Optional[Individual]
    function_evals: int
    runs: int
    reasons: List[FrozenSet[TerminationReason]]


class Restarter:
    """
    Run CMA-ES repeatedly according to a restart strategy.

    Attributes
    ----------
    options : RestartOptions
        The restart settings.
    rng : random.Random
        The separate random number generator for choosing run settings.

    Methods
    -------
    run()
        Optimize the objective function with restarts.
    """

    def __init__(self, options: RestartOptions) -> None:
        """
        Validate the options and set up the restarter.

        Parameters
        ----------
        options : RestartOptions
            The restart settings.

        Raises
        ------
        InvalidOptionsError
            If the number of dimensions or the initial step size is invalid.
        ValueError
            If the search range is empty or the optimization is unbounded.
        """
        options.validate()
        self.options = options
        self.rng = random.Random(options.seed)
        low, high = options.search_range
        self.default_population_size = options.run_options.get("population_size") or default_population_size(
            options.dimensions
        )
        self.default_step_size = options.initial_step_size if options.initial_step_size is not None else 0.2 * (high - low)
        self._large_runs = 0
        self._large_evals = 0
        self._small_evals = 0

    def _next_settings(self, run: int) -> Tuple[int, float, bool]:
        """
        Choose population size and initial step size of the next run.

        Parameters
        ----------
        run : int
            The index of the next run.

        Returns
        -------
        int
            The population size.
        float
            The initial step size.
        bool
            Whether the run belongs to the large-population regime.
        """
        strategy = self.options.strategy
        if strategy == RestartStrategy.LOCAL:
            return self.default_population_size, self.default_step_size, True
        if strategy == RestartStrategy.IPOP:
            return self.default_population_size * 2**run, self.default_step_size, True

        # BIPOP: the first run and whichever regime used fewer evaluations so far.
        if run == 0 or self._small_evals >= self._large_evals:
            if run > 0:
                self._large_runs += 1
            return self.default_population_size * 2**self._large_runs, self.default_step_size, True

        u = self.rng.random()
        large_population_size = self.default_population_size * 2**self._large_runs
        population_size = int(
            math.floor(self.default_population_size * (0.5 * large_population_size / self.default_population_size) ** (u**2))
        )
        return max(4, population_size), self.default_step_size * 10 ** (-2 * u), False

    def run(self, objective: Callable[[np.ndarray], float], executor: Optional[Executor] = None) -> RestartResults:
        """
        Optimize the objective function, restarting until the target is reached or the budget is spent.

        Parameters
        ----------
        objective : Callable[[numpy.ndarray], float]
            The objective function.
        executor : concurrent.futures.Executor, optional
            The executor used to evaluate the points of each generation concurrently.

        Returns
        -------
        RestartResults
            The best individual, the total number of evaluations, and the termination reasons of all runs.
        """
        options = self.options
        low, high = options.search_range
        sign = -1.0 if options.mode == Mode.MAXIMIZE else 1.0
        start_time = time.monotonic()
        function_evals = 0
        best: Optional[Individual] = None
        reasons: List[FrozenSet[TerminationReason]] = []

        run = 0
        while options.max_runs is None or run < options.max_runs:
            remaining_evals = None
            if options.max_function_evals is not None:
                remaining_evals = options.max_function_evals - function_evals
                if remaining_evals <= 0:
                    break
            remaining_time = None
            if options.max_time is not None:
                remaining_time = options.max_time - (time.monotonic() - start_time)
                if remaining_time <= 0:
                    break

            population_size, step_size, large = self._next_settings(run)
            run_options = dict(options.run_options)
            run_options.update(
                dimensions=options.dimensions,
                initial_mean=[self.rng.uniform(low, high) for _ in range(options.dimensions)],
                initial_step_size=step_size,
                population_size=population_size,
                mode=options.mode,
                fun_target=options.fun_target,
                max_function_evals=remaining_evals,
                max_time=remaining_time,
                seed=self.rng.randint(0, np.iinfo(np.int32).max),
            )
            log.info(
                f"Run {run}: population size {population_size}, initial step size {step_size:.3e} "
                f"({options.strategy.value}{', large regime' if large else ', small regime'})."
            )
            cmaes = CMAESOptions(**run_options).build(objective, executor=executor)
            data = cmaes.run()

            function_evals += cmaes.function_evals
            if large:
                self._large_evals += cmaes.function_evals
            else:
                self._small_evals += cmaes.function_evals
            reasons.append(data.reasons)
            run += 1

            if data.overall_best is not None and (best is None or sign * data.overall_best.value < sign * best.value):
                best = data.overall_best
            log.info(
                f"Run {run - 1} finished after {cmaes.function_evals} evaluations with "
                f"{sorted(str(r) for r in data.reasons)}, best value so far {best.value if best else None}."
            )
            if TerminationReason.FUN_TARGET in data.reasons:
                break

        return RestartResults(best=best, function_evals=function_evals, runs=run, reasons=reasons)
