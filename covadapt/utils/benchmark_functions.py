"""Benchmark function module."""
import argparse
import logging
from typing import Callable, Tuple

import numpy as np

from ..options import Weights


def sphere(x: np.ndarray) -> float:
    """
    Sphere function: continuous, convex, separable, differentiable, unimodal.

    Input domain: -5.12 <= x_i <= 5.12, i = 1,...,N
    Global minimum 0 at (x_i)_N = (0)_N

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    return float(np.sum(np.asarray(x) ** 2))


def ellipsoid(x: np.ndarray) -> float:
    """
    Ellipsoid function: continuous, convex, separable, differentiable, unimodal, ill-conditioned.

    The axis scales grow geometrically from 1 to 1e3, so the Hessian has condition number 1e6. The covariance matrix
    has to learn these scales to make progress.

    Input domain: -5 <= x_i <= 5, i = 1,...,N
    Global minimum 0 at (x_i)_N = (0)_N

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    x = np.asarray(x)
    n = len(x)
    if n == 1:
        return float(x[0] ** 2)
    scales = 1e6 ** (np.arange(n) / (n - 1))
    return float(np.sum(scales * x**2))


def rosenbrock(x: np.ndarray) -> float:
    """
    Rosenbrock function. This function has a narrow minimum inside a parabola-shaped valley.

    Input domain: -2.048 <= x_i <= 2.048, i = 1,...,N
    Global minimum 0 at (x_i)_N = (1)_N

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    x = np.asarray(x)
    return float(np.sum(100 * (x[:-1] ** 2 - x[1:]) ** 2 + (1 - x[:-1]) ** 2))


def step(x: np.ndarray) -> float:
    """
    Step function.

    This function represents the problem of flat surfaces. Plateaus pose obstacles to optimizers as they lack
    information about which direction is favorable.

    Input domain: -5.12 <= x_i <= 5.12, i = 1,...,N
    Global minimum -5N at (x_i)_N <= (-5)_N

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    return float(np.sum(np.asarray(x).astype(int), dtype=float))


def rastrigin(x: np.ndarray) -> float:
    """
    Rastrigin function: continuous, non-convex, separable, differentiable, multimodal.

    A non-linear and highly multimodal function. The local minima are located at a rectangular grid with size 1.
    Their function values increase with the distance to the global minimum.

    Input domain: -5.12 <= x_i <= 5.12, i = 1,...,N
    Global minimum 0 at (x_i)_N = (0)_N

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    a = 10.0
    x = np.asarray(x)
    return float(a * len(x) + np.sum(x**2 - a * np.cos(2 * np.pi * x)))


def griewank(x: np.ndarray) -> float:
    """
    Griewank function.

    Griewank's product creates codependent subpopulations, while the summation produces a parabola. Its local optima
    lie above parabola level but decrease with increasing dimensions.

    Input domain: -600 <= x_i <= 600, i = 1,...,N
    Global minimum 0 at (x_i)_N = (0)_N

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    x = np.asarray(x)
    idx = np.arange(1, len(x) + 1)
    return float(1 + 1.0 / 4000 * np.sum(x**2) - np.prod(np.cos(x / np.sqrt(idx))))


def schwefel(x: np.ndarray) -> float:
    """
    Schwefel function: continuous, non-convex, separable, multimodal.

    This function has a second-best minimum far away from the global optimum.

    Input domain: -500 <= x_i <= 500, i = 1,...,N
    Global minimum 0 at (x_i)_N = (420.968746)_N

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    v = 418.982887
    x = np.asarray(x)
    return float(v * len(x) - np.sum(x * np.sin(np.sqrt(np.abs(x)))))


def bisphere(x: np.ndarray) -> float:
    """
    Lunacek's double-sphere benchmark function.

    Lunacek, M., Whitley, D., & Sutton, A. (2008, September).
    The impact of global structure on search.
    In International Conference on Parallel Problem Solving from Nature
    (pp. 498-507). Springer, Berlin, Heidelberg.

    The minimum of two quadratic functions, each creating a single funnel in the search space.

    Input domain: -5.12 <= x_i <= 5.12, i = 1,...,N
    Global minimum 0 at (x_i)_N = (µ_1)_N with µ_1 = 2.5

    Parameters
    ----------
    x : numpy.ndarray
        The point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    x = np.asarray(x)
    n = len(x)
    d = 1
    s = 1 - np.sqrt(1 / (2 * np.sqrt(n + 20) - 8.2))
    mu1 = 2.5
    mu2 = -np.sqrt((mu1**2 - d) / s)
    return float(min(np.sum((x - mu1) ** 2), d * n + s * np.sum((x - mu2) ** 2)))


def himmelblau(x: np.ndarray) -> float:
    """
    Himmelblau function: continuous, non-convex, non-separable, differentiable, multimodal.

    Input domain: -6 <= x, y <= 6
    Global minimum 0 at (x, y) = (3, 2)

    Parameters
    ----------
    x : numpy.ndarray
        The two-dimensional point to evaluate.

    Returns
    -------
    float
        The function value.
    """
    return float((x[0] ** 2 + x[1] - 11) ** 2 + (x[0] + x[1] ** 2 - 7) ** 2)


def get_function_search_space(fname: str) -> Tuple[Callable[[np.ndarray], float], int, Tuple[float, float]]:
    """
    Get function, dimension, and search-space interval from function name.

    Parameters
    ----------
    fname : str
        The function name.

    Returns
    -------
    Callable[[numpy.ndarray], float]
        The callable function.
    int
        The number of dimensions.
    Tuple[float, float]
        The search-space interval in every coordinate.

    Raises
    ------
    ValueError
        If the function name is unknown.
    """
    search_spaces = {
        "sphere": (sphere, 2, (-5.12, 5.12)),
        "ellipsoid": (ellipsoid, 10, (-5.0, 5.0)),
        "rosenbrock": (rosenbrock, 2, (-2.048, 2.048)),
        "step": (step, 5, (-5.12, 5.12)),
        "rastrigin": (rastrigin, 20, (-5.12, 5.12)),
        "griewank": (griewank, 10, (-600.0, 600.0)),
        "schwefel": (schwefel, 10, (-500.0, 500.0)),
        "bisphere": (bisphere, 30, (-5.12, 5.12)),
        "himmelblau": (himmelblau, 2, (-6.0, 6.0)),
    }
    if fname not in search_spaces:
        raise ValueError(f"Function {fname} undefined...exiting")
    return search_spaces[fname]


def parse_arguments() -> argparse.Namespace:
    """
    Set up argument parser for CMA-ES optimization of simple mathematical functions.

    Returns
    -------
    Namespace
        The namespace of all parsed arguments.
    """
    parser = argparse.ArgumentParser(
        prog="Simple CMA-ES example",
        description="Set up and run a CMA-ES optimization of mathematical functions.",
    )
    parser.add_argument(  # Function to optimize
        "--function",
        type=str,
        choices=[
            "sphere",
            "ellipsoid",
            "rosenbrock",
            "step",
            "rastrigin",
            "griewank",
            "schwefel",
            "bisphere",
            "himmelblau",
        ],
        default="sphere",
    )
    parser.add_argument("--dimensions", type=int, default=None)  # Overrides the function's default dimension.
    parser.add_argument("--seed", type=int, default=0)  # Seed for the random number generator
    parser.add_argument("--pop_size", type=int, default=None)  # Population size lambda
    parser.add_argument(
        "--weights", type=str, choices=[w.value for w in Weights], default=Weights.NEGATIVE.value
    )  # Recombination weights
    parser.add_argument("--step_size", type=float, default=None)  # Initial step size
    parser.add_argument("--max_evals", type=int, default=100000)  # Maximum number of function evaluations
    parser.add_argument("--max_generations", type=int, default=None)
    parser.add_argument("--max_time", type=float, default=None)  # Time limit in seconds
    parser.add_argument("--print_gap_evals", type=int, default=500)  # Evaluations between progress lines
    parser.add_argument(
        "--restart", type=str, choices=["none", "local", "ipop", "bipop"], default="none"
    )  # Restart strategy
    parser.add_argument("--max_runs", type=int, default=None)  # Maximum number of restarted runs
    parser.add_argument("--logging_level", type=int, default=logging.INFO)
    parser.add_argument("--log_file", type=str, default=None)

    return parser.parse_args()
