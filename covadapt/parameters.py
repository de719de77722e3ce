"""Constant strategy parameters derived once from validated options."""

import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from .options import CMAESOptions, Mode, Weights


@dataclass(frozen=True)
class TerminationParameters:
    """
    Thresholds of the termination criteria.

    Attributes
    ----------
    max_function_evals : int, optional
        The maximum number of objective function evaluations.
    max_generations : int, optional
        The maximum number of generations.
    max_time : float, optional
        The maximum run time in seconds.
    fun_target : float
        The internal target value, already negated for maximization. ``-inf`` if disabled.
    tol_fun : float
        The absolute tolerance on the range of recent function values.
    tol_fun_rel : float
        The tolerance relative to the overall improvement of the median function value.
    tol_fun_hist : float
        The tolerance on the range of recent best function values.
    tol_x : float
        The tolerance on the standard deviation in every coordinate.
    tol_x_up : float
        The maximum growth factor of the largest standard deviation.
    tol_condition_cov : float
        The maximum condition number of the covariance matrix.
    """

    max_function_evals: Optional[int]
    max_generations: Optional[int]
    max_time: Optional[float]
    fun_target: float
    tol_fun: float
    tol_fun_rel: float
    tol_fun_hist: float
    tol_x: float
    tol_x_up: float
    tol_condition_cov: float

    @classmethod
    def from_options(cls, options: CMAESOptions) -> "TerminationParameters":
        """
        Collect the termination thresholds from the options, filling in the defaults.

        Parameters
        ----------
        options : CMAESOptions
            The validated options.

        Returns
        -------
        TerminationParameters
            The termination thresholds.
        """
        if options.fun_target is None:
            fun_target = -math.inf
        elif options.mode == Mode.MAXIMIZE:
            fun_target = -options.fun_target
        else:
            fun_target = options.fun_target
        tol_x = options.tol_x if options.tol_x is not None else 1e-12 * options.initial_step_size
        return cls(
            max_function_evals=options.max_function_evals,
            max_generations=options.max_generations,
            max_time=options.max_time,
            fun_target=fun_target,
            tol_fun=options.tol_fun,
            tol_fun_rel=options.tol_fun_rel,
            tol_fun_hist=options.tol_fun_hist,
            tol_x=tol_x,
            tol_x_up=options.tol_x_up,
            tol_condition_cov=options.tol_condition_cov,
        )


@dataclass(frozen=True, eq=False)
class Parameters:
    """
    Immutable constants and strategy parameters of a CMA-ES run.

    Attributes
    ----------
    dim : int
        The number of dimensions in the search space.
    lambd : int
        The number of individuals sampled in each generation.
    mu : int
        The number of positive recombination weights.
    weights : numpy.ndarray
        The recombination weights of all ``lambd`` ranks (read-only).
    weights_policy : Weights
        The weight distribution the weights were computed with.
    mu_eff : float
        The variance effective selection mass of the positive weights.
    cm : float
        The learning rate for the mean.
    c_c : float
        The decay rate for the evolution path for the rank-one update of the covariance matrix.
    c_1 : float
        The learning rate for the rank-one update of the covariance matrix.
    c_mu : float
        The learning rate for the rank-mu update of the covariance matrix.
    c_sigma : float
        The decay rate for the step-size evolution path.
    d_sigma : float
        The damping of the step-size update.
    chi_n : float
        The expectation value of ||N(0,I)||.
    initial_sigma : float
        The initial step size.
    max_history_size : int
        The length of the function value histories.
    seed : int, optional
        The seed for the random number generator.
    termination : TerminationParameters
        The thresholds of the termination criteria.
    """

    dim: int
    lambd: int
    mu: int
    weights: np.ndarray
    weights_policy: Weights
    mu_eff: float
    cm: float
    c_c: float
    c_1: float
    c_mu: float
    c_sigma: float
    d_sigma: float
    chi_n: float
    initial_sigma: float
    max_history_size: int
    seed: Optional[int]
    termination: TerminationParameters

    @classmethod
    def from_options(cls, options: CMAESOptions) -> "Parameters":
        """
        Derive the strategy parameters from validated options.

        Parameters
        ----------
        options : CMAESOptions
            The options. Validated before any parameter is derived.

        Returns
        -------
        Parameters
            The derived parameters.

        Raises
        ------
        InvalidOptionsError
            If the options are invalid.
        """
        options.validate()
        dim = options.dimensions
        lambd = options.population_size
        mu = lambd // 2
        weights, mu_eff, c_c, c_1, c_mu = compute_weights(options.weights, mu, lambd, dim)
        weights.flags.writeable = False

        c_sigma, d_sigma = compute_step_size_rates(mu_eff, dim)
        max_history_size = options.max_history_size
        if max_history_size is None:
            max_history_size = 120 + int(math.ceil(30 * dim / lambd))

        return cls(
            dim=dim,
            lambd=lambd,
            mu=mu,
            weights=weights,
            weights_policy=options.weights,
            mu_eff=mu_eff,
            cm=options.cm,
            c_c=c_c,
            c_1=c_1,
            c_mu=c_mu,
            c_sigma=c_sigma,
            d_sigma=d_sigma,
            chi_n=expected_norm(dim),
            initial_sigma=options.initial_step_size,
            max_history_size=max_history_size,
            seed=options.seed,
            termination=TerminationParameters.from_options(options),
        )

    @property
    def positive_weights(self) -> np.ndarray:
        """The weights of the ``mu`` selected individuals, summing to one."""
        return self.weights[: self.mu]


def expected_norm(dim: int) -> float:
    """Approximate the expectation value of ||N(0,I)|| in ``dim`` dimensions."""
    return dim**0.5 * (1 - 1.0 / (4 * dim) + 1.0 / (21 * dim**2))


def compute_learning_rates(mu_eff: float, problem_dimension: int) -> Tuple[float, float, float]:
    """
    Compute the learning rates of the covariance matrix adaptation.

    Parameters
    ----------
    mu_eff : float
        The variance effective selection mass.
    problem_dimension : int
        The number of dimensions in the search space.

    Returns
    -------
    float
        The decay rate for evolution path for the rank-one update of the covariance matrix, ``c_c``.
    float
        The learning rate for the rank-one update of the covariance matrix update, ``c_1``.
    float
        The learning rate for the rank-mu update of the covariance matrix update, ``c_mu``.
    """
    c_c = (4 + mu_eff / problem_dimension) / (problem_dimension + 4 + 2 * mu_eff / problem_dimension)
    c_1 = 2 / ((problem_dimension + 1.3) ** 2 + mu_eff)
    c_mu = min(
        1 - c_1,
        2 * (mu_eff - 2 + (1 / mu_eff)) / ((problem_dimension + 2) ** 2 + mu_eff),
    )
    return c_c, c_1, c_mu


def compute_step_size_rates(mu_eff: float, problem_dimension: int) -> Tuple[float, float]:
    """
    Compute the step-size control parameters.

    Parameters
    ----------
    mu_eff : float
        The variance effective selection mass.
    problem_dimension : int
        The number of dimensions in the search space.

    Returns
    -------
    float
        The decay rate of the step-size evolution path, ``c_sigma``.
    float
        The damping of the step-size update, ``d_sigma``.
    """
    c_sigma = (mu_eff + 2) / (problem_dimension + mu_eff + 5)
    d_sigma = 1 + 2 * max(0, np.sqrt((mu_eff - 1) / (problem_dimension + 1)) - 1) + c_sigma
    return c_sigma, float(d_sigma)


def compute_weights(
    policy: Weights, mu: int, lambd: int, problem_dimension: int
) -> Tuple[np.ndarray, float, float, float, float]:
    """
    Compute the recombination weights of all ranks for the given weight distribution.

    Parameters
    ----------
    policy : Weights
        The weight distribution.
    mu : int
        The number of positive recombination weights.
    lambd : int
        The number of individuals considered for each generation.
    problem_dimension : int
        The number of dimensions in the search space.

    Returns
    -------
    numpy.ndarray
        The weights of all ``lambd`` ranks.
    float
        The variance effective selection mass, ``mu_eff``.
    float
        The decay rate for evolution path for the rank-one update of the covariance matrix, ``c_c``.
    float
        The learning rate for the rank-one update of the covariance matrix update, ``c_1``.
    float
        The learning rate for the rank-mu update of the covariance matrix update, ``c_mu``.
    """
    weights = np.zeros(lambd)
    if policy == Weights.UNIFORM:
        weights[:mu] = 1.0 / mu
        mu_eff = float(mu)
        c_c, c_1, c_mu = compute_learning_rates(mu_eff, problem_dimension)
        return weights, mu_eff, c_c, c_1, c_mu

    weights_preliminary = np.log((lambd + 1) / 2) - np.log(np.arange(1, lambd + 1))
    mu_eff = float(np.sum(weights_preliminary[:mu]) ** 2 / np.sum(weights_preliminary[:mu] ** 2))
    c_c, c_1, c_mu = compute_learning_rates(mu_eff, problem_dimension)
    weights[:mu] = weights_preliminary[:mu] / np.sum(weights_preliminary[:mu])

    if policy == Weights.NEGATIVE:
        negative = weights_preliminary[mu:]
        mu_eff_minus = np.sum(negative) ** 2 / np.sum(negative**2)
        alpha_mu_minus = 1 + c_1 / c_mu
        alpha_mu_eff_minus = 1 + 2 * mu_eff_minus / (mu_eff + 2)
        alpha_pos_def_minus = (1 - c_1 - c_mu) / (problem_dimension * c_mu)
        # Total negative mass, bounded to keep the covariance update positive definite.
        weights[mu:] = min(alpha_mu_minus, alpha_mu_eff_minus, alpha_pos_def_minus) * negative / np.sum(np.abs(negative))
    return weights, mu_eff, c_c, c_1, c_mu
