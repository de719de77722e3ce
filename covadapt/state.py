"""The mutable search distribution of a CMA-ES run and its per-generation update."""

import logging
from typing import Sequence

import numpy as np

from .matrix import CovarianceMatrix
from .parameters import Parameters
from .sampling import EvaluatedPoint

log = logging.getLogger(__name__)


def active_weight(weight: float, z: np.ndarray, inverse_sqrt: np.ndarray) -> float:
    """
    Rescale a recombination weight for the rank-mu covariance update.

    Non-negative weights are kept. Negative weights are multiplied by ``N / ||C^-1/2 z||^2`` so that individuals far
    away from the mean in Mahalanobis distance cannot make the covariance matrix indefinite.

    Parameters
    ----------
    weight : float
        The recombination weight of the individual's rank.
    z : numpy.ndarray
        The individual's displacement from the mean divided by the step size, ``(x - mean) / sigma``.
    inverse_sqrt : numpy.ndarray
        C^-1/2 of the covariance matrix the individual was sampled from.

    Returns
    -------
    float
        The weight to use in the rank-mu update.
    """
    if weight >= 0:
        return weight
    whitened_norm_squared = float(np.sum((inverse_sqrt @ z) ** 2))
    return weight * len(z) / whitened_norm_squared


class State:
    """
    The search distribution: mean, covariance matrix, step size, and the two evolution paths.

    Attributes
    ----------
    mean : numpy.ndarray
        The distribution's mean.
    cov : CovarianceMatrix
        The covariance matrix with its cached decomposition.
    sigma : float
        The step size.
    path_c : numpy.ndarray
        The evolution path for the rank-one update of the covariance matrix.
    path_sigma : numpy.ndarray
        The conjugate evolution path for the step-size adaptation.
    generation : int
        The number of completed updates.

    Methods
    -------
    update()
        Adapt the distribution to one ranked generation of evaluated points.
    """

    def __init__(self, mean: np.ndarray, sigma: float) -> None:
        """
        Initialize the search distribution.

        Parameters
        ----------
        mean : numpy.ndarray
            The initial mean.
        sigma : float
            The initial step size.
        """
        self.mean = np.array(mean, dtype=float).ravel()
        self.cov = CovarianceMatrix(len(self.mean))
        self.sigma = float(sigma)
        self.path_c = np.zeros(len(self.mean))
        self.path_sigma = np.zeros(len(self.mean))
        self.generation = 0

    @property
    def dim(self) -> int:
        """The number of dimensions in the search space."""
        return len(self.mean)

    @property
    def axis_ratio(self) -> float:
        """The ratio of the largest to the smallest principal standard deviation."""
        return self.cov.axis_ratio

    def update(self, current_function_evals: int, parameters: Parameters, individuals: Sequence[EvaluatedPoint]) -> None:
        """
        Update mean, evolution paths, covariance matrix, and step size from one generation.

        The new covariance matrix is decomposed before anything is committed. Nothing is committed if either the
        current or the new covariance matrix cannot be decomposed.

        Parameters
        ----------
        current_function_evals : int
            The number of function evaluations so far.
        parameters : Parameters
            The strategy parameters.
        individuals : Sequence[EvaluatedPoint]
            The generation's points, sorted by ascending function value.

        Raises
        ------
        PosDefCovError
            If the current or the new covariance matrix cannot be decomposed.
        """
        inverse_sqrt = self.cov.inverse_sqrt
        dim = parameters.dim
        zs = np.array([ind.z for ind in individuals])

        # Update mean with positive weights only.
        y_w = parameters.positive_weights @ zs[: parameters.mu]
        new_mean = self.mean + parameters.cm * self.sigma * y_w

        # Step-size evolution path, whitened with C^-1/2 from before the move.
        c_sigma = parameters.c_sigma
        path_sigma = (1 - c_sigma) * self.path_sigma + np.sqrt(c_sigma * (2 - c_sigma) * parameters.mu_eff) * (
            inverse_sqrt @ y_w
        )
        norm_path_sigma = np.linalg.norm(path_sigma)

        # Turn off rank-one accumulation when sigma increases quickly.
        h_sig = float(
            norm_path_sigma / np.sqrt(1 - (1 - c_sigma) ** (2 * (self.generation + 1)))
            < (1.4 + 2 / (dim + 1)) * parameters.chi_n
        )
        c_c = parameters.c_c
        path_c = (1 - c_c) * self.path_c + h_sig * np.sqrt(c_c * (2 - c_c) * parameters.mu_eff) * y_w

        # Guarantee positive definiteness.
        weights_circle = np.array([active_weight(w_i, z, inverse_sqrt) for w_i, z in zip(parameters.weights, zs)])
        c_1, c_mu = parameters.c_1, parameters.c_mu
        # Compensate the variance loss from switching off the rank-one update.
        delta_h_sig = (1 - h_sig) * c_c * (2 - c_c)
        new_cov = (
            (1 + c_1 * delta_h_sig - c_1 - c_mu * np.sum(parameters.weights)) * self.cov.cov
            + c_1 * np.outer(path_c, path_c)
            + c_mu * (weights_circle * zs.T) @ zs
        )

        candidate = CovarianceMatrix(dim)
        candidate.set_cov(new_cov, decompose=True)

        sigma = self.sigma * np.exp((c_sigma / parameters.d_sigma) * (norm_path_sigma / parameters.chi_n - 1))

        self.mean = new_mean
        self.path_sigma = path_sigma
        self.path_c = path_c
        self.sigma = float(sigma)
        self.cov = candidate
        self.generation += 1
        log.debug(
            f"Generation {self.generation}: sigma={self.sigma:.3e}, |p_sigma|={norm_path_sigma:.3e}, h_sig={bool(h_sig)}, "
            f"{current_function_evals} evaluations"
        )
