"""Symmetric covariance matrix with a lazily recomputed eigendecomposition."""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

log = logging.getLogger(__name__)


class PosDefCovError(ArithmeticError):
    """Raised when the covariance matrix is not positive definite or cannot be decomposed."""


@dataclass(frozen=True, eq=False)
class Decomposition:
    """
    Eigendecomposition C = B * D^2 * B^T of a covariance matrix.

    Attributes
    ----------
    eigenvectors : numpy.ndarray
        The B matrix, one eigenvector per column, ordered by ascending eigenvalue.
    sqrt_eigenvalues : numpy.ndarray
        The diagonal of the D matrix, i.e., the square roots of the eigenvalues in ascending order.
    inverse_sqrt : numpy.ndarray
        Square root of the inverse of the covariance matrix: C^-1/2 = B*D^(-1)*B^T
    """

    eigenvectors: np.ndarray
    sqrt_eigenvalues: np.ndarray
    inverse_sqrt: np.ndarray


class CovarianceMatrix:
    """
    Covariance matrix of the search distribution.

    The eigendecomposition is cached. Every write marks the cache dirty and the next access that needs the
    decomposition recomputes it, so a decomposition never belongs to an outdated matrix.

    Attributes
    ----------
    dimension : int
        The number of rows and columns.

    Methods
    -------
    set_cov()
        Store new matrix values and invalidate the cached decomposition.
    decomposition()
        Return the eigendecomposition, recomputing it if the cache is dirty.
    """

    def __init__(self, dimension: int) -> None:
        """
        Initialize the covariance matrix as the identity.

        Parameters
        ----------
        dimension : int
            The number of dimensions in the search space.
        """
        self.dimension = dimension
        self._cov = np.eye(dimension)
        self._cov.flags.writeable = False
        identity = np.eye(dimension)
        identity.flags.writeable = False
        ones = np.ones(dimension)
        ones.flags.writeable = False
        # ``None`` marks a dirty cache.
        self._decomposition: Optional[Decomposition] = Decomposition(identity, ones, identity)

    @property
    def cov(self) -> np.ndarray:
        """The current matrix values (read-only)."""
        return self._cov

    @property
    def is_dirty(self) -> bool:
        """Whether the cached decomposition has to be recomputed before its next use."""
        return self._decomposition is None

    def set_cov(self, new_cov: np.ndarray, decompose: bool = False) -> None:
        """
        Store new matrix values.

        Parameters
        ----------
        new_cov : numpy.ndarray
            The new covariance matrix. Only the upper triangle is used, symmetry is enforced.
        decompose : bool, optional
            If True, recompute the decomposition right away instead of on next use. Default is False.

        Raises
        ------
        PosDefCovError
            If ``decompose`` is True and the new matrix is not positive definite.
        """
        new_cov = np.asarray(new_cov, dtype=float)
        if new_cov.shape != (self.dimension, self.dimension):
            raise ValueError(f"Expected a {self.dimension}x{self.dimension} matrix, got shape {new_cov.shape}.")
        # Enforce symmetry.
        cov = np.triu(new_cov) + np.triu(new_cov, 1).T
        cov.flags.writeable = False
        self._cov = cov
        self._decomposition = None
        if decompose:
            self.decomposition()

    def decomposition(self) -> Decomposition:
        """
        Return the eigendecomposition of the current matrix, recomputing it on first use after a write.

        Returns
        -------
        Decomposition
            The eigendecomposition of the current matrix.

        Raises
        ------
        PosDefCovError
            If the eigensolver does not converge or the matrix is not positive definite. The cache stays dirty.
        """
        if self._decomposition is None:
            self._decomposition = self._decompose()
        return self._decomposition

    def _decompose(self) -> Decomposition:
        """Eigen-decomposition of the covariance matrix into eigenvalues and eigenvectors (columns of B)."""
        if not np.all(np.isfinite(self._cov)):
            raise PosDefCovError("Covariance matrix contains non-finite values.")
        try:
            eigenvalues, eigenvectors = np.linalg.eigh(self._cov)
        except np.linalg.LinAlgError as e:
            raise PosDefCovError(f"Eigendecomposition of the covariance matrix did not converge: {e}") from e
        if not np.all(np.isfinite(eigenvalues)) or np.any(eigenvalues <= 0):
            log.debug(f"Non-positive eigenvalues: {eigenvalues}")
            raise PosDefCovError("Covariance matrix not positive definite.")

        # Sort eigenvalues in ascending order.
        indices_eig = np.argsort(eigenvalues)
        sqrt_eigenvalues = eigenvalues[indices_eig] ** 0.5
        eigenvectors = eigenvectors[:, indices_eig]
        inverse_sqrt = eigenvectors @ np.diag(sqrt_eigenvalues ** (-1)) @ eigenvectors.T
        # Ensure symmetry.
        inverse_sqrt = (inverse_sqrt + inverse_sqrt.T) / 2
        for array in (sqrt_eigenvalues, eigenvectors, inverse_sqrt):
            array.flags.writeable = False
        return Decomposition(eigenvectors, sqrt_eigenvalues, inverse_sqrt)

    @property
    def eigenvectors(self) -> np.ndarray:
        """The eigenvectors as columns, ordered by ascending eigenvalue."""
        return self.decomposition().eigenvectors

    @property
    def sqrt_eigenvalues(self) -> np.ndarray:
        """The square roots of the eigenvalues in ascending order."""
        return self.decomposition().sqrt_eigenvalues

    @property
    def inverse_sqrt(self) -> np.ndarray:
        """Square root of the inverse of the covariance matrix."""
        return self.decomposition().inverse_sqrt

    @property
    def axis_ratio(self) -> float:
        """The ratio of the largest to the smallest principal standard deviation."""
        sqrt_eigenvalues = self.sqrt_eigenvalues
        return float(sqrt_eigenvalues[-1] / sqrt_eigenvalues[0])

    @property
    def condition_number(self) -> float:
        """The ratio of the largest to the smallest eigenvalue, i.e., the squared axis ratio."""
        return self.axis_ratio**2

