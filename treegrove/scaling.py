"""
Principal Coordinates Analysis (classical multidimensional scaling).

The squared distance matrix is double-centred into a Gram matrix whose
eigenvectors, scaled by the square roots of their eigenvalues, give point
coordinates whose Euclidean distances reproduce the input distances.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
from numpy.typing import NDArray
from scipy.linalg import eigh

from treegrove.exceptions import AxisCountError

logger = logging.getLogger(__name__)

CORRECTIONS = (None, "lingoes")


@dataclass(frozen=True)
class Embedding:
    """Coordinates of each tree on the leading axes plus the full eigenvalue list."""

    coordinates: NDArray[np.float64]
    """``n x k`` coordinates, axes ordered by descending eigenvalue."""

    eigenvalues: NDArray[np.float64]
    """All ``n`` eigenvalues of the centred Gram matrix, descending."""

    correction_constant: float = 0.0
    """Constant added to squared off-diagonal distances by a Euclidean correction."""

    @property
    def n_axes(self) -> int:
        return self.coordinates.shape[1]

    def explained_variance(self) -> NDArray[np.float64]:
        """Share of the positive eigenvalue mass carried by each axis (a scree summary)."""
        positive = np.clip(self.eigenvalues, 0.0, None)
        total = positive.sum()
        if total == 0:
            return np.zeros_like(positive)
        return positive / total

    def reconstructed_distances(self) -> NDArray[np.float64]:
        """Euclidean distances between the embedded points."""
        diff = self.coordinates[:, None, :] - self.coordinates[None, :, :]
        return np.sqrt(np.sum(diff**2, axis=2))


def check_distance_matrix(distance_matrix: NDArray[np.float64]) -> NDArray[np.float64]:
    """Validate a non-empty, square, finite, non-negative and symmetric matrix."""
    matrix = np.asarray(distance_matrix, dtype=np.float64)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1] or matrix.shape[0] == 0:
        raise ValueError(
            f"Distance matrix must be square and non-empty, got shape {matrix.shape}"
        )
    if not np.all(np.isfinite(matrix)):
        raise ValueError("Distance matrix contains non-finite values")
    if np.any(matrix < 0):
        raise ValueError("Distance matrix contains negative distances")
    if not np.allclose(matrix, matrix.T, rtol=0, atol=1e-12 * max(matrix.max(), 1.0)):
        raise ValueError("Distance matrix is not symmetric")
    return matrix


def gower_centre(squared: NDArray[np.float64]) -> NDArray[np.float64]:
    """Double-centre a squared distance matrix: ``-1/2 * J D^2 J``."""
    row_means = squared.mean(axis=1)
    col_means = squared.mean(axis=0)
    grand_mean = squared.mean()
    gram = -0.5 * (squared - row_means[:, None] - col_means[None, :] + grand_mean)
    return (gram + gram.T) / 2.0


def _sorted_eigen(gram: NDArray[np.float64]):
    eigenvalues, eigenvectors = eigh(gram)
    order = np.argsort(-eigenvalues, kind="stable")
    eigenvalues = eigenvalues[order]
    eigenvectors = eigenvectors[:, order]
    # Fix each axis' sign so its largest-magnitude entry is positive
    pivots = np.argmax(np.abs(eigenvectors), axis=0)
    signs = np.sign(eigenvectors[pivots, np.arange(eigenvectors.shape[1])])
    signs[signs == 0] = 1.0
    return eigenvalues, eigenvectors * signs


def principal_coordinates(
    distance_matrix: NDArray[np.float64],
    n_axes: int = 5,
    correction: Optional[str] = None,
) -> Embedding:
    """
    Project a distance matrix onto its ``n_axes`` leading principal coordinates.

    Args:
        distance_matrix: Symmetric ``n x n`` matrix of non-negative distances
        n_axes: Number of axes to keep, ``1 <= n_axes <= n - 1``
        correction: ``"lingoes"`` adds the smallest constant to squared
            distances that makes the matrix Euclidean; ``None`` keeps it as is

    Returns:
        Embedding with ``n x n_axes`` coordinates and all eigenvalues. Axes
        whose eigenvalue is not positive get zero coordinates.

    Raises:
        AxisCountError: If ``n_axes`` is outside ``[1, n - 1]``
        ValueError: If the matrix is not a valid distance matrix or the
            correction is unknown
    """
    matrix = check_distance_matrix(distance_matrix)
    n = matrix.shape[0]
    if n_axes < 1 or n_axes >= n:
        raise AxisCountError(
            f"Requested {n_axes} axes for {n} trees; "
            f"the number of axes must lie between 1 and {n - 1}"
        )
    if correction not in CORRECTIONS:
        raise ValueError(f"Unknown correction '{correction}'; expected one of {CORRECTIONS}")

    squared = matrix**2
    eigenvalues, eigenvectors = _sorted_eigen(gower_centre(squared))
    tolerance = 1e-10 * max(float(np.abs(eigenvalues).max()), 1.0)

    constant = 0.0
    if eigenvalues[-1] < -tolerance:
        if correction == "lingoes":
            constant = float(-eigenvalues[-1])
            off_diagonal = 1.0 - np.eye(n)
            squared = squared + 2.0 * constant * off_diagonal
            eigenvalues, eigenvectors = _sorted_eigen(gower_centre(squared))
            tolerance = 1e-10 * max(float(np.abs(eigenvalues).max()), 1.0)
            logger.info("Applied Lingoes correction with constant %.6g", constant)
        else:
            logger.warning(
                "Distance matrix is not Euclidean (smallest eigenvalue %.6g); "
                "negative axes carry no coordinates",
                eigenvalues[-1],
            )

    kept = eigenvalues[:n_axes]
    scale = np.where(kept > tolerance, np.sqrt(np.clip(kept, 0.0, None)), 0.0)
    coordinates = eigenvectors[:, :n_axes] * scale
    logger.debug("Leading eigenvalues: %s", np.array2string(kept, precision=4))
    logger.info("Embedded %d trees on %d principal axes", n, n_axes)
    return Embedding(coordinates, eigenvalues, constant)
