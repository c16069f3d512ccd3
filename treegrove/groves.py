"""
Groves: clusters of similar trees from agglomerative hierarchical clustering.

Clusters are merged with Lance-Williams updates of the cluster distance
matrix. Every cluster lives in the slot of its lowest member index; each
step merges the closest pair of active slots, ties going to the lowest
``(i, j)`` slot pair, so results never depend on hidden ordering.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np
from numpy.typing import NDArray
from sklearn.metrics import silhouette_score

from treegrove.exceptions import InvalidClusterCountError
from treegrove.scaling import check_distance_matrix

logger = logging.getLogger(__name__)

LINKAGES = ("single", "complete", "average", "ward")


@dataclass(frozen=True)
class GroveResult:
    """Assignment of trees to groves plus the full dendrogram."""

    groups: NDArray[np.int64]
    """Grove id (``1..m``) of every tree, numbered by lowest member index."""

    linkage: NDArray[np.float64]
    """Dendrogram in scipy's ``(n - 1) x 4`` linkage-matrix format."""

    method: str = "single"

    @property
    def n_groves(self) -> int:
        return int(self.groups.max())

    def members(self, grove: int) -> NDArray[np.int64]:
        """Tree indices belonging to grove ``grove`` (1-based), ascending."""
        if not 1 <= grove <= self.n_groves:
            raise ValueError(f"Grove {grove} does not exist (1..{self.n_groves})")
        return np.flatnonzero(self.groups == grove)

    def as_dict(self) -> Dict[int, List[int]]:
        return {
            grove: self.members(grove).tolist() for grove in range(1, self.n_groves + 1)
        }


def _lance_williams(
    method: str,
    d_ik: NDArray[np.float64],
    d_jk: NDArray[np.float64],
    d_ij: float,
    n_i: float,
    n_j: float,
    n_k: NDArray[np.float64],
) -> NDArray[np.float64]:
    if method == "single":
        return np.minimum(d_ik, d_jk)
    if method == "complete":
        return np.maximum(d_ik, d_jk)
    if method == "average":
        return (n_i * d_ik + n_j * d_jk) / (n_i + n_j)
    # ward, on squared distances
    return ((n_i + n_k) * d_ik + (n_j + n_k) * d_jk - n_k * d_ij) / (n_i + n_j + n_k)


def _labels_from_slots(slot_of: NDArray[np.int64]) -> NDArray[np.int64]:
    """Number clusters 1..m in order of their slot, i.e. of their lowest member."""
    slots = np.unique(slot_of)
    numbering = {int(slot): number for number, slot in enumerate(slots, start=1)}
    return np.array([numbering[int(s)] for s in slot_of], dtype=np.int64)


def agglomerate(
    distance_matrix: NDArray[np.float64],
    method: str = "single",
    n_groves: int = 1,
) -> Tuple[NDArray[np.float64], NDArray[np.int64]]:
    """
    Build the full dendrogram and record the partition into ``n_groves`` clusters.

    The linkage matrix uses the ``scipy.cluster.hierarchy.linkage`` format.
    Cutting it with ``scipy.cluster.hierarchy.cut_tree(linkage, n_clusters=n_groves)``
    gives the same groups up to numbering. Merging here keeps tie-breaking
    fixed to the lowest slot pair, which scipy does not promise.

    Returns:
        Tuple (linkage matrix, grove id per tree)
    """
    if method not in LINKAGES:
        raise ValueError(f"Unknown linkage '{method}'; expected one of {LINKAGES}")
    matrix = check_distance_matrix(distance_matrix)
    n = matrix.shape[0]

    work = matrix**2 if method == "ward" else matrix.copy()
    active = np.ones(n, dtype=bool)
    sizes = np.ones(n, dtype=np.float64)
    cluster_ids = np.arange(n)
    slot_of = np.arange(n)
    upper = np.triu(np.ones((n, n), dtype=bool), k=1)
    linkage = np.zeros((n - 1, 4), dtype=np.float64)
    groups = _labels_from_slots(slot_of) if n_groves == n else None

    for step in range(n - 1):
        candidates = np.where(upper & active[:, None] & active[None, :], work, np.inf)
        flat = int(np.argmin(candidates))
        i, j = divmod(flat, n)
        d_ij = work[i, j]
        height = float(np.sqrt(max(d_ij, 0.0))) if method == "ward" else float(d_ij)

        others = np.flatnonzero(active)
        others = others[(others != i) & (others != j)]
        if others.size:
            updated = _lance_williams(
                method,
                work[i, others],
                work[j, others],
                d_ij,
                sizes[i],
                sizes[j],
                sizes[others],
            )
            work[i, others] = updated
            work[others, i] = updated

        first, second = sorted((int(cluster_ids[i]), int(cluster_ids[j])))
        linkage[step] = (first, second, height, sizes[i] + sizes[j])
        logger.debug(
            "Merge %d: slots %d and %d at height %.6g", step + 1, i, j, height
        )

        sizes[i] += sizes[j]
        active[j] = False
        cluster_ids[i] = n + step
        slot_of[slot_of == j] = i

        if step + 1 == n - n_groves:
            groups = _labels_from_slots(slot_of)

    if groups is None:
        groups = _labels_from_slots(slot_of)
    return linkage, groups


def find_groves(
    distance_matrix: NDArray[np.float64],
    n_groves: int,
    linkage: str = "single",
) -> GroveResult:
    """
    Cluster trees into exactly ``n_groves`` groves.

    Args:
        distance_matrix: Symmetric ``n x n`` distance matrix
        n_groves: Number of groves ``m``, ``1 <= m <= n``
        linkage: ``single``, ``complete``, ``average`` or ``ward``

    Returns:
        GroveResult with grove ids numbered ``1..m``

    Raises:
        InvalidClusterCountError: If ``n_groves`` is outside ``[1, n]``
        ValueError: If the linkage is unknown or the matrix invalid
    """
    n = np.asarray(distance_matrix).shape[0]
    if not 1 <= n_groves <= n:
        raise InvalidClusterCountError(
            f"Cannot split {n} trees into {n_groves} groves; "
            f"the number of groves must lie between 1 and {n}"
        )
    link, groups = agglomerate(distance_matrix, method=linkage, n_groves=n_groves)
    logger.info("Found %d groves among %d trees (%s linkage)", n_groves, n, linkage)
    return GroveResult(groups, link, linkage)


def grove_silhouette(
    distance_matrix: NDArray[np.float64], groups: NDArray[np.int64]
) -> float:
    """
    Mean silhouette width of a grove assignment.

    Raises:
        InvalidClusterCountError: Unless ``2 <= number of groves <= n - 1``
    """
    matrix = check_distance_matrix(distance_matrix)
    labels = np.asarray(groups)
    n_labels = len(np.unique(labels))
    if not 2 <= n_labels <= matrix.shape[0] - 1:
        raise InvalidClusterCountError(
            f"Silhouette needs between 2 and {matrix.shape[0] - 1} groves, got {n_labels}"
        )
    return float(silhouette_score(matrix, labels, metric="precomputed"))
