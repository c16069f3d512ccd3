"""
Median trees: the group members whose vectors lie closest to the group centroid.

The median is restricted to observed trees; it is not the continuous
geometric median of the vector cloud. Ties are all reported.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from treegrove.exceptions import EmptyGroupError
from treegrove.vectorizer import TreeVectors

logger = logging.getLogger(__name__)

TIE_RTOL = 1e-12


@dataclass(frozen=True)
class MedianResult:
    """Centroid of a group and the member(s) closest to it."""

    centroid: NDArray[np.float64]
    medians: Tuple[int, ...]
    """Tree indices at minimum distance to the centroid, ascending."""

    members: Tuple[int, ...]
    distances: NDArray[np.float64]
    """Distance of each member (same order as ``members``) to the centroid."""

    @property
    def min_distance(self) -> float:
        return float(self.distances.min())

    @property
    def median(self) -> int:
        """The first median tree index, for callers that need a single tree."""
        return self.medians[0]


def find_median(
    vectors: Union[TreeVectors, NDArray[np.float64]],
    group: Optional[Sequence[int]] = None,
    weights: Optional[Sequence[float]] = None,
) -> MedianResult:
    """
    Find the median tree(s) of a group.

    Args:
        vectors: TreeVectors or ``n x L`` array of the whole collection
        group: Row indices of the group; all rows when omitted
        weights: Optional non-negative weight per group member for a
            weighted centroid

    Returns:
        MedianResult listing every member tied at the minimum distance

    Raises:
        EmptyGroupError: If the group has no members
        ValueError: If weights do not match the group or are invalid
    """
    if isinstance(vectors, TreeVectors):
        values = vectors.values
    else:
        values = np.asarray(vectors, dtype=np.float64)
    if group is None:
        members = tuple(range(values.shape[0]))
    else:
        members = tuple(int(i) for i in group)
    if not members:
        raise EmptyGroupError("Cannot find the median of an empty group")
    if len(set(members)) != len(members):
        raise ValueError(f"Group lists a tree more than once: {list(members)}")

    block = values[list(members)]
    if weights is None:
        centroid = block.mean(axis=0)
    else:
        w = np.asarray(weights, dtype=np.float64)
        if w.shape != (len(members),):
            raise ValueError(
                f"Expected {len(members)} weights, one per group member, got {w.shape}"
            )
        if np.any(w < 0) or not np.all(np.isfinite(w)) or w.sum() == 0:
            raise ValueError("Weights must be finite, non-negative and not all zero")
        centroid = (w[:, None] * block).sum(axis=0) / w.sum()

    distances = np.sqrt(np.sum((block - centroid) ** 2, axis=1))
    best = distances.min()
    tied = np.isclose(distances, best, rtol=TIE_RTOL, atol=TIE_RTOL)
    medians = tuple(sorted(m for m, t in zip(members, tied) if t))
    logger.debug(
        "Median of %d trees: %s at distance %.6g", len(members), medians, best
    )
    return MedianResult(centroid, medians, members, distances)


def find_group_medians(
    vectors: Union[TreeVectors, NDArray[np.float64]],
    groups: Sequence[int],
) -> Dict[int, MedianResult]:
    """Median of every group of a grove assignment (``groups[i]`` is tree i's grove)."""
    labels = np.asarray(groups)
    result: Dict[int, MedianResult] = {}
    for grove in np.unique(labels):
        members = np.flatnonzero(labels == grove)
        result[int(grove)] = find_median(vectors, members)
    logger.info("Found medians for %d groves", len(result))
    return result
