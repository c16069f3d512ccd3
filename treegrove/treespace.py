"""
End-to-end tree-space pipeline.

trees -> (rooting) -> vectors -> distance matrix -> {PCoA embedding, groves}
-> median tree(s) per grove. Every call recomputes from its inputs and the
explicit config; nothing is kept between calls.
"""

import logging
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from treegrove.distances.distances import distance_matrix, tree_distance_matrix
from treegrove.groves import find_groves
from treegrove.median import MedianResult, find_group_medians
from treegrove.rooting import normalize_rooting
from treegrove.scaling import principal_coordinates
from treegrove.tree import TreeModel, validate_tip_sets
from treegrove.types import (
    DEFAULT_AXES,
    GroveAnalysis,
    GroveConfig,
    TreespaceConfig,
    TreespaceResult,
)
from treegrove.vectorizer import TreeVectors, vectorize_collection

logger = logging.getLogger(__name__)


def _vectorize(trees: Sequence[TreeModel], config: TreespaceConfig) -> TreeVectors:
    return vectorize_collection(
        trees,
        lam=config.lam,
        emphasise_tips=config.emphasise_tips,
        emphasise_weight=config.emphasise_weight,
        n_jobs=config.n_jobs,
        progress=config.progress,
    )


def _axis_count(n_trees: int, n_axes: Optional[int]) -> int:
    if n_axes is None:
        return min(DEFAULT_AXES, n_trees - 1)
    return n_axes


def treespace(
    trees: Sequence[TreeModel], config: Optional[TreespaceConfig] = None
) -> TreespaceResult:
    """
    Compute the distance matrix of a tree collection and its PCoA embedding.

    Raises:
        TipSetMismatchError: If the trees do not share one tip set
        AxisCountError: If an explicit ``config.n_axes`` is not below the
            number of trees
    """
    config = config or TreespaceConfig()
    tip_order = validate_tip_sets(trees)
    trees = normalize_rooting(trees, config.outgroup)

    vectors: Optional[TreeVectors] = None
    if config.method == "treevec":
        vectors = _vectorize(trees, config)
        matrix = distance_matrix(vectors, n_jobs=config.n_jobs, progress=config.progress)
    else:
        matrix = tree_distance_matrix(
            trees, method=config.method, n_jobs=config.n_jobs, progress=config.progress
        )

    embedding = None
    n_axes = _axis_count(len(trees), config.n_axes)
    if n_axes > 0:
        embedding = principal_coordinates(matrix, n_axes, config.correction)
    logger.info(
        "Tree space of %d trees built with method %s", len(trees), config.method
    )
    return TreespaceResult(matrix, embedding, tip_order, vectors)


def find_tree_groves(
    trees: Sequence[TreeModel],
    grove_config: GroveConfig,
    config: Optional[TreespaceConfig] = None,
) -> GroveAnalysis:
    """
    Build the tree space, cluster it into groves and find each grove's median.

    Medians are computed from tree vectors and are only available for the
    ``treevec`` method; other methods yield an empty median mapping.
    """
    config = config or TreespaceConfig()
    space = treespace(trees, config)

    if grove_config.cluster_on == "distances":
        cluster_matrix = space.distance_matrix
    elif grove_config.cluster_on == "embedding":
        if space.embedding is None:
            raise ValueError("Clustering on the embedding needs n_axes > 0")
        cluster_matrix = distance_matrix(space.embedding.coordinates, n_jobs=config.n_jobs)
    else:
        raise ValueError(
            f"Unknown cluster_on '{grove_config.cluster_on}'; "
            "expected 'distances' or 'embedding'"
        )

    groves = find_groves(cluster_matrix, grove_config.n_groves, grove_config.linkage)
    medians: Dict[int, MedianResult] = {}
    if space.vectors is not None:
        medians = find_group_medians(space.vectors, groves.groups)
    else:
        logger.info("Skipping medians: method %s has no tree vectors", config.method)
    return GroveAnalysis(space, groves, medians)


def median_trees(
    trees: Sequence[TreeModel],
    config: Optional[TreespaceConfig] = None,
    groups: Optional[Sequence[int]] = None,
) -> Dict[int, MedianResult]:
    """
    Median tree(s) of each group, or of the whole collection when ``groups``
    is omitted (reported as group 1).
    """
    config = config or TreespaceConfig()
    if config.method != "treevec":
        raise ValueError("Median trees are defined on tree vectors; use method 'treevec'")
    validate_tip_sets(trees)
    trees = normalize_rooting(trees, config.outgroup)
    vectors = _vectorize(trees, config)
    if groups is None:
        groups = [1] * len(trees)
    if len(groups) != len(trees):
        raise ValueError(f"Expected {len(trees)} group labels, got {len(groups)}")
    return find_group_medians(vectors, groups)


def sample_trees(
    trees: Sequence[TreeModel], size: int, seed: int
) -> Tuple[List[int], List[TreeModel]]:
    """
    Draw ``size`` distinct trees reproducibly.

    Returns:
        Tuple (ascending indices, corresponding trees)
    """
    if not 0 <= size <= len(trees):
        raise ValueError(f"Cannot sample {size} trees from {len(trees)}")
    rng = np.random.default_rng(seed)
    indices = sorted(int(i) for i in rng.choice(len(trees), size=size, replace=False))
    return indices, [trees[i] for i in indices]
