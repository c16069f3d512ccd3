import logging
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
from numpy.typing import NDArray

from treegrove.elements.partition import Partition
from treegrove.parallel import run_tasks
from treegrove.tree import TreeModel, resolve_tip_order
from treegrove.vectorizer import (
    TreeVectors,
    check_lambda,
    emphasis_weights,
    tree_vector,
    vector_components,
    vectorize_collection,
)

logger = logging.getLogger(__name__)

DISTANCE_METHODS = ("treevec", "rf", "wrf", "kf", "path")


def _as_array(vectors: Union[TreeVectors, NDArray[np.float64]]) -> NDArray[np.float64]:
    values = vectors.values if isinstance(vectors, TreeVectors) else vectors
    values = np.asarray(values, dtype=np.float64)
    if values.ndim != 2:
        raise ValueError(
            f"Expected a 2-D array with one vector per row, got shape {values.shape}"
        )
    if values.shape[0] == 0:
        raise ValueError("Expected at least one vector")
    return values


def distance_matrix(
    vectors: Union[TreeVectors, NDArray[np.float64]],
    n_jobs: Optional[int] = None,
    progress: bool = False,
) -> NDArray[np.float64]:
    """
    Pairwise Euclidean distances between tree vectors.

    Row ``i`` is computed by its own task, which owns the cells ``(i, j)``
    and ``(j, i)`` for every ``j > i``; both cells receive the same value so
    the matrix is exactly symmetric. Each cell is computed by the same
    arithmetic whatever ``n_jobs`` is, so results are bit-identical across
    thread counts.

    Args:
        vectors: TreeVectors or an ``n x L`` array
        n_jobs: Worker threads (``1`` for serial)
        progress: Show a tqdm progress bar

    Returns:
        Symmetric ``n x n`` matrix with a zero diagonal
    """
    values = _as_array(vectors)
    n = values.shape[0]
    matrix: NDArray[np.float64] = np.zeros((n, n), dtype=np.float64)

    def _fill_row(i: int) -> None:
        if i + 1 >= n:
            return
        row = np.sqrt(np.sum((values[i + 1 :] - values[i]) ** 2, axis=1))
        matrix[i, i + 1 :] = row
        matrix[i + 1 :, i] = row

    run_tasks(
        _fill_row,
        [(i,) for i in range(n)],
        n_jobs=n_jobs,
        progress=progress,
        desc="Computing distances",
    )
    logger.info("Built %dx%d distance matrix", n, n)
    return matrix


def tree_distance(
    tree1: TreeModel,
    tree2: TreeModel,
    lam: float = 0.0,
    emphasise_tips: Optional[Iterable[str]] = None,
    emphasise_weight: float = 2.0,
) -> float:
    """Euclidean distance between the vectors of two trees."""
    order = resolve_tip_order([tree1, tree2])
    v1 = tree_vector(tree1, lam, order, emphasise_tips, emphasise_weight)
    v2 = tree_vector(tree2, lam, order, emphasise_tips, emphasise_weight)
    return float(np.sqrt(np.sum((v1 - v2) ** 2)))


def reference_distances(
    reference: TreeModel,
    trees: Sequence[TreeModel],
    lam: float = 0.0,
    emphasise_tips: Optional[Iterable[str]] = None,
    emphasise_weight: float = 2.0,
) -> NDArray[np.float64]:
    """Distance from every tree of ``trees`` to a reference tree."""
    order = resolve_tip_order([reference, *trees])
    ref_vector = tree_vector(reference, lam, order, emphasise_tips, emphasise_weight)
    result = np.empty(len(trees), dtype=np.float64)
    for i, tree in enumerate(trees):
        vector = tree_vector(tree, lam, order, emphasise_tips, emphasise_weight)
        result[i] = np.sqrt(np.sum((vector - ref_vector) ** 2))
    return result


def distance_matrix_function(
    trees: Sequence[TreeModel],
    tip_order: Optional[Sequence[str]] = None,
    emphasise_tips: Optional[Iterable[str]] = None,
    emphasise_weight: float = 2.0,
    n_jobs: Optional[int] = None,
) -> Callable[[float], NDArray[np.float64]]:
    """
    Precompute vector components once and return ``lam -> distance matrix``.
    """
    order = resolve_tip_order(trees, tip_order)
    components = [vector_components(tree, order) for tree in trees]
    topo = np.vstack([c[0] for c in components])
    length = np.vstack([c[1] for c in components])
    if emphasise_tips:
        weights = emphasis_weights(order, emphasise_tips, emphasise_weight)
        topo, length = topo * weights, length * weights

    def _matrix(lam: float) -> NDArray[np.float64]:
        lam = check_lambda(lam)
        values = (1.0 - lam) * topo + lam * length
        return distance_matrix(values, n_jobs=n_jobs)

    return _matrix


# ----------------------------------------------------------------------------
# Split and path based metrics
# ----------------------------------------------------------------------------


def robinson_foulds_distance(tree1: TreeModel, tree2: TreeModel) -> float:
    order = resolve_tip_order([tree1, tree2])
    encoding = tree1.encoding(order)
    splits1 = tree1.splits(encoding)
    splits2 = tree2.splits(encoding)
    return len(splits1 ^ splits2) / 2


def weighted_robinson_foulds_distance(tree1: TreeModel, tree2: TreeModel) -> float:
    """
    Calculate the weighted Robinson-Foulds distance between two trees.

    Sum over all splits (tips included) of the absolute difference of the
    edge lengths carrying that split; a missing split has length 0.
    """
    order = resolve_tip_order([tree1, tree2])
    encoding = tree1.encoding(order)
    splits1: Dict[Partition, float] = tree1.split_lengths(encoding)
    splits2: Dict[Partition, float] = tree2.split_lengths(encoding)
    all_splits = set(splits1) | set(splits2)
    return float(
        sum(abs(splits1.get(s, 0.0) - splits2.get(s, 0.0)) for s in all_splits)
    )


def branch_score_distance(tree1: TreeModel, tree2: TreeModel) -> float:
    """Kuhner-Felsenstein branch score: Euclidean norm of split length differences."""
    order = resolve_tip_order([tree1, tree2])
    encoding = tree1.encoding(order)
    splits1 = tree1.split_lengths(encoding)
    splits2 = tree2.split_lengths(encoding)
    all_splits = set(splits1) | set(splits2)
    return float(
        np.sqrt(sum((splits1.get(s, 0.0) - splits2.get(s, 0.0)) ** 2 for s in all_splits))
    )


def _path_lengths(tree: TreeModel, order: Sequence[str]) -> NDArray[np.float64]:
    """Number of edges between every tip pair, lexicographic pair order."""
    nodes = [tree.tip_node(label) for label in order]
    depths = tree.topological_depths()
    n = len(nodes)
    result: List[float] = []
    for i in range(n):
        for j in range(i + 1, n):
            m = tree.mrca(nodes[i], nodes[j])
            result.append(depths[nodes[i]] + depths[nodes[j]] - 2 * depths[m])
    return np.asarray(result, dtype=np.float64)


def path_difference_distance(tree1: TreeModel, tree2: TreeModel) -> float:
    """Steel-Penny path difference: Euclidean norm of tip-to-tip edge-count differences."""
    order = resolve_tip_order([tree1, tree2])
    diff = _path_lengths(tree1, order) - _path_lengths(tree2, order)
    return float(np.sqrt(np.sum(diff**2)))


_PAIRWISE_METRICS: Dict[str, Callable[[TreeModel, TreeModel], float]] = {
    "rf": robinson_foulds_distance,
    "wrf": weighted_robinson_foulds_distance,
    "kf": branch_score_distance,
    "path": path_difference_distance,
}


def calculate_matrix_distance(
    trees: Sequence[TreeModel],
    distance_function: Callable[[TreeModel, TreeModel], float],
    n_jobs: Optional[int] = None,
    progress: bool = False,
) -> NDArray[np.float64]:
    """Symmetric matrix of ``distance_function`` over all tree pairs ``i < j``."""
    n = len(trees)
    matrix: NDArray[np.float64] = np.zeros((n, n), dtype=np.float64)

    def _fill_row(i: int) -> None:
        for j in range(i + 1, n):
            d = distance_function(trees[i], trees[j])
            matrix[i, j] = d
            matrix[j, i] = d

    run_tasks(
        _fill_row,
        [(i,) for i in range(n)],
        n_jobs=n_jobs,
        progress=progress,
        desc="Computing distances",
    )
    return matrix


def tree_distance_matrix(
    trees: Sequence[TreeModel],
    method: str = "treevec",
    lam: float = 0.0,
    emphasise_tips: Optional[Iterable[str]] = None,
    emphasise_weight: float = 2.0,
    n_jobs: Optional[int] = None,
    progress: bool = False,
) -> NDArray[np.float64]:
    """
    Distance matrix of a tree collection under one of ``DISTANCE_METHODS``.

    ``treevec`` is the tree-vector metric; ``rf``, ``wrf``, ``kf`` and ``path``
    are the split and path based metrics above.
    """
    if method == "treevec":
        vectors = vectorize_collection(
            trees,
            lam=lam,
            emphasise_tips=emphasise_tips,
            emphasise_weight=emphasise_weight,
            n_jobs=n_jobs,
            progress=progress,
        )
        return distance_matrix(vectors, n_jobs=n_jobs, progress=progress)
    if method not in _PAIRWISE_METRICS:
        raise ValueError(
            f"Unknown distance method '{method}'; expected one of {DISTANCE_METHODS}"
        )
    resolve_tip_order(trees)
    matrix = calculate_matrix_distance(
        trees, _PAIRWISE_METRICS[method], n_jobs=n_jobs, progress=progress
    )
    logger.info("Built %dx%d %s distance matrix", len(trees), len(trees), method)
    return matrix
