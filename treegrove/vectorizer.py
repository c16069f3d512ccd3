"""
Kendall–Colijn style tree vectors.

A tree over ``t`` tips becomes a vector with one component per unordered
tip pair, followed (optionally) by one component per tip:

- pair ``(i, j)``: depth of the most recent common ancestor of tips i and j
- tip ``i``: depth of tip i itself

Depth is measured twice, as a number of edges (``topo``) and as summed edge
length (``length``). A component mixes both as ``(1 - lam) * topo + lam * length``.
Pairs are ordered lexicographically by position in the shared tip order, so
vectors of different trees line up component by component.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from treegrove.parallel import run_tasks
from treegrove.tree import TreeModel, resolve_tip_order

logger = logging.getLogger(__name__)


def check_lambda(lam: float) -> float:
    lam = float(lam)
    if not 0.0 <= lam <= 1.0:
        raise ValueError(f"lambda must lie in [0, 1], got {lam}")
    return lam


def vector_length(n_tips: int, include_tips: bool = True) -> int:
    return n_tips * (n_tips - 1) // 2 + (n_tips if include_tips else 0)


def pair_index(i: int, j: int, n_tips: int) -> int:
    """Position of tip pair ``(i, j)``, ``i < j``, in the lexicographic pair order."""
    return i * (2 * n_tips - i - 1) // 2 + (j - i - 1)


def vector_components(
    tree: TreeModel,
    tip_order: Optional[Sequence[str]] = None,
    include_tips: bool = True,
) -> Tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Compute the topological and branch-length parts of a tree vector.

    Every tip pair is assigned at its most recent common ancestor: for each
    internal node, all pairs with one tip in one child subtree and the other
    tip in a different child subtree have that node as their MRCA. This
    fills the whole pair block in O(t^2) regardless of tree shape.

    Args:
        tree: The tree to encode
        tip_order: Shared tip ordering; sorted tip labels by default
        include_tips: Append the per-tip depth block

    Returns:
        Tuple (topo, length) of float64 arrays of equal length
    """
    encoding = tree.encoding(tip_order)
    n_tips = len(encoding)
    depths = tree.topological_depths()
    distances = tree.root_distances()

    topo = np.zeros(vector_length(n_tips, include_tips), dtype=np.float64)
    length = np.zeros_like(topo)

    tips_below: List[List[int]] = [[] for _ in range(tree.n_nodes)]
    for node in tree.postorder():
        if tree.is_tip(node):
            tips_below[node] = [encoding[tree.label(node)]]  # type: ignore[index]
            continue
        child_tips = [tips_below[child] for child in tree.children(node)]
        for a, left in enumerate(child_tips):
            for right in child_tips[a + 1 :]:
                for i in left:
                    for j in right:
                        k = pair_index(min(i, j), max(i, j), n_tips)
                        topo[k] = depths[node]
                        length[k] = distances[node]
        merged: List[int] = []
        for tips in child_tips:
            merged.extend(tips)
        tips_below[node] = merged
        for child in tree.children(node):
            tips_below[child] = []

    if include_tips:
        offset = n_tips * (n_tips - 1) // 2
        for label, i in encoding.items():
            node = tree.tip_node(label)
            topo[offset + i] = depths[node]
            length[offset + i] = distances[node]

    return topo, length


def emphasis_weights(
    tip_order: Sequence[str],
    emphasise_tips: Iterable[str],
    emphasise_weight: float = 2.0,
    include_tips: bool = True,
) -> NDArray[np.float64]:
    """
    Per-component multipliers that up-weight every component involving one
    of ``emphasise_tips``.
    """
    position = {name: i for i, name in enumerate(tip_order)}
    emphasised = set(emphasise_tips)
    unknown = sorted(emphasised - set(position))
    if unknown:
        raise ValueError(f"Cannot emphasise unknown tips {unknown}")
    n_tips = len(tip_order)
    weights = np.ones(vector_length(n_tips, include_tips), dtype=np.float64)
    marked = {position[name] for name in emphasised}
    for i in range(n_tips):
        for j in range(i + 1, n_tips):
            if i in marked or j in marked:
                weights[pair_index(i, j, n_tips)] = emphasise_weight
    if include_tips:
        offset = n_tips * (n_tips - 1) // 2
        for i in marked:
            weights[offset + i] = emphasise_weight
    return weights


def _mix(
    topo: NDArray[np.float64], length: NDArray[np.float64], lam: float
) -> NDArray[np.float64]:
    if lam == 0.0:
        return topo.copy()
    if lam == 1.0:
        return length.copy()
    return (1.0 - lam) * topo + lam * length


def tree_vector(
    tree: TreeModel,
    lam: float = 0.0,
    tip_order: Optional[Sequence[str]] = None,
    emphasise_tips: Optional[Iterable[str]] = None,
    emphasise_weight: float = 2.0,
    include_tips: bool = True,
) -> NDArray[np.float64]:
    """
    Encode a tree as a fixed-length vector.

    Args:
        tree: The tree to encode
        lam: Weight of branch lengths; 0 is pure topology, 1 pure lengths
        tip_order: Shared tip ordering; sorted tip labels by default
        emphasise_tips: Tips whose components are multiplied by ``emphasise_weight``
        emphasise_weight: Multiplier for emphasised components
        include_tips: Append the per-tip depth block

    Returns:
        Vector of length ``C(t, 2) + t`` (or ``C(t, 2)`` without the tip block)
    """
    lam = check_lambda(lam)
    topo, length = vector_components(tree, tip_order, include_tips)
    vector = _mix(topo, length, lam)
    if emphasise_tips:
        order = tip_order if tip_order is not None else tree.tip_labels
        vector *= emphasis_weights(order, emphasise_tips, emphasise_weight, include_tips)
    return vector


def lambda_vector_function(
    tree: TreeModel,
    tip_order: Optional[Sequence[str]] = None,
    emphasise_tips: Optional[Iterable[str]] = None,
    emphasise_weight: float = 2.0,
    include_tips: bool = True,
) -> Callable[[float], NDArray[np.float64]]:
    """
    Precompute a tree's vector components and return ``lam -> vector``.

    Useful to scan several lambda values without re-walking the tree.
    """
    topo, length = vector_components(tree, tip_order, include_tips)
    if emphasise_tips:
        order = tip_order if tip_order is not None else tree.tip_labels
        weights = emphasis_weights(order, emphasise_tips, emphasise_weight, include_tips)
        topo, length = topo * weights, length * weights

    def _vector(lam: float) -> NDArray[np.float64]:
        return _mix(topo, length, check_lambda(lam))

    return _vector


@dataclass(frozen=True)
class TreeVectors:
    """Vectors of a tree collection, one row per tree."""

    values: NDArray[np.float64]
    tip_order: Tuple[str, ...]
    lam: float
    include_tips: bool = True

    def __len__(self) -> int:
        return self.values.shape[0]

    def __getitem__(self, index: int) -> NDArray[np.float64]:
        return self.values[index]

    @property
    def vector_length(self) -> int:
        return self.values.shape[1]


def vectorize_collection(
    trees: Sequence[TreeModel],
    lam: float = 0.0,
    tip_order: Optional[Sequence[str]] = None,
    emphasise_tips: Optional[Iterable[str]] = None,
    emphasise_weight: float = 2.0,
    include_tips: bool = True,
    n_jobs: Optional[int] = None,
    progress: bool = False,
) -> TreeVectors:
    """
    Vectorize every tree of a collection.

    The tip set and the vector length are validated once for the whole
    collection; each tree is then encoded by its own thread-pool task that
    writes only its own row of the preallocated result.

    Raises:
        ValueError: If the collection is empty or lambda is out of range
        TipSetMismatchError: If the trees do not share one tip set
    """
    lam = check_lambda(lam)
    order = resolve_tip_order(trees, tip_order)
    length = vector_length(len(order), include_tips)
    values = np.empty((len(trees), length), dtype=np.float64)
    weights = (
        emphasis_weights(order, emphasise_tips, emphasise_weight, include_tips)
        if emphasise_tips
        else None
    )

    def _encode(row: int, tree: TreeModel) -> None:
        topo, branch_lengths = vector_components(tree, order, include_tips)
        vector = _mix(topo, branch_lengths, lam)
        if weights is not None:
            vector *= weights
        values[row] = vector

    run_tasks(
        _encode,
        list(enumerate(trees)),
        n_jobs=n_jobs,
        progress=progress,
        desc="Vectorizing trees",
    )
    logger.info(
        "Vectorized %d trees over %d tips (lambda=%.3g, %d components)",
        len(trees),
        len(order),
        lam,
        length,
    )
    return TreeVectors(values, order, lam, include_tips)
