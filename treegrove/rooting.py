"""
Outgroup rooting for unrooted trees.

Rooted comparisons (tree vectors measure depths from the root) are only
meaningful when every tree is rooted the same way. Unrooted trees are
normalized by placing the root on the edge that separates a caller-chosen
outgroup from the remaining tips.
"""

import logging
from collections import deque
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

from treegrove.elements.partition import Partition
from treegrove.exceptions import InvalidTopologyError
from treegrove.tree import TreeModel

logger = logging.getLogger(__name__)

Outgroup = Union[str, Iterable[str]]

# Undirected adjacency: node -> list of (neighbour, edge length)
Adjacency = Dict[int, List[Tuple[int, Optional[float]]]]


def _sum_lengths(a: Optional[float], b: Optional[float]) -> Optional[float]:
    if a is None and b is None:
        return None
    return (a or 0.0) + (b or 0.0)


def _half(length: Optional[float]) -> Optional[float]:
    return None if length is None else length / 2.0


def _outgroup_partition(tree: TreeModel, outgroup: Outgroup) -> Partition:
    names = [outgroup] if isinstance(outgroup, str) else list(outgroup)
    encoding = tree.encoding()
    unknown = sorted(set(names) - set(encoding))
    if unknown:
        raise InvalidTopologyError(f"Outgroup tips {unknown} are not in the tree")
    partition = Partition.from_taxa(names, encoding)
    if len(partition) == 0 or len(partition) == len(encoding):
        raise InvalidTopologyError(
            "Outgroup must contain at least one tip and leave at least one tip outside"
        )
    return partition


def _build_adjacency(tree: TreeModel) -> Tuple[Adjacency, Dict[int, int]]:
    """
    Undirected view of the tree with a degree-two root suppressed and a
    chain of single-child nodes at the root dropped together with its edges.

    Returns the adjacency and, for the two children of a suppressed root, the
    sibling each one is now joined to.
    """
    root = tree.root
    dropped: Set[int] = set()
    while len(tree.children(root)) == 1:
        dropped.add(root)
        root = tree.children(root)[0]
    adjacency: Adjacency = {v: [] for v in range(tree.n_nodes) if v not in dropped}
    root_children = tree.children(root)
    suppressed = len(root_children) == 2
    joined: Dict[int, int] = {}

    for v in tree.traverse():
        p = tree.parent(v)
        if p is None or p in dropped or (suppressed and p == root):
            continue
        adjacency[v].append((p, tree.edge_length(v)))
        adjacency[p].append((v, tree.edge_length(v)))

    if suppressed:
        left, right = root_children
        length = _sum_lengths(tree.edge_length(left), tree.edge_length(right))
        adjacency[left].append((right, length))
        adjacency[right].append((left, length))
        del adjacency[root]
        joined = {left: right, right: left}
    return adjacency, joined


def _find_cut_edge(
    tree: TreeModel, outgroup: Partition, joined: Dict[int, int]
) -> Tuple[int, int]:
    """Edge ``(below, above)`` whose removal separates the outgroup from the rest."""
    encoding = tree.encoding()
    full_mask = (1 << len(encoding)) - 1
    targets = {outgroup.bitmask, full_mask ^ outgroup.bitmask}
    clades = tree.clades(encoding)
    for v in tree.traverse():
        p = tree.parent(v)
        if p is None:
            continue
        if clades[v].bitmask in targets:
            return (v, joined[v]) if v in joined else (v, p)
    raise InvalidTopologyError(
        f"Outgroup {outgroup} is not monophyletic on this tree; cannot root on it"
    )


def root_at_outgroup(tree: TreeModel, outgroup: Outgroup) -> TreeModel:
    """
    Root a tree on the edge separating ``outgroup`` from the other tips.

    The old root is dropped when it has exactly two children (its two edges
    are merged first). The cut edge's length is split evenly between the two
    edges below the new root.

    Args:
        tree: Tree to root; rooted trees are re-rooted the same way
        outgroup: One tip label or a collection of labels forming a clade

    Returns:
        A new rooted TreeModel

    Raises:
        InvalidTopologyError: If the outgroup is unknown, empty, covers every
            tip, or is not a clade of the unrooted tree
    """
    partition = _outgroup_partition(tree, outgroup)
    adjacency, joined = _build_adjacency(tree)
    below, above = _find_cut_edge(tree, partition, joined)
    cut_length = next(length for nb, length in adjacency[below] if nb == above)

    parent: List[int] = [-1]
    lengths: List[Optional[float]] = [None]
    labels: List[Optional[str]] = [None]

    def _attach(start: int, blocked: int) -> None:
        queue = deque([(start, blocked, 0, _half(cut_length))])
        while queue:
            node, came_from, new_parent, length = queue.popleft()
            new_id = len(parent)
            parent.append(new_parent)
            lengths.append(length)
            labels.append(tree.label(node))
            for neighbour, edge_length in sorted(adjacency[node]):
                if neighbour != came_from:
                    queue.append((neighbour, node, new_id, edge_length))

    _attach(below, above)
    _attach(above, below)
    return TreeModel(parent, lengths, labels, rooted=True)


def normalize_rooting(
    trees: Sequence[TreeModel], outgroup: Optional[Outgroup]
) -> List[TreeModel]:
    """
    Root every unrooted tree on ``outgroup``; rooted trees are returned as is.

    Without an outgroup, unrooted trees keep their stored root and a warning
    is logged, since root-dependent vectors then reflect an arbitrary root.
    """
    unrooted = [i for i, tree in enumerate(trees) if not tree.rooted]
    if not unrooted:
        return list(trees)
    if outgroup is None:
        logger.warning(
            "%d unrooted trees compared without an outgroup; using their stored roots",
            len(unrooted),
        )
        return list(trees)
    logger.info("Rooting %d unrooted trees on outgroup %s", len(unrooted), outgroup)
    return [
        tree if tree.rooted else root_at_outgroup(tree, outgroup) for tree in trees
    ]
