"""
Per-tip ancestry differences between two trees.

For every tip the chain of ancestor clades (from its parent up to the root)
is compared position by position across the two trees. The per-tip counts
are meant for an external renderer to colour tips; their total is an
edit-style count and is not comparable to vector-space distances.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List

import numpy as np
from numpy.typing import NDArray

from treegrove.elements.partition import Partition
from treegrove.tree import TreeModel, resolve_tip_order

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TipDiff:
    counts: Dict[str, int]
    """Difference score per tip label, in sorted label order."""

    @property
    def total(self) -> int:
        return sum(self.counts.values())

    @property
    def max_count(self) -> int:
        return max(self.counts.values(), default=0)

    def differing_tips(self) -> List[str]:
        return [label for label, count in self.counts.items() if count > 0]

    def intensities(self) -> Dict[str, float]:
        """Counts scaled into ``[0, 1]`` by the largest count."""
        top = self.max_count
        return {
            label: (count / top if top else 0.0) for label, count in self.counts.items()
        }


def _ancestor_chains(
    tree: TreeModel, encoding: Dict[str, int]
) -> Dict[str, List[Partition]]:
    """Clades of each tip's ancestors, parent first."""
    clades = tree.clades(encoding)
    return {
        label: [clades[a] for a in tree.ancestors(tree.tip_node(label))]
        for label in encoding
    }


def tip_differences(
    tree1: TreeModel, tree2: TreeModel, size_of_differences: bool = False
) -> TipDiff:
    """
    Count, for every tip, the ancestor positions whose clades differ.

    Args:
        tree1: First tree
        tree2: Second tree, same tip set
        size_of_differences: Score each differing position by the number of
            tips in the symmetric difference of the two clades instead of 1;
            a position missing from one chain scores the size of the clade
            that is present

    Returns:
        TipDiff with one score per tip; all zero for identical rooted topologies

    Raises:
        TipSetMismatchError: If the trees do not share their tip set
    """
    order = resolve_tip_order([tree1, tree2])
    encoding = tree1.encoding(order)
    chains1 = _ancestor_chains(tree1, encoding)
    chains2 = _ancestor_chains(tree2, encoding)

    empty = Partition((), encoding)
    counts: Dict[str, int] = {}
    for label in order:
        chain1, chain2 = chains1[label], chains2[label]
        score = 0
        for position in range(max(len(chain1), len(chain2))):
            clade1 = chain1[position] if position < len(chain1) else empty
            clade2 = chain2[position] if position < len(chain2) else empty
            if clade1 == clade2:
                continue
            score += len(clade1 ^ clade2) if size_of_differences else 1
        counts[label] = score

    result = TipDiff(counts)
    logger.debug(
        "Tip differences: %d of %d tips differ (total %d)",
        len(result.differing_tips()),
        len(order),
        result.total,
    )
    return result


def tip_difference_matrix(trees: List[TreeModel]) -> NDArray[np.int64]:
    """Total tip-difference count between every pair of trees."""
    resolve_tip_order(trees)
    n = len(trees)
    matrix = np.zeros((n, n), dtype=np.int64)
    for i in range(n):
        for j in range(i + 1, n):
            matrix[i, j] = matrix[j, i] = tip_differences(trees[i], trees[j]).total
    return matrix
