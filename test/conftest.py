import logging

import numpy as np
import pytest

from treegrove.tree import Branch, TreeModel, branch


def pytest_configure(config):
    """Set up test environment before tests run."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def balanced_tree(ab=1.0, cd=1.0, tips=(1.0, 1.0, 1.0, 1.0), rooted=True):
    """((a,b),(c,d)) with the given internal and pendant edge lengths."""
    a, b, c, d = tips
    return TreeModel.from_nested(
        [
            branch([branch("a", a), branch("b", b)], ab),
            branch([branch("c", c), branch("d", d)], cd),
        ],
        rooted=rooted,
    )


def crossed_tree(ac=1.0, bd=1.0, tips=(1.0, 1.0, 1.0, 1.0), rooted=True):
    """((a,c),(b,d)) with the given internal and pendant edge lengths."""
    a, b, c, d = tips
    return TreeModel.from_nested(
        [
            branch([branch("a", a), branch("c", c)], ac),
            branch([branch("b", b), branch("d", d)], bd),
        ],
        rooted=rooted,
    )


@pytest.fixture
def scenario_a_trees():
    """T1 and T2 share ((a,b),(c,d)) with different lengths; T3 is ((a,c),(b,d))."""
    return [
        balanced_tree(),
        balanced_tree(ab=0.3, cd=2.5, tips=(0.1, 0.7, 1.2, 0.4)),
        crossed_tree(),
    ]


@pytest.fixture
def two_cluster_trees():
    """Six trees alternating between two topologies with varying lengths."""
    return [
        balanced_tree(ab=0.5),
        crossed_tree(ac=0.5),
        balanced_tree(cd=2.0),
        crossed_tree(bd=2.0),
        balanced_tree(tips=(0.2, 0.3, 0.4, 0.5)),
        crossed_tree(tips=(0.2, 0.3, 0.4, 0.5)),
    ]


def random_tree(seed, labels="abcdef", rooted=True):
    """Random binary tree built by joining random pairs of subtrees."""
    rng = np.random.default_rng(seed)
    pool = [branch(label, float(rng.uniform(0.1, 2.0))) for label in labels]
    while len(pool) > 1:
        i, j = sorted(int(k) for k in rng.choice(len(pool), size=2, replace=False))
        right = pool.pop(j)
        left = pool.pop(i)
        pool.append(branch([left, right], float(rng.uniform(0.1, 2.0))))
    return TreeModel.from_nested(list(pool[0].subtree), rooted=rooted)


def shuffle_children(structure, rng):
    """The same nested structure with every child list randomly permuted."""
    if isinstance(structure, Branch):
        return Branch(shuffle_children(structure.subtree, rng), structure.length)
    if isinstance(structure, str):
        return structure
    children = [shuffle_children(child, rng) for child in structure]
    return [children[k] for k in rng.permutation(len(children))]
