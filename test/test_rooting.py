import logging

import numpy as np
import pytest

from conftest import balanced_tree
from treegrove.elements.partition import Partition
from treegrove.exceptions import InvalidTopologyError
from treegrove.rooting import normalize_rooting, root_at_outgroup
from treegrove.tree import TreeModel, branch
from treegrove.vectorizer import tree_vector

UNROOTED = TreeModel.from_nested([["a", "b"], ["c", "d"]], rooted=False)


def test_root_on_single_tip():
    rooted = root_at_outgroup(UNROOTED, "a")
    encoding = rooted.encoding()

    assert rooted.rooted
    assert rooted.splits(encoding) == {
        Partition.from_taxa("bcd", encoding),
        Partition.from_taxa("cd", encoding),
    }
    assert rooted.tip_node("a") in rooted.children(rooted.root)


def test_root_on_clade_at_old_root():
    rooted = root_at_outgroup(UNROOTED, ["c", "d"])
    assert rooted.same_topology(balanced_tree())


def test_stored_root_does_not_matter():
    other = TreeModel.from_nested(["a", ["b", ["c", "d"]]], rooted=False)
    first = tree_vector(root_at_outgroup(UNROOTED, "a"))
    second = tree_vector(root_at_outgroup(other, "a"))
    np.testing.assert_array_equal(first, second)


def test_cut_edge_is_halved():
    tree = TreeModel.from_nested(
        [
            branch([branch("a", 1.0), branch("b", 1.0)], 1.0),
            branch([branch("c", 1.0), branch("d", 1.0)], 3.0),
        ],
        rooted=False,
    )
    rooted = root_at_outgroup(tree, ["a", "b"])
    distances = rooted.root_distances()
    # joined root edges sum to 4, split into 2 + 2
    assert distances[rooted.tip_node("a")] == pytest.approx(3.0)
    assert distances[rooted.tip_node("c")] == pytest.approx(3.0)


def test_root_below_old_root():
    tree = TreeModel.from_nested(
        [branch([branch("a", 2.0), branch("b", 1.0)], 1.0), branch("c", 1.0)],
        rooted=False,
    )
    rooted = root_at_outgroup(tree, "a")
    distances = rooted.root_distances()
    assert distances[rooted.tip_node("a")] == pytest.approx(1.0)
    assert distances[rooted.tip_node("b")] == pytest.approx(2.0)
    assert distances[rooted.tip_node("c")] == pytest.approx(3.0)


def test_polytomy_root_is_kept():
    tree = TreeModel.from_nested(["a", "b", ["c", "d"]], rooted=False)
    rooted = root_at_outgroup(tree, "a")
    assert rooted.n_nodes == tree.n_nodes + 1
    assert rooted.same_topology(TreeModel.from_nested(["a", ["b", ["c", "d"]]]))


@pytest.mark.parametrize(
    "outgroup", [["a", "c"], ["z"], [], ["a", "b", "c", "d"]]
)
def test_invalid_outgroup(outgroup):
    with pytest.raises(InvalidTopologyError):
        root_at_outgroup(UNROOTED, outgroup)


def test_normalize_rooting_keeps_rooted_trees():
    rooted = balanced_tree()
    result = normalize_rooting([rooted, UNROOTED], "a")
    assert result[0] is rooted
    assert result[1].rooted


def test_normalize_rooting_without_outgroup_warns(caplog):
    with caplog.at_level(logging.WARNING, logger="treegrove.rooting"):
        result = normalize_rooting([UNROOTED], None)
    assert result == [UNROOTED]
    assert "without an outgroup" in caplog.text


def test_single_child_root_is_dropped():
    # root -> x, x -> (a, b, y), y -> (c, d)
    tree = TreeModel(
        [-1, 0, 1, 1, 1, 4, 4],
        labels=[None, None, "a", "b", None, "c", "d"],
        rooted=False,
    )
    rooted = root_at_outgroup(tree, "a")
    assert rooted.n_nodes == tree.n_nodes
    assert rooted.same_topology(TreeModel.from_nested(["a", ["b", ["c", "d"]]]))


def test_chain_of_single_child_nodes_is_dropped():
    tree = TreeModel.from_nested([[[["a", "b"], ["c", "d"]]]], rooted=False)
    rooted = root_at_outgroup(tree, ["a", "b"])
    assert rooted.same_topology(balanced_tree())
    assert rooted.n_nodes == 7
