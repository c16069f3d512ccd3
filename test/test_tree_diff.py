import numpy as np
import pytest

from conftest import balanced_tree, crossed_tree
from treegrove.exceptions import TipSetMismatchError
from treegrove.tree import TreeModel
from treegrove.tree_diff import tip_difference_matrix, tip_differences

CATERPILLAR = TreeModel.from_nested([[["a", "b"], "c"], "d"])


def test_identical_topologies_have_no_differences():
    result = tip_differences(balanced_tree(), balanced_tree(ab=3.0, cd=0.1))
    assert result.counts == {"a": 0, "b": 0, "c": 0, "d": 0}
    assert result.total == 0
    assert result.differing_tips() == []
    assert result.intensities() == {"a": 0.0, "b": 0.0, "c": 0.0, "d": 0.0}


def test_swapped_pairs():
    result = tip_differences(balanced_tree(), crossed_tree())
    assert result.counts == {"a": 1, "b": 1, "c": 1, "d": 1}
    assert result.total == 4


def test_size_of_differences():
    result = tip_differences(balanced_tree(), crossed_tree(), size_of_differences=True)
    assert result.counts == {"a": 2, "b": 2, "c": 2, "d": 2}
    assert result.total == 8


def test_chains_of_different_length():
    result = tip_differences(balanced_tree(), CATERPILLAR)
    assert result.counts == {"a": 2, "b": 2, "c": 1, "d": 2}
    assert result.total == 7
    assert result.max_count == 2
    assert result.intensities()["c"] == pytest.approx(0.5)
    assert result.differing_tips() == ["a", "b", "c", "d"]


def test_symmetric():
    forward = tip_differences(balanced_tree(), CATERPILLAR)
    backward = tip_differences(CATERPILLAR, balanced_tree())
    assert forward.counts == backward.counts


def test_tip_set_mismatch():
    other = TreeModel.from_nested([["a", "b"], ["c", "e"]])
    with pytest.raises(TipSetMismatchError):
        tip_differences(balanced_tree(), other)


def test_difference_matrix():
    matrix = tip_difference_matrix([balanced_tree(), crossed_tree(), CATERPILLAR])
    assert matrix.dtype == np.int64
    np.testing.assert_array_equal(matrix, matrix.T)
    assert matrix[0, 1] == 4
    assert matrix[0, 2] == 7
    assert np.all(np.diag(matrix) == 0)
