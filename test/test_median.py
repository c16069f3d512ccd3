import numpy as np
import pytest

from treegrove.exceptions import EmptyGroupError
from treegrove.median import find_group_medians, find_median
from treegrove.vectorizer import vectorize_collection


def test_member_at_centroid():
    result = find_median(np.array([[0.0, 0.0], [2.0, 2.0], [1.0, 1.0]]))
    assert result.medians == (2,)
    assert result.median == 2
    assert result.min_distance == 0.0
    np.testing.assert_allclose(result.centroid, [1.0, 1.0])


def test_ties_are_all_reported():
    result = find_median(np.array([[1.0, 0.0], [-1.0, 0.0]]))
    assert result.medians == (0, 1)
    assert result.median == 0


def test_subgroup():
    vectors = np.array([[0.0], [5.0], [1.0], [9.0], [2.0]])
    result = find_median(vectors, group=[4, 0, 2])
    assert result.members == (4, 0, 2)
    assert result.medians == (2,)
    np.testing.assert_allclose(result.distances, [1.0, 1.0, 0.0])


def test_weighted_centroid():
    vectors = np.array([[0.0], [10.0], [4.0]])
    assert find_median(vectors, weights=[1.0, 0.0, 0.0]).medians == (0,)
    assert find_median(vectors, weights=[0.0, 1.0, 1.0]).medians == (1, 2)


@pytest.mark.parametrize("weights", [[1.0, 1.0], [-1.0, 1.0, 1.0], [0.0, 0.0, 0.0]])
def test_invalid_weights(weights):
    with pytest.raises(ValueError):
        find_median(np.zeros((3, 2)), weights=weights)


def test_empty_group():
    with pytest.raises(EmptyGroupError):
        find_median(np.zeros((3, 2)), group=[])


def test_duplicate_members():
    with pytest.raises(ValueError):
        find_median(np.zeros((3, 2)), group=[0, 0])


def test_medians_of_identical_topologies(two_cluster_trees):
    vectors = vectorize_collection(two_cluster_trees, lam=0.0)
    medians = find_group_medians(vectors, [1, 2, 1, 2, 1, 2])

    assert sorted(medians) == [1, 2]
    assert medians[1].medians == (0, 2, 4)
    assert medians[2].medians == (1, 3, 5)


def test_two_trees_tie_at_their_midpoint(scenario_a_trees):
    vectors = vectorize_collection(scenario_a_trees, lam=1.0)
    result = find_median(vectors, group=[1, 0])
    assert result.medians == (0, 1)
    assert result.distances[0] == pytest.approx(result.distances[1])
