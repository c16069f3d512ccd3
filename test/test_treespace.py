import logging

import numpy as np
import pytest

from conftest import balanced_tree, crossed_tree
from treegrove import (
    AxisCountError,
    GroveConfig,
    TipSetMismatchError,
    TreeModel,
    TreespaceConfig,
    find_tree_groves,
    median_trees,
    sample_trees,
    treespace,
)


def test_treespace_scenario_a(scenario_a_trees):
    result = treespace(scenario_a_trees, TreespaceConfig(n_axes=2))

    expected = np.array([[0.0, 0.0, 2.0], [0.0, 0.0, 2.0], [2.0, 2.0, 0.0]])
    np.testing.assert_allclose(result.distance_matrix, expected)
    assert result.tip_order == ("a", "b", "c", "d")
    assert result.embedding.coordinates.shape == (3, 2)
    assert result.vectors.values.shape == (3, 10)
    np.testing.assert_allclose(
        result.embedding.reconstructed_distances(), expected, atol=1e-10
    )


def test_treespace_without_projection(scenario_a_trees):
    result = treespace(scenario_a_trees, TreespaceConfig(n_axes=0))
    assert result.embedding is None


def test_too_many_axes(scenario_a_trees):
    with pytest.raises(AxisCountError):
        treespace(scenario_a_trees, TreespaceConfig(n_axes=3))


def test_tip_mismatch_is_reported_first():
    trees = [balanced_tree(), TreeModel.from_nested([["a", "b"], ["c", "x"]])]
    with pytest.raises(TipSetMismatchError):
        treespace(trees, TreespaceConfig(n_axes=1))


@pytest.mark.parametrize("method", ["rf", "wrf", "kf", "path"])
def test_other_metrics(method, scenario_a_trees):
    result = treespace(scenario_a_trees, TreespaceConfig(n_axes=1, method=method))
    assert result.vectors is None
    assert result.distance_matrix[0, 2] > 0


def test_unrooted_trees_are_rooted_on_outgroup():
    trees = [
        TreeModel.from_nested([["a", "b"], ["c", "d"]], rooted=False),
        TreeModel.from_nested(["a", ["b", ["c", "d"]]], rooted=False),
        crossed_tree(rooted=False),
    ]
    result = treespace(trees, TreespaceConfig(n_axes=1, outgroup="a"))
    assert result.distance_matrix[0, 1] == 0.0
    assert result.distance_matrix[0, 2] > 0.0


def test_unrooted_without_outgroup_warns(caplog):
    trees = [balanced_tree(rooted=False), crossed_tree(rooted=False)]
    with caplog.at_level(logging.WARNING):
        treespace(trees, TreespaceConfig(n_axes=1))
    assert "without an outgroup" in caplog.text


def test_find_tree_groves(two_cluster_trees):
    analysis = find_tree_groves(
        two_cluster_trees, GroveConfig(n_groves=2), TreespaceConfig(n_axes=2)
    )
    np.testing.assert_array_equal(analysis.groves.groups, [1, 2, 1, 2, 1, 2])
    assert analysis.medians[1].medians == (0, 2, 4)
    assert analysis.medians[2].medians == (1, 3, 5)
    assert analysis.treespace.embedding.n_axes == 2


def test_find_tree_groves_on_embedding(two_cluster_trees):
    analysis = find_tree_groves(
        two_cluster_trees,
        GroveConfig(n_groves=2, linkage="average", cluster_on="embedding"),
        TreespaceConfig(n_axes=2),
    )
    np.testing.assert_array_equal(analysis.groves.groups, [1, 2, 1, 2, 1, 2])


def test_embedding_clustering_needs_axes(two_cluster_trees):
    with pytest.raises(ValueError):
        find_tree_groves(
            two_cluster_trees,
            GroveConfig(n_groves=2, cluster_on="embedding"),
            TreespaceConfig(n_axes=0),
        )


def test_unknown_cluster_target(two_cluster_trees):
    with pytest.raises(ValueError, match="cluster_on"):
        find_tree_groves(two_cluster_trees, GroveConfig(n_groves=2, cluster_on="vectors"))


def test_groves_without_vectors_have_no_medians(two_cluster_trees):
    analysis = find_tree_groves(
        two_cluster_trees, GroveConfig(n_groves=2), TreespaceConfig(method="rf")
    )
    assert analysis.medians == {}
    np.testing.assert_array_equal(analysis.groves.groups, [1, 2, 1, 2, 1, 2])


def test_median_trees(scenario_a_trees):
    medians = median_trees(scenario_a_trees)
    assert list(medians) == [1]
    assert medians[1].medians == (0, 1)

    grouped = median_trees(scenario_a_trees, groups=[1, 1, 2])
    assert grouped[2].medians == (2,)


def test_median_trees_need_vectors(scenario_a_trees):
    with pytest.raises(ValueError):
        median_trees(scenario_a_trees, TreespaceConfig(method="rf"))
    with pytest.raises(ValueError):
        median_trees(scenario_a_trees, groups=[1, 2])


def test_sample_trees_is_reproducible(two_cluster_trees):
    first_indices, first_trees = sample_trees(two_cluster_trees, 3, seed=42)
    second_indices, _ = sample_trees(two_cluster_trees, 3, seed=42)

    assert first_indices == second_indices
    assert first_indices == sorted(set(first_indices))
    assert len(first_indices) == 3
    assert first_trees == [two_cluster_trees[i] for i in first_indices]


def test_sample_size_out_of_range(two_cluster_trees):
    with pytest.raises(ValueError):
        sample_trees(two_cluster_trees, 7, seed=1)


def test_default_axes_fit_small_collections():
    trees = [balanced_tree(), crossed_tree(), balanced_tree(ab=2.0), crossed_tree(ac=2.0)]
    analysis = find_tree_groves(trees, GroveConfig(n_groves=2))

    np.testing.assert_array_equal(analysis.groves.groups, [1, 2, 1, 2])
    assert analysis.treespace.embedding.n_axes == 3


def test_default_axes_capped_at_five(two_cluster_trees):
    trees = two_cluster_trees + [balanced_tree(ab=0.1), crossed_tree(ac=0.1)]
    result = treespace(trees)
    assert result.embedding.n_axes == 5


def test_explicit_axis_count_is_checked():
    trees = [balanced_tree(), crossed_tree(), balanced_tree(ab=2.0), crossed_tree(ac=2.0)]
    with pytest.raises(AxisCountError):
        treespace(trees, TreespaceConfig(n_axes=4))


def test_pipeline_is_repeatable(two_cluster_trees):
    grove_config = GroveConfig(n_groves=2, linkage="average")
    first = find_tree_groves(
        two_cluster_trees, grove_config, TreespaceConfig(n_axes=3, lam=0.4, n_jobs=1)
    )
    second = find_tree_groves(
        two_cluster_trees, grove_config, TreespaceConfig(n_axes=3, lam=0.4, n_jobs=4)
    )

    assert np.array_equal(first.treespace.distance_matrix, second.treespace.distance_matrix)
    assert np.array_equal(
        first.treespace.embedding.coordinates, second.treespace.embedding.coordinates
    )
    assert np.array_equal(first.groves.groups, second.groves.groups)
    assert np.array_equal(first.groves.linkage, second.groves.linkage)
    assert {k: v.medians for k, v in first.medians.items()} == {
        k: v.medians for k, v in second.medians.items()
    }
