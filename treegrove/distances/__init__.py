"""Distances between trees: tree-vector metric plus classic split and path metrics."""

from treegrove.distances.distances import (
    DISTANCE_METHODS,
    branch_score_distance,
    calculate_matrix_distance,
    distance_matrix,
    distance_matrix_function,
    path_difference_distance,
    reference_distances,
    robinson_foulds_distance,
    tree_distance,
    tree_distance_matrix,
    weighted_robinson_foulds_distance,
)

__all__ = [
    "DISTANCE_METHODS",
    "branch_score_distance",
    "calculate_matrix_distance",
    "distance_matrix",
    "distance_matrix_function",
    "path_difference_distance",
    "reference_distances",
    "robinson_foulds_distance",
    "tree_distance",
    "tree_distance_matrix",
    "weighted_robinson_foulds_distance",
]
