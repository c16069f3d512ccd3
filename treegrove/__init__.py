"""Compare collections of phylogenetic trees: distances, tree space, groves and median trees."""

from treegrove.distances import (
    distance_matrix,
    reference_distances,
    tree_distance,
    tree_distance_matrix,
)
from treegrove.exceptions import (
    AxisCountError,
    EmptyGroupError,
    InvalidBranchLengthError,
    InvalidClusterCountError,
    InvalidTopologyError,
    TipSetMismatchError,
    TreeGroveError,
)
from treegrove.groves import GroveResult, find_groves, grove_silhouette
from treegrove.median import MedianResult, find_group_medians, find_median
from treegrove.rooting import normalize_rooting, root_at_outgroup
from treegrove.scaling import Embedding, principal_coordinates
from treegrove.tree import TreeModel, branch, validate_tip_sets
from treegrove.tree_diff import TipDiff, tip_differences
from treegrove.treespace import find_tree_groves, median_trees, sample_trees, treespace
from treegrove.types import GroveAnalysis, GroveConfig, TreespaceConfig, TreespaceResult
from treegrove.vectorizer import TreeVectors, tree_vector, vectorize_collection

__all__ = [
    "AxisCountError",
    "EmptyGroupError",
    "Embedding",
    "GroveAnalysis",
    "GroveConfig",
    "GroveResult",
    "InvalidBranchLengthError",
    "InvalidClusterCountError",
    "InvalidTopologyError",
    "MedianResult",
    "TipDiff",
    "TipSetMismatchError",
    "TreeGroveError",
    "TreeModel",
    "TreeVectors",
    "TreespaceConfig",
    "TreespaceResult",
    "branch",
    "distance_matrix",
    "find_group_medians",
    "find_groves",
    "find_median",
    "find_tree_groves",
    "grove_silhouette",
    "median_trees",
    "normalize_rooting",
    "principal_coordinates",
    "reference_distances",
    "root_at_outgroup",
    "sample_trees",
    "tip_differences",
    "tree_distance",
    "tree_distance_matrix",
    "tree_vector",
    "validate_tip_sets",
    "vectorize_collection",
]
