"""
Custom exceptions for tree-space comparison.

Every error also derives from ``ValueError``: all of them describe input the
caller has to correct before the request can succeed.
"""

from __future__ import annotations
from typing import TYPE_CHECKING, Iterable, NoReturn

if TYPE_CHECKING:
    from treegrove.tree import TreeModel


class TreeGroveError(Exception):
    """Base exception for tree-space comparison errors."""

    pass


class TipSetMismatchError(TreeGroveError, ValueError):
    """Raised when trees in a collection disagree on their tip labels."""

    @staticmethod
    def raise_for_trees(
        index: int, expected: Iterable[str], tree: TreeModel
    ) -> NoReturn:
        """
        Raise a TipSetMismatchError describing how tree ``index`` deviates.

        Args:
            index: Position of the offending tree in the collection
            expected: The tip labels of the first tree of the collection
            tree: The offending tree

        Raises:
            TipSetMismatchError: Always raised with the missing and extra labels
        """
        expected_set = set(expected)
        observed_set = set(tree.tip_labels)
        missing = sorted(expected_set - observed_set)
        extra = sorted(observed_set - expected_set)
        raise TipSetMismatchError(
            f"Tree {index} does not share the tip set of tree 0. "
            f"Missing tips: {missing}, unexpected tips: {extra}."
        )


class InvalidTopologyError(TreeGroveError, ValueError):
    """Raised when a tree structure is cyclic, disconnected or malformed."""

    pass


class InvalidBranchLengthError(TreeGroveError, ValueError):
    """Raised when an edge length is negative or not finite."""

    pass


class AxisCountError(TreeGroveError, ValueError):
    """Raised when the requested number of projection axes is out of range."""

    pass


class InvalidClusterCountError(TreeGroveError, ValueError):
    """Raised when the requested number of groves is out of range."""

    pass


class EmptyGroupError(TreeGroveError, ValueError):
    """Raised when a median is requested for a group without members."""

    pass
