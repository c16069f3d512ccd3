from __future__ import annotations
import logging
import math
from typing import (
    Any,
    Dict,
    FrozenSet,
    Iterable,
    List,
    Mapping,
    NamedTuple,
    Optional,
    Sequence,
    Tuple,
)

from treegrove.elements.partition import Partition
from treegrove.exceptions import (
    InvalidBranchLengthError,
    InvalidTopologyError,
    TipSetMismatchError,
)

logger = logging.getLogger(__name__)


class Branch(NamedTuple):
    """A subtree together with the length of the edge above it."""

    subtree: Any
    length: Optional[float]


def branch(subtree: Any, length: Optional[float]) -> Branch:
    """Attach an edge length to a subtree in a nested tree description."""
    return Branch(subtree, length)


class TreeModel:
    """
    Immutable tree over a set of labelled tips.

    Nodes are the integers ``0 .. n_nodes - 1``. Every node except the root
    has exactly one parent; the length stored for a node is the length of the
    edge above it. Tips are nodes without children and always carry a label.

    Using __slots__ and tuples keeps instances read-only after construction,
    so a TreeModel can be shared freely between worker threads.
    """

    __slots__ = (
        "_parent",
        "_children",
        "_lengths",
        "_labels",
        "_root",
        "_rooted",
        "_tip_index",
        "_preorder",
        "_depths",
        "_root_distances",
    )

    _parent: Tuple[int, ...]
    _children: Tuple[Tuple[int, ...], ...]
    _lengths: Tuple[Optional[float], ...]
    _labels: Tuple[Optional[str], ...]
    _root: int
    _rooted: bool
    _tip_index: Dict[str, int]
    _preorder: Tuple[int, ...]
    _depths: Tuple[int, ...]
    _root_distances: Tuple[float, ...]

    def __init__(
        self,
        parent: Sequence[int],
        lengths: Optional[Sequence[Optional[float]]] = None,
        labels: Optional[Sequence[Optional[str]]] = None,
        rooted: bool = True,
    ):
        """
        Build a tree from a parent array.

        Args:
            parent: ``parent[v]`` is the parent of node ``v``, ``-1`` for the root
            lengths: Length of the edge above each node, ``None`` when unknown
            labels: Label of each node; required for tips, optional otherwise
            rooted: Whether the stored root is biologically meaningful

        Raises:
            InvalidTopologyError: If the structure is not a single rooted tree
            InvalidBranchLengthError: If an edge length is negative or not finite
        """
        n = len(parent)
        if n == 0:
            raise InvalidTopologyError("A tree needs at least one node")
        lengths = list(lengths) if lengths is not None else [None] * n
        labels = list(labels) if labels is not None else [None] * n
        if len(lengths) != n or len(labels) != n:
            raise InvalidTopologyError(
                f"Expected {n} lengths and labels, got {len(lengths)} and {len(labels)}"
            )

        roots = [v for v, p in enumerate(parent) if p == -1]
        if not roots:
            raise InvalidTopologyError(
                "No root found: every node has a parent, so the structure contains a cycle"
            )
        if len(roots) > 1:
            raise InvalidTopologyError(
                f"Structure is disconnected: found {len(roots)} nodes without a parent {roots}"
            )

        children: List[List[int]] = [[] for _ in range(n)]
        for v, p in enumerate(parent):
            if p == -1:
                continue
            if not 0 <= p < n:
                raise InvalidTopologyError(f"Node {v} refers to unknown parent {p}")
            if p == v:
                raise InvalidTopologyError(f"Node {v} is its own parent")
            children[p].append(v)

        root = roots[0]
        preorder: List[int] = []
        stack = [root]
        while stack:
            current = stack.pop()
            preorder.append(current)
            for child in reversed(children[current]):
                stack.append(child)
        if len(preorder) != n:
            unreachable = sorted(set(range(n)) - set(preorder))
            raise InvalidTopologyError(
                f"Nodes {unreachable} are not reachable from the root; "
                "their parent links form a cycle"
            )

        tip_index: Dict[str, int] = {}
        for v in range(n):
            if children[v]:
                continue
            label = labels[v]
            if label is None or label == "":
                raise InvalidTopologyError(f"Tip node {v} has no label")
            if label in tip_index:
                raise InvalidTopologyError(f"Duplicate tip label '{label}'")
            tip_index[label] = v
        if len(tip_index) < 2:
            raise InvalidTopologyError("A tree needs at least two tips")

        checked_lengths: List[Optional[float]] = []
        for v, length in enumerate(lengths):
            if length is None:
                checked_lengths.append(None)
                continue
            try:
                value = float(length)
            except (TypeError, ValueError) as e:
                raise InvalidBranchLengthError(
                    f"Edge above node {v} has non-numeric length {length!r}"
                ) from e
            if not math.isfinite(value) or value < 0:
                raise InvalidBranchLengthError(
                    f"Edge above node {v} has invalid length {length}; "
                    "lengths must be finite and non-negative"
                )
            checked_lengths.append(value)

        depths = [0] * n
        root_distances = [0.0] * n
        for v in preorder:
            p = parent[v]
            if p == -1:
                continue
            depths[v] = depths[p] + 1
            root_distances[v] = root_distances[p] + (checked_lengths[v] or 0.0)

        self._parent = tuple(parent)
        self._children = tuple(tuple(c) for c in children)
        self._lengths = tuple(checked_lengths)
        self._labels = tuple(labels)
        self._root = root
        self._rooted = bool(rooted)
        self._tip_index = tip_index
        self._preorder = tuple(preorder)
        self._depths = tuple(depths)
        self._root_distances = tuple(root_distances)

    # ------------------------------------------------------------------------
    # Construction helpers
    # ------------------------------------------------------------------------

    @classmethod
    def from_edges(
        cls,
        edges: Iterable[Tuple[int, int]],
        tip_labels: Mapping[int, str],
        lengths: Optional[Mapping[int, float]] = None,
        rooted: bool = True,
    ) -> "TreeModel":
        """
        Build a tree from ``(parent, child)`` pairs of caller node ids.

        Node ids may be any integers; they are renumbered in ascending order.
        ``lengths`` maps a child id to the length of the edge above it.
        """
        edge_list = [(int(p), int(c)) for p, c in edges]
        node_ids = sorted(
            {p for p, _ in edge_list} | {c for _, c in edge_list} | set(tip_labels)
        )
        position = {node_id: i for i, node_id in enumerate(node_ids)}

        parent = [-1] * len(node_ids)
        for p, c in edge_list:
            if p == c:
                raise InvalidTopologyError(f"Edge ({p}, {c}) forms a self-loop")
            if parent[position[c]] != -1:
                raise InvalidTopologyError(
                    f"Node {c} has more than one parent; the structure is not a tree"
                )
            parent[position[c]] = position[p]

        node_lengths: List[Optional[float]] = [None] * len(node_ids)
        for node_id, length in (lengths or {}).items():
            if node_id not in position:
                raise InvalidTopologyError(f"Length given for unknown node {node_id}")
            node_lengths[position[node_id]] = length

        labels: List[Optional[str]] = [None] * len(node_ids)
        for node_id, label in tip_labels.items():
            labels[position[node_id]] = label

        return cls(parent, node_lengths, labels, rooted=rooted)

    @classmethod
    def from_nested(cls, structure: Any, rooted: bool = True) -> "TreeModel":
        """
        Build a tree from nested lists or tuples of tip labels.

        Any element may be wrapped with :func:`branch` to give the edge above
        it a length, e.g. ``[branch(["a", "b"], 0.5), branch("c", 1.0)]``.
        """
        parent: List[int] = []
        lengths: List[Optional[float]] = []
        labels: List[Optional[str]] = []

        def _add(item: Any, parent_id: int) -> None:
            length: Optional[float] = None
            if isinstance(item, Branch):
                item, length = item.subtree, item.length
            node_id = len(parent)
            parent.append(parent_id)
            lengths.append(length)
            if isinstance(item, str):
                labels.append(item)
                return
            if not isinstance(item, (list, tuple)) or len(item) == 0:
                raise InvalidTopologyError(
                    f"Expected a tip label or a non-empty list of subtrees, got {item!r}"
                )
            labels.append(None)
            for child in item:
                _add(child, node_id)

        _add(structure, -1)
        return cls(parent, lengths, labels, rooted=rooted)

    def to_nested(self) -> Any:
        """Inverse of :meth:`from_nested`, children in node-id order."""

        def _build(node: int) -> Any:
            if self.is_tip(node):
                item: Any = self._labels[node]
            else:
                item = [_build(child) for child in self._children[node]]
            length = self._lengths[node]
            return Branch(item, length) if length is not None else item

        return _build(self._root)

    # ------------------------------------------------------------------------
    # Structure access
    # ------------------------------------------------------------------------

    @property
    def root(self) -> int:
        return self._root

    @property
    def rooted(self) -> bool:
        return self._rooted

    @property
    def n_nodes(self) -> int:
        return len(self._parent)

    @property
    def n_tips(self) -> int:
        return len(self._tip_index)

    @property
    def tip_labels(self) -> Tuple[str, ...]:
        """Sorted tuple of tip labels."""
        return tuple(sorted(self._tip_index))

    def parent(self, node: int) -> Optional[int]:
        p = self._parent[node]
        return None if p == -1 else p

    def children(self, node: int) -> Tuple[int, ...]:
        return self._children[node]

    def edge_length(self, node: int) -> Optional[float]:
        return self._lengths[node]

    def label(self, node: int) -> Optional[str]:
        return self._labels[node]

    def is_tip(self, node: int) -> bool:
        return not self._children[node]

    def tip_node(self, label: str) -> int:
        try:
            return self._tip_index[label]
        except KeyError:
            raise ValueError(f"Unknown tip label '{label}'")

    def traverse(self) -> Tuple[int, ...]:
        """Nodes in pre-order, children visited in node-id order."""
        return self._preorder

    def postorder(self) -> Tuple[int, ...]:
        """Nodes ordered so that every child precedes its parent."""
        return tuple(reversed(self._preorder))

    def ancestors(self, node: int) -> Tuple[int, ...]:
        """Ancestors of ``node`` from its parent up to the root."""
        path: List[int] = []
        current = self._parent[node]
        while current != -1:
            path.append(current)
            current = self._parent[current]
        return tuple(path)

    def topological_depths(self) -> Tuple[int, ...]:
        """Number of edges from the root to each node."""
        return self._depths

    def root_distances(self) -> Tuple[float, ...]:
        """Summed edge length from the root to each node; unknown lengths count 0."""
        return self._root_distances

    def mrca(self, a: int, b: int) -> int:
        """Most recent common ancestor of two nodes."""
        depths = self._depths
        while depths[a] > depths[b]:
            a = self._parent[a]
        while depths[b] > depths[a]:
            b = self._parent[b]
        while a != b:
            a = self._parent[a]
            b = self._parent[b]
        return a

    # ------------------------------------------------------------------------
    # Clades & splits
    # ------------------------------------------------------------------------

    def encoding(self, tip_order: Optional[Sequence[str]] = None) -> Dict[str, int]:
        """Map each tip label to its index in ``tip_order`` (sorted labels by default)."""
        order = tuple(tip_order) if tip_order is not None else self.tip_labels
        if set(order) != set(self._tip_index) or len(order) != len(self._tip_index):
            raise TipSetMismatchError(
                "Tip order does not list exactly the tips of this tree: "
                f"{sorted(order)} vs {list(self.tip_labels)}"
            )
        return {name: i for i, name in enumerate(order)}

    def clades(self, encoding: Optional[Dict[str, int]] = None) -> Tuple[Partition, ...]:
        """The clade (set of descendant tips) of every node, indexed by node."""
        encoding = encoding if encoding is not None else self.encoding()
        masks = [0] * self.n_nodes
        for node in self.postorder():
            if self.is_tip(node):
                masks[node] = 1 << encoding[self._labels[node]]  # type: ignore[index]
            else:
                mask = 0
                for child in self._children[node]:
                    mask |= masks[child]
                masks[node] = mask
        return tuple(Partition.from_bitmask(m, encoding) for m in masks)

    def clade(self, node: int, encoding: Optional[Dict[str, int]] = None) -> Partition:
        return self.clades(encoding)[node]

    def splits(self, encoding: Optional[Dict[str, int]] = None) -> FrozenSet[Partition]:
        """
        Non-trivial splits of the tree.

        Rooted trees yield the clades of their internal non-root nodes.
        Unrooted trees yield each bipartition once, as the side not holding
        tip index 0, so the stored root position does not matter.
        """
        encoding = encoding if encoding is not None else self.encoding()
        n_tips = len(encoding)
        full_mask = (1 << n_tips) - 1
        result = set()
        for node, clade in enumerate(self.clades(encoding)):
            if node == self._root or self.is_tip(node):
                continue
            mask = clade.bitmask
            if not self._rooted:
                if mask & 1:
                    mask = full_mask ^ mask
                size = bin(mask).count("1")
                if size < 2 or size > n_tips - 2:
                    continue
            elif bin(mask).count("1") >= n_tips:
                continue
            result.add(Partition.from_bitmask(mask, encoding))
        return frozenset(result)

    def split_lengths(
        self, encoding: Optional[Dict[str, int]] = None, with_tips: bool = True
    ) -> Dict[Partition, float]:
        """
        Edge length for each split, tips included by default.

        Used by branch-length aware split metrics. For unrooted trees the two
        edges below the stored root describe the same bipartition and their
        lengths are summed.
        """
        encoding = encoding if encoding is not None else self.encoding()
        full_mask = (1 << len(encoding)) - 1
        result: Dict[Partition, float] = {}
        for node, clade in enumerate(self.clades(encoding)):
            if node == self._root:
                continue
            if self.is_tip(node) and not with_tips:
                continue
            mask = clade.bitmask
            if not self._rooted and not self.is_tip(node) and mask & 1:
                mask = full_mask ^ mask
            key = Partition.from_bitmask(mask, encoding)
            result[key] = result.get(key, 0.0) + (self._lengths[node] or 0.0)
        return result

    def same_topology(self, other: "TreeModel") -> bool:
        """True if both trees have the same tips and the same splits."""
        if set(self.tip_labels) != set(other.tip_labels):
            return False
        encoding = self.encoding()
        return self.splits(encoding) == other.splits(encoding)

    def __repr__(self) -> str:
        kind = "rooted" if self._rooted else "unrooted"
        return f"TreeModel({self.n_tips} tips, {self.n_nodes} nodes, {kind})"


def validate_tip_sets(trees: Sequence[TreeModel]) -> Tuple[str, ...]:
    """
    Check that every tree carries the same tip labels.

    Returns:
        The shared tip labels in sorted order.

    Raises:
        ValueError: If the collection is empty
        TipSetMismatchError: If any tree's tip set differs from the first tree's
    """
    if len(trees) == 0:
        raise ValueError("Expected a non-empty collection of trees")
    expected = trees[0].tip_labels
    for index, tree in enumerate(trees[1:], start=1):
        if tree.tip_labels != expected:
            TipSetMismatchError.raise_for_trees(index, expected, tree)
    logger.debug("Validated tip set of %d trees (%d tips)", len(trees), len(expected))
    return expected


def resolve_tip_order(
    trees: Sequence[TreeModel], tip_order: Optional[Sequence[str]] = None
) -> Tuple[str, ...]:
    """Validate the collection and return the tip order all vectors align on."""
    labels = validate_tip_sets(trees)
    if tip_order is None:
        return labels
    order = tuple(tip_order)
    if len(order) != len(labels) or set(order) != set(labels):
        raise TipSetMismatchError(
            f"Tip order {list(order)} does not list exactly the shared tips {list(labels)}"
        )
    return order
