# partition.py
from typing import Tuple, FrozenSet, Dict, Iterator, List, Any, Optional
from functools import total_ordering


@total_ordering
class Partition:
    """
    A clade: the subset of tips below a node, stored as sorted tip indices
    and as a bitmask over a shared tip encoding.

    Two partitions are equal when their bitmasks are equal, so clades taken
    from different trees compare by tip membership only.
    """

    __slots__ = ("indices", "encoding", "bitmask", "_cached_reverse_encoding")

    def __init__(
        self, indices: Tuple[int, ...], encoding: Optional[Dict[str, int]] = None
    ):
        self.indices: Tuple[int, ...] = tuple(sorted(set(indices)))
        self.encoding: Dict[str, int] = encoding or {}
        bitmask = 0
        for idx in self.indices:
            bitmask |= 1 << idx
        self.bitmask: int = bitmask
        self._cached_reverse_encoding: Optional[Dict[int, str]] = None

    @classmethod
    def from_bitmask(
        cls, bitmask: int, encoding: Optional[Dict[str, int]] = None
    ) -> "Partition":
        indices: List[int] = []
        idx = 0
        remaining = bitmask
        while remaining:
            if remaining & 1:
                indices.append(idx)
            remaining >>= 1
            idx += 1
        return cls(tuple(indices), encoding)

    @classmethod
    def from_taxa(cls, names: Any, encoding: Dict[str, int]) -> "Partition":
        try:
            return cls(tuple(encoding[name] for name in names), encoding)
        except KeyError as e:
            raise ValueError(f"Unknown taxon name '{e.args[0]}' for this encoding")

    def __iter__(self) -> Iterator[int]:
        return iter(self.indices)

    def __len__(self) -> int:
        return len(self.indices)

    def __lt__(self, other: Any) -> bool:
        if isinstance(other, Partition):
            return self.indices < other.indices
        return NotImplemented

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Partition):
            return self.bitmask == other.bitmask
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self.bitmask)

    def __xor__(self, other: Any) -> "Partition":
        if isinstance(other, Partition):
            return Partition.from_bitmask(self.bitmask ^ other.bitmask, self.encoding)
        return NotImplemented

    @property
    def taxa(self) -> FrozenSet[str]:
        """
        Return the set of taxon names corresponding to the indices in this partition.
        """
        return frozenset(self.reverse_encoding[i] for i in self.indices)

    @property
    def reverse_encoding(self) -> Dict[int, str]:
        if self._cached_reverse_encoding is None:
            self._cached_reverse_encoding = {v: k for k, v in self.encoding.items()}
        return self._cached_reverse_encoding

    def __str__(self) -> str:
        taxa_names: List[str] = sorted(
            self.reverse_encoding.get(i, str(i)) for i in self.indices
        )
        return f"({', '.join(taxa_names)})"

    def __repr__(self) -> str:
        return f"Partition{self}"
