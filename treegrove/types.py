"""Parameter structs and result containers for the tree-space pipeline."""

from dataclasses import dataclass
from typing import Dict, Optional, Sequence, Tuple, Union

import numpy as np
from numpy.typing import NDArray

from treegrove.groves import GroveResult
from treegrove.median import MedianResult
from treegrove.scaling import Embedding
from treegrove.vectorizer import TreeVectors

DEFAULT_AXES = 5


@dataclass(frozen=True)
class TreespaceConfig:
    """Configuration for building a tree space."""

    n_axes: Optional[int] = None
    """Principal axes to keep; 0 skips the projection. ``None`` keeps
    ``min(DEFAULT_AXES, n_trees - 1)`` axes."""

    lam: float = 0.0
    """Branch-length weight of the tree-vector metric (0 = topology only)."""

    method: str = "treevec"
    """One of ``treevec``, ``rf``, ``wrf``, ``kf``, ``path``."""

    emphasise_tips: Optional[Tuple[str, ...]] = None
    emphasise_weight: float = 2.0

    outgroup: Optional[Union[str, Sequence[str]]] = None
    """Outgroup used to root unrooted trees before comparison."""

    correction: Optional[str] = None
    """Euclidean correction for non-Euclidean metrics (``"lingoes"``)."""

    n_jobs: Optional[int] = None
    progress: bool = False


@dataclass(frozen=True)
class GroveConfig:
    """Configuration for grove finding."""

    n_groves: int
    linkage: str = "single"
    cluster_on: str = "distances"
    """``distances`` clusters on the full distance matrix, ``embedding`` on
    Euclidean distances between the PCoA coordinates."""


@dataclass(frozen=True)
class TreespaceResult:
    distance_matrix: NDArray[np.float64]
    embedding: Optional[Embedding]
    tip_order: Tuple[str, ...]
    vectors: Optional[TreeVectors] = None
    """Tree vectors; only for the ``treevec`` method."""


@dataclass(frozen=True)
class GroveAnalysis:
    treespace: TreespaceResult
    groves: GroveResult
    medians: Dict[int, MedianResult]
