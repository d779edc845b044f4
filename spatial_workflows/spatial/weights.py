"""
Spatial weights module for spatial workflows.

This module provides the SpatialWeights class, the canonical in-memory
representation of a weighted neighbour relationship (unit id -> neighbour ids
and weights). Every external representation (libpysal W, dense and sparse
matrices, plain-text files) is produced from it by a conversion function, and
consumers receive fresh copies rather than shared mutable objects.
"""
import logging
import warnings
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Hashable, List, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse
import libpysal.weights as weights

from spatial_workflows.core.exceptions import ConnectivityError, ConnectivityWarning, ValidationError
from spatial_workflows.spatial.neighbors import Neighbors, ConnectivitySummary, connectivity_summary

# Initialize logger
logger = logging.getLogger(__name__)

TRANSFORMS = ('r', 'b', 'o')
ISLAND_POLICIES = ('error', 'exclude', 'zero_fill')


@dataclass(frozen=True)
class SpatialWeights:
    """
    Weighted neighbour relationship with a normalisation label.

    Attributes:
        ids: Unit identifiers in matrix order.
        neighbors: Mapping of unit id to its ordered neighbour ids.
        weights: Mapping of unit id to the weights aligned with its neighbours.
        transform: Normalisation applied ('r' row-standardised, 'b' binary,
            'o' original).
        dropped: Identifiers removed by the island policy.
        original: Untransformed weights aligned with ``neighbors``. Equal to
            ``weights`` when the transform is 'o'; None when only
            normalised values are known (e.g. read from a file).
    """
    ids: Tuple[Hashable, ...]
    neighbors: Mapping[Hashable, Tuple[Hashable, ...]]
    weights: Mapping[Hashable, Tuple[float, ...]]
    transform: str = 'o'
    dropped: Tuple[Hashable, ...] = field(default=())
    original: Optional[Mapping[Hashable, Tuple[float, ...]]] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        if self.transform not in TRANSFORMS:
            raise ValidationError(f"Unknown weights transform: {self.transform}")

        ids = tuple(self.ids)
        known = set(ids)
        if len(known) != len(ids):
            raise ValidationError("Weights identifiers are not unique")

        neighbors = {}
        wts = {}
        for uid in ids:
            nbs = tuple(self.neighbors.get(uid, ()))
            ws = tuple(float(v) for v in self.weights.get(uid, ()))
            if len(nbs) != len(ws):
                raise ValidationError(f"Unit {uid!r} has {len(nbs)} neighbours but {len(ws)} weights")
            if uid in nbs:
                raise ValidationError(f"Unit {uid!r} lists itself as a neighbour")
            unknown = [nb for nb in nbs if nb not in known]
            if unknown:
                raise ValidationError(f"Unit {uid!r} has unknown neighbours {unknown[:5]}")
            neighbors[uid] = nbs
            wts[uid] = ws

        if self.transform == 'o':
            original = wts
        elif self.original is None:
            original = None
        else:
            original = {}
            for uid in ids:
                ws = tuple(float(v) for v in self.original.get(uid, ()))
                if len(ws) != len(neighbors[uid]):
                    raise ValidationError(
                        f"Unit {uid!r} has {len(neighbors[uid])} neighbours but {len(ws)} original weights"
                    )
                original[uid] = ws

        object.__setattr__(self, 'ids', ids)
        object.__setattr__(self, 'neighbors', MappingProxyType(neighbors))
        object.__setattr__(self, 'weights', MappingProxyType(wts))
        object.__setattr__(self, 'dropped', tuple(self.dropped))
        object.__setattr__(self, 'original', None if original is None else MappingProxyType(original))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def from_neighbors(
        cls, nb: Neighbors, transform: str = 'r', island_policy: str = 'zero_fill'
    ) -> "SpatialWeights":
        """
        Create weights from a neighbour relationship.

        Each link gets an original weight of 1, then the normalisation is
        applied through libpysal.

        Args:
            nb: Neighbour relationship.
            transform: 'r', 'b' or 'o'.
            island_policy: 'error', 'exclude' or 'zero_fill'.

        Returns:
            SpatialWeights.

        Raises:
            ConnectivityError: If islands exist and the policy is 'error'.
        """
        logger.info(f"Creating {transform} weights from {nb.rule} neighbours (island policy: {island_policy})")

        binary = cls(
            ids=nb.ids,
            neighbors=nb.neighbors,
            weights={uid: (1.0,) * len(nb.neighbors[uid]) for uid in nb.ids},
            transform='o',
        )
        return binary.apply_island_policy(island_policy).with_transform(transform)

    @classmethod
    def from_libpysal(cls, w: weights.W) -> "SpatialWeights":
        """
        Create weights from a libpysal W, preserving its id order and transform.

        The untransformed weights libpysal keeps under ``transformations['O']``
        are carried along, so the result can still be restored to 'o'.
        """
        transform = w.transform.lower()
        if transform not in TRANSFORMS:
            raise ValidationError(f"Unsupported libpysal transform: {w.transform}")

        ids = tuple(w.id_order)
        original = w.transformations.get('O')
        return cls(
            ids=ids,
            neighbors={uid: tuple(w.neighbors[uid]) for uid in ids},
            weights={uid: tuple(w.weights[uid]) for uid in ids},
            transform=transform,
            original=None if original is None else {uid: tuple(original[uid]) for uid in ids},
        )

    @classmethod
    def from_dense(
        cls, matrix: Any, ids: Optional[Sequence[Hashable]] = None, transform: str = 'o'
    ) -> "SpatialWeights":
        """Create weights from a dense (n, n) array; non-zero cells become links."""
        matrix = np.asarray(matrix, dtype=float)
        if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
            raise ValidationError(f"Weights matrix must be square, got shape {matrix.shape}")
        n = matrix.shape[0]
        ids = tuple(range(n)) if ids is None else tuple(ids)
        if len(ids) != n:
            raise ValidationError(f"Got {len(ids)} identifiers for a {n}x{n} matrix")
        if np.any(np.diag(matrix) != 0):
            raise ValidationError("Weights matrix has non-zero diagonal entries")

        neighbors, wts = {}, {}
        for i, uid in enumerate(ids):
            cols = np.flatnonzero(matrix[i])
            neighbors[uid] = tuple(ids[j] for j in cols)
            wts[uid] = tuple(matrix[i, cols].tolist())
        return cls(ids=ids, neighbors=neighbors, weights=wts, transform=transform)

    # ------------------------------------------------------------------
    # Policies and normalisation
    # ------------------------------------------------------------------

    def apply_island_policy(self, policy: str = 'zero_fill') -> "SpatialWeights":
        """
        Apply an island policy, returning new weights.

        'error' raises ConnectivityError when islands exist, 'exclude' drops
        them (see ``dropped`` and ``ids`` to subset data), 'zero_fill' keeps
        them with an all-zero row.
        """
        if policy not in ISLAND_POLICIES:
            raise ValidationError(f"Unknown island policy: {policy}")

        islands = self.islands
        if not islands:
            return self

        if policy == 'error':
            raise ConnectivityError(f"{len(islands)} island(s) with no neighbours: {islands[:10]}")

        if policy == 'zero_fill':
            msg = f"Keeping {len(islands)} island(s) with zero weight rows: {islands[:10]}"
            logger.warning(msg)
            warnings.warn(msg, ConnectivityWarning, stacklevel=2)
            return self

        drop = set(islands)
        kept = tuple(uid for uid in self.ids if uid not in drop)
        neighbors, wts = {}, {}
        original = None if self.original is None else {}
        for uid in kept:
            keep = [pos for pos, nb in enumerate(self.neighbors[uid]) if nb not in drop]
            neighbors[uid] = tuple(self.neighbors[uid][pos] for pos in keep)
            wts[uid] = tuple(self.weights[uid][pos] for pos in keep)
            if original is not None:
                original[uid] = tuple(self.original[uid][pos] for pos in keep)

        msg = f"Excluded {len(islands)} island(s): {islands[:10]}"
        logger.warning(msg)
        warnings.warn(msg, ConnectivityWarning, stacklevel=2)

        result = SpatialWeights(
            ids=kept, neighbors=neighbors, weights=wts,
            transform=self.transform, dropped=self.dropped + tuple(islands), original=original,
        )
        if result.islands:
            logger.warning(f"Excluding islands left {len(result.islands)} unit(s) without neighbours")
        return result

    def with_transform(self, transform: str) -> "SpatialWeights":
        """
        Return new weights under a different normalisation.

        The original weights are loaded into a fresh libpysal W and its
        transform is applied, so any transform can be reached from any other
        and 'o' restores the untransformed values.

        Raises:
            ValidationError: If the transform is unknown, or 'o' is requested
                while the original weights are not known.
        """
        if transform not in TRANSFORMS:
            raise ValidationError(f"Unknown weights transform: {transform}")
        if transform == self.transform:
            return self

        if self.original is None:
            if transform == 'o':
                raise ValidationError(
                    f"Original weights are not available for '{self.transform}' weights; cannot restore 'o'"
                )
            source = self.weights
        else:
            source = self.original

        w = self._build_w(source)
        if transform != 'o':
            w.transform = transform

        return SpatialWeights(
            ids=self.ids,
            neighbors=self.neighbors,
            weights={uid: tuple(w.weights[uid]) for uid in self.ids},
            transform=transform,
            dropped=self.dropped,
            original=self.original,
        )


    def row_standardize(self) -> "SpatialWeights":
        return self.with_transform('r')

    # ------------------------------------------------------------------
    # Conversions
    # ------------------------------------------------------------------

    def _build_w(self, source: Optional[Mapping[Hashable, Tuple[float, ...]]] = None) -> weights.W:
        source = self.weights if source is None else source
        return weights.W(
            {uid: list(self.neighbors[uid]) for uid in self.ids},
            {uid: list(source[uid]) for uid in self.ids},
            id_order=list(self.ids),
            silence_warnings=True,
        )

    def to_libpysal(self) -> weights.W:
        """
        Fresh libpysal W carrying these weights.

        A new object is built on every call so that libraries which set
        ``w.transform`` never alter the shared weights.
        """
        w = self._build_w(self.original)
        if self.transform != 'o':
            w.transform = self.transform
        return w

    def to_sparse(self) -> sparse.csr_matrix:
        """Sparse (n, n) weights matrix in id order."""
        index = self.index
        rows, cols, data = [], [], []
        for uid in self.ids:
            i = index[uid]
            for nb, w in zip(self.neighbors[uid], self.weights[uid]):
                rows.append(i)
                cols.append(index[nb])
                data.append(w)
        return sparse.csr_matrix((data, (rows, cols)), shape=(self.n, self.n))

    def to_dense(self) -> np.ndarray:
        """Dense (n, n) weights matrix in id order."""
        return self.to_sparse().toarray()

    def to_frame(self) -> pd.DataFrame:
        """Dense weights as a DataFrame indexed and labelled by unit id."""
        return pd.DataFrame(self.to_dense(), index=list(self.ids), columns=list(self.ids))

    def to_neighbors(self) -> Neighbors:
        return Neighbors(ids=self.ids, neighbors=dict(self.neighbors), rule='weights')

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def n(self) -> int:
        return len(self.ids)

    @property
    def index(self) -> Dict[Hashable, int]:
        return {uid: pos for pos, uid in enumerate(self.ids)}

    @property
    def islands(self) -> List[Hashable]:
        return [uid for uid in self.ids if not self.neighbors[uid]]

    @property
    def s0(self) -> float:
        """Sum of all weights."""
        return float(sum(sum(ws) for ws in self.weights.values()))

    def neighbors_of(self, uid: Hashable) -> Tuple[Hashable, ...]:
        if uid not in self.neighbors:
            raise ValidationError(f"Unit {uid!r} not in weights")
        return self.neighbors[uid]

    def weights_of(self, uid: Hashable) -> Dict[Hashable, float]:
        if uid not in self.neighbors:
            raise ValidationError(f"Unit {uid!r} not in weights")
        return dict(zip(self.neighbors[uid], self.weights[uid]))

    def row_sums(self) -> pd.Series:
        return pd.Series([sum(self.weights[uid]) for uid in self.ids], index=list(self.ids))

    def is_symmetric(self) -> bool:
        """Whether the neighbour relationship (ignoring weight values) is symmetric."""
        return self.to_neighbors().is_symmetric()

    def summary(self) -> ConnectivitySummary:
        return connectivity_summary(self.to_neighbors())

    def align(self, data: Union[pd.Series, pd.DataFrame], id_column: Optional[str] = None):
        """
        Order data rows to match the weights ids.

        Args:
            data: Series or DataFrame indexed by unit id, or a DataFrame with
                an id column.
            id_column: Column holding ids, if not the index.

        Returns:
            Data reindexed to ``ids``.

        Raises:
            ValidationError: If any weights id is missing from the data.
        """
        if id_column is not None:
            data = data.set_index(id_column)
        missing = [uid for uid in self.ids if uid not in data.index]
        if missing:
            raise ValidationError(f"{len(missing)} weights ids missing from data: {missing[:10]}")
        return data.loc[list(self.ids)]

    def lag(self, values: Union[pd.Series, np.ndarray, Sequence[float]]) -> Union[pd.Series, np.ndarray]:
        """
        Spatial lag Wy.

        A Series is aligned on the weights ids and a Series is returned;
        array input must already be in id order.
        """
        if isinstance(values, pd.Series):
            aligned = self.align(values).to_numpy(dtype=float)
            return pd.Series(self.to_sparse() @ aligned, index=list(self.ids), name=values.name)

        arr = np.asarray(values, dtype=float)
        if arr.shape[0] != self.n:
            raise ValidationError(f"Expected {self.n} values, got {arr.shape[0]}")
        return self.to_sparse() @ arr


def build_weights(
    nb: Neighbors, transform: str = 'r', island_policy: str = 'zero_fill'
) -> SpatialWeights:
    """Convenience wrapper around SpatialWeights.from_neighbors."""
    return SpatialWeights.from_neighbors(nb, transform=transform, island_policy=island_policy)
