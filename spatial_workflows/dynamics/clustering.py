"""
Density-based clustering of units in attribute space.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from sklearn.cluster import DBSCAN
from sklearn.neighbors import NearestNeighbors
from sklearn.preprocessing import StandardScaler

from spatial_workflows.core.exceptions import ValidationError

# Initialize logger
logger = logging.getLogger(__name__)

NOISE = -1


@dataclass(frozen=True, eq=False)
class ClusterResult:
    """DBSCAN labels; noise points are labelled -1."""
    labels: pd.Series
    eps: float
    min_samples: int
    core_indices: np.ndarray

    @property
    def n_clusters(self) -> int:
        return int(len(set(self.labels.unique()) - {NOISE}))

    @property
    def n_noise(self) -> int:
        return int((self.labels == NOISE).sum())

    def cluster_sizes(self) -> pd.Series:
        return self.labels[self.labels != NOISE].value_counts().sort_index()


def _matrix(frame: pd.DataFrame, columns: Sequence[str], standardize: bool) -> np.ndarray:
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValidationError(f"Columns not found: {missing}")
    values = frame[list(columns)].to_numpy(dtype=float)
    if not np.isfinite(values).all():
        raise ValidationError("Clustering variables contain missing or non-finite values")
    if standardize:
        values = StandardScaler().fit_transform(values)
    return values


def suggest_eps(
    frame: pd.DataFrame, columns: Sequence[str], min_samples: int = 5,
    percentile: float = 90.0, standardize: bool = True
) -> float:
    """Percentile of the distance to the ``min_samples``-th neighbour."""
    values = _matrix(frame, columns, standardize)
    n_neighbors = min(min_samples, values.shape[0])
    distances, _ = NearestNeighbors(n_neighbors=n_neighbors).fit(values).kneighbors(values)
    return float(np.percentile(distances[:, -1], percentile))


def density_clusters(
    frame: pd.DataFrame,
    columns: Sequence[str],
    eps: Optional[float] = 0.1,
    min_samples: int = 5,
    standardize: bool = True,
) -> ClusterResult:
    """
    Cluster rows with DBSCAN.

    Args:
        frame: Data, one row per unit.
        columns: Variables spanning the clustering space.
        eps: Neighbourhood radius; None picks one with ``suggest_eps``.
        min_samples: Minimum neighbourhood size of a core point.
        standardize: Scale variables to zero mean and unit variance first.

    Returns:
        ClusterResult with labels indexed like ``frame``.
    """
    if min_samples < 1:
        raise ValidationError(f"min_samples must be positive, got {min_samples}")

    values = _matrix(frame, columns, standardize)
    if eps is None:
        eps = suggest_eps(frame, columns, min_samples=min_samples, standardize=standardize)
    if eps <= 0:
        raise ValidationError(f"eps must be positive, got {eps}")

    model = DBSCAN(eps=eps, min_samples=min_samples).fit(values)
    labels = pd.Series(model.labels_, index=frame.index, name='cluster')

    result = ClusterResult(
        labels=labels, eps=float(eps), min_samples=min_samples, core_indices=model.core_sample_indices_
    )
    logger.info(f"DBSCAN found {result.n_clusters} clusters and {result.n_noise} noise points (eps={eps:.4g})")
    return result
