"""
Neighbour-relationship construction for spatial workflows.

This module derives adjacency structures from polygon geometries (queen and
rook contiguity) or point coordinates (k-nearest neighbours under a planar or
great-circle metric) and summarises their connectivity.
"""
import logging
import warnings
from dataclasses import dataclass, field
from typing import Any, Dict, Hashable, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import geopandas as gpd
from scipy import sparse
from scipy.sparse.csgraph import connected_components
from scipy.spatial.distance import cdist
from sklearn.metrics.pairwise import haversine_distances
import libpysal.weights as weights

from spatial_workflows.core.decorators import handle_errors
from spatial_workflows.core.exceptions import ConnectivityWarning, GeometryError, ValidationError

# Initialize logger
logger = logging.getLogger(__name__)

EARTH_RADIUS_KM = 6371.0088

CONTIGUITY_RULES = ('queen', 'rook')
DISTANCE_METRICS = ('planar', 'great_circle')


@dataclass(frozen=True)
class Neighbors:
    """
    Ordered neighbour sets for a collection of spatial units.

    Attributes:
        ids: Unit identifiers in input order.
        neighbors: Mapping of unit id to the tuple of its neighbour ids.
        rule: Rule used to derive the relationship ('queen', 'rook' or 'knn').
        params: Parameters of the rule (k, metric).
    """
    ids: Tuple[Hashable, ...]
    neighbors: Dict[Hashable, Tuple[Hashable, ...]]
    rule: str
    params: Dict[str, Any] = field(default_factory=dict)

    @property
    def n(self) -> int:
        return len(self.ids)

    @property
    def islands(self) -> List[Hashable]:
        """Units with no neighbours, in input order."""
        return [i for i in self.ids if not self.neighbors[i]]

    @property
    def cardinalities(self) -> Dict[Hashable, int]:
        return {i: len(self.neighbors[i]) for i in self.ids}

    @property
    def n_links(self) -> int:
        """Number of directed neighbour links."""
        return sum(len(v) for v in self.neighbors.values())

    def is_symmetric(self) -> bool:
        """Check whether i neighbours j exactly when j neighbours i."""
        for i in self.ids:
            for j in self.neighbors[i]:
                if i not in self.neighbors[j]:
                    return False
        return True

    def adjacency(self) -> sparse.csr_matrix:
        """Binary adjacency matrix in id order."""
        index = {uid: pos for pos, uid in enumerate(self.ids)}
        rows, cols = [], []
        for uid in self.ids:
            for nb in self.neighbors[uid]:
                rows.append(index[uid])
                cols.append(index[nb])
        data = np.ones(len(rows))
        return sparse.csr_matrix((data, (rows, cols)), shape=(self.n, self.n))

    def n_components(self) -> int:
        """Number of weakly connected components."""
        if self.n == 0:
            return 0
        n_comp, _ = connected_components(self.adjacency(), directed=True, connection='weak')
        return int(n_comp)

    def summary(self) -> "ConnectivitySummary":
        return connectivity_summary(self)


@dataclass(frozen=True)
class ConnectivitySummary:
    """Descriptive statistics of a neighbour relationship."""
    n_units: int
    n_links: int
    mean_links: float
    pct_nonzero: float
    min_links: int
    max_links: int
    least_connected: Tuple[Hashable, ...]
    most_connected: Tuple[Hashable, ...]
    islands: Tuple[Hashable, ...]
    n_components: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            'n_units': self.n_units,
            'n_links': self.n_links,
            'mean_links': self.mean_links,
            'pct_nonzero': self.pct_nonzero,
            'min_links': self.min_links,
            'max_links': self.max_links,
            'least_connected': list(self.least_connected),
            'most_connected': list(self.most_connected),
            'islands': list(self.islands),
            'n_components': self.n_components,
        }


def connectivity_summary(nb: Neighbors) -> ConnectivitySummary:
    """
    Summarise the connectivity of a neighbour relationship.

    Args:
        nb: Neighbour relationship.

    Returns:
        ConnectivitySummary with link counts, cardinality extremes, islands
        and the number of connected components.
    """
    if nb.n == 0:
        raise ValidationError("Cannot summarise an empty neighbour relationship")

    cards = nb.cardinalities
    counts = np.array([cards[i] for i in nb.ids])
    min_links = int(counts.min())
    max_links = int(counts.max())

    return ConnectivitySummary(
        n_units=nb.n,
        n_links=nb.n_links,
        mean_links=float(counts.mean()),
        pct_nonzero=100.0 * nb.n_links / float(nb.n * nb.n),
        min_links=min_links,
        max_links=max_links,
        least_connected=tuple(i for i in nb.ids if cards[i] == min_links),
        most_connected=tuple(i for i in nb.ids if cards[i] == max_links),
        islands=tuple(nb.islands),
        n_components=nb.n_components(),
    )


def validate_ids(ids: Sequence[Hashable]) -> Tuple[Hashable, ...]:
    """
    Validate unit identifiers.

    Identifiers must be present, unique and free of whitespace, since they are
    written to whitespace-delimited weight files.

    Raises:
        GeometryError: If any identifier is missing, duplicated or contains whitespace.
    """
    ids = tuple(ids)
    if len(ids) == 0:
        raise GeometryError("No unit identifiers supplied")

    missing = [pos for pos, uid in enumerate(ids) if uid is None or (isinstance(uid, float) and np.isnan(uid))]
    if missing:
        raise GeometryError(f"Missing unit identifiers at positions {missing[:10]}")

    duplicated = pd.Index(ids)[pd.Index(ids).duplicated()].unique().tolist()
    if duplicated:
        raise GeometryError(f"Unit identifiers are not unique: {duplicated[:10]}")

    spaced = [uid for uid in ids if isinstance(uid, str) and (uid == '' or any(c.isspace() for c in uid))]
    if spaced:
        raise GeometryError(f"Unit identifiers must not be empty or contain whitespace: {spaced[:10]}")

    return tuple(i.item() if isinstance(i, np.generic) else i for i in ids)


def _resolve_ids(gdf: gpd.GeoDataFrame, id_column: Optional[str]) -> Tuple[Hashable, ...]:
    if id_column is None:
        return validate_ids(gdf.index.tolist())
    if id_column not in gdf.columns:
        raise GeometryError(f"Identifier column '{id_column}' not found")
    return validate_ids(gdf[id_column].tolist())


def _validate_geometries(gdf: gpd.GeoDataFrame, polygonal: bool) -> None:
    if not isinstance(gdf, gpd.GeoDataFrame):
        raise GeometryError("Input must be a GeoDataFrame")
    if len(gdf) == 0:
        raise GeometryError("GeoDataFrame has no rows")

    geoms = gdf.geometry
    missing = geoms.isna() | geoms.is_empty
    if missing.any():
        raise GeometryError(f"{int(missing.sum())} units have missing or empty geometries")

    if polygonal:
        kinds = set(geoms.geom_type.unique())
        if not kinds <= {'Polygon', 'MultiPolygon'}:
            raise GeometryError(f"Contiguity requires polygon geometries, found {sorted(kinds)}")

    invalid = ~geoms.is_valid
    if invalid.any():
        logger.warning(f"{int(invalid.sum())} geometries are invalid; contiguity may be incomplete")


def _report_connectivity(nb: Neighbors) -> None:
    islands = nb.islands
    if islands:
        msg = f"{len(islands)} island(s) with no neighbours: {islands[:10]}"
        logger.warning(msg)
        warnings.warn(msg, ConnectivityWarning, stacklevel=3)

    n_comp = nb.n_components()
    if n_comp > 1:
        msg = f"Neighbour relationship has {n_comp} disconnected components"
        logger.warning(msg)
        warnings.warn(msg, ConnectivityWarning, stacklevel=3)


def _ordered(ids: Tuple[Hashable, ...], raw: Dict[Hashable, Sequence[Hashable]]) -> Dict[Hashable, Tuple[Hashable, ...]]:
    """Order each neighbour list by input position."""
    index = {uid: pos for pos, uid in enumerate(ids)}
    return {uid: tuple(sorted((nb for nb in raw.get(uid, []) if nb != uid), key=index.__getitem__)) for uid in ids}


@handle_errors
def contiguity_neighbors(
    gdf: gpd.GeoDataFrame, rule: str = 'queen', id_column: Optional[str] = None
) -> Neighbors:
    """
    Build contiguity neighbours from polygon geometries.

    Args:
        gdf: GeoDataFrame of polygons.
        rule: 'queen' (shared boundary point) or 'rook' (shared boundary segment).
        id_column: Column holding unit identifiers. Defaults to the index.

    Returns:
        Neighbors with neighbour lists ordered by input position.

    Raises:
        GeometryError: If geometries or identifiers are malformed.
        ValidationError: If the rule is unknown.
    """
    if rule not in CONTIGUITY_RULES:
        raise ValidationError(f"Unknown contiguity rule: {rule}")

    _validate_geometries(gdf, polygonal=True)
    ids = _resolve_ids(gdf, id_column)

    logger.info(f"Creating {rule} contiguity neighbours for {len(ids)} units")

    builder = weights.Queen if rule == 'queen' else weights.Rook
    w = builder.from_iterable(list(gdf.geometry), ids=list(ids), silence_warnings=True)

    nb = Neighbors(ids=ids, neighbors=_ordered(ids, w.neighbors), rule=rule)
    _report_connectivity(nb)

    logger.info(f"Created {rule} contiguity with {nb.n_links} directed links")
    return nb


def _distance_matrix(coords: np.ndarray, metric: str) -> np.ndarray:
    if metric == 'planar':
        return cdist(coords, coords, metric='euclidean')
    # haversine_distances expects [lat, lon] in radians
    latlon = np.radians(coords[:, [1, 0]])
    return haversine_distances(latlon) * EARTH_RADIUS_KM


@handle_errors
def knn_neighbors(
    coords: Any, k: int = 4, metric: str = 'great_circle', ids: Optional[Sequence[Hashable]] = None
) -> Neighbors:
    """
    Build k-nearest neighbours from point coordinates.

    Coordinates are (x, y) pairs; for the great-circle metric these are
    (longitude, latitude) in degrees. Ties are broken by input order.

    Args:
        coords: Array-like of shape (n, 2).
        k: Number of neighbours. Clipped to n - 1 with a warning.
        metric: 'planar' (Euclidean) or 'great_circle' (haversine).
        ids: Unit identifiers. Defaults to 0..n-1.

    Returns:
        Neighbors ordered from nearest to farthest.
    """
    if metric not in DISTANCE_METRICS:
        raise ValidationError(f"Unknown distance metric: {metric}")
    if k < 1:
        raise ValidationError(f"k must be positive, got {k}")

    coords = np.asarray(coords, dtype=float)
    if coords.ndim != 2 or coords.shape[1] != 2:
        raise GeometryError(f"Coordinates must have shape (n, 2), got {coords.shape}")
    if not np.isfinite(coords).all():
        raise GeometryError("Coordinates contain non-finite values")

    n = coords.shape[0]
    ids = validate_ids(range(n) if ids is None else ids)
    if len(ids) != n:
        raise GeometryError(f"Got {len(ids)} identifiers for {n} coordinates")

    if metric == 'great_circle':
        if (np.abs(coords[:, 1]) > 90).any() or (np.abs(coords[:, 0]) > 180).any():
            raise GeometryError("Great-circle distance requires longitude/latitude in degrees")

    if k > n - 1:
        msg = f"k={k} exceeds the number of other units; clipping to {n - 1}"
        logger.warning(msg)
        warnings.warn(msg, UserWarning, stacklevel=2)
        k = n - 1

    logger.info(f"Creating {metric} k-nearest neighbours with k={k} for {n} units")

    dist = _distance_matrix(coords, metric)
    np.fill_diagonal(dist, np.inf)
    order = np.argsort(dist, axis=1, kind='stable')[:, :k]

    neighbors = {ids[i]: tuple(ids[j] for j in order[i]) for i in range(n)}
    nb = Neighbors(ids=ids, neighbors=neighbors, rule='knn', params={'k': k, 'metric': metric})
    _report_connectivity(nb)
    return nb


def representative_points(gdf: gpd.GeoDataFrame) -> np.ndarray:
    """Coordinates of point geometries, or centroids of polygons, as an (n, 2) array."""
    _validate_geometries(gdf, polygonal=False)
    return np.array([(geom.centroid.x, geom.centroid.y) for geom in gdf.geometry])


def knn_neighbors_from_geodataframe(
    gdf: gpd.GeoDataFrame, k: int = 4, metric: str = 'great_circle', id_column: Optional[str] = None
) -> Neighbors:
    """Build k-nearest neighbours from the points or polygon centroids of a GeoDataFrame."""
    if metric == 'great_circle' and gdf.crs is not None and not gdf.crs.is_geographic:
        raise GeometryError(f"Great-circle distance requires a geographic CRS, got {gdf.crs}")
    coords = representative_points(gdf)
    return knn_neighbors(coords, k=k, metric=metric, ids=_resolve_ids(gdf, id_column))


def build_neighbors(
    gdf: gpd.GeoDataFrame, rule: str = 'queen', k: int = 4,
    metric: str = 'great_circle', id_column: Optional[str] = None
) -> Neighbors:
    """Dispatch to contiguity or k-nearest construction by rule name."""
    if rule in CONTIGUITY_RULES:
        return contiguity_neighbors(gdf, rule=rule, id_column=id_column)
    if rule == 'knn':
        return knn_neighbors_from_geodataframe(gdf, k=k, metric=metric, id_column=id_column)
    raise ValidationError(f"Unknown neighbour rule: {rule}")
