"""
Shared fixtures for the test suite: synthetic lattices and simulated data.
"""
import numpy as np
import pandas as pd
import geopandas as gpd
from shapely.geometry import box

from spatial_workflows.spatial.neighbors import contiguity_neighbors
from spatial_workflows.spatial.weights import SpatialWeights


def grid_gdf(rows: int = 3, cols: int = 3, ids=None) -> gpd.GeoDataFrame:
    """Unit squares on a rows x cols lattice, numbered row by row."""
    geoms = [box(c, r, c + 1, r + 1) for r in range(rows) for c in range(cols)]
    index = list(range(rows * cols)) if ids is None else list(ids)
    return gpd.GeoDataFrame({'uid': index}, geometry=geoms, index=index)


def grid_weights(rows: int = 10, cols: int = 10, rule: str = 'rook', transform: str = 'r') -> SpatialWeights:
    return SpatialWeights.from_neighbors(contiguity_neighbors(grid_gdf(rows, cols), rule=rule), transform=transform)


def simulate_sar(sw: SpatialWeights, rho: float = 0.6, beta=(1.0, 2.0, -1.0), seed: int = 42,
                 lam: float = 0.0, theta=None) -> pd.DataFrame:
    """
    Draw data from y = rho W y + X beta (+ W X theta) + u, u = lam W u + e.

    ``beta`` starts with the constant.
    """
    rng = np.random.default_rng(seed)
    n = sw.n
    k = len(beta) - 1
    x = rng.normal(size=(n, k))
    w = sw.to_dense()
    mean = beta[0] + x @ np.asarray(beta[1:])
    if theta is not None:
        mean = mean + w @ x @ np.asarray(theta)
    u = np.linalg.solve(np.eye(n) - lam * w, rng.normal(scale=0.5, size=n))
    y = np.linalg.solve(np.eye(n) - rho * w, mean + u)

    frame = pd.DataFrame(x, columns=[f"x{i + 1}" for i in range(k)], index=list(sw.ids))
    frame['y'] = y
    return frame
