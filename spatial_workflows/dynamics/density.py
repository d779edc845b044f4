"""
Kernel density helpers for univariate and bivariate distribution dynamics.

Provides univariate densities, per-group densities on a common grid (the data
behind ridge plots), values relative to the cross-sectional mean, and the
conditional density f(y | x) used as a stochastic kernel for transitions
between two periods.
"""
import logging
from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
from statsmodels.nonparametric.kde import KDEUnivariate
from statsmodels.nonparametric.kernel_density import KDEMultivariateConditional

from spatial_workflows.core.exceptions import ValidationError

# Initialize logger
logger = logging.getLogger(__name__)

Bandwidth = Union[str, float]


@dataclass(frozen=True, eq=False)
class DensityEstimate:
    """Density evaluated on a grid."""
    support: np.ndarray
    density: np.ndarray
    bandwidth: float

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({'value': self.support, 'density': self.density})


@dataclass(frozen=True, eq=False)
class ConditionalDensity:
    """
    Conditional density f(y | x) on a grid.

    ``density[i, j]`` is the density of y = ``grid_y[i]`` given x = ``grid_x[j]``.
    """
    grid_x: np.ndarray
    grid_y: np.ndarray
    density: np.ndarray
    bandwidth: np.ndarray

    def to_frame(self) -> pd.DataFrame:
        yy, xx = np.meshgrid(self.grid_y, self.grid_x, indexing='ij')
        return pd.DataFrame({'x': xx.ravel(), 'y': yy.ravel(), 'density': self.density.ravel()})


def _clean(values, name: str = 'values', minimum: int = 2) -> np.ndarray:
    arr = np.asarray(values, dtype=float).ravel()
    arr = arr[np.isfinite(arr)]
    if arr.size < minimum:
        raise ValidationError(f"Need at least {minimum} finite {name}, got {arr.size}")
    if np.allclose(arr, arr[0]):
        raise ValidationError(f"Density of constant {name} is undefined")
    return arr


def _fit_univariate(values: np.ndarray, bandwidth: Bandwidth, gridsize: int, cut: float) -> KDEUnivariate:
    kde = KDEUnivariate(values)
    kde.fit(kernel='gau', bw=bandwidth, fft=True, gridsize=gridsize, cut=cut)
    return kde


def kde(
    values: Union[Sequence[float], np.ndarray, pd.Series],
    bandwidth: Bandwidth = 'normal_reference',
    gridsize: int = 200,
    cut: float = 3.0,
) -> DensityEstimate:
    """
    Gaussian kernel density estimate.

    Args:
        values: Observations; non-finite entries are dropped.
        bandwidth: Rule name accepted by statsmodels or a fixed bandwidth.
        gridsize: Number of grid points.
        cut: Grid extends this many bandwidths beyond the data range.

    Returns:
        DensityEstimate.
    """
    arr = _clean(values)
    fitted = _fit_univariate(arr, bandwidth, gridsize, cut)
    return DensityEstimate(
        support=np.asarray(fitted.support), density=np.asarray(fitted.density), bandwidth=float(fitted.bw)
    )


def common_grid(values, bandwidth: float, gridsize: int = 200, cut: float = 3.0) -> np.ndarray:
    arr = np.asarray(values, dtype=float)
    arr = arr[np.isfinite(arr)]
    return np.linspace(arr.min() - cut * bandwidth, arr.max() + cut * bandwidth, gridsize)


def ridge_data(
    frame: pd.DataFrame,
    value_column: str,
    group_column: str,
    bandwidth: Bandwidth = 'normal_reference',
    gridsize: int = 200,
    cut: float = 3.0,
) -> pd.DataFrame:
    """
    Per-group densities on one shared grid, in long format.

    Groups with fewer than two distinct finite values are skipped with a
    warning.

    Returns:
        DataFrame with columns group, value, density.
    """
    for column in (value_column, group_column):
        if column not in frame.columns:
            raise ValidationError(f"Column '{column}' not found")

    fits = {}
    for group, sub in frame.groupby(group_column, sort=True):
        try:
            arr = _clean(sub[value_column], name=f"values in group {group!r}")
        except ValidationError as e:
            logger.warning(f"Skipping group {group!r}: {e.message}")
            continue
        fitted = KDEUnivariate(arr)
        fitted.fit(kernel='gau', bw=bandwidth, fft=False)
        fits[group] = fitted

    if not fits:
        raise ValidationError("No group has enough data for a density estimate")

    widest = max(float(f.bw) for f in fits.values())
    grid = common_grid(frame[value_column], widest, gridsize, cut)

    parts = [
        pd.DataFrame({group_column: group, 'value': grid, 'density': fitted.evaluate(grid)})
        for group, fitted in fits.items()
    ]
    logger.debug(f"Built ridge data for {len(parts)} groups on {gridsize} grid points")
    return pd.concat(parts, ignore_index=True)


def relative_values(
    frame: pd.DataFrame, value_column: str, by: Optional[str] = None, name: Optional[str] = None
) -> pd.Series:
    """
    Values divided by their cross-sectional mean.

    Args:
        frame: Data.
        value_column: Column to transform.
        by: Optional period column; means are taken within each period.
        name: Name of the returned Series (defaults to ``<value_column>_rel``).
    """
    if value_column not in frame.columns:
        raise ValidationError(f"Column '{value_column}' not found")

    values = frame[value_column].astype(float)
    means = values.groupby(frame[by]).transform('mean') if by is not None else values.mean()
    if np.any(np.asarray(means) == 0):
        raise ValidationError("Relative values are undefined when the mean is zero")

    result = values / means
    result.name = name or f"{value_column}_rel"
    return result


def conditional_density(
    x: Union[Sequence[float], np.ndarray],
    y: Union[Sequence[float], np.ndarray],
    grid_x: Optional[np.ndarray] = None,
    grid_y: Optional[np.ndarray] = None,
    gridsize: int = 50,
    bandwidth: Union[str, Sequence[float]] = 'normal_reference',
) -> ConditionalDensity:
    """
    Conditional density f(y | x), e.g. a later period given an earlier one.

    Args:
        x: Conditioning values.
        y: Outcome values, paired with ``x``.
        grid_x: Evaluation points for x; defaults to ``gridsize`` points over its range.
        grid_y: Evaluation points for y; defaults likewise.
        gridsize: Size of default grids.
        bandwidth: statsmodels bandwidth rule or explicit [bw_y, bw_x].

    Returns:
        ConditionalDensity.
    """
    x = np.asarray(x, dtype=float).ravel()
    y = np.asarray(y, dtype=float).ravel()
    if x.shape != y.shape:
        raise ValidationError(f"x and y must be paired, got {x.size} and {y.size} values")
    keep = np.isfinite(x) & np.isfinite(y)
    x, y = x[keep], y[keep]
    _clean(x, 'x values', minimum=3)
    _clean(y, 'y values', minimum=3)

    grid_x = np.linspace(x.min(), x.max(), gridsize) if grid_x is None else np.asarray(grid_x, dtype=float)
    grid_y = np.linspace(y.min(), y.max(), gridsize) if grid_y is None else np.asarray(grid_y, dtype=float)

    estimator = KDEMultivariateConditional(
        endog=[y], exog=[x], dep_type='c', indep_type='c', bw=bandwidth
    )
    yy, xx = np.meshgrid(grid_y, grid_x, indexing='ij')
    values = estimator.pdf(endog_predict=yy.ravel(), exog_predict=xx.ravel())

    return ConditionalDensity(
        grid_x=grid_x,
        grid_y=grid_y,
        density=np.asarray(values).reshape(yy.shape),
        bandwidth=np.asarray(estimator.bw),
    )
