"""
Distribution-dynamics helpers.
"""
from .density import (
    DensityEstimate, ConditionalDensity, kde, ridge_data, relative_values,
    conditional_density, common_grid
)
from .clustering import ClusterResult, density_clusters, suggest_eps

__all__ = [
    'DensityEstimate', 'ConditionalDensity', 'kde', 'ridge_data', 'relative_values',
    'conditional_density', 'common_grid',
    'ClusterResult', 'density_clusters', 'suggest_eps',
]
