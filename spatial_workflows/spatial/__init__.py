"""
Spatial weights and autocorrelation.
"""
from .neighbors import (
    Neighbors, ConnectivitySummary, connectivity_summary, contiguity_neighbors,
    knn_neighbors, knn_neighbors_from_geodataframe, build_neighbors, validate_ids
)
from .weights import SpatialWeights, build_weights
from .weights_io import (
    format_adjacency_list, parse_adjacency_list, read_adjacency_list,
    write_adjacency_list, read_matrix_csv, write_matrix_csv
)
from .autocorrelation import MoranResult, moran_statistic, moran_test, residual_moran

__all__ = [
    'Neighbors', 'ConnectivitySummary', 'connectivity_summary', 'contiguity_neighbors',
    'knn_neighbors', 'knn_neighbors_from_geodataframe', 'build_neighbors', 'validate_ids',
    'SpatialWeights', 'build_weights',
    'format_adjacency_list', 'parse_adjacency_list', 'read_adjacency_list',
    'write_adjacency_list', 'read_matrix_csv', 'write_matrix_csv',
    'MoranResult', 'moran_statistic', 'moran_test', 'residual_moran',
]
