"""Spatial workflows package.

This package provides tools for spatial econometric analysis: neighbour and
weights construction, Moran's I, spatial regression model selection with LM
and likelihood-ratio tests, impact decomposition and distribution-dynamics
helpers.
"""

__version__ = '1.0.0'

from spatial_workflows.core import config, SpatialWorkflowError
from spatial_workflows.spatial import (
    SpatialWeights, contiguity_neighbors, knn_neighbors, moran_test, moran_statistic
)
from spatial_workflows.models import Variant, ModelSpecification, fit_model, select_model, lr_test, compute_impacts
