"""
Spatial regression models, diagnostics and selection.
"""
from .specification import Variant, ModelSpecification, specification, nested_pairs
from .estimation import FittedModel, NonEstimable, fit_model, fit_family, prepare_design
from .diagnostics import LMDiagnostics, starting_variant
from .selection import LikelihoodRatioResult, SelectionResult, lr_test, lr_table, select_model
from .impacts import ImpactsResult, compute_impacts, point_impacts

__all__ = [
    'Variant', 'ModelSpecification', 'specification', 'nested_pairs',
    'FittedModel', 'NonEstimable', 'fit_model', 'fit_family', 'prepare_design',
    'LMDiagnostics', 'starting_variant',
    'LikelihoodRatioResult', 'SelectionResult', 'lr_test', 'lr_table', 'select_model',
    'ImpactsResult', 'compute_impacts', 'point_impacts',
]
