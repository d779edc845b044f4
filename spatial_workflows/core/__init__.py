"""
Core module for spatial workflows.
"""
from .config import Config, config, DEFAULT_CONFIG
from .decorators import handle_errors, performance_tracker
from .exceptions import (
    SpatialWorkflowError, ConfigurationError, ValidationError, GeometryError,
    ConnectivityError, WeightsFormatError, ModelError, EstimationError,
    NonNestedComparisonError, ConnectivityWarning
)
from .logging_setup import setup_logging, setup_logging_from_config, JsonFormatter
from .schemas import WorkflowSettings

__all__ = [
    'Config', 'config', 'DEFAULT_CONFIG',
    'handle_errors', 'performance_tracker',
    'SpatialWorkflowError', 'ConfigurationError', 'ValidationError', 'GeometryError',
    'ConnectivityError', 'WeightsFormatError', 'ModelError', 'EstimationError',
    'NonNestedComparisonError', 'ConnectivityWarning',
    'setup_logging', 'setup_logging_from_config', 'JsonFormatter',
    'WorkflowSettings',
]
