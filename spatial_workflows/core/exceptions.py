"""
Custom exception classes for the spatial workflows package.
"""


class SpatialWorkflowError(Exception):
    """Base exception for all spatial workflow errors."""

    def __init__(self, message: str, original_error: Exception = None):
        self.message = message
        self.original_error = original_error
        super().__init__(self.message)

    def __str__(self) -> str:
        if self.original_error:
            return f"{self.message} (Original error: {str(self.original_error)})"
        return self.message


class ConfigurationError(SpatialWorkflowError):
    """Error in configuration settings."""
    pass


class ValidationError(SpatialWorkflowError):
    """Error in input data validation."""
    pass


class GeometryError(ValidationError):
    """Malformed geometries or non-unique unit identifiers."""
    pass


class ConnectivityError(SpatialWorkflowError):
    """Islands or disconnected units where the island policy forbids them."""
    pass


class WeightsFormatError(SpatialWorkflowError):
    """Malformed plain-text weights file."""
    pass


class ModelError(SpatialWorkflowError):
    """Base class for model-related errors."""
    pass


class EstimationError(ModelError):
    """A model could not be estimated (divergence, boundary solution, degenerate W)."""
    pass


class NonNestedComparisonError(ModelError):
    """Likelihood-ratio test requested between two non-nested specifications."""
    pass


class ConnectivityWarning(UserWarning):
    """Warning for islands and disconnected components in a weights structure."""
    pass
