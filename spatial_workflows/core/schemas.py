"""
Pydantic schemas validating workflow configuration sections.
"""
from typing import Dict, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator

from .exceptions import ConfigurationError


class WeightsSettings(BaseModel):
    """Schema for neighbour and weights construction."""
    contiguity: Literal['queen', 'rook'] = 'queen'
    k: int = Field(4, ge=1)
    distance_metric: Literal['planar', 'great_circle'] = 'great_circle'
    transform: Literal['r', 'b', 'o'] = 'r'
    island_policy: Literal['error', 'exclude', 'zero_fill'] = 'zero_fill'

    @field_validator('transform', mode='before')
    @classmethod
    def lower_transform(cls, v):
        """Accept libpysal-style upper-case transform codes."""
        return v.lower() if isinstance(v, str) else v


class MoranSettings(BaseModel):
    """Schema for Moran's I testing."""
    assumption: Literal['normal', 'randomization'] = 'randomization'
    alternative: Literal['two-sided', 'greater', 'less'] = 'two-sided'
    permutations: int = Field(999, ge=0)
    random_state: Optional[int] = 42


class SelectionSettings(BaseModel):
    """Schema for the model-selection workflow."""
    significance_level: float = Field(0.05, gt=0, lt=0.5)
    lm_significance_level: float = Field(0.05, gt=0, lt=0.5)
    impact_draws: int = Field(1000, ge=0)
    random_state: Optional[int] = 42


class DynamicsSettings(BaseModel):
    """Schema for distribution-dynamics helpers."""
    bandwidth: Union[str, float] = 'normal_reference'
    gridsize: int = Field(200, ge=10)
    dbscan_eps: float = Field(0.1, gt=0)
    dbscan_min_samples: int = Field(5, ge=1)


class ReportingSettings(BaseModel):
    """Schema for presentation options."""
    digits: int = Field(4, ge=0, le=15)
    scientific: bool = False


class LoggingSettings(BaseModel):
    """Schema for logging options."""
    log_level: str = 'INFO'
    logs_dir: Optional[str] = None
    verbose_libraries: Dict[str, str] = Field(default_factory=dict)

    @field_validator('log_level')
    @classmethod
    def check_level(cls, v):
        """Validate log level name."""
        if v.upper() not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError(f"Unknown log level: {v}")
        return v.upper()


class WorkflowSettings(BaseModel):
    """Typed view over all configuration sections."""
    weights: WeightsSettings = Field(default_factory=WeightsSettings)
    moran: MoranSettings = Field(default_factory=MoranSettings)
    selection: SelectionSettings = Field(default_factory=SelectionSettings)
    dynamics: DynamicsSettings = Field(default_factory=DynamicsSettings)
    reporting: ReportingSettings = Field(default_factory=ReportingSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @classmethod
    def from_config(cls, config) -> "WorkflowSettings":
        """Build settings from a Config instance, raising ConfigurationError on bad values."""
        sections = {
            name: config.get(name, {}) or {}
            for name in ('weights', 'moran', 'selection', 'dynamics', 'reporting', 'logging')
        }
        try:
            return cls(**sections)
        except PydanticValidationError as e:
            raise ConfigurationError("Invalid workflow configuration", original_error=e) from e
