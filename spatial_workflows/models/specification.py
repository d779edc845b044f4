"""
Regression specifications for the spatial model family.

The eight variants are an enumeration over three lag flags: a spatial lag of
the response (rho), spatial lags of the predictors (WX) and a spatially
autoregressive error (lambda). Nesting between variants is inclusion of their
flag sets.
"""
import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from spatial_workflows.core.exceptions import ValidationError

# Initialize logger
logger = logging.getLogger(__name__)


class Variant(Enum):
    """Spatial regression variant, valued by its (lag_y, lag_x, lag_error) flags."""
    OLS = (False, False, False)
    SLX = (False, True, False)
    SAR = (True, False, False)
    SEM = (False, False, True)
    SDM = (True, True, False)
    SDEM = (False, True, True)
    SARAR = (True, False, True)
    MANSKI = (True, True, True)

    @property
    def lag_y(self) -> bool:
        return self.value[0]

    @property
    def lag_x(self) -> bool:
        return self.value[1]

    @property
    def lag_error(self) -> bool:
        return self.value[2]

    @property
    def label(self) -> str:
        return 'Manski' if self is Variant.MANSKI else self.name

    @property
    def n_spatial_flags(self) -> int:
        return sum(self.value)

    @classmethod
    def from_flags(cls, lag_y: bool = False, lag_x: bool = False, lag_error: bool = False) -> "Variant":
        return cls((bool(lag_y), bool(lag_x), bool(lag_error)))

    @classmethod
    def from_name(cls, name: str) -> "Variant":
        """Look up a variant by case-insensitive name."""
        key = name.strip().upper()
        if key not in cls.__members__:
            raise ValidationError(f"Unknown model variant: {name}")
        return cls[key]

    def nests(self, other: "Variant") -> bool:
        """True if this variant strictly generalises ``other``."""
        return self is not other and all(a or not b for a, b in zip(self.value, other.value))

    def is_nested_pair(self, other: "Variant") -> bool:
        return self.nests(other) or other.nests(self)

    def generalizations(self) -> List["Variant"]:
        """Variants adding exactly one lag term."""
        return [v for v in Variant if v.nests(self) and v.n_spatial_flags == self.n_spatial_flags + 1]

    def restrictions(self) -> List["Variant"]:
        """Variants dropping exactly one lag term."""
        return [v for v in Variant if self.nests(v) and v.n_spatial_flags == self.n_spatial_flags - 1]

    def n_params(self, k_x: int) -> int:
        """
        Number of mean and spatial parameters for ``k_x`` predictors.

        Counts the constant, the predictors, their spatial lags and the
        spatial autoregressive parameters. The error variance is common to
        every variant and is not counted.
        """
        return 1 + k_x + (k_x if self.lag_x else 0) + int(self.lag_y) + int(self.lag_error)


def nested_pairs() -> List[Tuple[Variant, Variant]]:
    """All (general, restricted) pairs of the variant lattice."""
    return [(g, r) for g in Variant for r in Variant if g.nests(r)]


@dataclass(frozen=True)
class ModelSpecification:
    """
    Immutable regression specification.

    Attributes:
        response: Name of the dependent variable.
        predictors: Names of the explanatory variables (without constant).
        variant: Which lag terms are included.
        weights: Shared spatial weights used for every lag term.
    """
    response: str
    predictors: Tuple[str, ...]
    variant: Variant = Variant.OLS
    weights: Optional[object] = field(default=None, compare=False, repr=False)

    def __post_init__(self):
        object.__setattr__(self, 'predictors', tuple(self.predictors))
        if not self.predictors:
            raise ValidationError("At least one predictor is required")
        if self.response in self.predictors:
            raise ValidationError(f"Response '{self.response}' also listed as a predictor")
        if len(set(self.predictors)) != len(self.predictors):
            raise ValidationError("Predictors must be unique")

    @property
    def k_x(self) -> int:
        return len(self.predictors)

    @property
    def n_params(self) -> int:
        return self.variant.n_params(self.k_x)

    @property
    def lagged_predictors(self) -> Tuple[str, ...]:
        return tuple(f"W_{name}" for name in self.predictors) if self.variant.lag_x else ()

    def with_variant(self, variant: Variant) -> "ModelSpecification":
        return replace(self, variant=variant)

    def family(self) -> List["ModelSpecification"]:
        """One specification per variant, sharing response, predictors and weights."""
        return [self.with_variant(v) for v in Variant]


def specification(
    response: str, predictors: Sequence[str], variant: str = 'OLS', weights: Optional[object] = None
) -> ModelSpecification:
    """Build a specification from a variant name."""
    return ModelSpecification(
        response=response, predictors=tuple(predictors),
        variant=Variant.from_name(variant), weights=weights,
    )
