"""
Lagrange multiplier diagnostics and the starting-branch decision.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from spatial_workflows.core.exceptions import ModelError
from spatial_workflows.models.estimation import FittedModel
from spatial_workflows.models.specification import Variant

# Initialize logger
logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LMDiagnostics:
    """
    Standard and robust LM statistics from an OLS fit.

    Each attribute is a (statistic, p-value) pair.
    """
    lm_error: Tuple[float, float]
    lm_lag: Tuple[float, float]
    rlm_error: Tuple[float, float]
    rlm_lag: Tuple[float, float]
    lm_sarma: Tuple[float, float]

    @classmethod
    def from_fitted(cls, model: FittedModel) -> "LMDiagnostics":
        """Read the diagnostics stored on an OLS-family fit."""
        missing = [k for k in ('lm_error', 'lm_lag', 'rlm_error', 'rlm_lag', 'lm_sarma') if k not in model.diagnostics]
        if missing:
            raise ModelError(f"{model.variant.label} fit carries no LM diagnostics: {missing}")
        return cls(
            lm_error=model.diagnostics['lm_error'],
            lm_lag=model.diagnostics['lm_lag'],
            rlm_error=model.diagnostics['rlm_error'],
            rlm_lag=model.diagnostics['rlm_lag'],
            lm_sarma=model.diagnostics['lm_sarma'],
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            name: {'statistic': value[0], 'p_value': value[1]}
            for name, value in (
                ('lm_error', self.lm_error), ('lm_lag', self.lm_lag),
                ('rlm_error', self.rlm_error), ('rlm_lag', self.rlm_lag),
                ('lm_sarma', self.lm_sarma),
            )
        }


def _choose(error: Tuple[float, float], lag: Tuple[float, float], alpha: float) -> Optional[Variant]:
    significant = []
    if error[1] < alpha:
        significant.append((error[0], Variant.SEM))
    if lag[1] < alpha:
        significant.append((lag[0], Variant.SAR))
    if not significant:
        return None
    return max(significant, key=lambda item: item[0])[1]


def starting_variant(lm: LMDiagnostics, alpha: float = 0.05) -> Tuple[Variant, str]:
    """
    Decide the starting branch from LM diagnostics.

    The larger significant robust statistic picks SAR (lag) or SEM (error);
    without a significant robust statistic the standard statistics are used
    the same way; with neither, OLS is kept.

    Returns:
        The starting variant and a short description of the rule that fired.
    """
    choice = _choose(lm.rlm_error, lm.rlm_lag, alpha)
    if choice is not None:
        rule = f"robust LM-{'lag' if choice is Variant.SAR else 'error'}"
    else:
        choice = _choose(lm.lm_error, lm.lm_lag, alpha)
        if choice is not None:
            rule = f"LM-{'lag' if choice is Variant.SAR else 'error'}"
        else:
            choice, rule = Variant.OLS, 'no significant LM statistic'

    logger.info(f"Starting branch {choice.label} ({rule}, alpha={alpha})")
    return choice, rule
