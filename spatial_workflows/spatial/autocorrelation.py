"""
Global spatial autocorrelation tests.
"""
import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
import pandas as pd
from scipy import stats
from esda.moran import Moran
from spreg.diagnostics_sp import MoranRes

from spatial_workflows.core.decorators import performance_tracker
from spatial_workflows.core.exceptions import ValidationError
from spatial_workflows.spatial.weights import SpatialWeights

# Initialize logger
logger = logging.getLogger(__name__)

ASSUMPTIONS = ('normal', 'randomization')
ALTERNATIVES = ('two-sided', 'greater', 'less')


@dataclass(frozen=True)
class MoranResult:
    """Moran's I statistic with its reference distribution."""
    I: float
    expected: float
    variance: float
    z: float
    p_value: float
    assumption: str
    alternative: str
    n: int
    p_sim: Optional[float] = None
    permutations: int = 0
    random_state: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def p_value_from_z(z: float, alternative: str = 'two-sided') -> float:
    """Normal p-value of a standardized deviate."""
    if alternative not in ALTERNATIVES:
        raise ValidationError(f"Unknown alternative: {alternative}")
    if alternative == 'greater':
        return float(stats.norm.sf(z))
    if alternative == 'less':
        return float(stats.norm.cdf(z))
    return float(2.0 * stats.norm.sf(abs(z)))


def _as_vector(values: Union[pd.Series, np.ndarray, Sequence[float]], sw: SpatialWeights) -> np.ndarray:
    if isinstance(values, pd.Series):
        y = sw.align(values).to_numpy(dtype=float)
    else:
        y = np.asarray(values, dtype=float).ravel()

    if y.shape[0] != sw.n:
        raise ValidationError(f"Expected {sw.n} values, got {y.shape[0]}")
    if not np.isfinite(y).all():
        raise ValidationError("Values contain missing or non-finite entries")
    if np.allclose(y, y.mean()):
        raise ValidationError("Moran's I is undefined for a constant variable")
    return y


def moran_statistic(values: Union[pd.Series, np.ndarray, Sequence[float]], sw: SpatialWeights) -> float:
    """
    Closed-form Moran's I.

    I = n / S0 * z'Wz / z'z, with z the deviations from the mean.
    """
    y = _as_vector(values, sw)
    s0 = sw.s0
    if s0 == 0:
        raise ValidationError("Weights have no links; Moran's I is undefined")
    z = y - y.mean()
    wz = sw.to_sparse() @ z
    return float(sw.n / s0 * (z @ wz) / (z @ z))


@performance_tracker()
def moran_test(
    values: Union[pd.Series, np.ndarray, Sequence[float]],
    sw: SpatialWeights,
    assumption: str = 'randomization',
    alternative: str = 'two-sided',
    permutations: int = 999,
    random_state: Optional[int] = None,
) -> MoranResult:
    """
    Moran's I test through esda.

    Args:
        values: Attribute values in weights id order, or a Series indexed by id.
        sw: Spatial weights.
        assumption: 'normal' or 'randomization' for the analytic variance.
        alternative: 'two-sided', 'greater' or 'less'.
        permutations: Number of random permutations for ``p_sim``; 0 disables.
        random_state: Seed for the permutations. Without one, ``p_sim`` is
            not reproducible.

    Returns:
        MoranResult.
    """
    if assumption not in ASSUMPTIONS:
        raise ValidationError(f"Unknown assumption: {assumption}")
    if alternative not in ALTERNATIVES:
        raise ValidationError(f"Unknown alternative: {alternative}")
    if permutations < 0:
        raise ValidationError(f"permutations must be non-negative, got {permutations}")

    y = _as_vector(values, sw)
    if sw.s0 == 0:
        raise ValidationError("Weights have no links; Moran's I is undefined")

    # esda permutes with the global RNG; seed it for this call only
    saved_state = None
    if permutations and random_state is not None:
        saved_state = np.random.get_state()
        np.random.seed(random_state)
    try:
        mi = Moran(y, sw.to_libpysal(), transformation=sw.transform, permutations=permutations)
    finally:
        if saved_state is not None:
            np.random.set_state(saved_state)

    if assumption == 'normal':
        variance, z = float(mi.VI_norm), float(mi.z_norm)
    else:
        variance, z = float(mi.VI_rand), float(mi.z_rand)

    result = MoranResult(
        I=float(mi.I),
        expected=float(mi.EI),
        variance=variance,
        z=z,
        p_value=p_value_from_z(z, alternative),
        assumption=assumption,
        alternative=alternative,
        n=sw.n,
        p_sim=float(mi.p_sim) if permutations else None,
        permutations=permutations,
        random_state=random_state,
    )
    logger.info(f"Moran's I = {result.I:.4f} (z = {result.z:.3f}, p = {result.p_value:.4g}, {assumption})")
    return result


def residual_moran(regression: Any, sw: SpatialWeights, alternative: str = 'two-sided') -> MoranResult:
    """
    Moran's I on the residuals of a fitted spreg OLS regression.

    The expectation and variance account for the regression's residual
    degrees of freedom.

    Args:
        regression: A fitted ``spreg.OLS`` instance estimated on data in the
            weights id order.
        sw: Spatial weights.
        alternative: 'two-sided', 'greater' or 'less'.
    """
    if regression.n != sw.n:
        raise ValidationError(f"Regression has {regression.n} observations, weights have {sw.n} units")

    mr = MoranRes(regression, sw.to_libpysal(), z=True)
    z = float(np.squeeze(mr.zI))
    return MoranResult(
        I=float(np.squeeze(mr.I)),
        expected=float(np.squeeze(mr.eI)),
        variance=float(np.squeeze(mr.vI)),
        z=z,
        p_value=p_value_from_z(z, alternative),
        assumption='residual',
        alternative=alternative,
        n=sw.n,
    )
