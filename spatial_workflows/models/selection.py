"""
Likelihood-ratio testing and model selection over the variant lattice.

Selection starts from OLS and its LM diagnostics, moves to the starting
branch they indicate, then repeatedly moves to the direct generalisation with
the largest significant likelihood-ratio statistic until no generalisation
rejects the current model.
"""
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats

from spatial_workflows.core.decorators import performance_tracker
from spatial_workflows.core.exceptions import EstimationError, NonNestedComparisonError
from spatial_workflows.models.diagnostics import LMDiagnostics, starting_variant
from spatial_workflows.models.estimation import ModelResult, fit_family
from spatial_workflows.models.specification import ModelSpecification, Variant, nested_pairs
from spatial_workflows.spatial.weights import SpatialWeights

# Initialize logger
logger = logging.getLogger(__name__)

COMPARED = 'compared'
NOT_COMPARABLE = 'not comparable'


@dataclass(frozen=True)
class LikelihoodRatioResult:
    """
    Likelihood-ratio comparison of two nested models.

    ``statistic`` is 2 * (logL(model_a) - logL(model_b)), so swapping the
    arguments flips its sign; ``p_value`` depends only on its magnitude.
    """
    model_a: str
    model_b: str
    statistic: Optional[float]
    df: int
    p_value: Optional[float]
    status: str
    reason: Optional[str] = None

    def rejects(self, alpha: float = 0.05) -> bool:
        """Whether the restricted model is rejected at level ``alpha``."""
        return self.status == COMPARED and self.p_value is not None and self.p_value < alpha

    def to_dict(self) -> Dict[str, Any]:
        return {
            'model_a': self.model_a,
            'model_b': self.model_b,
            'statistic': self.statistic,
            'df': self.df,
            'p_value': self.p_value,
            'status': self.status,
            'reason': self.reason,
        }


def lr_test(model_a: ModelResult, model_b: ModelResult) -> LikelihoodRatioResult:
    """
    Likelihood-ratio test between two nested models.

    Args:
        model_a: First model (fitted or non-estimable).
        model_b: Second model.

    Returns:
        LikelihoodRatioResult; status is 'not comparable' if either model is
        non-estimable.

    Raises:
        NonNestedComparisonError: If the variants are not nested or the
            models were fitted to different variables.
    """
    va, vb = model_a.variant, model_b.variant
    if not va.is_nested_pair(vb):
        raise NonNestedComparisonError(f"{va.label} and {vb.label} are not nested")
    if model_a.response != model_b.response or model_a.predictors != model_b.predictors:
        raise NonNestedComparisonError(
            f"{va.label} and {vb.label} were fitted to different variables"
        )

    df = abs(model_a.n_params - model_b.n_params)

    if not (model_a.estimable and model_b.estimable):
        failed = [m.variant.label for m in (model_a, model_b) if not m.estimable]
        return LikelihoodRatioResult(
            model_a=va.label, model_b=vb.label, statistic=None, df=df, p_value=None,
            status=NOT_COMPARABLE, reason=f"non-estimable: {', '.join(failed)}",
        )

    if model_a.n_obs != model_b.n_obs:
        raise NonNestedComparisonError(
            f"{va.label} and {vb.label} were fitted on different numbers of observations"
        )

    statistic = 2.0 * (model_a.log_likelihood - model_b.log_likelihood)
    p_value = float(stats.chi2.sf(abs(statistic), df))

    return LikelihoodRatioResult(
        model_a=va.label, model_b=vb.label, statistic=float(statistic), df=df,
        p_value=p_value, status=COMPARED,
    )


@dataclass(frozen=True)
class SelectionStep:
    """One transition of the selection walk."""
    current: Variant
    candidates: Tuple[LikelihoodRatioResult, ...]
    chosen: Optional[Variant]


@dataclass(frozen=True, eq=False)
class SelectionResult:
    """Outcome of model selection."""
    preferred: Variant
    start: Variant
    start_rule: str
    lm: LMDiagnostics
    models: Dict[Variant, ModelResult]
    lr_table: Tuple[LikelihoodRatioResult, ...]
    path: Tuple[SelectionStep, ...]
    significance_level: float
    lm_significance_level: float

    @property
    def preferred_model(self) -> ModelResult:
        return self.models[self.preferred]

    @property
    def trajectory(self) -> List[Variant]:
        visited = [self.start]
        visited += [step.chosen for step in self.path if step.chosen is not None]
        return visited

    def lr_frame(self) -> pd.DataFrame:
        return pd.DataFrame([r.to_dict() for r in self.lr_table])

    def information_criteria(self) -> pd.DataFrame:
        """Log-likelihood, parameter count, AIC and Schwarz criterion per variant."""
        rows = []
        for variant, model in self.models.items():
            rows.append({
                'variant': variant.label,
                'estimable': model.estimable,
                'n_params': model.n_params,
                'log_likelihood': model.log_likelihood if model.estimable else np.nan,
                'aic': model.aic if model.estimable else np.nan,
                'schwarz': model.schwarz if model.estimable else np.nan,
            })
        return pd.DataFrame(rows).set_index('variant')

    def to_dict(self) -> Dict[str, Any]:
        return {
            'preferred': self.preferred.label,
            'start': self.start.label,
            'start_rule': self.start_rule,
            'trajectory': [v.label for v in self.trajectory],
            'significance_level': self.significance_level,
            'lm_significance_level': self.lm_significance_level,
            'lm_diagnostics': self.lm.to_dict(),
            'models': {v.label: m.to_dict() for v, m in self.models.items()},
            'lr_tests': [r.to_dict() for r in self.lr_table],
        }


def lr_table(models: Dict[Variant, ModelResult]) -> Tuple[LikelihoodRatioResult, ...]:
    """LR results for every (general, restricted) pair present in ``models``."""
    return tuple(
        lr_test(models[general], models[restricted])
        for general, restricted in nested_pairs()
        if general in models and restricted in models
    )


def walk_lattice(
    models: Dict[Variant, ModelResult], start: Variant, alpha: float = 0.05
) -> Tuple[Variant, Tuple[SelectionStep, ...]]:
    """
    Move up the lattice from ``start`` while a generalisation is significant.

    At each state every direct generalisation is LR-tested against the
    current model; the one with the largest significant statistic becomes
    the new state. Non-estimable generalisations are never chosen.
    """
    current = start
    path: List[SelectionStep] = []

    while True:
        tests = tuple(
            lr_test(models[g], models[current])
            for g in current.generalizations() if g in models
        )
        significant = [t for t in tests if t.rejects(alpha) and t.statistic > 0]
        if not significant:
            path.append(SelectionStep(current=current, candidates=tests, chosen=None))
            return current, tuple(path)

        best = max(significant, key=lambda t: t.statistic)
        chosen = Variant.from_name(best.model_a)
        logger.info(f"LR test favours {chosen.label} over {current.label} (LR = {best.statistic:.3f}, p = {best.p_value:.4g})")
        path.append(SelectionStep(current=current, candidates=tests, chosen=chosen))
        current = chosen


@performance_tracker(level="info")
def select_model(
    spec: ModelSpecification,
    data: pd.DataFrame,
    sw: Optional[SpatialWeights] = None,
    id_column: Optional[str] = None,
    significance_level: float = 0.05,
    lm_significance_level: float = 0.05,
    method: str = 'full',
) -> SelectionResult:
    """
    Fit every variant and select the preferred specification.

    Args:
        spec: Specification whose response and predictors are used; its
            variant is ignored.
        data: Data indexed by unit id (or with ``id_column``).
        sw: Spatial weights; defaults to ``spec.weights``.
        id_column: Column holding unit ids, if not the index.
        significance_level: Level for the LR transitions.
        lm_significance_level: Level for the LM starting decision.
        method: Log-determinant method passed to spreg ML estimators.

    Returns:
        SelectionResult.

    Raises:
        EstimationError: If the OLS baseline cannot be estimated.
    """
    models = fit_family(spec, data, sw=sw, id_column=id_column, method=method)

    ols = models[Variant.OLS]
    if not ols.estimable:
        raise EstimationError(f"OLS baseline is not estimable: {ols.reason}")

    lm = LMDiagnostics.from_fitted(ols)
    start, rule = starting_variant(lm, lm_significance_level)
    if not models[start].estimable:
        logger.warning(f"Starting branch {start.label} is not estimable; starting from OLS")
        rule = f"{rule}; {start.label} not estimable, fell back to OLS"
        start = Variant.OLS

    preferred, path = walk_lattice(models, start, significance_level)
    logger.info(f"Preferred specification: {preferred.label}")

    return SelectionResult(
        preferred=preferred,
        start=start,
        start_rule=rule,
        lm=lm,
        models=models,
        lr_table=lr_table(models),
        path=path,
        significance_level=significance_level,
        lm_significance_level=lm_significance_level,
    )
