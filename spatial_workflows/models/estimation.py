"""
Estimation of the spatial regression family.

The estimator dispatches on the variant's lag flags: models without
autoregressive parameters go through ``spreg.OLS``, models with a single
autoregressive parameter through ``spreg.ML_Lag`` or ``spreg.ML_Error``, and
models with both through a concentrated maximum-likelihood routine. Failures
are returned as NonEstimable results rather than raised, so a batch of fits
always completes.
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import optimize, stats
from scipy.linalg import block_diag
import spreg

from spatial_workflows.core.decorators import performance_tracker
from spatial_workflows.core.exceptions import EstimationError, ValidationError
from spatial_workflows.models.specification import ModelSpecification, Variant
from spatial_workflows.spatial.autocorrelation import residual_moran
from spatial_workflows.spatial.weights import SpatialWeights

# Initialize logger
logger = logging.getLogger(__name__)

# Distance from the search bound at which a spatial parameter counts as a boundary solution
BOUNDARY_TOL = 1e-4


@dataclass(frozen=True)
class DesignData:
    """Response and design matrix aligned to the weights ids."""
    y: np.ndarray
    x: np.ndarray
    x_names: Tuple[str, ...]
    ids: Tuple[Any, ...]

    @property
    def n(self) -> int:
        return self.y.shape[0]


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Estimated spatial regression.

    Coefficients are ordered as constant, predictors, lagged predictors, then
    rho and lambda when present; ``covariance`` follows the same order.
    """
    variant: Variant
    response: str
    predictors: Tuple[str, ...]
    coef_names: Tuple[str, ...]
    coefficients: np.ndarray
    std_errors: np.ndarray
    z_values: np.ndarray
    p_values: np.ndarray
    covariance: np.ndarray
    log_likelihood: float
    sigma2: float
    n_obs: int
    n_params: int
    method: str
    rho: Optional[float] = None
    lam: Optional[float] = None
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    estimable = True

    @property
    def aic(self) -> float:
        return -2.0 * self.log_likelihood + 2.0 * self.n_params

    @property
    def schwarz(self) -> float:
        return -2.0 * self.log_likelihood + self.n_params * np.log(self.n_obs)

    def coefficient(self, name: str) -> float:
        if name not in self.coef_names:
            raise ValidationError(f"Unknown coefficient: {name}")
        return float(self.coefficients[self.coef_names.index(name)])

    def coefficient_table(self) -> pd.DataFrame:
        return pd.DataFrame(
            {
                'estimate': self.coefficients,
                'std_error': self.std_errors,
                'z_value': self.z_values,
                'p_value': self.p_values,
            },
            index=pd.Index(self.coef_names, name='term'),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            'variant': self.variant.label,
            'estimable': True,
            'method': self.method,
            'response': self.response,
            'n_obs': self.n_obs,
            'n_params': self.n_params,
            'log_likelihood': self.log_likelihood,
            'aic': self.aic,
            'schwarz': self.schwarz,
            'sigma2': self.sigma2,
            'rho': self.rho,
            'lambda': self.lam,
            'coefficients': {
                name: {
                    'estimate': float(b), 'std_error': float(se),
                    'z_value': float(z), 'p_value': float(p),
                }
                for name, b, se, z, p in zip(
                    self.coef_names, self.coefficients, self.std_errors, self.z_values, self.p_values
                )
            },
        }


@dataclass(frozen=True)
class NonEstimable:
    """A variant that could not be estimated, with the reason."""
    variant: Variant
    response: str
    predictors: Tuple[str, ...]
    n_params: int
    reason: str

    estimable = False
    log_likelihood = None
    aic = None
    schwarz = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'variant': self.variant.label,
            'estimable': False,
            'n_params': self.n_params,
            'reason': self.reason,
        }


ModelResult = Union[FittedModel, NonEstimable]


def prepare_design(
    spec: ModelSpecification, data: pd.DataFrame, sw: SpatialWeights, id_column: Optional[str] = None
) -> DesignData:
    """
    Align data to the weights and build y and the design matrix.

    Lagged predictors WX are appended when the variant includes them. The
    constant is not included; spreg adds it.

    Raises:
        ValidationError: If variables are missing or not finite.
    """
    frame = sw.align(data, id_column)
    columns = [spec.response] + list(spec.predictors)
    missing = [c for c in columns if c not in frame.columns]
    if missing:
        raise ValidationError(f"Columns not found in data: {missing}")

    try:
        values = frame[columns].to_numpy(dtype=float)
    except (TypeError, ValueError) as e:
        raise ValidationError("Regression variables must be numeric", original_error=e) from e
    if not np.isfinite(values).all():
        raise ValidationError("Regression variables contain missing or non-finite values")

    y = values[:, :1]
    x = values[:, 1:]
    x_names = list(spec.predictors)
    if spec.variant.lag_x:
        x = np.hstack([x, sw.to_sparse() @ x])
        x_names += list(spec.lagged_predictors)

    return DesignData(y=y, x=x, x_names=tuple(x_names), ids=sw.ids)


def _normal_inference(coefs: np.ndarray, se: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    with np.errstate(divide='ignore', invalid='ignore'):
        z = coefs / se
    return z, 2.0 * stats.norm.sf(np.abs(z))


def _check_spatial_parameter(name: str, value: float, lower: float = -1.0, upper: float = 1.0) -> None:
    if not np.isfinite(value):
        raise EstimationError(f"{name} estimate is not finite")
    if value <= lower + BOUNDARY_TOL or value >= upper - BOUNDARY_TOL:
        raise EstimationError(f"{name} = {value:.6f} lies on the search boundary ({lower:.4f}, {upper:.4f})")


def _check_log_likelihood(value: float) -> float:
    value = float(np.squeeze(value))
    if not np.isfinite(value):
        raise EstimationError("Log-likelihood did not converge to a finite value")
    return value


def _fit_ols(spec, design, sw, names) -> FittedModel:
    reg = spreg.OLS(
        design.y, design.x, w=sw.to_libpysal(), spat_diag=True,
        name_y=spec.response, name_x=list(design.x_names), name_w='W', name_ds='data',
    )
    coefs = np.asarray(reg.betas, dtype=float).ravel()
    se = np.asarray(reg.std_err, dtype=float).ravel()
    t_values = np.array([t for t, _ in reg.t_stat], dtype=float)
    p_values = np.array([p for _, p in reg.t_stat], dtype=float)

    diagnostics = {
        'lm_error': tuple(float(v) for v in reg.lm_error),
        'lm_lag': tuple(float(v) for v in reg.lm_lag),
        'rlm_error': tuple(float(v) for v in reg.rlm_error),
        'rlm_lag': tuple(float(v) for v in reg.rlm_lag),
        'lm_sarma': tuple(float(v) for v in reg.lm_sarma),
        'moran_residuals': residual_moran(reg, sw),
        'r2': float(reg.r2),
    }

    return FittedModel(
        variant=spec.variant, response=spec.response, predictors=spec.predictors,
        coef_names=names, coefficients=coefs, std_errors=se, z_values=t_values, p_values=p_values,
        covariance=np.asarray(reg.vm, dtype=float), log_likelihood=_check_log_likelihood(reg.logll),
        sigma2=float(reg.sig2), n_obs=design.n, n_params=spec.n_params, method='spreg.OLS',
        diagnostics=diagnostics,
    )


def _fit_ml_single(spec, design, sw, names, method) -> FittedModel:
    if spec.variant.lag_y:
        reg = spreg.ML_Lag(
            design.y, design.x, sw.to_libpysal(), method=method,
            name_y=spec.response, name_x=list(design.x_names), name_w='W', name_ds='data',
        )
        param, param_name, label = float(np.squeeze(reg.rho)), 'rho', 'spreg.ML_Lag'
    else:
        reg = spreg.ML_Error(
            design.y, design.x, sw.to_libpysal(), method=method,
            name_y=spec.response, name_x=list(design.x_names), name_w='W', name_ds='data',
        )
        param, param_name, label = float(np.squeeze(reg.lam)), 'lambda', 'spreg.ML_Error'

    ll = _check_log_likelihood(reg.logll)
    _check_spatial_parameter(param_name, param)

    coefs = np.asarray(reg.betas, dtype=float).ravel()
    vm = np.asarray(reg.vm, dtype=float)
    se = np.sqrt(np.diag(vm))
    z, p = _normal_inference(coefs, se)

    return FittedModel(
        variant=spec.variant, response=spec.response, predictors=spec.predictors,
        coef_names=names, coefficients=coefs, std_errors=se, z_values=z, p_values=p,
        covariance=vm, log_likelihood=ll, sigma2=float(np.squeeze(reg.sig2)), n_obs=design.n,
        n_params=spec.n_params, method=label,
        rho=param if spec.variant.lag_y else None,
        lam=param if spec.variant.lag_error else None,
    )


def parameter_bounds(eigenvalues: np.ndarray) -> Tuple[float, float]:
    """
    Admissible interval (1/w_min, 1/w_max) for an autoregressive parameter.

    Raises:
        EstimationError: If the eigenvalue range does not straddle zero.
    """
    real = np.real(eigenvalues)
    w_min, w_max = float(real.min()), float(real.max())
    if not (w_min < 0 < w_max):
        raise EstimationError(f"Degenerate eigenvalue range [{w_min:.4g}, {w_max:.4g}] for the spatial parameter")
    return 1.0 / w_min, 1.0 / w_max


def log_determinant(coef: float, eigenvalues: np.ndarray) -> float:
    """log|I - coef W| from the (possibly complex) eigenvalues of W."""
    return float(np.sum(np.log(1.0 - coef * eigenvalues.astype(complex))).real)


def _numerical_hessian(func, x: np.ndarray, step: float = 1e-5) -> np.ndarray:
    k = len(x)
    hess = np.zeros((k, k))
    for i in range(k):
        for j in range(k):
            ei = np.zeros(k)
            ej = np.zeros(k)
            ei[i] = step
            ej[j] = step
            hess[i, j] = (
                func(x + ei + ej) - func(x + ei - ej) - func(x - ei + ej) + func(x - ei - ej)
            ) / (4.0 * step * step)
    return hess


class ConcentratedSARAR:
    """
    Maximum likelihood for models with both a lagged response and a
    spatially autoregressive error.

    For given (rho, lambda) the coefficients and error variance have closed
    forms, so the log-likelihood is maximised over the two spatial
    parameters only.
    """

    def __init__(self, y: np.ndarray, z: np.ndarray, sw: SpatialWeights):
        self.n = y.shape[0]
        self.y = y.ravel()
        self.z = z
        self.w = sw.to_sparse()
        self.wy = self.w @ self.y
        self.wwy = self.w @ self.wy
        self.wz = self.w @ self.z
        self.eigenvalues = np.linalg.eigvals(sw.to_dense())
        self.bounds = parameter_bounds(self.eigenvalues)

    def _profile(self, rho: float, lam: float) -> Tuple[np.ndarray, float, np.ndarray]:
        by = self.y - rho * self.wy - lam * (self.wy - rho * self.wwy)
        bz = self.z - lam * self.wz
        beta, _, _, _ = np.linalg.lstsq(bz, by, rcond=None)
        resid = by - bz @ beta
        sigma2 = float(resid @ resid) / self.n
        return beta, sigma2, bz

    def log_likelihood(self, params: Sequence[float]) -> float:
        rho, lam = float(params[0]), float(params[1])
        _, sigma2, _ = self._profile(rho, lam)
        if sigma2 <= 0:
            return -np.inf
        return (
            -0.5 * self.n * (np.log(2.0 * np.pi) + 1.0)
            - 0.5 * self.n * np.log(sigma2)
            + log_determinant(rho, self.eigenvalues)
            + log_determinant(lam, self.eigenvalues)
        )

    def fit(self, starts: Optional[Sequence[Tuple[float, float]]] = None) -> Dict[str, Any]:
        """
        Maximise the concentrated log-likelihood from several starting points.

        Raises:
            EstimationError: On optimiser failure, a non-finite optimum or a
                boundary solution.
        """
        lower, upper = self.bounds
        margin = 1e-6
        box = [(lower + margin, upper - margin)] * 2

        candidates = [(0.0, 0.0), (0.5 * upper, 0.0), (0.0, 0.5 * upper), (0.3 * upper, 0.3 * upper)]
        if starts:
            candidates = list(starts) + candidates

        def objective(params):
            value = self.log_likelihood(params)
            return -value if np.isfinite(value) else 1e20

        best = None
        messages = []
        for start in candidates:
            x0 = np.clip(np.asarray(start, dtype=float), lower + 1e-3, upper - 1e-3)
            res = optimize.minimize(objective, x0, method='L-BFGS-B', bounds=box)
            if not res.success:
                messages.append(str(res.message))
                continue
            if best is None or res.fun < best.fun:
                best = res

        if best is None:
            raise EstimationError(f"Optimiser failed from every starting point: {messages[:2]}")

        ll = _check_log_likelihood(-best.fun)
        rho, lam = float(best.x[0]), float(best.x[1])
        _check_spatial_parameter('rho', rho, lower, upper)
        _check_spatial_parameter('lambda', lam, lower, upper)

        beta, sigma2, bz = self._profile(rho, lam)
        beta_cov = sigma2 * np.linalg.inv(bz.T @ bz)

        hess = _numerical_hessian(lambda p: -self.log_likelihood(p), best.x)
        try:
            spatial_cov = np.linalg.inv(hess)
        except np.linalg.LinAlgError:
            spatial_cov = np.full((2, 2), np.nan)
        if not np.all(np.isfinite(spatial_cov)) or np.any(np.diag(spatial_cov) <= 0):
            logger.warning("Hessian of the concentrated log-likelihood is not positive definite")

        return {
            'beta': beta,
            'rho': rho,
            'lam': lam,
            'sigma2': sigma2,
            'log_likelihood': ll,
            'covariance': block_diag(beta_cov, spatial_cov),
        }


def _fit_sarar(spec, design, sw, names, starts) -> FittedModel:
    z = np.hstack([np.ones((design.n, 1)), design.x])
    engine = ConcentratedSARAR(design.y, z, sw)
    est = engine.fit(starts=starts)

    coefs = np.concatenate([est['beta'], [est['rho'], est['lam']]])
    vm = est['covariance']
    with np.errstate(invalid='ignore'):
        se = np.sqrt(np.diag(vm))
    zv, p = _normal_inference(coefs, se)

    return FittedModel(
        variant=spec.variant, response=spec.response, predictors=spec.predictors,
        coef_names=names, coefficients=coefs, std_errors=se, z_values=zv, p_values=p,
        covariance=vm, log_likelihood=est['log_likelihood'], sigma2=est['sigma2'], n_obs=design.n,
        n_params=spec.n_params, method='concentrated ML', rho=est['rho'], lam=est['lam'],
        diagnostics={'bounds': engine.bounds},
    )


def _check_rank(design: DesignData) -> None:
    """Reject designs whose columns, with the constant, are linearly dependent."""
    z = np.hstack([np.ones((design.n, 1)), design.x])
    rank = int(np.linalg.matrix_rank(z))
    if rank < z.shape[1]:
        raise EstimationError(f"Design matrix is rank deficient (rank {rank} of {z.shape[1]} columns)")


@performance_tracker()
def fit_model(
    spec: ModelSpecification,
    data: pd.DataFrame,
    sw: Optional[SpatialWeights] = None,
    id_column: Optional[str] = None,
    method: str = 'full',
    starts: Optional[Sequence[Tuple[float, float]]] = None,
) -> ModelResult:
    """
    Estimate one specification.

    Args:
        spec: Regression specification.
        data: Data indexed by unit id (or with ``id_column``).
        sw: Spatial weights; defaults to ``spec.weights``.
        id_column: Column holding unit ids, if not the index.
        method: Log-determinant method passed to spreg ML estimators.
        starts: Extra (rho, lambda) starting values for the concentrated ML routine.

    Returns:
        FittedModel, or NonEstimable if estimation failed.

    Raises:
        ValidationError: If the data cannot be aligned with the weights.
    """
    sw = sw if sw is not None else spec.weights
    if sw is None:
        raise ValidationError("No spatial weights supplied for estimation")

    design = prepare_design(spec, data, sw, id_column)
    names = ('CONSTANT',) + design.x_names
    if spec.variant.lag_y:
        names += ('rho',)
    if spec.variant.lag_error:
        names += ('lambda',)

    logger.info(f"Estimating {spec.variant.label} for {spec.response} on {design.n} units")

    try:
        _check_rank(design)
        if spec.variant.lag_y and spec.variant.lag_error:
            result = _fit_sarar(spec, design, sw, names, starts)
        elif spec.variant.lag_y or spec.variant.lag_error:
            result = _fit_ml_single(spec, design, sw, names, method)
        else:
            result = _fit_ols(spec, design, sw, names)
    except (EstimationError, np.linalg.LinAlgError, FloatingPointError, ZeroDivisionError, ValueError) as e:
        reason = e.message if isinstance(e, EstimationError) else f"{type(e).__name__}: {e}"
        logger.warning(f"{spec.variant.label} is not estimable: {reason}")
        return NonEstimable(
            variant=spec.variant, response=spec.response, predictors=spec.predictors,
            n_params=spec.n_params, reason=reason,
        )

    logger.info(f"{spec.variant.label}: log-likelihood = {result.log_likelihood:.4f}")
    return result


def fit_family(
    spec: ModelSpecification,
    data: pd.DataFrame,
    sw: Optional[SpatialWeights] = None,
    id_column: Optional[str] = None,
    method: str = 'full',
    variants: Optional[Sequence[Variant]] = None,
) -> Dict[Variant, ModelResult]:
    """
    Estimate every variant of a specification.

    The SAR and SEM estimates seed the starting values of the models that
    combine both spatial parameters.
    """
    variants = list(variants) if variants is not None else list(Variant)
    results: Dict[Variant, ModelResult] = {}

    # single-parameter models first so their estimates can seed SARAR and Manski
    ordered = sorted(variants, key=lambda v: (v.lag_y and v.lag_error, v.n_spatial_flags))
    for variant in ordered:
        starts = None
        if variant.lag_y and variant.lag_error:
            rho0 = next((r.rho for v, r in results.items() if r.estimable and v.lag_y and not v.lag_error), 0.0)
            lam0 = next((r.lam for v, r in results.items() if r.estimable and v.lag_error and not v.lag_y), 0.0)
            starts = [(rho0, lam0), (rho0, 0.0), (0.0, lam0)]
        results[variant] = fit_model(spec.with_variant(variant), data, sw, id_column, method, starts)

    return {v: results[v] for v in variants}
