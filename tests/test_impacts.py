"""
Unit tests for impact estimates.
"""
import unittest

import numpy as np
import pandas as pd

from spatial_workflows.core.exceptions import ModelError
from spatial_workflows.models.estimation import FittedModel, NonEstimable
from spatial_workflows.models.impacts import (
    _ImpactKernel, _impacts_from_params, _indices, compute_impacts, point_impacts
)
from spatial_workflows.models.specification import Variant
from tests.helpers import grid_weights


def _fitted(variant: Variant, coefficients, n_obs: int = 25, scale: float = 1e-4) -> FittedModel:
    predictors = ('x1', 'x2')
    names = ('CONSTANT',) + predictors
    if variant.lag_x:
        names += tuple(f"W_{p}" for p in predictors)
    if variant.lag_y:
        names += ('rho',)
    if variant.lag_error:
        names += ('lambda',)
    coefs = np.asarray(coefficients, dtype=float)
    k = len(names)
    return FittedModel(
        variant=variant, response='y', predictors=predictors, coef_names=names,
        coefficients=coefs, std_errors=np.full(k, np.sqrt(scale)), z_values=np.zeros(k),
        p_values=np.ones(k), covariance=np.eye(k) * scale, log_likelihood=-50.0, sigma2=1.0,
        n_obs=n_obs, n_params=variant.n_params(2), method='stub',
        rho=float(coefs[names.index('rho')]) if variant.lag_y else None,
    )


class TestPointImpacts(unittest.TestCase):
    """Tests for exact impact estimates."""

    def setUp(self):
        self.sw = grid_weights(5, 5, rule='queen')

    def test_sar_total_multiplier(self):
        model = _fitted(Variant.SAR, [1.0, 2.0, -1.0, 0.5])
        estimates = point_impacts(model, self.sw)
        self.assertAlmostEqual(estimates.loc['x1', 'total'], 2.0 / (1 - 0.5), places=8)
        self.assertAlmostEqual(estimates.loc['x2', 'total'], -1.0 / (1 - 0.5), places=8)
        self.assertGreater(estimates.loc['x1', 'direct'], 2.0)
        np.testing.assert_allclose(
            estimates['direct'] + estimates['indirect'], estimates['total']
        )

    def test_slx_direct_and_indirect(self):
        model = _fitted(Variant.SLX, [1.0, 2.0, -1.0, 0.7, 0.3])
        estimates = point_impacts(model, self.sw)
        np.testing.assert_allclose(estimates['direct'], [2.0, -1.0])
        np.testing.assert_allclose(estimates['indirect'], [0.7, 0.3])

    def test_sem_has_no_spillover(self):
        model = _fitted(Variant.SEM, [1.0, 2.0, -1.0, 0.4])
        estimates = point_impacts(model, self.sw)
        np.testing.assert_allclose(estimates['indirect'], 0.0)
        self.assertEqual(list(estimates.columns), ['direct', 'indirect', 'total'])
        self.assertEqual(estimates.index.name, 'variable')

    def test_eigen_kernel_matches_exact(self):
        model = _fitted(Variant.SDM, [1.0, 2.0, -1.0, 0.5, -0.2, 0.35])
        exact = point_impacts(model, self.sw).to_numpy()
        beta_idx, theta_idx, rho_idx = _indices(model)
        kernel = _ImpactKernel(self.sw.to_dense())
        fast = _impacts_from_params(model.coefficients, beta_idx, theta_idx, rho_idx, kernel)
        np.testing.assert_allclose(fast, exact, atol=1e-8)


class TestSimulatedImpacts(unittest.TestCase):
    """Tests for simulated inference."""

    def setUp(self):
        self.sw = grid_weights(5, 5, rule='queen')
        self.model = _fitted(Variant.SAR, [1.0, 2.0, -1.0, 0.5])

    def test_seeded_draws_reproducible(self):
        first = compute_impacts(self.model, self.sw, draws=200, random_state=3)
        second = compute_impacts(self.model, self.sw, draws=200, random_state=3)
        pd.testing.assert_frame_equal(first.simulation, second.simulation)
        self.assertEqual(first.random_state, 3)
        self.assertEqual(first.valid_draws, 200)

    def test_simulation_centred_on_estimate(self):
        result = compute_impacts(self.model, self.sw, draws=500, random_state=11)
        self.assertEqual(len(result.simulation), 6)
        total = result.simulation.query("variable == 'x1' and effect == 'total'").iloc[0]
        self.assertAlmostEqual(total['mean'], total['estimate'], delta=0.05)
        self.assertGreater(total['sd'], 0.0)
        self.assertLess(total['p_value'], 0.01)

    def test_out_of_range_draws_skipped(self):
        model = _fitted(Variant.SAR, [1.0, 2.0, -1.0, 0.99], scale=1e-3)
        result = compute_impacts(model, self.sw, draws=300, random_state=5)
        self.assertLess(result.valid_draws, 300)
        self.assertGreater(result.valid_draws, 1)

    def test_no_draws(self):
        result = compute_impacts(self.model, self.sw, draws=0)
        self.assertTrue(result.simulation.empty)
        self.assertEqual(result.estimates.shape, (2, 3))

    def test_non_estimable_rejected(self):
        failed = NonEstimable(variant=Variant.SAR, response='y', predictors=('x1',), n_params=3, reason='x')
        with self.assertRaises(ModelError):
            compute_impacts(failed, self.sw)


if __name__ == '__main__':
    unittest.main()
