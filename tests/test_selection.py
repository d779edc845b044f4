"""
Unit tests for likelihood-ratio testing and model selection.
"""
import unittest

import numpy as np

from spatial_workflows.core.exceptions import EstimationError, NonNestedComparisonError
from spatial_workflows.models.diagnostics import LMDiagnostics, starting_variant
from spatial_workflows.models.estimation import FittedModel, NonEstimable, fit_model
from spatial_workflows.models.selection import (
    NOT_COMPARABLE, lr_table, lr_test, select_model, walk_lattice
)
from spatial_workflows.models.specification import ModelSpecification, Variant
from tests.helpers import grid_weights, simulate_sar

PREDICTORS = ('x1', 'x2')


def _stub(variant: Variant, log_likelihood: float, n_obs: int = 100) -> FittedModel:
    n_params = variant.n_params(len(PREDICTORS))
    zeros = np.zeros(n_params)
    return FittedModel(
        variant=variant, response='y', predictors=PREDICTORS, coef_names=tuple(f"b{i}" for i in range(n_params)),
        coefficients=zeros, std_errors=np.ones(n_params), z_values=zeros, p_values=np.ones(n_params),
        covariance=np.eye(n_params), log_likelihood=log_likelihood, sigma2=1.0, n_obs=n_obs,
        n_params=n_params, method='stub',
    )


def _lattice():
    loglik = {
        Variant.OLS: -200.0, Variant.SAR: -180.0, Variant.SEM: -190.0, Variant.SLX: -199.0,
        Variant.SDM: -179.0, Variant.SARAR: -179.5, Variant.SDEM: -189.0, Variant.MANSKI: -178.8,
    }
    return {v: _stub(v, ll) for v, ll in loglik.items()}


class TestLikelihoodRatio(unittest.TestCase):
    """Tests for the LR test."""

    def setUp(self):
        self.models = _lattice()

    def test_sign_antisymmetry(self):
        forward = lr_test(self.models[Variant.SAR], self.models[Variant.OLS])
        backward = lr_test(self.models[Variant.OLS], self.models[Variant.SAR])
        self.assertAlmostEqual(forward.statistic, 40.0)
        self.assertAlmostEqual(backward.statistic, -forward.statistic)
        self.assertEqual(forward.p_value, backward.p_value)
        self.assertEqual(forward.df, 1)
        self.assertTrue(forward.rejects(0.05))

    def test_degrees_of_freedom(self):
        result = lr_test(self.models[Variant.SDM], self.models[Variant.SAR])
        self.assertEqual(result.df, 2)
        self.assertFalse(result.rejects(0.05))

    def test_non_nested_pair_raises(self):
        with self.assertRaises(NonNestedComparisonError):
            lr_test(self.models[Variant.SAR], self.models[Variant.SEM])
        with self.assertRaises(NonNestedComparisonError):
            lr_test(self.models[Variant.SDM], self.models[Variant.SDEM])

    def test_different_samples_raise(self):
        with self.assertRaises(NonNestedComparisonError):
            lr_test(_stub(Variant.SAR, -180.0, n_obs=90), self.models[Variant.OLS])

    def test_non_estimable_not_comparable(self):
        failed = NonEstimable(variant=Variant.SARAR, response='y', predictors=PREDICTORS,
                              n_params=Variant.SARAR.n_params(2), reason='diverged')
        result = lr_test(failed, self.models[Variant.SAR])
        self.assertEqual(result.status, NOT_COMPARABLE)
        self.assertIsNone(result.statistic)
        self.assertIsNone(result.p_value)
        self.assertFalse(result.rejects(0.05))
        self.assertIn('SARAR', result.reason)

    def test_full_table(self):
        table = lr_table(self.models)
        self.assertEqual(len(table), 19)
        self.assertTrue(all(r.statistic is not None for r in table))


class TestWalk(unittest.TestCase):
    """Tests for the lattice walk."""

    def test_prefers_lag_model(self):
        preferred, path = walk_lattice(_lattice(), Variant.OLS, alpha=0.05)
        self.assertEqual(preferred, Variant.SAR)
        self.assertEqual([step.chosen for step in path], [Variant.SAR, None])
        self.assertEqual(len(path[0].candidates), 3)

    def test_non_estimable_generalisation_never_chosen(self):
        models = _lattice()
        models[Variant.SAR] = NonEstimable(variant=Variant.SAR, response='y', predictors=PREDICTORS,
                                           n_params=4, reason='boundary')
        preferred, _ = walk_lattice(models, Variant.OLS, alpha=0.05)
        self.assertEqual(preferred, Variant.SARAR)

    def test_stays_when_nothing_significant(self):
        models = {v: _stub(v, -100.0) for v in Variant}
        preferred, path = walk_lattice(models, Variant.OLS)
        self.assertEqual(preferred, Variant.OLS)
        self.assertEqual(len(path), 1)


class TestStartingVariant(unittest.TestCase):
    """Tests for the LM starting decision."""

    def _lm(self, rlm_error, rlm_lag, lm_error=(0.0, 1.0), lm_lag=(0.0, 1.0)):
        return LMDiagnostics(lm_error=lm_error, lm_lag=lm_lag, rlm_error=rlm_error,
                             rlm_lag=rlm_lag, lm_sarma=(0.0, 1.0))

    def test_larger_robust_statistic_wins(self):
        variant, rule = starting_variant(self._lm(rlm_error=(9.0, 0.003), rlm_lag=(5.0, 0.03)))
        self.assertEqual(variant, Variant.SEM)
        self.assertIn('robust', rule)

    def test_falls_back_to_standard(self):
        lm = self._lm(rlm_error=(1.0, 0.3), rlm_lag=(1.0, 0.3), lm_lag=(6.0, 0.01))
        self.assertEqual(starting_variant(lm)[0], Variant.SAR)

    def test_no_signal(self):
        lm = self._lm(rlm_error=(1.0, 0.3), rlm_lag=(1.0, 0.3))
        self.assertEqual(starting_variant(lm), (Variant.OLS, 'no significant LM statistic'))


class TestSelectModel(unittest.TestCase):
    """End-to-end selection on simulated lag data."""

    @classmethod
    def setUpClass(cls):
        cls.sw = grid_weights(10, 10, rule='rook')
        cls.data = simulate_sar(cls.sw, rho=0.6, beta=(1.0, 2.0, -1.0))
        cls.spec = ModelSpecification('y', ('x1', 'x2'))
        cls.result = select_model(cls.spec, cls.data, cls.sw)

    def test_leaves_ols(self):
        self.assertNotEqual(self.result.start, Variant.OLS)
        self.assertNotEqual(self.result.preferred, Variant.OLS)
        self.assertTrue(self.result.preferred_model.estimable)
        self.assertEqual(self.result.trajectory[0], self.result.start)
        self.assertEqual(self.result.trajectory[-1], self.result.preferred)

    def test_tables(self):
        self.assertEqual(len(self.result.lr_table), 19)
        self.assertEqual(len(self.result.lr_frame()), 19)
        criteria = self.result.information_criteria()
        self.assertEqual(len(criteria), 8)
        self.assertIn('SAR', criteria.index)
        self.assertEqual(self.result.to_dict()['preferred'], self.result.preferred.label)

    def test_ols_failure_raises(self):
        data = self.data.copy()
        data['x2'] = 5.0
        ols = fit_model(self.spec, data, self.sw)
        self.assertFalse(ols.estimable)
        self.assertIn('rank deficient', ols.reason)
        with self.assertRaises(EstimationError):
            select_model(self.spec, data, self.sw)


if __name__ == '__main__':
    unittest.main()
