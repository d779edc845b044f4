"""
Unit tests for density estimates and density-based clustering.
"""
import unittest

import numpy as np
import pandas as pd

from spatial_workflows.core.exceptions import ValidationError
from spatial_workflows.dynamics.clustering import density_clusters, suggest_eps
from spatial_workflows.dynamics.density import conditional_density, kde, relative_values, ridge_data


class TestDensity(unittest.TestCase):
    """Tests for univariate and conditional densities."""

    def setUp(self):
        rng = np.random.default_rng(0)
        self.values = rng.normal(10.0, 2.0, size=300)

    def test_kde_integrates_to_one(self):
        estimate = kde(self.values)
        step = estimate.support[1] - estimate.support[0]
        self.assertAlmostEqual(float(np.sum(estimate.density) * step), 1.0, delta=0.02)
        self.assertGreater(estimate.bandwidth, 0.0)
        self.assertEqual(list(estimate.to_frame().columns), ['value', 'density'])

    def test_kde_rejects_constant(self):
        with self.assertRaises(ValidationError):
            kde(np.ones(10))
        with self.assertRaises(ValidationError):
            kde([1.0])

    def test_ridge_data_shares_grid(self):
        frame = pd.DataFrame({
            'period': np.repeat([2000, 2010, 2020], 100),
            'income': np.concatenate([self.values[:100], self.values[100:200] + 2, self.values[200:] + 4]),
        })
        ridges = ridge_data(frame, 'income', 'period', gridsize=50)
        self.assertEqual(list(ridges.columns), ['period', 'value', 'density'])
        self.assertEqual(len(ridges), 150)
        grids = [g['value'].to_numpy() for _, g in ridges.groupby('period')]
        np.testing.assert_allclose(grids[0], grids[2])

    def test_ridge_skips_degenerate_group(self):
        frame = pd.DataFrame({'g': ['a'] * 50 + ['b'] * 3, 'v': list(self.values[:50]) + [1.0] * 3})
        with self.assertLogs('spatial_workflows.dynamics.density', level='WARNING'):
            ridges = ridge_data(frame, 'v', 'g', gridsize=20)
        self.assertEqual(set(ridges['g']), {'a'})

    def test_relative_values(self):
        frame = pd.DataFrame({'year': [1, 1, 2, 2], 'pcgdp': [1.0, 3.0, 10.0, 30.0]})
        rel = relative_values(frame, 'pcgdp', by='year')
        np.testing.assert_allclose(rel.to_numpy(), [0.5, 1.5, 0.5, 1.5])
        self.assertEqual(rel.name, 'pcgdp_rel')
        self.assertAlmostEqual(relative_values(frame, 'pcgdp').mean(), 1.0)

    def test_conditional_density(self):
        rng = np.random.default_rng(1)
        x = rng.normal(size=200)
        y = 0.8 * x + rng.normal(scale=0.3, size=200)
        cond = conditional_density(x, y, gridsize=15)
        self.assertEqual(cond.density.shape, (15, 15))
        self.assertTrue(np.all(cond.density >= 0))
        self.assertEqual(len(cond.to_frame()), 225)
        # mass follows the diagonal
        j = int(np.argmin(np.abs(cond.grid_x - 1.0)))
        peak = cond.grid_y[int(np.argmax(cond.density[:, j]))]
        self.assertAlmostEqual(peak, 0.8, delta=0.5)

    def test_conditional_density_requires_pairs(self):
        with self.assertRaises(ValidationError):
            conditional_density([1.0, 2.0, 3.0], [1.0, 2.0])


class TestClustering(unittest.TestCase):
    """Tests for DBSCAN clustering."""

    def setUp(self):
        rng = np.random.default_rng(2)
        blob_a = rng.normal([0.0, 0.0], 0.1, size=(40, 2))
        blob_b = rng.normal([5.0, 5.0], 0.1, size=(40, 2))
        outliers = np.array([[2.5, 2.5], [10.0, -3.0]])
        values = np.vstack([blob_a, blob_b, outliers])
        self.frame = pd.DataFrame(values, columns=['a', 'b'], index=[f"u{i}" for i in range(82)])

    def test_two_blobs_and_noise(self):
        result = density_clusters(self.frame, ['a', 'b'], eps=0.5, min_samples=5, standardize=False)
        self.assertEqual(result.n_clusters, 2)
        self.assertEqual(result.n_noise, 2)
        self.assertEqual(list(result.cluster_sizes()), [40, 40])
        self.assertEqual(result.labels.loc['u81'], -1)
        self.assertEqual(list(result.labels.index), list(self.frame.index))

    def test_suggested_eps(self):
        eps = suggest_eps(self.frame, ['a', 'b'], min_samples=5, standardize=False)
        self.assertGreater(eps, 0.0)
        result = density_clusters(self.frame, ['a', 'b'], eps=None, min_samples=5, standardize=False)
        self.assertAlmostEqual(result.eps, eps)

    def test_invalid(self):
        with self.assertRaises(ValidationError):
            density_clusters(self.frame, ['missing'])
        with self.assertRaises(ValidationError):
            density_clusters(self.frame, ['a', 'b'], eps=0.0)


if __name__ == '__main__':
    unittest.main()
