"""
Tests for the command-line application.
"""
import os
import shutil
import tempfile
import unittest

import numpy as np
import pandas as pd
import yaml
from typer.testing import CliRunner

from spatial_workflows.cli.app import app
from spatial_workflows.spatial.weights_io import read_adjacency_list
from tests.helpers import grid_gdf, grid_weights, simulate_sar


class TestCli(unittest.TestCase):
    """Runs the commands on small files in a temporary directory."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.runner = CliRunner()

        gdf = grid_gdf(3, 3)
        gdf['value'] = np.arange(9, dtype=float)
        self.geometry = os.path.join(self.temp_dir, 'grid.geojson')
        gdf.to_file(self.geometry, driver='GeoJSON')

        rng = np.random.default_rng(4)
        frame = pd.DataFrame({'group': np.repeat(['a', 'b'], 40), 'income': rng.normal(size=80)})
        self.table = os.path.join(self.temp_dir, 'income.csv')
        frame.to_csv(self.table, index=False)

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_weights_command(self):
        output = os.path.join(self.temp_dir, 'grid.txt')
        matrix = os.path.join(self.temp_dir, 'grid.csv')
        result = self.runner.invoke(app, [
            'weights', self.geometry, '--id-column', 'uid', '--rule', 'rook',
            '--output', output, '--matrix', matrix,
        ])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Connectivity', result.output)
        self.assertTrue(os.path.exists(matrix))

        sw = read_adjacency_list(output)
        self.assertEqual(sw.n, 9)
        self.assertEqual(sum(len(v) for v in sw.neighbors.values()), 24)

    def test_weights_command_bad_id_column(self):
        result = self.runner.invoke(app, ['weights', self.geometry, '--id-column', 'missing'])
        self.assertEqual(result.exit_code, 1)

    def test_moran_command(self):
        result = self.runner.invoke(app, [
            'moran', self.geometry, '--variable', 'value', '--id-column', 'uid',
            '--rule', 'rook', '--permutations', '99', '--seed', '1',
        ])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn("Moran's I: value", result.output)

    def test_select_command(self):
        sw = grid_weights(7, 7, rule='queen')
        data = simulate_sar(sw, rho=0.5, beta=(1.0, 1.5))
        gdf = grid_gdf(7, 7)
        gdf['y'] = data['y']
        gdf['x1'] = data['x1']
        geometry = os.path.join(self.temp_dir, 'lattice.geojson')
        gdf.to_file(geometry, driver='GeoJSON')

        output_dir = os.path.join(self.temp_dir, 'selection')
        result = self.runner.invoke(app, [
            'select', geometry, '--response', 'y', '--predictors', 'x1', '--id-column', 'uid',
            '--rule', 'queen', '--output-dir', output_dir, '--seed', '3',
        ])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Preferred specification', result.output)
        self.assertTrue(os.path.exists(os.path.join(output_dir, 'selection.json')))

    def test_select_command_unknown_predictor(self):
        result = self.runner.invoke(app, [
            'select', self.geometry, '--response', 'value', '--predictors', 'missing', '--id-column', 'uid',
        ])
        self.assertEqual(result.exit_code, 1)

    def test_density_command(self):
        output = os.path.join(self.temp_dir, 'ridges.csv')
        result = self.runner.invoke(app, [
            'density', self.table, '--value-column', 'income', '--group-column', 'group', '--output', output,
        ])
        self.assertEqual(result.exit_code, 0, result.output)
        ridges = pd.read_csv(output)
        self.assertEqual(set(ridges['group']), {'a', 'b'})

    def _blobs(self):
        rng = np.random.default_rng(5)
        values = np.vstack([rng.normal(0.0, 0.1, size=(30, 2)), rng.normal(5.0, 0.1, size=(30, 2)), [[20.0, 20.0]]])
        frame = pd.DataFrame(values, columns=['a', 'b'])
        frame.insert(0, 'unit', [f"u{i}" for i in range(len(frame))])
        path = os.path.join(self.temp_dir, 'blobs.csv')
        frame.to_csv(path, index=False)
        return path

    def test_cluster_command_uses_configured_dbscan(self):
        config_path = os.path.join(self.temp_dir, 'config.yaml')
        with open(config_path, 'w') as f:
            yaml.safe_dump({'dynamics': {'dbscan_eps': 0.5, 'dbscan_min_samples': 4}}, f)
        output = os.path.join(self.temp_dir, 'clusters.csv')

        result = self.runner.invoke(app, [
            'cluster', self._blobs(), '--columns', 'a,b', '--id-column', 'unit',
            '--no-standardize', '--output', output, '--config', config_path,
        ])
        self.assertEqual(result.exit_code, 0, result.output)
        self.assertIn('Found 2 cluster(s) and 1 noise point(s) (eps=0.5)', result.output)
        labels = pd.read_csv(output, index_col=0)['cluster']
        self.assertEqual(labels.loc['u60'], -1)
        self.assertEqual(labels.nunique(), 3)

    def test_cluster_command_missing_column(self):
        result = self.runner.invoke(app, ['cluster', self._blobs(), '--columns', 'a,c'])
        self.assertEqual(result.exit_code, 1)

    def test_density_command_missing_column(self):
        result = self.runner.invoke(app, ['density', self.table, '--value-column', 'gdp'])
        self.assertEqual(result.exit_code, 1)


if __name__ == '__main__':
    unittest.main()
