"""
Unit tests for plain-text weights formats.
"""
import os
import shutil
import tempfile
import unittest

import numpy as np

from spatial_workflows.core.exceptions import GeometryError, WeightsFormatError
from spatial_workflows.spatial.neighbors import knn_neighbors
from spatial_workflows.spatial.weights import SpatialWeights
from spatial_workflows.spatial.weights_io import (
    format_adjacency_list, parse_adjacency_list, read_adjacency_list, read_matrix_csv,
    write_adjacency_list, write_matrix_csv
)
from tests.helpers import grid_weights


class TestAdjacencyList(unittest.TestCase):
    """Tests for the adjacency-list format."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()
        self.sw = grid_weights(4, 5, rule='queen')

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_round_trip_exact(self):
        path = os.path.join(self.temp_dir, 'grid.txt')
        write_adjacency_list(self.sw, path)
        again = read_adjacency_list(path)

        self.assertEqual(again.ids, self.sw.ids)
        self.assertEqual(again.transform, self.sw.transform)
        for uid in self.sw.ids:
            self.assertEqual(again.neighbors[uid], self.sw.neighbors[uid])
            self.assertEqual(again.weights[uid], self.sw.weights[uid])

    def test_round_trip_asymmetric_string_ids(self):
        coords = np.random.RandomState(42).uniform(0, 10, size=(12, 2))
        ids = [f"unit_{i}" for i in range(12)]
        nb = knn_neighbors(coords, k=3, metric='planar', ids=ids)
        sw = SpatialWeights.from_neighbors(nb, transform='r')

        again = parse_adjacency_list(format_adjacency_list(sw))
        self.assertEqual(again.ids, sw.ids)
        self.assertEqual(dict(again.neighbors), dict(sw.neighbors))
        self.assertEqual(dict(again.weights), dict(sw.weights))

    def test_round_trip_with_island(self):
        sw = SpatialWeights(
            ids=(1, 2, 3), neighbors={1: (2,), 2: (1,), 3: ()},
            weights={1: (0.1,), 2: (1 / 7,), 3: ()}, transform='o',
        )
        text = format_adjacency_list(sw)
        self.assertTrue(text.startswith('n 3 transform o ids int\n'))
        again = parse_adjacency_list(text)
        self.assertEqual(again.neighbors[3], ())
        self.assertEqual(again.weights[2], (1 / 7,))

    def test_round_trip_float_ids(self):
        sw = SpatialWeights(
            ids=(1001.0, 1003.0, np.float64(1004.5)),
            neighbors={1001.0: (1003.0,), 1003.0: (1001.0, 1004.5), 1004.5: (1003.0,)},
            weights={1001.0: (1.0,), 1003.0: (1.0, 1.0), 1004.5: (1.0,)},
            transform='b',
        )
        text = format_adjacency_list(sw)
        self.assertTrue(text.startswith('n 3 transform b ids float\n'))
        again = parse_adjacency_list(text)
        self.assertEqual(again.ids, (1001.0, 1003.0, 1004.5))
        self.assertTrue(all(isinstance(uid, float) for uid in again.ids))
        self.assertEqual(again.neighbors[1003.0], (1001.0, 1004.5))

    def test_mixed_id_types_rejected(self):
        sw = SpatialWeights(ids=(1, '2'), neighbors={1: ('2',), '2': (1,)}, weights={1: (1.0,), '2': (1.0,)})
        with self.assertRaises(GeometryError):
            format_adjacency_list(sw)

    def test_header_errors(self):
        with self.assertRaises(WeightsFormatError):
            parse_adjacency_list('')
        with self.assertRaises(WeightsFormatError):
            parse_adjacency_list('n 1 transform q ids int\n1 0\n\n\n')
        with self.assertRaises(WeightsFormatError):
            parse_adjacency_list('count 1\n1 0\n\n\n')

    def test_count_mismatch(self):
        text = 'n 2 transform b ids int\n1 2\n2\n1.0\n2 1\n1\n1.0\n'
        with self.assertRaises(WeightsFormatError):
            parse_adjacency_list(text)

    def test_truncated(self):
        text = 'n 2 transform b ids int\n1 1\n2\n1.0\n'
        with self.assertRaises(WeightsFormatError):
            parse_adjacency_list(text)

    def test_unknown_neighbour(self):
        text = 'n 1 transform b ids int\n1 1\n9\n1.0\n'
        with self.assertRaises(WeightsFormatError):
            parse_adjacency_list(text)

    def test_whitespace_id_rejected(self):
        sw = SpatialWeights(ids=('a b', 'c'), neighbors={'a b': ('c',), 'c': ('a b',)},
                            weights={'a b': (1.0,), 'c': (1.0,)})
        with self.assertRaises(GeometryError):
            format_adjacency_list(sw)


class TestMatrixCsv(unittest.TestCase):
    """Tests for the full-matrix CSV format."""

    def setUp(self):
        self.temp_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.temp_dir)

    def test_round_trip(self):
        sw = grid_weights(3, 3, rule='rook')
        path = os.path.join(self.temp_dir, 'w.csv')
        write_matrix_csv(sw, path)
        again = read_matrix_csv(path, transform='r')

        self.assertEqual(again.ids, sw.ids)
        np.testing.assert_allclose(again.to_dense(), sw.to_dense())
        for uid in sw.ids:
            self.assertEqual(set(again.neighbors[uid]), set(sw.neighbors[uid]))

    def test_string_ids(self):
        sw = SpatialWeights(ids=('a', 'b'), neighbors={'a': ('b',), 'b': ('a',)},
                            weights={'a': (1.0,), 'b': (1.0,)}, transform='r')
        path = os.path.join(self.temp_dir, 's.csv')
        write_matrix_csv(sw, path)
        again = read_matrix_csv(path)
        self.assertEqual(again.ids, ('a', 'b'))

    def test_float_ids(self):
        sw = SpatialWeights.from_dense(np.array([[0.0, 1.0], [1.0, 0.0]]), ids=(10.5, 20.0))
        path = write_matrix_csv(sw, os.path.join(self.temp_dir, 'floats.csv'))
        again = read_matrix_csv(path)
        self.assertEqual(again.ids, (10.5, 20.0))
        self.assertEqual(again.neighbors[10.5], (20.0,))

    def test_mismatched_header(self):
        path = os.path.join(self.temp_dir, 'bad.csv')
        with open(path, 'w') as f:
            f.write('id,1,2\n2,0,1\n1,1,0\n')
        with self.assertRaises(WeightsFormatError):
            read_matrix_csv(path)


if __name__ == '__main__':
    unittest.main()
