#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for the grid data model.
"""
import unittest

import numpy as np

from env_layers.core.grid import BoundingBox, GridGeometry, RasterGrid
from synthetic import make_grid, NODATA


class TestBoundingBox(unittest.TestCase):
    """Test bounding box construction and intersection."""

    def test_rejects_inverted_box(self):
        with self.assertRaises(ValueError):
            BoundingBox(2.0, 0.0, 1.0, 1.0)
        with self.assertRaises(ValueError):
            BoundingBox(0.0, 0.0, 0.0, 1.0)

    def test_intersection(self):
        a = BoundingBox(0, 0, 4, 4)
        b = BoundingBox(2, 1, 6, 3)
        self.assertEqual(a.intersection(b), BoundingBox(2, 1, 4, 3))

    def test_disjoint_and_touching_boxes_do_not_intersect(self):
        a = BoundingBox(0, 0, 4, 4)
        self.assertIsNone(a.intersection(BoundingBox(5, 5, 6, 6)))
        self.assertIsNone(a.intersection(BoundingBox(4, 0, 5, 4)))

    def test_coerce_from_tuple(self):
        self.assertEqual(BoundingBox.coerce((0, 1, 2, 3)), BoundingBox(0.0, 1.0, 2.0, 3.0))
        self.assertEqual(tuple(BoundingBox(0, 1, 2, 3)), (0, 1, 2, 3))


class TestGridGeometry(unittest.TestCase):
    """Test geometry derived values and cell lookup."""

    def setUp(self):
        self.geometry = GridGeometry(crs="EPSG:4326", origin=(10.0, 50.0),
                                     cell_size=(0.5, 0.25), rows=4, cols=6)

    def test_bounds(self):
        self.assertEqual(self.geometry.bounds, BoundingBox(10.0, 49.0, 13.0, 50.0))

    def test_cell_index_inside(self):
        self.assertEqual(self.geometry.cell_index(10.1, 49.9), (0, 0))
        self.assertEqual(self.geometry.cell_index(11.2, 49.6), (1, 2))

    def test_cell_index_on_max_edges_maps_to_last_cell(self):
        self.assertEqual(self.geometry.cell_index(13.0, 49.0), (3, 5))

    def test_cell_index_outside(self):
        self.assertIsNone(self.geometry.cell_index(9.99, 49.5))
        self.assertIsNone(self.geometry.cell_index(11.0, 50.01))

    def test_mismatch_reports_attribute(self):
        other = GridGeometry(crs="EPSG:4326", origin=(10.0, 50.0),
                             cell_size=(0.5, 0.5), rows=4, cols=6)
        self.assertEqual(self.geometry.mismatch(other)[0], "cell size")
        self.assertIsNone(self.geometry.mismatch(self.geometry))

    def test_window_geometry(self):
        window = self.geometry.window(1, 3, 2, 5)
        self.assertEqual(window.origin, (11.0, 49.75))
        self.assertEqual(window.shape, (2, 3))
        self.assertEqual(window.cell_size, self.geometry.cell_size)


class TestRasterGrid(unittest.TestCase):
    """Test grid immutability and missing-value handling."""

    def test_values_are_read_only_copy(self):
        source = np.array([[1.0, 2.0], [3.0, 4.0]])
        grid = make_grid("a", source)
        source[0, 0] = 99.0
        self.assertEqual(grid.values[0, 0], 1.0)
        with self.assertRaises(ValueError):
            grid.values[0, 0] = 5.0

    def test_valid_mask_uses_sentinel_and_nan(self):
        grid = make_grid("a", [[1.0, NODATA], [np.nan, 0.0]])
        np.testing.assert_array_equal(grid.valid_mask, [[True, False], [False, True]])

    def test_integer_grid_sentinel(self):
        grid = make_grid("a", [[1, 255], [0, 3]], nodata=255, dtype=np.uint8)
        np.testing.assert_array_equal(grid.valid_mask, [[True, False], [True, True]])
        masked = grid.masked_float()
        self.assertTrue(np.isnan(masked[0, 1]))
        self.assertEqual(masked[1, 0], 0.0)

    def test_shape_must_match_geometry(self):
        geometry = GridGeometry(crs=None, origin=(0.0, 2.0), cell_size=(1.0, 1.0), rows=2, cols=2)
        with self.assertRaises(ValueError):
            RasterGrid("a", np.zeros((3, 2)), geometry)


if __name__ == '__main__':
    unittest.main()
