#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for point sampling.
"""
import unittest

import numpy as np
import pandas as pd

from env_layers.processing.correlation import correlate
from env_layers.processing.sampling import (
    SamplePoint, SampleValue, drop_incomplete, rows_to_frame, sample, sample_to_frame
)
from env_layers.processing.stack import RasterStack
from synthetic import make_grid, NODATA


class TestSample(unittest.TestCase):
    """Test nearest-cell sampling of a 2x2 stack covering x, y in [0, 2]."""

    def setUp(self):
        self.a = make_grid("A", [[1.0, 2.0], [3.0, 4.0]])
        self.b = make_grid("B", [[10.0, 20.0], [30.0, 40.0]])
        self.stack = RasterStack.build([self.a, self.b])
        self.points = [
            SamplePoint("p1", 0.5, 1.5),
            SamplePoint("p2", 1.5, 0.5),
            SamplePoint("p3", 5.0, 5.0),
        ]

    def test_two_band_scenario(self):
        self.assertAlmostEqual(correlate(self.stack).get("A", "B"), 1.0, places=12)

        rows = sample(self.stack, self.points)
        self.assertEqual([r.point_id for r in rows], ["p1", "p2", "p3"])
        self.assertEqual(rows[0].values["A"], SampleValue(1.0, False))
        self.assertEqual(rows[0].values["B"], SampleValue(10.0, False))
        self.assertEqual(rows[1].value("A"), 4.0)
        self.assertEqual(rows[1].value("B"), 40.0)

        complete = [r for r in rows if r.is_complete]
        self.assertEqual(len(complete), 2)
        self.assertEqual(rows[2].values["A"], SampleValue(None, True))
        self.assertEqual(rows[2].values["B"], SampleValue(None, True))

        kept = drop_incomplete(rows)
        self.assertEqual([r.point_id for r in kept], ["p1", "p2"])

    def test_outside_points_are_missing_in_every_band(self):
        outside = [SamplePoint("w", -0.01, 1.0), SamplePoint("n", 1.0, 2.5),
                   SamplePoint("far", 1e6, -1e6)]
        for row in sample(self.stack, outside):
            self.assertTrue(all(v.is_missing and v.value is None for v in row.values.values()))

    def test_sentinel_cell_is_missing_in_that_band_only(self):
        c = make_grid("C", [[NODATA, 2.0], [3.0, 4.0]])
        stack = RasterStack.build([self.a, c])
        row = sample(stack, [SamplePoint("p", 0.2, 1.8)])[0]
        self.assertEqual(row.values["A"], SampleValue(1.0, False))
        self.assertTrue(row.values["C"].is_missing)
        self.assertFalse(row.is_complete)

    def test_zero_is_a_valid_value(self):
        z = make_grid("Z", [[0.0, 0.0], [0.0, 0.0]])
        row = sample(RasterStack.build([z]), [SamplePoint("p", 1.0, 1.0)])[0]
        self.assertEqual(row.values["Z"], SampleValue(0.0, False))

    def test_max_edge_maps_to_last_cell(self):
        row = sample(self.stack, [SamplePoint("corner", 2.0, 0.0)])[0]
        self.assertEqual(row.value("A"), 4.0)

    def test_points_on_inner_cell_edges(self):
        # 0.1 degree cells, each holding its column index
        cols = make_grid("col", np.tile(np.arange(10, dtype=np.float64), (10, 1)),
                         cell_size=(0.1, 0.1))
        rows = sample(RasterStack.build([cols]),
                      [SamplePoint(str(x), x, 0.95) for x in (0.3, 0.6, 0.7)])
        self.assertEqual([r.value("col") for r in rows], [3.0, 6.0, 7.0])

        grid_rows = make_grid("row", np.repeat(np.arange(10, dtype=np.float64)[:, None], 10, axis=1),
                              cell_size=(0.1, 0.1))
        row = sample(RasterStack.build([grid_rows]), [SamplePoint("edge", 0.05, 0.3)])[0]
        self.assertEqual(row.value("row"), 7.0)

    def test_band_order_follows_stack(self):
        stack = RasterStack.build([self.b, self.a])
        row = sample(stack, [self.points[0]])[0]
        self.assertEqual(list(row.values), ["B", "A"])

    def test_precision_rounds_half_away_from_zero(self):
        g = make_grid("G", [[2.675, -2.5], [0.125, 1.0]])
        stack = RasterStack.build([g])
        rows = sample(stack, [SamplePoint("a", 0.5, 1.5), SamplePoint("b", 1.5, 1.5),
                              SamplePoint("c", 0.5, 0.5)], precision=2)
        self.assertEqual([r.value("G") for r in rows], [2.68, -2.5, 0.13])

        rows = sample(stack, [SamplePoint("b", 1.5, 1.5)], precision=0)
        self.assertEqual(rows[0].value("G"), -3.0)

    def test_invalid_precision(self):
        with self.assertRaises(ValueError):
            sample(self.stack, self.points, precision=-1)
        with self.assertRaises(ValueError):
            sample(self.stack, self.points, precision=1.5)


class TestRowsToFrame(unittest.TestCase):
    """Test tabular conversion of extraction rows."""

    def setUp(self):
        a = make_grid("A", [[1.0, 2.0], [3.0, 4.0]])
        b = make_grid("B", [[10.0, NODATA], [30.0, 40.0]])
        self.stack = RasterStack.build([a, b])
        self.points = [SamplePoint("p1", 0.5, 1.5), SamplePoint("p2", 1.5, 1.5),
                       SamplePoint("p3", 9.0, 9.0)]

    def test_columns_and_missing_values(self):
        rows = sample(self.stack, self.points)
        df = rows_to_frame(rows, self.stack.band_names)
        self.assertEqual(list(df.columns), ["id", "x", "y", "A", "B"])
        self.assertEqual(df["B"].dtype, pd.Float64Dtype())
        self.assertEqual(df.loc[0, "B"], 10.0)
        self.assertTrue(pd.isna(df.loc[1, "B"]))
        self.assertTrue(df.loc[2, ["A", "B"]].isna().all())
        self.assertFalse((df[["A", "B"]].fillna(-1) == 0).any().any())

    def test_sample_to_frame_drops_incomplete(self):
        df = sample_to_frame(self.stack, self.points, drop_missing=True)
        self.assertEqual(df["id"].tolist(), ["p1"])

    def test_band_name_clash_rejected(self):
        rows = sample(self.stack, self.points)
        with self.assertRaises(ValueError):
            rows_to_frame(rows, ["x"])


if __name__ == '__main__':
    unittest.main()
