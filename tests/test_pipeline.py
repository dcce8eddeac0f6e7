#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for the end-to-end extraction pipeline.

The source holds three 4x4 layers covering x, y in [0, 4]: A, B = 2A + 1,
and a checkerboard C with one missing cell. The study box keeps the top
three rows.
"""
import os
import shutil
import tempfile
import unittest

from env_layers.acquisition.providers import LocalDirectoryProvider
from env_layers.core.config import PipelineConfig
from env_layers.core.exceptions import ConfigurationError, LayerNotFound, NoOverlap
from env_layers.pipeline import run_pipeline
from env_layers.processing.sampling import SamplePoint
from synthetic import write_layer_source


class TestRunPipeline(unittest.TestCase):

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()
        self.source_dir = os.path.join(self.test_dir, "source")
        os.makedirs(self.source_dir)
        write_layer_source(self.source_dir)
        self.provider = LocalDirectoryProvider(self.source_dir)
        self.cache_dir = os.path.join(self.test_dir, "cache")
        self.points = [
            SamplePoint("p1", 0.5, 3.5),
            SamplePoint("p2", 3.5, 1.5),
            SamplePoint("p3", 1.5, 2.5),
            SamplePoint("p4", 0.5, 0.5),
        ]

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def _config(self, **kwargs):
        params = dict(layers=["A", "B", "C"], bbox=(0.0, 1.0, 4.0, 4.0),
                      cache_dir=self.cache_dir, n_jobs=2)
        params.update(kwargs)
        return PipelineConfig(**params)

    def test_prunes_correlated_layer_and_samples(self):
        result = run_pipeline(self._config(), self.provider, self.points)

        self.assertEqual(result.requested, ["A", "B", "C"])
        self.assertEqual(result.retained, ["A", "C"])
        self.assertEqual(result.stack.band_names, ("A", "C"))
        self.assertEqual(result.stack.geometry.shape, (3, 4))
        self.assertAlmostEqual(result.matrix.get("A", "B"), 1.0, places=9)

        rows = {row.point_id: row for row in result.rows}
        self.assertEqual((rows["p1"].value("A"), rows["p1"].value("C")), (0.0, 0.0))
        self.assertEqual((rows["p2"].value("A"), rows["p2"].value("C")), (11.0, 1.0))
        self.assertEqual(rows["p3"].value("A"), 5.0)
        self.assertTrue(rows["p3"].values["C"].is_missing)
        self.assertTrue(all(v.is_missing for v in rows["p4"].values.values()))

    def test_priority_order_decides_the_survivor(self):
        result = run_pipeline(self._config(layers=["B", "A", "C"]), self.provider, self.points)
        self.assertEqual(result.retained, ["B", "C"])

    def test_no_selection_keeps_every_layer(self):
        result = run_pipeline(self._config(select_layers=False), self.provider, self.points)
        self.assertIsNone(result.matrix)
        self.assertEqual(result.stack.band_names, ("A", "B", "C"))
        self.assertEqual(result.rows[1].value("B"), 23.0)

    def test_drop_incomplete(self):
        result = run_pipeline(self._config(drop_incomplete=True), self.provider, self.points)
        self.assertEqual([row.point_id for row in result.rows], ["p1", "p2"])

    def test_second_run_is_served_from_cache(self):
        run_pipeline(self._config(), self.provider, self.points)
        shutil.rmtree(self.source_dir)
        os.makedirs(self.source_dir)
        result = run_pipeline(self._config(), self.provider, self.points)
        self.assertEqual(result.retained, ["A", "C"])

    def test_unknown_layer_fails_the_run(self):
        with self.assertRaises(LayerNotFound):
            run_pipeline(self._config(layers=["A", "missing"]), self.provider, self.points)

    def test_two_versions_of_one_layer_rejected_before_fetching(self):
        with self.assertRaises(ConfigurationError):
            run_pipeline(self._config(layers=["A@latest", "A@v2"], select_layers=False),
                         self.provider, self.points)
        self.assertFalse(os.path.exists(self.cache_dir))

    def test_box_outside_layers(self):
        with self.assertRaises(NoOverlap):
            run_pipeline(self._config(bbox=(10.0, 10.0, 11.0, 11.0)), self.provider, self.points)


if __name__ == '__main__':
    unittest.main()
