#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for pipeline configuration.
"""
import os
import shutil
import tempfile
import unittest
from pathlib import Path

from env_layers.core.config import DEFAULT_CACHE_DIR, PipelineConfig, parse_layer_spec
from env_layers.core.exceptions import ConfigurationError


class TestParseLayerSpec(unittest.TestCase):

    def test_forms(self):
        self.assertEqual(parse_layer_spec("bio1"), ("bio1", "latest"))
        self.assertEqual(parse_layer_spec("bio1@2.1"), ("bio1", "2.1"))
        self.assertEqual(parse_layer_spec("user@host@v3"), ("user@host", "v3"))

    def test_invalid(self):
        for reference in ("", "  ", "@v1", "bio1@"):
            with self.assertRaises(ConfigurationError):
                parse_layer_spec(reference)


class TestPipelineConfig(unittest.TestCase):
    """Test validation and loading of run parameters."""

    def setUp(self):
        self.test_dir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.test_dir)

    def test_defaults(self):
        config = PipelineConfig(layers=["bio1", "bio12@2"], bbox=[0, 0, 1, 1])
        self.assertEqual(config.layers, [("bio1", "latest"), ("bio12", "2")])
        self.assertEqual(config.layer_names, ["bio1", "bio12"])
        self.assertEqual(config.bbox, (0.0, 0.0, 1.0, 1.0))
        self.assertEqual(config.threshold, 0.6)
        self.assertTrue(config.select_layers)
        self.assertIsNone(config.precision)
        self.assertEqual(config.cache_dir, DEFAULT_CACHE_DIR)

    def test_invalid_values(self):
        cases = [
            dict(layers=[], bbox=(0, 0, 1, 1)),
            dict(layers=["a"], bbox=(1, 0, 0, 1)),
            dict(layers=["a"], bbox=(0, 0, 1)),
            dict(layers=["a"], bbox=(0, 0, 1, 1), threshold=1.5),
            dict(layers=["a"], bbox=(0, 0, 1, 1), threshold="high"),
            dict(layers=["a"], bbox=(0, 0, 1, 1), precision=-2),
            dict(layers=["a"], bbox=(0, 0, 1, 1), precision=True),
            dict(layers=["a"], bbox=(0, 0, 1, 1), n_jobs=0),
        ]
        for kwargs in cases:
            with self.assertRaises(ConfigurationError, msg=str(kwargs)):
                PipelineConfig(**kwargs)

    def test_repeated_layer_id_rejected(self):
        for layers in (["A@latest", "A@v2"], ["A", "A"], ["A", "B", ("A", "latest")]):
            with self.assertRaises(ConfigurationError, msg=str(layers)):
                PipelineConfig(layers=layers, bbox=(0, 0, 1, 1))

    def test_from_dict_rejects_unknown_keys(self):
        with self.assertRaises(ConfigurationError):
            PipelineConfig.from_dict({"layers": ["a"], "bbox": [0, 0, 1, 1], "colour": "red"})
        with self.assertRaises(ConfigurationError):
            PipelineConfig.from_dict({"layers": ["a"]})

    def test_from_yaml_with_overrides(self):
        path = os.path.join(self.test_dir, "run.yaml")
        with open(path, "w") as f:
            f.write("layers: [bio1, bio12@2]\n"
                    "bbox: [-10, 35, 5, 45]\n"
                    "threshold: 0.7\n"
                    "precision: 3\n"
                    f"cache_dir: {self.test_dir}\n")

        config = PipelineConfig.from_yaml(path, overrides={"threshold": 0.8, "layers": None})
        self.assertEqual(config.threshold, 0.8)
        self.assertEqual(config.layers, [("bio1", "latest"), ("bio12", "2")])
        self.assertEqual(config.precision, 3)
        self.assertEqual(config.cache_dir, Path(self.test_dir))

    def test_from_yaml_requires_mapping(self):
        path = os.path.join(self.test_dir, "list.yaml")
        with open(path, "w") as f:
            f.write("- a\n- b\n")
        with self.assertRaises(ConfigurationError):
            PipelineConfig.from_yaml(path)


if __name__ == '__main__':
    unittest.main()
