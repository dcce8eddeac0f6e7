#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
Test suite for the utility helpers.
"""
import math
import unittest

from env_layers.utils.utils import parallel_apply, round_half_away, timer


def _square(x, offset=0):
    return x * x + offset


class TestRoundHalfAway(unittest.TestCase):
    """Test decimal rounding with ties away from zero."""

    def test_ties_away_from_zero(self):
        self.assertEqual(round_half_away(0.5, 0), 1.0)
        self.assertEqual(round_half_away(-0.5, 0), -1.0)
        self.assertEqual(round_half_away(2.5, 0), 3.0)
        self.assertEqual(round_half_away(1.005, 2), 1.01)
        self.assertEqual(round_half_away(-1.005, 2), -1.01)

    def test_non_ties(self):
        self.assertEqual(round_half_away(3.14159, 3), 3.142)
        self.assertEqual(round_half_away(-3.14159, 1), -3.1)
        self.assertEqual(round_half_away(7.0, 4), 7.0)

    def test_idempotent(self):
        values = [0.1 * i - 7.3 for i in range(150)] + [2.675, 1e-7, 123456.789, -0.049999]
        for precision in range(5):
            for value in values:
                once = round_half_away(value, precision)
                self.assertEqual(round_half_away(once, precision), once)

    def test_large_values_and_non_finite(self):
        self.assertEqual(round_half_away(1e30, 3), 1e30)
        self.assertTrue(math.isnan(round_half_away(float("nan"), 2)))
        self.assertEqual(round_half_away(float("inf"), 2), float("inf"))

    def test_negative_precision_rejected(self):
        with self.assertRaises(ValueError):
            round_half_away(1.0, -1)


class TestHelpers(unittest.TestCase):
    """Test timing and parallel helpers."""

    def test_timer_preserves_result_and_name(self):
        wrapped = timer(_square)
        self.assertEqual(wrapped(3), 9)
        self.assertEqual(wrapped.__name__, "_square")

    def test_parallel_apply_keeps_order(self):
        items = list(range(10))
        expected = [x * x + 1 for x in items]
        self.assertEqual(parallel_apply(_square, items, n_jobs=3, prefer="threads",
                                        progress=False, offset=1), expected)
        self.assertEqual(parallel_apply(_square, items, n_jobs=1, progress=False,
                                        offset=1), expected)


if __name__ == '__main__':
    unittest.main()
