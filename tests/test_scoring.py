"""Tests for the pure scoring rules and the correctness check."""
from __future__ import annotations

import unittest

from updown_node.entities.game import PredictionDirection
from updown_node.game_config import ScoringRules
from updown_node.services.resolver import compute_score, is_prediction_correct


class TestComputeScore(unittest.TestCase):
    def test_full_bonus_prediction(self):
        breakdown = compute_score(True, accuracy=100, speed_ms=2000, streak=5)
        self.assertEqual(breakdown.base, 100)
        self.assertEqual(breakdown.accuracy_bonus, 50)
        self.assertEqual(breakdown.speed_bonus, 20)
        self.assertEqual(breakdown.streak_bonus, 50)
        self.assertEqual(breakdown.total, 220)

    def test_incorrect_prediction_scores_zero_whatever_the_inputs(self):
        for accuracy, speed_ms, streak in [(100, 10, 10), (0, 0, 0), (80, 9000, 3)]:
            self.assertEqual(compute_score(False, accuracy, speed_ms, streak).total, 0)

    def test_slow_correct_prediction_without_bonuses(self):
        self.assertEqual(compute_score(True, 0, 6000, 0).total, 100)

    def test_speed_threshold_is_exclusive(self):
        self.assertEqual(compute_score(True, 0, 4999, 0).speed_bonus, 20)
        self.assertEqual(compute_score(True, 0, 5000, 0).speed_bonus, 0)

    def test_bonuses_are_capped(self):
        breakdown = compute_score(True, accuracy=400, speed_ms=10_000, streak=25)
        self.assertEqual(breakdown.accuracy_bonus, 50)
        self.assertEqual(breakdown.streak_bonus, 100)
        self.assertEqual(breakdown.total, 250)

    def test_fractional_accuracy_bonus_is_rounded_in_total(self):
        breakdown = compute_score(True, accuracy=33, speed_ms=6000, streak=0)
        self.assertEqual(breakdown.accuracy_bonus, 16.5)
        self.assertEqual(breakdown.total, 116)

    def test_custom_rules(self):
        rules = ScoringRules(base_points=10, speed_bonus=0, streak_step=1, streak_bonus_cap=3)
        self.assertEqual(compute_score(True, 0, 0, 7, rules=rules).total, 13)


class TestCorrectness(unittest.TestCase):
    def test_up_wins_when_price_rises(self):
        self.assertTrue(is_prediction_correct(PredictionDirection.UP, 100.0, 101.0))
        self.assertFalse(is_prediction_correct(PredictionDirection.UP, 100.0, 99.0))

    def test_down_wins_when_price_falls(self):
        self.assertTrue(is_prediction_correct(PredictionDirection.DOWN, 100.0, 99.5))
        self.assertFalse(is_prediction_correct(PredictionDirection.DOWN, 100.0, 100.5))

    def test_flat_price_loses_both_ways(self):
        self.assertFalse(is_prediction_correct(PredictionDirection.UP, 100.0, 100.0))
        self.assertFalse(is_prediction_correct(PredictionDirection.DOWN, 100.0, 100.0))


if __name__ == "__main__":
    unittest.main()
