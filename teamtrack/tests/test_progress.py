import math
import random
import unittest

from teamtrack.errors import DegenerateWeightError, ValidationError
from teamtrack.services.progress import (
    aggregate_progress,
    derive_status,
    normalize_weights,
    task_progress,
)


class NormalizeWeightsTests(unittest.TestCase):
    def test_percents_sum_to_one_and_are_non_negative(self) -> None:
        rng = random.Random(7)
        for _ in range(200):
            weights = [rng.randint(0, 400) for _ in range(rng.randint(1, 12))]
            if len(weights) > 1 and sum(weights) == 0:
                continue
            percents = normalize_weights(weights)
            self.assertEqual(len(percents), len(weights))
            self.assertTrue(all(p >= 0 for p in percents))
            self.assertTrue(math.isclose(sum(percents), 1.0, abs_tol=1e-9))

    def test_proportional_split(self) -> None:
        self.assertEqual(normalize_weights([3, 9]), [0.25, 0.75])
        self.assertEqual(normalize_weights([7, 7]), [0.5, 0.5])

    def test_single_member_is_always_whole(self) -> None:
        self.assertEqual(normalize_weights([0]), [1.0])
        self.assertEqual(normalize_weights([42]), [1.0])

    def test_zero_total_across_several_members_is_degenerate(self) -> None:
        with self.assertRaises(DegenerateWeightError):
            normalize_weights([0, 0])

    def test_negative_weights_are_rejected(self) -> None:
        with self.assertRaises(ValidationError):
            normalize_weights([5, -1])

    def test_empty_group(self) -> None:
        self.assertEqual(normalize_weights([]), [])


class AggregateProgressTests(unittest.TestCase):
    def test_weighted_sum(self) -> None:
        self.assertAlmostEqual(aggregate_progress([(0.25, 0.0), (0.75, 1.0)]), 0.75)
        self.assertAlmostEqual(aggregate_progress([(0.5, 0.75), (0.5, 0.0)]), 0.375)

    def test_result_stays_within_bounds(self) -> None:
        rng = random.Random(11)
        for _ in range(200):
            percents = normalize_weights([rng.randint(1, 50) for _ in range(rng.randint(1, 9))])
            pairs = [(p, rng.random()) for p in percents]
            value = aggregate_progress(pairs)
            self.assertGreaterEqual(value, 0.0)
            self.assertLessEqual(value, 1.0)

    def test_float_noise_snaps_to_exact_completion(self) -> None:
        thirds = normalize_weights([1, 1, 1])
        self.assertEqual(aggregate_progress((p, 1.0) for p in thirds), 1.0)

    def test_empty_group_has_no_progress(self) -> None:
        self.assertEqual(aggregate_progress([]), 0.0)


class StatusTests(unittest.TestCase):
    def test_completed_only_at_full_progress(self) -> None:
        self.assertEqual(derive_status(1.0), "Completed")
        self.assertEqual(derive_status(0.999), "Processing")

    def test_completed_project_reopens(self) -> None:
        self.assertEqual(derive_status(0.5, "Completed"), "Processing")

    def test_task_progress_is_binary(self) -> None:
        self.assertEqual(task_progress("Done"), 1.0)
        for status in ("Todo", "Doing", "Review"):
            self.assertEqual(task_progress(status), 0.0)


if __name__ == "__main__":
    unittest.main()
