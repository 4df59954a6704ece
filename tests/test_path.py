"""Tests for the global allocation path."""

import numpy as np
import pytest

from qinipath.solver import solve_path


def uniform(n):
    return np.full(n, 1.0 / n)


class TestTargetedPath:
    """Test the personalized path solver."""

    def test_monotone_and_within_budget(self, toy_data):
        """Spend strictly increases, gain never decreases, budget is respected."""
        reward, cost, _ = toy_data
        budget = 0.3
        path = solve_path(reward, reward, cost, uniform(len(reward)), budget)

        assert len(path) > 0
        assert np.all(np.diff(path.spend) > 0)
        assert np.all(np.diff(path.gain) >= -1e-12)
        assert path.spend[-1] <= budget
        assert not path.complete_path

    def test_stops_before_unaffordable_event(self):
        """The event that would overshoot the budget is kept aside, off the path."""
        reward = np.array([[2.0], [1.0]])
        cost = np.ones((2, 1))

        path = solve_path(reward, reward, cost, uniform(2), budget=0.75)

        np.testing.assert_allclose(path.spend, [0.5])
        np.testing.assert_array_equal(path.ipath, [0])
        assert not path.complete_path
        assert path.pending.unit == 1
        assert path.pending.arm == 0
        assert path.pending.spend == pytest.approx(1.0)
        assert path.pending.gain == pytest.approx(1.5)

    def test_complete_path(self):
        """Exhausting every hull marks the path complete."""
        reward = np.array([[2.0], [1.0]])
        cost = np.ones((2, 1))

        path = solve_path(reward, reward, cost, uniform(2), budget=1.0)

        np.testing.assert_allclose(path.spend, [0.5, 1.0])
        np.testing.assert_array_equal(path.ipath, [0, 1])
        assert path.complete_path
        assert path.pending is None

    def test_gain_uses_scores(self):
        """Gain is scored with the evaluation scores, not the reward."""
        path = solve_path(
            np.array([[1.0]]), np.array([[5.0]]), np.array([[1.0]]), np.ones(1), budget=2.0,
        )

        assert path.gain[0] == pytest.approx(5.0)

    def test_default_ties_by_index(self):
        """Equal ratios are allocated in index order."""
        reward = np.ones((3, 1))
        cost = np.ones((3, 1))

        path = solve_path(reward, reward, cost, uniform(3), budget=2.0)

        np.testing.assert_array_equal(path.ipath, [0, 1, 2])

    def test_explicit_tie_breaker(self):
        """The unit with the lower tie-breaker value wins a tie."""
        reward = np.ones((3, 1))
        cost = np.ones((3, 1))

        path = solve_path(
            reward, reward, cost, uniform(3), budget=2.0, tie_breaker=np.array([2, 0, 1]),
        )

        np.testing.assert_array_equal(path.ipath, [1, 2, 0])

    def test_tie_determinism(self, toy_data):
        """Identical inputs give identical event order."""
        reward, cost, scores = toy_data
        reward = np.round(reward, 1)
        ties = np.random.default_rng(1).permutation(len(reward))

        first = solve_path(reward, scores, cost, uniform(len(reward)), 5.0, tie_breaker=ties)
        second = solve_path(reward, scores, cost, uniform(len(reward)), 5.0, tie_breaker=ties)

        assert first.ipath.tobytes() == second.ipath.tobytes()
        assert first.kpath.tobytes() == second.kpath.tobytes()
        assert first.spend.tobytes() == second.spend.tobytes()

    def test_unit_upgrades_along_hull(self):
        """A unit moves forward through its hull, paying only the extra cost."""
        reward = np.array([[1.0, 1.2, 3.0]])
        cost = np.array([[1.0, 2.0, 3.0]])
        scores = np.array([[0.5, 0.0, 2.0]])

        path = solve_path(reward, scores, cost, np.ones(1), budget=10.0)

        np.testing.assert_array_equal(path.kpath, [0, 2])
        np.testing.assert_allclose(path.delta_cost, [1.0, 2.0])
        np.testing.assert_allclose(path.spend, [1.0, 3.0])
        np.testing.assert_allclose(path.gain, [0.5, 2.0])
        assert path.complete_path

    def test_negative_unit_never_allocated(self, toy_data):
        """A unit with negative reward on every arm never enters the path."""
        reward, cost, scores = toy_data
        reward = reward.copy()
        reward[7] = -np.abs(reward[7]) - 0.1

        path = solve_path(reward, scores, cost, uniform(len(reward)), budget=cost.sum())

        assert 7 not in path.ipath
        assert path.complete_path

    def test_single_arm_qini(self):
        """With one arm the path treats units by decreasing reward/cost."""
        rng = np.random.default_rng(5)
        reward = rng.uniform(0.1, 2.0, size=(50, 1))
        cost = np.ones((50, 1))

        path = solve_path(reward, reward, cost, uniform(50), budget=2.0)

        np.testing.assert_array_equal(path.ipath, np.argsort(-reward[:, 0], kind="stable"))
        slopes = np.diff(np.concatenate(([0.0], path.gain))) / np.diff(
            np.concatenate(([0.0], path.spend))
        )
        assert np.all(np.diff(slopes) <= 1e-12)
        assert path.complete_path

    def test_sample_weights_scale_steps(self):
        """Each step spends and gains in proportion to the unit's weight."""
        reward = np.array([[2.0], [1.0]])
        cost = np.array([[1.0], [2.0]])
        weights = np.array([0.25, 0.75])

        path = solve_path(reward, reward, cost, weights, budget=10.0)

        np.testing.assert_allclose(path.spend, [0.25, 1.75])
        np.testing.assert_allclose(path.gain, [0.5, 1.25])


class TestAveragePath:
    """Test the non-personalized path."""

    def setup_method(self):
        self.reward = np.array([[1.0, 0.5], [0.2, 3.0], [0.3, 0.1]])
        self.cost = np.array([[1.0, 2.0]] * 3)
        self.scores = np.array([[0.1, 0.6], [0.2, 0.9], [0.3, -0.3]])

    def test_same_arm_for_every_unit(self):
        """All units get the arm ranked best on average, in index order."""
        path = solve_path(
            self.reward, self.scores, self.cost, uniform(3), budget=10.0,
            target_with_covariates=False,
        )

        np.testing.assert_array_equal(path.ipath, [0, 1, 2])
        np.testing.assert_array_equal(path.kpath, [1, 1, 1])
        np.testing.assert_allclose(path.spend, [2 / 3, 4 / 3, 2.0])
        np.testing.assert_allclose(path.gain, np.cumsum(self.scores[:, 1]) / 3)
        assert path.complete_path

    def test_budget_cut(self):
        """The average path also stops at the budget."""
        path = solve_path(
            self.reward, self.scores, self.cost, uniform(3), budget=1.0,
            target_with_covariates=False,
        )

        assert len(path) == 1
        assert not path.complete_path
        assert path.pending.unit == 1
        assert path.pending.arm == 1
        assert path.pending.spend == pytest.approx(4 / 3)
        assert path.pending.gain == pytest.approx(0.5)

    def test_tie_breaker_ignored(self):
        """Unit order within an arm step is by index only."""
        path = solve_path(
            self.reward, self.scores, self.cost, uniform(3), budget=10.0,
            tie_breaker=np.array([2, 1, 0]), target_with_covariates=False,
        )

        np.testing.assert_array_equal(path.ipath, [0, 1, 2])

    def test_multi_step_hull(self):
        """Units are upgraded position by position along the average hull."""
        reward = np.array([[1.0, 1.5]] * 2)
        cost = np.array([[1.0, 2.0]] * 2)

        path = solve_path(
            reward, reward, cost, uniform(2), budget=10.0, target_with_covariates=False,
        )

        np.testing.assert_array_equal(path.ipath, [0, 1, 0, 1])
        np.testing.assert_array_equal(path.kpath, [0, 0, 1, 1])
        np.testing.assert_allclose(path.spend, [0.5, 1.0, 1.5, 2.0])

    def test_no_beneficial_arm(self):
        """Negative average rewards give an empty, complete path."""
        path = solve_path(
            -np.ones((3, 2)), np.ones((3, 2)), np.ones((3, 2)), uniform(3), budget=1.0,
            target_with_covariates=False,
        )

        assert len(path) == 0
        assert path.complete_path
