"""
Tests for the tabular learning primitives.
"""
import random

import pytest

from mindloop.learning import algorithms
from mindloop.learning.rolling_buffer import OutcomeBuffer, RollingBuffer


class TestQLearning:
    """Tests for the Q-table helpers."""

    def test_init_q_table_zero_fills(self):
        table = algorithms.init_q_table(["idle", "mining"], ["a1", "a2"])
        assert table == {"idle": {"a1": 0.0, "a2": 0.0}, "mining": {"a1": 0.0, "a2": 0.0}}

    def test_update_matches_formula(self):
        """Q = 0 + 0.5 * (1 + 0.9 * 0 - 0) = 0.5."""
        table = algorithms.init_q_table(["idle", "mining"], ["a1", "a2"])
        value = algorithms.update_q_value(table, "idle", "a1", 1.0, "mining", 0.5, 0.9)

        assert value == pytest.approx(0.5)
        assert table["idle"]["a1"] == pytest.approx(0.5)

    def test_update_uses_next_state_max(self):
        table = algorithms.init_q_table(["idle", "mining"], ["a1", "a2"])
        table["mining"]["a2"] = 1.0

        value = algorithms.update_q_value(table, "idle", "a1", 0.0, "mining", 1.0, 0.9)
        assert value == pytest.approx(0.9)

    def test_unknown_next_state_counts_as_zero(self):
        table = algorithms.init_q_table(["idle"], ["a1"])
        value = algorithms.update_q_value(table, "idle", "a1", 1.0, "nowhere", 1.0, 0.9)
        assert value == pytest.approx(1.0)

    def test_update_never_overshoots_target(self):
        """For lr in (0, 1] the new value lies between the old value and the target."""
        rng = random.Random(3)
        for _ in range(200):
            table = algorithms.init_q_table(["s", "t"], ["a", "b"])
            table["s"]["a"] = rng.uniform(-2, 2)
            table["t"]["b"] = rng.uniform(-2, 2)
            lr = rng.uniform(0.01, 1.0)
            reward = rng.uniform(-1, 1)

            old = table["s"]["a"]
            target = reward + 0.9 * max(table["t"].values())
            new = algorithms.update_q_value(table, "s", "a", reward, "t", lr, 0.9)

            assert abs(target - new) <= abs(target - old) + 1e-12

    def test_greedy_selection_breaks_ties_by_order(self):
        table = algorithms.init_q_table(["s"], ["a", "b", "c"])
        assert algorithms.select_q_action(table, "s", ["b", "a", "c"], 0.0) == "b"

        table["s"]["c"] = 0.3
        assert algorithms.select_q_action(table, "s", ["b", "a", "c"], 0.0) == "c"

    def test_selection_respects_candidates(self):
        table = algorithms.init_q_table(["s"], ["a", "b"])
        table["s"]["a"] = 5.0
        rng = random.Random(0)
        for _ in range(50):
            assert algorithms.select_q_action(table, "s", ["b"], 1.0, rng) == "b"

    def test_no_candidates(self):
        assert algorithms.select_q_action({}, "s", [], 0.5) is None

    def test_max_q_of_empty_row(self):
        assert algorithms.max_q({"s": {}}, "s") == 0.0
        assert algorithms.max_q({}, None) == 0.0


class TestBandit:
    """Tests for the state bandit."""

    def test_mean_of_rewards(self):
        bandit = algorithms.init_bandit(["idle"])
        for reward in (1.0, 0.0, 1.0):
            algorithms.update_bandit(bandit, "idle", reward)

        assert bandit["counts"]["idle"] == 3
        assert bandit["values"]["idle"] == pytest.approx(2 / 3)

    def test_two_rewards(self):
        bandit = algorithms.init_bandit(["mining"])
        algorithms.update_bandit(bandit, "mining", 0.2)
        algorithms.update_bandit(bandit, "mining", 0.8)

        assert bandit["counts"]["mining"] == 2
        assert bandit["values"]["mining"] == pytest.approx(0.5)

    def test_greedy_arm(self):
        bandit = algorithms.init_bandit(["idle", "mining"])
        algorithms.update_bandit(bandit, "mining", 0.4)
        assert algorithms.select_bandit_arm(bandit, ["idle", "mining"], 0.0) == "mining"

    def test_no_arms(self):
        assert algorithms.select_bandit_arm(algorithms.init_bandit([]), [], 0.1) is None


class TestDifficulty:
    """Tests for exploration adjustment and reward normalization."""

    def test_explores_more_when_failing(self):
        assert algorithms.adjust_exploration_rate(0.1, 0.2) == pytest.approx(0.125)

    def test_explores_less_when_succeeding(self):
        assert algorithms.adjust_exploration_rate(0.1, 1.0) == pytest.approx(0.085)

    def test_rate_stays_bounded(self):
        rng = random.Random(11)
        rate = 0.1
        for _ in range(1000):
            rate = algorithms.adjust_exploration_rate(rate, rng.random(), adjustment_factor=rng.uniform(0, 2))
            assert algorithms.MIN_EXPLORATION <= rate <= algorithms.MAX_EXPLORATION

    def test_normalize_without_history(self):
        assert algorithms.normalize_reward(3.0, []) == 3.0

    def test_normalize_clips(self):
        assert algorithms.normalize_reward(100.0, [0.0, 1.0, 0.0, 1.0]) == 1.0
        assert algorithms.normalize_reward(-100.0, [0.0, 1.0, 0.0, 1.0]) == -1.0

    def test_normalize_zero_std(self):
        """Constant history uses a unit standard deviation."""
        assert algorithms.normalize_reward(0.7, [0.5, 0.5, 0.5]) == pytest.approx(0.2)

    def test_mean_and_std(self):
        mean, std = algorithms.mean_and_std([1.0, 3.0])
        assert mean == 2.0
        assert std == 1.0
        assert algorithms.mean_and_std([]) == (0.0, 0.0)


class TestBuffers:
    """Tests for the rolling windows."""

    def test_rolling_buffer_evicts_oldest(self):
        buffer = RollingBuffer(3)
        for v in range(5):
            buffer.append(v)
        assert buffer.values() == [2, 3, 4]
        assert len(buffer) == 3

    def test_rolling_buffer_mean_default(self):
        assert RollingBuffer(3).mean(default=0.5) == 0.5

    def test_outcome_buffer_success_rate(self):
        outcomes = OutcomeBuffer(4)
        assert outcomes.success_rate() == 0.5

        for ok in (True, True, False, True, True):
            outcomes.record(ok)
        assert outcomes.success_rate() == pytest.approx(0.75)
