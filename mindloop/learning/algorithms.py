"""
Tabular reinforcement-learning primitives.

Pure functions over plain dictionaries so the tables stay directly
JSON-serializable:

- Q-learning: ``q_table[state][action] -> value``
- Multi-armed bandit: ``{"counts": {arm: n}, "values": {arm: mean}}``
- Dynamic difficulty: exploration-rate adjustment and reward normalization

All epsilon-greedy selectors break ties in favour of the earliest
candidate, so exploitation is deterministic for a fixed candidate order.
"""
from __future__ import annotations

import math
import random
from typing import Dict, List, Optional, Sequence, Tuple

QTable = Dict[str, Dict[str, float]]
Bandit = Dict[str, Dict[str, float]]

MIN_EXPLORATION = 0.01
MAX_EXPLORATION = 0.5


def _explore(epsilon: float, rng: Optional[random.Random]) -> bool:
    return (rng or random).random() < epsilon


def _choice(items: Sequence[str], rng: Optional[random.Random]) -> str:
    return items[int((rng or random).random() * len(items))]


def argmax_first(candidates: Sequence[str], values: Dict[str, float]) -> Optional[str]:
    """Candidate with the highest value; the first one wins ties. Missing values count as 0."""
    if not candidates:
        return None
    best = candidates[0]
    best_value = values.get(best, 0.0)
    for candidate in candidates[1:]:
        value = values.get(candidate, 0.0)
        if value > best_value:
            best = candidate
            best_value = value
    return best


# ----------------------------------------------------------------------
# Q-learning
# ----------------------------------------------------------------------

def init_q_table(states: Sequence[str], actions: Sequence[str], initial_value: float = 0.0) -> QTable:
    return {state: {action: initial_value for action in actions} for state in states}


def select_q_action(
    q_table: QTable,
    state: str,
    candidates: Sequence[str],
    epsilon: float,
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    """
    Epsilon-greedy action selection from a Q-table row.

    Args:
        q_table: Q-table
        state: Row to read
        candidates: Actions allowed in this state, in preference order
        epsilon: Probability of picking uniformly at random

    Returns:
        Selected action, or None when there are no candidates
    """
    if not candidates:
        return None
    if _explore(epsilon, rng):
        return _choice(candidates, rng)
    return argmax_first(candidates, q_table.get(state, {}))


def max_q(q_table: QTable, state: Optional[str]) -> float:
    """Highest value in a row; 0 for an unseen or empty row."""
    row = q_table.get(state) if state is not None else None
    if not row:
        return 0.0
    return max(row.values())


def update_q_value(
    q_table: QTable,
    state: str,
    action: str,
    reward: float,
    next_state: Optional[str],
    learning_rate: float = 0.1,
    discount_factor: float = 0.9,
) -> float:
    """
    One-step Q-learning update, in place.

    ``Q(s,a) += lr * (r + gamma * max Q(s',.) - Q(s,a))``

    Returns:
        The new Q(s,a)
    """
    row = q_table.setdefault(state, {})
    old_value = row.get(action, 0.0)
    target = reward + discount_factor * max_q(q_table, next_state)
    new_value = old_value + learning_rate * (target - old_value)
    row[action] = new_value
    return new_value


# ----------------------------------------------------------------------
# Multi-armed bandit
# ----------------------------------------------------------------------

def init_bandit(arms: Sequence[str]) -> Bandit:
    return {
        "counts": {arm: 0 for arm in arms},
        "values": {arm: 0.0 for arm in arms},
    }


def select_bandit_arm(
    bandit: Bandit,
    arms: Sequence[str],
    epsilon: float,
    rng: Optional[random.Random] = None,
) -> Optional[str]:
    if not arms:
        return None
    if _explore(epsilon, rng):
        return _choice(arms, rng)
    return argmax_first(arms, bandit.get("values", {}))


def update_bandit(bandit: Bandit, arm: str, reward: float) -> float:
    """
    Incremental-mean update, in place.

    Returns:
        The arm's new mean reward
    """
    counts = bandit.setdefault("counts", {})
    values = bandit.setdefault("values", {})
    counts[arm] = counts.get(arm, 0) + 1
    old_value = values.get(arm, 0.0)
    new_value = old_value + (reward - old_value) / counts[arm]
    values[arm] = new_value
    return new_value


# ----------------------------------------------------------------------
# Dynamic difficulty
# ----------------------------------------------------------------------

def adjust_exploration_rate(
    current: float,
    success_rate: float,
    target_success_rate: float = 0.7,
    adjustment_factor: float = 0.05,
) -> float:
    """Explore more when below target, less when above; clamped to [0.01, 0.5]."""
    new_rate = current + (target_success_rate - success_rate) * adjustment_factor
    return max(MIN_EXPLORATION, min(MAX_EXPLORATION, new_rate))


def mean_and_std(values: Sequence[float]) -> Tuple[float, float]:
    """Mean and population standard deviation. Empty input gives (0, 0)."""
    if not values:
        return 0.0, 0.0
    mean = sum(values) / len(values)
    variance = sum((v - mean) ** 2 for v in values) / len(values)
    return mean, math.sqrt(variance)


def normalize_reward(reward: float, recent_rewards: List[float]) -> float:
    """
    Z-score a reward against recent history, clipped to [-1, 1].

    A zero standard deviation is treated as 1. With no history the
    reward is returned unchanged.
    """
    if not recent_rewards:
        return reward
    mean, std = mean_and_std(recent_rewards)
    z = (reward - mean) / (std or 1.0)
    return max(-1.0, min(1.0, z))
