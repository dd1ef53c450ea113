"""
Tabular learner: Q-table for actions within a state, bandit for states.

The LearningManager owns the learned tables, keeps them consistent with
the registered state and action catalogues, and writes them through to
a PersistentStore after every mutation.

Persisted document layout::

    {
      "states": [...],
      "actions": [...],
      "q_table": {state: {action: value}},
      "state_bandit": {"counts": {state: n}, "values": {state: mean}},
      "state_action_map": {state: [action, ...]},
      "learning_params": {"learning_rate": .., "discount_factor": .., "exploration_rate": ..}
    }
"""
from __future__ import annotations

import logging
import math
import os
import random
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from ..storage import PersistentStore
from . import algorithms
from .learning_config import Hyperparameters, LearningConfig
from .rolling_buffer import OutcomeBuffer, RollingBuffer

logger = logging.getLogger(__name__)


def _number_map(raw: Any) -> Dict[str, float]:
    if not isinstance(raw, dict):
        return {}
    out = {}
    for key, value in raw.items():
        if isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value):
            out[str(key)] = float(value)
    return out


def _string_list(raw: Any) -> List[str]:
    if not isinstance(raw, list):
        return []
    seen: List[str] = []
    for item in raw:
        if isinstance(item, str) and item not in seen:
            seen.append(item)
    return seen


class LearningManager:
    """
    Q-learning and bandit decision maker with write-through persistence.

    Example:
        >>> manager = LearningManager(LearningConfig(data_file="/tmp/learning.json"))
        >>> manager.register_states(["idle", "mining"])
        >>> manager.register_actions(["mine_stone", "explore_area"])
        >>> action = manager.select_action("idle")
        >>> manager.update_learning("idle", action, 1.0, "mining")
        True
    """

    def __init__(
        self,
        config: Optional[LearningConfig] = None,
        store: Optional[PersistentStore] = None,
        data_dir: Optional[str] = None,
    ):
        """
        Initialize the manager and load any previously learned tables.

        Args:
            config: Learner configuration
            store: Document store (created from ``config.data_file`` if omitted)
            data_dir: Directory for a relative ``data_file``
        """
        self.config = config or LearningConfig()
        if store is None:
            path = self.config.data_file
            if data_dir and not os.path.isabs(path):
                path = os.path.join(data_dir, path)
            store = PersistentStore(path)
        self.store = store
        self.rng = random.Random(self.config.prng_seed)

        self.recent_outcomes = OutcomeBuffer(self.config.max_outcomes)
        self.recent_rewards = RollingBuffer(self.config.max_rewards)

        self.current_state: str = self.config.initial_state
        self.current_action: Optional[str] = None
        self.last_reward = 0.0
        self.update_count = 0

        self._defer_depth = 0
        self._dirty = False

        self._load()
        logger.info(
            f"Learning manager initialized with {len(self.states)} states "
            f"and {len(self.actions)} actions"
        )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _load(self) -> None:
        self.store.load()
        self.states: List[str] = _string_list(self.store.get("states", []))
        self.actions: List[str] = _string_list(self.store.get("actions", []))

        raw_q = self.store.get("q_table", {})
        self.q_table: algorithms.QTable = {}
        if isinstance(raw_q, dict):
            for state, row in raw_q.items():
                self.q_table[str(state)] = _number_map(row)

        raw_bandit = self.store.get("state_bandit", {}) or {}
        counts = _number_map(raw_bandit.get("counts")) if isinstance(raw_bandit, dict) else {}
        values = _number_map(raw_bandit.get("values")) if isinstance(raw_bandit, dict) else {}
        self.state_bandit: algorithms.Bandit = {
            "counts": {k: int(v) for k, v in counts.items()},
            "values": values,
        }

        raw_map = self.store.get("state_action_map", {})
        self.state_action_map: Dict[str, List[str]] = {}
        if isinstance(raw_map, dict):
            for state, actions in raw_map.items():
                self.state_action_map[str(state)] = [
                    a for a in _string_list(actions) if a in self.actions
                ]

        self.params = Hyperparameters.from_dict(
            self.store.get("learning_params", {}) or {},
            defaults=self.config.hyperparameters(),
        )

        self._fill_tables()
        self.save_data()

    def _fill_tables(self) -> None:
        """Zero-fill every registered (state, action) pair and bandit arm."""
        for state in self.states:
            row = self.q_table.setdefault(state, {})
            for action in self.actions:
                row.setdefault(action, 0.0)
            self.state_bandit["counts"].setdefault(state, 0)
            self.state_bandit["values"].setdefault(state, 0.0)
            if state not in self.state_action_map:
                self.state_action_map[state] = list(self.actions)

    def save_data(self) -> bool:
        """
        Persist all tables in a single write.

        Inside ``deferred_saves()`` the write is postponed until the
        outermost block exits.
        """
        if self._defer_depth > 0:
            self._dirty = True
            return True
        self.store.set("states", list(self.states), defer=True)
        self.store.set("actions", list(self.actions), defer=True)
        self.store.set("q_table", self.q_table, defer=True)
        self.store.set("state_bandit", self.state_bandit, defer=True)
        self.store.set("state_action_map", self.state_action_map, defer=True)
        self.store.set("learning_params", self.params.to_dict(), defer=True)
        self._dirty = False
        return self.store.save()

    @contextmanager
    def deferred_saves(self) -> Iterator["LearningManager"]:
        """
        Batch several mutations into one save.

        Example:
            >>> with manager.deferred_saves():
            ...     manager.register_states(["idle"])
            ...     manager.register_actions(["mine_stone"])
        """
        self._defer_depth += 1
        try:
            yield self
        finally:
            self._defer_depth -= 1
            if self._defer_depth == 0 and self._dirty:
                self.save_data()

    # ------------------------------------------------------------------
    # Catalogue registration
    # ------------------------------------------------------------------

    def register_states(self, states: List[str]) -> None:
        """Add states not yet known. Order of first registration is kept."""
        added = [s for s in dict.fromkeys(states) if s not in self.states]
        self.states.extend(added)
        self._fill_tables()
        self.save_data()
        logger.info(f"Registered {len(added)} new states, total: {len(self.states)}")

    def register_actions(self, actions: List[str]) -> None:
        """
        Add actions not yet known.

        New actions become candidates in every state's action list.
        """
        added = [a for a in dict.fromkeys(actions) if a not in self.actions]
        self.actions.extend(added)
        for candidates in self.state_action_map.values():
            for action in added:
                if action not in candidates:
                    candidates.append(action)
        self._fill_tables()
        self.save_data()
        logger.info(f"Registered {len(added)} new actions, total: {len(self.actions)}")

    def set_state_actions(self, state: str, actions: List[str]) -> bool:
        """
        Restrict the candidate actions of a state.

        Returns:
            False if the state or any action is not registered
        """
        if state not in self.states:
            logger.warning(f"Cannot set actions for unknown state: {state}")
            return False
        for action in actions:
            if action not in self.actions:
                logger.warning(f"Cannot add unknown action {action} to state {state}")
                return False
        self.state_action_map[state] = list(dict.fromkeys(actions))
        self.save_data()
        logger.debug(f"Set {len(actions)} valid actions for state: {state}")
        return True

    def get_state_actions(self, state: str) -> List[str]:
        return list(self.state_action_map.get(state, self.actions))

    # ------------------------------------------------------------------
    # Performance tracking
    # ------------------------------------------------------------------

    def record_outcome(self, success: bool) -> None:
        self.recent_outcomes.record(success)
        if self.config.adjust_difficulty:
            self.adjust_learning_parameters()

    def record_reward(self, reward: float) -> None:
        self.recent_rewards.append(reward)
        self.last_reward = reward

    def get_success_rate(self) -> float:
        return self.recent_outcomes.success_rate()

    def adjust_learning_parameters(self) -> float:
        """
        Nudge exploration towards the target success rate.

        Returns:
            The new exploration rate
        """
        success_rate = self.get_success_rate()
        self.params.exploration_rate = algorithms.adjust_exploration_rate(
            self.params.exploration_rate,
            success_rate,
            self.config.target_success_rate,
            self.config.adjustment_factor,
        )
        self.save_data()
        logger.debug(
            f"Adjusted exploration rate to {self.params.exploration_rate:.4f} "
            f"(success rate: {success_rate:.2f})"
        )
        return self.params.exploration_rate

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def select_next_state(self) -> Optional[str]:
        """Pick the next behavior state from the bandit. None if no states exist."""
        if not self.states:
            return None
        next_state = algorithms.select_bandit_arm(
            self.state_bandit, self.states, self.params.exploration_rate, self.rng
        )
        logger.debug(
            f"Selected next state: {next_state} "
            f"(exploration rate: {self.params.exploration_rate:.2f})"
        )
        return next_state

    def select_action(
        self,
        state: Optional[str] = None,
        available: Optional[Callable[[str], bool]] = None,
    ) -> Optional[str]:
        """
        Pick an action for a state by epsilon-greedy over its Q-values.

        Args:
            state: State to act in (defaults to the current state)
            available: Optional filter; actions it rejects are never chosen

        Returns:
            The selected action, or None if the state is unknown or has no candidates
        """
        state = state or self.current_state
        if state not in self.states:
            logger.warning(f"Cannot select action for unknown state: {state}")
            return None

        candidates = self.get_state_actions(state)
        if available is not None:
            candidates = [a for a in candidates if available(a)]
        if not candidates:
            logger.warning(f"No valid actions for state: {state}")
            return None

        action = algorithms.select_q_action(
            self.q_table, state, candidates, self.params.exploration_rate, self.rng
        )
        self.current_action = action
        logger.debug(f"Selected action: {action} for state: {state}")
        return action

    def update_learning(
        self,
        state: Optional[str] = None,
        action: Optional[str] = None,
        reward: Optional[float] = None,
        next_state: Optional[str] = None,
    ) -> bool:
        """
        Learn from one experience.

        Missing arguments default to the current state, the last selected
        action and the last reward. Without ``next_state`` the agent is
        assumed to stay in ``state``. An unregistered ``next_state`` is
        treated as terminal and does not become the current state.

        Returns:
            False if the state or action is unknown or the reward is not finite
        """
        state = state or self.current_state
        action = action or self.current_action
        reward = self.last_reward if reward is None else reward

        if state not in self.states or action not in self.actions:
            logger.warning(f"Cannot update learning for unknown state-action pair: {state}-{action}")
            return False
        try:
            reward = float(reward)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-numeric reward: {reward!r}")
            return False
        if not math.isfinite(reward):
            logger.warning(f"Ignoring non-finite reward: {reward}")
            return False

        if len(self.recent_rewards) > self.config.normalize_after:
            reward = algorithms.normalize_reward(reward, self.recent_rewards.values())

        target_state = next_state or state
        known_target = target_state in self.states
        with self.deferred_saves():
            algorithms.update_q_value(
                self.q_table,
                state,
                action,
                reward,
                target_state if known_target else None,
                self.params.learning_rate,
                self.params.discount_factor,
            )
            algorithms.update_bandit(self.state_bandit, state, reward)
            if known_target:
                self.current_state = target_state
            self.record_outcome(reward > 0)
            self.record_reward(reward)
            self.update_count += 1
            self.save_data()

        logger.debug(
            f"Updated learning for state: {state}, action: {action}, "
            f"reward: {reward:.2f}, next state: {next_state or 'same'}"
        )
        return True

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_best_action(self, state: Optional[str] = None) -> Optional[str]:
        """Greedy action for a state, without exploration. None for unknown states."""
        state = state or self.current_state
        if state not in self.q_table:
            return None
        return algorithms.argmax_first(self.get_state_actions(state), self.q_table[state])

    def get_state_values(self, state: Optional[str] = None) -> Dict[str, float]:
        """Q-values of the state's candidate actions. Empty for unknown states."""
        state = state or self.current_state
        if state not in self.q_table:
            return {}
        row = self.q_table[state]
        return {action: row.get(action, 0.0) for action in self.get_state_actions(state)}

    def get_bandit_values(self) -> Dict[str, Dict[str, float]]:
        return {
            state: {
                "count": self.state_bandit["counts"].get(state, 0),
                "value": self.state_bandit["values"].get(state, 0.0),
            }
            for state in self.states
        }

    @property
    def exploration_rate(self) -> float:
        return self.params.exploration_rate

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "states": len(self.states),
            "actions": len(self.actions),
            "current_state": self.current_state,
            "current_action": self.current_action,
            "learning_params": self.params.to_dict(),
            "success_rate": self.get_success_rate(),
            "average_reward": self.recent_rewards.mean(),
            "last_reward": self.last_reward,
            "updates": self.update_count,
            "state_bandit": self.get_bandit_values(),
        }

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset_learning(self) -> bool:
        """
        Forget everything learned.

        Registered states, actions and candidate lists are kept; values,
        bandit statistics, hyperparameters and rolling windows are reset.
        """
        self.q_table = algorithms.init_q_table(self.states, self.actions)
        self.state_bandit = algorithms.init_bandit(self.states)
        self.params = self.config.hyperparameters()
        self.recent_outcomes.clear()
        self.recent_rewards.clear()
        self.current_state = self.config.initial_state
        self.current_action = None
        self.last_reward = 0.0
        self.update_count = 0
        self.save_data()
        logger.info("Reset all learning data")
        return True
