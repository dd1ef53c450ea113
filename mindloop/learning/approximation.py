"""
Function-approximation learner for low-level actions.

Where the tabular learner picks coarse behaviours ("mine ores"), this
learner picks primitive actions ("jump", "mine_block") from a feature
vector, using the two-layer QNetwork. Learning is organised in episodes:

1. ``step()`` observes, chooses and executes an action, then schedules a
   continuation ``step_delay`` seconds later.
2. The continuation observes again, computes the step reward, updates the
   network and accumulates the episode reward.
3. After ``max_episode_steps`` completed steps (or an explicit ``end_episode()``)
   the episode is logged and exploration is annealed.

Persisted document layout::

    {
      "weights": {...},
      "learning_params": {"learning_rate": .., "discount_factor": .., "exploration_rate": ..},
      "observations": [{"episode", "steps", "reward", "timestamp"}, ...],
      "episode_count": n
    }
"""
from __future__ import annotations

import logging
import os
import random
import time
from typing import Any, Dict, List, Optional

import numpy as np

from ..errors import ActionExecutionError, NumericInstabilityError
from ..scheduler import GenerationCounter, Scheduler
from ..storage import PersistentStore
from ..types import ActionExecutor, Observation, ObservationSource
from ..util import as_float, clamp
from .feature_encoder import FEATURE_SIZE, FeatureEncoder, compute_danger
from .learning_config import ApproximationConfig
from .network import QNetwork
from .reward_shaping import RewardShaper

logger = logging.getLogger(__name__)

ACTIONS: List[str] = [
    "move_forward",
    "move_backward",
    "move_left",
    "move_right",
    "jump",
    "mine_block",
    "collect_item",
    "attack",
    "place_block",
    "look_around",
]


def action_index(action: str) -> int:
    """Network output index of an action (its catalogue position)."""
    return ACTIONS.index(action)


class FunctionApproximationLearner:
    """
    Episodic Q-learning over a small neural network.

    Example:
        >>> learner = FunctionApproximationLearner(source, executor, scheduler)
        >>> learner.step()          # act now, learn step_delay seconds later
        >>> scheduler.advance(0.5)
        >>> learner.get_stats()["episode_steps"]
        1
    """

    def __init__(
        self,
        observation_source: ObservationSource,
        executor: ActionExecutor,
        scheduler: Optional[Scheduler] = None,
        config: Optional[ApproximationConfig] = None,
        store: Optional[PersistentStore] = None,
        data_dir: Optional[str] = None,
        reward_shaper: Optional[RewardShaper] = None,
    ):
        self.config = config or ApproximationConfig()
        self.observation_source = observation_source
        self.executor = executor
        self.scheduler = scheduler or Scheduler()
        self.encoder = FeatureEncoder()
        self.shaper = reward_shaper or RewardShaper()
        self.rng = random.Random(self.config.prng_seed)
        self.generation = GenerationCounter()

        if store is None:
            path = self.config.data_file
            if data_dir and not os.path.isabs(path):
                path = os.path.join(data_dir, path)
            store = PersistentStore(path)
        self.store = store

        self.network = QNetwork(
            input_size=FEATURE_SIZE,
            hidden_size=self.config.hidden_size,
            output_size=len(ACTIONS),
            init_scale=self.config.init_scale,
            seed=self.config.prng_seed,
        )
        self.learning_rate = self.config.learning_rate
        self.discount_factor = self.config.discount_factor
        self.exploration_rate = self.config.exploration_rate
        self.observations: List[Dict[str, Any]] = []
        self.episode_count = 0

        self.episode_steps = 0
        self.cumulative_reward = 0.0
        self.last_state: Optional[np.ndarray] = None
        self.last_action: Optional[str] = None
        self.last_reward = 0.0
        self.total_updates = 0
        self.unstable_updates = 0

        self.load_data()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def load_data(self) -> None:
        """Load weights and progress; weights are re-initialized when absent or malformed."""
        self.store.load()
        weights = self.store.get("weights")
        if weights is not None and self.network.load_dict(weights):
            logger.info("Network weights loaded")
        elif weights is not None:
            logger.warning("Stored network weights are malformed, re-initializing")

        params = self.store.get("learning_params", {}) or {}
        if isinstance(params, dict):
            self.learning_rate = clamp(as_float(params.get("learning_rate"), self.learning_rate), 0.0, 1.0)
            self.discount_factor = clamp(as_float(params.get("discount_factor"), self.discount_factor), 0.0, 1.0)
            self.exploration_rate = clamp(as_float(params.get("exploration_rate"), self.exploration_rate), 0.0, 1.0)

        observations = self.store.get("observations", [])
        if isinstance(observations, list):
            self.observations = [o for o in observations if isinstance(o, dict)][-self.config.max_observations:]
        self.episode_count = int(as_float(self.store.get("episode_count"), 0))

    def save_data(self) -> bool:
        self.store.set("weights", self.network.to_dict(), defer=True)
        self.store.set(
            "learning_params",
            {
                "learning_rate": self.learning_rate,
                "discount_factor": self.discount_factor,
                "exploration_rate": self.exploration_rate,
            },
            defer=True,
        )
        self.store.set("observations", self.observations, defer=True)
        self.store.set("episode_count", self.episode_count, defer=True)
        saved = self.store.save()
        if saved:
            logger.debug("Approximation learner data saved")
        return saved

    # ------------------------------------------------------------------
    # Perception
    # ------------------------------------------------------------------

    def observe(self) -> Optional[Observation]:
        try:
            return self.observation_source.observe()
        except Exception as e:
            logger.warning(f"Observation failed: {e}")
            return None

    def extract_features(self) -> np.ndarray:
        return self.encoder.encode(self.observe())

    def compute_danger(self, observation: Observation) -> float:
        return compute_danger(observation)

    def predict_q_values(self, features: Any) -> np.ndarray:
        try:
            return self.network.predict(features)
        except ValueError as e:
            logger.warning(f"Error predicting Q-values: {e}")
            return np.zeros(len(ACTIONS))

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    def is_available(self, action: str) -> bool:
        try:
            return bool(self.executor.is_available(action))
        except Exception as e:
            logger.warning(f"Availability check failed for {action}: {e}")
            return False

    def available_actions(self) -> List[str]:
        return [a for a in ACTIONS if self.is_available(a)]

    def choose_action(self, features: Any) -> Optional[str]:
        """
        Epsilon-greedy over currently available actions.

        Returns:
            The chosen action, or None when nothing is available
        """
        available = self.available_actions()
        if not available:
            return None
        if self.rng.random() < self.exploration_rate:
            return available[int(self.rng.random() * len(available))]

        q_values = self.predict_q_values(features)
        best_action = available[0]
        best_value = q_values[action_index(best_action)]
        for action in available[1:]:
            value = q_values[action_index(action)]
            if value > best_value:
                best_action = action
                best_value = value
        return best_action

    def execute(self, action: str) -> bool:
        try:
            result = self.executor.execute(action)
        except ActionExecutionError as e:
            logger.warning(str(e))
            return False
        except Exception as e:
            logger.warning(f"Error executing {action}: {e}")
            return False
        return bool(result)

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def calculate_reward(
        self,
        old_state: Optional[Any],
        new_state: Optional[Any],
        action_result: bool,
    ) -> float:
        return self.shaper.calculate_reward(old_state, new_state, action_result)

    def update_network(self, state: Any, action: str, reward: float, next_state: Any) -> float:
        """
        Apply one learning step.

        Returns:
            The TD error, or 0.0 if the update was rejected
        """
        if action not in ACTIONS:
            logger.warning(f"Cannot update network for unknown action: {action}")
            return 0.0
        try:
            error = self.network.update(
                state,
                action_index(action),
                reward,
                next_state,
                self.learning_rate,
                self.discount_factor,
            )
        except (NumericInstabilityError, ValueError) as e:
            self.unstable_updates += 1
            logger.warning(f"Rejected network update: {e}")
            return 0.0

        self.total_updates += 1
        if self.total_updates % self.config.save_every == 0:
            self.save_data()
        return error

    def step(self) -> bool:
        """
        Act once and schedule the learning continuation.

        Returns:
            Whether the executed action succeeded (False if nothing was available)
        """
        current_state = self.extract_features()
        action = self.choose_action(current_state)
        if action is None:
            logger.debug("No available action for learning step")
            return False

        result = self.execute(action)
        token = self.generation.token()
        self.scheduler.call_later(
            self.config.step_delay,
            self._complete_step,
            token,
            current_state,
            action,
            result,
            name="approximation_step",
        )
        return result

    def _complete_step(self, token: int, old_state: np.ndarray, action: str, result: bool) -> None:
        if not self.generation.is_current(token):
            logger.debug("Discarding stale learning step")
            return
        new_state = self.extract_features()
        reward = self.calculate_reward(old_state, new_state, result)
        self.cumulative_reward += reward
        self.update_network(old_state, action, reward, new_state)
        # Rejected updates still use up a step of the episode
        self.episode_steps += 1

        self.last_state = new_state
        self.last_action = action
        self.last_reward = reward

        if self.episode_steps >= self.config.max_episode_steps:
            self.end_episode()

    def end_episode(self) -> None:
        """Log the episode, anneal exploration, reset counters and save."""
        self.episode_count += 1
        logger.info(
            f"Learning episode {self.episode_count} completed with reward: "
            f"{self.cumulative_reward:.3f}"
        )
        self.observations.append({
            "episode": self.episode_count,
            "steps": self.episode_steps,
            "reward": self.cumulative_reward,
            "timestamp": time.time(),
        })
        if len(self.observations) > self.config.max_observations:
            self.observations = self.observations[-self.config.max_observations:]

        self.episode_steps = 0
        self.cumulative_reward = 0.0
        self.exploration_rate = max(
            self.config.min_exploration,
            self.exploration_rate * self.config.exploration_decay,
        )
        self.save_data()

    def stop(self) -> None:
        """Invalidate pending continuations and persist."""
        self.generation.bump()
        self.save_data()

    def get_stats(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "episodes": self.episode_count,
            "exploration_rate": self.exploration_rate,
            "last_reward": self.last_reward,
            "cumulative_reward": self.cumulative_reward,
            "episode_steps": self.episode_steps,
            "total_updates": self.total_updates,
            "unstable_updates": self.unstable_updates,
        }
        if self.observations:
            recent = self.observations[-5:]
            stats["recent_episode_rewards"] = [ep.get("reward", 0.0) for ep in recent]
            stats["average_reward"] = sum(stats["recent_episode_rewards"]) / len(recent)
        return stats
