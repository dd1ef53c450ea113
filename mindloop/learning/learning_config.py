"""
Learning configuration and presets.

All parameters are clamped to safe ranges on construction, so a config
built from a hand-edited file can never push the learners outside their
operating bounds.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, fields
from typing import Any, Dict, Optional

from ..util import clamp
from .algorithms import MAX_EXPLORATION, MIN_EXPLORATION


@dataclass
class Hyperparameters:
    """
    Mutable learner hyperparameters.

    Exploration is the only one that moves at runtime (difficulty
    adjustment) and always stays within [0.01, 0.5].
    """
    learning_rate: float = 0.1
    discount_factor: float = 0.9
    exploration_rate: float = 0.1

    def __post_init__(self):
        self.learning_rate = clamp(float(self.learning_rate), 0.0, 1.0)
        self.discount_factor = clamp(float(self.discount_factor), 0.0, 1.0)
        self.exploration_rate = clamp(float(self.exploration_rate), MIN_EXPLORATION, MAX_EXPLORATION)

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], defaults: Optional["Hyperparameters"] = None) -> "Hyperparameters":
        """Build from a persisted mapping; missing or invalid fields fall back to ``defaults``."""
        base = defaults or cls()
        values = {}
        for f in fields(cls):
            raw = data.get(f.name) if isinstance(data, dict) else None
            try:
                values[f.name] = float(raw) if raw is not None else getattr(base, f.name)
            except (TypeError, ValueError):
                values[f.name] = getattr(base, f.name)
        return cls(**values)


@dataclass
class LearningConfig:
    """
    Configuration for the tabular learner (Q-table + state bandit).

    Attributes:
        data_file: JSON document holding the learned tables
        learning_rate: Q-learning step size
        discount_factor: Weight of the next state's best value
        exploration_rate: Initial epsilon
        adjust_difficulty: Adapt epsilon after every recorded outcome
        target_success_rate: Success rate the adaptation steers towards
        adjustment_factor: Proportional gain of the adaptation
        max_outcomes: Rolling outcome window size
        max_rewards: Rolling reward window size
        normalize_after: Rewards are z-scored once the window holds more than this many samples
        initial_state: Current state after construction and reset
        prng_seed: Seed for exploration (None = nondeterministic)
    """
    data_file: str = "agent_learning.json"
    learning_rate: float = 0.1
    discount_factor: float = 0.9
    exploration_rate: float = 0.1
    adjust_difficulty: bool = True
    target_success_rate: float = 0.7
    adjustment_factor: float = 0.05
    max_outcomes: int = 100
    max_rewards: int = 100
    normalize_after: int = 5
    initial_state: str = "idle"
    prng_seed: Optional[int] = None

    def __post_init__(self):
        self.learning_rate = clamp(self.learning_rate, 0.0, 1.0)
        self.discount_factor = clamp(self.discount_factor, 0.0, 1.0)
        self.exploration_rate = clamp(self.exploration_rate, MIN_EXPLORATION, MAX_EXPLORATION)
        self.target_success_rate = clamp(self.target_success_rate, 0.0, 1.0)
        self.adjustment_factor = clamp(self.adjustment_factor, 0.0, 1.0)
        self.max_outcomes = max(1, min(10000, int(self.max_outcomes)))
        self.max_rewards = max(1, min(10000, int(self.max_rewards)))
        self.normalize_after = max(0, int(self.normalize_after))

    def hyperparameters(self) -> Hyperparameters:
        return Hyperparameters(
            learning_rate=self.learning_rate,
            discount_factor=self.discount_factor,
            exploration_rate=self.exploration_rate,
        )

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "LearningConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__annotations__})


@dataclass
class ApproximationConfig:
    """
    Configuration for the function-approximation learner.

    Attributes:
        data_file: JSON document holding weights and the episode log
        learning_rate: Network step size
        discount_factor: Weight of the next state's best predicted value
        exploration_rate: Initial epsilon
        min_exploration: Floor for per-episode annealing
        exploration_decay: Multiplier applied at each episode end
        max_episode_steps: Steps before an episode ends on its own
        save_every: Persist weights every N updates
        step_delay: Seconds between acting and observing the result
        max_observations: Episode log capacity
        hidden_size: Hidden layer width
        init_scale: Weights start uniform in [-init_scale, init_scale]
        prng_seed: Seed for weight init and exploration
    """
    data_file: str = "approximation_learning.json"
    learning_rate: float = 0.05
    discount_factor: float = 0.9
    exploration_rate: float = 0.2
    min_exploration: float = 0.05
    exploration_decay: float = 0.99
    max_episode_steps: int = 1000
    save_every: int = 100
    step_delay: float = 0.5
    max_observations: int = 100
    hidden_size: int = 20
    init_scale: float = 0.1
    prng_seed: Optional[int] = None

    def __post_init__(self):
        self.learning_rate = clamp(self.learning_rate, 0.0, 1.0)
        self.discount_factor = clamp(self.discount_factor, 0.0, 1.0)
        self.exploration_rate = clamp(self.exploration_rate, 0.0, 1.0)
        self.min_exploration = clamp(self.min_exploration, 0.0, 1.0)
        self.exploration_decay = clamp(self.exploration_decay, 0.0, 1.0)
        self.max_episode_steps = max(1, int(self.max_episode_steps))
        self.save_every = max(1, int(self.save_every))
        self.step_delay = max(0.0, float(self.step_delay))
        self.max_observations = max(1, int(self.max_observations))
        self.hidden_size = max(1, int(self.hidden_size))
        self.init_scale = max(0.0, float(self.init_scale))

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: dict) -> "ApproximationConfig":
        return cls(**{k: v for k, v in data.items() if k in cls.__annotations__})


DEFAULT_LEARNING_CONFIG = LearningConfig()


class LearningPresets:
    """Pre-configured learner settings."""

    @staticmethod
    def conservative() -> LearningConfig:
        """Slow updates, little exploration."""
        return LearningConfig(learning_rate=0.05, exploration_rate=0.05, adjustment_factor=0.02)

    @staticmethod
    def moderate() -> LearningConfig:
        """Balanced learning (default values)."""
        return LearningConfig()

    @staticmethod
    def exploratory() -> LearningConfig:
        """Fast updates and frequent exploration."""
        return LearningConfig(learning_rate=0.2, exploration_rate=0.3, adjustment_factor=0.1)

    @staticmethod
    def deterministic_test(seed: int = 42) -> LearningConfig:
        """Fixed seed, no exploration drift."""
        return LearningConfig(
            exploration_rate=MIN_EXPLORATION,
            adjust_difficulty=False,
            prng_seed=seed,
        )

    @classmethod
    def by_name(cls, name: str) -> LearningConfig:
        presets = {
            "conservative": cls.conservative,
            "moderate": cls.moderate,
            "exploratory": cls.exploratory,
            "deterministic_test": cls.deterministic_test,
        }
        if name not in presets:
            raise KeyError(f"Unknown learning preset: {name}")
        return presets[name]()
