"""
Agent configuration.

One AgentConfig aggregates the settings of every component. It can be
built in code, or loaded from a JSON or YAML file where every section is
optional::

    data_dir: ./data
    log_level: INFO
    learning_preset: moderate
    learning:
      learning_rate: 0.1
      exploration_rate: 0.1
    approximation:
      exploration_rate: 0.2
    orchestrator:
      decision_interval: 60
      use_approximation: true
    state_machine:
      idle_dwell: 5
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional

import yaml

from .errors import ConfigurationError
from .learning.learning_config import ApproximationConfig, LearningConfig, LearningPresets
from .states import DEFAULT_PRIORITY, StateThresholds

logger = logging.getLogger(__name__)


def _pick(cls, data: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in (data or {}).items() if k in cls.__dataclass_fields__}


@dataclass
class OrchestratorConfig:
    """
    Decision-loop timing and switches.

    Attributes:
        agent_id: Name used in logs
        tick_interval: Seconds between state machine ticks
        decision_interval: Seconds between learner decisions
        stats_interval: Seconds between statistics log lines
        approximation_interval: Seconds between low-level learning steps
        state_change_probability: Chance a decision considers switching state
        reward_delay: Seconds between acting and crediting the observed reward
        learning_enabled: Feed rewards back into the learners
        auto_decide: Run the periodic decision loop
        log_stats: Run the periodic statistics loop
        use_approximation: Run the function-approximation learner
        prng_seed: Seed for decision randomness
    """
    agent_id: str = "agent"
    tick_interval: float = 1.0
    decision_interval: float = 60.0
    stats_interval: float = 300.0
    approximation_interval: float = 5.0
    state_change_probability: float = 0.3
    reward_delay: float = 0.5
    learning_enabled: bool = True
    auto_decide: bool = True
    log_stats: bool = True
    use_approximation: bool = False
    prng_seed: Optional[int] = None

    def __post_init__(self):
        self.tick_interval = max(0.01, float(self.tick_interval))
        self.decision_interval = max(0.01, float(self.decision_interval))
        self.stats_interval = max(0.01, float(self.stats_interval))
        self.approximation_interval = max(0.01, float(self.approximation_interval))
        self.state_change_probability = max(0.0, min(1.0, float(self.state_change_probability)))
        self.reward_delay = max(0.0, float(self.reward_delay))


@dataclass
class StateMachineConfig:
    """State machine layout and predicate thresholds (see StateThresholds)."""
    initial_state: str = "idle"
    priority: List[str] = field(default_factory=lambda: list(DEFAULT_PRIORITY))
    history_size: int = 50
    combat_radius: float = 5.0
    disengage_radius: float = 16.0
    follow_distance: float = 10.0
    follow_arrive_distance: float = 3.0
    gather_food: float = 10.0
    combat_gather_food: float = 8.0
    gather_done_food: float = 15.0
    idle_dwell: float = 5.0
    combat_max: float = 120.0
    mining_max: float = 600.0
    task_max: float = 300.0

    def thresholds(self) -> StateThresholds:
        return StateThresholds(**_pick(StateThresholds, asdict(self)))


@dataclass
class AgentConfig:
    """
    Complete configuration of one agent.

    Example:
        >>> config = AgentConfig.load("agent.yaml")
        >>> config.orchestrator.decision_interval
        60.0
    """
    data_dir: str = "./data"
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    learning: LearningConfig = field(default_factory=LearningConfig)
    approximation: ApproximationConfig = field(default_factory=ApproximationConfig)
    orchestrator: OrchestratorConfig = field(default_factory=OrchestratorConfig)
    state_machine: StateMachineConfig = field(default_factory=StateMachineConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AgentConfig":
        """
        Build from a plain mapping.

        ``learning_preset`` selects a LearningPresets entry; explicit
        ``learning`` values are applied on top of it.

        Raises:
            ConfigurationError: On unknown presets or invalid values
        """
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration root must be a mapping")
        try:
            learning_data: Dict[str, Any] = {}
            preset = data.get("learning_preset")
            if preset:
                learning_data.update(LearningPresets.by_name(preset).to_dict())
            learning_data.update(_pick(LearningConfig, data.get("learning") or {}))

            return cls(
                data_dir=str(data.get("data_dir", "./data")),
                log_level=str(data.get("log_level", "INFO")),
                log_dir=data.get("log_dir"),
                learning=LearningConfig(**learning_data),
                approximation=ApproximationConfig(**_pick(ApproximationConfig, data.get("approximation") or {})),
                orchestrator=OrchestratorConfig(**_pick(OrchestratorConfig, data.get("orchestrator") or {})),
                state_machine=StateMachineConfig(**_pick(StateMachineConfig, data.get("state_machine") or {})),
            )
        except KeyError as e:
            raise ConfigurationError(str(e.args[0])) from e
        except (TypeError, ValueError) as e:
            raise ConfigurationError(f"Invalid configuration value: {e}") from e

    def save(self, path: str) -> None:
        """Save to JSON, or YAML for .yaml/.yml paths."""
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            if path.endswith((".yaml", ".yml")):
                yaml.safe_dump(self.to_dict(), f, sort_keys=False)
            else:
                json.dump(self.to_dict(), f, indent=2)

    @classmethod
    def load(cls, path: str) -> "AgentConfig":
        """
        Load from a JSON or YAML file.

        Raises:
            ConfigurationError: If the file is missing, unparsable or invalid
        """
        if not os.path.exists(path):
            raise ConfigurationError(f"Config file not found: {path}")
        try:
            with open(path, "r", encoding="utf-8") as f:
                content = f.read()
            if path.endswith((".yaml", ".yml")):
                data = yaml.safe_load(content)
            else:
                data = json.loads(content)
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Failed to read config from {path}: {e}") from e
        config = cls.from_dict(data)
        logger.info(f"Loaded configuration from {path}")
        return config


def load_config(path: Optional[str] = None) -> AgentConfig:
    """Load ``path`` if given, else return defaults."""
    if path is None:
        return AgentConfig()
    return AgentConfig.load(path)
