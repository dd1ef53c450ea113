"""
mindloop: behavior state machine and reinforcement-learning decision core
for autonomous game agents.

- StateMachine + state catalogue: what the agent is doing
- LearningManager: which behavior and action pays off (Q-learning + bandit)
- FunctionApproximationLearner: low-level action values from features
- Orchestrator: timers, decisions and reward crediting for one agent
"""

__version__ = "0.1.0"

from .config import AgentConfig, OrchestratorConfig, StateMachineConfig, load_config
from .errors import (
    ActionExecutionError,
    ConfigurationError,
    MindloopError,
    NumericInstabilityError,
    PersistenceError,
)
from .events import AgentEvent, AgentEventType, EventBus
from .learning import (
    ApproximationConfig,
    FunctionApproximationLearner,
    LearningConfig,
    LearningManager,
    LearningPresets,
    RewardShaper,
)
from .orchestrator import AgentStatus, Orchestrator, create_agent
from .scheduler import GenerationCounter, ManualClock, MonotonicClock, Scheduler
from .state_machine import BehaviorState, StateMachine
from .states import DEFAULT_PRIORITY, STATE_NAMES, StateThresholds, build_default_states
from .storage import PersistentStore
from .types import EntitySighting, Observation, RecordingExecutor, StaticObservationSource

__all__ = [
    "__version__",

    # Agent
    "Orchestrator",
    "AgentStatus",
    "create_agent",

    # Configuration
    "AgentConfig",
    "OrchestratorConfig",
    "StateMachineConfig",
    "LearningConfig",
    "ApproximationConfig",
    "LearningPresets",
    "load_config",

    # Learning
    "LearningManager",
    "FunctionApproximationLearner",
    "RewardShaper",

    # Behavior
    "BehaviorState",
    "StateMachine",
    "StateThresholds",
    "DEFAULT_PRIORITY",
    "STATE_NAMES",
    "build_default_states",

    # Runtime
    "Scheduler",
    "ManualClock",
    "MonotonicClock",
    "GenerationCounter",
    "EventBus",
    "AgentEvent",
    "AgentEventType",
    "PersistentStore",

    # World interface
    "Observation",
    "EntitySighting",
    "StaticObservationSource",
    "RecordingExecutor",

    # Errors
    "MindloopError",
    "ConfigurationError",
    "PersistenceError",
    "NumericInstabilityError",
    "ActionExecutionError",
]
