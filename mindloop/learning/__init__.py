"""
Learning layer for the mindloop decision core.

Two learners share this package:

- LearningManager: tabular Q-learning over (behavior state, action) pairs
  plus a multi-armed bandit over behavior states
- FunctionApproximationLearner: a two-layer network mapping a 10-dimensional
  feature vector to Q-values over primitive actions

Both persist through a PersistentStore and never let a learning failure
escape into the decision loop.
"""

from . import algorithms
from .approximation import ACTIONS as PRIMITIVE_ACTIONS
from .approximation import FunctionApproximationLearner
from .feature_encoder import (
    FEATURE_NAMES,
    FEATURE_SIZE,
    FeatureEncoder,
    compute_danger,
    extract_features,
)
from .learning_config import (
    DEFAULT_LEARNING_CONFIG,
    ApproximationConfig,
    Hyperparameters,
    LearningConfig,
    LearningPresets,
)
from .learning_manager import LearningManager
from .network import QNetwork
from .reward_shaping import OutcomeType, RewardShaper
from .rolling_buffer import OutcomeBuffer, RollingBuffer

__all__ = [
    # Tabular learner
    "algorithms",
    "LearningManager",
    "RollingBuffer",
    "OutcomeBuffer",

    # Configuration
    "Hyperparameters",
    "LearningConfig",
    "ApproximationConfig",
    "LearningPresets",
    "DEFAULT_LEARNING_CONFIG",

    # Function approximation
    "FunctionApproximationLearner",
    "PRIMITIVE_ACTIONS",
    "QNetwork",
    "FeatureEncoder",
    "FEATURE_NAMES",
    "FEATURE_SIZE",
    "compute_danger",
    "extract_features",

    # Rewards
    "RewardShaper",
    "OutcomeType",
]
