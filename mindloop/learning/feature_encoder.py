"""
Feature encoder for the function-approximation learner.

Converts an Observation into a fixed 10-dimensional vector. Every
component is normalized to a small range and defaults to 0 when its input
is missing or malformed; encoding never raises.
"""
from __future__ import annotations

import logging
from typing import List, Optional

import numpy as np

from ..types import Observation
from ..util import as_float, clamp

logger = logging.getLogger(__name__)

FEATURE_NAMES: List[str] = [
    "position_x",
    "position_y",
    "position_z",
    "health",
    "food",
    "time_of_day",
    "crowding",
    "light",
    "inventory_fullness",
    "danger",
]
FEATURE_SIZE = len(FEATURE_NAMES)

HEALTH_INDEX = FEATURE_NAMES.index("health")
FOOD_INDEX = FEATURE_NAMES.index("food")
INVENTORY_INDEX = FEATURE_NAMES.index("inventory_fullness")
DANGER_INDEX = FEATURE_NAMES.index("danger")

DANGER_RADIUS = 16.0
LOW_HEALTH = 10.0
NIGHT_DANGER = 0.3


def compute_danger(observation: Observation) -> float:
    """
    Danger score in [0, 1].

    Each hostile mob closer than 16 blocks adds ``(16 - d) / 16``; health
    below 10 adds ``(10 - health) / 10``; night adds 0.3.
    """
    danger = 0.0
    for mob in observation.hostiles_within(DANGER_RADIUS):
        distance = as_float(mob.distance, DANGER_RADIUS)
        danger += (DANGER_RADIUS - distance) / DANGER_RADIUS

    health = as_float(observation.health, 0.0)
    if 0 < health < LOW_HEALTH:
        danger += (LOW_HEALTH - health) / LOW_HEALTH

    if observation.is_night:
        danger += NIGHT_DANGER

    return clamp(danger, 0.0, 1.0)


class FeatureEncoder:
    """
    Encodes observations into feature vectors.

    Layout (see ``FEATURE_NAMES``):
        0-2  position x/y/z / 100
        3    health / 20
        4    food / 20
        5    time of day / 24000
        6    entity count / 10, capped at 1
        7    light level / 15
        8    occupied inventory fraction
        9    danger score
    """

    def __init__(self):
        self.size = FEATURE_SIZE

    def encode(self, observation: Optional[Observation]) -> np.ndarray:
        if observation is None:
            return np.zeros(FEATURE_SIZE)
        try:
            position = list(observation.position or ())[:3]
            position += [0.0] * (3 - len(position))
            features = [as_float(p) / 100.0 for p in position]
            features.append(as_float(observation.health) / 20.0)
            features.append(as_float(observation.food) / 20.0)
            features.append(as_float(observation.time_of_day) / 24000.0)
            features.append(min(len(observation.entities or ()) / 10.0, 1.0))
            features.append(as_float(observation.light_level) / 15.0)
            features.append(as_float(observation.inventory_fullness))
            features.append(compute_danger(observation))
        except Exception as e:
            logger.warning(f"Error extracting features: {e}")
            return np.zeros(FEATURE_SIZE)
        return np.asarray(features, dtype=float)

    def describe(self, features: np.ndarray) -> dict:
        """Name each component, for logs and the API."""
        return {name: float(value) for name, value in zip(FEATURE_NAMES, features)}


def extract_features(observation: Optional[Observation]) -> np.ndarray:
    return FeatureEncoder().encode(observation)
