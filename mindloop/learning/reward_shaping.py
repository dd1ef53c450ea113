"""
Reward shaping for both learners.

Translates domain outcomes (blocks mined, entities defeated, damage
taken, ...) into scalar rewards for the tabular learner, and observation
deltas into step rewards for the function-approximation learner.
"""
from __future__ import annotations

from enum import Enum
from typing import Dict, Optional, Sequence

from ..types import HOSTILE_MOBS
from .feature_encoder import DANGER_INDEX, FOOD_INDEX, HEALTH_INDEX, INVENTORY_INDEX


class OutcomeType(str, Enum):
    """Outcomes that carry a reward."""
    INTENDED_STATE_CHANGE = "intended_state_change"
    UNINTENDED_STATE_CHANGE = "unintended_state_change"
    ORE_MINED = "ore_mined"
    STONE_MINED = "stone_mined"
    LOW_VALUE_BLOCK = "low_value_block"
    BLOCK_MINED = "block_mined"
    PLAYER_DEFEATED = "player_defeated"
    HOSTILE_DEFEATED = "hostile_defeated"
    ENTITY_DEFEATED = "entity_defeated"
    DIED_IN_COMBAT = "died_in_combat"
    DIED = "died"
    NEW_AREA = "new_area"
    DAMAGE_TAKEN = "damage_taken"


# Step reward weights (health and food deltas are in game units, 0-20)
ACTION_SUCCESS_REWARD = 0.1
ACTION_FAILURE_REWARD = -0.05
HEALTH_WEIGHT = 0.5
FOOD_WEIGHT = 0.3
INVENTORY_WEIGHT = 2.0
DANGER_WEIGHT = 0.5
STEP_PENALTY = 0.01

# Health loss larger than this counts as damage taken
DAMAGE_THRESHOLD = 2.0


class RewardShaper:
    """
    Maps outcomes to rewards.

    Example:
        >>> shaper = RewardShaper()
        >>> shaper.reward(shaper.block_outcome("iron_ore", "mine_ores"))
        0.8
    """

    DEFAULT_REWARDS: Dict[OutcomeType, float] = {
        OutcomeType.INTENDED_STATE_CHANGE: 0.5,
        OutcomeType.UNINTENDED_STATE_CHANGE: 0.0,
        OutcomeType.ORE_MINED: 0.8,
        OutcomeType.STONE_MINED: 0.3,
        OutcomeType.LOW_VALUE_BLOCK: 0.05,
        OutcomeType.BLOCK_MINED: 0.1,
        OutcomeType.PLAYER_DEFEATED: 1.0,
        OutcomeType.HOSTILE_DEFEATED: 0.7,
        OutcomeType.ENTITY_DEFEATED: 0.2,
        OutcomeType.DIED_IN_COMBAT: -1.0,
        OutcomeType.DIED: -0.8,
        OutcomeType.NEW_AREA: 0.3,
        OutcomeType.DAMAGE_TAKEN: -0.5,
    }

    def __init__(self, custom_rewards: Optional[Dict[OutcomeType, float]] = None):
        self.rewards = self.DEFAULT_REWARDS.copy()
        if custom_rewards:
            for outcome_type, value in custom_rewards.items():
                self.set_reward(outcome_type, value)

    def reward(self, outcome_type: OutcomeType) -> float:
        return self.rewards.get(OutcomeType(outcome_type), 0.0)

    def set_reward(self, outcome_type: OutcomeType, reward: float) -> None:
        self.rewards[OutcomeType(outcome_type)] = max(-1.0, min(1.0, float(reward)))

    # ------------------------------------------------------------------
    # Event classification
    # ------------------------------------------------------------------

    def state_change_outcome(self, last_action: Optional[str], new_state: str) -> OutcomeType:
        if last_action == f"change_to_{new_state}":
            return OutcomeType.INTENDED_STATE_CHANGE
        return OutcomeType.UNINTENDED_STATE_CHANGE

    def block_outcome(self, block: str, last_action: Optional[str]) -> OutcomeType:
        block = block or ""
        if "ore" in block:
            return OutcomeType.ORE_MINED
        if "stone" in block and last_action == "mine_stone":
            return OutcomeType.STONE_MINED
        if "dirt" in block or "grass" in block:
            return OutcomeType.LOW_VALUE_BLOCK
        return OutcomeType.BLOCK_MINED

    def entity_outcome(self, name: str, entity_type: str) -> OutcomeType:
        if entity_type == "player":
            return OutcomeType.PLAYER_DEFEATED
        if entity_type == "mob" and name in HOSTILE_MOBS:
            return OutcomeType.HOSTILE_DEFEATED
        return OutcomeType.ENTITY_DEFEATED

    def death_outcome(self, state: Optional[str]) -> OutcomeType:
        return OutcomeType.DIED_IN_COMBAT if state == "combat" else OutcomeType.DIED

    def is_damage(self, old_health: float, new_health: float) -> bool:
        return new_health < old_health and (old_health - new_health) > DAMAGE_THRESHOLD

    # ------------------------------------------------------------------
    # Step reward
    # ------------------------------------------------------------------

    def calculate_reward(
        self,
        old_features: Optional[Sequence[float]],
        new_features: Optional[Sequence[float]],
        action_result: bool,
    ) -> float:
        """
        Reward for one action step, from the feature vectors around it.

        ``+0.1`` on success, ``-0.05`` on failure, ``+0.5`` per health point
        gained, ``+0.3`` per food point, ``+2.0`` per unit of inventory
        fullness, ``-0.5`` per unit of danger, and ``-0.01`` per step.
        """
        reward = ACTION_SUCCESS_REWARD if action_result else ACTION_FAILURE_REWARD

        if (
            old_features is not None
            and new_features is not None
            and len(old_features) > DANGER_INDEX
            and len(new_features) > DANGER_INDEX
        ):
            reward += (new_features[HEALTH_INDEX] - old_features[HEALTH_INDEX]) * 20 * HEALTH_WEIGHT
            reward += (new_features[FOOD_INDEX] - old_features[FOOD_INDEX]) * 20 * FOOD_WEIGHT
            reward += (new_features[INVENTORY_INDEX] - old_features[INVENTORY_INDEX]) * INVENTORY_WEIGHT
            reward -= (new_features[DANGER_INDEX] - old_features[DANGER_INDEX]) * DANGER_WEIGHT

        reward -= STEP_PENALTY
        return float(reward)
