"""
Behavior state catalogue: idle, mining, combat, gather, craft, follow,
build, explore.

Transition predicates only look at the current observation, the time
spent in the state, and the active directives (commands issued by
collaborators: "mine", "attack", "gather", "craft", "build", "explore",
"follow"). They are deterministic; autonomous "do something after idling
a while" choices are left to the learner's state bandit.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional

from .state_machine import BehaviorState

FULL_FOOD = 20.0

DEFAULT_PRIORITY: List[str] = [
    "combat",
    "follow",
    "gather",
    "mining",
    "craft",
    "build",
    "explore",
    "idle",
]


@dataclass
class StateThresholds:
    """
    Tunable constants shared by the catalogue.

    Attributes:
        combat_radius: A hostile closer than this starts combat
        disengage_radius: Combat ends when no hostile is closer than this
        follow_distance: Owner farther than this starts following
        follow_arrive_distance: Following ends when the owner is this close
        gather_food: Food below this starts gathering
        combat_gather_food: Food below this pulls a safe agent out of combat
        gather_done_food: Gathering for food ends at this food level
        idle_dwell: Seconds idle must last before non-urgent transitions
        combat_max: Seconds before combat gives up
        mining_max: Seconds before mining gives up
        task_max: Seconds before any other task gives up
    """
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


class CatalogueState(BehaviorState):
    """Shared predicates for the catalogue states."""

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__()
        self.t = thresholds or StateThresholds()

    def threat_nearby(self) -> bool:
        return bool(self.observation.hostiles_within(self.t.combat_radius))

    def wants_combat(self) -> bool:
        return self.threat_nearby() or self.has_directive("attack")

    def owner_far(self) -> bool:
        distance = self.observation.owner_distance
        return distance is not None and distance > self.t.follow_distance

    def food_level(self) -> float:
        # Unknown food never triggers gathering
        food = self.observation.food
        return FULL_FOOD if food is None else food

    def hungry(self) -> bool:
        return self.food_level() < self.t.gather_food

    def finished(self) -> bool:
        return self.task_complete or self.timed_out()


class IdleState(CatalogueState):
    """Default state; waits for directives, threats and needs."""

    name = "idle"

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__(thresholds)
        self.min_dwell = self.t.idle_dwell

    def should_transition(self, candidate: str) -> bool:
        if candidate == "combat":
            return self.wants_combat()
        if candidate == "follow":
            return self.owner_far() or self.has_directive("follow")
        # Non-urgent switches wait out the dwell guard
        if not self.dwell_elapsed():
            return False
        if candidate == "gather":
            return self.hungry() or self.has_directive("gather")
        if candidate == "mining":
            return self.has_directive("mine")
        if candidate == "craft":
            return self.has_directive("craft")
        if candidate == "build":
            return self.has_directive("build")
        if candidate == "explore":
            return self.has_directive("explore")
        return False


class MiningState(CatalogueState):
    """Mining until the task completes, the inventory fills, or 10 minutes pass."""

    name = "mining"

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__(thresholds)
        self.max_duration = self.t.mining_max

    def should_transition(self, candidate: str) -> bool:
        if candidate == "combat":
            return self.wants_combat()
        if candidate == "gather":
            return self.hungry()
        if candidate == "craft":
            return self.has_directive("craft") and not self.observation.has_pickaxe
        if candidate == "idle":
            return self.finished() or self.observation.inventory_fullness >= 1.0
        return False


class CombatState(CatalogueState):
    """Fights until no hostile remains nearby or two minutes pass."""

    name = "combat"

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__(thresholds)
        self.max_duration = self.t.combat_max

    def engaged(self) -> bool:
        return bool(self.observation.hostiles_within(self.t.disengage_radius)) or self.has_directive("attack")

    def should_transition(self, candidate: str) -> bool:
        if candidate == "gather":
            safe = not self.threat_nearby() and not self.has_directive("attack")
            return (safe and self.food_level() < self.t.combat_gather_food) or self.has_directive("gather")
        if candidate == "follow":
            return not self.threat_nearby() and self.owner_far()
        if candidate == "idle":
            return self.finished() or not self.engaged()
        return False


class GatherState(CatalogueState):
    """Collects food and materials."""

    name = "gather"

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__(thresholds)
        self.min_dwell = self.t.idle_dwell
        self.max_duration = self.t.task_max

    def should_transition(self, candidate: str) -> bool:
        if candidate == "combat":
            return self.wants_combat()
        if candidate == "idle":
            fed = self.food_level() >= self.t.gather_done_food
            return self.finished() or (fed and not self.has_directive("gather") and self.dwell_elapsed())
        return False


class CraftState(CatalogueState):
    """Crafts tools and items."""

    name = "craft"

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__(thresholds)
        self.max_duration = self.t.task_max

    def should_transition(self, candidate: str) -> bool:
        if candidate == "combat":
            return self.wants_combat()
        if candidate == "idle":
            return self.finished()
        return False


class FollowState(CatalogueState):
    """Stays near the owner."""

    name = "follow"

    def should_transition(self, candidate: str) -> bool:
        if candidate == "combat":
            return self.wants_combat()
        if candidate == "idle":
            if self.has_directive("follow"):
                return self.task_complete
            distance = self.observation.owner_distance
            return self.task_complete or distance is None or distance <= self.t.follow_arrive_distance
        return False


class BuildState(CatalogueState):
    """Builds shelters and structures."""

    name = "build"

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__(thresholds)
        self.max_duration = self.t.task_max

    def should_transition(self, candidate: str) -> bool:
        if candidate == "combat":
            return self.wants_combat()
        if candidate == "gather":
            return self.hungry()
        if candidate == "idle":
            return self.finished()
        return False


class ExploreState(CatalogueState):
    """Wanders to discover new areas."""

    name = "explore"

    def __init__(self, thresholds: Optional[StateThresholds] = None):
        super().__init__(thresholds)
        self.max_duration = self.t.task_max

    def should_transition(self, candidate: str) -> bool:
        if candidate == "combat":
            return self.wants_combat()
        if candidate == "follow":
            return self.owner_far()
        if candidate == "gather":
            return self.hungry()
        if candidate == "idle":
            return self.finished()
        return False


STATE_CLASSES = [
    IdleState,
    MiningState,
    CombatState,
    GatherState,
    CraftState,
    FollowState,
    BuildState,
    ExploreState,
]

STATE_NAMES: List[str] = [cls.name for cls in STATE_CLASSES]


def build_default_states(thresholds: Optional[StateThresholds] = None) -> List[BehaviorState]:
    """Fresh instances of the whole catalogue, in registration order."""
    return [cls(thresholds) for cls in STATE_CLASSES]


# High-level actions the tabular learner chooses between
BEHAVIOR_ACTIONS: List[str] = [
    "mine_stone",
    "mine_ores",
    "mine_vein",
    "explore_area",
    "explore_caves",
    "gather_wood",
    "gather_food",
    "craft_tools",
    "craft_items",
    "attack_mobs",
    "attack_players",
    "defend_self",
    "flee_danger",
    "build_shelter",
    "build_structure",
    "follow_player",
    "idle_scan",
]

# Candidate actions per state
STATE_ACTIONS = {
    "idle": ["explore_area", "mine_stone", "gather_wood", "gather_food", "craft_tools", "idle_scan"],
    "mining": ["mine_stone", "mine_ores", "mine_vein", "explore_caves", "defend_self", "flee_danger"],
    "combat": ["attack_mobs", "attack_players", "defend_self", "flee_danger"],
    "gather": ["gather_wood", "gather_food", "explore_area", "defend_self"],
    "craft": ["craft_tools", "craft_items"],
    "follow": ["follow_player", "defend_self"],
    "build": ["build_shelter", "build_structure", "gather_wood"],
    "explore": ["explore_area", "explore_caves", "mine_ores", "gather_wood", "gather_food", "defend_self"],
}

STATE_CHANGE_PREFIX = "change_to_"


def state_change_action(state: str) -> str:
    """Pseudo-action credited when the agent deliberately switches to ``state``."""
    return f"{STATE_CHANGE_PREFIX}{state}"
