"""
Observation snapshot and collaborator interfaces.

The core never talks to the game directly. It consumes an Observation
produced by an ObservationSource and acts through an ActionExecutor.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Set, Tuple

from .util import as_float

HOSTILE_MOBS = ("zombie", "skeleton", "creeper", "spider")


def _optional_float(value: Any) -> Optional[float]:
    """Like as_float, but missing or unreadable input stays None."""
    if value is None:
        return None
    f = as_float(value, math.nan)
    return None if math.isnan(f) else f


@dataclass
class EntitySighting:
    """
    An entity visible to the agent.

    Attributes:
        name: Entity name (e.g. "zombie", "Steve")
        type: Entity kind ("mob", "player", "object")
        distance: Distance from the agent in blocks
    """
    name: str
    type: str = "mob"
    distance: float = 0.0

    @property
    def is_hostile_mob(self) -> bool:
        return self.type == "mob" and self.name in HOSTILE_MOBS

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "type": self.type, "distance": self.distance}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EntitySighting":
        return cls(
            name=str(data.get("name", "")),
            type=str(data.get("type", "mob")),
            distance=as_float(data.get("distance"), 0.0),
        )


@dataclass
class Observation:
    """
    Read-only snapshot of what the agent perceives.

    Readings the source could not supply (health, food, light) stay None;
    consumers pick their own fallback. Health and food are in game units (0 to 20).

    Attributes:
        position: (x, y, z) coordinates
        health: Agent health, 0 to 20 (None if unknown)
        food: Agent food level, 0 to 20 (None if unknown)
        time_of_day: World time, 0 to 24000
        entities: Entities near the agent
        light_level: Light at the agent's position, 0 to 15 (None if unknown)
        inventory_used: Occupied inventory slots
        inventory_size: Total inventory slots
        owner_distance: Distance to the agent's owner (None if unknown)
        directives: Active commands from collaborators ("mine", "attack", ...)
        has_pickaxe: Whether the agent can mine
        has_axe: Whether the agent can chop wood
    """
    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    health: Optional[float] = None
    food: Optional[float] = None
    time_of_day: float = 0.0
    entities: List[EntitySighting] = field(default_factory=list)
    light_level: Optional[float] = None
    inventory_used: int = 0
    inventory_size: int = 36
    owner_distance: Optional[float] = None
    directives: Set[str] = field(default_factory=set)
    has_pickaxe: bool = False
    has_axe: bool = False

    @property
    def is_night(self) -> bool:
        return 12000 < self.time_of_day < 24000

    def hostiles_within(self, radius: float) -> List[EntitySighting]:
        """Hostile mobs closer than ``radius``."""
        return [e for e in self.entities if e.is_hostile_mob and e.distance < radius]

    def has_directive(self, name: str) -> bool:
        return name in self.directives

    @property
    def inventory_fullness(self) -> float:
        if self.inventory_size <= 0:
            return 0.0
        return self.inventory_used / self.inventory_size

    def to_dict(self) -> Dict[str, Any]:
        return {
            "position": list(self.position),
            "health": self.health,
            "food": self.food,
            "time_of_day": self.time_of_day,
            "entities": [e.to_dict() for e in self.entities],
            "light_level": self.light_level,
            "inventory_used": self.inventory_used,
            "inventory_size": self.inventory_size,
            "owner_distance": self.owner_distance,
            "directives": sorted(self.directives),
            "has_pickaxe": self.has_pickaxe,
            "has_axe": self.has_axe,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Observation":
        """Build an observation from loosely typed input, defaulting bad fields."""
        raw_position = data.get("position") or (0.0, 0.0, 0.0)
        if isinstance(raw_position, dict):
            raw_position = (raw_position.get("x"), raw_position.get("y"), raw_position.get("z"))
        position = tuple(list(raw_position)[:3]) if isinstance(raw_position, (list, tuple)) else ()
        position = tuple(as_float(p) for p in position) + (0.0,) * (3 - len(position))

        owner = data.get("owner_distance")
        return cls(
            position=position,  # type: ignore[arg-type]
            health=_optional_float(data.get("health")),
            food=_optional_float(data.get("food")),
            time_of_day=as_float(data.get("time_of_day"), 0.0),
            entities=[
                EntitySighting.from_dict(e)
                for e in data.get("entities") or []
                if isinstance(e, dict)
            ],
            light_level=_optional_float(data.get("light_level")),
            inventory_used=int(as_float(data.get("inventory_used"), 0)),
            inventory_size=int(as_float(data.get("inventory_size"), 36)),
            owner_distance=_optional_float(owner),
            directives=set(data.get("directives") or ()),
            has_pickaxe=bool(data.get("has_pickaxe", False)),
            has_axe=bool(data.get("has_axe", False)),
        )


class ObservationSource(Protocol):
    """Supplies the current world snapshot. Must not mutate the world."""

    def observe(self) -> Observation:
        ...


class ActionExecutor(Protocol):
    """Performs actions in the world on the agent's behalf."""

    def execute(self, action: str) -> bool:
        """Run an action. Returns False (or raises) on failure."""
        ...

    def is_available(self, action: str) -> bool:
        ...


class StaticObservationSource:
    """ObservationSource returning whatever snapshot was last assigned."""

    def __init__(self, observation: Optional[Observation] = None):
        self.observation = observation or Observation()

    def observe(self) -> Observation:
        return self.observation


class RecordingExecutor:
    """
    ActionExecutor that records every call.

    Used for offline runs and tests. Actions listed in ``failing`` report
    failure; actions listed in ``unavailable`` are never offered.
    """

    def __init__(
        self,
        failing: Optional[Set[str]] = None,
        unavailable: Optional[Set[str]] = None,
    ):
        self.failing = set(failing or ())
        self.unavailable = set(unavailable or ())
        self.executed: List[str] = []

    def execute(self, action: str) -> bool:
        self.executed.append(action)
        return action not in self.failing

    def is_available(self, action: str) -> bool:
        return action not in self.unavailable
