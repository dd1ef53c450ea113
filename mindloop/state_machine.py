"""
Behavior state machine.

Owns exactly one current BehaviorState. Each ``tick()``:

1. refreshes the observation snapshot,
2. calls ``update()`` on the current state,
3. walks the declared priority list; the first candidate (other than the
   current state) that the current state agrees to leave for wins.

A transition runs ``on_exit(old)``, swaps, runs ``on_enter(new)`` and
publishes a ``state_changed`` event. Minimum-dwell guards live in the
individual states, so each can be tuned separately; a state without one
can oscillate between two candidates on consecutive ticks.

Exceptions raised by a state's hooks or predicates are logged and treated
as "no transition"; they never reach the caller.
"""
from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Set

from .events import AgentEventType, EventBus
from .scheduler import MonotonicClock
from .types import Observation, ObservationSource

logger = logging.getLogger(__name__)


class BehaviorState:
    """
    Base class for a behavior mode.

    Subclasses override ``update()`` and ``should_transition()``. Inside
    those hooks, ``self.observation`` is the snapshot taken at the start of
    the current tick.

    Attributes:
        name: Unique state name
        min_dwell: Seconds the state should stay active before yielding
            to non-urgent candidates (enforced by the subclass)
        max_duration: Seconds after which the state gives up (None = no cap)
    """

    name = "base"
    min_dwell = 0.0
    max_duration: Optional[float] = None

    def __init__(self):
        self.machine: Optional["StateMachine"] = None
        self.active = False
        self.entered_at: Optional[float] = None
        self.task_complete = False
        self.enter_count = 0

    def attach(self, machine: "StateMachine") -> None:
        self.machine = machine

    # -- helpers -------------------------------------------------------

    @property
    def observation(self) -> Observation:
        if self.machine is None:
            return Observation()
        return self.machine.observation

    def now(self) -> float:
        return self.machine.now() if self.machine is not None else 0.0

    def time_in_state(self) -> float:
        if self.entered_at is None:
            return 0.0
        return self.now() - self.entered_at

    def dwell_elapsed(self) -> bool:
        return self.time_in_state() >= self.min_dwell

    def timed_out(self) -> bool:
        return self.max_duration is not None and self.time_in_state() > self.max_duration

    def has_directive(self, name: str) -> bool:
        if name in self.observation.directives:
            return True
        return self.machine is not None and name in self.machine.directives

    def complete(self) -> None:
        """Mark the current task finished; most states then yield to idle."""
        self.task_complete = True

    # -- lifecycle hooks -----------------------------------------------

    def on_enter(self) -> None:
        self.active = True
        self.entered_at = self.now()
        self.task_complete = False
        self.enter_count += 1
        logger.info(f"Entered {self.name} state")

    def on_exit(self) -> None:
        self.active = False
        logger.info(f"Exited {self.name} state")

    def update(self) -> None:
        """Per-tick work while active."""

    def should_transition(self, candidate: str) -> bool:
        return False

    def describe(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "active": self.active,
            "time_in_state": self.time_in_state() if self.active else 0.0,
            "enter_count": self.enter_count,
        }


@dataclass
class Transition:
    """A completed state change."""
    old: Optional[str]
    new: str
    at: float
    reason: str = "predicate"

    def to_dict(self) -> Dict[str, Any]:
        return {"old": self.old, "new": self.new, "at": self.at, "reason": self.reason}


StateListener = Callable[[Optional[str], str], None]


class StateMachine:
    """
    Deterministic priority-ordered behavior state machine.

    Example:
        >>> machine = StateMachine(build_default_states(), DEFAULT_PRIORITY)
        >>> machine.start()
        >>> machine.tick()
        >>> machine.current_name
        'idle'
    """

    def __init__(
        self,
        states: Iterable[BehaviorState],
        priority: Optional[List[str]] = None,
        initial_state: str = "idle",
        observation_source: Optional[ObservationSource] = None,
        clock=None,
        event_bus: Optional[EventBus] = None,
        history_size: int = 50,
    ):
        self.states: Dict[str, BehaviorState] = {}
        for state in states:
            self.register(state)
        self.priority = list(priority) if priority is not None else list(self.states)
        unknown = [p for p in self.priority if p not in self.states]
        if unknown:
            raise ValueError(f"Priority list names unknown states: {unknown}")
        if initial_state not in self.states:
            raise ValueError(f"Unknown initial state: {initial_state}")

        self.initial_state = initial_state
        self.observation_source = observation_source
        self.clock = clock or MonotonicClock()
        self.event_bus = event_bus
        self.observation = Observation()
        self.directives: Set[str] = set()

        self.current: Optional[BehaviorState] = None
        self.history: Deque[Transition] = deque(maxlen=history_size)
        self.transition_count = 0
        self.tick_count = 0
        self.errors = 0
        self._listeners: List[StateListener] = []

    # ------------------------------------------------------------------

    def register(self, state: BehaviorState) -> None:
        if state.name in self.states:
            raise ValueError(f"Duplicate state: {state.name}")
        state.attach(self)
        self.states[state.name] = state

    def now(self) -> float:
        return self.clock.now()

    @property
    def current_name(self) -> Optional[str]:
        return self.current.name if self.current is not None else None

    @property
    def state_names(self) -> List[str]:
        return list(self.states)

    def add_listener(self, listener: StateListener) -> None:
        self._listeners.append(listener)

    def set_directive(self, name: str, active: bool = True) -> None:
        if active:
            self.directives.add(name)
        else:
            self.directives.discard(name)

    def start(self) -> None:
        """Enter the initial state (idempotent)."""
        if self.current is None:
            self.refresh_observation()
            self._transition(self.initial_state, reason="start")

    def refresh_observation(self) -> Observation:
        if self.observation_source is not None:
            try:
                self.observation = self.observation_source.observe()
            except Exception as e:
                logger.warning(f"Observation failed, keeping last snapshot: {e}")
        return self.observation

    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Run one machine step.

        Returns:
            True if the state changed
        """
        if self.current is None:
            self.start()
        self.tick_count += 1
        self.refresh_observation()
        current = self.current

        try:
            current.update()
        except Exception as e:
            self.errors += 1
            logger.error(f"Error in {current.name}.update(): {e}", exc_info=True)
            return False

        for candidate in self.priority:
            if candidate == current.name:
                continue
            try:
                wanted = current.should_transition(candidate)
            except Exception as e:
                self.errors += 1
                logger.error(
                    f"Error in {current.name}.should_transition({candidate}): {e}",
                    exc_info=True,
                )
                return False
            if wanted:
                return self._transition(candidate, reason="predicate")
        return False

    def change_state(self, name: str, reason: str = "forced") -> bool:
        """
        Switch to a state immediately, bypassing predicates.

        Returns:
            False for unknown states or when already in ``name``
        """
        if name not in self.states:
            logger.warning(f"Rejected transition to unknown state: {name}")
            return False
        if self.current is not None and self.current.name == name:
            return False
        return self._transition(name, reason=reason)

    def complete_current(self) -> None:
        """Tell the active state its task is done."""
        if self.current is not None:
            self.current.complete()

    def _transition(self, name: str, reason: str) -> bool:
        old = self.current
        new = self.states[name]
        if old is not None:
            try:
                old.on_exit()
            except Exception as e:
                self.errors += 1
                logger.error(f"Error exiting {old.name}: {e}", exc_info=True)

        self.current = new
        try:
            new.on_enter()
        except Exception as e:
            self.errors += 1
            logger.error(f"Error entering {new.name}: {e}", exc_info=True)

        old_name = old.name if old is not None else None
        self.history.append(Transition(old=old_name, new=name, at=self.now(), reason=reason))
        self.transition_count += 1
        logger.info(f"State changed: {old_name} -> {name} ({reason})")

        if self.event_bus is not None:
            self.event_bus.publish(AgentEventType.STATE_CHANGED, old=old_name, new=name, reason=reason)
        for listener in list(self._listeners):
            try:
                listener(old_name, name)
            except Exception as e:
                logger.warning(f"State listener error: {e}")
        return True

    def get_statistics(self) -> Dict[str, Any]:
        return {
            "current_state": self.current_name,
            "time_in_state": self.current.time_in_state() if self.current else 0.0,
            "ticks": self.tick_count,
            "transitions": self.transition_count,
            "errors": self.errors,
            "directives": sorted(self.directives),
            "states": {name: state.describe() for name, state in self.states.items()},
            "history": [t.to_dict() for t in self.history],
        }
