"""
Decision loop orchestration.

The Orchestrator owns the timers that drive one agent:

- tick loop: advances the state machine and derives health events
- decision loop: asks the tabular learner for a state switch or an action
- stats loop: logs learner statistics
- approximation loop (optional): one low-level learning step

Rewards reach the learner two ways. An executed action is credited with
the observed step reward ``reward_delay`` seconds later; domain events
published on the EventBus (resources, kills, deaths, discoveries, damage)
are credited to the last decision as they arrive.
"""
from __future__ import annotations

import random
from enum import Enum
from typing import Any, Dict, List, Optional

from .config import AgentConfig, OrchestratorConfig
from .errors import ActionExecutionError
from .events import AgentEvent, AgentEventType, EventBus
from .learning.approximation import FunctionApproximationLearner
from .learning.feature_encoder import FeatureEncoder
from .learning.learning_manager import LearningManager
from .learning.reward_shaping import OutcomeType, RewardShaper
from .logging_config import get_logger
from .scheduler import GenerationCounter, Scheduler, Timer
from .state_machine import StateMachine
from .states import BEHAVIOR_ACTIONS, STATE_ACTIONS, build_default_states, state_change_action
from .types import ActionExecutor, ObservationSource

logger = get_logger(__name__)


class AgentStatus(str, Enum):
    """Orchestrator lifecycle states."""
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class Orchestrator:
    """
    Runs the decision loop for one agent.

    Example:
        >>> agent = create_agent(AgentConfig(), source, executor, clock=ManualClock())
        >>> agent.start()
        >>> agent.scheduler.advance(60)   # one decision, sixty ticks
        >>> agent.get_statistics()["decisions"]
        1
    """

    def __init__(
        self,
        learning_manager: LearningManager,
        state_machine: StateMachine,
        executor: ActionExecutor,
        scheduler: Optional[Scheduler] = None,
        event_bus: Optional[EventBus] = None,
        config: Optional[OrchestratorConfig] = None,
        approximation: Optional[FunctionApproximationLearner] = None,
        reward_shaper: Optional[RewardShaper] = None,
    ):
        self.config = config or OrchestratorConfig()
        self.learning = learning_manager
        self.machine = state_machine
        self.executor = executor
        self.scheduler = scheduler or Scheduler(state_machine.clock)
        self.event_bus = event_bus or state_machine.event_bus or EventBus()
        if state_machine.event_bus is None:
            state_machine.event_bus = self.event_bus
        self.approximation = approximation
        self.shaper = reward_shaper or RewardShaper()
        self.encoder = FeatureEncoder()
        self.rng = random.Random(self.config.prng_seed)
        self.generation = GenerationCounter()

        self.status = AgentStatus.NOT_STARTED
        self.last_state: Optional[str] = None
        self.last_action: Optional[str] = None
        self.last_health: Optional[float] = None

        self.decisions = 0
        self.state_switches = 0
        self.actions_executed = 0
        self.action_failures = 0
        self.mining_successes = 0
        self.combat_wins = 0
        self.combat_losses = 0
        self.areas_discovered = 0
        self.damage_events = 0

        self._timers: List[Timer] = []
        self._unsubscribers = []
        self._catalogue_registered = False

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def register_catalogue(self) -> None:
        """Register states, actions and per-state candidate lists with the learner."""
        if self._catalogue_registered:
            return
        states = self.machine.state_names
        switches = [state_change_action(s) for s in states]
        with self.learning.deferred_saves():
            self.learning.register_states(states)
            self.learning.register_actions(BEHAVIOR_ACTIONS + switches)
            for state in states:
                actions = STATE_ACTIONS.get(state)
                if actions:
                    self.learning.set_state_actions(state, actions)
        self._catalogue_registered = True
        logger.info(f"Registered {len(states)} states and {len(BEHAVIOR_ACTIONS)} actions")

    def _subscribe(self) -> None:
        handlers = {
            AgentEventType.STATE_CHANGED: self.on_state_changed,
            AgentEventType.RESOURCE_COLLECTED: self.on_resource_collected,
            AgentEventType.ENTITY_DEFEATED: self.on_entity_defeated,
            AgentEventType.AGENT_DEFEATED: self.on_agent_defeated,
            AgentEventType.NEW_AREA_DISCOVERED: self.on_new_area,
            AgentEventType.HEALTH_CHANGED: self.on_health_changed,
        }
        for event_type, handler in handlers.items():
            self._unsubscribers.append(self.event_bus.subscribe(event_type, handler))

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self.status == AgentStatus.RUNNING

    def start(self) -> None:
        """Register the catalogue, enter the initial state and start the timers."""
        if self.running:
            return
        self.register_catalogue()
        self._subscribe()
        self.machine.start()
        self.last_state = self.machine.current_name
        self.last_health = self.machine.observation.health

        cfg = self.config
        self._timers.append(self.scheduler.call_every(cfg.tick_interval, self.tick, name="tick"))
        if cfg.auto_decide:
            self._timers.append(
                self.scheduler.call_every(cfg.decision_interval, self.make_decision, name="decision")
            )
        if cfg.log_stats:
            self._timers.append(self.scheduler.call_every(cfg.stats_interval, self.log_stats, name="stats"))
        if cfg.use_approximation and self.approximation is not None:
            self._timers.append(
                self.scheduler.call_every(
                    cfg.approximation_interval, self.approximation.step, name="approximation"
                )
            )

        self.status = AgentStatus.RUNNING
        logger.event("agent_started", f"Agent {cfg.agent_id} started", agent_id=cfg.agent_id,
                     state=self.machine.current_name)

    def stop(self) -> None:
        """Cancel timers, invalidate pending rewards and persist both learners."""
        if not self.running:
            return
        for timer in self._timers:
            self.scheduler.cancel(timer)
        self._timers = []
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []
        self.generation.bump()

        self.learning.save_data()
        if self.approximation is not None:
            self.approximation.stop()
        self.status = AgentStatus.STOPPED
        logger.event("agent_stopped", f"Agent {self.config.agent_id} stopped", agent_id=self.config.agent_id)

    # ------------------------------------------------------------------
    # Loops
    # ------------------------------------------------------------------

    def tick(self) -> bool:
        """
        Advance the state machine; publishes health_changed when health moves.

        Ticks without a health reading keep the last known value.
        """
        changed = self.machine.tick()
        health = self.machine.observation.health
        if health is None:
            return changed
        if self.last_health is not None and health != self.last_health:
            old = self.last_health
            self.last_health = health
            self.event_bus.publish(AgentEventType.HEALTH_CHANGED, old=old, new=health)
        else:
            self.last_health = health
        return changed

    def make_decision(self) -> str:
        """
        Run one decision.

        With probability ``state_change_probability`` the state bandit may
        switch behavior; otherwise an action is selected for the current
        state, executed, and credited ``reward_delay`` seconds later.

        Returns:
            A short description of what was decided
        """
        if not self.config.learning_enabled:
            return "Learning disabled"

        current = self.machine.current_name
        if current is None:
            return "Agent not started"

        if self.rng.random() < self.config.state_change_probability:
            next_state = self.learning.select_next_state()
            if next_state and next_state != current:
                self.decisions += 1
                self.last_state = current
                self.last_action = state_change_action(next_state)
                if self.machine.change_state(next_state, reason="decision"):
                    self.state_switches += 1
                logger.decision(
                    f"Change state to {next_state}",
                    cycle_id=self.decisions,
                    agent_id=self.config.agent_id,
                    state=current,
                    action=self.last_action,
                )
                return f"Change state to {next_state}"

        action = self.learning.select_action(current, available=self._is_available)
        if action is None:
            return "No decision made"

        self.decisions += 1
        self.last_state = current
        self.last_action = action
        old_features = self.encoder.encode(self.machine.observation)
        success = self.execute(action)

        token = self.generation.token()
        self.scheduler.call_later(
            self.config.reward_delay,
            self._credit_action,
            token,
            current,
            action,
            old_features,
            success,
            name="reward",
        )
        logger.decision(
            f"Perform {action} in state {current}",
            cycle_id=self.decisions,
            agent_id=self.config.agent_id,
            state=current,
            action=action,
            success=success,
        )
        return f"Perform {action} in state {current}"

    def log_stats(self) -> Dict[str, Any]:
        stats = self.get_statistics()
        learning = stats["learning"]
        logger.event(
            "learning_stats",
            f"Success rate: {learning['success_rate']:.2f}, "
            f"exploration: {learning['learning_params']['exploration_rate']:.3f}, "
            f"decisions: {stats['decisions']}",
            agent_id=self.config.agent_id,
            state=stats["current_state"],
        )
        return stats

    # ------------------------------------------------------------------
    # Acting
    # ------------------------------------------------------------------

    def _is_available(self, action: str) -> bool:
        try:
            return bool(self.executor.is_available(action))
        except Exception as e:
            logger.warning(f"Availability check failed for {action}: {e}")
            return False

    def execute(self, action: str) -> bool:
        """Run an action through the executor; failures count as unsuccessful."""
        self.actions_executed += 1
        try:
            success = bool(self.executor.execute(action))
        except ActionExecutionError as e:
            logger.warning(str(e))
            success = False
        except Exception as e:
            logger.warning(f"Error executing {action}: {e}")
            success = False
        if not success:
            self.action_failures += 1
        return success

    def _credit_action(self, token: int, state: str, action: str, old_features, success: bool) -> None:
        if not self.generation.is_current(token):
            logger.debug(f"Discarding stale reward for {action}")
            return
        if not self.config.learning_enabled:
            return
        self.machine.refresh_observation()
        new_features = self.encoder.encode(self.machine.observation)
        reward = self.shaper.calculate_reward(old_features, new_features, success)
        self.learning.update_learning(state, action, reward, self.machine.current_name)

    # ------------------------------------------------------------------
    # Event rewards
    # ------------------------------------------------------------------

    def _credit(self, outcome: OutcomeType, next_state: Optional[str] = None) -> bool:
        if not self.config.learning_enabled or not self.last_state or not self.last_action:
            return False
        reward = self.shaper.reward(outcome)
        logger.debug(f"Crediting {outcome.value} ({reward:+.2f}) to {self.last_state}-{self.last_action}")
        return self.learning.update_learning(
            self.last_state, self.last_action, reward, next_state or self.last_state
        )

    def on_state_changed(self, event: AgentEvent) -> None:
        old = event.get("old")
        new = event.get("new")
        if old is None or new is None:
            return
        if self.last_state and self.last_action:
            self._credit(self.shaper.state_change_outcome(self.last_action, new), next_state=new)
        self.last_state = new

    def on_resource_collected(self, event: AgentEvent) -> None:
        if self.last_state != "mining":
            return
        outcome = self.shaper.block_outcome(str(event.get("block", "")), self.last_action)
        if outcome in (OutcomeType.ORE_MINED, OutcomeType.STONE_MINED):
            self.mining_successes += 1
        self._credit(outcome)

    def on_entity_defeated(self, event: AgentEvent) -> None:
        if self.last_state != "combat":
            return
        self.combat_wins += 1
        outcome = self.shaper.entity_outcome(str(event.get("name", "")), str(event.get("entity_type", "")))
        self._credit(outcome)

    def on_agent_defeated(self, event: AgentEvent) -> None:
        if self.last_state == "combat":
            self.combat_losses += 1
        self._credit(self.shaper.death_outcome(self.last_state), next_state="idle")

    def on_new_area(self, event: AgentEvent) -> None:
        if self.last_state != "explore":
            return
        self.areas_discovered += 1
        self._credit(OutcomeType.NEW_AREA)

    def on_health_changed(self, event: AgentEvent) -> None:
        old = event.get("old")
        new = event.get("new")
        if old is None or new is None:
            return
        if self.shaper.is_damage(float(old), float(new)):
            self.damage_events += 1
            self._credit(OutcomeType.DAMAGE_TAKEN)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_statistics(self) -> Dict[str, Any]:
        stats: Dict[str, Any] = {
            "agent_id": self.config.agent_id,
            "status": self.status.value,
            "current_state": self.machine.current_name,
            "last_action": self.last_action,
            "decisions": self.decisions,
            "state_switches": self.state_switches,
            "actions_executed": self.actions_executed,
            "action_failures": self.action_failures,
            "mining_successes": self.mining_successes,
            "combat_wins": self.combat_wins,
            "combat_losses": self.combat_losses,
            "areas_discovered": self.areas_discovered,
            "damage_events": self.damage_events,
            "learning": self.learning.get_statistics(),
            "state_machine": {
                "transitions": self.machine.transition_count,
                "ticks": self.machine.tick_count,
                "errors": self.machine.errors,
            },
            "scheduler_errors": self.scheduler.errors,
        }
        if self.approximation is not None:
            stats["approximation"] = self.approximation.get_stats()
        return stats


def create_agent(
    config: Optional[AgentConfig],
    observation_source: ObservationSource,
    executor: ActionExecutor,
    clock=None,
) -> Orchestrator:
    """
    Assemble a complete agent from configuration.

    Args:
        config: Agent configuration (defaults if None)
        observation_source: World snapshot provider
        executor: Action runner
        clock: Clock shared by the scheduler and state machine

    Returns:
        An Orchestrator ready to ``start()``
    """
    config = config or AgentConfig()
    scheduler = Scheduler(clock)
    event_bus = EventBus()
    shaper = RewardShaper()

    sm = config.state_machine
    machine = StateMachine(
        build_default_states(sm.thresholds()),
        priority=sm.priority,
        initial_state=sm.initial_state,
        observation_source=observation_source,
        clock=scheduler.clock,
        event_bus=event_bus,
        history_size=sm.history_size,
    )
    learning = LearningManager(config.learning, data_dir=config.data_dir)

    approximation = None
    if config.orchestrator.use_approximation:
        approximation = FunctionApproximationLearner(
            observation_source,
            executor,
            scheduler=scheduler,
            config=config.approximation,
            data_dir=config.data_dir,
            reward_shaper=shaper,
        )

    return Orchestrator(
        learning,
        machine,
        executor,
        scheduler=scheduler,
        event_bus=event_bus,
        config=config.orchestrator,
        approximation=approximation,
        reward_shaper=shaper,
    )
