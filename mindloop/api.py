"""
REST API for the mindloop learner.

Exposes the collaborator surface of a LearningManager (and, when one is
attached, its Orchestrator) over HTTP so game-side code in any language
can query action values and feed rewards back.

Run with:
    mindloop serve --data-dir ./data

Requires: pip install mindloop[api]
"""
from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

# Check for FastAPI
try:
    from fastapi import FastAPI, HTTPException, Query
    from fastapi.middleware.cors import CORSMiddleware
    from pydantic import BaseModel, Field
    FASTAPI_AVAILABLE = True
except ImportError:
    FASTAPI_AVAILABLE = False

from . import __version__
from .events import AgentEventType
from .learning.learning_manager import LearningManager
from .orchestrator import Orchestrator

logger = logging.getLogger(__name__)


# ============================================================================
# Pydantic Models for API
# ============================================================================

if FASTAPI_AVAILABLE:

    class UpdateRequest(BaseModel):
        """One experience to learn from."""
        state: str = Field(..., description="State the action was taken in")
        action: str = Field(..., description="Action that was taken")
        reward: float = Field(..., description="Observed reward")
        next_state: Optional[str] = Field(None, description="Resulting state (defaults to state)")

    class ActionResponse(BaseModel):
        state: str
        action: str
        greedy: bool

    class StateValues(BaseModel):
        state: str
        values: Dict[str, float]
        best_action: Optional[str] = None

    class EventRequest(BaseModel):
        """Domain event to publish on the agent's event bus."""
        payload: Dict[str, Any] = Field(default_factory=dict)


# ============================================================================
# API Server
# ============================================================================

class LearningAPIServer:
    """
    FastAPI server around one learner.

    Endpoints:
    - GET  /                       health check
    - GET  /stats                  learner (and agent) statistics
    - GET  /states                 registered states and actions
    - GET  /states/{state}/values  Q-values of a state's candidates
    - GET  /states/{state}/action  epsilon-greedy (or greedy) action
    - GET  /next-state             bandit pick for the next state
    - POST /update                 learn from one experience
    - POST /reset                  forget everything learned
    - POST /save                   persist now
    - POST /decide                 run one decision (agent only)
    - POST /events/{event_type}    publish a domain event (agent only)

    With ``drive_agent`` the attached agent is started when the app starts
    and stopped when it shuts down. Its scheduler is pumped by a task on
    the server's event loop, the same loop that runs the (async) routes,
    so learner state is still only touched from one thread.
    """

    def __init__(
        self,
        manager: Optional[LearningManager] = None,
        orchestrator: Optional[Orchestrator] = None,
        drive_agent: bool = False,
        poll_interval: float = 0.05,
    ):
        if not FASTAPI_AVAILABLE:
            raise ImportError(
                "FastAPI not installed. Install with: pip install mindloop[api]"
            )
        if manager is None and orchestrator is None:
            raise ValueError("A LearningManager or an Orchestrator is required")
        if drive_agent and orchestrator is None:
            raise ValueError("drive_agent needs an Orchestrator")

        self.orchestrator = orchestrator
        self.manager = manager or orchestrator.learning
        self.poll_interval = poll_interval

        self.app = FastAPI(
            title="mindloop API",
            description="Behavior learning for game agents",
            version=__version__,
            lifespan=self._lifespan if drive_agent else None,
        )
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
        self._register_routes()

    @asynccontextmanager
    async def _lifespan(self, app):
        agent = self.orchestrator
        agent.start()
        pump = asyncio.create_task(self._pump(agent.scheduler))
        logger.info(f"Agent {agent.config.agent_id} running behind the API")
        try:
            yield
        finally:
            pump.cancel()
            try:
                await pump
            except asyncio.CancelledError:
                pass
            agent.stop()

    async def _pump(self, scheduler) -> None:
        while True:
            scheduler.run_pending()
            due = scheduler.next_due()
            wait = self.poll_interval
            if due is not None:
                wait = min(wait, max(0.0, due - scheduler.now()))
            await asyncio.sleep(wait)

    def _require_state(self, state: str) -> None:
        if state not in self.manager.states:
            raise HTTPException(status_code=404, detail=f"Unknown state: {state}")

    def _require_agent(self) -> Orchestrator:
        if self.orchestrator is None:
            raise HTTPException(status_code=409, detail="No agent attached to this server")
        return self.orchestrator

    def _register_routes(self):
        """Register all API routes."""

        @self.app.get("/")
        async def root():
            """API health check."""
            return {
                "status": "ok",
                "version": __version__,
                "agent": self.orchestrator is not None,
            }

        @self.app.get("/stats")
        async def get_stats():
            if self.orchestrator is not None:
                return self.orchestrator.get_statistics()
            return self.manager.get_statistics()

        @self.app.get("/states")
        async def list_states():
            return {
                "states": self.manager.states,
                "actions": self.manager.actions,
                "state_actions": {s: self.manager.get_state_actions(s) for s in self.manager.states},
            }

        @self.app.get("/states/{state}/values", response_model=StateValues)
        async def get_state_values(state: str):
            """Q-values of the state's candidate actions."""
            self._require_state(state)
            return StateValues(
                state=state,
                values=self.manager.get_state_values(state),
                best_action=self.manager.get_best_action(state),
            )

        @self.app.get("/states/{state}/action", response_model=ActionResponse)
        async def select_action(state: str, greedy: bool = Query(False)):
            """Pick an action; ``greedy=true`` skips exploration."""
            self._require_state(state)
            if greedy:
                action = self.manager.get_best_action(state)
            else:
                action = self.manager.select_action(state)
            if action is None:
                raise HTTPException(status_code=404, detail=f"No actions for state: {state}")
            return ActionResponse(state=state, action=action, greedy=greedy)

        @self.app.get("/next-state")
        async def next_state():
            state = self.manager.select_next_state()
            if state is None:
                raise HTTPException(status_code=404, detail="No states registered")
            return {"state": state}

        @self.app.post("/update")
        async def update(request: UpdateRequest):
            """Learn from one experience."""
            ok = self.manager.update_learning(
                request.state, request.action, request.reward, request.next_state
            )
            if not ok:
                raise HTTPException(
                    status_code=400,
                    detail=f"Update rejected for {request.state}-{request.action}",
                )
            return {
                "status": "updated",
                "value": self.manager.q_table[request.state][request.action],
                "exploration_rate": self.manager.exploration_rate,
            }

        @self.app.post("/reset")
        async def reset():
            self.manager.reset_learning()
            return {"status": "reset"}

        @self.app.post("/save")
        async def save():
            if not self.manager.save_data():
                raise HTTPException(status_code=500, detail="Failed to save learning data")
            if self.orchestrator is not None and self.orchestrator.approximation is not None:
                self.orchestrator.approximation.save_data()
            return {"status": "saved"}

        @self.app.post("/decide")
        async def decide():
            agent = self._require_agent()
            return {"decision": agent.make_decision(), "state": agent.machine.current_name}

        @self.app.post("/events/{event_type}")
        async def publish_event(event_type: str, request: EventRequest):
            agent = self._require_agent()
            try:
                kind = AgentEventType(event_type)
            except ValueError:
                raise HTTPException(status_code=404, detail=f"Unknown event type: {event_type}")
            event = agent.event_bus.emit(kind, request.payload)
            return {"status": "published", "seq": event.seq}


def create_app(
    manager: Optional[LearningManager] = None,
    orchestrator: Optional[Orchestrator] = None,
    drive_agent: bool = False,
) -> "FastAPI":
    """Create and configure the FastAPI application."""
    return LearningAPIServer(manager=manager, orchestrator=orchestrator, drive_agent=drive_agent).app


def run_server(app: "FastAPI", host: str = "127.0.0.1", port: int = 8000) -> None:
    """Serve ``app`` with uvicorn."""
    import uvicorn

    logger.info(f"mindloop API starting on http://{host}:{port} (docs at /docs)")
    uvicorn.run(app, host=host, port=port)


__all__: List[str] = ["FASTAPI_AVAILABLE", "LearningAPIServer", "create_app", "run_server"]
