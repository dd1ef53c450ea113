"""
Tests for the REST API.
"""
import tempfile

import pytest

pytest.importorskip("fastapi")
from fastapi.testclient import TestClient  # noqa: E402

from mindloop.api import create_app  # noqa: E402
from mindloop.config import AgentConfig  # noqa: E402
from mindloop.learning import LearningConfig, LearningManager  # noqa: E402
from mindloop.orchestrator import create_agent  # noqa: E402
from mindloop.scheduler import ManualClock  # noqa: E402
from mindloop.types import Observation, RecordingExecutor, StaticObservationSource  # noqa: E402


@pytest.fixture
def manager():
    with tempfile.TemporaryDirectory() as tmpdir:
        manager = LearningManager(LearningConfig(prng_seed=5), data_dir=tmpdir)
        manager.register_states(["idle", "mining"])
        manager.register_actions(["mine_stone", "explore_area"])
        yield manager


@pytest.fixture
def agent():
    with tempfile.TemporaryDirectory() as tmpdir:
        config = AgentConfig(data_dir=tmpdir)
        config.learning.prng_seed = 5
        config.orchestrator.prng_seed = 5
        config.orchestrator.state_change_probability = 0.0
        agent = create_agent(
            config, StaticObservationSource(Observation()), RecordingExecutor(), clock=ManualClock()
        )
        agent.start()
        yield agent
        agent.stop()


def test_root(manager):
    client = TestClient(create_app(manager=manager))
    data = client.get("/").json()

    assert data["status"] == "ok"
    assert data["agent"] is False


def test_requires_a_learner():
    with pytest.raises(ValueError):
        create_app()


def test_update_and_values(manager):
    client = TestClient(create_app(manager=manager))

    response = client.post("/update", json={"state": "idle", "action": "mine_stone", "reward": 1.0})
    assert response.status_code == 200
    assert response.json()["value"] == pytest.approx(0.1)

    values = client.get("/states/idle/values").json()
    assert values["values"]["mine_stone"] == pytest.approx(0.1)
    assert values["best_action"] == "mine_stone"


def test_rejected_update(manager):
    client = TestClient(create_app(manager=manager))
    response = client.post("/update", json={"state": "nether", "action": "mine_stone", "reward": 1.0})
    assert response.status_code == 400


def test_select_action(manager):
    client = TestClient(create_app(manager=manager))
    manager.update_learning("mining", "explore_area", 1.0)

    data = client.get("/states/mining/action", params={"greedy": "true"}).json()
    assert data == {"state": "mining", "action": "explore_area", "greedy": True}

    data = client.get("/states/mining/action").json()
    assert data["action"] in ("mine_stone", "explore_area")


def test_unknown_state(manager):
    client = TestClient(create_app(manager=manager))
    assert client.get("/states/nether/values").status_code == 404
    assert client.get("/states/nether/action").status_code == 404


def test_next_state_and_listing(manager):
    client = TestClient(create_app(manager=manager))

    assert client.get("/next-state").json()["state"] in ("idle", "mining")
    listing = client.get("/states").json()
    assert listing["states"] == ["idle", "mining"]
    assert listing["state_actions"]["idle"] == ["mine_stone", "explore_area"]


def test_reset_and_save(manager):
    client = TestClient(create_app(manager=manager))
    manager.update_learning("idle", "mine_stone", 1.0)

    assert client.post("/reset").json() == {"status": "reset"}
    assert manager.q_table["idle"]["mine_stone"] == 0.0
    assert client.post("/save").status_code == 200


def test_agent_routes_need_an_agent(manager):
    client = TestClient(create_app(manager=manager))
    assert client.post("/decide").status_code == 409
    assert client.post("/events/agent_defeated", json={}).status_code == 409


def test_decide(agent):
    client = TestClient(create_app(orchestrator=agent))
    data = client.post("/decide").json()

    assert data["decision"].startswith("Perform")
    assert data["state"] == "idle"
    assert client.get("/stats").json()["decisions"] == 1


def test_publish_event(agent):
    client = TestClient(create_app(orchestrator=agent))
    agent.machine.change_state("mining")
    agent.last_action = "mine_ores"

    response = client.post("/events/resource_collected", json={"payload": {"block": "iron_ore"}})
    assert response.status_code == 200
    assert agent.mining_successes == 1
    assert client.post("/events/weather_changed", json={}).status_code == 404


def test_payload_keys_are_not_reserved(agent):
    client = TestClient(create_app(orchestrator=agent))

    response = client.post(
        "/events/new_area_discovered", json={"payload": {"event_type": "cave", "area": "north"}}
    )
    assert response.status_code == 200
    assert agent.event_bus.recent(1)[0].payload == {"event_type": "cave", "area": "north"}


def test_driving_needs_an_agent(manager):
    with pytest.raises(ValueError):
        create_app(manager=manager, drive_agent=True)


def test_driven_agent_follows_app_lifecycle():
    """The app starts the agent on startup and stops it on shutdown."""
    with tempfile.TemporaryDirectory() as tmpdir:
        config = AgentConfig(data_dir=tmpdir)
        config.orchestrator.state_change_probability = 0.0
        agent = create_agent(
            config, StaticObservationSource(Observation()), RecordingExecutor(), clock=ManualClock()
        )

        with TestClient(create_app(orchestrator=agent, drive_agent=True)) as client:
            assert agent.running
            assert client.post("/decide").json()["decision"].startswith("Perform")

            agent.machine.change_state("mining")
            agent.last_action = "mine_ores"
            client.post("/events/resource_collected", json={"payload": {"block": "iron_ore"}})
            assert agent.mining_successes == 1

        assert agent.status.value == "stopped"
