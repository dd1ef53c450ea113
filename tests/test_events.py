"""
Tests for the EventBus.
"""
import pytest

from mindloop.events import AgentEvent, AgentEventType, EventBus


def test_publish_reaches_subscribers():
    bus = EventBus()
    seen = []
    bus.subscribe(AgentEventType.RESOURCE_COLLECTED, seen.append)

    event = bus.publish(AgentEventType.RESOURCE_COLLECTED, block="iron_ore")
    assert seen == [event]
    assert event.get("block") == "iron_ore"
    assert event.get("missing", 0) == 0


def test_handlers_only_get_their_type():
    bus = EventBus()
    seen = []
    bus.subscribe(AgentEventType.AGENT_DEFEATED, seen.append)

    bus.publish(AgentEventType.NEW_AREA_DISCOVERED)
    assert seen == []


def test_wildcard_subscription():
    bus = EventBus()
    seen = []
    bus.subscribe(None, lambda e: seen.append(e.event_type))

    bus.publish(AgentEventType.HEALTH_CHANGED, old=20, new=10)
    bus.publish(AgentEventType.NEW_AREA_DISCOVERED)
    assert seen == [AgentEventType.HEALTH_CHANGED, AgentEventType.NEW_AREA_DISCOVERED]


def test_string_event_types_are_accepted():
    bus = EventBus()
    seen = []
    bus.subscribe("entity_defeated", seen.append)

    bus.publish("entity_defeated", name="zombie", entity_type="mob")
    assert seen[0].event_type is AgentEventType.ENTITY_DEFEATED


def test_unknown_event_type_is_rejected():
    with pytest.raises(ValueError):
        EventBus().publish("weather_changed")


def test_unsubscribe():
    bus = EventBus()
    seen = []
    unsubscribe = bus.subscribe(AgentEventType.STATE_CHANGED, seen.append)
    unsubscribe()
    unsubscribe()

    bus.publish(AgentEventType.STATE_CHANGED, old="idle", new="mining")
    assert seen == []


def test_handler_errors_do_not_stop_delivery():
    bus = EventBus()
    seen = []

    def broken(event):
        raise KeyError("payload")

    bus.subscribe(AgentEventType.STATE_CHANGED, broken)
    bus.subscribe(AgentEventType.STATE_CHANGED, seen.append)

    bus.publish(AgentEventType.STATE_CHANGED, old="idle", new="mining")
    assert len(seen) == 1


def test_history_is_bounded_and_ordered():
    bus = EventBus(history_size=3)
    for i in range(5):
        bus.publish(AgentEventType.HEALTH_CHANGED, old=20 - i, new=19 - i)

    recent = bus.recent()
    assert [e.seq for e in recent] == [3, 4, 5]
    assert [e.seq for e in bus.recent(2)] == [4, 5]


def test_event_to_dict():
    event = AgentEvent(AgentEventType.NEW_AREA_DISCOVERED, {"area": "cave"}, 7)
    assert event.to_dict() == {"event_type": "new_area_discovered", "payload": {"area": "cave"}, "seq": 7}
