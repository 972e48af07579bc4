import os
import sys

import pytest

sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from event_bus import EventBus, ON_COMMAND, ON_TRANSCRIPTION_FAILED


def test_subscribe_emit_unsubscribe():
    bus = EventBus()
    seen = []
    handler = seen.append

    bus.subscribe(ON_COMMAND, handler)
    bus.subscribe(ON_COMMAND, handler)  # registered once
    assert bus.emit(ON_COMMAND, {"command": "axe"}) == 1
    assert seen == [{"command": "axe"}]

    assert bus.unsubscribe(ON_COMMAND, handler) is True
    assert bus.unsubscribe(ON_COMMAND, handler) is False
    assert bus.emit(ON_COMMAND, {"command": "axe"}) == 0
    assert len(seen) == 1


def test_events_are_isolated_per_type():
    bus = EventBus()
    commands, failures = [], []
    bus.subscribe(ON_COMMAND, commands.append)
    bus.subscribe(ON_TRANSCRIPTION_FAILED, failures.append)

    bus.emit(ON_TRANSCRIPTION_FAILED, {"error": "timeout"})

    assert commands == []
    assert failures == [{"error": "timeout"}]


def test_failing_subscriber_does_not_block_others(caplog):
    bus = EventBus()
    seen = []

    def boom(payload):
        raise RuntimeError("subscriber bug")

    bus.subscribe(ON_COMMAND, boom)
    bus.subscribe(ON_COMMAND, seen.append)

    assert bus.emit(ON_COMMAND, {"command": "mace"}) == 1
    assert seen == [{"command": "mace"}]
    assert "subscriber bug" in caplog.text


def test_unknown_event_is_rejected():
    bus = EventBus()
    with pytest.raises(ValueError):
        bus.subscribe("weapon", print)
    with pytest.raises(ValueError):
        bus.emit("weapon", {})
