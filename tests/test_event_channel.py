import logging

from engine.events import EventChannel, LoggingSink, MemorySink


class Broken:
    def publish(self, event):
        raise RuntimeError("sink down")


def test_fan_out_in_order() -> None:
    first, second = MemorySink(), MemorySink()
    channel = EventChannel([first, second])
    event = channel.emit("agent_joined", arena_id="x", agent_id="a")
    assert first.events == [event]
    assert second.events == [event]
    assert event.payload == {"arena_id": "x", "agent_id": "a"}
    assert event.to_json()["kind"] == "agent_joined"


def test_failing_sink_is_isolated(caplog) -> None:
    sink = MemorySink()
    channel = EventChannel([Broken(), sink])
    with caplog.at_level(logging.ERROR, logger="engine.events"):
        channel.emit("match_started", match_id="m")
    assert sink.kinds() == ["match_started"]
    assert "sink down" in caplog.text


def test_unsubscribe() -> None:
    sink = MemorySink()
    channel = EventChannel()
    channel.subscribe(sink)
    channel.unsubscribe(sink)
    channel.unsubscribe(sink)
    channel.emit("arena_created")
    assert sink.events == []


def test_logging_sink(caplog) -> None:
    channel = EventChannel([LoggingSink()])
    with caplog.at_level(logging.INFO, logger="arena.events"):
        channel.emit("agent_died", agent_id="b")
    assert "agent_died" in caplog.text
