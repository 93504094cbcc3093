"""Tests for the typed event system."""
from __future__ import annotations

import logging

from tsuzuri.engine.events import (
    ChoiceSelectEvent,
    EventSystem,
    GameStartEvent,
    JumpToLabelEvent,
    Priority,
    SaveEvent,
    StatementAppliedEvent,
)


class TestEventSystem:
    def test_basic_subscribe_emit(self):
        events = EventSystem()
        received = []
        events.subscribe(StatementAppliedEvent, received.append)
        events.emit(StatementAppliedEvent(label="Start", step=2, handler="Dialog"))
        assert len(received) == 1
        assert (received[0].label, received[0].step, received[0].handler) == ("Start", 2, "Dialog")

    def test_unsubscribe(self):
        events = EventSystem()
        received = []
        events.subscribe(GameStartEvent, received.append)
        events.emit(GameStartEvent())
        assert events.unsubscribe(GameStartEvent, received.append) is True
        events.emit(GameStartEvent())
        assert len(received) == 1
        assert events.unsubscribe(GameStartEvent, received.append) is False

    def test_unsubscribe_via_returned_function(self):
        events = EventSystem()
        received = []
        unsub = events.subscribe(GameStartEvent, received.append)
        unsub()
        events.emit(GameStartEvent())
        assert received == []

    def test_priority_order(self):
        events = EventSystem()
        order = []
        events.subscribe(SaveEvent, lambda e: order.append("low"), priority=Priority.LOW)
        events.subscribe(SaveEvent, lambda e: order.append("high"), priority=Priority.HIGH)
        events.subscribe(SaveEvent, lambda e: order.append("normal"))
        events.subscribe(SaveEvent, lambda e: order.append("normal2"))
        events.emit(SaveEvent(slot="Save_1"))
        assert order == ["high", "normal", "normal2", "low"]

    def test_cancel_skips_lower_listeners_but_not_monitors(self):
        events = EventSystem()
        seen = []
        events.subscribe(JumpToLabelEvent, lambda e: e.cancel(), priority=Priority.HIGH)
        events.subscribe(JumpToLabelEvent, lambda e: seen.append("normal"))
        events.subscribe(JumpToLabelEvent, lambda e: seen.append(("monitor", e.cancelled)), priority=Priority.MONITOR)
        event = events.emit(JumpToLabelEvent(target_label="Next", from_label="Start"))
        assert event.cancelled
        assert seen == [("monitor", True)]

    def test_once(self):
        events = EventSystem()
        received = []
        events.once(ChoiceSelectEvent, received.append)
        events.emit(ChoiceSelectEvent(key="Yes"))
        events.emit(ChoiceSelectEvent(key="No"))
        assert [e.key for e in received] == ["Yes"]
        assert events.listener_count(ChoiceSelectEvent) == 0

    def test_decorator(self):
        events = EventSystem()
        received = []

        @events.on(GameStartEvent)
        def on_start(event):
            received.append(event.from_load)

        events.emit(GameStartEvent(from_load=True))
        assert received == [True]

    def test_listener_errors_are_logged(self, caplog):
        events = EventSystem()
        received = []

        def broken(event):
            raise RuntimeError("boom")

        events.subscribe(GameStartEvent, broken, priority=Priority.HIGH)
        events.subscribe(GameStartEvent, received.append)
        with caplog.at_level(logging.ERROR, logger="tsuzuri.engine.events"):
            events.emit(GameStartEvent())
        assert len(received) == 1
        assert "boom" in caplog.text

    def test_stats_and_clear(self):
        events = EventSystem()
        events.subscribe(GameStartEvent, lambda e: None)
        events.subscribe(SaveEvent, lambda e: None)
        events.emit(GameStartEvent())
        events.emit(GameStartEvent())
        stats = events.get_stats()
        assert stats["total_emits"] == 2
        assert stats["emit_counts"] == {"GameStartEvent": 2}
        assert events.listener_count() == 2
        events.clear(SaveEvent)
        assert events.listener_count() == 1
        events.clear()
        assert events.listener_count() == 0
