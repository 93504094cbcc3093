from __future__ import annotations

import asyncio

import pytest

from tsuzuri.engine.effects import ClearDialog
from tsuzuri.engine.events import ChainHaltedEvent, ErrorReportedEvent, StatementAppliedEvent
from tsuzuri.engine.handler import Action, Handler
from tsuzuri.engine.state import Cursor
from tsuzuri.script.errors import GuardRejection

from conftest import RecordingRenderer, make_engine


def test_jump_records_history_and_runs_target_label(renderer: RecordingRenderer):
    engine = make_engine({"Start": ["Bob: Hello", "jump Next"], "Next": ["Bob: Welcome"]}, renderer=renderer)

    async def go():
        await engine.start()
        assert engine.state.cursor == Cursor("Start", 0)
        assert await engine.proceed() is True

    asyncio.run(go())
    (entry,) = engine.history("jump")
    assert (entry["from"], entry["to"], entry["step"]) == ("Start", "Next", 1)
    assert entry["dialog"]["lines"] == [["Bob", "Hello"]]
    assert entry["backlog"] == 1
    assert engine.history("label") == ["Next"]
    assert engine.state.cursor == Cursor("Next", 0)
    assert renderer.dialogs() == ["Hello", "Welcome"]
    assert renderer.of(ClearDialog)


def test_advance_only_statement_moves_on_without_input(renderer: RecordingRenderer):
    engine = make_engine({"Start": ["next", "Bob: Hi"]}, renderer=renderer)
    asyncio.run(engine.start())
    assert engine.state.cursor == Cursor("Start", 1)
    assert renderer.dialogs() == ["Hi"]


class Redo(Handler):
    """Moves the cursor onto its own statement while ``left`` is positive."""

    id = "Redo"

    class action_class(Action):
        async def apply(self, advance=True):
            engine = self.engine
            if engine.storage["left"] > 0:
                engine.storage["left"] -= 1
                engine.state.move(engine.state.label, engine.state.step)

    def match_string(self, tokens):
        return tokens[:1] == ["redo"]


def test_move_onto_the_same_statement_runs_it_again(renderer: RecordingRenderer):
    engine = make_engine({"Start": ["redo", "Bob: done"]}, renderer=renderer, storage={"left": 2})
    engine.register(Redo())
    applied = []
    engine.events.subscribe(StatementAppliedEvent, applied.append)

    assert asyncio.run(engine.start()) is True
    assert [e.handler for e in applied] == ["Redo", "Redo", "Redo", "Dialog"]
    assert engine.state.cursor == Cursor("Start", 1)
    assert renderer.dialogs() == ["done"]


def test_chain_running_off_the_end_stops_at_end_of_label():
    engine = make_engine({"Start": ["next", "next"]})
    assert asyncio.run(engine.start()) is True
    assert engine.state.cursor == Cursor("Start", 2)


def test_next_never_moves_past_end_of_label():
    engine = make_engine({"Start": ["Bob: only"]})

    async def go():
        await engine.start()
        await engine.next()
        await engine.next()

    asyncio.run(go())
    assert engine.state.step == 1


def test_absent_statement_is_a_rejection():
    engine = make_engine({"Start": []})
    assert asyncio.run(engine.run(None)) is False


def test_chain_limit_halts_runaway_chain(renderer: RecordingRenderer):
    engine = make_engine({"Start": ["next"] * 10}, renderer=renderer,
                         config={"engine": {"chain_limit": 3}})
    halted = []
    engine.events.subscribe(ChainHaltedEvent, halted.append)
    assert asyncio.run(engine.start()) is False
    assert renderer.errors and "chain exceeded" in renderer.errors[0]
    assert halted and halted[0].direction == "run"


def test_unknown_label_is_reported_and_cursor_stays(renderer: RecordingRenderer):
    engine = make_engine({"Start": ["Bob: Hi", "jump Nowhere"], "Nowhere2": []}, renderer=renderer)
    reported = []
    engine.events.subscribe(ErrorReportedEvent, reported.append)

    async def go():
        await engine.start()
        return await engine.proceed()

    assert asyncio.run(go()) is False
    assert engine.state.cursor == Cursor("Start", 1)
    assert engine.history("jump") == []
    assert reported[0].details["Missing Label"] == "Nowhere"
    assert "Nowhere2" in reported[0].details["You may have meant one of these"]
    assert renderer.errors


def test_callback_statement_runs_with_block_set():
    seen = []

    def callback(engine):
        seen.append(engine.globals["block"])

    async def async_callback(engine):
        await asyncio.sleep(0)
        seen.append("async")

    engine = make_engine({"Start": [callback, async_callback, "Bob: after"]})
    asyncio.run(engine.start())
    assert seen == [True, "async"]
    assert engine.globals["block"] is False
    assert engine.state.cursor == Cursor("Start", 2)


def test_variables_are_substituted_before_matching(renderer: RecordingRenderer):
    engine = make_engine(
        {"Start": ["Bob: Hi {{player.name}}", "jump {{route}}"], "Good": ["Bob: good route"]},
        renderer=renderer, storage={"player": {"name": "Ann"}, "route": "Good"},
    )

    async def go():
        await engine.start()
        await engine.proceed()

    asyncio.run(go())
    assert renderer.dialogs() == ["Hi Ann", "good route"]
    assert engine.state.label == "Good"


class Veto(Handler):
    id = "Veto"

    class action_class(Action):
        async def will_apply(self):
            raise GuardRejection("not now")

    def match_string(self, tokens):
        return tokens[:1] == ["veto"]


def test_guard_rejection_halts_quietly(renderer: RecordingRenderer):
    engine = make_engine({"Start": ["next", "veto", "Bob: never"]}, renderer=renderer)
    engine.register(Veto())
    applied = []
    engine.events.subscribe(StatementAppliedEvent, applied.append)
    assert asyncio.run(engine.start()) is False
    assert engine.state.cursor == Cursor("Start", 1)
    assert [e.handler for e in applied] == ["Next"]
    assert renderer.errors == []
    assert renderer.dialogs() == []


def test_other_exceptions_propagate():
    class Boom(Handler):
        id = "Boom"

        class action_class(Action):
            async def apply(self, advance=True):
                raise RuntimeError("boom")

        def match_string(self, tokens):
            return tokens[:1] == ["boom"]

    engine = make_engine({"Start": ["boom"]})
    engine.register(Boom())
    with pytest.raises(RuntimeError, match="boom"):
        asyncio.run(engine.start())


def test_proceed_is_gated_while_blocked_or_not_playing():
    engine = make_engine({"Start": ["Bob: a", "Bob: b"]})

    async def go():
        assert await engine.proceed() is False  # not playing yet
        await engine.start()
        engine.globals["block"] = True
        assert await engine.proceed() is False
        engine.globals["block"] = False
        engine.globals["distraction_free"] = True
        assert await engine.proceed() is False

    asyncio.run(go())
    assert engine.state.cursor == Cursor("Start", 0)
