from __future__ import annotations

import asyncio

import pytest

from tsuzuri.engine.config_io import DEFAULTS, default_config, load_config, save_config
from tsuzuri.engine.engine import Engine
from tsuzuri.engine.expr import safe_eval
from tsuzuri.engine.handler import Action, Handler, as_effects
from tsuzuri.engine.effects import ClearDialog, HideChoices
from tsuzuri.engine.history import History
from tsuzuri.engine.registry import HandlerRegistry
from tsuzuri.engine.state import Cursor, GameState, fresh_globals
from tsuzuri.engine.variables import replace_variables
from tsuzuri.script.errors import ScriptError
from tsuzuri.script.model import Script

from conftest import RecordingRenderer, make_engine


class TestHistory:
    def test_categories_are_created_lazily_and_returned_live(self):
        h = History()
        assert "jump" not in h
        stack = h("jump")
        stack.append(1)
        assert h("jump") is stack
        assert h.categories() == ["jump"]

    def test_clear_empties_in_place(self):
        h = History()
        stack = h("label")
        stack.extend(["A", "B"])
        h.clear()
        assert stack == []
        assert h("label") is stack

    def test_snapshot_restore_are_deep(self):
        h = History()
        h("jump").append({"from": "Start"})
        snap = h.snapshot()
        h("jump")[0]["from"] = "changed"
        h.restore(snap)
        assert h("jump") == [{"from": "Start"}]
        assert h.sizes() == {"jump": 1}


class TestState:
    def test_cursor_and_variables(self):
        state = GameState()
        assert state.cursor == Cursor("Start", 0)
        state.move("Next", 3)
        state["scene"] = "scene beach"
        assert state.cursor == Cursor("Next", 3)
        snap = state.snapshot()
        state.move(step=4)
        state.restore(snap)
        assert state.step == 3 and state["scene"] == "scene beach"

    def test_fresh_globals_are_independent(self):
        a = fresh_globals()
        a["block"] = True
        assert fresh_globals()["block"] is False
        assert fresh_globals()["current_choice"] is None


class TestVariables:
    storage = {"player": {"name": "Ann", "items": ["key", "map"]}, "gold": 0, "flag": True, "nothing": None}

    def test_dotted_paths_and_indices(self):
        assert replace_variables("{{player.name}} has {{player.items.1}}", self.storage) == "Ann has map"

    def test_scalars_format_like_script_values(self):
        assert replace_variables("{{gold}} {{flag}} {{nothing}}", self.storage) == "0 true null"

    def test_missing_policies(self):
        assert replace_variables("x{{player.age}}x", self.storage) == "xundefinedx"
        assert replace_variables("x{{player.age}}x", self.storage, "empty") == "xx"
        with pytest.raises(ScriptError):
            replace_variables("x{{player.age}}x", self.storage, "error")
        with pytest.raises(ValueError):
            replace_variables("x", self.storage, "explode")

    def test_missing_variable_setting_fails_the_statement(self):
        renderer = RecordingRenderer()
        engine = make_engine({"Start": ["Bob: {{nope}}"]}, renderer=renderer,
                             config={"engine": {"missing_variable": "error"}})
        assert asyncio.run(engine.start()) is False
        assert "Unresolved variable: nope" in renderer.errors[0]


class Greedy(Handler):
    id = "Greedy"

    def match_string(self, tokens):
        tokens.append("mutated")
        return tokens[0] == "jump"


class Fallback(Handler):
    id = "Fallback"
    fallback = True

    def match_string(self, tokens):
        return True


class Say(Handler):
    id = "Say"

    def match_string(self, tokens):
        return tokens[:1] == ["say"]

    def match_object(self, record):
        return "Say" in record


class TestRegistry:
    def test_regular_handlers_go_before_fallbacks(self):
        registry = HandlerRegistry([Fallback(), Say()])
        assert registry.ids() == ["Say", "Fallback"]
        assert registry.match("say hi").id == "Say"
        assert registry.match("hello").id == "Fallback"
        assert registry.match({"Say": 1}).id == "Say"
        assert registry.match({"Other": 1}) is None

    def test_duplicate_and_anonymous_ids_are_rejected(self):
        registry = HandlerRegistry([Say()])
        with pytest.raises(ValueError):
            registry.register(Say())
        with pytest.raises(ValueError):
            registry.register(Handler())

    def test_matching_is_pure_and_repeatable(self):
        registry = HandlerRegistry([Greedy(), Say(), Fallback()])
        tokens = ["jump", "Next"]
        first = registry.match("jump Next", tokens)
        second = registry.match("jump Next", tokens)
        assert first is second
        assert tokens == ["jump", "Next"]

    def test_candidates_report_every_match(self):
        registry = HandlerRegistry([Say(), Fallback()])
        assert [h.id for h in registry.candidates("say hi")] == ["Say", "Fallback"]

    def test_unregister(self):
        registry = HandlerRegistry([Say()])
        assert registry.unregister("Say").id == "Say"
        assert "Say" not in registry
        assert registry.unregister("Say") is None
        assert len(registry) == 0

    def test_engine_owns_its_registry(self):
        a = Engine(Script({"Start": []}))
        b = Engine(Script({"Start": []}))
        a.register(Say())
        assert "Say" in a.registry
        assert "Say" not in b.registry
        assert a.registry.ids()[-1] == "Dialog"


class TestHandlerProtocol:
    def test_default_action_lifecycle_continues(self):
        action = Action(Handler(), ["x"])

        async def go():
            await action.will_apply()
            effects = await action.apply()
            return effects, await action.did_apply(), await action.did_revert()

        assert asyncio.run(go()) == (None, True, True)

    def test_as_effects(self):
        assert as_effects(None) == ()
        assert as_effects(ClearDialog()) == (ClearDialog(),)
        assert as_effects([ClearDialog(), HideChoices()]) == (ClearDialog(), HideChoices())

    def test_setup_creates_owned_histories(self):
        engine = Engine(Script({"Start": []}))
        asyncio.run(engine.setup())
        for category in ("jump", "label", "nvl", "choice", "conditional", "particles"):
            assert category in engine.histories


class TestExpr:
    def test_storage_lookups(self):
        vars = {"score": 5, "player": {"affection": 3}, "items": ["key"]}
        assert safe_eval("score > 3 and player.affection >= 3", vars) is True
        assert safe_eval("'key' in items", vars) is True
        assert safe_eval("player['affection'] * 2", vars) == 6
        assert safe_eval("missing == null", vars) is True
        assert safe_eval("not false", vars) is True

    def test_rejects_calls(self):
        with pytest.raises(ValueError):
            safe_eval("len(items)", {"items": []})


class TestConfig:
    def test_defaults(self):
        cfg = default_config()
        assert cfg["engine"]["label"] == "Start"
        assert cfg["engine"]["missing_variable"] == "undefined"
        assert cfg["preferences"] == DEFAULTS["preferences"]

    def test_load_merges_sections(self, tmp_path):
        p = tmp_path / "config.json"
        p.write_text('{"engine": {"chain_limit": 5}, "junk": {}}', encoding="utf-8")
        cfg = load_config(p)
        assert cfg["engine"]["chain_limit"] == 5
        assert cfg["engine"]["label"] == "Start"
        assert "junk" not in cfg

    def test_invalid_file_falls_back(self, tmp_path):
        p = tmp_path / "config.json"
        p.write_text("{not json", encoding="utf-8")
        assert load_config(p) == default_config()
        assert load_config(tmp_path / "missing.json") == default_config()

    def test_save_round_trip(self, tmp_path):
        cfg = default_config()
        cfg["preferences"]["text_speed"] = 40
        p = tmp_path / "nested" / "config.json"
        assert save_config(cfg, p) is True
        assert load_config(p)["preferences"]["text_speed"] == 40

    def test_engine_reads_start_label(self):
        engine = Engine(Script({"Intro": ["next"]}), config={"engine": {"label": "Intro"}})
        asyncio.run(engine.start())
        assert engine.state.cursor == Cursor("Intro", 1)
