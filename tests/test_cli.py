from __future__ import annotations

import asyncio
import json

import pytest

from tsuzuri import cli
from tsuzuri.engine.renderer import DummyRenderer
from tsuzuri.script.parser import load_script


@pytest.fixture
def story(tmp_path):
    p = tmp_path / "story.tzr"
    p.write_text("*Start\nBob: one\nBob: two\njump End\n*End\nBob: bye", encoding="utf-8")
    (tmp_path / "story.meta.json").write_text(
        json.dumps({"title": "Story", "characters": {"Bob": {"name": "Bob"}}, "storage": {"gold": 1}}),
        encoding="utf-8",
    )
    return p


def test_read_meta(story, tmp_path):
    meta = cli.read_meta(story)
    assert meta["title"] == "Story"
    (tmp_path / "other.meta.json").write_text("[", encoding="utf-8")
    assert cli.read_meta(tmp_path / "other.tzr") == {}
    assert cli.read_meta(tmp_path / "missing.tzr") == {}


def test_build_engine_applies_meta(story):
    engine = cli.build_engine(load_script(story), cli.read_meta(story))
    assert engine.character("Bob") == {"name": "Bob"}
    assert engine.storage == {"gold": 1}


def test_check_ok(story, capsys):
    assert cli.main(["check", str(story)]) == 0
    assert capsys.readouterr().out.strip() == "ok"


def test_check_reports_problems(tmp_path, capsys):
    p = tmp_path / "broken.tzr"
    p.write_text('*Start\njump Nowhere\n{"Mystery": 1}', encoding="utf-8")
    assert cli.main(["check", str(p)]) == 1
    out = capsys.readouterr().out
    assert "Start:0: jump to unknown label 'Nowhere'" in out
    assert "Start:1: no handler accepts" in out


def test_script_errors_and_missing_files(tmp_path, capsys):
    p = tmp_path / "dup.tzr"
    p.write_text("*Start\n*Start", encoding="utf-8")
    assert cli.main(["check", str(p)]) == 1
    assert "Duplicate label" in capsys.readouterr().out
    assert cli.main(["check", str(tmp_path / "nope.tzr")]) == 2


def test_no_command_prints_help(capsys):
    assert cli.main([]) == 2
    assert "usage" in capsys.readouterr().out


def test_headless_session(story, capsys, monkeypatch):
    inputs = iter(["", "", "b", "save", "slots", "q"])

    async def fake_prompt(text):
        return next(inputs)

    monkeypatch.setattr(cli, "_prompt", fake_prompt)
    engine = cli.build_engine(load_script(story), cli.read_meta(story), renderer=DummyRenderer())
    assert asyncio.run(cli.run_headless(engine)) == 0
    out = capsys.readouterr().out
    assert out.index("Bob: one") < out.index("Bob: two") < out.index("Bob: bye")
    assert "saved Save_1" in out
    assert "Save_1" in out.split("saved Save_1", 1)[1]
    assert engine.state.label == "Start" and engine.state.step == 2


def test_bare_path_runs_headless(story, monkeypatch, capsys):
    async def quit_prompt(text):
        return None

    monkeypatch.setattr(cli, "_prompt", quit_prompt)
    assert cli.main([str(story)]) == 0
    assert "Bob: one" in capsys.readouterr().out
