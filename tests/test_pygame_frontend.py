"""Pygame frontend tests; run headless through SDL's dummy drivers."""
from __future__ import annotations

import asyncio
import os

import pytest

os.environ.setdefault("SDL_VIDEODRIVER", "dummy")
os.environ.setdefault("SDL_AUDIODRIVER", "dummy")

pygame = pytest.importorskip("pygame")

from tsuzuri.engine.effects import (  # noqa: E402
    ChoiceOption,
    ClearDialog,
    CompleteTyping,
    HideChoices,
    PopNvlLine,
    RestoreNvlPage,
    ShowChoices,
    ShowDialog,
    StartParticles,
    StopParticles,
)
from tsuzuri.frontends.pygame_frontend import (  # noqa: E402
    LOGICAL_SIZE,
    PygameRenderer,
    Typewriter,
    parse_color,
)
from tsuzuri.ui.backlog import Backlog  # noqa: E402

from conftest import make_engine  # noqa: E402


@pytest.fixture
def renderer():
    r = PygameRenderer(title="test", font_size=20)
    yield r
    pygame.quit()


def key(k):
    return pygame.event.Event(pygame.KEYDOWN, key=k)


def test_typewriter():
    tw = Typewriter("hello", start_ms=1000, chars_per_second=10)
    assert tw.visible_text(1000) == ""
    assert tw.visible_text(1250) == "he"
    assert not tw.is_complete(1250)
    assert tw.is_complete(2000)
    tw.reveal_all()
    assert tw.visible_text(0) == "hello"


def test_parse_color():
    assert parse_color("#ff0000", (1, 2, 3)) == (255, 0, 0)
    assert parse_color(None, (1, 2, 3)) == (1, 2, 3)
    assert parse_color("not a color", (1, 2, 3)) == (1, 2, 3)


def test_dialog_effects(renderer):
    renderer.render(ShowDialog(speaker="Bob", text="Hi", name="Bob", color="#ff0"))
    assert (renderer.mode, renderer.name, renderer.typewriter.text) == ("adv", "Bob", "Hi")
    renderer.render(ShowDialog(text="one", mode="nvl"))
    renderer.render(ShowDialog(speaker="Bob", text="two", name="Bob", mode="nvl", named=True))
    assert renderer.nvl_lines == [(None, "one"), ("Bob", "two")]
    renderer.render(PopNvlLine())
    assert renderer.nvl_lines == [(None, "one")]
    renderer.render(RestoreNvlPage(lines=(("narrator", "a"), ("Bob", "b"))))
    assert [text for _, text in renderer.nvl_lines] == ["a", "b"]
    assert renderer.typewriter.text == "b"
    renderer.render(ClearDialog())
    assert renderer.nvl_lines == [] and renderer.name is None


def test_typing_done_fires_once(renderer):
    calls = []
    renderer.set_typing_done_hook(lambda: calls.append(1))
    now = pygame.time.get_ticks()
    renderer.render(ShowDialog(text="a long line of text", animate=True))
    renderer.update(now)
    assert calls == []
    renderer.update(now + 60_000)
    renderer.update(now + 61_000)
    assert calls == [1]


def test_complete_typing_reveals_everything(renderer):
    renderer.render(ShowDialog(text="a long line of text", animate=True))
    renderer.render(CompleteTyping())
    assert renderer.typewriter.visible_text(pygame.time.get_ticks()) == "a long line of text"


def test_choices_and_particles(renderer):
    options = (ChoiceOption("Yes", "Sure"), ChoiceOption("No", "Nope", clickable=False))
    renderer.render(ShowChoices(options=options, prompt="Well?"))
    assert renderer.prompt == "Well?" and len(renderer.choices) == 2
    renderer.render(HideChoices())
    assert renderer.choices == [] and renderer.prompt is None
    renderer.render(StartParticles("snow", {"count": 5}))
    assert len(renderer.particles.particles) == 5
    renderer.update(pygame.time.get_ticks() + 500)
    for p in renderer.particles.particles:
        assert 0 <= p.x < LOGICAL_SIZE[0] and 0 <= p.y < LOGICAL_SIZE[1]
    renderer.render(StopParticles())
    assert renderer.particles is None


def test_keys_call_hooks(renderer):
    calls = []
    renderer.set_proceed_hook(lambda: calls.append("proceed"))
    renderer.set_rollback_hook(lambda: calls.append("rollback"))
    renderer.set_autoplay_hook(lambda on: calls.append(("auto", on)))
    renderer.set_save_slot_hook(lambda slot=None: calls.append(("save", slot)))
    renderer.set_load_slot_hook(lambda key: calls.append(("load", key)))
    renderer.set_choose_hook(lambda k: calls.append(("choose", k)))
    for k in (pygame.K_RETURN, pygame.K_BACKSPACE, pygame.K_a, pygame.K_a, pygame.K_F5, pygame.K_F9):
        assert renderer.handle_event(key(k))
    assert calls == ["proceed", "rollback", ("auto", True), ("auto", False), ("save", 1), ("load", "Save_1")]

    calls.clear()
    renderer.render(ShowChoices(options=(ChoiceOption("Yes", "Sure"), ChoiceOption("No", "Nope", clickable=False))))
    renderer.handle_event(key(pygame.K_RETURN))
    renderer.handle_event(key(pygame.K_2))
    renderer.handle_event(key(pygame.K_1))
    assert calls == [("choose", "Yes")]
    assert renderer.handle_event(pygame.event.Event(pygame.QUIT)) is False


def test_click_on_choice(renderer):
    chosen = []
    renderer.set_choose_hook(chosen.append)
    renderer.render(ShowChoices(options=(ChoiceOption("Left", "Go left"), ChoiceOption("Right", "Go right"))))
    renderer.draw(pygame.time.get_ticks())
    rect, _ = renderer._choice_rects[1]
    renderer.handle_event(pygame.event.Event(pygame.MOUSEBUTTONDOWN, button=1, pos=rect.center))
    assert chosen == ["Right"]


def test_backlog_view(renderer):
    log = Backlog()
    for text in ("a", "b", "c"):
        log.write("Bob", text, name="Bob")
    renderer.backlog = log
    renderer.handle_event(key(pygame.K_TAB))
    assert renderer.show_backlog
    renderer.handle_event(key(pygame.K_UP))
    assert log.current().text == "b"
    renderer.draw(pygame.time.get_ticks())
    renderer.handle_event(key(pygame.K_ESCAPE))
    assert not renderer.show_backlog


def test_draw_every_mode(renderer):
    now = pygame.time.get_ticks()
    renderer.show_error("Label missing\nmore detail")
    for effect in (
        ShowDialog(text="adv line", name="Bob"),
        ShowDialog(text="nvl line", mode="nvl"),
        ShowDialog(text="centered", mode="centered"),
    ):
        renderer.render(effect)
        renderer.draw(now)
    renderer.reset_state()
    assert renderer.mode == "adv" and renderer.nvl_lines == []


def test_engine_round_trip_through_keys(renderer):
    engine = make_engine({"Start": ["Bob: first line", "Bob: second line"]}, renderer=renderer)

    async def drain():
        for _ in range(5):
            await asyncio.sleep(0)

    async def go():
        await engine.start()
        assert engine.globals["finished_typing"] is False
        renderer.handle_event(key(pygame.K_RETURN))
        await drain()
        # the first press only finishes the typewriter
        assert engine.state.step == 0
        renderer.handle_event(key(pygame.K_RETURN))
        await drain()
        assert engine.state.step == 1
        assert renderer.typewriter.text == "second line"
        renderer.handle_event(key(pygame.K_BACKSPACE))
        await drain()

    asyncio.run(go())
    assert engine.state.step == 0
    assert renderer.typewriter.text == "first line"
