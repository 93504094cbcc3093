from __future__ import annotations

from typing import Any, Dict, List, Optional

import pytest

from tsuzuri.engine.effects import Effect, ShowChoices, ShowDialog
from tsuzuri.engine.engine import Engine
from tsuzuri.engine.renderer import IRenderer
from tsuzuri.script.model import Script


class RecordingRenderer(IRenderer):
    """Keeps every effect and error; finishes typing at once unless told otherwise."""

    def __init__(self, instant_typing: bool = True) -> None:
        self.effects: List[Effect] = []
        self.errors: List[str] = []
        self.instant_typing = instant_typing
        self._typing_done = None

    def set_typing_done_hook(self, fn) -> None:
        self._typing_done = fn

    def render(self, effect: Effect) -> None:
        self.effects.append(effect)
        if isinstance(effect, ShowDialog) and effect.animate and self.instant_typing and self._typing_done:
            self._typing_done()

    def show_error(self, message: str) -> None:
        self.errors.append(message)

    def dialogs(self) -> List[str]:
        return [e.text for e in self.effects if isinstance(e, ShowDialog)]

    def last_dialog(self) -> Optional[str]:
        texts = self.dialogs()
        return texts[-1] if texts else None

    def of(self, kind: type) -> List[Effect]:
        return [e for e in self.effects if isinstance(e, kind)]

    def last_choices(self) -> Optional[ShowChoices]:
        shown = self.of(ShowChoices)
        return shown[-1] if shown else None


def make_engine(labels: Dict[str, Any], *, characters: Optional[Dict[str, Any]] = None,
                renderer: Optional[IRenderer] = None, **kwargs: Any) -> Engine:
    engine = Engine(Script(labels), renderer=renderer or RecordingRenderer(), **kwargs)
    engine.add_characters(characters if characters is not None else {"Bob": {"name": "Bob"}})
    return engine


@pytest.fixture
def renderer() -> RecordingRenderer:
    return RecordingRenderer()
