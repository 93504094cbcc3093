from __future__ import annotations

from typing import Callable, List, Optional

from .effects import (
    ClearDialog,
    CompleteTyping,
    Effect,
    HideChoices,
    PopNvlLine,
    RestoreNvlPage,
    ShowChoices,
    ShowDialog,
    StartParticles,
    StopParticles,
)


class IRenderer:
    """Rendering/input collaborator.

    The engine hands every effect returned by a handler to ``render``; input
    wiring happens through the optional ``set_*_hook`` methods, installed by
    the engine during ``bind``.
    """

    def render(self, effect: Effect) -> None:
        raise NotImplementedError

    # Optional UI error banner (GUI renderers may override)
    def show_error(self, message: str) -> None:
        """Display a non-fatal error message to the user."""
        print(f"[ERROR] {message}")  # noqa: T201

    # Optional UI info banner (GUI renderers may override)
    def show_banner(self, message: str, color: tuple[int, int, int] | None = None) -> None:
        print(f"[INFO] {message}")  # noqa: T201

    # Optional hooks used by Engine for input; GUI renderers may implement.
    def set_proceed_hook(self, fn: Callable[[], None]) -> None:
        pass

    def set_rollback_hook(self, fn: Callable[[], None]) -> None:
        pass

    def set_choose_hook(self, fn: Callable[[str], None]) -> None:
        pass

    def set_autoplay_hook(self, fn: Callable[[bool], None]) -> None:
        pass

    def set_typing_done_hook(self, fn: Callable[[], None]) -> None:
        pass

    def set_save_slot_hook(self, fn: Callable[[Optional[int]], None]) -> None:
        pass

    def set_load_slot_hook(self, fn: Callable[[str], None]) -> None:
        pass

    def set_list_slots_hook(self, fn) -> None:
        pass

    def set_delete_slot_hook(self, fn: Callable[[str], None]) -> None:
        pass

    def reset_state(self) -> None:
        """Reset transient visual state; may be a no-op for headless implementations."""
        pass


class DummyRenderer(IRenderer):
    """Headless renderer that prints effects; useful for tests and CLI."""

    def __init__(self) -> None:
        self.choices: List[tuple[str, str]] = []
        self._typing_done: Optional[Callable[[], None]] = None

    def set_typing_done_hook(self, fn: Callable[[], None]) -> None:
        self._typing_done = fn

    def render(self, effect: Effect) -> None:
        if isinstance(effect, ShowDialog):
            if effect.mode == "centered":
                print(f"    {effect.text}")  # noqa: T201
            elif effect.name:
                print(f"{effect.name}: {effect.text}")  # noqa: T201
            else:
                print(effect.text)  # noqa: T201
            # a terminal prints the whole line at once
            if effect.animate and self._typing_done is not None:
                self._typing_done()
        elif isinstance(effect, ShowChoices):
            self.choices = [(o.key, o.text) for o in effect.options]
            if effect.prompt:
                print(effect.prompt)  # noqa: T201
            for idx, opt in enumerate(effect.options, 1):
                mark = "" if opt.clickable else " (locked)"
                print(f"  {idx}. {opt.text}{mark}")  # noqa: T201
        elif isinstance(effect, HideChoices):
            self.choices = []
        elif isinstance(effect, StartParticles):
            print(f"> PARTICLES {effect.name}")  # noqa: T201
        elif isinstance(effect, StopParticles):
            print("> PARTICLES stop")  # noqa: T201
        elif isinstance(effect, (ClearDialog, PopNvlLine, RestoreNvlPage, CompleteTyping)):
            # nothing persistent on a terminal
            pass
        else:
            print(f"> {type(effect).__name__}")  # noqa: T201

    def reset_state(self) -> None:
        self.choices = []
