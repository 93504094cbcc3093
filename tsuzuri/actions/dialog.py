from __future__ import annotations

import copy
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional, Tuple

from ..engine.effects import ClearDialog, CompleteTyping, Effect, PopNvlLine, RestoreNvlPage, ShowDialog
from ..engine.handler import Action, Effects, Handler
from ..engine.variables import replace_variables
from ..script.errors import GuardRejection
from ..ui.backlog import Backlog

if TYPE_CHECKING:  # pragma: no cover
    from ..engine.engine import Engine

NARRATOR = "narrator"
CENTERED = "centered"


def fresh_box() -> Dict[str, Any]:
    """Headless dialog box model kept in the ``dialog`` global."""
    return {"mode": "adv", "speaking": None, "lines": []}


def reset_dialog_box(engine: "Engine") -> List[Effect]:
    engine.globals["dialog"] = fresh_box()
    engine.globals["finished_typing"] = True
    return [ClearDialog()]


def show_dialog_box(engine: "Engine", box: Optional[Mapping[str, Any]]) -> List[Effect]:
    """Put a saved dialog box back on screen as it was, without typing it out again."""
    if not box or not box.get("lines"):
        return reset_dialog_box(engine)
    box = copy.deepcopy(dict(box))
    engine.globals["dialog"] = box
    engine.globals["finished_typing"] = True
    if box["mode"] == "nvl":
        return [RestoreNvlPage(lines=tuple((str(s), str(t)) for s, t in box["lines"]))]
    speaker, text = box["lines"][-1]
    char = engine.character(speaker) or {}
    name = None
    if "name" in char:
        name = replace_variables(str(char["name"]), engine.storage, engine.settings.get("missing_variable", "undefined"))
    return [ShowDialog(speaker=speaker, text=text, name=name, color=char.get("color"), mode="adv")]


def backlog_of(engine: "Engine") -> Optional[Backlog]:
    handler = engine.registry.get("Dialog")
    return getattr(handler, "backlog", None)


class DialogAction(Action):
    """``[character[:expression]] text``; unknown speakers fall back to narration."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        tokens: List[str] = list(self.args or [])
        first = tokens[0] if tokens else ""
        cid, _, expression = first.partition(":")
        self.dialog = " ".join(tokens[1:])
        self.nvl = False
        self.character: Optional[Dict[str, Any]] = None
        self.image: Optional[str] = None
        char = self.engine.character(cid) if (self.engine is not None and cid) else None
        if char is not None:
            self.character = char
            self.speaker = cid
            self.nvl = bool(char.get("nvl", False))
            image = None
            if expression:
                image = (char.get("expressions") or {}).get(expression)
            elif char.get("default_expression"):
                image = char["default_expression"]
            if image and char.get("directory"):
                image = f"{char['directory']}/{image}"
            self.image = image
        elif cid == CENTERED:
            self.speaker = CENTERED
        else:
            self.speaker = NARRATOR
            if cid == "nvl":
                self.nvl = True
            else:
                self.dialog = " ".join(tokens)

    @property
    def box(self) -> Dict[str, Any]:
        box = self.engine.globals.get("dialog")
        if box is None:
            box = self.engine.globals["dialog"] = fresh_box()
        return box

    def _animate(self, requested: bool) -> bool:
        settings = self.engine.settings
        if not requested or not settings.get("type_animation", True):
            return False
        if self.speaker == CENTERED:
            return bool(settings.get("centered_type_animation", True))
        if self.nvl:
            return bool(settings.get("nvl_type_animation", True))
        return True

    def _display_name(self) -> Optional[str]:
        if self.character is None or "name" not in self.character:
            return None
        e = self.engine
        return replace_variables(str(self.character["name"]), e.storage, e.settings.get("missing_variable", "undefined"))

    def _show(self) -> List[Effect]:
        engine = self.engine
        box = self.box
        effects: List[Effect] = []
        requested = True
        if self.character is not None and "type_animation" in self.character:
            requested = bool(self.character["type_animation"])
        animate = self._animate(requested)
        name = self._display_name()
        color = self.character.get("color") if self.character else None

        if self.speaker == CENTERED:
            effects.append(ShowDialog(speaker=CENTERED, text=self.dialog, mode="centered", animate=animate))
        elif self.nvl:
            if box["mode"] != "nvl":
                effects.extend(reset_dialog_box(engine))
                box = self.box
                box["mode"] = "nvl"
            previous = box["speaking"]
            box["speaking"] = self.speaker
            box["lines"].append([self.speaker, self.dialog])
            effects.append(ShowDialog(
                speaker=self.speaker, text=self.dialog, name=name, color=color, mode="nvl", animate=animate,
                named=self.speaker != NARRATOR and previous != self.speaker,
            ))
        else:
            if box["mode"] == "nvl" and self.cycle == "Application":
                # keep the page so going back can show it again
                engine.history("nvl").append([list(line) for line in box["lines"]])
            box["mode"] = "adv"
            box["lines"] = [[self.speaker, self.dialog]]
            box["speaking"] = self.speaker
            effects.append(ShowDialog(
                speaker=self.speaker, text=self.dialog, name=name, color=color,
                image=None if self.nvl else self.image, mode="adv", animate=animate,
            ))
        engine.globals["finished_typing"] = not animate
        return effects

    def _where(self) -> Optional[Tuple[str, int]]:
        return (self.position.label, self.position.step) if self.position else None

    def _log(self) -> None:
        self.handler.backlog.write(self.speaker, self.dialog, self._display_name(),
                                   self.character.get("color") if self.character else None, where=self._where())

    async def apply(self, advance: bool = True) -> Effects:
        last = self.handler.backlog.last()
        # showing the same line again in place (no advance) is not a new line
        if advance or last is None or last.where != self._where() or last.text != self.dialog:
            self._log()
        return self._show()

    async def did_apply(self) -> bool:
        return False

    def _rewind_backlog(self) -> None:
        # drop what was written after this line; the line itself stays
        log = self.handler.backlog
        while log.lines and log.last().where != self._where():
            log.pop()
        if not log.lines:
            self._log()

    async def revert(self) -> Effects:
        box = self.box
        pages = self.engine.history("nvl")
        if self.nvl and box["mode"] != "nvl" and not pages:
            raise GuardRejection("No NVL page to restore")
        self._rewind_backlog()
        if not self.nvl:
            return self._show()
        if box["mode"] == "nvl":
            if box["lines"]:
                box["lines"].pop()
            return PopNvlLine()
        page = pages.pop()
        box["mode"] = "nvl"
        box["lines"] = page
        box["speaking"] = page[-1][0] if page else None
        return RestoreNvlPage(lines=tuple((str(s), str(t)) for s, t in page))

    async def did_revert(self) -> bool:
        return False


class Dialog(Handler):
    """Fallback handler: every text statement no other handler claims is dialogue."""

    id = "Dialog"
    action_class = DialogAction
    histories = ("nvl",)
    fallback = True

    def __init__(self, capacity: int = 500) -> None:
        self.backlog = Backlog(capacity)

    def match_string(self, tokens: List[str]) -> bool:
        return True

    async def setup(self, engine: "Engine") -> None:
        await super().setup(engine)
        engine.globals.setdefault("dialog", fresh_box())

    async def reset(self, engine: "Engine") -> None:
        engine.globals["dialog"] = fresh_box()
        engine.globals["finished_typing"] = True
        self.backlog.clear()
        engine.dispatch(ClearDialog())

    async def on_load(self, engine: "Engine") -> None:
        # lines from before the save are gone; count on from the latest jump mark
        marks = [int(entry.get("backlog", 0)) for entry in engine.history("jump")]
        self.backlog.total = max(marks, default=0)

    async def should_proceed(self, engine: "Engine") -> None:
        if not engine.globals.get("finished_typing", True):
            engine.globals["finished_typing"] = True
            engine.dispatch(CompleteTyping())
            raise GuardRejection("Typewriter effect has not finished")

    async def will_rollback(self, engine: "Engine") -> None:
        if not engine.globals.get("finished_typing", True):
            engine.dispatch(CompleteTyping())
        engine.globals["finished_typing"] = True
