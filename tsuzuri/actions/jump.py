from __future__ import annotations

import copy
import difflib
import logging
from typing import TYPE_CHECKING, Any, List, Optional

from ..engine.events import JumpToLabelEvent
from ..engine.handler import Action, Effects, Handler
from ..engine.state import Cursor
from ..script.errors import GuardRejection, UnresolvedTarget
from .dialog import backlog_of, reset_dialog_box, show_dialog_box

if TYPE_CHECKING:  # pragma: no cover
    from ..engine.engine import Engine

logger = logging.getLogger(__name__)


class JumpAction(Action):
    """``jump <label>``: move the cursor to the start of another label."""

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        tokens = list(self.args or [])
        self.label = tokens[1] if len(tokens) > 1 else ""

    async def will_apply(self) -> None:
        engine = self.engine
        if not engine.script.has_label(self.label, engine.language):
            known = engine.script.labels(engine.language)
            raise UnresolvedTarget(
                f'The label "{self.label}" does not exist',
                f'Attempted to jump to the label named "{self.label}" but it was not found in the script.',
                {
                    "Missing Label": self.label,
                    "You may have meant one of these": difflib.get_close_matches(self.label, known) or known,
                    "Statement": self.statement,
                    "Label": engine.state.label,
                    "Step": engine.state.step,
                },
            )
        event = engine.events.emit(JumpToLabelEvent(target_label=self.label, from_label=engine.state.label))
        if event.cancelled:
            raise GuardRejection(f"Jump to {self.label} cancelled")

    async def apply(self, advance: bool = True) -> Effects:
        engine = self.engine
        log = backlog_of(engine)
        engine.history("jump").append({
            "from": engine.state.label,
            "to": self.label,
            "step": engine.state.step,
            # what was on screen, so going back can show it again
            "dialog": copy.deepcopy(engine.globals.get("dialog")),
            "backlog": log.total if log is not None else 0,
        })
        engine.state.move(self.label, 0)
        engine.history("label").append(self.label)
        logger.debug(f"Jump to {self.label}")
        return reset_dialog_box(engine)

    async def did_apply(self) -> bool:
        return True

    async def revert(self) -> Effects:
        engine = self.engine
        jumps = engine.history("jump")
        if not jumps:
            raise GuardRejection("No jump to revert")
        labels = engine.history("label")
        if labels:
            labels.pop()
        last = jumps.pop()
        engine.state.move(last["from"], int(last["step"]))
        log = backlog_of(engine)
        if log is not None and "backlog" in last:
            log.rewind(int(last["backlog"]))
        # the cursor rests on the jump, which runs again on the next proceed
        engine.globals["rerun"] = True
        return show_dialog_box(engine, last.get("dialog"))

    async def did_revert(self) -> bool:
        return False


class Jump(Handler):
    id = "Jump"
    action_class = JumpAction
    histories = ("label", "jump")

    def match_string(self, tokens: List[str]) -> bool:
        return bool(tokens) and tokens[0] == "jump"

    def boundary_origin(self, engine: "Engine") -> Optional[Cursor]:
        # at step 0 of a label entered by a jump, going back reverts the statement that jumped
        jumps = engine.history("jump")
        if jumps and jumps[-1].get("to") == engine.state.label:
            last = jumps[-1]
            return Cursor(last["from"], int(last["step"]))
        return None
