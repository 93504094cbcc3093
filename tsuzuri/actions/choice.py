from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Tuple

from ..engine.effects import ChoiceOption, HideChoices, ShowChoices
from ..engine.events import ChoiceSelectEvent
from ..engine.handler import Action, Effects, Handler
from .conditional import evaluate_condition

if TYPE_CHECKING:  # pragma: no cover
    from ..engine.engine import Engine

logger = logging.getLogger(__name__)

# keys of a Choice body that are not options
RESERVED = ("Dialog", "Class")


class ChoiceAction(Action):
    """``{"Choice": {"Dialog": prompt, "<key>": {"Text": ..., "Do": ..., "Condition": ...}}}``

    Shows the options and waits; the selection arrives through ``Engine.choose``.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.body: Mapping[str, Any] = dict(self.args["Choice"])

    async def _options(self) -> Tuple[ChoiceOption, ...]:
        out: List[ChoiceOption] = []
        for key, option in self.body.items():
            if key in RESERVED or not isinstance(option, Mapping):
                continue
            if "Condition" in option and not await evaluate_condition(self.engine, option["Condition"]):
                continue
            out.append(ChoiceOption(
                key=str(key),
                text=str(option.get("Text", key)),
                do=option.get("Do"),
                clickable=bool(option.get("Clickable", True)),
            ))
        return tuple(out)

    async def _show(self) -> Effects:
        engine = self.engine
        options = await self._options()
        at = self.position or engine.state.cursor
        engine.globals["current_choice"] = {
            "label": at.label,
            "step": at.step,
            "statement": self.statement,
            "options": [o.key for o in options],
        }
        prompt = self.body.get("Dialog")
        return ShowChoices(options=options, prompt=str(prompt) if prompt else None)

    async def apply(self, advance: bool = True) -> Effects:
        return await self._show()

    async def did_apply(self) -> bool:
        return False

    def _selection_to_undo(self) -> Dict[str, Any] | None:
        engine = self.engine
        stack = engine.history("choice")
        if not stack:
            return None
        entry = stack[-1]
        if entry.get("jumped"):
            # reverting across the label boundary the option jumped over
            jumps = engine.history("jump")
            if jumps and jumps[-1].get("from") == entry["label"] and jumps[-1].get("step") == entry["step"]:
                return entry
            return None
        if entry["label"] == engine.state.label and entry["step"] == engine.state.step - 1:
            return entry
        return None

    async def revert(self) -> Effects:
        engine = self.engine
        entry = self._selection_to_undo()
        if entry is not None:
            option = self.body.get(entry["option"])
            if entry.get("jumped") and isinstance(option, Mapping) and option.get("Do") is not None:
                # undo the option's jump before showing the options again
                await engine.revert_statement(option["Do"], at=self.position)
                # the options are shown again, nothing is left to re-run
                engine.globals["rerun"] = False
            engine.history("choice").pop()
        return await self._show()

    async def did_revert(self) -> bool:
        return False


class Choice(Handler):
    id = "Choice"
    action_class = ChoiceAction
    histories = ("choice",)

    def match_object(self, record: Any) -> bool:
        return isinstance(record, Mapping) and isinstance(record.get("Choice"), Mapping)

    def can_proceed(self, engine: "Engine") -> bool:
        return engine.globals.get("current_choice") is None

    async def will_rollback(self, engine: "Engine") -> None:
        if engine.globals.get("current_choice") is not None:
            engine.globals["current_choice"] = None
            engine.dispatch(HideChoices())

    async def reset(self, engine: "Engine") -> None:
        engine.globals["current_choice"] = None

    async def select(self, engine: "Engine", key: str) -> bool:
        """Run the Do statement of a shown option; False if nothing is pending or the key is unknown."""
        pending: Dict[str, Any] = engine.globals.get("current_choice") or {}
        if not pending or key not in pending.get("options", []):
            logger.warning(f"Ignoring choice {key!r}: not among the shown options")
            return False
        option = pending["statement"]["Choice"][key]
        event = engine.events.emit(ChoiceSelectEvent(key=key, text=str(option.get("Text", key))))
        if event.cancelled:
            return False
        entry = {"label": pending["label"], "step": pending["step"], "option": key}
        engine.history("choice").append(entry)
        engine.globals["current_choice"] = None
        engine.dispatch(HideChoices())
        jumps_before = len(engine.history("jump"))
        result = await engine.run(option.get("Do"), advance=True)
        if len(engine.history("jump")) > jumps_before:
            entry["jumped"] = True
        return result
