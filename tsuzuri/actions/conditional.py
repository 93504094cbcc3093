from __future__ import annotations

import inspect
import logging
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from ..engine.expr import safe_eval
from ..engine.handler import Action, Handler
from ..script.errors import GuardRejection, ScriptError, UnresolvedTarget

if TYPE_CHECKING:  # pragma: no cover
    from ..engine.engine import Engine

logger = logging.getLogger(__name__)


async def evaluate_condition(engine: "Engine", condition: Any) -> Any:
    """Expression strings are evaluated against storage; callables get the engine."""
    if isinstance(condition, str):
        try:
            return safe_eval(condition, engine.storage)
        except (SyntaxError, ValueError, TypeError, ZeroDivisionError) as e:
            raise ScriptError(f"Invalid condition {condition!r}: {e}")
    if callable(condition):
        result = condition(engine)
        if inspect.isawaitable(result):
            result = await result
        return result
    return condition


def branch_key(value: Any) -> str:
    if isinstance(value, bool) or value is None:
        return "True" if value else "False"
    return str(value)


class ConditionalAction(Action):
    """``{"Conditional": {"Condition": ..., "True": ..., "False": ..., "<value>": ...}}``

    The chosen branch runs in place of the conditional; the ``conditional``
    history remembers which one so revert can undo that same branch.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.body: Mapping[str, Any] = dict(self.args["Conditional"])
        self._proceed = True

    async def apply(self, advance: bool = True) -> None:
        engine = self.engine
        origin = engine.state.cursor
        key = branch_key(await evaluate_condition(engine, self.body.get("Condition")))
        if key not in self.body:
            raise UnresolvedTarget(
                f'The conditional has no "{key}" branch',
                "The condition evaluated to a value without a matching branch.",
                {"Branches": [k for k in self.body if k != "Condition"], "Label": origin.label, "Step": origin.step},
            )
        logger.debug(f"Conditional at {origin.label}:{origin.step} took {key}")
        self._proceed = await engine.apply_statement(self.body[key], advance=False)
        engine.history("conditional").append({"label": origin.label, "step": origin.step, "branch": key})

    async def did_apply(self) -> bool:
        return self._proceed

    def _entry_to_undo(self) -> Optional[Dict[str, Any]]:
        engine = self.engine
        stack = engine.history("conditional")
        if not stack:
            return None
        entry = stack[-1]
        state = engine.state
        if entry["label"] == state.label and entry["step"] == state.step - 1:
            return entry
        jumps = engine.history("jump")
        if state.step == 0 and jumps and jumps[-1].get("from") == entry["label"] and jumps[-1].get("step") == entry["step"]:
            return entry
        return None

    async def revert(self) -> None:
        engine = self.engine
        entry = self._entry_to_undo()
        if entry is not None:
            key = entry["branch"]
        else:
            # the entry was already undone when the cursor last landed here
            key = branch_key(await evaluate_condition(engine, self.body.get("Condition")))
        if key not in self.body:
            raise GuardRejection(f"No \"{key}\" branch to revert")
        self._proceed = await engine.revert_statement(self.body[key], at=self.position)
        if entry is not None:
            engine.history("conditional").pop()

    async def did_revert(self) -> bool:
        return self._proceed


class Conditional(Handler):
    id = "Conditional"
    action_class = ConditionalAction
    histories = ("conditional",)

    def match_object(self, record: Any) -> bool:
        return isinstance(record, Mapping) and isinstance(record.get("Conditional"), Mapping)
