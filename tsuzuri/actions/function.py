from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Mapping, Optional

from ..engine.handler import Action, Handler
from ..script.errors import UnresolvedTarget

if TYPE_CHECKING:  # pragma: no cover
    from ..engine.engine import Engine


class FunctionAction(Action):
    """``{"Function": {"Apply": fn, "Reverse": fn}}`` or ``{"Function": "name"}``.

    Named functions are looked up in ``engine.fn``. Either callable may be
    async; returning ``False`` stops the chain at this statement.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        self.body = self.args["Function"]

    def _pair(self) -> Mapping[str, Optional[Callable[..., Any]]]:
        body = self.body
        if isinstance(body, str):
            registered = self.engine.fn(body)
            if registered is None:
                raise UnresolvedTarget(
                    f'The function "{body}" does not exist',
                    f'Attempted to run the function named "{body}" but it was never registered with engine.fn.',
                    {"Missing Function": body, "Registered": sorted(self.engine.functions)},
                )
            return registered
        return {
            "apply": body.get("Apply"),
            "revert": body.get("Reverse", body.get("Revert")),
        }

    async def apply(self, advance: bool = True) -> None:
        fn = self._pair().get("apply")
        if fn is not None:
            await self.engine.assert_async(fn, self.engine)

    async def revert(self) -> None:
        fn = self._pair().get("revert")
        if fn is not None:
            await self.engine.assert_async(fn, self.engine)


class Function(Handler):
    id = "Function"
    action_class = FunctionAction

    def match_object(self, record: Any) -> bool:
        if not isinstance(record, Mapping):
            return False
        body = record.get("Function")
        return isinstance(body, (str, Mapping))
