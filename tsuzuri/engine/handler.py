from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, List, Optional, Sequence, Tuple, Type, Union

from .effects import Effect
from .state import Cursor

if TYPE_CHECKING:  # pragma: no cover
    from .engine import Engine

# What apply/revert may hand back: nothing, one effect, or several in order.
Effects = Union[None, Effect, Sequence[Effect]]


def as_effects(result: Effects) -> Tuple[Effect, ...]:
    if result is None:
        return ()
    if isinstance(result, Effect):
        return (result,)
    return tuple(result)


class Action:
    """One invocation of a handler for one matched statement.

    Built by ``Handler.create`` and thrown away once its lifecycle completes.
    Every stage may raise a ``Rejection`` to stop the chain; the did_* stages
    return whether the engine should keep going without external input.
    """

    def __init__(self, handler: "Handler", args: Any, statement: Any = None,
                 engine: Optional["Engine"] = None) -> None:
        self.handler = handler
        self.args = args
        self.statement = statement
        self.engine = engine
        self.cycle = "Application"
        # where the statement sits in the script; set by the engine
        self.position: Optional[Cursor] = None

    # --- forward ---
    async def will_apply(self) -> None:
        return None

    async def apply(self, advance: bool = True) -> Effects:
        return None

    async def did_apply(self) -> bool:
        return True

    # --- backward ---
    async def will_revert(self) -> None:
        return None

    async def revert(self) -> Effects:
        return None

    async def did_revert(self) -> bool:
        return True

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<{type(self).__name__} {self.statement!r} ({self.cycle})>"


class Handler:
    """Statement handler descriptor, registered once per engine.

    Subclasses set ``id``, override one of the predicates and point
    ``action_class`` at their Action subclass. ``histories`` lists the undo
    stacks the handler owns; ``setup`` creates them.
    """

    id: ClassVar[str] = ""
    action_class: ClassVar[Type[Action]] = Action
    histories: ClassVar[Tuple[str, ...]] = ()
    # fallback handlers match anything and are kept behind regular handlers
    fallback: ClassVar[bool] = False

    # --- matching (must be pure) ---
    def match_string(self, tokens: List[str]) -> bool:
        return False

    def match_object(self, record: Any) -> bool:
        return False

    def create(self, args: Any, statement: Any, engine: "Engine") -> Action:
        return self.action_class(self, args, statement, engine)

    # --- group lifecycle ---
    async def setup(self, engine: "Engine") -> None:
        for name in self.histories:
            engine.history(name)

    async def bind(self, engine: "Engine") -> None:
        return None

    async def init(self, engine: "Engine") -> None:
        return None

    async def reset(self, engine: "Engine") -> None:
        return None

    async def on_start(self, engine: "Engine") -> None:
        return None

    async def on_load(self, engine: "Engine") -> None:
        return None

    # --- input gates ---
    def can_proceed(self, engine: "Engine") -> bool:
        return True

    def can_revert(self, engine: "Engine") -> bool:
        return True

    async def should_proceed(self, engine: "Engine") -> None:
        """Raise GuardRejection to swallow a proceed request (e.g. finish typing first)."""
        return None

    async def will_proceed(self, engine: "Engine") -> None:
        return None

    async def will_rollback(self, engine: "Engine") -> None:
        return None

    def boundary_origin(self, engine: "Engine") -> Optional[Cursor]:
        """Statement that led into the current label, for reverting at step 0."""
        return None

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<Handler {self.id}>"

