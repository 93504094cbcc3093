from __future__ import annotations

import difflib
from typing import TYPE_CHECKING, Any, Dict, List, Mapping, Optional

from ..engine.effects import StartParticles, StopParticles
from ..engine.handler import Action, Effects, Handler
from ..script.errors import UnresolvedTarget

if TYPE_CHECKING:  # pragma: no cover
    from ..engine.engine import Engine


class ParticlesAction(Action):
    """``particles <preset>`` starts a preset, ``stop particles`` clears it.

    The ``particles`` history keeps the statement that was active before, so
    reverting brings the previous preset back.
    """

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        tokens = list(self.args or [])
        self.stop = tokens[:1] == ["stop"]
        self.name = "" if self.stop else (tokens[1] if len(tokens) > 1 else "")

    async def will_apply(self) -> None:
        if self.stop:
            return
        presets = self.handler.presets
        if self.name not in presets:
            raise UnresolvedTarget(
                f'The particles "{self.name}" do not exist',
                f'Attempted to show the particles named "{self.name}" but no such preset is configured.',
                {
                    "Missing Particles": self.name,
                    "You may have meant one of these": difflib.get_close_matches(self.name, list(presets)) or list(presets),
                    "Statement": self.statement,
                },
            )

    async def apply(self, advance: bool = True) -> Effects:
        state = self.engine.state
        self.engine.history("particles").append(state.get("particles", ""))
        if self.stop:
            state["particles"] = ""
            return StopParticles()
        state["particles"] = f"particles {self.name}"
        return StartParticles(name=self.name, config=dict(self.handler.presets[self.name]))

    async def did_apply(self) -> bool:
        return True

    async def revert(self) -> Effects:
        stack = self.engine.history("particles")
        previous = stack.pop() if stack else ""
        self.engine.state["particles"] = previous
        return self.handler.effect_for(previous)

    async def did_revert(self) -> bool:
        return True


class Particles(Handler):
    id = "Particles"
    action_class = ParticlesAction
    histories = ("particles",)

    def __init__(self, presets: Optional[Mapping[str, Mapping[str, Any]]] = None) -> None:
        self.presets: Dict[str, Dict[str, Any]] = {k: dict(v) for k, v in (presets or {}).items()}

    def configure(self, presets: Mapping[str, Mapping[str, Any]]) -> None:
        for k, v in presets.items():
            self.presets[k] = dict(v)

    def match_string(self, tokens: List[str]) -> bool:
        return tokens[:1] == ["particles"] or tokens[:2] == ["stop", "particles"]

    def effect_for(self, statement: str):
        tokens = str(statement or "").split()
        name = tokens[1] if len(tokens) > 1 else ""
        if not name or name not in self.presets:
            return StopParticles()
        return StartParticles(name=name, config=dict(self.presets[name]))

    async def setup(self, engine: "Engine") -> None:
        await super().setup(engine)
        engine.state.update({"particles": ""})

    async def reset(self, engine: "Engine") -> None:
        engine.state["particles"] = ""
        engine.dispatch(StopParticles())

    async def on_load(self, engine: "Engine") -> None:
        active = engine.state.get("particles", "")
        if active:
            engine.dispatch(self.effect_for(active))
