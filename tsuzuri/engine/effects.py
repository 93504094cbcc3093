"""
Effect values returned by handler lifecycles.

The engine never draws anything itself: ``apply``/``revert`` hand back these
immutable commands and the engine forwards them to the renderer.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple


@dataclass(frozen=True)
class Effect:
    """Base class for renderer commands."""


@dataclass(frozen=True)
class ShowDialog(Effect):
    speaker: str = "narrator"
    text: str = ""
    name: Optional[str] = None
    color: Optional[str] = None
    image: Optional[str] = None
    mode: str = "adv"  # "adv", "nvl" or "centered"
    animate: bool = False
    named: bool = False  # nvl: speaker changed, print the name before the line


@dataclass(frozen=True)
class ClearDialog(Effect):
    pass


@dataclass(frozen=True)
class PopNvlLine(Effect):
    pass


@dataclass(frozen=True)
class RestoreNvlPage(Effect):
    lines: Tuple[Tuple[str, str], ...] = ()


@dataclass(frozen=True)
class CompleteTyping(Effect):
    pass


@dataclass(frozen=True)
class ChoiceOption:
    key: str
    text: str
    do: Any = None
    clickable: bool = True


@dataclass(frozen=True)
class ShowChoices(Effect):
    options: Tuple[ChoiceOption, ...] = ()
    prompt: Optional[str] = None


@dataclass(frozen=True)
class HideChoices(Effect):
    pass


@dataclass(frozen=True)
class StartParticles(Effect):
    name: str = ""
    config: Dict[str, Any] = field(default_factory=dict, compare=False, hash=False)


@dataclass(frozen=True)
class StopParticles(Effect):
    pass
