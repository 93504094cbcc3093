from __future__ import annotations

from typing import List

from ..engine.handler import Handler
from .choice import Choice
from .conditional import Conditional
from .dialog import Dialog
from .function import Function
from .jump import Jump
from .next import Next
from .particles import Particles

__all__ = [
    "Choice", "Conditional", "Dialog", "Function", "Jump", "Next", "Particles",
    "default_handlers",
]


def default_handlers() -> List[Handler]:
    # Dialog matches every text statement, so it goes last
    return [Jump(), Next(), Particles(), Choice(), Conditional(), Function(), Dialog()]
