from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict


class TsuzuriError(Exception):
    """Base class for errors raised by the runtime."""


@dataclass
class ScriptError(TsuzuriError):
    message: str
    line: int | None = None
    context: str | None = None

    def __str__(self) -> str:  # pragma: no cover - formatting
        loc = f" (line {self.line})" if self.line else ""
        ctx = f"\n  >> {self.context}" if self.context else ""
        return f"{self.message}{loc}{ctx}"


class Rejection(TsuzuriError):
    """A lifecycle stage vetoed the rest of its chain."""


class GuardRejection(Rejection):
    """Expected veto (input pending, typing unfinished, condition not met)."""

    def __init__(self, reason: str = "") -> None:
        super().__init__(reason)
        self.reason = reason


@dataclass
class UnresolvedTarget(Rejection):
    """A statement referenced something that does not exist, e.g. a missing label."""

    title: str
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:  # pragma: no cover - formatting
        return f"{self.title}: {self.message}" if self.message else self.title
