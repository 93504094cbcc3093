from __future__ import annotations

import copy
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Mapping, Optional


@dataclass(frozen=True)
class Cursor:
    label: str
    step: int


class GameState:
    """Persisted state: the cursor (label, step) plus free-form narrative variables."""

    def __init__(self, label: str = "Start", step: int = 0, **extra: Any) -> None:
        self._data: Dict[str, Any] = {"label": label, "step": step}
        self._data.update(extra)
        # bumped by every move, including a move onto the current position
        self.moves = 0

    @property
    def label(self) -> str:
        return self._data["label"]

    @property
    def step(self) -> int:
        return int(self._data["step"])

    @property
    def cursor(self) -> Cursor:
        return Cursor(self.label, self.step)

    def move(self, label: Optional[str] = None, step: Optional[int] = None) -> None:
        if label is not None:
            self._data["label"] = label
        if step is not None:
            self._data["step"] = int(step)
        self.moves += 1

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def update(self, values: Mapping[str, Any]) -> None:
        self._data.update(values)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __setitem__(self, key: str, value: Any) -> None:
        self._data[key] = value

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def snapshot(self) -> Dict[str, Any]:
        return copy.deepcopy(self._data)

    def restore(self, data: Mapping[str, Any]) -> None:
        restored = copy.deepcopy(dict(data))
        restored.setdefault("label", self.label)
        restored.setdefault("step", 0)
        self._data = restored

    def __eq__(self, other: object) -> bool:
        if isinstance(other, GameState):
            return self._data == other._data
        return NotImplemented

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"GameState({self._data!r})"


DEFAULT_GLOBALS: Dict[str, Any] = {
    "playing": False,
    "block": False,
    "distraction_free": False,
    "finished_typing": True,
    "autoplay_timer": None,
    "current_choice": None,
    "rerun": False,
}


def fresh_globals() -> Dict[str, Any]:
    """Ephemeral runtime flags; never persisted."""
    return dict(DEFAULT_GLOBALS)
