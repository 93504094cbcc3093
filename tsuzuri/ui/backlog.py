from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Tuple


@dataclass
class Line:
    speaker: str
    text: str
    name: Optional[str] = None
    color: Optional[str] = None
    # (label, step) of the statement that wrote the line
    where: Optional[Tuple[str, int]] = None


class Backlog:
    """Dialogue log: lines are written when a dialog is applied and popped when it is reverted."""

    def __init__(self, capacity: int = 500) -> None:
        self.capacity = capacity
        self.lines: List[Line] = []
        self.view_idx: int = -1  # -1 means latest
        # lines written minus lines popped; unlike len() it is not capped by capacity
        self.total: int = 0

    def write(self, speaker: str, text: str, name: Optional[str] = None, color: Optional[str] = None,
              where: Optional[Tuple[str, int]] = None) -> None:
        self.lines.append(Line(speaker=speaker, text=text, name=name, color=color, where=where))
        self.total += 1
        if len(self.lines) > self.capacity:
            self.lines.pop(0)
        self.view_idx = -1

    def pop(self) -> Optional[Line]:
        self.view_idx = -1
        if not self.lines:
            return None
        self.total -= 1
        return self.lines.pop()

    def last(self) -> Optional[Line]:
        return self.lines[-1] if self.lines else None

    def rewind(self, total: int) -> None:
        """Pop lines until no more than ``total`` have been written."""
        while self.total > total and self.lines:
            self.pop()

    def current(self) -> Optional[Line]:
        if not self.lines:
            return None
        if self.view_idx == -1:
            return self.lines[-1]
        i = max(0, min(self.view_idx, len(self.lines) - 1))
        return self.lines[i]

    def scroll_up(self, n: int = 1) -> None:
        if not self.lines:
            return
        if self.view_idx == -1:
            self.view_idx = len(self.lines) - 1
        self.view_idx = max(0, self.view_idx - n)

    def scroll_down(self, n: int = 1) -> None:
        if self.view_idx == -1:
            return
        self.view_idx += n
        if self.view_idx >= len(self.lines) - 1:
            self.view_idx = -1

    def tail(self, n: int) -> List[Line]:
        return self.lines[-n:] if n > 0 else []

    def clear(self) -> None:
        self.lines.clear()
        self.view_idx = -1
        self.total = 0

    def __len__(self) -> int:
        return len(self.lines)
