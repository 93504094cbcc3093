from __future__ import annotations

import copy
from typing import Any, Dict, List, Mapping


class History:
    """Named undo stacks, one per handler category.

    ``history(category)`` creates the stack on first access and hands back the
    live list; handlers push on apply and pop on revert. Balance is the
    handler's obligation, nothing here checks it.
    """

    def __init__(self) -> None:
        self._stacks: Dict[str, List[Any]] = {}

    def __call__(self, category: str) -> List[Any]:
        stack = self._stacks.get(category)
        if stack is None:
            stack = self._stacks[category] = []
        return stack

    def categories(self) -> List[str]:
        return list(self._stacks.keys())

    def __contains__(self, category: object) -> bool:
        return category in self._stacks

    def clear(self) -> None:
        # empty in place so references held by handlers stay valid
        for stack in self._stacks.values():
            stack.clear()

    def snapshot(self) -> Dict[str, List[Any]]:
        return copy.deepcopy(self._stacks)

    def restore(self, data: Mapping[str, List[Any]]) -> None:
        for category, entries in data.items():
            stack = self(category)
            stack[:] = copy.deepcopy(list(entries))

    def sizes(self) -> Dict[str, int]:
        return {k: len(v) for k, v in self._stacks.items()}
