from __future__ import annotations

import logging
from typing import Any, Iterable, Iterator, List, Mapping, Optional

from .handler import Handler

logger = logging.getLogger(__name__)


class HandlerRegistry:
    """Ordered handler list; registration order is match priority.

    Regular handlers are kept ahead of fallback handlers so that an extension
    registered after the built-ins can still claim its statements.
    """

    def __init__(self, handlers: Optional[Iterable[Handler]] = None) -> None:
        self._handlers: List[Handler] = []
        for h in handlers or ():
            self.register(h)

    def register(self, handler: Handler) -> None:
        if not handler.id:
            raise ValueError(f"Handler {type(handler).__name__} has no id")
        if self.get(handler.id) is not None:
            raise ValueError(f"Handler already registered: {handler.id}")
        if handler.fallback:
            self._handlers.append(handler)
        else:
            pos = next((i for i, h in enumerate(self._handlers) if h.fallback), len(self._handlers))
            self._handlers.insert(pos, handler)
        logger.debug(f"Registered handler {handler.id}")

    def unregister(self, handler_id: str) -> Optional[Handler]:
        for i, h in enumerate(self._handlers):
            if h.id == handler_id:
                return self._handlers.pop(i)
        return None

    def get(self, handler_id: str) -> Optional[Handler]:
        for h in self._handlers:
            if h.id == handler_id:
                return h
        return None

    def ids(self) -> List[str]:
        return [h.id for h in self._handlers]

    @staticmethod
    def _accepts(handler: Handler, statement: Any, tokens: Optional[List[str]]) -> bool:
        if isinstance(statement, str):
            return bool(handler.match_string(list(tokens if tokens is not None else statement.split())))
        if isinstance(statement, Mapping):
            return bool(handler.match_object(statement))
        return False

    def match(self, statement: Any, tokens: Optional[List[str]] = None) -> Optional[Handler]:
        """First handler accepting the statement (tokens for text, the record otherwise)."""
        for h in self._handlers:
            if self._accepts(h, statement, tokens):
                return h
        return None

    def candidates(self, statement: Any, tokens: Optional[List[str]] = None) -> List[Handler]:
        """Every handler accepting the statement, in priority order."""
        return [h for h in self._handlers if self._accepts(h, statement, tokens)]

    def __iter__(self) -> Iterator[Handler]:
        return iter(list(self._handlers))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, handler_id: object) -> bool:
        return any(h.id == handler_id for h in self._handlers)
