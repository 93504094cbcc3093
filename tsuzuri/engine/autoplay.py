from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Callable, Optional

from .events import AutoModeEvent

if TYPE_CHECKING:  # pragma: no cover
    from .engine import Engine

logger = logging.getLogger(__name__)


class AutoPlay:
    """Advances the game on a fixed interval (``autoplay_speed`` seconds).

    The timer handle lives in the ``autoplay_timer`` global; each tick measures
    how late it fired and shortens the next delay by that much.
    """

    def __init__(self, engine: "Engine", clock: Optional[Callable[[], float]] = None) -> None:
        self._engine = engine
        self._clock = clock or (lambda: asyncio.get_running_loop().time())
        self._interval = 0.0
        self._expected = 0.0

    @property
    def enabled(self) -> bool:
        return self._engine.globals.get("autoplay_timer") is not None

    def interval(self) -> float:
        return max(0.0, float(self._engine.preferences.get("autoplay_speed", 5)))

    def enable(self) -> None:
        if self.enabled:
            return
        self._interval = self.interval()
        self._expected = self._clock() + self._interval
        self._schedule(self._interval)
        self._engine.events.emit(AutoModeEvent(enabled=True))
        logger.debug(f"Autoplay on, every {self._interval}s")

    def disable(self) -> None:
        handle = self._engine.globals.get("autoplay_timer")
        if handle is None:
            return
        handle.cancel()
        self._engine.globals["autoplay_timer"] = None
        self._engine.events.emit(AutoModeEvent(enabled=False))
        logger.debug("Autoplay off")

    def toggle(self) -> bool:
        if self.enabled:
            self.disable()
        else:
            self.enable()
        return self.enabled

    def next_delay(self, now: float) -> float:
        """Delay until the next tick; drift = now - expected, never negative overall."""
        drift = now - self._expected
        self._expected += self._interval
        return max(0.0, self._interval - drift)

    def _schedule(self, delay: float) -> None:
        loop = asyncio.get_running_loop()
        self._engine.globals["autoplay_timer"] = loop.call_later(delay, self._tick)

    def _tick(self) -> None:
        if not self.enabled:
            return
        delay = self.next_delay(self._clock())
        if self._engine.can_proceed():
            self._engine.spawn(self._engine.proceed())
        else:
            logger.debug("Autoplay tick gated, waiting for the next one")
        self._schedule(delay)
