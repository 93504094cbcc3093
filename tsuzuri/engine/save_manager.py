"""
Save/Load manager

Slots live on the persistence boundary under ``"{prefix}_{id}"`` keys and
hold ``{name, date, image, snapshot}``. Integrates:
- cancellable SaveEvent/LoadEvent and their Complete events
- numbered manual slots and auto-save slots (separate prefixes)
- slot listing for menus
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional
import logging

from .events import SaveEvent, SaveCompleteEvent, LoadEvent, LoadCompleteEvent, GameStartEvent

if TYPE_CHECKING:  # pragma: no cover
    from .engine import Engine

logger = logging.getLogger(__name__)


# ============================================================================
# Slot Metadata
# ============================================================================

@dataclass
class SlotMeta:
    """Slot summary shown by load/save menus."""
    key: str
    slot_id: int
    name: str = ""
    date: Optional[str] = None
    image: Optional[str] = None
    label: Optional[str] = None

    @property
    def display_name(self) -> str:
        return self.name or self.date or self.key

    @classmethod
    def from_record(cls, key: str, slot_id: int, data: Dict[str, Any]) -> "SlotMeta":
        snap = snapshot_of(data)
        return cls(
            key=key,
            slot_id=slot_id,
            name=str(data.get("name") or ""),
            date=data.get("date"),
            image=data.get("image"),
            label=(snap.get("state") or {}).get("label"),
        )


def snapshot_of(record: Dict[str, Any]) -> Dict[str, Any]:
    """The {history, state, storage} part of a slot; older slots keep it under ``game``."""
    snap = record.get("snapshot")
    if snap is None:
        snap = record.get("game")
    if not isinstance(snap, dict):
        raise ValueError("Slot record has no snapshot")
    return snap


def nice_date_time() -> str:
    return datetime.now().strftime("%Y-%m-%d %H:%M:%S")


# ============================================================================
# Save Manager
# ============================================================================

class SaveManager:
    """
    Slot persistence for one engine.

    Responsible for:
    - naming and numbering slots per prefix
    - writing snapshots while a game is playing
    - restoring a slot and resuming at its cursor
    """

    def __init__(self, engine: "Engine") -> None:
        self._engine = engine

    def prefix(self, prefix: str = "save_label") -> str:
        """Resolve a prefix setting name (``save_label``/``auto_save_label``) to its value."""
        value = self._engine.settings.get(prefix)
        return str(value) if value else prefix

    @staticmethod
    def slot_key(prefix: str, slot_id: int) -> str:
        return f"{prefix}_{int(slot_id)}"

    @staticmethod
    def _slot_id(key: str, prefix: str) -> Optional[int]:
        head = f"{prefix}_"
        if not key.startswith(head):
            return None
        try:
            return int(key[len(head):])
        except ValueError:
            return None

    async def get_max_slot_id(self, prefix: str = "save_label") -> int:
        """Highest slot id in use under the prefix; 0 when there is none."""
        resolved = self.prefix(prefix)
        highest = 0
        for key in await self._engine.store.keys():
            n = self._slot_id(key, resolved)
            if n is not None and n > highest:
                highest = n
        return highest

    async def save_to(self, prefix: str = "save_label", slot_id: Optional[int] = None,
                      name: Optional[str] = None) -> Optional[str]:
        """
        Write a slot while playing and return its key.

        Event chain:
        1. SaveEvent (cancellable)
        2. store.set
        3. SaveCompleteEvent
        """
        engine = self._engine
        if not engine.globals.get("playing"):
            logger.debug("Not saving: no game in progress")
            return None
        resolved = self.prefix(prefix)
        date = nice_date_time()
        if name is None or not name.strip():
            name = date
        if slot_id is None:
            slot_id = await self.get_max_slot_id(prefix) + 1
        key = self.slot_key(resolved, slot_id)

        save_event = engine.events.emit(SaveEvent(slot=key, name=name))
        if save_event.cancelled:
            logger.debug(f"Save to {key} cancelled by event handler")
            return None

        scene = engine.state.get("scene")
        image = str(scene).split(" ")[1] if scene and len(str(scene).split(" ")) > 1 else None
        record = {
            "name": name,
            "date": date,
            "image": image,
            "snapshot": engine.snapshot(),
        }
        try:
            await engine.store.set(key, record)
        except Exception as e:
            logger.error(f"Save to {key} failed: {e}")
            engine.events.emit(SaveCompleteEvent(slot=key, success=False))
            raise
        engine.events.emit(SaveCompleteEvent(slot=key, success=True))
        logger.info(f"Saved {key}")
        return key

    async def auto_save(self, name: Optional[str] = None) -> Optional[str]:
        return await self.save_to("auto_save_label", None, name)

    async def get_slot(self, key: str) -> Dict[str, Any]:
        return await self._engine.store.get(key)

    async def list_slots(self, prefix: str = "save_label") -> List[SlotMeta]:
        """Slots under the prefix, ordered by id. Malformed records are skipped."""
        resolved = self.prefix(prefix)
        out: List[SlotMeta] = []
        for key in await self._engine.store.keys():
            n = self._slot_id(key, resolved)
            if n is None:
                continue
            data = await self._engine.store.get(key)
            try:
                out.append(SlotMeta.from_record(key, n, data))
            except (ValueError, AttributeError) as e:
                logger.warning(f"Skipping slot {key}: {e}")
        out.sort(key=lambda m: m.slot_id)
        return out

    async def delete_slot(self, key: str) -> None:
        await self._engine.store.remove(key)
        logger.info(f"Deleted {key}")

    async def load_from_slot(self, key: str) -> bool:
        """
        Restore a slot and resume at its cursor.

        Event chain:
        1. LoadEvent (cancellable)
        2. fetch, reset, restore, every handler's on_load
        3. run the statement under the restored cursor
        4. LoadCompleteEvent
        """
        engine = self._engine
        load_event = engine.events.emit(LoadEvent(slot=key))
        if load_event.cancelled:
            logger.debug(f"Load from {key} cancelled by event handler")
            return False

        try:
            data = await engine.store.get(key)
            snapshot = snapshot_of(data)
        except Exception as e:
            logger.error(f"Load from {key} failed: {e}")
            engine.events.emit(LoadCompleteEvent(slot=key, success=False))
            raise

        engine.globals["playing"] = True
        await engine.reset()
        engine.restore(snapshot)
        for handler in engine.registry:
            await handler.on_load(engine)
        engine.events.emit(GameStartEvent(from_load=True, slot=key))
        await engine.run(engine.current_statement())
        engine.events.emit(LoadCompleteEvent(slot=key, success=True))
        logger.info(f"Loaded {key} at {engine.state.label}:{engine.state.step}")
        return True
