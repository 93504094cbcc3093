from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, List, Union
from urllib.parse import quote, unquote
import copy
import json


class KeyValueStore(ABC):
    """Asynchronous key/value persistence boundary.

    Values are JSON-serializable. ``get`` raises KeyError for a missing key;
    any other failure is raised as-is and never retried.
    """

    @abstractmethod
    async def get(self, key: str) -> Any:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def keys(self) -> List[str]:  # pragma: no cover - interface
        raise NotImplementedError

    @abstractmethod
    async def remove(self, key: str) -> None:  # pragma: no cover - interface
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    """In-process store; values are deep-copied in and out like a real backend would."""

    def __init__(self) -> None:
        self._data: Dict[str, Any] = {}

    async def get(self, key: str) -> Any:
        if key not in self._data:
            raise KeyError(key)
        return copy.deepcopy(self._data[key])

    async def set(self, key: str, value: Any) -> None:
        self._data[key] = copy.deepcopy(value)

    async def keys(self) -> List[str]:
        return list(self._data.keys())

    async def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """Filesystem store: one ``<key>.json`` file per key under a base directory.

    Keys are percent-encoded into file names, so any string round-trips
    through ``keys()``.
    """

    def __init__(self, base_dir: Union[Path, str, Callable[[], Path]]) -> None:
        self._get_base = base_dir if callable(base_dir) else (lambda: Path(base_dir))

    def _ensure_dir(self) -> Path:
        base = Path(self._get_base())
        base.mkdir(parents=True, exist_ok=True)
        return base

    def _path(self, key: str) -> Path:
        return self._ensure_dir() / f"{quote(str(key), safe='')}.json"

    async def get(self, key: str) -> Any:
        p = self._path(key)
        if not p.exists():
            raise KeyError(key)
        return json.loads(p.read_text(encoding="utf-8"))

    async def set(self, key: str, value: Any) -> None:
        p = self._path(key)
        tmp = p.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(value, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(p)

    async def keys(self) -> List[str]:
        return sorted(unquote(p.stem) for p in self._ensure_dir().glob("*.json"))

    async def remove(self, key: str) -> None:
        p = self._path(key)
        if p.exists():
            p.unlink()
