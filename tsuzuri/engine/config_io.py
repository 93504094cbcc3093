from __future__ import annotations

from pathlib import Path
from typing import Optional
import json
import logging

logger = logging.getLogger(__name__)


DEFAULTS = {
    "engine": {
        "label": "Start",
        "multi_language": False,
        "chain_limit": 10000,
        "missing_variable": "undefined",
        "save_label": "Save",
        "auto_save_label": "AutoSave",
        "type_animation": True,
        "nvl_type_animation": True,
        "centered_type_animation": True,
    },
    "preferences": {
        "language": "English",
        "text_speed": 20,
        "autoplay_speed": 5,
    },
}

SECTIONS = tuple(DEFAULTS.keys())


def _merge(data: Optional[dict]) -> dict:
    out = {}
    for section in SECTIONS:
        merged = dict(DEFAULTS.get(section, {}))
        merged.update(dict(((data or {}).get(section) or {})))
        out[section] = merged
    return out


def default_config() -> dict:
    return _merge(None)


def load_config(path: Optional[Path] = None) -> dict:
    """Defaults merged (shallow, per section) with a JSON file when present.

    An unreadable file is logged and ignored.
    """
    if path is None:
        return default_config()
    p = Path(path)
    try:
        if p.exists():
            data = json.loads(p.read_text(encoding="utf-8"))
            if isinstance(data, dict):
                return _merge(data)
            logger.warning(f"Ignoring config {p}: not a JSON object")
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring config {p}: {e}")
    return default_config()


def save_config(cfg: dict, path: Path) -> bool:
    p = Path(path)
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
        # Keep only known sections (avoid bloating)
        data = _merge(cfg)
        p.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        return True
    except OSError as e:
        logger.error(f"Failed to write config {p}: {e}")
        return False
