from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import ScriptError
from .model import Script


def _strip_comments(line: str) -> str:
    # Remove trailing comments starting with #, but not inside quotes or {{...}}
    in_quote = False
    depth = 0
    buf: List[str] = []
    for ch in line:
        if ch in ('"', '“', '”', '「', '」'):
            in_quote = not in_quote
        elif ch == '{':
            depth += 1
        elif ch == '}':
            depth = max(0, depth - 1)
        if ch == '#' and not in_quote and depth == 0:
            break
        buf.append(ch)
    return ''.join(buf).rstrip()


def parse_script(source: str) -> Dict[str, Any]:
    """Parse the plain-text script format into a label mapping.

    - ``*Name`` starts a label
    - ``@language Name`` starts a language section (multi-language scripts)
    - a line starting with ``{`` is a JSON record statement
    - any other non-empty line is a text statement
    """
    languages: Dict[str, Dict[str, List[Any]]] = {}
    labels: Dict[str, List[Any]] = {}
    current: Optional[List[Any]] = None
    language: Optional[str] = None

    for idx, raw in enumerate(source.splitlines()):
        line = _strip_comments(raw).strip()
        if not line:
            continue
        if line.startswith('@language'):
            name = line[len('@language'):].strip()
            if not name:
                raise ScriptError("@language needs a name", idx + 1, raw)
            language = name
            labels = languages.setdefault(name, {})
            current = None
            continue
        if line.startswith('*'):
            name = line[1:].strip()
            if not name:
                raise ScriptError("Empty label name", idx + 1, raw)
            if name in labels:
                raise ScriptError(f"Duplicate label: {name}", idx + 1, raw)
            current = labels[name] = []
            continue
        if current is None:
            raise ScriptError("Statement outside of a label", idx + 1, raw)
        if line.startswith('{'):
            try:
                current.append(json.loads(line))
            except json.JSONDecodeError as e:
                raise ScriptError(f"Invalid record: {e.msg}", idx + 1, raw)
            continue
        current.append(line)

    if language is not None:
        return languages
    return labels


def load_script(path: Path) -> Script:
    """Read a script file; ``.json`` files hold the mapping directly."""
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() == ".json":
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ScriptError(f"Invalid JSON script: {e.msg}", e.lineno)
        if not isinstance(data, dict):
            raise ScriptError("A JSON script must be an object of labels")
        multi = bool(data) and all(isinstance(v, dict) for v in data.values())
        return Script(data, multi_language=multi)
    source = text
    multi = any(_strip_comments(line).strip().startswith('@language') for line in source.splitlines())
    return Script(parse_script(source), multi_language=multi)
