from __future__ import annotations

import re
from typing import Any, Mapping

from ..script.errors import ScriptError

PLACEHOLDER_RE = re.compile(r"\{\{(\S+?)\}\}")

_MISSING = object()

MISSING_POLICIES = ("undefined", "empty", "error")


def resolve_path(data: Mapping[str, Any], path: str) -> Any:
    """Walk a dotted path through nested mappings/sequences; _MISSING if any segment is absent."""
    cur: Any = data
    for part in path.split('.'):
        if isinstance(cur, Mapping):
            if part not in cur:
                return _MISSING
            cur = cur[part]
        elif isinstance(cur, (list, tuple)) and part.lstrip('-').isdigit():
            try:
                cur = cur[int(part)]
            except IndexError:
                return _MISSING
        else:
            return _MISSING
    return cur


def _format(value: Any) -> str:
    if value is None:
        return "null"
    if value is True:
        return "true"
    if value is False:
        return "false"
    return str(value)


def replace_variables(statement: str, storage: Mapping[str, Any], missing: str = "undefined") -> str:
    """Replace every ``{{dotted.path}}`` with the value found in storage.

    ``missing`` decides what an unresolved path becomes: the literal text
    ``undefined``, an empty string, or a ScriptError.
    """
    if missing not in MISSING_POLICIES:
        raise ValueError(f"Unknown missing-variable policy: {missing}")

    def repl(m: re.Match[str]) -> str:
        value = resolve_path(storage, m.group(1))
        if value is _MISSING:
            if missing == "error":
                raise ScriptError(f"Unresolved variable: {m.group(1)}", context=statement)
            return "" if missing == "empty" else "undefined"
        return _format(value)

    return PLACEHOLDER_RE.sub(repl, statement)
