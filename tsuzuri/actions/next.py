from __future__ import annotations

from typing import List

from ..engine.handler import Handler


class Next(Handler):
    """``next``: does nothing itself; the default continuation moves on to the following statement."""

    id = "Next"

    def match_string(self, tokens: List[str]) -> bool:
        return bool(tokens) and tokens[0] == "next"
