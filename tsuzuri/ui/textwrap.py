from __future__ import annotations

from typing import Callable, List

# CJK ideographs, kana and hangul wrap per character; everything else per word
_CHAR_WRAP_RANGES = (
    ("\u3040", "\u30ff"),
    ("\u3400", "\u4dbf"),
    ("\u4e00", "\u9fff"),
    ("\uac00", "\ud7af"),
)


def wraps_by_char(s: str) -> bool:
    return any(lo <= ch <= hi for ch in s for lo, hi in _CHAR_WRAP_RANGES)


def _split_long(word: str, measure: Callable[[str], int], max_width: int) -> List[str]:
    parts: List[str] = []
    cur = ""
    for ch in word:
        if cur and measure(cur + ch) > max_width:
            parts.append(cur)
            cur = ch
        else:
            cur += ch
    if cur:
        parts.append(cur)
    return parts


def wrap_text(text: str, measure: Callable[[str], int], max_width: int) -> List[str]:
    """Wrap text into lines no wider than max_width (as reported by measure).

    Explicit newlines are kept; a word wider than the box is broken by character.
    """
    out: List[str] = []
    for para in text.split("\n"):
        if not para.strip():
            out.append("")
            continue
        units = list(para) if wraps_by_char(para) else para.split()
        joiner = "" if wraps_by_char(para) else " "
        cur = ""
        for unit in units:
            test = f"{cur}{joiner}{unit}" if cur else unit
            if measure(test) <= max_width:
                cur = test
                continue
            if cur:
                out.append(cur)
            if measure(unit) > max_width:
                *full, cur = _split_long(unit, measure, max_width)
                out.extend(full)
            else:
                cur = unit
        if cur:
            out.append(cur.strip() if joiner else cur)
    return out


def fit_lines(lines: List[str], max_lines: int, ellipsis: str = "…") -> List[str]:
    """Keep the last max_lines lines, marking the cut with an ellipsis on the first one."""
    if max_lines <= 0:
        return []
    if len(lines) <= max_lines:
        return list(lines)
    kept = lines[-max_lines:]
    return [ellipsis + kept[0]] + kept[1:]
