"""
Text canonicalization used for comparison only.
Stored document content is never rewritten with these helpers.
"""

import re
from typing import List, Tuple

# One-to-one character substitutions (smart quotes, dashes, non-breaking spaces).
_CHAR_MAP = {
    "\u2018": "'",
    "\u2019": "'",
    "\u201a": "'",
    "\u201b": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u201e": '"',
    "\u201f": '"',
    "\u2013": "-",
    "\u2014": "-",
    "\u00a0": " ",
    "\u202f": " ",
}
_TRANSLATION = str.maketrans(_CHAR_MAP)
_WHITESPACE_RE = re.compile(r"\s+")


def normalize(text: str) -> str:
    """
    Unifies quotes and dashes, maps non-breaking spaces to spaces,
    collapses whitespace runs to a single space and trims both ends.
    """
    if not text:
        return ""
    return _WHITESPACE_RE.sub(" ", text.translate(_TRANSLATION)).strip()


def normalize_with_offsets(text: str) -> Tuple[str, List[int]]:
    """
    Same result as normalize(), plus an offset map:
    offsets[i] is the index in `text` of the character that produced normalized[i].
    A collapsed whitespace run maps to its first character.
    """
    chars: List[str] = []
    offsets: List[int] = []
    pending_space = -1

    for idx, ch in enumerate(text or ""):
        ch = _CHAR_MAP.get(ch, ch)
        if ch.isspace():
            if pending_space == -1:
                pending_space = idx
            continue

        if pending_space != -1:
            # Leading whitespace is trimmed
            if chars:
                chars.append(" ")
                offsets.append(pending_space)
            pending_space = -1

        chars.append(ch)
        offsets.append(idx)

    return "".join(chars), offsets


def map_normalized_range(offsets: List[int], start: int, length: int, raw_length: int) -> Tuple[int, int]:
    """
    Converts a [start, start+length) range in normalized text into a raw [start, end) range.
    """
    if not offsets or length <= 0:
        return -1, -1
    raw_start = offsets[start]
    last = min(start + length - 1, len(offsets) - 1)
    raw_end = min(offsets[last] + 1, raw_length)
    return raw_start, raw_end
