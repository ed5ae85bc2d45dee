"""
Fuzzy Locator: finds AI-copied text inside an element's real text.

Strategies are tried in priority order and the first hit wins:
1. Exact substring.
2. Whole-element equality after normalization.
3. Containment after normalization (offsets re-anchored on the raw text).
4. Truncation-tolerant prefix match for long targets.

A miss returns None; callers must surface it, never treat it as success.
"""

from enum import Enum
from typing import NamedTuple, Optional

import structlog

from redpen.normalize import map_normalized_range, normalize, normalize_with_offsets

logger = structlog.get_logger(__name__)

ANCHOR_LENGTH = 30
PARTIAL_MIN_LENGTH = 50


class MatchKind(str, Enum):
    EXACT = "exact"
    CONTAINS = "contains"
    PARTIAL = "partial"


class Match(NamedTuple):
    kind: MatchKind
    start: int
    end: int  # exclusive

    @property
    def anchor(self) -> int:
        return self.start


def locate(search_text: str, document_text: str, allow_partial: bool = True) -> Optional[Match]:
    if not search_text or not document_text:
        return None

    # 1. Exact
    idx = document_text.find(search_text)
    if idx != -1:
        return Match(MatchKind.EXACT, idx, idx + len(search_text))

    norm_search = normalize(search_text)
    if not norm_search:
        return None
    norm_doc, offsets = normalize_with_offsets(document_text)

    # 2. Normalized exact -> whole element
    if norm_doc == norm_search:
        return Match(MatchKind.EXACT, 0, len(document_text))

    # 3. Normalized containment
    norm_idx = norm_doc.find(norm_search)
    if norm_idx != -1:
        start, end = _anchor_containment(search_text, document_text, offsets, norm_idx, len(norm_search))
        return Match(MatchKind.CONTAINS, start, end)

    # 4. Partial (long targets whose tail was altered or truncated)
    if allow_partial and len(search_text) > PARTIAL_MIN_LENGTH:
        norm_prefix = normalize(search_text[:PARTIAL_MIN_LENGTH])
        norm_idx = norm_doc.find(norm_prefix) if norm_prefix else -1
        if norm_idx != -1:
            start, _ = map_normalized_range(offsets, norm_idx, len(norm_prefix), len(document_text))
            end = min(start + len(search_text), len(document_text))
            logger.debug("Partial match", prefix=search_text[:PARTIAL_MIN_LENGTH], start=start, end=end)
            return Match(MatchKind.PARTIAL, start, end)

    return None


def _anchor_containment(search_text, document_text, offsets, norm_idx, norm_len):
    """
    Re-locates a normalized hit on the raw text, since edits need real offsets.
    The literal head/tail of the target are preferred; the offset map is the fallback.
    """
    head = search_text[:ANCHOR_LENGTH]
    start = document_text.find(head)

    if start == -1:
        return map_normalized_range(offsets, norm_idx, norm_len, len(document_text))

    tail = search_text[-ANCHOR_LENGTH:]
    tail_idx = document_text.find(tail, start)
    if tail_idx != -1:
        end = tail_idx + len(tail)
    else:
        end = min(start + len(search_text), len(document_text))
    return start, end


def count_occurrences(search_text: str, document_text: str) -> int:
    """Counts non-overlapping normalized occurrences, used to flag ambiguous targets."""
    norm_search = normalize(search_text)
    if not norm_search:
        return 0
    return normalize(document_text).count(norm_search)
