"""
Header Name Extractor: finds the most likely candidate-name line of a resume.

Names sit in very different places (running head or body, heading-styled or
plain, occasionally in a table), so several cheap strategies are tried per region.
"""

import re
from typing import Iterable, List, Optional

import structlog

from redpen.models import ElementKind
from redpen.parser import SECTION_KEYWORDS, matches_section_keyword

logger = structlog.get_logger(__name__)

NAME_MAX_LENGTH = 50
HEADING_SCAN_LIMIT = 5
LINE_SCAN_LIMIT = 10

PHONE_RE = re.compile(r"^(?:\+?1[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}")
STREET_RE = re.compile(r"^\d+\s+[A-Za-z]")
URL_RE = re.compile(r"https?://|www\.", re.IGNORECASE)


def looks_like_contact(text: str) -> bool:
    lowered = text.lower()
    return (
        "@" in text
        or bool(PHONE_RE.match(text))
        or bool(STREET_RE.match(text))
        or bool(URL_RE.search(text))
        or "linkedin" in lowered
        or "github" in lowered
    )


def _from_headings(blocks, keywords) -> Optional[str]:
    paragraphs = [b for b in blocks if b.kind != ElementKind.TABLE][:HEADING_SCAN_LIMIT]
    for block in paragraphs:
        text = block.text.strip()
        if (
            block.heading_style
            and text
            and len(text) < NAME_MAX_LENGTH
            and not matches_section_keyword(text, keywords)
        ):
            return text
    return None


def _from_lines(blocks, keywords) -> Optional[str]:
    paragraphs = [b for b in blocks if b.kind != ElementKind.TABLE][:LINE_SCAN_LIMIT]
    for block in paragraphs:
        # A single paragraph may hold "Name\nCity | phone" separated by line breaks
        for line in block.text.split("\n"):
            text = line.strip()
            if (
                1 < len(text) < NAME_MAX_LENGTH
                and not matches_section_keyword(text, keywords)
                and not looks_like_contact(text)
            ):
                return text
    return None


def _from_table(blocks, keywords) -> Optional[str]:
    table = next((b for b in blocks if b.kind == ElementKind.TABLE), None)
    if table is None or not table.table_rows or not table.table_rows[0]:
        return None
    first_cell = table.table_rows[0][0].strip()
    text = first_cell.split("\n")[0].strip() if first_cell else ""
    if 1 < len(text) < NAME_MAX_LENGTH and "@" not in text and not matches_section_keyword(text, keywords):
        return text
    return None


_STRATEGIES = (_from_headings, _from_lines, _from_table)


def extract_name_from_blocks(regions: List[list], keywords: Iterable[str] = SECTION_KEYWORDS) -> Optional[str]:
    keywords = tuple(keywords)
    for region in regions:
        for strategy in _STRATEGIES:
            name = strategy(region, keywords)
            if name:
                logger.debug("Candidate name found", strategy=strategy.__name__, name=name)
                return name
    return None


def extract_name(handle, extra_keywords: Optional[Iterable[str]] = None) -> Optional[str]:
    """Searches the running head first, then the body."""
    keywords = SECTION_KEYWORDS + tuple(extra_keywords or ())
    return extract_name_from_blocks([handle.header_blocks(), handle.body_blocks()], keywords)
