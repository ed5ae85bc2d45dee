"""
Structural Parser: turns a loosely formatted document into a Section Model.

The walk is a fold over the top-level children with an explicit accumulator,
so no scan state outlives a call.
"""

from dataclasses import dataclass, field
from functools import reduce
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

import structlog

from redpen.errors import UnparseableDocumentError
from redpen.models import ContentItem, Element, ElementKind, SectionModel

logger = structlog.get_logger(__name__)

HEADER_SECTION = "Header"

# Paragraphs longer than this are prose, even when they mention a keyword.
KEYWORD_HEADER_MAX_LENGTH = 60
ALL_CAPS_MIN_LENGTH = 4

SECTION_KEYWORDS = (
    "SUMMARY",
    "PROFILE",
    "OBJECTIVE",
    "EXPERIENCE",
    "EMPLOYMENT",
    "WORK HISTORY",
    "SKILLS",
    "EDUCATION",
    "PROJECTS",
    "CERTIFICATIONS",
    "CERTIFICATES",
    "AWARDS",
    "HONORS",
    "ACHIEVEMENTS",
    "PUBLICATIONS",
    "VOLUNTEER",
    "LANGUAGES",
    "INTERESTS",
    "ACTIVITIES",
    "LEADERSHIP",
    "REFERENCES",
    "TRAINING",
    "COURSEWORK",
    "QUALIFICATIONS",
    "COMPETENCIES",
    "TECHNOLOGIES",
)

_SECTION_NAME_STRIP = ":-–— \t"


class HeaderSignals(NamedTuple):
    has_heading_style: bool
    is_all_caps: bool
    matches_keyword: bool


def matches_section_keyword(text: str, keywords: Iterable[str] = SECTION_KEYWORDS) -> bool:
    upper = text.upper()
    return any(keyword.upper() in upper for keyword in keywords)


def is_all_caps(text: str) -> bool:
    stripped = text.strip()
    # isupper() is False when there is no cased letter at all ("2019 - 2021").
    return len(stripped) >= ALL_CAPS_MIN_LENGTH and stripped.isupper()


def header_signals(
    text: str, heading_style: Optional[str] = None, keywords: Iterable[str] = SECTION_KEYWORDS
) -> HeaderSignals:
    stripped = text.strip()
    return HeaderSignals(
        has_heading_style=bool(heading_style),
        is_all_caps=is_all_caps(stripped),
        matches_keyword=len(stripped) <= KEYWORD_HEADER_MAX_LENGTH and matches_section_keyword(stripped, keywords),
    )


def is_header(signals: HeaderSignals) -> bool:
    return any(signals)


def normalize_section_name(text: str) -> str:
    return text.strip().strip(_SECTION_NAME_STRIP).strip()


@dataclass
class _ParseState:
    keywords: Sequence[str]
    current_section: str = HEADER_SECTION
    sections: Dict[str, List[ContentItem]] = field(default_factory=lambda: {HEADER_SECTION: []})
    elements: List[Element] = field(default_factory=list)


def _visit(state: _ParseState, child) -> _ParseState:
    text = child.text.strip()
    header = False

    if child.kind == ElementKind.PARAGRAPH and text:
        header = is_header(header_signals(text, child.heading_style, state.keywords))
        if header:
            name = normalize_section_name(text) or text
            state.current_section = name
            state.sections.setdefault(name, [])

    item = ContentItem(
        kind=child.kind,
        content=child.text if child.kind == ElementKind.TABLE else text,
        source_position=child.position,
        nesting_level=child.nesting_level,
    )
    if not header and item.content:
        state.sections[state.current_section].append(item)

    state.elements.append(Element(**item.model_dump(), section=state.current_section, is_header=header))
    return state


def build_section_model(children, keywords: Optional[Iterable[str]] = None) -> SectionModel:
    """Builds a Section Model from BlockElement-like records (kind, text, position, ...)."""
    vocabulary = tuple(keywords) if keywords is not None else SECTION_KEYWORDS
    state = reduce(_visit, children, _ParseState(keywords=vocabulary))
    return SectionModel(sections=state.sections, elements=state.elements)


def parse(handle, extra_keywords: Optional[Iterable[str]] = None) -> SectionModel:
    keywords = SECTION_KEYWORDS + tuple(extra_keywords or ())
    model = build_section_model(handle.get_top_level_children(), keywords)
    logger.debug(
        "Document parsed",
        sections=model.section_names(),
        items=model.item_count(),
        elements=len(model.elements),
    )
    return model


def require_content(model: SectionModel, doc_id: str = "") -> SectionModel:
    if model.item_count() == 0:
        raise UnparseableDocumentError(
            f"No readable content found in document '{doc_id}'. "
            "Check that it contains text paragraphs, lists or tables."
        )
    return model
