"""
Low-level utilities for reading and manipulating DOCX XML structures.
"""

import re
from copy import deepcopy
from typing import Iterator, List, Optional, Union

import structlog
from docx.document import Document as DocumentObject
from docx.oxml import OxmlElement
from docx.oxml.ns import qn
from docx.table import Table, _Cell
from docx.text.paragraph import Paragraph
from docx.text.run import Run

logger = structlog.get_logger(__name__)

# Containers whose w:r children are rendered as part of the paragraph text.
# w:del is deliberately absent: tracked deletions are not visible text.
_RUN_CONTAINERS = {
    qn("w:hyperlink"),
    qn("w:ins"),
    qn("w:fldSimple"),
    qn("w:smartTag"),
}

_HEADING_STYLE_RE = re.compile(r"^Heading\s*\d$")
_LIST_STYLE_LEVEL_RE = re.compile(r"(\d+)$")


def create_element(name: str):
    return OxmlElement(name)


def create_attribute(element, name: str, value: str):
    element.set(qn(name), value)


def _iter_run_elements(container) -> Iterator:
    for child in container:
        if child.tag == qn("w:r"):
            yield child
        elif child.tag in _RUN_CONTAINERS:
            yield from _iter_run_elements(child)


def get_visible_runs(paragraph: Paragraph) -> List[Run]:
    """
    Runs in a paragraph as a reader sees them: direct runs plus those wrapped in
    hyperlinks, simple fields, smart tags and tracked insertions.
    """
    return [Run(r, paragraph) for r in _iter_run_elements(paragraph._p)]


def get_paragraph_text(paragraph: Paragraph) -> str:
    """
    Concatenated text of the visible runs.
    Tabs read as '\\t' and line breaks as '\\n' (python-docx Run.text semantics).
    """
    return "".join(run.text for run in get_visible_runs(paragraph))


def _style_chain(style) -> Iterator:
    seen = set()
    while style is not None and style.style_id not in seen:
        seen.add(style.style_id)
        yield style
        style = style.base_style


def _outline_level(p_pr) -> Optional[int]:
    if p_pr is None:
        return None
    lvl = p_pr.find(qn("w:outlineLvl"))
    if lvl is None:
        return None
    try:
        return int(lvl.get(qn("w:val")))
    except (TypeError, ValueError):
        return None


def get_heading_style(paragraph: Paragraph) -> Optional[str]:
    """
    Returns the heading style name of a paragraph, or None for body text.

    Headings are 'Heading N', 'Title' and 'Subtitle' styles, or any paragraph
    with an explicit outline level 0-8 (directly or through its style).
    """
    style = paragraph.style
    style_name = style.name if style is not None else None

    if style_name and (_HEADING_STYLE_RE.match(style_name) or style_name in ("Title", "Subtitle")):
        return style_name

    level = _outline_level(paragraph._p.pPr)
    if level is None and style is not None:
        for s in _style_chain(style):
            level = _outline_level(s.element.pPr)
            if level is not None:
                break

    if level is not None and 0 <= level <= 8:
        return style_name or f"Outline {level + 1}"
    return None


def _num_pr(p_pr):
    if p_pr is None:
        return None
    return p_pr.find(qn("w:numPr"))


def get_list_level(paragraph: Paragraph) -> Optional[int]:
    """
    Returns the nesting level (0-based) if the paragraph is a list item, else None.
    Checks direct numbering, numbering inherited from the style chain, then 'List*' style names.
    """
    num_pr = _num_pr(paragraph._p.pPr)
    style = paragraph.style

    if num_pr is None and style is not None:
        for s in _style_chain(style):
            num_pr = _num_pr(s.element.pPr)
            if num_pr is not None:
                break

    if num_pr is not None:
        ilvl = num_pr.find(qn("w:ilvl"))
        num_id = num_pr.find(qn("w:numId"))
        # numId 0 explicitly removes numbering
        if num_id is not None and num_id.get(qn("w:val")) == "0":
            num_pr = None
        elif ilvl is not None:
            try:
                return int(ilvl.get(qn("w:val")))
            except (TypeError, ValueError):
                return 0
        else:
            return _level_from_style_name(style)

    if style is not None and style.name and style.name.startswith("List"):
        return _level_from_style_name(style)
    return None


def _level_from_style_name(style) -> int:
    if style is None or not style.name:
        return 0
    match = _LIST_STYLE_LEVEL_RE.search(style.name)
    if match:
        return max(int(match.group(1)) - 1, 0)
    return 0


def get_cell_text(cell: _Cell) -> str:
    return "\n".join(get_paragraph_text(p) for p in cell.paragraphs)


def table_rows(table: Table) -> List[List[str]]:
    """
    Cell texts row by row. Horizontally merged cells are reported once.
    """
    rows = []
    for row in table.rows:
        seen = set()
        cells = []
        for cell in row.cells:
            if id(cell._tc) in seen:
                continue
            seen.add(id(cell._tc))
            cells.append(get_cell_text(cell))
        rows.append(cells)
    return rows


def table_to_text(table: Table) -> str:
    """Flattens a table to 'r1c1 | r1c2\\nr2c1 | r2c2'."""
    return "\n".join(" | ".join(cells) for cells in table_rows(table))


def iter_block_items(parent) -> Iterator[Union[Paragraph, Table]]:
    """
    Yields Paragraph or Table objects in the order they appear in the XML.
    Supports Document, Header, Footer, and Cell objects.
    Recursion is left to the caller.
    """
    if isinstance(parent, DocumentObject):
        parent_elm = parent.element.body
    elif isinstance(parent, _Cell):
        parent_elm = parent._tc
    elif hasattr(parent, "_element"):
        parent_elm = parent._element
    else:
        raise ValueError(f"Unsupported parent type for iteration: {type(parent)}")

    for child in parent_elm.iterchildren():
        if child.tag == qn("w:p"):
            yield Paragraph(child, parent)
        elif child.tag == qn("w:tbl"):
            yield Table(child, parent)


def iter_all_paragraphs(parent) -> Iterator[Paragraph]:
    """Paragraphs in document order, descending into table cells."""
    for item in iter_block_items(parent):
        if isinstance(item, Paragraph):
            yield item
        else:
            for row in item.rows:
                seen = set()
                for cell in row.cells:
                    if id(cell._tc) in seen:
                        continue
                    seen.add(id(cell._tc))
                    yield from iter_all_paragraphs(cell)


def iter_header_parts(doc: DocumentObject):
    """
    Yields the unique running-head parts (primary, first page, even page) of every section.
    Handles 'Link to Previous' to avoid duplication.
    """
    for section in doc.sections:
        if not section.header.is_linked_to_previous:
            yield section.header
        if section.different_first_page_header_footer and not section.first_page_header.is_linked_to_previous:
            yield section.first_page_header
        if doc.settings.odd_and_even_pages_header_footer and not section.even_page_header.is_linked_to_previous:
            yield section.even_page_header


def clone_run(source: Run, text: str, after: bool = True) -> Run:
    """
    Creates a sibling run carrying the source's run properties and the given text,
    placed right after (or before) the source run.
    """
    new_r = deepcopy(source._r)
    if after:
        source._r.addnext(new_r)
    else:
        source._r.addprevious(new_r)
    new_run = Run(new_r, source._parent)
    new_run.text = text
    return new_run


def remove_runs(runs: List[Run]):
    for run in runs:
        parent = run._r.getparent()
        if parent is not None:
            parent.remove(run._r)


def _are_runs_identical(r1: Run, r2: Run) -> bool:
    rPr1 = r1._r.rPr
    rPr2 = r2._r.rPr
    xml1 = rPr1.xml if rPr1 is not None else ""
    xml2 = rPr2.xml if rPr2 is not None else ""
    return xml1 == xml2


_SAFE_TAGS = {
    qn("w:t"),
    qn("w:tab"),
    qn("w:br"),
    qn("w:cr"),
    qn("w:rPr"),
}


def _has_special_content(run: Run) -> bool:
    """
    Checks if the run contains elements that would be lost by text-only coalescing
    (fields, drawings, comment references).
    """
    return any(child.tag not in _SAFE_TAGS for child in run._r)


def _coalesce_runs_in_paragraph(paragraph: Paragraph):
    """
    Merges adjacent runs with identical formatting.
    Fixes words split like ["Con", "tract"] by editing history, which would
    otherwise make a single phrase span several runs.
    Runs separated by any other element (bookmarks, hyperlinks) are left alone.
    """
    runs = paragraph.runs
    i = 0
    while i < len(runs) - 1:
        current_run = runs[i]
        next_run = runs[i + 1]

        if (
            current_run._r.getnext() is not next_run._r
            or _has_special_content(current_run)
            or _has_special_content(next_run)
            or not _are_runs_identical(current_run, next_run)
        ):
            i += 1
            continue

        # Move children manually to preserve w:br, w:tab, etc.
        for child in list(next_run._r):
            if child.tag == qn("w:rPr"):
                continue
            current_run._r.append(child)
        paragraph._p.remove(next_run._r)
        runs.pop(i + 1)


def normalize_docx(doc: DocumentObject):
    """
    Applies normalization to a DOCX document to make text mapping reliable.
    1. Removes proof errors (spellcheck squiggles).
    2. Coalesces adjacent runs in the body and running heads.
    """
    logger.debug("Normalizing DOCX structure")

    for proof_err in doc.element.xpath("//w:proofErr"):
        proof_err.getparent().remove(proof_err)

    for part in [*iter_header_parts(doc), doc]:
        for paragraph in iter_all_paragraphs(part):
            _coalesce_runs_in_paragraph(paragraph)
