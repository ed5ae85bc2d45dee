from copy import deepcopy
from dataclasses import dataclass
from typing import List, Optional, Tuple

import structlog
from docx.oxml.ns import qn
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from redpen.utils.docx import get_visible_runs

logger = structlog.get_logger(__name__)

# Children that contribute to Run.text
TEXT_TAGS = frozenset(qn(tag) for tag in ("w:br", "w:cr", "w:noBreakHyphen", "w:ptab", "w:t", "w:tab"))


@dataclass
class TextSpan:
    start: int
    end: int
    text: str
    run: Run


class ParagraphMapper:
    """
    Maps character offsets of a paragraph's visible text onto its runs,
    so a located [start, end) range can be turned into whole runs.
    """

    def __init__(self, paragraph: Paragraph):
        self.paragraph = paragraph
        self.full_text = ""
        self.spans: List[TextSpan] = []
        self._build_map()

    def _build_map(self):
        current = 0
        self.spans = []
        parts = []
        for run in get_visible_runs(self.paragraph):
            text = run.text
            if not text:
                continue
            self.spans.append(TextSpan(start=current, end=current + len(text), text=text, run=run))
            parts.append(text)
            current += len(text)
        self.full_text = "".join(parts)

    def find_runs_by_index(self, start_idx: int, end_idx: int) -> List[Run]:
        """
        Returns the runs covering exactly [start_idx, end_idx), splitting
        the boundary runs when the range starts or ends inside them.
        """
        if start_idx >= end_idx:
            return []

        # End first, so the start offsets stay valid for the second split.
        end_span = self._span_containing(end_idx)
        if end_span is not None and end_span.start < end_idx < end_span.end:
            self._split_run_at_index(end_span.run, end_idx - end_span.start)
            self._build_map()

        start_span = self._span_containing(start_idx)
        if start_span is not None and start_span.start < start_idx < start_span.end:
            self._split_run_at_index(start_span.run, start_idx - start_span.start)
            self._build_map()

        return [s.run for s in self.spans if s.start >= start_idx and s.end <= end_idx]

    def _span_containing(self, index: int) -> Optional[TextSpan]:
        for span in self.spans:
            if span.start <= index < span.end:
                return span
        return None

    def _split_run_at_index(self, run: Run, split_index: int) -> Tuple[Run, Run]:
        """
        Splits a run in two at a text offset. Non-text children (drawings,
        field characters, page breaks) stay on the side they sit on.
        """
        new_r_element = deepcopy(run._r)
        run._r.addnext(new_r_element)
        new_run = Run(new_r_element, run._parent)

        offset = 0
        for left, right in zip(list(run._r), list(new_r_element)):
            if left.tag == qn("w:rPr"):
                continue
            length = len(str(left)) if left.tag in TEXT_TAGS else 0
            if length and offset < split_index < offset + length:
                # Only w:t holds more than one character
                cut = split_index - offset
                text = left.text
                left.text = text[:cut]
                right.text = text[cut:]
                left.set(qn("xml:space"), "preserve")
                right.set(qn("xml:space"), "preserve")
            elif offset + length <= split_index and (length or offset < split_index):
                new_r_element.remove(right)
            else:
                run._r.remove(left)
            offset += length
        return run, new_run

    def runs_at(self, index: int) -> Optional[Run]:
        span = self._span_containing(index)
        return span.run if span is not None else None
