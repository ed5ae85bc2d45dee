"""
Visual Diff Engine.

A proposed change lives in the document as a struck, coloured deletion run
followed by a coloured insertion run. Each pair is wrapped in two hidden
bookmarks (<prefix>Del_<id>, <prefix>Ins_<id>) so it can be resolved by id
even after the surrounding text was edited by hand. Resolution without an id
falls back to locating the adjacent original + replacement text.

The deletion bookmark name also carries the colour and strikethrough the
deleted text had before marking, as "_" separated segments:
    <RRGGBB or xxxxxx><n|t|f>[<length>]
The length is only written when the deleted text had more than one state.
"""

import re
import uuid
from typing import Iterator, List, NamedTuple, Optional

import structlog
from docx.oxml.ns import qn
from docx.shared import RGBColor
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from redpen.config import Settings
from redpen.locator import count_occurrences
from redpen.models import MutationResult, ReviewOutcome
from redpen.redline.engine import RedlineEngine, preview
from redpen.redline.formatting import FormattingSnapshot, MarkupState
from redpen.redline.mapper import ParagraphMapper
from redpen.utils.docx import clone_run, create_attribute, create_element, get_paragraph_text, remove_runs

logger = structlog.get_logger(__name__)

UNSET_COLOR = "xxxxxx"
STRIKE_CODES = {None: "n", True: "t", False: "f"}
STRIKE_VALUES = {code: value for value, code in STRIKE_CODES.items()}
SEGMENT_RE = re.compile(r"^([0-9A-Fa-f]{6}|x{6})([ntf])(\d*)$")


class Segment(NamedTuple):
    state: MarkupState
    length: Optional[int] = None


def capture_segments(runs: List[Run]) -> List[Segment]:
    segments: List[Segment] = []
    for run in runs:
        state = MarkupState.capture(run)
        if segments and segments[-1].state == state:
            segments[-1] = Segment(state, segments[-1].length + len(run.text))
        else:
            segments.append(Segment(state, len(run.text)))
    if len(segments) == 1:
        return [Segment(segments[0].state)]
    return segments


def encode_segments(segments: List[Segment]) -> str:
    if not segments or segments == [Segment(MarkupState())]:
        return ""
    tokens = []
    for segment in segments:
        color = segment.state.color or UNSET_COLOR
        length = "" if segment.length is None else str(segment.length)
        tokens.append(f"{color}{STRIKE_CODES[segment.state.strike]}{length}")
    return "_" + "_".join(tokens)


def decode_segments(suffix: str) -> List[Segment]:
    """Unreadable suffixes decode to a single unset state."""
    segments = []
    for token in suffix.split("_") if suffix else []:
        match = SEGMENT_RE.match(token)
        if match is None:
            return [Segment(MarkupState())]
        color, strike, length = match.groups()
        state = MarkupState(None if color == UNSET_COLOR else color.upper(), STRIKE_VALUES[strike])
        segments.append(Segment(state, int(length) if length else None))
    return segments or [Segment(MarkupState())]


class ReviewEngine(RedlineEngine):
    def __init__(self, handle, settings: Optional[Settings] = None):
        super().__init__(handle, settings)
        self.body = handle.document.element.body
        self.current_id = self._scan_existing_ids()

    def _scan_existing_ids(self) -> int:
        """
        Bookmark w:id values must be unique within the document.
        """
        max_id = 0
        for el in self.handle.document.element.xpath("//w:bookmarkStart"):
            try:
                val = int(el.get(qn("w:id")))
                if val > max_id:
                    max_id = val
            except (ValueError, TypeError):
                pass
        return max_id

    def _get_next_id(self) -> str:
        self.current_id += 1
        return str(self.current_id)

    # --- Bookmarks ---

    def _wrap_in_bookmark(self, name: str, first: Run, last: Run):
        bm_id = self._get_next_id()
        start = create_element("w:bookmarkStart")
        create_attribute(start, "w:id", bm_id)
        create_attribute(start, "w:name", name)
        end = create_element("w:bookmarkEnd")
        create_attribute(end, "w:id", bm_id)
        first._r.addprevious(start)
        last._r.addnext(end)
        return start, end

    def _add_empty_bookmark(self, name: str, after):
        bm_id = self._get_next_id()
        start = create_element("w:bookmarkStart")
        create_attribute(start, "w:id", bm_id)
        create_attribute(start, "w:name", name)
        end = create_element("w:bookmarkEnd")
        create_attribute(end, "w:id", bm_id)
        after.addnext(start)
        start.addnext(end)

    def _bookmark_start(self, prefix: str, diff_id: str):
        """The bookmark for a diff id; its name may carry a "_..." suffix."""
        base = prefix + diff_id
        for start in self.body.iter(qn("w:bookmarkStart")):
            name = start.get(qn("w:name")) or ""
            if name == base or name.startswith(base + "_"):
                return start
        return None

    def _saved_segments(self, del_start) -> List[Segment]:
        name = del_start.get(qn("w:name")) or ""
        _, _, suffix = name[len(self.settings.deletion_bookmark_prefix) :].partition("_")
        return decode_segments(suffix)

    def _remove_bookmark(self, start):
        bm_id = start.get(qn("w:id"))
        for end in self.body.xpath(f'.//w:bookmarkEnd[@w:id="{bm_id}"]'):
            end.getparent().remove(end)
        start.getparent().remove(start)

    def _runs_in_bookmark(self, start) -> List[Run]:
        """Visible runs between a bookmarkStart and its bookmarkEnd, in document order."""
        p_el = next(start.iterancestors(qn("w:p")), None)
        if p_el is None:
            return []
        paragraph = Paragraph(p_el, self.handle.document)
        bm_id = start.get(qn("w:id"))

        runs = []
        inside = False
        for el in p_el.iter(qn("w:bookmarkStart"), qn("w:bookmarkEnd"), qn("w:r")):
            if el is start:
                inside = True
            elif el.tag == qn("w:bookmarkEnd") and el.get(qn("w:id")) == bm_id:
                break
            elif inside and el.tag == qn("w:r"):
                if next(el.iterancestors(qn("w:del")), None) is None:
                    runs.append(Run(el, paragraph))
        return runs

    def _iter_diff_ids(self, root=None) -> Iterator[str]:
        prefix = self.settings.deletion_bookmark_prefix
        for start in (root if root is not None else self.body).iter(qn("w:bookmarkStart")):
            name = start.get(qn("w:name")) or ""
            if name.startswith(prefix):
                yield name[len(prefix) :].partition("_")[0]

    def _is_pending(self, diff_id: str) -> bool:
        start = self._bookmark_start(self.settings.deletion_bookmark_prefix, diff_id)
        if start is None:
            return False
        return any(run.font.strike and run.text for run in self._runs_in_bookmark(start))

    def pending_diff_ids(self) -> List[str]:
        return [diff_id for diff_id in self._iter_diff_ids() if self._is_pending(diff_id)]

    def _drop_diff_bookmarks(self, diff_id: str):
        for prefix in (self.settings.deletion_bookmark_prefix, self.settings.insertion_bookmark_prefix):
            start = self._bookmark_start(prefix, diff_id)
            if start is not None:
                self._remove_bookmark(start)

    # --- Propose ---

    def mark(self, original: str, replacement: str) -> MutationResult:
        if not original:
            return MutationResult(success=False, message="Original text is empty")
        try:
            return self._mark(original, replacement or "")
        except Exception as e:
            logger.exception("Mark failed", target=preview(original))
            return MutationResult(success=False, message=f"Mark failed: {e}", original=original)

    def _mark(self, original: str, replacement: str) -> MutationResult:
        location = self.locate(original)
        if location is None:
            return self.not_found(original)

        runs = self.handle.runs_in_range(location.paragraph, location.start, location.end)
        if not runs:
            return self.not_found(original)

        snapshot = FormattingSnapshot.capture(runs[0])
        segments = capture_segments(runs)

        insertion = None
        if replacement:
            # Formatting comes from the match start; placement is after the match end
            insertion = clone_run(runs[0], replacement, after=True)
            runs[-1]._r.addnext(insertion._r)
            snapshot.with_overrides(
                bold=bool(snapshot.bold),
                italic=bool(snapshot.italic),
                strikethrough=False,
                foreground_color=self.settings.insertion_color,
            ).apply(insertion)

        deletion_color = RGBColor.from_string(self.settings.deletion_color)
        for run in runs:
            run.font.strike = True
            run.font.color.rgb = deletion_color

        diff_id = uuid.uuid4().hex[:12]
        ins_name = self.settings.insertion_bookmark_prefix + diff_id
        del_name = self.settings.deletion_bookmark_prefix + diff_id + encode_segments(segments)
        _, del_end = self._wrap_in_bookmark(del_name, runs[0], runs[-1])
        if insertion is not None:
            self._wrap_in_bookmark(ins_name, insertion, insertion)
        else:
            self._add_empty_bookmark(ins_name, del_end)

        logger.info("Change proposed", diff_id=diff_id, target=preview(original), match_kind=location.kind.value)
        return MutationResult(
            success=True,
            message=f"Proposed change for '{preview(original)}'",
            diff_id=diff_id,
            match_kind=location.kind.value,
            original=original,
        )

    # --- Resolve ---

    def resolve(
        self,
        original: str,
        replacement: str,
        outcome: ReviewOutcome,
        diff_id: Optional[str] = None,
    ) -> MutationResult:
        outcome = ReviewOutcome(outcome)
        try:
            if diff_id:
                return self.resolve_by_id(diff_id, outcome)
            return self.resolve_by_text(original, replacement or "", outcome)
        except Exception as e:
            logger.exception("Resolve failed", diff_id=diff_id, target=preview(original or ""))
            return MutationResult(success=False, message=f"Resolve failed: {e}", diff_id=diff_id, original=original)

    def resolve_by_id(self, diff_id: str, outcome: ReviewOutcome) -> MutationResult:
        del_start = self._bookmark_start(self.settings.deletion_bookmark_prefix, diff_id)
        ins_start = self._bookmark_start(self.settings.insertion_bookmark_prefix, diff_id)
        if del_start is None or ins_start is None:
            logger.warning("No pending change with this id", diff_id=diff_id)
            return MutationResult(success=False, message=f"No pending change with id '{diff_id}'", diff_id=diff_id)

        deletion = self._runs_in_bookmark(del_start)
        insertion = self._runs_in_bookmark(ins_start)
        original = "".join(r.text for r in deletion)
        paragraph = Paragraph(next(del_start.iterancestors(qn("w:p"))), self.handle.document)
        self._collapse(paragraph, deletion, insertion, outcome, self._saved_segments(del_start))
        self._remove_bookmark(del_start)
        self._remove_bookmark(ins_start)

        logger.info("Change resolved", diff_id=diff_id, outcome=outcome.value)
        return MutationResult(
            success=True,
            message=f"Change {outcome.value}ed",
            diff_id=diff_id,
            original=original,
        )

    def resolve_by_text(self, original: str, replacement: str, outcome: ReviewOutcome) -> MutationResult:
        if not original:
            return MutationResult(success=False, message="Original text is empty")

        combined = original + replacement
        # Never partial: a truncated pair must not be resolved by guesswork
        location = self.locate(combined, allow_partial=False)
        if location is None:
            logger.warning("Proposed change not found", target=preview(original))
            return MutationResult(
                success=False,
                message=f"Proposed change not found (already resolved or edited?): '{preview(original)}'",
                original=original,
            )

        split = max(location.end - len(replacement), location.start)
        if not self._looks_proposed(location.paragraph, location.start, split, location.end):
            logger.warning("Text found but not marked as a proposed change", target=preview(original))
            return MutationResult(
                success=False,
                message=f"Text found but it is not a pending proposed change: '{preview(original)}'",
                original=original,
            )

        occurrences = sum(count_occurrences(combined, get_paragraph_text(p)) for p in self.handle.iter_paragraphs())

        deletion = self.handle.runs_in_range(location.paragraph, location.start, split)
        insertion = self.handle.runs_in_range(location.paragraph, split, location.end)
        segments = self._segments_enclosing(location.paragraph, deletion)
        self._collapse(location.paragraph, deletion, insertion, outcome, segments)

        for diff_id in list(self._iter_diff_ids(location.paragraph._p)):
            if not self._is_pending(diff_id):
                self._drop_diff_bookmarks(diff_id)

        message = f"Change {outcome.value}ed"
        if occurrences > 1:
            logger.warning("Ambiguous change: resolved the first occurrence", occurrences=occurrences)
            message += f" (ambiguous: {occurrences} occurrences, resolved the first)"

        logger.info("Change resolved", outcome=outcome.value, target=preview(original))
        return MutationResult(success=True, message=message, match_kind=location.kind.value, original=original)

    def _looks_proposed(self, paragraph: Paragraph, start: int, split: int, end: int) -> bool:
        """The deletion part must be struck through and the insertion part must not."""
        spans = ParagraphMapper(paragraph).spans
        deletion = [s for s in spans if s.end > start and s.start < split]
        insertion = [s for s in spans if s.end > split and s.start < end]
        if not deletion:
            return False
        return all(s.run.font.strike for s in deletion) and not any(s.run.font.strike for s in insertion)

    def _segments_enclosing(self, paragraph: Paragraph, deletion: List[Run]) -> List[Segment]:
        if deletion:
            for diff_id in self._iter_diff_ids(paragraph._p):
                start = self._bookmark_start(self.settings.deletion_bookmark_prefix, diff_id)
                if start is not None and any(r._r is deletion[0]._r for r in self._runs_in_bookmark(start)):
                    return self._saved_segments(start)
        return [Segment(MarkupState())]

    def _collapse(
        self,
        paragraph: Paragraph,
        deletion: List[Run],
        insertion: List[Run],
        outcome: ReviewOutcome,
        segments: List[Segment],
    ):
        if outcome == ReviewOutcome.ACCEPT:
            remove_runs(deletion)
            # The accepted text takes the colour the replaced text started with
            for run in insertion:
                segments[0].state.restore(run)
        else:
            remove_runs(insertion)
            self._restore_deletion(paragraph, deletion, segments)

    def _restore_deletion(self, paragraph: Paragraph, deletion: List[Run], segments: List[Segment]):
        """Puts back the pre-mark colour and strikethrough, segment by segment."""
        total = sum(len(run.text) for run in deletion)
        lengths = [segment.length for segment in segments]
        first = next((run for run in deletion if run.text), None)
        span = None
        if first is not None and None not in lengths and sum(lengths) == total:
            span = next((s for s in ParagraphMapper(paragraph).spans if s.run._r is first._r), None)

        if span is None:
            # Unsegmented, or the deleted text was edited by hand
            for run in deletion:
                segments[0].state.restore(run)
            return

        offset = span.start
        for segment in segments:
            for run in self.handle.runs_in_range(paragraph, offset, offset + segment.length):
                segment.state.restore(run)
            offset += segment.length

    def resolve_pending(self, outcome: ReviewOutcome) -> List[MutationResult]:
        return [self.resolve_by_id(diff_id, ReviewOutcome(outcome)) for diff_id in self.pending_diff_ids()]


def mark(handle, original: str, replacement: str, settings: Optional[Settings] = None) -> MutationResult:
    return ReviewEngine(handle, settings).mark(original, replacement)


def resolve(
    handle,
    original: str,
    replacement: str,
    outcome: ReviewOutcome,
    diff_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> MutationResult:
    return ReviewEngine(handle, settings).resolve(original, replacement, outcome, diff_id=diff_id)


def pending_diff_ids(handle, settings: Optional[Settings] = None) -> List[str]:
    return ReviewEngine(handle, settings).pending_diff_ids()
