import re
from typing import NamedTuple, Optional

import structlog
from docx.text.paragraph import Paragraph

from redpen.config import Settings, get_settings
from redpen.locator import MatchKind, locate
from redpen.models import MutationResult
from redpen.redline.formatting import FormattingSnapshot
from redpen.utils.docx import clone_run, get_paragraph_text, normalize_docx, remove_runs

logger = structlog.get_logger(__name__)


def preview(text: str, limit: int = 40) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit] + "..."


class Location(NamedTuple):
    paragraph: Paragraph
    start: int
    end: int  # exclusive
    kind: MatchKind


class RedlineEngine:
    """
    In-place text replacement on an open DocumentHandle.
    The handle is only edited; persisting it is the caller's job.
    """

    def __init__(self, handle, settings: Optional[Settings] = None):
        self.handle = handle
        self.settings = settings or get_settings()
        normalize_docx(handle.document)

    def locate(self, text: str, allow_partial: bool = True) -> Optional[Location]:
        """
        Store-level literal search first, then the fuzzy ladder paragraph by paragraph.
        """
        hit = self.handle.find_text(re.escape(text))
        if hit is not None:
            return Location(hit.paragraph, hit.start, hit.end_inclusive + 1, MatchKind.EXACT)

        for paragraph in self.handle.iter_paragraphs():
            match = locate(text, get_paragraph_text(paragraph), allow_partial=allow_partial)
            if match is not None:
                logger.debug("Fuzzy match", kind=match.kind.value, start=match.start, end=match.end)
                return Location(paragraph, match.start, match.end, match.kind)
        return None

    def not_found(self, original: str) -> MutationResult:
        logger.warning("Skipping change: target not found", target=preview(original))
        return MutationResult(
            success=False,
            message=f"Text not found in document: '{preview(original)}'",
            original=original,
        )

    def replace(self, original: str, new_text: str) -> MutationResult:
        if not original:
            return MutationResult(success=False, message="Original text is empty")
        try:
            return self._replace(original, new_text)
        except Exception as e:
            logger.exception("Replace failed", target=preview(original))
            return MutationResult(success=False, message=f"Replace failed: {e}", original=original)

    def _replace(self, original: str, new_text: str) -> MutationResult:
        location = self.locate(original)
        if location is None:
            return self.not_found(original)

        runs = self.handle.runs_in_range(location.paragraph, location.start, location.end)
        if not runs:
            return self.not_found(original)

        snapshot = FormattingSnapshot.capture(runs[0])
        if new_text:
            new_run = clone_run(runs[0], new_text, after=False)
            snapshot.apply(new_run)
        remove_runs(runs)

        logger.info("Text replaced", target=preview(original), match_kind=location.kind.value)
        return MutationResult(
            success=True,
            message=f"Replaced '{preview(original)}'",
            match_kind=location.kind.value,
            original=original,
        )


def replace(handle, original: str, new_text: str, settings: Optional[Settings] = None) -> MutationResult:
    return RedlineEngine(handle, settings).replace(original, new_text)
