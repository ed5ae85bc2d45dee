"""
Formatting Snapshot: a value copy of the per-character style attributes that
a mutation must carry over from the text it replaces.
"""

from dataclasses import dataclass, replace
from typing import NamedTuple, Optional, Union

from docx.enum.text import WD_UNDERLINE
from docx.shared import Pt, RGBColor
from docx.text.run import Run

Underline = Union[bool, WD_UNDERLINE, None]


@dataclass(frozen=True)
class FormattingSnapshot:
    """
    None means "not set on the run" (inherited from the style); such
    fields are never forced onto the target when the snapshot is applied.
    """

    font_family: Optional[str] = None
    font_size: Optional[float] = None  # points
    bold: Optional[bool] = None
    italic: Optional[bool] = None
    underline: Underline = None
    strikethrough: Optional[bool] = None
    foreground_color: Optional[str] = None  # RRGGBB

    @classmethod
    def capture(cls, run: Run) -> "FormattingSnapshot":
        font = run.font
        color = None
        if font.color is not None and font.color.type is not None and font.color.rgb is not None:
            color = str(font.color.rgb)
        return cls(
            font_family=font.name,
            font_size=font.size.pt if font.size is not None else None,
            bold=font.bold,
            italic=font.italic,
            underline=font.underline,
            strikethrough=font.strike,
            foreground_color=color,
        )

    def apply(self, run: Run):
        font = run.font
        if self.font_family is not None:
            font.name = self.font_family
        if self.font_size is not None:
            font.size = Pt(self.font_size)
        if self.bold is not None:
            font.bold = self.bold
        if self.italic is not None:
            font.italic = self.italic
        if self.underline is not None:
            font.underline = self.underline
        if self.strikethrough is not None:
            font.strike = self.strikethrough
        if self.foreground_color is not None:
            font.color.rgb = RGBColor.from_string(self.foreground_color)

    def with_overrides(self, **changes) -> "FormattingSnapshot":
        return replace(self, **changes)


class MarkupState(NamedTuple):
    """Colour and strikethrough of a run before it was marked as a deletion."""

    color: Optional[str] = None  # RRGGBB
    strike: Optional[bool] = None

    @classmethod
    def capture(cls, run: Run) -> "MarkupState":
        snapshot = FormattingSnapshot.capture(run)
        return cls(snapshot.foreground_color, snapshot.strikethrough)

    def restore(self, run: Run):
        """Unset fields are cleared back to the inherited default."""
        run.font.strike = self.strike
        run.font.color.rgb = RGBColor.from_string(self.color) if self.color else None
