from enum import Enum
from typing import Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class ElementKind(str, Enum):
    PARAGRAPH = "paragraph"
    LIST_ITEM = "listItem"
    TABLE = "table"


class ContentItem(BaseModel):
    """One paragraph, list item or flattened table of a parsed document."""

    kind: ElementKind
    content: str
    source_position: int = Field(..., description="Index into the document's top-level child sequence.")
    nesting_level: int = 0


class Element(ContentItem):
    """A content item as it appears in the flat, positional element list."""

    section: str
    is_header: bool = False


class SectionModel(BaseModel):
    """
    Parsed view of a document: named sections in first-seen order,
    plus every top-level child tagged with the section it was visited in.
    """

    sections: Dict[str, List[ContentItem]] = Field(default_factory=dict)
    elements: List[Element] = Field(default_factory=list)

    def section_names(self) -> List[str]:
        return list(self.sections.keys())

    def item_count(self) -> int:
        return sum(len(items) for items in self.sections.values())

    def section_text(self, name: str) -> str:
        return "\n".join(item.content for item in self.sections.get(name, []))

    def element_at(self, position: int) -> Optional[Element]:
        for element in self.elements:
            if element.source_position == position:
                return element
        return None


class ChangeProposal(BaseModel):
    """
    A text substitution suggested by an external source (usually an LLM).
    Lookup is always by `original`; `section` is advisory only.
    """

    model_config = ConfigDict(populate_by_name=True)

    section: Optional[str] = Field(None, description="Section the change belongs to (informational).")
    original: str = Field(
        ...,
        validation_alias=AliasChoices("original", "target_text"),
        description="Text copied from the document. Must be findable in it.",
    )
    replacement: str = Field(
        ...,
        validation_alias=AliasChoices("replacement", "tailored", "new_text"),
        description="Text that should take the place of `original`.",
    )
    reason: Optional[str] = Field(None, description="Why the change is suggested.")


class ReviewOutcome(str, Enum):
    ACCEPT = "accept"
    REJECT = "reject"


class _ResultModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_dict(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")


class MutationResult(_ResultModel):
    success: bool
    message: str = ""
    diff_id: Optional[str] = None
    match_kind: Optional[str] = None
    original: Optional[str] = None


class BatchResult(_ResultModel):
    success: bool = True
    applied_count: int = 0
    failed_count: int = 0
    results: List[MutationResult] = Field(default_factory=list)

    def add(self, result: MutationResult) -> None:
        self.results.append(result)
        if result.success:
            self.applied_count += 1
        else:
            self.failed_count += 1
        self.success = self.failed_count == 0


class CopyResult(_ResultModel):
    id: str
    name: str
    url: str


class TailorResult(_ResultModel):
    copy_: Optional[CopyResult] = Field(None, alias="copy")
    batch: BatchResult = Field(default_factory=BatchResult)
