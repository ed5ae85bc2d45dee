"""
Document Store over .docx files on disk.

Document identifiers are paths relative to the store root; the '.docx'
suffix is optional. Every mutation is framed by open() ... persist_and_close().
"""

import re
import shutil
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, NamedTuple, Optional, Union
from zipfile import BadZipFile

import structlog
from docx import Document
from docx.document import Document as DocumentObject
from docx.opc.exceptions import PackageNotFoundError
from docx.table import Table
from docx.text.paragraph import Paragraph
from docx.text.run import Run

from redpen.errors import StoreAccessError
from redpen.models import CopyResult, ElementKind
from redpen.redline.formatting import FormattingSnapshot
from redpen.redline.mapper import ParagraphMapper
from redpen.utils.docx import (
    get_heading_style,
    get_list_level,
    get_paragraph_text,
    iter_all_paragraphs,
    iter_block_items,
    iter_header_parts,
    table_rows,
    table_to_text,
)

logger = structlog.get_logger(__name__)

DOCX_SUFFIX = ".docx"


class BlockElement(NamedTuple):
    kind: ElementKind
    text: str
    position: int
    heading_style: Optional[str] = None
    nesting_level: int = 0
    table_rows: Optional[List[List[str]]] = None
    paragraph: Optional[Paragraph] = None


class TextMatch(NamedTuple):
    paragraph: Paragraph
    start: int
    end_inclusive: int


def describe_block(item: Union[Paragraph, Table], position: int) -> BlockElement:
    if isinstance(item, Table):
        return BlockElement(
            kind=ElementKind.TABLE,
            text=table_to_text(item),
            position=position,
            table_rows=table_rows(item),
        )

    text = get_paragraph_text(item)
    heading_style = get_heading_style(item)
    # Numbered headings stay headings
    level = get_list_level(item) if heading_style is None else None
    if level is not None:
        return BlockElement(
            kind=ElementKind.LIST_ITEM,
            text=text,
            position=position,
            nesting_level=level,
            paragraph=item,
        )
    return BlockElement(
        kind=ElementKind.PARAGRAPH,
        text=text,
        position=position,
        heading_style=heading_style,
        paragraph=item,
    )


class DocumentHandle:
    def __init__(self, document: DocumentObject, path: Path, doc_id: str):
        self.document = document
        self.path = path
        self.doc_id = doc_id
        self.closed = False

    # --- Reading ---

    def get_top_level_children(self) -> List[BlockElement]:
        return [describe_block(item, i) for i, item in enumerate(iter_block_items(self.document))]

    def body_blocks(self) -> List[BlockElement]:
        return self.get_top_level_children()

    def header_blocks(self) -> List[BlockElement]:
        """Blocks of the running heads (page headers), positions counted per region."""
        items = [item for part in iter_header_parts(self.document) for item in iter_block_items(part)]
        return [describe_block(item, i) for i, item in enumerate(items)]

    def iter_paragraphs(self, include_headers: bool = False) -> Iterator[Paragraph]:
        if include_headers:
            for part in iter_header_parts(self.document):
                yield from iter_all_paragraphs(part)
        yield from iter_all_paragraphs(self.document)

    def get_text(self) -> str:
        return "\n".join(get_paragraph_text(p) for p in self.iter_paragraphs())

    def find_text(self, pattern: str) -> Optional[TextMatch]:
        """First regex hit in document order, with an inclusive end offset."""
        regex = re.compile(pattern)
        for paragraph in self.iter_paragraphs():
            match = regex.search(get_paragraph_text(paragraph))
            if match and match.end() > match.start():
                return TextMatch(paragraph, match.start(), match.end() - 1)
        return None

    # --- Styles ---

    def runs_in_range(self, paragraph: Paragraph, start: int, end: int) -> List[Run]:
        return ParagraphMapper(paragraph).find_runs_by_index(start, end)

    def get_style(self, paragraph: Paragraph, offset: int) -> Optional[FormattingSnapshot]:
        run = ParagraphMapper(paragraph).runs_at(offset)
        return FormattingSnapshot.capture(run) if run is not None else None

    def set_style(self, paragraph: Paragraph, start: int, end: int, snapshot: FormattingSnapshot):
        for run in self.runs_in_range(paragraph, start, end):
            snapshot.apply(run)

    # --- Lifecycle ---

    def persist_and_close(self):
        if self.closed:
            raise StoreAccessError(f"Document '{self.doc_id}' is already closed", self.doc_id)
        try:
            self.document.save(str(self.path))
        except OSError as e:
            raise StoreAccessError(f"Cannot write document '{self.doc_id}': {e}", self.doc_id) from e
        self.closed = True
        logger.debug("Document persisted", doc_id=self.doc_id)

    def close(self):
        self.closed = True


class DocumentStore:
    def __init__(self, root: Union[str, Path] = "."):
        self.root = Path(root)

    def resolve(self, doc_id: str) -> Path:
        if not doc_id:
            raise StoreAccessError("Empty document id", doc_id)
        path = Path(doc_id)
        if path.suffix.lower() != DOCX_SUFFIX:
            path = path.with_name(path.name + DOCX_SUFFIX)
        return path if path.is_absolute() else self.root / path

    def _doc_id(self, path: Path) -> str:
        try:
            return str(path.relative_to(self.root))
        except ValueError:
            return str(path)

    def exists(self, doc_id: str) -> bool:
        return self.resolve(doc_id).is_file()

    def open(self, doc_id: str) -> DocumentHandle:
        path = self.resolve(doc_id)
        if not path.is_file():
            raise StoreAccessError(f"Document '{doc_id}' not found", doc_id)
        try:
            document = Document(str(path))
        except (PackageNotFoundError, BadZipFile, KeyError, ValueError) as e:
            raise StoreAccessError(f"Document '{doc_id}' is not a readable .docx file: {e}", doc_id) from e
        logger.debug("Document opened", doc_id=doc_id)
        return DocumentHandle(document, path, doc_id)

    def create(self, name: str, folder: Optional[str] = None) -> CopyResult:
        path = self._target_path(name, folder)
        Document().save(str(path))
        return self._copy_result(path)

    def copy(self, source_id: str, new_name: str, destination_folder: Optional[str] = None) -> CopyResult:
        source = self.resolve(source_id)
        if not source.is_file():
            raise StoreAccessError(f"Document '{source_id}' not found", source_id)
        target = self._target_path(new_name, destination_folder)
        try:
            shutil.copyfile(source, target)
        except OSError as e:
            raise StoreAccessError(f"Cannot copy '{source_id}': {e}", source_id) from e
        logger.info("Document copied", source=source_id, target=str(target))
        return self._copy_result(target)

    @contextmanager
    def session(self, doc_id: str) -> Iterator[DocumentHandle]:
        """Opens a document and persists it on clean exit; changes are discarded on error."""
        handle = self.open(doc_id)
        try:
            yield handle
        except Exception:
            handle.close()
            raise
        handle.persist_and_close()

    def _target_path(self, name: str, folder: Optional[str]) -> Path:
        directory = self.root / folder if folder else self.root
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreAccessError(f"Cannot create folder '{directory}': {e}", name) from e
        filename = name if name.lower().endswith(DOCX_SUFFIX) else name + DOCX_SUFFIX
        return directory / filename

    def _copy_result(self, path: Path) -> CopyResult:
        return CopyResult(id=self._doc_id(path), name=path.stem, url=path.resolve().as_uri())
