"""
Store-level operations.

Each call runs its own open -> edit -> persist/close cycle, and batches run
their items strictly one after another. Mutations never raise for expected
outcomes; they return MutationResult / BatchResult instead.
"""

from typing import Callable, Iterable, Iterator, List, Optional, Union

import structlog
from pydantic import ValidationError

from redpen.config import Settings, get_settings
from redpen.errors import StoreAccessError
from redpen.header_name import extract_name
from redpen.models import BatchResult, ChangeProposal, MutationResult, ReviewOutcome, SectionModel, TailorResult
from redpen.parser import parse, require_content
from redpen.redline.engine import RedlineEngine
from redpen.redline.review import ReviewEngine
from redpen.store import DocumentHandle, DocumentStore

logger = structlog.get_logger(__name__)

ProposalLike = Union[ChangeProposal, dict]


def _as_proposal(item: ProposalLike) -> ChangeProposal:
    if isinstance(item, ChangeProposal):
        return item
    return ChangeProposal.model_validate(item)


def _valid_proposals(proposals: Iterable[ProposalLike], batch: BatchResult) -> Iterator[ChangeProposal]:
    """Yields usable proposals; malformed entries are recorded as failures in the batch."""
    for index, item in enumerate(proposals):
        try:
            yield _as_proposal(item)
        except ValidationError as e:
            logger.warning("Skipping malformed proposal", index=index, errors=e.error_count())
            batch.add(MutationResult(success=False, message=f"Malformed proposal at index {index}: {e}"))


def read_sections(store: DocumentStore, doc_id: str, settings: Optional[Settings] = None) -> SectionModel:
    """
    Raises StoreAccessError for a bad id and UnparseableDocumentError
    when the document has no readable content.
    """
    settings = settings or get_settings()
    handle = store.open(doc_id)
    try:
        model = parse(handle, settings.extra_section_keywords)
    finally:
        handle.close()
    return require_content(model, doc_id)


def extract_candidate_name(store: DocumentStore, doc_id: str, settings: Optional[Settings] = None) -> Optional[str]:
    settings = settings or get_settings()
    handle = store.open(doc_id)
    try:
        return extract_name(handle, settings.extra_section_keywords)
    finally:
        handle.close()


def _mutate(store: DocumentStore, doc_id: str, operation: Callable[[DocumentHandle], MutationResult]) -> MutationResult:
    try:
        handle = store.open(doc_id)
    except StoreAccessError as e:
        logger.warning("Cannot open document", doc_id=doc_id, error=str(e))
        return MutationResult(success=False, message=str(e))

    try:
        result = operation(handle)
    except Exception as e:
        handle.close()
        logger.exception("Operation failed", doc_id=doc_id)
        return MutationResult(success=False, message=f"Operation failed: {e}")

    if not result.success:
        handle.close()
        return result

    try:
        handle.persist_and_close()
    except StoreAccessError as e:
        logger.error("Cannot save document", doc_id=doc_id, error=str(e))
        return MutationResult(success=False, message=str(e), diff_id=result.diff_id, original=result.original)
    return result


def replace_text(
    store: DocumentStore, doc_id: str, original: str, new_text: str, settings: Optional[Settings] = None
) -> MutationResult:
    return _mutate(store, doc_id, lambda h: RedlineEngine(h, settings).replace(original, new_text))


def mark_change(
    store: DocumentStore, doc_id: str, original: str, replacement: str, settings: Optional[Settings] = None
) -> MutationResult:
    return _mutate(store, doc_id, lambda h: ReviewEngine(h, settings).mark(original, replacement))


def resolve_change(
    store: DocumentStore,
    doc_id: str,
    original: str,
    replacement: str,
    outcome: ReviewOutcome,
    diff_id: Optional[str] = None,
    settings: Optional[Settings] = None,
) -> MutationResult:
    return _mutate(
        store,
        doc_id,
        lambda h: ReviewEngine(h, settings).resolve(original, replacement, outcome, diff_id=diff_id),
    )


def mark_all(
    store: DocumentStore,
    doc_id: str,
    proposals: Iterable[ProposalLike],
    direct: bool = False,
    settings: Optional[Settings] = None,
) -> BatchResult:
    """
    Marks (or, with direct=True, applies) every proposal. A failing proposal
    is recorded and the batch moves on.
    """
    batch = BatchResult()
    for proposal in _valid_proposals(proposals, batch):
        if direct:
            result = replace_text(store, doc_id, proposal.original, proposal.replacement, settings)
        else:
            result = mark_change(store, doc_id, proposal.original, proposal.replacement, settings)
        batch.add(result)

    logger.info("Batch finished", doc_id=doc_id, applied=batch.applied_count, failed=batch.failed_count)
    return batch


def resolve_all(
    store: DocumentStore,
    doc_id: str,
    proposals: Iterable[ProposalLike],
    outcome: ReviewOutcome,
    settings: Optional[Settings] = None,
) -> BatchResult:
    batch = BatchResult()
    for proposal in _valid_proposals(proposals, batch):
        batch.add(resolve_change(store, doc_id, proposal.original, proposal.replacement, outcome, settings=settings))
    return batch


def list_pending(store: DocumentStore, doc_id: str, settings: Optional[Settings] = None) -> List[str]:
    handle = store.open(doc_id)
    try:
        return ReviewEngine(handle, settings).pending_diff_ids()
    finally:
        handle.close()


def resolve_pending(
    store: DocumentStore, doc_id: str, outcome: ReviewOutcome, settings: Optional[Settings] = None
) -> BatchResult:
    """Accept all / reject all over the identified pending changes."""
    batch = BatchResult()
    try:
        diff_ids = list_pending(store, doc_id, settings)
    except StoreAccessError as e:
        batch.add(MutationResult(success=False, message=str(e)))
        return batch

    for diff_id in diff_ids:
        batch.add(resolve_change(store, doc_id, "", "", outcome, diff_id=diff_id, settings=settings))
    return batch


def tailor_copy(
    store: DocumentStore,
    source_id: str,
    new_name: str,
    proposals: Iterable[ProposalLike],
    destination_folder: Optional[str] = None,
    direct: bool = False,
    settings: Optional[Settings] = None,
) -> TailorResult:
    """
    Copies a document and applies the proposals to the copy.
    The copy and the edits are independent steps; the copy is reported even if every edit fails.
    """
    try:
        copy = store.copy(source_id, new_name, destination_folder)
    except StoreAccessError as e:
        logger.warning("Copy failed", source=source_id, error=str(e))
        batch = BatchResult()
        batch.add(MutationResult(success=False, message=str(e)))
        return TailorResult(batch=batch)

    batch = mark_all(store, copy.id, proposals, direct=direct, settings=settings)
    return TailorResult(copy=copy, batch=batch)
