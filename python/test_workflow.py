"""
Tests for store-level workflows: batches, copies, pending review and templates.

Run: python3 test_workflow.py
From: python/
"""

import os
import sys
import tempfile

sys.path.insert(0, '.')

from docx import Document

from redpen.config import Settings
from redpen.errors import StoreAccessError, UnparseableDocumentError
from redpen.models import BatchResult, ChangeProposal, ReviewOutcome
from redpen.store import DocumentStore
from redpen.templates import open_template
from redpen.workflow import (
    extract_candidate_name,
    list_pending,
    mark_all,
    mark_change,
    read_sections,
    replace_text,
    resolve_all,
    resolve_change,
    resolve_pending,
    tailor_copy,
)

SETTINGS = Settings()


def _store():
    root = tempfile.mkdtemp()
    doc = Document()
    doc.add_paragraph("Jane Doe")
    doc.add_heading("EXPERIENCE", level=1)
    doc.add_paragraph("Wrote backend services in Python.")
    doc.add_paragraph("Mentored two junior engineers.")
    doc.add_heading("SKILLS", level=1)
    doc.add_paragraph("Python, Go, SQL")
    doc.save(os.path.join(root, "resume.docx"))
    return DocumentStore(root)


def _text(store, doc_id="resume"):
    handle = store.open(doc_id)
    try:
        return handle.get_text()
    finally:
        handle.close()


PROPOSALS = [
    ChangeProposal(section="EXPERIENCE", original="Wrote backend services", replacement="Built backend services"),
    ChangeProposal(section="EXPERIENCE", original="Managed a team of 40", replacement="Managed a team of 50"),
    ChangeProposal(section="SKILLS", original="Python, Go, SQL", replacement="Python, Go, SQL, Rust"),
]


def test_read_sections_and_name():
    store = _store()
    model = read_sections(store, "resume", settings=SETTINGS)
    assert model.section_names() == ["Header", "EXPERIENCE", "SKILLS"]
    assert model.section_text("SKILLS") == "Python, Go, SQL"
    assert extract_candidate_name(store, "resume", settings=SETTINGS) == "Jane Doe"
    print("PASS: read sections and name")


def test_read_sections_errors():
    store = _store()
    store.create("blank")
    try:
        read_sections(store, "blank", settings=SETTINGS)
        assert False, "expected UnparseableDocumentError"
    except UnparseableDocumentError:
        pass
    try:
        read_sections(store, "nope", settings=SETTINGS)
        assert False, "expected StoreAccessError"
    except StoreAccessError:
        pass
    print("PASS: read sections errors")


def test_batch_with_one_missing_target():
    store = _store()
    batch = mark_all(store, "resume", PROPOSALS, settings=SETTINGS)

    assert batch.applied_count == 2
    assert batch.failed_count == 1
    assert batch.success is False
    assert [r.success for r in batch.results] == [True, False, True]
    assert batch.results[1].original == "Managed a team of 40"

    # Each successful proposal was persisted
    text = _text(store)
    assert "Wrote backend servicesBuilt backend services" in text
    assert "Python, Go, SQLPython, Go, SQL, Rust" in text
    assert len(list_pending(store, "resume", settings=SETTINGS)) == 2
    print("PASS: batch with one missing target")


def test_malformed_proposal_does_not_abort_batch():
    store = _store()
    proposals = [
        {"original": "Wrote backend services", "tailored": "Built backend services"},
        {"replacement": "no original given"},
        {"original": "Python, Go, SQL", "tailored": "Python, Go, SQL, Rust"},
    ]

    batch = mark_all(store, "resume", proposals, settings=SETTINGS)

    assert batch.applied_count == 2 and batch.failed_count == 1
    assert [r.success for r in batch.results] == [True, False, True]
    assert "Malformed proposal at index 1" in batch.results[1].message
    assert len(list_pending(store, "resume", settings=SETTINGS)) == 2

    rejected = resolve_all(store, "resume", proposals, ReviewOutcome.REJECT, settings=SETTINGS)
    assert [r.success for r in rejected.results] == [True, False, True]

    result = tailor_copy(store, "resume", "resume-bad", [{"section": "SKILLS"}], settings=SETTINGS)
    assert result.copy_ is not None
    assert store.exists(result.copy_.id)
    assert result.batch.applied_count == 0 and result.batch.failed_count == 1
    print("PASS: malformed proposal does not abort batch")


def test_batch_result_serialises_camel_case():
    batch = BatchResult()
    data = batch.to_dict()
    assert data == {"success": True, "appliedCount": 0, "failedCount": 0, "results": []}

    store = _store()
    result = mark_change(store, "resume", "Wrote", "Built", settings=SETTINGS)
    data = result.to_dict()
    assert data["success"] is True
    assert data["diffId"] == result.diff_id
    assert data["matchKind"] == "exact"
    print("PASS: batch result serialises camel case")


def test_accept_all_pending():
    store = _store()
    mark_all(store, "resume", PROPOSALS, settings=SETTINGS)

    batch = resolve_pending(store, "resume", ReviewOutcome.ACCEPT, settings=SETTINGS)

    assert batch.applied_count == 2 and batch.failed_count == 0
    text = _text(store)
    assert "Built backend services in Python." in text
    assert "Python, Go, SQL, Rust" in text
    assert "Wrote" not in text
    assert list_pending(store, "resume", settings=SETTINGS) == []
    print("PASS: accept all pending")


def test_reject_all_by_text():
    store = _store()
    before = _text(store)
    mark_all(store, "resume", PROPOSALS, settings=SETTINGS)

    batch = resolve_all(store, "resume", PROPOSALS, ReviewOutcome.REJECT, settings=SETTINGS)

    # The proposal that was never marked cannot be resolved either
    assert [r.success for r in batch.results] == [True, False, True]
    assert _text(store) == before
    print("PASS: reject all by text")


def test_resolve_change_by_id():
    store = _store()
    marked = mark_change(store, "resume", "Mentored two", "Mentored four", settings=SETTINGS)

    result = resolve_change(store, "resume", "", "", ReviewOutcome.ACCEPT, diff_id=marked.diff_id, settings=SETTINGS)

    assert result.success
    assert "Mentored four junior engineers." in _text(store)
    again = resolve_change(store, "resume", "", "", ReviewOutcome.ACCEPT, diff_id=marked.diff_id, settings=SETTINGS)
    assert not again.success
    print("PASS: resolve change by id")


def test_direct_replace_and_missing_document():
    store = _store()
    result = replace_text(store, "resume", "Mentored two", "Mentored four", settings=SETTINGS)
    assert result.success
    assert "Mentored four junior engineers." in _text(store)

    missing = replace_text(store, "ghost", "a", "b", settings=SETTINGS)
    assert not missing.success
    assert "not found" in missing.message
    print("PASS: direct replace and missing document")


def test_failed_mutation_is_not_persisted():
    store = _store()
    path = store.resolve("resume")
    stamp = os.path.getmtime(path)
    size = os.path.getsize(path)

    result = mark_change(store, "resume", "Managed a team of 40", "x", settings=SETTINGS)

    assert not result.success
    assert os.path.getmtime(path) == stamp
    assert os.path.getsize(path) == size
    print("PASS: failed mutation is not persisted")


def test_tailor_copy_keeps_source():
    store = _store()
    before = _text(store)

    result = tailor_copy(store, "resume", "resume-acme", PROPOSALS, destination_folder="tailored", settings=SETTINGS)

    assert result.copy_ is not None
    assert result.copy_.name == "resume-acme"
    assert result.copy_.url.startswith("file://")
    assert result.batch.applied_count == 2 and result.batch.failed_count == 1
    assert _text(store) == before
    assert "Built backend services" in _text(store, result.copy_.id)
    assert result.to_dict()["copy"]["name"] == "resume-acme"
    print("PASS: tailor copy keeps source")


def test_tailor_copy_reports_copy_when_all_fail():
    store = _store()
    proposals = [{"original": "Nonexistent line", "tailored": "Anything"}]

    result = tailor_copy(store, "resume", "resume-copy", proposals, settings=SETTINGS)

    assert result.copy_ is not None
    assert store.exists(result.copy_.id)
    assert result.batch.applied_count == 0 and result.batch.failed_count == 1

    missing = tailor_copy(store, "ghost", "ghost-copy", proposals, settings=SETTINGS)
    assert missing.copy_ is None
    assert missing.batch.failed_count == 1
    print("PASS: tailor copy reports copy when all fail")


def test_template_self_healing():
    store = _store()
    settings_map = {"templateDocId": "resume", "theme": "dark"}
    handle = open_template(store, settings_map)
    assert handle is not None
    assert "Jane Doe" in handle.get_text()
    handle.close()

    stale = {"templateDocId": "deleted-template", "theme": "dark"}
    assert open_template(store, stale) is None
    assert stale == {"theme": "dark"}

    assert open_template(store, {}) is None
    print("PASS: template self healing")


if __name__ == "__main__":
    tests = [
        test_read_sections_and_name,
        test_read_sections_errors,
        test_batch_with_one_missing_target,
        test_malformed_proposal_does_not_abort_batch,
        test_batch_result_serialises_camel_case,
        test_accept_all_pending,
        test_reject_all_by_text,
        test_resolve_change_by_id,
        test_direct_replace_and_missing_document,
        test_failed_mutation_is_not_persisted,
        test_tailor_copy_keeps_source,
        test_tailor_copy_reports_copy_when_all_fail,
        test_template_self_healing,
    ]

    passed = 0
    failed = 0
    for test in tests:
        try:
            test()
            passed += 1
        except Exception as e:
            print(f"FAIL: {test.__name__}: {e}")
            import traceback
            traceback.print_exc()
            failed += 1

    print(f"\n{'='*60}")
    print(f"Results: {passed} passed, {failed} failed out of {len(tests)} tests")
    if failed == 0:
        print("ALL TESTS PASSED")
    else:
        print("SOME TESTS FAILED")
