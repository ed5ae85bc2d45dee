"""
Tests for change proposals: parsing AI replies and deriving proposals from a text diff.

Run: python3 test_proposals.py
From: python/
"""

import os
import sys
import tempfile

sys.path.insert(0, '.')

from docx import Document

from redpen.config import Settings
from redpen.diff import proposals_from_text
from redpen.models import ChangeProposal, ReviewOutcome
from redpen.proposals import parse_proposals, request_proposals
from redpen.store import DocumentStore
from redpen.workflow import mark_all, resolve_pending

SETTINGS = Settings()


def test_parse_plain_list():
    proposals = parse_proposals(
        '[{"section": "SKILLS", "original": "Python", "tailored": "Python 3", "reason": "JD asks for it"}]'
    )
    assert proposals == [
        ChangeProposal(section="SKILLS", original="Python", replacement="Python 3", reason="JD asks for it")
    ]
    print("PASS: parse plain list")


def test_parse_changes_object_in_code_fence():
    reply = (
        "Here are my suggestions:\n"
        "```json\n"
        '{"changes": [{"original": "Led a team", "replacement": "Led a team of 8"},'
        ' {"target_text": "Go", "new_text": "Golang"}]}\n'
        "```\n"
        "Let me know if you need more."
    )
    proposals = parse_proposals(reply)
    assert [(p.original, p.replacement) for p in proposals] == [
        ("Led a team", "Led a team of 8"),
        ("Go", "Golang"),
    ]
    assert proposals[0].section is None
    print("PASS: parse changes object in code fence")


def test_parse_json_surrounded_by_prose():
    reply = 'Sure! [{"original": "Wrote", "tailored": "Built"}] Hope this helps.'
    assert parse_proposals(reply)[0].replacement == "Built"
    print("PASS: parse JSON surrounded by prose")


def test_parse_rejects_bad_payloads():
    bad = [
        "",
        "No JSON here at all.",
        '{"suggestions": []}',
        '[{"original": "only original"}]',
        '"just a string"',
    ]
    for payload in bad:
        try:
            parse_proposals(payload)
            assert False, f"expected ValueError for {payload!r}"
        except ValueError:
            pass
    print("PASS: parse rejects bad payloads")


def test_request_proposals_calls_provider():
    calls = []

    def fake_call_ai(system_prompt, user_message):
        calls.append((system_prompt, user_message))
        return '{"changes": [{"original": "Wrote", "tailored": "Built"}]}'

    proposals = request_proposals(fake_call_ai, "You tailor resumes.", "Resume text + job description")
    assert calls == [("You tailor resumes.", "Resume text + job description")]
    assert proposals[0].original == "Wrote"
    print("PASS: request proposals calls provider")


def test_diff_replacement():
    proposals = proposals_from_text("Wrote backend services in Python.", "Built backend services in Python.")
    assert len(proposals) == 1
    assert proposals[0].original == "Wrote"
    assert proposals[0].replacement == "Built"
    print("PASS: diff replacement")


def test_diff_deletion():
    proposals = proposals_from_text("Skilled in Python and Go.", "Skilled in Python.")
    assert len(proposals) == 1
    assert "and Go" in proposals[0].original
    assert proposals[0].replacement == ""
    print("PASS: diff deletion")


def test_diff_insertion_is_anchored():
    original = "Led a team."
    proposals = proposals_from_text(original, "Led a large team.")
    assert len(proposals) == 1
    p = proposals[0]
    assert p.original and p.replacement.startswith(p.original)
    assert original.replace(p.original, p.replacement, 1) == "Led a large team."
    print("PASS: diff insertion is anchored")


def test_diff_no_changes():
    assert proposals_from_text("Same text.", "Same text.") == []
    print("PASS: diff no changes")


def test_diff_proposals_feed_the_review_flow():
    root = tempfile.mkdtemp()
    doc = Document()
    doc.add_paragraph("Wrote backend services in Python.")
    doc.save(os.path.join(root, "resume.docx"))
    store = DocumentStore(root)

    revised = "Built backend services in Python."
    proposals = proposals_from_text("Wrote backend services in Python.", revised)
    assert mark_all(store, "resume", proposals, settings=SETTINGS).success
    assert resolve_pending(store, "resume", ReviewOutcome.ACCEPT, settings=SETTINGS).success

    handle = store.open("resume")
    assert handle.get_text() == revised
    handle.close()
    print("PASS: diff proposals feed the review flow")


def test_diff_insertion_near_paragraph_start():
    root = tempfile.mkdtemp()
    doc = Document()
    doc.add_heading("EXPERIENCE", level=1)
    doc.add_paragraph("Led a team.")
    doc.save(os.path.join(root, "resume.docx"))
    store = DocumentStore(root)

    handle = store.open("resume")
    original = handle.get_text()
    handle.close()
    revised = original.replace("Led a team.", "Led a large team.")

    proposals = proposals_from_text(original, revised)
    assert len(proposals) == 1
    assert "\n" not in proposals[0].original
    assert "\n" not in proposals[0].replacement

    batch = mark_all(store, "resume", proposals, settings=SETTINGS)
    assert batch.success, [r.message for r in batch.results]
    assert resolve_pending(store, "resume", ReviewOutcome.ACCEPT, settings=SETTINGS).success

    handle = store.open("resume")
    assert handle.get_text() == revised
    handle.close()

    # Insertion at the very start of a paragraph anchors on the following word
    proposals = proposals_from_text("EXPERIENCE\nLed a team.", "EXPERIENCE\nRecently, Led a team.")
    assert [(p.original, p.replacement) for p in proposals] == [("Led", "Recently, Led")]
    print("PASS: diff insertion near paragraph start")


if __name__ == "__main__":
    tests = [
        test_parse_plain_list,
        test_parse_changes_object_in_code_fence,
        test_parse_json_surrounded_by_prose,
        test_parse_rejects_bad_payloads,
        test_request_proposals_calls_provider,
        test_diff_replacement,
        test_diff_deletion,
        test_diff_insertion_is_anchored,
        test_diff_no_changes,
        test_diff_proposals_feed_the_review_flow,
        test_diff_insertion_near_paragraph_start,
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
