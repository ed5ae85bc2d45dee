"""
Tests for candidate name extraction.

Run: python3 test_header_name.py
From: python/
"""

import os
import sys
import tempfile

sys.path.insert(0, '.')

from docx import Document

from redpen.header_name import extract_name, looks_like_contact
from redpen.store import DocumentStore


def _open(doc, name="resume"):
    root = tempfile.mkdtemp()
    doc.save(os.path.join(root, f"{name}.docx"))
    return DocumentStore(root).open(name)


def test_contact_patterns():
    assert looks_like_contact("jane@example.com")
    assert looks_like_contact("(555) 123-4567 | Berlin")
    assert looks_like_contact("+1 555.123.4567")
    assert looks_like_contact("221 Baker Street")
    assert looks_like_contact("https://janedoe.dev")
    assert looks_like_contact("www.janedoe.dev")
    assert looks_like_contact("LinkedIn: /in/janedoe")
    assert looks_like_contact("github.com/janedoe")
    assert not looks_like_contact("Jane Doe")
    assert not looks_like_contact("Senior Engineer, 2019")
    print("PASS: contact patterns")


def test_heading_styled_name():
    doc = Document()
    doc.add_paragraph("jane@example.com | 555-123-4567")
    doc.add_heading("Jane Doe", level=0)
    doc.add_heading("EXPERIENCE", level=1)
    doc.add_paragraph("Wrote backend services in Python.")
    assert extract_name(_open(doc)) == "Jane Doe"
    print("PASS: heading styled name")


def test_first_plain_line_skips_contact_data():
    doc = Document()
    doc.add_paragraph("555-123-4567")
    doc.add_paragraph("john.smith@example.com")
    doc.add_paragraph("EXPERIENCE")
    doc.add_paragraph("John Smith")
    assert extract_name(_open(doc)) == "John Smith"
    print("PASS: first plain line skips contact data")


def test_line_breaks_inside_paragraph():
    doc = Document()
    p = doc.add_paragraph()
    run = p.add_run("Ana Lima")
    run.add_break()
    run.add_text("ana@lima.dev")
    assert extract_name(_open(doc)) == "Ana Lima"
    print("PASS: line breaks inside paragraph")


def test_running_head_wins_over_body():
    doc = Document()
    header = doc.sections[0].header
    header.is_linked_to_previous = False
    header.paragraphs[0].text = "Maria Garcia"
    doc.add_paragraph("Someone Else")
    assert extract_name(_open(doc)) == "Maria Garcia"
    print("PASS: running head wins over body")


def test_table_fallback():
    doc = Document()
    table = doc.add_table(rows=1, cols=2)
    table.cell(0, 0).text = "Alex Kim"
    table.cell(0, 0).add_paragraph("Seattle, WA")
    table.cell(0, 1).text = "alex@mail.com"
    assert extract_name(_open(doc)) == "Alex Kim"
    print("PASS: table fallback")


def test_no_candidate():
    doc = Document()
    doc.add_heading("SKILLS", level=1)
    doc.add_paragraph("a")
    assert extract_name(_open(doc)) is None
    print("PASS: no candidate")


if __name__ == "__main__":
    tests = [
        test_contact_patterns,
        test_heading_styled_name,
        test_first_plain_line_skips_contact_data,
        test_line_breaks_inside_paragraph,
        test_running_head_wins_over_body,
        test_table_fallback,
        test_no_candidate,
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
