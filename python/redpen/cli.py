import argparse
import json
import sys
from pathlib import Path
from typing import List

from redpen import __version__
from redpen.config import get_settings
from redpen.diff import proposals_from_text
from redpen.errors import RedpenError
from redpen.models import BatchResult, ChangeProposal, MutationResult, ReviewOutcome
from redpen.proposals import parse_proposals
from redpen.store import DocumentStore
from redpen.utils.log import configure_logging
from redpen.workflow import (
    extract_candidate_name,
    mark_all,
    mark_change,
    read_sections,
    replace_text,
    resolve_change,
    resolve_pending,
    tailor_copy,
)


def _store() -> DocumentStore:
    return DocumentStore(get_settings().store_root)


def _doc_text(store: DocumentStore, doc_id: str) -> str:
    handle = store.open(doc_id)
    try:
        return handle.get_text()
    finally:
        handle.close()


def _load_proposals(store: DocumentStore, doc_id: str, path: Path) -> List[ChangeProposal]:
    """
    A .json file holds proposals; any other file is a revised plain-text version of the document.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            content = f.read()
    except OSError as e:
        print(f"Error reading {path}: {e}", file=sys.stderr)
        sys.exit(1)

    if path.suffix.lower() == ".json":
        print(f"Loading proposals from {path}...", file=sys.stderr)
        try:
            return parse_proposals(content)
        except ValueError as e:
            print(f"Error parsing JSON proposals: {e}", file=sys.stderr)
            sys.exit(1)

    print(f"Calculating diff from text file {path}...", file=sys.stderr)
    return proposals_from_text(_doc_text(store, doc_id), content)


def _report(result: MutationResult):
    icon = "✅" if result.success else "❌"
    suffix = f" [id: {result.diff_id}]" if result.diff_id else ""
    print(f"{icon} {result.message}{suffix}", file=sys.stderr)
    if not result.success:
        sys.exit(1)


def _report_batch(batch: BatchResult):
    for result in batch.results:
        icon = "✅" if result.success else "❌"
        print(f"{icon} {result.message}", file=sys.stderr)
    print(f"Stats: {batch.applied_count} applied, {batch.failed_count} skipped.", file=sys.stderr)
    if batch.failed_count > 0:
        sys.exit(1)


def _outcome(args) -> ReviewOutcome:
    return ReviewOutcome.REJECT if args.reject else ReviewOutcome.ACCEPT


def handle_sections(args):
    model = read_sections(_store(), args.document)
    if args.json:
        print(json.dumps(model.model_dump(mode="json"), indent=2))
        return
    for name, items in model.sections.items():
        print(f"## {name}")
        for item in items:
            indent = "  " * item.nesting_level
            print(f"{indent}- {item.content}")


def handle_name(args):
    name = extract_candidate_name(_store(), args.document)
    if not name:
        print("No candidate name found.", file=sys.stderr)
        sys.exit(1)
    print(name)


def handle_replace(args):
    _report(replace_text(_store(), args.document, args.original, args.new_text))


def handle_mark(args):
    result = mark_change(_store(), args.document, args.original, args.replacement)
    if args.json:
        print(json.dumps(result.to_dict(), indent=2))
    _report(result)


def handle_resolve(args):
    if not args.id and not args.original:
        print("Error: give ORIGINAL [REPLACEMENT] or --id", file=sys.stderr)
        sys.exit(2)
    _report(
        resolve_change(
            _store(),
            args.document,
            args.original or "",
            args.replacement or "",
            _outcome(args),
            diff_id=args.id,
        )
    )


def handle_apply(args):
    store = _store()
    proposals = _load_proposals(store, args.document, args.changes)
    print(f"Applying {len(proposals)} proposals...", file=sys.stderr)
    _report_batch(mark_all(store, args.document, proposals, direct=args.direct))


def handle_review(args):
    batch = resolve_pending(_store(), args.document, _outcome(args))
    if not batch.results:
        print("No pending changes.", file=sys.stderr)
    _report_batch(batch)


def handle_diff(args):
    store = _store()
    with open(args.revised, "r", encoding="utf-8") as f:
        revised = f.read()
    proposals = proposals_from_text(_doc_text(store, args.document), revised)
    print(json.dumps([p.model_dump(exclude_none=True) for p in proposals], indent=2))
    print(f"Found {len(proposals)} changes.", file=sys.stderr)


def handle_copy(args):
    store = _store()
    proposals = _load_proposals(store, args.document, args.changes) if args.changes else []
    result = tailor_copy(store, args.document, args.name, proposals, destination_folder=args.folder, direct=args.direct)
    if result.copy_ is None:
        _report_batch(result.batch)
        return
    print(f"✅ Copy created: {result.copy_.url}", file=sys.stderr)
    print(json.dumps(result.to_dict(), indent=2))
    _report_batch(result.batch)


def _add_outcome_flags(parser):
    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument("--accept", action="store_true", help="Keep the replacement text")
    group.add_argument("--reject", action="store_true", help="Keep the original text")


def main():
    parser = argparse.ArgumentParser(prog="redpen", description="Redpen: resume sections, fuzzy edits and review marks")
    parser.add_argument("-v", "--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command", required=True, help="Subcommands")

    p_sections = subparsers.add_parser("sections", help="Show the sections of a DOCX")
    p_sections.add_argument("document", help="Document id (path, .docx optional)")
    p_sections.add_argument("--json", action="store_true", help="Output the raw section model")
    p_sections.set_defaults(func=handle_sections)

    p_name = subparsers.add_parser("name", help="Guess the candidate name")
    p_name.add_argument("document", help="Document id")
    p_name.set_defaults(func=handle_name)

    p_replace = subparsers.add_parser("replace", help="Replace text in place, keeping its formatting")
    p_replace.add_argument("document", help="Document id")
    p_replace.add_argument("original", help="Text to find")
    p_replace.add_argument("new_text", help="Replacement text")
    p_replace.set_defaults(func=handle_replace)

    p_mark = subparsers.add_parser("mark", help="Propose a change (struck original + coloured replacement)")
    p_mark.add_argument("document", help="Document id")
    p_mark.add_argument("original", help="Text to find")
    p_mark.add_argument("replacement", help="Proposed text")
    p_mark.add_argument("--json", action="store_true", help="Print the result as JSON")
    p_mark.set_defaults(func=handle_mark)

    p_resolve = subparsers.add_parser("resolve", help="Accept or reject a proposed change")
    p_resolve.add_argument("document", help="Document id")
    p_resolve.add_argument("original", nargs="?", help="Original text of the proposal")
    p_resolve.add_argument("replacement", nargs="?", help="Replacement text of the proposal")
    p_resolve.add_argument("--id", help="Diff id returned by 'mark'")
    _add_outcome_flags(p_resolve)
    p_resolve.set_defaults(func=handle_resolve)

    p_apply = subparsers.add_parser("apply", help="Propose (or apply) a batch of changes")
    p_apply.add_argument("document", help="Document id")
    p_apply.add_argument("changes", type=Path, help="JSON proposals file OR revised text file")
    p_apply.add_argument("--direct", action="store_true", help="Replace directly instead of marking")
    p_apply.set_defaults(func=handle_apply)

    p_review = subparsers.add_parser("review", help="Accept or reject every pending change")
    p_review.add_argument("document", help="Document id")
    _add_outcome_flags(p_review)
    p_review.set_defaults(func=handle_review)

    p_diff = subparsers.add_parser("diff", help="Turn a revised text file into JSON proposals")
    p_diff.add_argument("document", help="Original document id")
    p_diff.add_argument("revised", type=Path, help="Revised plain-text file")
    p_diff.set_defaults(func=handle_diff)

    p_copy = subparsers.add_parser("copy", help="Copy a document and apply proposals to the copy")
    p_copy.add_argument("document", help="Source document id")
    p_copy.add_argument("name", help="Name of the copy")
    p_copy.add_argument("changes", type=Path, nargs="?", help="JSON proposals file OR revised text file")
    p_copy.add_argument("--folder", help="Destination folder inside the store")
    p_copy.add_argument("--direct", action="store_true", help="Replace directly instead of marking")
    p_copy.set_defaults(func=handle_copy)

    args = parser.parse_args()

    settings = get_settings()
    configure_logging(settings.log_level, settings.json_logs)

    try:
        args.func(args)
    except RedpenError as e:
        print(f"❌ {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
