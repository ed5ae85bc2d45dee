import json
from typing import List, Optional

import structlog
from mcp.server.fastmcp import FastMCP

from redpen.config import get_settings
from redpen.models import ChangeProposal, ReviewOutcome
from redpen.store import DocumentStore
from redpen.utils.log import configure_logging
from redpen.workflow import (
    extract_candidate_name as _extract_candidate_name,
    mark_all,
    read_sections as _read_sections,
    replace_text as _replace_text,
    resolve_change as _resolve_change,
    resolve_pending,
    tailor_copy as _tailor_copy,
)

# MCP communicates over stdio: all logs must go to stderr.
_settings = get_settings()
configure_logging(_settings.log_level, json_logs=True)

logger = structlog.get_logger(__name__)

mcp = FastMCP("Redpen Resume Review Service")


def _store() -> DocumentStore:
    return DocumentStore(get_settings().store_root)


@mcp.tool()
def read_sections(document_id: str) -> str:
    """
    Parses a resume DOCX into named sections.

    Args:
        document_id: Path of the DOCX (relative to the store root, '.docx' optional).
    Returns:
        JSON with 'sections' (name -> content items) and 'elements' (document order).
    """
    try:
        model = _read_sections(_store(), document_id)
        return json.dumps(model.model_dump(mode="json"), indent=2)
    except Exception as e:
        return f"Error reading sections: {str(e)}"


@mcp.tool()
def extract_candidate_name(document_id: str) -> str:
    """
    Returns the most likely candidate name of a resume, or a message if none was found.
    """
    try:
        name = _extract_candidate_name(_store(), document_id)
        return name or "No candidate name found."
    except Exception as e:
        return f"Error extracting name: {str(e)}"


@mcp.tool()
def replace_text(document_id: str, original: str, new_text: str) -> str:
    """
    Replaces text in place, keeping the formatting of the replaced text.

    Args:
        document_id: Path of the DOCX.
        original: Text copied from the document. Small whitespace/quote differences are tolerated.
        new_text: Replacement text.
    """
    try:
        return json.dumps(_replace_text(_store(), document_id, original, new_text).to_dict())
    except Exception as e:
        return f"Error replacing text: {str(e)}"


@mcp.tool()
def propose_changes(document_id: str, changes: List[ChangeProposal]) -> str:
    """
    Marks each change in the document as a visual diff: the original struck through
    in red, the replacement right after it in green. Nothing is final until resolved.

    Args:
        document_id: Path of the DOCX.
        changes: List of {original, replacement, section?, reason?}. 'original' must be copied from the document.
    Returns:
        JSON batch result; each successful item carries a 'diffId' for resolve_change.
    """
    try:
        return json.dumps(mark_all(_store(), document_id, changes).to_dict(), indent=2)
    except Exception as e:
        return f"Error proposing changes: {str(e)}"


@mcp.tool()
def resolve_change(
    document_id: str,
    accept: bool,
    diff_id: Optional[str] = None,
    original: str = "",
    replacement: str = "",
) -> str:
    """
    Accepts or rejects one proposed change.

    Args:
        document_id: Path of the DOCX.
        accept: True keeps the replacement, False restores the original.
        diff_id: Id returned by propose_changes (preferred).
        original / replacement: Used to find the change when no diff_id is given.
    """
    try:
        outcome = ReviewOutcome.ACCEPT if accept else ReviewOutcome.REJECT
        result = _resolve_change(_store(), document_id, original, replacement, outcome, diff_id=diff_id)
        return json.dumps(result.to_dict())
    except Exception as e:
        return f"Error resolving change: {str(e)}"


@mcp.tool()
def resolve_all_changes(document_id: str, accept: bool) -> str:
    """
    Accepts (or rejects) every pending proposed change in the document.
    """
    try:
        outcome = ReviewOutcome.ACCEPT if accept else ReviewOutcome.REJECT
        return json.dumps(resolve_pending(_store(), document_id, outcome).to_dict(), indent=2)
    except Exception as e:
        return f"Error resolving changes: {str(e)}"


@mcp.tool()
def tailor_copy(
    document_id: str,
    new_name: str,
    changes: List[ChangeProposal],
    destination_folder: Optional[str] = None,
    direct: bool = False,
) -> str:
    """
    Copies a resume and proposes (or, with direct=True, applies) the changes on the copy.
    The original document is never modified. The copy is reported even if every change fails.
    """
    try:
        result = _tailor_copy(_store(), document_id, new_name, changes, destination_folder, direct=direct)
        return json.dumps(result.to_dict(), indent=2)
    except Exception as e:
        return f"Error tailoring copy: {str(e)}"


def main():
    logger.info("Starting redpen MCP server", store_root=_settings.store_root)
    mcp.run()


if __name__ == "__main__":
    main()
