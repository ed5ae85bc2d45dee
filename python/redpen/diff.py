import re
from typing import Dict, List, Tuple

import structlog
from diff_match_patch import diff_match_patch

from redpen.models import ChangeProposal

logger = structlog.get_logger(__name__)

ANCHOR_CONTEXT = 50


def proposals_from_text(original_text: str, revised_text: str) -> List[ChangeProposal]:
    """
    Compares two plain-text versions of a document and returns the differences
    as change proposals. Uses word-level diffing so proposals cover whole words.
    """
    dmp = diff_match_patch()

    chars1, chars2, token_array = _words_to_chars(original_text, revised_text)
    diffs = dmp.diff_main(chars1, chars2, False)
    dmp.diff_cleanupSemantic(diffs)
    dmp.diff_charsToLines(diffs, token_array)

    proposals: List[ChangeProposal] = []
    original_index = 0
    pending_delete = None

    for i, (op, text) in enumerate(diffs):
        if op == diff_match_patch.DIFF_EQUAL:
            if pending_delete is not None:
                proposals.append(ChangeProposal(original=pending_delete, replacement="", reason="Text deleted"))
                pending_delete = None
            original_index += len(text)

        elif op == diff_match_patch.DIFF_DELETE:
            # Held back: an insertion right after turns it into a replacement
            pending_delete = text
            original_index += len(text)

        elif op == diff_match_patch.DIFF_INSERT:
            if pending_delete is not None:
                proposals.append(ChangeProposal(original=pending_delete, replacement=text, reason="Text replaced"))
                pending_delete = None
                continue

            anchor = original_text[max(0, original_index - ANCHOR_CONTEXT) : original_index]
            # Paragraphs are joined with newlines; an anchor never crosses one
            anchor = anchor.rpartition("\n")[2]
            if anchor.strip():
                proposals.append(ChangeProposal(original=anchor, replacement=anchor + text, reason="Text inserted"))
                continue

            # Start of a paragraph: anchor on the following word instead
            following = diffs[i + 1][1] if i + 1 < len(diffs) and diffs[i + 1][0] == diff_match_patch.DIFF_EQUAL else ""
            word = following.split()[0] if following.split() else ""
            if word:
                proposals.append(ChangeProposal(original=word, replacement=text + word, reason="Text inserted"))
            else:
                logger.warning("Dropping insertion without anchor context", text=text[:40])

    if pending_delete is not None:
        proposals.append(ChangeProposal(original=pending_delete, replacement="", reason="Text deleted"))

    logger.debug("Diff produced proposals", count=len(proposals))
    return proposals


def _words_to_chars(text1: str, text2: str) -> Tuple[str, str, List[str]]:
    """
    Splits text into words/tokens and encodes each distinct token as one character.
    """
    token_array: List[str] = []
    token_hash: Dict[str, int] = {}
    split_pattern = r"(\s+|\w+|[^\w\s])"

    def encode_text(text: str) -> str:
        encoded = []
        for token in (t for t in re.split(split_pattern, text) if t):
            if token not in token_hash:
                token_hash[token] = len(token_array)
                token_array.append(token)
            encoded.append(chr(token_hash[token]))
        return "".join(encoded)

    return encode_text(text1), encode_text(text2), token_array
