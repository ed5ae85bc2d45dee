"""
Turns an AI provider's reply into ChangeProposal records.

The agreed shape is a JSON list of proposals, or an object with a "changes"
list. Models like to wrap JSON in Markdown fences or add prose around it,
so both are tolerated.
"""

import json
import re
from typing import Callable, List

import structlog
from pydantic import TypeAdapter, ValidationError

from redpen.models import ChangeProposal

logger = structlog.get_logger(__name__)

CallAI = Callable[[str, str], str]

_FENCE_RE = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)
_PROPOSAL_LIST = TypeAdapter(List[ChangeProposal])


def _candidates(text: str):
    stripped = text.strip()
    yield stripped
    for match in _FENCE_RE.finditer(stripped):
        yield match.group(1).strip()
    for opener, closer in (("[", "]"), ("{", "}")):
        start = stripped.find(opener)
        end = stripped.rfind(closer)
        if start != -1 and end > start:
            yield stripped[start : end + 1]


def _load_json(text: str):
    for candidate in _candidates(text):
        try:
            return json.loads(candidate)
        except json.JSONDecodeError:
            continue
    raise ValueError("No JSON payload found in AI response")


def parse_proposals(text: str) -> List[ChangeProposal]:
    if not text or not text.strip():
        raise ValueError("AI response is empty")

    data = _load_json(text)
    if isinstance(data, dict):
        data = data.get("changes")
    if not isinstance(data, list):
        raise ValueError("Expected a list of changes or an object with a 'changes' list")

    try:
        proposals = _PROPOSAL_LIST.validate_python(data)
    except ValidationError as e:
        raise ValueError(f"Invalid change proposal: {e}") from e

    logger.debug("Parsed proposals", count=len(proposals))
    return proposals


def request_proposals(call_ai: CallAI, system_prompt: str, user_message: str) -> List[ChangeProposal]:
    """Calls the provider capability and parses its reply."""
    reply = call_ai(system_prompt, user_message)
    return parse_proposals(reply)
