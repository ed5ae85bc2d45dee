from typing import MutableMapping, Optional

import structlog

from redpen.errors import StoreAccessError
from redpen.store import DocumentHandle, DocumentStore

logger = structlog.get_logger(__name__)

TEMPLATE_KEY = "templateDocId"


def open_template(
    store: DocumentStore, settings_map: MutableMapping[str, str], key: str = TEMPLATE_KEY
) -> Optional[DocumentHandle]:
    """
    Opens the template referenced in the user's key-value settings.
    A reference to a document that no longer opens is removed so it stops failing.
    """
    doc_id = settings_map.get(key)
    if not doc_id:
        return None
    try:
        return store.open(doc_id)
    except StoreAccessError as e:
        logger.warning("Removing stale template reference", key=key, doc_id=doc_id, error=str(e))
        settings_map.pop(key, None)
        return None
