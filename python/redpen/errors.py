class RedpenError(Exception):
    """Base class for all redpen failures."""


class NotFoundError(RedpenError):
    """The locator could not find the requested text in the document."""


class UnparseableDocumentError(RedpenError):
    """The document yielded no readable content items."""


class StoreAccessError(RedpenError):
    """A document identifier is invalid, missing or cannot be read/written."""

    def __init__(self, message: str, doc_id: str = ""):
        super().__init__(message)
        self.doc_id = doc_id
