from importlib.metadata import PackageNotFoundError, version

from redpen.locator import locate
from redpen.models import BatchResult, ChangeProposal, MutationResult, ReviewOutcome, SectionModel
from redpen.normalize import normalize
from redpen.parser import parse
from redpen.store import DocumentHandle, DocumentStore

try:
    __version__ = version("redpen")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"

__all__ = [
    "DocumentStore",
    "DocumentHandle",
    "ChangeProposal",
    "MutationResult",
    "BatchResult",
    "ReviewOutcome",
    "SectionModel",
    "normalize",
    "locate",
    "parse",
    "__version__",
]
