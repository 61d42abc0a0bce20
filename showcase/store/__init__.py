"""Remote persistence for the games document.

Reads and writes one JSON document through the GitHub contents API, using
the blob SHA as an optimistic-concurrency version tag.
"""

from .github_store import (
    DocumentSnapshot,
    DocumentStoreError,
    GitHubDocumentStore,
    PersistError,
)
from .schema import DOCUMENT_SCHEMA, validate_document

__all__ = [
    "DocumentSnapshot",
    "DocumentStoreError",
    "GitHubDocumentStore",
    "PersistError",
    "DOCUMENT_SCHEMA",
    "validate_document",
]
