"""
Document store interface.

The vault engines never open connections themselves: they are handed a
store that implements :class:`DocumentStore`. Documents are plain dicts
carrying their identifier under ``"$id"``.
"""
import copy
import logging
from abc import ABC, abstractmethod
from collections.abc import Mapping
from typing import Any, Optional

from .exceptions import StorageIOError

logger = logging.getLogger("fieldvault.store")

DOCUMENT_ID = "$id"


class DocumentStore(ABC):
    """Abstract async document store."""

    @abstractmethod
    async def list_documents(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        """Return up to ``limit`` documents starting at ``offset``.

        ``filters`` is an equality filter (field -> value).

        Raises:
            StorageIOError: if the backend cannot be read.
        """

    @abstractmethod
    async def update_document(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        """Merge ``fields`` into one document and return the stored document.

        Raises:
            StorageIOError: if the document cannot be written.
        """

    async def close(self) -> None:
        """Release backend resources."""

    async def __aenter__(self) -> "DocumentStore":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()


class MemoryDocumentStore(DocumentStore):
    """In-memory store, ordered by insertion. Reads and writes copy documents.

    ``updates`` keeps a log of ``(collection, document_id, fields)`` writes.
    """

    def __init__(self, collections: Optional[Mapping[str, list[dict]]] = None) -> None:
        self._collections: dict[str, list[dict[str, Any]]] = {}
        self.updates: list[tuple[str, str, dict[str, Any]]] = []
        for name, documents in (collections or {}).items():
            for document in documents:
                self.add(name, document)

    def add(self, collection: str, document: Mapping[str, Any]) -> dict[str, Any]:
        """Insert a document; assigns a sequential ``$id`` when missing."""
        documents = self._collections.setdefault(collection, [])
        stored = copy.deepcopy(dict(document))
        stored.setdefault(DOCUMENT_ID, f"{collection}-{len(documents) + 1}")
        documents.append(stored)
        return copy.deepcopy(stored)

    def get(self, collection: str, document_id: str) -> Optional[dict[str, Any]]:
        for document in self._collections.get(collection, []):
            if document[DOCUMENT_ID] == document_id:
                return copy.deepcopy(document)
        return None

    def snapshot(self) -> dict[str, list[dict[str, Any]]]:
        return copy.deepcopy(self._collections)

    async def list_documents(
        self,
        collection: str,
        filters: Optional[Mapping[str, Any]] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[dict[str, Any]]:
        documents = self._collections.get(collection, [])
        if filters:
            documents = [
                doc for doc in documents
                if all(doc.get(field) == value for field, value in filters.items())
            ]
        return copy.deepcopy(documents[offset:offset + limit])

    async def update_document(
        self,
        collection: str,
        document_id: str,
        fields: Mapping[str, Any],
    ) -> dict[str, Any]:
        for document in self._collections.get(collection, []):
            if document[DOCUMENT_ID] == document_id:
                document.update(copy.deepcopy(dict(fields)))
                self.updates.append((collection, document_id, copy.deepcopy(dict(fields))))
                logger.debug("Updated %s/%s", collection, document_id)
                return copy.deepcopy(document)
        raise StorageIOError(f"Document {document_id} not found in {collection}")
