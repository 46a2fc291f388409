from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class StoredDocument:
    id: str
    data: dict[str, Any]


@dataclass(frozen=True)
class WriteOp:
    kind: str  # "set", "update", "delete"
    collection: str
    doc_id: str
    fields: dict[str, Any] = field(default_factory=dict)
    merge: bool = False


@dataclass(frozen=True)
class BatchResult:
    committed: int


class DocumentStorePort(ABC):
    """Generic document database: collections of id -> dict documents."""

    max_batch_size: int = 500

    @abstractmethod
    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        """Return a copy of the document, or None when absent."""
        raise NotImplementedError

    @abstractmethod
    def query(
        self,
        collection: str,
        filters: list[tuple[str, str, Any]],
        limit: int | None = None,
    ) -> list[StoredDocument]:
        """
        Return documents matching every filter.

        Supported operators: "==", "!=", "<", "<=", ">", ">=", "in".
        """
        raise NotImplementedError

    @abstractmethod
    def set(self, collection: str, doc_id: str, fields: dict[str, Any], merge: bool = False) -> None:
        raise NotImplementedError

    @abstractmethod
    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        """Merge fields into an existing document. Raises StorageError when it is absent."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document. Deleting an absent document is a no-op."""
        raise NotImplementedError

    @abstractmethod
    def commit_batch(self, ops: list[WriteOp]) -> BatchResult:
        """
        Apply all ops atomically or none of them.

        Raises StorageError on failure or when len(ops) exceeds max_batch_size.
        """
        raise NotImplementedError

    def exists(self, collection: str, doc_id: str) -> bool:
        return self.get(collection, doc_id) is not None
