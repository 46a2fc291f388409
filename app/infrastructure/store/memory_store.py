from __future__ import annotations

import copy
import threading
from typing import Any

from app.application.exceptions import StorageError
from app.application.ports.document_store import BatchResult, DocumentStorePort, StoredDocument, WriteOp


def _matches(data: dict[str, Any], field: str, op: str, value: Any) -> bool:
    # Documents without the field never match, as in Firestore
    if field not in data:
        return False
    actual = data[field]
    try:
        if op == "==":
            return actual == value
        if op == "!=":
            return actual != value
        if op == "<":
            return actual < value
        if op == "<=":
            return actual <= value
        if op == ">":
            return actual > value
        if op == ">=":
            return actual >= value
        if op == "in":
            return actual in value
    except TypeError:
        return False
    raise ValueError(f"Unsupported query operator: {op}")


class MemoryDocumentStore(DocumentStorePort):
    def __init__(self, max_batch_size: int = 500) -> None:
        self.max_batch_size = max_batch_size
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._lock = threading.RLock()

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            doc = self._collections.get(collection, {}).get(doc_id)
            return copy.deepcopy(doc) if doc is not None else None

    def query(
        self,
        collection: str,
        filters: list[tuple[str, str, Any]],
        limit: int | None = None,
    ) -> list[StoredDocument]:
        results: list[StoredDocument] = []
        with self._lock:
            for doc_id, data in self._collections.get(collection, {}).items():
                if all(_matches(data, field, op, value) for field, op, value in filters):
                    results.append(StoredDocument(id=doc_id, data=copy.deepcopy(data)))
                    if limit is not None and len(results) >= limit:
                        break
        return results

    def set(self, collection: str, doc_id: str, fields: dict[str, Any], merge: bool = False) -> None:
        self.commit_batch([WriteOp("set", collection, doc_id, fields, merge=merge)])

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        self.commit_batch([WriteOp("update", collection, doc_id, fields)])

    def delete(self, collection: str, doc_id: str) -> None:
        self.commit_batch([WriteOp("delete", collection, doc_id)])

    def commit_batch(self, ops: list[WriteOp]) -> BatchResult:
        if len(ops) > self.max_batch_size:
            raise StorageError(f"Batch of {len(ops)} exceeds limit of {self.max_batch_size}")

        with self._lock:
            # Stage on copies of the touched collections so a bad op leaves nothing applied
            touched = {op.collection for op in ops}
            staged = {name: dict(self._collections.get(name, {})) for name in touched}
            for op in ops:
                self._apply(staged[op.collection], op)
            # Durable subclasses write first so a failed write leaves memory unchanged
            self._persist(staged)
            self._collections.update(staged)
        return BatchResult(committed=len(ops))

    def _apply(self, documents: dict[str, dict[str, Any]], op: WriteOp) -> None:
        fields = copy.deepcopy(op.fields)
        if op.kind == "set":
            if op.merge and op.doc_id in documents:
                documents[op.doc_id] = {**documents[op.doc_id], **fields}
            else:
                documents[op.doc_id] = fields
        elif op.kind == "update":
            if op.doc_id not in documents:
                raise StorageError(f"No document to update: {op.collection}/{op.doc_id}")
            documents[op.doc_id] = {**documents[op.doc_id], **fields}
        elif op.kind == "delete":
            documents.pop(op.doc_id, None)
        else:
            raise StorageError(f"Unknown write op: {op.kind}")

    def _persist(self, staged: dict[str, dict[str, dict[str, Any]]]) -> None:
        """Hook for durable subclasses; called with the lock held before staged collections are swapped in."""
