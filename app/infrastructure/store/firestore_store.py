from __future__ import annotations

import logging
from typing import Any

from firebase_admin import App, firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore_v1.base_query import FieldFilter

from app.application.exceptions import StorageError
from app.application.ports.document_store import BatchResult, DocumentStorePort, StoredDocument, WriteOp


# Firestore rejects write batches above this size
FIRESTORE_MAX_BATCH_SIZE = 500


class FirestoreDocumentStore(DocumentStorePort):
    def __init__(self, app: App, max_batch_size: int = FIRESTORE_MAX_BATCH_SIZE) -> None:
        self._db = firestore.client(app=app)
        self.max_batch_size = min(max_batch_size, FIRESTORE_MAX_BATCH_SIZE)
        self._logger = logging.getLogger(__name__)

    def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            snapshot = self._db.collection(collection).document(doc_id).get()
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Read failed for {collection}/{doc_id}: {e}") from e
        return snapshot.to_dict() if snapshot.exists else None

    def query(
        self,
        collection: str,
        filters: list[tuple[str, str, Any]],
        limit: int | None = None,
    ) -> list[StoredDocument]:
        query = self._db.collection(collection)
        for field, op, value in filters:
            query = query.where(filter=FieldFilter(field, op, value))
        if limit is not None:
            query = query.limit(limit)
        try:
            return [StoredDocument(id=snap.id, data=snap.to_dict() or {}) for snap in query.stream()]
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Query failed on {collection}: {e}") from e

    def set(self, collection: str, doc_id: str, fields: dict[str, Any], merge: bool = False) -> None:
        try:
            self._db.collection(collection).document(doc_id).set(fields, merge=merge)
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Write failed for {collection}/{doc_id}: {e}") from e

    def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        try:
            self._db.collection(collection).document(doc_id).update(fields)
        except google_exceptions.NotFound as e:
            raise StorageError(f"No document to update: {collection}/{doc_id}") from e
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Update failed for {collection}/{doc_id}: {e}") from e

    def delete(self, collection: str, doc_id: str) -> None:
        try:
            self._db.collection(collection).document(doc_id).delete()
        except google_exceptions.GoogleAPICallError as e:
            raise StorageError(f"Delete failed for {collection}/{doc_id}: {e}") from e

    def commit_batch(self, ops: list[WriteOp]) -> BatchResult:
        if len(ops) > self.max_batch_size:
            raise StorageError(f"Batch of {len(ops)} exceeds limit of {self.max_batch_size}")

        batch = self._db.batch()
        for op in ops:
            ref = self._db.collection(op.collection).document(op.doc_id)
            if op.kind == "set":
                batch.set(ref, op.fields, merge=op.merge)
            elif op.kind == "update":
                batch.update(ref, op.fields)
            elif op.kind == "delete":
                batch.delete(ref)
            else:
                raise StorageError(f"Unknown write op: {op.kind}")

        try:
            batch.commit()
        except google_exceptions.GoogleAPICallError as e:
            self._logger.error("Batch commit failed", extra={"ops": len(ops), "error": str(e)})
            raise StorageError(f"Batch commit failed: {e}") from e
        return BatchResult(committed=len(ops))
