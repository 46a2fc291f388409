from __future__ import annotations

import json
import logging
from datetime import datetime
from pathlib import Path
from typing import Any

from app.application.exceptions import StorageError
from app.infrastructure.store.memory_store import MemoryDocumentStore


logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    if isinstance(value, datetime):
        return {"$date": value.isoformat()}
    if isinstance(value, dict):
        return {k: _encode(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_encode(v) for v in value]
    return value


def _decode(value: Any) -> Any:
    if isinstance(value, dict):
        if set(value) == {"$date"}:
            return datetime.fromisoformat(value["$date"])
        return {k: _decode(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_decode(v) for v in value]
    return value


class JsonDocumentStore(MemoryDocumentStore):
    """
    File-backed store for local development: one JSON file per collection.

    Everything is held in memory; each commit rewrites the touched
    collection files via a temp file and atomic rename.
    """

    def __init__(self, data_dir: str = "./data/documents", max_batch_size: int = 500) -> None:
        super().__init__(max_batch_size=max_batch_size)
        self._data_dir = Path(data_dir)
        self._data_dir.mkdir(parents=True, exist_ok=True)
        self._load_all()

    def _get_file_path(self, collection: str) -> Path:
        return self._data_dir / f"{collection}.json"

    def _load_all(self) -> None:
        for file_path in sorted(self._data_dir.glob("*.json")):
            collection = file_path.stem
            try:
                with open(file_path, "r", encoding="utf-8") as f:
                    self._collections[collection] = _decode(json.load(f))
            except (json.JSONDecodeError, OSError) as e:
                # A corrupt file starts empty rather than blocking startup
                logger.error("Failed to load collection file", extra={"collection": collection, "error": str(e)})
                self._collections[collection] = {}

    def _persist(self, staged: dict[str, dict[str, dict[str, Any]]]) -> None:
        for collection, documents in staged.items():
            file_path = self._get_file_path(collection)
            temp_path = file_path.with_suffix(".json.tmp")
            try:
                with open(temp_path, "w", encoding="utf-8") as f:
                    json.dump(_encode(documents), f, indent=2, ensure_ascii=False)
                temp_path.replace(file_path)
            except OSError as e:
                if temp_path.exists():
                    temp_path.unlink()
                raise StorageError(f"Failed to write {file_path}: {e}") from e
