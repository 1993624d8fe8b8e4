"""Durable last-value stores backing the transport.

One record per message kind: ``{timestamp, data}``. Stores notify listeners
when a record changes. Writes made in this process notify immediately;
writes made by another process (file or Mongo backends) are picked up by
`poll()`, which the transport runs on a timer for shared stores.
"""
from __future__ import annotations

import json
import logging
import os
import re
import tempfile
from abc import ABC, abstractmethod
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from pydantic import ValidationError
from pymongo import MongoClient
from pymongo.collection import Collection
from pymongo.errors import PyMongoError

from flood_kiosk.persistence.schemas import SnapshotRecord

__all__ = ["SnapshotStore", "MemorySnapshotStore", "FileSnapshotStore",
           "MongoSnapshotStore", "build_store"]

logger = logging.getLogger(__name__)

ChangeListener = Callable[[str, SnapshotRecord], None]


class SnapshotStore(ABC):
    """Key-per-kind record store with change notifications."""

    #: True when other processes can write to the same records
    shared = False

    def __init__(self):
        self._listeners: List[ChangeListener] = []

    @abstractmethod
    def get(self, kind: str) -> Optional[SnapshotRecord]:
        """Latest record for `kind`, or None."""

    @abstractmethod
    def _write(self, kind: str, record: SnapshotRecord) -> None:
        ...

    def put(self, kind: str, record: SnapshotRecord) -> None:
        self._write(kind, record)
        self._notify(kind, record)

    def add_listener(self, listener: ChangeListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove():
            if listener in self._listeners:
                self._listeners.remove(listener)
        return remove

    def poll(self) -> None:
        """Notify listeners about changes made outside this process."""

    def _mark_seen(self, kind: str, timestamp: float) -> None:
        # Records already handed out are not announced again by poll()
        seen = getattr(self, "_seen", None)
        if seen is not None and timestamp > seen.get(kind, float("-inf")):
            seen[kind] = timestamp

    def close(self) -> None:
        self._listeners.clear()

    def _notify(self, kind: str, record: SnapshotRecord) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind, record)
            except Exception:
                logger.exception("Snapshot listener failed for kind %r", kind)


class MemorySnapshotStore(SnapshotStore):
    """Process-local store; share one instance between surfaces in a process."""

    def __init__(self):
        super().__init__()
        self._records: Dict[str, SnapshotRecord] = {}

    def get(self, kind: str) -> Optional[SnapshotRecord]:
        return self._records.get(kind)

    def _write(self, kind: str, record: SnapshotRecord) -> None:
        self._records[kind] = record


class FileSnapshotStore(SnapshotStore):
    """One JSON file per kind in `directory`, shareable between processes."""

    PREFIX = "fs_"
    shared = True

    def __init__(self, directory: str | os.PathLike):
        super().__init__()
        self.directory = Path(directory)
        self.directory.mkdir(parents=True, exist_ok=True)
        self._seen: Dict[str, float] = {}

    def _path(self, kind: str) -> Path:
        safe = re.sub(r"[^A-Za-z0-9_-]", "_", kind)
        return self.directory / f"{self.PREFIX}{safe}.json"

    @staticmethod
    def _read(path: Path) -> Optional[Dict]:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning("Unreadable snapshot file %s: %s", path, e)
            return None

    def get(self, kind: str) -> Optional[SnapshotRecord]:
        doc = self._read(self._path(kind))
        if not doc or doc.get("kind") != kind:
            return None
        try:
            record = SnapshotRecord(timestamp=doc["timestamp"], data=doc.get("data"))
        except (KeyError, ValidationError):
            logger.warning("Malformed snapshot record for kind %r", kind)
            return None
        self._mark_seen(kind, record.timestamp)
        return record

    def _write(self, kind: str, record: SnapshotRecord) -> None:
        path = self._path(kind)
        payload = {"kind": kind, **record.model_dump(mode="json")}
        fd, tmp = tempfile.mkstemp(dir=self.directory, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp, path)
        except OSError:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        self._seen[kind] = record.timestamp

    def poll(self) -> None:
        for path in sorted(self.directory.glob(f"{self.PREFIX}*.json")):
            doc = self._read(path)
            if not doc or "kind" not in doc or "timestamp" not in doc:
                continue
            kind = doc["kind"]
            try:
                record = SnapshotRecord(timestamp=doc["timestamp"], data=doc.get("data"))
            except ValidationError:
                continue
            if record.timestamp > self._seen.get(kind, float("-inf")):
                self._seen[kind] = record.timestamp
                self._notify(kind, record)


class MongoSnapshotStore(SnapshotStore):
    """Snapshot records in a MongoDB collection, one document per kind."""

    shared = True

    def __init__(self, collection: Optional[Collection] = None,
                 url: str = "mongodb://localhost:27017", db_name: str = "flood_kiosk"):
        super().__init__()
        self.client = None
        if collection is None:
            # Fast failure when the server is not present
            self.client = MongoClient(url, serverSelectionTimeoutMS=200)
            collection = self.client[db_name]["snapshots"]
        self.snapshots = collection
        try:
            self.snapshots.create_index("kind", unique=True)
        except PyMongoError:
            if self.client is not None:
                self.client.close()
            raise
        self._seen: Dict[str, float] = {}

    def get(self, kind: str) -> Optional[SnapshotRecord]:
        doc = self.snapshots.find_one({"kind": kind}, {"_id": 0})
        if not doc:
            return None
        record = SnapshotRecord(timestamp=doc["timestamp"], data=doc.get("data"))
        self._mark_seen(kind, record.timestamp)
        return record

    def _write(self, kind: str, record: SnapshotRecord) -> None:
        doc = {"kind": kind, **record.model_dump(mode="json"),
               "updated_at": datetime.utcnow()}
        self.snapshots.replace_one({"kind": kind}, doc, upsert=True)
        self._seen[kind] = record.timestamp

    def poll(self) -> None:
        for doc in self.snapshots.find({}, {"_id": 0}):
            kind = doc.get("kind")
            ts = doc.get("timestamp")
            if kind is None or ts is None:
                continue
            if ts > self._seen.get(kind, float("-inf")):
                self._seen[kind] = ts
                self._notify(kind, SnapshotRecord(timestamp=ts, data=doc.get("data")))

    def close(self) -> None:
        super().close()
        if self.client is not None:
            self.client.close()


def build_store(backend: str, snapshot_dir: str = "snapshots",
                mongodb_url: str = "mongodb://localhost:27017",
                mongodb_name: Optional[str] = None) -> SnapshotStore:
    """Create the store named by `backend` ("memory", "file" or "mongo").

    An unreachable Mongo server degrades to a process-local memory store.
    """
    backend = (backend or "memory").lower()
    if backend == "memory":
        return MemorySnapshotStore()
    if backend == "file":
        return FileSnapshotStore(snapshot_dir)
    if backend == "mongo":
        try:
            return MongoSnapshotStore(url=mongodb_url, db_name=mongodb_name or "flood_kiosk")
        except PyMongoError as e:
            logger.warning("MongoDB at %s unavailable (%s); snapshots kept in memory", mongodb_url, e)
            return MemorySnapshotStore()
    raise ValueError(f"Unknown snapshot store backend: {backend}")
