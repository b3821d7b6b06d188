"""
In-memory collection client.

Behaves like the hosted backend as far as the sync layer can tell: documents
get random ids, server timestamps are resolved at write time from a clock that
never repeats a value, and every write pushes a full snapshot to the listeners
of the touched collection. Used by the tests and for offline demos.

With ``auto_flush=False`` change events are queued until ``flush()`` is
called, which lets callers reproduce events that are in flight while a
listener is being cancelled.
"""

import copy
import logging
import threading
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional

from src.backend.base import (
    Cancel,
    CollectionClient,
    ErrorCallback,
    OrderBy,
    RemoteDocument,
    SnapshotCallback,
    split_document_path,
)
from src.errors import NotFoundError, SyncError

logger = logging.getLogger(__name__)


class _ServerTimestamp:
    def __repr__(self):
        return "SERVER_TIMESTAMP"


SERVER_TIMESTAMP = _ServerTimestamp()


@dataclass(frozen=True)
class MemoryReference:
    path: str

    @property
    def id(self) -> str:
        return self.path.rstrip("/").rsplit("/", 1)[-1]


@dataclass(eq=False)
class _Listener:
    collection_path: str
    on_snapshot: SnapshotCallback
    on_error: ErrorCallback
    order_by: Optional[OrderBy]
    active: bool = True


class InMemoryCollectionClient(CollectionClient):
    def __init__(self, auto_flush: bool = True):
        self.auto_flush = auto_flush
        self._collections: Dict[str, Dict[str, Dict[str, Any]]] = {}
        self._listeners: List[_Listener] = []
        self._pending: List[Callable[[], None]] = []
        self._write_failures: List[SyncError] = []
        self._subscribe_failures: Dict[str, SyncError] = {}
        self._last_timestamp: Optional[datetime] = None
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Test hooks
    # ------------------------------------------------------------------

    def fail_next_write(self, error: SyncError):
        """The next add/update/delete/set raises ``error`` without writing."""
        with self._lock:
            self._write_failures.append(error)

    def fail_subscriptions(self, collection_path: str, error: SyncError):
        """New listeners on ``collection_path`` receive ``error`` instead of data."""
        with self._lock:
            self._subscribe_failures[collection_path] = error

    def emit_error(self, collection_path: str, error: SyncError):
        """Breaks every live listener on ``collection_path`` with ``error``."""
        with self._lock:
            for listener in self._listeners:
                if listener.active and listener.collection_path == collection_path:
                    self._schedule(self._error_event(listener, error))
        self._maybe_flush()

    def flush(self) -> int:
        """Delivers queued change events. Returns how many were processed."""
        delivered = 0
        while True:
            with self._lock:
                if not self._pending:
                    return delivered
                event = self._pending.pop(0)
            event()
            delivered += 1

    @property
    def listener_count(self) -> int:
        with self._lock:
            return sum(1 for listener in self._listeners if listener.active)

    # ------------------------------------------------------------------
    # CollectionClient
    # ------------------------------------------------------------------

    def query(
        self, collection_path: str, order_by: Optional[OrderBy] = None
    ) -> List[RemoteDocument]:
        with self._lock:
            return self._snapshot(collection_path, order_by)

    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        order_by: Optional[OrderBy] = None,
    ) -> Cancel:
        listener = _Listener(collection_path, on_snapshot, on_error, order_by)
        with self._lock:
            failure = self._subscribe_failures.get(collection_path)
            self._listeners.append(listener)
            if failure is not None:
                self._schedule(self._error_event(listener, failure))
            else:
                self._schedule(self._snapshot_event(listener))
        self._maybe_flush()

        def cancel():
            with self._lock:
                listener.active = False
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return cancel

    def add(self, collection_path: str, fields: Dict[str, Any]) -> str:
        doc_id = uuid.uuid4().hex[:20]
        with self._lock:
            self._raise_injected_failure()
            collection = self._collections.setdefault(collection_path, {})
            collection[doc_id] = self._resolve(fields)
            self._notify(collection_path)
        self._maybe_flush()
        return doc_id

    def update(self, document_path: str, fields: Dict[str, Any]) -> None:
        collection_path, doc_id = split_document_path(document_path)
        with self._lock:
            self._raise_injected_failure()
            collection = self._collections.get(collection_path, {})
            if doc_id not in collection:
                raise NotFoundError(f"No document to update: {document_path}")
            collection[doc_id].update(self._resolve(fields))
            self._notify(collection_path)
        self._maybe_flush()

    def delete(self, document_path: str) -> None:
        collection_path, doc_id = split_document_path(document_path)
        with self._lock:
            self._raise_injected_failure()
            collection = self._collections.get(collection_path, {})
            if doc_id not in collection:
                raise NotFoundError(f"No document to delete: {document_path}")
            del collection[doc_id]
            self._notify(collection_path)
        self._maybe_flush()

    def set(
        self, document_path: str, fields: Dict[str, Any], merge: bool = False
    ) -> None:
        collection_path, doc_id = split_document_path(document_path)
        with self._lock:
            self._raise_injected_failure()
            collection = self._collections.setdefault(collection_path, {})
            resolved = self._resolve(fields)
            if merge and doc_id in collection:
                collection[doc_id].update(resolved)
            else:
                collection[doc_id] = resolved
            self._notify(collection_path)
        self._maybe_flush()

    def server_timestamp(self) -> Any:
        return SERVER_TIMESTAMP

    def reference(self, document_path: str) -> MemoryReference:
        return MemoryReference(document_path.strip("/"))

    def get(self, document_path: str) -> Optional[Dict[str, Any]]:
        """Raw stored fields of one document, or None."""
        collection_path, doc_id = split_document_path(document_path)
        with self._lock:
            data = self._collections.get(collection_path, {}).get(doc_id)
            return copy.deepcopy(data) if data is not None else None

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _now(self) -> datetime:
        now = datetime.now(timezone.utc)
        if self._last_timestamp is not None and now <= self._last_timestamp:
            now = self._last_timestamp + timedelta(microseconds=1)
        self._last_timestamp = now
        return now

    def _resolve(self, fields: Dict[str, Any]) -> Dict[str, Any]:
        stamp = None
        resolved = {}
        for key, value in fields.items():
            if value is SERVER_TIMESTAMP:
                stamp = stamp or self._now()
                value = stamp
            resolved[key] = copy.deepcopy(value)
        return resolved

    def _raise_injected_failure(self):
        if self._write_failures:
            raise self._write_failures.pop(0)

    def _snapshot(
        self, collection_path: str, order_by: Optional[OrderBy]
    ) -> List[RemoteDocument]:
        collection = self._collections.get(collection_path, {})
        docs = [
            RemoteDocument(
                id=doc_id,
                data=copy.deepcopy(data),
                path=f"{collection_path}/{doc_id}",
            )
            for doc_id, data in collection.items()
        ]
        if order_by:
            field_name, direction = order_by
            # Documents missing the field sort last, like an index would skip them
            present = [d for d in docs if d.data.get(field_name) is not None]
            missing = [d for d in docs if d.data.get(field_name) is None]
            present.sort(
                key=lambda d: d.data[field_name], reverse=direction.lower() == "desc"
            )
            docs = present + missing
        return docs

    def _notify(self, collection_path: str):
        for listener in self._listeners:
            if listener.active and listener.collection_path == collection_path:
                self._schedule(self._snapshot_event(listener))

    def _schedule(self, event: Callable[[], None]):
        self._pending.append(event)

    def _maybe_flush(self):
        if self.auto_flush:
            self.flush()

    def _snapshot_event(self, listener: _Listener) -> Callable[[], None]:
        # Captured at write time, as a real change feed would have it
        docs = self._snapshot(listener.collection_path, listener.order_by)

        def deliver():
            if listener.active:
                listener.on_snapshot(docs)

        return deliver

    def _error_event(self, listener: _Listener, error: SyncError) -> Callable[[], None]:
        def deliver():
            with self._lock:
                if not listener.active:
                    return
                listener.active = False
                if listener in self._listeners:
                    self._listeners.remove(listener)
            logger.debug(f"Listener on {listener.collection_path} failed: {error}")
            listener.on_error(error)

        return deliver
