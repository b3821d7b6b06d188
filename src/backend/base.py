"""
Contract between the sync services and a hosted document database.

Paths are slash separated: a collection path has an odd number of segments
(``users/{uid}/sales``), a document path an even one
(``users/{uid}/sales/{sale_id}``). Implementations translate their vendor
exceptions into ``src.errors`` types so callers only ever see ``SyncError``.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Tuple

from src.errors import SyncError

# ("date", "desc")
OrderBy = Tuple[str, str]
SnapshotCallback = Callable[[List["RemoteDocument"]], None]
ErrorCallback = Callable[[SyncError], None]
Cancel = Callable[[], None]


@dataclass(frozen=True)
class RemoteDocument:
    id: str
    data: Dict[str, Any] = field(default_factory=dict)
    path: Optional[str] = None


class CollectionClient(ABC):
    @abstractmethod
    def query(
        self, collection_path: str, order_by: Optional[OrderBy] = None
    ) -> List[RemoteDocument]:
        """One-shot read of the whole collection."""
        raise NotImplementedError

    @abstractmethod
    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        order_by: Optional[OrderBy] = None,
    ) -> Cancel:
        """
        Registers a change-feed listener. ``on_snapshot`` receives the full
        collection on the initial load and after every change. Returns a
        callable that detaches the listener.
        """
        raise NotImplementedError

    @abstractmethod
    def add(self, collection_path: str, fields: Dict[str, Any]) -> str:
        """Creates a document with a backend-assigned id and returns the id."""
        raise NotImplementedError

    @abstractmethod
    def update(self, document_path: str, fields: Dict[str, Any]) -> None:
        """Merges ``fields`` into an existing document, NotFoundError otherwise."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, document_path: str) -> None:
        """Removes an existing document, NotFoundError otherwise."""
        raise NotImplementedError

    @abstractmethod
    def set(
        self, document_path: str, fields: Dict[str, Any], merge: bool = False
    ) -> None:
        raise NotImplementedError

    @abstractmethod
    def server_timestamp(self) -> Any:
        """Sentinel resolved to the backend clock when the write is applied."""
        raise NotImplementedError

    @abstractmethod
    def reference(self, document_path: str) -> Any:
        """Backend-native pointer to a document."""
        raise NotImplementedError


def split_document_path(document_path: str) -> Tuple[str, str]:
    """Returns (collection_path, document_id)."""
    collection_path, _, doc_id = document_path.strip("/").rpartition("/")
    if not collection_path or not doc_id:
        raise ValueError(f"Not a document path: {document_path!r}")
    return collection_path, doc_id
