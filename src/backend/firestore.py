"""
Firestore implementation of the collection contract.

Change feeds use ``Query.on_snapshot``: the SDK runs the watch on a background
thread and calls back with the full query result after every change.
"""

import logging
from typing import Any, Dict, List, Optional

import google.cloud.firestore
from google.api_core import exceptions as google_exceptions
from google.cloud.firestore import SERVER_TIMESTAMP

from src.backend.base import (
    Cancel,
    CollectionClient,
    ErrorCallback,
    OrderBy,
    RemoteDocument,
    SnapshotCallback,
)
from src.config import Config
from src.errors import AuthenticationRequired, NotFoundError, SyncError, TransportError

logger = logging.getLogger(__name__)


def translate_error(exc: Exception, action: str) -> SyncError:
    """Maps google-api-core failures onto the sync error taxonomy."""
    if isinstance(exc, SyncError):
        return exc
    if isinstance(exc, google_exceptions.NotFound):
        return NotFoundError(f"Error {action}: document not found")
    if isinstance(
        exc, (google_exceptions.PermissionDenied, google_exceptions.Unauthenticated)
    ):
        return AuthenticationRequired(f"Error {action}: {exc.message}")
    message = getattr(exc, "message", None) or str(exc) or "Unknown error"
    return TransportError(f"Error {action}: {message}")


def _to_remote_document(snapshot) -> RemoteDocument:
    return RemoteDocument(
        id=snapshot.id,
        data=snapshot.to_dict() or {},
        path=snapshot.reference.path,
    )


class FirestoreCollectionClient(CollectionClient):
    def __init__(self, client: Optional[google.cloud.firestore.Client] = None):
        self.client = client or google.cloud.firestore.Client(
            project=Config.FIREBASE_PROJECT_ID
        )

    def _query(self, collection_path: str, order_by: Optional[OrderBy]):
        query = self.client.collection(collection_path)
        if order_by:
            field_name, direction = order_by
            query = query.order_by(
                field_name,
                direction=google.cloud.firestore.Query.DESCENDING
                if direction.lower() == "desc"
                else google.cloud.firestore.Query.ASCENDING,
            )
        return query

    def query(
        self, collection_path: str, order_by: Optional[OrderBy] = None
    ) -> List[RemoteDocument]:
        try:
            return [
                _to_remote_document(snap)
                for snap in self._query(collection_path, order_by).stream()
            ]
        except Exception as e:
            raise translate_error(e, f"fetching {collection_path}") from e

    def subscribe(
        self,
        collection_path: str,
        on_snapshot: SnapshotCallback,
        on_error: ErrorCallback,
        order_by: Optional[OrderBy] = None,
    ) -> Cancel:
        def callback(docs, changes, read_time):
            try:
                remote_docs = [_to_remote_document(snap) for snap in docs]
            except Exception as e:
                logger.error(f"Error reading snapshot of {collection_path}: {e}")
                on_error(translate_error(e, f"reading {collection_path}"))
                return
            on_snapshot(remote_docs)

        try:
            watch = self._query(collection_path, order_by).on_snapshot(callback)
        except Exception as e:
            logger.error(f"Error setting up subscription on {collection_path}: {e}")
            on_error(translate_error(e, f"subscribing to {collection_path}"))
            return lambda: None

        return watch.unsubscribe

    def add(self, collection_path: str, fields: Dict[str, Any]) -> str:
        try:
            _, doc_ref = self.client.collection(collection_path).add(fields)
        except Exception as e:
            raise translate_error(e, f"adding to {collection_path}") from e
        return doc_ref.id

    def update(self, document_path: str, fields: Dict[str, Any]) -> None:
        try:
            self.client.document(document_path).update(fields)
        except Exception as e:
            raise translate_error(e, f"updating {document_path}") from e

    def delete(self, document_path: str) -> None:
        # Plain deletes succeed on missing documents; the precondition makes them fail
        option = self.client.write_option(exists=True)
        try:
            self.client.document(document_path).delete(option=option)
        except Exception as e:
            raise translate_error(e, f"deleting {document_path}") from e

    def set(
        self, document_path: str, fields: Dict[str, Any], merge: bool = False
    ) -> None:
        try:
            self.client.document(document_path).set(fields, merge=merge)
        except Exception as e:
            raise translate_error(e, f"writing {document_path}") from e

    def server_timestamp(self) -> Any:
        return SERVER_TIMESTAMP

    def reference(self, document_path: str):
        return self.client.document(document_path)
