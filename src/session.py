import logging
from typing import Any, Callable, Dict, Optional

from src.auth.identity import Identity, IdentityClient
from src.errors import SyncError
from src.store.state import ClientStore, EntityKind, Severity
from src.sync.base import Subscription
from src.sync.services import Services

logger = logging.getLogger(__name__)

ENTITY_LABELS = {
    EntityKind.CUSTOMERS: "Customer",
    EntityKind.AIRLINES: "Airline",
    EntityKind.SALES: "Sale",
}


class SyncSession:
    """
    Keeps the store in step with the backend for whoever is signed in.

    Identity present: every entity service subscribes under that identity and
    each snapshot replaces its slice. Identity gone: every listener is
    released and the slices are emptied.
    """

    def __init__(self, services: Services, store: ClientStore):
        self.services = services
        self.store = store
        self._owner_id: Optional[str] = None
        self._subscriptions: Dict[EntityKind, Subscription] = {}
        self._stop_identity: Optional[Callable[[], None]] = None

    @property
    def owner_id(self) -> Optional[str]:
        return self._owner_id

    def bind(self, identity_client: IdentityClient):
        """Follows the identity provider until ``close``."""
        self.unbind()
        self._stop_identity = identity_client.on_identity_change(self.handle_identity)

    def unbind(self):
        if self._stop_identity is not None:
            self._stop_identity()
            self._stop_identity = None

    def handle_identity(self, identity: Optional[Identity]):
        self.store.set_identity(identity)
        uid = identity.uid if identity else None
        if uid is not None and uid == self._owner_id and self._subscriptions:
            return

        self._teardown()
        if uid is None:
            return

        logger.info(f"Starting live sync for {uid}")
        self._owner_id = uid
        for kind, service in self.services.by_kind().items():
            self.store.set_loading(kind, True)
            self._subscriptions[kind] = service.subscribe(
                uid,
                self._on_data(kind),
                self._on_error(kind),
            )

    def _on_data(self, kind: EntityKind):
        def handle(items):
            self.store.set_items(kind, items)

        return handle

    def _on_error(self, kind: EntityKind):
        def handle(error: SyncError):
            self.store.set_error(kind, error.message)
            self.store.show_notification(error.message, Severity.ERROR)

        return handle

    def resubscribe(self, kind: EntityKind):
        """Manual retry after a subscription failure."""
        if self._owner_id is None:
            return
        service = self.services.by_kind()[kind]
        service.unsubscribe(self._subscriptions.pop(kind, None))
        self.store.set_loading(kind, True)
        self._subscriptions[kind] = service.subscribe(
            self._owner_id, self._on_data(kind), self._on_error(kind)
        )

    def _teardown(self):
        if self._owner_id is not None:
            logger.info(f"Stopping live sync for {self._owner_id}")
        for kind, subscription in self._subscriptions.items():
            self.services.by_kind()[kind].unsubscribe(subscription)
        self._subscriptions.clear()
        self._owner_id = None
        for kind in EntityKind:
            self.store.reset(kind)

    def close(self):
        self.unbind()
        self._teardown()

    # ------------------------------------------------------------------
    # Writes as the views perform them: report the outcome as a notification
    # and let failures propagate to the caller.
    # ------------------------------------------------------------------

    def _run_write(self, kind: EntityKind, verb: str, operation: Callable[[], Any]):
        try:
            result = operation()
        except SyncError as e:
            self.store.show_notification(e.message, Severity.ERROR)
            raise
        self.store.show_notification(
            f"{ENTITY_LABELS[kind]} {verb} successfully!", Severity.SUCCESS
        )
        return result

    def add(self, kind: EntityKind, fields) -> str:
        kind = EntityKind(kind)
        service = self.services.by_kind()[kind]
        return self._run_write(
            kind, "added", lambda: service.add(fields, self._owner_id)
        )

    def update(self, kind: EntityKind, doc_id: str, fields) -> None:
        kind = EntityKind(kind)
        service = self.services.by_kind()[kind]
        self._run_write(
            kind, "updated", lambda: service.update(doc_id, fields, self._owner_id)
        )

    def delete(self, kind: EntityKind, doc_id: str) -> None:
        kind = EntityKind(kind)
        service = self.services.by_kind()[kind]
        self._run_write(
            kind, "deleted", lambda: service.delete(doc_id, self._owner_id)
        )
