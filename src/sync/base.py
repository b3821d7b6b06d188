import logging
import queue
import threading
from enum import Enum
from typing import Any, Callable, Dict, Generic, List, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from src.backend.base import Cancel, CollectionClient, OrderBy, RemoteDocument
from src.config import Config
from src.errors import (
    AuthenticationRequired,
    FieldValidationError,
    NotFoundError,
    SyncError,
    TransportError,
)
from src.models.mappers import to_write_payload

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)
Fields = Union[Dict[str, Any], BaseModel]


class SubscriptionState(str, Enum):
    IDLE = "idle"
    SUBSCRIBED = "subscribed"
    TERMINATED = "terminated"


class Subscription:
    """
    Handle for one live listener. Once terminated (explicit cancel or a
    reported failure) no callback will run again, including deliveries that
    were already racing with the cancellation: callbacks run under the same
    lock that ``cancel`` takes.

    Subscriptions built by one ``create_services`` call share that lock, so
    their callbacks run one at a time and a callback may cancel any of them
    (the lock is reentrant) without waiting on another watch thread.
    """

    def __init__(self, entity_name: str, owner_id: str, lock=None):
        self.entity_name = entity_name
        self.owner_id = owner_id
        self._state = SubscriptionState.SUBSCRIBED
        self._cancel: Optional[Cancel] = None
        self._lock = lock or threading.RLock()

    @property
    def state(self) -> SubscriptionState:
        return self._state

    @property
    def active(self) -> bool:
        return self._state is SubscriptionState.SUBSCRIBED

    def cancel(self):
        with self._lock:
            if self._state is SubscriptionState.TERMINATED:
                return
            self._state = SubscriptionState.TERMINATED
            detach, self._cancel = self._cancel, None
        if detach is not None:
            detach()
        logger.debug(f"Unsubscribed from {self.entity_name} of {self.owner_id}")

    def _attach(self, detach: Cancel):
        with self._lock:
            if self._state is SubscriptionState.SUBSCRIBED:
                self._cancel = detach
                return
        # Failed (or was cancelled) while the backend was still registering it
        detach()

    def _deliver(self, callback: Callable[[Any], None], payload: Any):
        with self._lock:
            if self._state is SubscriptionState.SUBSCRIBED:
                callback(payload)

    def _fail(self, callback: Callable[[SyncError], None], error: SyncError):
        with self._lock:
            if self._state is not SubscriptionState.SUBSCRIBED:
                return
            self._state = SubscriptionState.TERMINATED
            detach, self._cancel = self._cancel, None
            callback(error)
        if detach is not None:
            detach()


_CLOSED = object()


class SnapshotStream:
    """
    Pull-style view of a subscription: iterating yields one list of records
    per snapshot until the stream is closed. A reported failure is raised from
    the iterator and ends the stream. Closed streams cannot be reopened; call
    ``service.stream`` again for a fresh one.
    """

    def __init__(self, service: "EntitySyncService", owner_id: str):
        self._queue: "queue.Queue[Any]" = queue.Queue()
        self._closed = False
        self._subscription = service.subscribe(
            owner_id, self._queue.put, self._queue.put
        )

    @property
    def subscription(self) -> Subscription:
        return self._subscription

    def get(self, timeout: Optional[float] = None) -> list:
        """Next snapshot. Raises queue.Empty on timeout, StopIteration when closed."""
        if self._closed:
            raise StopIteration
        item = self._queue.get(timeout=timeout)
        if item is _CLOSED:
            self._closed = True
            raise StopIteration
        if isinstance(item, SyncError):
            self._closed = True
            raise item
        return item

    def close(self):
        self._subscription.cancel()
        self._queue.put(_CLOSED)

    def __iter__(self):
        return self

    def __next__(self) -> list:
        return self.get()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class EntitySyncService(Generic[T]):
    """
    Live sync and writes for one entity kind under an owner's namespace.

    Subclasses set the collection, the validation models and the mapper.
    """

    entity_name: str = "entity"
    collection_name: str = ""
    order_by: Optional[OrderBy] = None
    input_model: Type[BaseModel] = BaseModel
    update_model: Type[BaseModel] = BaseModel

    def __init__(self, client: CollectionClient, delivery_lock=None):
        self.client = client
        self._delivery_lock = delivery_lock or threading.RLock()
        self._subscriptions: Dict[str, Subscription] = {}
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Hooks
    # ------------------------------------------------------------------

    def to_domain(self, doc: RemoteDocument) -> T:
        raise NotImplementedError

    def to_payload(self, fields: Dict[str, Any], owner_id: str) -> Dict[str, Any]:
        return to_write_payload(fields)

    def arrange(self, records: List[T]) -> List[T]:
        """Order of a delivered snapshot. Backend order by default."""
        return records

    # ------------------------------------------------------------------
    # Paths and guards
    # ------------------------------------------------------------------

    def collection_path(self, owner_id: str) -> str:
        return Config.collection_path(owner_id, self.collection_name)

    def document_path(self, owner_id: str, doc_id: str) -> str:
        return f"{self.collection_path(owner_id)}/{doc_id}"

    def _require_owner(self, owner_id: Optional[str]) -> str:
        if not isinstance(owner_id, str) or not owner_id.strip():
            raise AuthenticationRequired()
        return owner_id

    def _require_id(self, doc_id: Optional[str]) -> str:
        if not isinstance(doc_id, str) or not doc_id.strip() or "/" in doc_id:
            raise NotFoundError(f"{self.entity_name.capitalize()} not found: {doc_id!r}")
        return doc_id

    def _validate(self, model: Type[BaseModel], fields: Fields) -> Dict[str, Any]:
        if isinstance(fields, BaseModel):
            fields = fields.model_dump(exclude_unset=True)
        try:
            validated = model.model_validate(fields)
        except ValidationError as e:
            error = FieldValidationError.from_pydantic(self.entity_name, e)
            logger.warning(f"{error.message} {error.fields}")
            raise error from e
        return validated.model_dump(exclude_unset=True)

    def _write(self, action: str, operation: Callable[[], Any]) -> Any:
        try:
            return operation()
        except SyncError as e:
            logger.error(f"Error {action} {self.entity_name}: {e.message}")
            raise
        except Exception as e:
            logger.error(f"Error {action} {self.entity_name}: {e}")
            raise TransportError(
                f"Error {action} {self.entity_name}: {e or 'Unknown error'}"
            ) from e

    # ------------------------------------------------------------------
    # Live sync
    # ------------------------------------------------------------------

    def state(self, owner_id: str) -> SubscriptionState:
        with self._lock:
            subscription = self._subscriptions.get(owner_id)
        if subscription is None or not subscription.active:
            return SubscriptionState.IDLE
        return subscription.state

    def subscribe(
        self,
        owner_id: str,
        on_data: Callable[[List[T]], None],
        on_error: Callable[[SyncError], None],
    ) -> Subscription:
        """
        Starts delivering the owner's full collection to ``on_data`` on every
        change. A failure is reported once through ``on_error`` and leaves the
        subscription terminated; re-subscribing is up to the caller.
        """
        owner_id = self._require_owner(owner_id)
        subscription = Subscription(self.entity_name, owner_id, self._delivery_lock)

        with self._lock:
            previous = self._subscriptions.get(owner_id)
            self._subscriptions[owner_id] = subscription
        if previous is not None:
            previous.cancel()

        def handle_snapshot(docs: List[RemoteDocument]):
            records = self.arrange([self.to_domain(doc) for doc in docs])
            subscription._deliver(on_data, records)

        def handle_error(error: SyncError):
            if not isinstance(error, SyncError):
                error = TransportError(f"Failed to subscribe to {self.entity_name} updates.")
            logger.error(
                f"Error in {self.entity_name} subscription of {owner_id}: {error.message}"
            )
            subscription._fail(on_error, error)
            with self._lock:
                if self._subscriptions.get(owner_id) is subscription:
                    del self._subscriptions[owner_id]

        logger.debug(f"Subscribing to {self.collection_path(owner_id)}")
        try:
            detach = self.client.subscribe(
                self.collection_path(owner_id),
                handle_snapshot,
                handle_error,
                order_by=self.order_by,
            )
        except SyncError as e:
            handle_error(e)
            return subscription
        except Exception as e:
            handle_error(
                TransportError(f"Error setting up {self.entity_name} subscription: {e}")
            )
            return subscription

        subscription._attach(detach)
        return subscription

    def unsubscribe(self, subscription: Optional[Subscription]):
        """Idempotent; accepts None so teardown code can call it blindly."""
        if subscription is None:
            return
        subscription.cancel()
        with self._lock:
            if self._subscriptions.get(subscription.owner_id) is subscription:
                del self._subscriptions[subscription.owner_id]

    def unsubscribe_all(self):
        with self._lock:
            subscriptions = list(self._subscriptions.values())
            self._subscriptions.clear()
        for subscription in subscriptions:
            subscription.cancel()

    def stream(self, owner_id: str) -> SnapshotStream:
        return SnapshotStream(self, owner_id)

    def fetch_all(self, owner_id: str) -> List[T]:
        """One-shot read of the owner's collection."""
        owner_id = self._require_owner(owner_id)
        docs = self._write(
            "fetching",
            lambda: self.client.query(self.collection_path(owner_id), self.order_by),
        )
        return self.arrange([self.to_domain(doc) for doc in docs])

    # ------------------------------------------------------------------
    # Writes. None of these touch local state: the next snapshot does.
    # ------------------------------------------------------------------

    def add(self, fields: Fields, owner_id: str) -> str:
        owner_id = self._require_owner(owner_id)
        data = self._validate(self.input_model, fields)
        payload = self.to_payload(data, owner_id)
        payload["createdAt"] = self.client.server_timestamp()
        doc_id = self._write(
            "adding", lambda: self.client.add(self.collection_path(owner_id), payload)
        )
        logger.info(f"Added {self.entity_name} {doc_id} for {owner_id}")
        return doc_id

    def update(self, doc_id: str, fields: Fields, owner_id: str) -> None:
        owner_id = self._require_owner(owner_id)
        doc_id = self._require_id(doc_id)
        data = self._validate(self.update_model, fields)
        payload = self.to_payload(data, owner_id)
        payload["updatedAt"] = self.client.server_timestamp()
        self._write(
            "updating",
            lambda: self.client.update(self.document_path(owner_id, doc_id), payload),
        )
        logger.info(f"Updated {self.entity_name} {doc_id} for {owner_id}")

    def delete(self, doc_id: str, owner_id: str) -> None:
        owner_id = self._require_owner(owner_id)
        doc_id = self._require_id(doc_id)
        self._write(
            "deleting",
            lambda: self.client.delete(self.document_path(owner_id, doc_id)),
        )
        logger.info(f"Deleted {self.entity_name} {doc_id} for {owner_id}")
