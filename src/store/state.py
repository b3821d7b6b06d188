"""
Process-wide client state: the last snapshot of every entity collection plus
loading/error flags, the signed-in identity and one transient notification.

State objects are immutable; every action builds a new ``StoreState`` and
hands it to the registered listeners (the view layer re-renders from it).
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple

from src.auth.identity import Identity
from src.config import Config

logger = logging.getLogger(__name__)


class EntityKind(str, Enum):
    CUSTOMERS = "customers"
    AIRLINES = "airlines"
    SALES = "sales"


class Severity(str, Enum):
    SUCCESS = "success"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class EntitySlice:
    items: Tuple = ()
    loading: bool = False
    error: Optional[str] = None


@dataclass(frozen=True)
class Notification:
    message: str
    severity: Severity = Severity.INFO
    auto_hide_duration: int = field(
        default_factory=lambda: Config.NOTIFICATION_AUTO_HIDE_MS
    )


@dataclass(frozen=True)
class StoreState:
    identity: Optional[Identity] = None
    customers: EntitySlice = EntitySlice()
    airlines: EntitySlice = EntitySlice()
    sales: EntitySlice = EntitySlice()
    notification: Optional[Notification] = None

    def slice(self, kind: EntityKind) -> EntitySlice:
        return getattr(self, EntityKind(kind).value)


StoreListener = Callable[[StoreState], None]


class ClientStore:
    def __init__(self):
        self._state = StoreState()
        self._listeners: List[StoreListener] = []
        self._lock = threading.RLock()

    @property
    def state(self) -> StoreState:
        return self._state

    def slice(self, kind: EntityKind) -> EntitySlice:
        return self._state.slice(kind)

    def subscribe(self, listener: StoreListener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _apply(self, change: Callable[[StoreState], StoreState]):
        # Swap under the lock, notify after releasing it
        with self._lock:
            self._state = change(self._state)
            state = self._state
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state)

    def _commit(self, **changes):
        self._apply(lambda state: replace(state, **changes))

    def _update_slice(self, kind: EntityKind, **changes):
        kind = EntityKind(kind)
        self._apply(
            lambda state: replace(
                state, **{kind.value: replace(state.slice(kind), **changes)}
            )
        )

    # ------------------------------------------------------------------
    # Entity slices
    # ------------------------------------------------------------------

    def set_loading(self, kind: EntityKind, loading: bool = True):
        """Starting a load also clears the previous error."""
        if loading:
            self._update_slice(kind, loading=True, error=None)
        else:
            self._update_slice(kind, loading=False)

    def set_items(self, kind: EntityKind, items: Sequence):
        """Replaces the whole collection: snapshots are complete, never deltas."""
        self._update_slice(kind, items=tuple(items), loading=False, error=None)

    def set_error(self, kind: EntityKind, message: str):
        """Keeps the last good items; only the flags change."""
        self._update_slice(kind, loading=False, error=message)

    def reset(self, kind: EntityKind):
        kind = EntityKind(kind)
        self._commit(**{kind.value: EntitySlice()})

    # ------------------------------------------------------------------
    # Identity and notifications
    # ------------------------------------------------------------------

    def set_identity(self, identity: Optional[Identity]):
        self._commit(identity=identity)

    def show_notification(
        self,
        message: str,
        severity: Severity = Severity.INFO,
        auto_hide_duration: Optional[int] = None,
    ):
        # Single slot: a newer message replaces one still on screen
        notification = Notification(message=message, severity=Severity(severity))
        if auto_hide_duration is not None:
            notification = replace(notification, auto_hide_duration=auto_hide_duration)
        logger.debug(f"Notification ({notification.severity.value}): {message}")
        self._commit(notification=notification)

    def hide_notification(self):
        self._commit(notification=None)
