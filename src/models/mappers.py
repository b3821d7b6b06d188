import math
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, Optional

from src.backend.base import RemoteDocument
from src.config import Config
from src.models.schemas import Airline, Customer, Sale

# Python attribute -> remote field name
REMOTE_FIELD_NAMES = {
    "created_at": "createdAt",
    "updated_at": "updatedAt",
    "customer_id": "customerId",
    "airline_id": "airlineId",
}

# Given a (collection, id) pair returns the backend pointer for that document
ReferenceFactory = Callable[[str, str], Any]


# =====================================================================
# Field coercion. Everything here is total: legacy or hand-edited documents
# degrade to defaults instead of raising.
# =====================================================================


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _as_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = value if isinstance(value, str) else str(value)
    return text if text.strip() else default


def _as_float(value: Any, default: float = 0.0) -> float:
    if value is None or isinstance(value, bool):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return default
    return number if math.isfinite(number) else default


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Reads a backend timestamp. Accepts datetimes (Firestore returns
    DatetimeWithNanoseconds, a datetime subclass), dates, ISO strings and
    epoch seconds. Returns None when nothing usable is found.
    """
    if isinstance(value, datetime):
        result = value
    elif isinstance(value, date):
        result = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        text = value.strip()
        # fromisoformat only takes a trailing "Z" from Python 3.11 on
        if text[-1:] in ("Z", "z"):
            text = text[:-1] + "+00:00"
        try:
            result = datetime.fromisoformat(text)
        except ValueError:
            return None
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            result = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        return None

    if result.tzinfo is None:
        result = result.replace(tzinfo=timezone.utc)
    return result


def _as_timestamp(value: Any) -> datetime:
    return parse_timestamp(value) or _now()


def _as_calendar_date(value: Any) -> date:
    parsed = parse_timestamp(value)
    if parsed is None:
        return _now().date()
    try:
        return parsed.astimezone(timezone.utc).date()
    except OverflowError:
        return parsed.date()


def resolve_reference_id(value: Any) -> str:
    """
    Normalizes a sale's customer/airline field to a plain id. The field was
    stored as a bare id in some documents and as a document reference (or a
    full document path) in others.
    """
    if value is None:
        return ""
    if isinstance(value, str):
        return value.strip().strip("/").rsplit("/", 1)[-1]
    ref_id = getattr(value, "id", None)
    if isinstance(ref_id, str):
        return ref_id
    path = getattr(value, "path", None)
    if isinstance(path, str):
        return resolve_reference_id(path)
    return ""


# =====================================================================
# Remote document -> domain record
# =====================================================================


def customer_from_document(doc: RemoteDocument) -> Customer:
    data = doc.data or {}
    updated_at = parse_timestamp(data.get("updatedAt"))
    return Customer(
        id=doc.id,
        name=_as_text(data.get("name"), Config.UNKNOWN_NAME_LABEL),
        cpf=_as_text(data.get("cpf")),
        email=_as_text(data.get("email")),
        phone=_as_text(data.get("phone")),
        created_at=_as_timestamp(data.get("createdAt")),
        updated_at=updated_at,
    )


def airline_from_document(doc: RemoteDocument) -> Airline:
    data = doc.data or {}
    return Airline(
        id=doc.id,
        name=_as_text(data.get("name"), Config.UNKNOWN_NAME_LABEL),
        created_at=_as_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


def sale_from_document(doc: RemoteDocument) -> Sale:
    data = doc.data or {}
    return Sale(
        id=doc.id,
        date=_as_calendar_date(data.get("date")),
        customer_id=resolve_reference_id(data.get("customerId")),
        airline_id=resolve_reference_id(data.get("airlineId")),
        value=_as_float(data.get("value")),
        cost=_as_float(data.get("cost")),
        created_at=_as_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


# =====================================================================
# Domain fields -> remote write payload
# =====================================================================


def _to_remote_value(value: Any) -> Any:
    # Firestore has no date-only type: calendar dates are stored as UTC midnight
    if isinstance(value, date) and not isinstance(value, datetime):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    return value


def to_write_payload(fields: Dict[str, Any]) -> Dict[str, Any]:
    """Renames attributes to remote field names and converts dates."""
    return {
        REMOTE_FIELD_NAMES.get(name, name): _to_remote_value(value)
        for name, value in fields.items()
        if name != "id"
    }


def sale_to_payload(
    fields: Dict[str, Any], reference_factory: Optional[ReferenceFactory] = None
) -> Dict[str, Any]:
    """
    Like ``to_write_payload`` but, when a reference factory is given, stores
    the customer/airline as document references instead of bare ids.
    """
    payload = to_write_payload(fields)
    if reference_factory is not None:
        for remote_name, collection in (
            ("customerId", Config.CUSTOMERS_COLLECTION),
            ("airlineId", Config.AIRLINES_COLLECTION),
        ):
            if payload.get(remote_name):
                payload[remote_name] = reference_factory(
                    collection, resolve_reference_id(payload[remote_name])
                )
    return payload


def record_to_payload(record) -> Dict[str, Any]:
    """Write payload for a full domain record (id excluded, None dropped)."""
    return to_write_payload(
        {k: v for k, v in record.model_dump().items() if v is not None}
    )
