from enum import Enum
from typing import Dict, List, Optional


class ErrorKind(str, Enum):
    AUTHENTICATION_REQUIRED = "authentication_required"
    NOT_FOUND = "not_found"
    VALIDATION = "validation"
    TRANSPORT = "transport"


class SyncError(Exception):
    """Base for every failure raised or reported by the sync layer."""

    kind: ErrorKind = ErrorKind.TRANSPORT

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthenticationRequired(SyncError):
    kind = ErrorKind.AUTHENTICATION_REQUIRED

    def __init__(self, message: str = "User not authenticated."):
        super().__init__(message)


class NotFoundError(SyncError):
    kind = ErrorKind.NOT_FOUND


class FieldValidationError(SyncError):
    kind = ErrorKind.VALIDATION

    def __init__(self, message: str, fields: Optional[Dict[str, str]] = None):
        super().__init__(message)
        self.fields = fields or {}

    @classmethod
    def from_pydantic(cls, entity: str, exc) -> "FieldValidationError":
        """Flattens a pydantic ValidationError into {field: message}."""
        fields = {}
        for err in exc.errors():
            loc = ".".join(str(part) for part in err.get("loc", ())) or "__root__"
            fields.setdefault(loc, err.get("msg", "invalid value"))
        names: List[str] = sorted(fields)
        return cls(f"Invalid {entity} data: {', '.join(names)}", fields)


class TransportError(SyncError):
    kind = ErrorKind.TRANSPORT
