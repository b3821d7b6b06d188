import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import requests
from pydantic import BaseModel

from src.backend.base import CollectionClient
from src.config import Config
from src.errors import SyncError

logger = logging.getLogger(__name__)

# Identity Toolkit error codes -> messages shown to the user
AUTH_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "No account found for this email.",
    "INVALID_PASSWORD": "Invalid password.",
    "INVALID_LOGIN_CREDENTIALS": "Invalid email or password.",
    "USER_DISABLED": "This account has been disabled.",
    "EMAIL_EXISTS": "An account already exists for this email.",
    "INVALID_EMAIL": "Invalid email format.",
    "MISSING_PASSWORD": "Password is required.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Try again later.",
}


class Identity(BaseModel):
    uid: str
    email: Optional[str] = None
    id_token: Optional[str] = None
    refresh_token: Optional[str] = None


class AuthResponse(BaseModel):
    identity: Optional[Identity] = None
    error: Optional[str] = None


class AuthError(Exception):
    pass


IdentityListener = Callable[[Optional[Identity]], None]


class IdentityClient:
    """
    Email/password accounts through the Firebase Identity Toolkit REST API.
    Keeps the signed-in identity and notifies listeners when it changes.
    """

    BASE_URL = "https://identitytoolkit.googleapis.com/v1"
    TIMEOUT = 30

    def __init__(
        self,
        api_key: Optional[str] = None,
        collection_client: Optional[CollectionClient] = None,
    ):
        self.api_key = api_key or Config.FIREBASE_API_KEY
        if not self.api_key:
            raise ValueError(
                "FIREBASE_API_KEY is not set. Please set it in the environment or .env file."
            )
        self.collection_client = collection_client
        self._identity: Optional[Identity] = None
        self._listeners: List[IdentityListener] = []
        self._lock = threading.Lock()

    @property
    def current_identity(self) -> Optional[Identity]:
        return self._identity

    def _request(self, endpoint: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        url = f"{self.BASE_URL}/accounts:{endpoint}"
        response = requests.post(
            url, params={"key": self.api_key}, json=payload, timeout=self.TIMEOUT
        )
        if response.status_code >= 400:
            try:
                code = response.json().get("error", {}).get("message", "")
            except ValueError:
                code = ""
            # Codes may carry a detail suffix: "WEAK_PASSWORD : Password should be..."
            key = code.split(" : ")[0].strip()
            raise AuthError(AUTH_ERROR_MESSAGES.get(key, code or response.reason))
        return response.json()

    @staticmethod
    def _identity_from(data: Dict[str, Any]) -> Identity:
        uid = data.get("localId")
        if not uid:
            raise AuthError("Failed to retrieve the account id from the auth response.")
        return Identity(
            uid=uid,
            email=data.get("email"),
            id_token=data.get("idToken"),
            refresh_token=data.get("refreshToken"),
        )

    def login(self, email: str, password: str) -> AuthResponse:
        try:
            data = self._request(
                "signInWithPassword",
                {"email": email, "password": password, "returnSecureToken": True},
            )
            identity = self._identity_from(data)
        except (AuthError, requests.RequestException) as e:
            logger.warning(f"Login failed for {email}: {e}")
            return AuthResponse(error=str(e))

        self._set_identity(identity)
        logger.info(f"Logged in as {identity.uid}")
        return AuthResponse(identity=identity)

    def signup(self, email: str, password: str) -> AuthResponse:
        try:
            data = self._request(
                "signUp",
                {"email": email, "password": password, "returnSecureToken": True},
            )
            identity = self._identity_from(data)
            self._initialize_owner_document(identity)
        except (AuthError, SyncError, requests.RequestException) as e:
            logger.warning(f"Signup failed for {email}: {e}")
            return AuthResponse(error=str(e))

        self._set_identity(identity)
        logger.info(f"Created account {identity.uid}")
        return AuthResponse(identity=identity)

    def _initialize_owner_document(self, identity: Identity):
        if self.collection_client is None:
            return
        self.collection_client.set(
            Config.owner_path(identity.uid),
            {
                "email": identity.email,
                "createdAt": self.collection_client.server_timestamp(),
            },
            merge=True,
        )

    def sign_out(self):
        self._set_identity(None)
        logger.info("Signed out")

    def on_identity_change(self, listener: IdentityListener) -> Callable[[], None]:
        """Calls ``listener`` with the current identity now and after every change."""
        with self._lock:
            self._listeners.append(listener)
            current = self._identity
        listener(current)

        def cancel():
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return cancel

    def _set_identity(self, identity: Optional[Identity]):
        with self._lock:
            self._identity = identity
            listeners = list(self._listeners)
        for listener in listeners:
            listener(identity)
