"""
Email/password authentication.

AuthService is the interface the state holders depend on. InMemoryAuthService
keeps accounts in process memory with salted PBKDF2 password hashes and
notifies listeners whenever the signed-in identity changes.
"""

import hashlib
import hmac
import itertools
import logging
import os
import re
import threading
import uuid
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional, Tuple

from spoonful.models import AuthUser
from spoonful.stores.base import Subscription

logger = logging.getLogger(__name__)

MIN_PASSWORD_LENGTH = 6
_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PBKDF2_ITERATIONS = 100_000

AuthListener = Callable[[Optional[AuthUser]], None]


class AuthError(Exception):
    """Raised when account creation or sign-in fails. The message is user-facing."""


class AuthService(ABC):
    """Interface for email/password identity providers."""

    @property
    @abstractmethod
    def current_user(self) -> Optional[AuthUser]:
        """The signed-in user, or None."""

    @abstractmethod
    def create_user(self, email: str, password: str) -> AuthUser:
        """Create an account and sign it in. Raises AuthError on failure."""

    @abstractmethod
    def sign_in(self, email: str, password: str) -> AuthUser:
        """Sign in. Raises AuthError on failure."""

    @abstractmethod
    def sign_out(self) -> None:
        pass

    @abstractmethod
    def add_listener(self, listener: AuthListener) -> Subscription:
        """Call `listener` with the current user now and on every identity change."""


def _hash_password(password: str, salt: bytes) -> bytes:
    return hashlib.pbkdf2_hmac("sha256", password.encode("utf-8"), salt, _PBKDF2_ITERATIONS)


class InMemoryAuthService(AuthService):
    """Process-local account registry."""

    def __init__(self) -> None:
        # email -> (uid, salt, password hash)
        self._accounts: Dict[str, Tuple[str, bytes, bytes]] = {}
        self._current: Optional[AuthUser] = None
        self._listeners: Dict[int, AuthListener] = {}
        self._listener_ids = itertools.count()
        self._lock = threading.RLock()

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current

    def create_user(self, email: str, password: str) -> AuthUser:
        email = (email or "").strip().lower()
        if not _EMAIL_PATTERN.match(email):
            raise AuthError("The email address is badly formatted.")
        if len(password or "") < MIN_PASSWORD_LENGTH:
            raise AuthError(f"The password must be at least {MIN_PASSWORD_LENGTH} characters.")

        with self._lock:
            if email in self._accounts:
                raise AuthError("The email address is already in use by another account.")
            salt = os.urandom(16)
            uid = uuid.uuid4().hex
            self._accounts[email] = (uid, salt, _hash_password(password, salt))

        logger.info("Created account %s", uid)
        return self._set_current(AuthUser(uid=uid, email=email))

    def sign_in(self, email: str, password: str) -> AuthUser:
        email = (email or "").strip().lower()
        with self._lock:
            account = self._accounts.get(email)
        if account is None:
            raise AuthError("There is no user record corresponding to this identifier.")

        uid, salt, expected = account
        if not hmac.compare_digest(_hash_password(password or "", salt), expected):
            raise AuthError("The password is invalid.")
        return self._set_current(AuthUser(uid=uid, email=email))

    def sign_out(self) -> None:
        self._set_current(None)

    def add_listener(self, listener: AuthListener) -> Subscription:
        with self._lock:
            listener_id = next(self._listener_ids)
            self._listeners[listener_id] = listener

        def cancel() -> None:
            with self._lock:
                self._listeners.pop(listener_id, None)

        listener(self._current)
        return Subscription(cancel)

    def _set_current(self, user: Optional[AuthUser]) -> Optional[AuthUser]:
        with self._lock:
            self._current = user
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(user)
            except Exception:
                logger.exception("Auth listener failed")
        return user
