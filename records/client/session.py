"""
Explicit session state for client code.

A :class:`SessionContext` is created once and handed to whatever needs
to know who is signed in; there is no module-level current session.
"""
import enum
import logging
import threading
from typing import Callable, Optional

from .api import ApiError, RecordsClient

logger = logging.getLogger(__name__)

INVALID_CREDENTIALS = 'invalid_credentials'
EMAIL_NOT_CONFIRMED = 'email_not_confirmed'
NETWORK_ERROR = 'network_error'
UNKNOWN_ERROR = 'unknown'


class SessionState(enum.Enum):
    ANONYMOUS = 'anonymous'
    AUTHENTICATING = 'authenticating'
    AUTHENTICATED = 'authenticated'
    ERROR = 'error'


def classify_error(code: Optional[str], message: Optional[str] = None) -> str:
    """Map a failed sign-in to an error type.

    Servers that predate structured codes only send a message, so the
    wording is matched as a fallback.
    """
    if code in (INVALID_CREDENTIALS, EMAIL_NOT_CONFIRMED, NETWORK_ERROR):
        return code
    text = (message or '').lower()
    if 'email not confirmed' in text:
        return EMAIL_NOT_CONFIRMED
    if 'invalid login' in text:
        return INVALID_CREDENTIALS
    return UNKNOWN_ERROR


class SessionContext:
    def __init__(self, client: RecordsClient, on_change: Optional[Callable[['SessionContext'], None]] = None):
        self.client = client
        self.on_change = on_change
        self.state = SessionState.ANONYMOUS
        self.user: Optional[dict] = None
        self.error_type: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def is_authenticated(self) -> bool:
        return self.state is SessionState.AUTHENTICATED

    def _set(self, state: SessionState, user: Optional[dict] = None, error_type: Optional[str] = None) -> None:
        with self._lock:
            self.state = state
            self.user = user
            self.error_type = error_type
        logger.debug('session state -> %s', state.value)
        if self.on_change:
            self.on_change(self)

    def sign_in(self, email: str, password: str) -> bool:
        self._set(SessionState.AUTHENTICATING)
        try:
            body = self.client.sign_in(email, password)
        except ApiError as exc:
            self._set(SessionState.ERROR, error_type=classify_error(exc.code, exc.message))
            return False
        self._set(SessionState.AUTHENTICATED, user=body.get('user'))
        return True

    def restore(self) -> bool:
        """Re-validate a stored token; anonymous when there is none or it was revoked."""
        if not self.client.token:
            self._set(SessionState.ANONYMOUS)
            return False
        try:
            user = self.client.current_user()
        except ApiError as exc:
            if exc.status in (401, 403):
                self.client.token = None
                self._set(SessionState.ANONYMOUS)
                return False
            raise
        self._set(SessionState.AUTHENTICATED, user=user)
        return True

    def sign_out(self) -> None:
        try:
            self.client.sign_out()
        except ApiError as exc:
            logger.warning('sign-out request failed: %s', exc)
        self._set(SessionState.ANONYMOUS)

    def resend_confirmation(self, email: str) -> None:
        self.client.resend_confirmation(email)
