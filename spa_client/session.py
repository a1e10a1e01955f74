"""
Authentication state of one tab, as observed by the presentation layer.
Drives the auth service on activation, login, callback, logout and user refresh; listeners are told of every change.
"""
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from spa_client.auth_service import AuthService
from spa_client.errors import AuthError
from spa_client.models import CallbackResult, UserProfile

logger = logging.getLogger(__name__)


class SessionStatus(str, Enum):
    INITIALIZING = "initializing"
    UNAUTHENTICATED = "unauthenticated"
    AUTHENTICATING = "authenticating"
    AUTHENTICATED = "authenticated"
    LOGGING_OUT = "logging_out"
    ERROR = "error"


@dataclass(frozen=True)
class SessionState:
    status: SessionStatus
    user: UserProfile | None = None
    error: AuthError | None = None

    @property
    def is_authenticated(self) -> bool:
        return self.status is SessionStatus.AUTHENTICATED

    @property
    def is_loading(self) -> bool:
        return self.status in (SessionStatus.INITIALIZING, SessionStatus.AUTHENTICATING)


UNAUTHENTICATED = SessionState(SessionStatus.UNAUTHENTICATED)

Listener = Callable[[SessionState], None]


class SessionStateMachine:
    def __init__(self, auth: AuthService):
        self._auth = auth
        self._state = SessionState(SessionStatus.INITIALIZING)
        self._activated = False
        self._listeners: list[Listener] = []

    @property
    def state(self) -> SessionState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call listener on every state change. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: SessionState) -> None:
        self._state = state
        for listener in list(self._listeners):
            listener(state)

    def _settle(self, user: UserProfile | None) -> None:
        if user is not None:
            self._set_state(SessionState(SessionStatus.AUTHENTICATED, user=user))
        else:
            self._set_state(UNAUTHENTICATED)

    async def activate(self) -> SessionState:
        """First activation: validate the stored session and load the profile. Later calls return current state."""
        if self._activated:
            return self._state
        self._activated = True
        self._set_state(SessionState(SessionStatus.INITIALIZING))
        try:
            user = None
            if await self._auth.validate_session():
                user = await self._auth.get_current_user()
            self._settle(user)
        except Exception:
            logger.exception("Failed to check authentication status")
            self._set_state(UNAUTHENTICATED)
        return self._state

    def login(self) -> None:
        """Navigates away to the provider; the page unloads, so no state change is published."""
        try:
            self._auth.initiate_login()
        except AuthError as e:
            logger.error("Login failed: %s", e)
            raise

    async def handle_callback(self) -> CallbackResult:
        """Complete the login on the callback route. Failures are published as ERROR and re-raised."""
        self._activated = True
        self._set_state(SessionState(SessionStatus.AUTHENTICATING))
        try:
            result = await self._auth.handle_callback()
        except AuthError as e:
            logger.warning("Authentication failed: %s", e.kind.value)
            self._set_state(SessionState(SessionStatus.ERROR, error=e))
            raise
        self._set_state(SessionState(SessionStatus.AUTHENTICATED, user=result.user))
        return result

    def dismiss_error(self) -> AuthError | None:
        """Leave ERROR for UNAUTHENTICATED once the failure has been shown. Returns the dismissed error."""
        if self._state.status is not SessionStatus.ERROR:
            return None
        error = self._state.error
        self._set_state(UNAUTHENTICATED)
        return error

    async def logout(self) -> None:
        """Local state ends UNAUTHENTICATED even when the provider side of logout fails."""
        self._set_state(SessionState(SessionStatus.LOGGING_OUT, user=self._state.user))
        try:
            await self._auth.logout()
        except Exception:
            logger.exception("Logout failed; clearing local state anyway")
            self._set_state(UNAUTHENTICATED)
            raise
        self._set_state(UNAUTHENTICATED)

    async def refresh_user(self) -> SessionState:
        """Re-read the current user without passing through INITIALIZING."""
        self._activated = True
        try:
            user = await self._auth.get_current_user()
        except Exception:
            logger.exception("Failed to refresh user")
            user = None
        self._settle(user)
        return self._state
