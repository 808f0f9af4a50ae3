"""
Session Gate Module

Holds the current credential and session status, and decides whether
authenticated work may proceed. Losing the credential (logout or a 401
from any call) tears down every piece of cached state through the
registered clear listeners, so nothing survives into the next session.
"""

from typing import Callable, List, Optional

from data.models import Actor, AuthResult, Session, SessionStatus
from data.protocols import TokenStorage
from services.protocols import AuthBackend
from utils.exceptions import ApiError, AuthError, StorageError
from utils.logger import get_logger

logger = get_logger(__name__)

ClearListener = Callable[[], None]
AuthenticatedListener = Callable[[Actor], None]


class SessionGate:
    """
    Session state machine.

    Transitions:
        ANONYMOUS -> RESTORING       restore() found a persisted token
        RESTORING -> AUTHENTICATED   the token was accepted by /auth/me
        RESTORING -> ANONYMOUS       the token was rejected (silently discarded)
        ANONYMOUS -> AUTHENTICATED   login() / register()
        any       -> ANONYMOUS       logout() / handle_unauthorized()

    INVALID is only observed by clear listeners while a session is being torn down.
    """

    def __init__(self, api: AuthBackend, token_store: TokenStorage):
        self.api = api
        self.token_store = token_store
        self.session = Session()
        self.viewer: Optional[Actor] = None
        self.last_transition_reason: Optional[str] = None
        self._clear_listeners: List[ClearListener] = []
        self._authenticated_listeners: List[AuthenticatedListener] = []

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def status(self) -> SessionStatus:
        return self.session.status

    @property
    def viewer_id(self) -> Optional[str]:
        return self.session.viewer_id

    @property
    def is_authenticated(self) -> bool:
        return self.session.status == SessionStatus.AUTHENTICATED

    def current_token(self) -> Optional[str]:
        """Token to send with requests. Used as the ApiClient token provider."""
        return self.session.token

    def require_authenticated(self) -> None:
        """Raise AuthError unless a session is active."""
        if not self.is_authenticated:
            raise AuthError("You need to be signed in to do that")

    def add_clear_listener(self, listener: ClearListener) -> None:
        self._clear_listeners.append(listener)

    def add_authenticated_listener(self, listener: AuthenticatedListener) -> None:
        self._authenticated_listeners.append(listener)

    # -------------------------------------------------------------------------
    # Transitions
    # -------------------------------------------------------------------------

    async def restore(self) -> SessionStatus:
        """
        Resume a persisted session at process start.

        An invalid or expired token is discarded without surfacing an error.

        Returns:
            The resulting session status.
        """
        if self.session.status != SessionStatus.ANONYMOUS:
            return self.session.status

        try:
            token = self.token_store.load_token()
        except StorageError as e:
            logger.warning(f"Could not read persisted credential: {e}")
            token = None

        if not token:
            logger.debug("No persisted credential, staying anonymous")
            return self.session.status

        self.session = Session(token=token, status=SessionStatus.RESTORING)
        logger.info("Restoring session from persisted credential")

        try:
            viewer = await self.api.get_me()
        except ApiError as e:
            logger.info(f"Persisted credential rejected, discarding it: {e}")
            self._erase_token()
            self._end_session("restore_failed")
            return self.session.status

        if self.session.status != SessionStatus.RESTORING or self.session.token != token:
            # Torn down (or replaced) while /auth/me was in flight
            return self.session.status

        self._become_authenticated(token, viewer, "restored")
        return self.session.status

    async def login(self, identifier: str, password: str) -> Actor:
        """
        Sign in with an email or username and a password.

        Any current session is ended first, so its data cannot leak into the new one.

        Returns:
            The signed-in viewer.

        Raises:
            ApiError: If the credentials are rejected or the call fails.
        """
        if self.session.status != SessionStatus.ANONYMOUS:
            self.logout()
        result = await self.api.login(identifier, password)
        return self._accept(result, "login")

    async def register(self, username: str, email: str, display_name: str, password: str) -> Actor:
        """
        Create an account and sign in to it.

        Raises:
            ApiError: If registration is rejected or the call fails.
        """
        if self.session.status != SessionStatus.ANONYMOUS:
            self.logout()
        result = await self.api.register(username, email, display_name, password)
        return self._accept(result, "register")

    async def change_password(self, current_password: str, new_password: str) -> None:
        self.require_authenticated()
        await self.api.change_password(current_password, new_password)
        logger.info("Password changed")

    def logout(self) -> None:
        """End the session, erase the credential and clear all cached state."""
        self._erase_token()
        self._end_session("logout")

    def handle_unauthorized(self, error: Optional[AuthError] = None) -> None:
        """401 interceptor: the server no longer accepts the credential."""
        if self.session.status == SessionStatus.ANONYMOUS and self.session.token is None:
            return
        logger.warning(f"Credential rejected by the server, signing out: {error}")
        self._erase_token()
        self._end_session("unauthorized")

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _accept(self, result: AuthResult, reason: str) -> Actor:
        try:
            self.token_store.save_token(result.token)
        except StorageError as e:
            logger.warning(f"Signed in, but the credential could not be persisted: {e}")
        self._become_authenticated(result.token, result.viewer, reason)
        return result.viewer

    def _become_authenticated(self, token: str, viewer: Actor, reason: str) -> None:
        self.session = Session(token=token, viewer_id=viewer.id, status=SessionStatus.AUTHENTICATED)
        self.viewer = viewer
        self.last_transition_reason = reason
        logger.info(f"Signed in as @{viewer.handle} ({reason})")
        for listener in list(self._authenticated_listeners):
            listener(viewer)

    def _end_session(self, reason: str) -> None:
        self.session.status = SessionStatus.INVALID
        for listener in list(self._clear_listeners):
            listener()
        self.session = Session()
        self.viewer = None
        self.last_transition_reason = reason
        logger.info(f"Session ended ({reason})")

    def _erase_token(self) -> None:
        try:
            self.token_store.clear_token()
        except StorageError as e:
            logger.error(f"Could not erase persisted credential: {e}")
