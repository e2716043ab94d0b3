# shopnow/services/auth_session.py
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable

from sqlmodel import SQLModel
from supabase import AsyncClient
from supabase import AuthError as SupabaseAuthError

from shopnow.core.errors import AuthError, AuthFailure
from shopnow.core.observable import Listeners, Unsubscribe

logger = logging.getLogger(__name__)

UserCallback = Callable[[str | None], None]


class AuthOutcome(SQLModel):
    """
    Result of sign-in / sign-up.

    `message` is always a human-readable classification,
    never the raw provider error text.
    """

    success: bool
    user_id: str | None = None
    failure: AuthFailure | None = None
    message: str | None = None
    confirmation_required: bool = False

    @classmethod
    def ok(cls, user_id: str | None, confirmation_required: bool = False) -> "AuthOutcome":
        return cls(
            success=True,
            user_id=user_id,
            confirmation_required=confirmation_required,
        )

    @classmethod
    def failed(cls, error: AuthError) -> "AuthOutcome":
        return cls(success=False, failure=error.failure, message=error.message)


class AuthSession(ABC):
    """
    Current shopper identity.

    The cart layer only needs `current_user()` and `on_change()`;
    the commands are forwarded from the UI.
    """

    @abstractmethod
    def current_user(self) -> str | None:
        """Signed-in user id, or None when anonymous."""

    @abstractmethod
    def on_change(self, callback: UserCallback) -> Unsubscribe:
        """Call `callback(user_id)` whenever the identity changes."""

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthOutcome: ...

    @abstractmethod
    async def sign_up(self, email: str, password: str) -> AuthOutcome: ...

    @abstractmethod
    async def sign_out(self) -> None: ...


# (provider error code, message fragments) -> failure kind.
# Codes are checked first; fragments cover providers/versions without codes.
_FAILURE_RULES: list[tuple[AuthFailure, set[str], tuple[str, ...]]] = [
    (
        AuthFailure.USER_NOT_FOUND,
        {"user_not_found"},
        ("no user record", "user not found"),
    ),
    (
        AuthFailure.INVALID_EMAIL,
        {"email_address_invalid", "validation_failed"},
        ("badly formatted", "invalid format", "invalid email"),
    ),
    (
        AuthFailure.EMAIL_TAKEN,
        {"user_already_exists", "email_exists"},
        ("already registered", "already exists"),
    ),
    (
        AuthFailure.WEAK_PASSWORD,
        {"weak_password"},
        ("password should be", "weak password"),
    ),
    (
        AuthFailure.INVALID_CREDENTIALS,
        {"invalid_credentials"},
        ("invalid login credentials", "password is invalid"),
    ),
]


def classify_auth_error(error: Exception) -> AuthError:
    """
    Map a provider exception onto an AuthError with a readable message.
    """
    code = getattr(error, "code", None)
    text = str(getattr(error, "message", None) or error).lower()

    for failure, codes, fragments in _FAILURE_RULES:
        if code in codes:
            return AuthError(failure)

    for failure, codes, fragments in _FAILURE_RULES:
        if any(fragment in text for fragment in fragments):
            return AuthError(failure)

    return AuthError(AuthFailure.UNKNOWN)


def _user_id_of(obj) -> str | None:
    user = getattr(obj, "user", None)
    if user is None or getattr(user, "id", None) is None:
        return None
    return str(user.id)


class SupabaseAuthSession(AuthSession):
    """
    AuthSession backed by Supabase Auth (email + password).

    Identity is cached locally from auth state events and sign-in
    results, so `current_user()` never hits the network.
    """

    def __init__(self, client: AsyncClient):
        self.client = client
        self._user_id: str | None = None
        self._listeners: Listeners[str | None] = Listeners("auth")
        self._provider_subscription = None

    # ---- lifecycle ----

    async def start(self) -> None:
        """
        Restore a persisted session (if any) and follow provider events.
        """
        session = await self.client.auth.get_session()
        self._set_user(_user_id_of(session) if session else None)
        self._provider_subscription = self.client.auth.on_auth_state_change(
            self._on_provider_change
        )

    def stop(self) -> None:
        if self._provider_subscription is not None:
            self._provider_subscription.unsubscribe()
            self._provider_subscription = None

    def _on_provider_change(self, event, session) -> None:
        logger.debug("Auth event: %s", event)
        self._set_user(_user_id_of(session) if session else None)

    def _set_user(self, user_id: str | None) -> None:
        if user_id == self._user_id:
            return
        self._user_id = user_id
        logger.info("Auth identity changed: %s", user_id or "anonymous")
        self._listeners.notify(user_id)

    # ---- AuthSession ----

    def current_user(self) -> str | None:
        return self._user_id

    def on_change(self, callback: UserCallback) -> Unsubscribe:
        return self._listeners.add(callback)

    async def sign_in(self, email: str, password: str) -> AuthOutcome:
        """
        Email/password login.

        Email and password are trimmed first. Failures are classified
        (user not found / incorrect password / invalid email / ...).
        """
        email, password = email.strip(), password.strip()
        if not email:
            return self._failed("Login", AuthError(AuthFailure.INVALID_EMAIL))

        try:
            response = await self.client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )
        except SupabaseAuthError as e:
            return self._failed("Login", classify_auth_error(e))

        user_id = _user_id_of(response)
        logger.info("Login successful")
        self._set_user(user_id)
        return AuthOutcome.ok(user_id)

    async def sign_up(self, email: str, password: str) -> AuthOutcome:
        """
        Create an account.

        When the project requires email confirmation Supabase returns a
        user without a session; the shopper stays anonymous until they
        confirm and sign in.
        """
        email, password = email.strip(), password.strip()
        if not email:
            return self._failed("Sign up", AuthError(AuthFailure.INVALID_EMAIL))

        try:
            response = await self.client.auth.sign_up(
                {"email": email, "password": password}
            )
        except SupabaseAuthError as e:
            return self._failed("Sign up", classify_auth_error(e))

        user_id = _user_id_of(response)
        if response.session is None:
            logger.info("Sign up successful, email confirmation pending")
            return AuthOutcome.ok(user_id, confirmation_required=True)

        logger.info("Sign up successful")
        self._set_user(user_id)
        return AuthOutcome.ok(user_id)

    async def sign_out(self) -> None:
        """
        Sign out. Local identity is cleared even if the provider call fails.
        """
        try:
            await self.client.auth.sign_out()
        finally:
            self._set_user(None)

    @staticmethod
    def _failed(action: str, error: AuthError) -> AuthOutcome:
        logger.warning("%s failed: %s", action, error.message)
        return AuthOutcome.failed(error)
