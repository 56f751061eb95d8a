"""
Authentication Gateway

Wraps the identity provider behind a small interface:
sign in, sign up, provider sign-in, password reset, sign out, and a
subscription that reports the signed-in user (or None) whenever it changes.

The profile document in the store is the source of the user's group.
It is created on first sign-in. If the store can't be reached the
session still starts, in the user's personal group.
"""

import hashlib
from abc import ABC, abstractmethod
from typing import Callable, Optional
from uuid import uuid4

import requests
import structlog

from couple_ledger.config import get_settings
from couple_ledger.models.finance import AuthUser
from couple_ledger.services.couples import UserProfileService
from couple_ledger.services.storage import StorageError


logger = structlog.get_logger("couple_ledger.auth")

AuthListener = Callable[[Optional[AuthUser]], None]

MIN_PASSWORD_LENGTH = 6


class AuthError(Exception):
    """Base exception for authentication failures."""
    pass


class InvalidCredentialsError(AuthError):
    """Unknown email or wrong password."""
    pass


class EmailInUseError(AuthError):
    """An account already exists for this email."""
    pass


class WeakPasswordError(AuthError):
    """Password rejected by the provider's strength rules."""
    pass


class AuthGateway(ABC):
    """
    Abstract identity provider.

    Subclasses implement the provider calls; this class keeps the
    current user and notifies subscribers.
    """

    def __init__(self, profiles: Optional[UserProfileService] = None):
        self._profiles = profiles
        self._current: Optional[AuthUser] = None
        self._listeners: list[AuthListener] = []

    @property
    def current_user(self) -> Optional[AuthUser]:
        return self._current

    def on_auth_state_changed(self, callback: AuthListener) -> Callable[[], None]:
        """
        Subscribe to sign-in state.

        The callback fires immediately with the current state, then on
        every change. Returns a callable that unsubscribes.
        """
        self._listeners.append(callback)
        callback(self._current)

        def unsubscribe() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _notify(self, user: Optional[AuthUser]) -> None:
        self._current = user
        for listener in list(self._listeners):
            listener(user)

    async def _attach_profile(self, user: AuthUser) -> AuthUser:
        """Fill in group_id from the profile document, creating it if needed."""
        if self._profiles is None:
            return user
        try:
            profile = await self._profiles.get(user.uid)
            if profile is None:
                profile = await self._profiles.create(
                    uid=user.uid,
                    email=user.email,
                    display_name=user.display_name,
                    photo_url=user.photo_url,
                )
        except StorageError as e:
            logger.warning("profile_sync_failed", uid=user.uid, error=str(e))
            return user

        return user.model_copy(update={
            "display_name": profile.display_name or user.display_name,
            "photo_url": profile.photo_url or user.photo_url,
            "group_id": profile.group_id,
        })

    async def _complete_sign_in(self, user: AuthUser) -> AuthUser:
        user = await self._attach_profile(user)
        self._notify(user)
        return user

    async def refresh(self) -> Optional[AuthUser]:
        """Re-read the profile, e.g. after the user was linked to a partner."""
        if self._current is None:
            return None
        return await self._complete_sign_in(self._current)

    @abstractmethod
    async def sign_in(self, email: str, password: str) -> AuthUser:
        """
        Raises:
            InvalidCredentialsError: Unknown email or wrong password
        """
        pass

    @abstractmethod
    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> AuthUser:
        """
        Raises:
            EmailInUseError: The email is already registered
            WeakPasswordError: The password is too weak
        """
        pass

    @abstractmethod
    async def sign_in_with_provider(self, provider_id: str, id_token: str) -> AuthUser:
        """Sign in with an OAuth identity token (e.g. provider_id 'google.com')."""
        pass

    @abstractmethod
    async def reset_password(self, email: str) -> None:
        """Send a password-reset email."""
        pass

    async def sign_out(self) -> None:
        self._notify(None)


class FirebaseAuthGateway(AuthGateway):
    """
    Firebase Authentication through the Identity Toolkit REST API.
    """

    BASE_URL = "https://identitytoolkit.googleapis.com/v1"

    # Identity Toolkit error codes
    _ERRORS = {
        "EMAIL_NOT_FOUND": InvalidCredentialsError,
        "INVALID_PASSWORD": InvalidCredentialsError,
        "INVALID_LOGIN_CREDENTIALS": InvalidCredentialsError,
        "INVALID_EMAIL": InvalidCredentialsError,
        "USER_DISABLED": InvalidCredentialsError,
        "EMAIL_EXISTS": EmailInUseError,
        "WEAK_PASSWORD": WeakPasswordError,
    }

    def __init__(
        self,
        profiles: Optional[UserProfileService] = None,
        session: Optional[requests.Session] = None,
    ):
        super().__init__(profiles)
        self._settings = get_settings().firebase
        self._session = session or requests.Session()
        self._id_token: Optional[str] = None

    def _post(self, endpoint: str, payload: dict) -> dict:
        try:
            response = self._session.post(
                f"{self.BASE_URL}/{endpoint}",
                params={"key": self._settings.api_key},
                json=payload,
                timeout=self._settings.request_timeout_seconds,
            )
        except requests.RequestException as e:
            raise AuthError(f"Authentication service unavailable: {e}")

        try:
            data = response.json() if response.content else {}
        except ValueError:
            # Gateway errors come back as HTML
            raise AuthError(
                f"Authentication service unavailable: HTTP {response.status_code}"
            )

        if response.status_code != 200:
            message = data.get("error", {}).get("message", "UNKNOWN")
            # Codes can carry a detail suffix: "WEAK_PASSWORD : Password should be..."
            code = message.split(":")[0].strip()
            raise self._ERRORS.get(code, AuthError)(message)
        return data

    def _user_from_response(self, data: dict) -> AuthUser:
        self._id_token = data.get("idToken")
        return AuthUser(
            uid=data["localId"],
            email=data.get("email", ""),
            display_name=data.get("displayName") or None,
            photo_url=data.get("photoUrl") or None,
        )

    async def sign_in(self, email: str, password: str) -> AuthUser:
        data = self._post("accounts:signInWithPassword", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        return await self._complete_sign_in(self._user_from_response(data))

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> AuthUser:
        data = self._post("accounts:signUp", {
            "email": email,
            "password": password,
            "returnSecureToken": True,
        })
        if display_name:
            self._post("accounts:update", {
                "idToken": data["idToken"],
                "displayName": display_name,
                "returnSecureToken": True,
            })
            data["displayName"] = display_name
        return await self._complete_sign_in(self._user_from_response(data))

    async def sign_in_with_provider(self, provider_id: str, id_token: str) -> AuthUser:
        data = self._post("accounts:signInWithIdp", {
            "postBody": f"id_token={id_token}&providerId={provider_id}",
            "requestUri": f"https://{self._settings.auth_domain or 'localhost'}",
            "returnSecureToken": True,
            "returnIdpCredential": True,
        })
        return await self._complete_sign_in(self._user_from_response(data))

    async def reset_password(self, email: str) -> None:
        self._post("accounts:sendOobCode", {
            "requestType": "PASSWORD_RESET",
            "email": email,
        })

    async def sign_out(self) -> None:
        self._id_token = None
        await super().sign_out()


class InMemoryAuthGateway(AuthGateway):
    """
    Local accounts for tests and offline runs.

    Provider sign-in trusts the token: each distinct token is one account.
    """

    def __init__(self, profiles: Optional[UserProfileService] = None):
        super().__init__(profiles)
        # email -> (uid, password hash, display name)
        self._accounts: dict[str, tuple[str, str, Optional[str]]] = {}
        self._provider_accounts: dict[str, str] = {}
        self.password_resets: list[str] = []

    @staticmethod
    def _hash(password: str) -> str:
        return hashlib.sha256(password.encode("utf-8")).hexdigest()

    async def sign_in(self, email: str, password: str) -> AuthUser:
        account = self._accounts.get(email.lower())
        if account is None or account[1] != self._hash(password):
            raise InvalidCredentialsError("INVALID_LOGIN_CREDENTIALS")
        uid, _, display_name = account
        return await self._complete_sign_in(
            AuthUser(uid=uid, email=email.lower(), display_name=display_name)
        )

    async def sign_up(
        self,
        email: str,
        password: str,
        display_name: Optional[str] = None,
    ) -> AuthUser:
        email = email.lower()
        if email in self._accounts:
            raise EmailInUseError("EMAIL_EXISTS")
        if len(password) < MIN_PASSWORD_LENGTH:
            raise WeakPasswordError(
                f"WEAK_PASSWORD : Password should be at least {MIN_PASSWORD_LENGTH} characters"
            )
        uid = uuid4().hex
        self._accounts[email] = (uid, self._hash(password), display_name)
        return await self._complete_sign_in(
            AuthUser(uid=uid, email=email, display_name=display_name)
        )

    async def sign_in_with_provider(self, provider_id: str, id_token: str) -> AuthUser:
        key = f"{provider_id}:{id_token}"
        uid = self._provider_accounts.setdefault(key, uuid4().hex)
        return await self._complete_sign_in(AuthUser(uid=uid))

    async def reset_password(self, email: str) -> None:
        if email.lower() not in self._accounts:
            raise InvalidCredentialsError("EMAIL_NOT_FOUND")
        self.password_resets.append(email.lower())
