"""
Authentication gateway.

Talks to the remote identity service (Identity Toolkit REST API) for
email/password and federated sign-in, and exposes the current identity that
keys every remote read and write.
"""
import hashlib
import inspect
import json
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional
from urllib.parse import urlencode

import aiohttp

from shared.config import Settings, get_settings
from shared.errors import (
    AuthenticationFailed,
    AuthenticationRequired,
    FederatedSignInError,
    InvalidRequest,
    TimelyError,
)
from shared.schemas import AuthSession, is_valid_email
from services.meeting_links.base import post_request

logger = logging.getLogger(__name__)

NONCE_CHARSET = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz-._"
NONCE_LENGTH = 32

# Identity service error codes and the message shown for each
IDENTITY_ERROR_MESSAGES = {
    "EMAIL_NOT_FOUND": "No account exists for this email address.",
    "INVALID_PASSWORD": "The password is incorrect.",
    "INVALID_LOGIN_CREDENTIALS": "The email or password is incorrect.",
    "USER_DISABLED": "This account has been disabled.",
    "EMAIL_EXISTS": "An account already exists for this email address.",
    "WEAK_PASSWORD": "The password must be at least 6 characters.",
    "INVALID_EMAIL": "The email address is badly formatted.",
    "TOO_MANY_ATTEMPTS_TRY_LATER": "Too many attempts. Please try again later.",
    "INVALID_IDP_RESPONSE": "The sign-in provider response could not be verified.",
}

SessionListener = Callable[[Optional[AuthSession]], Any]


def random_nonce(length: int = NONCE_LENGTH) -> str:
    """Cryptographically random nonce drawn from a URL-safe charset."""
    if length <= 0:
        raise ValueError("Nonce length must be positive")
    return "".join(secrets.choice(NONCE_CHARSET) for _ in range(length))


def sha256_hex(value: str) -> str:
    return hashlib.sha256(value.encode("utf-8")).hexdigest()


@dataclass(frozen=True)
class FederatedChallenge:
    """Nonce pair for a federated sign-in.

    The hashed nonce goes to the platform sign-in request; the raw nonce is
    sent with the returned id token so the identity service can verify it.
    """

    raw_nonce: str
    hashed_nonce: str


class AuthGateway:
    """Sign-in, sign-up, password reset and the current session."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.settings = settings or get_settings()
        self.http = session
        self._owns_session = session is None
        self._session: Optional[AuthSession] = None
        self._listeners: List[SessionListener] = []

    # ------------------------------------------------------------------
    # Current identity
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[AuthSession]:
        return self._session

    @property
    def current_user_id(self) -> Optional[str]:
        return self._session.user_id if self._session else None

    @property
    def current_email(self) -> Optional[str]:
        return self._session.email if self._session else None

    @property
    def is_signed_in(self) -> bool:
        return self._session is not None

    def require_user_id(self) -> str:
        """Current user id, or ``AuthenticationRequired``."""
        if not self._session:
            raise AuthenticationRequired()
        return self._session.user_id

    def add_listener(self, listener: SessionListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SessionListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _set_session(self, session: Optional[AuthSession]) -> None:
        self._session = session
        for listener in list(self._listeners):
            try:
                outcome = listener(session)
                if inspect.isawaitable(outcome):
                    await outcome
            except TimelyError as e:
                logger.error(f"Session listener failed: {e}")

    # ------------------------------------------------------------------
    # Email / password
    # ------------------------------------------------------------------

    async def sign_in(self, email: str, password: str) -> AuthSession:
        """
        Sign in with email and password.

        Raises:
            InvalidRequest: missing or malformed email, or empty password
            AuthenticationFailed: the identity service rejected the credentials
            NetworkError: the identity service could not be reached
        """
        email = self._check_credentials(email, password)
        data = await self._call(
            "accounts:signInWithPassword",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        session = self._session_from_response(data, provider_id="password")
        await self._set_session(session)
        logger.info(f"User signed in: {session.user_id}")
        return session

    async def create_account(
        self, email: str, password: str, first_name: str, last_name: str = ""
    ) -> AuthSession:
        """Create an account and assign its display name."""
        email = self._check_credentials(email, password)
        if not first_name.strip():
            raise InvalidRequest("Please enter your first name.")

        data = await self._call(
            "accounts:signUp",
            {"email": email, "password": password, "returnSecureToken": True},
        )
        display_name = f"{first_name.strip()} {last_name.strip()}".strip()
        updated = await self._call(
            "accounts:update",
            {"idToken": data.get("idToken"), "displayName": display_name, "returnSecureToken": True},
        )
        data = {**data, **{k: v for k, v in updated.items() if v}}
        data["displayName"] = display_name

        session = self._session_from_response(data, provider_id="password")
        await self._set_session(session)
        logger.info(f"Account created: {session.user_id}")
        return session

    async def send_password_reset(self, email: str) -> None:
        email = (email or "").strip().lower()
        if not is_valid_email(email):
            raise InvalidRequest("Please enter a valid email address.")
        await self._call("accounts:sendOobCode", {"requestType": "PASSWORD_RESET", "email": email})
        logger.info("Password reset email requested")

    async def sign_out(self) -> None:
        if self._session:
            logger.info(f"User signed out: {self._session.user_id}")
        await self._set_session(None)

    # ------------------------------------------------------------------
    # Federated sign-in
    # ------------------------------------------------------------------

    def begin_federated_sign_in(self) -> FederatedChallenge:
        raw_nonce = random_nonce()
        return FederatedChallenge(raw_nonce=raw_nonce, hashed_nonce=sha256_hex(raw_nonce))

    async def complete_federated_sign_in(
        self,
        challenge: FederatedChallenge,
        id_token: str,
        provider_id: Optional[str] = None,
    ) -> AuthSession:
        """
        Exchange a platform id token for an identity-service session.

        Raises:
            FederatedSignInError: on any failure of the exchange
        """
        provider_id = provider_id or self.settings.apple_provider_id
        if not id_token:
            raise FederatedSignInError("Unable to fetch identity token.")
        if not challenge or not challenge.raw_nonce:
            raise FederatedSignInError("Invalid state: a sign-in request was not started.")

        post_body = urlencode(
            {"id_token": id_token, "providerId": provider_id, "nonce": challenge.raw_nonce}
        )
        try:
            data = await self._call(
                "accounts:signInWithIdp",
                {
                    "postBody": post_body,
                    "requestUri": self.settings.federated_redirect_uri,
                    "returnSecureToken": True,
                    "returnIdpCredential": True,
                },
            )
            session = self._session_from_response(data, provider_id=provider_id)
        except FederatedSignInError:
            raise
        except TimelyError as e:
            logger.error(f"Federated sign-in with {provider_id} failed: {e}")
            raise FederatedSignInError(f"Sign in with {provider_id} failed: {e.message}") from e

        await self._set_session(session)
        logger.info(f"User signed in with {provider_id}: {session.user_id}")
        return session

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @staticmethod
    def _check_credentials(email: str, password: str) -> str:
        email = (email or "").strip().lower()
        if not is_valid_email(email):
            raise InvalidRequest("Please enter a valid email address.")
        if not password:
            raise InvalidRequest("Please enter your password.")
        return email

    def _get_http(self) -> aiohttp.ClientSession:
        if self.http is None:
            self.http = aiohttp.ClientSession()
            self._owns_session = True
        return self.http

    async def _call(self, method: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        if not self.settings.identity_api_key:
            raise AuthenticationFailed("Identity service is not configured. Please set IDENTITY_API_KEY")

        url = f"{self.settings.identity_base_url}/{method}?key={self.settings.identity_api_key}"
        status, body = await post_request(
            self._get_http(),
            url,
            json=payload,
            timeout_seconds=self.settings.http_timeout_seconds,
            max_retries=0,
        )
        try:
            data = json.loads(body) if body else {}
        except ValueError:
            data = {}

        if status != 200:
            code = ""
            if isinstance(data, dict) and isinstance(data.get("error"), dict):
                code = str(data["error"].get("message", ""))
            # Codes can carry a detail suffix, e.g. "WEAK_PASSWORD : Password should be..."
            key = code.split(" ")[0] if code else ""
            message = IDENTITY_ERROR_MESSAGES.get(key, f"Authentication failed ({code or status}).")
            logger.warning(f"Identity service {method} returned {status}: {code}")
            raise AuthenticationFailed(message)

        if not isinstance(data, dict):
            raise AuthenticationFailed("Identity service returned an unexpected response.")
        return data

    @staticmethod
    def _session_from_response(data: Dict[str, Any], provider_id: str) -> AuthSession:
        user_id = data.get("localId")
        id_token = data.get("idToken")
        if not user_id or not id_token:
            raise AuthenticationFailed("Identity service response is missing the user id.")

        expires_in = str(data.get("expiresIn") or "3600")
        seconds = int(expires_in) if expires_in.isdigit() else 3600
        expires_at = datetime.now(timezone.utc) + timedelta(seconds=seconds)
        return AuthSession(
            user_id=user_id,
            email=data.get("email"),
            display_name=data.get("displayName") or None,
            id_token=id_token,
            refresh_token=data.get("refreshToken"),
            expires_at=expires_at,
            provider_id=provider_id,
            metadata={"is_new_user": bool(data.get("isNewUser"))} if "isNewUser" in data else {},
        )

    async def cleanup(self) -> None:
        if self.http is not None and self._owns_session:
            await self.http.close()
            self.http = None
