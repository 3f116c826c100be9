"""Client for the hosted auth service (GoTrue-style REST endpoints).

The rest of the code only needs to know whether a session is present; this
module owns sign-in/up/out, password reset and session retrieval.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import requests

from microclimate_hub import config
from microclimate_hub.domain import UserProfile
from microclimate_hub.errors import AuthRequiredError, ServiceError
from microclimate_hub.transport import send_request
from utils.logging_utils import get_tagged_logger

logger = get_tagged_logger(__name__, tag="auth")


@dataclass
class AuthSession:
    """Signed-in session returned by the auth service."""
    access_token: str
    refresh_token: Optional[str]
    expires_at: float
    user: UserProfile

    def is_expired(self, now: float) -> bool:
        return now >= self.expires_at


class AuthCollaborator(Protocol):
    """Interface for anything that can answer "is a user signed in"."""

    def get_session(self) -> Optional[AuthSession]:
        """Return the current session, or None when signed out or expired."""
        ...

    def get_user(self, access_token: str) -> UserProfile:
        """Resolve an access token into the user it belongs to."""
        ...


def _user_from_payload(payload: dict) -> UserProfile:
    """Map the auth service's user object onto our profile snapshot."""
    email = payload.get("email") or ""
    metadata = payload.get("user_metadata") or {}
    name = metadata.get("full_name") or metadata.get("name") or email.split("@")[0]
    return UserProfile(id=str(payload["id"]), email=email, name=name, role=payload.get("role") or "user")


class HostedAuthClient(AuthCollaborator):
    """Talks to the hosted auth REST API and keeps the current session in memory."""

    def __init__(
        self,
        base_url: str,
        api_key: str | None = None,
        *,
        timeout: float = 10.0,
        session=None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.http = session or requests.Session()
        self._clock = clock
        self._session: Optional[AuthSession] = None

    @classmethod
    def from_settings(cls, settings: config.Settings | None = None) -> "HostedAuthClient":
        settings = settings or config.settings
        return cls(settings.auth_url, settings.auth_api_key, timeout=settings.api_timeout_seconds)

    def _headers(self, access_token: str | None = None) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["apikey"] = self.api_key
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        return headers

    def _call(self, method: str, path: str, *, access_token: str | None = None, **kwargs):
        url = f"{self.base_url}/auth/v1{path}"
        return send_request(self.http, method, url, timeout=self.timeout,
                            headers=self._headers(access_token), **kwargs)

    def _store_session(self, payload: dict) -> AuthSession:
        """Build and remember a session from a token response."""
        expires_in = float(payload.get("expires_in") or 3600)
        session = AuthSession(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token"),
            expires_at=self._clock() + expires_in,
            user=_user_from_payload(payload["user"]),
        )
        self._session = session
        return session

    def sign_in(self, email: str, password: str) -> AuthSession:
        """Exchange email/password for a session."""
        payload = self._call("POST", "/token", params={"grant_type": "password"},
                             json={"email": email, "password": password})
        session = self._store_session(payload)
        logger.info("Signed in", extra={"user_id": session.user.id})
        return session

    def sign_up(self, email: str, password: str, name: str | None = None) -> Optional[AuthSession]:
        """Register a new account.

        Returns a session when the service signs the user in immediately, or
        None when email confirmation is pending.
        """
        body: dict = {"email": email, "password": password}
        if name:
            body["data"] = {"full_name": name}
        payload = self._call("POST", "/signup", json=body) or {}
        if payload.get("access_token"):
            return self._store_session(payload)
        logger.info("Sign-up accepted; confirmation pending")
        return None

    def sign_out(self) -> None:
        """Revoke the current session; local state is cleared even if the call fails."""
        session, self._session = self._session, None
        if session is None:
            return
        try:
            self._call("POST", "/logout", access_token=session.access_token)
        except ServiceError as exc:
            logger.warning("Remote sign-out failed; local session cleared anyway", extra={"error": exc.message})

    def reset_password(self, email: str) -> None:
        """Ask the service to send a password recovery email."""
        self._call("POST", "/recover", json={"email": email})

    def refresh(self) -> Optional[AuthSession]:
        """Trade the refresh token for a new session, if one is held."""
        if self._session is None or not self._session.refresh_token:
            return None
        payload = self._call("POST", "/token", params={"grant_type": "refresh_token"},
                             json={"refresh_token": self._session.refresh_token})
        return self._store_session(payload)

    def get_session(self) -> Optional[AuthSession]:
        if self._session is None:
            return None
        if self._session.is_expired(self._clock()):
            logger.debug("Session expired")
            self._session = None
            return None
        return self._session

    def get_user(self, access_token: str) -> UserProfile:
        return _user_from_payload(self._call("GET", "/user", access_token=access_token))


def require_session(auth: AuthCollaborator) -> AuthSession:
    """Gate for write operations: return the session or raise AuthRequiredError."""
    session = auth.get_session()
    if session is None:
        raise AuthRequiredError()
    return session
