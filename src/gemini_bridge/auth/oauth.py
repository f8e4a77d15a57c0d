# OAuth Engine: Google OAuth 2.0 authorization code + PKCE, refresh, revoke.
# Created: 2026-03-04
#
# The flow is an explicit state machine:
#
#   UNAUTHENTICATED --begin_auth--> AWAITING_CALLBACK --complete_auth--> AUTHENTICATED
#   AUTHENTICATED --ensure_valid (near expiry)--> REFRESHING --ok--> AUTHENTICATED
#                                                           \--fail--> EXPIRED
#   any --revoke--> REVOKED (terminal; begin_auth starts a brand-new session)
#
# Pending sessions (verifier, state) live in memory only.

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import logging
import secrets
import time
import urllib.parse
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Any

import httpx

from gemini_bridge.auth.callback import wait_for_callback
from gemini_bridge.auth.token_store import TokenRecord, TokenStore
from gemini_bridge.config import OAuthSettings
from gemini_bridge.exceptions import (
    AuthError,
    CsrfError,
    DecryptionError,
    ExchangeError,
    InvalidTransitionError,
    OAuthTimeoutError,
    RefreshError,
)

logger = logging.getLogger(__name__)

HTTP_TIMEOUT = 15.0
DEFAULT_EXPIRES_IN = 3600


class AuthState(str, Enum):
    UNAUTHENTICATED = "unauthenticated"
    AWAITING_CALLBACK = "awaiting_callback"
    AUTHENTICATED = "authenticated"
    EXPIRED = "expired"
    REFRESHING = "refreshing"
    REVOKED = "revoked"


_TRANSITIONS: dict[AuthState, frozenset[AuthState]] = {
    AuthState.UNAUTHENTICATED: frozenset(
        {AuthState.AWAITING_CALLBACK, AuthState.REVOKED}
    ),
    AuthState.AWAITING_CALLBACK: frozenset(
        {
            AuthState.AWAITING_CALLBACK,
            AuthState.AUTHENTICATED,
            AuthState.UNAUTHENTICATED,
            AuthState.REVOKED,
        }
    ),
    AuthState.AUTHENTICATED: frozenset(
        {
            AuthState.REFRESHING,
            AuthState.EXPIRED,
            AuthState.AWAITING_CALLBACK,
            AuthState.REVOKED,
        }
    ),
    AuthState.REFRESHING: frozenset(
        {AuthState.AUTHENTICATED, AuthState.EXPIRED, AuthState.REVOKED}
    ),
    AuthState.EXPIRED: frozenset(
        {AuthState.REFRESHING, AuthState.AWAITING_CALLBACK, AuthState.REVOKED}
    ),
    AuthState.REVOKED: frozenset({AuthState.REVOKED}),
}


class TokenStatus(str, Enum):
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    NOT_AUTHENTICATED = "not_authenticated"


@dataclass(frozen=True)
class OAuthSession:
    """One pending authorization round-trip."""

    state_param: str
    code_verifier: str
    code_challenge: str
    expires_at: float


def generate_code_verifier() -> str:
    """High-entropy PKCE verifier (86 URL-safe chars, within RFC 7636's 43-128)."""
    return secrets.token_urlsafe(64)


def code_challenge_for(verifier: str) -> str:
    """S256 challenge: BASE64URL(SHA256(code_verifier)) without padding."""
    return (
        base64.urlsafe_b64encode(hashlib.sha256(verifier.encode()).digest())
        .rstrip(b"=")
        .decode()
    )


class OAuthEngine:
    """Authorization code + PKCE flow with cached, auto-refreshed tokens.

    Args:
        settings: OAuth client settings.
        store: Encrypted token persistence.
        transport: Optional httpx transport (tests use ``httpx.MockTransport``).
        clock: Time source returning Unix seconds.
        retry_backoff: Delay before the single retry of a refresh that failed
            on the network.
    """

    def __init__(
        self,
        settings: OAuthSettings,
        store: TokenStore,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        clock: Callable[[], float] = time.time,
        retry_backoff: float = 1.0,
    ):
        self.settings = settings
        self.store = store
        self._transport = transport
        self._clock = clock
        self._retry_backoff = retry_backoff
        self._session: OAuthSession | None = None
        self._record: TokenRecord | None = None
        self._state = AuthState.UNAUTHENTICATED
        self._load_cached()

    # -- state --

    @property
    def state(self) -> AuthState:
        return self._state

    @property
    def session(self) -> OAuthSession | None:
        return self._session

    @property
    def record(self) -> TokenRecord | None:
        return self._record

    def has_credentials(self) -> bool:
        return self._record is not None and self._state != AuthState.REVOKED

    def _transition(self, new: AuthState) -> None:
        if new not in _TRANSITIONS[self._state]:
            raise InvalidTransitionError(
                f"OAuth state {self._state.value} -> {new.value} not allowed"
            )
        logger.debug("OAuth state %s -> %s", self._state.value, new.value)
        self._state = new

    def _load_cached(self) -> None:
        try:
            record = self.store.load()
        except DecryptionError as e:
            logger.warning("Stored OAuth tokens unreadable, re-authentication required: %s", e)
            return
        if record is not None:
            self._record = record
            self._state = AuthState.AUTHENTICATED

    # -- authorization --

    def begin_auth(self) -> str:
        """Start a new authorization round-trip and return the URL to visit."""
        if not self.settings.client_id:
            raise AuthError("OAuth client_id is not configured")

        if self._state == AuthState.REVOKED:
            # New session, not a way out of REVOKED for the old one
            self._record = None
            self._state = AuthState.UNAUTHENTICATED

        verifier = generate_code_verifier()
        session = OAuthSession(
            state_param=secrets.token_urlsafe(32),
            code_verifier=verifier,
            code_challenge=code_challenge_for(verifier),
            expires_at=self._clock() + self.settings.callback_timeout,
        )
        self._transition(AuthState.AWAITING_CALLBACK)
        self._session = session

        params = {
            "client_id": self.settings.client_id,
            "redirect_uri": self.settings.redirect_uri,
            "response_type": "code",
            "scope": self.settings.scope,
            "state": session.state_param,
            "code_challenge": session.code_challenge,
            "code_challenge_method": "S256",
            "access_type": "offline",
            "prompt": "consent",
        }
        return f"{self.settings.auth_endpoint}?{urllib.parse.urlencode(params)}"

    def discard_session(self) -> None:
        """Drop the pending session (timeout or user abort)."""
        self._session = None
        if self._state == AuthState.AWAITING_CALLBACK:
            # back to whatever credentials were held before the attempt
            if self._record is not None:
                self._transition(AuthState.AUTHENTICATED)
            else:
                self._transition(AuthState.UNAUTHENTICATED)

    async def complete_auth(self, returned_code: str, returned_state: str) -> TokenRecord:
        """Exchange the callback's code for tokens.

        The state is checked before anything else; a mismatch is fatal to the
        pending session whatever the code.
        """
        session = self._session
        if session is None or self._state != AuthState.AWAITING_CALLBACK:
            raise CsrfError("No authorization in progress for this callback")

        if not hmac.compare_digest(returned_state or "", session.state_param):
            self.discard_session()
            logger.warning("OAuth callback state mismatch, session discarded")
            raise CsrfError("OAuth state parameter mismatch")

        if self._clock() > session.expires_at:
            self.discard_session()
            raise OAuthTimeoutError("Authorization session expired")

        # Single use: the session is consumed whatever the exchange outcome
        self._session = None

        try:
            data = await self._post(
                self.settings.token_endpoint,
                {
                    "code": returned_code,
                    "client_id": self.settings.client_id,
                    "client_secret": self.settings.client_secret.get_secret_value(),
                    "redirect_uri": self.settings.redirect_uri,
                    "grant_type": "authorization_code",
                    "code_verifier": session.code_verifier,
                },
            )
            record = self._record_from_response(data, previous=None)
        except httpx.HTTPStatusError as e:
            self.discard_session()
            raise ExchangeError(
                f"Token endpoint rejected the code ({e.response.status_code})"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            self.discard_session()
            raise ExchangeError(f"Token exchange failed: {e}") from e

        self.store.save(record)
        self._record = record
        self._transition(AuthState.AUTHENTICATED)
        logger.info("OAuth authorization complete")
        return record

    async def login(
        self,
        open_browser: bool = True,
        opener: Callable[[str], Any] = webbrowser.open,
    ) -> TokenRecord:
        """Run the whole interactive flow with the local redirect listener."""
        url = self.begin_auth()
        logger.info("Open this URL to authorize: %s", url)
        if open_browser:
            opener(url)

        session = self._session
        remaining = max(0.0, session.expires_at - self._clock()) if session else 0.0
        try:
            callback = await wait_for_callback(self.settings.redirect_uri, timeout=remaining)
        except AuthError:
            self.discard_session()
            raise
        return await self.complete_auth(callback.code, callback.state)

    # -- token lifecycle --

    async def ensure_valid(self) -> str:
        """Return a usable access token, refreshing it when close to expiry.

        Raises:
            AuthError: not authenticated or revoked.
            RefreshError: the token is stale and could not be refreshed.
        """
        if self._state == AuthState.REVOKED:
            raise AuthError("OAuth tokens were revoked; run `gemini-bridge auth login`")
        record = self._record
        if record is None:
            raise AuthError("Not authenticated; run `gemini-bridge auth login`")

        if not record.expires_within(self.settings.refresh_margin, self._clock()):
            return record.access_token

        if not self.settings.auto_refresh:
            if self._state != AuthState.EXPIRED:
                self._transition(AuthState.EXPIRED)
            raise RefreshError("Access token expired and auto_refresh is disabled")

        refreshed = await self.refresh()
        return refreshed.access_token

    async def refresh(self) -> TokenRecord:
        """Refresh the access token. Network failures get one retry after a backoff."""
        record = self._record
        if record is None:
            raise AuthError("Not authenticated")

        self._transition(AuthState.REFRESHING)
        if not record.refresh_token:
            self._transition(AuthState.EXPIRED)
            raise RefreshError("No refresh token stored")

        form = {
            "refresh_token": record.refresh_token,
            "client_id": self.settings.client_id,
            "client_secret": self.settings.client_secret.get_secret_value(),
            "grant_type": "refresh_token",
        }

        data: dict[str, Any] = {}
        for attempt in range(2):
            try:
                data = await self._post(self.settings.token_endpoint, form)
                break
            except httpx.HTTPStatusError as e:
                self._transition(AuthState.EXPIRED)
                raise RefreshError(
                    f"Refresh rejected by token endpoint ({e.response.status_code})"
                ) from e
            except httpx.TransportError as e:
                if attempt == 0:
                    logger.warning("Token refresh network error, retrying: %s", e)
                    await asyncio.sleep(self._retry_backoff)
                    continue
                self._transition(AuthState.EXPIRED)
                raise RefreshError(f"Token refresh failed: {e}") from e
            except httpx.HTTPError as e:
                self._transition(AuthState.EXPIRED)
                raise RefreshError(f"Token refresh failed: {e}") from e
            except ValueError as e:
                self._transition(AuthState.EXPIRED)
                raise RefreshError(f"Malformed refresh response: {e}") from e

        try:
            new_record = self._record_from_response(data, previous=record)
        except ValueError as e:
            self._transition(AuthState.EXPIRED)
            raise RefreshError(f"Malformed refresh response: {e}") from e

        try:
            self.store.save(new_record)
        except OSError as e:
            logger.warning("Refreshed token could not be persisted: %s", e)

        self._record = new_record
        self._transition(AuthState.AUTHENTICATED)
        logger.info("Refreshed OAuth token")
        return new_record

    async def revoke(self) -> None:
        """Revoke remotely (best effort) and always delete the local tokens."""
        record = self._record
        if record is not None and self.settings.revoke_endpoint:
            token = record.refresh_token or record.access_token
            try:
                await self._post(self.settings.revoke_endpoint, {"token": token}, parse=False)
            except httpx.HTTPError as e:
                logger.warning("Remote token revocation failed (tokens removed locally): %s", e)

        self.store.clear()
        self._record = None
        self._session = None
        self._transition(AuthState.REVOKED)
        logger.info("OAuth tokens revoked")

    # -- status --

    def status(self) -> TokenStatus:
        record = self._record
        if record is None or self._state == AuthState.REVOKED:
            return TokenStatus.NOT_AUTHENTICATED
        remaining = record.expires_at - self._clock()
        if remaining > self.settings.refresh_margin:
            return TokenStatus.VALID
        if remaining > 0:
            return TokenStatus.EXPIRING_SOON
        return TokenStatus.EXPIRED

    def describe(self) -> str:
        """Human-readable token lifetime, e.g. "Valid for 1h 5m"."""
        record = self._record
        if record is None or self._state == AuthState.REVOKED:
            return "Not authenticated"
        remaining = int(record.expires_at - self._clock())
        if remaining <= 0:
            return "Expired"
        minutes = remaining // 60
        hours = minutes // 60
        if hours:
            return f"Valid for {hours}h {minutes % 60}m"
        return f"Valid for {minutes} minutes"

    # -- internals --

    async def _post(self, url: str, form: dict[str, str], parse: bool = True) -> dict[str, Any]:
        async with httpx.AsyncClient(timeout=HTTP_TIMEOUT, transport=self._transport) as client:
            resp = await client.post(url, data=form)
            resp.raise_for_status()
            if not parse:
                return {}
            data = resp.json()
        if not isinstance(data, dict):
            raise ValueError("token endpoint returned a non-object body")
        return data

    def _record_from_response(
        self, data: dict[str, Any], previous: TokenRecord | None
    ) -> TokenRecord:
        access = data.get("access_token")
        if not isinstance(access, str) or not access:
            raise ValueError("response has no access_token")

        expires_in = float(data.get("expires_in") or DEFAULT_EXPIRES_IN)
        expires_at = self._clock() + expires_in
        if previous is not None and expires_at <= previous.expires_at:
            # expiry never moves backwards across a refresh
            expires_at = previous.expires_at + 1

        scope = frozenset(str(data.get("scope") or "").split())
        if not scope:
            scope = previous.scope if previous else frozenset(self.settings.scope.split())

        return TokenRecord(
            access_token=access,
            refresh_token=data.get("refresh_token")
            or (previous.refresh_token if previous else None),
            expires_at=expires_at,
            scope=scope,
            token_type=data.get("token_type") or "Bearer",
        )
