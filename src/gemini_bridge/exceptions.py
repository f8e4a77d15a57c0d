"""Gemini bridge exception hierarchy."""

from __future__ import annotations


class BridgeError(Exception):
    """Base exception for all bridge errors."""


class ConfigError(BridgeError):
    """Raised when the configuration is invalid or cannot be read."""


class MalformedInputError(BridgeError):
    """Raised when the tool-call payload on stdin is not a valid JSON object."""


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthError(BridgeError):
    """Raised when a provider cannot be authenticated."""


class CsrfError(AuthError):
    """Raised when the OAuth callback state does not match the pending session."""


class ExchangeError(AuthError):
    """Raised when the token endpoint rejects an authorization code."""


class RefreshError(AuthError):
    """Raised when an access token cannot be refreshed."""


class OAuthTimeoutError(AuthError):
    """Raised when the authorization round-trip is not completed in time."""


class InvalidTransitionError(AuthError):
    """Raised on an OAuth state change the state machine does not allow."""


# ---------------------------------------------------------------------------
# Token storage
# ---------------------------------------------------------------------------


class DecryptionError(BridgeError):
    """Raised when a stored token cannot be decrypted (wrong passphrase or corrupt file)."""


class TokenNotFoundError(BridgeError, KeyError):
    """Raised when a token key has nothing stored under it."""


# ---------------------------------------------------------------------------
# Providers
# ---------------------------------------------------------------------------


class NoProviderError(BridgeError):
    """Raised when no registered provider can serve a request."""


class ProviderInvocationError(BridgeError):
    """Raised when a provider call fails or times out."""
