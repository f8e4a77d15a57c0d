"""Credential storage and the OAuth 2.0 PKCE flow."""

from gemini_bridge.auth.oauth import AuthState, OAuthEngine, TokenStatus
from gemini_bridge.auth.token_store import TokenRecord, TokenStore, open_token_store
from gemini_bridge.auth.vault import TokenVault

__all__ = [
    "AuthState",
    "OAuthEngine",
    "TokenRecord",
    "TokenStatus",
    "TokenStore",
    "TokenVault",
    "open_token_store",
]
