# Gemini OAuth provider: same API as the key provider, Bearer token auth.
# Created: 2026-03-05

from __future__ import annotations

from gemini_bridge.auth.oauth import OAuthEngine, TokenStatus
from gemini_bridge.models import AuthType
from gemini_bridge.providers.gemini_api import GeminiApiProvider


class GeminiOAuthProvider(GeminiApiProvider):
    """Gemini API authenticated with tokens from the OAuth engine."""

    name = "gemini-oauth"
    auth_type = AuthType.OAUTH

    def __init__(self, model: str, engine: OAuthEngine, **kwargs):
        super().__init__(model, **kwargs)
        self.engine = engine

    def is_available(self) -> bool:
        return self.engine.has_credentials()

    def validate_auth(self) -> bool:
        if not self.engine.has_credentials():
            return False
        if self.engine.status() in (TokenStatus.VALID, TokenStatus.EXPIRING_SOON):
            return True
        # Stale access token is fine as long as a refresh is possible
        record = self.engine.record
        return bool(record and record.refresh_token and self.engine.settings.auto_refresh)

    async def authenticate(self) -> str:
        return await self.engine.ensure_valid()

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {token}"}
