# Gemini API provider: generateContent over HTTPS with an API key.
# Created: 2026-03-05

from __future__ import annotations

import logging
import os
from typing import Any

import httpx
from pydantic import SecretStr

from gemini_bridge.exceptions import AuthError, ProviderInvocationError
from gemini_bridge.models import AuthType, ToolCall
from gemini_bridge.providers.base import BaseProvider, build_prompt

logger = logging.getLogger(__name__)

GEMINI_API_BASE = "https://generativelanguage.googleapis.com/v1beta"


def extract_text(data: dict[str, Any]) -> str:
    """Join the text parts of the first candidate in a generateContent response."""
    candidates = data.get("candidates") or []
    if not candidates:
        return ""
    parts = (candidates[0].get("content") or {}).get("parts") or []
    return "".join(p.get("text", "") for p in parts if isinstance(p, dict))


class GeminiApiProvider(BaseProvider):
    """Calls the Gemini HTTP API directly, authenticated with ``GEMINI_API_KEY``."""

    name = "gemini-api"
    auth_type = AuthType.API_KEY

    def __init__(
        self,
        model: str,
        *,
        api_key: SecretStr | None = None,
        base_url: str = GEMINI_API_BASE,
        transport: httpx.AsyncBaseTransport | None = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.model = model
        self._api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._transport = transport

    def _key(self) -> str:
        if self._api_key is not None and self._api_key.get_secret_value():
            return self._api_key.get_secret_value()
        return os.environ.get("GEMINI_API_KEY", "")

    def is_available(self) -> bool:
        return bool(self._key())

    def validate_auth(self) -> bool:
        return bool(self._key())

    async def authenticate(self) -> str:
        key = self._key()
        if not key:
            raise AuthError("GEMINI_API_KEY is not set")
        return key

    def _auth_headers(self, token: str) -> dict[str, str]:
        return {"x-goog-api-key": token}

    async def invoke(self, tool_call: ToolCall, token: str, timeout: float) -> str:
        prompt = build_prompt(tool_call)
        url = f"{self.base_url}/models/{self.model}:generateContent"
        body = {"contents": [{"role": "user", "parts": [{"text": prompt.full_text()}]}]}

        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(url, json=body, headers=self._auth_headers(token))
                resp.raise_for_status()
                data = resp.json()
        except httpx.TimeoutException as e:
            raise ProviderInvocationError(f"{self.name} timed out after {timeout}s") from e
        except httpx.HTTPStatusError as e:
            raise ProviderInvocationError(
                f"{self.name} returned HTTP {e.response.status_code}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise ProviderInvocationError(f"{self.name} request failed: {e}") from e

        text = extract_text(data) if isinstance(data, dict) else ""
        if not text:
            raise ProviderInvocationError(f"{self.name} returned no text")
        return text
