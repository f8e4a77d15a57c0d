"""Gemini providers and the registry that ranks them."""

from gemini_bridge.providers.base import BaseProvider
from gemini_bridge.providers.gemini_api import GeminiApiProvider
from gemini_bridge.providers.gemini_cli import GeminiCliProvider
from gemini_bridge.providers.gemini_oauth import GeminiOAuthProvider
from gemini_bridge.providers.registry import ProviderRegistry, build_default_registry

__all__ = [
    "BaseProvider",
    "GeminiApiProvider",
    "GeminiCliProvider",
    "GeminiOAuthProvider",
    "ProviderRegistry",
    "build_default_registry",
]
