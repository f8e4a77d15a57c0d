# Provider Registry: discovery, ranking and authentication dispatch.
# Created: 2026-03-05


from __future__ import annotations

import logging

import httpx

from gemini_bridge.auth.oauth import OAuthEngine
from gemini_bridge.auth.token_store import open_token_store
from gemini_bridge.config import Config
from gemini_bridge.exceptions import AuthError, NoProviderError
from gemini_bridge.models import AuthType, ProviderDescriptor
from gemini_bridge.providers.base import BaseProvider
from gemini_bridge.providers.gemini_api import GeminiApiProvider
from gemini_bridge.providers.gemini_cli import GeminiCliProvider
from gemini_bridge.providers.gemini_oauth import GeminiOAuthProvider

logger = logging.getLogger(__name__)

# Built-in ranks; the configured default provider is promoted to 0
DEFAULT_RANKS = {
    GeminiCliProvider.name: 10,
    GeminiOAuthProvider.name: 20,
    GeminiApiProvider.name: 30,
}


class ProviderRegistry:
    """
    Registry of provider implementations, keyed by name.

    Usage:
        registry = ProviderRegistry()
        registry.register(GeminiCliProvider(model="gemini-2.5-pro", rank=10))
        registry.discover()

        descriptor = registry.select("Read", file_count=3, estimated_tokens=40_000)
        token = await registry.authenticate(descriptor)
    """

    def __init__(self) -> None:
        self._providers: dict[str, BaseProvider] = {}
        self._discovered: dict[str, ProviderDescriptor] | None = None

    def register(self, provider: BaseProvider) -> None:
        self._providers[provider.name] = provider
        self._discovered = None
        logger.debug("Registered provider: %s", provider.name)

    def get(self, name: str) -> BaseProvider | None:
        return self._providers.get(name)

    def provider_for(self, descriptor: ProviderDescriptor) -> BaseProvider:
        provider = self._providers.get(descriptor.name)
        if provider is None:
            raise NoProviderError(f"Provider '{descriptor.name}' is not registered")
        return provider

    # -- discovery --

    def discover(self) -> list[ProviderDescriptor]:
        """Probe every registered provider, keeping the available ones in order."""
        found: dict[str, ProviderDescriptor] = {}
        for name, provider in self._providers.items():
            try:
                available = provider.is_available()
            except Exception as e:
                logger.warning("Provider %s probe failed: %s", name, e)
                available = False
            if available:
                found[name] = provider.descriptor
            else:
                logger.debug("Provider %s not available", name)
        self._discovered = found
        logger.debug("Discovered providers: %s", list(found) or "none")
        return list(found.values())

    @property
    def descriptors(self) -> dict[str, ProviderDescriptor]:
        if self._discovered is None:
            self.discover()
        return dict(self._discovered or {})

    # -- selection --

    def _validates(self, descriptor: ProviderDescriptor) -> bool:
        try:
            return self.provider_for(descriptor).validate_auth()
        except Exception as e:
            logger.warning("Provider %s auth check failed: %s", descriptor.name, e)
            return False

    def candidates(self, tool: str, estimated_tokens: int = 0) -> list[ProviderDescriptor]:
        """Providers able to serve *tool*, best first, with valid credentials."""
        discovered = list(self.descriptors.values())
        order = {d.name: i for i, d in enumerate(discovered)}
        eligible = [
            d for d in discovered if d.supports(tool) and d.max_tokens >= estimated_tokens
        ]
        eligible.sort(key=lambda d: (d.rank, order[d.name]))
        return [d for d in eligible if self._validates(d)]

    def select(self, tool: str, file_count: int, estimated_tokens: int) -> ProviderDescriptor:
        """Pick the best provider for a request.

        Raises:
            NoProviderError: nothing discovered covers the tool with valid auth.
        """
        ranked = self.candidates(tool, estimated_tokens)
        if not ranked:
            raise NoProviderError(
                f"No provider available for {tool} "
                f"({file_count} files, ~{estimated_tokens} tokens)"
            )
        return ranked[0]

    async def authenticate(
        self, descriptor: ProviderDescriptor, auth_type: AuthType | None = None
    ) -> str:
        """Obtain a credential for *descriptor* using its auth mechanism.

        oauth -> OAuth engine (refreshing if needed), api_key -> configured
        key, cli -> the CLI's own login session.
        """
        provider = self.provider_for(descriptor)
        wanted = AuthType(auth_type) if auth_type is not None else descriptor.auth_type
        if wanted != provider.auth_type:
            raise AuthError(
                f"Provider {descriptor.name} does not support {wanted.value} authentication"
            )
        return await provider.authenticate()


def build_default_registry(
    config: Config,
    *,
    oauth_engine: OAuthEngine | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ProviderRegistry:
    """Registry with the CLI, OAuth and API-key providers, ranked per config.

    The OAuth provider is only registered when an engine is given or an OAuth
    client is configured.
    """

    def rank(name: str) -> int:
        return 0 if name == config.default_provider else DEFAULT_RANKS[name]

    registry = ProviderRegistry()
    registry.register(GeminiCliProvider(config.gemini_model, rank=rank(GeminiCliProvider.name)))

    if oauth_engine is None and config.oauth.client_id:
        oauth_engine = OAuthEngine(config.oauth, open_token_store(config), transport=transport)
    if oauth_engine is not None:
        registry.register(
            GeminiOAuthProvider(
                config.gemini_model,
                oauth_engine,
                transport=transport,
                rank=rank(GeminiOAuthProvider.name),
            )
        )

    registry.register(
        GeminiApiProvider(
            config.gemini_model,
            api_key=config.gemini_api_key,
            transport=transport,
            rank=rank(GeminiApiProvider.name),
        )
    )

    if config.default_provider not in DEFAULT_RANKS:
        logger.warning("Unknown default provider %r, using built-in order", config.default_provider)
    return registry
