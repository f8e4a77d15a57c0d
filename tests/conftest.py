# Shared fixtures for the gemini-bridge test suite.
# Created: 2026-03-02

import asyncio
from pathlib import Path

import pytest

from gemini_bridge.auth.token_store import TokenStore
from gemini_bridge.auth.vault import TokenVault
from gemini_bridge.config import Config
from gemini_bridge.exceptions import AuthError
from gemini_bridge.models import AuthType, ToolCall
from gemini_bridge.providers.base import BaseProvider
from gemini_bridge.providers.registry import ProviderRegistry

# Low PBKDF2 cost so vault tests stay fast
TEST_ITERATIONS = 1_000

_BRIDGE_ENV = (
    "CLAUDE_TOKEN_LIMIT",
    "GEMINI_TOKEN_LIMIT",
    "MIN_FILES_FOR_GEMINI",
    "MIN_FILE_SIZE_FOR_GEMINI",
    "COMPLEXITY_THRESHOLD",
    "KEYWORD_MATCHING_ENABLED",
    "COMPLEXITY_SCORING_ENABLED",
    "GEMINI_BRIDGE_PROVIDER",
    "GEMINI_MODEL",
    "GEMINI_API_KEY",
    "OAUTH_ENCRYPTION_PASSWORD",
    "GEMINI_BRIDGE_NOTIFY",
)


@pytest.fixture(autouse=True)
def clean_env(tmp_path, monkeypatch):
    """Keep the developer's environment and config dir out of every test."""
    for var in _BRIDGE_ENV:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.setenv("GEMINI_BRIDGE_CONFIG_DIR", str(tmp_path / "config"))


@pytest.fixture
def config(tmp_path):
    return Config(config_dir=tmp_path / "config")


@pytest.fixture
def vault(tmp_path):
    return TokenVault(tmp_path / "auth", iterations=TEST_ITERATIONS)


@pytest.fixture
def token_store(vault):
    return TokenStore(vault, "test-passphrase")


@pytest.fixture
def project(tmp_path):
    """Empty project directory to put files in."""
    root = tmp_path / "project"
    root.mkdir()
    return root


def write_file(path: Path, size: int) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"x" * size)
    return path


class FakeProvider(BaseProvider):
    """Scriptable provider: availability, auth, output and failures are all knobs."""

    def __init__(
        self,
        name: str,
        auth_type: AuthType = AuthType.API_KEY,
        *,
        available: bool = True,
        authed: bool = True,
        result: str = "fake result",
        error: Exception | None = None,
        delay: float = 0.0,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.name = name
        self.auth_type = auth_type
        self.available = available
        self.authed = authed
        self.result = result
        self.error = error
        self.delay = delay
        self.invocations: list[ToolCall] = []

    def is_available(self) -> bool:
        return self.available

    def validate_auth(self) -> bool:
        return self.authed

    async def authenticate(self) -> str:
        if not self.authed:
            raise AuthError(f"{self.name} has no credentials")
        return f"{self.name}-token"

    async def invoke(self, tool_call: ToolCall, token: str, timeout: float) -> str:
        self.invocations.append(tool_call)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def fake_registry():
    """Build a ProviderRegistry from FakeProviders."""

    def build(*providers: FakeProvider) -> ProviderRegistry:
        registry = ProviderRegistry()
        for provider in providers:
            registry.register(provider)
        return registry

    return build
