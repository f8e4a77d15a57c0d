# Tests for bridge.py: delegation, provider fallback, fail-open.
# Created: 2026-03-06

from unittest.mock import MagicMock

import pytest

from conftest import FakeProvider, write_file
from gemini_bridge.bridge import Bridge
from gemini_bridge.config import Config
from gemini_bridge.exceptions import AuthError, ProviderInvocationError
from gemini_bridge.models import AuthType, BridgeAction, ToolCall


@pytest.fixture
def heavy_call(project):
    for i in range(3):
        write_file(project / f"mod{i}.py", 2048)
    return ToolCall("Glob", {"pattern": "*.py"}, project)


class TestDelegation:
    async def test_delegates_to_selected_provider(self, fake_registry, heavy_call):
        cli = FakeProvider("gemini-cli", AuthType.CLI, rank=10, result="cli summary")
        api = FakeProvider("gemini-api", rank=30)
        bridge = Bridge(Config(), fake_registry(cli, api))

        response = await bridge.handle(heavy_call)

        assert response.to_dict() == {
            "action": "delegate",
            "provider": "gemini-cli",
            "result": "cli summary",
        }
        assert len(cli.invocations) == 1
        assert api.invocations == []

    async def test_continue_below_thresholds(self, fake_registry, project):
        write_file(project / "tiny.py", 10)
        api = FakeProvider("gemini-api")
        bridge = Bridge(Config(), fake_registry(api))

        response = await bridge.handle(ToolCall("Read", {"file_path": "tiny.py"}, project))

        assert response.to_dict() == {"action": "continue"}
        assert api.invocations == []


class TestFallback:
    async def test_scenario_e_timeout_then_api_key(self, fake_registry, heavy_call):
        slow = FakeProvider("gemini-oauth", AuthType.OAUTH, rank=10, delay=5)
        api = FakeProvider("gemini-api", AuthType.API_KEY, rank=30, result="from api")
        bridge = Bridge(Config(), fake_registry(slow, api), invoke_timeout=0.1)

        response = await bridge.handle(heavy_call)

        assert response.action == BridgeAction.DELEGATE
        assert response.provider == "gemini-api"
        assert response.result == "from api"
        assert len(slow.invocations) == 1

    async def test_invocation_error_falls_back(self, fake_registry, heavy_call):
        broken = FakeProvider("a", rank=1, error=ProviderInvocationError("HTTP 503"))
        backup = FakeProvider("b", rank=2, result="backup")
        bridge = Bridge(Config(), fake_registry(broken, backup))

        response = await bridge.handle(heavy_call)
        assert response.provider == "b"

    async def test_auth_error_falls_back(self, fake_registry, heavy_call):
        expiring = FakeProvider("a", rank=1, error=AuthError("refresh failed"))
        backup = FakeProvider("b", rank=2, result="backup")
        bridge = Bridge(Config(), fake_registry(expiring, backup))

        response = await bridge.handle(heavy_call)
        assert response.provider == "b"

    async def test_all_fail_continues(self, fake_registry, heavy_call, caplog):
        a = FakeProvider("a", rank=1, error=ProviderInvocationError("down"))
        b = FakeProvider("b", rank=2, error=ProviderInvocationError("also down"))
        bridge = Bridge(Config(), fake_registry(a, b))

        response = await bridge.handle(heavy_call)

        assert response.to_dict() == {"action": "continue"}
        # each provider tried exactly once
        assert len(a.invocations) == 1
        assert len(b.invocations) == 1
        assert "All providers failed" in caplog.text

    async def test_unauthenticated_providers_not_tried(self, fake_registry, heavy_call):
        locked = FakeProvider("locked", rank=1, authed=False)
        ok = FakeProvider("ok", rank=2)
        bridge = Bridge(Config(), fake_registry(locked, ok))

        response = await bridge.handle(heavy_call)
        assert response.provider == "ok"
        assert locked.invocations == []


class TestFailOpen:
    async def test_empty_tool_name(self, fake_registry, project):
        bridge = Bridge(Config(), fake_registry(FakeProvider("a")))
        response = await bridge.handle(ToolCall("", {}, project))
        assert response.to_dict() == {"action": "continue"}

    async def test_unexpected_exception(self, fake_registry, heavy_call):
        decisions = MagicMock()
        decisions.decide.side_effect = RuntimeError("bug")
        bridge = Bridge(Config(), fake_registry(FakeProvider("a")), decisions=decisions)

        response = await bridge.handle(heavy_call)
        assert response.to_dict() == {"action": "continue"}

    async def test_no_providers_at_all(self, fake_registry, heavy_call):
        bridge = Bridge(Config(), fake_registry())
        response = await bridge.handle(heavy_call)
        assert response.to_dict() == {"action": "continue"}
