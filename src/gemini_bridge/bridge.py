# Bridge Orchestrator: decide, delegate, fall back, never block the caller.
# Created: 2026-03-06

from __future__ import annotations

import asyncio
import logging

from gemini_bridge.config import Config
from gemini_bridge.decision import DecisionEngine
from gemini_bridge.exceptions import AuthError, NoProviderError, ProviderInvocationError
from gemini_bridge.models import BridgeResponse, DecisionResult, ProviderDescriptor, ToolCall
from gemini_bridge.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)


class Bridge:
    """Handles one tool call end to end.

    Any failure below this class ends in ``{"action": "continue"}``: the
    host assistant simply runs the tool itself.
    """

    def __init__(
        self,
        config: Config,
        registry: ProviderRegistry,
        decisions: DecisionEngine | None = None,
        invoke_timeout: float | None = None,
    ):
        self.config = config
        self.registry = registry
        self.decisions = decisions or DecisionEngine(config, registry)
        if invoke_timeout is None:
            invoke_timeout = config.invoke_timeout
        self.invoke_timeout = invoke_timeout

    async def handle(self, tool_call: ToolCall) -> BridgeResponse:
        try:
            return await self._handle(tool_call)
        except Exception:
            logger.exception("Bridge failed on %s, continuing", tool_call.tool or "<unknown>")
            return BridgeResponse.continue_()

    async def _handle(self, tool_call: ToolCall) -> BridgeResponse:
        if not tool_call.tool:
            logger.warning("Could not extract tool name from input")
            return BridgeResponse.continue_()

        decision = self.decisions.decide(tool_call)
        if not decision.delegate:
            logger.debug("Continue %s (%s)", tool_call.tool, decision.reason)
            return BridgeResponse.continue_()

        failures: list[str] = []
        for descriptor in self._attempt_order(tool_call, decision):
            try:
                output = await self._attempt(descriptor, tool_call)
            except (AuthError, ProviderInvocationError, NoProviderError) as e:
                logger.warning("Provider %s failed: %s", descriptor.name, e)
                failures.append(f"{descriptor.name}: {e}")
                continue
            logger.info("Delegated %s to %s", tool_call.tool, descriptor.name)
            return BridgeResponse.delegated(descriptor.name, output)

        logger.error(
            "All providers failed for %s, continuing locally (%s)",
            tool_call.tool,
            "; ".join(failures) or "no candidates",
        )
        return BridgeResponse.continue_()

    def _attempt_order(
        self, tool_call: ToolCall, decision: DecisionResult
    ) -> list[ProviderDescriptor]:
        """Selected provider first, then the other ranked candidates; at most N tries."""
        descriptors = self.registry.descriptors
        ranked = self.registry.candidates(tool_call.tool, decision.estimated_tokens)

        order: list[ProviderDescriptor] = []
        selected = descriptors.get(decision.selected_provider or "")
        if selected is not None:
            order.append(selected)
        order.extend(d for d in ranked if d.name != decision.selected_provider)
        return order[: len(descriptors)]

    async def _attempt(self, descriptor: ProviderDescriptor, tool_call: ToolCall) -> str:
        token = await self.registry.authenticate(descriptor)
        provider = self.registry.provider_for(descriptor)
        try:
            return await asyncio.wait_for(
                provider.invoke(tool_call, token, self.invoke_timeout),
                timeout=self.invoke_timeout,
            )
        except TimeoutError as e:
            raise ProviderInvocationError(
                f"timed out after {self.invoke_timeout}s"
            ) from e
