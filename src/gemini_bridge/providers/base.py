# Provider interface: the polymorphic seam between the bridge and Gemini.
# Created: 2026-03-05

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable
from dataclasses import dataclass

from gemini_bridge.models import DEFAULT_TOOLS, AuthType, ProviderDescriptor, ToolCall

logger = logging.getLogger(__name__)

GEMINI_MAX_TOKENS = 1_000_000
# Roughly the Gemini context window in bytes at 4 bytes/token
MAX_CONTEXT_BYTES = 3_200_000

_INSTRUCTIONS = {
    "Read": (
        "You are assisting another coding assistant that asked to read the files below. "
        "Summarize their structure and purpose and point out anything notable."
    ),
    "Grep": (
        "You are assisting another coding assistant with a code search. "
        "Find every occurrence of the pattern {pattern!r} in the files below and "
        "report each match as path:line with a short explanation."
    ),
    "Glob": (
        "You are assisting another coding assistant that listed files matching "
        "{pattern!r}. Describe what each file contains and how they relate."
    ),
    "Task": "You are assisting another coding assistant with the following task.",
}


@dataclass(frozen=True)
class DelegationPrompt:
    """Instruction plus the file context sent to a provider."""

    instruction: str
    context: str = ""

    def full_text(self) -> str:
        if not self.context:
            return self.instruction
        return f"{self.instruction}\n\n{self.context}"


def build_prompt(tool_call: ToolCall, max_bytes: int = MAX_CONTEXT_BYTES) -> DelegationPrompt:
    """Compose the provider prompt: tool-specific instruction + inlined files."""
    pattern = tool_call.parameters.get("pattern", "")
    template = _INSTRUCTIONS.get(
        tool_call.tool, "Handle this {tool} request for a coding assistant."
    )
    instruction = template.format(pattern=pattern, tool=tool_call.tool)

    request = tool_call.prompt_text()
    if request:
        instruction = f"{instruction}\n\nRequest: {request}"

    sections: list[str] = []
    budget = max_bytes
    for path in tool_call.file_paths():
        if budget <= 0:
            sections.append("[... remaining files omitted: context limit reached ...]")
            break
        try:
            data = path.read_bytes()
        except OSError as e:
            logger.debug("Skipping unreadable file %s: %s", path, e)
            continue
        chunk = data[:budget].decode("utf-8", errors="replace")
        budget -= len(data)
        sections.append(f"=== {path} ===\n{chunk}")

    return DelegationPrompt(instruction=instruction, context="\n\n".join(sections))


class BaseProvider(ABC):
    """A means of fulfilling a delegated request.

    Subclasses set ``name`` and ``auth_type`` and implement the four
    operations. ``is_available`` is the cheap discovery probe;
    ``validate_auth`` must not touch the network either.
    """

    name: str = ""
    auth_type: AuthType = AuthType.CLI

    def __init__(
        self,
        *,
        rank: int = 100,
        capabilities: Iterable[str] = DEFAULT_TOOLS,
        max_tokens: int = GEMINI_MAX_TOKENS,
    ):
        self.rank = rank
        self._capabilities = frozenset(capabilities)
        self.max_tokens = max_tokens

    @property
    def capabilities(self) -> frozenset[str]:
        return self._capabilities

    @property
    def descriptor(self) -> ProviderDescriptor:
        return ProviderDescriptor(
            name=self.name,
            auth_type=self.auth_type,
            capabilities=self._capabilities,
            rank=self.rank,
            max_tokens=self.max_tokens,
        )

    @abstractmethod
    def is_available(self) -> bool:
        """Whether this provider is installed/configured at all."""

    @abstractmethod
    def validate_auth(self) -> bool:
        """Whether usable credentials are present (no network calls)."""

    @abstractmethod
    async def authenticate(self) -> str:
        """Return a credential for :meth:`invoke`.

        Raises:
            AuthError: credentials are missing or cannot be refreshed.
        """

    @abstractmethod
    async def invoke(self, tool_call: ToolCall, token: str, timeout: float) -> str:
        """Run the delegated request and return the provider's text.

        Raises:
            ProviderInvocationError: the call failed or timed out.
        """
