# Delegation Decision Engine: heuristic policy for handing work to Gemini.
# Created: 2026-03-06
#
# No API calls: file count, byte size, a 4-bytes-per-token estimate and
# keyword scoring decide whether a tool call is worth delegating.

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path

from gemini_bridge.config import Config
from gemini_bridge.exceptions import NoProviderError
from gemini_bridge.models import DecisionResult, ToolCall
from gemini_bridge.providers.registry import ProviderRegistry

logger = logging.getLogger(__name__)

BYTES_PER_TOKEN = 4
MAX_SCORE = 10

REASON_FILE_COUNT = "file count"
REASON_SIZE = "size"
REASON_TOKEN_LIMIT = "token limit"
REASON_COMPLEXITY = "complexity"
REASON_CAPACITY = "exceeds provider capacity"
REASON_NO_PROVIDER = "no provider available"
REASON_BELOW = "below thresholds"
REASON_NO_INPUT = "no input"

# Trigger phrase -> weight. Matched case-insensitively as substrings; the
# sum is capped at MAX_SCORE.
TRIGGER_KEYWORDS: dict[str, int] = {
    "deep analysis": 7,
    "think carefully": 7,
    "think deeply": 7,
    "think hard": 7,
    "ultrathink": 7,
    "comprehensive review": 7,
    "comprehensive pr review": 7,
    "plan the architecture": 7,
    "review all files": 7,
    "analyze the entire codebase": 7,
    "entire codebase": 4,
    "across the codebase": 4,
    "security audit": 4,
    "all files": 3,
    "architecture": 3,
    "refactor": 3,
    "root cause": 3,
    "step by step": 2,
}


def _file_size(path: Path) -> int:
    try:
        return path.stat().st_size if path.is_file() else 0
    except OSError:
        return 0


class DecisionEngine:
    """Decides delegate/continue for a tool call and picks the provider.

    Triggers, checked in order (the first match names the reason):
    - file count >= min_files_for_delegation
    - total size >= min_file_size_bytes
    - claude_token_limit < estimated tokens <= gemini_token_limit
    - complexity score > complexity_threshold

    A request over gemini_token_limit is never delegated.
    """

    def __init__(self, config: Config, registry: ProviderRegistry):
        self.config = config
        self.registry = registry

    def score(self, prompt_text: str) -> tuple[int, list[str]]:
        """Complexity score (0-10) and the keywords that produced it."""
        if not self.config.complexity_scoring_enabled or not self.config.keyword_matching_enabled:
            return 0, []
        text = prompt_text.lower()
        matched = [kw for kw in TRIGGER_KEYWORDS if kw in text]
        total = sum(TRIGGER_KEYWORDS[kw] for kw in matched)
        return min(total, MAX_SCORE), matched

    def decide(self, tool_call: ToolCall) -> DecisionResult:
        return self.should_delegate(
            tool_call.tool, tool_call.file_paths(), tool_call.prompt_text()
        )

    def should_delegate(
        self, tool: str, file_paths: Iterable[Path], prompt_text: str
    ) -> DecisionResult:
        cfg = self.config
        paths = list(dict.fromkeys(Path(p).resolve() for p in file_paths))
        file_count = len(paths)
        total_size = sum(_file_size(p) for p in paths)
        estimated_tokens = total_size // BYTES_PER_TOKEN + len(prompt_text) // BYTES_PER_TOKEN
        score, matched = self.score(prompt_text)

        def result(delegate: bool, reason: str, provider: str | None = None) -> DecisionResult:
            return DecisionResult(
                delegate=delegate,
                reason=reason,
                selected_provider=provider,
                estimated_tokens=estimated_tokens,
                score=score,
                file_count=file_count,
                total_size=total_size,
            )

        if file_count == 0 and not prompt_text.strip():
            return result(False, REASON_NO_INPUT)

        reason = None
        if file_count >= cfg.min_files_for_delegation:
            reason = REASON_FILE_COUNT
        elif total_size >= cfg.min_file_size_bytes:
            reason = REASON_SIZE
        elif cfg.claude_token_limit < estimated_tokens <= cfg.gemini_token_limit:
            reason = REASON_TOKEN_LIMIT
        elif score > cfg.complexity_threshold:
            reason = REASON_COMPLEXITY

        if reason is None:
            logger.debug(
                "Continue %s: %d files, %d bytes, ~%d tokens, score %d",
                tool, file_count, total_size, estimated_tokens, score,
            )
            return result(False, REASON_BELOW)

        if estimated_tokens > cfg.gemini_token_limit:
            logger.info(
                "Not delegating %s: ~%d tokens exceeds provider capacity (%d)",
                tool, estimated_tokens, cfg.gemini_token_limit,
            )
            return result(False, REASON_CAPACITY)

        try:
            descriptor = self.registry.select(tool, file_count, estimated_tokens)
        except NoProviderError as e:
            logger.warning("Delegation triggered by %s but %s", reason, e)
            return result(False, REASON_NO_PROVIDER)

        if matched:
            logger.debug("Matched complexity keywords: %s", ", ".join(matched))
        logger.info(
            "Delegating %s to %s (%s): %d files, %d bytes, ~%d tokens, score %d",
            tool, descriptor.name, reason, file_count, total_size, estimated_tokens, score,
        )
        return result(True, reason, descriptor.name)
