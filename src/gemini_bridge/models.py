# Bridge data models: tool calls, decisions, provider descriptors, responses.
# Created: 2026-03-02

from __future__ import annotations

import fnmatch
import glob
import itertools
import json
import os
import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any

from gemini_bridge.exceptions import MalformedInputError

# Upper bound on files collected from one Glob/Grep expansion
MAX_SCAN_FILES = 5000

DEFAULT_TOOLS = ("Read", "Grep", "Glob", "Task")

_PROMPT_KEYS = ("prompt", "description", "query")
_FILE_LIST_KEYS = ("file_paths", "files")
_AT_REFERENCE = re.compile(r"(?<![\w.@])@([\w./~-]+)")


class AuthType(str, Enum):
    CLI = "cli"
    API_KEY = "api_key"
    OAUTH = "oauth"


class BridgeAction(str, Enum):
    CONTINUE = "continue"
    DELEGATE = "delegate"


# ---------------------------------------------------------------------------
# ToolCall
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ToolCall:
    """One intercepted tool invocation. Immutable once built."""

    tool: str
    parameters: Mapping[str, Any] = field(default_factory=dict)
    working_directory: Path = field(default_factory=Path.cwd)

    def __post_init__(self) -> None:
        object.__setattr__(self, "parameters", MappingProxyType(dict(self.parameters)))
        object.__setattr__(self, "working_directory", Path(self.working_directory))

    @classmethod
    def from_payload(cls, data: Any) -> ToolCall:
        """Build a ToolCall from a decoded hook payload.

        Accepts ``{"tool", "parameters", "context": {"working_directory"}}`` and
        the assistant's native ``{"tool_name", "tool_input", "cwd"}`` shape.
        """
        if not isinstance(data, dict):
            raise MalformedInputError("Tool call must be a JSON object")

        tool = data.get("tool") or data.get("tool_name") or ""
        params = data.get("parameters")
        if params is None:
            params = data.get("tool_input")
        if not isinstance(params, dict):
            params = {}

        context = data.get("context")
        workdir = None
        if isinstance(context, dict):
            workdir = context.get("working_directory")
        workdir = workdir or data.get("cwd") or os.getcwd()

        return cls(tool=str(tool), parameters=params, working_directory=Path(workdir))

    @classmethod
    def from_json(cls, raw: str) -> ToolCall:
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedInputError(f"Invalid JSON on input: {e}") from e
        return cls.from_payload(data)

    def prompt_text(self) -> str:
        for key in _PROMPT_KEYS:
            value = self.parameters.get(key)
            if isinstance(value, str) and value:
                return value
        return ""

    def file_paths(self) -> list[Path]:
        """Distinct resolved paths this call touches, in first-seen order."""
        seen: dict[Path, None] = {}

        def add(raw: str | os.PathLike) -> None:
            seen.setdefault(self._resolve(raw), None)

        file_path = self.parameters.get("file_path")
        if isinstance(file_path, str) and file_path:
            add(file_path)

        if self.tool == "Glob":
            pattern = self.parameters.get("pattern")
            if isinstance(pattern, str) and pattern:
                for match in self._expand_glob(pattern):
                    add(match)
        elif self.tool == "Grep":
            target = self._search_root()
            if target.is_file():
                add(target)
            elif target.is_dir():
                include = self.parameters.get("glob")
                for match in _walk_files(target, include if isinstance(include, str) else None):
                    add(match)

        for key in _FILE_LIST_KEYS:
            listed = self.parameters.get(key)
            if isinstance(listed, list):
                for item in listed:
                    if isinstance(item, str) and item:
                        add(item)

        for ref in _AT_REFERENCE.findall(self.prompt_text()):
            add(ref)

        return list(seen)

    # -- helpers --

    def _resolve(self, raw: str | os.PathLike) -> Path:
        path = Path(raw).expanduser()
        if not path.is_absolute():
            path = self.working_directory / path
        return path.resolve()

    def _search_root(self) -> Path:
        path = self.parameters.get("path")
        if isinstance(path, str) and path:
            return self._resolve(path)
        return self.working_directory.resolve()

    def _expand_glob(self, pattern: str) -> Iterator[str]:
        full = os.path.join(self._search_root(), os.path.expanduser(pattern))
        matches = (m for m in glob.iglob(full, recursive=True) if os.path.isfile(m))
        return itertools.islice(matches, MAX_SCAN_FILES)


def _walk_files(root: Path, include: str | None) -> Iterator[Path]:
    """Yield files under *root* (hidden directories skipped), capped."""

    def walk() -> Iterator[Path]:
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = [d for d in dirnames if not d.startswith(".")]
            for name in filenames:
                if include and not fnmatch.fnmatch(name, include):
                    continue
                yield Path(dirpath) / name

    return itertools.islice(walk(), MAX_SCAN_FILES)


# ---------------------------------------------------------------------------
# Decisions and providers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DecisionResult:
    """Outcome of the delegation policy for one tool call."""

    delegate: bool
    reason: str
    selected_provider: str | None = None
    estimated_tokens: int = 0
    score: int = 0  # 0-10
    file_count: int = 0
    total_size: int = 0


@dataclass(frozen=True)
class ProviderDescriptor:
    """Static description of a provider, produced by discovery."""

    name: str
    auth_type: AuthType
    capabilities: frozenset[str] = frozenset(DEFAULT_TOOLS)
    rank: int = 100  # lower is preferred
    max_tokens: int = 1_000_000

    def supports(self, tool: str) -> bool:
        return tool in self.capabilities


# ---------------------------------------------------------------------------
# Bridge output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BridgeResponse:
    """The single JSON object written to stdout."""

    action: BridgeAction
    provider: str | None = None
    result: str | None = None

    @classmethod
    def continue_(cls) -> BridgeResponse:
        return cls(action=BridgeAction.CONTINUE)

    @classmethod
    def delegated(cls, provider: str, result: str) -> BridgeResponse:
        return cls(action=BridgeAction.DELEGATE, provider=provider, result=result)

    def to_dict(self) -> dict[str, str]:
        if self.action == BridgeAction.CONTINUE:
            return {"action": "continue"}
        return {
            "action": "delegate",
            "provider": self.provider or "",
            "result": self.result or "",
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
