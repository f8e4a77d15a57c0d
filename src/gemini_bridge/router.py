# Universal router: maps a tool call to a registered project bridge.
# Created: 2026-03-07
#
# One hook installed globally; the registry at ~/.claude/bridge-registry.json
# says which projects have the bridge enabled and for which tools.

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from gemini_bridge.models import DEFAULT_TOOLS, ToolCall

logger = logging.getLogger(__name__)

ROUTER_VERSION = "2.0.0"
PROJECT_MARKER = ".gemini-bridge"
PROJECT_CONFIG = "config.json"
DEFAULT_TOOLS_PATTERN = "|".join(DEFAULT_TOOLS)
_ROOT_MARKERS = (".git/config", "package.json", "go.mod", "pyproject.toml")


def default_registry_path() -> Path:
    return Path.home() / ".claude" / "bridge-registry.json"


@dataclass(frozen=True)
class ProjectEntry:
    path: Path
    enabled: bool = False
    tools: frozenset[str] = frozenset(DEFAULT_TOOLS)
    bridge_version: str = ""

    @property
    def config_file(self) -> Path:
        return self.path / PROJECT_MARKER / PROJECT_CONFIG


@dataclass(frozen=True)
class RouteDecision:
    """Where a tool call goes: a project bridge, or straight back to the caller."""

    project: ProjectEntry | None
    reason: str

    @property
    def routed(self) -> bool:
        return self.project is not None


def _parse_entry(path: str, raw: Any) -> ProjectEntry | None:
    if not isinstance(raw, dict):
        return None
    config = raw.get("config") if isinstance(raw.get("config"), dict) else {}
    tools = str(config.get("tools") or DEFAULT_TOOLS_PATTERN)
    return ProjectEntry(
        path=Path(path),
        enabled=config.get("enabled") is True,
        tools=frozenset(t.strip() for t in tools.split("|") if t.strip()),
        bridge_version=str(raw.get("bridge_version", "")),
    )


class ProjectRegistry:
    """View of the bridge registry file. Unreadable files read as empty."""

    def __init__(self, projects: dict[str, ProjectEntry] | None = None, version: str = ""):
        self.projects = projects or {}
        self.version = version

    @classmethod
    def load(cls, path: Path | None = None) -> ProjectRegistry:
        path = path or default_registry_path()
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return cls()
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            logger.warning("Ignoring unreadable bridge registry %s: %s", path, e)
            return cls()

        if not isinstance(data, dict):
            logger.warning("Ignoring bridge registry %s: top level is not an object", path)
            return cls()

        projects: dict[str, ProjectEntry] = {}
        raw_projects = data.get("projects")
        if isinstance(raw_projects, dict):
            for key, raw in raw_projects.items():
                entry = _parse_entry(key, raw)
                if entry is not None:
                    projects[key] = entry
        return cls(projects=projects, version=str(data.get("version", "")))

    @staticmethod
    def initialize(path: Path | None = None) -> bool:
        """Create an empty registry file if none exists. Returns True if created.

        Failures are logged, never raised: routing still works on an empty registry.
        """
        path = path or default_registry_path()
        if path.exists():
            return False
        payload = {
            "version": ROUTER_VERSION,
            "projects": {},
            "router_installed": datetime.now(tz=UTC).isoformat(),
        }
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not create bridge registry %s: %s", path, e)
            return False
        logger.info("Initialized bridge registry at %s", path)
        return True

    def get(self, path: Path) -> ProjectEntry | None:
        return self.projects.get(str(path))

    def find_project_root(self, start: Path) -> Path | None:
        """Walk up from *start* to the nearest bridge project.

        A directory with a ``.gemini-bridge`` folder always counts; a
        directory with ordinary root markers counts only if registered.
        """
        current = start if start.is_dir() else start.parent
        for directory in (current, *current.parents):
            if (directory / PROJECT_MARKER).is_dir():
                return directory
            if str(directory) in self.projects and any(
                (directory / marker).exists() for marker in _ROOT_MARKERS
            ):
                return directory
        return None


def routing_directory(tool_call: ToolCall) -> Path:
    """Directory a tool call belongs to: its target path, else the working directory."""
    file_path = tool_call.parameters.get("file_path")
    if isinstance(file_path, str) and file_path:
        candidate = Path(file_path).expanduser()
        if not candidate.is_absolute():
            candidate = tool_call.working_directory / candidate
        return candidate.parent.resolve()
    path = tool_call.parameters.get("path")
    if isinstance(path, str) and path:
        candidate = Path(path).expanduser()
        if not candidate.is_absolute():
            candidate = tool_call.working_directory / candidate
        return candidate.resolve()
    return tool_call.working_directory.resolve()


def route(tool_call: ToolCall, registry: ProjectRegistry) -> RouteDecision:
    if not tool_call.tool:
        return RouteDecision(None, "could not extract tool name from input")

    directory = routing_directory(tool_call)
    root = registry.find_project_root(directory)
    if root is None:
        return RouteDecision(None, f"no registered project found for {directory}")

    entry = registry.get(root)
    if entry is None or not entry.enabled:
        return RouteDecision(None, f"project not registered or disabled: {root}")

    if tool_call.tool not in entry.tools:
        return RouteDecision(
            None, f"tool {tool_call.tool} not configured for delegation in {root.name}"
        )

    return RouteDecision(entry, f"routing {tool_call.tool} to project {root.name}")
