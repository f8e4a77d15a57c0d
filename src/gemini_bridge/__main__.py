"""Gemini bridge entry point.

Changes:
  - 2026-03-08: Added `auth` subcommands (login, status, refresh, revoke).
  - 2026-03-07: Added `route` mode for the globally installed universal router.
  - 2026-03-06: Added `status` report (config, registry projects, providers).
  - 2026-03-02: Hook mode is the default: one tool call on stdin, one JSON object on stdout.
"""

import argparse
import asyncio
import logging
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version
from pathlib import Path

from gemini_bridge.auth.oauth import OAuthEngine
from gemini_bridge.auth.token_store import open_token_store
from gemini_bridge.bridge import Bridge
from gemini_bridge.config import STATUS_LOG_FILENAME, Config, get_config_dir, load_config
from gemini_bridge.exceptions import AuthError, ConfigError, MalformedInputError
from gemini_bridge.logging_setup import setup_logging
from gemini_bridge.models import BridgeResponse, ToolCall
from gemini_bridge.providers.registry import build_default_registry
from gemini_bridge.router import ProjectRegistry, default_registry_path, route

logger = logging.getLogger(__name__)


def _version() -> str:
    try:
        return get_version("gemini-bridge")
    except PackageNotFoundError:
        from gemini_bridge import __version__

        return __version__


# ---------------------------------------------------------------------------
# Hook and router modes
# ---------------------------------------------------------------------------


async def run_hook(config: Config, raw: str) -> BridgeResponse:
    """Decide and (maybe) delegate one tool call.

    Raises:
        MalformedInputError: *raw* is not a JSON object.
    """
    tool_call = ToolCall.from_json(raw)
    bridge = Bridge(config, build_default_registry(config))
    return await bridge.handle(tool_call)


async def run_route(raw: str, registry_path: Path | None = None) -> BridgeResponse:
    """Universal router: run the bridge only for registered, enabled projects."""
    tool_call = ToolCall.from_json(raw)
    ProjectRegistry.initialize(registry_path)
    decision = route(tool_call, ProjectRegistry.load(registry_path))
    if not decision.routed:
        logger.debug("Router: %s", decision.reason)
        return BridgeResponse.continue_()

    logger.info("Router: %s", decision.reason)
    project_config = decision.project.config_file
    config = load_config(project_config if project_config.exists() else None)
    bridge = Bridge(config, build_default_registry(config))
    return await bridge.handle(tool_call)


def _emit(response: BridgeResponse) -> None:
    sys.stdout.write(response.to_json() + "\n")
    sys.stdout.flush()


def _run_tool_call(args: argparse.Namespace) -> int:
    raw = sys.stdin.read()
    try:
        if args.command == "route":
            response = asyncio.run(run_route(raw, args.registry))
        else:
            response = asyncio.run(run_hook(load_config(args.config), raw))
    except MalformedInputError as e:
        logger.error("Malformed tool call: %s", e)
        _emit(BridgeResponse.continue_())
        return 1
    except Exception:
        logger.exception("Bridge crashed, continuing")
        response = BridgeResponse.continue_()
    _emit(response)
    return 0


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------


def print_status(config: Config, registry_path: Path | None = None) -> int:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    console.print(f"[bold]gemini-bridge[/bold] {_version()}")
    console.print(f"Config dir:   {config.config_dir}")
    missing = "" if config.config_file.exists() else " (not found, using defaults)"
    console.print(f"Config file:  {config.config_file}{missing}")
    console.print(f"Status log:   {config.status_log}")
    console.print(
        f"Limits:       claude {config.claude_token_limit} tokens, "
        f"gemini {config.gemini_token_limit} tokens, "
        f"{config.min_files_for_delegation} files, {config.min_file_size_bytes} bytes, "
        f"complexity > {config.complexity_threshold}"
    )

    registry = build_default_registry(config)
    discovered = registry.descriptors
    providers = Table(title="Providers")
    providers.add_column("Name")
    providers.add_column("Auth")
    providers.add_column("Rank", justify="right")
    providers.add_column("Available")
    providers.add_column("Authenticated")
    for descriptor in sorted(discovered.values(), key=lambda d: d.rank):
        provider = registry.provider_for(descriptor)
        providers.add_row(
            descriptor.name,
            descriptor.auth_type.value,
            str(descriptor.rank),
            "yes",
            "yes" if provider.validate_auth() else "no",
        )
    if not discovered:
        providers.add_row("-", "-", "-", "no", "no")
    console.print(providers)

    projects = ProjectRegistry.load(registry_path)
    table = Table(title=f"Registered projects ({registry_path or default_registry_path()})")
    table.add_column("Path")
    table.add_column("Enabled")
    table.add_column("Tools")
    for entry in projects.projects.values():
        table.add_row(
            str(entry.path), "yes" if entry.enabled else "no", "|".join(sorted(entry.tools))
        )
    console.print(table)
    return 0


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------


def _oauth_engine(config: Config) -> OAuthEngine:
    if not config.oauth.client_id:
        raise ConfigError(
            f"OAuth client_id is not configured; add an \"oauth\" section to {config.config_file}"
        )
    return OAuthEngine(config.oauth, open_token_store(config))


async def run_auth(config: Config, action: str, open_browser: bool = True) -> int:
    engine = _oauth_engine(config)
    if action == "login":
        await engine.login(open_browser=open_browser)
        print(f"Authenticated. {engine.describe()}")
    elif action == "refresh":
        await engine.refresh()
        print(f"Token refreshed. {engine.describe()}")
    elif action == "revoke":
        await engine.revoke()
        print("OAuth tokens revoked.")
    else:
        print(f"OAuth: {engine.describe()} ({engine.status().value})")
    return 0


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemini-bridge",
        description="Delegate heavy tool calls from a coding assistant to Gemini",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gemini-bridge < call.json          Decide one tool call (hook mode, default)
  gemini-bridge route < call.json    Route via ~/.claude/bridge-registry.json
  gemini-bridge status               Show config, providers and projects
  gemini-bridge auth login           Authorize with Google OAuth
""",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {_version()}")
    parser.add_argument(
        "--notify",
        choices=["quiet", "subtle", "verbose", "debug"],
        default=None,
        help="Console verbosity (default: $GEMINI_BRIDGE_NOTIFY or subtle)",
    )
    parser.add_argument("--config", type=Path, default=None, help="Config file to use")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("hook", help="Read a tool call on stdin and print the decision (default)")
    route_parser = sub.add_parser("route", help="Universal router mode")
    route_parser.add_argument("--registry", type=Path, default=None, help="Registry file")
    status_parser = sub.add_parser("status", help="Show bridge status")
    status_parser.add_argument("--registry", type=Path, default=None, help="Registry file")

    auth_parser = sub.add_parser("auth", help="Manage OAuth credentials")
    auth_parser.add_argument("action", choices=["login", "status", "refresh", "revoke"])
    auth_parser.add_argument(
        "--no-browser", action="store_true", help="Print the URL instead of opening a browser"
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)
    setup_logging(notify=args.notify, status_log=get_config_dir() / STATUS_LOG_FILENAME)

    if args.command in (None, "hook", "route"):
        args.registry = getattr(args, "registry", None)
        return _run_tool_call(args)

    config = load_config(args.config)
    try:
        if args.command == "status":
            return print_status(config, args.registry)
        return asyncio.run(run_auth(config, args.action, open_browser=not args.no_browser))
    except (ConfigError, AuthError) as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
