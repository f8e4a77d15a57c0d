"""Bridge configuration: pydantic models and the layered loader.

Values are resolved in three layers, later layers winning:

1. built-in defaults (the model field defaults below)
2. the persisted JSON config file (``$XDG_CONFIG_HOME/gemini-bridge/config.json``)
3. environment overrides (``CLAUDE_TOKEN_LIMIT``, ``GEMINI_API_KEY``, ...)

Loading never raises: a malformed file or an unparseable environment value
is logged and skipped, and the remaining layers still apply.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Callable, Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, SecretStr, ValidationError

logger = logging.getLogger(__name__)

APP_DIR_NAME = "gemini-bridge"
CONFIG_FILENAME = "config.json"
STATUS_LOG_FILENAME = "bridge-status.log"
SUPPORTED_CIPHER = "aes-256-cbc"


def get_config_dir(environ: Mapping[str, str] | None = None) -> Path:
    """Return the bridge config directory (XDG layout). Does not create it."""
    env = os.environ if environ is None else environ
    explicit = env.get("GEMINI_BRIDGE_CONFIG_DIR")
    if explicit:
        return Path(explicit).expanduser()
    xdg = env.get("XDG_CONFIG_HOME")
    base = Path(xdg).expanduser() if xdg else Path.home() / ".config"
    return base / APP_DIR_NAME


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------


class OAuthSettings(BaseModel):
    """Google OAuth 2.0 client settings for the authorization-code + PKCE flow."""

    model_config = ConfigDict(frozen=True)

    client_id: str = ""
    client_secret: SecretStr = SecretStr("")
    redirect_uri: str = "http://localhost:8085/oauth/callback"
    scope: str = "https://www.googleapis.com/auth/cloud-platform openid email"
    auth_endpoint: str = "https://accounts.google.com/o/oauth2/v2/auth"
    token_endpoint: str = "https://oauth2.googleapis.com/token"
    revoke_endpoint: str = "https://oauth2.googleapis.com/revoke"
    auto_refresh: bool = True
    callback_timeout: float = 300.0  # seconds to wait for the browser redirect
    refresh_margin: int = 300  # refresh when less than this many seconds remain


class EncryptionSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    enabled: bool = True
    algorithm: str = SUPPORTED_CIPHER


class Config(BaseModel):
    """Immutable snapshot of every limit and provider setting for one invocation."""

    model_config = ConfigDict(frozen=True)

    # Delegation limits
    claude_token_limit: int = 50_000
    gemini_token_limit: int = 800_000
    min_files_for_delegation: int = 2
    min_file_size_bytes: int = 5120
    complexity_threshold: int = 6  # 0-10
    keyword_matching_enabled: bool = True
    complexity_scoring_enabled: bool = True

    # Providers
    default_provider: str = "gemini-cli"
    gemini_model: str = "gemini-2.5-pro"
    invoke_timeout: float = 120.0

    # Secrets (environment only)
    gemini_api_key: SecretStr | None = None
    encryption_password: SecretStr | None = None

    oauth: OAuthSettings = Field(default_factory=OAuthSettings)
    encryption: EncryptionSettings = Field(default_factory=EncryptionSettings)

    config_dir: Path = Field(default_factory=get_config_dir)

    @property
    def config_file(self) -> Path:
        return self.config_dir / CONFIG_FILENAME

    @property
    def auth_dir(self) -> Path:
        return self.config_dir / "auth"

    @property
    def status_log(self) -> Path:
        return self.config_dir / STATUS_LOG_FILENAME

    def non_positive_thresholds(self) -> list[str]:
        """Names of delegation thresholds that are <= 0 and therefore always trigger."""
        names = []
        for name in (
            "claude_token_limit",
            "min_files_for_delegation",
            "min_file_size_bytes",
        ):
            if getattr(self, name) <= 0:
                names.append(name)
        if self.complexity_threshold < 0:
            names.append("complexity_threshold")
        return names


# ---------------------------------------------------------------------------
# File layer
# ---------------------------------------------------------------------------

# config.json section -> {file key: Config field}
_FILE_KEYS: dict[str, dict[str, str]] = {
    "limits": {
        "claude_tokens": "claude_token_limit",
        "gemini_tokens": "gemini_token_limit",
        "min_files": "min_files_for_delegation",
        "max_size": "min_file_size_bytes",
        "min_file_size": "min_file_size_bytes",
    },
    "delegation": {
        "complexity_threshold": "complexity_threshold",
        "keyword_matching": "keyword_matching_enabled",
        "complexity_scoring": "complexity_scoring_enabled",
    },
    "providers": {
        "default": "default_provider",
        "model": "gemini_model",
        "invoke_timeout": "invoke_timeout",
    },
}


def _read_config_file(path: Path) -> dict[str, Any]:
    """Flatten config.json into Config field values. Returns {} on any problem."""
    if not path.exists():
        return {}

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning("Ignoring unreadable config file %s: %s", path, e)
        return {}

    if not isinstance(data, dict):
        logger.warning("Ignoring config file %s: top level is not an object", path)
        return {}

    values: dict[str, Any] = {}
    for section, keys in _FILE_KEYS.items():
        block = data.get(section) or {}
        if not isinstance(block, dict):
            logger.warning("Ignoring config section %r: not an object", section)
            continue
        for file_key, field_name in keys.items():
            if file_key in block:
                values[field_name] = block[file_key]

    for section in ("oauth", "encryption"):
        block = data.get(section)
        if isinstance(block, dict):
            values[section] = block
        elif block is not None:
            logger.warning("Ignoring config section %r: not an object", section)

    return values


# ---------------------------------------------------------------------------
# Environment layer
# ---------------------------------------------------------------------------

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off"}


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


# env var -> (Config field, parser)
_ENV_OVERRIDES: dict[str, tuple[str, Callable[[str], Any]]] = {
    "CLAUDE_TOKEN_LIMIT": ("claude_token_limit", int),
    "GEMINI_TOKEN_LIMIT": ("gemini_token_limit", int),
    "MIN_FILES_FOR_GEMINI": ("min_files_for_delegation", int),
    "MIN_FILE_SIZE_FOR_GEMINI": ("min_file_size_bytes", int),
    "COMPLEXITY_THRESHOLD": ("complexity_threshold", int),
    "KEYWORD_MATCHING_ENABLED": ("keyword_matching_enabled", _parse_bool),
    "COMPLEXITY_SCORING_ENABLED": ("complexity_scoring_enabled", _parse_bool),
    "GEMINI_BRIDGE_PROVIDER": ("default_provider", str),
    "GEMINI_MODEL": ("gemini_model", str),
    "GEMINI_API_KEY": ("gemini_api_key", str),
    "OAUTH_ENCRYPTION_PASSWORD": ("encryption_password", str),
}


def _env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for var, (field_name, parse) in _ENV_OVERRIDES.items():
        raw = environ.get(var)
        if raw is None or raw == "":
            continue
        try:
            values[field_name] = parse(raw)
        except ValueError:
            logger.warning("Ignoring %s=%r: cannot parse value", var, raw)
    return values


# ---------------------------------------------------------------------------
# Loader
# ---------------------------------------------------------------------------


def load_config(
    config_path: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Config:
    """Build a Config from defaults, the config file and the environment.

    Args:
        config_path: Config file to read. Defaults to ``<config dir>/config.json``.
        environ: Environment mapping. Defaults to ``os.environ``.

    Returns:
        A frozen Config. Never raises for bad input; problems are logged.
    """
    env = os.environ if environ is None else environ
    config_dir = get_config_dir(env)
    path = config_path or config_dir / CONFIG_FILENAME

    file_values = _read_config_file(path)
    if file_values:
        try:
            Config.model_validate({**file_values, "config_dir": config_dir})
        except ValidationError as e:
            logger.warning(
                "Ignoring config file %s: %d invalid value(s), using defaults",
                path,
                e.error_count(),
            )
            file_values = {}

    env_values = _env_overrides(env)

    try:
        config = Config.model_validate({**file_values, **env_values, "config_dir": config_dir})
    except ValidationError as e:
        logger.warning("Invalid configuration (%s), falling back to defaults", e)
        config = Config(config_dir=config_dir)

    for name in config.non_positive_thresholds():
        logger.warning(
            "%s is %s: this delegation trigger will fire on every request",
            name,
            getattr(config, name),
        )

    if not config.encryption.enabled:
        logger.warning("encryption.enabled=false is ignored: tokens are always encrypted")
    if config.encryption.algorithm.lower() != SUPPORTED_CIPHER:
        logger.warning(
            "Unsupported encryption algorithm %r, using %s",
            config.encryption.algorithm,
            SUPPORTED_CIPHER,
        )

    return config
