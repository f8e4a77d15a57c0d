# Token Store: OAuth token persistence on top of the encrypted vault.
# Created: 2026-03-03
#
# Layout of the auth directory (mode 0700):
#   access_token.enc   ciphertext
#   refresh_token.enc  ciphertext
#   token_info.json    plaintext metadata: expires_at, scope, token_type

from __future__ import annotations

import json
import logging
import secrets
from dataclasses import dataclass, field
from pathlib import Path

from gemini_bridge.auth.vault import TokenVault, atomic_write, ensure_private_dir
from gemini_bridge.config import Config
from gemini_bridge.exceptions import DecryptionError, TokenNotFoundError

logger = logging.getLogger(__name__)

ACCESS_KEY = "access_token"
REFRESH_KEY = "refresh_token"
INFO_FILENAME = "token_info.json"
GENERATED_PASSPHRASE_FILENAME = ".vault-passphrase"


@dataclass
class TokenRecord:
    """OAuth 2.0 token set. Secrets are plaintext in memory only."""

    access_token: str
    refresh_token: str | None = None
    expires_at: float = 0.0  # Unix timestamp
    scope: frozenset[str] = field(default_factory=frozenset)
    token_type: str = "Bearer"

    def expires_within(self, seconds: float, now: float) -> bool:
        return now >= self.expires_at - seconds


class TokenStore:
    """Stores one TokenRecord: secrets through the vault, metadata as JSON."""

    def __init__(self, vault: TokenVault, passphrase: str | bytes):
        self.vault = vault
        self._passphrase = passphrase

    @property
    def info_path(self) -> Path:
        return self.vault.root / INFO_FILENAME

    def save(self, record: TokenRecord) -> None:
        self.vault.store(ACCESS_KEY, record.access_token.encode(), self._passphrase)
        if record.refresh_token:
            self.vault.store(REFRESH_KEY, record.refresh_token.encode(), self._passphrase)
        else:
            self.vault.revoke(REFRESH_KEY)

        info = {
            "expires_at": record.expires_at,
            "scope": sorted(record.scope),
            "token_type": record.token_type,
        }
        ensure_private_dir(self.vault.root)
        atomic_write(self.info_path, json.dumps(info, indent=2).encode())
        logger.info("Saved OAuth tokens (expires_at=%d)", record.expires_at)

    def load(self) -> TokenRecord | None:
        """Load the stored record. Returns None if nothing is stored.

        Raises:
            DecryptionError: ciphertext exists but cannot be decrypted.
        """
        if not self.vault.exists(ACCESS_KEY):
            return None

        try:
            access = self.vault.load(ACCESS_KEY, self._passphrase).decode()
        except TokenNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise DecryptionError("Stored access token is not valid text") from e

        refresh: str | None = None
        try:
            refresh = self.vault.load(REFRESH_KEY, self._passphrase).decode()
        except TokenNotFoundError:
            pass
        except UnicodeDecodeError as e:
            raise DecryptionError("Stored refresh token is not valid text") from e

        info: dict = {}
        try:
            info = json.loads(self.info_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            logger.warning("Token metadata missing, treating token as expired")
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Token metadata unreadable (%s), treating token as expired", e)

        return TokenRecord(
            access_token=access,
            refresh_token=refresh,
            expires_at=float(info.get("expires_at", 0) or 0),
            scope=frozenset(info.get("scope") or ()),
            token_type=info.get("token_type", "Bearer"),
        )

    def clear(self) -> None:
        """Remove every token file. Safe to call when nothing is stored."""
        self.vault.revoke(ACCESS_KEY)
        self.vault.revoke(REFRESH_KEY)
        try:
            self.info_path.unlink()
        except FileNotFoundError:
            pass


def resolve_passphrase(config: Config) -> str:
    """Return the vault passphrase.

    ``OAUTH_ENCRYPTION_PASSWORD`` wins; otherwise a random per-install
    passphrase is generated once and kept (mode 0600) in the config dir.
    """
    if config.encryption_password is not None:
        value = config.encryption_password.get_secret_value()
        if value:
            return value

    path = config.config_dir / GENERATED_PASSPHRASE_FILENAME
    try:
        existing = path.read_text(encoding="utf-8").strip()
    except FileNotFoundError:
        existing = ""
    if existing:
        return existing

    generated = secrets.token_urlsafe(48)
    ensure_private_dir(config.config_dir)
    atomic_write(path, generated.encode())
    logger.info(
        "Generated vault passphrase at %s (set OAUTH_ENCRYPTION_PASSWORD to override)", path
    )
    return generated


def open_token_store(config: Config) -> TokenStore:
    return TokenStore(TokenVault(config.auth_dir), resolve_passphrase(config))
