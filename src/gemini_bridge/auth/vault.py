# Token Vault: encrypted-at-rest secret storage in an owner-only directory.
# Created: 2026-03-03
#
# Blob layout (all fields raw bytes):
#   magic "GBV1" | iterations (u32 BE) | salt (16) | iv (16) | ciphertext | tag (32)
#
# AES-256-CBC with PKCS7 padding, then HMAC-SHA256 over everything before the
# tag (encrypt-then-MAC). Both keys come from one PBKDF2-HMAC-SHA256
# derivation of the passphrase with the per-blob salt.

from __future__ import annotations

import logging
import os
import re
import secrets
import stat
import struct
import tempfile
from pathlib import Path

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, padding
from cryptography.hazmat.primitives import hmac as crypto_hmac
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from gemini_bridge.exceptions import DecryptionError, TokenNotFoundError

logger = logging.getLogger(__name__)

MAGIC = b"GBV1"
PBKDF2_ITERATIONS = 200_000
SALT_SIZE = 16
IV_SIZE = 16
TAG_SIZE = 32
_HEADER = struct.Struct(">4sI")
_MIN_BLOB = _HEADER.size + SALT_SIZE + IV_SIZE + 16 + TAG_SIZE

DIR_MODE = stat.S_IRWXU  # 0700
FILE_MODE = stat.S_IRUSR | stat.S_IWUSR  # 0600

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")


def _as_bytes(passphrase: str | bytes) -> bytes:
    if isinstance(passphrase, bytes):
        return passphrase
    return passphrase.encode("utf-8")


def _derive_keys(passphrase: str | bytes, salt: bytes, iterations: int) -> tuple[bytes, bytes]:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=64, salt=salt, iterations=iterations)
    material = kdf.derive(_as_bytes(passphrase))
    return material[:32], material[32:]


def encrypt(
    plaintext: bytes, passphrase: str | bytes, iterations: int = PBKDF2_ITERATIONS
) -> bytes:
    """Encrypt and authenticate *plaintext* under *passphrase*."""
    salt = secrets.token_bytes(SALT_SIZE)
    iv = secrets.token_bytes(IV_SIZE)
    enc_key, mac_key = _derive_keys(passphrase, salt, iterations)

    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(plaintext) + padder.finalize()
    encryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).encryptor()
    ciphertext = encryptor.update(padded) + encryptor.finalize()

    body = _HEADER.pack(MAGIC, iterations) + salt + iv + ciphertext
    mac = crypto_hmac.HMAC(mac_key, hashes.SHA256())
    mac.update(body)
    return body + mac.finalize()


def decrypt(blob: bytes, passphrase: str | bytes) -> bytes:
    """Verify and decrypt a blob produced by :func:`encrypt`.

    Raises:
        DecryptionError: wrong passphrase, tampered or truncated blob.
    """
    if len(blob) < _MIN_BLOB:
        raise DecryptionError("Ciphertext is truncated")

    magic, iterations = _HEADER.unpack_from(blob)
    if magic != MAGIC or iterations <= 0:
        raise DecryptionError("Not a vault blob")

    offset = _HEADER.size
    salt = blob[offset : offset + SALT_SIZE]
    iv = blob[offset + SALT_SIZE : offset + SALT_SIZE + IV_SIZE]
    body, tag = blob[:-TAG_SIZE], blob[-TAG_SIZE:]
    ciphertext = body[offset + SALT_SIZE + IV_SIZE :]
    if len(ciphertext) % IV_SIZE:
        raise DecryptionError("Ciphertext is not block aligned")

    enc_key, mac_key = _derive_keys(passphrase, salt, iterations)
    mac = crypto_hmac.HMAC(mac_key, hashes.SHA256())
    mac.update(body)
    try:
        mac.verify(tag)
    except InvalidSignature as e:
        raise DecryptionError("Wrong passphrase or corrupt ciphertext") from e

    decryptor = Cipher(algorithms.AES(enc_key), modes.CBC(iv)).decryptor()
    padded = decryptor.update(ciphertext) + decryptor.finalize()
    unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
    try:
        return unpadder.update(padded) + unpadder.finalize()
    except ValueError as e:
        raise DecryptionError("Invalid padding") from e


def ensure_private_dir(path: Path) -> None:
    """Create *path* if needed and force it to mode 0700."""
    path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)
    current = stat.S_IMODE(path.stat().st_mode)
    if current != DIR_MODE:
        logger.warning("Repairing permissions on %s (%o -> 700)", path, current)
        os.chmod(path, DIR_MODE)


def atomic_write(path: Path, data: bytes) -> None:
    """Write *data* to *path* via temp file + rename, mode 0600.

    Readers see either the old file or the complete new one, never a partial write.
    """
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        os.fchmod(fd, FILE_MODE)
        with os.fdopen(fd, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class TokenVault:
    """Encrypted key/value store at ``<root>/<key>.enc``.

    The root directory is kept at mode 0700 and every file at 0600; both are
    re-checked on each store.
    """

    SUFFIX = ".enc"

    def __init__(self, root: Path, iterations: int = PBKDF2_ITERATIONS):
        self.root = Path(root)
        self.iterations = iterations

    def path_for(self, key: str) -> Path:
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid vault key: {key!r}")
        return self.root / f"{key}{self.SUFFIX}"

    def store(self, key: str, plaintext: bytes, passphrase: str | bytes) -> None:
        """Encrypt *plaintext* and persist it under *key*.

        Raises:
            OSError: the file could not be written.
        """
        path = self.path_for(key)
        ensure_private_dir(self.root)
        blob = encrypt(plaintext, passphrase, self.iterations)
        atomic_write(path, blob)
        logger.debug("Stored %s (%d bytes ciphertext)", path.name, len(blob))

    def load(self, key: str, passphrase: str | bytes) -> bytes:
        path = self.path_for(key)
        try:
            blob = path.read_bytes()
        except FileNotFoundError as e:
            raise TokenNotFoundError(key) from e
        return decrypt(blob, passphrase)

    def exists(self, key: str) -> bool:
        return self.path_for(key).exists()

    def revoke(self, key: str) -> bool:
        """Delete the ciphertext for *key*. Returns True if something was removed."""
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        logger.info("Removed %s", path.name)
        return True
