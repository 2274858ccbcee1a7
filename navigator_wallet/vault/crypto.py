"""
Vault Crypto Core: Key derivation, envelope sealing/unsealing, hashing.

Sealed secret layout (base64 for transport):

    [salt 16B][nonce 12B][GCM tag 16B][ciphertext ...]

Every seal draws a fresh salt and nonce; the AES-256-GCM key is derived
per record with PBKDF2-HMAC-SHA256(master_key, salt). The derived key is
never stored and is recomputed on unseal.

Security Note:
    Never log plaintext, ciphertext or key material.
    PBKDF2 is deliberately slow; callers on an event loop must offload
    ``seal``/``unseal`` to a worker thread (see ``envelope.EnvelopeVault``).
"""
import os
import base64
import binascii
import hashlib
import hmac
import secrets
import logging

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .config import MIN_KDF_ITERATIONS

logger = logging.getLogger("navigator.vault")

SALT_SIZE = 16
NONCE_SIZE = 12  # 96-bit nonce
TAG_SIZE = 16  # 128-bit GCM tag
KEY_LENGTH = 32  # AES-256

HEADER_SIZE = SALT_SIZE + NONCE_SIZE + TAG_SIZE


class VaultError(Exception):
    """Base class for vault cryptographic failures."""


class EncryptionError(VaultError):
    """Sealing failed; nothing was produced."""


class DecryptionError(VaultError):
    """Unsealing failed: malformed blob, wrong key or tampered data."""


# ---------------------------------------------------------------------------
# Key derivation
# ---------------------------------------------------------------------------

def derive_key(
    master_key: bytes,
    salt: bytes,
    iterations: int = MIN_KDF_ITERATIONS,
) -> bytes:
    """Derive a 32-byte record key using PBKDF2-HMAC-SHA256.

    Args:
        master_key: Raw 32-byte master secret.
        salt: Per-record random salt.
        iterations: PBKDF2 iteration count.

    Returns:
        32-byte derived key.
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(master_key)


# ---------------------------------------------------------------------------
# Envelope encryption
# ---------------------------------------------------------------------------

def seal(
    plaintext: str,
    master_key: bytes,
    iterations: int = MIN_KDF_ITERATIONS,
) -> str:
    """Encrypt ``plaintext`` into a self-describing base64 blob.

    Args:
        plaintext: Text to seal; must not be empty.
        master_key: Raw 32-byte master secret.
        iterations: PBKDF2 iteration count.

    Returns:
        base64(salt || nonce || tag || ciphertext).

    Raises:
        EncryptionError: On empty input, missing key or cipher failure.
    """
    if not plaintext:
        raise EncryptionError("Text to encrypt cannot be empty")
    if not master_key:
        raise EncryptionError("Master encryption key is not available")
    try:
        salt = os.urandom(SALT_SIZE)
        nonce = os.urandom(NONCE_SIZE)
        key = derive_key(master_key, salt, iterations)
        sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    except (ValueError, TypeError) as err:
        logger.error("Encryption failed: %s", type(err).__name__)
        raise EncryptionError("Failed to encrypt data") from err
    # AESGCM appends the tag; the stored layout puts it before the ciphertext
    ciphertext, tag = sealed[:-TAG_SIZE], sealed[-TAG_SIZE:]
    blob = salt + nonce + tag + ciphertext
    return base64.b64encode(blob).decode("ascii")


def split_blob(blob: bytes) -> tuple[bytes, bytes, bytes, bytes]:
    """Split a raw sealed blob into (salt, nonce, tag, ciphertext).

    Raises:
        DecryptionError: If the blob is shorter than the fixed header.
    """
    if len(blob) <= HEADER_SIZE:
        raise DecryptionError(
            f"sealed blob too short: {len(blob)} bytes "
            f"(minimum {HEADER_SIZE + 1})"
        )
    salt = blob[:SALT_SIZE]
    nonce = blob[SALT_SIZE:SALT_SIZE + NONCE_SIZE]
    tag = blob[SALT_SIZE + NONCE_SIZE:HEADER_SIZE]
    ciphertext = blob[HEADER_SIZE:]
    return salt, nonce, tag, ciphertext


def unseal(
    sealed: str,
    master_key: bytes,
    iterations: int = MIN_KDF_ITERATIONS,
) -> str:
    """Decrypt a blob produced by :func:`seal`.

    Args:
        sealed: base64(salt || nonce || tag || ciphertext).
        master_key: Raw 32-byte master secret.
        iterations: PBKDF2 iteration count used when sealing.

    Returns:
        Original plaintext.

    Raises:
        DecryptionError: If the blob is malformed or fails authentication.
            No partial plaintext is ever returned.
    """
    if not sealed:
        raise DecryptionError("Text to decrypt cannot be empty")
    if not master_key:
        raise DecryptionError("Master encryption key is not available")
    try:
        blob = base64.b64decode(sealed, validate=True)
    except (binascii.Error, ValueError) as err:
        raise DecryptionError("Failed to decrypt secret: malformed blob") from err
    salt, nonce, tag, ciphertext = split_blob(blob)
    key = derive_key(master_key, salt, iterations)
    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        return plaintext.decode("utf-8")
    except InvalidTag as err:
        logger.warning("Sealed secret failed authentication")
        raise DecryptionError("Failed to decrypt secret: authentication failed") from err
    except UnicodeDecodeError as err:
        raise DecryptionError("Failed to decrypt secret: invalid payload") from err


# ---------------------------------------------------------------------------
# Hashing and tokens
# ---------------------------------------------------------------------------

def hash_text(text: str) -> str:
    """One-way SHA-256 digest of ``text`` as 64 hex characters."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def constant_time_compare(a: str, b: str) -> bool:
    """Compare two digests in time independent of where they differ."""
    return hmac.compare_digest(a.encode("utf-8"), b.encode("utf-8"))


def compare_hash(plain: str, hashed: str) -> bool:
    """Hash ``plain`` and compare it against ``hashed`` (timing-safe)."""
    return constant_time_compare(hash_text(plain), hashed)


def generate_token(nbytes: int = 32) -> str:
    """Return a URL-safe random token with ``nbytes`` of entropy.

    For opaque identifiers only, never for key material.
    """
    if nbytes <= 0:
        raise ValueError("Token length must be a positive number of bytes")
    return secrets.token_urlsafe(nbytes)
