"""
Vault Configuration: Master secret loading and validated settings.

Reads the master secret from the environment:
    MASTER_ENCRYPTION_KEY = <base64-encoded 32-byte key>

The process must refuse to start without it; ``VaultConfig.from_env()``
is meant to be called once at startup and the resulting object injected
wherever sealing is needed.

Security Note:
    Never log key material. The key is kept as ``SecretBytes`` so it is
    masked in ``repr()`` and model dumps.
"""
import os
import base64
import binascii
import secrets
import logging

from pydantic import BaseModel, Field, SecretBytes, field_validator

logger = logging.getLogger("navigator.vault")

MASTER_KEY_ENV = "MASTER_ENCRYPTION_KEY"
MASTER_KEY_LENGTH = 32
MIN_KDF_ITERATIONS = 100_000


def decode_master_key(value: str) -> bytes:
    """Decode a base64 master key and check its length.

    Args:
        value: Base64-encoded key as found in the environment.

    Returns:
        Raw 32-byte key.

    Raises:
        ValueError: If the value is not valid base64 or not 32 bytes long.
    """
    try:
        key_bytes = base64.b64decode(value.strip(), validate=True)
    except (binascii.Error, ValueError) as err:
        raise ValueError(
            f"{MASTER_KEY_ENV} is not valid base64"
        ) from err
    if len(key_bytes) != MASTER_KEY_LENGTH:
        raise ValueError(
            f"{MASTER_KEY_ENV} must decode to exactly {MASTER_KEY_LENGTH} bytes, "
            f"got {len(key_bytes)}"
        )
    return key_bytes


def load_master_key() -> bytes:
    """Load the master secret from the MASTER_ENCRYPTION_KEY env var.

    Returns:
        Raw 32-byte key.

    Raises:
        RuntimeError: If the variable is not set.
        ValueError: If the key is malformed.
    """
    raw = os.environ.get(MASTER_KEY_ENV)
    if not raw:
        raise RuntimeError(
            f"{MASTER_KEY_ENV} is not set in environment. "
            f"Set {MASTER_KEY_ENV}=<base64-encoded-32-byte-key>"
        )
    key = decode_master_key(raw)
    logger.debug("Loaded master encryption key from %s", MASTER_KEY_ENV)
    return key


def generate_master_key() -> str:
    """Generate a random 32-byte master key and return as base64 string.

    This is a utility for operators to generate new keys; store the result
    in a secrets manager, never in version control.

    Returns:
        Base64-encoded 32-byte key string.
    """
    return base64.b64encode(secrets.token_bytes(MASTER_KEY_LENGTH)).decode("ascii")


class VaultConfig(BaseModel):
    """Validated vault configuration."""

    master_key: SecretBytes
    kdf_iterations: int = Field(default=MIN_KDF_ITERATIONS, ge=MIN_KDF_ITERATIONS)

    model_config = {"frozen": True}

    @field_validator("master_key")
    @classmethod
    def validate_key_length(cls, v: SecretBytes) -> SecretBytes:
        """Ensure the master key is exactly 32 bytes."""
        size = len(v.get_secret_value())
        if size != MASTER_KEY_LENGTH:
            raise ValueError(
                f"master_key must be exactly {MASTER_KEY_LENGTH} bytes, got {size}"
            )
        return v

    @classmethod
    def from_env(cls) -> "VaultConfig":
        """Create VaultConfig by loading the master key from environment.

        Returns:
            Populated VaultConfig instance.
        """
        return cls(master_key=load_master_key())

    @classmethod
    def from_base64(cls, value: str) -> "VaultConfig":
        """Create VaultConfig from a base64 key string."""
        return cls(master_key=decode_master_key(value))
