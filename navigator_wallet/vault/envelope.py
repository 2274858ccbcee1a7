"""
EnvelopeVault: Envelope encryption bound to one injected master secret.

Provides the public API used by the provisioning workflow:
- ``seal(plaintext)``: encrypt a secret into a base64 sealed blob
- ``unseal(sealed)``: decrypt a sealed blob back into plaintext
- ``hash`` / ``compare_hash`` / ``generate_token``: non-reversible helpers

The key derivation is CPU bound, so ``seal``/``unseal`` run it in a worker
thread to keep the event loop responsive.

Security Note:
    Never log plaintext or ciphertext values. Decrypted values exist in
    process memory only for the duration of the caller's use.
"""
import asyncio
import logging

from .config import VaultConfig
from .crypto import (
    seal,
    unseal,
    hash_text,
    compare_hash,
    constant_time_compare,
    generate_token,
)

logger = logging.getLogger("navigator.vault")


class EnvelopeVault:
    """Seals and unseals secrets under a single master key.

    Built once at startup from a :class:`VaultConfig` and shared across
    requests; it holds no mutable state.
    """

    def __init__(self, config: VaultConfig):
        self._config = config

    def __repr__(self) -> str:
        return f"<EnvelopeVault kdf_iterations={self._config.kdf_iterations}>"

    @classmethod
    def from_env(cls) -> "EnvelopeVault":
        """Build the vault from MASTER_ENCRYPTION_KEY."""
        vault = cls(VaultConfig.from_env())
        logger.info("Encryption service initialized")
        return vault

    def _master_key(self) -> bytes:
        return self._config.master_key.get_secret_value()

    # ------------------------------------------------------------------
    # Sync API
    # ------------------------------------------------------------------

    def seal_sync(self, plaintext: str) -> str:
        """Blocking seal; safe to call from worker threads."""
        return seal(plaintext, self._master_key(), self._config.kdf_iterations)

    def unseal_sync(self, sealed: str) -> str:
        """Blocking unseal; safe to call from worker threads."""
        return unseal(sealed, self._master_key(), self._config.kdf_iterations)

    # ------------------------------------------------------------------
    # Async API
    # ------------------------------------------------------------------

    async def seal(self, plaintext: str) -> str:
        """Encrypt ``plaintext`` off the event loop.

        Raises:
            EncryptionError: If plaintext is empty or encryption fails.
        """
        return await asyncio.to_thread(self.seal_sync, plaintext)

    async def unseal(self, sealed: str) -> str:
        """Decrypt a sealed blob off the event loop.

        Raises:
            DecryptionError: If the blob is malformed or tampered with.
        """
        return await asyncio.to_thread(self.unseal_sync, sealed)

    # ------------------------------------------------------------------
    # Helpers independent of the master key
    # ------------------------------------------------------------------

    @staticmethod
    def hash(text: str) -> str:
        return hash_text(text)

    @staticmethod
    def compare_hash(plain: str, hashed: str) -> bool:
        return compare_hash(plain, hashed)

    @staticmethod
    def constant_time_compare(a: str, b: str) -> bool:
        return constant_time_compare(a, b)

    @staticmethod
    def generate_token(nbytes: int = 32) -> str:
        return generate_token(nbytes)
