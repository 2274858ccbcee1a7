"""Wallet Vault: Envelope encryption for custodial account secrets.

Security Note (Threat Model):
    A private key is decrypted in process memory only while it is used to
    sign a transaction. A memory dump of the application process during
    that window could expose it. This is an accepted limitation; mitigation
    requires HSM/secure enclave integration which is out of scope.
"""

from .envelope import EnvelopeVault
from .config import VaultConfig, load_master_key, generate_master_key
from .crypto import VaultError, EncryptionError, DecryptionError

__all__ = [
    "EnvelopeVault",
    "VaultConfig",
    "load_master_key",
    "generate_master_key",
    "VaultError",
    "EncryptionError",
    "DecryptionError",
]
