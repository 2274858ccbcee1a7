"""Navigator Wallet.

Sponsored custodial account provisioning on Stellar with envelope-encrypted
private keys.
"""
from .version import __version__
from .errors import ProvisioningError, StructuredError, classify_ledger_failure
from .provisioning import (
    AccountProvisioner,
    ProvisioningOutcome,
    ProvisioningResult,
    ProvisioningState,
)
from .vault import EnvelopeVault, VaultConfig

__all__ = [
    "__version__",
    "AccountProvisioner",
    "ProvisioningOutcome",
    "ProvisioningResult",
    "ProvisioningState",
    "ProvisioningError",
    "StructuredError",
    "classify_ledger_failure",
    "EnvelopeVault",
    "VaultConfig",
]
