"""
Ledger Configuration: Horizon endpoint, sponsor credentials, target asset.

Reads from environment variables:
    STELLAR_HORIZON_URL   = Horizon gateway URL
    SPONSOR_PUBLIC_KEY    = sponsor account (G...)
    SPONSOR_PRIVATE_KEY   = sponsor secret seed (S...)
    STELLAR_ASSET_CODE    = custom asset code to trust
    STELLAR_ASSET_ISSUER  = issuer account of that asset
    STELLAR_NETWORK       = "testnet" (default) or "public"
    STELLAR_BASE_FEE      = fee per operation in stroops (default 100)
    STELLAR_TX_TIMEOUT    = transaction validity window in seconds (default 180)
    STELLAR_TRUST_LIMIT   = trustline limit, positive, at most 7 decimals
                            (default "10000000")

Required values are optional at construction: a missing one is reported
by ``missing()`` so the workflow can fail with a configuration error
before touching the ledger.

Security Note:
    The sponsor secret is a ``SecretStr``; never log it.
"""
import os
import logging
from decimal import Decimal, InvalidOperation
from typing import Optional

from pydantic import BaseModel, Field, SecretStr, field_validator
from stellar_sdk import Network

logger = logging.getLogger("navigator.ledger")

# setting name -> environment variable
REQUIRED_SETTINGS: dict[str, str] = {
    "horizon_url": "STELLAR_HORIZON_URL",
    "sponsor_public_key": "SPONSOR_PUBLIC_KEY",
    "sponsor_secret_key": "SPONSOR_PRIVATE_KEY",
    "asset_code": "STELLAR_ASSET_CODE",
    "asset_issuer": "STELLAR_ASSET_ISSUER",
}

NETWORK_PASSPHRASES: dict[str, str] = {
    "testnet": Network.TESTNET_NETWORK_PASSPHRASE,
    "public": Network.PUBLIC_NETWORK_PASSPHRASE,
}

# int64 stroops, 7 decimal places
MAX_TRUST_LIMIT = Decimal("922337203685.4775807")


def parse_trust_limit(value: str) -> Decimal:
    """Parse a trustline limit as the ledger accepts it.

    Raises:
        ValueError: Not a finite positive amount with at most 7 decimals,
            or above the ledger maximum.
    """
    try:
        limit = Decimal(str(value).strip())
    except InvalidOperation:
        raise ValueError(f"Invalid trust limit: {value!r}") from None
    if not limit.is_finite() or limit <= 0 or limit > MAX_TRUST_LIMIT:
        raise ValueError(f"Trust limit out of range: {value!r}")
    if limit.as_tuple().exponent < -7:
        raise ValueError(f"Trust limit has more than 7 decimals: {value!r}")
    return limit


def _env(name: str) -> Optional[str]:
    value = os.environ.get(name)
    if value is None or not value.strip():
        return None
    return value.strip()


class LedgerSettings(BaseModel):
    """Validated ledger settings."""

    horizon_url: Optional[str] = None
    sponsor_public_key: Optional[str] = None
    sponsor_secret_key: Optional[SecretStr] = None
    asset_code: Optional[str] = None
    asset_issuer: Optional[str] = None
    network: str = Field(default="testnet")
    base_fee: int = Field(default=100, ge=100)
    tx_timeout: int = Field(default=180, ge=1)
    trust_limit: str = Field(default="10000000")

    model_config = {"frozen": True}

    @field_validator("network")
    @classmethod
    def validate_network(cls, v: str) -> str:
        """Validate the network name is known."""
        v = v.lower()
        if v not in NETWORK_PASSPHRASES:
            raise ValueError(f"Unsupported Stellar network: {v}")
        return v

    @field_validator("trust_limit")
    @classmethod
    def validate_trust_limit(cls, v: str) -> str:
        """Reject limits the ledger would refuse at build time."""
        parse_trust_limit(v)
        return v.strip()

    @property
    def network_passphrase(self) -> str:
        return NETWORK_PASSPHRASES[self.network]

    def missing(self) -> list[str]:
        """Names of required settings that are unset, in check order."""
        return [
            name for name in REQUIRED_SETTINGS
            if getattr(self, name) is None
        ]

    @classmethod
    def from_env(cls) -> "LedgerSettings":
        """Create LedgerSettings by loading values from environment.

        Returns:
            Populated LedgerSettings instance (possibly incomplete).
        """
        values = {
            name: _env(env_name) for name, env_name in REQUIRED_SETTINGS.items()
        }
        values["network"] = _env("STELLAR_NETWORK") or "testnet"
        for name, env_name in (
            ("base_fee", "STELLAR_BASE_FEE"),
            ("tx_timeout", "STELLAR_TX_TIMEOUT"),
            ("trust_limit", "STELLAR_TRUST_LIMIT"),
        ):
            raw = _env(env_name)
            if raw is not None:
                values[name] = raw
        settings = cls(**values)
        if settings.missing():
            logger.warning(
                "Ledger settings incomplete, missing: %s",
                ", ".join(REQUIRED_SETTINGS[n] for n in settings.missing()),
            )
        return settings
