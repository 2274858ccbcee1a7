"""
Account Provisioning: sponsored Stellar account creation with sealed secrets.

Linear workflow, one request at a time, no back-edges:

    START -> KEY_GENERATED -> ACCOUNT_SUBMITTED -> TRUSTLINE_SUBMITTED
          -> SECRET_SEALED -> DONE

    ACCOUNT_SUBMITTED -> PARTIAL   trustline failed, account exists on-chain
    START / ACCOUNT_SUBMITTED -> FAILED

Each step returns a ``StepResult``; a failed step carries exactly one
``StructuredError`` classified where the failure was caught. Nothing is
retried here: retry policy belongs to the caller, informed by the error.

The sponsor pays every reserve: the new account starts with a zero
balance and both transactions are signed by sponsor and new account.

Security Note:
    The new account's secret seed and recovery phrase never leave this
    module unsealed, and are never logged. The plaintext references are
    dropped right after sealing.
"""

from __future__ import annotations

import asyncio
import logging
import struct
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from stellar_sdk import Asset, Keypair, TransactionBuilder

from .errors import (
    ProvisioningError,
    StructuredError,
    classify_ledger_failure,
    config_error,
    decryption_error,
    encryption_error,
    invalid_index_error,
    key_generation_error,
    partial_trustline_error,
    transaction_build_error,
)
from .ledger.client import LedgerClient
from .ledger.config import REQUIRED_SETTINGS, LedgerSettings, parse_trust_limit
from .ledger.horizon import HorizonClient
from .vault.crypto import DecryptionError, EncryptionError
from .vault.envelope import EnvelopeVault

logger = logging.getLogger("navigator.wallet")

T = TypeVar("T")

# SEP-0005 derives m/44'/148'/index', hardened indexes stop at 2**31 - 1
MAX_ACCOUNT_INDEX = 2**31 - 1


class ProvisioningState(str, Enum):
    START = "START"
    KEY_GENERATED = "KEY_GENERATED"
    ACCOUNT_SUBMITTED = "ACCOUNT_SUBMITTED"
    TRUSTLINE_SUBMITTED = "TRUSTLINE_SUBMITTED"
    SECRET_SEALED = "SECRET_SEALED"
    DONE = "DONE"
    PARTIAL = "PARTIAL"
    FAILED = "FAILED"


# ---------------------------------------------------------------------------
# Result types
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class StepResult(Generic[T]):
    """Tagged outcome of one workflow step: a value or a StructuredError."""

    value: Optional[T] = None
    error: Optional[StructuredError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> "StepResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: StructuredError) -> "StepResult[T]":
        return cls(error=error)


@dataclass(frozen=True)
class ProvisioningOutcome:
    """Record returned to the caller for a provisioned account."""

    public_key: str
    encrypted_secret: str
    transaction_hash: str
    trustline_added: bool
    trustline_hash: Optional[str] = None
    encrypted_mnemonic: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "publicKey": self.public_key,
            "encryptedSecret": self.encrypted_secret,
            "transactionHash": self.transaction_hash,
            "trustlineAdded": self.trustline_added,
        }
        if self.trustline_hash is not None:
            data["trustlineHash"] = self.trustline_hash
        if self.encrypted_mnemonic is not None:
            data["encryptedMnemonic"] = self.encrypted_mnemonic
        return data


@dataclass(frozen=True)
class ProvisioningResult:
    """Terminal state of a workflow run.

    ``DONE`` carries an outcome; ``FAILED`` carries an error; ``PARTIAL``
    carries both (the account exists and its secret is sealed, but the
    trustline is missing).
    """

    state: ProvisioningState
    outcome: Optional[ProvisioningOutcome] = None
    error: Optional[StructuredError] = None

    @property
    def ok(self) -> bool:
        return self.state is ProvisioningState.DONE


@dataclass
class _KeyMaterial:
    """Request-local key material; cleared as soon as it is sealed."""

    keypair: Optional[Keypair]
    mnemonic: Optional[str] = None

    @property
    def public_key(self) -> str:
        return self.keypair.public_key

    def clear(self) -> None:
        self.keypair = None
        self.mnemonic = None


@dataclass(frozen=True)
class _Sponsor:
    keypair: Keypair
    asset: Asset


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------

def validate_account_index(value: Any) -> StepResult[Optional[int]]:
    """Accept None or an integer in ``0..MAX_ACCOUNT_INDEX``.

    ASCII digit strings are allowed. Booleans and fractional numbers are
    rejected.
    """
    if value is None:
        return StepResult.success(None)
    if isinstance(value, bool):
        return StepResult.failure(invalid_index_error(value))
    if isinstance(value, int):
        index = value
    elif isinstance(value, float) and value.is_integer():
        index = int(value)
    elif isinstance(value, str) and _is_ascii_digits(value.strip()):
        index = int(value.strip())
    else:
        return StepResult.failure(invalid_index_error(value))
    if not 0 <= index <= MAX_ACCOUNT_INDEX:
        return StepResult.failure(invalid_index_error(value))
    return StepResult.success(index)


def _is_ascii_digits(text: str) -> bool:
    # str.isdigit() also accepts superscripts and other scripts' digits
    return text.isascii() and text.isdigit()


# ---------------------------------------------------------------------------
# Workflow
# ---------------------------------------------------------------------------

class AccountProvisioner:
    """Provisions sponsored custodial accounts.

    Stateless between requests; a single instance is shared by the
    application.

    Args:
        vault: Envelope encryption holding the master secret.
        ledger: Ledger gateway client. May be None only when the settings
            are incomplete, in which case every run fails the precondition
            check before any ledger call.
        settings: Ledger settings (gateway, sponsor, asset).
    """

    def __init__(
        self,
        vault: EnvelopeVault,
        ledger: Optional[LedgerClient],
        settings: LedgerSettings,
    ):
        self._vault = vault
        self._ledger = ledger
        self._settings = settings

    @classmethod
    def from_env(cls) -> "AccountProvisioner":
        """Wire vault, Horizon client and settings from the environment.

        Raises:
            RuntimeError: If the master encryption key is missing.
        """
        settings = LedgerSettings.from_env()
        vault = EnvelopeVault.from_env()
        ledger = HorizonClient(settings.horizon_url) if settings.horizon_url else None
        return cls(vault=vault, ledger=ledger, settings=settings)

    @property
    def ledger(self) -> Optional[LedgerClient]:
        return self._ledger

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def run(self, account_index: Any = None) -> ProvisioningResult:
        """Run the full workflow and return its terminal state.

        Never raises for expected failures; see :meth:`provision` for the
        raising variant.
        """
        failed = ProvisioningState.FAILED

        index = validate_account_index(account_index)
        if not index.ok:
            logger.info("Rejected account index %r", account_index)
            return ProvisioningResult(state=failed, error=index.error)

        sponsor = self._check_preconditions()
        if not sponsor.ok:
            return ProvisioningResult(state=failed, error=sponsor.error)

        keys = self._generate_keys(index.value)
        if not keys.ok:
            return ProvisioningResult(state=failed, error=keys.error)
        material = keys.value
        public_key = material.public_key
        # KEY_GENERATED

        created = await self._create_account(material, sponsor.value)
        if not created.ok:
            material.clear()
            return ProvisioningResult(state=failed, error=created.error)
        transaction_hash = created.value
        # ACCOUNT_SUBMITTED

        trustline = await self._establish_trustline(
            public_key, material.keypair, sponsor.value,
        )
        # TRUSTLINE_SUBMITTED, or PARTIAL on failure

        sealed = await self._seal_secret(material)
        if not sealed.ok:
            error = sealed.error.with_details(
                publicKey=public_key, transactionHash=transaction_hash,
            )
            logger.error(
                "Account %s created (tx %s) but its secret could not be sealed",
                public_key, transaction_hash,
            )
            return ProvisioningResult(state=failed, error=error)
        encrypted_secret, encrypted_mnemonic = sealed.value
        # SECRET_SEALED

        outcome = ProvisioningOutcome(
            public_key=public_key,
            encrypted_secret=encrypted_secret,
            transaction_hash=transaction_hash,
            trustline_added=trustline.ok,
            trustline_hash=trustline.value,
            encrypted_mnemonic=encrypted_mnemonic,
        )
        if not trustline.ok:
            error = partial_trustline_error(
                trustline.error, public_key, transaction_hash,
            )
            logger.warning(
                "Account %s created (tx %s) without trustline: %s",
                public_key, transaction_hash, trustline.error.code,
            )
            return ProvisioningResult(
                state=ProvisioningState.PARTIAL, outcome=outcome, error=error,
            )
        logger.info("Provisioned account %s (tx %s)", public_key, transaction_hash)
        return ProvisioningResult(state=ProvisioningState.DONE, outcome=outcome)

    async def provision(self, account_index: Any = None) -> ProvisioningOutcome:
        """Provision an account or raise.

        Raises:
            ProvisioningError: With the classified error; for a PARTIAL run
                ``outcome`` holds the created account and its sealed secret.
        """
        result = await self.run(account_index)
        if result.ok:
            return result.outcome
        raise ProvisioningError(result.error, outcome=result.outcome)

    async def add_trustline(self, public_key: str, encrypted_secret: str) -> str:
        """Add the configured trustline to an existing account.

        Safe retry path for a PARTIAL outcome: the sealed secret is unsealed
        only for signing, then released.

        Returns:
            Trustline transaction hash.

        Raises:
            ProvisioningError: On configuration, decryption or ledger errors.
        """
        if not public_key or not encrypted_secret:
            raise ProvisioningError(StructuredError(
                status=400,
                code="TRUSTLINE_MISSING_CREDENTIALS",
                message="Public key and secret key are required",
                retryable=False,
            ))
        sponsor = self._check_preconditions()
        if not sponsor.ok:
            raise ProvisioningError(sponsor.error)

        try:
            secret = await self._vault.unseal(encrypted_secret)
        except DecryptionError:
            logger.error("Sealed secret for %s could not be decrypted", public_key)
            raise ProvisioningError(
                decryption_error().with_details(publicKey=public_key)
            ) from None
        try:
            keypair = Keypair.from_secret(secret)
        except ValueError:
            raise ProvisioningError(
                decryption_error().with_details(publicKey=public_key)
            ) from None
        finally:
            del secret
        if keypair.public_key != public_key:
            raise ProvisioningError(StructuredError(
                status=400,
                code="SECRET_KEY_MISMATCH",
                message="Sealed secret does not belong to this account",
                retryable=False,
                details={"publicKey": public_key},
            ))

        trustline = await self._establish_trustline(public_key, keypair, sponsor.value)
        del keypair
        if not trustline.ok:
            raise ProvisioningError(trustline.error.with_details(publicKey=public_key))
        return trustline.value

    # ------------------------------------------------------------------
    # Steps
    # ------------------------------------------------------------------

    def _check_preconditions(self) -> StepResult[_Sponsor]:
        """All required settings present and usable; no ledger calls."""
        for name in self._settings.missing():
            logger.error("Missing %s", REQUIRED_SETTINGS[name])
            return StepResult.failure(config_error(name, REQUIRED_SETTINGS[name]))
        if self._ledger is None:
            return StepResult.failure(
                config_error("horizon_url", REQUIRED_SETTINGS["horizon_url"])
            )
        settings = self._settings
        try:
            sponsor_keypair = Keypair.from_secret(
                settings.sponsor_secret_key.get_secret_value()
            )
        except ValueError:
            logger.error("SPONSOR_PRIVATE_KEY is not a valid secret seed")
            return StepResult.failure(StructuredError(
                status=500,
                code="CONFIG_INVALID_SPONSOR_SECRET",
                message="SPONSOR_PRIVATE_KEY is invalid",
                retryable=False,
            ))
        if sponsor_keypair.public_key != settings.sponsor_public_key:
            logger.error("SPONSOR_PRIVATE_KEY does not match SPONSOR_PUBLIC_KEY")
            return StepResult.failure(StructuredError(
                status=500,
                code="CONFIG_SPONSOR_KEY_MISMATCH",
                message="Sponsor keys do not match",
                retryable=False,
            ))
        try:
            asset = Asset(settings.asset_code, settings.asset_issuer)
        except ValueError:
            logger.error(
                "Invalid asset %s:%s", settings.asset_code, settings.asset_issuer,
            )
            return StepResult.failure(StructuredError(
                status=500,
                code="CONFIG_INVALID_ASSET",
                message="STELLAR_ASSET_CODE or STELLAR_ASSET_ISSUER is invalid",
                retryable=False,
            ))
        try:
            parse_trust_limit(settings.trust_limit)
        except ValueError:
            logger.error("Invalid trust limit %r", settings.trust_limit)
            return StepResult.failure(StructuredError(
                status=500,
                code="CONFIG_INVALID_TRUST_LIMIT",
                message="STELLAR_TRUST_LIMIT is invalid",
                retryable=False,
                details={"field": "STELLAR_TRUST_LIMIT"},
            ))
        return StepResult.success(_Sponsor(keypair=sponsor_keypair, asset=asset))

    def _generate_keys(self, account_index: Optional[int]) -> StepResult[_KeyMaterial]:
        """Random keypair, or SEP-0005 derivation from a fresh mnemonic."""
        try:
            if account_index is None:
                material = _KeyMaterial(keypair=Keypair.random())
            else:
                mnemonic = Keypair.generate_mnemonic_phrase()
                keypair = Keypair.from_mnemonic_phrase(mnemonic, index=account_index)
                material = _KeyMaterial(keypair=keypair, mnemonic=mnemonic)
        except (ValueError, OSError, struct.error) as err:
            logger.error("Key generation failed: %s", type(err).__name__)
            return StepResult.failure(key_generation_error())
        logger.debug(
            "Generated keypair %s (index=%s)", material.public_key, account_index,
        )
        return StepResult.success(material)

    def _build(self, source_account: Any) -> TransactionBuilder:
        return TransactionBuilder(
            source_account=source_account,
            network_passphrase=self._settings.network_passphrase,
            base_fee=self._settings.base_fee,
        )

    async def _submit(self, envelope: Any):
        # a cancelled caller must not abort a submission already in flight
        return await asyncio.shield(self._ledger.submit_transaction(envelope))

    async def _load_sponsor(self, step: str) -> StepResult[Any]:
        sponsor_key = self._settings.sponsor_public_key
        loaded = await self._ledger.load_account(sponsor_key)
        if loaded.ok:
            return StepResult.success(loaded.account)
        detail = loaded.detail or f"sponsor account {sponsor_key} not found"
        logger.error("Failed to load sponsor account: %s", detail)
        return StepResult.failure(classify_ledger_failure(detail, step=step))

    async def _create_account(
        self, material: _KeyMaterial, sponsor: _Sponsor,
    ) -> StepResult[str]:
        """Sponsored create-account transaction (zero starting balance)."""
        public_key = material.public_key
        source = await self._load_sponsor("account")
        if not source.ok:
            return StepResult.failure(source.error)

        try:
            envelope = (
                self._build(source.value)
                .append_begin_sponsoring_future_reserves_op(sponsored_id=public_key)
                .append_create_account_op(destination=public_key, starting_balance="0")
                .append_end_sponsoring_future_reserves_op(source=public_key)
                .set_timeout(self._settings.tx_timeout)
                .build()
            )
            envelope.sign(sponsor.keypair)
            envelope.sign(material.keypair)
        except (ValueError, ArithmeticError) as err:
            logger.error(
                "Could not build account creation for %s: %s",
                public_key, type(err).__name__,
            )
            return StepResult.failure(transaction_build_error("account"))
        logger.debug("Submitting sponsored account creation for %s", public_key)

        result = await self._submit(envelope)
        if result.accepted:
            logger.info("Account created: %s, tx: %s", public_key, result.tx_hash)
            return StepResult.success(result.tx_hash)

        logger.error(
            "Account creation for %s failed: %s", public_key, result.detail,
        )
        error = classify_ledger_failure(result.detail, step="account")
        if error.code == "STELLAR_TIMEOUT":
            # outcome unknown: check account_exists() before retrying
            error = error.with_details(
                indeterminate=True,
                publicKey=public_key,
                transactionHash=result.tx_hash,
            )
        return StepResult.failure(error)

    async def _establish_trustline(
        self, public_key: str, keypair: Keypair, sponsor: _Sponsor,
    ) -> StepResult[str]:
        """Sponsored change-trust transaction for the configured asset."""
        source = await self._load_sponsor("trustline")
        if not source.ok:
            return StepResult.failure(source.error)

        try:
            envelope = (
                self._build(source.value)
                .append_begin_sponsoring_future_reserves_op(sponsored_id=public_key)
                .append_change_trust_op(
                    asset=sponsor.asset,
                    limit=self._settings.trust_limit,
                    source=public_key,
                )
                .append_end_sponsoring_future_reserves_op(source=public_key)
                .set_timeout(self._settings.tx_timeout)
                .build()
            )
            envelope.sign(sponsor.keypair)
            envelope.sign(keypair)
        except (ValueError, ArithmeticError) as err:
            logger.error(
                "Could not build trustline for %s: %s",
                public_key, type(err).__name__,
            )
            return StepResult.failure(transaction_build_error("trustline"))
        logger.debug("Submitting trustline for %s", public_key)

        result = await self._submit(envelope)
        if result.accepted:
            logger.info("Trustline added for account: %s", public_key)
            return StepResult.success(result.tx_hash)
        logger.error("Trustline for %s failed: %s", public_key, result.detail)
        error = classify_ledger_failure(result.detail, step="trustline")
        if error.code == "STELLAR_TIMEOUT":
            error = error.with_details(
                indeterminate=True, transactionHash=result.tx_hash,
            )
        return StepResult.failure(error)

    async def _seal_secret(
        self, material: _KeyMaterial,
    ) -> StepResult[tuple[str, Optional[str]]]:
        """Seal the secret seed (and mnemonic, if any), then drop them."""
        try:
            encrypted_secret = await self._vault.seal(material.keypair.secret)
            encrypted_mnemonic = None
            if material.mnemonic is not None:
                encrypted_mnemonic = await self._vault.seal(material.mnemonic)
        except EncryptionError:
            logger.error("Failed to seal secret for %s", material.public_key)
            return StepResult.failure(encryption_error())
        finally:
            material.clear()
        return StepResult.success((encrypted_secret, encrypted_mnemonic))
