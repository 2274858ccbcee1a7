"""Shared fixtures: deterministic master key, ledger settings, fake ledger."""
import base64

import pytest
from stellar_sdk import Account, Keypair

from navigator_wallet.ledger.client import AccountResult, SubmitResult
from navigator_wallet.ledger.config import LedgerSettings
from navigator_wallet.provisioning import AccountProvisioner
from navigator_wallet.vault.config import VaultConfig
from navigator_wallet.vault.envelope import EnvelopeVault

TEST_MASTER_KEY = bytes(range(32))
TEST_MASTER_KEY_B64 = base64.b64encode(TEST_MASTER_KEY).decode("ascii")

SPONSOR = Keypair.random()
ISSUER = Keypair.random()


class FakeLedgerClient:
    """In-memory LedgerClient: scripted submit results, recorded calls."""

    def __init__(
        self,
        *,
        submit_results: list[SubmitResult] | None = None,
        load_result: AccountResult | None = None,
        exists: bool | None = True,
    ) -> None:
        self._submit_results = list(submit_results or [])
        self._load_result = load_result
        self._exists = exists
        self.loaded: list[str] = []
        self.submitted: list = []
        self.sequence = 1000

    @property
    def calls(self) -> int:
        return len(self.loaded) + len(self.submitted)

    async def load_account(self, public_key: str) -> AccountResult:
        self.loaded.append(public_key)
        if self._load_result is not None:
            return self._load_result
        return AccountResult(found=True, account=Account(public_key, self.sequence))

    async def submit_transaction(self, envelope) -> SubmitResult:
        self.submitted.append(envelope)
        tx_hash = envelope.hash_hex()
        if self._submit_results:
            result = self._submit_results.pop(0)
            if result.tx_hash is None:
                return SubmitResult(
                    accepted=result.accepted,
                    tx_hash=tx_hash,
                    result_codes=result.result_codes,
                    detail=result.detail,
                )
            return result
        self.sequence += 1
        return SubmitResult(accepted=True, tx_hash=tx_hash)

    async def account_exists(self, public_key: str) -> bool | None:
        return self._exists


def make_settings(**overrides) -> LedgerSettings:
    values = {
        "horizon_url": "https://horizon-testnet.stellar.org",
        "sponsor_public_key": SPONSOR.public_key,
        "sponsor_secret_key": SPONSOR.secret,
        "asset_code": "SYTE",
        "asset_issuer": ISSUER.public_key,
    }
    values.update(overrides)
    return LedgerSettings(**values)


@pytest.fixture
def vault_config():
    return VaultConfig(master_key=TEST_MASTER_KEY)


@pytest.fixture
def vault(vault_config):
    return EnvelopeVault(vault_config)


@pytest.fixture
def settings():
    return make_settings()


@pytest.fixture
def ledger():
    return FakeLedgerClient()


@pytest.fixture
def provisioner(vault, ledger, settings):
    return AccountProvisioner(vault=vault, ledger=ledger, settings=settings)
