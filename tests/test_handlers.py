"""
Tests for the aiohttp provisioning handler.

Tests cover:
- 201 with the outcome under "data"
- Optional accountIndex body, invalid JSON, non-object body
- Error bodies carry status, errorCode, retry hints and Retry-After
- Partial outcomes are returned alongside the error
- Production mode hides internal details
"""
import pytest
from aiohttp import web

from navigator_wallet import conf, handlers
from navigator_wallet.ledger.client import SubmitResult
from navigator_wallet.provisioning import AccountProvisioner

from .conftest import FakeLedgerClient, make_settings

PATH = "/create_stellar_account"


@pytest.fixture
def production(monkeypatch):
    monkeypatch.setattr(conf, "APP_ENV", "production")
    monkeypatch.setattr(conf, "DEBUG", False)


@pytest.fixture
def make_client(aiohttp_client, vault):
    async def factory(ledger=None, **settings):
        provisioner = AccountProvisioner(
            vault=vault,
            ledger=ledger if ledger is not None else FakeLedgerClient(),
            settings=make_settings(**settings),
        )
        app = web.Application()
        handlers.setup(app, provisioner)
        return await aiohttp_client(app)
    return factory


async def test_created(make_client):
    client = await make_client()
    resp = await client.post(PATH)
    assert resp.status == 201
    body = await resp.json()
    assert body["success"] is True
    data = body["data"]
    assert data["publicKey"].startswith("G")
    assert data["encryptedSecret"]
    assert data["transactionHash"]
    assert data["trustlineAdded"] is True


async def test_created_with_index(make_client):
    client = await make_client()
    resp = await client.post(PATH, json={"accountIndex": 1})
    assert resp.status == 201
    body = await resp.json()
    assert "encryptedMnemonic" in body["data"]


async def test_invalid_index(make_client):
    ledger = FakeLedgerClient()
    client = await make_client(ledger)
    resp = await client.post(PATH, json={"accountIndex": -1})
    assert resp.status == 400
    body = await resp.json()
    assert body["success"] is False
    assert body["errorCode"] == "INVALID_ACCOUNT_INDEX"
    assert body["retryable"] is False
    assert "Retry-After" not in resp.headers
    assert ledger.calls == 0


async def test_invalid_json(make_client):
    client = await make_client()
    resp = await client.post(
        PATH, data=b"{not json", headers={"Content-Type": "application/json"},
    )
    assert resp.status == 400
    assert (await resp.json())["errorCode"] == "INVALID_JSON"


async def test_body_must_be_object(make_client):
    client = await make_client()
    resp = await client.post(PATH, json=[1, 2])
    assert resp.status == 400
    assert (await resp.json())["errorCode"] == "INVALID_BODY"


async def test_retryable_error_sets_retry_after(make_client):
    ledger = FakeLedgerClient(submit_results=[
        SubmitResult(accepted=False, detail="Transaction Failed (status 400): tx_bad_seq"),
    ])
    client = await make_client(ledger)
    resp = await client.post(PATH)
    assert resp.status == 503
    assert resp.headers["Retry-After"] == "5"
    body = await resp.json()
    assert body["errorCode"] == "STELLAR_SEQUENCE_ERROR"
    assert body["retryable"] is True
    assert body["retryAfter"] == 5
    assert "data" not in body


async def test_config_error(make_client):
    ledger = FakeLedgerClient()
    client = await make_client(ledger, sponsor_secret_key=None)
    resp = await client.post(PATH)
    assert resp.status == 500
    body = await resp.json()
    assert body["errorCode"] == "CONFIG_MISSING_SPONSOR_SECRET"
    assert body["retryable"] is False
    assert ledger.calls == 0


async def test_partial_outcome_included(make_client, vault):
    ledger = FakeLedgerClient(submit_results=[
        SubmitResult(accepted=True),
        SubmitResult(accepted=False, detail="tx_failed, op_no_trust"),
    ])
    client = await make_client(ledger)
    resp = await client.post(PATH)
    assert resp.status == 400
    body = await resp.json()
    assert body["errorCode"] == "TRUSTLINE_SETUP_FAILED"
    data = body["data"]
    assert data["trustlineAdded"] is False
    assert data["transactionHash"] == ledger.submitted[0].hash_hex()
    secret = await vault.unseal(data["encryptedSecret"])
    assert secret.startswith("S")


async def test_production_hides_internal_details(make_client, production):
    ledger = FakeLedgerClient(submit_results=[
        SubmitResult(accepted=True),
        SubmitResult(accepted=False, detail="tx_failed, op_no_trust"),
    ])
    client = await make_client(ledger)
    resp = await client.post(PATH)
    body = await resp.json()
    assert set(body["details"]) <= {
        "publicKey", "transactionHash", "reason", "indeterminate", "field",
    }
    assert body["details"]["reason"] == "STELLAR_TRUSTLINE_FAILED"
