"""
Horizon ledger client: stellar-sdk ``ServerAsync`` over aiohttp.

Implements :class:`~navigator_wallet.ledger.client.LedgerClient`. SDK
exceptions never leave this module: they are folded into a raw ``detail``
string built from the Horizon problem title and result codes, which is
what the error taxonomy matches against.

The transaction hash is computed before submission so a timed-out submit
can still be reconciled against the ledger later.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from stellar_sdk import ServerAsync, TransactionEnvelope
from stellar_sdk.client.aiohttp_client import AiohttpClient
from stellar_sdk.exceptions import (
    BaseHorizonError,
    ConnectionError as SdkConnectionError,
    NotFoundError,
)

from .client import AccountResult, SubmitResult

logger = logging.getLogger("navigator.ledger")

DEFAULT_REQUEST_TIMEOUT = 30.0
DEFAULT_POST_TIMEOUT = 60.0


def result_codes(err: BaseHorizonError) -> tuple[str, ...]:
    """Flatten Horizon ``extras.result_codes`` into a tuple.

    Transaction code first, then operation codes, skipping ``op_success``.
    """
    extras = err.extras or {}
    codes = extras.get("result_codes") or {}
    flat: list[str] = []
    tx_code = codes.get("transaction")
    if tx_code:
        flat.append(tx_code)
    for op_code in codes.get("operations") or []:
        if op_code and op_code != "op_success":
            flat.append(op_code)
    return tuple(flat)


def describe_horizon_error(err: BaseHorizonError) -> str:
    """Raw failure text for a Horizon problem response.

    Only the title, status and result codes are used: Horizon's long
    ``detail`` prose mentions "network" and would confuse classification.
    """
    title = err.title or type(err).__name__
    text = f"{title} (status {err.status})"
    codes = result_codes(err)
    if codes:
        text = f"{text}: {', '.join(codes)}"
    return text


class HorizonClient:
    """Ledger gateway backed by a Horizon server.

    Args:
        horizon_url: Horizon base URL.
        request_timeout: Timeout for GET requests (seconds).
        post_timeout: Timeout for transaction submission (seconds).
    """

    def __init__(
        self,
        horizon_url: str,
        request_timeout: float = DEFAULT_REQUEST_TIMEOUT,
        post_timeout: float = DEFAULT_POST_TIMEOUT,
    ) -> None:
        self._horizon_url = horizon_url
        self._request_timeout = request_timeout
        self._post_timeout = post_timeout
        self._server: ServerAsync | None = None

    def __repr__(self) -> str:
        return f"<HorizonClient {self._horizon_url}>"

    @property
    def server(self) -> ServerAsync:
        """Lazily created ServerAsync sharing one aiohttp session."""
        if self._server is None:
            client = AiohttpClient(
                request_timeout=self._request_timeout,
                post_timeout=self._post_timeout,
            )
            self._server = ServerAsync(horizon_url=self._horizon_url, client=client)
        return self._server

    async def close(self) -> None:
        if self._server is not None:
            await self._server.close()
            self._server = None

    async def __aenter__(self) -> "HorizonClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # LedgerClient
    # ------------------------------------------------------------------

    async def load_account(self, public_key: str) -> AccountResult:
        try:
            account = await self.server.load_account(public_key)
        except NotFoundError:
            logger.debug("Account %s not found on ledger", public_key)
            return AccountResult(found=False)
        except BaseHorizonError as err:
            return AccountResult(found=False, detail=describe_horizon_error(err))
        except SdkConnectionError as err:
            return AccountResult(found=False, detail=f"connection error: {err}")
        except asyncio.TimeoutError:
            return AccountResult(found=False, detail="timeout loading account")
        return AccountResult(found=True, account=account)

    async def submit_transaction(self, envelope: TransactionEnvelope) -> SubmitResult:
        tx_hash = envelope.hash_hex()
        try:
            response = await self.server.submit_transaction(
                envelope, skip_memo_required_check=True,
            )
        except BaseHorizonError as err:
            codes = result_codes(err)
            logger.debug("Transaction %s rejected: %s", tx_hash, codes)
            return SubmitResult(
                accepted=False,
                tx_hash=tx_hash,
                result_codes=codes,
                detail=describe_horizon_error(err),
            )
        except SdkConnectionError as err:
            return SubmitResult(
                accepted=False, tx_hash=tx_hash, detail=f"connection error: {err}",
            )
        except asyncio.TimeoutError:
            return SubmitResult(
                accepted=False,
                tx_hash=tx_hash,
                detail="timeout waiting for transaction submission",
            )
        return SubmitResult(accepted=True, tx_hash=response.get("hash", tx_hash))

    async def account_exists(self, public_key: str) -> bool | None:
        result = await self.load_account(public_key)
        if result.detail is not None:
            return None
        return result.found
