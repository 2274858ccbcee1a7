"""
Inbound "provision account" handler for aiohttp applications.

    POST /create_stellar_account   body (optional): {"accountIndex": <int>}

201 -> {"success": true, "data": <ProvisioningOutcome>}
err -> StructuredError body with its own status; a partial outcome is
       included under "data" so the caller can persist the sealed secret.

Routing, auth, rate limiting and CORS belong to the hosting application.
"""
import logging
from typing import Any

import orjson
from aiohttp import web

from . import conf
from .errors import ProvisioningError, StructuredError
from .provisioning import AccountProvisioner

logger = logging.getLogger("navigator.wallet")

PROVISIONER_KEY = web.AppKey("navigator_wallet.provisioner", AccountProvisioner)


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def error_response(error: StructuredError, data: Any = None) -> web.Response:
    body = error.to_dict(debug=conf.is_development())
    if data is not None:
        body["data"] = data
    headers = {}
    if error.retry_after is not None:
        headers["Retry-After"] = str(error.retry_after)
    return web.json_response(
        body, status=error.status, dumps=_dumps, headers=headers,
    )


async def _read_index(request: web.Request) -> Any:
    if not request.can_read_body:
        return None
    try:
        payload = orjson.loads(await request.read())
    except orjson.JSONDecodeError:
        raise ProvisioningError(StructuredError(
            status=400,
            code="INVALID_JSON",
            message="Bad Request: Invalid JSON",
            retryable=False,
        )) from None
    if payload is None:
        return None
    if not isinstance(payload, dict):
        raise ProvisioningError(StructuredError(
            status=400,
            code="INVALID_BODY",
            message="Request body must be a JSON object",
            retryable=False,
        ))
    return payload.get("accountIndex")


async def create_account(request: web.Request) -> web.Response:
    """Provision a sponsored account and return its sealed identity."""
    provisioner = request.app[PROVISIONER_KEY]
    try:
        account_index = await _read_index(request)
        outcome = await provisioner.provision(account_index)
    except ProvisioningError as err:
        logger.error(
            "%s | Path: %s | Method: %s", err.code, request.path, request.method,
        )
        data = err.outcome.to_dict() if err.outcome is not None else None
        return error_response(err.error, data)
    return json_response({"success": True, "data": outcome.to_dict()}, status=201)


def setup(app: web.Application, provisioner: AccountProvisioner) -> None:
    """Register the provisioning route on ``app``."""
    app[PROVISIONER_KEY] = provisioner
    app.router.add_post("/create_stellar_account", create_account)
    app.on_cleanup.append(_close_ledger)


async def _close_ledger(app: web.Application) -> None:
    ledger = app[PROVISIONER_KEY].ledger
    close = getattr(ledger, "close", None)
    if close is not None:
        await close()
