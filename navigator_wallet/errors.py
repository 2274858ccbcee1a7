"""
Error taxonomy: turns raw ledger/network failures into StructuredError.

Every failure leaving the provisioning workflow is exactly one
``StructuredError``: an HTTP-like status, a stable machine code, a message,
and retry hints. Classification happens once, at the step that caught the
failure; outer layers pass the result through untouched.

Matching is an ordered, first-match-wins scan of case-insensitive
substrings over the raw failure text. Anything unmatched falls through to
a generic retryable error rather than being dropped.

Callers must take retryability from ``StructuredError.retryable``, never
from the status code alone.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any


@dataclass(frozen=True)
class StructuredError:
    """A classified, retry-annotated failure.

    Attributes:
        status: HTTP-equivalent status code.
        code: Stable machine-readable error code.
        message: Human-readable summary.
        retryable: Whether the caller may retry automatically.
        retry_after: Suggested delay in seconds before retrying.
        details: Extra context (public key, tx hash, underlying reason).
    """

    status: int
    code: str
    message: str
    retryable: bool
    retry_after: int | None = None
    details: dict[str, Any] = field(default_factory=dict)

    def with_details(self, **details: Any) -> StructuredError:
        """Return a copy with ``details`` merged in."""
        merged = {**self.details, **details}
        return replace(self, details=merged)

    def to_dict(self, debug: bool = False) -> dict[str, Any]:
        """JSON-ready body; internal details only when ``debug`` is set."""
        body: dict[str, Any] = {
            "status": self.status,
            "success": False,
            "message": self.message,
            "errorCode": self.code,
            "retryable": self.retryable,
        }
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        if debug:
            body["details"] = dict(self.details)
        else:
            # reconciliation identifiers are safe to expose
            public = {
                k: v for k, v in self.details.items()
                if k in _PUBLIC_DETAIL_KEYS
            }
            if public:
                body["details"] = public
        return body


_PUBLIC_DETAIL_KEYS = frozenset({
    "publicKey", "transactionHash", "reason", "indeterminate", "field",
})


class ProvisioningError(Exception):
    """Raised at the workflow boundary; carries one StructuredError.

    ``outcome`` is set for partial failures, where the account exists on
    the ledger and its secret was still sealed.
    """

    def __init__(self, error: StructuredError, outcome: Any = None):
        super().__init__(error.message)
        self.error = error
        self.outcome = outcome

    @property
    def status(self) -> int:
        return self.error.status

    @property
    def code(self) -> str:
        return self.error.code

    @property
    def retryable(self) -> bool:
        return self.error.retryable


# ---------------------------------------------------------------------------
# Ledger failure matchers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class _Matcher:
    needles: tuple[str, ...]
    status: int
    code: str
    message: str
    retryable: bool
    retry_after: int | None = None

    def matches(self, text: str) -> bool:
        return any(needle in text for needle in self.needles)

    def build(self) -> StructuredError:
        return StructuredError(
            status=self.status,
            code=self.code,
            message=self.message,
            retryable=self.retryable,
            retry_after=self.retry_after,
        )


# Order matters: first match wins.
LEDGER_MATCHERS: tuple[_Matcher, ...] = (
    _Matcher(
        needles=(
            "op_underfunded",
            "op_low_reserve",
            "tx_insufficient_balance",
            "insufficient funds",
        ),
        status=400,
        code="STELLAR_INSUFFICIENT_FUNDS",
        message="Sponsor account has insufficient funds",
        retryable=False,
    ),
    _Matcher(
        needles=("tx_bad_seq",),
        status=503,
        code="STELLAR_SEQUENCE_ERROR",
        message="Service temporarily unavailable, please try again",
        retryable=True,
        retry_after=5,
    ),
    _Matcher(
        needles=("op_already_exists", "already exists"),
        status=409,
        code="STELLAR_ACCOUNT_EXISTS",
        message="Account already exists",
        retryable=False,
    ),
    _Matcher(
        needles=("op_no_trust",),
        status=400,
        code="STELLAR_TRUSTLINE_FAILED",
        message="Trustline operation failed",
        retryable=False,
    ),
    _Matcher(
        needles=("timeout", "timed out", "tx_too_late"),
        status=504,
        code="STELLAR_TIMEOUT",
        message="Request timeout - Stellar network did not respond in time",
        retryable=True,
        retry_after=10,
    ),
    _Matcher(
        needles=("network", "connection"),
        status=503,
        code="STELLAR_NETWORK_ERROR",
        message="Network error - unable to connect to Stellar network",
        retryable=True,
        retry_after=15,
    ),
)

# Unmatched failures, keyed by the step that produced them.
_FALLBACKS: dict[str, tuple[str, str]] = {
    "account": (
        "STELLAR_ACCOUNT_CREATION_FAILED",
        "Failed to generate and create account",
    ),
    "trustline": (
        "TRUSTLINE_ADDITION_FAILED",
        "Failed to add trustline",
    ),
}

UNCLASSIFIED_RETRY_AFTER = 5


def classify_ledger_failure(detail: str | None, step: str = "account") -> StructuredError:
    """Classify a raw ledger failure message.

    Args:
        detail: Raw failure text reported by the ledger adapter.
        step: Workflow step that failed ("account" or "trustline"); only
            used to name the unclassified fallback.

    Returns:
        StructuredError; never raises.
    """
    text = (detail or "").lower()
    for matcher in LEDGER_MATCHERS:
        if matcher.matches(text):
            return matcher.build()
    code, message = _FALLBACKS.get(step, _FALLBACKS["account"])
    return StructuredError(
        status=500,
        code=code,
        message=message,
        retryable=True,
        retry_after=UNCLASSIFIED_RETRY_AFTER,
    )


# ---------------------------------------------------------------------------
# Non-ledger errors
# ---------------------------------------------------------------------------

CONFIG_ERROR_CODES: dict[str, str] = {
    "horizon_url": "CONFIG_MISSING_HORIZON_URL",
    "sponsor_public_key": "CONFIG_MISSING_SPONSOR_KEY",
    "sponsor_secret_key": "CONFIG_MISSING_SPONSOR_SECRET",
    "asset_code": "CONFIG_MISSING_ASSET_CODE",
    "asset_issuer": "CONFIG_MISSING_ISSUER_ADDRESS",
}


def config_error(setting: str, env_name: str | None = None) -> StructuredError:
    """Missing operator configuration: never retryable."""
    label = env_name or setting
    return StructuredError(
        status=500,
        code=CONFIG_ERROR_CODES.get(setting, "CONFIG_MISSING"),
        message=f"{label} not configured",
        retryable=False,
        details={"field": label},
    )


def invalid_index_error(value: Any) -> StructuredError:
    return StructuredError(
        status=400,
        code="INVALID_ACCOUNT_INDEX",
        message="accountIndex must be a non-negative integer",
        retryable=False,
        details={"field": "accountIndex", "value": repr(value)},
    )


def key_generation_error() -> StructuredError:
    return StructuredError(
        status=500,
        code="MNEMONIC_GENERATION_FAILED",
        message="Failed to generate mnemonic",
        retryable=True,
        retry_after=2,
    )


def transaction_build_error(step: str = "account") -> StructuredError:
    """Transaction could not be assembled from the configured values."""
    return StructuredError(
        status=500,
        code="TRANSACTION_BUILD_FAILED",
        message=f"Failed to build {step} transaction",
        retryable=False,
        details={"step": step},
    )


def encryption_error() -> StructuredError:
    return StructuredError(
        status=500,
        code="SECRET_ENCRYPTION_FAILED",
        message="Failed to encrypt account secret",
        retryable=False,
    )


def decryption_error() -> StructuredError:
    return StructuredError(
        status=500,
        code="SECRET_DECRYPTION_FAILED",
        message="Failed to decrypt account secret",
        retryable=False,
    )


def partial_trustline_error(
    cause: StructuredError,
    public_key: str,
    transaction_hash: str,
) -> StructuredError:
    """Account exists on the ledger but the trustline step failed.

    Keeps the cause's status and retry hints; the cause code is kept as
    ``reason`` so the caller still sees what went wrong.
    """
    return StructuredError(
        status=cause.status,
        code="TRUSTLINE_SETUP_FAILED",
        message="Account was created but trustline setup failed",
        retryable=cause.retryable,
        retry_after=cause.retry_after,
        details={
            **cause.details,
            "reason": cause.code,
            "publicKey": public_key,
            "transactionHash": transaction_hash,
        },
    )
