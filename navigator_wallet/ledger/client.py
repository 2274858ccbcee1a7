"""
Ledger client protocol: the network boundary.

Defines the interface the provisioning workflow depends on, not a concrete
implementation. This keeps the workflow testable and keeps Horizon/HTTP
details out of business logic.

Concrete implementations:
    - HorizonClient (stellar-sdk ServerAsync over aiohttp)
    - FakeLedgerClient (tests)

Methods return boring frozen dataclasses. No exceptions for "expected"
failures: those are captured as a raw ``detail`` string which the
workflow hands to ``errors.classify_ledger_failure``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable


# =========================================================================
# Result types
# =========================================================================


@dataclass(frozen=True)
class AccountResult:
    """Result of loading an account from the ledger.

    Attributes:
        found: Whether the ledger knows the account.
        account: SDK account object (carries the current sequence number),
            usable as a transaction source. None unless found.
        detail: Raw failure text when the lookup itself failed (connection,
            timeout, server error). None on success or plain not-found.
    """

    found: bool
    account: Any = None
    detail: str | None = None

    @property
    def ok(self) -> bool:
        return self.found and self.detail is None


@dataclass(frozen=True)
class SubmitResult:
    """Result of submitting a signed transaction envelope.

    Attributes:
        accepted: Whether the ledger applied the transaction.
        tx_hash: Transaction hash (64 hex chars). Computed locally before
            submission, so it is present even when the outcome is unknown.
        result_codes: Ledger result codes on rejection
            (e.g. ("tx_failed", "op_underfunded")).
        detail: Raw failure text for classification. None when accepted.
    """

    accepted: bool
    tx_hash: str | None = None
    result_codes: tuple[str, ...] = field(default_factory=tuple)
    detail: str | None = None


# =========================================================================
# Protocol
# =========================================================================


@runtime_checkable
class LedgerClient(Protocol):
    """Interface for ledger gateway operations.

    Implementations handle connection management and timeouts internally.
    The workflow sees only result objects.
    """

    async def load_account(self, public_key: str) -> AccountResult:
        """Load current ledger state (sequence number) of an account."""
        ...

    async def submit_transaction(self, envelope: Any) -> SubmitResult:
        """Submit a signed transaction envelope."""
        ...

    async def account_exists(self, public_key: str) -> bool | None:
        """Whether the account exists; None when the ledger can't be reached.

        Used to resolve an indeterminate (timed-out) account creation
        before retrying it.
        """
        ...
