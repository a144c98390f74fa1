"""Uniform async interface to the jackpot ledger contract."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Mapping, Sequence


class SessionMode(str, Enum):
    READ_ONLY = "read_only"
    SIGNING = "signing"


@dataclass(frozen=True)
class GatewaySession:
    mode: SessionMode
    chain_id: int | None = None
    account: str | None = None

    @property
    def can_sign(self) -> bool:
        return self.mode is SessionMode.SIGNING and self.account is not None


@dataclass(frozen=True)
class EventRecord:
    """One decoded contract log: named arguments plus where it happened."""

    event_name: str
    args: Mapping[str, Any]
    block_number: int
    transaction_hash: str
    log_index: int = 0

    @property
    def ordering_key(self) -> tuple[int, int]:
        return (self.block_number, self.log_index)


@dataclass
class Subscription:
    event_name: str
    _cancel: Callable[[], None] | None = field(default=None, repr=False)
    active: bool = True

    def cancel(self) -> None:
        if not self.active:
            return
        self.active = False
        if self._cancel is not None:
            self._cancel()


EventHandler = Callable[[EventRecord], None]


class PendingTransaction:
    """Handle for a submitted transaction."""

    def __init__(self, tx_hash: str) -> None:
        self.tx_hash = tx_hash

    async def wait_for_confirmation(self) -> Mapping[str, Any]:
        """Resolve with the receipt, or raise TransactionRejected / TransactionReverted."""
        raise NotImplementedError("A confirmation method has not been implemented")


class ContractGateway:
    """Interface for contract backends used by this repo.

    Implementations never retry; every failure is raised to the caller as one
    of the errors in ``jackpot_sync.classes.errors``.
    """

    session: GatewaySession | None = None

    async def connect(self, mode: SessionMode) -> GatewaySession:
        raise NotImplementedError("A connect method has not been implemented")

    async def disconnect(self) -> None:
        self.session = None

    @property
    def can_sign(self) -> bool:
        return self.session is not None and self.session.can_sign

    async def read(self, method: str, *args: Any) -> Any:
        raise NotImplementedError("A read method has not been implemented")

    async def submit(self, method: str, args: Sequence[Any] = (), value: int = 0) -> PendingTransaction:
        raise NotImplementedError("A submit method has not been implemented")

    def subscribe(self, event_name: str, handler: EventHandler) -> Subscription:
        raise NotImplementedError("A subscribe method has not been implemented")

    async def query_historical_events(
        self,
        event_name: str,
        from_block: int = 0,
        to_block: int | str = "latest",
    ) -> list[EventRecord]:
        raise NotImplementedError("A historical query method has not been implemented")
