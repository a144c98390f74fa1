"""Submit user actions to the contract and track their pending/error flags."""

from __future__ import annotations

import logging
from decimal import Decimal
from typing import Any, Sequence

from jackpot_sync.config import Settings

from .errors import (
    ActionUnavailable,
    RemoteCallError,
    TransactionRejected,
    TransactionReverted,
)
from .gateway import ContractGateway
from .models import RoundPhase, to_base_units
from .round_reconciler import RoundStateReconciler

DEPOSIT = "deposit"
SETTLE = "settle"
START_NEW_ROUND = "start_new_round"
DISTRIBUTE = "distribute"

ACTIONS = (DEPOSIT, SETTLE, START_NEW_ROUND, DISTRIBUTE)

ALLOWED_PHASES: dict[str, frozenset[RoundPhase]] = {
    DEPOSIT: frozenset({RoundPhase.ACTIVE, RoundPhase.EXTENSION}),
    SETTLE: frozenset({RoundPhase.ENDED}),
    START_NEW_ROUND: frozenset({RoundPhase.ENDED}),
    DISTRIBUTE: frozenset({RoundPhase.ENDED}),
}


class ActionDispatcher:
    """One transaction per action; no retries, failures surfaced verbatim."""

    def __init__(
        self,
        gateway: ContractGateway,
        reconciler: RoundStateReconciler,
        settings: Settings,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.reconciler = reconciler
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.pending: dict[str, bool] = {action: False for action in ACTIONS}
        self.errors: dict[str, str | None] = {action: None for action in ACTIONS}
        self.last_tx_hash: dict[str, str | None] = {action: None for action in ACTIONS}

    def is_available(self, action: str) -> bool:
        if not self.gateway.can_sign:
            return False
        if self.pending[action]:
            return False
        return self.reconciler.phase in ALLOWED_PHASES[action]

    async def deposit(self, value: Decimal | int | float | str) -> bool:
        """Deposit ``value`` whole units (ether, or tokens when token-gated)."""
        policy = self.settings.variant.token_policy
        try:
            base_units = to_base_units(value, policy.token_decimals)
        except (ArithmeticError, ValueError) as err:
            self.errors[DEPOSIT] = f"invalid deposit amount {value!r}: {err}"
            return False
        if base_units <= 0:
            self.errors[DEPOSIT] = "deposit amount must be positive"
            return False

        if policy.token_gated:
            return await self._dispatch(DEPOSIT, policy.deposit_method, (base_units,), 0)
        return await self._dispatch(DEPOSIT, policy.deposit_method, (), base_units)

    async def settle(self) -> bool:
        return await self._dispatch(SETTLE, self.settings.methods.settle)

    async def start_new_round(self) -> bool:
        return await self._dispatch(START_NEW_ROUND, self.settings.methods.start_new_round)

    async def distribute(self) -> bool:
        return await self._dispatch(DISTRIBUTE, self.settings.methods.distribute)

    async def _dispatch(self, action: str, method: str, args: Sequence[Any] = (), value: int = 0) -> bool:
        if self.pending[action]:
            self.logger.warning("%s already pending, ignoring resubmission", action)
            return False
        if not self.gateway.can_sign:
            self.errors[action] = "session is read-only"
            return False
        phase = self.reconciler.phase
        if phase not in ALLOWED_PHASES[action]:
            self.errors[action] = str(ActionUnavailable(action, phase.value))
            return False

        self.pending[action] = True
        self.errors[action] = None
        try:
            handle = await self.gateway.submit(method, args, value)
            self.last_tx_hash[action] = handle.tx_hash
            await handle.wait_for_confirmation()
        except (TransactionRejected, TransactionReverted) as err:
            self.errors[action] = err.reason
            self.logger.warning("%s failed: %s", action, err.reason)
            return False
        except RemoteCallError as err:
            self.errors[action] = str(err)
            self.logger.error("%s could not be submitted: %s", action, err)
            return False
        finally:
            self.pending[action] = False

        self.logger.info("%s confirmed (tx %s)", action, self.last_tx_hash[action])
        await self.reconciler.poll()
        return True
