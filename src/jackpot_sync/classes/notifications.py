"""Typed messages delivered to the reconciler's inbox."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Union

from jackpot_sync.config import ContractMethods

from .gateway import EventRecord
from .models import to_decimal_amount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DepositObserved:
    sender: str | None
    amount: Decimal | None
    round: int | None
    transaction_hash: str | None = None
    log_index: int = 0

    @property
    def dedup_key(self) -> tuple[str, int] | None:
        if not self.transaction_hash:
            return None
        return (self.transaction_hash.lower(), self.log_index)


@dataclass(frozen=True)
class RoundStarted:
    round: int | None


@dataclass(frozen=True)
class RoundEnded:
    round: int | None


@dataclass(frozen=True)
class PayoutObserved:
    round: int | None
    transaction_hash: str | None = None


@dataclass(frozen=True)
class ProgressExhausted:
    """Raised locally when the projected progress reaches the round cap."""

    round: int


Notification = Union[DepositObserved, RoundStarted, RoundEnded, PayoutObserved, ProgressExhausted]


def _optional_int(value: object) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def notification_from_event(
    record: EventRecord,
    methods: ContractMethods,
    decimals: int = 18,
) -> Notification | None:
    """Map a pushed contract event to a notification; None for unknown events.

    Argument decoding is best effort: a notification is still produced when an
    argument is missing so that the refresh it triggers is never lost.
    """
    args = record.args
    round_number = _optional_int(args.get("round"))

    if record.event_name == methods.deposit_event:
        amount = None
        try:
            amount = to_decimal_amount(args["amount"], decimals)
        except (KeyError, TypeError) as err:
            logger.debug("deposit event %s without usable amount: %s", record.transaction_hash, err)
        sender = args.get("player") or args.get("sender")
        return DepositObserved(
            sender=str(sender) if sender else None,
            amount=amount,
            round=round_number,
            transaction_hash=record.transaction_hash,
            log_index=record.log_index,
        )
    if record.event_name == methods.round_started_event:
        return RoundStarted(round=round_number)
    if record.event_name == methods.round_ended_event:
        return RoundEnded(round=round_number)
    if record.event_name == methods.payout_event:
        return PayoutObserved(round=round_number, transaction_hash=record.transaction_hash)

    logger.warning("ignoring unexpected event %s", record.event_name)
    return None
