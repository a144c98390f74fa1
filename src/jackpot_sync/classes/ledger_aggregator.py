"""Build the all-time leaderboard and ordered transaction history."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from decimal import Decimal
from typing import Any, Iterable

from jackpot_sync.config import Settings

from .errors import EventDecodeError, RemoteCallError
from .gateway import ContractGateway
from .models import DepositRecord, LeaderboardEntry, to_decimal_amount

DEPOSIT_FIELDS = ("player", "amount", "timestamp", "round")


def decode_deposit(raw: Any, sequence: int, decimals: int = 18) -> DepositRecord:
    """Decode one ``(player, amount, timestamp, round)`` ledger entry."""
    try:
        if isinstance(raw, Mapping):
            sender = raw.get("player") or raw.get("sender")
            amount, timestamp, round_number = raw["amount"], raw["timestamp"], raw["round"]
        else:
            sender, amount, timestamp, round_number = raw
        if not sender:
            raise ValueError("missing sender")
        return DepositRecord(
            sender=str(sender),
            amount=to_decimal_amount(amount, decimals),
            timestamp=int(timestamp),
            round=int(round_number),
            sequence=sequence,
        )
    except (KeyError, TypeError, ValueError) as err:
        raise EventDecodeError("transaction", f"entry #{sequence}: {err}") from err


def order_history(records: Iterable[DepositRecord]) -> list[DepositRecord]:
    return sorted(records, key=lambda record: record.sequence)


def build_leaderboard(records: Iterable[DepositRecord], limit: int = 10) -> list[LeaderboardEntry]:
    """Sum deposits per sender, largest total first, ties kept in first-seen order."""
    totals: dict[str, Decimal] = {}
    spelling: dict[str, str] = {}
    for record in order_history(records):
        key = record.sender.lower()
        spelling.setdefault(key, record.sender)
        totals[key] = totals.get(key, Decimal(0)) + record.amount

    # sorted() is stable, and dict order is first-seen order
    ranked = sorted(totals.items(), key=lambda item: item[1], reverse=True)
    return [LeaderboardEntry(address=spelling[key], aggregate_deposited=total) for key, total in ranked[:limit]]


class TransactionLedgerAggregator:
    """Fetch the full deposit record set and derive history and leaderboard views."""

    def __init__(
        self,
        gateway: ContractGateway,
        settings: Settings,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.history: list[DepositRecord] = []
        self.leaderboard: list[LeaderboardEntry] = []

    def decode_records(self, raw_records: Iterable[Any]) -> list[DepositRecord]:
        decimals = self.settings.variant.token_policy.token_decimals
        records: list[DepositRecord] = []
        for sequence, raw in enumerate(raw_records):
            try:
                records.append(decode_deposit(raw, sequence, decimals))
            except EventDecodeError as err:
                self.logger.warning("skipping transaction record: %s", err)
        return records

    def aggregate(self, records: Iterable[DepositRecord]) -> None:
        records = list(records)
        self.history = order_history(records)
        self.leaderboard = build_leaderboard(records, self.settings.leaderboard_size)

    async def refresh(self) -> bool:
        method = self.settings.methods.all_transactions
        try:
            raw_records = await self.gateway.read(method)
        except RemoteCallError as err:
            self.logger.warning("transaction refresh failed, keeping previous views: %s", err)
            return False
        try:
            raw_list = list(raw_records)
        except TypeError:
            self.logger.warning("%s returned %r, keeping previous views", method, raw_records)
            return False

        self.aggregate(self.decode_records(raw_list))
        self.logger.debug(
            "transactions: %d records, %d leaderboard entries",
            len(self.history),
            len(self.leaderboard),
        )
        return True

    def records_for_round(self, round_number: int) -> list[DepositRecord]:
        return [record for record in self.history if record.round == round_number]
