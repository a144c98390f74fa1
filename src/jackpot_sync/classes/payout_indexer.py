"""Reconstruct payout history from historical payout events."""

from __future__ import annotations

import logging
from typing import Iterable

from jackpot_sync.config import PayoutRecordShape, Settings

from .errors import EventDecodeError, RemoteCallError
from .gateway import ContractGateway, EventRecord
from .models import PayoutRecord, to_decimal_amount


def decode_payout(event: EventRecord, shape: PayoutRecordShape, decimals: int = 18) -> list[PayoutRecord]:
    """Map one payout event to PayoutRecords in the configured shape."""
    args = event.args
    try:
        winners = args["winners"]
        if isinstance(winners, (str, bytes)):
            raise TypeError("winners must be a list of addresses")
        winners = tuple(str(winner) for winner in winners)
        amount = to_decimal_amount(args["amountPerWinner"], decimals)
        round_number = int(args["round"])
    except (KeyError, TypeError, ValueError) as err:
        raise EventDecodeError(event.event_name, f"{event.transaction_hash}: {err}") from err

    if shape is PayoutRecordShape.PER_WINNER:
        return [
            PayoutRecord(round_number, (winner,), amount, event.transaction_hash, event.block_number)
            for winner in winners
        ]
    return [PayoutRecord(round_number, winners, amount, event.transaction_hash, event.block_number)]


def sort_payouts(records: Iterable[PayoutRecord]) -> list[PayoutRecord]:
    """Most recent round first; records of one round keep their event order."""
    return sorted(records, key=lambda record: record.round, reverse=True)


class PayoutHistoryIndexer:
    def __init__(
        self,
        gateway: ContractGateway,
        settings: Settings,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.logger = logger or logging.getLogger(__name__)
        self.records: list[PayoutRecord] = []

    def index(self, events: Iterable[EventRecord]) -> list[PayoutRecord]:
        shape = self.settings.variant.payout_record_shape
        decimals = self.settings.variant.token_policy.token_decimals
        records: list[PayoutRecord] = []
        for event in sorted(events, key=lambda event: event.ordering_key):
            try:
                records.extend(decode_payout(event, shape, decimals))
            except EventDecodeError as err:
                self.logger.warning("skipping payout event: %s", err)
        return sort_payouts(records)

    async def refresh(self) -> bool:
        """Re-query the whole payout event range and rebuild the history."""
        event_name = self.settings.methods.payout_event
        try:
            events = await self.gateway.query_historical_events(event_name, self.settings.start_block, "latest")
        except RemoteCallError as err:
            self.logger.warning("payout history refresh failed, keeping previous records: %s", err)
            return False

        self.records = self.index(events)
        self.logger.debug("payout history: %d records from %d events", len(self.records), len(events))
        return True
