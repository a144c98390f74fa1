from dataclasses import replace
from decimal import Decimal

import pytest
from conftest import WEI, event

from jackpot_sync.classes.errors import EventDecodeError, RemoteCallError
from jackpot_sync.classes.models import PayoutRecord
from jackpot_sync.classes.payout_indexer import PayoutHistoryIndexer, decode_payout, sort_payouts
from jackpot_sync.config import GameVariant, PayoutRecordShape


def _payout_event(round_number, winners=("0xA", "0xB"), amount=WEI, block_number=1, tx_hash="0xabc"):
    return event(
        "WinnersPaid",
        {"winners": list(winners), "amountPerWinner": amount, "round": round_number},
        block_number=block_number,
        tx_hash=tx_hash,
    )


def _per_winner(settings):
    return replace(settings, variant=GameVariant(payout_record_shape=PayoutRecordShape.PER_WINNER))


def test_sort_payouts_orders_rounds_descending():
    records = [PayoutRecord(round_number, ("0xA",), Decimal(1), f"0x{round_number}", round_number) for round_number in (3, 1, 2)]

    assert [record.round for record in sort_payouts(records)] == [3, 2, 1]


def test_sort_payouts_keeps_event_order_within_a_round():
    records = [
        PayoutRecord(1, ("0xA",), Decimal(1), "0xfirst", 10),
        PayoutRecord(2, ("0xB",), Decimal(1), "0xother", 11),
        PayoutRecord(1, ("0xC",), Decimal(1), "0xsecond", 12),
    ]

    assert [record.source_tx_hash for record in sort_payouts(records)] == ["0xother", "0xfirst", "0xsecond"]


def test_decode_payout_aggregate_shape():
    records = decode_payout(_payout_event(4, amount=WEI // 4, block_number=9), PayoutRecordShape.AGGREGATE)

    assert records == [PayoutRecord(4, ("0xA", "0xB"), Decimal("0.25"), "0xabc", 9)]
    assert records[0].winner_count == 2


def test_decode_payout_per_winner_shape():
    records = decode_payout(_payout_event(4), PayoutRecordShape.PER_WINNER)

    assert [record.winners for record in records] == [("0xA",), ("0xB",)]
    assert all(record.amount_per_winner == Decimal(1) for record in records)


@pytest.mark.parametrize(
    "args",
    [
        {"amountPerWinner": WEI, "round": 1},
        {"winners": ["0xA"], "round": 1},
        {"winners": ["0xA"], "amountPerWinner": WEI},
        {"winners": "0xA", "amountPerWinner": WEI, "round": 1},
        {"winners": ["0xA"], "amountPerWinner": WEI, "round": "three"},
    ],
)
def test_decode_payout_rejects_malformed_events(args):
    with pytest.raises(EventDecodeError):
        decode_payout(event("WinnersPaid", args), PayoutRecordShape.AGGREGATE)


@pytest.mark.asyncio
async def test_refresh_indexes_and_sorts_events(gateway, settings):
    gateway.events["WinnersPaid"] = [_payout_event(3, block_number=3), _payout_event(1, block_number=1), _payout_event(2, block_number=2)]
    indexer = PayoutHistoryIndexer(gateway, settings)

    assert await indexer.refresh() is True

    assert [record.round for record in indexer.records] == [3, 2, 1]
    assert gateway.queries == [("WinnersPaid", 0, "latest")]


@pytest.mark.asyncio
async def test_refresh_expands_per_winner_records(gateway, settings):
    gateway.events["WinnersPaid"] = [_payout_event(1, winners=("0xA", "0xB", "0xC"))]
    indexer = PayoutHistoryIndexer(gateway, _per_winner(settings))

    await indexer.refresh()

    assert [record.winners[0] for record in indexer.records] == ["0xA", "0xB", "0xC"]


@pytest.mark.asyncio
async def test_refresh_skips_malformed_event_and_continues(gateway, settings, caplog):
    gateway.events["WinnersPaid"] = [
        _payout_event(1, block_number=1),
        event("WinnersPaid", {"round": 2}, block_number=2, tx_hash="0xbad"),
        _payout_event(3, block_number=3),
    ]
    indexer = PayoutHistoryIndexer(gateway, settings)

    assert await indexer.refresh() is True

    assert [record.round for record in indexer.records] == [3, 1]
    assert "skipping payout event" in caplog.text
    assert "0xbad" in caplog.text


@pytest.mark.asyncio
async def test_refresh_failure_keeps_previous_records(gateway, settings):
    gateway.events["WinnersPaid"] = [_payout_event(1)]
    indexer = PayoutHistoryIndexer(gateway, settings)
    await indexer.refresh()

    gateway.events["WinnersPaid"] = RemoteCallError("getLogs(WinnersPaid)", "rate limited")

    assert await indexer.refresh() is False
    assert [record.round for record in indexer.records] == [1]
