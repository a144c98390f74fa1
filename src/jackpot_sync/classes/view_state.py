"""Consumer-facing view of a session plus pure display helpers."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

from jackpot_sync.config import MAX_BASIS_POINTS

from .models import DepositRecord, LeaderboardEntry, PayoutRecord, RoundPhase, RoundState

MAX_WINNERS = 5


@dataclass(frozen=True)
class HistoryRow:
    rank: int
    record: DepositRecord
    is_current_round: bool


@dataclass(frozen=True)
class ViewState:
    round_state: RoundState | None
    phase: RoundPhase
    progress_seconds: int
    remaining_seconds: int
    in_extension_zone: bool
    leaderboard: list[LeaderboardEntry] = field(default_factory=list)
    history: list[DepositRecord] = field(default_factory=list)
    payouts: list[PayoutRecord] = field(default_factory=list)
    pending: dict[str, bool] = field(default_factory=dict)
    errors: dict[str, str | None] = field(default_factory=dict)
    estimated_payout_per_winner: Decimal = Decimal(0)
    accepted_token: str | None = None
    minimum_deposit: Decimal | None = None


def estimate_payout_per_winner(
    pot: Decimal,
    depositor_count: int,
    fee_basis_points: int = 0,
) -> Decimal:
    """Split the pot net of the fee across the (at most five) current winners."""
    winners = min(depositor_count, MAX_WINNERS)
    if winners <= 0:
        return Decimal(0)
    net = pot * (MAX_BASIS_POINTS - fee_basis_points) / MAX_BASIS_POINTS
    return net / winners


def shorten_address(address: str, head: int = 6, tail: int = 4) -> str:
    if len(address) <= head + tail:
        return address
    return f"{address[:head]}...{address[-tail:]}"


def format_clock(seconds: int) -> str:
    seconds = max(0, int(seconds))
    return f"{seconds // 60}:{seconds % 60:02d}"


def explorer_tx_url(explorer_url: str, tx_hash: str) -> str:
    return f"{explorer_url.rstrip('/')}/tx/{tx_hash}"


def history_rows(history: list[DepositRecord], current_round: int | None) -> list[HistoryRow]:
    """Newest first; rank 1 is the oldest deposit."""
    total = len(history)
    return [
        HistoryRow(rank=total - offset, record=record, is_current_round=record.round == current_round)
        for offset, record in enumerate(reversed(history))
    ]


def _status_line(view: ViewState) -> str:
    if view.phase is RoundPhase.IDLE:
        return "00:00 WAITING FOR FIRST PLAYER"
    if view.phase is RoundPhase.ENDED:
        return "0:00 ROUND ENDED, awaiting settlement"
    line = f"{format_clock(view.remaining_seconds)} TIME REMAINING"
    if view.in_extension_zone:
        line += " [EXTENSION ZONE]"
    return line


def render_lines(view: ViewState, history_limit: int = 10) -> list[str]:
    """Plain-text summary of a ViewState, one entry per output line."""
    state = view.round_state
    round_number = state.round_number if state else None
    lines = [f"round #{round_number if round_number is not None else '-'} {_status_line(view)}"]
    if state is not None:
        lines.append(f"pot {state.pot_amount.normalize():f} | payout/winner {view.estimated_payout_per_winner:.6f}")
        recent = ", ".join(shorten_address(address) for address in reversed(state.recent_depositors))
        lines.append(f"last depositors: {recent or 'none yet'}")
    if view.minimum_deposit is not None:
        lines.append(f"minimum deposit {view.minimum_deposit.normalize():f} token {view.accepted_token or '?'}")

    lines.append("top depositors:")
    for position, entry in enumerate(view.leaderboard, start=1):
        lines.append(f"  #{position} {shorten_address(entry.address)} {entry.aggregate_deposited:.4f}")

    lines.append("recent transactions:")
    for row in history_rows(view.history, round_number)[:history_limit]:
        marker = "*" if row.is_current_round else " "
        lines.append(
            f" {marker}#{row.rank} R{row.record.round} {shorten_address(row.record.sender)} {row.record.amount:.4f}"
        )

    lines.append("payouts:")
    for payout in view.payouts:
        winners = ", ".join(shorten_address(winner) for winner in payout.winners)
        lines.append(f"  R{payout.round} {payout.amount_per_winner:.4f} each -> {winners}")

    for action, pending in view.pending.items():
        if pending:
            lines.append(f"{action}: pending")
    for action, error in view.errors.items():
        if error:
            lines.append(f"{action} failed: {error}")
    return lines
