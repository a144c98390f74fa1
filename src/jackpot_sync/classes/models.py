"""Value types for round state, deposits, payouts and the leaderboard."""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any


class RoundPhase(str, Enum):
    IDLE = "IDLE"
    ACTIVE = "ACTIVE"
    EXTENSION = "EXTENSION"
    ENDED = "ENDED"


@dataclass(frozen=True)
class RoundState:
    """Authoritative snapshot of the current round, replaced on every poll."""

    round_number: int
    pot_amount: Decimal
    recent_depositors: tuple[str, ...]
    progress_seconds: int
    round_duration_cap: int
    ended: bool


@dataclass(frozen=True)
class ProgressProjection:
    """Anchor for the local clock; rebuilt from scratch on each poll."""

    anchor_timestamp: int
    anchor_progress: int
    last_poll_time: float

    def project(self, now: float, cap: int) -> int:
        elapsed = max(0.0, now - self.last_poll_time)
        return clamp(int(self.anchor_progress + elapsed), 0, cap)


@dataclass(frozen=True)
class DepositRecord:
    sender: str
    amount: Decimal
    timestamp: int
    round: int
    # position in the ledger; history is ordered by this, not by arrival
    sequence: int = 0


@dataclass(frozen=True)
class PayoutRecord:
    round: int
    winners: tuple[str, ...]
    amount_per_winner: Decimal
    source_tx_hash: str
    block_number: int

    @property
    def winner_count(self) -> int:
        return len(self.winners)


@dataclass(frozen=True)
class LeaderboardEntry:
    address: str
    aggregate_deposited: Decimal


@dataclass(frozen=True)
class TokenTerms:
    accepted_token: str | None = None
    minimum_deposit: Decimal | None = None


def clamp(value: int, lower: int, upper: int) -> int:
    return max(lower, min(value, upper))


def to_decimal_amount(raw: Any, decimals: int = 18) -> Decimal:
    """Convert an integer base-unit amount (wei) to a Decimal of whole units."""
    if isinstance(raw, Decimal):
        return raw
    if isinstance(raw, bool) or not isinstance(raw, int):
        raise TypeError(f"expected an integer base-unit amount, got {type(raw).__name__}")
    return Decimal(raw).scaleb(-decimals)


def to_base_units(amount: Decimal | int | float | str, decimals: int = 18) -> int:
    """Convert a whole-unit amount (ether) to integer base units (wei)."""
    value = Decimal(str(amount)).scaleb(decimals)
    if value != value.to_integral_value():
        raise ValueError(f"{amount} has more precision than {decimals} decimals")
    return int(value)
