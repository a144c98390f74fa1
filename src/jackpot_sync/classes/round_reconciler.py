"""Merge authoritative round polls with a locally ticking progress clock.

The contract is polled on a fixed cadence (and out of cadence whenever a push
notification arrives). Each poll replaces the RoundState snapshot wholesale and
re-anchors the local projection; between polls ``tick()`` advances progress from
the wall-clock delta. Progress is always expressed as seconds into the round,
whether the contract reports a countdown to the end or time since the start.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Protocol

from jackpot_sync.config import Settings, TimerConvention

from .clock import SystemClock
from .errors import RemoteCallError
from .gateway import ContractGateway
from .models import ProgressProjection, RoundPhase, RoundState, clamp, to_decimal_amount
from .notifications import (
    DepositObserved,
    Notification,
    PayoutObserved,
    ProgressExhausted,
    RoundEnded,
    RoundStarted,
)

PhaseListener = Callable[[RoundPhase, RoundPhase], None]


class Clock(Protocol):
    def now(self) -> float: ...


@dataclass(frozen=True)
class GameStateReading:
    """Decoded ``(progress, recentDepositors, pot, endOrStartTimestamp, round)``."""

    progress: int
    recent_depositors: tuple[str, ...]
    pot_amount: Decimal
    anchor_timestamp: int
    round_number: int


def parse_game_state(raw: Any, decimals: int = 18, method: str = "getGameState") -> GameStateReading:
    try:
        progress, depositors, pot, timestamp, round_number = raw
        return GameStateReading(
            progress=int(progress),
            recent_depositors=tuple(str(address) for address in depositors),
            pot_amount=to_decimal_amount(int(pot), decimals),
            anchor_timestamp=int(timestamp),
            round_number=int(round_number),
        )
    except (TypeError, ValueError) as err:
        raise RemoteCallError(method, f"unexpected game state {raw!r}") from err


class RoundStateReconciler:
    """Own the round state machine: IDLE -> ACTIVE -> EXTENSION -> ENDED -> next round."""

    def __init__(
        self,
        gateway: ContractGateway,
        settings: Settings,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.timing = settings.timing
        self.convention = settings.variant.timer_convention
        self.decimals = settings.variant.token_policy.token_decimals
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger(__name__)

        self.inbox: asyncio.Queue[Notification] = asyncio.Queue()
        self.snapshot: RoundState | None = None
        self.projection: ProgressProjection | None = None
        self.progress_seconds = 0
        self.phase = RoundPhase.IDLE

        self._cap = self.timing.round_duration
        self._round_start: int | None = None
        self._seen_deposits: set[tuple[str, int]] = set()
        self._exhausted_round: int | None = None
        self._issued_seq = 0
        self._applied_seq = 0
        self._closed = False
        self._phase_listeners: list[PhaseListener] = []

    @property
    def round_duration_cap(self) -> int:
        return self._cap

    @property
    def remaining_seconds(self) -> int:
        if self.projection is None:
            return 0
        return max(0, self._cap - self.progress_seconds)

    @property
    def in_extension_zone(self) -> bool:
        return self.phase is RoundPhase.EXTENSION

    @property
    def closed(self) -> bool:
        return self._closed

    def add_phase_listener(self, listener: PhaseListener) -> None:
        self._phase_listeners.append(listener)

    def close(self) -> None:
        self._closed = True
        self._phase_listeners.clear()

    # authoritative polls

    async def poll(self) -> bool:
        """Read the game state and apply it unless a newer poll already landed."""
        if self._closed:
            return False
        self._issued_seq += 1
        seq = self._issued_seq
        method = self.settings.methods.game_state
        try:
            reading = parse_game_state(await self.gateway.read(method), self.decimals, method)
        except RemoteCallError as err:
            self.logger.warning("poll #%d failed, keeping previous snapshot: %s", seq, err)
            return False

        if self._closed:
            return False
        if seq <= self._applied_seq:
            self.logger.debug("discarding poll #%d, #%d already applied", seq, self._applied_seq)
            return False
        if self.snapshot is not None and reading.round_number < self.snapshot.round_number:
            self.logger.debug(
                "discarding poll #%d for round %d, already on round %d",
                seq,
                reading.round_number,
                self.snapshot.round_number,
            )
            return False

        self._applied_seq = seq
        self._apply_reading(reading)
        return True

    def _apply_reading(self, reading: GameStateReading) -> None:
        previous = self.snapshot
        if previous is None or reading.round_number != previous.round_number:
            self._begin_round(reading.round_number)

        if reading.anchor_timestamp == 0:
            self.projection = None
            progress = 0
        else:
            progress = self._normalize_progress(reading)
            self.projection = ProgressProjection(
                anchor_timestamp=reading.anchor_timestamp,
                anchor_progress=progress,
                last_poll_time=self.clock.now(),
            )

        limit = self.settings.max_recent_depositors
        recent = reading.recent_depositors[-limit:] if limit > 0 else ()
        self.snapshot = RoundState(
            round_number=reading.round_number,
            pot_amount=reading.pot_amount,
            recent_depositors=recent,
            progress_seconds=progress,
            round_duration_cap=self._cap,
            ended=self.projection is not None and progress >= self._cap,
        )
        self.progress_seconds = progress
        phase = self._phase_for(progress)
        if phase is not RoundPhase.ENDED:
            # the contract pushed the end out again; the next expiry needs its own refresh
            self._exhausted_round = None
        self._set_phase(phase)

    def _normalize_progress(self, reading: GameStateReading) -> int:
        if self.convention is TimerConvention.COUNTDOWN:
            remaining = max(0, reading.progress)
            if self._round_start is None:
                self._round_start = reading.anchor_timestamp - self._cap
            # the end timestamp moves out with every extension the contract grants
            self._cap = max(
                self.timing.round_duration,
                reading.anchor_timestamp - self._round_start,
                remaining,
            )
            progress = self._cap - remaining
        else:
            self._round_start = reading.anchor_timestamp
            progress = reading.progress
        return clamp(progress, 0, self._cap)

    def _begin_round(self, round_number: int) -> None:
        if self.snapshot is not None:
            self.logger.info("round %d started (was %d)", round_number, self.snapshot.round_number)
        self._cap = self.timing.round_duration
        self._round_start = None
        self._seen_deposits.clear()
        self._exhausted_round = None

    # local clock

    def tick(self) -> int:
        """Advance the projected progress; never touches the authoritative snapshot."""
        if self._closed or self.projection is None or self.snapshot is None:
            return self.progress_seconds
        if self.phase is RoundPhase.ENDED:
            # held until a poll confirms the rollover
            return self.progress_seconds

        self.progress_seconds = self.projection.project(self.clock.now(), self._cap)
        phase = self._phase_for(self.progress_seconds)
        self._set_phase(phase)
        if phase is RoundPhase.ENDED and self._exhausted_round != self.snapshot.round_number:
            self._exhausted_round = self.snapshot.round_number
            self.notify(ProgressExhausted(round=self.snapshot.round_number))
        return self.progress_seconds

    def _phase_for(self, progress: int) -> RoundPhase:
        if self.snapshot is None or self.projection is None:
            return RoundPhase.IDLE
        if progress >= self._cap:
            return RoundPhase.ENDED
        if progress >= self._cap - self.timing.extension_window:
            return RoundPhase.EXTENSION
        return RoundPhase.ACTIVE

    def _set_phase(self, phase: RoundPhase) -> None:
        if phase is self.phase:
            return
        previous = self.phase
        self.phase = phase
        round_number = self.snapshot.round_number if self.snapshot else 0
        self.logger.info("round %d: %s -> %s", round_number, previous.value, phase.value)
        for listener in list(self._phase_listeners):
            listener(previous, phase)

    # push notifications

    def notify(self, message: Notification) -> None:
        if self._closed:
            return
        self.inbox.put_nowait(message)

    async def drain(self) -> list[Notification]:
        """Wait for a notification, apply it and everything queued behind it, then poll once.

        Callers acknowledge the returned batch with ``acknowledge`` once any
        follow-up work is done.
        """
        batch = [await self.inbox.get()]
        while not self.inbox.empty():
            batch.append(self.inbox.get_nowait())
        for message in batch:
            self.apply_notification(message)
        await self.poll()
        return batch

    def acknowledge(self, batch: list[Notification]) -> None:
        for _ in batch:
            self.inbox.task_done()

    def apply_notification(self, message: Notification) -> None:
        if self._closed:
            return
        if isinstance(message, DepositObserved):
            self.record_deposit(message)
        elif isinstance(message, RoundStarted):
            self._on_round_started(message)
        elif isinstance(message, RoundEnded):
            self.logger.info("round %s ended", message.round)
        elif isinstance(message, PayoutObserved):
            self.logger.info("payout observed for round %s (tx %s)", message.round, message.transaction_hash)
        elif isinstance(message, ProgressExhausted):
            self.logger.debug("round %d timer exhausted, requesting refresh", message.round)

    def record_deposit(self, message: DepositObserved) -> bool:
        """Extend the cap if the deposit landed inside the extension window.

        Returns True when the cap was extended.
        """
        key = message.dedup_key
        if key is not None:
            if key in self._seen_deposits:
                self.logger.debug("duplicate deposit notification %s", key)
                return False
            self._seen_deposits.add(key)

        if self.snapshot is None:
            return False
        if message.round is not None and message.round != self.snapshot.round_number:
            return False

        self.tick()
        if self.phase is not RoundPhase.EXTENSION:
            return False

        self._cap += self.timing.extension_increment
        self.snapshot = replace(self.snapshot, round_duration_cap=self._cap)
        self.logger.info(
            "deposit in extension window, round %d cap now %ds",
            self.snapshot.round_number,
            self._cap,
        )
        self._set_phase(self._phase_for(self.progress_seconds))
        return True

    def _on_round_started(self, message: RoundStarted) -> None:
        if message.round is None:
            return
        if self.snapshot is not None and message.round <= self.snapshot.round_number:
            return
        self._begin_round(message.round)
        self.projection = None
        self.progress_seconds = 0
        self.snapshot = RoundState(
            round_number=message.round,
            pot_amount=Decimal(0),
            recent_depositors=(),
            progress_seconds=0,
            round_duration_cap=self._cap,
            ended=False,
        )
        self._set_phase(RoundPhase.IDLE)
