"""Session lifecycle: connect, subscribe, schedule polls/ticks, tear down."""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from jackpot_sync.config import Settings

from .action_dispatcher import ActionDispatcher
from .clock import SystemClock
from .errors import RemoteCallError
from .gateway import ContractGateway, EventRecord, SessionMode, Subscription
from .ledger_aggregator import TransactionLedgerAggregator
from .models import RoundPhase, TokenTerms, to_decimal_amount
from .notifications import DepositObserved, Notification, PayoutObserved, notification_from_event
from .payout_indexer import PayoutHistoryIndexer
from .round_reconciler import Clock, RoundStateReconciler
from .view_state import ViewState, estimate_payout_per_winner


class JackpotSession:
    """Own every timer, task and subscription for one connection to the contract."""

    def __init__(
        self,
        gateway: ContractGateway,
        settings: Settings,
        mode: SessionMode = SessionMode.READ_ONLY,
        clock: Clock | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.gateway = gateway
        self.settings = settings
        self.mode = mode
        self.clock = clock or SystemClock()
        self.logger = logger or logging.getLogger(__name__)

        self.reconciler = RoundStateReconciler(gateway, settings, clock=self.clock)
        self.ledger = TransactionLedgerAggregator(gateway, settings)
        self.payouts = PayoutHistoryIndexer(gateway, settings)
        self.dispatcher: ActionDispatcher | None = None
        self.token_terms = TokenTerms()

        self._subscriptions: list[Subscription] = []
        self._poll_task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None
        self._consumer_task: asyncio.Task | None = None
        self._running = False
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """Connect and begin synchronising; GatewayConnectionError propagates."""
        if self._running:
            return
        if self._stopped:
            raise RuntimeError("a stopped session cannot be restarted; create a new one")

        session = await self.gateway.connect(self.mode)
        self._running = True
        if session.can_sign:
            self.dispatcher = ActionDispatcher(self.gateway, self.reconciler, self.settings)

        self.reconciler.add_phase_listener(self._on_phase_change)
        methods = self.settings.methods
        for event_name in (
            methods.deposit_event,
            methods.round_started_event,
            methods.round_ended_event,
            methods.payout_event,
        ):
            self._subscriptions.append(self.gateway.subscribe(event_name, self._on_event))

        await self.refresh_all()
        if self.settings.variant.token_policy.token_gated:
            await self.load_token_terms()

        self._poll_task = asyncio.create_task(
            self._every(self.settings.timing.poll_interval, self._poll_cycle),
            name="jackpot-poll",
        )
        self._consumer_task = asyncio.create_task(self._consume(), name="jackpot-notifications")
        self._sync_tick_schedule()
        self.logger.info("session started (%s)", self.mode.value)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False
        self._stopped = True
        for subscription in self._subscriptions:
            subscription.cancel()
        self._subscriptions.clear()
        self.reconciler.close()

        tasks = [task for task in (self._poll_task, self._tick_task, self._consumer_task) if task is not None]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._poll_task = self._tick_task = self._consumer_task = None

        await self.gateway.disconnect()
        self.logger.info("session stopped")

    async def refresh_all(self) -> None:
        await self.reconciler.poll()
        await self.ledger.refresh()
        await self.payouts.refresh()

    async def load_token_terms(self) -> None:
        methods = self.settings.methods
        decimals = self.settings.variant.token_policy.token_decimals
        accepted_token = minimum_deposit = None
        try:
            accepted_token = str(await self.gateway.read(methods.accepted_token))
            minimum_deposit = to_decimal_amount(int(await self.gateway.read(methods.minimum_deposit)), decimals)
        except (RemoteCallError, TypeError, ValueError) as err:
            self.logger.warning("could not read token terms: %s", err)
        self.token_terms = TokenTerms(accepted_token=accepted_token, minimum_deposit=minimum_deposit)

    def view(self) -> ViewState:
        reconciler = self.reconciler
        state = reconciler.snapshot
        estimate = estimate_payout_per_winner(
            state.pot_amount if state else 0,
            len(state.recent_depositors) if state else 0,
            self.settings.variant.fee_basis_points,
        )
        dispatcher = self.dispatcher
        return ViewState(
            round_state=state,
            phase=reconciler.phase,
            progress_seconds=reconciler.progress_seconds,
            remaining_seconds=reconciler.remaining_seconds,
            in_extension_zone=reconciler.in_extension_zone,
            leaderboard=list(self.ledger.leaderboard),
            history=list(self.ledger.history),
            payouts=list(self.payouts.records),
            pending=dict(dispatcher.pending) if dispatcher else {},
            errors=dict(dispatcher.errors) if dispatcher else {},
            estimated_payout_per_winner=estimate,
            accepted_token=self.token_terms.accepted_token,
            minimum_deposit=self.token_terms.minimum_deposit,
        )

    # callbacks and schedules

    def _on_event(self, record: EventRecord) -> None:
        if not self._running:
            return
        message = notification_from_event(
            record,
            self.settings.methods,
            self.settings.variant.token_policy.token_decimals,
        )
        if message is not None:
            self.reconciler.notify(message)

    def _on_phase_change(self, previous: RoundPhase, current: RoundPhase) -> None:
        if self._running:
            self._sync_tick_schedule()

    def _sync_tick_schedule(self) -> None:
        wants_tick = self._running and self.reconciler.phase is not RoundPhase.IDLE
        if wants_tick and self._tick_task is None:
            self._tick_task = asyncio.create_task(self._tick_loop(), name="jackpot-tick")
        elif not wants_tick and self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None

    async def _tick_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self.settings.timing.tick_interval)
            self.reconciler.tick()

    async def _every(self, interval: float, action: Callable[[], Awaitable[object]]) -> None:
        while self._running:
            await asyncio.sleep(interval)
            await action()

    async def _poll_cycle(self) -> None:
        await self.reconciler.poll()
        await self.ledger.refresh()

    async def _consume(self) -> None:
        while self._running:
            batch = await self.reconciler.drain()
            try:
                await self._follow_up(batch)
            finally:
                self.reconciler.acknowledge(batch)

    async def _follow_up(self, batch: list[Notification]) -> None:
        if not self._running:
            return
        if any(isinstance(message, DepositObserved) for message in batch):
            await self.ledger.refresh()
        if any(isinstance(message, PayoutObserved) for message in batch):
            await self.payouts.refresh()
