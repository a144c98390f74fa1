import asyncio
import sys
from pathlib import Path

import pytest

REPO_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = REPO_ROOT / "src"
TESTS_ROOT = Path(__file__).resolve().parent

for path in (REPO_ROOT, SRC_ROOT, TESTS_ROOT):
    path_str = str(path)
    if path_str not in sys.path:
        sys.path.insert(0, path_str)

from jackpot_sync.classes.errors import GatewayConnectionError, RemoteCallError  # noqa: E402
from jackpot_sync.classes.gateway import (  # noqa: E402
    ContractGateway,
    EventRecord,
    GatewaySession,
    PendingTransaction,
    SessionMode,
    Subscription,
)
from jackpot_sync.config import Settings, TimingSettings  # noqa: E402

WEI = 10**18
START_TIME = 1_700_000_000.0


class FakeClock:
    def __init__(self, start: float = START_TIME) -> None:
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakePendingTransaction(PendingTransaction):
    def __init__(self, tx_hash, error=None, gate=None):
        super().__init__(tx_hash)
        self.error = error
        self.gate = gate

    async def wait_for_confirmation(self):
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return {"status": 1, "transactionHash": self.tx_hash}


class FakeGateway(ContractGateway):
    def __init__(self):
        self.responses = {}
        self.events = {}
        self.handlers = {}
        self.read_calls = []
        self.queries = []
        self.submitted = []
        self.submit_error = None
        self.confirm_error = None
        self.confirm_gate = None
        self.connect_error = None
        self.connected_modes = []
        self.disconnected = False
        self.held_method = None
        self.held_reads = []
        self.session = None

    async def connect(self, mode):
        if self.connect_error is not None:
            raise self.connect_error
        self.connected_modes.append(mode)
        account = "0x00000000000000000000000000000000000000aa" if mode is SessionMode.SIGNING else None
        self.session = GatewaySession(mode=mode, chain_id=11155111, account=account)
        return self.session

    async def disconnect(self):
        self.disconnected = True
        self.session = None

    def hold_reads(self, method):
        self.held_method = method
        self.held_reads = []

    def release(self, index, value):
        future = self.held_reads[index]
        if isinstance(value, Exception):
            future.set_exception(value)
        else:
            future.set_result(value)

    async def read(self, method, *args):
        self.read_calls.append(method)
        if method == self.held_method:
            future = asyncio.get_running_loop().create_future()
            self.held_reads.append(future)
            return await future
        value = self.responses.get(method)
        if isinstance(value, Exception):
            raise value
        if value is None:
            raise RemoteCallError(method, "no response configured")
        return value

    async def submit(self, method, args=(), value=0):
        self.submitted.append((method, tuple(args), value))
        if self.submit_error is not None:
            raise self.submit_error
        return FakePendingTransaction(f"0xtx{len(self.submitted)}", self.confirm_error, self.confirm_gate)

    def subscribe(self, event_name, handler):
        self.handlers.setdefault(event_name, []).append(handler)
        return Subscription(event_name=event_name, _cancel=lambda: self.handlers[event_name].remove(handler))

    def emit(self, record):
        for handler in list(self.handlers.get(record.event_name, [])):
            handler(record)

    async def query_historical_events(self, event_name, from_block=0, to_block="latest"):
        self.queries.append((event_name, from_block, to_block))
        value = self.events.get(event_name, [])
        if isinstance(value, Exception):
            raise value
        return list(value)


def game_state(progress=0, depositors=(), pot_wei=0, timestamp=0, round_number=1):
    return (progress, list(depositors), pot_wei, timestamp, round_number)


def event(name, args, block_number=1, tx_hash="0xabc", log_index=0):
    return EventRecord(
        event_name=name,
        args=args,
        block_number=block_number,
        transaction_hash=tx_hash,
        log_index=log_index,
    )


@pytest.fixture()
def clock():
    return FakeClock()


@pytest.fixture()
def gateway():
    return FakeGateway()


@pytest.fixture()
def settings():
    # long intervals keep the background schedules quiet during tests
    return Settings(
        timing=TimingSettings(
            poll_interval=3600,
            tick_interval=3600,
            round_duration=600,
            extension_window=60,
            extension_increment=3,
        )
    )


@pytest.fixture()
def connection_error():
    return GatewayConnectionError("rpc unreachable")
