"""ContractGateway backed by web3.py's asyncio API.

Push notifications are emulated by polling ``eth_getLogs`` over new blocks,
which keeps the gateway usable against plain HTTP RPC endpoints.
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Mapping, Sequence

from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.exceptions import ContractLogicError, TimeExhausted

from jackpot_sync.config import Settings

from .errors import GatewayConnectionError, RemoteCallError, TransactionRejected, TransactionReverted
from .gateway import (
    ContractGateway,
    EventHandler,
    EventRecord,
    GatewaySession,
    PendingTransaction,
    SessionMode,
    Subscription,
)

logger = logging.getLogger(__name__)

# Minimal ABI for the jackpot contract; replaced by ``abi_path`` when configured.
JACKPOT_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "getGameState",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {"name": "progress", "type": "uint256"},
            {"name": "recentDepositors", "type": "address[]"},
            {"name": "potAmount", "type": "uint256"},
            {"name": "endOrStartTimestamp", "type": "uint256"},
            {"name": "roundNumber", "type": "uint256"},
        ],
    },
    {
        "type": "function",
        "name": "getAllTransactions",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [
            {
                "name": "",
                "type": "tuple[]",
                "components": [
                    {"name": "player", "type": "address"},
                    {"name": "amount", "type": "uint256"},
                    {"name": "timestamp", "type": "uint256"},
                    {"name": "round", "type": "uint256"},
                ],
            }
        ],
    },
    {
        "type": "function",
        "name": "acceptedToken",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "address"}],
    },
    {
        "type": "function",
        "name": "minimumDeposit",
        "stateMutability": "view",
        "inputs": [],
        "outputs": [{"name": "", "type": "uint256"}],
    },
    {
        "type": "function",
        "name": "deposit",
        "stateMutability": "payable",
        "inputs": [{"name": "amount", "type": "uint256"}],
        "outputs": [],
    },
    {"type": "function", "name": "settle", "stateMutability": "nonpayable", "inputs": [], "outputs": []},
    {"type": "function", "name": "startNewRound", "stateMutability": "nonpayable", "inputs": [], "outputs": []},
    {"type": "function", "name": "distribute", "stateMutability": "nonpayable", "inputs": [], "outputs": []},
    {
        "type": "event",
        "name": "Deposit",
        "anonymous": False,
        "inputs": [
            {"name": "player", "type": "address", "indexed": True},
            {"name": "amount", "type": "uint256", "indexed": False},
            {"name": "round", "type": "uint256", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "RoundStarted",
        "anonymous": False,
        "inputs": [{"name": "round", "type": "uint256", "indexed": False}],
    },
    {
        "type": "event",
        "name": "RoundEnded",
        "anonymous": False,
        "inputs": [{"name": "round", "type": "uint256", "indexed": False}],
    },
    {
        "type": "event",
        "name": "WinnersPaid",
        "anonymous": False,
        "inputs": [
            {"name": "winners", "type": "address[]", "indexed": False},
            {"name": "amountPerWinner", "type": "uint256", "indexed": False},
            {"name": "round", "type": "uint256", "indexed": False},
        ],
    },
]


def load_abi(path: str | Path) -> list[dict[str, Any]]:
    """Load a raw ABI array or a build artifact carrying an ``abi`` field."""
    with open(path, "r", encoding="utf-8") as fp:
        data = json.load(fp)
    if isinstance(data, dict) and isinstance(data.get("abi"), list):
        return data["abi"]
    if isinstance(data, list):
        return data
    raise ValueError(f"{path} does not contain an ABI array")


def _revert_reason(err: ContractLogicError) -> str:
    return getattr(err, "message", None) or str(err) or "execution reverted"


def _to_event_record(event_name: str, log: Mapping[str, Any]) -> EventRecord:
    return EventRecord(
        event_name=event_name,
        args=dict(log["args"]),
        block_number=int(log["blockNumber"]),
        transaction_hash=AsyncWeb3.to_hex(log["transactionHash"]),
        log_index=int(log.get("logIndex", 0)),
    )


class Web3PendingTransaction(PendingTransaction):
    def __init__(self, gateway: Web3Gateway, tx_hash: str, tx: Mapping[str, Any]) -> None:
        super().__init__(tx_hash)
        self._gateway = gateway
        self._tx = dict(tx)

    async def wait_for_confirmation(self) -> Mapping[str, Any]:
        w3 = self._gateway.w3
        try:
            receipt = await w3.eth.wait_for_transaction_receipt(self.tx_hash, timeout=self._gateway.receipt_timeout)
        except TimeExhausted as err:
            raise RemoteCallError("wait_for_transaction_receipt", err) from err

        if receipt.get("status") == 1:
            return receipt

        reason = await self._replay_for_reason(receipt)
        raise TransactionReverted(reason)

    async def _replay_for_reason(self, receipt: Mapping[str, Any]) -> str:
        call = {key: self._tx[key] for key in ("from", "to", "data", "value") if key in self._tx}
        try:
            await self._gateway.w3.eth.call(call, block_identifier=receipt.get("blockNumber"))
        except ContractLogicError as err:
            return _revert_reason(err)
        except Exception as err:
            logger.debug("could not replay %s for a revert reason: %s", self.tx_hash, err)
        return "execution reverted"


class Web3Gateway(ContractGateway):
    """Talk to the jackpot contract over an HTTP JSON-RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        contract_address: str,
        abi: list[dict[str, Any]] | None = None,
        private_key: str | None = None,
        event_poll_interval: float = 2.0,
        receipt_timeout: float = 180.0,
    ) -> None:
        if not rpc_url:
            raise GatewayConnectionError("rpc_url is required")
        if not contract_address:
            raise GatewayConnectionError("contract_address is required")
        self.rpc_url = rpc_url
        self.contract_address = contract_address
        self.abi = abi or JACKPOT_ABI
        self.event_poll_interval = event_poll_interval
        self.receipt_timeout = receipt_timeout
        self._private_key = private_key
        self.account = None
        self.w3: AsyncWeb3 | None = None
        self.contract = None
        self.session = None
        self._poll_tasks: set[asyncio.Task] = set()

    @classmethod
    def from_settings(cls, settings: Settings) -> Web3Gateway:
        abi = load_abi(settings.abi_path) if settings.abi_path else None
        return cls(
            settings.rpc_url,
            settings.contract_address,
            abi=abi,
            private_key=settings.private_key,
            event_poll_interval=settings.event_poll_interval,
            receipt_timeout=settings.receipt_timeout,
        )

    async def connect(self, mode: SessionMode) -> GatewaySession:
        self.w3 = AsyncWeb3(AsyncHTTPProvider(self.rpc_url))
        try:
            connected = await self.w3.is_connected()
            chain_id = await self.w3.eth.chain_id if connected else None
        except Exception as err:
            raise GatewayConnectionError(f"failed to reach RPC {self.rpc_url}: {err}") from err
        if not connected:
            raise GatewayConnectionError(f"failed to connect to RPC: {self.rpc_url}")

        self.contract = self.w3.eth.contract(
            address=AsyncWeb3.to_checksum_address(self.contract_address),
            abi=self.abi,
        )

        account_address = None
        if mode is SessionMode.SIGNING:
            if not self._private_key:
                raise GatewayConnectionError("signing mode requires JACKPOT_PRIVATE_KEY")
            self.account = Account.from_key(self._private_key)
            account_address = self.account.address

        self.session = GatewaySession(mode=mode, chain_id=chain_id, account=account_address)
        logger.info("connected to chain %s (%s) contract %s", chain_id, mode.value, self.contract.address)
        return self.session

    async def disconnect(self) -> None:
        for task in list(self._poll_tasks):
            task.cancel()
        self._poll_tasks.clear()
        if self.w3 is not None:
            await self.w3.provider.disconnect()
        self.session = None
        self.account = None

    def _require_contract(self) -> Any:
        if self.contract is None or self.w3 is None:
            raise GatewayConnectionError("gateway is not connected")
        return self.contract

    async def read(self, method: str, *args: Any) -> Any:
        contract = self._require_contract()
        try:
            return await getattr(contract.functions, method)(*args).call()
        except Exception as err:
            raise RemoteCallError(method, err) from err

    async def submit(self, method: str, args: Sequence[Any] = (), value: int = 0) -> PendingTransaction:
        contract = self._require_contract()
        if not self.can_sign or self.account is None:
            raise TransactionRejected("session is read-only")

        sender = self.account.address
        try:
            params = {
                "from": sender,
                "value": int(value),
                "nonce": await self.w3.eth.get_transaction_count(sender, "pending"),
                "chainId": self.session.chain_id,
            }
            if method:
                tx = await getattr(contract.functions, method)(*args).build_transaction(params)
            else:
                tx = {**params, "to": contract.address, "gasPrice": await self.w3.eth.gas_price}
                tx["gas"] = await self.w3.eth.estimate_gas({"from": sender, "to": contract.address, "value": tx["value"]})
        except ContractLogicError as err:
            raise TransactionReverted(_revert_reason(err)) from err
        except Exception as err:
            raise RemoteCallError(method or "transfer", err) from err

        try:
            signed = self.account.sign_transaction(tx)
        except Exception as err:
            raise TransactionRejected(f"signing failed: {err}") from err

        try:
            tx_hash = await self.w3.eth.send_raw_transaction(signed.raw_transaction)
        except ContractLogicError as err:
            raise TransactionReverted(_revert_reason(err)) from err
        except Exception as err:
            raise RemoteCallError("send_raw_transaction", err) from err

        tx_hash_hex = AsyncWeb3.to_hex(tx_hash)
        logger.info("submitted %s tx %s", method or "transfer", tx_hash_hex)
        return Web3PendingTransaction(self, tx_hash_hex, tx)

    def subscribe(self, event_name: str, handler: EventHandler) -> Subscription:
        self._require_contract()
        task = asyncio.create_task(self._poll_logs(event_name, handler), name=f"logs:{event_name}")
        self._poll_tasks.add(task)
        task.add_done_callback(self._poll_tasks.discard)
        return Subscription(event_name=event_name, _cancel=task.cancel)

    async def _poll_logs(self, event_name: str, handler: EventHandler) -> None:
        next_block: int | None = None
        while True:
            try:
                latest = await self.w3.eth.block_number
                if next_block is None:
                    next_block = latest + 1
                elif latest >= next_block:
                    for record in await self.query_historical_events(event_name, next_block, latest):
                        handler(record)
                    next_block = latest + 1
            except Exception as err:
                # at-least-once: the block range is retried on the next pass
                logger.warning("log polling for %s failed: %s", event_name, err)
            await asyncio.sleep(self.event_poll_interval)

    async def query_historical_events(
        self,
        event_name: str,
        from_block: int = 0,
        to_block: int | str = "latest",
    ) -> list[EventRecord]:
        contract = self._require_contract()
        try:
            event = getattr(contract.events, event_name)()
            logs = await event.get_logs(from_block=from_block, to_block=to_block)
        except Exception as err:
            raise RemoteCallError(f"getLogs({event_name})", err) from err
        records = [_to_event_record(event_name, log) for log in logs]
        records.sort(key=lambda record: record.ordering_key)
        return records
