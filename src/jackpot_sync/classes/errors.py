"""Failure taxonomy shared by the gateway and the components built on it."""

from __future__ import annotations


class JackpotError(Exception):
    """Base class for every failure raised by jackpot_sync."""


class GatewayConnectionError(JackpotError, ConnectionError):
    """The contract gateway could not be reached."""


class RemoteCallError(JackpotError):
    """A read (or any non-transaction RPC) failed in transport or decoding."""

    def __init__(self, method: str, cause: object = None) -> None:
        self.method = method
        self.cause = cause
        message = f"call to {method} failed"
        if cause is not None:
            message += f": {cause}"
        super().__init__(message)


class TransactionRejected(JackpotError):
    """The signer declined (or could not) sign the transaction."""

    def __init__(self, reason: str = "transaction rejected by signer") -> None:
        self.reason = reason
        super().__init__(reason)


class TransactionReverted(JackpotError):
    """The contract refused the transaction; ``reason`` is passed through verbatim."""

    def __init__(self, reason: str) -> None:
        self.reason = reason
        super().__init__(reason)


class EventDecodeError(JackpotError):
    def __init__(self, event_name: str, detail: str) -> None:
        self.event_name = event_name
        self.detail = detail
        super().__init__(f"could not decode {event_name}: {detail}")


class ActionUnavailable(JackpotError):
    def __init__(self, action: str, phase: object) -> None:
        self.action = action
        self.phase = phase
        super().__init__(f"{action} is not available while the round is {phase}")
