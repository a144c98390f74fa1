"""jackpot_sync configuration helpers.

Settings come from a YAML file (``config.yaml`` at the repo root by default)
with a handful of environment overrides for deployment-specific values.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

import yaml

from jackpot_sync.paths import repo_file

DEFAULT_CONFIG_FILE = "config.yaml"
MAX_BASIS_POINTS = 10_000


class ConfigError(ValueError):
    """Raised when the configuration file holds an unusable value."""


class TimerConvention(str, Enum):
    COUNTDOWN = "countdown"  # accessor reports seconds left and the end timestamp
    ELAPSED = "elapsed"  # accessor reports seconds elapsed and the start timestamp


class PayoutRecordShape(str, Enum):
    AGGREGATE = "aggregate"
    PER_WINNER = "per_winner"


class TokenKind(str, Enum):
    NATIVE = "native"
    TOKEN = "token"


@dataclass(frozen=True)
class TokenPolicy:
    kind: TokenKind = TokenKind.NATIVE
    # empty method name means a plain value transfer to the contract address
    deposit_method: str = ""
    token_decimals: int = 18

    @property
    def token_gated(self) -> bool:
        return self.kind is TokenKind.TOKEN


@dataclass(frozen=True)
class GameVariant:
    timer_convention: TimerConvention = TimerConvention.COUNTDOWN
    fee_basis_points: int = 0
    token_policy: TokenPolicy = field(default_factory=TokenPolicy)
    payout_record_shape: PayoutRecordShape = PayoutRecordShape.AGGREGATE


@dataclass(frozen=True)
class TimingSettings:
    poll_interval: float = 5.0
    tick_interval: float = 1.0
    round_duration: int = 600
    extension_window: int = 60
    extension_increment: int = 3


@dataclass(frozen=True)
class ContractMethods:
    game_state: str = "getGameState"
    all_transactions: str = "getAllTransactions"
    accepted_token: str = "acceptedToken"
    minimum_deposit: str = "minimumDeposit"
    settle: str = "settle"
    start_new_round: str = "startNewRound"
    distribute: str = "distribute"
    deposit_event: str = "Deposit"
    round_started_event: str = "RoundStarted"
    round_ended_event: str = "RoundEnded"
    payout_event: str = "WinnersPaid"


@dataclass(frozen=True)
class Settings:
    rpc_url: str = ""
    contract_address: str = ""
    abi_path: str | None = None
    private_key: str | None = None
    start_block: int = 0
    explorer_url: str = "https://sepolia.etherscan.io"
    max_recent_depositors: int = 5
    leaderboard_size: int = 10
    event_poll_interval: float = 2.0
    receipt_timeout: float = 180.0
    variant: GameVariant = field(default_factory=GameVariant)
    timing: TimingSettings = field(default_factory=TimingSettings)
    methods: ContractMethods = field(default_factory=ContractMethods)


def _enum_value(enum_cls: type[Enum], raw: Any, name: str) -> Any:
    try:
        return enum_cls(str(raw).strip().lower())
    except ValueError as exc:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ConfigError(f"{name} must be one of: {allowed} (got {raw!r})") from exc


def _section(data: Mapping[str, Any], key: str) -> Mapping[str, Any]:
    value = data.get(key) or {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"'{key}' must be a mapping")
    return value


def resolve_variant(data: Mapping[str, Any]) -> GameVariant:
    token_data = _section(data, "token_policy")
    token_policy = TokenPolicy(
        kind=_enum_value(TokenKind, token_data.get("kind", TokenKind.NATIVE.value), "token_policy.kind"),
        deposit_method=str(token_data.get("deposit_method", "") or ""),
        token_decimals=int(token_data.get("token_decimals", 18)),
    )
    if token_policy.token_gated and not token_policy.deposit_method:
        raise ConfigError("token_policy.deposit_method is required for token-gated deposits")

    fee = int(data.get("fee_basis_points", 0))
    if not 0 <= fee <= MAX_BASIS_POINTS:
        raise ConfigError(f"fee_basis_points must be within 0..{MAX_BASIS_POINTS} (got {fee})")

    return GameVariant(
        timer_convention=_enum_value(
            TimerConvention,
            data.get("timer_convention", TimerConvention.COUNTDOWN.value),
            "timer_convention",
        ),
        fee_basis_points=fee,
        token_policy=token_policy,
        payout_record_shape=_enum_value(
            PayoutRecordShape,
            data.get("payout_record_shape", PayoutRecordShape.AGGREGATE.value),
            "payout_record_shape",
        ),
    )


def resolve_timing(data: Mapping[str, Any]) -> TimingSettings:
    defaults = TimingSettings()
    timing = TimingSettings(
        poll_interval=float(data.get("poll_interval", defaults.poll_interval)),
        tick_interval=float(data.get("tick_interval", defaults.tick_interval)),
        round_duration=int(data.get("round_duration", defaults.round_duration)),
        extension_window=int(data.get("extension_window", defaults.extension_window)),
        extension_increment=int(data.get("extension_increment", defaults.extension_increment)),
    )
    if timing.poll_interval <= 0 or timing.tick_interval <= 0:
        raise ConfigError("poll_interval and tick_interval must be positive")
    if timing.round_duration <= 0:
        raise ConfigError("round_duration must be positive")
    if not 0 <= timing.extension_window <= timing.round_duration:
        raise ConfigError("extension_window must be within 0..round_duration")
    if timing.extension_increment <= 0:
        raise ConfigError("extension_increment must be positive")
    return timing


def resolve_settings(data: Mapping[str, Any]) -> Settings:
    """Build Settings from a parsed config mapping."""
    defaults = Settings()
    methods_data = _section(data, "methods")
    unknown_methods = set(methods_data) - set(ContractMethods.__dataclass_fields__)
    if unknown_methods:
        raise ConfigError(f"unknown contract method keys: {', '.join(sorted(unknown_methods))}")

    for key in ("max_recent_depositors", "leaderboard_size"):
        if int(data.get(key, getattr(defaults, key))) < 1:
            raise ConfigError(f"{key} must be at least 1")

    return Settings(
        rpc_url=str(data.get("rpc_url", "") or ""),
        contract_address=str(data.get("contract_address", "") or ""),
        abi_path=data.get("abi_path") or None,
        private_key=data.get("private_key") or None,
        start_block=int(data.get("start_block", defaults.start_block)),
        explorer_url=str(data.get("explorer_url", defaults.explorer_url)).rstrip("/"),
        max_recent_depositors=int(data.get("max_recent_depositors", defaults.max_recent_depositors)),
        leaderboard_size=int(data.get("leaderboard_size", defaults.leaderboard_size)),
        event_poll_interval=float(data.get("event_poll_interval", defaults.event_poll_interval)),
        receipt_timeout=float(data.get("receipt_timeout", defaults.receipt_timeout)),
        variant=resolve_variant(_section(data, "variant")),
        timing=resolve_timing(_section(data, "timing")),
        methods=ContractMethods(**{key: str(value) for key, value in methods_data.items()}),
    )


def load_config_data(path: str | Path | None = None) -> dict[str, Any]:
    config_path = Path(path) if path else repo_file(DEFAULT_CONFIG_FILE)
    if not config_path.is_file():
        return {}
    with open(config_path, "r", encoding="utf-8") as fp:
        data = yaml.safe_load(fp) or {}
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    return data


def apply_environment_overrides(data: dict[str, Any]) -> dict[str, Any]:
    merged = dict(data)
    if os.getenv("JACKPOT_RPC_URL"):
        merged["rpc_url"] = os.environ["JACKPOT_RPC_URL"]
    if os.getenv("JACKPOT_CONTRACT_ADDRESS"):
        merged["contract_address"] = os.environ["JACKPOT_CONTRACT_ADDRESS"]
    if os.getenv("JACKPOT_START_BLOCK"):
        merged["start_block"] = os.environ["JACKPOT_START_BLOCK"]
    # keys only ever come from the environment, never from the checked-in file
    merged["private_key"] = os.getenv("JACKPOT_PRIVATE_KEY") or None
    return merged


def load_settings(path: str | Path | None = None) -> Settings:
    data = apply_environment_overrides(load_config_data(path))
    try:
        return resolve_settings(data)
    except ConfigError:
        raise
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"invalid configuration value: {exc}") from exc
