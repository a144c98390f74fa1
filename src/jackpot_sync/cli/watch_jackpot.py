"""Watch a jackpot contract and log its round, leaderboard and payout views."""

import argparse
import asyncio
import logging
from decimal import Decimal, InvalidOperation

from dotenv import load_dotenv

from jackpot_sync.classes.action_dispatcher import DEPOSIT, DISTRIBUTE, SETTLE, START_NEW_ROUND
from jackpot_sync.classes.errors import GatewayConnectionError
from jackpot_sync.classes.gateway import SessionMode
from jackpot_sync.classes.session import JackpotSession
from jackpot_sync.classes.view_state import render_lines
from jackpot_sync.classes.web3_gateway import Web3Gateway
from jackpot_sync.config import ConfigError, Settings, load_settings
from jackpot_sync.logging import configure_logging

logger = logging.getLogger(__name__)

ACTION_CHOICES = {
    "deposit": DEPOSIT,
    "settle": SETTLE,
    "start": START_NEW_ROUND,
    "distribute": DISTRIBUTE,
}


def positive_decimal(value: str) -> Decimal:
    """Validate a positive decimal amount such as ``0.01``."""
    try:
        amount = Decimal(value)
    except InvalidOperation as exc:
        raise argparse.ArgumentTypeError(f"Not a valid amount: '{value}'.") from exc
    if amount <= 0:
        raise argparse.ArgumentTypeError(f"Amount must be positive: '{value}'.")
    return amount


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("-c", "--config", help="Path to config YAML (default: config.yaml at repo root)")
    parser.add_argument("--sign", action="store_true", help="Connect in signing mode (needs JACKPOT_PRIVATE_KEY)")
    parser.add_argument("-a", "--action", choices=ACTION_CHOICES, help="Submit one action after connecting")
    parser.add_argument("--value", type=positive_decimal, help="Deposit amount in whole units")
    parser.add_argument("--refresh", type=float, default=5.0, help="Seconds between rendered views")
    parser.add_argument("--once", action="store_true", help="Render a single view and exit")
    parser.add_argument("-q", "--quiet", action="store_true", help="Decrease verbosity")
    args = parser.parse_args(argv)
    if args.action and not args.sign:
        parser.error("--action requires --sign")
    if args.action == "deposit" and args.value is None:
        parser.error("--action deposit requires --value")
    return args


async def run_action(session: JackpotSession, action: str, value: Decimal | None) -> bool:
    dispatcher = session.dispatcher
    if dispatcher is None:
        logger.error("session cannot sign transactions; %s skipped", action)
        return False

    action_name = ACTION_CHOICES[action]
    if action_name == DEPOSIT:
        ok = await dispatcher.deposit(value)
    elif action_name == SETTLE:
        ok = await dispatcher.settle()
    elif action_name == START_NEW_ROUND:
        ok = await dispatcher.start_new_round()
    else:
        ok = await dispatcher.distribute()

    if not ok:
        logger.error("%s failed: %s", action, dispatcher.errors[action_name])
    return ok


def log_view(session: JackpotSession) -> None:
    for line in render_lines(session.view()):
        logger.info(line)


async def watch(settings: Settings, args: argparse.Namespace) -> int:
    mode = SessionMode.SIGNING if args.sign else SessionMode.READ_ONLY
    try:
        gateway = Web3Gateway.from_settings(settings)
    except GatewayConnectionError as err:
        logger.error("could not connect: %s", err)
        return 1
    except (OSError, ValueError) as err:
        logger.error("could not load contract ABI from %s: %s", settings.abi_path, err)
        return 2

    session = JackpotSession(gateway, settings, mode=mode)
    try:
        await session.start()
    except GatewayConnectionError as err:
        logger.error("could not connect: %s", err)
        await gateway.disconnect()
        return 1

    status = 0
    try:
        if args.action and not await run_action(session, args.action, args.value):
            status = 1
        log_view(session)
        while not args.once:
            await asyncio.sleep(args.refresh)
            log_view(session)
    finally:
        await session.stop()
    return status


def _init_runtime() -> None:
    """Initialize runtime-only side effects for CLI execution."""
    load_dotenv()
    configure_logging()


def main(argv: list[str] | None = None) -> int:
    _init_runtime()
    args = parse_args(argv)
    if args.quiet:
        logging.getLogger().setLevel(logging.INFO)

    try:
        settings = load_settings(args.config)
    except ConfigError as err:
        logger.error("invalid configuration: %s", err)
        return 2

    try:
        return asyncio.run(watch(settings, args))
    except KeyboardInterrupt:
        logger.info("interrupted")
        return 0


if __name__ == "__main__":
    raise SystemExit(main())
