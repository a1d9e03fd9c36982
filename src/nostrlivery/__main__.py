"""CLI entry point for Nostrlivery.

Small operator tools around the relay client: watch association events on
the configured relay, send an association request, and look
up a profile.

Examples:
    ```bash
    python -m nostrlivery verify
    python -m nostrlivery --config config/nostrlivery.yaml verify --limit 10 --duration 60
    PRIVATE_KEY=nsec1... python -m nostrlivery request npub1... --wait 30
    python -m nostrlivery profile npub1...
    ```
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import asdict
from pathlib import Path

from nostrlivery.core.config import AppConfig
from nostrlivery.core.exceptions import NostrliveryError
from nostrlivery.core.logger import Logger, StructuredFormatter
from nostrlivery.models.constants import AssociationStatus
from nostrlivery.models.event import SignedEvent
from nostrlivery.models.filter import Filter
from nostrlivery.services.association import AssociationProtocol
from nostrlivery.services.directory import Directory
from nostrlivery.utils.keys import KeysConfig
from nostrlivery.utils.subscriptions import SubscriptionManager
from nostrlivery.utils.transport import RelayConnection


DEFAULT_CONFIG = Path("config") / "nostrlivery.yaml"

logger = Logger("cli")


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(prog="nostrlivery", description="Nostrlivery relay tools")

    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG,
        help=f"Config path (default: {DEFAULT_CONFIG})",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Log level (default: INFO)",
    )

    commands = parser.add_subparsers(dest="command", required=True)

    verify = commands.add_parser("verify", help="Log association events seen on the relay")
    verify.add_argument("--limit", type=int, help="Backlog size (default: events.limit)")
    verify.add_argument(
        "--duration",
        type=float,
        help="Seconds to listen (default: until interrupted)",
    )

    request = commands.add_parser("request", help="Send an association request to a driver")
    request.add_argument("driver", help="Driver public key (npub1... or hex)")
    request.add_argument(
        "--wait",
        type=float,
        default=0.0,
        help="Seconds to wait for the driver's answer (default: do not wait)",
    )

    profile = commands.add_parser("profile", help="Show the newest profile of a key")
    profile.add_argument("npub", help="Public key (npub1... or hex)")

    return parser.parse_args(argv)


def setup_logging(level: str) -> None:
    """Install a ``StructuredFormatter`` on the root logger."""
    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    logging.root.addHandler(handler)
    logging.root.setLevel(getattr(logging, level))


def load_config(path: Path) -> AppConfig:
    """Load *path* if it exists, then apply environment overrides."""
    if path.exists():
        config = AppConfig.from_yaml(path)
    else:
        logger.debug("config_not_found", path=str(path))
        config = AppConfig()
    return config.with_env_overrides()


async def run_verify(
    config: AppConfig, subscriptions: SubscriptionManager, limit: int | None, duration: float | None
) -> int:
    """Log the backlog and live association events until *duration* elapses.

    Returns 1 if the relay drops the connection first.
    """
    kind = config.events.association_request_kind
    received = 0

    def on_event(event: SignedEvent) -> None:
        nonlocal received
        received += 1
        logger.info("event", id=event.id, pubkey=event.pubkey, created_at=event.created_at)

    def on_end_of_stored() -> None:
        logger.info("backlog_received", events=received)

    dropped = asyncio.Event()
    remove_listener = subscriptions.connection.add_close_listener(dropped.set)
    cancel = await subscriptions.listen(
        Filter(kinds=[kind], limit=limit or config.events.limit), on_event, on_end_of_stored
    )
    logger.info("listening", url=config.relay.url, kind=kind)
    try:
        await asyncio.wait_for(dropped.wait(), timeout=duration)
    except TimeoutError:
        pass
    finally:
        cancel()
        remove_listener()

    logger.info("verify_completed", url=config.relay.url, kind=kind, events=received)
    if dropped.is_set():
        logger.error("connection_lost", url=config.relay.url)
        return 1
    return 0


async def run_request(
    config: AppConfig, subscriptions: SubscriptionManager, driver: str, wait: float
) -> int:
    secret = KeysConfig().secret_key.get_secret_value()
    protocol = AssociationProtocol(
        subscriptions, config=config.association, events=config.events
    )
    async with protocol:
        event = await protocol.request_association(secret, driver)
        logger.info("request_published", id=event.id, driver=driver)
        if wait <= 0:
            return 0

        deadline = asyncio.get_running_loop().time() + wait
        while asyncio.get_running_loop().time() < deadline:
            association = protocol.association_for(driver)
            if association is not None and association.status.is_terminal:
                break
            await asyncio.sleep(0.2)

    association = protocol.association_for(driver)
    status = association.status if association else AssociationStatus.PENDING
    logger.info("request_status", driver=driver, status=status.value)
    return 0 if status is AssociationStatus.ACCEPTED else 2


async def run_profile(subscriptions: SubscriptionManager, npub: str) -> int:
    profile = await Directory(subscriptions).fetch_profile(npub)
    print(json.dumps(asdict(profile), indent=2, ensure_ascii=False))  # noqa: T201
    return 0


async def main(argv: list[str] | None = None) -> int:
    """Main entry point: parse args, load config, and run one command."""
    args = parse_args(argv)
    setup_logging(args.log_level)

    try:
        config = load_config(args.config)
    except (NostrliveryError, FileNotFoundError) as e:
        logger.error("config_failed", error=str(e))
        return 1

    connection = RelayConnection.from_config(config.relay)
    subscriptions = SubscriptionManager(
        connection, prefix=args.command, default_timeout=config.relay.timeout
    )
    try:
        async with connection:
            if args.command == "verify":
                return await run_verify(config, subscriptions, args.limit, args.duration)
            if args.command == "request":
                return await run_request(config, subscriptions, args.driver, args.wait)
            return await run_profile(subscriptions, args.npub)
    except (NostrliveryError, ValueError) as e:
        logger.error(f"{args.command}_failed", error=str(e))
        return 1


def cli() -> None:
    """Synchronous entry point for console_scripts."""
    try:
        code = asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("interrupted")
        code = 130
    sys.exit(code)


if __name__ == "__main__":
    cli()
