"""Command line entrypoint for cftail."""

import logging
import sys
import time
from typing import Optional, Tuple

import click
from botocore.exceptions import ProfileNotFound

from .aggregate import EventAggregator
from .client import build_client
from .config import (
    DEFAULT_SOUND,
    TailConfig,
    get_max_retries,
    get_max_workers,
    get_poll_interval,
    get_region,
    parse_since,
)
from .errors import AggregateFetchError, ErrorKind, ResourceFetchError, UnmappedStatusError
from .nested import build_stack_info
from .presenter import ConsolePresenter
from .tail import TailEngine, TailExit

logger = logging.getLogger(__name__)

# rebuilds in a row that made no progress before giving up
MAX_STALE_REBUILDS = 3


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # botocore is very chatty at debug level
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _error(message: str) -> None:
    click.echo(f"❌ {message}", err=True)


def _fatal_message(error: AggregateFetchError) -> str:
    inner = error.error
    if inner.kind == ErrorKind.STACK_NOT_FOUND:
        return f"Stack {inner.stack_name} does not exist"
    if inner.kind == ErrorKind.NO_CREDENTIALS:
        return f"No usable AWS credentials found: {inner.message}"
    return str(error)


@click.command()
@click.argument("stack_names", nargs=-1, required=True)
@click.option("--since", help="Show events after this time (epoch seconds or ISO-8601, default now)")
@click.option("--nested/--no-nested", default=False, help="Also tail nested stacks")
@click.option("--show-separators", is_flag=True, help="Print a separator when a stack finishes")
@click.option("--show-notifications", is_flag=True, help="Send a desktop notification when a stack finishes")
@click.option("--sound", default=DEFAULT_SOUND, show_default=True, help="Notification sound (macOS)")
@click.option("--show-outputs", is_flag=True, help="Print stack outputs when a stack finishes")
@click.option("--show-resource-types", is_flag=True, help="Include resource types in event lines")
@click.option("--region", help="AWS region")
@click.option("--profile", help="AWS profile")
@click.option("--poll-interval", type=float, help="Seconds between polls (default CFTAIL_POLL_INTERVAL or 5)")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
def main(stack_names: Tuple[str, ...], since: Optional[str], nested: bool, show_separators: bool,
         show_notifications: bool, sound: str, show_outputs: bool, show_resource_types: bool,
         region: Optional[str], profile: Optional[str], poll_interval: Optional[float], verbose: bool):
    """
    Tail CloudFormation events for STACK_NAMES until they finish deploying.
    """
    _configure_logging(verbose)

    try:
        watermark = parse_since(since)
        interval = poll_interval if poll_interval is not None else get_poll_interval()
        max_workers = get_max_workers()
        max_retries = get_max_retries()
    except ValueError as e:
        raise click.BadParameter(str(e))

    region = region or get_region()
    presenter = ConsolePresenter(show_resource_types=show_resource_types)
    stale_rebuilds = 0

    try:
        while True:
            client = build_client(region=region, profile=profile, max_retries=max_retries)
            stack_info = build_stack_info(client, stack_names, nested)
            logger.debug(f"Watching stacks: {sorted(stack_info.names)}")

            config = TailConfig(
                stack_info=stack_info,
                since=watermark,
                show_separators=show_separators,
                show_notifications=show_notifications,
                show_outputs=show_outputs,
                show_resource_types=show_resource_types,
                sound=sound,
                poll_interval=interval,
            )
            engine = TailEngine(client, presenter, config, aggregator=EventAggregator(client, max_workers))
            outcome = engine.run()

            if outcome == TailExit.CREDENTIALS_EXPIRED:
                if engine.watermark > watermark:
                    stale_rebuilds = 0
                else:
                    stale_rebuilds += 1
                if stale_rebuilds >= MAX_STALE_REBUILDS:
                    _error("AWS credentials expired and could not be refreshed, please re-authenticate")
                    sys.exit(1)

                # carry on from where we got to so nothing is shown twice
                watermark = engine.watermark
                logger.info(f"Credentials expired, rebuilding client from {watermark.isoformat()} in {interval}s")
                time.sleep(interval)
                continue

            sys.exit(0)

    except KeyboardInterrupt:
        click.echo("\n👋 Stopped tailing")
        sys.exit(0)
    except AggregateFetchError as e:
        _error(_fatal_message(e))
        sys.exit(1)
    except ResourceFetchError as e:
        cause = f": {e.__cause__}" if e.__cause__ else ""
        _error(f"Nested stack discovery failed, {e}{cause}")
        sys.exit(1)
    except ProfileNotFound as e:
        _error(str(e))
        sys.exit(1)
    except UnmappedStatusError as e:
        _error(f"Internal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
