"""
CLI for running and operating the voucher authorizer.

Usage:
    sri-authorizer init-db [--config <path>]
    sri-authorizer decode <access_key>
    sri-authorizer process <access_key> [--config <path>]
    sri-authorizer run-dispatcher [--once] [--consumer <name>] [--config <path>]
    sri-authorizer run-worker [--once] [--config <path>]
    sri-authorizer dead-letters [--limit N] [--config <path>]
    sri-authorizer redrive [--limit N] [--config <path>]
"""

import argparse
import json
import signal
import sys

from sri_authorizer.app import Application
from sri_authorizer.config.settings import Settings, load_settings
from sri_authorizer.core import access_key as access_key_codec
from sri_authorizer.core.errors import AuthorizerError, ConfigurationError
from sri_authorizer.observability import metrics
from sri_authorizer.observability.logger import configure_logging, get_logger
from sri_authorizer.runtime.pollers import DEFAULT_CONSUMER, Poller

logger = get_logger(__name__)

# Poller stopped by the signal handler
_active_poller: Poller | None = None


def signal_handler(signum, frame):  # type: ignore[no-untyped-def]
    """
    Handle shutdown signals (SIGINT, SIGTERM) by letting the running poller
    finish its current batch.

    Args:
        signum: Signal number
        frame: Current stack frame
    """
    signal_name = signal.Signals(signum).name
    logger.info(f"Received {signal_name} signal, initiating graceful shutdown...")
    if _active_poller is not None:
        _active_poller.request_shutdown()


def _settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config)
    configure_logging(settings.log_level, settings.log_format)
    return settings


def _print(payload: dict) -> None:
    print(json.dumps(payload, indent=2, default=str))


def init_db(args: argparse.Namespace) -> int:
    """Create the tables, change trigger, queue and topic storage."""
    settings = _settings(args)
    with Application(settings) as app:
        app.schema_manager().create_schema()
    _print({"status": "ok", "voucher_table": settings.voucher_table})
    return 0


def decode_key(args: argparse.Namespace) -> int:
    """Print the identity encoded in an access key."""
    identity = access_key_codec.decode(args.access_key)
    _print(
        {
            "company_id": access_key_codec.company_id(args.access_key),
            "voucher_id": identity.voucher_key,
            **identity.model_dump(mode="json"),
        }
    )
    return 0


def process_key(args: argparse.Namespace) -> int:
    """Authorize a single voucher right away, bypassing the queue."""
    settings = _settings(args)
    with Application(settings) as app:
        status = app.worker.process_voucher(args.access_key)
    _print({"access_key": args.access_key, "status": status.value})
    return 0


def _run_poller(poller: Poller, once: bool) -> int:
    global _active_poller

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    _active_poller = poller
    try:
        batches = poller.run(once=once)
    finally:
        _active_poller = None

    _print({"status": "stopped", "batches": batches})
    return 0


def run_dispatcher(args: argparse.Namespace) -> int:
    """Consume the change feed and dispatch status transitions."""
    settings = _settings(args)
    if settings.metrics_port and not args.once:
        metrics.start_metrics_server(settings.metrics_port)

    with Application(settings) as app:
        return _run_poller(app.change_feed_poller(consumer=args.consumer), args.once)


def run_worker(args: argparse.Namespace) -> int:
    """Consume the authorization queue."""
    settings = _settings(args)
    if settings.metrics_port and not args.once:
        metrics.start_metrics_server(settings.metrics_port)

    with Application(settings) as app:
        return _run_poller(app.work_queue_poller(), args.once)


def dead_letters(args: argparse.Namespace) -> int:
    """List messages parked in the dead-letter queue."""
    settings = _settings(args)
    with Application(settings) as app:
        messages = app.queue.list_dead_letters(limit=args.limit)
        _print(
            {
                "dead_letter_queue": app.queue.dead_letter_queue,
                "count": len(messages),
                "messages": messages,
            }
        )
    return 0


def redrive(args: argparse.Namespace) -> int:
    """Move dead-lettered messages back to the authorization queue."""
    settings = _settings(args)
    with Application(settings) as app:
        moved = app.queue.redrive(limit=args.limit)
    _print({"queue": settings.authorizer_queue, "redriven": moved})
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sri-authorizer",
        description="SRI electronic voucher authorization pipeline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Create tables and the change trigger
  %(prog)s init-db --config config/authorizer.yaml

  # Run the dispatcher and the worker (one process each)
  %(prog)s run-dispatcher
  %(prog)s run-worker

  # Inspect and redrive failed authorizations
  %(prog)s dead-letters --limit 20
  %(prog)s redrive --limit 20
        """,
    )

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        help="Path to YAML configuration file (environment variables take precedence)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("init-db", parents=[common], help="Create database objects")

    decode_parser = subparsers.add_parser("decode", help="Decode an access key")
    decode_parser.add_argument("access_key", help="Voucher access key")

    process_parser = subparsers.add_parser("process", parents=[common], help="Authorize one voucher now")
    process_parser.add_argument("access_key", help="Voucher access key")

    dispatcher_parser = subparsers.add_parser(
        "run-dispatcher", parents=[common], help="Run the change feed dispatcher"
    )
    dispatcher_parser.add_argument("--once", action="store_true", help="Process one batch and exit")
    dispatcher_parser.add_argument(
        "--consumer",
        default=DEFAULT_CONSUMER,
        help=f"Checkpoint name (default: {DEFAULT_CONSUMER})",
    )

    worker_parser = subparsers.add_parser("run-worker", parents=[common], help="Run the authorization worker")
    worker_parser.add_argument("--once", action="store_true", help="Process one batch and exit")

    for name, help_text in (
        ("dead-letters", "List dead-lettered authorization messages"),
        ("redrive", "Move dead-lettered messages back to the queue"),
    ):
        sub = subparsers.add_parser(name, parents=[common], help=help_text)
        sub.add_argument("--limit", type=int, default=100, help="Maximum messages (default: 100)")

    return parser


COMMANDS = {
    "init-db": init_db,
    "decode": decode_key,
    "process": process_key,
    "run-dispatcher": run_dispatcher,
    "run-worker": run_worker,
    "dead-letters": dead_letters,
    "redrive": redrive,
}


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the authorizer CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(json.dumps({"status": "error", "error": str(e)}), file=sys.stderr)
        return 2
    except AuthorizerError as e:
        logger.error(f"{args.command} failed: {e}", extra={"access_key": e.access_key})
        print(json.dumps({"status": "error", "error": str(e)}), file=sys.stderr)
        return 1
    except Exception as e:
        logger.error(f"{args.command} failed: {e}", exc_info=True)
        print(json.dumps({"status": "error", "error": str(e)}), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
