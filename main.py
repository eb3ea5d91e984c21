import argparse
import logging
import sys
from typing import List, Optional, TextIO

import structlog

from config import Settings, get_settings
from csv_io import read_records, write_snapshot
from errors import InputError, MalformedRecordError
from models import ResolvePolicy, SnapshotOrder
from services import get_ledger_service

logger = structlog.get_logger()


def configure_logging(settings: Settings) -> None:
    """Send structured logs to stderr so stdout only carries the snapshot."""
    logging.basicConfig(
        stream=sys.stderr,
        format="%(message)s",
        level=settings.log_level.upper(),
        force=True,
    )

    if settings.log_format == "text":
        renderer = structlog.dev.ConsoleRenderer(colors=False)
    else:
        renderer = structlog.processors.JSONRenderer()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def build_parser(settings: Settings) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ledger-engine",
        description="Replay a CSV log of transactions and print the final account balances as CSV.",
    )
    parser.add_argument("input", help="path of the input CSV file")
    parser.add_argument(
        "--snapshot-order",
        choices=[order.value for order in SnapshotOrder],
        default=settings.snapshot_order.value,
        help="order of the output rows (default: %(default)s)",
    )
    parser.add_argument(
        "--resolve-policy",
        choices=[policy.value for policy in ResolvePolicy],
        default=settings.resolve_policy.value,
        help="how a resolve moves disputed funds (default: %(default)s)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {settings.app_version}")
    return parser


def run(argv: Optional[List[str]] = None, stdout: Optional[TextIO] = None,
        settings: Optional[Settings] = None) -> int:
    if settings is None:
        settings = get_settings()
    if stdout is None:
        stdout = sys.stdout
    args = build_parser(settings).parse_args(argv)
    configure_logging(settings)

    log = logger.bind(app=settings.app_name, input=args.input)
    service = get_ledger_service(ResolvePolicy(args.resolve_policy))
    try:
        with open(args.input, newline="", encoding=settings.input_encoding) as file:
            service.process(read_records(file))
    except OSError as e:
        log.error("Run aborted", error=str(e), error_code="IO_ERROR")
        return 1
    except MalformedRecordError as e:
        log.error("Run aborted", error=str(e), error_code=e.code, line=e.line, record=e.record)
        return 1
    except InputError as e:
        log.error("Run aborted", error=str(e), error_code=e.code)
        return 1

    write_snapshot(service.snapshot(SnapshotOrder(args.snapshot_order)), stdout)
    return 0


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
