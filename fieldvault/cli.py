"""
FieldVault command line.

Usage:
    fieldvault generate-key
    fieldvault migrate [--dry-run] [--batch-size=100] [--collection=messages]
    fieldvault rotate [--preview] [--batch-size=100] [--collection=messages]
    fieldvault verify [--limit=10] [--collection=messages]

Environment:
    MASTER_SECRET - current master secret (base64, 32 bytes)
    NEW_MASTER_SECRET - new master secret (rotate only)
    APPWRITE_ENDPOINT, APPWRITE_PROJECT_ID, APPWRITE_API_KEY, APPWRITE_DATABASE_ID
"""
import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Callable
from typing import Optional

from pydantic import ValidationError

from . import conf
from .appwrite import AppwriteDocumentStore
from .exceptions import ConfigurationError
from .store import DocumentStore
from .vault.batch import RunReport
from .vault.config import (
    MigrationConfig,
    RotationConfig,
    VerifyConfig,
    generate_master_key,
)
from .vault.key_rotation import rotate_master_key
from .vault.migration import migrate_plaintext
from .vault.verify import VerifyReport, verify_sample

logger = logging.getLogger("fieldvault")

StoreFactory = Callable[[], DocumentStore]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="fieldvault",
        description="Envelope encryption maintenance for document-store fields",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("generate-key", help="print a new base64 master secret")

    def batch_options(sub: argparse.ArgumentParser) -> None:
        sub.add_argument("--batch-size", type=int, default=conf.DEFAULT_BATCH_SIZE)
        sub.add_argument("--collection", default=None, help="only this collection")
        sub.add_argument(
            "--yes", action="store_true",
            help=f"skip the {conf.LIVE_RUN_DELAY}s countdown before a live run",
        )

    migrate = commands.add_parser("migrate", help="encrypt legacy plaintext fields")
    migrate.add_argument("--dry-run", action="store_true", help="do not write changes")
    migrate.add_argument(
        "--json", dest="store_as_json", action="store_true",
        help="store encrypted records as JSON text",
    )
    batch_options(migrate)

    rotate = commands.add_parser("rotate", help="re-wrap data keys under NEW_MASTER_SECRET")
    rotate.add_argument("--preview", action="store_true", help="do not write changes")
    batch_options(rotate)

    verify = commands.add_parser("verify", help="decrypt a sample of records")
    verify.add_argument("--limit", type=int, default=conf.DEFAULT_VERIFY_LIMIT)
    verify.add_argument("--collection", default=None, help="only this collection")
    return parser


def print_report(title: str, report: RunReport) -> None:
    print(f"\n{title}")
    print("=" * len(title))
    for summary in report.summaries:
        print(f"\n{summary.collection}:")
        for key, value in summary.as_dict().items():
            if key != "collection":
                print(f"  {key.capitalize()}: {value}")
        if summary.legacy:
            print(f"  Legacy (needs re-encryption): {summary.legacy}")
    print("\nGrand Total:")
    for key, value in report.total.items():
        print(f"  {key.capitalize()}: {value}")
    if report.interrupted:
        print("\nRun interrupted; re-run to resume.")


def print_verify_report(report: VerifyReport) -> None:
    print("\nDecryption Check")
    print("================")
    for summary in report.summaries:
        print(
            f"{summary.collection}: tested={summary.tested} "
            f"succeeded={summary.succeeded} failed={summary.failed}"
        )
    total = report.total
    print(
        f"\nTotal: tested={total['tested']} "
        f"succeeded={total['succeeded']} failed={total['failed']}"
    )


def _install_signal_handlers(stop_event: asyncio.Event) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, stop_event.set)
        except (NotImplementedError, RuntimeError):
            # no loop signal support on this platform
            pass


async def _countdown(stop_event: asyncio.Event) -> bool:
    """Wait before a live run; False if the operator interrupted it."""
    logger.warning(
        "LIVE mode: data will be modified. Press Ctrl+C within %d seconds to cancel...",
        conf.LIVE_RUN_DELAY,
    )
    try:
        await asyncio.wait_for(stop_event.wait(), timeout=conf.LIVE_RUN_DELAY)
    except asyncio.TimeoutError:
        return True
    logger.warning("Cancelled before any change was made")
    return False


async def run(args: argparse.Namespace, store_factory: StoreFactory) -> int:
    stop_event = asyncio.Event()
    _install_signal_handlers(stop_event)

    if args.command == "migrate":
        config = MigrationConfig.from_env(
            dry_run=args.dry_run,
            batch_size=args.batch_size,
            collection_filter=args.collection,
            store_as_json=args.store_as_json,
        )
        config.selected_collections()
        if not config.dry_run and not args.yes and not await _countdown(stop_event):
            return 1
        async with store_factory() as store:
            report = await migrate_plaintext(store, config, stop_event)
        print_report("Migration Summary", report)
        return 1 if report.total["errors"] else 0

    if args.command == "rotate":
        config = RotationConfig.from_env(
            preview=args.preview,
            batch_size=args.batch_size,
            collection_filter=args.collection,
        )
        config.selected_collections()
        if not config.preview and not args.yes and not await _countdown(stop_event):
            return 1
        async with store_factory() as store:
            report = await rotate_master_key(store, config, stop_event)
        print_report("Rotation Summary", report)
        if not config.preview and not report.total["errors"]:
            print("\nRemember to set MASTER_SECRET to the new secret.")
        return 1 if report.total["errors"] else 0

    config = VerifyConfig.from_env(limit=args.limit, collection_filter=args.collection)
    async with store_factory() as store:
        verify_report = await verify_sample(store, config)
    print_verify_report(verify_report)
    return 0 if verify_report.ok else 1


def main(
    argv: Optional[list[str]] = None,
    store_factory: Optional[StoreFactory] = None,
) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )
    if args.command == "generate-key":
        print(generate_master_key())
        return 0
    try:
        return asyncio.run(run(args, store_factory or AppwriteDocumentStore.from_env))
    except ConfigurationError as err:
        logger.error("Configuration error: %s", err)
        return 1
    except ValidationError as err:
        logger.error("Invalid configuration: %s", err)
        return 1


if __name__ == "__main__":
    sys.exit(main())
