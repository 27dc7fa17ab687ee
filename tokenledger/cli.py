#!/usr/bin/env python3
"""
tokenledger command line.

Usage:
    # Create tables
    tokenledger init-db

    # Daily history from one provider, or all of them
    tokenledger backfill --provider coingecko
    tokenledger backfill --provider all --parallel

    # Hourly quote + daily rollup (schedule once per hour)
    tokenledger hourly

    # Inspect a stored day
    tokenledger show 2024-05-01

    # Check the store is writable
    tokenledger sanity
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from typing import List, Optional

from .database import DocumentStore
from .ingest import run_backfills, run_hourly
from .providers import BACKFILL_PROVIDERS, DexScreenerProvider, build_provider
from .utils.config import Config, get_config
from .utils.exceptions import ConfigurationError, TokenLedgerError
from .utils.http import HttpClient
from .utils.logger import get_logger, setup_logger

logger = get_logger("cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tokenledger",
        description="Ingest and reconcile price history for one on-chain asset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create the document tables")

    backfill = sub.add_parser("backfill", help="Backfill daily history from providers")
    backfill.add_argument(
        "--provider",
        choices=BACKFILL_PROVIDERS + ["all"],
        default="all",
        help="Provider to backfill from (default: all)",
    )
    backfill.add_argument(
        "--parallel",
        action="store_true",
        help="Run providers as concurrent pipelines",
    )

    sub.add_parser(
        "hourly",
        help="Record the current hourly quote and roll it into today (schedule once per hour; "
        "a repeat run in the same hour refreshes the quote without adding volume again)",
    )

    show = sub.add_parser("show", help="Print a stored record as JSON")
    show.add_argument("key", help="Day (YYYY-MM-DD) or hour (YYYY-MM-DD-HH)")

    sub.add_parser("sanity", help="Write and read back a test document")
    return parser


def cmd_backfill(args, config: Config, store: DocumentStore) -> int:
    explicit = args.provider != "all"
    names = [args.provider] if explicit else BACKFILL_PROVIDERS
    providers = []
    try:
        for name in names:
            # One HTTP client per provider so parallel pipelines share nothing but the store
            http = HttpClient(timeout=config.ingest.http_timeout)
            try:
                providers.append(build_provider(name, http, config))
            except ConfigurationError as e:
                http.close()
                if explicit:
                    raise
                logger.warning(f"Skipping {name}: {e}")
        if not providers:
            raise ConfigurationError("No backfill provider is configured")

        results = run_backfills(providers, store, config.asset, config.ingest, parallel=args.parallel)
    finally:
        for provider in providers:
            provider.http.close()

    total = sum(r.records_written for r in results)
    for result in results:
        print(result.summary())
    print(f"Total records written: {total}")
    return 0 if all(r.ok for r in results) else 1


def cmd_hourly(config: Config, store: DocumentStore) -> int:
    with HttpClient(timeout=config.ingest.http_timeout) as http:
        provider = DexScreenerProvider(http, config.asset, config.dexscreener)
        result = run_hourly(provider, store, config.asset, config.ingest)
    print(result.summary())
    return 0 if result.ok else 1


def cmd_show(args, config: Config, store: DocumentStore) -> int:
    collection = (
        config.asset.hourly_collection if len(args.key) == 13 else config.asset.daily_collection
    )
    document = store.get(collection, args.key)
    if document is None:
        print(f"No record for {args.key} in {collection}")
        return 1
    print(json.dumps(document, indent=2, sort_keys=True))
    return 0


def cmd_sanity(store: DocumentStore) -> int:
    stamp = datetime.now(timezone.utc).isoformat()
    store.set_merge("sanity", "hello", {"ts": stamp})
    document = store.get("sanity", "hello")
    print(f"[sanity] wrote + read: {document}")
    return 0 if document and document.get("ts") == stamp else 1


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point. Returns the process exit code."""
    args = build_parser().parse_args(argv)
    config = get_config()
    setup_logger(log_level=config.log_level, log_file=config.log_file)

    try:
        store = DocumentStore(config.database)
        store.create_tables()
        if args.command == "init-db":
            return 0
        if args.command == "backfill":
            return cmd_backfill(args, config, store)
        if args.command == "hourly":
            return cmd_hourly(config, store)
        if args.command == "show":
            return cmd_show(args, config, store)
        return cmd_sanity(store)
    except TokenLedgerError as e:
        logger.error(f"{args.command} failed: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
