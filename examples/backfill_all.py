"""
Example script for backfilling daily history from every provider.

This script demonstrates how to:
1. Build each history provider from configuration
2. Run one backfill pipeline per provider against a shared store
3. Inspect the merged record for the most recent day
"""

import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tokenledger.database import DocumentStore
from tokenledger.ingest import run_backfill
from tokenledger.providers import BACKFILL_PROVIDERS, build_provider
from tokenledger.utils.config import get_config
from tokenledger.utils.exceptions import ConfigurationError
from tokenledger.utils.http import HttpClient
from tokenledger.utils.logger import setup_logger

logger = setup_logger("tokenledger", log_level="INFO")


def main():
    """Backfill from all providers, one after another."""
    config = get_config()

    logger.info("Initializing document store...")
    store = DocumentStore(config.database)
    store.create_tables()

    results = []
    with HttpClient(timeout=config.ingest.http_timeout) as http:
        for name in BACKFILL_PROVIDERS:
            logger.info("=" * 50)
            logger.info(f"BACKFILL {name.upper()}")
            logger.info("=" * 50)
            try:
                provider = build_provider(name, http, config)
            except ConfigurationError as e:
                logger.warning(f"Skipping {name}: {e}")
                continue
            results.append(run_backfill(provider, store, config.asset, config.ingest))

    for result in results:
        logger.info(result.summary())

    days = store.keys(config.asset.daily_collection)
    if days:
        latest = store.get(config.asset.daily_collection, days[-1])
        logger.info(f"Latest day {days[-1]}:\n{json.dumps(latest, indent=2)}")


if __name__ == "__main__":
    main()
