"""
Example script for the hourly quote path.

This script demonstrates how to:
1. Query DexScreener for every venue trading the token
2. Select the canonical quote
3. Write the hourly record and roll it into today's daily record
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tokenledger.database import DocumentStore
from tokenledger.ingest import run_hourly
from tokenledger.providers import DexScreenerProvider
from tokenledger.utils.config import get_config
from tokenledger.utils.http import HttpClient
from tokenledger.utils.logger import setup_logger

logger = setup_logger("tokenledger", log_level="INFO")


def main():
    """Run one hourly ingestion."""
    config = get_config()

    store = DocumentStore(config.database)
    store.create_tables()

    with HttpClient(timeout=config.ingest.http_timeout) as http:
        provider = DexScreenerProvider(http, config.asset, config.dexscreener)
        logger.info(f"Candidate endpoints: {provider.endpoints()}")

        result = run_hourly(provider, store, config.asset, config.ingest)
    if not result.ok:
        logger.error(f"Hourly ingestion failed: {result.error}")
        sys.exit(1)
    logger.info("Hourly ingestion completed!")


if __name__ == "__main__":
    main()
