#!/usr/bin/env python3
"""
Oracle Status Check Script

Checks that the oracle updater is still recording prices. The newest price
record must be younger than two update intervals. Also reports how the recent
records were committed on-chain and how many APY snapshots the newest one has.

Logs warnings for stale data or degraded chain references, which can be used
for alerting.

Usage:
    python scripts/check_oracle_status.py [--symbol FLOW] [--limit 10]

Cron example (every 15 minutes):
    */15 * * * * cd /opt/flow-oracle && venv/bin/python scripts/check_oracle_status.py >> /var/log/flow-oracle/status.log 2>&1
"""

import os
import sys
import logging
import argparse
from collections import Counter
from datetime import datetime, timedelta, timezone
from pathlib import Path

import psycopg2

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from flow_oracle.config import load_config
from flow_oracle.database.connection import DatabaseConnection
from flow_oracle.database.queries import RecordStore
from flow_oracle.errors import ConfigError

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def check_oracle_status(store: RecordStore, symbol: str, interval_seconds: int,
                        limit: int = 10, now: datetime = None) -> int:
    """Check freshness of the newest record. Returns the exit code."""
    now = now or datetime.now(timezone.utc)
    max_age = timedelta(seconds=2 * interval_seconds)

    logger.info("=" * 60)
    logger.info(f"Checking {symbol} oracle status at {now.isoformat()}")
    logger.info("=" * 60)

    records = store.get_latest_price_records(symbol, limit=limit)
    if not records:
        logger.error(f"ALERT: no {symbol} price records found")
        return 1

    for record in records:
        logger.info(f"{record.observed_at.isoformat()}  ${record.price_usd}  "
                    f"{record.chain_status:<11} {record.chain_reference}")

    statuses = Counter(record.chain_status for record in records)
    summary = ', '.join(f"{status}={count}" for status, count in sorted(statuses.items()))
    logger.info(f"Last {len(records)} records by chain status: {summary}")

    latest = records[0]
    snapshots = store.get_snapshots_for_price(latest.record_id)
    logger.info(f"Latest: ${latest.price_usd} ({latest.chain_reference}) at "
                f"{latest.observed_at.isoformat()} with {len(snapshots)} APY snapshot(s)")
    if latest.chain_status != 'transaction':
        logger.warning(f"WARNING: latest price was not committed on-chain ({latest.chain_status})")

    age = now - latest.observed_at
    logger.info("=" * 60)
    if age > max_age:
        logger.error(f"ALERT: latest {symbol} price is {age} old (limit {max_age})")
        return 1

    logger.info("Oracle is up to date")
    return 0


def main():
    parser = argparse.ArgumentParser(description="Check the FLOW price oracle is recording prices")
    parser.add_argument("--config", type=Path, default=None, help="Path to oracle.yaml")
    parser.add_argument("--symbol", default=None, help="Symbol to check (default from config)")
    parser.add_argument("--limit", type=int, default=10, help="Number of recent records to inspect")
    args = parser.parse_args()

    try:
        # The status check never submits, so signing credentials are not needed
        cfg = load_config(args.config, {**os.environ, 'SKIP_BLOCKCHAIN': 'true'})
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 2

    db = DatabaseConnection(cfg.database.url, min_connections=1, max_connections=2)
    try:
        store = RecordStore(db)
        return check_oracle_status(store, args.symbol or cfg.symbol,
                                   cfg.update_interval_seconds, args.limit)
    except psycopg2.Error as e:
        logger.error(f"Status check failed: {e}", exc_info=True)
        return 1
    finally:
        db.close_all()


if __name__ == '__main__':
    sys.exit(main())
