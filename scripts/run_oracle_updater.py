#!/usr/bin/env python3
"""
FLOW Price Oracle Updater

Fetches the FLOW/USD price, commits it to the PriceOracle contract and stores
the price plus protocol APY snapshots in the database. Runs one cycle at
startup and then one every update interval until terminated.

Usage:
    python scripts/run_oracle_updater.py [--config config/oracle.yaml] [--once] [--skip-blockchain]

Required environment:
    FLOW_PRIVATE_KEY, FLOW_ACCOUNT_ADDRESS, DATABASE_URL
"""

import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from flow_oracle.scheduler.updater_job import main


if __name__ == '__main__':
    sys.exit(main())
