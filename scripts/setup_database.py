#!/usr/bin/env python3
"""
Database Setup Script

Applies the migrations in migrations/ and verifies the price_oracle and
protocol_apy_snapshots tables exist.

Usage:
    DATABASE_URL=postgresql://... python scripts/setup_database.py
"""

import os
import sys
import logging
from pathlib import Path

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from flow_oracle.database.connection import DatabaseConnection
from flow_oracle.database.setup import setup_database, verify_setup

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


def main():
    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
        logger.error("DATABASE_URL environment variable is required")
        return 2

    db = DatabaseConnection(database_url, min_connections=1, max_connections=2)
    try:
        setup_database(db)
        return 0 if verify_setup(db) else 1
    finally:
        db.close_all()


if __name__ == '__main__':
    sys.exit(main())
