"""Database connection management"""
import logging
from typing import Optional

import psycopg2
from psycopg2 import pool

logger = logging.getLogger(__name__)


class DatabaseConnection:
    """Manages database connection pool"""

    def __init__(self, dsn: str, min_connections: int = 2, max_connections: int = 10):
        if not dsn:
            raise ValueError("Database connection string is required")
        self.dsn = dsn
        self.min_connections = min_connections
        self.max_connections = max_connections
        self.connection_pool: Optional[pool.ThreadedConnectionPool] = None

    def get_connection_pool(self):
        """Get or create connection pool"""
        if self.connection_pool is None:
            self.connection_pool = pool.ThreadedConnectionPool(
                minconn=self.min_connections,
                maxconn=self.max_connections,
                dsn=self.dsn
            )
        return self.connection_pool

    def get_connection(self):
        """Get a connection from the pool"""
        pool = self.get_connection_pool()
        return pool.getconn()

    def return_connection(self, conn, close: bool = False):
        """Return a connection to the pool, discarding it if close is set"""
        pool = self.get_connection_pool()
        pool.putconn(conn, close=close)

    def ping(self) -> bool:
        """Run a trivial query to check the database is reachable"""
        conn = self.get_connection()
        broken = False
        try:
            with conn.cursor() as cur:
                cur.execute("SELECT 1")
                return cur.fetchone()[0] == 1
        except psycopg2.OperationalError:
            broken = True
            raise
        finally:
            self.return_connection(conn, close=broken)

    def close_all(self):
        """Close all connections in the pool"""
        if self.connection_pool:
            self.connection_pool.closeall()
            self.connection_pool = None
