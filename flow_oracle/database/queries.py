"""Append-only writes and audit reads for price and APY history"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, List, Optional

import psycopg2
from psycopg2 import pool
from psycopg2.extras import RealDictCursor

from flow_oracle.analytics.yield_engine import YieldSnapshotCandidate
from flow_oracle.database.connection import DatabaseConnection
from flow_oracle.database.models import PriceRecord, SnapshotOutcome, YieldSnapshot
from flow_oracle.errors import InvalidInput, StoreError, StoreErrorKind

logger = logging.getLogger(__name__)

PRICE_TABLE = 'price_oracle'
SNAPSHOT_TABLE = 'protocol_apy_snapshots'


def classify_db_error(error: Exception) -> StoreErrorKind:
    """Map a psycopg2 error onto the store error taxonomy"""
    if isinstance(error, (psycopg2.OperationalError, psycopg2.InterfaceError, pool.PoolError)):
        return StoreErrorKind.UNAVAILABLE
    return StoreErrorKind.CONSTRAINT


class RecordStore:
    """Writes price records and the APY snapshots derived from them.

    Rows are never updated or deleted. Each insert runs in its own
    transaction, so a failed write leaves nothing behind.
    """

    def __init__(self, db: DatabaseConnection, clock: Optional[Callable[[], datetime]] = None):
        self.db = db
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._last_observed_at: Optional[datetime] = None

    # ============================================
    # Helpers
    # ============================================

    def _next_timestamp(self) -> datetime:
        """Current time, never earlier than the previous one handed out"""
        now = self._clock()
        if self._last_observed_at is not None and now < self._last_observed_at:
            now = self._last_observed_at
        self._last_observed_at = now
        return now

    def _acquire(self):
        try:
            return self.db.get_connection()
        except psycopg2.Error as e:
            raise StoreError(StoreErrorKind.UNAVAILABLE, f"could not get a connection: {e}") from e

    def _rollback(self, conn):
        try:
            conn.rollback()
        except psycopg2.Error as e:
            logger.warning(f"Rollback failed: {e}")

    def _insert(self, query: str, params: tuple, what: str):
        conn = self._acquire()
        broken = False
        try:
            with conn.cursor() as cur:
                cur.execute(query, params)
            conn.commit()
        except psycopg2.Error as e:
            kind = classify_db_error(e)
            broken = kind is StoreErrorKind.UNAVAILABLE
            self._rollback(conn)
            raise StoreError(kind, f"failed to insert {what}: {e}") from e
        finally:
            self.db.return_connection(conn, close=broken)

    # ============================================
    # Writes
    # ============================================

    def insert_price_record(self, symbol: str, price_usd: Decimal, chain_reference: str) -> str:
        """
        Insert a price record.

        Returns:
            The new record id

        Raises:
            StoreError: UNAVAILABLE on connectivity loss, CONSTRAINT on rejection
        """
        record_id = str(uuid.uuid4())
        observed_at = self._next_timestamp()

        self._insert(
            f"""INSERT INTO {PRICE_TABLE} (id, symbol, price_usd, tx_hash, created_at)
                VALUES (%s, %s, %s, %s, %s)""",
            (record_id, symbol, price_usd, chain_reference, observed_at),
            f"price record for {symbol}",
        )

        logger.info(f"Price saved to database (ID: {record_id})")
        return record_id

    def insert_yield_snapshots(self, price_record_id: str,
                               candidates: Iterable[YieldSnapshotCandidate]) -> List[SnapshotOutcome]:
        """
        Insert one snapshot row per candidate, each in its own transaction.

        A failing row is logged and reported in its outcome; the remaining
        rows are still written.

        Returns:
            One SnapshotOutcome per candidate, in candidate order
        """
        if not price_record_id:
            raise InvalidInput("price_record_id is required")

        outcomes = []
        for candidate in candidates:
            snapshot_id = str(uuid.uuid4())
            try:
                self._insert(
                    f"""INSERT INTO {SNAPSHOT_TABLE}
                        (id, protocol_name, apy, flow_price, price_oracle_id, created_at)
                        VALUES (%s, %s, %s, %s, %s, %s)""",
                    (
                        snapshot_id,
                        candidate.protocol_name,
                        candidate.apy,
                        candidate.reference_price_usd,
                        price_record_id,
                        self._next_timestamp(),
                    ),
                    f"APY snapshot for {candidate.protocol_name}",
                )
            except StoreError as e:
                logger.warning(f"Failed to save APY for {candidate.protocol_name}: {e}")
                outcomes.append(SnapshotOutcome(candidate.protocol_name, error=e))
                continue

            logger.info(f"{candidate.protocol_name} APY: {candidate.apy:.2f}% "
                        f"(price impact: {candidate.price_impact:.2f}x)")
            outcomes.append(SnapshotOutcome(candidate.protocol_name, snapshot_id=snapshot_id))
        return outcomes

    # ============================================
    # Reads
    # ============================================

    def get_price_record(self, record_id: str) -> Optional[PriceRecord]:
        """Get a price record by id"""
        conn = self.db.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""SELECT id, symbol, price_usd, tx_hash, created_at
                        FROM {PRICE_TABLE} WHERE id = %s""",
                    (record_id,)
                )
                row = cur.fetchone()
                return self._price_from_row(row) if row else None
        finally:
            self.db.return_connection(conn)

    def get_latest_price_records(self, symbol: str, limit: int = 10) -> List[PriceRecord]:
        """Get the most recent price records for a symbol, newest first"""
        conn = self.db.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""SELECT id, symbol, price_usd, tx_hash, created_at
                        FROM {PRICE_TABLE}
                        WHERE symbol = %s
                        ORDER BY created_at DESC
                        LIMIT %s""",
                    (symbol, limit)
                )
                return [self._price_from_row(row) for row in cur.fetchall()]
        finally:
            self.db.return_connection(conn)

    def get_snapshots_for_price(self, price_record_id: str) -> List[YieldSnapshot]:
        """Get the APY snapshots derived from one price record"""
        conn = self.db.get_connection()
        try:
            with conn.cursor(cursor_factory=RealDictCursor) as cur:
                cur.execute(
                    f"""SELECT id, protocol_name, apy, flow_price, price_oracle_id, created_at
                        FROM {SNAPSHOT_TABLE}
                        WHERE price_oracle_id = %s
                        ORDER BY created_at, protocol_name""",
                    (price_record_id,)
                )
                return [
                    YieldSnapshot(
                        snapshot_id=str(row['id']),
                        protocol_name=row['protocol_name'],
                        apy=Decimal(row['apy']),
                        reference_price_usd=Decimal(row['flow_price']),
                        price_record_id=str(row['price_oracle_id']),
                        created_at=row['created_at'],
                    )
                    for row in cur.fetchall()
                ]
        finally:
            self.db.return_connection(conn)

    @staticmethod
    def _price_from_row(row) -> PriceRecord:
        return PriceRecord(
            record_id=str(row['id']),
            symbol=row['symbol'],
            price_usd=Decimal(row['price_usd']),
            chain_reference=row['tx_hash'],
            observed_at=row['created_at'],
        )
