"""Database models for price and APY history"""
import re
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from flow_oracle.errors import StoreError

# Sentinel prefixes stored in place of a transaction hash
BYPASSED_PREFIX = 'local'
FAILED_PREFIX = 'skipped'
REVERTED_PREFIX = 'reverted'

_TX_HASH_RE = re.compile(r'^0x[0-9a-fA-F]{64}$')


def degraded_reference(prefix: str, when: datetime) -> str:
    """Build a sentinel chain reference, e.g. 'skipped_1718000000'"""
    return f"{prefix}_{int(when.timestamp())}"


def classify_chain_reference(reference: str) -> str:
    """Classify a stored chain reference.

    Returns one of 'transaction', 'bypassed', 'failed', 'reverted' or 'unknown'.
    """
    if _TX_HASH_RE.match(reference or ''):
        return 'transaction'
    prefix = (reference or '').split('_', 1)[0]
    return {
        BYPASSED_PREFIX: 'bypassed',
        FAILED_PREFIX: 'failed',
        REVERTED_PREFIX: 'reverted',
    }.get(prefix, 'unknown')


def is_degraded_reference(reference: str) -> bool:
    return classify_chain_reference(reference) != 'transaction'


@dataclass
class PriceRecord:
    """Represents one observed price and its ledger reference"""
    record_id: str
    symbol: str
    price_usd: Decimal
    chain_reference: str  # tx hash or a degraded sentinel
    observed_at: datetime

    @property
    def chain_status(self) -> str:
        return classify_chain_reference(self.chain_reference)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            'id': self.record_id,
            'symbol': self.symbol,
            'price_usd': float(self.price_usd),
            'chain_reference': self.chain_reference,
            'chain_status': self.chain_status,
            'observed_at': self.observed_at.isoformat()
        }


@dataclass
class YieldSnapshot:
    """Represents a protocol APY snapshot derived from a price record"""
    snapshot_id: str
    protocol_name: str
    apy: Decimal
    reference_price_usd: Decimal
    price_record_id: str
    created_at: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization"""
        return {
            'id': self.snapshot_id,
            'protocol_name': self.protocol_name,
            'apy': float(self.apy),
            'reference_price_usd': float(self.reference_price_usd),
            'price_record_id': self.price_record_id,
            'created_at': self.created_at.isoformat() if self.created_at else None
        }


@dataclass
class SnapshotOutcome:
    """Result of writing one protocol's snapshot"""
    protocol_name: str
    snapshot_id: Optional[str] = None
    error: Optional[StoreError] = None

    @property
    def ok(self) -> bool:
        return self.snapshot_id is not None
