"""Database models and queries"""
from flow_oracle.database.connection import DatabaseConnection
from flow_oracle.database.queries import RecordStore, classify_db_error
from flow_oracle.database.models import (
    PriceRecord,
    YieldSnapshot,
    SnapshotOutcome,
    classify_chain_reference,
    is_degraded_reference,
)
from flow_oracle.database.setup import setup_database, verify_setup

__all__ = [
    'DatabaseConnection',
    'RecordStore',
    'classify_db_error',
    'PriceRecord',
    'YieldSnapshot',
    'SnapshotOutcome',
    'classify_chain_reference',
    'is_degraded_reference',
    'setup_database',
    'verify_setup',
]
