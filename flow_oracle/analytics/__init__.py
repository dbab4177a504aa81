"""Yield analytics derived from the FLOW price"""
from flow_oracle.analytics.yield_engine import (
    ProtocolRate,
    YieldSnapshotCandidate,
    DEFAULT_PROTOCOLS,
    MIN_APY,
    MAX_APY,
    compute_snapshots,
    protocols_from_config,
)

__all__ = [
    'ProtocolRate',
    'YieldSnapshotCandidate',
    'DEFAULT_PROTOCOLS',
    'MIN_APY',
    'MAX_APY',
    'compute_snapshots',
    'protocols_from_config',
]
