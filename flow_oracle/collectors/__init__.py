"""Update cycle orchestration"""
from flow_oracle.collectors.update_cycle import (
    CycleOrchestrator,
    CycleResult,
    CycleState,
    CycleOutcome,
)

__all__ = [
    'CycleOrchestrator',
    'CycleResult',
    'CycleState',
    'CycleOutcome',
]
