"""Flow EVM chain adapter and PriceOracle submitter"""
from flow_oracle.adapters.flow.chain_adapter import FlowChainAdapter, AccountInfo
from flow_oracle.adapters.flow.price_oracle import (
    PriceOracleSubmitter,
    FinalityPoller,
    TransactionStatus,
)

__all__ = [
    'FlowChainAdapter',
    'AccountInfo',
    'PriceOracleSubmitter',
    'FinalityPoller',
    'TransactionStatus',
]
