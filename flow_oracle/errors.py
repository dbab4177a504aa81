"""Error taxonomy for the oracle updater"""
from enum import Enum
from typing import Optional


class OracleError(Exception):
    """Base class for all oracle updater errors"""


class ConfigError(OracleError):
    """Required configuration is missing or invalid"""


class StartupError(OracleError):
    """Initial connectivity checks failed"""


class InvalidInput(OracleError, ValueError):
    """An argument failed validation"""


class PriceFetchError(OracleError):
    """The external price feed could not produce a usable price"""


class SubmitErrorKind(Enum):
    TRANSPORT = 'transport'
    EXECUTION_REVERTED = 'execution_reverted'
    CANCELLED = 'cancelled'


class SubmitError(OracleError):
    """A ledger price update did not complete"""

    def __init__(self, kind: SubmitErrorKind, detail: str, tx_hash: Optional[str] = None):
        super().__init__(f"{kind.value}: {detail}")
        self.kind = kind
        self.detail = detail
        self.tx_hash = tx_hash


class StoreErrorKind(Enum):
    UNAVAILABLE = 'unavailable'
    CONSTRAINT = 'constraint'


class StoreError(OracleError):
    """A write to the relational store failed"""

    def __init__(self, kind: StoreErrorKind, detail: str):
        super().__init__(f"{kind.value}: {detail}")
        self.kind = kind
        self.detail = detail
