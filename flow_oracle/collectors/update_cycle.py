"""One price update cycle: fetch, commit on-chain, persist, analyze.

States visited by a cycle:

    FETCHING -> CHAIN_UPDATE | CHAIN_SKIPPED -> PERSISTING -> ANALYZING -> DONE

A failed fetch ends the cycle in FAILED with nothing written. A failed ledger
update is downgraded to a sentinel chain reference and the cycle continues.
A failed price insert ends the cycle at PERSISTING, so no snapshot can
reference a missing record. Snapshot failures are reported per protocol.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from threading import Event
from typing import Callable, List, Optional, Sequence

from flow_oracle.adapters.base import LedgerSubmitter, PriceSource
from flow_oracle.analytics.yield_engine import (
    DEFAULT_PROTOCOLS,
    MAX_APY,
    MIN_APY,
    ProtocolRate,
    compute_snapshots,
)
from flow_oracle.database.models import (
    BYPASSED_PREFIX,
    FAILED_PREFIX,
    REVERTED_PREFIX,
    SnapshotOutcome,
    degraded_reference,
)
from flow_oracle.database.queries import RecordStore
from flow_oracle.errors import (
    InvalidInput,
    PriceFetchError,
    StoreError,
    SubmitError,
    SubmitErrorKind,
)

logger = logging.getLogger(__name__)


class CycleState(Enum):
    FETCHING = 'fetching'
    CHAIN_UPDATE = 'chain_update'
    CHAIN_SKIPPED = 'chain_skipped'
    PERSISTING = 'persisting'
    ANALYZING = 'analyzing'
    DONE = 'done'
    FAILED = 'failed'


class CycleOutcome(Enum):
    SUCCEEDED = 'succeeded'
    FETCH_FAILED = 'fetch_failed'
    PERSIST_FAILED = 'persist_failed'


@dataclass
class CycleResult:
    """Everything one cycle did, for logging and tests"""
    cycle: int
    started_at: datetime
    states: List[CycleState] = field(default_factory=list)
    outcome: Optional[CycleOutcome] = None
    price_usd: Optional[Decimal] = None
    chain_reference: Optional[str] = None
    submit_error: Optional[SubmitError] = None
    price_record_id: Optional[str] = None
    snapshot_outcomes: List[SnapshotOutcome] = field(default_factory=list)
    error: Optional[str] = None
    finished_at: Optional[datetime] = None

    @property
    def state(self) -> Optional[CycleState]:
        return self.states[-1] if self.states else None

    @property
    def succeeded(self) -> bool:
        return self.outcome is CycleOutcome.SUCCEEDED

    @property
    def snapshots_written(self) -> int:
        return sum(1 for o in self.snapshot_outcomes if o.ok)

    @property
    def failed_protocols(self) -> List[str]:
        return [o.protocol_name for o in self.snapshot_outcomes if not o.ok]


class CycleOrchestrator:
    """Runs update cycles. Only the cycle counter survives between runs."""

    def __init__(
        self,
        price_source: PriceSource,
        record_store: RecordStore,
        submitter: Optional[LedgerSubmitter] = None,
        symbol: str = 'FLOW',
        protocols: Sequence[ProtocolRate] = DEFAULT_PROTOCOLS,
        min_apy: Decimal = MIN_APY,
        max_apy: Decimal = MAX_APY,
        chain_updates_enabled: bool = True,
        cancel_event: Optional[Event] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        if chain_updates_enabled and submitter is None:
            raise ValueError("A ledger submitter is required when chain updates are enabled")
        self.price_source = price_source
        self.record_store = record_store
        self.submitter = submitter
        self.symbol = symbol
        self.protocols = list(protocols)
        self.min_apy = min_apy
        self.max_apy = max_apy
        self.chain_updates_enabled = chain_updates_enabled
        self.cancel_event = cancel_event
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._cycle_count = 0

    def run(self) -> CycleResult:
        """Run one full cycle and return what happened"""
        self._cycle_count += 1
        result = CycleResult(cycle=self._cycle_count, started_at=self._clock())

        price = self._fetch(result)
        if price is None:
            return self._finish(result)

        chain_reference = self._update_chain(result, price)

        record_id = self._persist(result, price, chain_reference)
        if record_id is None:
            return self._finish(result)

        self._analyze(result, price, record_id)
        self._enter(result, CycleState.DONE,
                    snapshots=f"{result.snapshots_written}/{len(self.protocols)}")
        return self._finish(result)

    # ============================================
    # Stages
    # ============================================

    def _fetch(self, result: CycleResult) -> Optional[Decimal]:
        self._enter(result, CycleState.FETCHING, symbol=self.symbol)
        try:
            price = self.price_source.get_price_usd(self.symbol)
        except PriceFetchError as e:
            result.outcome = CycleOutcome.FETCH_FAILED
            result.error = str(e)
            self._enter(result, CycleState.FAILED, level=logging.ERROR, error=e)
            return None

        result.price_usd = price
        logger.info(f"Fetched {self.symbol} price: ${price:.4f}")
        return price

    def _update_chain(self, result: CycleResult, price: Decimal) -> str:
        if not self.chain_updates_enabled:
            result.chain_reference = degraded_reference(BYPASSED_PREFIX, self._clock())
            self._enter(result, CycleState.CHAIN_SKIPPED, chain_ref=result.chain_reference)
            return result.chain_reference

        self._enter(result, CycleState.CHAIN_UPDATE, price=price)
        try:
            result.chain_reference = self.submitter.submit(price, cancel=self.cancel_event)
        except SubmitError as e:
            result.submit_error = e
            prefix = REVERTED_PREFIX if e.kind is SubmitErrorKind.EXECUTION_REVERTED else FAILED_PREFIX
            result.chain_reference = degraded_reference(prefix, self._clock())
            logger.warning(f"cycle={result.cycle} Error updating price on-chain ({e.kind.value}): "
                           f"{e.detail}; continuing with database update only "
                           f"(chain_ref={result.chain_reference})")
        except InvalidInput as e:
            result.chain_reference = degraded_reference(FAILED_PREFIX, self._clock())
            logger.warning(f"cycle={result.cycle} Price {price} cannot be submitted: {e}; "
                           f"continuing with database update only")
        return result.chain_reference

    def _persist(self, result: CycleResult, price: Decimal, chain_reference: str) -> Optional[str]:
        self._enter(result, CycleState.PERSISTING, chain_ref=chain_reference)
        try:
            record_id = self.record_store.insert_price_record(self.symbol, price, chain_reference)
        except StoreError as e:
            result.outcome = CycleOutcome.PERSIST_FAILED
            result.error = str(e)
            logger.error(f"cycle={result.cycle} Error saving price to database: {e}; "
                         f"skipping APY snapshots")
            return None

        result.price_record_id = record_id
        result.outcome = CycleOutcome.SUCCEEDED
        return record_id

    def _analyze(self, result: CycleResult, price: Decimal, record_id: str):
        self._enter(result, CycleState.ANALYZING, price_record=record_id)
        try:
            candidates = compute_snapshots(price, self.protocols, self.min_apy, self.max_apy)
        except InvalidInput as e:
            logger.error(f"cycle={result.cycle} Error computing protocol APYs: {e}")
            return

        result.snapshot_outcomes = self.record_store.insert_yield_snapshots(record_id, candidates)
        if result.failed_protocols:
            logger.warning(f"cycle={result.cycle} APY snapshots failed for: "
                           f"{', '.join(result.failed_protocols)}")

    # ============================================
    # Helpers
    # ============================================

    def _enter(self, result: CycleResult, state: CycleState, level: int = logging.INFO, **fields):
        result.states.append(state)
        details = ' '.join(f"{key}={value}" for key, value in fields.items())
        logger.log(level, f"cycle={result.cycle} stage={state.value} {details}".rstrip())

    def _finish(self, result: CycleResult) -> CycleResult:
        result.finished_at = self._clock()
        return result
