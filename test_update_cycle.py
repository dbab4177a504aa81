"""Tests for the update cycle orchestrator"""
from decimal import Decimal
from threading import Event

import psycopg2
import pytest

from conftest import TX_HASH, ScriptedPriceSource, ScriptedSubmitter
from flow_oracle.collectors.update_cycle import CycleOrchestrator, CycleOutcome, CycleState
from flow_oracle.database.models import classify_chain_reference
from flow_oracle.database.queries import RecordStore
from flow_oracle.errors import (
    InvalidInput,
    PriceFetchError,
    StoreErrorKind,
    SubmitError,
    SubmitErrorKind,
)


def make_orchestrator(fake_db, clock, price_source, submitter=None, **kwargs):
    kwargs.setdefault('chain_updates_enabled', submitter is not None)
    return CycleOrchestrator(
        price_source=price_source,
        record_store=RecordStore(fake_db, clock=clock),
        submitter=submitter,
        clock=clock,
        **kwargs,
    )


def test_full_cycle(fake_db, clock):
    submitter = ScriptedSubmitter(TX_HASH)
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource('0.2784'), submitter)

    result = orchestrator.run()

    assert result.succeeded
    assert result.states == [CycleState.FETCHING, CycleState.CHAIN_UPDATE, CycleState.PERSISTING,
                             CycleState.ANALYZING, CycleState.DONE]
    assert submitter.calls[0][0] == Decimal('0.2784')
    [price_row] = fake_db.prices
    assert price_row['tx_hash'] == TX_HASH
    assert result.price_record_id == price_row['id']
    assert result.snapshots_written == 3
    assert {r['price_oracle_id'] for r in fake_db.snapshots} == {price_row['id']}
    assert abs(fake_db.snapshots[0]['apy'] - Decimal('21.52')) <= Decimal('0.01')


def test_fetch_failure_writes_nothing(fake_db, clock):
    submitter = ScriptedSubmitter()
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource(PriceFetchError("503")), submitter)

    result = orchestrator.run()

    assert result.outcome is CycleOutcome.FETCH_FAILED
    assert result.states == [CycleState.FETCHING, CycleState.FAILED]
    assert submitter.calls == []
    assert fake_db.prices == [] and fake_db.snapshots == []


def test_chain_skipped(fake_db, clock):
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource('0.5'))

    result = orchestrator.run()

    assert result.succeeded
    assert CycleState.CHAIN_SKIPPED in result.states
    assert CycleState.CHAIN_UPDATE not in result.states
    assert result.chain_reference == f"local_{int(clock.now.timestamp())}"
    assert classify_chain_reference(fake_db.prices[0]['tx_hash']) == 'bypassed'


@pytest.mark.parametrize("kind, status", [
    (SubmitErrorKind.TRANSPORT, 'failed'),
    (SubmitErrorKind.CANCELLED, 'failed'),
    (SubmitErrorKind.EXECUTION_REVERTED, 'reverted'),
])
def test_submit_failure_degrades_and_continues(fake_db, clock, kind, status):
    error = SubmitError(kind, "boom", tx_hash=TX_HASH if kind is SubmitErrorKind.EXECUTION_REVERTED else None)
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource('0.5'), ScriptedSubmitter(error))

    result = orchestrator.run()

    assert result.succeeded
    assert result.submit_error is error
    assert CycleState.ANALYZING in result.states
    assert classify_chain_reference(result.chain_reference) == status
    assert fake_db.prices[0]['tx_hash'] == result.chain_reference
    assert len(fake_db.snapshots) == 3


def test_unencodable_price_degrades(fake_db, clock):
    submitter = ScriptedSubmitter(InvalidInput("overflows UFix64"))
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource('0.5'), submitter)

    result = orchestrator.run()

    assert result.succeeded
    assert result.chain_reference.startswith('skipped_')


def test_persist_failure_skips_snapshots(fake_db, clock):
    fake_db.fail_when('INSERT INTO price_oracle', psycopg2.OperationalError('server closed the connection'))
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource('0.5'), ScriptedSubmitter(TX_HASH))

    result = orchestrator.run()

    assert result.outcome is CycleOutcome.PERSIST_FAILED
    assert result.state is CycleState.PERSISTING
    assert CycleState.ANALYZING not in result.states
    assert fake_db.snapshots == []
    # the ledger update already happened and is not undone
    assert result.chain_reference == TX_HASH


def test_partial_snapshot_failure(fake_db, clock):
    fake_db.fail_when('figment', psycopg2.IntegrityError('apy out of range'))
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource('0.5'))

    result = orchestrator.run()

    assert result.succeeded
    assert result.state is CycleState.DONE
    assert result.snapshots_written == 2
    assert result.failed_protocols == ['figment']
    failed = result.snapshot_outcomes[2]
    assert failed.error.kind is StoreErrorKind.CONSTRAINT


def test_cancel_event_is_passed_to_submitter(fake_db, clock):
    cancel = Event()
    submitter = ScriptedSubmitter(TX_HASH)
    orchestrator = make_orchestrator(fake_db, clock, ScriptedPriceSource('0.5'), submitter,
                                     cancel_event=cancel)
    orchestrator.run()
    assert submitter.calls[0][1] is cancel


def test_cycles_are_independent(fake_db, clock):
    source = ScriptedPriceSource(PriceFetchError("timeout"), '0.5', '0.6')
    orchestrator = make_orchestrator(fake_db, clock, source)

    results = [orchestrator.run() for _ in range(3)]

    assert [r.cycle for r in results] == [1, 2, 3]
    assert [r.succeeded for r in results] == [False, True, True]
    assert [row['price_usd'] for row in fake_db.prices] == [Decimal('0.5'), Decimal('0.6')]
    assert len(fake_db.snapshots) == 6


def test_submitter_required_when_chain_enabled(fake_db, clock):
    with pytest.raises(ValueError):
        make_orchestrator(fake_db, clock, ScriptedPriceSource('0.5'), chain_updates_enabled=True)
