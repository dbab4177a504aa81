"""Tests for protocol APY estimation"""
from decimal import Decimal

import pytest

from flow_oracle.analytics.yield_engine import (
    DEFAULT_PROTOCOLS,
    MAX_APY,
    MIN_APY,
    ProtocolRate,
    compute_snapshots,
    protocols_from_config,
)
from flow_oracle.errors import InvalidInput


def test_apy_within_bounds_is_not_clamped():
    [ankr] = compute_snapshots(Decimal('0.2784'), [ProtocolRate('ankr', Decimal('12.5'))])
    assert ankr.price_impact == Decimal('1.7216')
    assert abs(ankr.apy - Decimal('21.52')) <= Decimal('0.01')
    assert not ankr.clamped


def test_negative_impact_clamps_to_minimum():
    [increment] = compute_snapshots(Decimal('5.0'), [ProtocolRate('increment', Decimal('15.3'))])
    assert increment.unclamped_apy < 0
    assert increment.apy == MIN_APY
    assert increment.clamped


def test_large_impact_clamps_to_maximum():
    [protocol] = compute_snapshots(Decimal('0'), [ProtocolRate('big', Decimal('40'))])
    assert protocol.unclamped_apy == Decimal('80')
    assert protocol.apy == MAX_APY


def test_default_protocols_in_order():
    snapshots = compute_snapshots(Decimal('0.5'))
    assert [s.protocol_name for s in snapshots] == ['ankr', 'increment', 'figment']
    assert [s.apy for s in snapshots] == [Decimal('18.75'), Decimal('22.95'), Decimal('16.20')]
    assert all(s.reference_price_usd == Decimal('0.5') for s in snapshots)


def test_deterministic():
    assert compute_snapshots(Decimal('0.91')) == compute_snapshots(Decimal('0.91'))


@pytest.mark.parametrize("price", [Decimal('-1'), Decimal('NaN'), Decimal('Infinity'), 'abc'])
def test_invalid_price(price):
    with pytest.raises(InvalidInput):
        compute_snapshots(price)


def test_inverted_bounds():
    with pytest.raises(InvalidInput):
        compute_snapshots(Decimal('1'), DEFAULT_PROTOCOLS, Decimal('10'), Decimal('5'))


def test_custom_bounds():
    snapshots = compute_snapshots(Decimal('0.5'), DEFAULT_PROTOCOLS, Decimal('17'), Decimal('20'))
    assert [s.apy for s in snapshots] == [Decimal('18.75'), Decimal('20'), Decimal('17')]


def test_protocols_from_config():
    rates = protocols_from_config([{'name': 'ankr', 'base_apy': 12.5}, {'name': 'figment', 'base_apy': '10.8'}])
    assert rates == [ProtocolRate('ankr', Decimal('12.5')), ProtocolRate('figment', Decimal('10.8'))]


@pytest.mark.parametrize("entries", [
    [{'base_apy': 1}],
    [{'name': 'ankr', 'base_apy': 1}, {'name': 'ankr', 'base_apy': 2}],
    [{'name': 'ankr', 'base_apy': 'lots'}],
])
def test_protocols_from_config_rejects(entries):
    with pytest.raises(InvalidInput):
        protocols_from_config(entries)
