"""Tests for the UFix64 price encoding"""
from decimal import Decimal

import pytest

from flow_oracle.adapters.flow import ufix64
from flow_oracle.errors import InvalidInput


@pytest.mark.parametrize("price, raw", [
    (Decimal('0.2784'), 27840000),
    (Decimal('1'), 100000000),
    (Decimal('0'), 0),
    (Decimal('0.00000001'), 1),
    (0.1, 10000000),
    ('12.34567890', 1234567890),
])
def test_encode(price, raw):
    assert ufix64.encode(price) == raw


def test_encode_truncates_beyond_eight_digits():
    assert ufix64.encode(Decimal('1.123456789')) == 112345678
    assert ufix64.encode(Decimal('0.000000009')) == 0


def test_encode_maximum():
    assert ufix64.encode(Decimal('184467440737.09551615')) == ufix64.MAX_RAW


@pytest.mark.parametrize("price", [
    Decimal('-0.01'),
    Decimal('NaN'),
    Decimal('Infinity'),
    Decimal('184467440737.09551616'),
    'not a price',
])
def test_encode_rejects(price):
    with pytest.raises(InvalidInput):
        ufix64.encode(price)


def test_decode_and_format():
    assert ufix64.decode(27840000) == Decimal('0.2784')
    assert ufix64.format_ufix64(27840000) == '0.27840000'
    assert ufix64.format_ufix64(ufix64.MAX_RAW) == '184467440737.09551615'


@pytest.mark.parametrize("raw", [-1, ufix64.MAX_RAW + 1])
def test_decode_out_of_range(raw):
    with pytest.raises(InvalidInput):
        ufix64.decode(raw)
