"""UFix64 fixed-point encoding used by the PriceOracle contract.

Prices are stored on-chain as unsigned 64-bit integers with 8 fractional
digits. Conversion truncates toward zero at the 8th digit.
"""
from decimal import Decimal, ROUND_DOWN, InvalidOperation
from typing import Union

from flow_oracle.errors import InvalidInput

DECIMALS = 8
SCALE = 10 ** DECIMALS
MAX_RAW = 2 ** 64 - 1


def _to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        # float goes through str so 0.1 stays 0.1
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidInput(f"Not a number: {value!r}") from e


def encode(price: Union[Decimal, int, float, str]) -> int:
    """Encode a price as a raw UFix64 integer, i.e. floor(price * 10^8)."""
    value = _to_decimal(price)
    if not value.is_finite():
        raise InvalidInput(f"Price must be finite, got {value}")
    if value < 0:
        raise InvalidInput(f"Price must be non-negative, got {value}")

    raw = int((value * SCALE).to_integral_value(rounding=ROUND_DOWN))
    if raw > MAX_RAW:
        raise InvalidInput(f"Price {value} overflows UFix64")
    return raw


def decode(raw: int) -> Decimal:
    """Decode a raw UFix64 integer back to a Decimal"""
    if raw < 0 or raw > MAX_RAW:
        raise InvalidInput(f"Raw value {raw} is outside the UFix64 range")
    return Decimal(raw).scaleb(-DECIMALS)


def format_ufix64(raw: int) -> str:
    """Canonical text form, e.g. 27840000 -> '0.27840000'"""
    if raw < 0 or raw > MAX_RAW:
        raise InvalidInput(f"Raw value {raw} is outside the UFix64 range")
    return f"{raw // SCALE}.{raw % SCALE:08d}"
