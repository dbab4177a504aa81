"""Protocol APY estimation from the FLOW price

Each staking protocol has a configured base APY that is scaled by a price
impact multiplier:

    price_impact = 1 + (1 - flow_price_usd)
    apy          = clamp(base_apy * price_impact, min_apy, max_apy)

A lower FLOW price yields a higher multiplier. Prices at or above 2 USD push
the multiplier to zero or below, which the clamp pins to min_apy.
"""
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Iterable, List, Sequence, Union

from flow_oracle.errors import InvalidInput

MIN_APY = Decimal('5.0')
MAX_APY = Decimal('50.0')


@dataclass(frozen=True)
class ProtocolRate:
    """A staking protocol and its base APY in percentage points"""
    name: str
    base_apy: Decimal


# Order here is the order snapshots are produced and persisted
DEFAULT_PROTOCOLS = (
    ProtocolRate('ankr', Decimal('12.5')),
    ProtocolRate('increment', Decimal('15.3')),
    ProtocolRate('figment', Decimal('10.8')),
)


@dataclass(frozen=True)
class YieldSnapshotCandidate:
    """APY computed for one protocol, not yet persisted"""
    protocol_name: str
    apy: Decimal
    reference_price_usd: Decimal
    price_impact: Decimal
    unclamped_apy: Decimal

    @property
    def clamped(self) -> bool:
        return self.apy != self.unclamped_apy


def _as_decimal(value: Union[Decimal, int, float, str], field: str) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidInput(f"{field} must be a number, got {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise InvalidInput(f"{field} must be a number, got {value!r}") from e


def clamp(value: Decimal, lower: Decimal, upper: Decimal) -> Decimal:
    if value < lower:
        return lower
    if value > upper:
        return upper
    return value


def price_impact(flow_price_usd: Decimal) -> Decimal:
    return Decimal(1) + (Decimal(1) - flow_price_usd)


def compute_snapshots(
    flow_price_usd: Union[Decimal, int, float, str],
    protocols: Iterable[ProtocolRate] = DEFAULT_PROTOCOLS,
    min_apy: Decimal = MIN_APY,
    max_apy: Decimal = MAX_APY,
) -> List[YieldSnapshotCandidate]:
    """
    Compute one APY snapshot candidate per protocol.

    Pure and deterministic: identical inputs give identical output, in the
    order the protocols are given.

    Args:
        flow_price_usd: Observed FLOW price, finite and non-negative
        protocols: Protocols with their base APY, in snapshot order
        min_apy: Lower clamp bound
        max_apy: Upper clamp bound

    Returns:
        List of YieldSnapshotCandidate, apy always within [min_apy, max_apy]

    Raises:
        InvalidInput: for a non-finite or negative price, or inverted bounds
    """
    price = _as_decimal(flow_price_usd, 'flow_price_usd')
    if not price.is_finite():
        raise InvalidInput(f"flow_price_usd must be finite, got {price}")
    if price < 0:
        raise InvalidInput(f"flow_price_usd must be non-negative, got {price}")

    lower = _as_decimal(min_apy, 'min_apy')
    upper = _as_decimal(max_apy, 'max_apy')
    if lower > upper:
        raise InvalidInput(f"min_apy {lower} is greater than max_apy {upper}")

    impact = price_impact(price)
    candidates = []
    for protocol in protocols:
        base_apy = _as_decimal(protocol.base_apy, f"{protocol.name} base_apy")
        unclamped = base_apy * impact
        candidates.append(YieldSnapshotCandidate(
            protocol_name=protocol.name,
            apy=clamp(unclamped, lower, upper),
            reference_price_usd=price,
            price_impact=impact,
            unclamped_apy=unclamped,
        ))
    return candidates


def protocols_from_config(entries: Sequence[dict]) -> List[ProtocolRate]:
    """Build ProtocolRate list from config entries like {'name': 'ankr', 'base_apy': 12.5}"""
    rates = []
    seen = set()
    for entry in entries:
        name = entry.get('name')
        if not name:
            raise InvalidInput(f"Protocol entry without a name: {entry!r}")
        if name in seen:
            raise InvalidInput(f"Duplicate protocol: {name}")
        seen.add(name)
        rates.append(ProtocolRate(name, _as_decimal(entry.get('base_apy'), f"{name} base_apy")))
    return rates
