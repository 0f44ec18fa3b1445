from typing import NamedTuple

from distributor.errors import BadConfigException
from distributor.models import BASIS_POINTS, FeeRates


class FeeSplit(NamedTuple):
    fees: tuple[int, ...]
    remainder: int


class ClaimFees(NamedTuple):
    platform_fee: int
    maintenance_fee: int
    net_amount: int


def fee_for(amount: int, rate_bps: int) -> int:
    """floor(amount * rate / 10000), so rounding always favours the payee"""
    return amount * rate_bps // BASIS_POINTS


def split_fees(amount: int, *rates_bps: int) -> FeeSplit:
    """
    Take one fee per rate out of `amount`, each computed on the full amount.
    :param `amount`: base units to split
    :param `rates_bps`: fee rates in basis points, combined at most 10000
    """
    if amount < 0:
        raise BadConfigException(f"Cannot take fees from a negative amount: {amount}")
    if any(r < 0 or r > BASIS_POINTS for r in rates_bps):
        raise BadConfigException(f"Fee rate out of range: {rates_bps}")
    if sum(rates_bps) > BASIS_POINTS:
        raise BadConfigException("Combined fee rate out of range")

    fees = tuple(fee_for(amount, r) for r in rates_bps)
    return FeeSplit(fees, amount - sum(fees))


def claim_fees(amount: int, rates: FeeRates) -> ClaimFees:
    (platform_fee, maintenance_fee), net = split_fees(
        amount, rates.platform_fee_bps, rates.maintenance_fee_bps
    )
    return ClaimFees(platform_fee, maintenance_fee, net)
