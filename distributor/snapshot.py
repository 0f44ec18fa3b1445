from typing import Iterable, Protocol, Union

import eth_utils as eth

from distributor.errors import BadConfigException, ZeroSupplyError
from distributor.models import (
    EligibilityEntry,
    EligibilitySnapshot,
    EthereumAddress,
    Holder,
)

BlockIdentifier = Union[int, str]


class TokenProvider(Protocol):
    """Read-only view of the fractional token at a given block"""

    def balances_of(
        self, holders: list[EthereumAddress], block: BlockIdentifier
    ) -> dict[EthereumAddress, int]:
        """Balance of every holder at `block`, read in one batch"""
        ...

    def total_supply(self, block: BlockIdentifier) -> int:
        ...


def eligible_amount(total_amount: int, balance: int, total_supply: int) -> int:
    """floor(total_amount * balance / total_supply), in integers so it is reproducible"""
    return total_amount * balance // total_supply


def compute_eligibility(
    total_amount: int, holders: Iterable[Holder], total_supply: int
) -> list[EligibilityEntry]:
    """
    Share `total_amount` pro-rata across `holders`.

    Truncation means the entries can sum to slightly less than `total_amount`;
    that dust stays undistributed. Holders with a zero balance, or whose share
    truncates to zero, get no entry.

    :param `total_amount`: settlement units to distribute
    :param `holders`: balances at the snapshot block
    :param `total_supply`: token supply at the same block
    """
    holders = list(holders)

    if total_supply <= 0:
        raise ZeroSupplyError(f"Total supply must be positive, got {total_supply}")
    if total_amount < 0:
        raise BadConfigException(f"Total amount cannot be negative: {total_amount}")
    if any(h.balance < 0 for h in holders):
        raise BadConfigException("Holder balances cannot be negative")
    if sum(h.balance for h in holders) > total_supply:
        raise BadConfigException("Holder balances exceed the total supply")

    entries = []
    for h in holders:
        if h.balance == 0:
            continue
        amount = eligible_amount(total_amount, h.balance, total_supply)
        if amount > 0:
            entries.append(EligibilityEntry(address=h.address, amount=amount))
    return entries


def summarize(
    total_amount: int,
    holders: list[Holder],
    total_supply: int,
    block: BlockIdentifier = "latest",
) -> EligibilitySnapshot:
    entries = compute_eligibility(total_amount, holders, total_supply)
    distributed = sum(e.amount for e in entries)
    return EligibilitySnapshot(
        block=block,
        total_amount=total_amount,
        total_supply=total_supply,
        distributed=distributed,
        dust=total_amount - distributed,
        holders=holders,
        entries=entries,
    )


def snapshot(
    provider: TokenProvider,
    holders: Iterable[EthereumAddress],
    total_amount: int,
    block: BlockIdentifier = "latest",
) -> EligibilitySnapshot:
    """
    Read balances and supply from `provider` at `block` and compute every holder's share.
    Duplicate addresses in `holders` are only read once.
    """
    unique = list(dict.fromkeys(map(eth.to_checksum_address, holders)))
    read = provider.balances_of(unique, block)
    balances = [Holder(address=a, balance=read.get(a, 0)) for a in unique]

    supply = provider.total_supply(block)
    return summarize(total_amount, balances, supply, block)
