from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional

import pytest
from eth_utils import to_checksum_address

from distributor.claims import ClaimEngine
from distributor.merkle import MerkleTree
from distributor.models import (
    Config,
    DistributionKind,
    DistributionParams,
    EligibilityEntry,
)
from distributor.registry import Registry

STUBS = Path(__file__).parent / "stubs"

ADMIN = to_checksum_address("0x7Ac54A0406FA2B465E0D57C66597BE83A4b149fC")
OPERATOR = to_checksum_address("0x8BB4C0b502f869af3B25166930507a6E8c3038D4")
PLATFORM = to_checksum_address("0x9bc33f6155eFAcc290c3C50E9B5b24b668562732")
MAINTENANCE = to_checksum_address("0xfDe38ad4bBbeC867e6cb4Bb31FbFB2074c959A83")
ASSET_TOKEN = to_checksum_address("0xdeA708968f8dd520f5e2F0aB6785F28c98521ca8")
SETTLEMENT = to_checksum_address("0x742d35Cc6634C0532925a3b844Bc454e4438f44e")

_addresses = [
    "0x1111111111111111111111111111111111111111",
    "0x2222222222222222222222222222222222222222",
    "0x3333333333333333333333333333333333333333",
    "0x4444444444444444444444444444444444444444",
    "0x5555555555555555555555555555555555555555",
]

START = 1_700_000_000
DAY = 86_400


@dataclass
class Clock:
    now: int = START

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@dataclass
class MockResponse:
    res: dict[str, Any]

    def json(self):
        return self.res


class StaticTokenProvider:
    """Token provider over fixed balances, recording each batch of reads"""

    def __init__(self, balances: dict[str, int], supply: int):
        self.balances = balances
        self.supply = supply
        self.batches: list[list[str]] = []

    @property
    def reads(self) -> list[str]:
        return [h for batch in self.batches for h in batch]

    def balances_of(self, holders, block="latest") -> dict[str, int]:
        self.batches.append(list(holders))
        return {h: self.balances[h] for h in holders if h in self.balances}

    def total_supply(self, block="latest") -> int:
        return self.supply


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def config() -> Config:
    return Config(
        platform_fee_bps=200,
        maintenance_fee_bps=300,
        platform_fee_receiver=PLATFORM,
        maintenance_fee_receiver=MAINTENANCE,
        operators=[OPERATOR],
        admins=[ADMIN],
    )


@pytest.fixture
def registry(config: Config, clock: Clock) -> Registry:
    return Registry(config, clock=clock)


@pytest.fixture
def engine(registry: Registry) -> ClaimEngine:
    return ClaimEngine(registry)


def entries_from(amounts: dict[str, int]) -> list[EligibilityEntry]:
    return [EligibilityEntry(address=a, amount=v) for a, v in amounts.items()]


def params(
    total_amount: int,
    window_end: int,
    kind: DistributionKind = DistributionKind.RENT,
) -> DistributionParams:
    return DistributionParams(
        asset_id="PROP-001",
        token_address=ASSET_TOKEN,
        settlement_token=SETTLEMENT,
        kind=kind,
        window_end=window_end,
        description="Rent for January",
        total_amount=total_amount,
    )


@pytest.fixture
def make_distribution(registry: Registry, clock: Clock):
    """
    Commit a tree over `amounts` and, by default, fund and activate it.
    `total` defaults to the sum of the amounts.
    """

    def _make(
        amounts: dict[str, int],
        total: Optional[int] = None,
        activate: bool = True,
        window: int = DAY,
        kind: DistributionKind = DistributionKind.RENT,
    ):
        tree = MerkleTree(entries_from(amounts))
        total = total if total is not None else sum(amounts.values())
        registry.ledger.mint(OPERATOR, SETTLEMENT, total)
        distribution = registry.create_distribution(
            OPERATOR,
            params(total, clock.now + window, kind),
            tree.hex_root,
            fund=True,
        )
        if activate:
            distribution = registry.activate(OPERATOR, distribution.id)
        return distribution, tree

    return _make
