from __future__ import annotations

from enum import Enum
from typing import Union

import eth_utils as eth
from pydantic import BaseModel, field_validator

from distributor.errors import BadConfigException
from distributor.models.types import EthereumAddress, HexStr


class DistributionKind(str, Enum):
    DIVIDEND = "dividend"
    RENT = "rent"
    BONUS = "bonus"


class DistributionStatus(str, Enum):
    """
    :state CREATED: root committed, claims not yet open
    :state ACTIVE: claims accepted until `window_end`
    :state CLOSED: window elapsed or closed by an operator
    :state CANCELLED: administrative override, e.g. a bad root
    """

    CREATED = "created"
    ACTIVE = "active"
    CLOSED = "closed"
    CANCELLED = "cancelled"


def checksum(addr: EthereumAddress) -> EthereumAddress:
    return eth.to_checksum_address(addr)


def normalize_root(root: HexStr) -> HexStr:
    try:
        raw = eth.decode_hex(root)
    except ValueError:
        raise BadConfigException(f"Merkle root is not valid hex: {root}")
    if len(raw) != 32:
        raise BadConfigException(f"Merkle root must be 32 bytes, got {len(raw)}")
    return eth.encode_hex(raw)


class DistributionParams(BaseModel):
    """Everything an operator supplies when creating a distribution"""

    asset_id: str
    token_address: EthereumAddress
    settlement_token: EthereumAddress
    kind: DistributionKind = DistributionKind.DIVIDEND
    window_end: int
    description: str = ""
    total_amount: int

    @field_validator("token_address", "settlement_token")
    @classmethod
    def checksum_token(cls, addr: EthereumAddress):
        return checksum(addr)

    @field_validator("total_amount")
    @classmethod
    def positive_total(cls, total: int) -> int:
        if total <= 0:
            raise BadConfigException(f"Total amount must be positive, got {total}")
        return total


class DistributionInput(DistributionParams):
    """
    Input file for a snapshot run. `block_snapshot` accepts a block number or a tag like 'latest'
    """

    block_snapshot: Union[int, str] = "latest"


class Distribution(DistributionParams):
    """
    On-ledger record of a distribution. Only `status` changes after activation;
    the root can be replaced while the distribution is still CREATED.
    Fee rates are copied from the config at creation.
    """

    id: int
    creator: EthereumAddress
    created_at: int
    status: DistributionStatus = DistributionStatus.CREATED
    merkle_root: HexStr
    platform_fee_bps: int
    maintenance_fee_bps: int

    @field_validator("creator")
    @classmethod
    def checksum_creator(cls, addr: EthereumAddress):
        return checksum(addr)

    @field_validator("merkle_root")
    @classmethod
    def validate_root(cls, root: HexStr) -> HexStr:
        return normalize_root(root)

    def effective_status(self, now: int) -> DistributionStatus:
        """An active distribution whose window has passed reads as closed"""
        if self.status == DistributionStatus.ACTIVE and now > self.window_end:
            return DistributionStatus.CLOSED
        return self.status
