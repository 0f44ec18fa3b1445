from pydantic import BaseModel

from distributor.models.types import BigNumber, EthereumAddress, HexStr


class ClaimReceipt(BaseModel):
    """
    Auditable record emitted on every successful claim.
    `amount` is the committed leaf value, split into `net_amount` plus the two fees.
    """

    distribution_id: int
    claimant: EthereumAddress
    amount: int
    net_amount: int
    platform_fee: int
    maintenance_fee: int


class ClaimRecord(ClaimReceipt):
    """
    Stored once per (distribution_id, claimant). Its presence is the claimed flag.
    """

    claimed_at: int


class TreeClaim(BaseModel):
    """
    Claim data for each recipient, as served to holders who want to claim
    """

    amount: BigNumber
    balance: BigNumber
    leaf: HexStr
    proof: list[HexStr]


class DistributionTree(BaseModel):
    """
    The full tree artifact written after a snapshot. Only `merkleRoot` goes on-ledger,
    the rest lets holders fetch their proof and lets anyone re-hash the committed set.
    """

    merkleRoot: HexStr
    totalAmount: BigNumber
    totalSupply: BigNumber
    tokenAddress: EthereumAddress
    assetId: str
    block: str
    userCount: int
    claims: dict[EthereumAddress, TreeClaim]


class UserProof(BaseModel):
    distributionId: int
    address: EthereumAddress
    amount: BigNumber
    proof: list[HexStr]
    merkleRoot: HexStr
