import logging
from typing import Optional, Sequence

import eth_utils as eth

from distributor import merkle
from distributor.errors import (
    ClaimRejectedError,
    ClaimRejection,
    DistributionNotFoundError,
)
from distributor.fees import claim_fees
from distributor.models import (
    ClaimReceipt,
    ClaimRecord,
    Distribution,
    DistributionStatus,
    EthereumAddress,
    FeeRates,
)
from distributor.registry import Registry, escrow_account

logger = logging.getLogger(__name__)


def checksum_claimant(claimant: EthereumAddress) -> EthereumAddress:
    """A claimant that is not an address can have no leaf in any tree"""
    try:
        return eth.to_checksum_address(claimant)
    except (TypeError, ValueError):
        raise ClaimRejectedError(
            ClaimRejection.INVALID_PROOF, f"Malformed claimant address: {claimant}"
        )


class ClaimEngine:
    """
    Verifies claims against the committed root and pays them out of escrow.

    The gates run cheapest first: lifecycle checks, the claimed flag, then the
    proof fold. The claim record is written before any funds move, so a transfer
    hook that calls back into `claim` finds the record already set. If anything raises
    after the record is written, the registry transaction undoes every write the claim made.
    """

    def __init__(self, registry: Registry):
        self.registry = registry

    def _gate(
        self,
        distribution_id: int,
        claimant: EthereumAddress,
        amount: int,
        proof: Sequence[merkle.HashLike],
        total_amount: Optional[int],
    ) -> Distribution:
        """Raise ClaimRejectedError for the first failing gate. Reads only."""
        try:
            distribution = self.registry.load(distribution_id)
        except DistributionNotFoundError:
            raise ClaimRejectedError(
                ClaimRejection.NOT_FOUND, f"Distribution {distribution_id} not found"
            )

        if distribution.status != DistributionStatus.ACTIVE:
            raise ClaimRejectedError(
                ClaimRejection.NOT_ACTIVE,
                f"Distribution {distribution_id} is {distribution.status.value}",
            )

        if self.registry.clock() > distribution.window_end:
            raise ClaimRejectedError(
                ClaimRejection.WINDOW_CLOSED,
                f"Claim window of distribution {distribution_id} ended at {distribution.window_end}",
            )

        if self.registry.has_claimed(distribution_id, claimant):
            raise ClaimRejectedError(
                ClaimRejection.ALREADY_CLAIMED,
                f"{claimant} already claimed from distribution {distribution_id}",
            )

        # caller-supplied totals are only checked, never used
        if total_amount is not None and total_amount != distribution.total_amount:
            raise ClaimRejectedError(
                ClaimRejection.TOTAL_MISMATCH,
                f"Total {total_amount} does not match distribution total {distribution.total_amount}",
            )

        # a uint256 leaf value, anything else cannot be in the tree
        valid = 0 < amount < 2**256
        if valid:
            try:
                leaf = merkle.leaf_hash(claimant, amount)
                valid = merkle.verify(distribution.merkle_root, leaf, proof)
            except ValueError:
                # malformed hex in the proof
                valid = False
        if not valid:
            raise ClaimRejectedError(ClaimRejection.INVALID_PROOF, "Invalid proof")

        escrowed = self.registry.ledger.balance_of(
            escrow_account(distribution_id), distribution.settlement_token
        )
        if escrowed < amount:
            raise ClaimRejectedError(
                ClaimRejection.INSUFFICIENT_ESCROW,
                f"Escrow holds {escrowed}, claim needs {amount}",
            )

        # payouts never exceed the stored total, whatever else reaches the escrow
        claimed = self.registry.claimed_amount(distribution_id)
        if claimed + amount > distribution.total_amount:
            raise ClaimRejectedError(
                ClaimRejection.INSUFFICIENT_ESCROW,
                f"Claim of {amount} would pay out {claimed + amount}, "
                f"above the total of {distribution.total_amount}",
            )

        return distribution

    def check_claim(
        self,
        distribution_id: int,
        claimant: EthereumAddress,
        amount: int,
        proof: Sequence[merkle.HashLike],
        total_amount: Optional[int] = None,
    ) -> Optional[ClaimRejection]:
        """Why a claim would fail right now, or None if it would succeed"""
        with self.registry.db.lock:
            try:
                claimant = checksum_claimant(claimant)
                self._gate(distribution_id, claimant, amount, proof, total_amount)
            except ClaimRejectedError as e:
                return e.reason
        return None

    def claim(
        self,
        distribution_id: int,
        claimant: EthereumAddress,
        amount: int,
        proof: Sequence[merkle.HashLike],
        total_amount: Optional[int] = None,
    ) -> ClaimReceipt:
        """
        Pay `claimant` their committed `amount`, net of fees, at most once.

        :param `amount`: the eligible amount committed in the claimant's leaf
        :param `proof`: sibling hashes from the leaf to the root, bytes or hex
        :param `total_amount`: optional, must equal the stored distribution total
        """
        registry = self.registry

        with registry.transaction():
            try:
                claimant = checksum_claimant(claimant)
                distribution = self._gate(
                    distribution_id, claimant, amount, proof, total_amount
                )
            except ClaimRejectedError as e:
                logger.warning(
                    "claim by %s on distribution %s rejected: %s",
                    claimant,
                    distribution_id,
                    e.reason.value,
                )
                raise

            rates = FeeRates(
                platform_fee_bps=distribution.platform_fee_bps,
                maintenance_fee_bps=distribution.maintenance_fee_bps,
            )
            fees = claim_fees(amount, rates)
            receipt = ClaimReceipt(
                distribution_id=distribution_id,
                claimant=claimant,
                amount=amount,
                net_amount=fees.net_amount,
                platform_fee=fees.platform_fee,
                maintenance_fee=fees.maintenance_fee,
            )

            # set the flag before anything leaves escrow
            registry.record_claim(
                ClaimRecord(**receipt.model_dump(), claimed_at=registry.clock())
            )

            escrow = escrow_account(distribution_id)
            token = distribution.settlement_token
            payouts = [
                (registry.config.platform_fee_receiver, fees.platform_fee),
                (registry.config.maintenance_fee_receiver, fees.maintenance_fee),
                (claimant, fees.net_amount),
            ]
            for recipient, value in payouts:
                if value > 0:
                    registry.ledger.transfer(token, escrow, recipient, value)

            registry.emit("ClaimPaid", **receipt.model_dump())

        logger.info(
            "paid %s to %s from distribution %s (fees %s + %s)",
            receipt.net_amount,
            claimant,
            distribution_id,
            receipt.platform_fee,
            receipt.maintenance_fee,
        )
        return receipt
