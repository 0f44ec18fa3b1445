import os
from typing import Optional

import eth_utils as eth

from distributor.merkle import MerkleTree, to_hex
from distributor.models import (
    DistributionTree,
    EligibilitySnapshot,
    EthereumAddress,
    TreeClaim,
    UserProof,
)
from distributor.utils import write_json


def build_distribution_tree(
    snapshot: EligibilitySnapshot,
    token_address: EthereumAddress,
    asset_id: str,
    workers: Optional[int] = None,
) -> DistributionTree:
    """
    Build the merkle tree for a snapshot and attach every holder's proof.
    The result is what gets published for holders: the root goes on-ledger separately.
    """
    tree = MerkleTree(snapshot.entries, workers=workers)
    balances = {h.address: h.balance for h in snapshot.holders}

    claims = {}
    for address, entry in tree.entries.items():
        leaf = tree.leaves[address]
        claims[address] = TreeClaim(
            amount=str(entry.amount),
            balance=str(balances.get(address, 0)),
            leaf=to_hex(leaf),
            proof=[to_hex(p) for p in tree.proof(leaf) or []],
        )

    return DistributionTree(
        merkleRoot=tree.hex_root,
        totalAmount=str(snapshot.total_amount),
        totalSupply=str(snapshot.total_supply),
        tokenAddress=eth.to_checksum_address(token_address),
        assetId=asset_id,
        block=str(snapshot.block),
        userCount=len(claims),
        claims=claims,
    )


class ProofStore:
    """
    Serves proofs to holders from the published tree files, one json file per distribution.
    Nothing here is trusted on-ledger: a proof is only as good as the root it folds to.
    """

    def __init__(self, path: str):
        self.path = path

    def file(self, distribution_id: int) -> str:
        return f"{self.path}/distribution-{distribution_id}.json"

    def exists(self, distribution_id: int) -> bool:
        return os.path.exists(self.file(distribution_id))

    def save(self, distribution_id: int, tree: DistributionTree) -> str:
        path = self.file(distribution_id)
        write_json(tree.model_dump(), path)
        return path

    def load(self, distribution_id: int) -> DistributionTree:
        """Raises FileNotFoundError if no tree was published for the distribution"""
        with open(self.file(distribution_id)) as f:
            return DistributionTree.model_validate_json(f.read())

    def get_user_proof(
        self, distribution_id: int, address: EthereumAddress
    ) -> Optional[UserProof]:
        """The holder's amount and proof, or None if they are not in the distribution"""
        tree = self.load(distribution_id)
        claim = tree.claims.get(eth.to_checksum_address(address))
        if claim is None:
            return None
        return UserProof(
            distributionId=distribution_id,
            address=eth.to_checksum_address(address),
            amount=claim.amount,
            proof=claim.proof,
            merkleRoot=tree.merkleRoot,
        )
