"""
Sorted-pair keccak merkle trees for (address, amount) claims.

Leaves are `keccak256(abi.encodePacked(address, uint256))`, the same encoding a
Solidity distributor recomputes on claim. Internal nodes hash the two children in
ascending byte order, so a proof is just a list of siblings with no left/right flags.
A layer with an odd number of nodes pairs its last node with itself. The verifier
below folds proofs with exactly that rule, so builder and verifier must not diverge.
"""
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, Optional, Sequence, Union

import eth_utils as eth
from web3 import Web3

from distributor.errors import InvalidTreeError
from distributor.models import EligibilityEntry, EthereumAddress, HexStr

Proof = list[bytes]
HashLike = Union[bytes, HexStr]


def as_bytes(value: HashLike) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        return bytes(value)
    return eth.decode_hex(value)


def to_hex(value: bytes) -> HexStr:
    return eth.encode_hex(value)


def leaf_hash(address: EthereumAddress, amount: int) -> bytes:
    """Hash one (holder, amount) pair into a leaf"""
    return bytes(
        Web3.solidity_keccak(
            ["address", "uint256"], [eth.to_checksum_address(address), int(amount)]
        )
    )


def hash_pair(a: bytes, b: bytes) -> bytes:
    if a <= b:
        return eth.keccak(a + b)
    return eth.keccak(b + a)


def fold_proof(leaf: HashLike, proof: Iterable[HashLike]) -> bytes:
    """Walk from the leaf to a candidate root using the siblings in `proof`"""
    node = as_bytes(leaf)
    for sibling in proof:
        node = hash_pair(node, as_bytes(sibling))
    return node


def verify(root: HashLike, leaf: HashLike, proof: Iterable[HashLike]) -> bool:
    """
    True if `leaf` folded with `proof` lands on `root`.
    An empty proof compares the leaf to the root directly (single-leaf tree).
    """
    return fold_proof(leaf, proof) == as_bytes(root)


def build_layers(leaves: Sequence[bytes]) -> list[list[bytes]]:
    """Bottom-up layers, `layers[0]` being the leaves and `layers[-1]` the root"""
    layers = [list(leaves)]
    while len(layers[-1]) > 1:
        current = layers[-1]
        parents = []
        for i in range(0, len(current), 2):
            left = current[i]
            # odd layer: pair the last node with itself
            right = current[i + 1] if i + 1 < len(current) else left
            parents.append(hash_pair(left, right))
        layers.append(parents)
    return layers


class MerkleTree:
    """
    Tree over a set of eligibility entries.

    Leaves are sorted before layering, so any permutation of the same entries
    yields the same root.

    :param `entries`: one entry per holder, holders must be unique
    :param `workers`: hash leaves on a thread pool of this size when set
    """

    def __init__(self, entries: Iterable[EligibilityEntry], workers: Optional[int] = None):
        entries = list(entries)
        if not entries:
            raise InvalidTreeError("Cannot build a merkle tree with no entries")

        addresses = [e.address for e in entries]
        if len(set(addresses)) != len(addresses):
            raise InvalidTreeError("Duplicate holder in merkle tree entries")

        if workers:
            with ThreadPoolExecutor(max_workers=workers) as pool:
                hashes = list(
                    pool.map(lambda e: leaf_hash(e.address, e.amount), entries)
                )
        else:
            hashes = [leaf_hash(e.address, e.amount) for e in entries]

        self.entries: dict[EthereumAddress, EligibilityEntry] = {
            e.address: e for e in entries
        }
        self.leaves: dict[EthereumAddress, bytes] = dict(zip(addresses, hashes))
        self.layers = build_layers(sorted(hashes))
        self._index = {leaf: i for i, leaf in enumerate(self.layers[0])}

    @property
    def root(self) -> bytes:
        return self.layers[-1][0]

    @property
    def hex_root(self) -> HexStr:
        return to_hex(self.root)

    def __len__(self) -> int:
        return len(self.entries)

    def proof(self, leaf: bytes) -> Optional[Proof]:
        """Sibling path for `leaf`, or None if the leaf is not in the tree"""
        idx = self._index.get(leaf)
        if idx is None:
            return None

        proof: Proof = []
        for layer in self.layers[:-1]:
            sibling = idx ^ 1
            # the last node of an odd layer was hashed with itself
            proof.append(layer[sibling] if sibling < len(layer) else layer[idx])
            idx //= 2
        return proof

    def proof_for(self, address: EthereumAddress) -> Optional[Proof]:
        leaf = self.leaves.get(eth.to_checksum_address(address))
        if leaf is None:
            return None
        return self.proof(leaf)


def build_tree(entries: Iterable[EligibilityEntry]) -> bytes:
    return MerkleTree(entries).root


def build_proof(
    entries: Iterable[EligibilityEntry], holder: EthereumAddress
) -> Optional[Proof]:
    """
    Proof for `holder` against the root of `entries`.
    Returns None when the holder has no entry: a non-eligible party has no proof.
    """
    return MerkleTree(entries).proof_for(holder)
