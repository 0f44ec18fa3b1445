import pytest

from distributor.merkle import as_bytes, leaf_hash, verify
from distributor.proofs import ProofStore, build_distribution_tree
from distributor.snapshot import summarize
from distributor.models import Holder
from distributor.test.conftest import ASSET_TOKEN, _addresses


@pytest.fixture
def snap():
    holders = [
        Holder(address=a, balance=b) for a, b in zip(_addresses, [500, 300, 200, 0])
    ]
    return summarize(1000, holders, 1000, block=17000000)


@pytest.fixture
def store(tmp_path) -> ProofStore:
    return ProofStore(str(tmp_path / "distributions"))


def test_tree_artifact(snap):
    tree = build_distribution_tree(snap, ASSET_TOKEN, "PROP-001")

    assert tree.userCount == 3
    assert tree.totalAmount == "1000"
    assert tree.totalSupply == "1000"
    assert tree.block == "17000000"
    assert tree.assetId == "PROP-001"
    # zero balance holders are not in the tree
    assert _addresses[3] not in tree.claims

    for address, claim in tree.claims.items():
        assert as_bytes(claim.leaf) == leaf_hash(address, int(claim.amount))
        assert verify(tree.merkleRoot, claim.leaf, claim.proof)

    assert tree.claims[_addresses[0]].balance == "500"


def test_store_round_trip(snap, store: ProofStore):
    tree = build_distribution_tree(snap, ASSET_TOKEN, "PROP-001")
    path = store.save(7, tree)

    assert path.endswith("distribution-7.json")
    assert store.exists(7)
    assert store.load(7) == tree


def test_user_proof(snap, store):
    tree = build_distribution_tree(snap, ASSET_TOKEN, "PROP-001")
    store.save(1, tree)

    user = store.get_user_proof(1, _addresses[1].lower())
    assert user.address == _addresses[1]
    assert user.amount == "300"
    assert user.merkleRoot == tree.merkleRoot
    assert verify(user.merkleRoot, leaf_hash(user.address, 300), user.proof)


def test_not_eligible_is_none(snap, store):
    store.save(1, build_distribution_tree(snap, ASSET_TOKEN, "PROP-001"))
    assert store.get_user_proof(1, _addresses[4]) is None


def test_missing_tree(store):
    assert not store.exists(3)
    with pytest.raises(FileNotFoundError):
        store.load(3)


def test_published_proof_claims(registry, engine, make_distribution, snap, store):
    amounts = snap.amounts
    distribution, _ = make_distribution(amounts)
    store.save(distribution.id, build_distribution_tree(snap, ASSET_TOKEN, "PROP-001"))

    user = store.get_user_proof(distribution.id, _addresses[0])
    receipt = engine.claim(distribution.id, user.address, int(user.amount), user.proof)
    assert receipt.net_amount == 475
