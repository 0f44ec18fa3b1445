"""
Operator entry points, run with `python -m distributor.run <command>`

    snapshot  compute eligibility and the merkle tree for an input file
    create    commit a built tree as a new distribution and publish its proofs
    claim     claim a holder's share using the published proof
    status    show a distribution and, optionally, a holder's claim
"""
import json
from typing import Optional

import fire

from distributor.claims import ClaimEngine
from distributor.config import load_conf, load_input
from distributor.models import DB, DistributionTree, DistributionInput
from distributor.proofs import ProofStore, build_distribution_tree
from distributor.queries import ERC20Provider, get_token_holders
from distributor.registry import Registry
from distributor.snapshot import snapshot
from distributor.utils import write_json, yes_or_no
from distributor.writer import Writer


def run_name(conf: DistributionInput) -> str:
    return f"{conf.asset_id}-{conf.block_snapshot}"


def tree_path(reports_dir: str, conf: DistributionInput) -> str:
    return f"{reports_dir}/{run_name(conf)}/merkle-tree.json"


def open_registry(config_path: str) -> Registry:
    config = load_conf(config_path)
    return Registry(config, db=DB(config.db_path))


def run_snapshot(config_path: str, input_path: str, workers: Optional[int] = None) -> str:
    """Snapshot holders of the input's token and write the tree. Returns the tree path."""
    config = load_conf(config_path)
    conf = load_input(input_path)
    block = conf.block_snapshot if isinstance(conf.block_snapshot, int) else None

    holders = get_token_holders(conf.token_address, block)
    print(f"🔎 Found {len(holders)} holders of {conf.token_address}")

    provider = ERC20Provider(conf.token_address)
    snap = snapshot(provider, holders, conf.total_amount, conf.block_snapshot)

    Writer(config.reports_dir, run_name(conf)).write_snapshot(snap)
    tree = build_distribution_tree(snap, conf.token_address, conf.asset_id, workers)

    path = tree_path(config.reports_dir, conf)
    write_json(tree.model_dump(), path)
    print(
        f"🌳 Built tree for {tree.userCount} holders, root {tree.merkleRoot}, dust {snap.dust}"
    )
    return path


def run_create(
    config_path: str,
    input_path: str,
    caller: str,
    fund: bool = True,
    activate: bool = False,
    yes: bool = False,
) -> int:
    """Create a distribution from the tree built by `snapshot`. Returns the distribution id."""
    registry = open_registry(config_path)
    conf = load_input(input_path)

    with open(tree_path(registry.config.reports_dir, conf)) as f:
        tree = DistributionTree.model_validate_json(f.read())

    if int(tree.totalAmount) != conf.total_amount:
        raise ValueError(
            f"Tree was built for {tree.totalAmount}, input asks for {conf.total_amount}"
        )

    if not yes and not yes_or_no(
        f"Commit root {tree.merkleRoot} for {conf.total_amount} units?"
    ):
        print("Aborted, nothing was written")
        return 0

    distribution = registry.create_distribution(caller, conf, tree.merkleRoot, fund=fund)
    ProofStore(registry.config.proofs_dir).save(distribution.id, tree)
    if activate:
        registry.activate(caller, distribution.id)

    print(f"🚀 Created distribution {distribution.id} with root {tree.merkleRoot}")
    return distribution.id


def run_claim(config_path: str, distribution_id: int, address: str) -> dict:
    registry = open_registry(config_path)
    user = ProofStore(registry.config.proofs_dir).get_user_proof(distribution_id, address)
    if user is None:
        print(f"{address} is not eligible for distribution {distribution_id}")
        return {}

    receipt = ClaimEngine(registry).claim(
        distribution_id, user.address, int(user.amount), user.proof
    )
    print(f"💸 Paid {receipt.net_amount} to {receipt.claimant}")
    return receipt.model_dump()


def run_status(config_path: str, distribution_id: int, address: Optional[str] = None) -> str:
    registry = open_registry(config_path)
    status = {
        "distribution": registry.get_distribution(distribution_id).model_dump(mode="json"),
        "claimed": str(registry.claimed_amount(distribution_id)),
        "remaining": str(registry.remaining_amount(distribution_id)),
    }
    if address is not None:
        claim = registry.get_claim(distribution_id, address)
        status["claim"] = claim.model_dump() if claim else None
    return json.dumps(status, indent=4)


if __name__ == "__main__":
    fire.Fire(
        {
            "snapshot": run_snapshot,
            "create": run_create,
            "claim": run_claim,
            "status": run_status,
        }
    )
