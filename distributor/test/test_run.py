import json

import pytest

from distributor import run
from distributor.errors import ClaimRejectedError, ClaimRejection
from distributor.models import DistributionStatus
from distributor.test.conftest import (
    ADMIN,
    MAINTENANCE,
    OPERATOR,
    PLATFORM,
    SETTLEMENT,
    STUBS,
    StaticTokenProvider,
    _addresses,
)

INPUT = str(STUBS / "input.json")
BALANCES = dict(zip(_addresses, [500, 300, 200]))


@pytest.fixture
def config_path(tmp_path) -> str:
    path = tmp_path / "config.json"
    path.write_text(
        json.dumps(
            {
                "platform_fee_receiver": PLATFORM,
                "maintenance_fee_receiver": MAINTENANCE,
                "operators": [OPERATOR],
                "admins": [ADMIN],
                "db_path": str(tmp_path / "db.json"),
                "reports_dir": str(tmp_path / "reports"),
                "proofs_dir": str(tmp_path / "distributions"),
            }
        )
    )
    return str(path)


@pytest.fixture
def mock_chain(monkeypatch):
    monkeypatch.setattr(
        run, "get_token_holders", lambda token, block=None: list(BALANCES)
    )
    monkeypatch.setattr(
        run, "ERC20Provider", lambda token: StaticTokenProvider(BALANCES, 1000)
    )


def fund_operator(config_path: str, amount: int = 1000) -> None:
    registry = run.open_registry(config_path)
    registry.ledger.mint(OPERATOR, SETTLEMENT, amount)
    registry.db.close()


def test_snapshot_writes_tree_and_reports(config_path, mock_chain, tmp_path):
    path = run.run_snapshot(config_path, INPUT)

    assert path == f"{tmp_path}/reports/PROP-001-17000000/merkle-tree.json"
    with open(path) as f:
        tree = json.load(f)
    assert tree["totalAmount"] == "1000"
    assert tree["userCount"] == 3
    assert tree["claims"][_addresses[1]]["amount"] == "300"
    assert (tmp_path / "reports/PROP-001-17000000/csv/eligibility.csv").exists()


def test_snapshot_create_claim_status(config_path, mock_chain):
    run.run_snapshot(config_path, INPUT)
    fund_operator(config_path)

    distribution_id = run.run_create(
        config_path, INPUT, OPERATOR, activate=True, yes=True
    )
    assert distribution_id == 1

    receipt = run.run_claim(config_path, distribution_id, _addresses[0])
    assert receipt["net_amount"] == 475
    assert receipt["platform_fee"] == 10
    assert receipt["maintenance_fee"] == 15

    with pytest.raises(ClaimRejectedError) as e:
        run.run_claim(config_path, distribution_id, _addresses[0])
    assert e.value.reason == ClaimRejection.ALREADY_CLAIMED

    status = json.loads(run.run_status(config_path, distribution_id, _addresses[0]))
    assert status["distribution"]["status"] == DistributionStatus.ACTIVE.value
    assert status["claimed"] == "500"
    assert status["remaining"] == "500"
    assert status["claim"]["amount"] == 500


def test_claim_for_ineligible_address(config_path, mock_chain):
    run.run_snapshot(config_path, INPUT)
    fund_operator(config_path)
    run.run_create(config_path, INPUT, OPERATOR, activate=True, yes=True)

    assert run.run_claim(config_path, 1, _addresses[4]) == {}


def test_create_aborts_without_confirmation(config_path, mock_chain, monkeypatch):
    run.run_snapshot(config_path, INPUT)
    monkeypatch.setattr("builtins.input", lambda _: "n")

    assert run.run_create(config_path, INPUT, OPERATOR) == 0
    registry = run.open_registry(config_path)
    assert registry.list_distributions() == []
