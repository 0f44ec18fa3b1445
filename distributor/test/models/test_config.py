import pytest

from distributor.config import load_conf, load_input
from distributor.models import (
    BadConfigException,
    Config,
    DistributionKind,
    FeeRates,
)
from distributor.test.conftest import ADMIN, MAINTENANCE, OPERATOR, PLATFORM, STUBS


@pytest.fixture
def config_dict(config: Config) -> dict:
    return config.model_dump()


def test_load_conf():
    config = load_conf(str(STUBS / "config.json"))

    assert config.platform_fee_bps == 200
    assert config.maintenance_fee_bps == 300
    # addresses are checksummed on load
    assert config.platform_fee_receiver == PLATFORM
    assert config.maintenance_fee_receiver == MAINTENANCE
    assert config.operators == [OPERATOR]
    assert config.admins == [ADMIN]
    assert config.fee_rates == FeeRates(platform_fee_bps=200, maintenance_fee_bps=300)


def test_load_input():
    conf = load_input(str(STUBS / "input.json"))

    assert conf.kind == DistributionKind.RENT
    assert conf.total_amount == 1000
    assert conf.block_snapshot == 17000000


@pytest.mark.parametrize("field", ["platform_fee_bps", "maintenance_fee_bps"])
@pytest.mark.parametrize("rate", [-1, 10_001])
def test_validate_rate(config_dict, field, rate):
    config_dict[field] = rate
    with pytest.raises(BadConfigException, match="Fee rate out of range"):
        Config(**config_dict)


def test_validate_combined_rate(config_dict):
    config_dict["platform_fee_bps"] = 5_000
    config_dict["maintenance_fee_bps"] = 5_001
    with pytest.raises(BadConfigException, match="Combined fee rate out of range"):
        Config(**config_dict)


def test_full_rate_allowed(config_dict):
    config_dict["platform_fee_bps"] = 10_000
    config_dict["maintenance_fee_bps"] = 0
    assert Config(**config_dict).platform_fee_bps == 10_000


def test_admin_required(config_dict):
    config_dict["admins"] = []
    with pytest.raises(BadConfigException, match="At least one admin"):
        Config(**config_dict)


def test_invalid_receiver(config_dict):
    config_dict["platform_fee_receiver"] = "0x1234"
    with pytest.raises(ValueError):
        Config(**config_dict)
