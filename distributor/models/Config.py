from pydantic import BaseModel, field_validator, model_validator

import eth_utils as eth

from distributor.errors import BadConfigException
from distributor.models.types import EthereumAddress

BASIS_POINTS = 10_000


class ERROR_MESSAGES:
    RATE_OUT_OF_RANGE = "Fee rate out of range"
    COMBINED_RATE_OUT_OF_RANGE = "Combined fee rate out of range"
    NO_ADMIN = "At least one admin is required"


class FeeRates(BaseModel):
    """
    Fee rates in basis points (10000 = 100%)
    :param `platform_fee_bps`: cut paid to the platform fee receiver on each claim
    :param `maintenance_fee_bps`: cut paid to the maintenance fee receiver on each claim
    """

    platform_fee_bps: int = 200
    maintenance_fee_bps: int = 300

    @field_validator("platform_fee_bps", "maintenance_fee_bps")
    @classmethod
    def validate_rate(cls, rate: int) -> int:
        if rate < 0 or rate > BASIS_POINTS:
            raise BadConfigException(f"{ERROR_MESSAGES.RATE_OUT_OF_RANGE}: {rate}")
        return rate

    @model_validator(mode="after")
    def validate_combined(self):
        if self.platform_fee_bps + self.maintenance_fee_bps > BASIS_POINTS:
            raise BadConfigException(ERROR_MESSAGES.COMBINED_RATE_OUT_OF_RANGE)
        return self


class Config(FeeRates):
    """
    Deployment-wide settings, loaded from json with `load_conf`
    :param `operators`: may create, activate and close distributions
    :param `admins`: may cancel, change fees and recover unclaimed funds
    """

    platform_fee_receiver: EthereumAddress
    maintenance_fee_receiver: EthereumAddress
    operators: list[EthereumAddress] = []
    admins: list[EthereumAddress]
    db_path: str = "reports/distributor-db.json"
    reports_dir: str = "reports"
    proofs_dir: str = "reports/distributions"

    @field_validator("platform_fee_receiver", "maintenance_fee_receiver")
    @classmethod
    def checksum_receiver(cls, addr: EthereumAddress):
        return eth.to_checksum_address(addr)

    @field_validator("operators", "admins")
    @classmethod
    def checksum_roles(cls, addrs: list[EthereumAddress]):
        return [eth.to_checksum_address(a) for a in addrs]

    @field_validator("admins")
    @classmethod
    def ensure_admin(cls, addrs: list[EthereumAddress]):
        if not addrs:
            raise BadConfigException(ERROR_MESSAGES.NO_ADMIN)
        return addrs

    @property
    def fee_rates(self) -> FeeRates:
        return FeeRates(
            platform_fee_bps=self.platform_fee_bps,
            maintenance_fee_bps=self.maintenance_fee_bps,
        )
