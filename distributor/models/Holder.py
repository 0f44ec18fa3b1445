from typing import Union

import eth_utils as eth
from pydantic import BaseModel, ConfigDict, field_validator

from distributor.models.types import EthereumAddress


class User(BaseModel):
    """Base class for a user with an eth address"""

    address: EthereumAddress

    @field_validator("address")
    @classmethod
    def checksum_address(cls, input: str):
        return eth.to_checksum_address(input)


class Holder(User):
    """A token holder and their balance at the snapshot block"""

    balance: int


class EligibilityEntry(User):
    """
    The share one holder may claim from a distribution.
    :param `amount`: floor(total_amount * balance / total_supply), fixed once computed
    """

    model_config = ConfigDict(frozen=True)

    amount: int


class EligibilitySnapshot(BaseModel):
    """
    Summary of a snapshot run
    :param `distributed`: sum of all entry amounts
    :param `dust`: what integer truncation left undistributed (total_amount - distributed)
    """

    block: Union[int, str]
    total_amount: int
    total_supply: int
    distributed: int
    dust: int
    holders: list[Holder]
    entries: list[EligibilityEntry]

    @property
    def amounts(self) -> dict[EthereumAddress, int]:
        return {e.address: e.amount for e in self.entries}
