import json
from typing import Optional

import eth_utils as eth
from multicall import Call, Multicall  # type: ignore
from web3 import Web3

from distributor.env import token_subgraph
from distributor.models import EthereumAddress
from distributor.queries.common import get_w3, graphql_iterate_query
from distributor.snapshot import BlockIdentifier

# simplified ABI containing just the fragment we want to use
ERC20_SUPPLY_ABI = json.loads(
    """
    [{
      "inputs": [],
      "name": "totalSupply",
      "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
      "stateMutability": "view",
      "type": "function"
    }]
    """
)


class ERC20Provider:
    """
    Reads balances and supply of the fractional token from the chain, at a block
    """

    def __init__(self, token_address: EthereumAddress, w3: Optional[Web3] = None):
        self.w3 = w3 or get_w3()
        self.address = eth.to_checksum_address(token_address)
        self.contract = self.w3.eth.contract(address=self.address, abi=ERC20_SUPPLY_ABI)  # type: ignore

    def balances_of(
        self, holders: list[EthereumAddress], block: BlockIdentifier = "latest"
    ) -> dict[EthereumAddress, int]:
        """
        Multicall out to the token to fetch the balance of every holder at `block`
        """
        holders = [eth.to_checksum_address(h) for h in holders]
        if not holders:
            return {}

        calls = [
            Call(
                # address to call:
                self.address,
                # signature + return value, with argument:
                ["balanceOf(address)(uint256)", h],
                # return in a format of {[address]: uint}:
                [[h, None]],
            )
            for h in holders
        ]

        # tags like 'latest' read the current block
        block_id = block if isinstance(block, int) else None
        results = Multicall(calls, _w3=self.w3, block_id=block_id)()
        return {h: int(results[h]) for h in holders}

    def total_supply(self, block: BlockIdentifier = "latest") -> int:
        return int(self.contract.functions.totalSupply().call(block_identifier=block))


def get_token_holders(
    token_address: EthereumAddress,
    block: Optional[int] = None,
    url: Optional[str] = None,
) -> list[EthereumAddress]:
    """
    Fetch every address with a positive balance of the token from the subgraph.
    Balances are read separately through a provider, so only the addresses are kept.
    """
    query = """
        query($token: String, $block: Int, $skip: Int) {
            erc20Contract(
                id: $token,
                block: {number: $block}
            ) {
                balances(
                    orderBy: valueExact
                    orderDirection: desc
                    where: {account_not: null, valueExact_gt: 0}
                    first: 1000
                    skip: $skip
                ) {
                    account {
                        id
                    }
                    valueExact
                }
            }
        }
    """
    variables = {
        "token": token_address.lower(),
        "block": block,
        "skip": 0,
    }

    balances = graphql_iterate_query(
        url or token_subgraph(),
        ["erc20Contract", "balances"],
        dict(query=query, variables=variables),  # type: ignore
    )
    return list(
        dict.fromkeys(eth.to_checksum_address(b["account"]["id"]) for b in balances)
    )
