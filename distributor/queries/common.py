from copy import deepcopy
from typing import Any, Optional, TypedDict, TypeVar, cast

import requests
from web3 import Web3

from distributor.env import rpc_url
from distributor.errors import EmptyQueryError, TooManyLoopsError
from distributor.models import GraphQL_Response


def get_w3(url: Optional[str] = None) -> Web3:
    """Web3 client on `url`, or on RPC_URL from the environment"""
    return Web3(Web3.HTTPProvider(url or rpc_url()))


class GraphQLConfig(TypedDict):
    """
    Typechecker for JSON/Dict data to be passed to the graph
    :param `query`: the query to send to The Graph
    :param `variables`: injected query params in dictionary format
    """

    query: str
    variables: dict[str, Any]


# python insantiates generics separate to function definition
T = TypeVar("T")


def extract_nested_graphql(res: GraphQL_Response, access_path: list[str]):
    """
    Walk through the response until reaching the data at `access_path`.
    :param `access_path`: in the format ['first_key', 'nested_key_level0', ...]
    :param `res`: api response from graphql. First key should be 'data'
    """
    path = deepcopy(access_path)
    current = res["data"]
    while len(path) > 0:
        current = current[path.pop(0)]
    return current


def _post(url: str, params: GraphQLConfig) -> GraphQL_Response:
    response: GraphQL_Response = requests.post(url, json=params).json()
    if not response:
        raise EmptyQueryError(f"No results for graph query to {url}")
    if "errors" in response:
        raise EmptyQueryError(
            f"Error in graph query to {url}: {cast(dict, response)['errors']}"
        )
    return response


def graphql_iterate_query(
    url: str, access_path: list[str], params: GraphQLConfig, max_loops: int = 1000
) -> list[T]:
    """
    Subgraphs return at most 1000 results per query.
    This pages through with `skip` until a page comes back empty.
    :param `url`: the subgraph endpoint
    :param `access_path`: eg ['erc20Contract', 'balances'] - set of keys to fetch data
    :param `params`: GraphQL config such as the actual query and variables
    """
    all_results: list[T] = extract_nested_graphql(_post(url, params), access_path)

    current_batch = all_results
    loops = 0
    while len(current_batch) > 0:
        if loops > max_loops:
            raise TooManyLoopsError("graphql_iterate_query")
        params["variables"]["skip"] = len(all_results)
        current_batch = extract_nested_graphql(_post(url, params), access_path)
        all_results += current_batch
        loops += 1
    return all_results
