import os
from dotenv import load_dotenv
from distributor.errors import MissingEnvironmentVariableException

load_dotenv()


def env_var(accessor: str) -> str:
    """
    Attempt to fetch an environment variable and throw
    an error if not found
    """
    var = os.environ.get(accessor)
    if not var:
        raise MissingEnvironmentVariableException(accessor)
    return var


def rpc_url() -> str:
    return env_var("RPC_URL")


def token_subgraph() -> str:
    return env_var("SUBGRAPH_TOKEN_HOLDERS")
