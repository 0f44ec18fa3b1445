import pytest

from distributor.env import env_var, rpc_url
from distributor.errors import MissingEnvironmentVariableException


def test_env_var_missing(monkeypatch):
    monkeypatch.delenv("DISTRIBUTOR_TEST_VAR", raising=False)
    with pytest.raises(MissingEnvironmentVariableException):
        env_var("DISTRIBUTOR_TEST_VAR")


def test_env_var_empty_counts_as_missing(monkeypatch):
    monkeypatch.setenv("DISTRIBUTOR_TEST_VAR", "")
    with pytest.raises(MissingEnvironmentVariableException):
        env_var("DISTRIBUTOR_TEST_VAR")


def test_env_var(monkeypatch):
    monkeypatch.setenv("RPC_URL", "http://localhost:8545")
    assert rpc_url() == "http://localhost:8545"
