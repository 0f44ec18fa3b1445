import pytest

from distributor.errors import EmptyQueryError, TooManyLoopsError
from distributor.queries.common import extract_nested_graphql, graphql_iterate_query
from distributor.test.conftest import MockResponse

PAGES = {
    0: [{"id": 1}, {"id": 2}],
    2: [{"id": 3}],
    3: [],
}


def page(skip: int):
    return {"data": {"erc20Contract": {"balances": PAGES[skip]}}}


def test_extract_nested():
    assert extract_nested_graphql(page(0), ["erc20Contract", "balances"]) == PAGES[0]


def test_iterates_until_empty(monkeypatch):
    skips = []

    def post(url, json):
        skips.append(json["variables"]["skip"])
        return MockResponse(page(json["variables"]["skip"]))

    monkeypatch.setattr("distributor.queries.common.requests.post", post)

    results = graphql_iterate_query(
        "http://subgraph",
        ["erc20Contract", "balances"],
        dict(query="", variables={"skip": 0}),
    )
    assert [r["id"] for r in results] == [1, 2, 3]
    assert skips == [0, 2, 3]


def test_empty_response_raises(monkeypatch):
    monkeypatch.setattr(
        "distributor.queries.common.requests.post", lambda url, json: MockResponse({})
    )
    with pytest.raises(EmptyQueryError):
        graphql_iterate_query("http://subgraph", ["a"], dict(query="", variables={}))


def test_graph_errors_raise(monkeypatch):
    monkeypatch.setattr(
        "distributor.queries.common.requests.post",
        lambda url, json: MockResponse({"errors": ["bad query"]}),
    )
    with pytest.raises(EmptyQueryError, match="bad query"):
        graphql_iterate_query("http://subgraph", ["a"], dict(query="", variables={}))


def test_too_many_loops(monkeypatch):
    monkeypatch.setattr(
        "distributor.queries.common.requests.post",
        lambda url, json: MockResponse({"data": {"a": [1]}}),
    )
    with pytest.raises(TooManyLoopsError):
        graphql_iterate_query(
            "http://subgraph", ["a"], dict(query="", variables={"skip": 0}), max_loops=3
        )
