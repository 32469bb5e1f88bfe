import json

import httpx
import pytest

from docstore.backends.tree import RealtimeTreeBackend
from docstore.errors import NotFoundError, StorageError
from docstore.persistence.tree import RealtimeTreeClient


@pytest.fixture
def backend(tree_client):
    return RealtimeTreeBackend(tree_client)


def test_requests_carry_auth_and_json_suffix(tree_db, tree_client):
    tree_client.set("catalog/w1", {"name": "Widget"})
    tree_client.get("catalog/w1")

    put, get = tree_db.requests
    assert put.method == "PUT"
    assert put.url.path == "/catalog/w1.json"
    assert put.url.params["auth"] == "secret-token"
    assert json.loads(put.content) == {"name": "Widget"}
    assert get.url.params["auth"] == "secret-token"


def test_client_without_token_sends_no_auth(tree_db):
    with RealtimeTreeClient(
        "https://shop-test.firebaseio.test/",
        transport=httpx.MockTransport(tree_db.handler),
    ) as client:
        client.get("catalog")
    assert "auth" not in tree_db.requests[0].url.params


def test_push_returns_generated_key(tree_db, tree_client):
    key = tree_client.push("logs", {"msg": "hi"})
    assert key == "-N000001"
    assert tree_db.root["logs"][key] == {"msg": "hi"}


def test_query_sends_json_encoded_filters(tree_db, tree_client):
    tree_client.query("users", order_by="email", equal_to="a@x.io")
    params = tree_db.requests[0].url.params
    assert params["orderBy"] == '"email"'
    assert params["equalTo"] == '"a@x.io"'


def test_sparse_list_children_are_documents(tree_db, backend):
    tree_db.root["slots"] = [None, {"label": "one"}, None, {"label": "three"}]

    docs = backend.read_all("slots")
    assert sorted(d["id"] for d in docs) == ["1", "3"]
    assert {d["label"] for d in docs} == {"one", "three"}


def test_scalar_children_are_wrapped(tree_db, backend):
    tree_db.root["flags"] = {"beta": True}
    assert backend.read_all("flags") == [{"id": "beta", "value": True}]


def test_update_missing_node_raises_not_found(tree_db, backend):
    with pytest.raises(NotFoundError):
        backend.update("ghost", {"a": 1}, "notes")
    assert "notes" not in tree_db.root


def test_delete_missing_issues_no_delete(tree_db, backend):
    assert backend.delete("ghost", "notes") is False
    assert [r.method for r in tree_db.requests] == ["GET"]


def test_http_errors_become_storage_errors(tree_db, backend):
    tree_db.fail_with = 500
    with pytest.raises(StorageError) as exc:
        backend.read_all("catalog")
    assert exc.value.operation == "get"


def test_ping(tree_db, backend):
    assert backend.ping() is True
    tree_db.fail_with = 503
    assert backend.ping() is False
