import json
from typing import Any

import fakeredis
import httpx
import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from docstore.backends.postgres import PostgresBackend
from docstore.backends.redis_kv import RedisBackend
from docstore.backends.tree import RealtimeTreeBackend
from docstore.events import EventRegistry
from docstore.persistence.store import KVStore
from docstore.persistence.tree import RealtimeTreeClient
from docstore.service import CollectionService
from docstore.storage.objects import ObjectStorage


class FakeTreeDatabase:
    """
    In-memory realtime tree speaking the REST protocol, mounted on an
    httpx.MockTransport.
    """

    def __init__(self):
        self.root: dict[str, Any] = {}
        self.requests: list[httpx.Request] = []
        self.fail_with: int | None = None
        self._pushes = 0

    # ---- tree helpers ----
    @staticmethod
    def _segments(request: httpx.Request) -> list[str]:
        path = request.url.path
        if path.endswith(".json"):
            path = path[: -len(".json")]
        return [s for s in path.split("/") if s]

    def get(self, segs: list[str]) -> Any:
        node: Any = self.root
        for seg in segs:
            if isinstance(node, dict):
                node = node.get(seg)
            elif isinstance(node, list) and seg.isdigit() and int(seg) < len(node):
                node = node[int(seg)]
            else:
                return None
        return node

    def set(self, segs: list[str], value: Any) -> None:
        if not segs:
            self.root = value if isinstance(value, dict) else {}
            return
        node = self.root
        for seg in segs[:-1]:
            node = node.setdefault(seg, {})
        node[segs[-1]] = value

    def remove(self, segs: list[str]) -> None:
        if not segs:
            self.root = {}
            return
        parent = self.get(segs[:-1])
        if isinstance(parent, dict):
            parent.pop(segs[-1], None)

    # ---- transport ----
    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.fail_with:
            return httpx.Response(self.fail_with, json={"error": "boom"})

        segs = self._segments(request)
        params = request.url.params

        if request.method == "GET":
            node = self.get(segs)
            if "orderBy" in params:
                field = json.loads(params["orderBy"])
                wanted = json.loads(params["equalTo"])
                node = {
                    k: v
                    for k, v in (node or {}).items()
                    if isinstance(v, dict) and v.get(field) == wanted
                }
            if params.get("shallow") == "true" and isinstance(node, dict):
                node = {k: True for k in node}
            return httpx.Response(200, json=node)

        body = json.loads(request.content) if request.content else None
        if request.method == "POST":
            self._pushes += 1
            key = f"-N{self._pushes:06d}"
            self.set(segs + [key], body)
            return httpx.Response(200, json={"name": key})
        if request.method == "PUT":
            self.set(segs, body)
            return httpx.Response(200, json=body)
        if request.method == "PATCH":
            node = self.get(segs)
            if not isinstance(node, dict):
                node = {}
                self.set(segs, node)
            node.update(body)
            return httpx.Response(200, json=body)
        if request.method == "DELETE":
            self.remove(segs)
            return httpx.Response(200, json=None)
        return httpx.Response(405)


class MemoryObjectStorage(ObjectStorage):
    def __init__(self):
        self.objects: dict[str, tuple[bytes, str]] = {}

    def put(self, data: bytes, path: str, content_type: str) -> str:
        self.objects[path] = (data, content_type)
        return f"https://cdn.example.test/{path}"


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
        future=True,
    )
    try:
        yield eng
    finally:
        eng.dispose()


@pytest.fixture
def store(engine):
    return KVStore(engine)


@pytest.fixture
def events():
    return EventRegistry()


@pytest.fixture
def object_storage():
    return MemoryObjectStorage()


@pytest.fixture
def service(store, events, object_storage):
    return CollectionService(
        PostgresBackend(store), object_storage=object_storage, events=events
    )


@pytest.fixture
def tree_db():
    return FakeTreeDatabase()


@pytest.fixture
def tree_client(tree_db):
    client = RealtimeTreeClient(
        "https://shop-test.firebaseio.test",
        auth_token="secret-token",
        transport=httpx.MockTransport(tree_db.handler),
    )
    try:
        yield client
    finally:
        client.close()


@pytest.fixture
def tree_service(tree_client, events, object_storage):
    return CollectionService(
        RealtimeTreeBackend(tree_client), object_storage=object_storage, events=events
    )


@pytest.fixture
def redis_client():
    client = fakeredis.FakeRedis(decode_responses=True)
    try:
        yield client
    finally:
        client.flushall()


@pytest.fixture
def redis_service(redis_client, events, object_storage):
    return CollectionService(
        RedisBackend(redis_client), object_storage=object_storage, events=events
    )


SERVICES = {"postgres": "service", "tree": "tree_service", "redis": "redis_service"}


@pytest.fixture(params=sorted(SERVICES))
def any_service(request):
    """The facade over each backend; contract tests run against all of them."""
    return request.getfixturevalue(SERVICES[request.param])
