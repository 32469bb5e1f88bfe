import pytest

from docstore.events import EventRegistry, OnDecorator


def test_decorators_register_per_collection_and_wildcard():
    registry = EventRegistry()
    on = OnDecorator(registry)
    calls = []

    @on.create("orders")
    def order_created(collection, doc):
        calls.append(("orders", doc["id"]))

    @on.create()
    def anything_created(collection, doc):
        calls.append(("*", collection))

    registry.emit("create", "orders", {"id": "o1"})
    registry.emit("create", "notes", {"id": "n1"})
    registry.emit("delete", "orders", {"id": "o1"})

    assert calls == [("orders", "o1"), ("*", "orders"), ("*", "notes")]

    registry.clear()
    registry.emit("create", "orders", {"id": "o2"})
    assert len(calls) == 3


def test_handler_errors_propagate():
    registry = EventRegistry()

    def failing(collection, doc):
        raise RuntimeError("hook failed")

    registry.register("update", ("orders",), failing)
    with pytest.raises(RuntimeError):
        registry.emit("update", "orders", {"id": "o1"})
