"""
docstore.events  ──  Collection lifecycle hooks

    from docstore import on

    @on.create("orders")
    def notify_admin(collection, document): ...
"""

from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, Dict, List

Handler = Callable[[str, Dict[str, Any]], Any]

EVENT_TYPES = ("create", "update", "delete")
ANY_COLLECTION = "*"


class EventRegistry:
    """Central registry for event handlers"""

    def __init__(self):
        # Maps event type -> collection name -> handlers (in registration order)
        self._handlers: Dict[str, Dict[str, List[Handler]]] = {
            event: defaultdict(list) for event in EVENT_TYPES
        }

    def register(
        self, event_type: str, collections: tuple[str, ...], handler: Handler
    ) -> None:
        """Register a handler for specific collections (all when none given)"""
        for collection in collections or (ANY_COLLECTION,):
            handlers = self._handlers[event_type][collection]
            if handler not in handlers:
                handlers.append(handler)

    def emit(self, event_type: str, collection: str, document: Dict[str, Any]) -> None:
        """Emit event to all matching handlers"""
        by_collection = self._handlers[event_type]
        for handler in [*by_collection.get(collection, ()), *by_collection.get(ANY_COLLECTION, ())]:
            handler(collection, document)

    def clear(self) -> None:
        for by_collection in self._handlers.values():
            by_collection.clear()


class OnDecorator:
    """Namespace for event decorators"""

    def __init__(self, registry: EventRegistry):
        self.registry = registry

    def _decorator(self, event_type: str, collections: tuple[str, ...]) -> Callable:
        def decorator(func: Handler) -> Handler:
            self.registry.register(event_type, collections, func)
            return func

        return decorator

    def create(self, *collections: str) -> Callable:
        """Decorator for handling document creation events"""
        return self._decorator("create", collections)

    def update(self, *collections: str) -> Callable:
        """Decorator for handling document update events"""
        return self._decorator("update", collections)

    def delete(self, *collections: str) -> Callable:
        """Decorator for handling document deletion events"""
        return self._decorator("delete", collections)


# Global registry instance
registry = EventRegistry()

# Export the decorator interface
on = OnDecorator(registry)
