from __future__ import annotations

import threading
from collections import defaultdict
from typing import Dict, List

from ..core.utils import get_logger
from ..errors import TransportError
from .base import MessageCallback, Subscription

_log = get_logger()


class InMemoryTransport:
    """In-process transport; ``publish`` delivers synchronously to subscribers.

    Subscriber exceptions are logged and do not fail the publisher.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._schemas: Dict[str, str] = {}
        self._subscribers: Dict[str, List[MessageCallback]] = defaultdict(list)
        self._counts: Dict[str, int] = defaultdict(int)
        self._closed = False

    def register_topic(self, name: str, schema: str) -> None:
        with self._lock:
            existing = self._schemas.get(name)
            if existing is not None and existing != schema:
                raise TransportError(f"Topic '{name}' already registered with schema '{existing}'")
            self._schemas[name] = schema

    def topics(self) -> Dict[str, str]:
        with self._lock:
            return dict(self._schemas)

    def publish(self, name: str, payload: bytes) -> None:
        with self._lock:
            if self._closed:
                raise TransportError("Transport is closed")
            if name not in self._schemas:
                raise TransportError(f"Topic '{name}' is not registered")
            callbacks = list(self._subscribers.get(name, ()))
            self._counts[name] += 1
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:
                _log.exception("Subscriber on '%s' raised", name)

    def subscribe(self, name: str, callback: MessageCallback) -> Subscription:
        with self._lock:
            if self._closed:
                raise TransportError("Transport is closed")
            self._subscribers[name].append(callback)

        def _cancel() -> None:
            with self._lock:
                subs = self._subscribers.get(name, [])
                if callback in subs:
                    subs.remove(callback)

        return Subscription(name, _cancel)

    def message_count(self, name: str) -> int:
        with self._lock:
            return self._counts.get(name, 0)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            self._subscribers.clear()
