from __future__ import annotations

from typing import Callable, Protocol, runtime_checkable

MessageCallback = Callable[[bytes], None]


class Subscription:
    """Handle returned by ``subscribe``; ``cancel()`` stops delivery."""

    def __init__(self, topic: str, cancel: Callable[[], None]) -> None:
        self.topic = topic
        self._cancel = cancel
        self.active = True

    def cancel(self) -> None:
        if self.active:
            self.active = False
            self._cancel()


@runtime_checkable
class Transport(Protocol):
    """Publish/subscribe channel the pipeline hands encoded messages to."""

    def register_topic(self, name: str, schema: str) -> None: ...

    def publish(self, name: str, payload: bytes) -> None: ...

    def subscribe(self, name: str, callback: MessageCallback) -> Subscription: ...

    def close(self) -> None: ...
