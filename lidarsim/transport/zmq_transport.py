from __future__ import annotations

import threading
from typing import Dict, List, Optional

import zmq

from ..core.utils import get_logger
from ..errors import TransportError
from .base import MessageCallback, Subscription

_log = get_logger()

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 10000
_POLL_MS = 100


class ZmqTransport:
    """PUB/SUB transport over TCP.

    Messages go out as three frames ``[topic, schema, payload]``. Endpoint
    configuration is explicit; nothing binds until the first topic is
    registered. ``port=0`` binds a random free port, readable from
    :attr:`port` afterwards.
    """

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_PORT,
        context: Optional[zmq.Context] = None,
        send_hwm: int = 10,
    ) -> None:
        self._ctx = context or zmq.Context.instance()
        self._lock = threading.Lock()
        self._pub: Optional[zmq.Socket] = None
        self._schemas: Dict[str, str] = {}
        self._receivers: List[_Receiver] = []
        self._send_hwm = send_hwm
        self._closed = False
        self.host = host
        self.port = port

    def configure(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT) -> None:
        """Set the endpoint. Must be called before any topic is registered."""
        with self._lock:
            if self._pub is not None:
                raise TransportError("Cannot reconfigure a transport that is already bound")
            self.host = host
            self.port = port

    @property
    def endpoint(self) -> str:
        return f"tcp://{self.host}:{self.port}"

    def _bind(self) -> zmq.Socket:
        if self._pub is None:
            sock = self._ctx.socket(zmq.PUB)
            sock.setsockopt(zmq.SNDHWM, self._send_hwm)
            sock.setsockopt(zmq.LINGER, 0)
            try:
                if self.port == 0:
                    self.port = sock.bind_to_random_port(f"tcp://{self.host}")
                else:
                    sock.bind(self.endpoint)
            except zmq.ZMQError as exc:
                sock.close()
                raise TransportError(f"Failed to bind {self.endpoint}: {exc}") from exc
            self._pub = sock
            _log.info("Publishing on %s", self.endpoint)
        return self._pub

    def register_topic(self, name: str, schema: str) -> None:
        with self._lock:
            if self._closed:
                raise TransportError("Transport is closed")
            existing = self._schemas.get(name)
            if existing is not None and existing != schema:
                raise TransportError(f"Topic '{name}' already registered with schema '{existing}'")
            self._bind()
            self._schemas[name] = schema

    def publish(self, name: str, payload: bytes) -> None:
        with self._lock:
            if self._closed or self._pub is None:
                raise TransportError("Transport is not bound")
            schema = self._schemas.get(name)
            if schema is None:
                raise TransportError(f"Topic '{name}' is not registered")
            try:
                self._pub.send_multipart([name.encode(), schema.encode(), payload], flags=zmq.NOBLOCK)
            except zmq.Again as exc:
                raise TransportError(f"Send queue full on '{name}'") from exc
            except zmq.ZMQError as exc:
                raise TransportError(f"Publish on '{name}' failed: {exc}") from exc

    def subscribe(self, name: str, callback: MessageCallback) -> Subscription:
        with self._lock:
            if self._closed:
                raise TransportError("Transport is closed")
            receiver = _Receiver(self._ctx, self.endpoint, name, callback)
            self._receivers.append(receiver)
        receiver.start()

        def _cancel() -> None:
            receiver.stop()
            with self._lock:
                if receiver in self._receivers:
                    self._receivers.remove(receiver)

        return Subscription(name, _cancel)

    def close(self) -> None:
        with self._lock:
            self._closed = True
            receivers, self._receivers = self._receivers, []
            pub, self._pub = self._pub, None
        for receiver in receivers:
            receiver.stop()
        if pub is not None:
            pub.close()


class _Receiver:
    """SUB socket polled on a daemon thread; delivers exact topic matches."""

    def __init__(self, ctx: zmq.Context, endpoint: str, topic: str, callback: MessageCallback) -> None:
        self.topic = topic
        self._topic_bytes = topic.encode()
        self._callback = callback
        self._stop = threading.Event()
        self._sock = ctx.socket(zmq.SUB)
        self._sock.setsockopt(zmq.LINGER, 0)
        self._sock.setsockopt(zmq.SUBSCRIBE, self._topic_bytes)
        self._sock.connect(endpoint)
        self._thread = threading.Thread(target=self._run, name=f"lidarsim-sub-{topic}", daemon=True)

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not threading.current_thread():
            self._thread.join(timeout=1.0)

    def _run(self) -> None:
        poller = zmq.Poller()
        poller.register(self._sock, zmq.POLLIN)
        try:
            while not self._stop.is_set():
                if not dict(poller.poll(_POLL_MS)):
                    continue
                frames = self._sock.recv_multipart()
                # SUBSCRIBE is a prefix filter
                if len(frames) != 3 or frames[0] != self._topic_bytes:
                    continue
                try:
                    self._callback(frames[2])
                except Exception:
                    _log.exception("Subscriber on '%s' raised", self.topic)
        finally:
            self._sock.close()
