from .base import MessageCallback, Subscription, Transport
from .memory import InMemoryTransport
from .zmq_transport import ZmqTransport

__all__ = ["MessageCallback", "Subscription", "Transport", "InMemoryTransport", "ZmqTransport"]
