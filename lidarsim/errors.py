"""Exception types raised by the scan/publish pipeline."""

from __future__ import annotations


class LidarSimError(Exception):
    """Base class for all lidarsim errors."""


class ConfigurationError(LidarSimError, ValueError):
    """Invalid or out-of-range configuration. Fatal at startup."""


class SceneUnavailableError(LidarSimError, RuntimeError):
    """The scene collaborator cannot answer ray queries right now.

    The ray caster recovers from this by producing an empty cycle.
    """


class EncodingInvariantViolation(LidarSimError, AssertionError):
    """Declared and actual byte layout of a wire message disagree.

    This is a programming error; the publisher skips the tick instead of
    sending malformed bytes.
    """


class TransportError(LidarSimError, RuntimeError):
    """A publish or subscribe call on the transport failed."""
