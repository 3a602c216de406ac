"""ZeroMQ transport backend."""

from .dealer import DealerTransport
