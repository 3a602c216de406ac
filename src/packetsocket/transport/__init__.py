"""Transport layer implementations."""

import os

from .base import (
    CloseReason,
    Transport,
    TransportError,
    TransportTimeout,
    TransportConnectionError,
    TransportClosedError,
)


def backend(name=None):
    """Return the Transport class for the backend *name*.

    With no *name*, the ``PACKETSOCKET_TRANSPORT`` environment variable
    decides, defaulting to ``websocket``. The backends are imported on first
    use.
    """

    if name is None:
        name = os.environ.get("PACKETSOCKET_TRANSPORT", "websocket")

    if name == "websocket":
        from .websocket import WebSocketTransport
        return WebSocketTransport
    elif name == "zmq":
        from .zmq import DealerTransport
        return DealerTransport
    else:
        raise ValueError(f"unknown PACKETSOCKET_TRANSPORT backend: {name!r}")
