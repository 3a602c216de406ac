""" Python implementation of a client-side packet socket. This includes the
    connection lifecycle for a persistent full-duplex socket, batching of
    outgoing application messages into frames, and decoding and dispatch of
    inbound frames to registered observers.
"""

# Utility components.

from . import json
from . import weakref

# Submodules used by multiple other components.

from . import config
from . import protocol
from . import transport
from . import notify
home = config.directory

# Primary public-facing interfaces.

from .connection import Connection, State
from .protocol import DecodeError, Message, Schema
from .transport import (
    CloseReason,
    TransportError,
    TransportTimeout,
    TransportConnectionError,
    TransportClosedError,
)

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
