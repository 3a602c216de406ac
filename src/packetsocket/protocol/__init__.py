"""
packetsocket protocol layer
===========================

Defines what travels over the socket: the :class:`Message` base class that
application message types derive from, the :class:`Schema` that maps
discriminator values back to those types, and the frame codec that turns an
ordered batch of messages into one text payload and back.

The protocol layer MUST NOT depend on any transport implementation.

Wire format
-----------

One frame is one JSON array; every entry is an object that carries the
discriminator field::

    [{"cmd": "Say", "text": "hello"}, {"cmd": "Sync"}]

Entries are decoded in order. If any entry cannot be resolved the whole
frame is rejected with :class:`DecodeError`.
"""

from . import fields
from . import message
from . import wire

from .fields import DISCRIMINATOR
from .message import Message, Schema
from .wire import DecodeError, pack_frame, unpack_frame

# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
