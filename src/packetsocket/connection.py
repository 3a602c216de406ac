""" The :class:`Connection` is the public face of packetsocket: it owns the
    socket for one endpoint, batches outgoing messages into frames, and
    turns inbound frames back into messages for its observers.

    Blocking calls (:func:`Connection.connect`, :func:`Connection.send`,
    :func:`Connection.disconnect`) raise their errors directly. Anything
    that happens on the receive path, or after an asynchronous call has
    returned, is reported through the ``error`` notification instead.
"""

import enum
import functools
import logging
import threading

from . import config
from . import transport as transports
from .notify import Notifications
from .protocol.fields import NORMAL_CLOSURE
from .protocol.message import Message
from .protocol.wire import DecodeError, pack_frame, unpack_frame
from .transport import TransportClosedError, TransportConnectionError, TransportTimeout
from .transport.base import lost


logger = logging.getLogger(__name__)


class State(enum.Enum):
    """ Lifecycle of the socket held by a :class:`Connection`.
    """

    IDLE = 'idle'
    CONNECTING = 'connecting'
    OPEN = 'open'
    CLOSING = 'closing'
    CLOSED = 'closed'


alive_states = frozenset((State.OPEN, State.CLOSING))


class Connection:
    """ A :class:`Connection` manages a persistent, full-duplex socket to
        the endpoint *url*. Inbound frames are decoded against the *schema*,
        a :class:`packetsocket.protocol.Schema`, and every message is
        published individually, in order, to the ``received`` observers.

        The *settings* default to :func:`packetsocket.config.load`; the
        transport *backend* defaults to the one named by the settings. The
        connection holds at most one socket at a time; every call to
        :func:`connect` or :func:`connect_async` starts over with a fresh
        one, so the same instance can be reconnected after it closes.

        Observers are registered on the events of :attr:`notifications`,
        also available as attributes of the connection itself::

            connection = Connection('ws://localhost:38281', schema)
            connection.received.register(handle_message)
            connection.error.register(handle_error)
            connection.connect()
            connection.send([Connect(name='me'), Sync()])

        Observers are invoked from the transport's thread, not the thread
        that called :func:`connect` or :func:`send`.

        :ivar notifications: The :class:`packetsocket.notify.Notifications`
            published by this connection.
    """

    def __init__(self, url, schema, settings=None, backend=None):

        if settings is None:
            settings = config.load()

        if backend is None:
            backend = transports.backend(settings.transport)

        self._url = url
        self.schema = schema
        self.settings = settings
        self.backend = backend

        self.notifications = Notifications()
        self.opened = self.notifications.opened
        self.closed = self.notifications.closed
        self.received = self.notifications.received
        self.error = self.notifications.error

        self._lock = threading.RLock()
        self._state = State.IDLE
        self._transport = None


    def __repr__(self):
        return '<Connection %s %s>' % (self._url, self._state.value)


    @property
    def url(self):
        """ The endpoint this connection targets.
        """

        return self._url


    @property
    def state(self):
        return self._state


    @property
    def is_alive(self):
        """ True if the socket is believed to be connected, which is the
            case while it is open or in the middle of closing. This reflects
            the last known local state; no traffic is sent to check whether
            the remote end is still there, so it may be stale.
        """

        return self._state in alive_states


    def connect(self):
        """ Establish the socket, blocking until the handshake completes.
            The ``opened`` notification has been published by the time this
            method returns. Raises
            :class:`packetsocket.transport.TransportConnectionError` if the
            endpoint is malformed, unreachable, rejects the handshake, or
            does not respond within the configured *open_timeout*. Calling
            this method on a connection that is already alive does nothing.
        """

        transport = self._begin_connect()

        if transport is None:
            return

        try:
            transport.connect(self.settings.open_timeout)
        except Exception:
            self._abandon(transport)
            raise


    def connect_async(self):
        """ Initiate a connection and return immediately. Success is
            signaled by the ``opened`` notification; failure is reported
            through the ``error`` notification, there is no dedicated
            notification for a failed attempt.
        """

        transport = self._begin_connect()

        if transport is None:
            return

        future = transport.connect_async()
        future.add_done_callback(functools.partial(self._connect_done, transport))


    def disconnect(self, code=NORMAL_CLOSURE, reason=''):
        """ Close the socket and block until it is closed; the ``closed``
            notification has been published by the time this method
            returns. Does nothing if the connection is not alive.
        """

        transport = self._begin_close()

        if transport is None:
            return

        try:
            transport.close(code, reason, timeout=self.settings.close_timeout)
        except TransportTimeout:
            self._on_close(transport, lost('close timed out'))
            raise


    def disconnect_async(self, code=NORMAL_CLOSURE, reason=''):
        """ Start closing the socket and return immediately. Handle the
            ``closed`` notification to learn when it is done. Does nothing
            if the connection is not alive.
        """

        transport = self._begin_close()

        if transport is None:
            return

        transport.close_async(code, reason)


    def send(self, messages):
        """ Send one :class:`packetsocket.protocol.Message`, or a non-empty
            sequence of them, as a single frame; the messages arrive in the
            order provided, together. Blocks until the frame is written.
            Raises :class:`packetsocket.transport.TransportClosedError`,
            without writing anything, if the connection is not alive.
        """

        transport, frame = self._prepare(messages)
        transport.send(frame, timeout=self.settings.send_timeout)


    def send_async(self, messages, on_complete=None):
        """ Send the *messages* as a single frame without blocking. The
            optional *on_complete* callback is invoked exactly once with
            True if the frame was handed off to the socket, or False if the
            write failed; a failure is also published as an ``error``
            notification. A True completion says nothing about whether the
            remote end received or processed the frame.

            The same validation as :func:`send` happens before this method
            returns: a closed connection or an empty batch raises here, and
            *on_complete* is never invoked.

            Returns the :class:`concurrent.futures.Future` for the write.
        """

        transport, frame = self._prepare(messages)
        future = transport.send_async(frame)
        future.add_done_callback(functools.partial(self._send_done, on_complete))
        return future


    def send_packet(self, message):
        """ Send a single message. See :func:`send`.
        """

        self.send((message,))


    def send_packet_async(self, message, on_complete=None):
        """ Send a single message asynchronously. See :func:`send_async`.
        """

        return self.send_async((message,), on_complete)


    def _begin_connect(self):

        with self._lock:
            state = self._state

            if state in alive_states:
                return None

            if state == State.CONNECTING:
                raise TransportConnectionError(self._url + ': a connection attempt is already in progress')

            # Every attempt starts over with a new socket.

            self._set_state(State.IDLE)
            transport = self.backend(self._url, self.settings)
            transport.on_open = functools.partial(self._on_open, transport)
            transport.on_close = functools.partial(self._on_close, transport)
            transport.on_message = functools.partial(self._on_message, transport)
            transport.on_error = functools.partial(self._on_error, transport)

            self._transport = transport
            self._set_state(State.CONNECTING)

        return transport


    def _begin_close(self):

        with self._lock:
            if self._state == State.OPEN:
                self._set_state(State.CLOSING)
            elif self._state == State.CLOSING:
                pass
            else:
                return None

            return self._transport


    def _abandon(self, transport):
        """ Mark a failed connection attempt as closed. Returns True if the
            attempt was still the current one.
        """

        with self._lock:
            if transport is not self._transport:
                return False

            if self._state == State.CONNECTING:
                self._set_state(State.CLOSED)
                return True

            return False


    def _connect_done(self, transport, future):

        exception = future.exception()

        if exception is None:
            return

        if self._abandon(transport):
            self.notifications.error(exception, '%s: connection attempt failed' % (self._url))


    def _prepare(self, messages):

        if isinstance(messages, Message):
            messages = (messages,)
        else:
            messages = tuple(messages)

        if messages:
            pass
        else:
            raise ValueError('at least one message is required')

        with self._lock:
            if self._state in alive_states:
                transport = self._transport
            else:
                raise TransportClosedError(self._url + ': connection is not alive')

        frame = pack_frame(messages, self.schema.field)
        logger.debug('%s: sending %d message(s) in %d characters', self._url, len(messages), len(frame))
        return transport, frame


    def _send_done(self, on_complete, future):

        if future.cancelled():
            exception = TransportClosedError(self._url + ': send was cancelled')
        else:
            exception = future.exception()

        if on_complete is not None:
            try:
                on_complete(exception is None)
            except Exception:
                logger.exception('%s: send completion callback %r failed', self._url, on_complete)

        if exception is not None:
            self.notifications.error(exception, '%s: send failed' % (self._url))


    def _set_state(self, state):
        logger.debug('%s: %s -> %s', self._url, self._state.value, state.value)
        self._state = state


    # Raw transport events. Every handler first checks that the event comes
    # from the current socket; events from an earlier socket are dropped.

    def _on_open(self, transport):

        with self._lock:
            if transport is not self._transport or self._state != State.CONNECTING:
                return
            self._set_state(State.OPEN)

        self.notifications.opened()


    def _on_close(self, transport, reason):

        with self._lock:
            if transport is not self._transport:
                return

            announce = self._state in alive_states
            if self._state != State.CLOSED:
                self._set_state(State.CLOSED)

        if announce:
            self.notifications.closed(reason)


    def _on_error(self, transport, exception, message):

        if transport is not self._transport:
            return

        self.notifications.error(exception, message)


    def _on_message(self, transport, payload, is_text):

        if transport is not self._transport or self._state not in alive_states:
            return

        if is_text:
            pass
        else:
            logger.debug('%s: ignoring %d byte binary payload', self._url, len(payload))
            return

        try:
            messages = unpack_frame(payload, self.schema)
        except DecodeError as e:
            logger.warning('%s: dropping frame: %s', self._url, e)
            self.notifications.error(e, '%s: cannot decode frame: %s; fragment: %r' % (self._url, e, e.fragment))
            return

        for message in messages:
            self.notifications.received(message)


# end of class Connection


# vim: set expandtab tabstop=8 softtabstop=4 shiftwidth=4 autoindent:
