"""Transport interface.

This is the (small) contract that transport implementations should follow.
It lives outside :mod:`packetsocket.protocol` so the protocol remains
transport-agnostic: a transport moves opaque text or binary payloads and
reports four raw events, nothing more.

Every operation is asynchronous at heart and returns a
:class:`concurrent.futures.Future`; the blocking variants wait on that
future, so there is one implementation of each operation.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

from ..config import Settings
from ..protocol.fields import ABNORMAL_CLOSURE, NORMAL_CLOSURE


logger = logging.getLogger(__name__)


# Transport agnostic exceptions

class TransportError(Exception):
    """Base class for all transport-layer errors."""


class TransportTimeout(TransportError):
    """A blocking operation did not complete in time."""


class TransportConnectionError(TransportError, ConnectionError):
    """The transport could not establish a connection."""


class TransportClosedError(TransportError):
    """The transport is not open; nothing was written."""


class CloseReason:
    """Why a connection epoch ended.

    ``clean`` is True when the close was initiated locally or completed with
    a close handshake, False when the socket was lost.
    """

    __slots__ = ("code", "reason", "clean")

    def __init__(self, code: int = NORMAL_CLOSURE, reason: str = "", clean: bool = True):
        self.code = code
        self.reason = reason
        self.clean = clean

    def __eq__(self, other):
        if not isinstance(other, CloseReason):
            return NotImplemented
        return (self.code, self.reason, self.clean) == (other.code, other.reason, other.clean)

    def __repr__(self):
        return f"CloseReason(code={self.code}, reason={self.reason!r}, clean={self.clean})"


def lost(reason: str) -> CloseReason:
    """The CloseReason for a socket that went away without a close handshake."""
    return CloseReason(ABNORMAL_CLOSURE, reason, clean=False)


Payload = Union[str, bytes]


class Transport(ABC):
    """Minimal contract for a full-duplex, message-oriented socket.

    One instance is one socket: once closed it cannot be reopened. Events
    are delivered from the transport's own thread:

        on_open()                       handshake completed
        on_message(payload, is_text)    one inbound payload
        on_error(exception, message)    a failure outside any blocking call
        on_close(reason)                the socket is gone, at most once
    """

    def __init__(
        self,
        url: str,
        settings: Optional[Settings] = None,
        on_open: Optional[Callable[[], None]] = None,
        on_close: Optional[Callable[[CloseReason], None]] = None,
        on_message: Optional[Callable[[Payload, bool], None]] = None,
        on_error: Optional[Callable[[BaseException, str], None]] = None,
    ):
        self.url = url
        self.settings = settings if settings is not None else Settings()

        self.on_open = on_open
        self.on_close = on_close
        self.on_message = on_message
        self.on_error = on_error

        self.opened: concurrent.futures.Future = concurrent.futures.Future()
        self.closed: concurrent.futures.Future = concurrent.futures.Future()
        self._started = False
        self._close_reported = False
        self._writable = False
        self._state_lock = threading.Lock()

    # --- contract ---

    @abstractmethod
    def connect_async(self) -> concurrent.futures.Future:
        """Start the handshake; the returned future resolves once open."""

    @abstractmethod
    def close_async(self, code: int = NORMAL_CLOSURE, reason: str = "") -> concurrent.futures.Future:
        """Start closing; the returned future resolves to a CloseReason."""

    @abstractmethod
    def send_async(self, data: Payload, callback: Optional[Callable[[bool], None]] = None) -> concurrent.futures.Future:
        """Queue one payload for writing.

        ``callback``, if given, receives True once the payload was handed to
        the socket and False if the write failed.
        """

    @property
    def is_open(self) -> bool:
        """Whether the handshake completed and the socket is not yet closed."""
        return self._writable and not self.closed.done()

    # --- blocking wrappers ---

    def connect(self, timeout: Optional[float] = None) -> None:
        future = self.connect_async()
        try:
            future.result(timeout)
        except concurrent.futures.TimeoutError:
            self.close_async(ABNORMAL_CLOSURE, "connect timed out")
            raise TransportConnectionError(f"{self.url}: no handshake in {timeout:.2f} sec") from None

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "", timeout: Optional[float] = None) -> CloseReason:
        future = self.close_async(code, reason)
        try:
            return future.result(timeout)
        except concurrent.futures.TimeoutError:
            raise TransportTimeout(f"{self.url}: not closed in {timeout:.2f} sec") from None

    def send(self, data: Payload, timeout: Optional[float] = None) -> None:
        future = self.send_async(data)
        try:
            future.result(timeout)
        except concurrent.futures.TimeoutError:
            raise TransportTimeout(f"{self.url}: write not completed in {timeout:.2f} sec") from None

    # --- helpers for implementations ---

    def _start(self) -> bool:
        """Return True exactly once, for the first connect_async() call."""
        with self._state_lock:
            if self._started:
                return False
            self._started = True
            return True

    def _complete_open(self) -> None:
        # Writable before on_open, so an observer can send its first
        # payload. The opened future resolves last: a caller blocked in
        # connect() observes every side effect of on_open once it returns.
        with self._state_lock:
            self._writable = True
        self._emit(self.on_open)
        self.opened.set_result(True)

    def _fail_open(self, exc: BaseException) -> None:
        if not isinstance(exc, TransportConnectionError):
            wrapped = TransportConnectionError(f"{self.url}: {exc}")
            wrapped.__cause__ = exc
            exc = wrapped
        with self._state_lock:
            if self.opened.done():
                return
            self.opened.set_exception(exc)
        # Never opened, so there is no close event; just settle the future.
        self._settle_closed(lost(str(exc)))

    def _complete_close(self, reason: CloseReason) -> None:
        """Report the end of the epoch: on_close at most once, then resolve."""
        with self._state_lock:
            if self._close_reported:
                return
            self._close_reported = True
            was_open = self._writable

        if was_open:
            self._emit(self.on_close, reason)
        self._settle_closed(reason)

    def _settle_closed(self, reason: CloseReason) -> None:
        with self._state_lock:
            if self.closed.done():
                return
            self.closed.set_result(reason)

    def _report_error(self, exc: BaseException, message: str) -> None:
        self._emit(self.on_error, exc, message)

    def _emit(self, callback, *args) -> None:
        if callback is None:
            return
        try:
            callback(*args)
        except Exception:
            logger.exception("%s: event callback %r failed", self.url, callback)

    @staticmethod
    def _attach(future: concurrent.futures.Future, callback: Optional[Callable[[bool], None]]) -> None:
        if callback is None:
            return

        def done(f: concurrent.futures.Future) -> None:
            ok = not f.cancelled() and f.exception() is None
            try:
                callback(ok)
            except Exception:
                logger.exception("send completion callback %r failed", callback)

        future.add_done_callback(done)
