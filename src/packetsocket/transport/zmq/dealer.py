"""ZeroMQ full-duplex transport.

A DEALER socket connects to the endpoint (typically served by a ROUTER).
ZeroMQ sockets are not thread safe, so the socket is only ever touched by
the transport's I/O thread: other threads put work on an outbox queue and
wake the I/O thread through an inproc PAIR signal socket.

ZeroMQ has no connection handshake visible through the regular socket API;
a socket monitor reports when the ZMTP handshake with the peer succeeded,
and when the peer went away.
"""

from __future__ import annotations

import atexit
import concurrent.futures
import logging
import queue
import threading
import time
from typing import Callable, Optional

import zmq
from zmq.utils.monitor import recv_monitor_message

from ...protocol.fields import NORMAL_CLOSURE
from ..base import (
    CloseReason,
    Payload,
    Transport,
    TransportClosedError,
    TransportConnectionError,
    TransportError,
    lost,
)
from .framing import from_frames, to_frames


logger = logging.getLogger(__name__)

zmq_context = zmq.Context()

_HANDSHAKE_FAILED = (
    zmq.EVENT_HANDSHAKE_FAILED_NO_DETAIL
    | zmq.EVENT_HANDSHAKE_FAILED_PROTOCOL
    | zmq.EVENT_HANDSHAKE_FAILED_AUTH
)
_MONITORED = zmq.EVENT_HANDSHAKE_SUCCEEDED | zmq.EVENT_DISCONNECTED | _HANDSHAKE_FAILED


class DealerTransport(Transport):
    """One DEALER connection to a zmq endpoint such as ``tcp://host:port``."""

    def __init__(self, url: str, *args, **kwargs):
        super().__init__(url, *args, **kwargs)

        self.socket = None
        self._monitor = None
        self._close_request: Optional[CloseReason] = None
        self._finished = False

        self._outbox = queue.SimpleQueue()
        self._signal_rx = None
        self._signal_tx = None
        self._signal_lock = threading.Lock()

        self._thread = threading.Thread(target=self.run, name=f"packetsocket:{url}", daemon=True)

    def connect_async(self) -> concurrent.futures.Future:
        if self._start():
            internal = f"inproc://packetsocket.zmq:signal:{id(self)}"
            self._signal_rx = zmq_context.socket(zmq.PAIR)
            self._signal_rx.bind(internal)
            self._signal_tx = zmq_context.socket(zmq.PAIR)
            self._signal_tx.connect(internal)
            self._thread.start()
        return self.opened

    def close_async(self, code: int = NORMAL_CLOSURE, reason: str = "") -> concurrent.futures.Future:
        with self._state_lock:
            if not self._started:
                self._started = True
                self._close_reported = True
                self._finished = True
                self.closed.set_result(CloseReason(code, reason))
                return self.closed

            if self._close_request is None:
                self._close_request = CloseReason(code, reason)

        self._wake()
        return self.closed

    def send_async(self, data: Payload, callback: Optional[Callable[[bool], None]] = None) -> concurrent.futures.Future:
        future: concurrent.futures.Future = concurrent.futures.Future()
        self._attach(future, callback)

        if threading.current_thread() is self._thread and self.is_open:
            # Sent from an event callback: we already own the socket.
            self._write(data, future)
            return future

        with self._state_lock:
            queued = self.is_open and not self._finished
            if queued:
                self._outbox.put((data, future))

        if queued:
            self._wake()
        else:
            future.set_exception(TransportClosedError(f"{self.url}: socket is not open"))
        return future

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "", timeout: Optional[float] = None):
        if threading.current_thread() is self._thread:
            self.close_async(code, reason)
            return None
        return super().close(code, reason, timeout)

    def _wake(self) -> None:
        with self._signal_lock:
            if self._signal_tx is not None:
                self._signal_tx.send(b"")

    # --- I/O thread ---

    def run(self) -> None:
        try:
            self.socket = zmq_context.socket(zmq.DEALER)
            self.socket.setsockopt(zmq.LINGER, 0)
            self._monitor = self.socket.get_monitor_socket(_MONITORED)
            self.socket.connect(self.url)
        except zmq.ZMQError as exc:
            logger.debug("%s: connect failed: %s", self.url, exc)
            self._shutdown()
            self._fail_open(TransportConnectionError(f"{self.url}: {exc}"))
            return

        try:
            self._handshake()
        except TransportConnectionError as exc:
            logger.debug("%s: %s", self.url, exc)
            self._shutdown()
            self._fail_open(exc)
            return

        logger.debug("%s: open", self.url)
        self._complete_open()

        reason = self._loop()
        if not reason.clean:
            self._report_error(TransportError(f"{self.url}: {reason.reason}"), f"{self.url}: connection lost")

        linger = 0
        if reason.clean and self.settings.close_timeout is not None:
            linger = int(self.settings.close_timeout * 1000)

        self._shutdown(linger)
        logger.debug("%s: closed %r", self.url, reason)
        self._complete_close(reason)

    def _handshake(self) -> None:
        timeout = self.settings.open_timeout
        deadline = None if timeout is None else time.monotonic() + timeout

        poller = zmq.Poller()
        poller.register(self._monitor, zmq.POLLIN)
        poller.register(self._signal_rx, zmq.POLLIN)

        while True:
            if deadline is None:
                wait = 1000
            else:
                wait = int((deadline - time.monotonic()) * 1000)
                if wait <= 0:
                    raise TransportConnectionError(f"{self.url}: no handshake in {timeout:.2f} sec")

            for active, _flag in poller.poll(wait):
                if active == self._signal_rx:
                    self._drain_signals()
                    if self._close_request is not None:
                        raise TransportConnectionError(f"{self.url}: closed before the handshake completed")
                elif active == self._monitor:
                    event = recv_monitor_message(self._monitor)["event"]
                    if event == zmq.EVENT_HANDSHAKE_SUCCEEDED:
                        return
                    if event & _HANDSHAKE_FAILED:
                        raise TransportConnectionError(f"{self.url}: handshake rejected (event {event:#x})")

    def _loop(self) -> CloseReason:
        poller = zmq.Poller()
        poller.register(self.socket, zmq.POLLIN)
        poller.register(self._signal_rx, zmq.POLLIN)
        poller.register(self._monitor, zmq.POLLIN)

        while True:
            for active, _flag in poller.poll(1000):
                if active == self._signal_rx:
                    self._drain_signals()
                    self._drain_outbox()
                elif active == self.socket:
                    self._receive()
                elif active == self._monitor:
                    event = recv_monitor_message(self._monitor)["event"]
                    if event == zmq.EVENT_DISCONNECTED:
                        return lost("peer disconnected")

            with self._state_lock:
                request = self._close_request

            if request is not None:
                # Writes queued ahead of the close still go out.
                self._drain_outbox()
                return request

    def _receive(self) -> None:
        parts = self.socket.recv_multipart()
        try:
            payload, is_text = from_frames(parts)
        except ValueError as exc:
            self._report_error(exc, f"{self.url}: unreadable multipart message")
            return
        self._emit(self.on_message, payload, is_text)

    def _drain_signals(self) -> None:
        while True:
            try:
                self._signal_rx.recv(flags=zmq.NOBLOCK)
            except zmq.Again:
                return

    def _drain_outbox(self) -> None:
        while True:
            try:
                data, future = self._outbox.get(block=False)
            except queue.Empty:
                return
            self._write(data, future)

    def _write(self, data: Payload, future: concurrent.futures.Future) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            self.socket.send_multipart(to_frames(data))
        except Exception as exc:
            future.set_exception(TransportError(f"{self.url}: write failed: {exc}"))
        else:
            future.set_result(None)

    def _shutdown(self, linger: int = 0) -> None:
        with self._state_lock:
            self._finished = True

        # Anything still queued never reached the socket.
        while True:
            try:
                _data, future = self._outbox.get(block=False)
            except queue.Empty:
                break
            if future.set_running_or_notify_cancel():
                future.set_exception(TransportClosedError(f"{self.url}: socket closed before the write"))

        if self.socket is not None:
            if self._monitor is not None:
                self.socket.disable_monitor()
                self._monitor.close(linger=0)
            self.socket.close(linger=linger)

        self._close_signals()

    def _close_signals(self) -> None:
        with self._signal_lock:
            if self._signal_tx is None:
                return
            self._signal_tx.close(linger=0)
            self._signal_rx.close(linger=0)
            self._signal_tx = None


def _cleanup() -> None:
    try:
        zmq_context.term()
    except Exception:
        pass


atexit.register(_cleanup)
