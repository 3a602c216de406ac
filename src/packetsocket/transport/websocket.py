"""WebSocket transport.

Built on the threaded client of the ``websockets`` library. Each instance
owns one I/O thread, which performs the opening handshake and then reads
the socket until it closes, and one single-worker executor through which
every write and the closing handshake are funneled, in submission order.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from typing import Callable, Optional

from websockets.exceptions import ConnectionClosed
from websockets.sync.client import connect as ws_connect

from ..protocol.fields import ABNORMAL_CLOSURE, INTERNAL_ERROR, NORMAL_CLOSURE
from .base import (
    CloseReason,
    Payload,
    Transport,
    TransportClosedError,
    TransportConnectionError,
    TransportError,
    lost,
)


logger = logging.getLogger(__name__)


class WebSocketTransport(Transport):
    """One ``ws://`` or ``wss://`` connection."""

    def __init__(self, url: str, *args, **kwargs):
        super().__init__(url, *args, **kwargs)

        self.socket = None
        self._close_request: Optional[CloseReason] = None
        self._writer = concurrent.futures.ThreadPoolExecutor(max_workers=1, thread_name_prefix="packetsocket-write")
        self._thread = threading.Thread(target=self.run, name=f"packetsocket:{url}", daemon=True)

    def connect_async(self) -> concurrent.futures.Future:
        if self._start():
            self._thread.start()
        return self.opened

    def close_async(self, code: int = NORMAL_CLOSURE, reason: str = "") -> concurrent.futures.Future:
        with self._state_lock:
            if not self._started:
                self._started = True
                self._close_reported = True
                self.closed.set_result(CloseReason(code, reason))
                return self.closed

            if not self._writable:
                # Still handshaking; the I/O thread checks for this once the
                # handshake returns.
                self._close_request = CloseReason(code, reason)
                return self.closed

        if self.is_open:
            try:
                self._writer.submit(self._close, code, reason)
            except RuntimeError:
                # Writer already shut down: the read loop is finishing.
                pass

        return self.closed

    def send_async(self, data: Payload, callback: Optional[Callable[[bool], None]] = None) -> concurrent.futures.Future:
        future = None

        if self.is_open:
            try:
                future = self._writer.submit(self._write, data)
            except RuntimeError:
                future = None

        if future is None:
            future = concurrent.futures.Future()
            future.set_exception(TransportClosedError(f"{self.url}: socket is not open"))

        self._attach(future, callback)
        return future

    def close(self, code: int = NORMAL_CLOSURE, reason: str = "", timeout: Optional[float] = None):
        if threading.current_thread() is self._thread:
            # Called from an event callback: the read loop cannot finish
            # while we wait for it, so only start the close.
            self.close_async(code, reason)
            return None
        return super().close(code, reason, timeout)

    # --- I/O thread ---

    def run(self) -> None:
        try:
            with ws_connect(
                self.url,
                open_timeout=self.settings.open_timeout,
                close_timeout=self.settings.close_timeout,
                max_size=self.settings.max_size,
            ) as socket:
                self.socket = socket
                self._serve()
        except Exception as exc:
            if self.socket is not None:
                # Past the handshake _serve() reports its own failures.
                raise
            logger.debug("%s: handshake failed: %s", self.url, exc)
            self._writer.shutdown(wait=False)
            self._fail_open(TransportConnectionError(f"{self.url}: {exc}"))

    def _serve(self) -> None:
        with self._state_lock:
            request = self._close_request

        if request is not None:
            self.socket.close(request.code, request.reason)
            self._writer.shutdown(wait=False)
            self._fail_open(TransportConnectionError(f"{self.url}: closed before the handshake completed"))
            return

        logger.debug("%s: open", self.url)
        self._complete_open()

        try:
            for payload in self.socket:
                self._emit(self.on_message, payload, isinstance(payload, str))
        except ConnectionClosed:
            pass
        except Exception as exc:
            self._report_error(exc, f"{self.url}: receive failed")
            self.socket.close(INTERNAL_ERROR, "receive failed")

        reason = self._close_reason()
        if not reason.clean:
            exc = TransportError(f"{self.url}: {reason.reason}")
            self._report_error(exc, f"{self.url}: connection lost")

        self._writer.shutdown(wait=False)
        logger.debug("%s: closed %r", self.url, reason)
        self._complete_close(reason)

    def _close_reason(self) -> CloseReason:
        with self._state_lock:
            request = self._close_request

        if request is not None:
            return request

        protocol = self.socket.protocol
        code = protocol.close_code

        if code is None or code == ABNORMAL_CLOSURE:
            return lost("connection lost without a close frame")
        return CloseReason(int(code), protocol.close_reason or "", clean=True)

    # --- writer thread ---

    def _write(self, data: Payload) -> None:
        try:
            self.socket.send(data)
        except ConnectionClosed as exc:
            raise TransportClosedError(f"{self.url}: socket closed before the write") from exc
        except Exception as exc:
            raise TransportError(f"{self.url}: write failed: {exc}") from exc

    def _close(self, code: int, reason: str) -> None:
        with self._state_lock:
            if self._close_request is None:
                self._close_request = CloseReason(code, reason)
        self.socket.close(code, reason)
