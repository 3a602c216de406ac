"""ZMQ multipart framing for transport payloads.

Full-duplex DEALER channel
    kind, data

kind is b"T" for a UTF-8 text payload or b"B" for a binary payload. The
kind frame is what lets a zmq peer carry the same text/binary distinction
a WebSocket message has.
"""

from __future__ import annotations

from typing import Sequence, Tuple, Union


TEXT = b"T"
BINARY = b"B"


def to_frames(data: Union[str, bytes]) -> Tuple[bytes, bytes]:
    """Encode one payload as multipart frames."""

    if isinstance(data, str):
        return (TEXT, data.encode("utf-8"))
    if isinstance(data, (bytes, bytearray, memoryview)):
        return (BINARY, bytes(data))
    raise TypeError(f"payload must be str or bytes, not {type(data).__name__}")


def from_frames(parts: Sequence[bytes]) -> Tuple[Union[str, bytes], bool]:
    """Decode multipart frames into (payload, is_text).

    A ROUTER peer may prepend an identity frame; anything before the last
    two frames is ignored.
    """

    if len(parts) < 2:
        raise ValueError(f"expected kind and data frames, got {len(parts)} frame(s)")

    kind = parts[-2]
    data = parts[-1]

    if kind == TEXT:
        return data.decode("utf-8"), True
    if kind == BINARY:
        return data, False
    raise ValueError(f"unknown payload kind {kind!r}")
