from __future__ import annotations

from typing import Iterable, List, Optional, Union

from .. import json
from .fields import DISCRIMINATOR
from .message import Message, Schema


class DecodeError(ValueError):
    """An inbound frame could not be turned into messages.

    ``fragment`` is the offending part of the payload: the raw text for
    unparseable JSON, otherwise the entry that failed. ``discriminator`` is
    the unresolved discriminator value, if that was the problem.
    """

    def __init__(self, text: str, fragment=None, discriminator=None):
        super().__init__(text)
        self.fragment = fragment
        self.discriminator = discriminator


def pack_frame(messages: Iterable[Message], field: str = DISCRIMINATOR) -> str:
    """
    Serialize an ordered batch of messages -> one text frame

    Layout:
        [{field: discriminator, ...fields}, ...]

    The output is compact JSON and depends only on the input, so identical
    batches always produce identical frames.
    """

    entries = []

    for message in messages:
        if not isinstance(message, Message):
            raise TypeError(f"not a Message: {message!r}")

        discriminator = message.discriminator
        if not discriminator:
            raise TypeError(f"{type(message).__name__} does not declare a discriminator")

        entry = {field: discriminator}
        for key, value in message.to_dict().items():
            if key == field:
                raise ValueError(f"{type(message).__name__} field {key!r} collides with the discriminator")
            entry[key] = value
        entries.append(entry)

    if not entries:
        raise ValueError("a frame must contain at least one message")

    return json.dumps(entries).decode("utf-8")


def unpack_frame(frame: Union[str, bytes], schema: Schema) -> List[Message]:
    """
    Deserialize one text frame -> ordered list of messages

    Every entry must resolve through the schema; the first one that does not
    fails the whole frame.
    """

    try:
        entries = json.loads(frame)
    except json.DecodeError as exc:
        raise DecodeError(f"malformed frame: {exc}", fragment=_excerpt(frame)) from exc

    if not isinstance(entries, list):
        raise DecodeError("frame is not a JSON array", fragment=entries)

    field = schema.field
    messages = []

    for index, entry in enumerate(entries):
        if not isinstance(entry, dict):
            raise DecodeError(f"entry {index} is not a JSON object", fragment=entry)

        discriminator = entry.get(field)
        if discriminator is None:
            raise DecodeError(f"entry {index} has no {field!r} field", fragment=entry)

        message_type = _resolve(schema, discriminator)
        if message_type is None:
            raise DecodeError(
                f"entry {index}: unknown {field} {discriminator!r}",
                fragment=entry,
                discriminator=discriminator,
            )

        fields = dict((key, value) for key, value in entry.items() if key != field)

        try:
            message = message_type.from_dict(fields)
        except (TypeError, ValueError, KeyError) as exc:
            raise DecodeError(
                f"entry {index}: cannot build {message_type.__name__}: {exc}",
                fragment=entry,
                discriminator=discriminator,
            ) from exc

        messages.append(message)

    return messages


def _resolve(schema: Schema, discriminator) -> Optional[type]:
    try:
        return schema.resolve(discriminator)
    except (KeyError, TypeError):
        # TypeError: an unhashable discriminator such as a list or object.
        return None


def _excerpt(frame: Union[str, bytes], limit: int = 200):
    if len(frame) <= limit:
        return frame
    return frame[:limit]
