"""Reading and writing of tagged binary chunks.

A chunk is laid out as a four-byte magic tag, a four-byte little-endian
payload size, and then the payload: a packed array of fixed-size records.
"""

from __future__ import annotations

import struct
from typing import Any, BinaryIO, Iterable

_HEADER = struct.Struct("<4sI")
_BYTE_ORDER_PREFIXES = ("<", ">", "=", "!", "@")


class ChunkError(ValueError):
    """Raised when a chunk is missing, truncated or malformed."""


def _magic_bytes(magic: str | bytes) -> bytes:
    if isinstance(magic, str):
        return magic.encode("latin-1")
    return bytes(magic)


def _item_struct(item_format: str) -> struct.Struct:
    if not item_format.startswith(_BYTE_ORDER_PREFIXES):
        item_format = "<" + item_format
    record = struct.Struct(item_format)
    if record.size == 0:
        raise ValueError(f"item format {item_format!r} describes an empty record")
    return record


def _as_values(item: Any) -> tuple:
    if isinstance(item, (str, bytes, bytearray)):
        return (item,)
    try:
        return tuple(item)
    except TypeError:
        return (item,)


def read_chunk(stream: BinaryIO, magic: str | bytes, item_format: str | None) -> Any:
    """Read one chunk from ``stream``.

    With a ``struct`` format for ``item_format`` the payload is returned as a
    list of unpacked tuples; with ``None`` it is returned as raw bytes.
    Formats without a byte-order prefix are read little-endian and unpadded.
    """
    header = stream.read(_HEADER.size)
    if header is None or len(header) != _HEADER.size:
        raise ChunkError("Failed to read chunk header")
    found_magic, size = _HEADER.unpack(header)
    if found_magic != _magic_bytes(magic):
        raise ChunkError("Unexpected magic number in chunk")

    record = None if item_format is None else _item_struct(item_format)
    item_size = 1 if record is None else record.size
    if size % item_size != 0:
        raise ChunkError("Size of chunk not divisible by element size")

    payload = stream.read(size)
    if payload is None or len(payload) != size:
        raise ChunkError("Failed to read chunk data.")

    if record is None:
        return bytes(payload)
    return list(record.iter_unpack(payload))


def write_chunk(
    stream: BinaryIO,
    magic: str | bytes,
    items: Iterable[Any],
    item_format: str | None,
) -> None:
    """Write ``items`` to ``stream`` as one chunk readable by :func:`read_chunk`.

    With ``item_format`` of ``None``, ``items`` must be bytes-like and is
    written as is.
    """
    tag = _magic_bytes(magic)
    if len(tag) != 4:
        raise ValueError("chunk magic must be exactly four bytes")

    if item_format is None:
        payload = bytes(items)
    else:
        record = _item_struct(item_format)
        payload = b"".join(record.pack(*_as_values(item)) for item in items)

    stream.write(_HEADER.pack(tag, len(payload)))
    stream.write(payload)