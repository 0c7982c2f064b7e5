"""Loading and saving of RGBA PNG images."""

from __future__ import annotations

import enum
from typing import Iterable, Sequence

from PIL import Image, UnidentifiedImageError

Pixel = tuple[int, int, int, int]


class Origin(enum.Enum):
    """Which corner the first row of pixel data belongs to."""

    LOWER_LEFT = "lower_left"
    UPPER_LEFT = "upper_left"


def _flip_rows(raw: bytes, width: int, height: int) -> bytes:
    stride = width * 4
    rows = [raw[r * stride:(r + 1) * stride] for r in range(height)]
    return b"".join(reversed(rows))


def load_png(path: str, origin: Origin) -> tuple[tuple[int, int], list[Pixel]]:
    """Load a PNG file as ``((width, height), pixels)`` with RGBA pixel tuples.

    Palette and grey images are expanded to RGB; missing alpha is filled with 255.
    """
    try:
        image_file = open(path, "rb")
    except OSError as exc:
        raise OSError(f"Failed to open PNG image file '{path}'.") from exc

    with image_file:
        try:
            with Image.open(image_file) as image:
                if image.format != "PNG":
                    raise ValueError(f"Failed to read PNG image from '{path}'.")
                rgba = image.convert("RGBA")
        except (UnidentifiedImageError, OSError, SyntaxError) as exc:
            raise ValueError(f"Failed to read PNG image from '{path}'.") from exc

    width, height = rgba.size
    raw = rgba.tobytes()
    if origin is Origin.LOWER_LEFT:
        raw = _flip_rows(raw, width, height)
    channels = iter(raw)
    return (width, height), list(zip(channels, channels, channels, channels))


def save_png(
    path: str,
    size: Sequence[int],
    data: bytes | Iterable[Sequence[int]],
    origin: Origin,
) -> None:
    """Save ``data`` (RGBA pixel tuples or packed RGBA bytes) as a PNG file."""
    width, height = int(size[0]), int(size[1])
    if isinstance(data, (bytes, bytearray, memoryview)):
        raw = bytes(data)
    else:
        raw = b"".join(bytes(pixel) for pixel in data)
    if len(raw) != width * height * 4:
        raise ValueError(
            f"pixel data holds {len(raw)} bytes; {width}x{height} RGBA needs {width * height * 4}"
        )
    if origin is Origin.LOWER_LEFT:
        raw = _flip_rows(raw, width, height)
    Image.frombytes("RGBA", (width, height), raw).save(path, format="PNG")