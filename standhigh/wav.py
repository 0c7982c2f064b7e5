"""Loading of WAV files as 48 kHz floating-point mono audio."""

from __future__ import annotations

import logging
import struct

import numpy as np

logger = logging.getLogger(__name__)

AUDIO_RATE = 48000

_FORMAT_PCM = 0x0001
_FORMAT_FLOAT = 0x0003
_FORMAT_EXTENSIBLE = 0xFFFE

_FMT_HEADER = struct.Struct("<HHIIHH")


def _fail(filename: str, reason: str) -> ValueError:
    return ValueError(f"Failed to load WAV file '{filename}'; {reason}")


def _read_chunks(filename: str, blob: bytes) -> dict[bytes, bytes]:
    if len(blob) < 12 or blob[0:4] != b"RIFF" or blob[8:12] != b"WAVE":
        raise _fail(filename, "not a RIFF/WAVE file")
    chunks: dict[bytes, bytes] = {}
    offset = 12
    while offset + 8 <= len(blob):
        tag, size = struct.unpack_from("<4sI", blob, offset)
        offset += 8
        body = blob[offset:offset + size]
        chunks.setdefault(tag, body)
        offset += size + (size & 1)
    return chunks


def _decode(filename: str, fmt: bytes, payload: bytes) -> tuple[np.ndarray, int, int, bool]:
    """Return (samples as float frames x channels, rate, bits, is_float)."""
    if len(fmt) < _FMT_HEADER.size:
        raise _fail(filename, "truncated 'fmt ' chunk")
    tag, channels, rate, _byte_rate, block_align, bits = _FMT_HEADER.unpack_from(fmt)
    if tag == _FORMAT_EXTENSIBLE:
        if len(fmt) < 26:
            raise _fail(filename, "truncated extensible 'fmt ' chunk")
        (tag,) = struct.unpack_from("<H", fmt, 24)
    if channels == 0 or rate == 0:
        raise _fail(filename, "invalid channel count or sample rate")

    width = bits // 8
    if block_align == 0:
        block_align = width * channels
    if width * channels != block_align or width == 0:
        raise _fail(filename, f"unsupported sample layout ({bits} bits, {channels} channels)")

    usable = len(payload) - len(payload) % block_align
    raw = payload[:usable]

    if tag == _FORMAT_FLOAT and bits == 32:
        values = np.frombuffer(raw, dtype="<f4").astype(np.float64)
    elif tag == _FORMAT_FLOAT and bits == 64:
        values = np.frombuffer(raw, dtype="<f8").astype(np.float64)
    elif tag == _FORMAT_PCM and bits == 8:
        values = (np.frombuffer(raw, dtype=np.uint8).astype(np.float64) - 128.0) / 128.0
    elif tag == _FORMAT_PCM and bits == 16:
        values = np.frombuffer(raw, dtype="<i2").astype(np.float64) / 32768.0
    elif tag == _FORMAT_PCM and bits == 24:
        triples = np.frombuffer(raw, dtype=np.uint8).reshape(-1, 3).astype(np.int32)
        ints = triples[:, 0] | (triples[:, 1] << 8) | (triples[:, 2] << 16)
        ints = np.where(ints >= 1 << 23, ints - (1 << 24), ints)
        values = ints.astype(np.float64) / float(1 << 23)
    elif tag == _FORMAT_PCM and bits == 32:
        values = np.frombuffer(raw, dtype="<i4").astype(np.float64) / float(1 << 31)
    else:
        raise _fail(filename, f"unsupported sample format (tag {tag:#06x}, {bits} bits)")

    return values.reshape(-1, channels), rate, bits, tag == _FORMAT_FLOAT


def _resample(mono: np.ndarray, rate: int) -> np.ndarray:
    if rate == AUDIO_RATE or mono.size == 0:
        return mono
    count = int(round(mono.size * AUDIO_RATE / rate))
    positions = np.arange(count) * (rate / AUDIO_RATE)
    return np.interp(positions, np.arange(mono.size), mono)


def load_wav(filename: str) -> np.ndarray:
    """Load a WAV file as 48 kHz float32 mono samples.

    Other rates, sample formats and channel counts are converted. Raises
    ``ValueError`` when the file is not a readable WAV file.
    """
    with open(filename, "rb") as stream:
        blob = stream.read()

    chunks = _read_chunks(filename, blob)
    if b"fmt " not in chunks:
        raise _fail(filename, "missing 'fmt ' chunk")
    if b"data" not in chunks:
        raise _fail(filename, "missing 'data' chunk")

    frames, rate, bits, is_float = _decode(filename, chunks[b"fmt "], chunks[b"data"])
    channels = frames.shape[1]

    if not (rate == AUDIO_RATE and channels == 1 and is_float and bits == 32):
        logger.info(
            "WAV file '%s' didn't load as %d Hz, float32, mono; converting.",
            filename,
            AUDIO_RATE,
        )

    mono = frames.mean(axis=1) if channels > 1 else frames[:, 0]
    data = _resample(mono, rate).astype(np.float32)

    low = min(0.0, float(data.min())) if data.size else 0.0
    high = max(0.0, float(data.max())) if data.size else 0.0
    logger.info("Range: %s, %s", low, high)
    return data