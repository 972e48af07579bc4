"""Canonical PCM16 WAV packing for the remote transcription upload."""

from __future__ import annotations

import struct
import sys
from array import array
from typing import Iterable, List, Sequence, Tuple

WAV_HEADER_BYTES = 44
PCM_FORMAT_CODE = 1
BITS_PER_SAMPLE = 16
PCM16_SCALE = 32767

# RIFF, size, WAVE, "fmt ", 16, format, channels, rate, byte rate, block align, bits, "data", size
_HEADER_STRUCT = struct.Struct("<4sI4s4sIHHIIHH4sI")


def _to_pcm16(samples: Iterable[float]) -> array:
    pcm = array("h")
    for s in samples:
        v = float(s)
        if v > 1.0:
            v = 1.0
        elif v < -1.0:
            v = -1.0
        pcm.append(int(v * PCM16_SCALE))  # truncates toward zero
    if sys.byteorder != "little":
        pcm.byteswap()
    return pcm


def build_wav_header(data_size: int, sample_rate: int, channels: int) -> bytes:
    block_align = channels * (BITS_PER_SAMPLE // 8)
    return _HEADER_STRUCT.pack(
        b"RIFF",
        36 + data_size,
        b"WAVE",
        b"fmt ",
        16,
        PCM_FORMAT_CODE,
        channels,
        sample_rate,
        sample_rate * block_align,
        block_align,
        BITS_PER_SAMPLE,
        b"data",
        data_size,
    )


def encode_wav(samples: Sequence[float], sample_rate: int, channels: int = 1) -> bytes:
    """Serialize float samples into a 44-byte-header PCM16 little-endian WAV.

    Each sample is clamped to [-1, 1] and scaled by 32767. The output is a
    pure function of the input, so the same buffer always yields the same
    bytes.
    """
    payload = _to_pcm16(samples).tobytes()
    return build_wav_header(len(payload), int(sample_rate), int(channels)) + payload


def decode_wav(data: bytes) -> Tuple[List[float], int, int]:
    """Parse a canonical PCM16 WAV back into ``(samples, sample_rate, channels)``.

    Only the 44-byte layout written by :func:`encode_wav` is accepted.
    """
    if len(data) < WAV_HEADER_BYTES:
        raise ValueError(f"WAV too short ({len(data)} bytes)")
    (riff, _chunk_size, wave, fmt, fmt_size, fmt_code, channels, sample_rate,
     _byte_rate, _block_align, bits, data_tag, data_size) = _HEADER_STRUCT.unpack(data[:WAV_HEADER_BYTES])
    if riff != b"RIFF" or wave != b"WAVE" or fmt != b"fmt " or data_tag != b"data":
        raise ValueError("Not a canonical RIFF/WAVE file")
    if fmt_size != 16 or fmt_code != PCM_FORMAT_CODE or bits != BITS_PER_SAMPLE:
        raise ValueError(f"Unsupported WAV format (fmt={fmt_code}, bits={bits})")

    payload = data[WAV_HEADER_BYTES:WAV_HEADER_BYTES + data_size]
    if len(payload) != data_size or data_size % 2:
        raise ValueError(f"WAV payload truncated (expected {data_size} bytes, have {len(payload)})")

    pcm = array("h")
    pcm.frombytes(payload)
    if sys.byteorder != "little":
        pcm.byteswap()
    return [v / PCM16_SCALE for v in pcm], sample_rate, channels
