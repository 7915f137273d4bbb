"""Telephony audio conversions: companded samples to PCM16 and PCM to WAV containers."""

from __future__ import annotations

import base64
import struct
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Final, Literal

import numpy as np

from agents.errors import MalformedEncodingDescriptorError

WAV_HEADER_SIZE: Final[int] = 44

DEFAULT_CHANNELS: Final[int] = 1
DEFAULT_SAMPLE_RATE: Final[int] = 8000
DEFAULT_BITS_PER_SAMPLE: Final[int] = 16

Companding = Literal["none", "mulaw"]


def _build_companded_table() -> np.ndarray:
    codes = np.arange(256, dtype=np.int32) ^ 0x55
    exponent = (codes & 0x70) >> 4
    mantissa = codes & 0x0F
    magnitude = ((mantissa << 1) + 33) << (exponent + 2)
    samples = np.where(codes & 0x80, -magnitude, magnitude)
    # Largest magnitude is 63 << 9 = 32256, so the int16 cast never wraps.
    return samples.astype(np.int16)


_COMPANDED_TO_PCM16: Final[np.ndarray] = _build_companded_table()


def decode_companded_sample(value: int) -> int:
    """Map one 8-bit companded telephony sample to its 16-bit linear value."""

    return int(_COMPANDED_TO_PCM16[value & 0xFF])


def companded8_to_pcm16(data: bytes) -> bytes:
    """Expand 8-bit companded audio to little-endian PCM16 (two bytes per input byte)."""

    if not data:
        return b""
    codes = np.frombuffer(data, dtype=np.uint8)
    return _COMPANDED_TO_PCM16[codes].astype("<i2").tobytes()


@dataclass(frozen=True, slots=True)
class EncodingDescriptor:
    channels: int = DEFAULT_CHANNELS
    sample_rate: int = DEFAULT_SAMPLE_RATE
    bits_per_sample: int = DEFAULT_BITS_PER_SAMPLE
    companding: Companding = "none"


def build_container_header(
    data_length: int,
    channels: int,
    sample_rate: int,
    bits_per_sample: int,
) -> bytes:
    """Build the 44-byte RIFF/WAVE header for a linear PCM payload of ``data_length`` bytes."""

    byte_rate = sample_rate * channels * bits_per_sample // 8
    block_align = channels * bits_per_sample // 8
    return struct.pack(
        "<4sI4s4sIHHIIHH4sI",
        b"RIFF",
        36 + data_length,
        b"WAVE",
        b"fmt ",
        16,  # fmt chunk size for PCM
        1,  # audio format: PCM
        channels,
        sample_rate,
        byte_rate,
        block_align,
        bits_per_sample,
        b"data",
        data_length,
    )


def parse_encoding_descriptor(descriptor: str) -> EncodingDescriptor:
    """Parse a ``type/subtype;param=value`` descriptor such as ``audio/L16;rate=24000``.

    ``L<N>`` subtypes set the bit depth, ``rate`` and ``channels`` parameters set the
    sample rate and channel count. Anything else is ignored and defaults apply.

    Raises:
        MalformedEncodingDescriptorError: if the media type has no ``/`` separator.
    """

    media_type, *params = [part.strip() for part in descriptor.split(";")]
    if "/" not in media_type:
        raise MalformedEncodingDescriptorError(f"Malformed encoding descriptor: {descriptor!r}")

    _, subtype = media_type.split("/", 1)
    channels = DEFAULT_CHANNELS
    sample_rate = DEFAULT_SAMPLE_RATE
    bits = DEFAULT_BITS_PER_SAMPLE

    if subtype[:1] in {"L", "l"} and subtype[1:].isdigit():
        bits = int(subtype[1:])

    for param in params:
        key, sep, value = param.partition("=")
        if not sep:
            continue
        key = key.strip().lower()
        value = value.strip()
        if not value.isdigit():
            continue
        if key == "rate":
            sample_rate = int(value)
        elif key == "channels":
            channels = int(value)

    return EncodingDescriptor(channels=channels, sample_rate=sample_rate, bits_per_sample=bits)


def wrap_pcm_as_container(base64_chunks: Iterable[str], encoding_descriptor: str) -> bytes:
    """Concatenate base64 PCM chunks and prefix them with a matching WAV header."""

    options = parse_encoding_descriptor(encoding_descriptor)
    payload = b"".join(base64.b64decode(chunk) for chunk in base64_chunks)
    header = build_container_header(
        len(payload),
        options.channels,
        options.sample_rate,
        options.bits_per_sample,
    )
    return header + payload


@dataclass(frozen=True, slots=True)
class TranscodeRequest:
    """Raw samples plus their source encoding, targeting a WAV container."""

    samples: bytes
    source: EncodingDescriptor
    target: Literal["wav"] = "wav"


def transcode(request: TranscodeRequest) -> bytes:
    source = request.source
    if source.companding == "mulaw":
        payload = companded8_to_pcm16(request.samples)
        bits = 16
    else:
        payload = request.samples
        bits = source.bits_per_sample

    if request.target != "wav":
        raise ValueError(f"Unsupported target container: {request.target}")

    return build_container_header(len(payload), source.channels, source.sample_rate, bits) + payload
