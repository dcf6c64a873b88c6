"""Sample gain, mixing and packing of interleaved stereo 32-bit frames."""

from __future__ import annotations

import struct
from enum import IntEnum
from typing import Iterable, Sequence

FIXED_ONE = 0x10000
MONO_LEFT = 0x01
MONO_RIGHT = 0x02
BYTES_PER_FRAME = 8

_MAX_SCALESAMPLE = 0x7FFFFFFFFFFF
_MIN_SCALESAMPLE = -_MAX_SCALESAMPLE


class OutputFormat(IntEnum):
    """Sample layouts an output device can accept."""

    S32_LE = 0
    S24_LE = 1
    S24_3LE = 2
    S16_LE = 3
    U8 = 4
    U16_LE = 5
    U16_BE = 6
    U32_LE = 7
    U32_BE = 8


_GAIN_FORMATS = frozenset(
    {OutputFormat.S32_LE, OutputFormat.S24_LE, OutputFormat.S24_3LE, OutputFormat.S16_LE}
)


def _to_s32(value: int) -> int:
    return ((value + 0x80000000) & 0xFFFFFFFF) - 0x80000000


def _half(value: int) -> int:
    """Divide by two, truncating toward zero."""
    return value // 2 if value >= 0 else -((-value) // 2)


def gain(gain: int, sample: int) -> int:
    """Multiply a sample by a 16.16 fixed point gain, clamping the result."""
    res = gain * sample
    res = max(_MIN_SCALESAMPLE, min(_MAX_SCALESAMPLE, res))
    return _to_s32(res >> 16)


def to_gain(f: float) -> int:
    """Convert a float gain factor to 16.16 fixed point."""
    return int(f * 65536.0)


def _checked(samples: Iterable[int]) -> list[int]:
    result = [_to_s32(s) for s in samples]
    if len(result) % 2:
        raise ValueError("interleaved stereo samples must come in pairs")
    return result


def _mix_mono(samples: list[int], flags: int) -> list[int]:
    left, right = samples[0::2], samples[1::2]
    if flags & MONO_LEFT and flags & MONO_RIGHT:
        mixed = [_half(l + r) for l, r in zip(left, right)]
        left = right = mixed
    elif flags & MONO_RIGHT:
        left = right
    elif flags & MONO_LEFT:
        right = left
    else:
        return samples
    return [s for pair in zip(left, right) for s in pair]


def scale_and_pack_frames(
    samples: Iterable[int], gain_l: int, gain_r: int, flags: int, fmt: OutputFormat
) -> bytes:
    """Apply mono mixing and gain to frames and pack them into ``fmt`` bytes.

    Gain is applied only to the PCM formats; DSD formats pass through unscaled.
    """
    fmt = OutputFormat(fmt)
    values = _mix_mono(_checked(samples), flags)

    if fmt in _GAIN_FORMATS and not (gain_l == FIXED_ONE and gain_r == FIXED_ONE):
        values = [
            gain(gain_l if i % 2 == 0 else gain_r, s) for i, s in enumerate(values)
        ]

    unsigned = [s & 0xFFFFFFFF for s in values]
    count = len(unsigned)

    if fmt in (OutputFormat.S32_LE, OutputFormat.U32_LE):
        return struct.pack(f"<{count}I", *unsigned)
    if fmt is OutputFormat.U32_BE:
        return struct.pack(f">{count}I", *unsigned)
    if fmt is OutputFormat.S24_LE:
        return struct.pack(f"<{count}i", *(s >> 8 for s in values))
    if fmt is OutputFormat.S24_3LE:
        data = bytearray(struct.pack(f"<{count}I", *unsigned))
        del data[0::4]
        return bytes(data)
    if fmt in (OutputFormat.S16_LE, OutputFormat.U16_LE):
        return struct.pack(f"<{count}H", *(u >> 16 for u in unsigned))
    if fmt is OutputFormat.U16_BE:
        return struct.pack(f">{count}H", *(u >> 16 for u in unsigned))
    # OutputFormat.U8
    return bytes(u >> 24 for u in unsigned)


def apply_gain(samples: Sequence[int], gain_l: int, gain_r: int, flags: int) -> list[int]:
    """Return the frames with per-channel gain and mono mixing applied."""
    values = _checked(samples)
    if gain_l == FIXED_ONE and gain_r == FIXED_ONE and not flags & (MONO_LEFT | MONO_RIGHT):
        return values

    left, right = values[0::2], values[1::2]
    if flags & MONO_LEFT and flags & MONO_RIGHT:
        mixed = [_to_s32(_half(gain(gain_l, l) + gain(gain_r, r))) for l, r in zip(left, right)]
        new_left = new_right = mixed
    elif flags & MONO_RIGHT:
        new_left = new_right = [gain(gain_r, r) for r in right]
    elif flags & MONO_LEFT:
        new_left = new_right = [gain(gain_l, l) for l in left]
    else:
        new_left = [gain(gain_l, l) for l in left]
        new_right = [gain(gain_r, r) for r in right]
    return [s for pair in zip(new_left, new_right) for s in pair]


def apply_cross(
    samples: Sequence[int],
    cross_samples: Sequence[int],
    cross_gain_in: int,
    cross_gain_out: int,
) -> list[int]:
    """Crossfade: mix outgoing ``samples`` with incoming ``cross_samples``."""
    values = _checked(samples)
    incoming = [_to_s32(s) for s in cross_samples]
    if len(incoming) < len(values):
        raise ValueError("not enough crossfade samples")
    return [
        _to_s32(gain(cross_gain_out, s) + gain(cross_gain_in, c))
        for s, c in zip(values, incoming)
    ]