"""Command line options of the player."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Mapping, Optional, Sequence

from .output import MAX_SUPPORTED_SAMPLERATES, OUTPUTBUF_SIZE, TEST_RATES

log = logging.getLogger(__name__)

STREAMBUF_SIZE = 2 * 1024 * 1024

LOG_NAMES = ("slimproto", "stream", "decode", "output")
LOG_LEVELS = ("error", "warn", "info", "debug", "sdebug")

_VALUE_OPTIONS = "oabcCdefmMnNpPrsZ"
_FLAG_OPTIONS = "ltz?W"
_HARDWARE_MAC_PREFIX = "00:04:20"
_RATE_CEILING = 999999
_U32 = 0xFFFFFFFF

_INT_RE = re.compile(r"\s*([+-]?\d+)")
_HEX_RE = re.compile(r"\s*([+-]?)(0[xX](?=[0-9a-fA-F]))?([0-9a-fA-F]*)")


class OptionError(ValueError):
    """Raised when the command line cannot be used."""


def _default_levels() -> dict[str, str]:
    return {name: "warn" for name in LOG_NAMES}


@dataclass
class Options:
    """Settings gathered from the command line."""

    server: Optional[str] = None
    output_device: str = "default"
    output_params: Optional[str] = None
    include_codecs: Optional[str] = None
    exclude_codecs: str = ""
    name: Optional[str] = None
    namefile: Optional[str] = None
    modelname: Optional[str] = None
    logfile: Optional[str] = None
    pidfile: Optional[str] = None
    daemonize: bool = False
    mac: Optional[bytes] = None
    stream_buf_size: int = STREAMBUF_SIZE
    output_buf_size: int = 0
    rates: list[int] = field(default_factory=list)
    rate_delay: int = 0
    user_rates: bool = False
    resample: Optional[str] = None
    idle: int = 0
    pcm_check_header: bool = False
    max_sample_rate: int = 0
    log_levels: dict[str, str] = field(default_factory=_default_levels)
    action: Optional[str] = None


def _atoi(text: Optional[str]) -> int:
    if not text:
        return 0
    match = _INT_RE.match(text)
    return int(match.group(1)) if match else 0


def _hex_byte(text: str) -> int:
    match = _HEX_RE.match(text)
    digits = match.group(3) if match else ""
    value = int(digits, 16) if digits else 0
    if match and match.group(1) == "-":
        value = -value
    return value & 0xFF


def _params(text: Optional[str], sep: str) -> list[Optional[str]]:
    """Split ``text`` on ``sep``; empty parts become None."""
    if text is None:
        return []
    return [part or None for part in text.split(sep)]


def _nth(parts: Sequence[Optional[str]], index: int) -> Optional[str]:
    return parts[index] if index < len(parts) else None


def _sorted_rate_list(text: str) -> list[int]:
    values: list[int] = []
    for part in _params(text, ","):
        if part is None or len(values) >= MAX_SUPPORTED_SAMPLERATES:
            break
        values.append(_atoi(part) & _U32)
    distinct = {v for v in values if 0 < v < _RATE_CEILING}
    return sorted(distinct, reverse=True)[:MAX_SUPPORTED_SAMPLERATES]


def _range_rate_list(text: str) -> list[int]:
    parts = _params(text, "-")
    low_text, high_text = _nth(parts, 0), _nth(parts, 1)
    if high_text:
        high = _atoi(high_text) & _U32
    elif low_text:
        high = _atoi(low_text) & _U32
    else:
        high = TEST_RATES[0]
    low = _atoi(low_text) & _U32 if low_text and high_text else 0
    if high < low:
        high, low = low, high
    rates = [high]
    for ref in TEST_RATES:
        if len(rates) >= MAX_SUPPORTED_SAMPLERATES:
            break
        if ref < rates[-1] and ref >= low:
            rates.append(ref)
    return [r for r in rates if r]


def parse_rates(text: str) -> tuple[list[int], Optional[int]]:
    """Parse ``<rates>[:<delay>]`` into descending rates and the switch delay.

    ``rates`` is ``<max>``, ``<min>-<max>`` or a comma separated list.
    The delay is None when not given.
    """
    parts = _params(text, ":")
    rate_text, delay_text = _nth(parts, 0), _nth(parts, 1)
    rates: list[int] = []
    if rate_text and "," in rate_text:
        rates = _sorted_rate_list(rate_text)
    elif rate_text:
        rates = _range_rate_list(rate_text)
    delay = _atoi(delay_text) if delay_text else None
    return rates, delay


def parse_mac(text: str, default: bytes) -> bytes:
    """Parse ``ab:cd:ef:12:34:56`` over ``default``; hardware player addresses are refused."""
    mac = bytearray(default)
    if text.startswith(_HARDWARE_MAC_PREFIX):
        log.error("ignoring mac address from hardware player range 00:04:20:**:**:**")
        return bytes(mac)
    tokens = [t for t in text.split(":") if t]
    for index, token in enumerate(tokens[:6]):
        mac[index] = _hex_byte(token)
    return bytes(mac)


def parse_debug(text: str, levels: Mapping[str, str]) -> dict[str, str]:
    """Apply ``<log>=<level>`` to a copy of ``levels`` and return it."""
    tokens = [t for t in text.split("=") if t]
    if len(tokens) < 2:
        raise OptionError(f"Debug settings error: -d {text}")
    target, value = tokens[0], tokens[1]
    new = value if value in ("info", "debug", "sdebug") else "warn"
    result = dict(levels)
    for name in LOG_NAMES:
        if target in ("all", name):
            result[name] = new
    return result


def output_buffer_size(options: Options) -> int:
    """Output buffer size in bytes, scaled up for resampling when not given."""
    if options.output_buf_size:
        return options.output_buf_size
    size = OUTPUTBUF_SIZE
    if options.resample is not None:
        scale = 8
        if options.rates and options.rates[0]:
            scale = max(1, min(8, options.rates[0] // 44100))
        size *= scale
    return size


def _apply_value(options: Options, letter: str, value: str) -> None:
    if letter == "o":
        options.output_device = value
    elif letter == "a":
        options.output_params = value
    elif letter == "b":
        parts = _params(value, ":")
        stream, out = _nth(parts, 0), _nth(parts, 1)
        if stream:
            options.stream_buf_size = _atoi(stream) * 1024
        if out:
            options.output_buf_size = _atoi(out) * 1024
    elif letter == "c":
        options.include_codecs = value
    elif letter == "C":
        if _atoi(value) > 0:
            options.idle = _atoi(value) * 1000
    elif letter == "e":
        options.exclude_codecs = value
    elif letter == "d":
        options.log_levels = parse_debug(value, options.log_levels)
    elif letter == "f":
        options.logfile = value
    elif letter == "m":
        options.mac = parse_mac(value, options.mac or bytes(6))
    elif letter == "M":
        options.modelname = value
    elif letter == "r":
        rates, delay = parse_rates(value)
        options.rates = rates
        if delay is not None:
            options.rate_delay = delay
        if rates:
            options.user_rates = True
    elif letter == "s":
        options.server = value
    elif letter == "n":
        options.name = value
    elif letter == "N":
        options.namefile = value
    elif letter == "Z":
        options.max_sample_rate = _atoi(value)
    elif letter == "P":
        options.pidfile = value
    else:
        log.warning("Arg error: -%s", letter)


def parse_args(argv: Sequence[str]) -> Options:
    """Parse command line arguments (without the program name).

    ``-l``, ``-t`` and ``-?`` stop parsing and set ``action`` to
    "list", "license" or "help".
    """
    args = list(argv)
    options = Options()
    index = 0
    while index < len(args) and len(args[index]) >= 2 and args[index][0] == "-":
        opt = args[index][1:]
        if opt in _VALUE_OPTIONS and index < len(args) - 1:
            value: Optional[str] = args[index + 1]
            index += 2
        elif opt in _FLAG_OPTIONS:
            value = None
            index += 1
        else:
            raise OptionError(f"Option error: -{opt}")

        letter = opt[0]
        if letter == "l":
            options.action = "list"
            return options
        if letter == "t":
            options.action = "license"
            return options
        if letter == "?":
            options.action = "help"
            return options
        if letter == "W":
            options.pcm_check_header = True
        elif letter == "z":
            options.daemonize = True
        elif value is not None:
            _apply_value(options, letter, value)

    if index < len(args):
        raise OptionError("command line argument error")
    if options.name and options.namefile:
        raise OptionError("-n and -N option should not be used at same time")
    return options