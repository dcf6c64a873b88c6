"""Help, codec list and terms texts shown by the player's command line."""

from __future__ import annotations

import sys

from .options import STREAMBUF_SIZE
from .output import OUTPUTBUF_SIZE

VERSION = "v2.0.0-1468"
MODEL_NAME = "SlimPlayer"
TITLE = f"SlimPlayer {VERSION}"

_CODECS = ("flac", "pcm", "ogg", "aac", "mp3 (mad,mpg for specific mp3 codec)")

_LOG_NAMES = ("all", "slimproto", "stream", "decode", "output")
_LOG_LEVELS = ("info", "debug", "sdebug")


def codecs_list() -> str:
    """Codec names known to the player, in the order they are reported."""
    return ",".join(_CODECS)


def _build_options() -> str:
    platforms = (
        ("linux", "LINUX"),
        ("darwin", "OSX"),
        ("win", "WIN"),
        ("freebsd", "FREEBSD"),
    )
    for prefix, label in platforms:
        if sys.platform.startswith(prefix):
            return " " + label
    return ""


def _option_rows() -> list[tuple[str, str]]:
    codecs = codecs_list()
    stream_kb = STREAMBUF_SIZE // 1024
    output_kb = OUTPUTBUF_SIZE // 1024
    return [
        ("-s <server>[:<port>]", "server to use; discovered on the network when omitted"),
        ("-o <device>", "output device (default: default); '-' writes samples to stdout"),
        ("-l", "print the available output devices and exit"),
        ("-a <f>", "sample width 16, 24 or 32 for stdout output (little endian, interleaved)"),
        ("-b <stream>:<output>", f"buffer sizes in KiB, default {stream_kb}:{output_kb}"),
        ("-c <codec>,...", f"only offer these codecs, in this order; known: {codecs}"),
        ("-C <timeout>", "release the output device after this many idle seconds"),
        ("-d <log>=<level>",
         f"logging, log one of {'|'.join(_LOG_NAMES)}, level one of {'|'.join(_LOG_LEVELS)}"),
        ("-e <codec>,...", f"leave these codecs out; known: {codecs}"),
        ("-f <logfile>", "append log messages to this file"),
        ("-m <mac>", "player MAC address, written as six hex pairs joined by ':'"),
        ("-M <model>", f"model name reported to the server (default: {MODEL_NAME})"),
        ("-n <name>", "player name"),
        ("-N <file>", "keep the player name in this file so server changes persist (not with -n)"),
        ("-W", "take wave and aiff formats from the stream header instead of the server"),
        ("-P <file>", "write the process id to this file"),
        ("-r <rates>[:<delay>]",
         "supported rates as <max>, <min>-<max> or a comma list; delay in ms on rate change"),
        ("-z", "run in the background"),
        ("-Z <rate>", "highest sample rate announced to the server"),
        ("-t", "show the terms of use"),
        ("-?", "show this help"),
    ]


def usage(prog: str) -> str:
    """Return the help text for program name ``prog``."""
    lines = [f"{TITLE} (-t shows the terms of use)", f"Usage: {prog} [options]"]
    lines.extend(f"  {flag:<22} {text}" for flag, text in _option_rows())
    lines.extend(["", "Build options:" + _build_options(), "", ""])
    return "\n".join(lines)


def license_text() -> str:
    """Return the text shown by ``-t``."""
    return (
        f"{TITLE}\n\n"
        "The terms of use are given in the documentation distributed with this package.\n\n"
    )