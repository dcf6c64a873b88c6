"""Output that writes interleaved little endian frames to a binary stream."""

from __future__ import annotations

import logging
import sys
import threading
from typing import BinaryIO, Iterable, Optional

from .output import OUTPUTBUF_SIZE, MAX_SILENCE_FRAMES, FadeDir, FadeState, Output
from .pack import BYTES_PER_FRAME, OutputFormat, apply_cross, scale_and_pack_frames

log = logging.getLogger(__name__)

FRAME_BLOCK = MAX_SILENCE_FRAMES

_PARAM_FORMATS = {
    "32": OutputFormat.S32_LE,
    "24": OutputFormat.S24_3LE,
    "16": OutputFormat.S16_LE,
}


def bytes_per_frame(fmt: OutputFormat) -> int:
    """Bytes one stereo frame takes in the stream for ``fmt``."""
    if fmt == OutputFormat.S24_3LE:
        return 3 * 2
    if fmt == OutputFormat.S16_LE:
        return 2 * 2
    return 4 * 2


class StdoutOutput:
    """Feeds frames from the output buffer to a stream, by default standard output.

    ``params`` selects the sample format: "32", "24" (packed 3 bytes) or "16".
    """

    def __init__(
        self,
        output_buf_size: int = OUTPUTBUF_SIZE,
        params: Optional[str] = None,
        rates: Iterable[int] = (),
        rate_delay: int = 0,
        stream: Optional[BinaryIO] = None,
    ) -> None:
        log.info("init output stdout")
        self.stream = stream if stream is not None else sys.stdout.buffer
        self.pending = bytearray()
        self.running = True
        self._thread: Optional[threading.Thread] = None

        fmt = _PARAM_FORMATS.get(params, OutputFormat.S32_LE) if params else OutputFormat.S32_LE

        rates = list(rates)
        # an explicit rate avoids probing a device
        if not rates or not rates[0]:
            rates = [44100] + rates[1:]

        self.output = Output(
            "-",
            output_buf_size,
            rates,
            0,
            write_cb=self.write_frames,
            rate_delay=rate_delay,
            start_frames=FRAME_BLOCK * 2,
            fmt=fmt,
        )

    def write_frames(
        self,
        out_frames: int,
        silence: bool,
        gain_l: int,
        gain_r: int,
        flags: int,
        cross_gain_in: int,
        cross_gain_out: int,
        cross_pos: Optional[int],
    ) -> int:
        """Pack ``out_frames`` frames (or silence) into the pending data."""
        output = self.output
        buf = output.buffer
        if silence:
            samples = [0] * (out_frames * 2)
        else:
            samples = buf.read_samples(buf.readp, out_frames)
            if (
                output.fade == FadeState.ACTIVE
                and output.fade_dir == FadeDir.CROSS
                and cross_pos is not None
            ):
                incoming = buf.read_samples(cross_pos, out_frames)
                samples = apply_cross(samples, incoming, cross_gain_in, cross_gain_out)
                buf.write_samples(buf.readp, samples)

        self.pending += scale_and_pack_frames(samples, gain_l, gain_r, flags, output.format)
        return out_frames

    def run_once(self) -> int:
        """Process one block of frames and write it out; return frames written."""
        output = self.output
        with output.buffer.lock:
            output.device_frames = 0
            output.updated = output.clock()
            output.frames_played_dmp = output.frames_played
            output.output_frames(FRAME_BLOCK)
            data = bytes(self.pending)
            self.pending.clear()
            frame_bytes = bytes_per_frame(output.format)

        if data:
            self.stream.write(data)
        return len(data) // frame_bytes

    def _loop(self) -> None:
        while True:
            with self.output.buffer.lock:
                if not self.running:
                    break
            self.run_once()

    def start(self) -> None:
        """Start the background thread that keeps writing frames."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._loop, name="output", daemon=True)
        self._thread.start()

    def close(self) -> None:
        """Stop the writing thread and wait for it to finish."""
        log.info("close output")
        with self.output.buffer.lock:
            self.running = False
        if self._thread is not None:
            self._thread.join()
            self._thread = None

    def __enter__(self) -> "StdoutOutput":
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()


__all__ = ["StdoutOutput", "bytes_per_frame", "FRAME_BLOCK", "BYTES_PER_FRAME"]