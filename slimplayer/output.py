"""Output side of the player: the frame ring buffer and the playback state machine."""

from __future__ import annotations

import logging
import struct
import threading
import time
from enum import IntEnum
from typing import Callable, Iterable, Optional, Sequence

from .pack import BYTES_PER_FRAME, FIXED_ONE, OutputFormat, gain, to_gain

log = logging.getLogger(__name__)

MAX_SILENCE_FRAMES = 2048
OUTPUTBUF_SIZE = 44100 * 8 * 10
OUTPUTBUF_SIZE_CROSSFADE = OUTPUTBUF_SIZE * 12 // 10
MAX_SUPPORTED_SAMPLERATES = 20
TEST_RATES = (
    1536000, 1411200, 768000, 705600, 384000, 352800, 192000, 176400, 96000,
    88200, 48000, 44100, 32000, 24000, 22500, 16000, 12000, 11025, 8000,
)

_U32 = 0xFFFFFFFF

WriteCallback = Callable[[int, bool, int, int, int, int, int, Optional[int]], int]


class OutputState(IntEnum):
    OFF = -1
    STOPPED = 0
    BUFFER = 1
    RUNNING = 2
    PAUSE_FRAMES = 3
    SKIP_FRAMES = 4
    START_AT = 5


class FadeState(IntEnum):
    INACTIVE = 0
    DUE = 1
    ACTIVE = 2


class FadeDir(IntEnum):
    UP = 1
    DOWN = 2
    CROSS = 3


class FadeMode(IntEnum):
    NONE = 0
    CROSSFADE = 1
    IN = 2
    OUT = 3
    INOUT = 4


def _gettime_ms() -> int:
    return int(time.monotonic() * 1000) & _U32


def default_sample_rate(rates: Iterable[int]) -> int:
    """Pick the initial rate: 44100 if supported, else the first (largest) rate."""
    rates = [r for r in rates if r]
    if 44100 in rates:
        return 44100
    return rates[0] if rates else 0


class RingBuffer:
    """Circular byte buffer with separate read and write positions.

    One byte is always kept free so that a full buffer differs from an empty one.
    Methods other than ``flush`` expect the caller to hold ``lock``.
    """

    def __init__(self, size: int) -> None:
        if size < 0:
            raise ValueError("buffer size must not be negative")
        self.base_size = size
        self.lock = threading.RLock()
        self._allocate(size)

    def _allocate(self, size: int) -> None:
        self.size = size
        self.data = bytearray(size)
        self.readp = 0
        self.writep = 0

    @property
    def wrap(self) -> int:
        return self.size

    def used(self) -> int:
        if self.writep >= self.readp:
            return self.writep - self.readp
        return self.size - (self.readp - self.writep)

    def space(self) -> int:
        return self.size - self.used() - 1

    def cont_read(self) -> int:
        if self.writep >= self.readp:
            return self.writep - self.readp
        return self.wrap - self.readp

    def cont_write(self) -> int:
        if self.writep >= self.readp:
            return self.wrap - self.writep
        return self.readp - self.writep

    def inc_readp(self, by: int) -> None:
        self.readp += by
        if self.readp >= self.wrap:
            self.readp -= self.size

    def inc_writep(self, by: int) -> None:
        self.writep += by
        if self.writep >= self.wrap:
            self.writep -= self.size

    def _put(self, pos: int, data: bytes) -> None:
        n = len(data)
        if not n:
            return
        pos %= self.size
        first = min(n, self.size - pos)
        self.data[pos:pos + first] = data[:first]
        self.data[:n - first] = data[first:]

    def _get(self, pos: int, n: int) -> bytes:
        if not n:
            return b""
        pos %= self.size
        first = min(n, self.size - pos)
        return bytes(self.data[pos:pos + first] + self.data[:n - first])

    def write(self, data: bytes) -> None:
        """Append ``data`` at the write position, wrapping as needed."""
        if len(data) > self.space():
            raise ValueError("not enough space in buffer")
        self._put(self.writep, bytes(data))
        self.inc_writep(len(data))

    def read_samples(self, pos: int, frames: int) -> list[int]:
        """Return ``frames`` stereo frames of signed 32-bit samples starting at ``pos``."""
        count = frames * 2
        return list(struct.unpack(f"<{count}i", self._get(pos, count * 4)))

    def write_samples(self, pos: int, values: Sequence[int]) -> None:
        """Store signed 32-bit samples starting at byte position ``pos``."""
        packed = struct.pack(f"<{len(values)}I", *(v & _U32 for v in values))
        self._put(pos, packed)

    def flush(self) -> None:
        with self.lock:
            self.readp = 0
            self.writep = 0

    def resize(self, size: int) -> None:
        """Reallocate to ``size`` bytes, discarding the contents."""
        self._allocate(size)


class Output:
    """Playback state and the logic that feeds frames to an output device.

    Without a ``write_cb`` every frame offered is accepted and dropped.
    """

    def __init__(
        self,
        device: str = "-",
        buffer_size: int = OUTPUTBUF_SIZE,
        rates: Iterable[int] = (),
        idle: int = 0,
        *,
        write_cb: Optional[WriteCallback] = None,
        test_open: Optional[Callable[[str], Optional[Sequence[int]]]] = None,
        user_rates: bool = False,
        rate_delay: int = 0,
        start_frames: int = 0,
        fmt: OutputFormat = OutputFormat.S32_LE,
        clock: Optional[Callable[[], int]] = None,
        on_start: Optional[Callable[[], None]] = None,
    ) -> None:
        buffer_size -= buffer_size % BYTES_PER_FRAME
        log.debug("outputbuf size: %u", buffer_size)
        self.buffer = RingBuffer(buffer_size)
        self.clock = clock or _gettime_ms
        self.on_start = on_start
        self.write_cb: Optional[WriteCallback] = write_cb

        self.state = OutputState.OFF if idle else OutputState.STOPPED
        self.device = device
        self.format = OutputFormat(fmt)
        self.channels = 0
        self.idle_to = idle
        self.error_opening = False
        self.start_frames = start_frames
        self.rate_delay = rate_delay

        self.track_started = False
        self.frames_played = 0
        self.frames_played_dmp = 0
        self.device_frames = 0
        self.updated = 0
        self.track_start_time = 0
        self.stop_time = 0
        self.pause_frames = 0
        self.skip_frames = 0
        self.start_at = 0
        self.next_sample_rate = 0
        self.track_start: Optional[int] = None
        self.gain_l = 0
        self.gain_r = 0
        self.invert = False
        self.current_replay_gain = 0
        self.next_replay_gain = 0
        self.threshold = 0
        self.fade = FadeState.INACTIVE
        self.fade_start = 0
        self.fade_end = 0
        self.fade_dir = FadeDir.UP
        self.fade_mode = FadeMode.NONE
        self.fade_secs = 0
        self.delay_active = False

        if device.startswith("-") or user_rates:
            supported = list(rates)
        else:
            found = test_open(device) if test_open else None
            if not found:
                raise OSError(f"unable to open output device: {device}")
            supported = list(found)
        self.supported_rates = [r for r in supported if r][:MAX_SUPPORTED_SAMPLERATES]

        self.default_sample_rate = default_sample_rate(self.supported_rates)
        self.current_sample_rate = self.default_sample_rate
        log.info("supported rates: %s", " ".join(str(r) for r in self.supported_rates))

    def _frame_distance(self, start: int, end: int) -> int:
        if end >= start:
            return (end - start) // BYTES_PER_FRAME
        return (end + self.buffer.size - start) // BYTES_PER_FRAME

    def _write(self, out_frames, silence, gain_l, gain_r, flags,
               cross_gain_in, cross_gain_out, cross_pos) -> int:
        if self.write_cb is None:
            return out_frames
        return self.write_cb(
            out_frames, silence, gain_l, gain_r, flags, cross_gain_in, cross_gain_out, cross_pos
        )

    def output_frames(self, avail: int) -> int:
        """Feed up to ``avail`` frames to the write callback; return frames handled.

        The caller must hold ``buffer.lock``.
        """
        buf = self.buffer
        flags = self.channels
        cross_gain_in = cross_gain_out = 0
        cross_pos: Optional[int] = None

        if self.current_replay_gain:
            gain_l = gain(self.gain_l, self.current_replay_gain)
            gain_r = gain(self.gain_r, self.current_replay_gain)
        else:
            gain_l, gain_r = self.gain_l, self.gain_r
        if self.invert:
            gain_l, gain_r = -gain_l, -gain_r

        frames = buf.used() // BYTES_PER_FRAME
        silence = False

        if (
            self.state == OutputState.BUFFER
            and frames > self.threshold * self.next_sample_rate // 10
            and frames > self.start_frames
        ):
            self.state = OutputState.RUNNING
            log.info("start buffer frames: %u", frames)
            if self.on_start:
                self.on_start()

        if self.state == OutputState.SKIP_FRAMES:
            if frames > 0:
                skip = min(frames, self.skip_frames)
                log.info("skip %u of %u frames", skip, self.skip_frames)
                frames -= skip
                self.frames_played += skip
                while skip > 0:
                    cont = min(skip, buf.cont_read() // BYTES_PER_FRAME)
                    skip -= cont
                    buf.inc_readp(cont * BYTES_PER_FRAME)
            self.state = OutputState.RUNNING

        if self.state == OutputState.PAUSE_FRAMES:
            log.info("pause %u frames", self.pause_frames)
            if self.pause_frames == 0:
                self.state = OutputState.RUNNING
            else:
                silence = True
                frames = min(avail, self.pause_frames, MAX_SILENCE_FRAMES)
                self.pause_frames -= frames

        if self.state == OutputState.START_AT:
            now = self.clock()
            if now >= self.start_at or self.start_at > now + 10000:
                self.state = OutputState.RUNNING
            else:
                delta = (((self.start_at - now) & _U32) * self.current_sample_rate // 1000) & _U32
                silence = True
                frames = min(avail, delta, MAX_SILENCE_FRAMES)

        if self.state <= OutputState.BUFFER or frames == 0:
            silence = True
            frames = min(avail, MAX_SILENCE_FRAMES)

        frames = min(frames, avail)
        size = frames

        while size > 0:
            cont_frames = buf.cont_read() // BYTES_PER_FRAME

            if self.track_start is not None and not silence:
                if self.track_start == buf.readp:
                    delay = 0
                    if self.current_sample_rate != self.next_sample_rate:
                        delay = self.rate_delay
                    frames -= size
                    # silence is added in two halves, before and after the track start
                    if delay:
                        self.state = OutputState.PAUSE_FRAMES
                        if not self.delay_active:
                            self.pause_frames = self.current_sample_rate * delay // 2000
                            self.delay_active = True
                            break
                        self.pause_frames = self.next_sample_rate * delay // 2000
                        self.delay_active = False
                    log.info(
                        "track start sample rate: %u replay_gain: %u",
                        self.next_sample_rate, self.next_replay_gain,
                    )
                    self.frames_played = 0
                    self.track_started = True
                    self.track_start_time = self.clock()
                    self.current_sample_rate = self.next_sample_rate
                    if self.fade == FadeState.INACTIVE or self.fade_mode != FadeMode.CROSSFADE:
                        self.current_replay_gain = self.next_replay_gain
                    self.track_start = None
                    break
                if self.track_start > buf.readp:
                    cont_frames = min(cont_frames, (self.track_start - buf.readp) // BYTES_PER_FRAME)

            if self.fade != FadeState.INACTIVE and not silence:
                if self.fade == FadeState.DUE:
                    if self.fade_start == buf.readp:
                        log.info("fade start reached")
                        self.fade = FadeState.ACTIVE
                    elif self.fade_start > buf.readp:
                        cont_frames = min(cont_frames, (self.fade_start - buf.readp) // BYTES_PER_FRAME)

                if self.fade == FadeState.ACTIVE:
                    cur_f = self._frame_distance(self.fade_start, buf.readp)
                    dur_f = self._frame_distance(self.fade_start, self.fade_end)
                    if cur_f >= dur_f:
                        if self.fade_mode == FadeMode.INOUT and self.fade_dir == FadeDir.DOWN:
                            log.info("fade down complete, starting fade up")
                            self.fade_dir = FadeDir.UP
                            self.fade_start = buf.readp
                            self.fade_end = buf.readp + dur_f * BYTES_PER_FRAME
                            if self.fade_end >= buf.wrap:
                                self.fade_end -= buf.size
                            cur_f = 0
                        elif self.fade_mode == FadeMode.CROSSFADE:
                            log.info("crossfade complete")
                            if buf.used() >= dur_f * BYTES_PER_FRAME:
                                buf.inc_readp(dur_f * BYTES_PER_FRAME)
                                log.info("skipped crossfaded start")
                            else:
                                log.warning("unable to skip crossfaded start")
                            self.fade = FadeState.INACTIVE
                            self.current_replay_gain = self.next_replay_gain
                        else:
                            log.info("fade complete")
                            self.fade = FadeState.INACTIVE

                    if self.fade != FadeState.INACTIVE:
                        if self.fade_end > buf.readp:
                            cont_frames = min(cont_frames, (self.fade_end - buf.readp) // BYTES_PER_FRAME)
                        if self.fade_dir in (FadeDir.UP, FadeDir.DOWN):
                            if self.fade_dir == FadeDir.DOWN:
                                cur_f = dur_f - cur_f
                            fade_gain = to_gain(cur_f / dur_f if dur_f else 1.0)
                            gain_l = gain(gain_l, fade_gain)
                            gain_r = gain(gain_r, fade_gain)
                            if self.invert:
                                gain_l, gain_r = -gain_l, -gain_r
                        if self.fade_dir == FadeDir.CROSS:
                            if buf.used() // BYTES_PER_FRAME > dur_f + size:
                                cross_gain_in = to_gain(cur_f / dur_f if dur_f else 1.0)
                                cross_gain_out = FIXED_ONE - cross_gain_in
                                if self.current_replay_gain:
                                    cross_gain_out = gain(cross_gain_out, self.current_replay_gain)
                                if self.next_replay_gain:
                                    cross_gain_in = gain(cross_gain_in, self.next_replay_gain)
                                gain_l, gain_r = self.gain_l, self.gain_r
                                if self.invert:
                                    gain_l, gain_r = -gain_l, -gain_r
                                cross_pos = (self.fade_end + cur_f * BYTES_PER_FRAME) % buf.size
                            else:
                                log.info("unable to continue crossfade - too few samples")
                                self.fade = FadeState.INACTIVE

            out_frames = size if silence else min(size, cont_frames)
            wrote = self._write(
                out_frames, silence, gain_l, gain_r, flags, cross_gain_in, cross_gain_out, cross_pos
            )
            if wrote <= 0:
                frames -= size
                break
            out_frames = wrote
            size -= out_frames

            if not silence:
                buf.inc_readp(out_frames * BYTES_PER_FRAME)
                self.frames_played += out_frames

        return frames

    def check_fade(self, start: bool) -> None:
        """Set up a fade at a track start or track end according to ``fade_mode``.

        The caller must hold ``buffer.lock``.
        """
        buf = self.buffer
        log.info(
            "fade mode: %u duration: %u %s",
            self.fade_mode, self.fade_secs, "track-start" if start else "track-end",
        )
        nbytes = (self.next_sample_rate * BYTES_PER_FRAME * self.fade_secs) & _U32
        if self.fade_mode == FadeMode.INOUT:
            nbytes = ((nbytes // 2) // BYTES_PER_FRAME) * BYTES_PER_FRAME

        if start and (
            self.fade_mode == FadeMode.IN
            or (self.fade_mode == FadeMode.INOUT and buf.used() == 0)
        ):
            nbytes = min(nbytes, buf.size - BYTES_PER_FRAME)
            log.info("fade IN: %u frames", nbytes // BYTES_PER_FRAME)
            self.fade = FadeState.DUE
            self.fade_dir = FadeDir.UP
            self.fade_start = buf.writep
            self.fade_end = self.fade_start + nbytes
            if self.fade_end >= buf.wrap:
                self.fade_end -= buf.size

        if not start and self.fade_mode in (FadeMode.OUT, FadeMode.INOUT):
            nbytes = min(buf.used(), nbytes)
            log.info("fade %s: %u frames",
                     "IN-OUT" if self.fade_mode == FadeMode.INOUT else "OUT",
                     nbytes // BYTES_PER_FRAME)
            self.fade = FadeState.DUE
            self.fade_dir = FadeDir.DOWN
            self.fade_start = buf.writep - nbytes
            if self.fade_start < 0:
                self.fade_start += buf.size
            self.fade_end = buf.writep

        if start and self.fade_mode == FadeMode.CROSSFADE:
            if buf.used() != 0:
                if self.next_sample_rate != self.current_sample_rate:
                    log.info("crossfade disabled as sample rates differ")
                    return
                nbytes = min(nbytes, buf.used(), int(buf.size * 0.9))
                log.info("CROSSFADE: %u frames", nbytes // BYTES_PER_FRAME)
                self.fade = FadeState.DUE
                self.fade_dir = FadeDir.CROSS
                self.fade_start = buf.writep - nbytes
                if self.fade_start < 0:
                    self.fade_start += buf.size
                self.fade_end = buf.writep
                self.track_start = self.fade_start
            elif buf.size == OUTPUTBUF_SIZE and buf.readp == 0:
                log.info("resize outputbuf for crossfade")
                buf.resize(OUTPUTBUF_SIZE_CROSSFADE)

    def flush(self) -> None:
        """Discard all buffered frames and stop playback."""
        log.info("flush output buffer (full)")
        self.buffer.flush()
        with self.buffer.lock:
            self.fade = FadeState.INACTIVE
            if self.state != OutputState.OFF:
                self.state = OutputState.STOPPED
                self.stop_time = self.clock()
                if self.error_opening:
                    self.current_sample_rate = self.default_sample_rate
                self.delay_active = False
            self.frames_played = 0

    def flush_streaming(self) -> bool:
        """Drop frames of the next track not yet started; return whether any were."""
        log.info("flush output buffer (streaming)")
        with self.buffer.lock:
            flushed = self.track_start is not None
            if flushed:
                self.buffer.writep = self.track_start
                self.track_start = None
        return flushed