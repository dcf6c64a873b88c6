import pytest

from slimplayer.output import (
    MAX_SILENCE_FRAMES,
    OUTPUTBUF_SIZE,
    OUTPUTBUF_SIZE_CROSSFADE,
    FadeDir,
    FadeMode,
    FadeState,
    Output,
    OutputState,
    RingBuffer,
    default_sample_rate,
)
from slimplayer.pack import BYTES_PER_FRAME, FIXED_ONE, gain

BPF = BYTES_PER_FRAME


class Recorder:
    def __init__(self, accept=True):
        self.calls = []
        self.accept = accept

    def __call__(self, out_frames, silence, gain_l, gain_r, flags, cgi, cgo, cross_pos):
        self.calls.append((out_frames, silence, gain_l, gain_r, flags, cgi, cgo, cross_pos))
        return out_frames if self.accept else 0


def make_output(frames=64, **kw):
    rec = kw.pop("write_cb", None) or Recorder()
    out = Output("-", frames * BPF, [44100], write_cb=rec, clock=lambda: 1000, **kw)
    out.gain_l = out.gain_r = FIXED_ONE
    return out, rec


def fill(out, frames):
    out.buffer.write(bytes(frames * BPF))


# RingBuffer

def test_ring_used_space_invariant():
    rb = RingBuffer(16)
    rb.write(b"x" * 10)
    assert rb.used() == 10
    assert rb.used() + rb.space() == rb.size - 1
    assert rb.cont_write() == 6


def test_ring_wraps():
    rb = RingBuffer(16)
    rb.write(b"a" * 10)
    rb.inc_readp(8)
    rb.write(b"b" * 8)
    assert rb.writep == 2
    assert rb.cont_read() == rb.wrap - rb.readp
    assert rb.used() == 10
    assert rb.data[:2] == b"bb"


def test_ring_overflow_raises():
    rb = RingBuffer(16)
    with pytest.raises(ValueError):
        rb.write(b"z" * 16)


def test_ring_samples_round_trip_across_wrap():
    rb = RingBuffer(2 * BPF)
    values = [1, -2, 3, -4]
    rb.write_samples(BPF, values)
    assert rb.read_samples(BPF, 2) == values


def test_ring_flush_and_resize():
    rb = RingBuffer(32)
    rb.write(b"q" * 20)
    rb.inc_readp(4)
    rb.flush()
    assert (rb.readp, rb.writep, rb.used()) == (0, 0, 0)
    rb.resize(64)
    assert rb.size == 64 and len(rb.data) == 64 and rb.base_size == 32


# construction

def test_default_sample_rate():
    assert default_sample_rate([48000, 44100]) == 44100
    assert default_sample_rate([96000, 48000]) == 96000
    assert default_sample_rate([]) == 0


def test_init_aligns_buffer_and_states():
    out = Output("-", 10 * BPF + 3, [44100])
    assert out.buffer.size == 10 * BPF
    assert out.state == OutputState.STOPPED
    idle = Output("-", 10 * BPF, [44100], idle=5000)
    assert idle.state == OutputState.OFF
    assert idle.idle_to == 5000


def test_init_uses_test_open():
    out = Output("hw:0", 80, test_open=lambda dev: [96000, 48000])
    assert out.supported_rates == [96000, 48000]
    assert out.current_sample_rate == 96000


def test_init_failure_raises():
    with pytest.raises(OSError):
        Output("hw:0", 80)
    with pytest.raises(OSError):
        Output("hw:0", 80, test_open=lambda dev: None)


# output_frames

def test_stopped_plays_silence():
    out, rec = make_output()
    assert out.output_frames(5000) == MAX_SILENCE_FRAMES
    assert rec.calls[0][1] is True


def test_running_consumes_frames():
    out, rec = make_output()
    out.state = OutputState.RUNNING
    fill(out, 10)
    assert out.output_frames(4) == 4
    assert rec.calls[0][:2] == (4, False)
    assert out.frames_played == 4
    assert out.buffer.used() == 6 * BPF


def test_buffer_threshold_starts_playback():
    started = []
    out, rec = make_output(on_start=lambda: started.append(True))
    out.state = OutputState.BUFFER
    fill(out, 5)
    assert out.output_frames(100) == 5
    assert out.state == OutputState.RUNNING
    assert started == [True]


def test_track_start_switches_rate():
    out, rec = make_output()
    out.state = OutputState.RUNNING
    out.next_sample_rate = 48000
    out.track_start = out.buffer.readp
    fill(out, 4)
    assert out.output_frames(4) == 0
    assert out.current_sample_rate == 48000
    assert out.track_start is None and out.track_started
    assert out.output_frames(4) == 4


def test_track_start_with_rate_delay_pauses():
    out, rec = make_output(rate_delay=100)
    out.state = OutputState.RUNNING
    out.next_sample_rate = 48000
    out.track_start = out.buffer.readp
    fill(out, 4)
    out.output_frames(4)
    assert out.state == OutputState.PAUSE_FRAMES
    assert out.delay_active is True
    assert out.track_start == out.buffer.readp


def test_pause_frames():
    out, rec = make_output()
    out.state = OutputState.PAUSE_FRAMES
    out.pause_frames = 10
    assert out.output_frames(4) == 4
    assert rec.calls[0][1] is True
    assert out.pause_frames == 6


def test_skip_frames():
    out, rec = make_output()
    out.state = OutputState.SKIP_FRAMES
    out.skip_frames = 3
    fill(out, 5)
    out.output_frames(10)
    assert out.state == OutputState.RUNNING
    assert out.frames_played == 5
    assert out.buffer.used() == 0


def test_start_at():
    out, rec = make_output()
    out.state = OutputState.START_AT
    out.start_at = 1500
    out.output_frames(10)
    assert out.state == OutputState.START_AT and rec.calls[0][1] is True
    out.start_at = 900
    out.output_frames(10)
    assert out.state == OutputState.RUNNING


def test_write_refused_returns_zero():
    out, _ = make_output(write_cb=Recorder(accept=False))
    out.state = OutputState.RUNNING
    fill(out, 4)
    assert out.output_frames(4) == 0
    assert out.buffer.used() == 4 * BPF


def test_replay_gain_and_invert():
    out, rec = make_output()
    out.state = OutputState.RUNNING
    fill(out, 4)
    out.current_replay_gain = FIXED_ONE // 2
    out.output_frames(1)
    assert rec.calls[-1][2] == gain(FIXED_ONE, FIXED_ONE // 2)
    out.current_replay_gain = 0
    out.invert = True
    out.output_frames(1)
    assert rec.calls[-1][2:4] == (-FIXED_ONE, -FIXED_ONE)


def test_fade_in_starts_at_zero_gain():
    out, rec = make_output()
    out.next_sample_rate = out.current_sample_rate
    out.fade_mode = FadeMode.IN
    out.fade_secs = 1
    out.check_fade(True)
    out.state = OutputState.RUNNING
    fill(out, 10)
    out.output_frames(10)
    assert out.fade == FadeState.ACTIVE
    assert rec.calls[0][2] == 0


# check_fade

def test_check_fade_in_limits_to_buffer():
    out, _ = make_output()
    out.next_sample_rate = 44100
    out.fade_mode = FadeMode.IN
    out.fade_secs = 1
    out.check_fade(True)
    assert out.fade == FadeState.DUE and out.fade_dir == FadeDir.UP
    assert out.fade_start == out.buffer.writep
    assert (out.fade_end - out.fade_start) % out.buffer.size == out.buffer.size - BPF


def test_check_fade_out_limited_by_used():
    out, _ = make_output()
    fill(out, 10)
    out.next_sample_rate = 1000
    out.fade_mode = FadeMode.OUT
    out.fade_secs = 1
    out.check_fade(False)
    assert out.fade_dir == FadeDir.DOWN
    assert out.fade_end == out.buffer.writep
    assert out.fade_start == out.buffer.readp


def test_crossfade_resizes_empty_default_buffer():
    out = Output("-", OUTPUTBUF_SIZE, [44100])
    out.fade_mode = FadeMode.CROSSFADE
    out.check_fade(True)
    assert out.buffer.size == OUTPUTBUF_SIZE_CROSSFADE


def test_crossfade_disabled_on_rate_change():
    out, _ = make_output()
    fill(out, 10)
    out.fade_mode = FadeMode.CROSSFADE
    out.fade_secs = 1
    out.next_sample_rate = 48000
    out.check_fade(True)
    assert out.fade == FadeState.INACTIVE


def test_crossfade_sets_track_start():
    out, _ = make_output()
    fill(out, 10)
    out.fade_mode = FadeMode.CROSSFADE
    out.fade_secs = 1
    out.next_sample_rate = out.current_sample_rate
    out.check_fade(True)
    assert out.fade_dir == FadeDir.CROSS
    assert out.track_start == out.fade_start
    assert out.fade_end == out.buffer.writep


# flush

def test_flush_resets():
    out, _ = make_output()
    fill(out, 10)
    out.state = OutputState.RUNNING
    out.error_opening = True
    out.current_sample_rate = 48000
    out.frames_played = 7
    out.flush()
    assert out.state == OutputState.STOPPED
    assert out.current_sample_rate == out.default_sample_rate
    assert out.buffer.used() == 0 and out.frames_played == 0


def test_flush_keeps_off():
    out = Output("-", 80, [44100], idle=1)
    out.flush()
    assert out.state == OutputState.OFF


def test_flush_streaming():
    out, _ = make_output()
    fill(out, 10)
    out.track_start = 5 * BPF
    assert out.flush_streaming() is True
    assert out.buffer.writep == 5 * BPF
    assert out.track_start is None
    assert out.flush_streaming() is False