# slimplayer

The core of a lightweight headless network music player: the output side
that turns decoded audio into bytes for a device or a pipe, and the parsing
of the player's command-line options. It has no dependencies outside the
standard library.

All audio inside the player is held as interleaved stereo frames of signed
32-bit samples (a flat list: left, right, left, right, ...). Gains are
16.16 fixed-point values, so `0x10000` is unity.

## Modules

### `slimplayer.pack`

- `gain(gain, sample)` multiplies a sample by a fixed-point gain, clamping
  the product before shifting it back to 32 bits.
- `to_gain(f)` converts a float factor to 16.16 fixed point.
- `apply_gain(samples, gain_l, gain_r, flags)` applies per-channel gain and
  mono mixing (`MONO_LEFT`, `MONO_RIGHT`, or both to average the channels)
  and returns a new list.
- `apply_cross(samples, cross_samples, cross_gain_in, cross_gain_out)` mixes
  outgoing and incoming samples for a crossfade; it raises `ValueError` if
  there are fewer incoming samples than outgoing ones.
- `scale_and_pack_frames(samples, gain_l, gain_r, flags, fmt)` applies mono
  mixing and gain and packs the frames into bytes of an `OutputFormat`:
  `S32_LE`, `S24_LE` (24 bits in four bytes), `S24_3LE` (packed three
  bytes), `S16_LE`, and the unscaled DSD layouts `U8`, `U16_LE`, `U16_BE`,
  `U32_LE`, `U32_BE`. Gain is applied to the PCM formats only.

Sample lists of odd length raise `ValueError`.

### `slimplayer.output`

- `RingBuffer` is a circular byte buffer with read and write positions
  (`used`, `space`, `cont_read`, `cont_write`, `inc_readp`, `inc_writep`,
  `write`, `flush`, `resize`). One byte is always kept free; `write` raises
  `ValueError` when the data does not fit.
- `Output` holds the playback state (`OutputState`, `FadeState`, `FadeDir`,
  `FadeMode`) and feeds frames to a write callback:
  - `output_frames(avail)` handles the start threshold, skipping and pausing
    frames, delayed starts, track boundaries (with a silent pause in two
    halves when the sample rate changes and `rate_delay` is set) and fades.
  - `check_fade(start)` sets up a fade in, fade out, fade in-out or
    crossfade at a track start or end.
  - `flush()` empties the buffer and stops; `flush_streaming()` drops the
    not yet started next track and reports whether there was one.
  Without a `write_cb` every frame offered is accepted and dropped. For a
  device other than `-`, and without `user_rates`, the `test_open` callable
  must return the supported rates, otherwise `OSError` is raised.
- `default_sample_rate(rates)` returns 44100 if it is supported, otherwise
  the first rate.

### `slimplayer.stdout_output`

`StdoutOutput` writes packed frames to a binary stream, by default standard
output. Its `params` choose the format: `"32"`, `"24"` (packed three bytes)
or `"16"`. `run_once()` processes one block and returns the frames written;
`start()` and `close()` run and stop a background thread, and the object is
also a context manager. `bytes_per_frame(fmt)` gives a frame's size in the
stream.

### `slimplayer.options`

`parse_args(argv)` takes the arguments without the program name and returns
an `Options` dataclass, raising `OptionError` on bad input. `-l`, `-t` and
`-?` stop parsing and set `action` to `"list"`, `"license"` or `"help"`.
Helpers: `parse_rates`, `parse_mac`, `parse_debug` and `output_buffer_size`.

Rate options follow these rules: a single number is the maximum rate,
`min-max` selects the standard rates in that range, and a comma-separated
list is used sorted highest first. An optional `:delay` sets the pause in
milliseconds when the rate changes between tracks.

### `slimplayer.cli`

`usage(prog)`, `codecs_list()` and `license_text()` return the help text,
the known codec names and the terms notice as strings.

## Example

```python
from slimplayer.pack import OutputFormat, gain, scale_and_pack_frames, to_gain

half = to_gain(0.5)
print(gain(half, 1 << 20))            # 524288

samples = [1 << 24, -(1 << 24), 0, 0]  # two stereo frames
data = scale_and_pack_frames(samples, 0x10000, 0x10000, 0, OutputFormat.S16_LE)
print(len(data))                      # 8
```

```python
from slimplayer.options import output_buffer_size, parse_args

options = parse_args(["-o", "-", "-a", "16", "-r", "44100-96000"])
print(options.rates, output_buffer_size(options))
```

## What the package does not do

The package has no server connection or control protocol, no stream
fetching, no decoders and no drivers for sound devices; the only output
it provides writes to a stream. It installs no command: the option parser
and help texts are there to be used by a program built on top of it.

## Tests

The test suite uses pytest and lives in `tests/`.