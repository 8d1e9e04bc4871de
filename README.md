# pitchshifter

Pitch shifting that keeps a signal's duration, done with a Short Time
Fourier Transform phase vocoder, plus a small threaded pipeline for
shifting audio block by block.

Requires Python 3.10 or later and numpy.

## Pitch shifting

`pitchshifter.shifter.PitchShifter` holds the state of the vocoder (input
and output FIFOs, phase accumulators, overlap-add buffer), so successive
calls to `process` continue the same stream seamlessly, whatever the block
sizes.

```python
import numpy as np
from pitchshifter.shifter import PitchShifter

shifter = PitchShifter(fft_frame_size=1024, osamp=32, sample_rate=44100)

t = np.arange(44100) / 44100
tone = 0.5 * np.sin(2 * np.pi * 440 * t)

# One octave up; 0.5 is an octave down, 1.0 leaves the pitch alone.
shifted = shifter.process(tone, 2.0)

shifter.reset()  # start a fresh stream
```

`process(samples, pitch_shift)` takes a one-dimensional sequence or array
and returns a float64 array of the same length.

Notes:

- `fft_frame_size` must be a power of two, at least 2 and no larger than
  8192 (`MAX_FRAME_LENGTH`). Typical values are 1024, 2048 and 4096.
- `osamp` is the STFT oversampling factor and sets the overlap between
  frames; it must lie between 1 and `fft_frame_size`. Use at least 4;
  32 gives the best quality.
- `sample_rate` and `pitch_shift` must be positive.
- Invalid arguments raise `ValueError`.
- Samples are expected in the range [-1.0, 1.0); output is in the same
  range. Scale integer PCM accordingly (divide 16-bit data by 32768).
- The output is delayed by `latency = fft_frame_size - step_size` samples,
  where `step_size = fft_frame_size // osamp`; both are attributes of the
  shifter.

For a one-off call there is `pitch_shift(shift, samples, fft_frame_size,
osamp, sample_rate)`, which runs a fresh `PitchShifter` over the samples.

The module also provides:

- `fft(buffer, sign)`: an unnormalised complex FFT of a one-dimensional,
  power-of-two length buffer. `sign=-1` is the forward transform, `sign=1`
  the inverse without the 1/N scaling. It returns a new complex array.
- `smb_atan2(x, y)`: `math.atan2(x, y)` that returns 0 when `x` is zero and
  ±π/2 when `y` is zero, instead of relying on the library's handling of
  those cases.

## Block pipeline

`pitchshifter.pipeline` moves audio through a ring buffer of blocks with
worker threads: one reads blocks from a stream, one pitch-shifts them, one
writes them back. Each slot of the `RingBuffer` goes
`SlotStatus.EMPTY` → `FILLED` → `PROCESSED` → `EMPTY`.

`RingBuffer(size, block_size)` (defaults 16 and 128) offers
`wait_for(index, status, stop_event)`, which blocks until the slot has that
status and returns a copy of its block, or `None` once the event is set;
`release(index, block, status)`, which stores a block of exactly
`block_size` samples, sets the status and wakes a waiter; `status(index)`;
and `wake_all()`.

`ShiftController(out)` turns key presses into a mode (`Mode.PASS` or
`Mode.SHIFT`) and a shift amount, printing its messages to `out`
(standard output by default):

| key | in passthrough mode        | in pitch shift mode                     |
|-----|----------------------------|-----------------------------------------|
| `s` | switch to pitch shift mode |                                         |
| `p` |                            | back to passthrough, shift reset to 1.0 |
| `u` |                            | raise the shift by 0.5, up to 2.0       |
| `d` |                            | lower the shift by 0.5, down to 0.5     |
| `q` | quit                       | quit                                    |

`handle_key(key)` returns `False` for `q` and `True` otherwise;
`current_shift()` reads the shift amount under a lock.

`AudioPipeline(stream, controller, shifter, ring_size, block_size)` ties
these together. By default it makes a new `ShiftController` and a
`PitchShifter(1024, 32, 44100)`. The stream is any object with
`read(frames)`, returning `frames` float samples, and `write(block)`,
taking a numpy array.

`run(keys)` prints a short banner, starts the reader, processor, writer
and user-input threads, feeds the controller from `keys` (or from standard
input, one character at a time, when `keys` is `None`), and returns after
`q` or the end of the keys once the workers have stopped. An exception
raised in any thread stops the pipeline and is raised again from `run`.
`stop()` ends the pipeline from elsewhere, and the `stopped` property tells
whether it has been asked to stop. The thread bodies are also available
as `read_stream()`, `process_blocks()`, `write_blocks()` and
`read_user_input(keys)`.

```python
import numpy as np
from pitchshifter.pipeline import AudioPipeline


class ToneStream:
    def read(self, frames):
        return np.zeros(frames)

    def write(self, block):
        pass


AudioPipeline(ToneStream()).run(iter("suuq"))
```

## What it does not do

The package does not open sound devices and has no command-line program.
To shift live audio, pass `AudioPipeline` a stream object wrapping an
audio device from some other library.