"""Threaded read / pitch-shift / write pipeline driven by keyboard commands."""

from __future__ import annotations

import enum
import sys
import threading
from collections.abc import Iterable, Iterator
from typing import Protocol, TextIO

import numpy as np

from pitchshifter.shifter import PitchShifter

SAMPLING_FREQ = 44100
BUFFER_SIZE = 128
RING_SIZE = 16
FFT_FRAME_SIZE = 1024
OVERSAMPLING = 32
MIN_SHIFT = 0.5
MAX_SHIFT = 2.0
SHIFT_STEP = 0.5


class SlotStatus(enum.Enum):
    """Where a ring-buffer slot is in its read, process, write cycle."""

    EMPTY = "empty"
    FILLED = "filled"
    PROCESSED = "processed"


class Mode(enum.Enum):
    """Operating mode selected from the keyboard."""

    PASS = enum.auto()
    SHIFT = enum.auto()


class AudioStream(Protocol):
    """Blocking audio stream used by :class:`AudioPipeline`."""

    def read(self, frames: int) -> Iterable[float]: ...

    def write(self, block: np.ndarray) -> None: ...


class _Slot:
    __slots__ = ("block", "status", "condition")

    def __init__(self, block_size: int) -> None:
        self.block = np.zeros(block_size)
        self.status = SlotStatus.EMPTY
        self.condition = threading.Condition()


class RingBuffer:
    """Fixed ring of audio blocks, each guarded by its own condition."""

    def __init__(self, size: int = RING_SIZE, block_size: int = BUFFER_SIZE) -> None:
        if size < 1:
            raise ValueError("ring size must be at least 1")
        if block_size < 1:
            raise ValueError("block size must be at least 1")
        self.size = size
        self.block_size = block_size
        self._slots = [_Slot(block_size) for _ in range(size)]

    def __len__(self) -> int:
        return self.size

    def status(self, index: int) -> SlotStatus:
        """Current status of the slot at ``index``."""
        slot = self._slots[index]
        with slot.condition:
            return slot.status

    def wait_for(
        self, index: int, status: SlotStatus, stop_event: threading.Event
    ) -> np.ndarray | None:
        """Block until slot ``index`` has ``status``; return a copy of its data.

        Returns ``None`` once ``stop_event`` is set.
        """
        slot = self._slots[index]
        with slot.condition:
            slot.condition.wait_for(
                lambda: slot.status is status or stop_event.is_set()
            )
            if stop_event.is_set():
                return None
            return slot.block.copy()

    def release(self, index: int, block: Iterable[float], status: SlotStatus) -> None:
        """Store ``block`` in slot ``index``, set its status and wake a waiter."""
        data = np.asarray(block, dtype=np.float64)
        if data.shape != (self.block_size,):
            raise ValueError(
                f"block must hold exactly {self.block_size} samples, got shape {data.shape}"
            )
        slot = self._slots[index]
        with slot.condition:
            slot.block[:] = data
            slot.status = status
            slot.condition.notify()

    def wake_all(self) -> None:
        """Wake every thread waiting on any slot."""
        for slot in self._slots:
            with slot.condition:
                slot.condition.notify_all()


class ShiftController:
    """Keyboard state machine holding the mode and the shared shift factor."""

    def __init__(self, out: TextIO | None = None) -> None:
        self.out = out if out is not None else sys.stdout
        self.mode = Mode.PASS
        self._shift = 1.0
        self._lock = threading.Lock()

    def _say(self, message: str) -> None:
        print(message, file=self.out, flush=True)

    def _enter(self, mode: Mode) -> None:
        self.mode = mode
        if mode is Mode.PASS:
            self._say("Now in Passthrough Mode")
        else:
            self._say("Now in Pitch Shift Mode")

    def handle_key(self, key: str) -> bool:
        """Apply one key press. Returns ``False`` when the user asked to quit."""
        if key == "q":
            return False
        if self.mode is Mode.PASS:
            if key == "s":
                self._enter(Mode.SHIFT)
            return True

        if key == "p":
            self._enter(Mode.PASS)
            with self._lock:
                self._shift = 1.0
        elif key == "u":
            with self._lock:
                if self._shift < MAX_SHIFT:
                    self._shift += SHIFT_STEP
                    self._say(f"SHIFT_AMOUNT now: {self._shift:g}")
                else:
                    self._say("Pitch shift limit reached")
        elif key == "d":
            with self._lock:
                if self._shift > MIN_SHIFT:
                    self._shift -= SHIFT_STEP
                    self._say(f"SHIFT_AMOUNT now: {self._shift:g}")
                else:
                    self._say("Pitch shift limit reached")
        return True

    def current_shift(self) -> float:
        """The shift factor, read under the lock."""
        with self._lock:
            return self._shift


def _stdin_keys() -> Iterator[str]:
    return iter(lambda: sys.stdin.read(1), "")


class AudioPipeline:
    """Reader, processor, writer and keyboard threads sharing a ring buffer."""

    def __init__(
        self,
        stream: AudioStream,
        controller: ShiftController | None = None,
        shifter: PitchShifter | None = None,
        ring_size: int = RING_SIZE,
        block_size: int = BUFFER_SIZE,
    ) -> None:
        self.stream = stream
        self.controller = controller if controller is not None else ShiftController()
        self.shifter = (
            shifter
            if shifter is not None
            else PitchShifter(FFT_FRAME_SIZE, OVERSAMPLING, SAMPLING_FREQ)
        )
        self.ring = RingBuffer(ring_size, block_size)
        self.block_size = block_size
        self._stop = threading.Event()
        self._error: BaseException | None = None
        self._error_lock = threading.Lock()

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def _slots(self) -> Iterator[int]:
        index = 0
        while not self._stop.is_set():
            yield index
            index = (index + 1) % self.ring.size

    def read_stream(self) -> None:
        """Fill empty slots with blocks read from the stream."""
        for index in self._slots():
            if self.ring.wait_for(index, SlotStatus.EMPTY, self._stop) is None:
                break
            block = self.stream.read(self.block_size)
            self.ring.release(index, block, SlotStatus.FILLED)

    def process_blocks(self) -> None:
        """Pitch-shift filled slots with the controller's current factor."""
        for index in self._slots():
            block = self.ring.wait_for(index, SlotStatus.FILLED, self._stop)
            if block is None:
                break
            shifted = self.shifter.process(block, self.controller.current_shift())
            self.ring.release(index, shifted, SlotStatus.PROCESSED)

    def write_blocks(self) -> None:
        """Write processed slots to the stream and mark them empty."""
        for index in self._slots():
            block = self.ring.wait_for(index, SlotStatus.PROCESSED, self._stop)
            if block is None:
                break
            self.stream.write(block)
            self.ring.release(index, block, SlotStatus.EMPTY)

    def read_user_input(self, keys: Iterable[str] | None = None) -> None:
        """Feed key presses to the controller until quit or end of input."""
        source = _stdin_keys() if keys is None else keys
        for key in source:
            if self._stop.is_set():
                return
            if not self.controller.handle_key(key):
                break
        self.stop()

    def stop(self) -> None:
        """Ask every thread to finish and wake those that are waiting."""
        self._stop.set()
        self.ring.wake_all()

    def _guarded(self, target, *args) -> None:
        try:
            target(*args)
        except BaseException as exc:  # re-raised from run()
            with self._error_lock:
                if self._error is None:
                    self._error = exc
            self.stop()

    def run(self, keys: Iterable[str] | None = None) -> None:
        """Run all threads until the user quits; re-raise a worker's error."""
        say = self.controller._say
        say("Program Started in Passthrough mode")
        say("\t * Enter 'p' for Passthrough mode and 's' for Pitch Shift mode")
        say("\t * In Pitch Shift mode, enter 'u' or 'd' to increase/decrease the shifted pitch")
        say("\t * Enter 'q' at any time to quit the program")

        workers = [
            threading.Thread(target=self._guarded, args=(self.read_stream,), name="reader"),
            threading.Thread(target=self._guarded, args=(self.process_blocks,), name="processor"),
            threading.Thread(target=self._guarded, args=(self.write_blocks,), name="writer"),
        ]
        user = threading.Thread(
            target=self._guarded, args=(self.read_user_input, keys), name="input", daemon=True
        )
        for thread in workers:
            thread.start()
        user.start()
        for thread in workers:
            thread.join()
        if self._error is not None:
            raise self._error
        user.join()
        if self._error is not None:
            raise self._error
        say("Program End")