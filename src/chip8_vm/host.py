"""Emulator: Host scheduler driving a Chip8 machine.

The machine itself has no notion of time. The host owns three clocks:
the instruction clock (adjustable, 600 Hz by default), the 60 Hz timer
clock and the 60 Hz display refresh. Elapsed wall time is fed in through
advance(), which keeps per-clock accumulators of time not yet used up and
discharges them in whole periods, so any number of steps or timer ticks
may run per call to catch up.

The host is headless: rendering and audio are callbacks, so it can be
driven by a real-time loop, a GUI, or a test with a fake clock.
"""

import logging
import time
from pathlib import Path
from typing import Callable, Dict, Iterable, Optional, Union

from .cpu import Chip8
from .loader import DEFAULT_ROM, read_rom, validate_program
from .state import ADDRESS_MASK

logger = logging.getLogger(__name__)


# Clock frequency range, in Hz
CLOCK_FREQ_MIN = 1.0
CLOCK_FREQ_DEFAULT = 600.0
CLOCK_FREQ_MAX = 1000.0

TIMER_FREQ = 60.0
REFRESH_FREQ = 60.0

NS_PER_SECOND = 1_000_000_000

# Hexpad key -> host keyboard character
#   1 2 3 C      1 2 3 4
#   4 5 6 D  ->  q w e r
#   7 8 9 E      a s d f
#   A 0 B F      z x c v
KEYMAP: Dict[int, str] = {
    0x0: "x", 0x1: "1", 0x2: "2", 0x3: "3",
    0x4: "q", 0x5: "w", 0x6: "e", 0x7: "a",
    0x8: "s", 0x9: "d", 0xA: "z", 0xB: "c",
    0xC: "4", 0xD: "r", 0xE: "f", 0xF: "v",
}


def calculate_period(freq: float) -> int:
    """Period in nanoseconds of a clock running at ``freq`` Hz."""
    return int(NS_PER_SECOND / freq)


def clamp_frequency(value: float) -> float:
    return max(CLOCK_FREQ_MIN, min(CLOCK_FREQ_MAX, value))


class Emulator:
    """Host loop state around a Chip8 machine.

    Attributes:
        machine: The emulated machine
        clock_freq: Instruction clock frequency in Hz
        clock_period, timer_period, refresh_period: Clock periods in ns
        paused: Whether instruction and timer clocks are stopped
        audio_enabled: Whether buzz signals are forwarded
        mem_cursor: Address highlighted by the memory panel; follows PC
            while running and can be moved while paused
        on_refresh: Called with the machine once per display refresh
        on_buzz: Called with True/False once per timer tick
    """

    def __init__(
        self,
        machine: Optional[Chip8] = None,
        clock_freq: float = CLOCK_FREQ_DEFAULT,
        on_refresh: Optional[Callable[[Chip8], None]] = None,
        on_buzz: Optional[Callable[[bool], None]] = None,
    ):
        self.machine = machine if machine is not None else Chip8()
        self.on_refresh = on_refresh
        self.on_buzz = on_buzz

        self.timer_period = calculate_period(TIMER_FREQ)
        self.refresh_period = calculate_period(REFRESH_FREQ)
        self.set_frequency(clock_freq)

        self.paused = False
        self.audio_enabled = True
        self.mem_cursor = self.machine.get_pc()

        self._clock_acc = 0
        self._timer_acc = 0
        self._refresh_acc = 0

    # =========================================================================
    # Timing
    # =========================================================================

    def set_frequency(self, value: float) -> None:
        """Set the instruction clock, clamped to the supported range."""
        self.clock_freq = clamp_frequency(value)
        self.clock_period = calculate_period(self.clock_freq)

    def add_frequency(self, delta: float) -> None:
        self.set_frequency(self.clock_freq + delta)

    def reset_frequency(self) -> None:
        self.set_frequency(CLOCK_FREQ_DEFAULT)

    def advance(self, delta_ns: int) -> None:
        """Let ``delta_ns`` nanoseconds of emulated time pass.

        Raises:
            StackError: Propagated from the machine on a stack fault
        """
        if not self.paused:
            self._timer_acc += delta_ns
            while self._timer_acc >= self.timer_period:
                self._update_timers()
                self._timer_acc -= self.timer_period

            self._clock_acc += delta_ns
            while self._clock_acc >= self.clock_period:
                self.machine.step()
                self.mem_cursor = self.machine.get_pc()
                self._clock_acc -= self.clock_period

        # The screen does not change between refreshes, so only one is due
        # however far behind the accumulator is
        self._refresh_acc += delta_ns
        if self._refresh_acc >= self.refresh_period:
            if self.on_refresh is not None:
                self.on_refresh(self.machine)
            self._refresh_acc = 0

    def run_for(self, seconds: float, frame_ns: Optional[int] = None) -> None:
        """Advance emulated time in fixed slices.

        Args:
            seconds: Total emulated time
            frame_ns: Slice length, one refresh period by default
        """
        frame_ns = frame_ns or self.refresh_period
        remaining = int(seconds * NS_PER_SECOND)
        while remaining > 0:
            delta = min(frame_ns, remaining)
            self.advance(delta)
            remaining -= delta

    def run_realtime(self, seconds: float) -> None:
        """Advance in step with the wall clock for ``seconds``."""
        start = last = time.perf_counter_ns()
        deadline = start + int(seconds * NS_PER_SECOND)
        while last < deadline:
            time.sleep(self.refresh_period / NS_PER_SECOND / 4)
            now = time.perf_counter_ns()
            self.advance(now - last)
            last = now

    def _update_timers(self) -> None:
        self.machine.tick_timers()
        if self.on_buzz is not None:
            self.on_buzz(self.audio_enabled and self.machine.should_buzz)

    # =========================================================================
    # Controls
    # =========================================================================

    def toggle_pause(self) -> None:
        self.paused = not self.paused
        logger.debug("Paused" if self.paused else "Resumed")

    def toggle_audio(self) -> None:
        self.audio_enabled = not self.audio_enabled

    def restart(self) -> None:
        """Restart the current program and unpause."""
        self.machine.restart()
        self.paused = False
        self.mem_cursor = self.machine.get_pc()

    def load_program(self, data: bytes) -> None:
        """Load a program into a blank machine and unpause.

        Raises:
            RomError: If the program is empty or too large
        """
        program = validate_program(data)
        self.machine.full_reset()
        self.machine.load_program(program)
        self.paused = False
        self.mem_cursor = self.machine.get_pc()

    def load_rom(self, path: Union[str, Path]) -> None:
        """Load a .ch8 ROM file.

        Raises:
            RomError: If the file is rejected; the running program is kept
        """
        self.load_program(read_rom(path))
        logger.info("Loaded ROM %s", path)

    def load_default_rom(self) -> None:
        self.load_program(DEFAULT_ROM)

    def set_memory_cursor(self, address: int) -> None:
        """Point the memory panel at ``address``, clamped to memory."""
        self.mem_cursor = max(0, min(ADDRESS_MASK, address))

    def move_cursor(self, delta: int) -> bool:
        """Move the memory cursor by ``delta`` bytes.

        Only allowed while paused, since a running machine moves the cursor
        to PC on every step.

        Returns:
            Whether the cursor was moved
        """
        if not self.paused:
            return False
        self.set_memory_cursor(self.mem_cursor + delta)
        return True

    # =========================================================================
    # Input
    # =========================================================================

    def update_keys(self, pressed: Iterable[str]) -> None:
        """Report the full keyboard state, as host characters held down.

        Every hexpad key is updated, in key order, so while the machine is
        awaiting a key the lowest held key is delivered.
        """
        held = {char.lower() for char in pressed}
        for index, char in KEYMAP.items():
            self.machine.set_key(index, char in held)

    def press(self, index: int) -> None:
        self.machine.set_key(index, True)

    def release(self, index: int) -> None:
        self.machine.set_key(index, False)
