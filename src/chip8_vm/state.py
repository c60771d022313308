"""MachineState: Mutable machine state for the CHIP-8 virtual machine.

This module defines the single aggregate that holds everything the
virtual machine knows about itself, together with its lifecycle
operations (restart, program clearing, loading) and the external
inputs that do not go through instruction execution (keys, timers).

State Components:
    - Registers: V0-VF (16 general-purpose 8-bit values, VF doubles as flag)
    - I: 16-bit address register
    - PC: Program counter, SP + 16-entry return stack
    - Memory: 4096 bytes, font at 0x000, program from 0x200
    - Timers: delay and sound, decremented at 60 Hz
    - Video: 32 rows of 64-bit integers, MSB is column 0
    - Keys: 16 hexpad key flags, plus the key-wait register

The state is owned by exactly one caller and mutated in place.
"""

import enum
import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Tuple

logger = logging.getLogger(__name__)


MEMORY_SIZE = 4096
ADDRESS_MASK = MEMORY_SIZE - 1
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START

NUM_REGISTERS = 16
FLAG_REGISTER = 0xF
STACK_SIZE = 16
NUM_KEYS = 16

VIDEO_WIDTH = 64
VIDEO_HEIGHT = 32
ROW_MASK = (1 << VIDEO_WIDTH) - 1

# Register index stored in key_register while no key is awaited
NO_KEY = 0xFF

FONT_START = 0x000
FONT_GLYPH_SIZE = 5
FONT = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])


class StackPolicy(enum.Enum):
    """What happens when the return stack over- or underflows.

    STRICT raises a StackError and leaves the stack untouched.
    WRAP treats the stack as a ring of STACK_SIZE slots.
    """
    STRICT = "strict"
    WRAP = "wrap"


class StackError(RuntimeError):
    """Base class for return stack faults."""


class StackOverflowError(StackError):
    """CALL with all stack slots in use."""


class StackUnderflowError(StackError):
    """RET with an empty stack."""


@dataclass
class MachineState:
    """Mutable CHIP-8 machine state.

    Attributes:
        registers: V0-VF, each 0-255
        i: Address register (16 bits wide, memory access wraps at 4K)
        pc: Program counter, always a valid memory address
        sp: Stack pointer, number of return addresses on the stack
        stack: Return address slots
        stack_depth: Live return addresses, at most STACK_SIZE; differs from sp
            only under WRAP, where sp is a ring index
        memory: 4096 bytes of RAM
        delay_timer: Delay timer, 0-255
        sound_timer: Sound timer, 0-255
        video: Framebuffer rows, bit 63 is the leftmost pixel
        keys: Pressed state of each hexpad key
        key_register: Register awaiting a key press, or NO_KEY
        cycle_count: Instructions executed since the last restart
        stack_policy: Over/underflow handling for push and pop
    """
    registers: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)
    i: int = 0
    pc: int = PROGRAM_START
    sp: int = 0
    stack: List[int] = field(default_factory=lambda: [0] * STACK_SIZE)
    stack_depth: int = 0
    memory: bytearray = field(default_factory=lambda: bytearray(MEMORY_SIZE))
    delay_timer: int = 0
    sound_timer: int = 0
    video: List[int] = field(default_factory=lambda: [0] * VIDEO_HEIGHT)
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    key_register: int = NO_KEY
    cycle_count: int = 0
    stack_policy: StackPolicy = StackPolicy.STRICT

    @classmethod
    def create(cls, stack_policy: StackPolicy = StackPolicy.STRICT) -> "MachineState":
        """Create a zeroed machine with the font installed."""
        state = cls(stack_policy=stack_policy)
        state.initialize()
        return state

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> None:
        """Zero all memory, install the font and restart."""
        self.memory[:] = bytes(MEMORY_SIZE)
        self.memory[FONT_START:FONT_START + len(FONT)] = FONT
        self.keys = [False] * NUM_KEYS
        self.restart()

    def restart(self) -> None:
        """Reset registers, stack, timers and video; keep program memory."""
        self.registers = [0] * NUM_REGISTERS
        self.stack = [0] * STACK_SIZE
        self.sp = 0
        self.stack_depth = 0
        self.i = 0
        self.pc = PROGRAM_START
        self.delay_timer = 0
        self.sound_timer = 0
        self.clear_video()
        self.key_register = NO_KEY
        self.cycle_count = 0

    def clear_program(self) -> None:
        """Zero everything above the reserved region, preserving the font."""
        self.memory[PROGRAM_START:] = bytes(MAX_PROGRAM_SIZE)

    def full_reset(self) -> None:
        self.restart()
        self.clear_program()

    def load_program(self, data: bytes) -> None:
        """Copy program bytes to PROGRAM_START.

        Raises:
            ValueError: If the program does not fit in program memory
        """
        if len(data) > MAX_PROGRAM_SIZE:
            raise ValueError(
                f"Program is {len(data)} bytes, at most {MAX_PROGRAM_SIZE} fit"
            )
        self.memory[PROGRAM_START:PROGRAM_START + len(data)] = bytes(data)
        logger.debug("Loaded %d program bytes at 0x%03X", len(data), PROGRAM_START)

    def clear_video(self) -> None:
        self.video = [0] * VIDEO_HEIGHT

    # =========================================================================
    # External inputs
    # =========================================================================

    def set_key(self, index: int, pressed: bool) -> None:
        """Record a key transition, completing a pending key wait on press.

        Args:
            index: Hexpad key, 0x0-0xF
            pressed: New key state

        Raises:
            ValueError: If index is not a hexpad key
        """
        if not 0 <= index < NUM_KEYS:
            raise ValueError(f"Invalid key: {index}")

        self.keys[index] = bool(pressed)

        if pressed and self.awaiting_key:
            logger.debug("Key %X delivered to V%X", index, self.key_register)
            self.registers[self.key_register] = index
            self.key_register = NO_KEY

    def tick_timers(self) -> None:
        if self.delay_timer > 0:
            self.delay_timer -= 1
        if self.sound_timer > 0:
            self.sound_timer -= 1

    @property
    def awaiting_key(self) -> bool:
        return self.key_register < NUM_REGISTERS

    @property
    def should_buzz(self) -> bool:
        return self.sound_timer > 0

    # =========================================================================
    # Memory and stack access
    # =========================================================================

    def read_byte(self, address: int) -> int:
        return self.memory[address & ADDRESS_MASK]

    def write_byte(self, address: int, value: int) -> None:
        self.memory[address & ADDRESS_MASK] = value & 0xFF

    def read_word(self, address: int) -> int:
        """Read a big-endian 16-bit word."""
        return (self.read_byte(address) << 8) | self.read_byte(address + 1)

    def set_pc(self, address: int) -> None:
        self.pc = address & ADDRESS_MASK

    def push(self, address: int) -> None:
        """Push a return address.

        Raises:
            StackOverflowError: If the stack is full under STRICT policy
        """
        if self.stack_policy is StackPolicy.WRAP:
            self.stack[self.sp % STACK_SIZE] = address
            self.sp = (self.sp + 1) % STACK_SIZE
            self.stack_depth = min(self.stack_depth + 1, STACK_SIZE)
            return

        if self.sp >= STACK_SIZE:
            raise StackOverflowError(
                f"Call stack overflow at depth {self.sp} (PC=0x{self.pc:03X})"
            )
        self.stack[self.sp] = address
        self.sp += 1
        self.stack_depth = self.sp

    def pop(self) -> int:
        """Pop a return address.

        Raises:
            StackUnderflowError: If the stack is empty under STRICT policy
        """
        if self.stack_policy is StackPolicy.WRAP:
            self.sp = (self.sp - 1) % STACK_SIZE
            self.stack_depth = max(self.stack_depth - 1, 0)
            return self.stack[self.sp]

        if self.sp <= 0:
            raise StackUnderflowError(f"Return with empty stack (PC=0x{self.pc:03X})")
        self.sp -= 1
        self.stack_depth = self.sp
        return self.stack[self.sp]

    # =========================================================================
    # Inspection
    # =========================================================================

    def live_stack(self) -> List[int]:
        """Return addresses still on the stack, oldest first.

        Under WRAP the ring is read backwards from sp, so 16 nested calls
        still show all 16 addresses although sp is back at 0.
        """
        start = self.sp - self.stack_depth
        return [self.stack[(start + k) % STACK_SIZE] for k in range(self.stack_depth)]

    def snapshot(self) -> dict:
        """Create a copied snapshot of the CPU registers for tracing.

        Returns:
            Dictionary of register, counter and timer values
        """
        return {
            "registers": list(self.registers),
            "i": self.i,
            "pc": self.pc,
            "sp": self.sp,
            "stack": self.live_stack(),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "key_register": self.key_register,
            "cycle_count": self.cycle_count,
            # Note: memory and video excluded, see video_snapshot()
        }

    def video_snapshot(self) -> Tuple[int, ...]:
        """Copy of the framebuffer, safe to hand to a renderer."""
        return tuple(self.video)

    def dump_registers(self) -> Dict[str, int]:
        return {f"V{index:X}": value for index, value in enumerate(self.registers)}

    def validate(self) -> bool:
        """Check the state invariants.

        Checks:
            - Register file, stack and video have their fixed sizes
            - Registers and timers are bytes
            - PC is a memory address, I fits 16 bits, SP is within the stack
            - key_register is NO_KEY or a register index

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.registers) != NUM_REGISTERS or len(self.stack) != STACK_SIZE:
            return False
        if len(self.memory) != MEMORY_SIZE or len(self.video) != VIDEO_HEIGHT:
            return False
        if len(self.keys) != NUM_KEYS:
            return False

        if not _all_in_range(self.registers, 0xFF):
            return False
        if not _all_in_range((self.delay_timer, self.sound_timer), 0xFF):
            return False
        if not _all_in_range(self.video, ROW_MASK):
            return False

        if not 0 <= self.pc <= ADDRESS_MASK:
            return False
        if not 0 <= self.i <= 0xFFFF:
            return False
        if not 0 <= self.sp <= STACK_SIZE:
            return False
        if not 0 <= self.stack_depth <= STACK_SIZE:
            return False

        return self.key_register == NO_KEY or 0 <= self.key_register < NUM_REGISTERS

    def __str__(self) -> str:
        regs = " ".join(f"V{k:X}={v:02X}" for k, v in enumerate(self.registers))
        waiting = f" WAIT V{self.key_register:X}" if self.awaiting_key else ""
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.i:03X} SP={self.sp} "
            f"DT={self.delay_timer} ST={self.sound_timer} {regs}{waiting}"
        )


def _all_in_range(values: Iterable[int], upper: int) -> bool:
    return all(isinstance(v, int) and 0 <= v <= upper for v in values)


def create_initial_state(
    program: bytes = b"",
    stack_policy: StackPolicy = StackPolicy.STRICT,
) -> MachineState:
    """Create a fresh machine with a program loaded.

    Args:
        program: Raw program bytes placed at PROGRAM_START
        stack_policy: Over/underflow handling

    Returns:
        Initialized MachineState ready to step
    """
    state = MachineState.create(stack_policy)
    state.load_program(program)
    return state
