"""CHIP8-VM: A CHIP-8 virtual machine with a registry-dispatched core.

This package implements the CHIP-8 byte-code interpreter: 16 8-bit
registers, 4 KB of memory, a 64x32 monochrome framebuffer, a 16-level
call stack, two 60 Hz countdown timers and a 16-key hexpad.

Pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE
               |          |        |        |           |
           [PC-based] [bit masks] [Opcode] [Handlers] [Mutable aggregate]

Modules:
    state: MachineState dataclass, lifecycle, keys and timers
    decode: Bit-pattern instruction decoder and disassembler
    registry: Instruction semantics (one handler per opcode)
    cpu: Chip8 fetch-decode-dispatch orchestrator
    loader: ROM reading and validation, built-in demo ROM
    host: Emulator host loop with instruction, timer and refresh clocks
    display: Text rendering of framebuffer, registers and memory
"""

__version__ = "0.1.0"

from .state import MachineState, StackPolicy, StackError, StackOverflowError, StackUnderflowError
from .decode import Instruction, Opcode, decode, disassemble
from .registry import InstructionRegistry
from .cpu import Chip8, ExecutionTraceEntry
from .loader import DEFAULT_ROM, RomError, read_rom
from .host import Emulator

__all__ = [
    "MachineState", "StackPolicy", "StackError", "StackOverflowError", "StackUnderflowError",
    "Instruction", "Opcode", "decode", "disassemble",
    "InstructionRegistry",
    "Chip8", "ExecutionTraceEntry",
    "DEFAULT_ROM", "RomError", "read_rom",
    "Emulator",
]
