"""Chip8: Fetch-decode-dispatch orchestrator for the CHIP-8 machine.

This module implements the execution pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> STATE

The machine has two execution states. It is Running after any reset and
enters AwaitingKey when an FX0A instruction executes; while awaiting,
step() is a no-op. A key press delivered through set_key() stores the key
and returns the machine to Running. Timers and key updates are accepted
in both states.
"""

import logging
import random
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List, Optional, Tuple

from .decode import Instruction, decode
from .registry import InstructionRegistry
from .state import MachineState, StackError, StackPolicy

logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed since the last restart)
        address: Address the instruction was fetched from
        instruction: Decoded instruction
        pre_state: State snapshot before execution
        post_state: State snapshot after execution
    """
    cycle: int
    address: int
    instruction: Instruction
    pre_state: dict
    post_state: dict

    @property
    def key(self) -> str:
        return self.instruction.opcode.value


class Chip8:
    """CHIP-8 virtual machine.

    Owns one MachineState and drives it one instruction at a time. The
    caller supplies time: step() at the instruction clock rate and
    tick_timers() at 60 Hz, with key edges from set_key() in between.

    Attributes:
        state: Current machine state
        registry: InstructionRegistry with the instruction semantics
        trace: Most recent execution trace entries
        trace_limit: Maximum number of retained trace entries (0 disables)
    """

    DEFAULT_TRACE_LIMIT = 256

    def __init__(
        self,
        seed: Optional[int] = None,
        stack_policy: StackPolicy = StackPolicy.STRICT,
        trace_limit: int = DEFAULT_TRACE_LIMIT,
    ):
        """Initialize a zeroed machine with the font installed.

        Args:
            seed: Seed for the OP_RND random source
            stack_policy: Call stack over/underflow handling
            trace_limit: Number of trace entries to keep (0 disables tracing)
        """
        self.state = MachineState.create(stack_policy)
        self.registry = InstructionRegistry(random.Random(seed))
        self.trace_limit = trace_limit
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=max(trace_limit, 0))

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def load_program(self, data: bytes) -> None:
        """Copy program bytes into memory at 0x200.

        Raises:
            ValueError: If the program does not fit
        """
        self.state.load_program(data)

    def restart(self) -> None:
        """Restart the loaded program."""
        self.state.restart()
        self.trace.clear()
        logger.debug("Machine restarted")

    def clear_program(self) -> None:
        self.state.clear_program()

    def full_reset(self) -> None:
        """Restart and erase program memory."""
        self.state.full_reset()
        self.trace.clear()
        logger.debug("Machine reset")

    # =========================================================================
    # Execution
    # =========================================================================

    def step(self) -> Optional[ExecutionTraceEntry]:
        """Execute a single instruction.

        Performs: FETCH -> DECODE -> EXECUTE

        Returns:
            ExecutionTraceEntry for the executed instruction, or None if the
            machine is awaiting a key and nothing ran

        Raises:
            StackError: On call stack over/underflow under STRICT policy; the
                PC is left pointing at the faulting instruction
        """
        state = self.state
        if state.awaiting_key:
            return None

        pre_state = state.snapshot() if self.trace_limit > 0 else {}

        # FETCH: big-endian word at PC
        address = state.pc
        word = state.read_word(address)
        state.set_pc(address + 2)

        # DECODE
        instruction = decode(word)
        if not instruction.valid:
            logger.debug("Skipping unknown instruction 0x%04X at 0x%03X", word, address)

        # EXECUTE
        try:
            self.registry.execute(state, instruction)
        except StackError:
            state.set_pc(address)
            logger.warning("Stack fault at 0x%03X executing %s", address, instruction)
            raise

        if state.awaiting_key:
            logger.debug("Waiting for key press into V%X", state.key_register)

        entry = ExecutionTraceEntry(
            cycle=state.cycle_count,
            address=address,
            instruction=instruction,
            pre_state=pre_state,
            post_state=state.snapshot() if self.trace_limit > 0 else {},
        )
        state.cycle_count += 1
        if self.trace_limit > 0:
            self.trace.append(entry)
        return entry

    def run(self, cycles: int) -> int:
        """Execute up to ``cycles`` instructions.

        Stops early once the machine is waiting for a key.

        Args:
            cycles: Maximum number of instructions to execute

        Returns:
            Number of instructions actually executed
        """
        executed = 0
        while executed < cycles and not self.state.awaiting_key:
            self.step()
            executed += 1
        return executed

    def tick_timers(self) -> None:
        """Decrement the delay and sound timers by one 60 Hz tick."""
        self.state.tick_timers()

    def set_key(self, index: int, pressed: bool) -> None:
        """Update a hexpad key.

        Raises:
            ValueError: If index is not 0x0-0xF
        """
        self.state.set_key(index, pressed)

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_register(self, index: int) -> int:
        """Get the value of register V0-VF.

        Raises:
            IndexError: If index is not 0x0-0xF
        """
        if not 0 <= index < len(self.state.registers):
            raise IndexError(f"Invalid register: {index}")
        return self.state.registers[index]

    def dump_registers(self) -> Dict[str, int]:
        return self.state.dump_registers()

    def get_pc(self) -> int:
        return self.state.pc

    def get_i(self) -> int:
        return self.state.i

    def get_cycle_count(self) -> int:
        return self.state.cycle_count

    def is_awaiting_key(self) -> bool:
        return self.state.awaiting_key

    @property
    def should_buzz(self) -> bool:
        """Whether the audio layer should sound its tone this tick."""
        return self.state.should_buzz

    def video_snapshot(self) -> Tuple[int, ...]:
        return self.state.video_snapshot()

    def get_trace(self) -> List[ExecutionTraceEntry]:
        return list(self.trace)

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            print(f"\n[Cycle {entry.cycle}] 0x{entry.address:03X}: "
                  f"{entry.instruction.word:04X}  {entry.instruction.text}")
            print(f"  Key: {entry.key}")

            # Show register changes
            pre_regs = entry.pre_state.get("registers", [])
            post_regs = entry.post_state.get("registers", [])
            changes = []
            for index, (before, after) in enumerate(zip(pre_regs, post_regs)):
                if before != after:
                    changes.append(f"V{index:X}: {before:02X} → {after:02X}")
            if entry.pre_state.get("i") != entry.post_state.get("i"):
                changes.append(f"I: {entry.pre_state['i']:03X} → {entry.post_state['i']:03X}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            # Show control transfers
            next_pc = entry.post_state.get("pc", 0)
            if next_pc != (entry.address + 2) & 0xFFF:
                print(f"  PC: {entry.address:03X} → {next_pc:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        print(f"  {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "awaiting_key": self.is_awaiting_key(),
            "registers": self.dump_registers(),
            "pc": self.get_pc(),
            "i": self.get_i(),
            "sp": self.state.sp,
            "delay_timer": self.state.delay_timer,
            "sound_timer": self.state.sound_timer,
            "trace_length": len(self.trace),
        }
