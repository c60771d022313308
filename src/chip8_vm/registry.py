"""InstructionRegistry: Instruction semantics for the CHIP-8 machine.

This module implements the registry pattern for machine operations:
every decoded Opcode key maps to exactly one handler that applies the
instruction's effect to a MachineState in place.

Registry Keys (grouped as below):
    Control flow: OP_CLS, OP_RET, OP_JP, OP_CALL, OP_JP_V0
    Skips: OP_SE_BYTE, OP_SNE_BYTE, OP_SE_REG, OP_SNE_REG, OP_SKP, OP_SKNP
    Arithmetic/logic: OP_LD_BYTE, OP_ADD_BYTE, OP_LD_REG, OP_OR, OP_AND,
        OP_XOR, OP_ADD_REG, OP_SUB, OP_SUBN, OP_SHR, OP_SHL, OP_RND
    Memory/timers: OP_LD_I, OP_ADD_I, OP_LD_F, OP_LD_B, OP_LD_MEM,
        OP_LD_REGS, OP_LD_VX_DT, OP_LD_DT, OP_LD_ST, OP_LD_VX_K
    Graphics: OP_DRW
    Special: OP_INVALID (unrecognized words are skipped)

Handlers run after the fetch has already advanced the program counter,
so "skip" means one more +2 and jumps overwrite the counter outright.
VF is the flag output of ADD/SUB/SUBN/SHR/SHL/DRW and is written last,
so the flag wins when VF is also the destination.
"""

import random
from typing import Callable, Dict, Optional

from .decode import Instruction, Opcode
from .state import (
    FLAG_REGISTER,
    FONT_GLYPH_SIZE,
    FONT_START,
    NUM_KEYS,
    ROW_MASK,
    VIDEO_HEIGHT,
    VIDEO_WIDTH,
    MachineState,
)

Handler = Callable[[MachineState, Instruction], None]


class InstructionRegistry:
    """Verified registry of instruction handlers.

    The registry is frozen after initialization; freezing checks that
    every Opcode has a handler, so the dispatch is exhaustive.

    Attributes:
        rng: Random source for OP_RND
        _handlers: Dictionary mapping opcode keys to handler functions
        _frozen: Whether the registry is locked against modifications
    """

    def __init__(self, rng: Optional[random.Random] = None):
        """Initialize registry with all instruction handlers.

        Args:
            rng: Random source for OP_RND (a fresh unseeded one if None)
        """
        self.rng = rng if rng is not None else random.Random()
        self._handlers: Dict[Opcode, Handler] = {}
        self._frozen = False
        self._register_all_handlers()
        self.freeze()

    def _register_all_handlers(self) -> None:
        """Register every instruction handler."""
        # Control flow
        self.register(Opcode.CLS, self._op_cls)
        self.register(Opcode.RET, self._op_ret)
        self.register(Opcode.JP, self._op_jp)
        self.register(Opcode.CALL, self._op_call)
        self.register(Opcode.JP_V0, self._op_jp_v0)

        # Skips
        self.register(Opcode.SE_BYTE, self._op_se_byte)
        self.register(Opcode.SNE_BYTE, self._op_sne_byte)
        self.register(Opcode.SE_REG, self._op_se_reg)
        self.register(Opcode.SNE_REG, self._op_sne_reg)
        self.register(Opcode.SKP, self._op_skp)
        self.register(Opcode.SKNP, self._op_sknp)

        # Arithmetic and logic
        self.register(Opcode.LD_BYTE, self._op_ld_byte)
        self.register(Opcode.ADD_BYTE, self._op_add_byte)
        self.register(Opcode.LD_REG, self._op_ld_reg)
        self.register(Opcode.OR, self._op_or)
        self.register(Opcode.AND, self._op_and)
        self.register(Opcode.XOR, self._op_xor)
        self.register(Opcode.ADD_REG, self._op_add_reg)
        self.register(Opcode.SUB, self._op_sub)
        self.register(Opcode.SUBN, self._op_subn)
        self.register(Opcode.SHR, self._op_shr)
        self.register(Opcode.SHL, self._op_shl)
        self.register(Opcode.RND, self._op_rnd)

        # Memory, timers and input
        self.register(Opcode.LD_I, self._op_ld_i)
        self.register(Opcode.ADD_I, self._op_add_i)
        self.register(Opcode.LD_F, self._op_ld_f)
        self.register(Opcode.LD_B, self._op_ld_b)
        self.register(Opcode.LD_MEM, self._op_ld_mem)
        self.register(Opcode.LD_REGS, self._op_ld_regs)
        self.register(Opcode.LD_VX_DT, self._op_ld_vx_dt)
        self.register(Opcode.LD_DT, self._op_ld_dt)
        self.register(Opcode.LD_ST, self._op_ld_st)
        self.register(Opcode.LD_VX_K, self._op_ld_vx_k)

        # Graphics
        self.register(Opcode.DRW, self._op_drw)

        # Special
        self.register(Opcode.INVALID, self._op_invalid)

    def register(self, key: Opcode, handler: Handler) -> None:
        """Register an instruction handler.

        Args:
            key: Opcode key (e.g., Opcode.ADD_REG)
            handler: Function that takes (state, instruction) and mutates state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if key in self._handlers:
            raise ValueError(f"Handler already registered: {key.value}")
        self._handlers[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications.

        Raises:
            RuntimeError: If some opcode has no handler
        """
        missing = set(Opcode) - set(self._handlers)
        if missing:
            names = ", ".join(sorted(op.value for op in missing))
            raise RuntimeError(f"Registry incomplete, no handler for: {names}")
        self._frozen = True

    def is_frozen(self) -> bool:
        return self._frozen

    def get_valid_keys(self) -> set:
        return set(self._handlers.keys())

    def execute(self, state: MachineState, instruction: Instruction) -> None:
        """Apply a decoded instruction to the state.

        Args:
            state: Machine state, mutated in place
            instruction: Decoded instruction

        Raises:
            KeyError: If the instruction's opcode is not registered
            StackError: On call stack faults under STRICT policy
        """
        key = instruction.opcode
        if key not in self._handlers:
            raise KeyError(f"Unknown operation key: {key}")
        self._handlers[key](state, instruction)

    # =========================================================================
    # Control Flow
    # =========================================================================

    def _op_cls(self, state: MachineState, ins: Instruction) -> None:
        """00E0 - Clear the display."""
        state.clear_video()

    def _op_ret(self, state: MachineState, ins: Instruction) -> None:
        """00EE - Return from a subroutine."""
        state.set_pc(state.pop())

    def _op_jp(self, state: MachineState, ins: Instruction) -> None:
        """1NNN - Jump to NNN."""
        state.set_pc(ins.addr)

    def _op_call(self, state: MachineState, ins: Instruction) -> None:
        """2NNN - Call the subroutine at NNN.

        The pushed return address is the already-advanced PC.
        """
        state.push(state.pc)
        state.set_pc(ins.addr)

    def _op_jp_v0(self, state: MachineState, ins: Instruction) -> None:
        """BNNN - Jump to NNN + V0."""
        state.set_pc(ins.addr + state.registers[0])

    # =========================================================================
    # Skips
    # =========================================================================

    def _skip_if(self, state: MachineState, condition: bool) -> None:
        if condition:
            state.set_pc(state.pc + 2)

    def _op_se_byte(self, state: MachineState, ins: Instruction) -> None:
        """3XNN - Skip the next instruction if VX == NN."""
        self._skip_if(state, state.registers[ins.x] == ins.byte)

    def _op_sne_byte(self, state: MachineState, ins: Instruction) -> None:
        """4XNN - Skip the next instruction if VX != NN."""
        self._skip_if(state, state.registers[ins.x] != ins.byte)

    def _op_se_reg(self, state: MachineState, ins: Instruction) -> None:
        """5XY0 - Skip the next instruction if VX == VY."""
        self._skip_if(state, state.registers[ins.x] == state.registers[ins.y])

    def _op_sne_reg(self, state: MachineState, ins: Instruction) -> None:
        """9XY0 - Skip the next instruction if VX != VY."""
        self._skip_if(state, state.registers[ins.x] != state.registers[ins.y])

    def _op_skp(self, state: MachineState, ins: Instruction) -> None:
        """EX9E - Skip the next instruction if the key in VX is pressed.

        Only the low nibble of VX selects a key.
        """
        self._skip_if(state, state.keys[state.registers[ins.x] % NUM_KEYS])

    def _op_sknp(self, state: MachineState, ins: Instruction) -> None:
        """EXA1 - Skip the next instruction if the key in VX is not pressed."""
        self._skip_if(state, not state.keys[state.registers[ins.x] % NUM_KEYS])

    # =========================================================================
    # Arithmetic and Logic
    # =========================================================================

    def _op_ld_byte(self, state: MachineState, ins: Instruction) -> None:
        """6XNN - VX = NN."""
        state.registers[ins.x] = ins.byte

    def _op_add_byte(self, state: MachineState, ins: Instruction) -> None:
        """7XNN - VX += NN, wrapping, VF untouched."""
        state.registers[ins.x] = (state.registers[ins.x] + ins.byte) & 0xFF

    def _op_ld_reg(self, state: MachineState, ins: Instruction) -> None:
        """8XY0 - VX = VY."""
        state.registers[ins.x] = state.registers[ins.y]

    def _op_or(self, state: MachineState, ins: Instruction) -> None:
        """8XY1 - VX |= VY."""
        state.registers[ins.x] |= state.registers[ins.y]

    def _op_and(self, state: MachineState, ins: Instruction) -> None:
        """8XY2 - VX &= VY."""
        state.registers[ins.x] &= state.registers[ins.y]

    def _op_xor(self, state: MachineState, ins: Instruction) -> None:
        """8XY3 - VX ^= VY."""
        state.registers[ins.x] ^= state.registers[ins.y]

    def _op_add_reg(self, state: MachineState, ins: Instruction) -> None:
        """8XY4 - VX += VY.

        Sets VF to 1 if the true sum exceeds 255, else 0. VF is written
        before VX, so 8FY4 leaves the sum in VF.
        """
        total = state.registers[ins.x] + state.registers[ins.y]
        state.registers[FLAG_REGISTER] = int(total > 0xFF)
        state.registers[ins.x] = total & 0xFF

    def _op_sub(self, state: MachineState, ins: Instruction) -> None:
        """8XY5 - VX -= VY.

        Sets VF to 1 if no borrow occurs (VX >= VY), else 0. The
        difference is taken after VF is written.
        """
        registers = state.registers
        registers[FLAG_REGISTER] = int(registers[ins.x] >= registers[ins.y])
        registers[ins.x] = (registers[ins.x] - registers[ins.y]) & 0xFF

    def _op_subn(self, state: MachineState, ins: Instruction) -> None:
        """8XY7 - VX = VY - VX.

        Sets VF to 1 if no borrow occurs (VY >= VX), else 0. The
        difference is taken after VF is written.
        """
        registers = state.registers
        registers[FLAG_REGISTER] = int(registers[ins.y] >= registers[ins.x])
        registers[ins.x] = (registers[ins.y] - registers[ins.x]) & 0xFF

    def _op_shr(self, state: MachineState, ins: Instruction) -> None:
        """8XY6 - VF = bit 0 of VY, then VX = VY >> 1."""
        registers = state.registers
        registers[FLAG_REGISTER] = registers[ins.y] & 0x01
        registers[ins.x] = registers[ins.y] >> 1

    def _op_shl(self, state: MachineState, ins: Instruction) -> None:
        """8XYE - VF = bit 7 of VY, then VX = VY << 1."""
        registers = state.registers
        registers[FLAG_REGISTER] = (registers[ins.y] >> 7) & 0x01
        registers[ins.x] = (registers[ins.y] << 1) & 0xFF

    def _op_rnd(self, state: MachineState, ins: Instruction) -> None:
        """CXNN - VX = random byte AND NN."""
        state.registers[ins.x] = self.rng.randrange(256) & ins.byte

    # =========================================================================
    # Memory, Timers and Input
    # =========================================================================

    def _op_ld_i(self, state: MachineState, ins: Instruction) -> None:
        """ANNN - I = NNN."""
        state.i = ins.addr

    def _op_add_i(self, state: MachineState, ins: Instruction) -> None:
        """FX1E - I += VX in 16-bit space, VF untouched."""
        state.i = (state.i + state.registers[ins.x]) & 0xFFFF

    def _op_ld_f(self, state: MachineState, ins: Instruction) -> None:
        """FX29 - Point I at the font glyph for the digit in VX."""
        state.i = FONT_START + state.registers[ins.x] * FONT_GLYPH_SIZE

    def _op_ld_b(self, state: MachineState, ins: Instruction) -> None:
        """FX33 - Store the decimal digits of VX at I, I+1, I+2."""
        value = state.registers[ins.x]
        state.write_byte(state.i, value // 100)
        state.write_byte(state.i + 1, value // 10 % 10)
        state.write_byte(state.i + 2, value % 10)

    def _op_ld_mem(self, state: MachineState, ins: Instruction) -> None:
        """FX55 - Store V0..VX at I, then I += X + 1."""
        for offset in range(ins.x + 1):
            state.write_byte(state.i + offset, state.registers[offset])
        state.i = (state.i + ins.x + 1) & 0xFFFF

    def _op_ld_regs(self, state: MachineState, ins: Instruction) -> None:
        """FX65 - Load V0..VX from I, then I += X + 1."""
        for offset in range(ins.x + 1):
            state.registers[offset] = state.read_byte(state.i + offset)
        state.i = (state.i + ins.x + 1) & 0xFFFF

    def _op_ld_vx_dt(self, state: MachineState, ins: Instruction) -> None:
        """FX07 - VX = delay timer."""
        state.registers[ins.x] = state.delay_timer

    def _op_ld_dt(self, state: MachineState, ins: Instruction) -> None:
        """FX15 - Delay timer = VX."""
        state.delay_timer = state.registers[ins.x]

    def _op_ld_st(self, state: MachineState, ins: Instruction) -> None:
        """FX18 - Sound timer = VX."""
        state.sound_timer = state.registers[ins.x]

    def _op_ld_vx_k(self, state: MachineState, ins: Instruction) -> None:
        """FX0A - Suspend until a key is pressed, then store it in VX.

        The key itself is delivered by MachineState.set_key().
        """
        state.key_register = ins.x

    # =========================================================================
    # Graphics
    # =========================================================================

    def _op_drw(self, state: MachineState, ins: Instruction) -> None:
        """DXYN - XOR an N-row sprite from I onto the screen at (VX, VY).

        Rows wrap vertically. Columns past the right edge are clipped,
        and a sprite at x >= 64 draws nothing. VF is set to 1 if any lit
        pixel is turned off, else 0.
        """
        x = state.registers[ins.x]
        y = state.registers[ins.y]
        collision = 0

        for row in range(ins.nibble):
            line = (y + row) % VIDEO_HEIGHT
            sprite = state.read_byte(state.i + row)
            mask = ((sprite << (VIDEO_WIDTH - 8)) >> x) & ROW_MASK
            if state.video[line] & mask:
                collision = 1
            state.video[line] ^= mask

        state.registers[FLAG_REGISTER] = collision

    # =========================================================================
    # Special
    # =========================================================================

    def _op_invalid(self, state: MachineState, ins: Instruction) -> None:
        """Unrecognized word - skipped, the fetch already moved the PC on."""
