"""Tests for MachineState dataclass."""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.state import (
    FONT,
    MAX_PROGRAM_SIZE,
    MEMORY_SIZE,
    NO_KEY,
    PROGRAM_START,
    MachineState,
    StackOverflowError,
    StackPolicy,
    StackUnderflowError,
    create_initial_state,
)


@pytest.fixture
def state():
    return MachineState.create()


class TestMachineStateCreation:
    """Test MachineState initialization and defaults."""

    def test_default_state(self, state):
        """Fresh state has zeroed registers, timers and video."""
        assert state.registers == [0] * 16
        assert state.i == 0
        assert state.pc == PROGRAM_START
        assert state.sp == 0
        assert state.delay_timer == 0
        assert state.sound_timer == 0
        assert state.video == [0] * 32
        assert state.keys == [False] * 16
        assert state.key_register == NO_KEY
        assert state.cycle_count == 0

    def test_font_installed_at_zero(self, state):
        """The 16 five-byte glyphs sit at the bottom of memory."""
        assert len(FONT) == 80
        assert bytes(state.memory[:80]) == FONT
        assert bytes(state.memory[80:]) == bytes(MEMORY_SIZE - 80)

    def test_create_initial_state(self):
        """create_initial_state loads the program at 0x200."""
        state = create_initial_state(b"\x12\x00")
        assert state.memory[PROGRAM_START] == 0x12
        assert state.memory[PROGRAM_START + 1] == 0x00
        assert state.pc == PROGRAM_START

    def test_independent_instances(self):
        """Two machines never share mutable storage."""
        a = MachineState.create()
        b = MachineState.create()
        a.registers[0] = 1
        a.memory[0x300] = 1
        a.video[0] = 1
        assert b.registers[0] == 0
        assert b.memory[0x300] == 0
        assert b.video[0] == 0


class TestLifecycle:
    """Test restart, clear_program, full_reset and load_program."""

    def test_restart_keeps_program_and_font(self, state):
        """Restart clears execution state but not memory."""
        state.load_program(b"\xAB\xCD")
        state.registers[3] = 7
        state.i = 0x123
        state.pc = 0x300
        state.push(0x202)
        state.delay_timer = 5
        state.sound_timer = 6
        state.video[4] = 0xFF
        state.key_register = 2
        state.cycle_count = 10

        state.restart()

        assert state.registers == [0] * 16
        assert state.i == 0
        assert state.pc == PROGRAM_START
        assert state.sp == 0
        assert state.stack == [0] * 16
        assert state.delay_timer == 0
        assert state.sound_timer == 0
        assert state.video == [0] * 32
        assert state.key_register == NO_KEY
        assert state.cycle_count == 0
        assert state.memory[PROGRAM_START] == 0xAB
        assert bytes(state.memory[:80]) == FONT

    def test_clear_program_preserves_font(self, state):
        """clear_program zeroes 0x200 onwards only."""
        state.load_program(bytes([0xFF]) * 100)
        state.memory[0x1FF] = 0x42
        state.clear_program()
        assert bytes(state.memory[PROGRAM_START:]) == bytes(MAX_PROGRAM_SIZE)
        assert state.memory[0x1FF] == 0x42
        assert bytes(state.memory[:80]) == FONT

    def test_full_reset(self, state):
        """full_reset restarts and erases the program."""
        state.load_program(b"\x60\x01")
        state.registers[0] = 9
        state.full_reset()
        assert state.registers[0] == 0
        assert state.memory[PROGRAM_START] == 0

    def test_load_program_max_size(self, state):
        """A program filling all of program memory loads."""
        state.load_program(bytes([0x11]) * MAX_PROGRAM_SIZE)
        assert state.memory[MEMORY_SIZE - 1] == 0x11

    def test_load_program_too_large(self, state):
        """Oversized programs are refused without touching memory."""
        with pytest.raises(ValueError):
            state.load_program(bytes(MAX_PROGRAM_SIZE + 1))
        assert bytes(state.memory[:80]) == FONT


class TestKeys:
    """Test key updates and key-wait delivery."""

    def test_set_key_records_state(self, state):
        state.set_key(0xA, True)
        assert state.keys[0xA] is True
        state.set_key(0xA, False)
        assert state.keys[0xA] is False

    def test_press_delivers_awaited_key(self, state):
        """A press while awaiting stores the key and clears the wait."""
        state.key_register = 5
        assert state.awaiting_key is True
        state.set_key(0xC, True)
        assert state.registers[5] == 0xC
        assert state.awaiting_key is False

    def test_release_does_not_deliver(self, state):
        """Only presses complete a key wait."""
        state.key_register = 5
        state.set_key(0xC, False)
        assert state.awaiting_key is True
        assert state.registers[5] == 0

    def test_first_press_wins(self, state):
        """The first press processed completes the wait; later ones only update keys."""
        state.key_register = 1
        state.set_key(3, True)
        state.set_key(7, True)
        assert state.registers[1] == 3
        assert state.keys[7] is True

    def test_press_without_wait_leaves_registers(self, state):
        state.set_key(4, True)
        assert state.registers == [0] * 16

    @pytest.mark.parametrize("index", [-1, 16, 255])
    def test_invalid_key(self, state, index):
        with pytest.raises(ValueError):
            state.set_key(index, True)


class TestTimers:
    """Test timer ticking."""

    def test_tick_decrements_both(self, state):
        state.delay_timer = 3
        state.sound_timer = 1
        state.tick_timers()
        assert state.delay_timer == 2
        assert state.sound_timer == 0

    def test_timers_floor_at_zero(self, state):
        """Repeated ticks never go below zero."""
        state.delay_timer = 2
        state.sound_timer = 5
        for _ in range(300):
            state.tick_timers()
            assert state.delay_timer >= 0
            assert state.sound_timer >= 0
        assert state.delay_timer == 0
        assert state.sound_timer == 0

    def test_should_buzz(self, state):
        assert state.should_buzz is False
        state.sound_timer = 1
        assert state.should_buzz is True
        state.tick_timers()
        assert state.should_buzz is False


class TestStack:
    """Test push/pop under both stack policies."""

    def test_push_pop_order(self, state):
        for address in range(0x200, 0x220, 2):
            state.push(address)
        assert state.sp == 16
        for address in reversed(range(0x200, 0x220, 2)):
            assert state.pop() == address
        assert state.sp == 0

    def test_strict_overflow(self, state):
        """A 17th push raises and leaves the stack intact."""
        for n in range(16):
            state.push(n)
        with pytest.raises(StackOverflowError):
            state.push(99)
        assert state.sp == 16
        assert 99 not in state.stack

    def test_strict_underflow(self, state):
        with pytest.raises(StackUnderflowError):
            state.pop()
        assert state.sp == 0

    def test_wrap_overflow_overwrites_oldest(self):
        """Under WRAP the stack is a 16-slot ring."""
        state = MachineState.create(StackPolicy.WRAP)
        for n in range(17):
            state.push(0x200 + n)
        assert state.sp == 1
        assert state.stack[0] == 0x210
        assert state.pop() == 0x210

    def test_wrap_underflow_reads_last_slot(self):
        state = MachineState.create(StackPolicy.WRAP)
        state.stack[15] = 0x345
        assert state.pop() == 0x345
        assert state.sp == 15
        assert state.snapshot()["stack"] == []

    def test_wrap_full_ring_in_snapshot(self):
        """Sixteen nested calls bring sp back to 0 but all stay visible."""
        state = MachineState.create(StackPolicy.WRAP)
        addresses = [0x200 + 2 * n for n in range(16)]
        for address in addresses:
            state.push(address)
        assert state.sp == 0
        assert state.snapshot()["stack"] == addresses

        state.push(0x300)
        assert state.live_stack() == addresses[1:] + [0x300]
        state.pop()
        assert state.live_stack() == addresses[1:]

    def test_strict_live_stack_follows_sp(self, state):
        state.push(0x202)
        state.push(0x204)
        state.pop()
        assert state.live_stack() == [0x202]
        assert state.stack_depth == state.sp == 1


class TestMemoryAccess:
    """Test address wrapping."""

    def test_read_word_big_endian(self, state):
        state.memory[0x300] = 0xA2
        state.memory[0x301] = 0x70
        assert state.read_word(0x300) == 0xA270

    def test_addresses_wrap_at_4k(self, state):
        state.write_byte(0x1000, 0x55)
        assert state.memory[0] == 0x55
        assert state.read_byte(0x1000) == 0x55

    def test_word_at_last_address_wraps(self, state):
        state.memory[0xFFF] = 0x12
        assert state.read_word(0xFFF) == (0x12 << 8) | FONT[0]

    def test_set_pc_wraps(self, state):
        state.set_pc(0x1002)
        assert state.pc == 0x002


class TestValidationAndSnapshot:
    """Test validate(), snapshot() and accessors."""

    def test_valid_state(self, state):
        assert state.validate() is True

    def test_register_out_of_range(self, state):
        state.registers[0] = 256
        assert state.validate() is False

    def test_bad_stack_pointer(self, state):
        state.sp = 17
        assert state.validate() is False

    def test_bad_key_register(self, state):
        state.key_register = 16
        assert state.validate() is False

    def test_snapshot_is_copy(self, state):
        """Mutating a snapshot doesn't affect state."""
        state.registers[0] = 42
        state.push(0x204)
        snapshot = state.snapshot()
        assert snapshot["registers"][0] == 42
        assert snapshot["stack"] == [0x204]
        snapshot["registers"][0] = 999
        assert state.registers[0] == 42

    def test_video_snapshot_is_isolated(self, state):
        state.video[0] = 1
        frame = state.video_snapshot()
        state.video[0] = 2
        assert frame[0] == 1

    def test_dump_registers(self, state):
        state.registers[0xF] = 1
        regs = state.dump_registers()
        assert regs["VF"] == 1
        assert len(regs) == 16

    def test_str(self, state):
        text = str(state)
        assert "PC=200" in text
        assert "VF=00" in text
