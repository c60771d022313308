"""Tests for the bit-pattern instruction decoder."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.decode import (
    DECODE_TABLE,
    Opcode,
    decode,
    disassemble,
    disassemble_program,
    match_opcode,
)


class TestOperandExtraction:
    """Test operand fields of a decoded word."""

    def test_fields(self):
        ins = decode(0xD12A)
        assert ins.word == 0xD12A
        assert ins.addr == 0x12A
        assert ins.byte == 0x2A
        assert ins.nibble == 0xA
        assert ins.x == 0x1
        assert ins.y == 0x2

    def test_instruction_is_frozen(self):
        ins = decode(0x6005)
        with pytest.raises(AttributeError):
            ins.x = 3


class TestOpcodeMatching:
    """Test each opcode pattern."""

    @pytest.mark.parametrize("word,opcode", [
        (0x00E0, Opcode.CLS),
        (0x00EE, Opcode.RET),
        (0x1ABC, Opcode.JP),
        (0x2ABC, Opcode.CALL),
        (0x3A12, Opcode.SE_BYTE),
        (0x4A12, Opcode.SNE_BYTE),
        (0x5AB0, Opcode.SE_REG),
        (0x6A12, Opcode.LD_BYTE),
        (0x7A12, Opcode.ADD_BYTE),
        (0x8AB0, Opcode.LD_REG),
        (0x8AB1, Opcode.OR),
        (0x8AB2, Opcode.AND),
        (0x8AB3, Opcode.XOR),
        (0x8AB4, Opcode.ADD_REG),
        (0x8AB5, Opcode.SUB),
        (0x8AB6, Opcode.SHR),
        (0x8AB7, Opcode.SUBN),
        (0x8ABE, Opcode.SHL),
        (0x9AB0, Opcode.SNE_REG),
        (0xAABC, Opcode.LD_I),
        (0xBABC, Opcode.JP_V0),
        (0xCA12, Opcode.RND),
        (0xDAB5, Opcode.DRW),
        (0xEA9E, Opcode.SKP),
        (0xEAA1, Opcode.SKNP),
        (0xFA07, Opcode.LD_VX_DT),
        (0xFA0A, Opcode.LD_VX_K),
        (0xFA15, Opcode.LD_DT),
        (0xFA18, Opcode.LD_ST),
        (0xFA1E, Opcode.ADD_I),
        (0xFA29, Opcode.LD_F),
        (0xFA33, Opcode.LD_B),
        (0xFA55, Opcode.LD_MEM),
        (0xFA65, Opcode.LD_REGS),
    ])
    def test_opcode(self, word, opcode):
        assert decode(word).opcode is opcode

    @pytest.mark.parametrize("word", [
        0x0000, 0x00E1, 0x0123, 0x5AB1, 0x8AB8, 0x8ABF, 0x9AB1,
        0xEA9F, 0xFA00, 0xFA30, 0xFFFF,
    ])
    def test_unknown_words_are_invalid(self, word):
        """Words matching no pattern decode to OP_INVALID."""
        ins = decode(word)
        assert ins.opcode is Opcode.INVALID
        assert ins.valid is False

    def test_every_opcode_has_one_pattern(self):
        """The table covers every opcode except OP_INVALID exactly once."""
        opcodes = [opcode for _, _, opcode in DECODE_TABLE]
        assert len(opcodes) == len(set(opcodes))
        assert set(opcodes) == set(Opcode) - {Opcode.INVALID}

    def test_patterns_are_disjoint(self):
        """No word matches more than one pattern."""
        for word in range(0x10000):
            matches = [op for mask, pattern, op in DECODE_TABLE if word & mask == pattern]
            assert len(matches) <= 1, f"0x{word:04X} matches {matches}"

    def test_exact_opcodes_checked_first(self):
        assert DECODE_TABLE[0][:2] == (0xFFFF, 0x00E0)
        assert DECODE_TABLE[1][:2] == (0xFFFF, 0x00EE)

    def test_match_opcode(self):
        assert match_opcode(0x00EE) is Opcode.RET


class TestDisassembly:
    """Test mnemonic rendering."""

    @pytest.mark.parametrize("word,text", [
        (0x00E0, "CLS"),
        (0x121C, "JP 0x21C"),
        (0x222E, "CALL 0x22E"),
        (0x6E0C, "LD VE, 0x0C"),
        (0x8124, "ADD V1, V2"),
        (0xD0E5, "DRW V0, VE, 5"),
        (0xF455, "LD [I], V4"),
        (0xF265, "LD V2, [I]"),
        (0xFA0A, "LD VA, K"),
        (0x5AB1, ".word 0x5AB1"),
    ])
    def test_disassemble(self, word, text):
        assert disassemble(word) == text

    def test_str_is_text(self):
        assert str(decode(0x00EE)) == "RET"

    def test_disassemble_program(self):
        listing = disassemble_program(bytes([0x60, 0x01, 0x12, 0x00, 0xAB]), 0x200)
        assert listing == [
            (0x200, 0x6001, "LD V0, 0x01"),
            (0x202, 0x1200, "JP 0x200"),
            (0x204, 0xAB00, "LD I, 0xB00"),
        ]
