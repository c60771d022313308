"""Instruction decode for the CHIP-8 virtual machine.

CHIP-8 opcodes are not plain numbers but bit patterns inside a 16-bit
instruction word: the same nibbles are operands in some instructions and
part of the opcode in others. Decoding therefore clears the operand
nibbles of the word with a mask and compares what is left against each
opcode's pattern, in a fixed priority order.

Architecture:
    word -> decode() -> Instruction(opcode, operands) -> Registry -> Execute

Operand fields of a word 0xABCD:
    addr   = 0xBCD  (12-bit address / immediate)
    byte   = 0xCD   (8-bit immediate)
    nibble = 0xD    (4-bit immediate)
    x      = 0xB    (first register index)
    y      = 0xC    (second register index)
"""

import enum
from dataclasses import dataclass
from typing import List, Tuple


class Opcode(str, enum.Enum):
    """Registry keys for every instruction the machine executes."""

    CLS = "OP_CLS"
    RET = "OP_RET"
    JP = "OP_JP"
    CALL = "OP_CALL"
    SE_BYTE = "OP_SE_BYTE"
    SNE_BYTE = "OP_SNE_BYTE"
    SE_REG = "OP_SE_REG"
    LD_BYTE = "OP_LD_BYTE"
    ADD_BYTE = "OP_ADD_BYTE"
    LD_REG = "OP_LD_REG"
    OR = "OP_OR"
    AND = "OP_AND"
    XOR = "OP_XOR"
    ADD_REG = "OP_ADD_REG"
    SUB = "OP_SUB"
    SHR = "OP_SHR"
    SUBN = "OP_SUBN"
    SHL = "OP_SHL"
    SNE_REG = "OP_SNE_REG"
    LD_I = "OP_LD_I"
    JP_V0 = "OP_JP_V0"
    RND = "OP_RND"
    DRW = "OP_DRW"
    SKP = "OP_SKP"
    SKNP = "OP_SKNP"
    LD_VX_DT = "OP_LD_VX_DT"
    LD_VX_K = "OP_LD_VX_K"
    LD_DT = "OP_LD_DT"
    LD_ST = "OP_LD_ST"
    ADD_I = "OP_ADD_I"
    LD_F = "OP_LD_F"
    LD_B = "OP_LD_B"
    LD_MEM = "OP_LD_MEM"
    LD_REGS = "OP_LD_REGS"
    INVALID = "OP_INVALID"


# (mask, pattern, opcode) in match order. The two full-word opcodes come
# before any masked form sharing their top nibble.
DECODE_TABLE: List[Tuple[int, int, Opcode]] = [
    (0xFFFF, 0x00E0, Opcode.CLS),
    (0xFFFF, 0x00EE, Opcode.RET),
    (0xF000, 0x1000, Opcode.JP),
    (0xF000, 0x2000, Opcode.CALL),
    (0xF000, 0x3000, Opcode.SE_BYTE),
    (0xF000, 0x4000, Opcode.SNE_BYTE),
    (0xF00F, 0x5000, Opcode.SE_REG),
    (0xF000, 0x6000, Opcode.LD_BYTE),
    (0xF000, 0x7000, Opcode.ADD_BYTE),
    (0xF00F, 0x8000, Opcode.LD_REG),
    (0xF00F, 0x8001, Opcode.OR),
    (0xF00F, 0x8002, Opcode.AND),
    (0xF00F, 0x8003, Opcode.XOR),
    (0xF00F, 0x8004, Opcode.ADD_REG),
    (0xF00F, 0x8005, Opcode.SUB),
    (0xF00F, 0x8006, Opcode.SHR),
    (0xF00F, 0x8007, Opcode.SUBN),
    (0xF00F, 0x800E, Opcode.SHL),
    (0xF00F, 0x9000, Opcode.SNE_REG),
    (0xF000, 0xA000, Opcode.LD_I),
    (0xF000, 0xB000, Opcode.JP_V0),
    (0xF000, 0xC000, Opcode.RND),
    (0xF000, 0xD000, Opcode.DRW),
    (0xF0FF, 0xE09E, Opcode.SKP),
    (0xF0FF, 0xE0A1, Opcode.SKNP),
    (0xF0FF, 0xF007, Opcode.LD_VX_DT),
    (0xF0FF, 0xF00A, Opcode.LD_VX_K),
    (0xF0FF, 0xF015, Opcode.LD_DT),
    (0xF0FF, 0xF018, Opcode.LD_ST),
    (0xF0FF, 0xF01E, Opcode.ADD_I),
    (0xF0FF, 0xF029, Opcode.LD_F),
    (0xF0FF, 0xF033, Opcode.LD_B),
    (0xF0FF, 0xF055, Opcode.LD_MEM),
    (0xF0FF, 0xF065, Opcode.LD_REGS),
]


# Mnemonic templates, formatted with the Instruction's operand fields
_MNEMONICS = {
    Opcode.CLS: "CLS",
    Opcode.RET: "RET",
    Opcode.JP: "JP 0x{addr:03X}",
    Opcode.CALL: "CALL 0x{addr:03X}",
    Opcode.SE_BYTE: "SE V{x:X}, 0x{byte:02X}",
    Opcode.SNE_BYTE: "SNE V{x:X}, 0x{byte:02X}",
    Opcode.SE_REG: "SE V{x:X}, V{y:X}",
    Opcode.LD_BYTE: "LD V{x:X}, 0x{byte:02X}",
    Opcode.ADD_BYTE: "ADD V{x:X}, 0x{byte:02X}",
    Opcode.LD_REG: "LD V{x:X}, V{y:X}",
    Opcode.OR: "OR V{x:X}, V{y:X}",
    Opcode.AND: "AND V{x:X}, V{y:X}",
    Opcode.XOR: "XOR V{x:X}, V{y:X}",
    Opcode.ADD_REG: "ADD V{x:X}, V{y:X}",
    Opcode.SUB: "SUB V{x:X}, V{y:X}",
    Opcode.SHR: "SHR V{x:X}, V{y:X}",
    Opcode.SUBN: "SUBN V{x:X}, V{y:X}",
    Opcode.SHL: "SHL V{x:X}, V{y:X}",
    Opcode.SNE_REG: "SNE V{x:X}, V{y:X}",
    Opcode.LD_I: "LD I, 0x{addr:03X}",
    Opcode.JP_V0: "JP V0, 0x{addr:03X}",
    Opcode.RND: "RND V{x:X}, 0x{byte:02X}",
    Opcode.DRW: "DRW V{x:X}, V{y:X}, {nibble}",
    Opcode.SKP: "SKP V{x:X}",
    Opcode.SKNP: "SKNP V{x:X}",
    Opcode.LD_VX_DT: "LD V{x:X}, DT",
    Opcode.LD_VX_K: "LD V{x:X}, K",
    Opcode.LD_DT: "LD DT, V{x:X}",
    Opcode.LD_ST: "LD ST, V{x:X}",
    Opcode.ADD_I: "ADD I, V{x:X}",
    Opcode.LD_F: "LD F, V{x:X}",
    Opcode.LD_B: "LD B, V{x:X}",
    Opcode.LD_MEM: "LD [I], V{x:X}",
    Opcode.LD_REGS: "LD V{x:X}, [I]",
    Opcode.INVALID: ".word 0x{word:04X}",
}


@dataclass(frozen=True)
class Instruction:
    """A decoded instruction word.

    Attributes:
        opcode: Registry key selected by the word's bit pattern
        word: Raw 16-bit instruction
        addr: Low 12 bits
        byte: Low 8 bits
        nibble: Low 4 bits
        x: Bits 8-11, first register operand
        y: Bits 4-7, second register operand
    """
    opcode: Opcode
    word: int
    addr: int
    byte: int
    nibble: int
    x: int
    y: int

    @property
    def valid(self) -> bool:
        return self.opcode is not Opcode.INVALID

    @property
    def text(self) -> str:
        """Assembly-style rendering, e.g. ``DRW V0, VE, 5``."""
        return _MNEMONICS[self.opcode].format(
            addr=self.addr, byte=self.byte, nibble=self.nibble,
            x=self.x, y=self.y, word=self.word,
        )

    def __str__(self) -> str:
        return self.text


def match_opcode(word: int) -> Opcode:
    """Find the opcode whose bit pattern matches ``word``.

    Returns:
        The first matching Opcode in DECODE_TABLE order, or Opcode.INVALID
    """
    for mask, pattern, opcode in DECODE_TABLE:
        if word & mask == pattern:
            return opcode
    return Opcode.INVALID


def decode(word: int) -> Instruction:
    """Decode a 16-bit instruction word.

    Args:
        word: Big-endian instruction, 0x0000-0xFFFF

    Returns:
        Instruction carrying the opcode and every operand field
    """
    word &= 0xFFFF
    return Instruction(
        opcode=match_opcode(word),
        word=word,
        addr=word & 0x0FFF,
        byte=word & 0x00FF,
        nibble=word & 0x000F,
        x=(word >> 8) & 0xF,
        y=(word >> 4) & 0xF,
    )


def disassemble(word: int) -> str:
    return decode(word).text


def disassemble_program(data: bytes, origin: int) -> List[Tuple[int, int, str]]:
    """Disassemble a byte sequence word by word.

    Args:
        data: Raw bytes, read as consecutive big-endian words
        origin: Address of the first byte

    Returns:
        List of (address, word, mnemonic) tuples; a trailing odd byte is
        rendered as a padded word
    """
    listing = []
    for offset in range(0, len(data), 2):
        high = data[offset]
        low = data[offset + 1] if offset + 1 < len(data) else 0
        word = (high << 8) | low
        listing.append((origin + offset, word, disassemble(word)))
    return listing
