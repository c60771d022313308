"""Program loading for the CHIP-8 machine.

CHIP-8 ROMs are not really a file format: they are the raw program bytes,
placed verbatim at 0x200. Since any file would "load", ROM files are
expected to carry the ``.ch8`` extension, and everything is checked
against the space left above the reserved region before it reaches the
machine.
"""

import logging
from pathlib import Path
from typing import Union

from .state import MAX_PROGRAM_SIZE

logger = logging.getLogger(__name__)

ROM_EXTENSION = ".ch8"

# Scrolls a "CH-8" banner down the screen, one row every 10 timer ticks.
# The glyphs for H and - are written to 0x270/0x275 at startup, C and 8
# come from the font.
DEFAULT_ROM = bytes([
    0x6E, 0x0C, 0x60, 0x88, 0x61, 0x88, 0x62, 0xF8, 0x63, 0x88, 0x64, 0x88, 0xA2, 0x70, 0xF4, 0x55,
    0x60, 0x00, 0x61, 0x00, 0x62, 0xF8, 0x63, 0x00, 0x64, 0x00, 0xF4, 0x55, 0x22, 0x2E, 0x6A, 0x0A,
    0xFA, 0x15, 0xFA, 0x07, 0x3A, 0x00, 0x12, 0x22, 0x22, 0x2E, 0x7E, 0x01, 0x12, 0x1C, 0x60, 0x0C,
    0xF0, 0x29, 0x60, 0x10, 0xD0, 0xE5, 0xA2, 0x70, 0x60, 0x18, 0xD0, 0xE5, 0xA2, 0x75, 0x60, 0x20,
    0xD0, 0xE5, 0x60, 0x08, 0xF0, 0x29, 0x60, 0x28, 0xD0, 0xE5, 0x00, 0xEE,
])


class RomError(ValueError):
    """A ROM that cannot be loaded."""


def validate_program(data: bytes) -> bytes:
    """Check that a program fits in program memory.

    Args:
        data: Raw program bytes

    Returns:
        The program as immutable bytes

    Raises:
        RomError: If the program is empty or larger than MAX_PROGRAM_SIZE
    """
    if not data:
        raise RomError("Program is empty")
    if len(data) > MAX_PROGRAM_SIZE:
        raise RomError(
            f"Program is {len(data)} bytes, at most {MAX_PROGRAM_SIZE} fit in memory"
        )
    return bytes(data)


def read_rom(path: Union[str, Path]) -> bytes:
    """Read and validate a ROM file.

    Args:
        path: Path to a .ch8 file

    Returns:
        Program bytes ready for load_program()

    Raises:
        RomError: If the extension is wrong, the file cannot be read, or
            the program does not fit
    """
    path = Path(path)
    if path.suffix.lower() != ROM_EXTENSION:
        raise RomError(f"ROM files should have '{ROM_EXTENSION}' extension: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        raise RomError(f"Could not read ROM at '{path}': {e}") from e

    program = validate_program(data)
    logger.info("Read ROM %s (%d bytes)", path, len(program))
    return program
