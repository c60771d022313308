"""Tests for ROM loading and validation."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.loader import DEFAULT_ROM, RomError, read_rom, validate_program
from chip8_vm.state import MAX_PROGRAM_SIZE


class TestValidateProgram:
    """Test the program size check."""

    def test_accepts_full_program_space(self):
        data = bytes(MAX_PROGRAM_SIZE)
        assert validate_program(data) == data

    def test_rejects_oversized(self):
        with pytest.raises(RomError, match="3584"):
            validate_program(bytes(MAX_PROGRAM_SIZE + 1))

    def test_rejects_empty(self):
        with pytest.raises(RomError):
            validate_program(b"")

    def test_rom_error_is_value_error(self):
        assert issubclass(RomError, ValueError)

    def test_returns_bytes(self):
        assert isinstance(validate_program(bytearray(b"\x00\xE0")), bytes)


class TestReadRom:
    """Test reading ROM files."""

    def test_read_rom(self, tmp_path):
        path = tmp_path / "game.ch8"
        path.write_bytes(b"\x12\x00")
        assert read_rom(path) == b"\x12\x00"

    def test_read_rom_str_path(self, tmp_path):
        path = tmp_path / "GAME.CH8"
        path.write_bytes(b"\x00\xE0")
        assert read_rom(str(path)) == b"\x00\xE0"

    @pytest.mark.parametrize("name", ["game.png", "game", "game.ch8.bak"])
    def test_wrong_extension(self, tmp_path, name):
        path = tmp_path / name
        path.write_bytes(b"\x12\x00")
        with pytest.raises(RomError, match="extension"):
            read_rom(path)

    def test_missing_file(self, tmp_path):
        with pytest.raises(RomError, match="Could not read"):
            read_rom(tmp_path / "missing.ch8")

    def test_oversized_file(self, tmp_path):
        path = tmp_path / "big.ch8"
        path.write_bytes(bytes(MAX_PROGRAM_SIZE + 2))
        with pytest.raises(RomError):
            read_rom(path)


class TestDefaultRom:
    def test_default_rom_fits(self):
        assert validate_program(DEFAULT_ROM) == DEFAULT_ROM
        assert len(DEFAULT_ROM) % 2 == 0
