"""Tests for the Gradio debugger's run function."""

import sys
from pathlib import Path

import pytest

pytest.importorskip("gradio")

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
sys.path.insert(0, str(Path(__file__).parent.parent / "demo"))

from gradio_app import run_program


class TestRunProgram:
    """Test run_program() inputs and rendered panels."""

    def test_cleared_seed_runs_unseeded(self):
        """A blank seed field arrives as None."""
        summary, _, registers, _, _, _ = run_program(
            "BCD 255", None, "cycles", 5, 600, None, "")
        assert not summary.startswith("Error")
        assert "V0=02  V1=05  V2=05" in registers

    def test_memory_follows_pc(self):
        outputs = run_program("BCD 255", None, "cycles", 5, 600, 0, "")
        memory = outputs[3]
        assert "[12]" in memory
        assert any(line.startswith("208:") for line in memory.splitlines())

    def test_memory_cursor(self):
        """BCD digits are visible when the cursor is moved to I."""
        outputs = run_program("BCD 255", None, "cycles", 5, 600, 0, "", cursor=0x300)
        lines = outputs[3].splitlines()
        line = next(line for line in lines if line.startswith("300:"))
        assert line.startswith("300:[02] 05  05 ")

    def test_bad_keys_reported(self):
        outputs = run_program("BCD 255", None, "cycles", 5, 600, 0, "xz")
        assert outputs[0].startswith("Error")
