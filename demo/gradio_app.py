"""CHIP8-VM Interactive Debugger.

A Gradio web interface for running and inspecting CHIP-8 programs.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Run the built-in demo, small example programs, or an uploaded .ch8 ROM
    - Timed runs (emulated seconds) or an exact number of instructions
    - Hold hexpad keys during the run
    - See the screen, register file, memory around PC (or a chosen address) and execution trace
    - Program disassembly
"""

import sys
from pathlib import Path
from typing import Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_vm import Chip8, DEFAULT_ROM, Emulator, RomError, StackError, read_rom
from chip8_vm.decode import disassemble_program
from chip8_vm.display import render_memory, render_registers, render_video
from chip8_vm.host import CLOCK_FREQ_DEFAULT, CLOCK_FREQ_MAX, CLOCK_FREQ_MIN, KEYMAP
from chip8_vm.state import PROGRAM_START


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "CH-8 Banner (default)": DEFAULT_ROM,

    # Draw the 16 font glyphs across the top of the screen
    "Font Digits": bytes([
        0x60, 0x00, 0x61, 0x00, 0x62, 0x00, 0xF0, 0x29, 0xD1, 0x25, 0x71, 0x04,
        0x70, 0x01, 0x30, 0x10, 0x12, 0x06, 0x12, 0x12,
    ]),

    # BCD of 255 into 0x300, loaded back into V0-V2 (= 2, 5, 5)
    "BCD 255": bytes([
        0x60, 0xFF, 0xA3, 0x00, 0xF0, 0x33, 0xF2, 0x65, 0x12, 0x08,
    ]),

    # Wait for a key and draw its digit in the corner
    "Key Echo": bytes([
        0xF0, 0x0A, 0xF0, 0x29, 0x6A, 0x00, 0x6B, 0x00, 0xDA, 0xB5, 0x12, 0x0A,
    ]),
}


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(example: str, rom_file, mode: str, amount: float,
                freq: float, seed: Optional[float], keys: str,
                cursor: Optional[float] = None) -> tuple:
    """Run a program and return the rendered views.

    Args:
        example: Name of an entry in EXAMPLE_PROGRAMS
        rom_file: Uploaded .ch8 file path, overrides the example if given
        mode: 'seconds' or 'cycles'
        amount: Emulated seconds or instruction count
        freq: Instruction clock in Hz
        seed: Random seed, or None for an unseeded machine
        keys: Hexpad keys held down, as hex digits
        cursor: Memory address to inspect after the run, or None to follow PC

    Returns:
        Tuple of (summary_text, screen_text, registers_text, memory_text,
        trace_text, listing_text)
    """
    try:
        program = read_rom(rom_file) if rom_file else EXAMPLE_PROGRAMS[example]
        held = [int(char, 16) for char in keys.strip()]
    except (RomError, KeyError, ValueError) as e:
        return f"Error: {e}", "", "", "", "", ""

    machine = Chip8(seed=None if seed is None else int(seed), trace_limit=200)
    emulator = Emulator(machine, clock_freq=CLOCK_FREQ_DEFAULT if freq is None else freq)
    emulator.load_program(program)
    for key in held:
        emulator.press(key)

    error_msg = None
    try:
        if mode == "cycles":
            machine.run(int(amount or 0))
        else:
            emulator.run_for(amount or 0.0)
    except StackError as e:
        error_msg = str(e)
    # machine.run() bypasses the host, which moves the cursor per step
    emulator.set_memory_cursor(machine.get_pc())

    if cursor is not None:
        emulator.toggle_pause()
        emulator.move_cursor(int(cursor) - emulator.mem_cursor)

    state = machine.state
    summary = machine.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Program: {len(program)} bytes",
        f"Cycles: {summary['cycles']}",
        f"Clock: {emulator.clock_freq:g} Hz",
        f"Awaiting key: {'Yes' if summary['awaiting_key'] else 'No'}",
        f"Sound: {'buzzing' if machine.should_buzz else 'silent'}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")

    trace_lines = []
    for entry in machine.get_trace()[-100:]:
        line = f"{entry.cycle:>6}  {entry.address:03X}: {entry.instruction.word:04X}  {entry.instruction.text}"
        changes = [
            f"V{index:X}={after:02X}"
            for index, (before, after) in enumerate(
                zip(entry.pre_state["registers"], entry.post_state["registers"]))
            if before != after
        ]
        if changes:
            line += "   ; " + " ".join(changes)
        trace_lines.append(line)

    listing = disassemble_program(program, PROGRAM_START)
    listing_text = "\n".join(
        f"{address:03X}: {word:04X}  {text}" for address, word, text in listing
    )

    return (
        "\n".join(summary_lines),
        render_video(machine.video_snapshot(), on="█", off=" "),
        render_registers(state.snapshot()),
        render_memory(state.memory, emulator.mem_cursor, rows=12),
        "\n".join(trace_lines),
        listing_text,
    )


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="CHIP8-VM Debugger", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # CHIP8-VM Debugger

        Run a CHIP-8 program headlessly and inspect the machine afterwards.

        **Pipeline**: `fetch -> decode -> key -> registry -> execute -> state`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="CH-8 Banner (default)",
                    label="Example"
                )
                rom_file = gr.File(
                    label="Or upload a .ch8 ROM",
                    file_types=[".ch8"],
                    type="filepath"
                )

                gr.Markdown("### Settings")

                with gr.Row():
                    mode_radio = gr.Radio(
                        choices=["seconds", "cycles"],
                        value="seconds",
                        label="Run For",
                        info="Emulated seconds or exact instruction count"
                    )
                    amount = gr.Number(value=2.0, label="Amount")

                freq = gr.Slider(
                    minimum=CLOCK_FREQ_MIN,
                    maximum=CLOCK_FREQ_MAX,
                    value=CLOCK_FREQ_DEFAULT,
                    step=10,
                    label="Clock (Hz)"
                )
                with gr.Row():
                    seed = gr.Number(value=0, label="Random Seed", precision=0)
                    keys = gr.Textbox(value="", label="Held Keys (hex digits)")
                cursor = gr.Number(value=None, label="Memory Cursor (blank follows PC)", precision=0)

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                screen_output = gr.Textbox(
                    label="Screen",
                    lines=32,
                    max_lines=32,
                    interactive=False
                )
                with gr.Row():
                    summary_output = gr.Textbox(label="Summary", lines=9, interactive=False)
                    registers_output = gr.Textbox(label="Registers", lines=9, interactive=False)

        with gr.Row():
            memory_output = gr.Textbox(label="Memory", lines=12, interactive=False)
            trace_output = gr.Textbox(label="Execution Trace (last 100)", lines=12, interactive=False)

        listing_output = gr.Textbox(label="Disassembly", lines=12, interactive=False)

        # Keypad reference
        with gr.Accordion("Keypad Layout", open=False):
            rows = [[0x1, 0x2, 0x3, 0xC], [0x4, 0x5, 0x6, 0xD],
                    [0x7, 0x8, 0x9, 0xE], [0xA, 0x0, 0xB, 0xF]]
            table = "| Hexpad | Keyboard |\n|--------|----------|\n" + "\n".join(
                f"| `{' '.join(f'{k:X}' for k in row)}` | `{' '.join(KEYMAP[k] for k in row)}` |"
                for row in rows
            )
            gr.Markdown(table)

        run_button.click(
            fn=run_program,
            inputs=[example_dropdown, rom_file, mode_radio, amount, freq, seed, keys, cursor],
            outputs=[summary_output, screen_output, registers_output,
                     memory_output, trace_output, listing_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
