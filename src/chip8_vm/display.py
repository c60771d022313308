"""Text rendering of machine snapshots.

Diagnostic views for the command-line runner and the debugger UI: the
framebuffer as characters, the register file, and a hex dump window of
memory around a cursor (normally the program counter).
"""

from typing import List, Sequence

from .state import VIDEO_HEIGHT, VIDEO_WIDTH


def video_to_rows(video: Sequence[int]) -> List[List[bool]]:
    """Unpack framebuffer rows into per-pixel booleans, column 0 first."""
    return [
        [bool((row >> (VIDEO_WIDTH - 1 - col)) & 1) for col in range(VIDEO_WIDTH)]
        for row in video[:VIDEO_HEIGHT]
    ]


def render_video(video: Sequence[int], on: str = "#", off: str = ".") -> str:
    """Render the framebuffer as VIDEO_HEIGHT lines of VIDEO_WIDTH characters."""
    return "\n".join(
        "".join(on if pixel else off for pixel in row)
        for row in video_to_rows(video)
    )


def render_registers(snapshot: dict) -> str:
    """Render a MachineState.snapshot() as a register panel."""
    regs = snapshot["registers"]
    lines = [
        "  ".join(f"V{index:X}={regs[index]:02X}" for index in range(row, row + 4))
        for row in range(0, len(regs), 4)
    ]
    lines.append(
        f"PC={snapshot['pc']:03X}  I={snapshot['i']:03X}  SP={snapshot['sp']}  "
        f"DT={snapshot['delay_timer']}  ST={snapshot['sound_timer']}"
    )
    if snapshot["stack"]:
        lines.append("Stack: " + " ".join(f"{addr:03X}" for addr in snapshot["stack"]))
    if snapshot["key_register"] < len(regs):
        lines.append(f"Waiting for key -> V{snapshot['key_register']:X}")
    return "\n".join(lines)


def render_memory(memory: Sequence[int], cursor: int, rows: int = 8, width: int = 8) -> str:
    """Hex dump of ``rows`` lines of memory around ``cursor``.

    The window is aligned to ``width`` bytes and keeps the cursor's line
    centered where memory allows; the cursor byte is bracketed.
    """
    line_count = len(memory) // width
    cursor_line = cursor // width
    first = max(0, min(cursor_line - rows // 2, line_count - rows))

    lines = []
    for line in range(first, min(first + rows, line_count)):
        base = line * width
        cells = []
        for address in range(base, base + width):
            text = f"{memory[address]:02X}"
            cells.append(f"[{text}]" if address == cursor else f" {text} ")
        lines.append(f"{base:03X}:" + "".join(cells))
    return "\n".join(lines)
