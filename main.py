#!/usr/bin/env python3
"""CHIP8-VM Command Line Interface.

Run CHIP-8 ROMs headlessly and inspect the result.

Usage:
    python main.py --rom games/pong.ch8 --seconds 5
    python main.py --cycles 30 --trace
"""

import argparse
import logging
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8, Emulator, RomError, StackError, StackPolicy
from chip8_vm.display import render_registers, render_video
from chip8_vm.host import CLOCK_FREQ_DEFAULT, CLOCK_FREQ_MAX, CLOCK_FREQ_MIN


def parse_keys(text: str) -> list:
    """Parse a string of hex digits into hexpad key indices."""
    try:
        return [int(char, 16) for char in text]
    except ValueError:
        raise argparse.ArgumentTypeError(f"keys must be hex digits 0-F: {text!r}")


def main():
    parser = argparse.ArgumentParser(
        description="CHIP8-VM: CHIP-8 Virtual Machine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run the built-in demo for two seconds of emulated time
    python main.py

    # Run a ROM for five seconds at 700 Hz, holding key 5
    python main.py --rom games/pong.ch8 --seconds 5 --freq 700 --keys 5

    # Execute the first 30 instructions and print the trace
    python main.py --cycles 30 --trace
        """
    )

    parser.add_argument(
        "--rom", "-r",
        type=str,
        help="Path to a .ch8 ROM (default: built-in demo)"
    )
    parser.add_argument(
        "--seconds", "-s",
        type=float,
        default=2.0,
        help="Emulated seconds to run. Default: 2.0"
    )
    parser.add_argument(
        "--cycles", "-c",
        type=int,
        help="Execute exactly this many instructions instead of timed running"
    )
    parser.add_argument(
        "--freq", "-f",
        type=float,
        default=CLOCK_FREQ_DEFAULT,
        help=f"Instruction clock in Hz, clamped to {CLOCK_FREQ_MIN:g}-{CLOCK_FREQ_MAX:g}. "
             f"Default: {CLOCK_FREQ_DEFAULT:g}"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the random number instruction"
    )
    parser.add_argument(
        "--policy",
        choices=[p.value for p in StackPolicy],
        default=StackPolicy.STRICT.value,
        help="Call stack over/underflow handling. Default: strict"
    )
    parser.add_argument(
        "--keys", "-k",
        type=parse_keys,
        default=[],
        help="Hexpad keys held down for the whole run, e.g. 5A"
    )
    parser.add_argument(
        "--realtime",
        action="store_true",
        help="Pace execution against the wall clock"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print the execution trace"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final screen only)"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )

    args = parser.parse_args()

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="[%(levelname)s] %(name)s: %(message)s")

    if args.cycles is not None and args.cycles < 0:
        parser.error("--cycles must not be negative")

    # Initialize machine and host
    machine = Chip8(
        seed=args.seed,
        stack_policy=StackPolicy(args.policy),
        trace_limit=4096 if args.trace else 0,
    )
    buzz_ticks = []
    emulator = Emulator(machine, clock_freq=args.freq, on_buzz=buzz_ticks.append)

    # Load program
    try:
        if args.rom:
            emulator.load_rom(args.rom)
            if not args.quiet:
                print(f"Loading ROM: {args.rom}")
        else:
            emulator.load_default_rom()
            if not args.quiet:
                print("Running built-in demo ROM")
    except RomError as e:
        print(f"Error: {e}")
        return 1

    for key in args.keys:
        emulator.press(key)

    # Run
    if not args.quiet:
        print("-" * 64)
        print("Executing...")
        print("-" * 64)

    status = 0
    try:
        if args.cycles is not None:
            machine.run(args.cycles)
        elif args.realtime:
            emulator.run_realtime(args.seconds)
        else:
            emulator.run_for(args.seconds)
    except StackError as e:
        print(f"Execution error: {e}")
        status = 1

    # Output
    if args.trace:
        machine.print_trace()

    print(render_video(machine.video_snapshot()))

    if not args.quiet:
        summary = machine.get_summary()
        print()
        print(render_registers(machine.state.snapshot()))
        print(f"Cycles: {summary['cycles']}")
        print(f"Clock: {emulator.clock_freq:g} Hz")
        print(f"Awaiting key: {summary['awaiting_key']}")
        print(f"Buzzer ticks: {sum(buzz_ticks)}/{len(buzz_ticks)}")

    return status


if __name__ == "__main__":
    sys.exit(main())
