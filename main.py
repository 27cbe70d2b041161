#!/usr/bin/env python3
"""chip8-vm Command Line Interface.

Run CHIP-8 ROMs headless with the chip8-vm engine.

Usage:
    python main.py roms/pong.ch8 --cycles 5000 --screen
    python main.py roms/pong.ch8 --disassemble
"""

import argparse
import logging
import random
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent / "src"))

from chip8_vm import Chip8VM, Chip8Error, LoadError
from chip8_vm.cpu import read_rom
from chip8_vm.decode import disassemble_program


def main():
    parser = argparse.ArgumentParser(
        description="chip8-vm: CHIP-8 Instruction Execution Engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a ROM for 5000 cycles and show the final screen
    python main.py roms/pong.ch8 --cycles 5000 --screen

    # Reproducible run with full trace output
    python main.py roms/maze.ch8 --seed 42 --trace

    # List the ROM as assembly
    python main.py roms/maze.ch8 --disassemble
        """
    )

    parser.add_argument(
        "rom",
        type=str,
        help="Path to CHIP-8 program image"
    )
    parser.add_argument(
        "--cycles", "-c",
        type=int,
        default=Chip8VM.DEFAULT_MAX_CYCLES,
        help=f"Number of cycles to execute. Default: {Chip8VM.DEFAULT_MAX_CYCLES}"
    )
    parser.add_argument(
        "--seed",
        type=int,
        help="Seed for the RND instruction (deterministic runs)"
    )
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Stop on unknown opcodes instead of skipping them"
    )
    parser.add_argument(
        "--decouple-timers",
        action="store_true",
        help="Tick timers at 60 Hz of emulated time instead of once per cycle"
    )
    parser.add_argument(
        "--rate",
        type=int,
        default=500,
        help="Instruction rate in Hz used with --decouple-timers. Default: 500"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print execution trace (last 1000 cycles)"
    )
    parser.add_argument(
        "--screen", "-s",
        action="store_true",
        help="Print the final framebuffer"
    )
    parser.add_argument(
        "--disassemble", "-d",
        action="store_true",
        help="Print a disassembly listing and exit"
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Minimal output (final registers only)"
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="WARNING",
        help="Logging level. Default: WARNING"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(levelname)s %(name)s: %(message)s"
    )

    if args.cycles < 0:
        parser.error("--cycles must be non-negative")
    if args.rate <= 0:
        parser.error("--rate must be positive")

    rom_path = Path(args.rom)
    if not rom_path.is_file():
        print(f"Error: Program file not found: {args.rom}")
        return 1

    if args.disassemble:
        try:
            image = read_rom(rom_path)
        except LoadError as e:
            print(f"Error: {e}")
            return 1
        for address, word, text in disassemble_program(image):
            print(f"0x{address:03X}: {word:04X}  {text}")
        return 0

    random_byte = None
    if args.seed is not None:
        rng = random.Random(args.seed)
        random_byte = lambda: rng.getrandbits(8)

    beeps = []
    vm = Chip8VM(
        random_byte=random_byte,
        sound_callback=lambda: beeps.append(vm.get_cycle_count()),
        max_cycles=args.cycles,
        strict=args.strict,
        couple_timers=not args.decouple_timers,
    )

    try:
        vm.load_file(rom_path)
    except LoadError as e:
        print(f"Error: {e}")
        return 1

    if not args.quiet:
        print(f"Loading program: {args.rom}")
        print("-" * 60)
        print("Executing...")
        print("-" * 60)

    exit_code = 0
    try:
        if args.decouple_timers:
            run_decoupled(vm, args.cycles, args.rate)
        else:
            vm.run()
    except (Chip8Error, RuntimeError) as e:
        print(f"Execution error: {e}")
        exit_code = 1

    # Output
    if args.trace:
        vm.print_trace()
    elif not args.quiet:
        print()
        summary = vm.get_summary()
        print(f"Cycles: {summary['cycles']}")
        print(f"Halted: {summary['halted']}")
        print(f"PC: 0x{summary['pc']:03X}  I: 0x{summary['index']:03X}  SP: {summary['sp']}")
        print(f"Timers: DT={summary['delay_timer']} ST={summary['sound_timer']}")
        print(f"Registers: {summary['registers']}")
        if beeps:
            print(f"Sound pulses: {len(beeps)}")
        if summary['errors']:
            print(f"Errors: {summary['errors'][:10]}")
    else:
        # Quiet mode - just print non-zero registers
        regs = vm.dump_registers()
        for reg, value in regs.items():
            if value != 0:
                print(f"{reg}={value}")

    if args.screen:
        print()
        print(vm.render_text())

    return exit_code


def run_decoupled(vm: Chip8VM, cycles: int, rate: int) -> None:
    """Run with timers ticking at 60 Hz relative to the instruction rate."""
    owed = 0
    for _ in range(cycles):
        if vm.is_halted():
            break
        vm.step()
        owed += 60
        while owed >= rate:
            vm.tick_timers()
            owed -= rate


if __name__ == "__main__":
    sys.exit(main())
