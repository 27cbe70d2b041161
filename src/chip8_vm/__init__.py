"""chip8-vm: Instruction execution engine for CHIP-8 programs.

This package implements the fetch-decode-execute core of a CHIP-8
interpreter: 4 KiB of memory, sixteen 8-bit registers, a 16-level call
stack, delay/sound timers, a 64x32 monochrome framebuffer and sixteen
input latches. Rendering, audio and keyboard handling are left to the host.

Architecture:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> TIMERS
               |          |        |        |           |
           [PC-based] [nibbles] [OP_*] [Handlers]  [In-place state]

Modules:
    state: MachineState dataclass, fontset and machine constants
    errors: LoadError, UnknownOpcodeError and stack fault exceptions
    decode: Opcode word decoder and disassembler
    registry: Frozen table of instruction handlers (OP_CLS, OP_DRW, ...)
    cpu: Main Chip8VM orchestrator
"""

__version__ = "0.1.0"
__author__ = "chip8-vm Project"

from .state import MachineState
from .errors import Chip8Error, LoadError, UnknownOpcodeError, StackOverflowError, StackUnderflowError
from .registry import OpcodeRegistry
from .decode import Decoder
from .cpu import Chip8VM

__all__ = [
    "MachineState",
    "Chip8Error",
    "LoadError",
    "UnknownOpcodeError",
    "StackOverflowError",
    "StackUnderflowError",
    "OpcodeRegistry",
    "Decoder",
    "Chip8VM",
]
