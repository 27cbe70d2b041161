"""Exceptions raised by the CHIP-8 VM."""

from typing import Optional


class Chip8Error(Exception):
    """Base class for machine errors."""


class LoadError(Chip8Error, ValueError):
    """Program image could not be loaded (too large or unreadable)."""


class UnknownOpcodeError(Chip8Error):
    """Fetched word matches no decode rule (raised only in strict mode)."""

    def __init__(self, opcode: int, family: int, address: Optional[int] = None):
        self.opcode = opcode
        self.family = family
        self.address = address
        where = f" at 0x{address:03X}" if address is not None else ""
        super().__init__(f"Unknown opcode [0x{family:04X}]: 0x{opcode:04X}{where}")


class StackOverflowError(Chip8Error, RuntimeError):
    """CALL with all stack slots in use."""


class StackUnderflowError(Chip8Error, RuntimeError):
    """RET with an empty stack."""
