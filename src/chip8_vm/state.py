"""MachineState: State representation for the CHIP-8 VM.

This module defines the core state structure for the interpreter together
with the fixed machine constants (memory size, display size, fontset).

State Components:
    - Memory: 4096 bytes, font table at 0x000, program from 0x200
    - Registers: V0-VF (16 unsigned 8-bit values, VF doubles as flag)
    - I: Index (address) register, 16 bits
    - PC: Program counter, starts at 0x200
    - Stack: 16 return addresses with stack pointer SP
    - Timers: delay and sound, 8 bits each
    - Framebuffer: 64x32 monochrome grid of 0/1
    - Keys: 16 latched input states
    - Draw/sound flags: signals for the display and audio consumers
    - Halted / cycle count: execution bookkeeping

Unlike a purely functional state, the CHIP-8 state is mutated in place by
the instruction handlers. `snapshot()` produces the copies used for tracing.
"""

from dataclasses import dataclass, field
from typing import Dict, List

from .errors import LoadError


MEMORY_SIZE = 4096
PROGRAM_START = 0x200
MAX_PROGRAM_SIZE = MEMORY_SIZE - PROGRAM_START
ADDRESS_MASK = 0x0FFF

NUM_REGISTERS = 16
STACK_SIZE = 16
NUM_KEYS = 16

DISPLAY_WIDTH = 64
DISPLAY_HEIGHT = 32

FONT_START = 0x000
FONT_GLYPH_SIZE = 5

# Font sprites (0-F), 5 bytes per glyph
FONTSET = bytes([
    0xF0, 0x90, 0x90, 0x90, 0xF0,  # 0
    0x20, 0x60, 0x20, 0x20, 0x70,  # 1
    0xF0, 0x10, 0xF0, 0x80, 0xF0,  # 2
    0xF0, 0x10, 0xF0, 0x10, 0xF0,  # 3
    0x90, 0x90, 0xF0, 0x10, 0x10,  # 4
    0xF0, 0x80, 0xF0, 0x10, 0xF0,  # 5
    0xF0, 0x80, 0xF0, 0x90, 0xF0,  # 6
    0xF0, 0x10, 0x20, 0x40, 0x40,  # 7
    0xF0, 0x90, 0xF0, 0x90, 0xF0,  # 8
    0xF0, 0x90, 0xF0, 0x10, 0xF0,  # 9
    0xF0, 0x90, 0xF0, 0x90, 0x90,  # A
    0xE0, 0x90, 0xE0, 0x90, 0xE0,  # B
    0xF0, 0x80, 0x80, 0x80, 0xF0,  # C
    0xE0, 0x90, 0x90, 0x90, 0xE0,  # D
    0xF0, 0x80, 0xF0, 0x80, 0xF0,  # E
    0xF0, 0x80, 0xF0, 0x80, 0x80,  # F
])

REGISTER_NAMES = [f"V{i:X}" for i in range(NUM_REGISTERS)]


def _blank_framebuffer() -> List[List[int]]:
    return [[0] * DISPLAY_WIDTH for _ in range(DISPLAY_HEIGHT)]


def _fresh_memory() -> bytearray:
    memory = bytearray(MEMORY_SIZE)
    memory[FONT_START:FONT_START + len(FONTSET)] = FONTSET
    return memory


@dataclass
class MachineState:
    """Mutable CHIP-8 machine state.

    Attributes:
        memory: 4096 bytes of RAM (fontset pre-loaded at 0x000)
        registers: V0-VF, each 0-255
        index: The I register (raw 16-bit value)
        pc: Program counter
        stack: Return address slots
        sp: Index of the next free stack slot (0-16)
        delay_timer: Delay timer, 0-255
        sound_timer: Sound timer, 0-255
        framebuffer: DISPLAY_HEIGHT rows of DISPLAY_WIDTH pixels (0 or 1)
        draw_flag: Set when the framebuffer changed, cleared by the renderer
        sound_flag: Set on the last sound tick, cleared by the audio consumer
        keys: Latched key states for keys 0x0-0xF
        halted: Whether stepping has been terminated
        cycle_count: Number of executed cycles
    """
    memory: bytearray = field(default_factory=_fresh_memory)
    registers: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)
    index: int = 0
    pc: int = PROGRAM_START
    stack: List[int] = field(default_factory=lambda: [0] * STACK_SIZE)
    sp: int = 0
    delay_timer: int = 0
    sound_timer: int = 0
    framebuffer: List[List[int]] = field(default_factory=_blank_framebuffer)
    draw_flag: bool = False
    sound_flag: bool = False
    keys: List[bool] = field(default_factory=lambda: [False] * NUM_KEYS)
    halted: bool = False
    cycle_count: int = 0

    def load_program(self, image: bytes) -> None:
        """Copy a program image into memory at PROGRAM_START.

        Everything above PROGRAM_START is zeroed first, so a reload leaves
        no bytes of a previous image behind.

        Args:
            image: Raw program bytes

        Raises:
            LoadError: If the image does not fit above the reserved region
        """
        if len(image) > MAX_PROGRAM_SIZE:
            raise LoadError(
                f"Program too big for memory: {len(image)} bytes "
                f"(max {MAX_PROGRAM_SIZE})"
            )
        self.memory[PROGRAM_START:] = bytes(MAX_PROGRAM_SIZE)
        self.memory[PROGRAM_START:PROGRAM_START + len(image)] = bytes(image)

    def snapshot(self) -> dict:
        """Create a snapshot of the current state for tracing.

        Returns:
            Dictionary with copies of registers, stack, timers and flags
        """
        return {
            "registers": self.dump_registers(),
            "index": self.index,
            "pc": self.pc,
            "sp": self.sp,
            "stack": list(self.stack[:self.sp]),
            "delay_timer": self.delay_timer,
            "sound_timer": self.sound_timer,
            "draw_flag": self.draw_flag,
            "sound_flag": self.sound_flag,
            "halted": self.halted,
            "cycle_count": self.cycle_count,
            # memory and framebuffer excluded for efficiency
        }

    def validate(self) -> bool:
        """Validate state integrity.

        Checks:
            - Memory is exactly MEMORY_SIZE bytes
            - Registers, timers are bytes; I and PC fit in 16 bits
            - SP is within 0..STACK_SIZE
            - Framebuffer has the logical dimensions and only 0/1 pixels
            - Keys are booleans

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.memory) != MEMORY_SIZE:
            return False

        if len(self.registers) != NUM_REGISTERS:
            return False
        for value in self.registers:
            if not isinstance(value, int) or not 0 <= value <= 0xFF:
                return False

        if not 0 <= self.index <= 0xFFFF or not 0 <= self.pc <= 0xFFFF:
            return False

        if len(self.stack) != STACK_SIZE or not 0 <= self.sp <= STACK_SIZE:
            return False

        for timer in (self.delay_timer, self.sound_timer):
            if not 0 <= timer <= 0xFF:
                return False

        if len(self.framebuffer) != DISPLAY_HEIGHT:
            return False
        for row in self.framebuffer:
            if len(row) != DISPLAY_WIDTH:
                return False
            if any(pixel not in (0, 1) for pixel in row):
                return False

        if len(self.keys) != NUM_KEYS:
            return False
        if not all(isinstance(key, bool) for key in self.keys):
            return False

        return self.cycle_count >= 0

    def get_register(self, x: int) -> int:
        """Get value of register Vx.

        Raises:
            KeyError: If x is not a register index
        """
        if not 0 <= x < NUM_REGISTERS:
            raise KeyError(f"Invalid register: {x}")
        return self.registers[x]

    def set_register(self, x: int, value: int) -> None:
        """Set register Vx, wrapping the value modulo 256.

        Raises:
            KeyError: If x is not a register index
        """
        if not 0 <= x < NUM_REGISTERS:
            raise KeyError(f"Invalid register: {x}")
        self.registers[x] = value & 0xFF

    def read_byte(self, address: int) -> int:
        return self.memory[address & ADDRESS_MASK]

    def write_byte(self, address: int, value: int) -> None:
        self.memory[address & ADDRESS_MASK] = value & 0xFF

    def fetch_word(self, address: int) -> int:
        """Read the big-endian instruction word at address."""
        return (self.memory[address] << 8) | self.memory[address + 1]

    def clear_framebuffer(self) -> None:
        for row in self.framebuffer:
            for col in range(DISPLAY_WIDTH):
                row[col] = 0

    def get_pixel(self, x: int, y: int) -> int:
        return self.framebuffer[y % DISPLAY_HEIGHT][x % DISPLAY_WIDTH]

    def flip_pixel(self, x: int, y: int) -> bool:
        """XOR the pixel at (x, y) with 1, wrapping around the edges.

        Returns:
            True if a lit pixel was erased (collision)
        """
        row = self.framebuffer[y % DISPLAY_HEIGHT]
        col = x % DISPLAY_WIDTH
        erased = row[col] == 1
        row[col] ^= 1
        return erased

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed V0..VF."""
        return dict(zip(REGISTER_NAMES, self.registers))

    def render_text(self, on: str = "#", off: str = ".") -> str:
        """Render the framebuffer as one text line per pixel row."""
        return "\n".join(
            "".join(on if pixel else off for pixel in row)
            for row in self.framebuffer
        )

    def __str__(self) -> str:
        """Human-readable state representation."""
        regs = " ".join(f"{name}={value:02X}" for name, value in self.dump_registers().items())
        return (
            f"[Cycle {self.cycle_count}] PC={self.pc:03X} I={self.index:03X} "
            f"SP={self.sp} DT={self.delay_timer} ST={self.sound_timer} {regs}"
            f"{' HALTED' if self.halted else ''}"
        )


def create_initial_state(program: bytes) -> MachineState:
    """Create initial machine state with a loaded program.

    Args:
        program: Raw program image

    Returns:
        Fresh MachineState with the fontset and the program in memory

    Raises:
        LoadError: If the program exceeds MAX_PROGRAM_SIZE bytes
    """
    state = MachineState()
    state.load_program(program)
    return state
