"""Chip8VM: Main orchestrator for the CHIP-8 instruction execution engine.

This module implements the full execution pipeline:
    MEMORY -> FETCH -> DECODE -> KEY -> REGISTRY -> EXECUTE -> TIMERS

A driver owns the cadence: it calls `step()` at its chosen instruction
rate, watches `draw_flag` / `sound_flag`, and writes the key latches
through `set_key_state()`. The VM itself performs no I/O beyond loading a
ROM file on request.
"""

import logging
from collections import deque
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional, Union

from .decode import Decoder, DecodeResult
from .errors import LoadError, StackOverflowError, StackUnderflowError, UnknownOpcodeError
from .registry import OpcodeRegistry, get_registry
from .state import MEMORY_SIZE, NUM_KEYS, MachineState, create_initial_state


logger = logging.getLogger(__name__)


def read_rom(path: Union[str, Path]) -> bytes:
    """Read a program image from disk.

    Raises:
        LoadError: If the path is missing, a directory, or unreadable
    """
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise LoadError(f"Cannot read program file {path}: {e}") from e


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Captures one fetch-decode-execute cycle for debugging.

    Attributes:
        cycle: Cycle number after execution
        address: PC the word was fetched from
        opcode: Fetched 16-bit word
        instruction: Disassembled mnemonic
        decode_result: Result from the decoder
        pre_state: State snapshot before execution
        post_state: State snapshot after execution
        error: Error message if the cycle hit an error
    """
    cycle: int
    address: int
    opcode: int
    instruction: str
    decode_result: DecodeResult
    pre_state: dict
    post_state: dict
    error: Optional[str] = None


class Chip8VM:
    """CHIP-8 virtual machine.

    Attributes:
        decoder: Decoder instance for instruction decode
        registry: OpcodeRegistry with the instruction handlers
        state: Current machine state (None until a program is loaded)
        trace: Most recent execution trace entries
        max_cycles: Default cycle budget for run()
        strict: Raise on unknown opcodes instead of skipping them
        couple_timers: Decrement timers once per step()
    """

    DEFAULT_MAX_CYCLES = 10000
    DEFAULT_TRACE_LIMIT = 1000

    def __init__(
        self,
        random_byte: Optional[Callable[[], int]] = None,
        sound_callback: Optional[Callable[[], None]] = None,
        max_cycles: int = DEFAULT_MAX_CYCLES,
        strict: bool = False,
        couple_timers: bool = True,
        trace_limit: Optional[int] = DEFAULT_TRACE_LIMIT,
    ):
        """Initialize the VM.

        Args:
            random_byte: Random byte source for Cxnn (default: random module)
            sound_callback: Called once each time the sound timer expires
            max_cycles: Default cycle budget for run()
            strict: Raise UnknownOpcodeError instead of skipping unknown words
            couple_timers: Tick timers inside step(); set False to drive
                tick_timers() from a separate 60 Hz clock
            trace_limit: Number of trace entries kept (None = unbounded,
                0 = tracing disabled)
        """
        self.decoder = Decoder()
        self.registry = OpcodeRegistry(random_byte) if random_byte else get_registry()
        self.sound_callback = sound_callback
        self.state: Optional[MachineState] = None
        self.max_cycles = max_cycles
        self.strict = strict
        self.couple_timers = couple_timers
        self.trace_limit = trace_limit
        self.trace: Deque[ExecutionTraceEntry] = deque(maxlen=trace_limit)

    def load_program(self, image: bytes) -> None:
        """Load a program image, replacing any previous machine state.

        Args:
            image: Raw program bytes

        Raises:
            LoadError: If the image exceeds available memory; the VM is
                left without a loaded program
        """
        self.state = None
        self.trace.clear()
        self.state = create_initial_state(image)
        logger.info("Loaded %d byte program", len(image))

    def load_file(self, path: Union[str, Path]) -> None:
        """Load a program image from a ROM file.

        Raises:
            LoadError: If the file cannot be read or is too large
        """
        self.load_program(read_rom(path))

    def step(self) -> ExecutionTraceEntry:
        """Execute a single instruction cycle.

        Performs: FETCH -> DECODE -> EXECUTE -> TIMERS

        Returns:
            ExecutionTraceEntry with full cycle information

        Raises:
            RuntimeError: If no program loaded or VM halted
            UnknownOpcodeError: Strict mode only, on an undecodable word
            StackOverflowError, StackUnderflowError: On stack faults
        """
        if self.state is None:
            raise RuntimeError("No program loaded")

        if self.state.halted:
            raise RuntimeError("CPU is halted")

        # FETCH: Read the big-endian word at PC
        pc = self.state.pc
        if pc > MEMORY_SIZE - 2:
            # PC past end of memory - halt
            self.state.halted = True
            entry = ExecutionTraceEntry(
                cycle=self.state.cycle_count,
                address=pc,
                opcode=0,
                instruction="<END OF MEMORY>",
                decode_result=DecodeResult("OP_INVALID", {}, False),
                pre_state=self.state.snapshot(),
                post_state=self.state.snapshot(),
                error=f"PC past end of memory: 0x{pc:04X}",
            )
            self._record(entry)
            logger.error(entry.error)
            return entry

        opcode = self.state.fetch_word(pc)
        pre_state = self.state.snapshot()

        # DECODE
        decode_result = self.decoder.decode(opcode)

        error = None
        if not decode_result.valid:
            error = f"{decode_result.error} at 0x{pc:03X}"
            if self.strict:
                self.state.halted = True
                raise UnknownOpcodeError(opcode, decode_result.family, pc)
            logger.warning(error)

        # EXECUTE
        try:
            self.registry.execute(self.state, decode_result.key, decode_result.params)
        except (StackOverflowError, StackUnderflowError) as e:
            self.state.halted = True
            logger.error("Stack fault at 0x%03X: %s", pc, e)
            raise

        if self.couple_timers:
            self.tick_timers()

        entry = ExecutionTraceEntry(
            cycle=self.state.cycle_count,
            address=pc,
            opcode=opcode,
            instruction=self.decoder.disassemble(opcode),
            decode_result=decode_result,
            pre_state=pre_state,
            post_state=self.state.snapshot(),
            error=error,
        )
        self._record(entry)

        return entry

    def tick_timers(self) -> None:
        """Decrement the delay and sound timers by one tick.

        The tick that takes the sound timer from 1 to 0 raises the sound
        flag and fires the sound callback, once.
        """
        if self.state is None:
            raise RuntimeError("No program loaded")

        if self.state.delay_timer > 0:
            self.state.delay_timer -= 1

        if self.state.sound_timer > 0:
            self.state.sound_timer -= 1
            # Timer reaches zero before the callback runs
            if self.state.sound_timer == 0:
                self.state.sound_flag = True
                logger.debug("Sound pulse at cycle %d", self.state.cycle_count)
                if self.sound_callback is not None:
                    self.sound_callback()

    def run(self, max_cycles: Optional[int] = None) -> List[ExecutionTraceEntry]:
        """Step the VM until it halts or the cycle budget is used.

        CHIP-8 programs have no halt instruction, so running out of cycles
        is the normal way for this to return.

        Args:
            max_cycles: Override the cycle budget (uses instance default if None)

        Returns:
            Retained execution trace
        """
        if self.state is None:
            raise RuntimeError("No program loaded")

        limit = max_cycles if max_cycles is not None else self.max_cycles

        executed = 0
        while not self.state.halted and executed < limit:
            self.step()
            executed += 1

        return self.get_trace()

    def _record(self, entry: ExecutionTraceEntry) -> None:
        if self.trace_limit != 0:
            self.trace.append(entry)

    # =========================================================================
    # Collaborator Interface
    # =========================================================================

    def set_key_state(self, index: int, pressed: bool) -> None:
        """Latch the state of key 0x0-0xF.

        Raises:
            ValueError: If index is not a key number
        """
        if self.state is None:
            raise RuntimeError("No program loaded")
        if not 0 <= index < NUM_KEYS:
            raise ValueError(f"Invalid key: {index}")
        self.state.keys[index] = bool(pressed)

    @property
    def framebuffer(self) -> List[List[int]]:
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.framebuffer

    @property
    def draw_flag(self) -> bool:
        return self.state is not None and self.state.draw_flag

    @property
    def sound_flag(self) -> bool:
        return self.state is not None and self.state.sound_flag

    def clear_draw_flag(self) -> None:
        """Acknowledge a consumed frame."""
        if self.state is not None:
            self.state.draw_flag = False

    def clear_sound_flag(self) -> None:
        """Acknowledge a played sound pulse."""
        if self.state is not None:
            self.state.sound_flag = False

    # =========================================================================
    # Inspection
    # =========================================================================

    def get_register(self, x: int) -> int:
        """Get value of register Vx."""
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.get_register(x)

    def dump_registers(self) -> Dict[str, int]:
        """Get all register values keyed V0..VF."""
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.dump_registers()

    def get_pc(self) -> int:
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.pc

    def get_index(self) -> int:
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.index

    def get_cycle_count(self) -> int:
        if self.state is None:
            return 0
        return self.state.cycle_count

    def is_halted(self) -> bool:
        if self.state is None:
            return True
        return self.state.halted

    def get_trace(self) -> List[ExecutionTraceEntry]:
        return list(self.trace)

    def render_text(self, on: str = "#", off: str = ".") -> str:
        """Render the framebuffer as text."""
        if self.state is None:
            raise RuntimeError("No program loaded")
        return self.state.render_text(on, off)

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("CHIP-8 EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            status = "OK" if not entry.error else f"ERROR: {entry.error}"
            print(f"\n[Cycle {entry.cycle}] {status}")
            print(f"  0x{entry.address:03X}: {entry.opcode:04X}  {entry.instruction}")
            print(f"  Decoded Key: {entry.decode_result.key}")

            # Show register changes
            pre_regs = entry.pre_state.get("registers", {})
            post_regs = entry.post_state.get("registers", {})
            changes = []
            for reg in pre_regs:
                if pre_regs[reg] != post_regs.get(reg, pre_regs[reg]):
                    changes.append(f"{reg}: {pre_regs[reg]:02X} → {post_regs[reg]:02X}")
            if entry.pre_state.get("index") != entry.post_state.get("index"):
                changes.append(f"I: {entry.pre_state['index']:03X} → {entry.post_state['index']:03X}")
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            # Show PC change
            post_pc = entry.post_state.get("pc", entry.address)
            print(f"  PC: {entry.address:03X} → {post_pc:03X}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        if self.state:
            print(f"  {self.state}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        return {
            "cycles": self.get_cycle_count(),
            "halted": self.is_halted(),
            "registers": self.dump_registers() if self.state else {},
            "index": self.state.index if self.state else 0,
            "pc": self.state.pc if self.state else 0,
            "sp": self.state.sp if self.state else 0,
            "delay_timer": self.state.delay_timer if self.state else 0,
            "sound_timer": self.state.sound_timer if self.state else 0,
            "trace_length": len(self.trace),
            "errors": [e.error for e in self.trace if e.error],
        }
