"""OpcodeRegistry: Instruction handlers for the CHIP-8 VM.

This module implements the registry pattern for instruction execution:
every decoded key maps to one frozen handler that applies the state
transition of that instruction.

Registry Keys:
    OP_CLS, OP_RET: 00E0, 00EE
    OP_JP, OP_CALL, OP_JP_V0: 1nnn, 2nnn, Bnnn
    OP_SE_VX_NN, OP_SNE_VX_NN, OP_SE_VX_VY, OP_SNE_VX_VY: 3xnn, 4xnn, 5xy0, 9xy0
    OP_LD_VX_NN, OP_ADD_VX_NN: 6xnn, 7xnn
    OP_LD_VX_VY, OP_OR, OP_AND, OP_XOR: 8xy0-8xy3
    OP_ADD_VX_VY, OP_SUB_VX_VY, OP_SHR, OP_SHL: 8xy4, 8xy5, 8xy6, 8xyE
    OP_LD_I_NNN, OP_RND, OP_DRW: Annn, Cxnn, Dxyn
    OP_SKP, OP_SKNP: Ex9E, ExA1
    OP_LD_VX_DT, OP_LD_DT_VX, OP_LD_ST_VX: Fx07, Fx15, Fx18
    OP_ADD_I_VX, OP_LD_F_VX, OP_LD_B_VX: Fx1E, Fx29, Fx33
    OP_LD_MEM_VX, OP_LD_VX_MEM: Fx55, Fx65
    OP_INVALID: Unknown encodings

Each handler is a function (MachineState, params) -> None that mutates the
state and sets the program counter to its own successor: most advance by
2, skips advance by 4, jumps/calls/returns assign it directly.
"""

import random
from typing import Any, Callable, Dict, Optional

from .errors import StackOverflowError, StackUnderflowError
from .state import DISPLAY_HEIGHT, DISPLAY_WIDTH, FONT_GLYPH_SIZE, FONT_START, STACK_SIZE, MachineState

Handler = Callable[[MachineState, Dict[str, Any]], None]

FLAG = 0xF


def _default_random_byte() -> int:
    return random.getrandbits(8)


class OpcodeRegistry:
    """Verified registry of instruction handlers.

    The registry is frozen after initialization to ensure
    no runtime modifications can occur.

    Attributes:
        _primitives: Dictionary mapping operation keys to handler functions
        _frozen: Whether the registry is locked against modifications
        _random_byte: Source of random bytes for RND
    """

    def __init__(self, random_byte: Optional[Callable[[], int]] = None):
        """Initialize registry with all instruction handlers.

        Args:
            random_byte: Callable returning 0-255, used by Cxnn. Defaults to
                the random module; inject a deterministic source for tests.
        """
        self._primitives: Dict[str, Handler] = {}
        self._frozen = False
        self._random_byte = random_byte or _default_random_byte
        self._register_all_primitives()
        self.freeze()

    def _register_all_primitives(self) -> None:
        """Register all instruction handlers."""
        # Display and subroutines
        self.register("OP_CLS", self._op_cls)
        self.register("OP_RET", self._op_ret)

        # Flow control
        self.register("OP_JP", self._op_jp)
        self.register("OP_CALL", self._op_call)
        self.register("OP_JP_V0", self._op_jp_v0)

        # Conditional skips
        self.register("OP_SE_VX_NN", self._op_se_vx_nn)
        self.register("OP_SNE_VX_NN", self._op_sne_vx_nn)
        self.register("OP_SE_VX_VY", self._op_se_vx_vy)
        self.register("OP_SNE_VX_VY", self._op_sne_vx_vy)

        # Constants
        self.register("OP_LD_VX_NN", self._op_ld_vx_nn)
        self.register("OP_ADD_VX_NN", self._op_add_vx_nn)

        # Register arithmetic and bit operations
        self.register("OP_LD_VX_VY", self._op_ld_vx_vy)
        self.register("OP_OR", self._op_or)
        self.register("OP_AND", self._op_and)
        self.register("OP_XOR", self._op_xor)
        self.register("OP_ADD_VX_VY", self._op_add_vx_vy)
        self.register("OP_SUB_VX_VY", self._op_sub_vx_vy)
        self.register("OP_SHR", self._op_shr)
        self.register("OP_SHL", self._op_shl)

        # Index register, random, display
        self.register("OP_LD_I_NNN", self._op_ld_i_nnn)
        self.register("OP_RND", self._op_rnd)
        self.register("OP_DRW", self._op_drw)

        # Keys
        self.register("OP_SKP", self._op_skp)
        self.register("OP_SKNP", self._op_sknp)

        # Timers
        self.register("OP_LD_VX_DT", self._op_ld_vx_dt)
        self.register("OP_LD_DT_VX", self._op_ld_dt_vx)
        self.register("OP_LD_ST_VX", self._op_ld_st_vx)

        # Memory
        self.register("OP_ADD_I_VX", self._op_add_i_vx)
        self.register("OP_LD_F_VX", self._op_ld_f_vx)
        self.register("OP_LD_B_VX", self._op_ld_b_vx)
        self.register("OP_LD_MEM_VX", self._op_ld_mem_vx)
        self.register("OP_LD_VX_MEM", self._op_ld_vx_mem)

        # Special
        self.register("OP_INVALID", self._op_invalid)

    def register(self, key: str, handler: Handler) -> None:
        """Register an instruction handler.

        Args:
            key: Operation key (e.g., "OP_DRW")
            handler: Function that takes (state, params) and mutates state

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If key already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register primitives: registry is frozen")
        if key in self._primitives:
            raise ValueError(f"Primitive already registered: {key}")
        self._primitives[key] = handler

    def freeze(self) -> None:
        """Freeze the registry to prevent further modifications."""
        self._frozen = True

    def is_frozen(self) -> bool:
        """Check if registry is frozen."""
        return self._frozen

    def get_valid_keys(self) -> set:
        """Get set of all valid operation keys."""
        return set(self._primitives.keys())

    def execute(self, state: MachineState, key: str, params: Dict[str, Any]) -> MachineState:
        """Execute a registered handler.

        Args:
            state: Machine state to transform in place
            key: Operation key
            params: Decoded bit-fields (x, y, n, nn, nnn)

        Returns:
            The same state object, after execution

        Raises:
            KeyError: If key not in registry
        """
        if key not in self._primitives:
            raise KeyError(f"Unknown operation key: {key}")

        handler = self._primitives[key]
        handler(state, params)

        # Always increment cycle count after execution
        state.cycle_count += 1
        return state

    # =========================================================================
    # Display and Subroutine Handlers
    # =========================================================================

    def _op_cls(self, state: MachineState, params: Dict[str, Any]) -> None:
        """00E0 - Clear the framebuffer."""
        state.clear_framebuffer()
        state.draw_flag = True
        state.pc += 2

    def _op_ret(self, state: MachineState, params: Dict[str, Any]) -> None:
        """00EE - Return from subroutine.

        Pops the call-site address and resumes at the instruction after it.

        Raises:
            StackUnderflowError: If the stack is empty
        """
        if state.sp == 0:
            raise StackUnderflowError(f"Return with empty stack at 0x{state.pc:03X}")
        state.sp -= 1
        state.pc = state.stack[state.sp] + 2

    # =========================================================================
    # Flow Control Handlers
    # =========================================================================

    def _op_jp(self, state: MachineState, params: Dict[str, Any]) -> None:
        """1nnn - Jump to nnn."""
        state.pc = params["nnn"]

    def _op_call(self, state: MachineState, params: Dict[str, Any]) -> None:
        """2nnn - Call subroutine at nnn.

        Pushes the current PC (the call site), then jumps.

        Raises:
            StackOverflowError: If all stack slots are in use
        """
        if state.sp >= STACK_SIZE:
            raise StackOverflowError(
                f"Call to 0x{params['nnn']:03X} with full stack at 0x{state.pc:03X}"
            )
        state.stack[state.sp] = state.pc
        state.sp += 1
        state.pc = params["nnn"]

    def _op_jp_v0(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Bnnn - Jump to nnn + V0."""
        state.pc = (params["nnn"] + state.registers[0]) & 0xFFFF

    # =========================================================================
    # Conditional Skip Handlers
    # =========================================================================

    def _skip_if(self, state: MachineState, condition: bool) -> None:
        state.pc += 4 if condition else 2

    def _op_se_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """3xnn - Skip next instruction if Vx == nn."""
        self._skip_if(state, state.registers[params["x"]] == params["nn"])

    def _op_sne_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """4xnn - Skip next instruction if Vx != nn."""
        self._skip_if(state, state.registers[params["x"]] != params["nn"])

    def _op_se_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """5xy0 - Skip next instruction if Vx == Vy."""
        self._skip_if(state, state.registers[params["x"]] == state.registers[params["y"]])

    def _op_sne_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """9xy0 - Skip next instruction if Vx != Vy."""
        self._skip_if(state, state.registers[params["x"]] != state.registers[params["y"]])

    # =========================================================================
    # Constant Handlers
    # =========================================================================

    def _op_ld_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """6xnn - Vx = nn."""
        state.set_register(params["x"], params["nn"])
        state.pc += 2

    def _op_add_vx_nn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """7xnn - Vx += nn, wrapping. VF is not affected."""
        x = params["x"]
        state.set_register(x, state.registers[x] + params["nn"])
        state.pc += 2

    # =========================================================================
    # Register Arithmetic Handlers
    # =========================================================================

    def _op_ld_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xy0 - Vx = Vy."""
        state.set_register(params["x"], state.registers[params["y"]])
        state.pc += 2

    def _op_or(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xy1 - Vx |= Vy."""
        x, y = params["x"], params["y"]
        state.set_register(x, state.registers[x] | state.registers[y])
        state.pc += 2

    def _op_and(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xy2 - Vx &= Vy."""
        x, y = params["x"], params["y"]
        state.set_register(x, state.registers[x] & state.registers[y])
        state.pc += 2

    def _op_xor(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xy3 - Vx ^= Vy."""
        x, y = params["x"], params["y"]
        state.set_register(x, state.registers[x] ^ state.registers[y])
        state.pc += 2

    def _op_add_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xy4 - Vx += Vy, VF = carry.

        The flag is written first, so with x == F the sum overwrites it.
        """
        x, y = params["x"], params["y"]
        total = state.registers[x] + state.registers[y]
        state.registers[FLAG] = 1 if total > 0xFF else 0
        state.set_register(x, total)
        state.pc += 2

    def _op_sub_vx_vy(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xy5 - Vx -= Vy, VF = 1 when there is no borrow (Vx >= Vy)."""
        x, y = params["x"], params["y"]
        vx, vy = state.registers[x], state.registers[y]
        state.registers[FLAG] = 1 if vx >= vy else 0
        state.set_register(x, vx - vy)
        state.pc += 2

    def _op_shr(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xy6 - VF = least significant bit of Vx, then Vx >>= 1."""
        x = params["x"]
        vx = state.registers[x]
        state.registers[FLAG] = vx & 0x1
        state.set_register(x, vx >> 1)
        state.pc += 2

    def _op_shl(self, state: MachineState, params: Dict[str, Any]) -> None:
        """8xyE - VF = most significant bit of Vx, then Vx <<= 1."""
        x = params["x"]
        vx = state.registers[x]
        state.registers[FLAG] = vx >> 7
        state.set_register(x, vx << 1)
        state.pc += 2

    # =========================================================================
    # Index, Random and Display Handlers
    # =========================================================================

    def _op_ld_i_nnn(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Annn - I = nnn."""
        state.index = params["nnn"]
        state.pc += 2

    def _op_rnd(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Cxnn - Vx = random byte AND nn."""
        state.set_register(params["x"], self._random_byte() & params["nn"])
        state.pc += 2

    def _op_drw(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Dxyn - Draw an 8xn sprite from memory[I] at (Vx, Vy).

        The origin is reduced modulo the display size and every pixel wraps
        around the edges. Sprite bits are XORed onto the framebuffer; VF is
        set to 1 if any lit pixel was erased, 0 otherwise.
        """
        origin_x = state.registers[params["x"]] % DISPLAY_WIDTH
        origin_y = state.registers[params["y"]] % DISPLAY_HEIGHT
        state.registers[FLAG] = 0

        for row in range(params["n"]):
            sprite = state.read_byte(state.index + row)
            for bit in range(8):
                if sprite & (0x80 >> bit):
                    if state.flip_pixel(origin_x + bit, origin_y + row):
                        state.registers[FLAG] = 1

        state.draw_flag = True
        state.pc += 2

    # =========================================================================
    # Key Handlers
    # =========================================================================

    def _op_skp(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Ex9E - Skip next instruction if key Vx is pressed."""
        key = state.registers[params["x"]] & 0xF
        self._skip_if(state, state.keys[key])

    def _op_sknp(self, state: MachineState, params: Dict[str, Any]) -> None:
        """ExA1 - Skip next instruction if key Vx is not pressed."""
        key = state.registers[params["x"]] & 0xF
        self._skip_if(state, not state.keys[key])

    # =========================================================================
    # Timer Handlers
    # =========================================================================

    def _op_ld_vx_dt(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx07 - Vx = delay timer."""
        state.set_register(params["x"], state.delay_timer)
        state.pc += 2

    def _op_ld_dt_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx15 - delay timer = Vx."""
        state.delay_timer = state.registers[params["x"]]
        state.pc += 2

    def _op_ld_st_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx18 - sound timer = Vx."""
        state.sound_timer = state.registers[params["x"]]
        state.pc += 2

    # =========================================================================
    # Memory Handlers
    # =========================================================================

    def _op_add_i_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx1E - I += Vx, wrapping at 16 bits. VF is not affected."""
        state.index = (state.index + state.registers[params["x"]]) & 0xFFFF
        state.pc += 2

    def _op_ld_f_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx29 - I = address of the font glyph for the low nibble of Vx."""
        digit = state.registers[params["x"]] & 0xF
        state.index = FONT_START + digit * FONT_GLYPH_SIZE
        state.pc += 2

    def _op_ld_b_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx33 - Store BCD digits of Vx at I, I+1, I+2."""
        value = state.registers[params["x"]]
        state.write_byte(state.index, value // 100)
        state.write_byte(state.index + 1, (value // 10) % 10)
        state.write_byte(state.index + 2, value % 10)
        state.pc += 2

    def _op_ld_mem_vx(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx55 - Store V0..Vx at I, then I += x + 1."""
        x = params["x"]
        for i in range(x + 1):
            state.write_byte(state.index + i, state.registers[i])
        state.index = (state.index + x + 1) & 0xFFFF
        state.pc += 2

    def _op_ld_vx_mem(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Fx65 - Load V0..Vx from I, then I += x + 1."""
        x = params["x"]
        for i in range(x + 1):
            state.registers[i] = state.read_byte(state.index + i)
        state.index = (state.index + x + 1) & 0xFFFF
        state.pc += 2

    # =========================================================================
    # Special Handlers
    # =========================================================================

    def _op_invalid(self, state: MachineState, params: Dict[str, Any]) -> None:
        """Unknown encoding - skip over the word so execution keeps moving."""
        state.pc += 2


# Shared registry instance with the default random source
_registry: Optional[OpcodeRegistry] = None


def get_registry() -> OpcodeRegistry:
    """Get the shared default registry instance.

    Returns:
        The frozen OpcodeRegistry instance
    """
    global _registry
    if _registry is None:
        _registry = OpcodeRegistry()
    return _registry
