"""Decoder: Instruction decode for the CHIP-8 VM.

This module turns 16-bit instruction words into registry keys plus the
bit-fields every handler works from.

Architecture:
    Opcode word -> Decoder -> (operation_key, params) -> Registry -> Execute

Decode is a two-level dispatch: the top nibble selects the instruction
family, and families 0, 5, 8, 9, E and F are further split on a
sub-selector (the low nibble or the low byte). Words that match no rule
decode to OP_INVALID with valid=False.

Bit-fields extracted from every word:
    x   = second nibble (register index)
    y   = third nibble (register index)
    n   = fourth nibble (small immediate, e.g. sprite height)
    nn  = low byte (8-bit immediate)
    nnn = low 12 bits (address)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from .state import PROGRAM_START


@dataclass
class DecodeResult:
    """Result of instruction decode operation.

    Attributes:
        key: Operation key (e.g., "OP_ADD_VX_VY")
        params: Bit-fields x, y, n, nn, nnn of the word
        valid: Whether decode succeeded
        error: Error message if decode failed
        opcode: The decoded 16-bit word
        family: Family selector (opcode & 0xF000)
    """
    key: str
    params: Dict[str, int]
    valid: bool
    error: Optional[str] = None
    opcode: int = 0
    family: int = 0


def extract_fields(opcode: int) -> Dict[str, int]:
    """Split an instruction word into its addressing fields."""
    return {
        "x": (opcode & 0x0F00) >> 8,
        "y": (opcode & 0x00F0) >> 4,
        "n": opcode & 0x000F,
        "nn": opcode & 0x00FF,
        "nnn": opcode & 0x0FFF,
    }


# Families fully identified by the top nibble
_FAMILY_KEYS: Dict[int, str] = {
    0x1000: "OP_JP",
    0x2000: "OP_CALL",
    0x3000: "OP_SE_VX_NN",
    0x4000: "OP_SNE_VX_NN",
    0x6000: "OP_LD_VX_NN",
    0x7000: "OP_ADD_VX_NN",
    0xA000: "OP_LD_I_NNN",
    0xB000: "OP_JP_V0",
    0xC000: "OP_RND",
    0xD000: "OP_DRW",
}

# Families split on a sub-selector: family -> (selector mask, selector -> key)
_SUB_KEYS: Dict[int, Tuple[int, Dict[int, str]]] = {
    0x0000: (0x0FFF, {
        0x0E0: "OP_CLS",
        0x0EE: "OP_RET",
    }),
    0x5000: (0x000F, {
        0x0: "OP_SE_VX_VY",
    }),
    0x8000: (0x000F, {
        0x0: "OP_LD_VX_VY",
        0x1: "OP_OR",
        0x2: "OP_AND",
        0x3: "OP_XOR",
        0x4: "OP_ADD_VX_VY",
        0x5: "OP_SUB_VX_VY",
        0x6: "OP_SHR",
        0xE: "OP_SHL",
    }),
    0x9000: (0x000F, {
        0x0: "OP_SNE_VX_VY",
    }),
    0xE000: (0x00FF, {
        0x9E: "OP_SKP",
        0xA1: "OP_SKNP",
    }),
    0xF000: (0x00FF, {
        0x07: "OP_LD_VX_DT",
        0x15: "OP_LD_DT_VX",
        0x18: "OP_LD_ST_VX",
        0x1E: "OP_ADD_I_VX",
        0x29: "OP_LD_F_VX",
        0x33: "OP_LD_B_VX",
        0x55: "OP_LD_MEM_VX",
        0x65: "OP_LD_VX_MEM",
    }),
}

# Conventional mnemonics, formatted with the decoded fields
_MNEMONICS: Dict[str, str] = {
    "OP_CLS": "CLS",
    "OP_RET": "RET",
    "OP_JP": "JP 0x{nnn:03X}",
    "OP_CALL": "CALL 0x{nnn:03X}",
    "OP_SE_VX_NN": "SE V{x:X}, 0x{nn:02X}",
    "OP_SNE_VX_NN": "SNE V{x:X}, 0x{nn:02X}",
    "OP_SE_VX_VY": "SE V{x:X}, V{y:X}",
    "OP_LD_VX_NN": "LD V{x:X}, 0x{nn:02X}",
    "OP_ADD_VX_NN": "ADD V{x:X}, 0x{nn:02X}",
    "OP_LD_VX_VY": "LD V{x:X}, V{y:X}",
    "OP_OR": "OR V{x:X}, V{y:X}",
    "OP_AND": "AND V{x:X}, V{y:X}",
    "OP_XOR": "XOR V{x:X}, V{y:X}",
    "OP_ADD_VX_VY": "ADD V{x:X}, V{y:X}",
    "OP_SUB_VX_VY": "SUB V{x:X}, V{y:X}",
    "OP_SHR": "SHR V{x:X}",
    "OP_SHL": "SHL V{x:X}",
    "OP_SNE_VX_VY": "SNE V{x:X}, V{y:X}",
    "OP_LD_I_NNN": "LD I, 0x{nnn:03X}",
    "OP_JP_V0": "JP V0, 0x{nnn:03X}",
    "OP_RND": "RND V{x:X}, 0x{nn:02X}",
    "OP_DRW": "DRW V{x:X}, V{y:X}, {n}",
    "OP_SKP": "SKP V{x:X}",
    "OP_SKNP": "SKNP V{x:X}",
    "OP_LD_VX_DT": "LD V{x:X}, DT",
    "OP_LD_DT_VX": "LD DT, V{x:X}",
    "OP_LD_ST_VX": "LD ST, V{x:X}",
    "OP_ADD_I_VX": "ADD I, V{x:X}",
    "OP_LD_F_VX": "LD F, V{x:X}",
    "OP_LD_B_VX": "LD B, V{x:X}",
    "OP_LD_MEM_VX": "LD [I], V{x:X}",
    "OP_LD_VX_MEM": "LD V{x:X}, [I]",
}


class Decoder:
    """Bit-pattern instruction decoder.

    Attributes:
        VALID_KEYS: Every key the decoder can emit
    """

    VALID_KEYS: Set[str] = set(_MNEMONICS) | {"OP_INVALID"}

    def decode(self, opcode: int) -> DecodeResult:
        """Decode an instruction word to operation key and parameters.

        Args:
            opcode: 16-bit instruction word

        Returns:
            DecodeResult with operation key and parameters
        """
        opcode &= 0xFFFF
        family = opcode & 0xF000
        params = extract_fields(opcode)

        key = _FAMILY_KEYS.get(family)
        if key is None and family in _SUB_KEYS:
            mask, table = _SUB_KEYS[family]
            key = table.get(opcode & mask)

        if key is None:
            return DecodeResult(
                key="OP_INVALID",
                params=params,
                valid=False,
                error=f"Unknown opcode [0x{family:04X}]: 0x{opcode:04X}",
                opcode=opcode,
                family=family,
            )

        return DecodeResult(key, params, True, opcode=opcode, family=family)

    def disassemble(self, opcode: int) -> str:
        """Render an instruction word as an assembly mnemonic.

        Unknown words are rendered as a data directive, e.g. "DW 0x0123".
        """
        result = self.decode(opcode)
        if not result.valid:
            return f"DW 0x{result.opcode:04X}"
        return _MNEMONICS[result.key].format(**result.params)


def disassemble_program(image: bytes, start: int = PROGRAM_START) -> List[Tuple[int, int, str]]:
    """Disassemble a program image word by word.

    A trailing odd byte is listed as a single-byte data directive.

    Args:
        image: Raw program bytes
        start: Load address of the first byte

    Returns:
        List of (address, word, text) tuples
    """
    decoder = Decoder()
    listing = []

    for offset in range(0, len(image) - 1, 2):
        word = (image[offset] << 8) | image[offset + 1]
        listing.append((start + offset, word, decoder.disassemble(word)))

    if len(image) % 2:
        last = image[-1]
        listing.append((start + len(image) - 1, last, f"DB 0x{last:02X}"))

    return listing
