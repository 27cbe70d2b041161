"""Tests for the instruction decoder and disassembler."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm.decode import Decoder, DecodeResult, disassemble_program, extract_fields
from chip8_vm.registry import OpcodeRegistry


class TestDecodeResultDataclass:
    """Test DecodeResult structure."""

    def test_valid_result(self):
        """Valid decode result has key and params."""
        result = DecodeResult("OP_CLS", {"x": 0}, True)
        assert result.key == "OP_CLS"
        assert result.valid is True
        assert result.error is None

    def test_invalid_result(self):
        """Invalid decode result has error message."""
        result = DecodeResult("OP_INVALID", {}, False, error="Unknown")
        assert result.valid is False
        assert result.error == "Unknown"


class TestFieldExtraction:
    """Test bit-field extraction."""

    def test_fields(self):
        """All five fields come from the right nibbles."""
        assert extract_fields(0xD12A) == {
            "x": 0x1,
            "y": 0x2,
            "n": 0xA,
            "nn": 0x2A,
            "nnn": 0x12A,
        }


class TestDecodeFamilies:
    """Test decode of every instruction family."""

    @pytest.fixture
    def decoder(self):
        return Decoder()

    @pytest.mark.parametrize("opcode,key", [
        (0x00E0, "OP_CLS"),
        (0x00EE, "OP_RET"),
        (0x1234, "OP_JP"),
        (0x2321, "OP_CALL"),
        (0x3A12, "OP_SE_VX_NN"),
        (0x4A12, "OP_SNE_VX_NN"),
        (0x5AB0, "OP_SE_VX_VY"),
        (0x6A12, "OP_LD_VX_NN"),
        (0x7A12, "OP_ADD_VX_NN"),
        (0x8AB0, "OP_LD_VX_VY"),
        (0x8AB1, "OP_OR"),
        (0x8AB2, "OP_AND"),
        (0x8AB3, "OP_XOR"),
        (0x8AB4, "OP_ADD_VX_VY"),
        (0x8AB5, "OP_SUB_VX_VY"),
        (0x8AB6, "OP_SHR"),
        (0x8ABE, "OP_SHL"),
        (0x9AB0, "OP_SNE_VX_VY"),
        (0xA123, "OP_LD_I_NNN"),
        (0xB123, "OP_JP_V0"),
        (0xCA0F, "OP_RND"),
        (0xDAB5, "OP_DRW"),
        (0xEA9E, "OP_SKP"),
        (0xEAA1, "OP_SKNP"),
        (0xFA07, "OP_LD_VX_DT"),
        (0xFA15, "OP_LD_DT_VX"),
        (0xFA18, "OP_LD_ST_VX"),
        (0xFA1E, "OP_ADD_I_VX"),
        (0xFA29, "OP_LD_F_VX"),
        (0xFA33, "OP_LD_B_VX"),
        (0xFA55, "OP_LD_MEM_VX"),
        (0xFA65, "OP_LD_VX_MEM"),
    ])
    def test_known_opcodes(self, decoder, opcode, key):
        """Every defined encoding maps to its registry key."""
        result = decoder.decode(opcode)
        assert result.valid is True
        assert result.key == key
        assert result.opcode == opcode
        assert result.family == opcode & 0xF000

    @pytest.mark.parametrize("opcode", [
        0x0000, 0x00E1, 0x0123, 0x5AB1, 0x8AB7, 0x8ABF, 0x9AB1,
        0xEA9F, 0xE000, 0xFA00, 0xFA56, 0xFFFF,
    ])
    def test_unknown_opcodes(self, decoder, opcode):
        """Words outside the instruction set decode to OP_INVALID."""
        result = decoder.decode(opcode)
        assert result.valid is False
        assert result.key == "OP_INVALID"
        assert result.error is not None

    def test_unknown_error_names_family(self, decoder):
        """The error message carries family and word."""
        result = decoder.decode(0x8AB9)
        assert result.error == "Unknown opcode [0x8000]: 0x8AB9"
        assert result.family == 0x8000

    def test_params_always_present(self, decoder):
        """Invalid results still carry the bit-fields."""
        result = decoder.decode(0xF1FF)
        assert result.params["x"] == 1
        assert result.params["nn"] == 0xFF

    def test_decoder_keys_match_registry(self):
        """The decoder emits exactly the keys the registry executes."""
        assert Decoder.VALID_KEYS == OpcodeRegistry().get_valid_keys()


class TestDisassemble:
    """Test mnemonic rendering."""

    @pytest.fixture
    def decoder(self):
        return Decoder()

    @pytest.mark.parametrize("opcode,text", [
        (0x00E0, "CLS"),
        (0x00EE, "RET"),
        (0x1200, "JP 0x200"),
        (0x2321, "CALL 0x321"),
        (0x612A, "LD V1, 0x2A"),
        (0x8AB4, "ADD VA, VB"),
        (0x8AB6, "SHR VA"),
        (0xA050, "LD I, 0x050"),
        (0xB300, "JP V0, 0x300"),
        (0xD015, "DRW V0, V1, 5"),
        (0xE19E, "SKP V1"),
        (0xF533, "LD B, V5"),
        (0xF355, "LD [I], V3"),
        (0xF365, "LD V3, [I]"),
    ])
    def test_mnemonics(self, decoder, opcode, text):
        """Known words render as conventional mnemonics."""
        assert decoder.disassemble(opcode) == text

    def test_unknown_as_data(self, decoder):
        """Unknown words render as data."""
        assert decoder.disassemble(0x0123) == "DW 0x0123"

    def test_disassemble_program(self):
        """Program listing walks words from the load address."""
        listing = disassemble_program(bytes([0x00, 0xE0, 0x12, 0x00, 0x7F]))
        assert listing == [
            (0x200, 0x00E0, "CLS"),
            (0x202, 0x1200, "JP 0x200"),
            (0x204, 0x7F, "DB 0x7F"),
        ]

    def test_disassemble_empty(self):
        """Empty images produce empty listings."""
        assert disassemble_program(b"") == []
