"""Integration tests for small CHIP-8 programs."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from chip8_vm import Chip8VM


def assemble(*words, origin=0x200, image=None):
    """Pack instruction words into a program image at origin."""
    image = bytearray(image or b"")
    offset = origin - 0x200
    if len(image) < offset:
        image += bytes(offset - len(image))
    for word in words:
        chunk = bytes([word >> 8, word & 0xFF])
        image[offset:offset + 2] = chunk
        offset += 2
    return bytes(image)


@pytest.fixture
def vm():
    return Chip8VM()


class TestFibonacciProgram:
    """Loop with register arithmetic and a conditional skip."""

    def test_fibonacci_10(self, vm):
        """After 9 iterations V1 holds F(10) = 55."""
        program = assemble(
            0x6000,  # LD V0, 0       ; F(k)
            0x6101,  # LD V1, 1       ; F(k+1)
            0x6209,  # LD V2, 9       ; iterations
            0x8310,  # LD V3, V1      ; loop:
            0x8104,  # ADD V1, V0
            0x8030,  # LD V0, V3
            0x72FF,  # ADD V2, 0xFF   ; counter--
            0x3200,  # SE V2, 0
            0x1206,  # JP loop
            0x1212,  # JP 0x212       ; done
        )
        vm.load_program(program)
        vm.run(max_cycles=200)

        assert vm.get_register(1) == 55
        assert vm.get_register(0) == 34
        assert vm.get_pc() == 0x212


class TestSubroutineProgram:
    """CALL/RET round trips."""

    def test_three_calls(self, vm):
        """Three calls to an add-3 routine leave VA = 9 and an empty stack."""
        program = assemble(
            0x6A00,  # LD VA, 0
            0x2300,  # CALL 0x300
            0x2300,  # CALL 0x300
            0x2300,  # CALL 0x300
            0x1208,  # JP 0x208
        )
        program = assemble(
            0x7A03,  # ADD VA, 3
            0x00EE,  # RET
            origin=0x300,
            image=program,
        )
        vm.load_program(program)
        vm.run(max_cycles=20)

        assert vm.get_register(0xA) == 9
        assert vm.state.sp == 0
        assert vm.get_pc() == 0x208


class TestBCDProgram:
    """BCD conversion followed by font rendering."""

    def test_bcd_137_on_screen(self, vm):
        """The digits 1, 3, 7 appear side by side without collision."""
        program = assemble(
            0x6A89,  # LD VA, 137
            0xA300,  # LD I, 0x300
            0xFA33,  # LD B, VA
            0xF265,  # LD V2, [I]
            0x6300,  # LD V3, 0
            0x6400,  # LD V4, 0
            0xF029,  # LD F, V0
            0xD345,  # DRW V3, V4, 5
            0x7305,  # ADD V3, 5
            0xF129,  # LD F, V1
            0xD345,  # DRW V3, V4, 5
            0x7305,  # ADD V3, 5
            0xF229,  # LD F, V2
            0xD345,  # DRW V3, V4, 5
            0x121C,  # JP 0x21C
        )
        vm.load_program(program)
        vm.run(max_cycles=50)

        assert [vm.get_register(i) for i in range(3)] == [1, 3, 7]
        assert vm.get_index() == 7 * 5
        assert vm.get_register(0xF) == 0
        assert vm.draw_flag is True
        first_row = vm.render_text().split("\n")[0]
        assert first_row == "..#..####.####" + "." * 50


class TestCollisionProgram:
    """Game logic built on the collision flag."""

    def test_draw_twice_reports_hit(self, vm):
        """Second draw of the same glyph reports a hit and blanks the screen."""
        program = assemble(
            0x6000,  # LD V0, 0
            0xF029,  # LD F, V0
            0xD005,  # DRW V0, V0, 5
            0x8AF0,  # LD VA, VF
            0xD005,  # DRW V0, V0, 5
            0x8BF0,  # LD VB, VF
            0x120C,  # JP 0x20C
        )
        vm.load_program(program)
        vm.run(max_cycles=10)

        assert vm.get_register(0xA) == 0
        assert vm.get_register(0xB) == 1
        assert all(pixel == 0 for row in vm.framebuffer for pixel in row)


class TestDelayProgram:
    """Busy-wait on the delay timer."""

    def test_wait_for_delay(self, vm):
        """The loop exits once the delay timer reaches zero."""
        program = assemble(
            0x6010,  # LD V0, 0x10
            0xF015,  # LD DT, V0
            0xF107,  # LD V1, DT      ; wait:
            0x3100,  # SE V1, 0
            0x1204,  # JP wait
            0x6201,  # LD V2, 1
            0x120C,  # JP 0x20C
        )
        vm.load_program(program)
        vm.run(max_cycles=10)
        assert vm.get_register(2) == 0

        vm.run(max_cycles=100)
        assert vm.get_register(2) == 1
        assert vm.state.delay_timer == 0


class TestKeypadProgram:
    """Polling a key with ExA1."""

    def test_wait_for_key(self, vm):
        """The program proceeds only after key 5 is latched."""
        program = assemble(
            0x6005,  # LD V0, 5
            0xE0A1,  # SKNP V0        ; poll:
            0x1208,  # JP pressed
            0x1202,  # JP poll
            0x6101,  # LD V1, 1       ; pressed:
            0x120A,  # JP 0x20A
        )
        vm.load_program(program)
        vm.run(max_cycles=50)
        assert vm.get_register(1) == 0

        vm.set_key_state(5, True)
        vm.run(max_cycles=10)
        assert vm.get_register(1) == 1


class TestRandomProgram:
    """Deterministic runs with an injected random source."""

    def test_seeded_rnd(self):
        """RND results follow the injected byte sequence."""
        values = iter([0x12, 0x34, 0x56])
        vm = Chip8VM(random_byte=lambda: next(values))
        vm.load_program(assemble(0xC0FF, 0xC1FF, 0xC20F, 0x1206))
        vm.run(max_cycles=4)
        assert [vm.get_register(i) for i in range(3)] == [0x12, 0x34, 0x06]
