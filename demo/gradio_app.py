"""chip8-vm Interactive Demo.

A Gradio web interface for running CHIP-8 programs and inspecting the
machine state afterwards.

Usage:
    cd /path/to/chip8-vm
    python demo/gradio_app.py

Features:
    - Upload a ROM or pick a built-in example program
    - Seeded runs for reproducible RND output
    - Final framebuffer rendered as text
    - Register, timer and stack inspection
    - Disassembled execution trace
"""

import random
import sys
from pathlib import Path
from typing import Optional

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from chip8_vm import Chip8VM, Chip8Error, LoadError


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    # Draws glyphs 0-7 on the first line and 8-F on the second
    "Font glyphs": bytes([
        0x60, 0x00,  # LD V0, 0x00     ; digit
        0x61, 0x00,  # LD V1, 0x00     ; x
        0x62, 0x00,  # LD V2, 0x00     ; y
        0xF0, 0x29,  # LD F, V0
        0xD1, 0x25,  # DRW V1, V2, 5
        0x71, 0x05,  # ADD V1, 0x05
        0x70, 0x01,  # ADD V0, 0x01
        0x30, 0x08,  # SE V0, 0x08
        0x12, 0x06,  # JP 0x206
        0x61, 0x00,  # LD V1, 0x00
        0x62, 0x06,  # LD V2, 0x06
        0xF0, 0x29,  # LD F, V0
        0xD1, 0x25,  # DRW V1, V2, 5
        0x71, 0x05,  # ADD V1, 0x05
        0x70, 0x01,  # ADD V0, 0x01
        0x30, 0x10,  # SE V0, 0x10
        0x12, 0x16,  # JP 0x216
        0x12, 0x22,  # JP 0x222       ; spin
    ]),

    # Stores the BCD digits of 137 and prints them
    "BCD 137": bytes([
        0x6A, 0x89,  # LD VA, 0x89
        0xA3, 0x00,  # LD I, 0x300
        0xFA, 0x33,  # LD B, VA
        0xF2, 0x65,  # LD V2, [I]
        0x63, 0x00,  # LD V3, 0x00
        0x64, 0x00,  # LD V4, 0x00
        0xF0, 0x29,  # LD F, V0
        0xD3, 0x45,  # DRW V3, V4, 5
        0x73, 0x05,  # ADD V3, 0x05
        0xF1, 0x29,  # LD F, V1
        0xD3, 0x45,  # DRW V3, V4, 5
        0x73, 0x05,  # ADD V3, 0x05
        0xF2, 0x29,  # LD F, V2
        0xD3, 0x45,  # DRW V3, V4, 5
        0x12, 0x1C,  # JP 0x21C       ; spin
    ]),

    # Toggles random pixels forever
    "Random pixels": bytes([
        0xC0, 0x3F,  # RND V0, 0x3F
        0xC1, 0x1F,  # RND V1, 0x1F
        0xA2, 0x0A,  # LD I, 0x20A
        0xD0, 0x11,  # DRW V0, V1, 1
        0x12, 0x00,  # JP 0x200
        0x80, 0x00,  # sprite: one pixel
    ]),
}


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(example_name: str, rom_file, cycles: int, seed: Optional[float]) -> tuple:
    """Execute a CHIP-8 program and return results.

    Args:
        example_name: Name of a built-in program (used when no ROM uploaded)
        rom_file: Uploaded ROM bytes or None
        cycles: Number of cycles to execute
        seed: Seed for the RND instruction

    Returns:
        Tuple of (summary_text, screen_text, registers_text, trace_text)
    """
    image = rom_file if rom_file else EXAMPLE_PROGRAMS.get(example_name)
    if not image:
        return "Error: No program provided", "", "", ""

    # A cleared Number widget passes None
    rng = random.Random(int(seed) if seed is not None else 0)
    vm = Chip8VM(random_byte=lambda: rng.getrandbits(8), trace_limit=100)

    try:
        vm.load_program(image)
    except LoadError as e:
        return f"Error: {e}", "", "", ""

    try:
        vm.run(int(cycles))
    except Chip8Error as e:
        error_msg = str(e)
    else:
        error_msg = None

    # Format summary
    summary = vm.get_summary()
    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Program: {'uploaded ROM' if rom_file else example_name} ({len(image)} bytes)",
        f"Cycles: {summary['cycles']}",
        f"Halted: {'Yes' if summary['halted'] else 'No'}",
        f"Errors: {len(summary['errors'])}",
    ]
    if error_msg:
        summary_lines.append(f"\nRuntime: {error_msg}")
    if summary['errors']:
        summary_lines.append("\nDecode Errors:")
        for err in summary['errors'][:5]:
            summary_lines.append(f"  - {err}")

    summary_text = "\n".join(summary_lines)

    screen_text = vm.render_text(on="█", off=" ")

    # Format registers
    reg_lines = [
        "FINAL REGISTERS",
        "=" * 30,
    ]
    for reg, value in vm.dump_registers().items():
        marker = " *" if value != 0 else ""
        reg_lines.append(f"  {reg}: 0x{value:02X} ({value:>3}){marker}")

    reg_lines.append("")
    reg_lines.append("MACHINE")
    reg_lines.append("-" * 30)
    reg_lines.append(f"  PC: 0x{summary['pc']:03X}")
    reg_lines.append(f"  I:  0x{summary['index']:03X}")
    reg_lines.append(f"  SP: {summary['sp']}")
    reg_lines.append(f"  DT: {summary['delay_timer']}")
    reg_lines.append(f"  ST: {summary['sound_timer']}")

    registers_text = "\n".join(reg_lines)

    # Format trace
    trace = vm.get_trace()
    trace_lines = [
        f"EXECUTION TRACE (last {len(trace)} cycles)",
        "=" * 60,
    ]
    for entry in trace:
        line = f"[{entry.cycle:>6}] 0x{entry.address:03X}: {entry.opcode:04X}  {entry.instruction}"
        if entry.error:
            line += f"  ! {entry.error}"
        trace_lines.append(line)

    trace_text = "\n".join(trace_lines)

    return summary_text, screen_text, registers_text, trace_text


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="chip8-vm Demo", theme=gr.themes.Soft()) as demo:
        gr.Markdown("""
        # chip8-vm: CHIP-8 Instruction Execution Engine

        Runs a CHIP-8 program for a fixed number of cycles and shows the
        resulting machine state. Timers tick once per cycle.

        **Pipeline**: `fetch -> decode -> key -> execute -> timers`
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Font glyphs",
                    label="Example Program"
                )

                rom_upload = gr.File(
                    label="Or upload a ROM (.ch8)",
                    type="binary"
                )

                gr.Markdown("### Settings")

                with gr.Row():
                    cycles = gr.Slider(
                        minimum=1,
                        maximum=100000,
                        value=1000,
                        step=1,
                        label="Cycles"
                    )
                    seed = gr.Number(
                        value=0,
                        precision=0,
                        label="RND Seed"
                    )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                screen_output = gr.Textbox(
                    label="Framebuffer (64x32)",
                    lines=32,
                    max_lines=32,
                    interactive=False
                )

                with gr.Row():
                    summary_output = gr.Textbox(
                        label="Summary",
                        lines=10,
                        interactive=False
                    )
                    registers_output = gr.Textbox(
                        label="Final Registers",
                        lines=10,
                        interactive=False
                    )

                trace_output = gr.Textbox(
                    label="Execution Trace",
                    lines=20,
                    interactive=False
                )

        # ISA Reference
        with gr.Accordion("ISA Reference", open=False):
            gr.Markdown("""
            | Encoding | Mnemonic | Effect |
            |----------|----------|--------|
            | `00E0` | `CLS` | Clear screen |
            | `00EE` | `RET` | Return from subroutine |
            | `1nnn` | `JP nnn` | Jump |
            | `2nnn` | `CALL nnn` | Call subroutine |
            | `3xnn` / `4xnn` | `SE` / `SNE Vx, nn` | Skip if equal / not equal |
            | `5xy0` / `9xy0` | `SE` / `SNE Vx, Vy` | Skip if registers equal / differ |
            | `6xnn` / `7xnn` | `LD` / `ADD Vx, nn` | Load / add immediate |
            | `8xy0-3` | `LD OR AND XOR` | Register moves and bit ops |
            | `8xy4` / `8xy5` | `ADD` / `SUB Vx, Vy` | VF = carry / no borrow |
            | `8xy6` / `8xyE` | `SHR` / `SHL Vx` | VF = shifted-out bit |
            | `Annn` / `Bnnn` | `LD I` / `JP V0` | Set I / jump to nnn + V0 |
            | `Cxnn` | `RND Vx, nn` | Random byte AND nn |
            | `Dxyn` | `DRW Vx, Vy, n` | XOR sprite, VF = collision |
            | `Ex9E` / `ExA1` | `SKP` / `SKNP Vx` | Skip on key state |
            | `Fx07 Fx15 Fx18` | `LD` timers | Delay / sound timers |
            | `Fx1E Fx29 Fx33` | `ADD I`, `LD F`, `LD B` | Index, font glyph, BCD |
            | `Fx55` / `Fx65` | `LD [I]` | Store / load V0..Vx |
            """)

        run_button.click(
            fn=run_program,
            inputs=[example_dropdown, rom_upload, cycles, seed],
            outputs=[summary_output, screen_output, registers_output, trace_output]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
