"""Tests for the gradio demo's run handler."""

import sys
from pathlib import Path

import pytest

pytest.importorskip("gradio")

sys.path.insert(0, str(Path(__file__).parent.parent / "demo"))

import gradio_app


class TestRunProgram:
    """Test run_program input handling."""

    def test_example_program(self):
        """A built-in example runs and renders the screen."""
        summary, screen, registers, trace = gradio_app.run_program("BCD 137", None, 50, 0)
        assert not summary.startswith("Error")
        assert "█" in screen
        assert trace

    def test_cleared_seed(self):
        """A cleared seed field (None) runs with seed 0."""
        cleared = gradio_app.run_program("Random pixels", None, 100, None)
        zero = gradio_app.run_program("Random pixels", None, 100, 0)
        assert cleared[1] == zero[1]

    def test_no_program(self):
        """Without an example or upload an error is reported."""
        summary, screen, _, _ = gradio_app.run_program("missing", None, 10, 0)
        assert summary.startswith("Error")
        assert screen == ""
