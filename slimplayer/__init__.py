"""Headless music player core: sample packing, output buffering and fades, stdout output, options."""

__version__ = "2.0.0"

__all__ = ["cli", "options", "output", "pack", "stdout_output"]