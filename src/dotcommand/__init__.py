"""Capture, clean, classify and retain shell commands."""

__version__ = "0.3.0"
