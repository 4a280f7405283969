"""Capture browsable website snapshots and compare them over time."""

__version__ = "0.1.0"
